"""Slot reservation on behalf of the patient-facing booking flow."""

import logging
from datetime import date, datetime, time

from sqlalchemy.orm import Session

from clinic_api.core.errors import (
    ConflictError,
    DuplicateError,
    ForbiddenError,
    NotEligibleError,
    NotFoundError,
    ValidationError,
)
from clinic_api.core.timeutils import clinic_zone, week_start
from clinic_api.models.appointment import STATUS_CANCELLED, STATUS_COMPLETED, STATUS_PENDING, Appointment
from clinic_api.models.schedule import DayAvailability, TimeSlot, WeeklySchedule
from clinic_api.models.user import ROLE_PATIENT, User
from clinic_api.services.appointment_status import get_appointment, normalize_status, transition
from clinic_api.services.time_slots import matches_time_range, range_bounds

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def find_day(db: Session, doctor_id: int, on_date: date) -> DayAvailability | None:
    return db.query(DayAvailability).join(WeeklySchedule).filter(
        WeeklySchedule.doctor_id == doctor_id,
        WeeklySchedule.week_start_date == week_start(on_date),
        DayAvailability.date == on_date,
    ).first()


def find_slot(db: Session, doctor_id: int, on_date: date, timeslot: str) -> TimeSlot | None:
    day = find_day(db, doctor_id, on_date)
    if day is None or not day.is_available:
        return None
    return db.query(TimeSlot).filter(TimeSlot.day_id == day.id, TimeSlot.time == timeslot).first()


def list_open_slots(db: Session, doctor_id: int, on_date: date) -> list[TimeSlot]:
    day = find_day(db, doctor_id, on_date)
    if day is None or not day.is_available:
        return []
    return [slot for slot in day.time_slots if slot.is_available and not slot.is_booked]


def book_appointment(
    db: Session,
    doctor_id: int,
    appointment_date: date,
    timeslot: str,
    patient_id: int,
    notes: str | None = None,
    today: date | None = None,
) -> Appointment:
    """Reserve ``timeslot`` for the patient and create a pending appointment.

    The slot is claimed with a conditional update on ``is_booked``; when two
    requests race for the same slot the loser gets ``ConflictError`` and no
    appointment is created for it.
    """
    patient = db.query(User).filter(User.id == patient_id, User.role == ROLE_PATIENT).first()
    if patient is None:
        raise NotFoundError('Patient not found.')

    if not matches_time_range(timeslot):
        raise ValidationError('Timeslot must be in the format HH:MM-HH:MM.')

    if today is not None and appointment_date < today:
        raise ValidationError('Appointments cannot be booked in the past.')

    slot = find_slot(db, doctor_id, appointment_date, timeslot)
    if slot is None or not slot.is_available:
        raise NotFoundError('The doctor does not offer this time range on that day.')

    claimed = db.query(TimeSlot).filter(
        TimeSlot.id == slot.id,
        TimeSlot.is_booked.is_(False),
    ).update({'is_booked': True, 'patient_id': patient_id}, synchronize_session=False)

    if claimed != 1:
        db.rollback()
        logger.warning('Slot %s (%s %s) already booked; rejected patient %s', slot.id, appointment_date, timeslot, patient_id)
        raise ConflictError('This time range is no longer available.')

    appointment = Appointment(
        patient_id=patient_id,
        doctor_id=doctor_id,
        appointment_date=appointment_date,
        timeslot=timeslot,
        time_slot_id=slot.id,
        status=STATUS_PENDING,
        notes=notes or '',
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)

    logger.info('Booked slot %s for patient %s as appointment %s', slot.id, patient_id, appointment.id)
    return appointment


def release_slot(db: Session, appointment: Appointment, slot_id: int | None) -> None:
    """Free the slot held by ``appointment`` without committing."""
    query = db.query(TimeSlot)
    if slot_id is not None:
        query = query.filter(TimeSlot.id == slot_id)
    else:
        day = find_day(db, appointment.doctor_id, appointment.appointment_date)
        if day is None:
            logger.warning('No schedule day found to release appointment %s', appointment.id)
            return
        query = query.filter(TimeSlot.day_id == day.id, TimeSlot.time == appointment.timeslot)

    released = query.filter(
        TimeSlot.is_booked.is_(True),
        TimeSlot.patient_id == appointment.patient_id,
    ).update({'is_booked': False, 'patient_id': None}, synchronize_session=False)

    if not released:
        logger.warning('Appointment %s held no booked slot to release', appointment.id)


def appointment_start(appointment: Appointment) -> datetime:
    """Start of the booked range as an aware datetime in the clinic timezone."""
    start_minutes, _ = range_bounds(appointment.timeslot)
    hours, minutes = divmod(start_minutes, 60)
    return datetime.combine(appointment.appointment_date, time(hours, minutes), tzinfo=clinic_zone())


def cancel_by_patient(
    db: Session,
    appointment_id: int,
    patient_id: int,
    now: datetime | None = None,
) -> Appointment:
    """Let a patient cancel their own pending appointment before it starts.

    ``now`` must be timezone aware; without it the start time is not checked.
    """
    appointment = get_appointment(db, appointment_id)

    if appointment.patient_id != patient_id:
        raise ForbiddenError('You can only cancel your own appointments.')
    if now is not None and appointment_start(appointment) <= now:
        raise ValidationError('Appointments can only be cancelled before they start.')

    return transition(db, appointment.id, STATUS_CANCELLED)


def list_appointments(db: Session, doctor_id: int | None = None) -> list[Appointment]:
    query = db.query(Appointment)
    if doctor_id is not None:
        query = query.filter(Appointment.doctor_id == doctor_id)
    return query.order_by(Appointment.appointment_date.desc(), Appointment.created_at.desc()).all()


def delete_appointment(db: Session, appointment_id: int) -> None:
    """Administrative removal; a pending appointment gives its slot back."""
    appointment = get_appointment(db, appointment_id)

    if appointment.has_medical_history:
        raise ConflictError('Appointments with a medical history record cannot be deleted.')

    if normalize_status(appointment.status) == STATUS_PENDING:
        release_slot(db, appointment, appointment.time_slot_id)

    db.delete(appointment)
    db.commit()
    logger.info('Deleted appointment %s', appointment_id)


def attach_review(
    db: Session,
    appointment_id: int,
    patient_id: int,
    rating: int,
    comment: str | None = None,
) -> Appointment:
    appointment = get_appointment(db, appointment_id)

    if appointment.patient_id != patient_id:
        raise ForbiddenError('You can only review your own appointments.')
    if normalize_status(appointment.status) != STATUS_COMPLETED:
        raise NotEligibleError('Only completed appointments can be reviewed.')
    if appointment.review_rating is not None:
        raise DuplicateError('This appointment has already been reviewed.')
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError(f'Rating must be between {MIN_RATING} and {MAX_RATING}.')

    appointment.review_rating = rating
    appointment.review_comment = comment.strip() if comment else None
    db.commit()
    db.refresh(appointment)
    return appointment
