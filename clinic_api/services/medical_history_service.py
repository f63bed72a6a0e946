"""Medical history records, gated on appointment completion."""

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic_api.core.errors import DuplicateError, ForbiddenError, NotEligibleError, NotFoundError, ValidationError
from clinic_api.models.appointment import STATUS_COMPLETED, Appointment
from clinic_api.models.medical_history import MedicalHistory
from clinic_api.services.appointment_status import ensure_doctor_owns, get_appointment, normalize_status

logger = logging.getLogger(__name__)


def _required_text(value: str | None, field_name: str) -> str:
    normalized = (value or '').strip()
    if not normalized:
        raise ValidationError(f'{field_name} is required.')
    return normalized


def get_medical_history(db: Session, history_id: int, acting_doctor_id: int | None = None) -> MedicalHistory:
    history = db.query(MedicalHistory).filter(MedicalHistory.id == history_id).first()
    if history is None:
        raise NotFoundError('Medical history not found.')
    if acting_doctor_id is not None and history.doctor_id != acting_doctor_id:
        raise ForbiddenError('You can only manage your own medical history records.')
    return history


def create_medical_history(
    db: Session,
    appointment_id: int,
    diagnosis: str,
    treatment: str,
    acting_doctor_id: int | None = None,
) -> MedicalHistory:
    appointment = get_appointment(db, appointment_id)
    ensure_doctor_owns(appointment, acting_doctor_id)

    diagnosis = _required_text(diagnosis, 'Diagnosis')
    treatment = _required_text(treatment, 'Treatment')

    if normalize_status(appointment.status) != STATUS_COMPLETED:
        raise NotEligibleError('Medical history can only be recorded for completed appointments.')

    existing = db.query(MedicalHistory.id).filter(MedicalHistory.appointment_id == appointment.id).first()
    if existing is not None:
        raise DuplicateError('A medical history record already exists for this appointment.')

    history = MedicalHistory(
        appointment_id=appointment.id,
        patient_id=appointment.patient_id,
        doctor_id=appointment.doctor_id,
        diagnosis=diagnosis,
        treatment=treatment,
    )
    db.add(history)
    appointment.has_medical_history = True

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateError('A medical history record already exists for this appointment.') from exc

    db.refresh(history)
    logger.info('Recorded medical history %s for appointment %s', history.id, appointment.id)
    return history


def update_medical_history(
    db: Session,
    history_id: int,
    diagnosis: str | None = None,
    treatment: str | None = None,
    acting_doctor_id: int | None = None,
) -> MedicalHistory:
    history = get_medical_history(db, history_id, acting_doctor_id)

    if diagnosis is not None:
        history.diagnosis = _required_text(diagnosis, 'Diagnosis')
    if treatment is not None:
        history.treatment = _required_text(treatment, 'Treatment')

    db.commit()
    db.refresh(history)
    return history


def delete_medical_history(db: Session, history_id: int, acting_doctor_id: int | None = None) -> None:
    history = get_medical_history(db, history_id, acting_doctor_id)

    db.query(Appointment).filter(Appointment.id == history.appointment_id).update(
        {'has_medical_history': False},
        synchronize_session=False,
    )
    db.delete(history)
    db.commit()
    logger.info('Deleted medical history %s', history_id)


def list_medical_histories(db: Session, doctor_id: int, patient_id: int | None = None) -> list[MedicalHistory]:
    query = db.query(MedicalHistory).filter(MedicalHistory.doctor_id == doctor_id)
    if patient_id is not None:
        query = query.filter(MedicalHistory.patient_id == patient_id)
    return query.order_by(MedicalHistory.created_at.desc(), MedicalHistory.id.desc()).all()


def list_history_candidates(db: Session, doctor_id: int, only_open: bool = False) -> list[Appointment]:
    """Completed appointments of a doctor; ``only_open`` drops those already documented."""
    query = db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        func.lower(func.trim(Appointment.status)) == STATUS_COMPLETED,
    )
    if only_open:
        query = query.filter(Appointment.has_medical_history.is_(False))
    return query.order_by(Appointment.appointment_date.desc()).all()
