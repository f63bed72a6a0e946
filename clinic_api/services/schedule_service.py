"""Authoring of weekly schedules.

Every mutation here is all-or-nothing: input is validated in full before the
session is touched, and any database failure rolls the whole change back.
Booked slots are never silently dropped; an edit or delete that would remove,
move or disable one fails with ``ConflictError`` listing the booked slots.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic_api.core.errors import ConflictError, NotFoundError, ValidationError
from clinic_api.core.timeutils import DAYS_PER_WEEK, WEEKDAY_LABELS, week_dates, week_number_and_year, week_start
from clinic_api.models.appointment import Appointment
from clinic_api.models.schedule import DayAvailability, TimeSlot, WeeklySchedule
from clinic_api.models.user import ROLE_DOCTOR, User
from clinic_api.schemas import DayEntryInput
from clinic_api.services.time_slots import ParsedSlot, parse_time_slots, sort_key, validate_day_slots

logger = logging.getLogger(__name__)


@dataclass
class DayPlan:
    position: int
    day: str
    date: date
    is_available: bool
    slots: list[ParsedSlot] = field(default_factory=list)


def get_doctor(db: Session, doctor_id: int) -> User:
    doctor = db.query(User).filter(User.id == doctor_id, User.role == ROLE_DOCTOR).first()
    if doctor is None:
        raise NotFoundError('Doctor not found.')
    return doctor


def get_schedule(db: Session, schedule_id: int) -> WeeklySchedule:
    schedule = db.query(WeeklySchedule).filter(WeeklySchedule.id == schedule_id).first()
    if schedule is None:
        raise NotFoundError('Schedule not found.')
    return schedule


def build_day_plans(start: date, days: Sequence[DayEntryInput], today: date | None = None) -> list[DayPlan]:
    """Validate seven day entries against the week beginning on ``start``.

    Raises ``ValidationError`` naming the first offending day or slot.
    """
    if len(days) != DAYS_PER_WEEK:
        raise ValidationError(f'A schedule needs exactly {DAYS_PER_WEEK} day entries, got {len(days)}.')

    plans: list[DayPlan] = []
    for position, (entry, day_date) in enumerate(zip(days, week_dates(start))):
        label = WEEKDAY_LABELS[position]
        if entry.day != label:
            raise ValidationError(f"Day entry {position + 1} must be '{label}', got '{entry.day}'.")

        if not entry.is_available:
            plans.append(DayPlan(position=position, day=label, date=day_date, is_available=False))
            continue

        if today is not None and day_date < today:
            raise ValidationError(f'{label} {day_date.isoformat()} has already passed and cannot be marked available.')

        slots = [ParsedSlot(time=slot.time, is_available=slot.is_available) for slot in entry.time_slots]
        if entry.time_slots_text:
            parsed, rejected = parse_time_slots(entry.time_slots_text)
            if rejected:
                raise ValidationError(f"{label}: could not read time range(s) {', '.join(rejected)}.")
            slots.extend(parsed)

        validate_day_slots(label, [slot.time for slot in slots])
        slots.sort(key=lambda slot: sort_key(slot.time))
        plans.append(DayPlan(position=position, day=label, date=day_date, is_available=True, slots=slots))

    return plans


def _check_week_not_past(start: date, today: date | None) -> None:
    if today is not None and start < week_start(today):
        raise ValidationError('Schedules cannot be authored for a week that has already passed.')


def _find_duplicate(db: Session, doctor_id: int, start: date, exclude_id: int | None = None) -> WeeklySchedule | None:
    query = db.query(WeeklySchedule).filter(
        WeeklySchedule.doctor_id == doctor_id,
        WeeklySchedule.week_start_date == start,
    )
    if exclude_id is not None:
        query = query.filter(WeeklySchedule.id != exclude_id)
    return query.first()


def _new_slot(position: int, slot: ParsedSlot) -> TimeSlot:
    return TimeSlot(
        position=position,
        time=slot.time,
        is_booked=False,
        is_available=slot.is_available,
        patient_id=None,
    )


def _describe_booked(db: Session, slots: list[TimeSlot]) -> list[dict]:
    slot_ids = [slot.id for slot in slots]
    appointment_ids = {
        time_slot_id: appointment_id
        for appointment_id, time_slot_id in db.query(Appointment.id, Appointment.time_slot_id).filter(
            Appointment.time_slot_id.in_(slot_ids)
        )
    }
    return [
        {
            'day': slot.day.day,
            'date': slot.day.date.isoformat(),
            'time': slot.time,
            'patientId': slot.patient_id,
            'appointmentId': appointment_ids.get(slot.id),
        }
        for slot in slots
    ]


def _commit(db: Session, conflict_message: str) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(conflict_message) from exc


def create_schedule(
    db: Session,
    doctor_id: int,
    week_start_date: date | datetime,
    days: Sequence[DayEntryInput],
    today: date | None = None,
) -> WeeklySchedule:
    get_doctor(db, doctor_id)

    start = week_start(week_start_date)
    _check_week_not_past(start, today)
    plans = build_day_plans(start, days, today)

    if _find_duplicate(db, doctor_id, start):
        raise ConflictError('A schedule already exists for this doctor and week.')

    week_number, year = week_number_and_year(start)
    schedule = WeeklySchedule(
        doctor_id=doctor_id,
        week_start_date=start,
        week_number=week_number,
        year=year,
        days=[
            DayAvailability(
                position=plan.position,
                day=plan.day,
                date=plan.date,
                is_available=plan.is_available,
                time_slots=[_new_slot(index, slot) for index, slot in enumerate(plan.slots)],
            )
            for plan in plans
        ],
    )
    db.add(schedule)
    _commit(db, 'A schedule already exists for this doctor and week.')
    db.refresh(schedule)

    logger.info('Created schedule %s for doctor %s, week of %s', schedule.id, doctor_id, start)
    return schedule


def _slots_at_risk(schedule: WeeklySchedule, plans: list[DayPlan]) -> list[TimeSlot]:
    """Existing slots the edit would remove or make unavailable."""
    at_risk: list[TimeSlot] = []

    for day, plan in zip(schedule.days, plans):
        if not plan.is_available:
            at_risk.extend(day.time_slots)
            continue

        kept = {slot.time: slot for slot in plan.slots}
        for slot in day.time_slots:
            replacement = kept.get(slot.time)
            if replacement is None or not replacement.is_available:
                at_risk.append(slot)

    return at_risk


def _booked_slot_conflicts(schedule: WeeklySchedule, plans: list[DayPlan]) -> list[TimeSlot]:
    return [slot for slot in _slots_at_risk(schedule, plans) if slot.is_booked]


def _claim_unbooked(db: Session, slots: list[TimeSlot]) -> bool:
    """Hold ``slots`` for this transaction, provided none is booked in the database.

    The loaded objects may predate a booking committed by another session. The
    conditional update reads committed state and keeps the rows locked until
    commit, so a booking racing the edit waits and then finds its slot gone.
    """
    if not slots:
        return True

    slot_ids = [slot.id for slot in slots]
    matched = db.query(TimeSlot).filter(
        TimeSlot.id.in_(slot_ids),
        TimeSlot.is_booked.is_(False),
    ).update({'is_booked': False}, synchronize_session=False)
    return matched == len(slot_ids)


def _claim_lost(db: Session, schedule_id: int, slots: list[TimeSlot], message: str) -> ConflictError:
    slot_ids = {slot.id for slot in slots}
    db.rollback()
    logger.warning('Schedule %s changed under a concurrent booking; edit rejected', schedule_id)

    fresh = get_schedule(db, schedule_id)
    booked = [slot for slot in fresh.booked_slots() if slot.id in slot_ids]
    return ConflictError(message, conflicts=_describe_booked(db, booked))


def _sync_day(day: DayAvailability, plan: DayPlan) -> None:
    day.day = plan.day
    day.date = plan.date
    day.is_available = plan.is_available

    existing = {slot.time: slot for slot in day.time_slots}
    wanted = {slot.time for slot in plan.slots}

    for slot in list(day.time_slots):
        if slot.time not in wanted:
            day.time_slots.remove(slot)

    for index, parsed in enumerate(plan.slots):
        slot = existing.get(parsed.time)
        if slot is None:
            day.time_slots.append(_new_slot(index, parsed))
            continue
        slot.position = index
        if not slot.is_booked:
            slot.is_available = parsed.is_available


def update_schedule(
    db: Session,
    schedule_id: int,
    days: Sequence[DayEntryInput],
    week_start_date: date | datetime | None = None,
    today: date | None = None,
) -> WeeklySchedule:
    schedule = get_schedule(db, schedule_id)

    start = week_start(week_start_date) if week_start_date is not None else schedule.week_start_date
    _check_week_not_past(start, today)
    plans = build_day_plans(start, days, today)
    moving = start != schedule.week_start_date

    if moving:
        booked = schedule.booked_slots()
        if booked:
            raise ConflictError(
                'A schedule with booked time slots cannot be moved to another week.',
                conflicts=_describe_booked(db, booked),
            )
        if _find_duplicate(db, schedule.doctor_id, start, exclude_id=schedule.id):
            raise ConflictError('A schedule already exists for this doctor and week.')

    blocked = _booked_slot_conflicts(schedule, plans)
    if blocked:
        logger.warning('Rejected edit of schedule %s: %d booked slot(s) affected', schedule.id, len(blocked))
        raise ConflictError(
            'Booked time slots cannot be removed, changed or made unavailable.',
            conflicts=_describe_booked(db, blocked),
        )

    at_risk = [slot for day in schedule.days for slot in day.time_slots] if moving else _slots_at_risk(schedule, plans)
    if not _claim_unbooked(db, at_risk):
        raise _claim_lost(
            db, schedule_id, at_risk, 'Booked time slots cannot be removed, changed or made unavailable.'
        )

    schedule.week_start_date = start
    schedule.week_number, schedule.year = week_number_and_year(start)
    for day, plan in zip(schedule.days, plans):
        _sync_day(day, plan)

    _commit(db, 'A schedule already exists for this doctor and week.')
    db.refresh(schedule)

    logger.info('Updated schedule %s, week of %s', schedule.id, start)
    return schedule


def delete_schedule(db: Session, schedule_id: int, today: date | None = None) -> None:
    schedule = get_schedule(db, schedule_id)

    if today is not None and schedule.week_start_date < week_start(today):
        raise ValidationError('Schedules for a week that has already passed cannot be deleted.')

    booked = schedule.booked_slots()
    if booked:
        raise ConflictError(
            'A schedule with booked time slots cannot be deleted.',
            conflicts=_describe_booked(db, booked),
        )

    slots = [slot for day in schedule.days for slot in day.time_slots]
    if not _claim_unbooked(db, slots):
        raise _claim_lost(db, schedule_id, slots, 'A schedule with booked time slots cannot be deleted.')

    db.delete(schedule)
    _commit(db, 'A schedule with booked time slots cannot be deleted.')
    logger.info('Deleted schedule %s', schedule_id)
