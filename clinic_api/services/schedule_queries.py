"""Read-only lookups over weekly schedules and appointment counts."""

from datetime import date, datetime, timedelta

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session

from clinic_api.core.timeutils import DAYS_PER_WEEK, month_bounds, week_start
from clinic_api.models.appointment import STATUS_CANCELLED, STATUS_COMPLETED, STATUS_PENDING, Appointment
from clinic_api.models.schedule import WeeklySchedule
from clinic_api.models.user import User
from clinic_api.services.appointment_status import normalize_status


def _ordered(query: Query) -> Query:
    return query.order_by(WeeklySchedule.week_start_date.desc(), WeeklySchedule.created_at.desc())


def find_by_week(db: Session, week_start_date: date | datetime, doctor_id: int | None = None) -> list[WeeklySchedule]:
    query = db.query(WeeklySchedule).filter(WeeklySchedule.week_start_date == week_start(week_start_date))
    if doctor_id is not None:
        query = query.filter(WeeklySchedule.doctor_id == doctor_id)
    return _ordered(query).all()


def find_by_month(db: Session, year: int, month: int, doctor_id: int | None = None) -> list[WeeklySchedule]:
    """Schedules whose week overlaps the month, so a week spanning two months is in both."""
    first_day, last_day = month_bounds(year, month)
    query = db.query(WeeklySchedule).filter(
        WeeklySchedule.week_start_date <= last_day,
        WeeklySchedule.week_start_date >= first_day - timedelta(days=DAYS_PER_WEEK - 1),
    )
    if doctor_id is not None:
        query = query.filter(WeeklySchedule.doctor_id == doctor_id)
    return _ordered(query).all()


def find_for_doctor(db: Session, doctor_id: int) -> list[WeeklySchedule]:
    return _ordered(db.query(WeeklySchedule).filter(WeeklySchedule.doctor_id == doctor_id)).all()


def search(db: Session, term: str | None) -> list[WeeklySchedule]:
    """Case-insensitive substring match on the owning doctor's name or email."""
    query = db.query(WeeklySchedule)
    normalized = (term or '').strip().lower()
    if normalized:
        query = query.join(User, User.id == WeeklySchedule.doctor_id).filter(
            or_(
                func.lower(User.name).contains(normalized, autoescape=True),
                func.lower(User.email).contains(normalized, autoescape=True),
            )
        )
    return _ordered(query).all()


def appointment_stats(db: Session, doctor_id: int | None = None) -> dict[str, int]:
    query = db.query(Appointment.status, func.count(Appointment.id)).group_by(Appointment.status)
    if doctor_id is not None:
        query = query.filter(Appointment.doctor_id == doctor_id)

    stats = {'total': 0, STATUS_PENDING: 0, STATUS_COMPLETED: 0, STATUS_CANCELLED: 0}
    for stored_status, count in query.all():
        stats[normalize_status(stored_status)] += count
        stats['total'] += count
    return stats


def matches_term(schedule: WeeklySchedule, term: str) -> bool:
    normalized = term.strip().lower()
    doctor = schedule.doctor
    if not normalized:
        return True
    if doctor is None:
        return False
    return normalized in (doctor.name or '').lower() or normalized in (doctor.email or '').lower()
