from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_api.auth.dependencies import require_admin
from clinic_api.core.errors import ClinicError, to_http_exception
from clinic_api.core.timeutils import clinic_today
from clinic_api.database import get_db
from clinic_api.models.user import User
from clinic_api.routes.common import database_unavailable, ensure_database_ready
from clinic_api.schemas import (
    AppointmentResponse,
    AppointmentStatsResponse,
    CreateScheduleRequest,
    UpdateScheduleRequest,
    WeeklyScheduleResponse,
)
from clinic_api.services import booking_service, schedule_queries, schedule_service

router = APIRouter(tags=['admin'])


def parse_month(value: str) -> tuple[int, int]:
    try:
        year_text, month_text = value.strip().split('-')
        year, month = int(year_text), int(month_text)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Month must be in the format YYYY-MM.',
        ) from exc

    if not 1 <= month <= 12:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Month must be in the format YYYY-MM.',
        )

    return year, month


@router.get('/schedules', response_model=list[WeeklyScheduleResponse])
def list_schedules(
    week_start_date: date | None = Query(default=None, alias='weekStartDate'),
    doctor_id: int | None = Query(default=None, alias='doctorId'),
    month: str | None = Query(default=None),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db),
    _admin: User = Depends(require_admin),
):
    ensure_database_ready()

    try:
        if week_start_date is not None:
            schedules = schedule_queries.find_by_week(db, week_start_date, doctor_id=doctor_id)
        elif month:
            year, month_number = parse_month(month)
            schedules = schedule_queries.find_by_month(db, year, month_number, doctor_id=doctor_id)
        elif doctor_id is not None:
            schedules = schedule_queries.find_for_doctor(db, doctor_id)
        else:
            return schedule_queries.search(db, search)

        if search:
            schedules = [schedule for schedule in schedules if schedule_queries.matches_term(schedule, search)]

        return schedules
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/schedules/{schedule_id}', response_model=WeeklyScheduleResponse)
def get_schedule(
    schedule_id: int,
    db: Session = Depends(get_db),
    _admin: User = Depends(require_admin),
):
    ensure_database_ready()

    try:
        return schedule_service.get_schedule(db, schedule_id)
    except ClinicError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/schedules', response_model=WeeklyScheduleResponse, status_code=status.HTTP_201_CREATED)
def create_schedule(
    data: CreateScheduleRequest,
    db: Session = Depends(get_db),
    _admin: User = Depends(require_admin),
):
    ensure_database_ready()

    try:
        return schedule_service.create_schedule(
            db,
            doctor_id=data.doctor_id,
            week_start_date=data.week_start_date,
            days=data.days,
            today=clinic_today(),
        )
    except ClinicError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/schedules/{schedule_id}', response_model=WeeklyScheduleResponse)
def update_schedule(
    schedule_id: int,
    data: UpdateScheduleRequest,
    db: Session = Depends(get_db),
    _admin: User = Depends(require_admin),
):
    ensure_database_ready()

    try:
        return schedule_service.update_schedule(
            db,
            schedule_id,
            days=data.days,
            week_start_date=data.week_start_date,
            today=clinic_today(),
        )
    except ClinicError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/schedules/{schedule_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_schedule(
    schedule_id: int,
    db: Session = Depends(get_db),
    _admin: User = Depends(require_admin),
):
    ensure_database_ready()

    try:
        schedule_service.delete_schedule(db, schedule_id, today=clinic_today())
    except ClinicError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_all_appointments(
    db: Session = Depends(get_db),
    _admin: User = Depends(require_admin),
):
    ensure_database_ready()

    try:
        return [AppointmentResponse.from_appointment(appointment) for appointment in booking_service.list_appointments(db)]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.delete('/appointments/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    _admin: User = Depends(require_admin),
):
    ensure_database_ready()

    try:
        booking_service.delete_appointment(db, appointment_id)
    except ClinicError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/dashboard', response_model=AppointmentStatsResponse)
def admin_dashboard(
    db: Session = Depends(get_db),
    _admin: User = Depends(require_admin),
):
    ensure_database_ready()

    try:
        return schedule_queries.appointment_stats(db)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
