from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_api.auth.dependencies import require_patient
from clinic_api.core.errors import ClinicError, to_http_exception
from clinic_api.core.timeutils import clinic_now, clinic_today
from clinic_api.database import get_db
from clinic_api.models.user import User
from clinic_api.routes.common import database_unavailable, ensure_database_ready
from clinic_api.schemas import AppointmentResponse, BookAppointmentRequest, OpenSlotResponse, ReviewRequest
from clinic_api.services import booking_service

router = APIRouter(tags=['appointments'])


@router.get('/open-slots', response_model=list[OpenSlotResponse])
def list_open_slots(
    doctor_id: int = Query(..., alias='doctorId'),
    on_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return booking_service.list_open_slots(db, doctor_id, on_date)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    data: BookAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_patient),
):
    ensure_database_ready()

    try:
        appointment = booking_service.book_appointment(
            db,
            doctor_id=data.doctor_id,
            appointment_date=data.appointment_date,
            timeslot=data.timeslot,
            patient_id=current_user.id,
            notes=data.notes,
            today=clinic_today(),
        )
        return AppointmentResponse.from_appointment(appointment)
    except ClinicError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{appointment_id}/review', response_model=AppointmentResponse)
def review_appointment(
    appointment_id: int,
    data: ReviewRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_patient),
):
    ensure_database_ready()

    try:
        appointment = booking_service.attach_review(
            db,
            appointment_id,
            patient_id=current_user.id,
            rating=data.rating,
            comment=data.comment,
        )
        return AppointmentResponse.from_appointment(appointment)
    except ClinicError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_patient),
):
    ensure_database_ready()

    try:
        appointment = booking_service.cancel_by_patient(
            db,
            appointment_id,
            patient_id=current_user.id,
            now=clinic_now(),
        )
        return AppointmentResponse.from_appointment(appointment)
    except ClinicError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
