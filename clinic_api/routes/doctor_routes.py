from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_api.auth.dependencies import require_doctor
from clinic_api.core.errors import ClinicError, to_http_exception
from clinic_api.database import get_db
from clinic_api.models.user import User
from clinic_api.routes.common import database_unavailable, ensure_database_ready
from clinic_api.schemas import (
    AppointmentResponse,
    AppointmentStatsResponse,
    CreateMedicalHistoryRequest,
    HistoryCandidateResponse,
    MedicalHistoryResponse,
    TransitionRequest,
    UpdateMedicalHistoryRequest,
    WeeklyScheduleResponse,
)
from clinic_api.services import appointment_status, booking_service, medical_history_service, schedule_queries

router = APIRouter(tags=['doctor'])


@router.get('/schedules', response_model=list[WeeklyScheduleResponse])
def list_my_schedules(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_doctor),
):
    ensure_database_ready()

    try:
        return schedule_queries.find_for_doctor(db, current_user.id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_my_appointments(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_doctor),
):
    ensure_database_ready()

    try:
        appointments = booking_service.list_appointments(db, doctor_id=current_user.id)
        return [AppointmentResponse.from_appointment(appointment) for appointment in appointments]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/appointments/{appointment_id}/status', response_model=AppointmentResponse)
def change_appointment_status(
    appointment_id: int,
    data: TransitionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_doctor),
):
    ensure_database_ready()

    try:
        appointment = appointment_status.transition(
            db,
            appointment_id,
            data.status,
            note=data.notes,
            acting_doctor_id=current_user.id,
        )
        return AppointmentResponse.from_appointment(appointment)
    except ClinicError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/dashboard', response_model=AppointmentStatsResponse)
def doctor_dashboard(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_doctor),
):
    ensure_database_ready()

    try:
        return schedule_queries.appointment_stats(db, doctor_id=current_user.id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/completed-appointments', response_model=list[HistoryCandidateResponse])
def list_completed_appointments(
    only_open: bool = Query(default=False, alias='onlyOpen'),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_doctor),
):
    ensure_database_ready()

    try:
        return medical_history_service.list_history_candidates(db, current_user.id, only_open=only_open)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/medical-history', response_model=MedicalHistoryResponse, status_code=status.HTTP_201_CREATED)
def create_medical_history(
    data: CreateMedicalHistoryRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_doctor),
):
    ensure_database_ready()

    try:
        return medical_history_service.create_medical_history(
            db,
            data.appointment_id,
            data.diagnosis,
            data.treatment,
            acting_doctor_id=current_user.id,
        )
    except ClinicError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/medical-history', response_model=list[MedicalHistoryResponse])
def list_medical_history(
    patient_id: int | None = Query(default=None, alias='patientId'),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_doctor),
):
    ensure_database_ready()

    try:
        return medical_history_service.list_medical_histories(db, current_user.id, patient_id=patient_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/medical-history/{history_id}', response_model=MedicalHistoryResponse)
def update_medical_history(
    history_id: int,
    data: UpdateMedicalHistoryRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_doctor),
):
    ensure_database_ready()

    try:
        return medical_history_service.update_medical_history(
            db,
            history_id,
            diagnosis=data.diagnosis,
            treatment=data.treatment,
            acting_doctor_id=current_user.id,
        )
    except ClinicError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/medical-history/{history_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_medical_history(
    history_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_doctor),
):
    ensure_database_ready()

    try:
        medical_history_service.delete_medical_history(db, history_id, acting_doctor_id=current_user.id)
    except ClinicError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
