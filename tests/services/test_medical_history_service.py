from datetime import date

import pytest

from clinic_api.core.errors import ConflictError, DuplicateError, ForbiddenError, NotEligibleError, NotFoundError, ValidationError
from clinic_api.models.appointment import Appointment
from clinic_api.models.medical_history import MedicalHistory
from clinic_api.services import appointment_status, booking_service, medical_history_service, schedule_service

WEEK_OF_JUNE_3 = date(2024, 6, 3)


@pytest.fixture
def appointments(db, doctor, patient, other_patient, make_week) -> list[Appointment]:
    schedule_service.create_schedule(
        db, doctor.id, WEEK_OF_JUNE_3, make_week({'Monday': ['09:00-10:00', '10:00-11:00', '11:00-12:00']})
    )
    return [
        booking_service.book_appointment(db, doctor.id, WEEK_OF_JUNE_3, '09:00-10:00', patient.id),
        booking_service.book_appointment(db, doctor.id, WEEK_OF_JUNE_3, '10:00-11:00', other_patient.id),
        booking_service.book_appointment(db, doctor.id, WEEK_OF_JUNE_3, '11:00-12:00', patient.id),
    ]


def test_end_to_end_booking_to_medical_history(db, doctor, patient, make_week) -> None:
    schedule = schedule_service.create_schedule(
        db, doctor.id, date(2024, 6, 3), make_week({'Monday': ['09:00-10:00']})
    )
    assert schedule.week_start_date == date(2024, 6, 3)

    appointment = booking_service.book_appointment(db, doctor.id, date(2024, 6, 3), '09:00-10:00', patient.id)
    assert appointment.status == 'pending'

    appointment = appointment_status.transition(db, appointment.id, 'completed', note='exam done')
    assert appointment.notes == 'exam done'

    history = medical_history_service.create_medical_history(db, appointment.id, 'flu', 'rest and fluids')
    assert history.diagnosis == 'flu'
    assert history.patient_id == patient.id
    assert history.doctor_id == doctor.id

    with pytest.raises(DuplicateError):
        medical_history_service.create_medical_history(db, appointment.id, 'flu', 'rest and fluids')

    assert db.query(MedicalHistory).count() == 1


@pytest.mark.parametrize('status', ['pending', 'cancelled'])
def test_medical_history_requires_completed_appointment(db, appointments, status: str) -> None:
    appointment = appointments[0]
    if status == 'cancelled':
        appointment_status.transition(db, appointment.id, 'cancelled')

    with pytest.raises(NotEligibleError):
        medical_history_service.create_medical_history(db, appointment.id, 'flu', 'rest')

    assert db.query(MedicalHistory).count() == 0


def test_create_flags_appointment_and_trims_text(db, appointments) -> None:
    appointment = appointment_status.transition(db, appointments[0].id, 'completed')

    history = medical_history_service.create_medical_history(db, appointment.id, '  flu ', ' rest ')

    db.refresh(appointment)
    assert appointment.has_medical_history is True
    assert (history.diagnosis, history.treatment) == ('flu', 'rest')


def test_create_requires_diagnosis_and_treatment(db, appointments) -> None:
    appointment = appointment_status.transition(db, appointments[0].id, 'completed')

    with pytest.raises(ValidationError):
        medical_history_service.create_medical_history(db, appointment.id, '   ', 'rest')
    with pytest.raises(ValidationError):
        medical_history_service.create_medical_history(db, appointment.id, 'flu', '')


def test_create_for_missing_or_foreign_appointment(db, appointments, other_doctor) -> None:
    with pytest.raises(NotFoundError):
        medical_history_service.create_medical_history(db, 999, 'flu', 'rest')

    appointment = appointment_status.transition(db, appointments[0].id, 'completed')
    with pytest.raises(ForbiddenError):
        medical_history_service.create_medical_history(
            db, appointment.id, 'flu', 'rest', acting_doctor_id=other_doctor.id
        )


def test_update_and_delete_history(db, doctor, other_doctor, appointments) -> None:
    appointment = appointment_status.transition(db, appointments[0].id, 'completed')
    history = medical_history_service.create_medical_history(db, appointment.id, 'flu', 'rest')

    with pytest.raises(ForbiddenError):
        medical_history_service.update_medical_history(db, history.id, diagnosis='cold', acting_doctor_id=other_doctor.id)

    updated = medical_history_service.update_medical_history(db, history.id, treatment=' fluids ', acting_doctor_id=doctor.id)
    assert (updated.diagnosis, updated.treatment) == ('flu', 'fluids')

    history_id = history.id
    medical_history_service.delete_medical_history(db, history_id, acting_doctor_id=doctor.id)

    db.refresh(appointment)
    assert appointment.has_medical_history is False
    assert db.query(MedicalHistory).count() == 0

    with pytest.raises(NotFoundError):
        medical_history_service.delete_medical_history(db, history_id)

    recreated = medical_history_service.create_medical_history(db, appointment.id, 'flu', 'rest')
    assert recreated.appointment_id == appointment.id


def test_candidates_exclude_documented_appointments_when_requested(db, doctor, appointments) -> None:
    first = appointment_status.transition(db, appointments[0].id, 'completed')
    second = appointment_status.transition(db, appointments[1].id, 'completed')
    medical_history_service.create_medical_history(db, first.id, 'flu', 'rest')

    all_completed = medical_history_service.list_history_candidates(db, doctor.id)
    open_only = medical_history_service.list_history_candidates(db, doctor.id, only_open=True)

    assert {(appointment.id, appointment.has_medical_history) for appointment in all_completed} == {
        (first.id, True),
        (second.id, False),
    }
    assert [appointment.id for appointment in open_only] == [second.id]


def test_list_histories_by_patient(db, doctor, patient, other_patient, appointments) -> None:
    for appointment in appointments:
        appointment_status.transition(db, appointment.id, 'completed')
        medical_history_service.create_medical_history(db, appointment.id, f'dx {appointment.id}', 'rest')

    assert len(medical_history_service.list_medical_histories(db, doctor.id)) == 3
    patient_histories = medical_history_service.list_medical_histories(db, doctor.id, patient_id=patient.id)
    assert {history.patient_id for history in patient_histories} == {patient.id}
    assert len(patient_histories) == 2


def test_appointment_with_history_cannot_be_deleted(db, appointments) -> None:
    appointment = appointment_status.transition(db, appointments[0].id, 'completed')
    medical_history_service.create_medical_history(db, appointment.id, 'flu', 'rest')

    with pytest.raises(ConflictError):
        booking_service.delete_appointment(db, appointment.id)


def test_candidates_include_completed_stored_with_other_casing(db, doctor, appointments) -> None:
    legacy = appointments[0]
    legacy.status = ' Completed'
    db.commit()

    candidates = medical_history_service.list_history_candidates(db, doctor.id, only_open=True)
    assert [appointment.id for appointment in candidates] == [legacy.id]

    medical_history_service.create_medical_history(db, legacy.id, 'Migraine', 'Rest', acting_doctor_id=doctor.id)
    assert medical_history_service.list_history_candidates(db, doctor.id, only_open=True) == []
