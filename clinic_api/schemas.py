"""Request and response models shared by the routers and services.

Fields are snake_case in Python and camelCase on the wire.
"""

from datetime import date, datetime

from pydantic import BaseModel, field_validator
from pydantic.alias_generators import to_camel

from clinic_api.core import config
from clinic_api.services.appointment_status import normalize_status


class ApiModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


def _clean_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if len(normalized) > config.MAX_NOTES_LENGTH:
        raise ValueError(f'Notes must be {config.MAX_NOTES_LENGTH} characters or fewer.')

    return normalized


class TimeSlotInput(ApiModel):
    time: str
    is_available: bool = True

    @field_validator('time')
    @classmethod
    def strip_time(cls, value: str) -> str:
        return value.strip()


class DayEntryInput(ApiModel):
    day: str
    is_available: bool
    time_slots: list[TimeSlotInput] = []
    # Raw comma separated ranges as typed into the authoring form.
    time_slots_text: str | None = None

    @field_validator('day')
    @classmethod
    def normalize_day(cls, value: str) -> str:
        return value.strip().capitalize()


class CreateScheduleRequest(ApiModel):
    doctor_id: int
    week_start_date: date | datetime
    days: list[DayEntryInput]


class UpdateScheduleRequest(ApiModel):
    week_start_date: date | datetime | None = None
    days: list[DayEntryInput]


class TimeSlotResponse(ApiModel):
    id: int
    time: str
    is_booked: bool
    is_available: bool
    patient_id: int | None = None


class DayAvailabilityResponse(ApiModel):
    day: str
    date: date
    is_available: bool
    time_slots: list[TimeSlotResponse]


class DoctorSummaryResponse(ApiModel):
    id: int
    name: str
    email: str


class WeeklyScheduleResponse(ApiModel):
    id: int
    doctor_id: int
    doctor: DoctorSummaryResponse | None = None
    week_start_date: date
    week_number: int
    year: int
    days: list[DayAvailabilityResponse]
    created_at: datetime | None = None
    updated_at: datetime | None = None


class OpenSlotResponse(ApiModel):
    time: str


class BookAppointmentRequest(ApiModel):
    doctor_id: int
    appointment_date: date
    timeslot: str
    notes: str | None = None

    @field_validator('timeslot')
    @classmethod
    def strip_timeslot(cls, value: str) -> str:
        return value.strip()

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _clean_notes(value)


class TransitionRequest(ApiModel):
    status: str
    notes: str | None = None

    @field_validator('status')
    @classmethod
    def normalize_target(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _clean_notes(value)


class ReviewRequest(ApiModel):
    rating: int
    comment: str | None = None


class ReviewResponse(ApiModel):
    rating: int
    comment: str | None = None


class AppointmentResponse(ApiModel):
    id: int
    patient_id: int
    doctor_id: int
    appointment_date: date
    timeslot: str
    status: str
    notes: str = ''
    has_medical_history: bool = False
    review: ReviewResponse | None = None
    created_at: datetime | None = None

    @field_validator('status', mode='before')
    @classmethod
    def normalize_stored_status(cls, value) -> str:
        return normalize_status(value)

    @field_validator('notes', mode='before')
    @classmethod
    def default_notes(cls, value) -> str:
        return value or ''

    @classmethod
    def from_appointment(cls, appointment) -> 'AppointmentResponse':
        review = None
        if appointment.review_rating is not None:
            review = ReviewResponse(rating=appointment.review_rating, comment=appointment.review_comment)

        return cls(
            id=appointment.id,
            patient_id=appointment.patient_id,
            doctor_id=appointment.doctor_id,
            appointment_date=appointment.appointment_date,
            timeslot=appointment.timeslot,
            status=appointment.status,
            notes=appointment.notes,
            has_medical_history=bool(appointment.has_medical_history),
            review=review,
            created_at=appointment.created_at,
        )


class AppointmentStatsResponse(ApiModel):
    total: int
    pending: int
    completed: int
    cancelled: int


class CreateMedicalHistoryRequest(ApiModel):
    appointment_id: int
    diagnosis: str
    treatment: str


class UpdateMedicalHistoryRequest(ApiModel):
    diagnosis: str | None = None
    treatment: str | None = None


class MedicalHistoryResponse(ApiModel):
    id: int
    appointment_id: int
    patient_id: int
    doctor_id: int
    diagnosis: str
    treatment: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class HistoryCandidateResponse(ApiModel):
    id: int
    patient_id: int
    appointment_date: date
    timeslot: str
    has_medical_history: bool
