"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String
from clinic_api.database import Base

STATUS_PENDING = 'pending'
STATUS_COMPLETED = 'completed'
STATUS_CANCELLED = 'cancelled'
APPOINTMENT_STATUSES = (STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED)


class Appointment(Base):
    """Represents a patient's reservation of one time slot."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    appointment_date = Column(Date, nullable=False)
    timeslot = Column(String, nullable=False)
    # Held while the appointment occupies the slot; released on cancellation.
    time_slot_id = Column(Integer, ForeignKey("time_slots.id", ondelete="SET NULL"), nullable=True)
    status = Column(String, nullable=False, default=STATUS_PENDING)
    notes = Column(String, nullable=False, default='')
    has_medical_history = Column(Boolean, nullable=False, default=False)
    review_rating = Column(Integer, nullable=True)
    review_comment = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
