"""Weekly schedule, day availability and time slot model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from clinic_api.database import Base
from clinic_api.models.user import User


class WeeklySchedule(Base):
    """One doctor's authored week, Monday through Sunday."""
    __tablename__ = "weekly_schedules"
    __table_args__ = (
        UniqueConstraint('doctor_id', 'week_start_date', name='uq_weekly_schedules_doctor_week'),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    week_start_date = Column(Date, nullable=False)
    week_number = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    doctor = relationship(User)
    days = relationship(
        "DayAvailability",
        back_populates="schedule",
        order_by="DayAvailability.position",
        cascade="all, delete-orphan",
    )

    def booked_slots(self) -> list["TimeSlot"]:
        return [slot for day in self.days for slot in day.time_slots if slot.is_booked]


class DayAvailability(Base):
    """One calendar day of a schedule; days off carry no slots."""
    __tablename__ = "day_availability"

    id = Column(Integer, primary_key=True)
    schedule_id = Column(Integer, ForeignKey("weekly_schedules.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)  # 0 = Monday
    day = Column(String, nullable=False)
    date = Column(Date, nullable=False, index=True)
    is_available = Column(Boolean, default=False, nullable=False)

    schedule = relationship("WeeklySchedule", back_populates="days")
    time_slots = relationship(
        "TimeSlot",
        back_populates="day",
        order_by="TimeSlot.position",
        cascade="all, delete-orphan",
    )


class TimeSlot(Base):
    """A bookable HH:MM-HH:MM range within a day."""
    __tablename__ = "time_slots"

    id = Column(Integer, primary_key=True)
    day_id = Column(Integer, ForeignKey("day_availability.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    time = Column(String, nullable=False)
    is_booked = Column(Boolean, default=False, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    day = relationship("DayAvailability", back_populates="time_slots")
