"""User model definitions."""

from sqlalchemy import Column, Integer, String
from clinic_api.database import Base

ROLE_ADMIN = 'admin'
ROLE_DOCTOR = 'doctor'
ROLE_PATIENT = 'patient'


class User(Base):
    """Represents an administrator, doctor or patient."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False, default='')
    role = Column(String, nullable=False)  # admin/doctor/patient
