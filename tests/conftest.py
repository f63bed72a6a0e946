import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from clinic_api.database import Base  # noqa: E402
from clinic_api.models import appointment, medical_history, schedule  # noqa: E402,F401
from clinic_api.models.user import ROLE_ADMIN, ROLE_DOCTOR, ROLE_PATIENT, User  # noqa: E402
from clinic_api.schemas import DayEntryInput, TimeSlotInput  # noqa: E402
from clinic_api.core.timeutils import WEEKDAY_LABELS  # noqa: E402


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def _add_user(session, email: str, name: str, role: str) -> User:
    user = User(email=email, name=name, role=role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def doctor(db) -> User:
    return _add_user(db, 'dr.house@clinic.test', 'Gregory House', ROLE_DOCTOR)


@pytest.fixture
def other_doctor(db) -> User:
    return _add_user(db, 'dr.wilson@clinic.test', 'James Wilson', ROLE_DOCTOR)


@pytest.fixture
def patient(db) -> User:
    return _add_user(db, 'patient@example.com', 'Pat Smith', ROLE_PATIENT)


@pytest.fixture
def other_patient(db) -> User:
    return _add_user(db, 'second.patient@example.com', 'Sam Jones', ROLE_PATIENT)


@pytest.fixture
def admin(db) -> User:
    return _add_user(db, 'admin@clinic.test', 'Clinic Admin', ROLE_ADMIN)


def build_week(slots_by_day: dict[str, list[str]] | None = None, text_by_day: dict[str, str] | None = None) -> list[DayEntryInput]:
    """Seven day entries; days named in either mapping are working days."""
    slots_by_day = slots_by_day or {}
    text_by_day = text_by_day or {}
    entries = []
    for label in WEEKDAY_LABELS:
        working = label in slots_by_day or label in text_by_day
        entries.append(
            DayEntryInput(
                day=label,
                is_available=working,
                time_slots=[TimeSlotInput(time=time_range) for time_range in slots_by_day.get(label, [])],
                time_slots_text=text_by_day.get(label),
            )
        )
    return entries


@pytest.fixture
def make_week():
    return build_week
