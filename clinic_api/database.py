from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from clinic_api.core import config


def _engine_options(url: str) -> dict:
    if url.startswith('sqlite'):
        return {'connect_args': {'check_same_thread': False}}
    return {'pool_pre_ping': True}


engine = create_engine(config.DATABASE_URL, **_engine_options(config.DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_schema_checked = False


def ensure_schema() -> None:
    """Add columns and indexes introduced after a table was first created."""
    global _schema_checked

    if _schema_checked:
        return

    with _schema_lock:
        if _schema_checked:
            return

        inspector = inspect(engine)
        table_names = set(inspector.get_table_names())

        with engine.begin() as connection:
            if 'appointments' in table_names:
                existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
                migration_steps = [
                    ('has_medical_history', 'ALTER TABLE appointments ADD COLUMN has_medical_history BOOLEAN DEFAULT FALSE'),
                    ('review_rating', 'ALTER TABLE appointments ADD COLUMN review_rating INTEGER'),
                    ('review_comment', 'ALTER TABLE appointments ADD COLUMN review_comment VARCHAR'),
                ]
                for column_name, statement in migration_steps:
                    if column_name not in existing_columns:
                        connection.execute(text(statement))
                connection.execute(
                    text('CREATE INDEX IF NOT EXISTS idx_appointments_doctor_date ON appointments(doctor_id, appointment_date)')
                )
                connection.execute(
                    text('CREATE INDEX IF NOT EXISTS idx_appointments_doctor_status ON appointments(doctor_id, status)')
                )

            if 'weekly_schedules' in table_names:
                connection.execute(
                    text('CREATE INDEX IF NOT EXISTS idx_weekly_schedules_week_start ON weekly_schedules(week_start_date)')
                )

            if 'time_slots' in table_names:
                connection.execute(
                    text('CREATE INDEX IF NOT EXISTS idx_time_slots_day_booked ON time_slots(day_id, is_booked)')
                )

        _schema_checked = True


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
