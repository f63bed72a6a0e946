"""Appointment lifecycle: pending -> completed | cancelled.

Both outcomes are terminal. Cancelling frees the booked slot so it can be
offered again; completing keeps it booked as a record of utilisation.
Transitions are applied with a compare-and-set on the current status, so of two
concurrent transitions only the first to commit takes effect.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from clinic_api.core.errors import ForbiddenError, InvalidTransitionError, NotFoundError
from clinic_api.models.appointment import (
    APPOINTMENT_STATUSES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_PENDING,
    Appointment,
)

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_CANCELLED})
TRANSITIONS = {
    STATUS_PENDING: TERMINAL_STATUSES,
    STATUS_COMPLETED: frozenset(),
    STATUS_CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class StatusChanged:
    appointment_id: int
    doctor_id: int
    from_status: str
    to_status: str


StatusListener = Callable[[StatusChanged], None]
_listeners: list[StatusListener] = []


def add_status_listener(listener: StatusListener) -> None:
    _listeners.append(listener)


def remove_status_listener(listener: StatusListener) -> None:
    if listener in _listeners:
        _listeners.remove(listener)


def normalize_status(value) -> str:
    """Read-time policy for stored status values; anything unknown reads as pending."""
    if not isinstance(value, str):
        return STATUS_PENDING

    normalized = value.strip().lower()
    if normalized in APPOINTMENT_STATUSES:
        return normalized
    return STATUS_PENDING


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise NotFoundError('Appointment not found.')
    return appointment


def ensure_doctor_owns(appointment: Appointment, doctor_id: int | None) -> None:
    if doctor_id is not None and appointment.doctor_id != doctor_id:
        raise ForbiddenError('You can only manage your own appointments.')


def transition(
    db: Session,
    appointment_id: int,
    to_status: str,
    note: str | None = None,
    acting_doctor_id: int | None = None,
) -> Appointment:
    # Imported here: booking imports this module for status lookups.
    from clinic_api.services.booking_service import release_slot

    appointment = get_appointment(db, appointment_id)
    ensure_doctor_owns(appointment, acting_doctor_id)

    current = normalize_status(appointment.status)
    target = (to_status or '').strip().lower()

    if target not in APPOINTMENT_STATUSES or target == STATUS_PENDING:
        raise InvalidTransitionError(f"Cannot move an appointment to '{to_status}'.")
    if target not in TRANSITIONS[current]:
        raise InvalidTransitionError(f'Appointment is already {current}.')

    values = {'status': target}
    if note is not None:
        values['notes'] = note
    if target == STATUS_CANCELLED:
        values['time_slot_id'] = None

    slot_id = appointment.time_slot_id
    updated = db.query(Appointment).filter(
        Appointment.id == appointment.id,
        Appointment.status == appointment.status,
    ).update(values, synchronize_session=False)

    if updated != 1:
        db.rollback()
        logger.warning('Lost status race on appointment %s (wanted %s)', appointment_id, target)
        raise InvalidTransitionError('Appointment status was changed by someone else; reload and retry.')

    if target == STATUS_CANCELLED:
        release_slot(db, appointment, slot_id)

    db.commit()
    db.refresh(appointment)

    logger.info('Appointment %s: %s -> %s', appointment.id, current, target)
    event = StatusChanged(
        appointment_id=appointment.id,
        doctor_id=appointment.doctor_id,
        from_status=current,
        to_status=target,
    )
    for listener in list(_listeners):
        try:
            listener(event)
        except Exception:
            logger.exception('Status listener %r failed for appointment %s', listener, appointment.id)

    return appointment
