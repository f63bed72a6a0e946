"""Domain errors raised by the scheduling and appointment services."""

from fastapi import HTTPException, status


class ClinicError(Exception):
    """Base exception for scheduling and appointment operations."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(ClinicError):
    """Raised when input is malformed or a required field is missing."""

    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenError(ClinicError):
    """Raised when the caller acts on another doctor's or patient's data."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ClinicError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ClinicError):
    """Raised on duplicate schedules, already booked slots and lost races.

    ``conflicts`` lists the booked slots that blocked a schedule edit.
    """

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, detail: str, conflicts: list[dict] | None = None):
        super().__init__(detail)
        self.conflicts = conflicts or []


class InvalidTransitionError(ClinicError):
    status_code = status.HTTP_409_CONFLICT


class NotEligibleError(ClinicError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class DuplicateError(ClinicError):
    status_code = status.HTTP_409_CONFLICT


def to_http_exception(exc: ClinicError) -> HTTPException:
    if isinstance(exc, ConflictError) and exc.conflicts:
        return HTTPException(
            status_code=exc.status_code,
            detail={'message': exc.detail, 'conflicts': exc.conflicts},
        )
    return HTTPException(status_code=exc.status_code, detail=exc.detail)
