"""Parsing and validation of ``HH:MM-HH:MM`` time slot ranges."""

import re
from dataclasses import dataclass

from clinic_api.core.errors import ValidationError

TIME_RANGE_PATTERN = re.compile(r'^\d{2}:\d{2}-\d{2}:\d{2}$')


@dataclass(frozen=True)
class ParsedSlot:
    time: str
    is_available: bool = True


def matches_time_range(value: str) -> bool:
    return bool(TIME_RANGE_PATTERN.match(value))


def parse_time_slots(raw: str) -> tuple[list[ParsedSlot], list[str]]:
    """Split a comma separated list of ranges into accepted slots and rejected tokens.

    Rejected tokens are returned rather than raised so the caller decides how to
    surface input that was not fully consumed.
    """
    accepted: list[ParsedSlot] = []
    rejected: list[str] = []

    for token in raw.split(','):
        token = token.strip()
        if not token:
            continue
        if matches_time_range(token):
            accepted.append(ParsedSlot(time=token))
        else:
            rejected.append(token)

    return accepted, rejected


def to_minutes(clock: str) -> int:
    hours, minutes = (int(part) for part in clock.split(':'))
    if minutes > 59 or hours > 24 or (hours == 24 and minutes != 0):
        raise ValueError(f'Invalid clock value: {clock}')
    return hours * 60 + minutes


def range_bounds(time_range: str) -> tuple[int, int]:
    start, end = time_range.split('-')
    return to_minutes(start), to_minutes(end)


def ranges_overlap(first: str, second: str) -> bool:
    first_start, first_end = range_bounds(first)
    second_start, second_end = range_bounds(second)
    return first_start < second_end and second_start < first_end


def validate_day_slots(day: str, times: list[str]) -> None:
    """Reject malformed, impossible, duplicate or overlapping ranges for one day."""
    seen: list[str] = []

    for time_range in times:
        if not matches_time_range(time_range):
            raise ValidationError(f"{day}: invalid time range '{time_range}', expected HH:MM-HH:MM.")

        try:
            start, end = range_bounds(time_range)
        except ValueError as exc:
            raise ValidationError(f"{day}: invalid time range '{time_range}'.") from exc

        if end <= start:
            raise ValidationError(f"{day}: time range '{time_range}' must end after it starts.")

        for existing in seen:
            if existing == time_range:
                raise ValidationError(f"{day}: time range '{time_range}' is listed twice.")
            if ranges_overlap(existing, time_range):
                raise ValidationError(f"{day}: time range '{time_range}' overlaps '{existing}'.")

        seen.append(time_range)


def sort_key(time_range: str) -> tuple[int, int]:
    return range_bounds(time_range)
