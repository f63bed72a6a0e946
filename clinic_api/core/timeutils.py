"""Week arithmetic in the configured clinic timezone."""

from calendar import monthrange
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from clinic_api.core import config

WEEKDAY_LABELS = (
    'Monday',
    'Tuesday',
    'Wednesday',
    'Thursday',
    'Friday',
    'Saturday',
    'Sunday',
)
DAYS_PER_WEEK = len(WEEKDAY_LABELS)


def clinic_zone() -> ZoneInfo:
    return ZoneInfo(config.CLINIC_TIMEZONE)


def clinic_now() -> datetime:
    return datetime.now(clinic_zone())


def clinic_today() -> date:
    return clinic_now().date()


def to_clinic_date(value: date | datetime) -> date:
    """Return the calendar date of ``value`` as seen in the clinic timezone.

    Naive datetimes are taken to already be clinic-local.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(clinic_zone())
        return value.date()
    return value


def week_start(value: date | datetime) -> date:
    """Monday of the ISO week containing ``value``."""
    day = to_clinic_date(value)
    return day - timedelta(days=day.weekday())


def week_number_and_year(start: date) -> tuple[int, int]:
    iso_year, iso_week, _ = start.isocalendar()
    return iso_week, iso_year


def week_dates(start: date) -> list[date]:
    return [start + timedelta(days=offset) for offset in range(DAYS_PER_WEEK)]


def month_bounds(year: int, month: int) -> tuple[date, date]:
    if not 1 <= month <= 12:
        raise ValueError(f'Invalid month: {month}')
    return date(year, month, 1), date(year, month, monthrange(year, month)[1])
