import os
from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

load_dotenv()

# Timezone used for everything shown to people (12h clock, dates, shift status)
DISPLAY_TIMEZONE = os.getenv("DISPLAY_TIMEZONE", "UTC")

WEEKDAY_NAMES = [
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
]


def display_tz() -> ZoneInfo:
    return ZoneInfo(DISPLAY_TIMEZONE)


def ensure_utc(dt: datetime) -> datetime:
    """Naive datetimes coming back from SQLite are stored UTC; make them aware."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_utc_datetime(dt: Optional[datetime]) -> Optional[str]:
    """
    Format a datetime object to an ISO 8601 string with 'Z' suffix.

    If the datetime is naive, it is assumed to be in UTC and is made aware.
    If it is timezone-aware, it is converted to UTC.

    Args:
        dt: A datetime object or None

    Returns:
        An ISO 8601 formatted string with 'Z' suffix, or None if the input is None.
    """
    if dt is None:
        return None

    iso_string = ensure_utc(dt).isoformat()

    if iso_string.endswith('+00:00'):
        return iso_string.replace('+00:00', 'Z')

    return iso_string


def to_display(dt: datetime) -> datetime:
    return ensure_utc(dt).astimezone(display_tz())


def format_12h(value) -> str:
    """'14:05' -> '02:05 PM'. Accepts a time or a datetime (shown in display tz)."""
    if isinstance(value, datetime):
        value = to_display(value).time()
    hours = value.hour
    suffix = "PM" if hours >= 12 else "AM"
    display_hours = ((hours + 11) % 12) + 1
    return f"{display_hours:02d}:{value.minute:02d} {suffix}"


def format_dmy(day: date) -> str:
    """Day/month/year without padding, as printed on the schedule sheets."""
    return f"{day.day}/{day.month}/{day.year}"


def weekday_name(day: date) -> str:
    return WEEKDAY_NAMES[day.weekday()]


def combine_local(day: date, moment: time) -> datetime:
    return datetime.combine(day, moment, tzinfo=display_tz())
