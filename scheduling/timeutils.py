"""
Date and time helpers shared by the scheduling services.

All values are interpreted as UTC wall-clock time. Calendar dates travel as
``YYYY-MM-DD``, times of day as ``HH:mm`` and slot labels as ``H:MM AM/PM``.
"""

import calendar
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from typing import Iterator, Optional, Union

from .types import WEEKDAY_NAMES


def weekday_name(day: date) -> str:
    """Short English weekday name ('Mon'..'Sun') of a calendar date."""
    return WEEKDAY_NAMES[day.weekday()]


def parse_date(value: Union[str, date]) -> date:
    """Parse a ``YYYY-MM-DD`` string; dates pass through unchanged."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def parse_time(value: Union[str, time]) -> time:
    """Parse an ``HH:mm`` string; times pass through unchanged."""
    if isinstance(value, time):
        return value
    hours, minutes = value.split(':')[:2]
    return time(int(hours), int(minutes))


def minutes_since_midnight(value: Union[str, time]) -> int:
    value = parse_time(value)
    return value.hour * 60 + value.minute


def format_slot_label(value: Union[str, time, int]) -> str:
    """
    Render a time of day as a 12-hour slot label, e.g. ``"9:00 AM"``.

    Args:
        value: time, ``HH:mm`` string or minutes since midnight
    """
    if isinstance(value, int):
        hour, minute = divmod(value, 60)
    else:
        value = parse_time(value)
        hour, minute = value.hour, value.minute

    period = 'AM' if hour < 12 else 'PM'
    hour12 = hour % 12 or 12
    return f"{hour12}:{minute:02d} {period}"


def slot_label_to_time(label: str) -> time:
    """
    Convert a slot label such as ``"1:30 PM"`` back to a time of day.

    Raises:
        ValueError: If the label is not in ``H:MM AM/PM`` form
    """
    try:
        clock, period = label.strip().split(' ')
        hours, minutes = (int(part) for part in clock.split(':'))
    except ValueError:
        raise ValueError(f"Invalid slot label: {label!r}")

    period = period.upper()
    if period not in ('AM', 'PM') or not 1 <= hours <= 12 or not 0 <= minutes <= 59:
        raise ValueError(f"Invalid slot label: {label!r}")

    if period == 'PM' and hours < 12:
        hours += 12
    if period == 'AM' and hours == 12:
        hours = 0
    return time(hours, minutes)


def to_utc_datetime(day: date, time_of_day: Optional[time] = None) -> datetime:
    """Combine a date and an optional time (midnight) into an aware UTC datetime."""
    return datetime.combine(day, time_of_day or time.min, tzinfo=dt_timezone.utc)


def add_months(day: date, months: int) -> date:
    """Add calendar months, clamping to the last day of the target month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every calendar day from start to end, both inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
