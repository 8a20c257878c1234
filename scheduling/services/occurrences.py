"""
Occurrence generation for weekly recurring classes.

Occurrences are never stored; they are expanded from the class schedule each
time they are needed.
"""

from datetime import date
from typing import List, Optional

from ..models import GroupClass
from ..timeutils import add_months, iter_days, weekday_name
from ..types import CLASS_HORIZON_MONTHS


def class_occurrences(
    group_class: GroupClass,
    range_start: Optional[date] = None,
    range_end: Optional[date] = None
) -> List[date]:
    """
    Expand a class schedule into the calendar dates it meets on.

    Args:
        group_class: GroupClass instance
        range_start: Optional first date of interest (inclusive)
        range_end: Optional last date of interest (inclusive)

    Returns:
        Ascending list of dates. Empty when the schedule has no days or no
        start date.
    """
    if not group_class.days or not group_class.start_date:
        return []

    days = set(group_class.days)
    first = group_class.start_date
    last = _final_date(group_class)

    if range_start and range_start > first:
        first = range_start
    if range_end and range_end < last:
        last = range_end

    return [day for day in iter_days(first, last) if weekday_name(day) in days]


def is_class_occurrence(group_class: GroupClass, day: date) -> bool:
    """Check whether the class meets on a given date."""
    return bool(class_occurrences(group_class, day, day))


def _final_date(group_class: GroupClass) -> date:
    """Last date the recurrence may produce, bounded when open-ended."""
    if group_class.end_date:
        return group_class.end_date
    return add_months(group_class.start_date, CLASS_HORIZON_MONTHS)
