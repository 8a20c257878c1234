"""
Data types and constants for the scheduling engine.

This module contains:
- Constants shared by the occurrence, availability and calendar services
- DTOs (Data Transfer Objects) passed between the service layer and its callers
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


# Fixed English names; never derived from the locale.
WEEKDAY_NAMES = ('Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun')

CLASS_HORIZON_MONTHS = 3
FALLBACK_EVENT_DURATION_MINUTES = 60

DEFAULT_RESCHEDULE_HOURS = 24
DEFAULT_DATE_RANGE_DAYS = 60


@dataclass(frozen=True)
class ServiceRef:
    """Points at exactly one catalog item: its kind and its id."""
    kind: str
    id: int


@dataclass
class EventFilters:
    """Which event kinds the calendar feed should include."""
    include_sessions: bool = True
    include_classes: bool = True
    include_appointment_bookings: bool = True


@dataclass
class CalendarEvent:
    """One entry of the aggregated calendar feed."""
    id: str
    kind: str
    title: str
    start: datetime
    end: datetime
    service_id: Optional[int] = None
    customer_id: Optional[int] = None
    booking_status: Optional[str] = None
    source: Any = field(default=None, repr=False, compare=False)

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)
