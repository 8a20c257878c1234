"""
Calendar feed aggregation.

Merges sessions, expanded class occurrences and bookings into a single
time-ordered list of CalendarEvent for a date range. Nothing is stored; the
feed is recomputed on every call.
"""

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, List, Optional

from ..exceptions import InvalidDateRangeError
from ..stores import BookingStore, CatalogStore
from ..timeutils import iter_days, to_utc_datetime
from ..types import FALLBACK_EVENT_DURATION_MINUTES, CalendarEvent, EventFilters
from .occurrences import class_occurrences

logger = logging.getLogger(__name__)


def calendar_events(
    catalog: CatalogStore,
    bookings: BookingStore,
    range_start: date,
    range_end: date,
    filters: Optional[EventFilters] = None,
    show_only_booked: bool = False
) -> List[CalendarEvent]:
    """
    Build the calendar feed for a date range.

    Args:
        catalog: CatalogStore with sessions, classes and appointment types
        bookings: BookingStore with bookings
        range_start: First day (inclusive)
        range_end: Last day (inclusive)
        filters: Which event kinds to include (all by default)
        show_only_booked: Drop sessions and class occurrences, keep bookings

    Returns:
        Events ordered by day, then by start time

    Raises:
        InvalidDateRangeError: If range_start is after range_end
    """
    if range_start > range_end:
        raise InvalidDateRangeError(range_start, range_end)

    filters = filters or EventFilters()
    events_by_day: Dict[date, List[CalendarEvent]] = defaultdict(list)

    if not show_only_booked:
        if filters.include_sessions:
            _collect_session_events(catalog, range_start, range_end, events_by_day)
        if filters.include_classes:
            _collect_class_events(catalog, range_start, range_end, events_by_day)

    if filters.include_appointment_bookings:
        _collect_booking_events(catalog, bookings, range_start, range_end, events_by_day)

    feed = []
    for day in iter_days(range_start, range_end):
        feed.extend(sorted(events_by_day.get(day, []), key=lambda event: event.start))
    return feed


def _collect_session_events(catalog, range_start, range_end, events_by_day) -> None:
    for session in catalog.list_sessions():
        if not range_start <= session.date <= range_end:
            continue
        start = to_utc_datetime(session.date, session.time)
        events_by_day[session.date].append(CalendarEvent(
            id=f"s-{session.pk}",
            kind='session',
            title=session.title,
            start=start,
            end=start + timedelta(minutes=session.duration),
            service_id=session.pk,
            source=session,
        ))


def _collect_class_events(catalog, range_start, range_end, events_by_day) -> None:
    for group_class in catalog.list_classes():
        for day in class_occurrences(group_class, range_start, range_end):
            start = to_utc_datetime(day, group_class.start_time)
            events_by_day[day].append(CalendarEvent(
                id=f"c-{group_class.pk}-{day.isoformat()}",
                kind='class',
                title=group_class.title,
                start=start,
                end=start + timedelta(minutes=group_class.duration),
                service_id=group_class.pk,
                source=group_class,
            ))


def _collect_booking_events(catalog, bookings, range_start, range_end, events_by_day) -> None:
    for booking in bookings.in_date_range(range_start, range_end):
        start = booking.event_datetime
        events_by_day[booking.event_date].append(CalendarEvent(
            id=f"b-{booking.pk}",
            kind='booking',
            title=booking.service_title,
            start=start,
            end=start + timedelta(minutes=_booking_duration(catalog, booking)),
            service_id=booking.service_id,
            customer_id=booking.customer_id,
            booking_status=booking.status,
            source=booking,
        ))


def _booking_duration(catalog, booking) -> int:
    """Duration of the booked service, or the fallback when it is gone."""
    service = catalog.get_service(booking.service_type, booking.service_id)
    if service is None:
        logger.debug(
            f"Booking {booking.pk} references missing {booking.service_type} "
            f"{booking.service_id}; using {FALLBACK_EVENT_DURATION_MINUTES} minutes"
        )
        return FALLBACK_EVENT_DURATION_MINUTES
    return service.duration
