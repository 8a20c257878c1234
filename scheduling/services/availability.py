"""
Slot availability for appointment types.

A slot is identified by its 12-hour start label ("9:00 AM"). The same label
is what bookings are matched against, so conflicts are found by label
equality rather than by comparing times.
"""

import logging
from datetime import date, timedelta
from typing import Iterable, List, Optional

from django.utils import timezone

from ..models import AppointmentType, Booking, ServiceKind
from ..stores import BookingStore, CatalogStore
from ..timeutils import format_slot_label, minutes_since_midnight, weekday_name

logger = logging.getLogger(__name__)


def available_slots(
    appointment_type: AppointmentType,
    existing_bookings: Iterable[Booking],
    target_date: date
) -> List[str]:
    """
    List the open slot labels of an appointment type on one date.

    Args:
        appointment_type: AppointmentType instance
        existing_bookings: Bookings to check for conflicts (any service, any date)
        target_date: The UTC calendar date to slice

    Returns:
        Slot labels in interval order, chronological within each interval.
        Overlapping intervals may yield the same label more than once.
    """
    entry = appointment_type.availability_for(weekday_name(target_date))
    if not entry or not entry.get('enabled'):
        return []

    duration = appointment_type.duration
    if not duration or duration <= 0:
        return []

    taken = _taken_labels(appointment_type, existing_bookings, target_date)

    slots = []
    for interval in entry.get('slots', []):
        for start in _slot_starts(interval, duration):
            label = format_slot_label(start)
            if label not in taken:
                slots.append(label)
    return slots


def appointment_slots(
    catalog: CatalogStore,
    bookings: BookingStore,
    appointment_type_id: int,
    target_date: date,
    exclude_booking_id: Optional[int] = None
) -> List[str]:
    """
    Store-backed slot lookup.

    Args:
        catalog: CatalogStore to resolve the appointment type
        bookings: BookingStore to read existing bookings
        appointment_type_id: AppointmentType id
        target_date: Date to list slots for
        exclude_booking_id: Booking to ignore, e.g. the one being rescheduled

    Returns:
        Open slot labels; empty for unknown or paused appointment types
    """
    appointment_type = catalog.get_service(ServiceKind.APPOINTMENT, appointment_type_id)
    if appointment_type is None or not appointment_type.is_active:
        logger.debug(f"No bookable appointment type {appointment_type_id}; returning no slots")
        return []

    existing = [
        booking for booking in bookings.for_service(
            appointment_type_id, ServiceKind.APPOINTMENT, target_date
        )
        if booking.id != exclude_booking_id
    ]
    return available_slots(appointment_type, existing, target_date)


def bookable_dates(
    appointment_type: AppointmentType,
    today: Optional[date] = None
) -> List[date]:
    """
    Dates within the booking window whose weekday offers any interval.

    Args:
        appointment_type: AppointmentType instance
        today: First date of the window (defaults to the current UTC date)
    """
    today = today or timezone.now().date()
    dates = []
    for offset in range(appointment_type.date_range_days + 1):
        day = today + timedelta(days=offset)
        entry = appointment_type.availability_for(weekday_name(day))
        if entry and entry.get('enabled') and entry.get('slots'):
            dates.append(day)
    return dates


def _taken_labels(appointment_type, existing_bookings, target_date) -> set:
    """Labels held by live bookings of this appointment type on the date."""
    taken = set()
    for booking in existing_bookings:
        if (
            booking.status != 'cancelled'
            and booking.service_id == appointment_type.pk
            and booking.service_type == ServiceKind.APPOINTMENT
            and booking.event_date == target_date
            and booking.event_time is not None
        ):
            taken.add(format_slot_label(booking.event_time))
    return taken


def _slot_starts(interval, duration):
    """Yield slot start minutes that fit entirely inside the interval."""
    start = minutes_since_midnight(interval['from'])
    end = minutes_since_midnight(interval['to'])
    while start + duration <= end:
        yield start
        start += duration
