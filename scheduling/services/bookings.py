"""
Booking lifecycle: create, cancel, reschedule and the reschedule policy gate.

Bookings start ``confirmed``. ``cancelled`` is terminal. ``reschedule_booking``
rewrites the date/time unconditionally; ``book_service_date``,
``book_appointment_slot`` and ``reschedule_to_offered`` first check that the
service actually offers the target. Callers consult ``is_reschedulable``
before offering a reschedule.
"""

import logging
from datetime import date, datetime, time
from typing import List, Optional

from django.utils import timezone

from ..exceptions import (
    DateNotOfferedError,
    ServiceNotFoundError,
    ServiceUnavailableError,
    SlotUnavailableError,
)
from ..models import Booking, ServiceKind
from ..stores import BookingStore, CatalogStore
from ..timeutils import format_slot_label, slot_label_to_time
from ..types import ServiceRef
from .availability import available_slots
from .occurrences import is_class_occurrence

logger = logging.getLogger(__name__)


def create_booking(
    catalog: CatalogStore,
    bookings: BookingStore,
    customer_id: int,
    service_ref: ServiceRef,
    event_date: date,
    event_time: Optional[time] = None
) -> Booking:
    """
    Create a confirmed booking.

    Slot availability is not re-checked here; use book_appointment_slot for
    a checked appointment booking.

    Args:
        catalog: CatalogStore to resolve the service
        bookings: BookingStore to write to
        customer_id: Customer id (owned by the CRM)
        service_ref: Which catalog item is booked
        event_date: Date of the booked occurrence
        event_time: Start time; sessions and classes default to their own

    Returns:
        Created Booking instance

    Raises:
        ServiceNotFoundError: If the reference does not resolve
        ServiceUnavailableError: If the item is paused
    """
    service = _resolve_bookable(catalog, service_ref)
    if event_time is None:
        event_time = _default_event_time(service)

    with bookings.slot_lock(service_ref, event_date, event_time):
        return _insert_booking(bookings, customer_id, service, event_date, event_time)


def book_service_date(
    catalog: CatalogStore,
    bookings: BookingStore,
    customer_id: int,
    service_ref: ServiceRef,
    event_date: date,
    event_time: Optional[time] = None
) -> Booking:
    """
    Create a session or class booking on a date the service is actually held.

    Sessions only accept their own date; classes only accept a date from
    their weekly recurrence.

    Args:
        catalog: CatalogStore to resolve the service
        bookings: BookingStore to write to
        customer_id: Customer id
        service_ref: Session or class being booked
        event_date: Requested date
        event_time: Start time; defaults to the service's own

    Returns:
        Created Booking instance

    Raises:
        ServiceNotFoundError: If the reference does not resolve
        ServiceUnavailableError: If the item is paused
        DateNotOfferedError: If the service is not held on event_date
    """
    service = _resolve_bookable(catalog, service_ref)
    _check_date_offered(service, event_date)
    if event_time is None:
        event_time = _default_event_time(service)

    with bookings.slot_lock(service_ref, event_date, event_time):
        return _insert_booking(bookings, customer_id, service, event_date, event_time)


def book_appointment_slot(
    catalog: CatalogStore,
    bookings: BookingStore,
    customer_id: int,
    appointment_type_id: int,
    target_date: date,
    slot_label: str
) -> Booking:
    """
    Claim one appointment slot, re-checking availability under the slot lock.

    Args:
        catalog: CatalogStore to resolve the appointment type
        bookings: BookingStore to read and write
        customer_id: Customer id
        appointment_type_id: AppointmentType id
        target_date: Date of the appointment
        slot_label: Selected slot, e.g. "9:30 AM"

    Returns:
        Created Booking instance

    Raises:
        ServiceNotFoundError: If the appointment type does not exist
        ServiceUnavailableError: If the appointment type is paused
        SlotUnavailableError: If the slot is not (or no longer) open
        ValueError: If slot_label is malformed
    """
    ref = ServiceRef(kind=str(ServiceKind.APPOINTMENT), id=appointment_type_id)
    appointment_type = _resolve_bookable(catalog, ref)

    event_time = slot_label_to_time(slot_label)

    with bookings.slot_lock(ref, target_date, event_time):
        _check_slot_open(bookings, appointment_type, target_date, event_time)
        return _insert_booking(bookings, customer_id, appointment_type, target_date, event_time)


def cancel_booking(bookings: BookingStore, booking_id: int) -> Optional[Booking]:
    """
    Cancel a booking. Cancelling twice is a no-op.

    Returns:
        The booking, or None if no booking has this id
    """
    booking = bookings.get(booking_id)
    if booking is None:
        logger.warning(f"Cancel requested for unknown booking {booking_id}")
        return None

    if booking.status == 'cancelled':
        return booking

    booking.status = 'cancelled'
    bookings.update(booking)
    logger.info(f"Cancelled booking {booking.id} ({booking.service_title} on {booking.event_date})")
    return booking


def reschedule_booking(
    bookings: BookingStore,
    booking_id: int,
    new_date: date,
    new_time: Optional[time]
) -> Optional[Booking]:
    """
    Move a booking to a new date/time and mark it confirmed.

    The reschedule window is not checked here; see is_reschedulable.

    Returns:
        The booking, or None if no booking has this id
    """
    booking = bookings.get(booking_id)
    if booking is None:
        logger.warning(f"Reschedule requested for unknown booking {booking_id}")
        return None

    old_date, old_time = booking.event_date, booking.event_time
    with bookings.slot_lock(booking.service_ref, new_date, new_time):
        _apply_reschedule(bookings, booking, new_date, new_time)

    logger.info(
        f"Rescheduled booking {booking.id} from {old_date} {old_time} "
        f"to {new_date} {new_time}"
    )
    return booking


def reschedule_to_offered(
    catalog: CatalogStore,
    bookings: BookingStore,
    booking_id: int,
    new_date: date,
    new_time: Optional[time] = None
) -> Optional[Booking]:
    """
    Move a booking to a date/time its service still offers.

    The target is checked and written under the slot lock, so no booking or
    reschedule can claim the same appointment slot in between. A missing
    time falls back to the service's own start time, then to the booking's
    current time. The reschedule window is not checked here; see
    is_reschedulable.

    Returns:
        The booking, or None if no booking has this id

    Raises:
        DateNotOfferedError: If a session or class is not held on new_date
        SlotUnavailableError: If the appointment slot is not open
    """
    booking = bookings.get(booking_id)
    if booking is None:
        logger.warning(f"Reschedule requested for unknown booking {booking_id}")
        return None

    service = catalog.resolve(booking.service_ref)
    if new_time is None and service is not None:
        new_time = _default_event_time(service)
    if new_time is None:
        new_time = booking.event_time

    old_date, old_time = booking.event_date, booking.event_time
    with bookings.slot_lock(booking.service_ref, new_date, new_time):
        if service is not None:
            _check_date_offered(service, new_date)
            if service.kind == ServiceKind.APPOINTMENT:
                _check_slot_open(bookings, service, new_date, new_time, exclude_booking_id=booking.id)
        _apply_reschedule(bookings, booking, new_date, new_time)

    logger.info(
        f"Rescheduled booking {booking.id} from {old_date} {old_time} "
        f"to {new_date} {new_time}"
    )
    return booking


def is_reschedulable(
    booking: Booking,
    service,
    now: Optional[datetime] = None
) -> bool:
    """
    Decide whether a booking may still be rescheduled.

    Args:
        booking: Booking instance
        service: The booked catalog item, or None if it no longer exists
        now: Reference instant (defaults to the current time)

    Returns:
        True only when the booking is live, the service allows rescheduling,
        and strictly more than ``reschedule_hours`` remain before the event.
    """
    if booking.status == 'cancelled' or service is None:
        return False
    if not getattr(service, 'allow_rescheduling', False):
        return False

    now = now or timezone.now()
    event_start = booking.event_datetime
    if event_start < now:
        return False

    hours_until_event = (event_start - now).total_seconds() / 3600
    return hours_until_event > service.reschedule_hours


def bookings_for_customer(bookings: BookingStore, customer_id: int) -> List[Booking]:
    """A customer's bookings, earliest event first."""
    return sorted(
        bookings.for_customer(customer_id),
        key=lambda booking: (booking.event_date, booking.event_time or time.min, booking.id)
    )


def _resolve_bookable(catalog: CatalogStore, ref: ServiceRef):
    """Resolve a reference to an active catalog item."""
    service = catalog.resolve(ref)
    if service is None:
        raise ServiceNotFoundError(ref.kind, ref.id)
    if not service.is_active:
        raise ServiceUnavailableError(ref.kind, ref.id)
    return service


def _default_event_time(service) -> Optional[time]:
    """Start time implied by the service itself, if it has a fixed one."""
    if service.kind == ServiceKind.SESSION:
        return service.time
    if service.kind == ServiceKind.CLASS:
        return service.start_time
    return None


def _check_date_offered(service, event_date: date):
    """Sessions are held on their own date, classes on their occurrences."""
    if service.kind == ServiceKind.SESSION and event_date != service.date:
        raise DateNotOfferedError(
            service.kind, service.pk, event_date,
            f"The session is held on {service.date.isoformat()}, not {event_date.isoformat()}"
        )
    if service.kind == ServiceKind.CLASS and not is_class_occurrence(service, event_date):
        raise DateNotOfferedError(
            service.kind, service.pk, event_date,
            f"The class does not meet on {event_date.isoformat()}"
        )


def _check_slot_open(bookings, appointment_type, event_date, event_time, exclude_booking_id=None):
    """Raise unless the slot is open. Callers hold the slot lock."""
    label = format_slot_label(event_time) if event_time is not None else None
    existing = [
        booking for booking in bookings.for_service(
            appointment_type.pk, ServiceKind.APPOINTMENT, event_date
        )
        if booking.id != exclude_booking_id
    ]
    if label is None or label not in available_slots(appointment_type, existing, event_date):
        logger.warning(
            f"Rejected {label} on {event_date} for appointment type "
            f"{appointment_type.pk}: slot not open"
        )
        raise SlotUnavailableError(appointment_type.pk, event_date, label)


def _apply_reschedule(bookings, booking, new_date, new_time):
    booking.event_date = new_date
    booking.event_time = new_time
    booking.status = 'confirmed'
    bookings.update(booking)


def _insert_booking(bookings, customer_id, service, event_date, event_time) -> Booking:
    booking = Booking(
        customer_id=customer_id,
        service_id=service.pk,
        service_type=str(service.kind),
        service_title=service.title,
        event_date=event_date,
        event_time=event_time,
        status='confirmed',
    )
    bookings.insert(booking)
    logger.info(
        f"Created booking {booking.id} for customer {customer_id}: "
        f"{service.kind} {service.pk} on {event_date} {event_time or ''}".rstrip()
    )
    return booking
