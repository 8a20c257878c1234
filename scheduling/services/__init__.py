"""
Service layer for the scheduling engine.
Services are framework-agnostic and receive their stores as arguments.
"""

from .availability import appointment_slots, available_slots, bookable_dates
from .bookings import (
    book_appointment_slot,
    book_service_date,
    bookings_for_customer,
    cancel_booking,
    create_booking,
    is_reschedulable,
    reschedule_booking,
    reschedule_to_offered,
)
from .calendar import calendar_events
from .occurrences import class_occurrences, is_class_occurrence

__all__ = [
    'appointment_slots',
    'available_slots',
    'bookable_dates',
    'book_appointment_slot',
    'book_service_date',
    'bookings_for_customer',
    'calendar_events',
    'cancel_booking',
    'class_occurrences',
    'create_booking',
    'is_class_occurrence',
    'is_reschedulable',
    'reschedule_booking',
    'reschedule_to_offered',
]
