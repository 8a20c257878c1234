"""
Tests for the scheduling engine.

Tests cover:
- Date/time helpers (slot labels, month arithmetic)
- Occurrence generation for weekly classes
- Slot availability for appointment types
- Booking lifecycle and reschedule policy
- Calendar feed aggregation
- ORM-backed stores and model validation
- API endpoints
- Management commands
"""

from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from . import services
from .exceptions import (
    DateNotOfferedError,
    InvalidDateRangeError,
    ServiceNotFoundError,
    ServiceUnavailableError,
    SlotUnavailableError,
)
from .models import AppointmentType, Booking, GroupClass, ServiceKind, Session
from .stores import (
    DjangoBookingStore,
    DjangoCatalogStore,
    InMemoryBookingStore,
    InMemoryCatalogStore,
)
from .timeutils import add_months, format_slot_label, slot_label_to_time, weekday_name
from .types import EventFilters, ServiceRef


MONDAY = date(2025, 1, 6)


def make_appointment_type(**overrides):
    fields = dict(
        id=1,
        title="30-Minute Check-in",
        duration=30,
        date_range_days=60,
        allow_rescheduling=True,
        reschedule_hours=24,
        weekly_availability=[
            {'day': 'Sun', 'enabled': False, 'slots': []},
            {'day': 'Mon', 'enabled': True, 'slots': [{'from': '09:00', 'to': '10:00'}]},
        ],
    )
    fields.update(overrides)
    return AppointmentType(**fields)


def make_class(**overrides):
    fields = dict(
        id=1,
        title="Weekly Group Mindset Call",
        duration=60,
        days=['Wed'],
        start_time=time(19, 0),
        start_date=date(2025, 1, 1),
        end_date=date(2025, 1, 31),
    )
    fields.update(overrides)
    return GroupClass(**fields)


def make_session(**overrides):
    fields = dict(
        id=1,
        title="Deep Dive Coaching Session",
        date=date(2025, 1, 8),
        time=time(10, 0),
        duration=90,
        allow_rescheduling=True,
        reschedule_hours=48,
    )
    fields.update(overrides)
    return Session(**fields)


def make_booking(**overrides):
    fields = dict(
        customer_id=1,
        service_id=1,
        service_type='appointment',
        service_title="30-Minute Check-in",
        event_date=MONDAY,
        event_time=time(9, 0),
        status='confirmed',
    )
    fields.update(overrides)
    return Booking(**fields)


class RacingBookingStore(InMemoryBookingStore):
    """In-memory store where a competing booking lands just before the slot lock is granted."""

    def __init__(self, competitor, **kwargs):
        super().__init__(**kwargs)
        self.competitor = competitor

    @contextmanager
    def slot_lock(self, ref, event_date, event_time=None):
        if self.competitor is not None:
            competitor, self.competitor = self.competitor, None
            self.insert(competitor)
        with super().slot_lock(ref, event_date, event_time):
            yield


class TimeUtilsTests(SimpleTestCase):
    """Test date/time helpers."""

    def test_format_slot_label(self):
        """Labels use a 12-hour clock without a leading zero."""
        self.assertEqual(format_slot_label(time(9, 0)), "9:00 AM")
        self.assertEqual(format_slot_label(time(0, 30)), "12:30 AM")
        self.assertEqual(format_slot_label(time(12, 0)), "12:00 PM")
        self.assertEqual(format_slot_label("13:05"), "1:05 PM")
        self.assertEqual(format_slot_label(9 * 60 + 30), "9:30 AM")

    def test_slot_label_to_time(self):
        """Labels convert back to 24-hour times."""
        self.assertEqual(slot_label_to_time("12:00 AM"), time(0, 0))
        self.assertEqual(slot_label_to_time("12:15 PM"), time(12, 15))
        self.assertEqual(slot_label_to_time("4:45 PM"), time(16, 45))

    def test_slot_label_to_time_rejects_garbage(self):
        """Malformed labels raise ValueError."""
        for label in ["", "9:00", "13:00 PM", "9:00 XM", "nine AM"]:
            with self.assertRaises(ValueError):
                slot_label_to_time(label)

    def test_add_months_clamps_to_month_end(self):
        """Adding months never overflows into the following month."""
        self.assertEqual(add_months(date(2025, 1, 31), 1), date(2025, 2, 28))
        self.assertEqual(add_months(date(2025, 11, 15), 3), date(2026, 2, 15))

    def test_weekday_name(self):
        """Weekday names are fixed short English names."""
        self.assertEqual(weekday_name(date(2025, 1, 1)), 'Wed')
        self.assertEqual(weekday_name(MONDAY), 'Mon')


class OccurrenceGeneratorTests(SimpleTestCase):
    """Test class occurrence expansion."""

    def test_wednesdays_in_january(self):
        """A Wednesday class in January 2025 meets five times."""
        occurrences = services.class_occurrences(make_class())

        self.assertEqual(occurrences, [
            date(2025, 1, 1),
            date(2025, 1, 8),
            date(2025, 1, 15),
            date(2025, 1, 22),
            date(2025, 1, 29),
        ])

    def test_no_days_means_no_occurrences(self):
        """An empty day set is not an error."""
        self.assertEqual(services.class_occurrences(make_class(days=[])), [])

    def test_missing_start_date_means_no_occurrences(self):
        """A schedule without a start date yields nothing."""
        self.assertEqual(services.class_occurrences(make_class(start_date=None)), [])

    def test_open_ended_class_is_bounded_to_three_months(self):
        """Without an end date the recurrence stops three months after the start."""
        occurrences = services.class_occurrences(make_class(end_date=None))

        self.assertEqual(len(occurrences), 13)
        self.assertEqual(occurrences[0], date(2025, 1, 1))
        self.assertEqual(occurrences[-1], date(2025, 3, 26))

    def test_multiple_days_are_ordered(self):
        """Occurrences come out in calendar order regardless of day order."""
        group_class = make_class(
            days=['Fri', 'Mon'],
            start_date=date(2025, 1, 6),
            end_date=date(2025, 1, 12),
        )

        self.assertEqual(
            services.class_occurrences(group_class),
            [date(2025, 1, 6), date(2025, 1, 10)]
        )

    def test_range_clips_output(self):
        """Range bounds restrict the result without moving the schedule."""
        occurrences = services.class_occurrences(
            make_class(), date(2025, 1, 10), date(2025, 1, 20)
        )
        self.assertEqual(occurrences, [date(2025, 1, 15)])

    def test_is_class_occurrence(self):
        group_class = make_class()
        self.assertTrue(services.is_class_occurrence(group_class, date(2025, 1, 22)))
        self.assertFalse(services.is_class_occurrence(group_class, date(2025, 1, 23)))
        self.assertFalse(services.is_class_occurrence(group_class, date(2025, 2, 5)))


class AvailabilityTests(SimpleTestCase):
    """Test slot generation and conflict exclusion."""

    def setUp(self):
        self.appointment_type = make_appointment_type()

    def test_one_hour_window_yields_two_slots(self):
        """A 09:00-10:00 window with 30 minute slots gives two slots."""
        slots = services.available_slots(self.appointment_type, [], MONDAY)
        self.assertEqual(slots, ["9:00 AM", "9:30 AM"])

    def test_confirmed_booking_suppresses_slot(self):
        """A confirmed booking at 9:00 removes that slot."""
        slots = services.available_slots(self.appointment_type, [make_booking()], MONDAY)
        self.assertEqual(slots, ["9:30 AM"])

    def test_cancelled_booking_does_not_block(self):
        """Cancelled bookings never block availability."""
        slots = services.available_slots(
            self.appointment_type, [make_booking(status='cancelled')], MONDAY
        )
        self.assertEqual(slots, ["9:00 AM", "9:30 AM"])

    def test_bookings_for_other_services_or_dates_are_ignored(self):
        """Only bookings of this appointment type on this date conflict."""
        bookings = [
            make_booking(service_id=2),
            make_booking(service_type='session'),
            make_booking(event_date=MONDAY + timedelta(days=7)),
            make_booking(event_time=None),
        ]
        slots = services.available_slots(self.appointment_type, bookings, MONDAY)
        self.assertEqual(slots, ["9:00 AM", "9:30 AM"])

    def test_disabled_or_missing_day_has_no_slots(self):
        """Sundays are disabled and Tuesdays have no entry."""
        self.assertEqual(services.available_slots(self.appointment_type, [], date(2025, 1, 5)), [])
        self.assertEqual(services.available_slots(self.appointment_type, [], date(2025, 1, 7)), [])

    def test_partial_trailing_slot_is_dropped(self):
        """A slot that would run past the window end is not offered."""
        appointment_type = make_appointment_type(weekly_availability=[
            {'day': 'Mon', 'enabled': True, 'slots': [{'from': '09:00', 'to': '10:15'}]},
        ])
        slots = services.available_slots(appointment_type, [], MONDAY)
        self.assertEqual(slots, ["9:00 AM", "9:30 AM"])

    def test_overlapping_intervals_are_not_deduplicated(self):
        """Overlapping windows produce repeated labels in interval order."""
        appointment_type = make_appointment_type(weekly_availability=[
            {'day': 'Mon', 'enabled': True, 'slots': [
                {'from': '09:00', 'to': '10:00'},
                {'from': '09:30', 'to': '10:30'},
            ]},
        ])
        slots = services.available_slots(appointment_type, [], MONDAY)
        self.assertEqual(slots, ["9:00 AM", "9:30 AM", "9:30 AM", "10:00 AM"])

    def test_afternoon_labels(self):
        appointment_type = make_appointment_type(duration=45, weekly_availability=[
            {'day': 'Mon', 'enabled': True, 'slots': [{'from': '11:30', 'to': '13:45'}]},
        ])
        slots = services.available_slots(appointment_type, [], MONDAY)
        self.assertEqual(slots, ["11:30 AM", "12:15 PM", "1:00 PM"])

    def test_appointment_slots_excludes_rescheduled_booking(self):
        """The booking being moved does not block its own slot."""
        catalog = InMemoryCatalogStore(appointment_types=[self.appointment_type])
        bookings = InMemoryBookingStore([make_booking()])

        self.assertEqual(
            services.appointment_slots(catalog, bookings, 1, MONDAY),
            ["9:30 AM"]
        )
        self.assertEqual(
            services.appointment_slots(catalog, bookings, 1, MONDAY, exclude_booking_id=1),
            ["9:00 AM", "9:30 AM"]
        )

    def test_appointment_slots_for_paused_or_missing_type(self):
        catalog = InMemoryCatalogStore(appointment_types=[make_appointment_type(status='paused')])
        bookings = InMemoryBookingStore()

        self.assertEqual(services.appointment_slots(catalog, bookings, 1, MONDAY), [])
        self.assertEqual(services.appointment_slots(catalog, bookings, 99, MONDAY), [])

    def test_bookable_dates_follow_window_and_enabled_days(self):
        """Only enabled weekdays within date_range_days are offered."""
        appointment_type = make_appointment_type(date_range_days=7)
        self.assertEqual(
            services.bookable_dates(appointment_type, today=MONDAY),
            [MONDAY, MONDAY + timedelta(days=7)]
        )


class BookingLifecycleTests(SimpleTestCase):
    """Test booking create/cancel/reschedule against in-memory stores."""

    def setUp(self):
        self.session = make_session()
        self.group_class = make_class()
        self.appointment_type = make_appointment_type()
        self.catalog = InMemoryCatalogStore(
            sessions=[self.session],
            classes=[self.group_class],
            appointment_types=[self.appointment_type],
        )
        self.bookings = InMemoryBookingStore()

    def _book_appointment(self, customer_id=1, slot="9:00 AM"):
        return services.book_appointment_slot(
            self.catalog, self.bookings, customer_id, 1, MONDAY, slot
        )

    def test_create_booking_snapshots_title(self):
        """The title is copied at creation time and never follows edits."""
        booking = services.create_booking(
            self.catalog, self.bookings, 7, ServiceRef(kind='class', id=1), date(2025, 1, 8)
        )
        self.group_class.title = "Renamed Class"

        self.assertEqual(booking.status, 'confirmed')
        self.assertEqual(booking.service_type, 'class')
        self.assertEqual(booking.service_title, "Weekly Group Mindset Call")
        self.assertEqual(booking.event_time, time(19, 0))

    def test_booking_ids_increase(self):
        first = services.create_booking(
            self.catalog, self.bookings, 1, ServiceRef(kind='session', id=1), self.session.date
        )
        second = services.create_booking(
            self.catalog, self.bookings, 2, ServiceRef(kind='session', id=1), self.session.date
        )

        self.assertEqual(first.id, 1)
        self.assertEqual(second.id, 2)
        self.assertEqual(second.event_time, time(10, 0))

    def test_create_booking_for_missing_service(self):
        """An unresolvable reference is an error."""
        with self.assertRaises(ServiceNotFoundError):
            services.create_booking(
                self.catalog, self.bookings, 1, ServiceRef(kind='session', id=42), MONDAY
            )

    def test_create_booking_for_paused_service(self):
        self.session.status = 'paused'
        with self.assertRaises(ServiceUnavailableError):
            services.create_booking(
                self.catalog, self.bookings, 1, ServiceRef(kind='session', id=1), MONDAY
            )

    def test_book_appointment_slot(self):
        """Claiming an open slot stores its 24-hour time."""
        booking = self._book_appointment(slot="9:30 AM")

        self.assertEqual(booking.service_type, 'appointment')
        self.assertEqual(booking.event_time, time(9, 30))
        self.assertEqual(
            services.appointment_slots(self.catalog, self.bookings, 1, MONDAY),
            ["9:00 AM"]
        )

    def test_book_taken_slot_is_rejected(self):
        """The second claim on the same slot fails."""
        self._book_appointment(customer_id=1)

        with self.assertRaises(SlotUnavailableError):
            self._book_appointment(customer_id=2)
        self.assertEqual(len(self.bookings.all()), 1)

    def test_slot_reopens_after_cancel(self):
        booking = self._book_appointment()
        services.cancel_booking(self.bookings, booking.id)

        rebooked = self._book_appointment(customer_id=2)
        self.assertEqual(rebooked.status, 'confirmed')

    def test_book_slot_outside_template_is_rejected(self):
        with self.assertRaises(SlotUnavailableError):
            self._book_appointment(slot="3:00 PM")

    def test_cancel_is_idempotent(self):
        """Cancelling twice leaves the booking cancelled and does not raise."""
        booking = self._book_appointment()

        first = services.cancel_booking(self.bookings, booking.id)
        self.assertEqual(first.status, 'cancelled')
        second = services.cancel_booking(self.bookings, booking.id)
        self.assertEqual(second.status, 'cancelled')

    def test_cancel_unknown_booking_is_noop(self):
        self.assertIsNone(services.cancel_booking(self.bookings, 999))

    def test_reschedule_rewrites_date_and_time(self):
        booking = self._book_appointment()
        moved = services.reschedule_booking(
            self.bookings, booking.id, MONDAY + timedelta(days=7), time(9, 30)
        )

        self.assertIs(moved, booking)
        self.assertEqual(moved.event_date, MONDAY + timedelta(days=7))
        self.assertEqual(moved.event_time, time(9, 30))
        self.assertEqual(moved.status, 'confirmed')

    def test_reschedule_unknown_booking_is_noop(self):
        self.assertIsNone(services.reschedule_booking(self.bookings, 999, MONDAY, time(9, 0)))

    def test_bookings_for_customer_are_ordered(self):
        later = services.create_booking(
            self.catalog, self.bookings, 5, ServiceRef(kind='class', id=1), date(2025, 1, 22)
        )
        earlier = services.create_booking(
            self.catalog, self.bookings, 5, ServiceRef(kind='class', id=1), date(2025, 1, 8)
        )
        services.create_booking(
            self.catalog, self.bookings, 6, ServiceRef(kind='class', id=1), date(2025, 1, 15)
        )

        self.assertEqual(
            services.bookings_for_customer(self.bookings, 5),
            [earlier, later]
        )

    def test_book_service_date_on_offered_dates(self):
        """Classes book on their occurrences and sessions on their own date."""
        class_booking = services.book_service_date(
            self.catalog, self.bookings, 1, ServiceRef(kind='class', id=1), date(2025, 1, 15)
        )
        session_booking = services.book_service_date(
            self.catalog, self.bookings, 1, ServiceRef(kind='session', id=1), self.session.date
        )

        self.assertEqual(class_booking.event_time, time(19, 0))
        self.assertEqual(session_booking.event_time, time(10, 0))

    def test_book_class_on_day_it_does_not_meet(self):
        """2025-01-14 is a Tuesday; the class meets on Wednesdays."""
        with self.assertRaises(DateNotOfferedError):
            services.book_service_date(
                self.catalog, self.bookings, 1, ServiceRef(kind='class', id=1), date(2025, 1, 14)
            )
        self.assertEqual(self.bookings.all(), [])

    def test_book_session_on_other_date(self):
        with self.assertRaises(DateNotOfferedError):
            services.book_service_date(
                self.catalog, self.bookings, 1, ServiceRef(kind='session', id=1), date(2026, 6, 1)
            )
        self.assertEqual(self.bookings.all(), [])

    def test_reschedule_to_open_slot(self):
        booking = self._book_appointment()
        moved = services.reschedule_to_offered(
            self.catalog, self.bookings, booking.id, MONDAY + timedelta(days=7), time(9, 30)
        )

        self.assertEqual(moved.event_date, MONDAY + timedelta(days=7))
        self.assertEqual(moved.slot_label, "9:30 AM")

    def test_reschedule_into_own_slot_is_allowed(self):
        """The booking being moved does not block its own slot."""
        booking = self._book_appointment()
        moved = services.reschedule_to_offered(
            self.catalog, self.bookings, booking.id, MONDAY, time(9, 0)
        )
        self.assertEqual(moved.event_time, time(9, 0))

    def test_reschedule_into_taken_slot(self):
        first = self._book_appointment(customer_id=1, slot="9:00 AM")
        self._book_appointment(customer_id=2, slot="9:30 AM")

        with self.assertRaises(SlotUnavailableError):
            services.reschedule_to_offered(
                self.catalog, self.bookings, first.id, MONDAY, time(9, 30)
            )
        self.assertEqual(first.event_time, time(9, 0))

    def test_reschedule_rechecks_slot_under_lock(self):
        """A booking that lands while waiting for the lock wins the slot."""
        store = RacingBookingStore(competitor=make_booking(customer_id=9, event_time=time(9, 30)))
        booking = store.insert(make_booking(customer_id=1))

        with self.assertRaises(SlotUnavailableError):
            services.reschedule_to_offered(self.catalog, store, booking.id, MONDAY, time(9, 30))

        self.assertEqual(booking.event_time, time(9, 0))
        self.assertEqual(len(store.for_service(1, 'appointment', MONDAY)), 2)

    def test_reschedule_class_to_day_it_does_not_meet(self):
        booking = services.book_service_date(
            self.catalog, self.bookings, 1, ServiceRef(kind='class', id=1), date(2025, 1, 8)
        )

        with self.assertRaises(DateNotOfferedError):
            services.reschedule_to_offered(self.catalog, self.bookings, booking.id, date(2025, 1, 9))

        moved = services.reschedule_to_offered(
            self.catalog, self.bookings, booking.id, date(2025, 1, 22)
        )
        self.assertEqual(moved.event_date, date(2025, 1, 22))
        self.assertEqual(moved.event_time, time(19, 0))

    def test_reschedule_without_time_keeps_a_time(self):
        """Sessions fall back to their own time; orphaned bookings keep theirs."""
        session_booking = services.book_service_date(
            self.catalog, self.bookings, 1, ServiceRef(kind='session', id=1), self.session.date
        )
        moved = services.reschedule_to_offered(
            self.catalog, self.bookings, session_booking.id, self.session.date
        )
        self.assertEqual(moved.event_time, time(10, 0))

        with self.assertRaises(DateNotOfferedError):
            services.reschedule_to_offered(
                self.catalog, self.bookings, session_booking.id, self.session.date + timedelta(days=3)
            )

        orphan = self.bookings.insert(make_booking(
            service_type='session', service_id=42, event_time=time(15, 0)
        ))
        moved = services.reschedule_to_offered(
            self.catalog, self.bookings, orphan.id, MONDAY + timedelta(days=1)
        )
        self.assertEqual(moved.event_time, time(15, 0))

    def test_reschedule_to_offered_unknown_booking_is_noop(self):
        self.assertIsNone(services.reschedule_to_offered(self.catalog, self.bookings, 999, MONDAY))

    def test_slot_locks_are_released(self):
        """The in-memory store keeps no lock entries once writers are done."""
        self._book_appointment()
        with self.assertRaises(SlotUnavailableError):
            self._book_appointment(customer_id=2)

        self.assertEqual(self.bookings._slot_locks, {})


class ReschedulePolicyTests(SimpleTestCase):
    """Test the is_reschedulable predicate."""

    def setUp(self):
        self.now = datetime(2025, 1, 1, 12, 0, tzinfo=dt_timezone.utc)
        self.service = make_appointment_type(allow_rescheduling=True, reschedule_hours=24)

    def _booking_at(self, moment, **overrides):
        return make_booking(event_date=moment.date(), event_time=moment.time(), **overrides)

    def test_exactly_at_cutoff_is_not_reschedulable(self):
        """Exactly reschedule_hours ahead is already too late."""
        booking = self._booking_at(self.now + timedelta(hours=24))
        self.assertFalse(services.is_reschedulable(booking, self.service, now=self.now))

    def test_just_past_cutoff_is_reschedulable(self):
        booking = self._booking_at(self.now + timedelta(hours=24, minutes=1))
        self.assertTrue(services.is_reschedulable(booking, self.service, now=self.now))

    def test_past_event_is_not_reschedulable(self):
        """Past events are never reschedulable, whatever the policy."""
        service = make_appointment_type(allow_rescheduling=True, reschedule_hours=0)
        booking = self._booking_at(self.now - timedelta(minutes=1))
        self.assertFalse(services.is_reschedulable(booking, service, now=self.now))

    def test_policy_disabled(self):
        service = make_appointment_type(allow_rescheduling=False)
        booking = self._booking_at(self.now + timedelta(days=10))
        self.assertFalse(services.is_reschedulable(booking, service, now=self.now))

    def test_cancelled_booking(self):
        booking = self._booking_at(self.now + timedelta(days=10), status='cancelled')
        self.assertFalse(services.is_reschedulable(booking, self.service, now=self.now))

    def test_missing_service(self):
        booking = self._booking_at(self.now + timedelta(days=10))
        self.assertFalse(services.is_reschedulable(booking, None, now=self.now))

    def test_all_day_booking_counts_from_midnight(self):
        """A booking without a time is measured from the start of its day."""
        booking = make_booking(event_date=date(2025, 1, 2), event_time=None)
        self.assertFalse(services.is_reschedulable(booking, self.service, now=self.now))
        booking.event_date = date(2025, 1, 3)
        self.assertTrue(services.is_reschedulable(booking, self.service, now=self.now))


class CalendarAggregatorTests(SimpleTestCase):
    """Test the aggregated calendar feed."""

    def setUp(self):
        self.catalog = InMemoryCatalogStore(
            sessions=[make_session()],
            classes=[make_class()],
            appointment_types=[make_appointment_type()],
        )
        self.bookings = InMemoryBookingStore([
            make_booking(event_date=date(2025, 1, 8), event_time=time(9, 0)),
            make_booking(
                service_id=77,
                service_type='session',
                service_title="Retired Session",
                event_date=date(2025, 1, 9),
                event_time=time(14, 0),
            ),
        ])

    def _feed(self, **kwargs):
        return services.calendar_events(
            self.catalog, self.bookings, date(2025, 1, 6), date(2025, 1, 12), **kwargs
        )

    def test_events_are_ordered_by_day_then_time(self):
        events = self._feed()

        self.assertEqual(
            [event.id for event in events],
            ['b-1', 's-1', 'c-1-2025-01-08', 'b-2']
        )
        self.assertEqual(
            [event.kind for event in events],
            ['booking', 'session', 'class', 'booking']
        )

    def test_end_is_start_plus_duration(self):
        session_event = next(event for event in self._feed() if event.kind == 'session')

        self.assertEqual(session_event.start, datetime(2025, 1, 8, 10, 0, tzinfo=dt_timezone.utc))
        self.assertEqual(session_event.end, datetime(2025, 1, 8, 11, 30, tzinfo=dt_timezone.utc))

    def test_booking_duration_comes_from_matching_kind(self):
        """Session 1 and appointment type 1 share an id; the booking's kind decides."""
        booking_event = self._feed()[0]
        self.assertEqual(booking_event.duration_minutes, 30)

    def test_orphan_booking_gets_fallback_duration(self):
        """A booking whose service is gone still shows, for 60 minutes."""
        orphan = [event for event in self._feed() if event.id == 'b-2'][0]

        self.assertEqual(orphan.title, "Retired Session")
        self.assertEqual(orphan.duration_minutes, 60)

    def test_show_only_booked(self):
        """Sessions and class occurrences drop out; bookings stay."""
        events = self._feed(show_only_booked=True)
        self.assertEqual([event.id for event in events], ['b-1', 'b-2'])

    def test_filters(self):
        events = self._feed(filters=EventFilters(
            include_sessions=False,
            include_appointment_bookings=False,
        ))
        self.assertEqual([event.id for event in events], ['c-1-2025-01-08'])

    def test_cancelled_bookings_are_tagged(self):
        self.bookings.get(1).status = 'cancelled'
        booking_event = self._feed()[0]

        self.assertEqual(booking_event.booking_status, 'cancelled')
        self.assertEqual(booking_event.customer_id, 1)

    def test_events_outside_range_are_excluded(self):
        events = services.calendar_events(
            self.catalog, self.bookings, date(2025, 1, 13), date(2025, 1, 19)
        )
        self.assertEqual([event.id for event in events], ['c-1-2025-01-15'])

    def test_inverted_range(self):
        with self.assertRaises(InvalidDateRangeError):
            services.calendar_events(
                self.catalog, self.bookings, date(2025, 1, 12), date(2025, 1, 6)
            )


class ManagerTests(TestCase):
    """Test custom manager methods."""

    def setUp(self):
        Session.objects.create(title="Active", date=MONDAY, time=time(9, 0))
        Session.objects.create(title="Paused", date=MONDAY, time=time(11, 0), status='paused')
        self.confirmed = Booking.objects.create(
            customer_id=1, service_id=1, service_type='session', service_title="Active",
            event_date=MONDAY, event_time=time(9, 0),
        )
        self.cancelled = Booking.objects.create(
            customer_id=2, service_id=1, service_type='session', service_title="Active",
            event_date=MONDAY, event_time=time(9, 0), status='cancelled',
        )

    def test_active_and_paused(self):
        self.assertEqual([s.title for s in Session.objects.active()], ["Active"])
        self.assertEqual([s.title for s in Session.objects.paused()], ["Paused"])

    def test_booking_status_filters(self):
        self.assertEqual(list(Booking.objects.confirmed()), [self.confirmed])
        self.assertEqual(list(Booking.objects.cancelled()), [self.cancelled])

    def test_for_customer_and_service(self):
        self.assertEqual(list(Booking.objects.for_customer(2)), [self.cancelled])
        self.assertEqual(Booking.objects.for_service(1, 'session').count(), 2)
        self.assertEqual(Booking.objects.for_service(1, 'class').count(), 0)


class ModelValidationTests(TestCase):
    """Test model validation on save."""

    def test_interval_must_end_after_start(self):
        with self.assertRaises(ValidationError):
            AppointmentType.objects.create(
                title="Broken",
                weekly_availability=[
                    {'day': 'Mon', 'enabled': True, 'slots': [{'from': '10:00', 'to': '09:00'}]},
                ],
            )

    def test_unknown_weekday_name(self):
        with self.assertRaises(ValidationError):
            GroupClass.objects.create(
                title="Broken",
                days=['Funday'],
                start_time=time(9, 0),
                start_date=date(2025, 1, 1),
            )

    def test_kind_discriminant(self):
        """Every catalog model carries its kind."""
        self.assertEqual(Session.kind, ServiceKind.SESSION)
        self.assertEqual(GroupClass.kind, ServiceKind.CLASS)
        self.assertEqual(AppointmentType.kind, ServiceKind.APPOINTMENT)


class DjangoStoreTests(TestCase):
    """Test the ORM-backed stores."""

    def setUp(self):
        self.appointment_type = AppointmentType.objects.create(
            title="Check-in",
            weekly_availability=[
                {'day': 'Mon', 'enabled': True, 'slots': [{'from': '09:00', 'to': '10:00'}]},
            ],
        )
        self.catalog = DjangoCatalogStore()
        self.bookings = DjangoBookingStore()

    def test_get_service_by_kind(self):
        self.assertEqual(
            self.catalog.get_service('appointment', self.appointment_type.pk),
            self.appointment_type
        )
        self.assertIsNone(self.catalog.get_service('session', self.appointment_type.pk))
        self.assertIsNone(self.catalog.get_service('bundle', 1))

    def test_book_and_cancel_through_orm(self):
        booking = services.book_appointment_slot(
            self.catalog, self.bookings, 3, self.appointment_type.pk, MONDAY, "9:00 AM"
        )
        self.assertIsNotNone(booking.pk)
        self.assertEqual(
            services.appointment_slots(self.catalog, self.bookings, self.appointment_type.pk, MONDAY),
            ["9:30 AM"]
        )

        services.cancel_booking(self.bookings, booking.pk)
        booking.refresh_from_db()
        self.assertEqual(booking.status, 'cancelled')

    def test_in_date_range(self):
        Booking.objects.create(
            customer_id=1, service_id=1, service_type='session', service_title="A",
            event_date=date(2025, 1, 5),
        )
        inside = Booking.objects.create(
            customer_id=1, service_id=1, service_type='session', service_title="B",
            event_date=date(2025, 1, 6),
        )

        self.assertEqual(self.bookings.in_date_range(MONDAY, MONDAY), [inside])


class SchedulingAPITests(APITestCase):
    """Test API endpoints."""

    def setUp(self):
        """Create a catalog to book against."""
        self.client = APIClient()
        self.appointment_type = AppointmentType.objects.create(
            title="30-Minute Check-in",
            duration=30,
            allow_rescheduling=True,
            weekly_availability=[
                {'day': 'Mon', 'enabled': True, 'slots': [{'from': '09:00', 'to': '10:00'}]},
            ],
        )
        self.group_class = GroupClass.objects.create(
            title="Weekly Group Mindset Call",
            days=['Wed'],
            start_time=time(19, 0),
            start_date=date(2025, 1, 1),
            end_date=date(2025, 1, 31),
        )
        self.upcoming = timezone.now().date() + timedelta(days=30)
        self.session = Session.objects.create(
            title="Deep Dive",
            date=self.upcoming,
            time=time(10, 0),
            duration=90,
            allow_rescheduling=True,
            reschedule_hours=48,
        )

    def _book_slot(self, slot="9:00 AM", event_date='2030-01-07'):
        return self.client.post('/api/bookings/', {
            'customer_id': 1,
            'service_type': 'appointment',
            'service_id': self.appointment_type.pk,
            'event_date': event_date,
            'slot': slot,
        }, format='json')

    def _book_session(self):
        return Booking.objects.create(
            customer_id=1,
            service_id=self.session.pk,
            service_type='session',
            service_title=self.session.title,
            event_date=self.upcoming,
            event_time=time(10, 0),
        )

    def test_class_occurrences(self):
        response = self.client.get(f'/api/classes/{self.group_class.pk}/occurrences/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['dates'], [
            '2025-01-01', '2025-01-08', '2025-01-15', '2025-01-22', '2025-01-29'
        ])

    def test_slots_and_booking(self):
        """Booking a listed slot removes it from the listing."""
        url = f'/api/appointment-types/{self.appointment_type.pk}/slots/'
        response = self.client.get(url, {'date': '2030-01-07'})
        self.assertEqual(response.data['slots'], ["9:00 AM", "9:30 AM"])

        response = self._book_slot()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['event_time'], '09:00:00')
        self.assertEqual(response.data['slot_label'], "9:00 AM")
        self.assertEqual(response.data['status'], 'confirmed')

        response = self.client.get(url, {'date': '2030-01-07'})
        self.assertEqual(response.data['slots'], ["9:30 AM"])

    def test_double_booking_is_rejected(self):
        self._book_slot()
        response = self._book_slot()

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'SLOT_UNAVAILABLE')

    def test_appointment_booking_requires_slot(self):
        response = self.client.post('/api/bookings/', {
            'customer_id': 1,
            'service_type': 'appointment',
            'service_id': self.appointment_type.pk,
            'event_date': '2030-01-07',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_booking_unknown_service(self):
        response = self.client.post('/api/bookings/', {
            'customer_id': 1,
            'service_type': 'session',
            'service_id': 9999,
            'event_date': '2030-01-07',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'SERVICE_NOT_FOUND')

    def test_cancel_twice(self):
        booking_id = self._book_slot().data['id']

        for _ in range(2):
            response = self.client.delete(f'/api/bookings/{booking_id}/')
            self.assertEqual(response.status_code, status.HTTP_200_OK)
            self.assertEqual(response.data['status'], 'cancelled')

    def test_customer_bookings(self):
        self._book_slot()
        self._book_session()

        response = self.client.get('/api/bookings/', {'customer_id': 1})
        self.assertEqual(len(response.data), 2)
        response = self.client.get('/api/bookings/', {'customer_id': 2})
        self.assertEqual(response.data, [])

    def _reschedule(self, booking_id, **payload):
        return self.client.post(f'/api/bookings/{booking_id}/reschedule/', payload, format='json')

    def _future_class(self):
        """Wednesday class starting 2030-01-01, open-ended."""
        return GroupClass.objects.create(
            title="Evening Breathwork",
            days=['Wed'],
            start_time=time(19, 0),
            start_date=date(2030, 1, 1),
            allow_rescheduling=True,
        )

    def test_book_class_on_day_it_does_not_meet(self):
        """2030-01-08 is a Tuesday; the class meets on Wednesdays."""
        future_class = self._future_class()
        payload = {
            'customer_id': 1,
            'service_type': 'class',
            'service_id': future_class.pk,
            'event_date': '2030-01-08',
        }

        response = self.client.post('/api/bookings/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'DATE_NOT_OFFERED')
        self.assertFalse(Booking.objects.exists())

        payload['event_date'] = '2030-01-09'
        response = self.client.post('/api/bookings/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['event_time'], '19:00:00')

    def test_book_session_on_other_date(self):
        payload = {
            'customer_id': 1,
            'service_type': 'session',
            'service_id': self.session.pk,
            'event_date': (self.upcoming + timedelta(days=200)).isoformat(),
        }

        response = self.client.post('/api/bookings/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'DATE_NOT_OFFERED')

        payload['event_date'] = self.upcoming.isoformat()
        response = self.client.post('/api/bookings/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['event_time'], '10:00:00')

    def test_policy_and_reschedule(self):
        """An appointment years out can be moved to another open slot."""
        booking_id = self._book_slot().data['id']

        response = self.client.get(f'/api/bookings/{booking_id}/policy/')
        self.assertTrue(response.data['reschedulable'])

        response = self._reschedule(booking_id, event_date='2030-01-14', slot="9:30 AM")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['event_date'], '2030-01-14')
        self.assertEqual(response.data['event_time'], '09:30:00')

    def test_reschedule_appointment_into_taken_slot(self):
        booking_id = self._book_slot(slot="9:00 AM").data['id']
        self._book_slot(slot="9:30 AM")

        response = self._reschedule(booking_id, event_date='2030-01-07', slot="9:30 AM")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'SLOT_UNAVAILABLE')
        self.assertEqual(Booking.objects.get(pk=booking_id).event_time, time(9, 0))

    def test_reschedule_appointment_requires_slot(self):
        booking_id = self._book_slot().data['id']

        response = self._reschedule(booking_id, event_date='2030-01-14')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('slot', response.data)

    def test_reschedule_class_to_day_it_does_not_meet(self):
        future_class = self._future_class()
        booking_id = self.client.post('/api/bookings/', {
            'customer_id': 1,
            'service_type': 'class',
            'service_id': future_class.pk,
            'event_date': '2030-01-02',
        }, format='json').data['id']

        response = self._reschedule(booking_id, event_date='2030-01-08')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'DATE_NOT_OFFERED')
        self.assertIn('does not meet', response.data['message'])

        response = self._reschedule(booking_id, event_date='2030-01-09')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['event_time'], '19:00:00')

    def test_reschedule_cancelled_booking(self):
        booking_id = self._book_slot().data['id']
        self.client.delete(f'/api/bookings/{booking_id}/')

        response = self._reschedule(booking_id, event_date='2030-01-14', slot="9:30 AM")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'RESCHEDULE_NOT_ALLOWED')
        self.assertEqual(Booking.objects.get(pk=booking_id).status, 'cancelled')

    def test_session_reschedule_keeps_its_time(self):
        """Sessions stay on their own date and never lose their start time."""
        booking = self._book_session()

        response = self._reschedule(booking.pk, event_date=self.upcoming.isoformat())
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['event_time'], '10:00:00')

        response = self._reschedule(
            booking.pk, event_date=(self.upcoming + timedelta(days=3)).isoformat()
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'DATE_NOT_OFFERED')
        booking.refresh_from_db()
        self.assertEqual(booking.event_date, self.upcoming)
        self.assertEqual(booking.event_time, time(10, 0))

    def test_reschedule_refused_by_policy(self):
        self.session.allow_rescheduling = False
        self.session.save()
        booking = self._book_session()
        payload = {'event_date': self.upcoming.isoformat(), 'event_time': '10:00'}

        response = self._reschedule(booking.pk, **payload)
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'RESCHEDULE_NOT_ALLOWED')

    def test_staff_override_of_reschedule_window(self):
        """Only staff may skip the reschedule window."""
        self.appointment_type.allow_rescheduling = False
        self.appointment_type.save()
        booking_id = self._book_slot().data['id']
        payload = {'event_date': '2030-01-14', 'slot': "9:30 AM", 'staff_override': True}

        response = self._reschedule(booking_id, **payload)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        staff = get_user_model().objects.create_user(
            username='coach', password='not-used', is_staff=True
        )
        self.client.force_authenticate(user=staff)
        response = self._reschedule(booking_id, **payload)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['event_time'], '09:30:00')

    def test_calendar_feed(self):
        booking_id = self._book_slot(event_date='2025-01-06').data['id']

        response = self.client.get('/api/calendar/', {'start': '2025-01-06', 'end': '2025-01-12'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            [event['id'] for event in response.data],
            [f'b-{booking_id}', f'c-{self.group_class.pk}-2025-01-08']
        )

        response = self.client.get('/api/calendar/', {
            'start': '2025-01-06', 'end': '2025-01-12', 'booked_only': 'true',
        })
        self.assertEqual([event['kind'] for event in response.data], ['booking'])

        response = self.client.get('/api/calendar/', {
            'start': '2025-01-06', 'end': '2025-01-12', 'bookings': 'false',
        })
        self.assertEqual([event['kind'] for event in response.data], ['class'])

    def test_calendar_rejects_inverted_range(self):
        response = self.client.get('/api/calendar/', {'start': '2025-01-12', 'end': '2025-01-06'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ManagementCommandTests(TestCase):
    """Test management commands."""

    def test_calendar_feed_command(self):
        GroupClass.objects.create(
            title="Weekly Group Mindset Call",
            days=['Wed'],
            start_time=time(19, 0),
            start_date=date(2025, 1, 1),
            end_date=date(2025, 1, 31),
        )

        out = StringIO()
        call_command('calendar_feed', '--start=2025-01-06', '--end=2025-01-12', stdout=out)

        output = out.getvalue()
        self.assertIn('2025-01-08 19:00-20:00', output)
        self.assertIn('Weekly Group Mindset Call', output)
        self.assertIn('1 event(s)', output)
