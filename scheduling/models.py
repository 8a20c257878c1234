"""
Models for the scheduling engine.

The catalog is a tagged union of three bookable service kinds:
- Session stores a single fixed-time occurrence
- GroupClass stores a weekly recurrence rule; dates are expanded on demand
- AppointmentType stores a weekly availability template sliced into slots

Booking ties one customer to one concrete date/time of one catalog item.
"""

from django.core.exceptions import ValidationError
from django.db import models

from .managers import BookingManager, ServiceItemManager
from .timeutils import format_slot_label, minutes_since_midnight, to_utc_datetime
from .types import DEFAULT_DATE_RANGE_DAYS, DEFAULT_RESCHEDULE_HOURS, WEEKDAY_NAMES, ServiceRef


class ServiceKind(models.TextChoices):
    SESSION = 'session', 'Session'
    CLASS = 'class', 'Class'
    APPOINTMENT = 'appointment', 'Appointment'


class ServiceItem(models.Model):
    """
    Abstract base for every sellable catalog item.

    Subclasses set ``kind`` so callers never have to guess the variant from
    which fields happen to be present.
    """

    STATUS_CHOICES = [
        ('active', 'Active'),
        ('paused', 'Paused'),
    ]

    kind = None

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, default='')
    price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')

    location = models.CharField(max_length=200, blank=True, default='')
    is_virtual = models.BooleanField(default=False)

    allow_rescheduling = models.BooleanField(default=False)
    reschedule_hours = models.PositiveIntegerField(
        default=DEFAULT_RESCHEDULE_HOURS,
        help_text="Reschedules are allowed only while more than this many hours remain"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ServiceItemManager()

    class Meta:
        abstract = True

    def __str__(self):
        paused = " [paused]" if self.status == 'paused' else ""
        return f"{self.title}{paused}"

    @property
    def is_active(self):
        return self.status == 'active'

    @property
    def service_ref(self):
        return ServiceRef(kind=str(self.kind), id=self.pk)

    def save(self, *args, **kwargs):
        """Save with validation."""
        self.full_clean()
        super().save(*args, **kwargs)


class Session(ServiceItem):
    """A one-off session held at a fixed date and time."""

    SESSION_TYPE_CHOICES = [
        ('1-on-1', '1-on-1'),
        ('Group', 'Group'),
    ]

    kind = ServiceKind.SESSION

    date = models.DateField()
    time = models.TimeField(help_text="Wall-clock start time (UTC)")
    duration = models.PositiveIntegerField(default=60, help_text="Duration in minutes")
    session_type = models.CharField(max_length=10, choices=SESSION_TYPE_CHOICES, default='1-on-1')
    max_entries = models.PositiveIntegerField(default=1)

    class Meta:
        ordering = ['date', 'time']
        indexes = [
            models.Index(fields=['status', 'date']),
        ]

    def __str__(self):
        return f"{super().__str__()} - {self.date.isoformat()} {self.time.strftime('%H:%M')}"


class GroupClass(ServiceItem):
    """
    A class that repeats every week on a fixed set of weekdays.

    ``days`` holds short weekday names ('Mon'..'Sun'). Without an end date the
    recurrence is bounded by the occurrence generator's horizon.
    """

    kind = ServiceKind.CLASS

    duration = models.PositiveIntegerField(default=60, help_text="Duration in minutes")
    max_entries = models.PositiveIntegerField(default=10)

    days = models.JSONField(default=list, blank=True)
    start_time = models.TimeField(help_text="Wall-clock start time (UTC)")
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)

    class Meta:
        ordering = ['title']
        verbose_name = 'class'
        verbose_name_plural = 'classes'

    def clean(self):
        """Validate schedule data."""
        super().clean()

        unknown = [day for day in self.days or [] if day not in WEEKDAY_NAMES]
        if unknown:
            raise ValidationError({
                'days': f"Unknown weekday name(s): {', '.join(map(str, unknown))}."
            })

        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValidationError({
                'end_date': 'End date must not be before start date.'
            })


class AppointmentType(ServiceItem):
    """
    An appointment bookable in any slot of a weekly availability template.

    ``weekly_availability`` is a list of entries shaped like
    ``{"day": "Mon", "enabled": true, "slots": [{"from": "09:00", "to": "12:00"}]}``.
    """

    kind = ServiceKind.APPOINTMENT

    duration = models.PositiveIntegerField(default=30, help_text="Slot length in minutes")
    date_range_days = models.PositiveIntegerField(
        default=DEFAULT_DATE_RANGE_DAYS,
        help_text="How many days into the future this can be booked"
    )
    custom_link = models.SlugField(max_length=100, blank=True, default='')
    weekly_availability = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ['title']

    def availability_for(self, day_name):
        """Return the weekly entry for a weekday name, or None."""
        for entry in self.weekly_availability or []:
            if entry.get('day') == day_name:
                return entry
        return None

    def clean(self):
        """Validate the weekly availability template."""
        super().clean()

        for entry in self.weekly_availability or []:
            if entry.get('day') not in WEEKDAY_NAMES:
                raise ValidationError({
                    'weekly_availability': f"Unknown weekday name: {entry.get('day')!r}."
                })
            for interval in entry.get('slots', []):
                try:
                    start = minutes_since_midnight(interval['from'])
                    end = minutes_since_midnight(interval['to'])
                except (KeyError, ValueError, TypeError, AttributeError):
                    raise ValidationError({
                        'weekly_availability': f"Malformed interval on {entry['day']}: {interval!r}."
                    })
                if start >= end:
                    raise ValidationError({
                        'weekly_availability': (
                            f"Interval on {entry['day']} must end after it starts: "
                            f"{interval['from']}-{interval['to']}."
                        )
                    })


class Booking(models.Model):
    """
    One customer's place at one date/time of a catalog item.

    ``confirmed`` is the initial state and ``cancelled`` is terminal; a
    reschedule rewrites the date/time and leaves the booking confirmed.
    """

    STATUS_CHOICES = [
        ('confirmed', 'Confirmed'),
        ('cancelled', 'Cancelled'),
    ]

    customer_id = models.PositiveIntegerField(db_index=True)
    service_id = models.PositiveIntegerField()
    service_type = models.CharField(max_length=20, choices=ServiceKind.choices)
    service_title = models.CharField(
        max_length=200,
        help_text="Title of the service when the booking was made"
    )

    event_date = models.DateField()
    event_time = models.TimeField(null=True, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='confirmed')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = BookingManager()

    class Meta:
        ordering = ['event_date', 'event_time', 'id']
        indexes = [
            models.Index(fields=['service_type', 'service_id', 'event_date']),
            models.Index(fields=['event_date', 'status']),
        ]

    def __str__(self):
        when = self.event_date.isoformat()
        if self.event_time:
            when = f"{when} {self.event_time.strftime('%H:%M')}"
        status_str = " [cancelled]" if self.is_cancelled else ""
        return f"{self.service_title} - {when}{status_str}"

    @property
    def is_cancelled(self):
        return self.status == 'cancelled'

    @property
    def service_ref(self):
        return ServiceRef(kind=str(self.service_type), id=self.service_id)

    @property
    def event_datetime(self):
        """Aware UTC start of the booked event (midnight when no time is set)."""
        return to_utc_datetime(self.event_date, self.event_time)

    @property
    def slot_label(self):
        """12-hour label of the booked time, or None for all-day bookings."""
        if self.event_time is None:
            return None
        return format_slot_label(self.event_time)
