"""
Serializers for the scheduling API.
"""

from rest_framework import serializers

from .models import Booking, ServiceKind
from .timeutils import slot_label_to_time


class BookingReadSerializer(serializers.ModelSerializer):
    """Serializer for reading/displaying Booking (output)."""

    slot_label = serializers.ReadOnlyField()

    class Meta:
        model = Booking
        fields = [
            'id',
            'customer_id',
            'service_id',
            'service_type',
            'service_title',
            'event_date',
            'event_time',
            'slot_label',
            'status',
            'created_at',
            'updated_at',
        ]


class SlotTimeMixin:
    """Accept either an ``HH:mm`` time or a ``H:MM AM/PM`` slot label."""

    def _resolve_time(self, data):
        slot = data.get('slot')
        if slot:
            try:
                data['event_time'] = slot_label_to_time(slot)
            except ValueError as exc:
                raise serializers.ValidationError({'slot': str(exc)})
        return data


class BookingCreateSerializer(SlotTimeMixin, serializers.Serializer):
    """Serializer for creating a booking."""

    customer_id = serializers.IntegerField(min_value=1)
    service_type = serializers.ChoiceField(choices=ServiceKind.choices)
    service_id = serializers.IntegerField(min_value=1)
    event_date = serializers.DateField()
    event_time = serializers.TimeField(required=False, allow_null=True)
    slot = serializers.CharField(required=False, allow_blank=False)

    def validate(self, data):
        """Appointment bookings name a slot; other kinds may not."""
        if data.get('slot') and data['service_type'] != ServiceKind.APPOINTMENT:
            raise serializers.ValidationError({
                'slot': 'Slots only apply to appointment bookings.'
            })
        if data['service_type'] == ServiceKind.APPOINTMENT and not data.get('slot'):
            raise serializers.ValidationError({
                'slot': 'Appointment bookings require a slot.'
            })
        return self._resolve_time(data)


class BookingRescheduleSerializer(SlotTimeMixin, serializers.Serializer):
    """Serializer for moving a booking to a new date/time."""

    event_date = serializers.DateField()
    event_time = serializers.TimeField(required=False, allow_null=True)
    slot = serializers.CharField(required=False, allow_blank=False)
    staff_override = serializers.BooleanField(
        default=False,
        help_text="Staff only: skip the reschedule window check"
    )

    def validate(self, data):
        return self._resolve_time(data)


class DateQuerySerializer(serializers.Serializer):
    """Serializer for a single date query parameter."""

    date = serializers.DateField()
    exclude_booking = serializers.IntegerField(required=False, min_value=1)


class DateRangeQuerySerializer(serializers.Serializer):
    """Serializer for date range query parameters."""

    start = serializers.DateField(required=False)
    end = serializers.DateField(required=False)

    def validate(self, data):
        """Ensure start is not after end."""
        if data.get('start') and data.get('end') and data['start'] > data['end']:
            raise serializers.ValidationError(
                "Start date must not be after end date."
            )
        return data


class CalendarQuerySerializer(DateRangeQuerySerializer):
    """Serializer for calendar feed query parameters."""

    start = serializers.DateField()
    end = serializers.DateField()
    sessions = serializers.BooleanField(default=True)
    classes = serializers.BooleanField(default=True)
    bookings = serializers.BooleanField(default=True)
    booked_only = serializers.BooleanField(default=False)


class CalendarEventSerializer(serializers.Serializer):
    """Serializer for CalendarEvent (output only)."""

    id = serializers.CharField()
    kind = serializers.CharField()
    title = serializers.CharField()
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    duration_minutes = serializers.IntegerField()
    service_id = serializers.IntegerField(allow_null=True)
    customer_id = serializers.IntegerField(allow_null=True)
    booking_status = serializers.CharField(allow_null=True)
