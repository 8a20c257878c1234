"""Views for the scheduling API."""

from django.http import Http404
from django.shortcuts import get_object_or_404

from rest_framework import status
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from . import services
from .exceptions import ReschedulePolicyError
from .models import AppointmentType, Booking, GroupClass, ServiceKind
from .serializers import (
    BookingCreateSerializer,
    BookingReadSerializer,
    BookingRescheduleSerializer,
    CalendarEventSerializer,
    CalendarQuerySerializer,
    DateQuerySerializer,
    DateRangeQuerySerializer,
)
from .stores import DjangoBookingStore, DjangoCatalogStore
from .types import EventFilters, ServiceRef


class StoreMixin:
    """Gives views the ORM-backed stores the services operate on."""

    catalog_store_class = DjangoCatalogStore
    booking_store_class = DjangoBookingStore

    @property
    def catalog(self):
        return self.catalog_store_class()

    @property
    def bookings(self):
        return self.booking_store_class()


class ClassOccurrencesView(APIView):
    """
    List the dates a class meets on.

    GET /api/classes/{id}/occurrences/?start=X&end=Y
    """

    def get(self, request, pk):
        """List occurrence dates, optionally clipped to a range."""
        group_class = get_object_or_404(GroupClass, pk=pk)
        query_serializer = DateRangeQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        dates = services.class_occurrences(
            group_class,
            query_serializer.validated_data.get('start'),
            query_serializer.validated_data.get('end'),
        )
        return Response({
            'class_id': group_class.pk,
            'dates': [day.isoformat() for day in dates],
        })


class AppointmentSlotsView(StoreMixin, APIView):
    """
    List open slots of an appointment type on one date.

    GET /api/appointment-types/{id}/slots/?date=X[&exclude_booking=Y]
    """

    def get(self, request, pk):
        """List slot labels."""
        get_object_or_404(AppointmentType, pk=pk)
        query_serializer = DateQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        target_date = query_serializer.validated_data['date']
        slots = services.appointment_slots(
            self.catalog,
            self.bookings,
            pk,
            target_date,
            exclude_booking_id=query_serializer.validated_data.get('exclude_booking'),
        )
        return Response({
            'appointment_type_id': pk,
            'date': target_date.isoformat(),
            'slots': slots,
        })


class AppointmentDatesView(APIView):
    """
    List the dates an appointment type can currently be booked on.

    GET /api/appointment-types/{id}/dates/
    """

    def get(self, request, pk):
        appointment_type = get_object_or_404(AppointmentType, pk=pk)
        dates = services.bookable_dates(appointment_type)
        return Response({
            'appointment_type_id': pk,
            'dates': [day.isoformat() for day in dates],
        })


class BookingListCreateView(StoreMixin, APIView):
    """
    List a customer's bookings or create a booking.

    GET /api/bookings/?customer_id=X - List bookings of a customer
    POST /api/bookings/ - Create a booking
    """

    def get(self, request):
        """List bookings, optionally for one customer."""
        customer_id = request.query_params.get('customer_id')
        if customer_id is None:
            bookings = Booking.objects.all()
        else:
            try:
                bookings = services.bookings_for_customer(self.bookings, int(customer_id))
            except ValueError:
                return Response(
                    {'customer_id': ['A valid integer is required.']},
                    status=status.HTTP_400_BAD_REQUEST
                )
        serializer = BookingReadSerializer(bookings, many=True)
        return Response(serializer.data)

    def post(self, request):
        """Create a booking on a date and time the service actually offers."""
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if data['service_type'] == ServiceKind.APPOINTMENT:
            booking = services.book_appointment_slot(
                self.catalog,
                self.bookings,
                customer_id=data['customer_id'],
                appointment_type_id=data['service_id'],
                target_date=data['event_date'],
                slot_label=data['slot'],
            )
        else:
            booking = services.book_service_date(
                self.catalog,
                self.bookings,
                customer_id=data['customer_id'],
                service_ref=ServiceRef(kind=data['service_type'], id=data['service_id']),
                event_date=data['event_date'],
                event_time=data.get('event_time'),
            )

        response_serializer = BookingReadSerializer(booking)
        return Response(response_serializer.data, status=status.HTTP_201_CREATED)


class BookingDetailView(StoreMixin, APIView):
    """
    Retrieve or cancel a booking.

    GET /api/bookings/{id}/ - Retrieve booking
    DELETE /api/bookings/{id}/ - Cancel booking
    """

    def get(self, request, pk):
        booking = get_object_or_404(Booking, pk=pk)
        return Response(BookingReadSerializer(booking).data)

    def delete(self, request, pk):
        """Cancel a booking (repeat cancels succeed)."""
        booking = services.cancel_booking(self.bookings, pk)
        if booking is None:
            raise Http404(f"No booking with id {pk}")
        return Response(BookingReadSerializer(booking).data)


class BookingPolicyView(StoreMixin, APIView):
    """
    Report whether a booking may still be rescheduled.

    GET /api/bookings/{id}/policy/
    """

    def get(self, request, pk):
        booking = get_object_or_404(Booking, pk=pk)
        service = self.catalog.resolve(booking.service_ref)
        return Response({
            'booking_id': booking.pk,
            'reschedulable': services.is_reschedulable(booking, service),
            'reschedule_hours': getattr(service, 'reschedule_hours', None),
        })


class BookingRescheduleView(StoreMixin, APIView):
    """
    Move a booking to a new date/time.

    POST /api/bookings/{id}/reschedule/

    The reschedule window is enforced unless a staff user sends
    ``staff_override``. The target date/time is checked against what the
    service offers in every case.
    """

    def post(self, request, pk):
        booking = get_object_or_404(Booking, pk=pk)
        serializer = BookingRescheduleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if booking.is_cancelled:
            raise ReschedulePolicyError(pk, "Cancelled bookings cannot be rescheduled")

        if data['staff_override'] and not request.user.is_staff:
            raise PermissionDenied("Only staff may override the reschedule window.")

        service = self.catalog.resolve(booking.service_ref)
        if not data['staff_override'] and not services.is_reschedulable(booking, service):
            raise ReschedulePolicyError(pk)

        new_time = data.get('event_time')
        if booking.service_type == ServiceKind.APPOINTMENT and new_time is None:
            raise ValidationError({'slot': 'Appointment reschedules require a slot.'})

        updated = services.reschedule_to_offered(
            self.catalog, self.bookings, pk, data['event_date'], new_time
        )
        return Response(BookingReadSerializer(updated).data)


class CalendarView(StoreMixin, APIView):
    """
    Aggregated calendar feed.

    GET /api/calendar/?start=X&end=Y[&sessions=&classes=&bookings=&booked_only=]
    """

    def get(self, request):
        query_serializer = CalendarQuerySerializer(data=request.query_params.dict())
        query_serializer.is_valid(raise_exception=True)
        data = query_serializer.validated_data

        events = services.calendar_events(
            self.catalog,
            self.bookings,
            data['start'],
            data['end'],
            filters=EventFilters(
                include_sessions=data['sessions'],
                include_classes=data['classes'],
                include_appointment_bookings=data['bookings'],
            ),
            show_only_booked=data['booked_only'],
        )
        serializer = CalendarEventSerializer(events, many=True)
        return Response(serializer.data)
