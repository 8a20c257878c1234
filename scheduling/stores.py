"""
Catalog and booking stores.

The scheduling services never touch the ORM directly; they receive a
CatalogStore and a BookingStore. Two implementations are provided:
- Django* stores backed by the ORM models
- InMemory* stores holding unsaved model instances, for tests and embedding

Every store exposes ``slot_lock``: the serialization point that writers must
hold while checking and claiming a slot.
"""

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date, time
from typing import Dict, Iterable, List, Optional, Tuple

from django.db import transaction

from .models import AppointmentType, Booking, GroupClass, ServiceKind, Session
from .types import ServiceRef


SERVICE_MODELS = {
    str(ServiceKind.SESSION): Session,
    str(ServiceKind.CLASS): GroupClass,
    str(ServiceKind.APPOINTMENT): AppointmentType,
}


def _booking_sort_key(booking: Booking):
    return (booking.event_date, booking.event_time or time.min, booking.id or 0)


class CatalogStore(ABC):
    """Read access to the service catalog."""

    @abstractmethod
    def get_service(self, kind: str, service_id: int):
        """Return the catalog item for (kind, id), or None."""

    @abstractmethod
    def list_sessions(self) -> List[Session]:
        ...

    @abstractmethod
    def list_classes(self) -> List[GroupClass]:
        ...

    @abstractmethod
    def list_appointment_types(self) -> List[AppointmentType]:
        ...

    def resolve(self, ref: ServiceRef):
        return self.get_service(ref.kind, ref.id)


class BookingStore(ABC):
    """Read/write access to bookings."""

    @abstractmethod
    def get(self, booking_id: int) -> Optional[Booking]:
        """Return the booking with this id, or None."""

    @abstractmethod
    def for_service(
        self,
        service_id: int,
        service_type: str,
        event_date: Optional[date] = None
    ) -> List[Booking]:
        ...

    @abstractmethod
    def for_customer(self, customer_id: int) -> List[Booking]:
        ...

    @abstractmethod
    def in_date_range(self, start_date: date, end_date: date) -> List[Booking]:
        ...

    @abstractmethod
    def insert(self, booking: Booking) -> Booking:
        """Persist a new booking and assign its id."""

    @abstractmethod
    def update(self, booking: Booking) -> Booking:
        """Persist status/date/time changes of an existing booking."""

    @abstractmethod
    def slot_lock(self, ref: ServiceRef, event_date: date, event_time: Optional[time] = None):
        """Context manager serializing writers of one (service, date, time) slot."""


class DjangoCatalogStore(CatalogStore):
    """Catalog store backed by the ORM."""

    def get_service(self, kind, service_id):
        model = SERVICE_MODELS.get(str(kind))
        if model is None:
            return None
        return model.objects.filter(pk=service_id).first()

    def list_sessions(self):
        return list(Session.objects.all())

    def list_classes(self):
        return list(GroupClass.objects.all())

    def list_appointment_types(self):
        return list(AppointmentType.objects.all())


class DjangoBookingStore(BookingStore):
    """Booking store backed by the ORM."""

    def get(self, booking_id):
        return Booking.objects.filter(pk=booking_id).first()

    def for_service(self, service_id, service_type, event_date=None):
        queryset = Booking.objects.for_service(service_id, str(service_type))
        if event_date is not None:
            queryset = queryset.on_date(event_date)
        return list(queryset)

    def for_customer(self, customer_id):
        return list(Booking.objects.for_customer(customer_id))

    def in_date_range(self, start_date, end_date):
        return list(Booking.objects.in_date_range(start_date, end_date))

    def insert(self, booking):
        booking.full_clean()
        booking.save(force_insert=True)
        return booking

    def update(self, booking):
        booking.save(update_fields=['event_date', 'event_time', 'status', 'updated_at'])
        return booking

    @contextmanager
    def slot_lock(self, ref, event_date, event_time=None):
        """
        Hold a row lock on the referenced catalog item for the duration of
        the block. Writers of the same service queue behind each other.
        """
        model = SERVICE_MODELS.get(str(ref.kind))
        with transaction.atomic():
            if model is not None:
                list(model.objects.select_for_update().filter(pk=ref.id))
            yield


class InMemoryCatalogStore(CatalogStore):
    """Catalog store over plain lists of (unsaved) model instances."""

    def __init__(
        self,
        sessions: Iterable[Session] = (),
        classes: Iterable[GroupClass] = (),
        appointment_types: Iterable[AppointmentType] = ()
    ):
        self._items: Dict[Tuple[str, int], object] = {}
        for item in [*sessions, *classes, *appointment_types]:
            self.add(item)

    def add(self, item):
        self._items[(str(item.kind), item.pk)] = item
        return item

    def get_service(self, kind, service_id):
        return self._items.get((str(kind), service_id))

    def _of_kind(self, kind):
        return [item for (item_kind, _), item in self._items.items() if item_kind == str(kind)]

    def list_sessions(self):
        return self._of_kind(ServiceKind.SESSION)

    def list_classes(self):
        return self._of_kind(ServiceKind.CLASS)

    def list_appointment_types(self):
        return self._of_kind(ServiceKind.APPOINTMENT)


class InMemoryBookingStore(BookingStore):
    """Booking store over a dict of (unsaved) Booking instances."""

    def __init__(self, bookings: Iterable[Booking] = ()):
        self._bookings: Dict[int, Booking] = {}
        self._next_id = 1
        self._guard = threading.Lock()
        self._slot_locks: Dict[tuple, list] = {}
        for booking in bookings:
            if booking.id is None:
                self.insert(booking)
            else:
                self._bookings[booking.id] = booking
                self._next_id = max(self._next_id, booking.id + 1)

    def all(self) -> List[Booking]:
        return sorted(self._bookings.values(), key=_booking_sort_key)

    def get(self, booking_id):
        return self._bookings.get(booking_id)

    def for_service(self, service_id, service_type, event_date=None):
        return [
            booking for booking in self.all()
            if booking.service_id == service_id
            and booking.service_type == str(service_type)
            and (event_date is None or booking.event_date == event_date)
        ]

    def for_customer(self, customer_id):
        return [booking for booking in self.all() if booking.customer_id == customer_id]

    def in_date_range(self, start_date, end_date):
        return [
            booking for booking in self.all()
            if start_date <= booking.event_date <= end_date
        ]

    def insert(self, booking):
        with self._guard:
            booking.id = self._next_id
            self._next_id += 1
            self._bookings[booking.id] = booking
        return booking

    def update(self, booking):
        self._bookings[booking.id] = booking
        return booking

    @contextmanager
    def slot_lock(self, ref, event_date, event_time=None):
        """Per-slot lock, dropped again once no caller holds or awaits it."""
        key = (str(ref.kind), ref.id, event_date, event_time)
        with self._guard:
            entry = self._slot_locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._slot_locks[key]
