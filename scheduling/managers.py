"""
Custom managers and querysets for scheduling models.

QuerySets define chainable query methods.
Managers use QuerySets to enable method chaining.
No business logic should be here - only query operations.
"""

from django.db import models


class ServiceItemQuerySet(models.QuerySet):
    """Chainable queries shared by every catalog model."""

    def active(self):
        """Get items that can currently be booked."""
        return self.filter(status='active')

    def paused(self):
        """Get paused items (still visible to history queries)."""
        return self.filter(status='paused')


class ServiceItemManager(models.Manager):
    """Manager for Session, GroupClass and AppointmentType."""

    def get_queryset(self):
        """Return custom queryset for method chaining."""
        return ServiceItemQuerySet(self.model, using=self._db)

    def active(self):
        return self.get_queryset().active()

    def paused(self):
        return self.get_queryset().paused()


class BookingQuerySet(models.QuerySet):
    """Custom queryset for Booking model with chainable methods."""

    def confirmed(self):
        """Get bookings that still hold their slot."""
        return self.filter(status='confirmed')

    def cancelled(self):
        return self.filter(status='cancelled')

    def for_service(self, service_id, service_type):
        """
        Get bookings referencing one catalog item.

        Args:
            service_id: int
            service_type: 'session', 'class' or 'appointment'
        """
        return self.filter(service_id=service_id, service_type=service_type)

    def on_date(self, event_date):
        return self.filter(event_date=event_date)

    def in_date_range(self, start_date, end_date):
        """
        Get bookings whose event date falls within a date range.

        Args:
            start_date: date object (inclusive)
            end_date: date object (inclusive)
        """
        return self.filter(event_date__gte=start_date, event_date__lte=end_date)

    def for_customer(self, customer_id):
        return self.filter(customer_id=customer_id)


class BookingManager(models.Manager):
    """Custom manager for Booking model."""

    def get_queryset(self):
        """Return custom queryset for method chaining."""
        return BookingQuerySet(self.model, using=self._db)

    def confirmed(self):
        return self.get_queryset().confirmed()

    def cancelled(self):
        return self.get_queryset().cancelled()

    def for_service(self, service_id, service_type):
        return self.get_queryset().for_service(service_id, service_type)

    def in_date_range(self, start_date, end_date):
        return self.get_queryset().in_date_range(start_date, end_date)

    def for_customer(self, customer_id):
        return self.get_queryset().for_customer(customer_id)
