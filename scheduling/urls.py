"""
URL routing for the scheduling API.
"""

from django.urls import path
from .views import (
    AppointmentDatesView,
    AppointmentSlotsView,
    BookingDetailView,
    BookingListCreateView,
    BookingPolicyView,
    BookingRescheduleView,
    CalendarView,
    ClassOccurrencesView,
)

urlpatterns = [
    path('classes/<int:pk>/occurrences/', ClassOccurrencesView.as_view(), name='class-occurrences'),
    path('appointment-types/<int:pk>/slots/', AppointmentSlotsView.as_view(), name='appointment-slots'),
    path('appointment-types/<int:pk>/dates/', AppointmentDatesView.as_view(), name='appointment-dates'),
    path('bookings/', BookingListCreateView.as_view(), name='booking-list-create'),
    path('bookings/<int:pk>/', BookingDetailView.as_view(), name='booking-detail'),
    path('bookings/<int:pk>/policy/', BookingPolicyView.as_view(), name='booking-policy'),
    path('bookings/<int:pk>/reschedule/', BookingRescheduleView.as_view(), name='booking-reschedule'),
    path('calendar/', CalendarView.as_view(), name='calendar'),
]
