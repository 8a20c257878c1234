"""
Admin configuration for the scheduling app.
"""

from django.contrib import admin
from .models import AppointmentType, Booking, GroupClass, Session


POLICY_FIELDSET = ('Rescheduling Policy', {
    'fields': ('allow_rescheduling', 'reschedule_hours')
})

METADATA_FIELDSET = ('Metadata', {
    'fields': ('created_at', 'updated_at'),
    'classes': ('collapse',)
})


@admin.register(Session)
class SessionAdmin(admin.ModelAdmin):
    """Admin interface for Session model."""

    list_display = ['title', 'date', 'time', 'duration', 'session_type', 'status']
    list_filter = ['status', 'session_type', 'is_virtual']
    search_fields = ['title', 'description']
    date_hierarchy = 'date'

    fieldsets = (
        ('Basic Information', {
            'fields': ('title', 'description', 'price', 'status')
        }),
        ('Schedule', {
            'fields': ('date', 'time', 'duration', 'session_type', 'max_entries')
        }),
        ('Location', {
            'fields': ('location', 'is_virtual')
        }),
        POLICY_FIELDSET,
        METADATA_FIELDSET,
    )

    readonly_fields = ['created_at', 'updated_at']


@admin.register(GroupClass)
class GroupClassAdmin(admin.ModelAdmin):
    """Admin interface for GroupClass model."""

    list_display = ['title', 'days', 'start_time', 'start_date', 'end_date', 'status']
    list_filter = ['status', 'is_virtual']
    search_fields = ['title', 'description']

    fieldsets = (
        ('Basic Information', {
            'fields': ('title', 'description', 'price', 'status')
        }),
        ('Recurrence', {
            'fields': ('days', 'start_time', 'duration', 'start_date', 'end_date', 'max_entries')
        }),
        ('Location', {
            'fields': ('location', 'is_virtual')
        }),
        POLICY_FIELDSET,
        METADATA_FIELDSET,
    )

    readonly_fields = ['created_at', 'updated_at']


@admin.register(AppointmentType)
class AppointmentTypeAdmin(admin.ModelAdmin):
    """Admin interface for AppointmentType model."""

    list_display = ['title', 'duration', 'date_range_days', 'custom_link', 'status']
    list_filter = ['status', 'is_virtual']
    search_fields = ['title', 'description', 'custom_link']

    fieldsets = (
        ('Basic Information', {
            'fields': ('title', 'description', 'price', 'status', 'custom_link')
        }),
        ('Availability', {
            'fields': ('duration', 'date_range_days', 'weekly_availability')
        }),
        ('Location', {
            'fields': ('location', 'is_virtual')
        }),
        POLICY_FIELDSET,
        METADATA_FIELDSET,
    )

    readonly_fields = ['created_at', 'updated_at']


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    """Admin interface for Booking model."""

    list_display = ['service_title', 'service_type', 'customer_id', 'event_date', 'event_time', 'status']
    list_filter = ['status', 'service_type']
    search_fields = ['service_title']
    date_hierarchy = 'event_date'

    fieldsets = (
        ('Service', {
            'fields': ('service_type', 'service_id', 'service_title')
        }),
        ('Schedule', {
            'fields': ('customer_id', 'event_date', 'event_time', 'status')
        }),
        METADATA_FIELDSET,
    )

    readonly_fields = ['created_at', 'updated_at']
