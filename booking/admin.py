# booking/admin.py

from django.contrib import admin, messages
from django.utils.html import format_html

from .exceptions import BookingError
from .models import (
    Booking,
    BookingEvent,
    DaySchedule,
    RestaurantAvailability,
    SpecialDate,
)
from .services.lifecycle import BookingService


STATUS_COLORS = {
    'pending': '#f0ad4e',
    'confirmed': '#5cb85c',
    'seated': '#337ab7',
    'completed': '#5bc0de',
    'cancelled': '#d9534f',
    'no-show': '#777777',
}


class DayScheduleInline(admin.TabularInline):
    model = DaySchedule
    extra = 0
    fields = ('weekday', 'is_open', 'slots', 'capacity_per_slot')


class SpecialDateInline(admin.TabularInline):
    model = SpecialDate
    extra = 0
    fields = ('date', 'is_open', 'slots', 'capacity_per_slot')
    ordering = ('date',)


@admin.register(RestaurantAvailability)
class RestaurantAvailabilityAdmin(admin.ModelAdmin):
    """
    Availability configuration with the weekly schedule and overrides inline.
    Saving through the admin invalidates the cached snapshot via signals.
    """
    list_display = (
        'restaurant',
        'management_mode',
        'default_capacity_per_slot',
        'advance_booking_days',
        'updated_at',
    )
    list_filter = ('management_mode',)
    search_fields = ('restaurant__name',)
    list_select_related = ('restaurant',)
    readonly_fields = ('updated_at',)
    inlines = (DayScheduleInline, SpecialDateInline)


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    """
    Admin configuration for Booking model.
    Status changes go through BookingService so transitions are enforced.
    """
    list_display = (
        'confirmation_code',
        'user_name',
        'restaurant',
        'date',
        'time',
        'party_size',
        'table_number',
        'status_badge',
        'is_walk_in',
        'created_at',
    )
    list_filter = ('status', 'is_walk_in', 'date', 'restaurant')
    search_fields = (
        'confirmation_code',
        'user_name',
        'user_email',
        'user_phone',
        'restaurant__name',
    )
    ordering = ('-date', '-time')
    date_hierarchy = 'date'
    list_select_related = ('restaurant', 'table')
    raw_id_fields = ('user', 'table')
    readonly_fields = (
        'status',
        'confirmation_code',
        'restaurant_name',
        'table_number',
        'created_at',
        'updated_at',
    )

    fieldsets = (
        ('Tracking', {
            'fields': ('status', 'confirmation_code', 'is_walk_in')
        }),
        ('Booking Details', {
            'fields': ('restaurant', 'restaurant_name', 'date', 'time', 'party_size', 'special_requests')
        }),
        ('Guest', {
            'fields': ('user', 'user_ref', 'user_name', 'user_email', 'user_phone')
        }),
        ('Table', {
            'fields': ('table', 'table_number'),
            'classes': ('collapse',)
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def status_badge(self, obj):
        color = STATUS_COLORS.get(obj.status, '#777')
        return format_html(
            '<span style="background-color: {}; color: white; padding: 3px 8px; '
            'border-radius: 3px; font-size: 11px;">{}</span>',
            color,
            obj.get_status_display()
        )
    status_badge.short_description = 'Status'

    actions = ['mark_as_confirmed', 'mark_as_seated', 'mark_as_completed', 'mark_as_cancelled']

    def has_delete_permission(self, request, obj=None):
        return False

    def _apply_status(self, request, queryset, new_status):
        changed = 0
        for booking in queryset:
            try:
                if new_status == Booking.Status.CANCELLED:
                    BookingService.cancel_booking(booking.pk)
                else:
                    BookingService.update_status(booking.pk, new_status)
            except BookingError as exc:
                self.message_user(
                    request,
                    f'{booking.confirmation_code}: {exc.detail}',
                    level=messages.WARNING,
                )
                continue
            changed += 1
        self.message_user(request, f'{changed} booking(s) marked as {new_status}.')

    @admin.action(description='Mark selected bookings as confirmed')
    def mark_as_confirmed(self, request, queryset):
        self._apply_status(request, queryset, Booking.Status.CONFIRMED)

    @admin.action(description='Mark selected bookings as seated')
    def mark_as_seated(self, request, queryset):
        self._apply_status(request, queryset, Booking.Status.SEATED)

    @admin.action(description='Mark selected bookings as completed')
    def mark_as_completed(self, request, queryset):
        self._apply_status(request, queryset, Booking.Status.COMPLETED)

    @admin.action(description='Mark selected bookings as cancelled')
    def mark_as_cancelled(self, request, queryset):
        self._apply_status(request, queryset, Booking.Status.CANCELLED)


@admin.register(BookingEvent)
class BookingEventAdmin(admin.ModelAdmin):
    list_display = ('id', 'restaurant', 'event_type', 'title', 'read', 'created_at')
    list_filter = ('event_type', 'read', 'restaurant')
    search_fields = ('title', 'body', 'user_ref')
    ordering = ('-created_at',)
    raw_id_fields = ('booking',)
    readonly_fields = ('created_at',)

    actions = ['mark_as_read']

    @admin.action(description='Mark selected events as read')
    def mark_as_read(self, request, queryset):
        updated = queryset.update(read=True)
        self.message_user(request, f'{updated} event(s) marked as read.')
