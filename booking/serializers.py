from django.utils import timezone
from rest_framework import serializers

from restaurant.models import Restaurant
from booking.models import Booking, BookingEvent, RestaurantAvailability
from booking.services.schedule import WEEKDAYS
from booking.timeslots import InvalidSlot, normalize_slot


class BookingSerializer(serializers.ModelSerializer):
    """
    Booking as returned to guests, staff and admin screens.
    """

    status_display = serializers.CharField(source="get_status_display", read_only=True)

    class Meta:
        model = Booking
        fields = [
            "id",
            "restaurant",
            "restaurant_name",
            "user_ref",
            "user_name",
            "user_email",
            "user_phone",
            "date",
            "time",
            "party_size",
            "status",
            "status_display",
            "confirmation_code",
            "table",
            "table_number",
            "special_requests",
            "is_walk_in",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class CreateBookingSerializer(serializers.Serializer):
    """
    Guest booking request. Availability is checked by BookingService.
    """

    restaurant = serializers.PrimaryKeyRelatedField(queryset=Restaurant.objects.all())
    date = serializers.DateField()
    time = serializers.CharField(max_length=8)
    party_size = serializers.IntegerField(min_value=1)
    special_requests = serializers.CharField(
        required=False, allow_blank=True, max_length=500, default=""
    )
    user_phone = serializers.CharField(required=False, allow_blank=True, max_length=20)

    def validate_time(self, value):
        try:
            return normalize_slot(value)
        except InvalidSlot as exc:
            raise serializers.ValidationError(str(exc))


class WalkInSerializer(serializers.Serializer):
    restaurant = serializers.PrimaryKeyRelatedField(queryset=Restaurant.objects.all())
    user_name = serializers.CharField(max_length=150)
    party_size = serializers.IntegerField(min_value=1)
    user_phone = serializers.CharField(required=False, allow_blank=True, max_length=20, default="")
    special_requests = serializers.CharField(
        required=False, allow_blank=True, max_length=500, default=""
    )


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Booking.Status.choices)


class AssignTableSerializer(serializers.Serializer):
    table = serializers.IntegerField(min_value=1)


class AvailabilityQuerySerializer(serializers.Serializer):
    """
    Serializer for validating slot lookup query parameters.
    Date defaults to today.
    """

    restaurant = serializers.IntegerField(required=True)
    date = serializers.DateField(required=False, allow_null=True)
    party_size = serializers.IntegerField(required=False, allow_null=True, min_value=1)

    def validate(self, attrs):
        if not attrs.get("date"):
            attrs["date"] = timezone.localdate()
        return attrs


class SlotSerializer(serializers.Serializer):
    time = serializers.CharField()
    capacity = serializers.IntegerField()
    booked = serializers.IntegerField()
    available = serializers.IntegerField()


class TableOptionSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    name = serializers.CharField()
    capacity = serializers.IntegerField()
    is_active = serializers.BooleanField()


class DayShapeSerializer(serializers.Serializer):
    is_open = serializers.BooleanField(default=True)
    slots = serializers.ListField(child=serializers.CharField(max_length=8), allow_empty=True, default=list)
    capacity_per_slot = serializers.IntegerField(min_value=0, default=0)

    def validate_slots(self, value):
        normalized = []
        for slot in value:
            try:
                normalized.append(normalize_slot(slot))
            except InvalidSlot as exc:
                raise serializers.ValidationError(str(exc))
        if len(set(normalized)) != len(normalized):
            raise serializers.ValidationError("Slot times must be unique within a day.")
        return sorted(normalized)


class TableConfigSerializer(serializers.Serializer):
    id = serializers.IntegerField(required=False, allow_null=True)
    name = serializers.CharField(max_length=50)
    capacity = serializers.IntegerField(min_value=1)
    is_active = serializers.BooleanField(default=True)


class AvailabilityConfigSerializer(serializers.Serializer):
    """
    Whole availability configuration of a restaurant, as read and written
    by the staff availability screen.
    """

    management_mode = serializers.ChoiceField(
        choices=RestaurantAvailability.ManagementMode.choices,
        default=RestaurantAvailability.ManagementMode.GUEST_COUNT,
    )
    schedule = serializers.DictField(child=DayShapeSerializer(), default=dict)
    special_dates = serializers.DictField(child=DayShapeSerializer(), default=dict)
    default_capacity_per_slot = serializers.IntegerField(min_value=0, default=4)
    advance_booking_days = serializers.IntegerField(min_value=0, default=30)
    table_turning_time = serializers.IntegerField(min_value=0, default=60)
    tables = TableConfigSerializer(many=True, required=False)

    def validate_schedule(self, value):
        unknown = [day for day in value if day not in WEEKDAYS]
        if unknown:
            raise serializers.ValidationError(f"Unknown weekday(s): {', '.join(unknown)}.")
        return value

    def validate_special_dates(self, value):
        field = serializers.DateField()
        for key in value:
            field.run_validation(key)
        return value


class TimeSlotGroupSerializer(serializers.Serializer):
    time = serializers.CharField()
    total_guests = serializers.IntegerField()
    bookings = BookingSerializer(many=True)


class CapacityOverviewSerializer(serializers.Serializer):
    date = serializers.DateField()
    total_guests = serializers.IntegerField()
    max_capacity = serializers.IntegerField()
    percentage = serializers.FloatField()


class BookingStatsSerializer(serializers.Serializer):
    total_count = serializers.IntegerField()
    today_count = serializers.IntegerField()
    upcoming_count = serializers.IntegerField()
    completed_count = serializers.IntegerField()
    cancelled_count = serializers.IntegerField()
    no_show_rate = serializers.FloatField()
    average_party_size = serializers.FloatField()


class BookingEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = BookingEvent
        fields = [
            "id",
            "restaurant",
            "booking",
            "user_ref",
            "event_type",
            "title",
            "body",
            "data",
            "read",
            "created_at",
        ]
        read_only_fields = fields
