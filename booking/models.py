# booking/models.py

import secrets
import string

from django.core.validators import MinValueValidator
from django.db import models
from django.core.exceptions import ValidationError

from booking.timeslots import normalize_slot, InvalidSlot


ACTIVE_STATUSES = ("pending", "confirmed", "seated")
TERMINAL_STATUSES = ("completed", "cancelled", "no-show")

WALK_IN_USER_REF = "walk_in"
WALK_IN_EMAIL = "walkin@restaurant.com"

CONFIRMATION_ALPHABET = string.ascii_uppercase + string.digits


def generate_confirmation_code(length: int = 6) -> str:
    return "".join(secrets.choice(CONFIRMATION_ALPHABET) for _ in range(length))


class RestaurantAvailability(models.Model):
    """
    Bookable schedule of one restaurant.
    Weekly rows live in DaySchedule, date overrides in SpecialDate and
    the tables themselves in restaurant.Table.
    """

    class ManagementMode(models.TextChoices):
        GUEST_COUNT = "guest-count", "Guest count"
        TABLE_BASED = "table-based", "Table based"

    restaurant = models.OneToOneField(
        "restaurant.Restaurant", on_delete=models.CASCADE, related_name="availability"
    )

    management_mode = models.CharField(
        max_length=15,
        choices=ManagementMode.choices,
        default=ManagementMode.GUEST_COUNT,
    )

    default_capacity_per_slot = models.PositiveIntegerField(default=4)

    # Maximum number of days ahead a guest may book
    advance_booking_days = models.PositiveIntegerField(default=30)

    # Minutes; kept for the staff console, no rule depends on it
    table_turning_time = models.PositiveIntegerField(default=60)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "restaurant availabilities"

    def __str__(self):
        return f"Availability: {self.restaurant} ({self.management_mode})"

    @property
    def is_table_based(self):
        return self.management_mode == self.ManagementMode.TABLE_BASED


class ScheduleShape(models.Model):
    """
    Shape shared by weekly rows and special dates.
    """

    is_open = models.BooleanField(default=True)
    slots = models.JSONField(default=list, blank=True)
    capacity_per_slot = models.PositiveIntegerField(default=0)

    class Meta:
        abstract = True

    def clean(self):
        """
        Slots must be HH:MM strings, unique within the day. Stored sorted.
        """
        super().clean()

        if not isinstance(self.slots, (list, tuple)):
            raise ValidationError({"slots": "Slots must be a list of times."})

        normalized = []
        for slot in self.slots:
            try:
                normalized.append(normalize_slot(slot))
            except InvalidSlot as exc:
                raise ValidationError({"slots": str(exc)})

        if len(set(normalized)) != len(normalized):
            raise ValidationError({"slots": "Slot times must be unique within a day."})

        self.slots = sorted(normalized)

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


class DaySchedule(ScheduleShape):
    class Weekday(models.TextChoices):
        MONDAY = "Monday", "Monday"
        TUESDAY = "Tuesday", "Tuesday"
        WEDNESDAY = "Wednesday", "Wednesday"
        THURSDAY = "Thursday", "Thursday"
        FRIDAY = "Friday", "Friday"
        SATURDAY = "Saturday", "Saturday"
        SUNDAY = "Sunday", "Sunday"

    availability = models.ForeignKey(
        RestaurantAvailability, on_delete=models.CASCADE, related_name="schedule"
    )
    weekday = models.CharField(max_length=10, choices=Weekday.choices)

    class Meta:
        unique_together = ("availability", "weekday")

    def __str__(self):
        if not self.is_open:
            return f"{self.weekday} - closed"
        return f"{self.weekday}: {len(self.slots)} slots x {self.capacity_per_slot}"


class SpecialDate(ScheduleShape):
    """
    One-off override of the weekly schedule (holidays, private events).
    """

    availability = models.ForeignKey(
        RestaurantAvailability, on_delete=models.CASCADE, related_name="special_dates"
    )
    date = models.DateField()

    class Meta:
        ordering = ["date"]
        unique_together = ("availability", "date")

    def __str__(self):
        return f"{self.date} ({'open' if self.is_open else 'closed'})"


class Booking(models.Model):
    """
    A reservation at a restaurant for a date and slot time.
    Rows are never deleted; cancelled and no-show are terminal statuses.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        CONFIRMED = "confirmed", "Confirmed"
        SEATED = "seated", "Seated"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"
        NO_SHOW = "no-show", "No-show"

    restaurant = models.ForeignKey(
        "restaurant.Restaurant", on_delete=models.PROTECT, related_name="bookings"
    )
    restaurant_name = models.CharField(max_length=100)

    # Empty for walk-ins
    user = models.ForeignKey(
        "users.CustomUser",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bookings",
    )
    user_ref = models.CharField(max_length=50, db_index=True)
    user_name = models.CharField(max_length=150)
    user_email = models.CharField(max_length=254, blank=True)
    user_phone = models.CharField(max_length=20, blank=True)

    date = models.DateField()
    time = models.CharField(max_length=5, help_text="Slot time, HH:MM")
    party_size = models.PositiveIntegerField(validators=[MinValueValidator(1)])

    status = models.CharField(
        max_length=15, choices=Status.choices, default=Status.PENDING
    )

    confirmation_code = models.CharField(
        max_length=6, editable=False, default=generate_confirmation_code
    )

    # Set only in table-based mode
    table = models.ForeignKey(
        "restaurant.Table",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bookings",
    )
    table_number = models.CharField(max_length=50, blank=True)

    special_requests = models.TextField(blank=True)
    is_walk_in = models.BooleanField(default=False)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["restaurant", "date", "time", "status"], name="booking_slot_status_idx"),
            models.Index(fields=["user_ref", "date"], name="booking_user_date_idx"),
            models.Index(fields=["restaurant", "status"], name="booking_rest_status_idx"),
        ]

    def __str__(self):
        return f"{self.confirmation_code} {self.user_name} - {self.date} {self.time} ({self.party_size})"

    def clean(self):
        super().clean()
        if self.time:
            try:
                self.time = normalize_slot(self.time)
            except InvalidSlot as exc:
                raise ValidationError({"time": str(exc)})

    def save(self, *args, **kwargs):
        if not self.restaurant_name and self.restaurant_id:
            self.restaurant_name = self.restaurant.name

        # Run validation
        self.full_clean()
        super().save(*args, **kwargs)

    @property
    def is_active(self):
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES


class SlotLock(models.Model):
    """
    Row locked with SELECT ... FOR UPDATE while a booking write for this
    (restaurant, date, time) checks capacity and saves.
    """

    restaurant = models.ForeignKey(
        "restaurant.Restaurant", on_delete=models.CASCADE, related_name="+"
    )
    date = models.DateField()
    time = models.CharField(max_length=5)

    class Meta:
        unique_together = ("restaurant", "date", "time")

    def __str__(self):
        return f"lock {self.restaurant_id} {self.date} {self.time}"


class BookingEvent(models.Model):
    """
    Staff-facing record of something that happened to a booking.
    """

    class EventType(models.TextChoices):
        CREATED = "booking_created", "Booking created"
        WALK_IN = "walk_in", "Walk-in"
        UPDATED = "booking_updated", "Booking updated"
        CANCELLED = "booking_cancelled", "Booking cancelled"

    restaurant = models.ForeignKey(
        "restaurant.Restaurant", on_delete=models.CASCADE, related_name="booking_events"
    )
    booking = models.ForeignKey(
        Booking, on_delete=models.CASCADE, null=True, blank=True, related_name="events"
    )
    user_ref = models.CharField(max_length=50, blank=True)

    event_type = models.CharField(max_length=20, choices=EventType.choices)
    title = models.CharField(max_length=100)
    body = models.CharField(max_length=255, blank=True)
    data = models.JSONField(default=dict, blank=True)

    read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["restaurant", "read"], name="booking_event_unread_idx"),
        ]

    def __str__(self):
        return f"{self.title}: {self.body}"

    def mark_read(self):
        self.read = True
        self.save(update_fields=["read"])
