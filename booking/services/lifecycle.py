# booking/services/lifecycle.py

import logging
from datetime import date, datetime
from typing import Optional

from django.db import transaction
from django.utils import timezone

from booking.exceptions import (
    InvalidTransition,
    NotFound,
    SlotUnavailable,
    TableUnavailable,
    ValidationError,
)
from booking.models import (
    WALK_IN_EMAIL,
    WALK_IN_USER_REF,
    Booking,
    generate_confirmation_code,
)
from booking.services.availability import SlotAvailabilityService
from booking.services.locking import lock_slot, retry_on_transient
from booking.services.notifications import NotificationService
from booking.services.schedule import ScheduleService
from booking.timeslots import InvalidSlot, normalize_slot, slot_of
from restaurant.models import Restaurant, Table
from users.models import CustomUser

logger = logging.getLogger(__name__)

Status = Booking.Status

TRANSITIONS = {
    Status.PENDING: {Status.CONFIRMED, Status.CANCELLED},
    Status.CONFIRMED: {Status.SEATED, Status.CANCELLED, Status.NO_SHOW},
    Status.SEATED: {Status.COMPLETED},
    Status.COMPLETED: set(),
    Status.CANCELLED: set(),
    Status.NO_SHOW: set(),
}


def can_transition(current: str, new: str) -> bool:
    return new in TRANSITIONS.get(current, set())


class BookingService:
    """
    The only code path that writes bookings.

    Every write that depends on capacity locks its (restaurant, date, time)
    key and re-evaluates availability inside the lock.
    """

    @staticmethod
    def _get_restaurant(restaurant_id) -> Restaurant:
        try:
            return Restaurant.objects.get(pk=restaurant_id)
        except Restaurant.DoesNotExist:
            raise NotFound(f"Restaurant {restaurant_id} not found.")

    @staticmethod
    def _get_for_update(booking_id) -> Booking:
        try:
            return Booking.objects.select_for_update().get(pk=booking_id)
        except (Booking.DoesNotExist, ValueError, TypeError):
            raise NotFound(f"Booking {booking_id} not found.")

    @staticmethod
    def _normalize_time(time: str) -> str:
        try:
            return normalize_slot(time)
        except InvalidSlot as exc:
            raise ValidationError(str(exc))

    @classmethod
    @retry_on_transient
    def create_booking(
        cls,
        restaurant_id,
        user: CustomUser,
        date: date,
        time: str,
        party_size: int,
        special_requests: str = "",
        user_phone: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Create a pending booking if `time` is currently an available slot.

        Raises ValidationError for malformed input or a date beyond the
        advance-booking window, SlotUnavailable for a past date, a closed
        day, an unknown slot or a full slot.
        """
        SlotAvailabilityService.validate_party_size(party_size)
        time = cls._normalize_time(time)
        restaurant = cls._get_restaurant(restaurant_id)

        now = now or timezone.localtime()
        if date < now.date():
            raise SlotUnavailable("Cannot book a date in the past.")

        config = ScheduleService.get_config(restaurant.pk)
        if config is None:
            raise SlotUnavailable()
        if not SlotAvailabilityService.is_within_window(config, date, now.date()):
            raise ValidationError(
                f"Bookings can be made at most {config.advance_booking_days} days ahead."
            )

        with transaction.atomic():
            lock_slot(restaurant.pk, date, time)

            available = SlotAvailabilityService.get_available_slots(
                restaurant.pk, date, party_size, now=now
            )
            if time not in available:
                logger.warning(
                    f"Slot {date} {time} unavailable at restaurant {restaurant.pk} "
                    f"for user {user.pk}"
                )
                raise SlotUnavailable()

            booking = Booking.objects.create(
                restaurant=restaurant,
                restaurant_name=restaurant.name,
                user=user,
                user_ref=str(user.pk),
                user_name=user.display_name,
                user_email=user.email,
                user_phone=user.phone if user_phone is None else user_phone,
                date=date,
                time=time,
                party_size=party_size,
                status=Status.PENDING,
                confirmation_code=generate_confirmation_code(),
                special_requests=special_requests or "",
            )
            NotificationService.booking_created(booking)

        logger.info(
            f"Booking {booking.pk} ({booking.confirmation_code}) created at restaurant "
            f"{restaurant.pk} for {date} {time}, party of {party_size}"
        )
        return booking

    @classmethod
    @retry_on_transient
    def create_walk_in(
        cls,
        restaurant_id,
        user_name: str,
        party_size: int,
        user_phone: str = "",
        special_requests: str = "",
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Seat a guest without a prior reservation: confirmed immediately, at
        the current date and minute. The advance window and the configured
        slot list do not apply; guest-count capacity still does.
        """
        if not user_name or not user_name.strip():
            raise ValidationError("Please enter guest name.")
        SlotAvailabilityService.validate_party_size(party_size)
        restaurant = cls._get_restaurant(restaurant_id)

        now = now or timezone.localtime()
        day, time = now.date(), slot_of(now)

        with transaction.atomic():
            lock_slot(restaurant.pk, day, time)

            config = ScheduleService.get_config(restaurant.pk)
            shape = ScheduleService.resolve_day_schedule(restaurant.pk, day)
            if config is None or not shape.is_open:
                raise SlotUnavailable("The restaurant is closed today.")

            if not config.is_table_based:
                booked = SlotAvailabilityService.count_active_at(restaurant.pk, day, time)
                if booked >= shape.capacity_per_slot:
                    logger.warning(
                        f"Walk-in rejected at restaurant {restaurant.pk}: {booked} bookings "
                        f"at {day} {time}, capacity {shape.capacity_per_slot}"
                    )
                    raise SlotUnavailable()

            booking = Booking.objects.create(
                restaurant=restaurant,
                restaurant_name=restaurant.name,
                user=None,
                user_ref=WALK_IN_USER_REF,
                user_name=user_name.strip(),
                user_email=WALK_IN_EMAIL,
                user_phone=user_phone or "",
                date=day,
                time=time,
                party_size=party_size,
                status=Status.CONFIRMED,
                confirmation_code=generate_confirmation_code(),
                special_requests=special_requests or "",
                is_walk_in=True,
            )
            NotificationService.walk_in(booking)

        logger.info(f"Walk-in {booking.pk} added at restaurant {restaurant.pk}, party of {party_size}")
        return booking

    @classmethod
    @retry_on_transient
    def update_status(cls, booking_id, new_status: str) -> Booking:
        """
        Move a booking along the status machine. Cancelling an already
        cancelled booking is a no-op.
        """
        if new_status not in Status.values:
            raise ValidationError(f"Unknown status '{new_status}'.")

        with transaction.atomic():
            booking = cls._get_for_update(booking_id)

            if booking.status == Status.CANCELLED and new_status == Status.CANCELLED:
                return booking

            if not can_transition(booking.status, new_status):
                logger.warning(
                    f"Rejected transition {booking.status} -> {new_status} for booking {booking.pk}"
                )
                raise InvalidTransition(booking.status, new_status)

            previous = booking.status
            booking.status = new_status
            booking.save(update_fields=["status", "updated_at"])
            NotificationService.status_changed(booking)

        logger.info(f"Booking {booking.pk} status {previous} -> {new_status}")
        return booking

    @classmethod
    def cancel_booking(cls, booking_id, by_user: Optional[CustomUser] = None) -> Booking:
        """
        Cancel on behalf of the guest or of staff. Guests can only reach
        their own bookings; anything else looks like it does not exist.
        """
        if by_user is not None:
            booking = Booking.objects.filter(pk=booking_id).only("user", "restaurant").first()
            if booking is None:
                raise NotFound(f"Booking {booking_id} not found.")
            if booking.user_id != by_user.pk and not by_user.works_at(booking.restaurant_id):
                raise NotFound(f"Booking {booking_id} not found.")

        return cls.update_status(booking_id, Status.CANCELLED)

    @classmethod
    @retry_on_transient
    def assign_table(cls, booking_id, table_id) -> Booking:
        """
        Put a table on a booking (table-based restaurants only). The table
        must be active and not held by another active booking at the slot.
        """
        with transaction.atomic():
            booking = cls._get_for_update(booking_id)

            if booking.is_terminal:
                raise InvalidTransition(
                    detail=f"Cannot assign a table to a {booking.status} booking."
                )

            config = ScheduleService.get_config(booking.restaurant_id)
            if config is None or not config.is_table_based:
                raise ValidationError(
                    "Table assignment is only available for table-based restaurants."
                )

            table = Table.objects.filter(pk=table_id, restaurant_id=booking.restaurant_id).first()
            if table is None:
                raise NotFound(f"Table {table_id} not found.")

            lock_slot(booking.restaurant_id, booking.date, booking.time)

            assignable = SlotAvailabilityService.get_assignable_tables(
                booking.restaurant_id, booking.date, booking.time, exclude_booking_id=booking.pk
            )
            if table.pk not in {t.id for t in assignable}:
                logger.warning(
                    f"Table {table.name} unavailable for booking {booking.pk} "
                    f"at {booking.date} {booking.time}"
                )
                raise TableUnavailable(table.name)

            booking.table = table
            booking.table_number = table.name
            booking.save(update_fields=["table", "table_number", "updated_at"])

        logger.info(f"Table {table.name} assigned to booking {booking.pk}")
        return booking
