from datetime import date, datetime, timedelta
from typing import List, Optional

from django.db.models import Count, QuerySet, Sum
from django.utils import timezone

from booking.exceptions import ValidationError
from booking.models import ACTIVE_STATUSES, Booking
from booking.services.schedule import AvailabilityConfig, ScheduleService, TableInfo
from booking.timeslots import slot_minutes

# Fallback ceiling of the staff capacity bar when nothing is configured
DEFAULT_MAX_CAPACITY = 100


class SlotAvailabilityService:
    """
    Turns a day's schedule plus the current bookings into bookable slots,
    and works out which tables are still free at a slot.

    Two capacity metrics live here: bookability counts active bookings per
    slot, while the staff capacity bar (capacity_overview) sums party sizes
    against a whole-day ceiling.
    """

    @staticmethod
    def active_bookings(restaurant_id, check_date: date) -> QuerySet:
        return Booking.objects.filter(
            restaurant_id=restaurant_id,
            date=check_date,
            status__in=ACTIVE_STATUSES,
        )

    @classmethod
    def count_active_at(cls, restaurant_id, check_date: date, time: str) -> int:
        return cls.active_bookings(restaurant_id, check_date).filter(time=time).count()

    @staticmethod
    def validate_party_size(party_size) -> None:
        if party_size is None:
            return
        if not isinstance(party_size, int) or isinstance(party_size, bool) or party_size < 1:
            raise ValidationError("Party size must be at least 1.")

    @staticmethod
    def is_within_window(config: AvailabilityConfig, check_date: date, today: date) -> bool:
        """
        Guests may book from today up to today + advance_booking_days.
        """
        last_day = today + timedelta(days=config.advance_booking_days)
        return today <= check_date <= last_day

    @staticmethod
    def slot_capacity(config: AvailabilityConfig, capacity_per_slot: int) -> int:
        """
        Bookings a single slot can hold. In table-based mode every active
        booking will occupy one table, so the active tables bound the slot.
        """
        if config.is_table_based:
            return len(config.active_tables)
        return capacity_per_slot

    @classmethod
    def get_slot_capacities(
        cls,
        restaurant_id,
        check_date: date,
        party_size: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[dict]:
        """
        Every bookable slot of the day with its capacity and current load:
        [{"time", "capacity", "booked", "available"}].

        Empty when the restaurant has no configuration, the day is closed
        or the date is outside the advance-booking window. On the current
        day, slots that have already started are left out.
        """
        cls.validate_party_size(party_size)

        config = ScheduleService.get_config(restaurant_id)
        if config is None:
            return []

        now = now or timezone.localtime()
        today = now.date()
        if not cls.is_within_window(config, check_date, today):
            return []

        shape = config.resolve(check_date)
        if not shape.is_open:
            return []

        slots = list(shape.slots)
        if check_date == today:
            current = now.hour * 60 + now.minute
            slots = [slot for slot in slots if slot_minutes(slot) > current]

        if not slots:
            return []

        booked = dict(
            cls.active_bookings(restaurant_id, check_date)
            .filter(time__in=slots)
            .order_by()
            .values("time")
            .annotate(count=Count("id"))
            .values_list("time", "count")
        )

        capacity = cls.slot_capacity(config, shape.capacity_per_slot)
        return [
            {
                "time": slot,
                "capacity": capacity,
                "booked": booked.get(slot, 0),
                "available": max(0, capacity - booked.get(slot, 0)),
            }
            for slot in slots
        ]

    @classmethod
    def get_available_slots(
        cls,
        restaurant_id,
        check_date: date,
        party_size: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """
        Slots that can still accept a new reservation. Party size is
        validated but does not change which slots are returned.
        """
        return [
            slot["time"]
            for slot in cls.get_slot_capacities(restaurant_id, check_date, party_size, now)
            if slot["available"] > 0
        ]

    @classmethod
    def get_assignable_tables(
        cls,
        restaurant_id,
        check_date: date,
        time: str,
        exclude_booking_id=None,
    ) -> List[TableInfo]:
        """
        Active tables not held by another active booking at the same date and time.
        Table capacity is not compared with the party size.
        """
        config = ScheduleService.get_config(restaurant_id)
        if config is None:
            return []

        taken = cls.active_bookings(restaurant_id, check_date).filter(
            time=time, table__isnull=False
        )
        if exclude_booking_id is not None:
            taken = taken.exclude(pk=exclude_booking_id)
        taken_ids = set(taken.values_list("table_id", flat=True))

        return [table for table in config.active_tables if table.id not in taken_ids]

    @classmethod
    def suggest_tables(
        cls,
        restaurant_id,
        check_date: date,
        time: str,
        party_size: int,
        exclude_booking_id=None,
    ) -> List[TableInfo]:
        """
        Assignable tables ordered by fit: tables big enough first (smallest
        first), then undersized ones (largest first). Advisory only.
        """
        tables = cls.get_assignable_tables(
            restaurant_id, check_date, time, exclude_booking_id=exclude_booking_id
        )

        def fit(table):
            if table.capacity >= party_size:
                return (0, table.capacity, table.id)
            return (1, -table.capacity, table.id)

        return sorted(tables, key=fit)

    @classmethod
    def capacity_overview(cls, restaurant_id, check_date: date) -> dict:
        """
        Staff capacity bar: guests booked for the day against a day ceiling.
        """
        total_guests = (
            Booking.objects.filter(restaurant_id=restaurant_id, date=check_date)
            .exclude(status__in=[Booking.Status.CANCELLED, Booking.Status.NO_SHOW])
            .aggregate(total=Sum("party_size"))["total"]
            or 0
        )

        max_capacity = DEFAULT_MAX_CAPACITY
        config = ScheduleService.get_config(restaurant_id)
        if config is not None:
            if config.is_table_based:
                max_capacity = sum(table.capacity for table in config.active_tables)
            else:
                shape = config.resolve(check_date)
                if check_date in config.special_dates or shape.is_open:
                    max_capacity = shape.capacity_per_slot * len(shape.slots)

        if max_capacity > 0:
            percentage = min(total_guests / max_capacity * 100, 100.0)
        else:
            percentage = 100.0 if total_guests else 0.0

        return {
            "date": check_date,
            "total_guests": total_guests,
            "max_capacity": max_capacity,
            "percentage": round(percentage, 1),
        }
