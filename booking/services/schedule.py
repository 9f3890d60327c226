# booking/services/schedule.py

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Optional, Tuple

from django.conf import settings
from django.core.cache import cache
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction

from booking.exceptions import NotFound, ValidationError
from booking.models import DaySchedule, RestaurantAvailability, SpecialDate
from restaurant.models import Restaurant, Table

logger = logging.getLogger(__name__)

WEEKDAYS = [choice.value for choice in DaySchedule.Weekday]


@dataclass(frozen=True)
class DayShape:
    is_open: bool
    slots: Tuple[str, ...]
    capacity_per_slot: int


CLOSED = DayShape(is_open=False, slots=(), capacity_per_slot=0)


@dataclass(frozen=True)
class TableInfo:
    id: int
    name: str
    capacity: int
    is_active: bool


@dataclass(frozen=True)
class AvailabilityConfig:
    """
    Read-only snapshot of a restaurant's availability configuration.
    This is what gets cached and what the evaluator works from.
    """

    restaurant_id: int
    management_mode: str
    default_capacity_per_slot: int
    advance_booking_days: int
    table_turning_time: int
    schedule: Dict[str, DayShape] = field(default_factory=dict)
    special_dates: Dict[date, DayShape] = field(default_factory=dict)
    tables: Tuple[TableInfo, ...] = ()

    @property
    def is_table_based(self) -> bool:
        return self.management_mode == RestaurantAvailability.ManagementMode.TABLE_BASED

    @property
    def active_tables(self) -> Tuple[TableInfo, ...]:
        return tuple(table for table in self.tables if table.is_active)

    def resolve(self, day: date) -> DayShape:
        """
        Special date override first, then the weekly row. Missing means closed.
        """
        if day in self.special_dates:
            return self.special_dates[day]
        return self.schedule.get(weekday_name(day), CLOSED)

    def as_dict(self) -> dict:
        def shape(day_shape):
            return {
                "is_open": day_shape.is_open,
                "slots": list(day_shape.slots),
                "capacity_per_slot": day_shape.capacity_per_slot,
            }

        return {
            "restaurant": self.restaurant_id,
            "management_mode": self.management_mode,
            "schedule": {day: shape(s) for day, s in self.schedule.items()},
            "special_dates": {
                day.isoformat(): shape(s) for day, s in sorted(self.special_dates.items())
            },
            "tables": [
                {
                    "id": t.id,
                    "name": t.name,
                    "capacity": t.capacity,
                    "is_active": t.is_active,
                }
                for t in self.tables
            ],
            "default_capacity_per_slot": self.default_capacity_per_slot,
            "advance_booking_days": self.advance_booking_days,
            "table_turning_time": self.table_turning_time,
        }


def weekday_name(day: date) -> str:
    """Locale independent English weekday name, e.g. 'Monday'."""
    return WEEKDAYS[day.weekday()]


class ScheduleService:
    """
    Owns the availability configuration: reading it (through the cache),
    resolving the shape that applies to a date, and replacing it.
    """

    CACHE_PREFIX = "booking:availability"

    @classmethod
    def cache_key(cls, restaurant_id) -> str:
        return f"{cls.CACHE_PREFIX}:{restaurant_id}"

    @classmethod
    def invalidate(cls, restaurant_id) -> None:
        """
        Drop the cached snapshot now and again once the surrounding
        transaction commits, so a reader that cached the old rows in
        between does not outlive the write. Outside a transaction the
        second delete runs immediately.
        """
        key = cls.cache_key(restaurant_id)
        cache.delete(key)
        transaction.on_commit(lambda: cache.delete(key))
        logger.debug(f"Availability cache invalidated for restaurant {restaurant_id}")

    @staticmethod
    def _snapshot(availability: RestaurantAvailability) -> AvailabilityConfig:
        def shape(row):
            return DayShape(
                is_open=row.is_open,
                slots=tuple(row.slots),
                capacity_per_slot=row.capacity_per_slot,
            )

        tables = Table.objects.filter(restaurant_id=availability.restaurant_id).order_by(
            "position", "id"
        )

        return AvailabilityConfig(
            restaurant_id=availability.restaurant_id,
            management_mode=availability.management_mode,
            default_capacity_per_slot=availability.default_capacity_per_slot,
            advance_booking_days=availability.advance_booking_days,
            table_turning_time=availability.table_turning_time,
            schedule={row.weekday: shape(row) for row in availability.schedule.all()},
            special_dates={row.date: shape(row) for row in availability.special_dates.all()},
            tables=tuple(
                TableInfo(id=t.id, name=t.name, capacity=t.capacity, is_active=t.is_active)
                for t in tables
            ),
        )

    @classmethod
    def get_config(cls, restaurant_id) -> Optional[AvailabilityConfig]:
        """
        Configuration snapshot, or None when the restaurant has none.
        """
        key = cls.cache_key(restaurant_id)
        config = cache.get(key)
        if config is not None:
            return config

        availability = (
            RestaurantAvailability.objects.filter(restaurant_id=restaurant_id)
            .prefetch_related("schedule", "special_dates")
            .first()
        )
        if availability is None:
            return None

        config = cls._snapshot(availability)
        cache.set(key, config, settings.BOOKING_AVAILABILITY_CACHE_TTL)
        return config

    @classmethod
    def resolve_day_schedule(cls, restaurant_id, day: date) -> DayShape:
        """
        Shape that applies to `day`. Unknown or unconfigured restaurants are closed.
        """
        config = cls.get_config(restaurant_id)
        if config is None:
            return CLOSED
        return config.resolve(day)

    @staticmethod
    def _parse_shape(raw, label):
        if not isinstance(raw, dict):
            raise ValidationError(f"{label}: expected an object with is_open, slots and capacity_per_slot.")
        capacity = raw.get("capacity_per_slot", 0)
        if not isinstance(capacity, int) or isinstance(capacity, bool) or capacity < 0:
            raise ValidationError(f"{label}: capacity_per_slot must be a non-negative integer.")
        return {
            "is_open": bool(raw.get("is_open", True)),
            "slots": list(raw.get("slots") or []),
            "capacity_per_slot": capacity,
        }

    @classmethod
    @transaction.atomic
    def set_availability(cls, restaurant_id, data: dict) -> AvailabilityConfig:
        """
        Replace the whole configuration of a restaurant.

        `data` keys: management_mode, schedule {weekday: shape},
        special_dates {YYYY-MM-DD: shape}, default_capacity_per_slot,
        advance_booking_days, table_turning_time and optionally tables
        [{id?, name, capacity, is_active}]. Tables missing from the list are
        deactivated, never deleted, since bookings keep referencing them.
        """
        try:
            restaurant = Restaurant.objects.get(pk=restaurant_id)
        except Restaurant.DoesNotExist:
            raise NotFound(f"Restaurant {restaurant_id} not found.")

        mode = data.get("management_mode", RestaurantAvailability.ManagementMode.GUEST_COUNT)
        if mode not in RestaurantAvailability.ManagementMode.values:
            raise ValidationError(f"Unknown management mode '{mode}'.")

        schedule = data.get("schedule") or {}
        for day in schedule:
            if day not in WEEKDAYS:
                raise ValidationError(f"Unknown weekday '{day}'.")

        special_dates = {}
        for raw_date, raw_shape in (data.get("special_dates") or {}).items():
            try:
                day = raw_date if isinstance(raw_date, date) else date.fromisoformat(raw_date)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid special date '{raw_date}'.")
            special_dates[day] = raw_shape

        availability, _ = RestaurantAvailability.objects.select_for_update().get_or_create(
            restaurant=restaurant
        )
        availability.management_mode = mode
        for name in ("default_capacity_per_slot", "advance_booking_days", "table_turning_time"):
            if name in data:
                value = data[name]
                if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                    raise ValidationError(f"{name} must be a non-negative integer.")
                setattr(availability, name, value)
        availability.save()

        availability.schedule.all().delete()
        availability.special_dates.all().delete()

        try:
            for day, raw_shape in schedule.items():
                DaySchedule.objects.create(
                    availability=availability, weekday=day, **cls._parse_shape(raw_shape, day)
                )
            for day, raw_shape in special_dates.items():
                SpecialDate.objects.create(
                    availability=availability,
                    date=day,
                    **cls._parse_shape(raw_shape, day.isoformat()),
                )
        except DjangoValidationError as exc:
            raise ValidationError(exc.message_dict if hasattr(exc, "message_dict") else exc.messages)

        if "tables" in data:
            cls._sync_tables(restaurant, data["tables"] or [])

        cls.invalidate(restaurant.pk)
        logger.info(
            f"Availability set for restaurant {restaurant.pk}: mode={mode}, "
            f"{len(schedule)} weekdays, {len(special_dates)} special dates"
        )
        return cls._snapshot(availability)

    @staticmethod
    def _sync_tables(restaurant: Restaurant, tables: list) -> None:
        names = [str(raw.get("name", "")).strip() for raw in tables]
        if len(set(names)) != len(names):
            raise ValidationError("Table names must be unique.")

        seen = []
        for position, raw in enumerate(tables):
            name = str(raw.get("name", "")).strip()
            capacity = raw.get("capacity")
            if not name:
                raise ValidationError("Every table needs a name.")
            if not isinstance(capacity, int) or isinstance(capacity, bool) or capacity < 1:
                raise ValidationError(f"Table {name}: capacity must be a positive integer.")

            table = None
            if raw.get("id") is not None:
                table = Table.objects.filter(restaurant=restaurant, pk=raw["id"]).first()
            if table is None:
                table = Table.objects.filter(restaurant=restaurant, name=name).first()
            if table is None:
                table = Table(restaurant=restaurant)

            table.name = name
            table.capacity = capacity
            table.is_active = bool(raw.get("is_active", True))
            table.position = position
            table.save()
            seen.append(table.pk)

        Table.objects.filter(restaurant=restaurant).exclude(pk__in=seen).update(is_active=False)
