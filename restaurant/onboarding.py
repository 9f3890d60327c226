# restaurant/onboarding.py

import logging
from datetime import datetime, timedelta

from booking.services.schedule import WEEKDAYS, ScheduleService

logger = logging.getLogger(__name__)

LUNCH = ("11:00", "14:30")
DINNER = ("17:00", "21:30")
SLOT_INTERVAL_MINUTES = 30


def slot_range(start, end, step=SLOT_INTERVAL_MINUTES):
    """Slot strings from start to end inclusive, every `step` minutes."""
    current = datetime.strptime(start, "%H:%M")
    last = datetime.strptime(end, "%H:%M")
    slots = []
    while current <= last:
        slots.append(current.strftime("%H:%M"))
        current += timedelta(minutes=step)
    return slots


def default_availability():
    """
    Starting configuration offered to a newly onboarded restaurant:
    open every day for lunch and dinner, four bookings per slot.
    """
    slots = slot_range(*LUNCH) + slot_range(*DINNER)
    day = {"is_open": True, "slots": slots, "capacity_per_slot": 4}
    return {
        "management_mode": "guest-count",
        "schedule": {weekday: dict(day) for weekday in WEEKDAYS},
        "special_dates": {},
        "default_capacity_per_slot": 4,
        "advance_booking_days": 30,
        "table_turning_time": 60,
    }


def init_availability(restaurant_id):
    config = ScheduleService.set_availability(restaurant_id, default_availability())
    logger.info(f"Default availability created for restaurant {restaurant_id}")
    return config
