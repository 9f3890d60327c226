"""
Helpers for the "HH:MM" slot strings used by schedules and bookings.
"""

import re
from datetime import datetime

_SLOT_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*(AM|PM)?\s*$", re.IGNORECASE)


class InvalidSlot(ValueError):
    pass


def normalize_slot(value) -> str:
    """
    Normalize a time-of-day string to zero-padded 24-hour "HH:MM".

    Accepts "9:00", "09:00", "21:30" and the 12-hour "9:30 PM" form.
    """
    if not isinstance(value, str):
        raise InvalidSlot(f"Invalid time {value!r}; expected HH:MM.")

    match = _SLOT_RE.match(value)
    if not match:
        raise InvalidSlot(f"Invalid time {value!r}; expected HH:MM.")

    hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3)

    if meridiem:
        if not 1 <= hour <= 12:
            raise InvalidSlot(f"Invalid time {value!r}; expected HH:MM.")
        meridiem = meridiem.upper()
        if meridiem == "PM" and hour != 12:
            hour += 12
        elif meridiem == "AM" and hour == 12:
            hour = 0

    if hour > 23 or minute > 59:
        raise InvalidSlot(f"Invalid time {value!r}; expected HH:MM.")

    return f"{hour:02d}:{minute:02d}"


def slot_minutes(slot: str) -> int:
    hour, minute = normalize_slot(slot).split(":")
    return int(hour) * 60 + int(minute)


def slot_of(moment: datetime) -> str:
    """Slot string for a datetime, truncated to the minute."""
    return moment.strftime("%H:%M")
