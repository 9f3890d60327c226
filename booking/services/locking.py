import functools
import logging
import time as _time
from datetime import date

from django.conf import settings
from django.db import InterfaceError, OperationalError, connection

from booking.exceptions import ServiceUnavailable
from booking.models import SlotLock

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (OperationalError, InterfaceError)


def lock_slot(restaurant_id, check_date: date, time: str) -> SlotLock:
    """
    Lock the (restaurant, date, time) key until the surrounding transaction ends.
    Must be called inside transaction.atomic().
    """
    if connection.vendor == "postgresql":
        timeout_ms = int(settings.BOOKING_LOCK_TIMEOUT_MS)
        with connection.cursor() as cursor:
            cursor.execute(f"SET LOCAL lock_timeout = {timeout_ms}")

    # get_or_create tolerates two requests creating the same key
    SlotLock.objects.get_or_create(restaurant_id=restaurant_id, date=check_date, time=time)
    return SlotLock.objects.select_for_update().get(
        restaurant_id=restaurant_id, date=check_date, time=time
    )


def retry_on_transient(func):
    """
    Retry once, after BOOKING_RETRY_BACKOFF seconds, when the database fails
    transiently; a second failure becomes ServiceUnavailable.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except TRANSIENT_ERRORS as exc:
            logger.warning(f"Transient database error in {func.__name__}, retrying: {exc}")
            _time.sleep(settings.BOOKING_RETRY_BACKOFF)

        try:
            return func(*args, **kwargs)
        except TRANSIENT_ERRORS as exc:
            logger.error(f"Database still unavailable in {func.__name__}: {exc}")
            raise ServiceUnavailable() from exc

    return wrapper
