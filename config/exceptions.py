# config/exceptions.py

import logging

from rest_framework.views import exception_handler

from booking.exceptions import BookingError, ServiceUnavailable

logger = logging.getLogger(__name__)


def api_exception_handler(exc, context):
    """
    DRF's handler, plus a machine readable `code` on booking errors so
    clients can tell "slot taken" from "table taken" without parsing text.
    """
    response = exception_handler(exc, context)

    if response is None:
        view = context.get("view")
        logger.exception(
            f"Unhandled exception in {view.__class__.__name__ if view else 'unknown view'}"
        )
        return None

    if isinstance(exc, BookingError):
        data = response.data if isinstance(response.data, dict) else {"detail": response.data}
        data["code"] = exc.default_code
        response.data = data

        if isinstance(exc, ServiceUnavailable):
            logger.error(f"Booking service unavailable: {exc.detail}")

    return response
