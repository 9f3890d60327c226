# booking/exceptions.py

from rest_framework import status
from rest_framework.exceptions import APIException


class BookingError(APIException):
    """
    Base class for failures raised by the booking services.
    Views let these propagate; DRF renders them with their status code.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Booking request failed."
    default_code = "booking_error"


class SlotUnavailable(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This time is no longer available, please pick another."
    default_code = "slot_unavailable"


class InvalidTransition(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This status change is not allowed."
    default_code = "invalid_transition"

    def __init__(self, current=None, requested=None, detail=None):
        if detail is None and current is not None:
            detail = f"Cannot change booking status from '{current}' to '{requested}'."
        super().__init__(detail)
        self.current = current
        self.requested = requested


class TableUnavailable(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This table is not available."
    default_code = "table_unavailable"

    def __init__(self, table_name=None, detail=None):
        if detail is None and table_name is not None:
            detail = f"Table {table_name} is not available for this time slot."
        super().__init__(detail)
        self.table_name = table_name


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"


class ValidationError(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input."
    default_code = "invalid"


class ServiceUnavailable(BookingError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Reservations are temporarily unavailable, please try again."
    default_code = "unavailable"
