import logging

from django.db import transaction

from booking.models import Booking, BookingEvent

logger = logging.getLogger(__name__)

STATUS_TITLES = {
    Booking.Status.CONFIRMED: "Booking confirmed",
    Booking.Status.SEATED: "Guest seated",
    Booking.Status.COMPLETED: "Booking completed",
    Booking.Status.CANCELLED: "Booking cancelled",
    Booking.Status.NO_SHOW: "Guest marked as no-show",
}


class NotificationService:
    """
    Fire-and-forget emitter for booking events. Events are handed to
    Celery after the surrounding transaction commits; dispatch errors
    are logged and do not fail the booking.
    """

    @staticmethod
    def _body(booking: Booking) -> str:
        return f"{booking.user_name} - {booking.party_size} guests at {booking.time}"

    @classmethod
    def emit(cls, booking: Booking, event_type: str, title: str, data: dict = None) -> None:
        from booking.tasks import record_booking_event

        payload = {
            "restaurant_id": booking.restaurant_id,
            "booking_id": booking.pk,
            "user_ref": booking.user_ref,
            "event_type": event_type,
            "title": title,
            "body": cls._body(booking),
            "data": data or {},
        }

        def dispatch():
            record_booking_event.delay(**payload)

        transaction.on_commit(dispatch, robust=True)
        logger.debug(f"Queued {event_type} event for booking {booking.pk}")

    @classmethod
    def booking_created(cls, booking: Booking) -> None:
        cls.emit(
            booking,
            BookingEvent.EventType.CREATED,
            "New Booking",
            {"date": booking.date.isoformat(), "time": booking.time, "party_size": booking.party_size},
        )

    @classmethod
    def walk_in(cls, booking: Booking) -> None:
        cls.emit(
            booking,
            BookingEvent.EventType.WALK_IN,
            "Walk-in added",
            {"date": booking.date.isoformat(), "time": booking.time, "party_size": booking.party_size},
        )

    @classmethod
    def status_changed(cls, booking: Booking) -> None:
        title = STATUS_TITLES.get(booking.status)
        if title is None:
            return
        event_type = (
            BookingEvent.EventType.CANCELLED
            if booking.status == Booking.Status.CANCELLED
            else BookingEvent.EventType.UPDATED
        )
        cls.emit(booking, event_type, title, {"status": booking.status})
