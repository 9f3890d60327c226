# booking/tasks.py

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3)
def record_booking_event(
    self,
    restaurant_id: int,
    booking_id: int,
    user_ref: str,
    event_type: str,
    title: str,
    body: str,
    data: dict = None,
):
    """
    Store a booking event in the restaurant's staff feed.
    Delivery to devices happens elsewhere; this only records the event.
    """
    from booking.models import BookingEvent

    try:
        event = BookingEvent.objects.create(
            restaurant_id=restaurant_id,
            booking_id=booking_id,
            user_ref=user_ref or "",
            event_type=event_type,
            title=title,
            body=body,
            data=data or {},
        )
        logger.info(f"Booking event {event.id} ({event_type}) recorded for restaurant {restaurant_id}")
        return {'status': 'recorded', 'event_id': event.id}

    except Exception as exc:
        logger.error(f"Error recording booking event for booking {booking_id}: {exc}")
        raise self.retry(exc=exc, countdown=60)
