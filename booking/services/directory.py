from datetime import date
from typing import Iterable, List, Optional

from django.db.models import Avg, Count, Q, QuerySet
from django.utils import timezone

from booking.models import Booking

Status = Booking.Status


class ReservationDirectory:
    """
    Read-only projections over bookings for the staff console, the guest
    profile and admin reporting. No locks are taken.
    """

    @staticmethod
    def list_bookings(
        restaurant_id=None,
        user_id=None,
        date: Optional[date] = None,
        status_in: Optional[Iterable[str]] = None,
    ) -> QuerySet:
        """
        Bookings matching every given filter, newest created first.
        `user_id` matches the booking's user reference, so 'walk_in' works too.
        """
        queryset = Booking.objects.select_related("table")

        if restaurant_id is not None:
            queryset = queryset.filter(restaurant_id=restaurant_id)
        if user_id is not None:
            queryset = queryset.filter(user_ref=str(user_id))
        if date is not None:
            queryset = queryset.filter(date=date)
        if status_in:
            queryset = queryset.filter(status__in=list(status_in))

        return queryset.order_by("-created_at", "-id")

    @classmethod
    def list_by_restaurant_and_date(cls, restaurant_id, check_date: date) -> QuerySet:
        return cls.list_bookings(restaurant_id=restaurant_id, date=check_date)

    @staticmethod
    def group_by_time_slot(restaurant_id, check_date: date) -> List[dict]:
        """
        The day's bookings per slot time, with the guests summed per slot.
        Cancelled and no-show bookings are left out.
        """
        bookings = (
            Booking.objects.select_related("table")
            .filter(restaurant_id=restaurant_id, date=check_date)
            .exclude(status__in=[Status.CANCELLED, Status.NO_SHOW])
            .order_by("time", "created_at", "id")
        )

        groups = {}
        for booking in bookings:
            group = groups.setdefault(
                booking.time, {"time": booking.time, "bookings": [], "total_guests": 0}
            )
            group["bookings"].append(booking)
            group["total_guests"] += booking.party_size

        return sorted(groups.values(), key=lambda group: group["time"])

    @staticmethod
    def stats(restaurant_id, today: Optional[date] = None) -> dict:
        """
        Dashboard figures for one restaurant.

        average_party_size covers completed bookings only; no_show_rate is
        the percentage of all bookings marked no-show.
        """
        today = today or timezone.localdate()

        counts = Booking.objects.filter(restaurant_id=restaurant_id).aggregate(
            total=Count("id"),
            today=Count("id", filter=Q(date=today)),
            upcoming=Count(
                "id",
                filter=Q(date__gte=today, status__in=[Status.PENDING, Status.CONFIRMED]),
            ),
            completed=Count("id", filter=Q(status=Status.COMPLETED)),
            cancelled=Count("id", filter=Q(status=Status.CANCELLED)),
            no_show=Count("id", filter=Q(status=Status.NO_SHOW)),
            average_party_size=Avg("party_size", filter=Q(status=Status.COMPLETED)),
        )

        total = counts["total"]
        return {
            "total_count": total,
            "today_count": counts["today"],
            "upcoming_count": counts["upcoming"],
            "completed_count": counts["completed"],
            "cancelled_count": counts["cancelled"],
            "no_show_rate": (counts["no_show"] / total * 100) if total else 0.0,
            "average_party_size": float(counts["average_party_size"] or 0),
        }

    @staticmethod
    def upcoming_for_user(user, today: Optional[date] = None) -> QuerySet:
        """Guest's bookings still ahead of them, soonest first."""
        today = today or timezone.localdate()
        return (
            Booking.objects.filter(user=user, date__gte=today)
            .exclude(status__in=[Status.CANCELLED, Status.COMPLETED, Status.NO_SHOW])
            .order_by("date", "time")
        )

    @staticmethod
    def history_for_user(user, today: Optional[date] = None) -> QuerySet:
        """Guest's past visits, most recent first."""
        today = today or timezone.localdate()
        return (
            Booking.objects.filter(user=user)
            .exclude(status=Status.CANCELLED)
            .filter(Q(date__lt=today) | Q(status__in=[Status.COMPLETED, Status.NO_SHOW]))
            .order_by("-date", "-time")
        )
