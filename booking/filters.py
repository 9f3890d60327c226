import django_filters

from booking.models import Booking


class BookingFilter(django_filters.FilterSet):
    """
    Filters for the booking list: restaurant, user reference, date and
    any number of statuses (?status=pending&status=confirmed).
    """

    restaurant = django_filters.NumberFilter(field_name="restaurant_id")
    user = django_filters.CharFilter(field_name="user_ref")
    date = django_filters.DateFilter(field_name="date")
    status = django_filters.MultipleChoiceFilter(choices=Booking.Status.choices)

    class Meta:
        model = Booking
        fields = ["restaurant", "user", "date", "status"]
