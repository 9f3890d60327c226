from django.urls import path, include

from booking import views


urlpatterns = [
    path(
        "availability/",
        views.SlotAvailabilityView.as_view(),
        name="slot-availability",
    ),
    path(
        "",
        views.BookingListCreateView.as_view(),
        name="booking-list-create",
    ),
    path(
        "walk-ins/",
        views.WalkInCreateView.as_view(),
        name="walk-in-create",
    ),
    path(
        "mine/",
        include(
            [
                path(
                    "upcoming/",
                    views.UpcomingBookingsView.as_view(),
                    name="my-upcoming-bookings",
                ),
                path(
                    "history/",
                    views.BookingHistoryView.as_view(),
                    name="my-booking-history",
                ),
            ]
        ),
    ),
    path(
        "<int:pk>/",
        include(
            [
                path(
                    "",
                    views.BookingDetailView.as_view(),
                    name="booking-detail",
                ),
                path(
                    "cancel/",
                    views.CancelBookingView.as_view(),
                    name="cancel-booking",
                ),
                path(
                    "status/",
                    views.BookingStatusView.as_view(),
                    name="booking-status",
                ),
                path(
                    "assign-table/",
                    views.AssignTableView.as_view(),
                    name="assign-table",
                ),
                path(
                    "suggested-tables/",
                    views.SuggestedTablesView.as_view(),
                    name="suggested-tables",
                ),
            ]
        ),
    ),
    path(
        "restaurants/<int:restaurant_id>/",
        include(
            [
                path(
                    "availability/",
                    views.RestaurantAvailabilityView.as_view(),
                    name="restaurant-availability",
                ),
                path(
                    "timeslots/",
                    views.TimeSlotGroupsView.as_view(),
                    name="restaurant-timeslots",
                ),
                path(
                    "stats/",
                    views.BookingStatsView.as_view(),
                    name="restaurant-booking-stats",
                ),
                path(
                    "events/",
                    views.BookingEventListView.as_view(),
                    name="restaurant-events",
                ),
                path(
                    "events/read-all/",
                    views.MarkAllEventsReadView.as_view(),
                    name="restaurant-events-read-all",
                ),
            ]
        ),
    ),
    path(
        "events/<int:pk>/read/",
        views.BookingEventReadView.as_view(),
        name="booking-event-read",
    ),
]
