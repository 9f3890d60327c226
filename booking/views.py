from rest_framework.views import APIView
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter
from rest_framework import generics, filters, status
from django_filters.rest_framework import DjangoFilterBackend

from booking.exceptions import NotFound
from booking.filters import BookingFilter
from booking.models import Booking, BookingEvent
from booking.serializers import (
    AssignTableSerializer,
    AvailabilityConfigSerializer,
    AvailabilityQuerySerializer,
    BookingEventSerializer,
    BookingSerializer,
    BookingStatsSerializer,
    CapacityOverviewSerializer,
    CreateBookingSerializer,
    SlotSerializer,
    StatusUpdateSerializer,
    TableOptionSerializer,
    TimeSlotGroupSerializer,
    WalkInSerializer,
)
from booking.services.availability import SlotAvailabilityService
from booking.services.directory import ReservationDirectory
from booking.services.lifecycle import BookingService
from booking.services.schedule import ScheduleService
from config import permissions


class SlotAvailabilityView(APIView):
    """
    Guest slot picker: the times still bookable at a restaurant on a date.
    A restaurant without configuration is simply closed.
    """

    @extend_schema(
        parameters=[
            OpenApiParameter(name="restaurant", type=int, required=True),
            OpenApiParameter(name="date", type=str, description="Date (YYYY-MM-DD)"),
            OpenApiParameter(name="party_size", type=int),
        ],
        responses={200: SlotSerializer(many=True)},
    )
    def get(self, request):
        query_serializer = AvailabilityQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)
        data = query_serializer.validated_data

        capacities = SlotAvailabilityService.get_slot_capacities(
            restaurant_id=data["restaurant"],
            check_date=data["date"],
            party_size=data.get("party_size"),
        )

        return Response(
            {
                "query": query_serializer.validated_data,
                "slots": [slot["time"] for slot in capacities if slot["available"] > 0],
                "results": SlotSerializer(capacities, many=True).data,
            }
        )


class RestaurantAvailabilityView(APIView):
    """
    Read or replace a restaurant's availability configuration.
    """

    def get_permissions(self):
        if self.request.method == "GET":
            return []
        return [
            permissions.IsManagerOrAdmin(),
            permissions.WorksAtRestaurant(),
        ]

    @extend_schema(responses={200: AvailabilityConfigSerializer})
    def get(self, request, restaurant_id):
        config = ScheduleService.get_config(restaurant_id)
        if config is None:
            raise NotFound("This restaurant has no availability configured.")
        return Response(config.as_dict())

    @extend_schema(
        request=AvailabilityConfigSerializer,
        responses={200: AvailabilityConfigSerializer},
    )
    def put(self, request, restaurant_id):
        serializer = AvailabilityConfigSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        config = ScheduleService.set_availability(restaurant_id, serializer.validated_data)
        return Response(config.as_dict(), status=status.HTTP_200_OK)


class BookingListCreateView(generics.ListCreateAPIView):
    """
    GET: bookings visible to the caller (guests see their own, staff their
    restaurant's, admins everything), filterable by restaurant, user, date
    and status. POST: guest booking request.
    """

    permission_classes = [permissions.IsAuthenticatedUser]
    serializer_class = BookingSerializer

    filter_backends = [
        DjangoFilterBackend,
        filters.OrderingFilter,
    ]
    filterset_class = BookingFilter
    ordering_fields = ["created_at", "date", "time", "party_size", "status"]
    ordering = ["-created_at", "-id"]

    def get_queryset(self):
        user = self.request.user
        if user.is_admin:
            return ReservationDirectory.list_bookings()
        if user.is_restaurant_staff:
            return ReservationDirectory.list_bookings(restaurant_id=user.restaurant_id)
        return ReservationDirectory.list_bookings(user_id=user.pk)

    @extend_schema(request=CreateBookingSerializer, responses={201: BookingSerializer})
    def create(self, request, *args, **kwargs):
        """
        Use BookingService for creation; capacity is checked at call time.
        """
        serializer = CreateBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        booking = BookingService.create_booking(
            restaurant_id=data["restaurant"].pk,
            user=request.user,
            date=data["date"],
            time=data["time"],
            party_size=data["party_size"],
            special_requests=data.get("special_requests", ""),
            user_phone=data.get("user_phone"),
        )

        return Response(
            {
                "detail": "Booking created successfully.",
                "booking": BookingSerializer(booking).data,
            },
            status=status.HTTP_201_CREATED,
        )


class BookingDetailView(generics.RetrieveAPIView):
    queryset = Booking.objects.select_related("table")
    serializer_class = BookingSerializer
    permission_classes = [permissions.IsAuthenticatedUser, permissions.IsOwnerOrStaff]


class CancelBookingView(generics.GenericAPIView):
    """
    API endpoint to cancel a booking, for the guest or the restaurant's staff.
    """

    permission_classes = [permissions.IsAuthenticatedUser]
    serializer_class = BookingSerializer

    @extend_schema(
        summary="Cancel a booking",
        description="Cancels a pending or confirmed booking. "
        "Cancelling an already cancelled booking succeeds without changes.",
        request=None,
        responses={
            200: BookingSerializer,
            404: {"description": "Booking not found or does not belong to user"},
            409: {"description": "Booking already completed or marked no-show"},
        },
    )
    def post(self, request, pk, *args, **kwargs):
        booking = BookingService.cancel_booking(pk, by_user=request.user)
        return Response(
            {
                "message": "Booking cancelled successfully.",
                "booking": BookingSerializer(booking).data,
            },
            status=status.HTTP_200_OK,
        )


class StaffBookingMixin:
    """
    Staff actions on one booking; bookings of other restaurants look missing.
    """

    permission_classes = [permissions.IsStaffOrAbove]

    def get_queryset(self):
        user = self.request.user
        queryset = Booking.objects.all()
        if user.is_admin:
            return queryset
        return queryset.filter(restaurant_id=user.restaurant_id)


class BookingStatusView(StaffBookingMixin, generics.GenericAPIView):
    serializer_class = StatusUpdateSerializer

    @extend_schema(
        summary="Change booking status",
        request=StatusUpdateSerializer,
        responses={200: BookingSerializer, 409: {"description": "Transition not allowed"}},
    )
    def post(self, request, *args, **kwargs):
        booking = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = BookingService.update_status(booking.pk, serializer.validated_data["status"])
        return Response(BookingSerializer(booking).data)


class AssignTableView(StaffBookingMixin, generics.GenericAPIView):
    serializer_class = AssignTableSerializer

    @extend_schema(
        summary="Assign a table",
        request=AssignTableSerializer,
        responses={200: BookingSerializer, 409: {"description": "Table not available"}},
    )
    def post(self, request, *args, **kwargs):
        booking = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = BookingService.assign_table(booking.pk, serializer.validated_data["table"])
        return Response(BookingSerializer(booking).data)


class SuggestedTablesView(StaffBookingMixin, generics.GenericAPIView):
    """
    Tables free at the booking's slot, best fit for the party first.
    """

    serializer_class = TableOptionSerializer

    def get(self, request, *args, **kwargs):
        booking = self.get_object()
        tables = SlotAvailabilityService.suggest_tables(
            booking.restaurant_id,
            booking.date,
            booking.time,
            booking.party_size,
            exclude_booking_id=booking.pk,
        )
        return Response(TableOptionSerializer(tables, many=True).data)


class WalkInCreateView(generics.GenericAPIView):
    permission_classes = [permissions.IsStaffOrAbove]
    serializer_class = WalkInSerializer

    @extend_schema(
        summary="Add a walk-in",
        request=WalkInSerializer,
        responses={201: BookingSerializer, 409: {"description": "No capacity right now"}},
    )
    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if not request.user.works_at(data["restaurant"].pk):
            raise NotFound(f"Restaurant {data['restaurant'].pk} not found.")

        booking = BookingService.create_walk_in(
            restaurant_id=data["restaurant"].pk,
            user_name=data["user_name"],
            party_size=data["party_size"],
            user_phone=data.get("user_phone", ""),
            special_requests=data.get("special_requests", ""),
        )
        return Response(BookingSerializer(booking).data, status=status.HTTP_201_CREATED)


class TimeSlotGroupsView(APIView):
    """
    Staff reservations screen: the day's bookings per slot plus the
    capacity bar figures.
    """

    permission_classes = [permissions.IsStaffOrAbove, permissions.WorksAtRestaurant]

    @extend_schema(
        parameters=[OpenApiParameter(name="date", type=str, description="Date (YYYY-MM-DD)")],
        responses={200: TimeSlotGroupSerializer(many=True)},
    )
    def get(self, request, restaurant_id):
        query_serializer = AvailabilityQuerySerializer(
            data={"restaurant": restaurant_id, "date": request.query_params.get("date")}
        )
        query_serializer.is_valid(raise_exception=True)
        check_date = query_serializer.validated_data["date"]

        groups = ReservationDirectory.group_by_time_slot(restaurant_id, check_date)
        overview = SlotAvailabilityService.capacity_overview(restaurant_id, check_date)

        return Response(
            {
                "date": check_date,
                "capacity": CapacityOverviewSerializer(overview).data,
                "groups": TimeSlotGroupSerializer(groups, many=True).data,
            }
        )


class BookingStatsView(APIView):
    permission_classes = [permissions.IsStaffOrAbove, permissions.WorksAtRestaurant]

    @extend_schema(responses={200: BookingStatsSerializer})
    def get(self, request, restaurant_id):
        stats = ReservationDirectory.stats(restaurant_id)
        return Response(BookingStatsSerializer(stats).data)


class UpcomingBookingsView(generics.ListAPIView):
    serializer_class = BookingSerializer
    permission_classes = [permissions.IsAuthenticatedUser]

    def get_queryset(self):
        return ReservationDirectory.upcoming_for_user(self.request.user)


class BookingHistoryView(generics.ListAPIView):
    serializer_class = BookingSerializer
    permission_classes = [permissions.IsAuthenticatedUser]

    def get_queryset(self):
        return ReservationDirectory.history_for_user(self.request.user)


class BookingEventListView(generics.ListAPIView):
    """
    Staff notification feed of a restaurant, newest first.
    """

    serializer_class = BookingEventSerializer
    permission_classes = [permissions.IsStaffOrAbove, permissions.WorksAtRestaurant]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["read", "event_type"]

    def get_queryset(self):
        return BookingEvent.objects.filter(restaurant_id=self.kwargs["restaurant_id"])


class BookingEventReadView(generics.GenericAPIView):
    serializer_class = BookingEventSerializer
    permission_classes = [permissions.IsStaffOrAbove]

    def get_queryset(self):
        user = self.request.user
        if user.is_admin:
            return BookingEvent.objects.all()
        return BookingEvent.objects.filter(restaurant_id=user.restaurant_id)

    @extend_schema(request=None, responses={200: BookingEventSerializer})
    def post(self, request, *args, **kwargs):
        event = self.get_object()
        event.mark_read()
        return Response(self.get_serializer(event).data)


class MarkAllEventsReadView(APIView):
    permission_classes = [permissions.IsStaffOrAbove, permissions.WorksAtRestaurant]

    @extend_schema(request=None, responses={200: {"description": "Number of events marked read"}})
    def post(self, request, restaurant_id):
        updated = BookingEvent.objects.filter(restaurant_id=restaurant_id, read=False).update(
            read=True
        )
        return Response({"updated": updated})
