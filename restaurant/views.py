from django.db.models import ProtectedError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response
from rest_framework.viewsets import ModelViewSet
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema

from booking.serializers import AvailabilityConfigSerializer
from config.permissions import IsManagerOrAdmin
from .models import Restaurant, Table
from . import onboarding
from .serializers import RestaurantSerializer, TableSerializer


class RestaurantViewSet(ModelViewSet):
    serializer_class = RestaurantSerializer
    permission_classes = [IsManagerOrAdmin]

    def get_queryset(self):
        queryset = Restaurant.objects.prefetch_related('tables')
        user = self.request.user
        if user.is_admin:
            return queryset
        return queryset.filter(pk=user.restaurant_id)

    def destroy(self, request, *args, **kwargs):
        try:
            return super().destroy(request, *args, **kwargs)
        except ProtectedError:
            return Response(
                {'detail': 'Restaurants with bookings cannot be deleted.'},
                status=status.HTTP_409_CONFLICT,
            )

    @extend_schema(request=None, responses={201: AvailabilityConfigSerializer})
    @action(detail=True, methods=['post'], url_path='init-availability')
    def init_availability(self, request, pk=None):
        """
        Apply the default lunch and dinner schedule to this restaurant.
        """
        restaurant = self.get_object()
        config = onboarding.init_availability(restaurant.pk)
        return Response(config.as_dict(), status=status.HTTP_201_CREATED)


class TableViewSet(ModelViewSet):
    """
    Floor-plan tables. Deactivate rather than delete tables that bookings use.
    """
    serializer_class = TableSerializer
    permission_classes = [IsManagerOrAdmin]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['restaurant', 'is_active']

    def get_queryset(self):
        queryset = Table.objects.select_related('restaurant')
        user = self.request.user
        if user.is_admin:
            return queryset
        return queryset.filter(restaurant_id=user.restaurant_id)

    def perform_create(self, serializer):
        restaurant = serializer.validated_data['restaurant']
        if not self.request.user.works_at(restaurant.pk):
            raise PermissionDenied('You can only manage your own restaurant.')
        serializer.save()

    def perform_update(self, serializer):
        restaurant = serializer.validated_data.get('restaurant', serializer.instance.restaurant)
        if not self.request.user.works_at(restaurant.pk):
            raise PermissionDenied('You can only manage your own restaurant.')
        serializer.save()
