from rest_framework import serializers
from .models import Restaurant, Table


class TableSerializer(serializers.ModelSerializer):
    class Meta:
        model = Table
        fields = ['id', 'restaurant', 'name', 'capacity', 'is_active', 'position']


class RestaurantSerializer(serializers.ModelSerializer):
    tables = TableSerializer(many=True, read_only=True)
    has_availability = serializers.SerializerMethodField()

    class Meta:
        model = Restaurant
        fields = ['id', 'name', 'address', 'phone', 'tables', 'has_availability', 'created_at']
        read_only_fields = ['created_at']

    def get_has_availability(self, obj) -> bool:
        return hasattr(obj, 'availability')
