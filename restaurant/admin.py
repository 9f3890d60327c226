# restaurant/admin.py

from django.contrib import admin
from .models import Restaurant, Table


class TableInline(admin.TabularInline):
    """
    Inline admin for tables within restaurant admin page.
    """
    model = Table
    extra = 1
    fields = ('name', 'capacity', 'is_active', 'position')


@admin.register(Restaurant)
class RestaurantAdmin(admin.ModelAdmin):
    list_display = ('name', 'phone', 'created_at')
    search_fields = ('name', 'address', 'phone')
    ordering = ('name',)
    readonly_fields = ('created_at',)

    inlines = [TableInline]


@admin.register(Table)
class TableAdmin(admin.ModelAdmin):
    list_display = ('name', 'restaurant', 'capacity', 'is_active', 'position')
    list_filter = ('is_active', 'restaurant')
    search_fields = ('restaurant__name', 'name')
    ordering = ('restaurant', 'position', 'name')
    list_select_related = ('restaurant',)
