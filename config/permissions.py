# config/permissions.py

from rest_framework import permissions


class IsAuthenticatedUser(permissions.BasePermission):
    """
    Permission class for authenticated guests.
    Used for: Making bookings, viewing own bookings.
    """
    message = 'Authentication is required for this action.'

    def has_permission(self, request, view):
        return bool(
            request.user and
            request.user.is_authenticated and
            request.user.is_active
        )


class IsManagerOrAdmin(permissions.BasePermission):
    """
    Permission class that allows managers and admins.
    Used for: Availability configuration, table management.
    """
    message = 'Only managers and admins can perform this action.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return request.user.has_role('manager', 'admin')


class IsStaffOrAbove(permissions.BasePermission):
    """
    Permission class that allows staff, managers, and admins.
    Used for: Staff console (status changes, walk-ins, table assignment, stats).
    """
    message = 'Only staff members can perform this action.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return request.user.has_role('staff', 'manager', 'admin')


class WorksAtRestaurant(permissions.BasePermission):
    """
    Restaurant-scoped staff views: the restaurant in the URL must be the
    one the staff member works at (admins pass everywhere).
    """
    message = 'You can only manage your own restaurant.'

    def has_permission(self, request, view):
        restaurant_id = view.kwargs.get('restaurant_id')
        if restaurant_id is None:
            return True
        return request.user.works_at(int(restaurant_id))


class IsOwnerOrStaff(permissions.BasePermission):
    """
    Permission class that allows object owners or the restaurant's staff.
    Used for: Viewing/Cancelling own bookings.
    """
    message = 'You can only access your own resources.'

    def has_object_permission(self, request, view, obj):
        if hasattr(obj, 'restaurant_id') and request.user.works_at(obj.restaurant_id):
            return True

        if hasattr(obj, 'user_id'):
            return obj.user_id == request.user.pk

        return False
