"""
DRF permission classes for the catalog.
"""
from rest_framework import permissions


class IsCreator(permissions.BasePermission):
    """Authenticated users whose profile role may publish (CREATOR or ADMIN)."""
    message = 'Creator or admin role required.'

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        if user.is_staff:
            return True
        profile = getattr(user, 'profile', None)
        return bool(profile and profile.can_publish)


class IsOwnerOrReadOnly(permissions.BasePermission):
    """Object-level: safe methods for anyone, writes only for the owner."""

    def has_object_permission(self, request, view, obj):
        if request.method in permissions.SAFE_METHODS:
            return True
        return obj.owner_id == request.user.id


class IsOwnerOrStaff(permissions.BasePermission):
    def has_object_permission(self, request, view, obj):
        return request.user.is_staff or obj.owner_id == request.user.id
