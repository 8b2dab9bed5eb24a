"""
Custom permission classes for the parking marketplace.
"""

from rest_framework import permissions


class _UserTypePermission(permissions.BasePermission):
    user_type = None

    def has_permission(self, request, view):
        # User must be authenticated
        if not request.user or not request.user.is_authenticated:
            return False

        return getattr(request.user, 'user_type', None) == self.user_type


class IsDriver(_UserTypePermission):
    """
    Allows access only to users with user_type='driver'.

    Usage:
        class MyView(APIView):
            permission_classes = [IsAuthenticated, IsDriver]
    """
    message = 'Only drivers can perform this action.'
    user_type = 'driver'


class IsHomeowner(_UserTypePermission):
    """Allows access only to users with user_type='homeowner'."""
    message = 'Only homeowners can perform this action.'
    user_type = 'homeowner'


class IsPlatformAdmin(permissions.BasePermission):
    """
    Allows access only to administrators.

    Administrators are users with user_type='admin' and Django superusers.
    """

    message = 'You do not have permission to perform this action. Administrator privileges required.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        return request.user.is_platform_admin()


class IsSpotOwnerOrAdmin(permissions.BasePermission):
    """
    Object-level permission for parking spots and objects that belong to one.

    Grants access when the user owns the spot (``obj.homeowner`` or
    ``obj.spot.homeowner``) or is an administrator.
    """

    message = 'Only the owner of this spot can modify it.'

    def has_object_permission(self, request, view, obj):
        if not request.user or not request.user.is_authenticated:
            return False

        if request.user.is_platform_admin():
            return True

        spot = getattr(obj, 'spot', obj)
        return spot.homeowner_id == request.user.id
