from rest_framework.permissions import BasePermission


class IsDataroomUser(BasePermission):
    """Any logged-in dataroom user."""

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated)


class IsDataroomAdmin(BasePermission):
    """Logged-in user with the admin role."""

    message = 'Admin access required'

    def has_permission(self, request, view):
        user = request.user
        return bool(
            user and user.is_authenticated
            and getattr(user, 'role', None) == 'admin'
        )
