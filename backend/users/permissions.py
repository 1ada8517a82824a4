from rest_framework import permissions

from shopdrop_backend.exceptions import RoleNotAllowed
from .models import User


def allow_roles(*roles):
    """
    Builds a permission class admitting only the given roles.

    Usage:
        permission_classes = [allow_roles(User.Roles.RIDER)]
    """
    allowed = frozenset(User.Roles(role) for role in roles)

    class RolePermission(permissions.IsAuthenticated):
        def has_permission(self, request, view):
            if not super().has_permission(request, view):
                return False

            principal = request.auth
            role = getattr(principal, "role", None) or getattr(request.user, "role", None)
            if role in allowed:
                return True

            # Admin tokens are not a superset of customer access
            if role == User.Roles.ADMIN and allowed == {User.Roles.CUSTOMER}:
                raise RoleNotAllowed("Admins cannot perform customer actions.")
            raise RoleNotAllowed()

    RolePermission.__name__ = "Allow" + "".join(role.title().replace("_", "") for role in sorted(allowed))
    return RolePermission


IsCustomer = allow_roles(User.Roles.CUSTOMER)
IsShopOwner = allow_roles(User.Roles.SHOP_OWNER)
IsRider = allow_roles(User.Roles.RIDER)
IsAdmin = allow_roles(User.Roles.ADMIN)
