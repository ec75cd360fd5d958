"""Role-based DRF permissions for marketplace routes."""

from rest_framework import permissions


class IsBuyer(permissions.BasePermission):
    """Only active buyers."""

    message = "Only buyers can access this route"

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_active and user.is_buyer)


class IsSeller(permissions.BasePermission):
    """Only active sellers."""

    message = "Only sellers can access this route"

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_active and user.is_seller)
