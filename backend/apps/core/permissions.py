# apps/core/permissions.py

from django.conf import settings
from django.utils.module_loading import import_string
from rest_framework import permissions


def user_is_marketplace_admin(user):
    """
    Default admin capability check.

    The authentication collaborator supplies the user; staff accounts and
    members of the ``marketplace-admin`` group are admins.
    """
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser or user.is_staff:
        return True
    return user.groups.filter(name='marketplace-admin').exists()


def get_admin_check():
    """Load the capability callable configured in settings"""
    path = getattr(settings, 'MARKETPLACE_ADMIN_CHECK', None)
    if not path:
        return user_is_marketplace_admin
    return import_string(path)


class IsMarketplaceAdmin(permissions.BasePermission):
    """
    Permission class for admin-only operations.
    """
    message = 'Admin access required'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return bool(get_admin_check()(request.user))


class IsOwnerOrMarketplaceAdmin(permissions.BasePermission):
    """
    Permission class for records owned by a user (orders, notifications).
    """

    def has_permission(self, request, view):
        return request.user and request.user.is_authenticated

    def has_object_permission(self, request, view, obj):
        if get_admin_check()(request.user):
            return True
        return getattr(obj, 'user_id', None) == request.user.id
