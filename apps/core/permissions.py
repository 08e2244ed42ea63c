"""
Access control: principal-type and role gates as DRF permission classes,
plus resource-aware ownership checks used by views and services.
"""
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import BasePermission

from .models import INTERNAL_USER, SHIPPER_USER, DRIVER


def principal_type_of(user):
    return getattr(user, 'principal_type', None)


def is_internal(user, *roles):
    if principal_type_of(user) != INTERNAL_USER:
        return False
    return not roles or user.role in roles


def is_shipper(user):
    return principal_type_of(user) == SHIPPER_USER


def is_driver(user):
    return principal_type_of(user) == DRIVER


class IsInternalUser(BasePermission):
    message = 'Access denied. Internal user required.'

    def has_permission(self, request, view):
        return is_internal(request.user)


class IsShipperUser(BasePermission):
    message = 'Access denied. Shipper user required.'

    def has_permission(self, request, view):
        return is_shipper(request.user)


class IsDriver(BasePermission):
    message = 'Access denied. Driver required.'

    def has_permission(self, request, view):
        return is_driver(request.user)


def HasRole(*roles):
    """Internal user holding one of ``roles``."""

    class _HasRole(BasePermission):
        message = f"Access denied. Required role: {', '.join(roles)}"

        def has_permission(self, request, view):
            return is_internal(request.user, *roles)

    return _HasRole


def HasPrincipalType(*principal_types):

    class _HasPrincipalType(BasePermission):
        message = f"Access denied. Allowed user types: {', '.join(principal_types)}"

        def has_permission(self, request, view):
            return principal_type_of(request.user) in principal_types

    return _HasPrincipalType


def HasShipperPermission(*permissions):
    """Shipper user granted every one of ``permissions``."""

    class _HasShipperPermission(BasePermission):
        message = f"Missing required permissions: {', '.join(permissions)}"

        def has_permission(self, request, view):
            if not is_shipper(request.user):
                return False
            granted = set(request.user.permission_codes())
            return all(permission in granted for permission in permissions)

    return _HasShipperPermission


# Ownership checks. Internal principals always pass.

def ensure_load_access(user, load):
    if is_internal(user):
        return
    if is_shipper(user) and load.shipper_client_id == user.shipper_client_id:
        return
    if is_driver(user) and load.assignments.filter(driver_id=user.pk).exists():
        return
    raise PermissionDenied('Access denied. You do not own this resource.')


def ensure_invoice_access(user, invoice):
    if is_internal(user):
        return
    if is_shipper(user) and invoice.shipper_client_id == user.shipper_client_id:
        return
    raise PermissionDenied('Access denied. You do not own this resource.')


def ensure_assignment_owner(user, assignment):
    if is_internal(user):
        return
    if is_driver(user) and assignment.driver_id == user.pk:
        return
    raise PermissionDenied('Access denied. This is not your assignment.')


def ensure_settlement_access(user, settlement):
    if is_internal(user):
        return
    if is_driver(user) and settlement.driver_id == user.pk:
        return
    raise PermissionDenied('Access denied. This is not your settlement.')


def ensure_driver_self(user, driver_id):
    if is_internal(user):
        return
    if is_driver(user) and str(user.pk) == str(driver_id):
        return
    raise PermissionDenied('Access denied.')


class ActionPermissionsMixin:
    """
    ViewSet mixin selecting permission classes per action from
    ``permission_classes_by_action``; unknown actions use ``permission_classes``.
    """
    permission_classes_by_action = {}

    def get_permissions(self):
        classes = self.permission_classes_by_action.get(self.action, self.permission_classes)
        return [permission() for permission in classes]
