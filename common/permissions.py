from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from rest_framework.exceptions import NotAuthenticated, PermissionDenied
from rest_framework.permissions import BasePermission

from core.models import User

logger = logging.getLogger("security.authorization")

ROLE_CAPABILITY_MATRIX = {
    "counter.access": {User.Role.CASHIER, User.Role.ADMIN},
    "transactions.view_all": {User.Role.ADMIN},
    "catalog.manage": {User.Role.ADMIN},
    "user.manage": {User.Role.ADMIN},
    "reports.view": {User.Role.ADMIN},
    "admin.records.manage": {User.Role.ADMIN},
    "session.close.override": {User.Role.ADMIN},
}


def get_user_role(user):
    if not user or not user.is_authenticated:
        return None
    if user.is_superuser:
        return User.Role.ADMIN
    return getattr(user, "role", None) or None


def user_has_capability(user, capability):
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    allowed_roles = ROLE_CAPABILITY_MATRIX.get(capability)
    if not allowed_roles:
        return False
    return get_user_role(user) in allowed_roles


@dataclass(frozen=True)
class AuthContext:
    """Identity of the caller, resolved once per request and handed to services."""

    user_id: uuid.UUID
    email: str
    name: str
    role: str | None

    @classmethod
    def from_user(cls, user):
        if not user or not user.is_authenticated:
            raise NotAuthenticated()
        return cls(
            user_id=user.id,
            email=user.email,
            name=user.display_name,
            role=get_user_role(user),
        )

    @classmethod
    def from_request(cls, request):
        auth = cls.from_user(getattr(request, "user", None))
        if auth.role is None:
            raise PermissionDenied("Forbidden - No role assigned.")
        return auth

    @property
    def is_admin(self):
        return self.role == User.Role.ADMIN

    def can(self, capability):
        allowed_roles = ROLE_CAPABILITY_MATRIX.get(capability)
        return bool(allowed_roles) and self.role in allowed_roles


class RoleCapabilityPermission(BasePermission):
    """Permission class that validates role capability by action/method and logs denied attempts."""

    message = "You do not have permission to perform this action."

    def has_permission(self, request, view):
        capability_map = getattr(view, "permission_action_map", {})
        action_key = getattr(view, "action", None) or request.method.lower()
        capability = capability_map.get(action_key)
        if capability is None:
            return True

        allowed = user_has_capability(request.user, capability)
        if not allowed:
            if request.user and request.user.is_authenticated and get_user_role(request.user) is None:
                self.message = "Forbidden - No role assigned."
            logger.warning(
                "permission_denied capability=%s user=%s role=%s method=%s path=%s view=%s action=%s",
                capability,
                getattr(request.user, "email", None) or "anonymous",
                get_user_role(request.user),
                request.method,
                request.path,
                view.__class__.__name__,
                action_key,
            )
        return allowed
