# spectrum_core/permissions.py
from __future__ import annotations

from typing import Dict, Optional, Set

from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import BasePermission

from .models import Laboratory, UserRole


# ------------------------------------------------------------------
# Role definitions
# ------------------------------------------------------------------
ADMIN_ROLE = UserRole.Role.ADMIN

MODULES = ("dashboard", "masters", "process", "accounts", "reports", "admin")
ACTIONS = ("view", "create", "edit", "delete")

ALL_PERMISSIONS: Set[str] = {f"{m}:{a}" for m in MODULES for a in ACTIONS}

ROLE_PERMISSIONS: Dict[str, Set[str]] = {
    UserRole.Role.ADMIN: set(ALL_PERMISSIONS),
    UserRole.Role.LAB_MANAGER: {
        "dashboard:view",
        "masters:view", "masters:create", "masters:edit",
        "process:view", "process:create", "process:edit",
        "reports:view",
    },
    UserRole.Role.ACCOUNTS: {
        "dashboard:view",
        "masters:view", "masters:create", "masters:edit",
        "accounts:view", "accounts:create", "accounts:edit",
    },
    UserRole.Role.CHEMIST: {
        "dashboard:view",
        "process:view", "process:create", "process:edit",
        "reports:view",
    },
    UserRole.Role.REGISTRATION: {
        "dashboard:view",
        "masters:view", "masters:create",
        "process:view", "process:create",
    },
    UserRole.Role.SAMPLER: {
        "dashboard:view",
        "process:view", "process:create",
    },
}

METHOD_ACTIONS = {
    "GET": "view",
    "HEAD": "view",
    "OPTIONS": "view",
    "POST": "create",
    "PUT": "edit",
    "PATCH": "edit",
    "DELETE": "delete",
}


# ------------------------------------------------------------------
# Utilities
# ------------------------------------------------------------------
def _parse_int(value) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def resolve_current_laboratory(request) -> Optional[Laboratory]:
    """
    Canonical lab resolver used by permissions and views.

    Priority:
      1) ?lab=<id>
      2) X-Laboratory header
      3) single-lab auto resolution via UserRole
      4) superuser with exactly one active lab
    """
    user = getattr(request, "user", None)
    if not user or not user.is_authenticated:
        return None

    lab_id = _parse_int(getattr(request, "query_params", {}).get("lab"))
    if lab_id is None:
        lab_id = _parse_int(getattr(request, "headers", {}).get("X-Laboratory"))

    if lab_id is not None:
        try:
            lab = Laboratory.objects.get(id=lab_id, is_active=True)
        except Laboratory.DoesNotExist:
            return None

        if user.is_superuser:
            return lab

        if UserRole.objects.filter(user=user, laboratory=lab).exists():
            return lab

        return None

    labs = list(
        Laboratory.objects.filter(
            is_active=True,
            user_roles__user=user,
        ).distinct()[:2]
    )
    if len(labs) == 1:
        return labs[0]

    if user.is_superuser:
        only = list(Laboratory.objects.filter(is_active=True)[:2])
        if len(only) == 1:
            return only[0]

    return None


def user_role(user, laboratory) -> Optional[str]:
    if not user or not user.is_authenticated or laboratory is None:
        return None
    if user.is_superuser:
        return ADMIN_ROLE
    return (
        UserRole.objects.filter(user=user, laboratory=laboratory)
        .values_list("role", flat=True)
        .first()
    )


def user_permissions(user, laboratory) -> Set[str]:
    return set(ROLE_PERMISSIONS.get(user_role(user, laboratory), set()))


def has_permission(user, laboratory, module: str, action: str) -> bool:
    role = user_role(user, laboratory)
    if role is None:
        return False
    # Admin bypasses all permission checks
    if role == ADMIN_ROLE:
        return True
    return f"{module}:{action}" in ROLE_PERMISSIONS.get(role, set())


def require_permission(user, laboratory, module: str, action: str) -> None:
    if not has_permission(user, laboratory, module, action):
        raise PermissionDenied(f"Permission denied: {module}:{action}")


# ------------------------------------------------------------------
# Permission class
# ------------------------------------------------------------------
class HasModulePermission(BasePermission):
    """
    Maps the request onto a `module:action` permission in the active lab.

    The view declares `permission_module`; the action comes from the HTTP
    method unless the view (or an @action via initkwargs) sets
    `permission_action`.

    Lab resolved via:
      ?lab=<id> or X-Laboratory header
      else single-lab auto resolution
    """

    message = (
        "No active laboratory. Provide ?lab=<id> or X-Laboratory header "
        "and ensure you have a role in it."
    )

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False

        module = getattr(view, "permission_module", None)
        if not module:
            return True

        lab = resolve_current_laboratory(request)
        if not lab:
            raise PermissionDenied(self.message)

        action = getattr(view, "permission_action", None) or METHOD_ACTIONS.get(request.method, "edit")
        require_permission(user, lab, module, action)
        return True

    def has_object_permission(self, request, view, obj):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False
        if user.is_superuser:
            return True

        obj_lab_id = getattr(obj, "laboratory_id", None)
        if obj_lab_id is None:
            return True
        return UserRole.objects.filter(user=user, laboratory_id=obj_lab_id).exists()
