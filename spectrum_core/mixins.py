# spectrum_core/mixins.py
from __future__ import annotations

from django.core.exceptions import FieldDoesNotExist
from rest_framework.exceptions import PermissionDenied, ValidationError

from . import audit
from .permissions import resolve_current_laboratory
from .middleware import bind_request_user


# ===============================================================
# Utilities
# ===============================================================

def _model_has_field(model_cls, field_name: str) -> bool:
    try:
        model_cls._meta.get_field(field_name)
        return True
    except FieldDoesNotExist:
        return False


def _deny_if_payload_has(request, fields: list[str], message: str):
    """
    Reject requests that attempt to mutate server-controlled fields.
    Makes violations noisy and testable.
    """
    incoming = getattr(request, "data", {}) or {}
    present = [f for f in fields if f in incoming]
    if present:
        raise ValidationError({f: message for f in present})


def require_laboratory(request):
    lab = resolve_current_laboratory(request)
    if not lab:
        raise PermissionDenied(
            "Active laboratory not set or not permitted. Provide ?lab=<id> or X-Laboratory header."
        )
    return lab


# ===============================================================
# Lab-scoped queryset mixin (READ)
# ===============================================================

class LabScopedQuerysetMixin:
    """
    Restricts querysets to the active laboratory.

    Models without a direct `laboratory` FK declare the path to it via
    `lab_field_name` (e.g. "sample__laboratory").
    """

    lab_field_name = "laboratory"

    def get_laboratory(self):
        if not hasattr(self, "_laboratory"):
            self._laboratory = require_laboratory(self.request)
        return self._laboratory

    def get_scoped_queryset(self, base_qs):
        user = getattr(self.request, "user", None)
        if not user or not user.is_authenticated:
            return base_qs.none()

        lab = resolve_current_laboratory(self.request)
        if not lab:
            return base_qs.none()
        self._laboratory = lab

        return base_qs.filter(**{self.lab_field_name: lab})

    def get_serializer_context(self):
        context = super().get_serializer_context()
        user = getattr(self.request, "user", None)
        if user is not None and user.is_authenticated:
            context["laboratory"] = resolve_current_laboratory(self.request)
        return context


# ===============================================================
# Audit logging
# ===============================================================

class AuditLogMixin:
    """
    Emits create / edit / delete audit records for plain CRUD endpoints.

    Views whose writes go through a service leave the audit entry to the
    service and set `audit_crud = False`.
    """

    audit_crud = True

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        # request.user is only final after DRF authentication (JWT)
        bind_request_user(request.user)

    def _guess_lab(self, instance):
        if instance is not None and _model_has_field(instance.__class__, "laboratory"):
            return getattr(instance, "laboratory", None)
        return resolve_current_laboratory(self.request)

    def _audit(self, action: str, instance, label=None):
        if not self.audit_crud:
            return
        audit.record(
            laboratory=self._guess_lab(instance),
            user=self.request.user,
            module=getattr(self, "permission_module", None) or "admin",
            action=action,
            details=f"{action.capitalize()} {instance.__class__.__name__}: {label or instance}",
            data={"id": instance.pk},
        )

    def perform_create(self, serializer):
        instance = serializer.save()
        self._audit("create", instance)

    def perform_update(self, serializer):
        instance = serializer.save()
        self._audit("edit", instance)

    def perform_destroy(self, instance):
        label = str(instance)
        lab = self._guess_lab(instance)
        obj_id = instance.pk
        super().perform_destroy(instance)
        if self.audit_crud:
            audit.record(
                laboratory=lab,
                user=self.request.user,
                module=getattr(self, "permission_module", None) or "admin",
                action="delete",
                details=f"Delete {instance.__class__.__name__}: {label}",
                data={"id": obj_id},
            )
