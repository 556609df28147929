# spectrum_core/workflows/executor.py

from __future__ import annotations

import logging

from django.db import transaction

from rest_framework.exceptions import ValidationError

from spectrum_core.workflows import (
    SYSTEM_ONLY_TARGETS,
    is_terminal,
    normalize_kind,
    normalize_state,
)
from spectrum_core.workflows.transition_service import transition_object

logger = logging.getLogger(__name__)


def execute_transition(
    *,
    instance,
    kind: str,
    new_status: str,
    user=None,
    comment: str = "",
    fields=None,
    system: bool = False,
) -> dict:
    """
    Move `instance` to `new_status`, surfacing rule violations as DRF
    ValidationError({"status": ...}).

    system=True is used by the services that own the system-only targets
    (conversion, consolidation, result entry, publication).
    """
    kind = normalize_kind(kind)
    target = normalize_state(new_status)
    user = user if getattr(user, "is_authenticated", False) else None

    with transaction.atomic():
        locked = instance.__class__.objects.select_for_update().get(pk=instance.pk)
        current = normalize_state(locked.status)

        if current != target:
            # 1) Terminal state lock
            if is_terminal(kind, current):
                raise ValidationError(
                    {"status": f"{kind.capitalize()} is in terminal state '{current}' and cannot be modified."}
                )

            # 2) Targets owned by dedicated operations
            if not system and target in SYSTEM_ONLY_TARGETS.get(kind, set()):
                raise ValidationError(
                    {"status": f"{kind.capitalize()} cannot be moved to '{target}' directly."}
                )

        # 3) Legality + timeline + status write
        try:
            result = transition_object(
                kind=kind,
                object_id=instance.pk,
                to_status=target,
                performed_by=user,
                comment=comment,
                fields=fields,
            )
        except ValueError as e:
            raise ValidationError({"status": str(e)})

    if result["changed"]:
        instance.status = target
        for name, value in (fields or {}).items():
            setattr(instance, name, value)
        logger.info(
            "%s %s: %s -> %s",
            kind,
            instance.pk,
            result["from_status"],
            result["to_status"],
        )

    return result
