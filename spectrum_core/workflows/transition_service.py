# spectrum_core/workflows/transition_service.py
from __future__ import annotations

from typing import Any, Dict, Optional

from django.apps import apps
from django.db import transaction
from django.utils import timezone

from spectrum_core.workflows import normalize_kind, normalize_state, validate_transition


KIND_MODEL = {
    "sample": "Sample",
    "report": "Report",
    "quotation": "Quotation",
    "contract": "Contract",
    "invoice": "Invoice",
}


def model_for_kind(kind: str):
    kind_norm = normalize_kind(kind)
    if kind_norm not in KIND_MODEL:
        raise ValueError(f"Unknown workflow kind: {kind_norm}")
    return apps.get_model("spectrum_core", KIND_MODEL[kind_norm])


def transition_object(
    *,
    kind: str,
    object_id: int,
    to_status: str,
    performed_by=None,
    comment: str = "",
    fields: Optional[Dict[str, Any]] = None,
    now=None,
) -> dict:
    """
    Atomically:
      1) Lock the row and read its current status
      2) Validate the move against the canonical workflow (ValueError)
      3) Write the WorkflowTransition row
      4) Update status (plus any companion fields) with QuerySet.update()

    The update bypasses the model save() write guard on purpose; this is the
    only code path that changes a workflow status.
    """
    from spectrum_core.models import WorkflowTransition

    now = now or timezone.now()
    kind_norm = normalize_kind(kind)
    to_status_norm = normalize_state(to_status)

    if not to_status_norm:
        raise ValueError("to_status is required")

    model = model_for_kind(kind_norm)

    with transaction.atomic():
        obj = model.objects.select_for_update().get(pk=object_id)
        from_status = normalize_state(getattr(obj, "status", ""))

        if from_status == to_status_norm:
            return {
                "changed": False,
                "kind": kind_norm,
                "object_id": obj.pk,
                "from_status": from_status,
                "to_status": to_status_norm,
                "transition_id": None,
            }

        validate_transition(kind_norm, from_status, to_status_norm)

        t = WorkflowTransition.objects.create(
            kind=kind_norm,
            object_id=obj.pk,
            from_status=from_status,
            to_status=to_status_norm,
            comment=comment or "",
            performed_by=performed_by,
            laboratory=getattr(obj, "laboratory", None),
        )

        updates = dict(fields or {})
        updates["status"] = to_status_norm
        updates["updated_at"] = now
        model.objects.filter(pk=obj.pk).update(**updates)

        return {
            "changed": True,
            "kind": kind_norm,
            "object_id": obj.pk,
            "from_status": from_status,
            "to_status": to_status_norm,
            "transition_id": t.id,
        }
