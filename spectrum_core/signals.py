# spectrum_core/signals.py
from __future__ import annotations

import logging
from threading import local

from django.conf import settings
from django.core.mail import send_mail
from django.db.models.signals import post_save
from django.dispatch import receiver

from spectrum_core.models import AuditLog, WorkflowTransition

logger = logging.getLogger(__name__)

# ===============================================================
# Thread-local user storage
# ===============================================================
_state = local()


def set_current_user(user):
    _state.user = user


def get_current_user():
    return getattr(_state, "user", None)


# ===============================================================
# Utilities
# ===============================================================
KIND_MODULE = {
    "sample": "process",
    "report": "reports",
    "quotation": "accounts",
    "contract": "accounts",
    "invoice": "accounts",
}


def _safe_username(user) -> str:
    if not user:
        return "system"
    full_name = ""
    if hasattr(user, "get_full_name"):
        full_name = (user.get_full_name() or "").strip()
    return full_name or user.get_username()


# ===============================================================
# WORKFLOW TRANSITIONS
# ===============================================================
@receiver(post_save, sender=WorkflowTransition)
def audit_workflow_transition(sender, instance: WorkflowTransition, created: bool, **kwargs):
    """
    Handles side effects of workflow transitions:
    - audit log entry
    - optional email notification
    """
    if not created:
        return

    user = instance.performed_by or get_current_user()

    AuditLog.objects.create(
        user=user,
        user_name=_safe_username(user),
        laboratory=instance.laboratory,
        module=KIND_MODULE.get(instance.kind, instance.kind),
        action="transition",
        details=(
            f"{instance.kind} {instance.object_id}: "
            f"{instance.from_status} -> {instance.to_status}"
        ),
        data={
            "kind": instance.kind,
            "object_id": instance.object_id,
            "from": instance.from_status,
            "to": instance.to_status,
            "comment": instance.comment,
        },
    )

    if not getattr(settings, "WORKFLOW_EMAIL_NOTIFICATIONS", False):
        return

    recipients = getattr(settings, "WORKFLOW_NOTIFY_EMAILS", None)
    if not recipients:
        return

    subject = (
        f"[Spectrum LIMS] {instance.kind.upper()} {instance.object_id} "
        f"{instance.from_status} -> {instance.to_status}"
    )

    body = "\n".join(
        [
            "Workflow transition recorded.",
            "",
            f"Kind: {instance.kind}",
            f"Object ID: {instance.object_id}",
            f"Laboratory: {instance.laboratory}",
            f"From: {instance.from_status}",
            f"To: {instance.to_status}",
            f"By: {_safe_username(user)}",
            f"At: {instance.created_at}",
        ]
    )

    sent = send_mail(
        subject=subject,
        message=body,
        from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
        recipient_list=list(recipients),
        fail_silently=True,
    )
    if not sent:
        logger.warning("Workflow notification for %s %s was not delivered", instance.kind, instance.object_id)
