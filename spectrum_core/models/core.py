# spectrum_core/models/core.py

from django.conf import settings
from django.db import models


# ============================================================
# Base
# ============================================================
class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ============================================================
# Laboratory (tenant)
# ============================================================
class Laboratory(TimeStampedModel):
    code = models.CharField(max_length=30, unique=True)
    name = models.CharField(max_length=255)
    address = models.CharField(max_length=500, blank=True)
    phone = models.CharField(max_length=50, blank=True)
    email = models.EmailField(blank=True)
    is_active = models.BooleanField(default=True)

    # Zoho Books credentials (per lab)
    zoho_client_id = models.CharField(max_length=255, blank=True)
    zoho_client_secret = models.CharField(max_length=255, blank=True)
    zoho_refresh_token = models.CharField(max_length=500, blank=True)
    zoho_org_id = models.CharField(max_length=64, blank=True)
    zoho_api_domain = models.CharField(
        max_length=255,
        blank=True,
        help_text="e.g. https://www.zohoapis.com",
    )

    class Meta:
        verbose_name_plural = "laboratories"
        ordering = ["code"]

    @property
    def zoho_configured(self) -> bool:
        return all(
            [
                self.zoho_client_id,
                self.zoho_client_secret,
                self.zoho_refresh_token,
                self.zoho_org_id,
                self.zoho_api_domain,
            ]
        )

    def __str__(self):
        return f"{self.code} - {self.name}"


# ============================================================
# User Roles
# ============================================================
class UserRole(TimeStampedModel):
    class Role(models.TextChoices):
        ADMIN = "Admin", "Admin"
        LAB_MANAGER = "Lab Manager", "Lab Manager"
        ACCOUNTS = "Accounts", "Accounts"
        CHEMIST = "Chemist", "Chemist"
        REGISTRATION = "Registration", "Registration"
        SAMPLER = "Sampler", "Sampler"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="lims_roles",
    )
    laboratory = models.ForeignKey(
        Laboratory,
        on_delete=models.PROTECT,
        related_name="user_roles",
    )
    role = models.CharField(max_length=50, choices=Role.choices)

    class Meta:
        unique_together = ("user", "laboratory")

    def __str__(self):
        return f"{self.user.get_username()} - {self.role}"


# ============================================================
# Sequence counters
# ============================================================
class FormatID(models.Model):
    """
    Per-lab, per-module counter backing sequential document numbers.

    last_number only ever grows; it is incremented with a single UPDATE
    (see spectrum_core.numbering).
    """

    laboratory = models.ForeignKey(
        Laboratory,
        on_delete=models.CASCADE,
        related_name="format_ids",
    )
    module = models.CharField(max_length=32)
    prefix = models.CharField(max_length=16)
    last_number = models.PositiveIntegerField(default=0)

    class Meta:
        verbose_name = "format ID"
        constraints = [
            models.UniqueConstraint(
                fields=["laboratory", "module"],
                name="formatid_lab_module_unique",
            ),
        ]

    def __str__(self):
        return f"{self.laboratory.code}:{self.module} ({self.prefix}, {self.last_number})"


# ============================================================
# Audit Log
# ============================================================
class AuditLog(TimeStampedModel):
    laboratory = models.ForeignKey(
        Laboratory,
        on_delete=models.PROTECT,
        related_name="audit_logs",
        null=True,
        blank=True,
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    user_name = models.CharField(max_length=255, blank=True)
    module = models.CharField(max_length=32, db_index=True)
    action = models.CharField(max_length=32, db_index=True)
    details = models.TextField(blank=True)
    data = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["module", "action"], name="audit_module_action_idx"),
        ]

    def __str__(self):
        return f"{self.module}:{self.action} {self.details}"


# ============================================================
# Workflow Transition
# ============================================================
class WorkflowTransition(models.Model):
    kind = models.CharField(max_length=32)
    object_id = models.PositiveBigIntegerField()
    from_status = models.CharField(max_length=32)
    to_status = models.CharField(max_length=32)
    comment = models.TextField(blank=True)

    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="workflow_transitions",
    )

    laboratory = models.ForeignKey(
        Laboratory,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="workflow_transitions",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["kind", "object_id"], name="transition_kind_object_idx"),
        ]

    def __str__(self):
        return (
            f"{self.kind}:{self.object_id} "
            f"{self.from_status} -> {self.to_status}"
        )
