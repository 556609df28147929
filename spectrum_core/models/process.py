# spectrum_core/models/process.py

from django.conf import settings
from django.db import models

from spectrum_core.workflows.guards import WorkflowWriteGuardMixin

from .core import TimeStampedModel


# ============================================================
# Registration (one intake session, N sub-samples)
# ============================================================
class Registration(TimeStampedModel):
    laboratory = models.ForeignKey(
        "spectrum_core.Laboratory",
        on_delete=models.PROTECT,
        related_name="registrations",
    )
    registration_number = models.CharField(max_length=64, unique=True)
    sequence_number = models.PositiveIntegerField(null=True, blank=True)
    client = models.ForeignKey(
        "spectrum_core.Customer",
        on_delete=models.PROTECT,
        related_name="registrations",
    )
    job_type = models.CharField(max_length=32, default="testing")
    priority = models.CharField(max_length=16, default="normal")
    reference = models.CharField(max_length=255, blank=True)
    collection_date = models.DateTimeField(null=True, blank=True)
    collection_location = models.CharField(max_length=255, blank=True)
    collected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    registered_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    registered_at = models.DateTimeField(null=True, blank=True)
    sampling_method = models.CharField(max_length=32, default="NP")
    sheet_number = models.CharField(max_length=64, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return self.registration_number


# ============================================================
# Sample
# ============================================================
class Sample(WorkflowWriteGuardMixin, TimeStampedModel):
    WORKFLOW_FIELD = "status"
    NUMBER_FIELD = "sample_number"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        REGISTERED = "registered", "Registered"
        ASSIGNED = "assigned", "Assigned"
        TESTING = "testing", "Testing"
        COMPLETED = "completed", "Completed"
        REPORTED = "reported", "Reported"

    class Priority(models.TextChoices):
        NORMAL = "normal", "Normal"
        URGENT = "urgent", "Urgent"
        RUSH = "rush", "Rush"

    laboratory = models.ForeignKey(
        "spectrum_core.Laboratory",
        on_delete=models.PROTECT,
        related_name="samples",
    )
    registration = models.ForeignKey(
        Registration,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="samples",
    )

    sample_number = models.CharField(max_length=64, unique=True)
    sequence_number = models.PositiveIntegerField(null=True, blank=True)
    sub_sample_number = models.PositiveIntegerField(null=True, blank=True)
    sample_group = models.CharField(max_length=2, blank=True)

    client = models.ForeignKey(
        "spectrum_core.Customer",
        on_delete=models.PROTECT,
        related_name="samples",
    )
    sample_type = models.ForeignKey(
        "spectrum_core.SampleType",
        on_delete=models.PROTECT,
        related_name="samples",
    )

    description = models.TextField(blank=True)
    quantity = models.CharField(max_length=64, blank=True)
    sample_condition = models.CharField(max_length=255, blank=True)
    priority = models.CharField(max_length=16, choices=Priority.choices, default=Priority.NORMAL)
    job_type = models.CharField(max_length=32, default="testing")
    reference = models.CharField(max_length=255, blank=True)
    notes = models.TextField(blank=True)

    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.REGISTERED,
        db_index=True,
    )

    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="assigned_samples",
    )
    collected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="collected_samples",
    )
    registered_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="registered_samples",
    )
    registered_at = models.DateTimeField(null=True, blank=True)
    collection_date = models.DateTimeField(null=True, blank=True)
    collection_location = models.CharField(max_length=255, blank=True)
    sample_point = models.CharField(max_length=255, blank=True)

    # Trash
    deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)
    deleted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["laboratory", "status"], name="sample_lab_status_idx"),
        ]

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __str__(self):
        return self.sample_number


# ============================================================
# Test Result
# ============================================================
class TestResult(TimeStampedModel):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        COMPLETED = "completed", "Completed"

    sample = models.ForeignKey(
        Sample,
        on_delete=models.CASCADE,
        related_name="test_results",
    )
    parameter = models.CharField(max_length=255)
    test_method = models.CharField(max_length=255, blank=True)
    unit = models.CharField(max_length=64, blank=True)
    spec_min = models.CharField(max_length=64, blank=True)
    spec_max = models.CharField(max_length=64, blank=True)
    tat = models.PositiveIntegerField("turnaround (days)", null=True, blank=True)
    due_date = models.DateTimeField(null=True, blank=True)

    result_value = models.CharField(max_length=255, blank=True)
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )
    entered_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="entered_results",
    )
    entered_at = models.DateTimeField(null=True, blank=True)

    # pytest would otherwise try to collect this model as a test class
    __test__ = False

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.sample.sample_number}: {self.parameter}"


# ============================================================
# Report (Certificate of Analysis)
# ============================================================
class Report(WorkflowWriteGuardMixin, TimeStampedModel):
    WORKFLOW_FIELD = "status"
    NUMBER_FIELD = "report_number"

    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        REVIEW = "review", "Review"
        REVISION = "revision", "Revision Required"
        APPROVED = "approved", "Approved"
        PUBLISHED = "published", "Published"

    laboratory = models.ForeignKey(
        "spectrum_core.Laboratory",
        on_delete=models.PROTECT,
        related_name="reports",
    )
    report_number = models.CharField(max_length=64, unique=True)
    sample = models.ForeignKey(
        Sample,
        on_delete=models.PROTECT,
        related_name="reports",
    )
    report_type = models.CharField(max_length=32, default="test_report")
    title = models.CharField(max_length=255)
    summary = models.TextField(blank=True)
    revision_reason = models.TextField(blank=True)

    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.DRAFT,
        db_index=True,
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_reports",
    )
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reviewed_reports",
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    published_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return self.report_number


class ReportVerification(models.Model):
    """
    Public proof that a published COA is genuine; looked up by code.
    """

    laboratory = models.ForeignKey(
        "spectrum_core.Laboratory",
        on_delete=models.PROTECT,
        related_name="report_verifications",
    )
    report = models.ForeignKey(
        Report,
        on_delete=models.CASCADE,
        related_name="verifications",
    )
    verification_code = models.CharField(max_length=32, unique=True)
    report_number = models.CharField(max_length=64)
    sample_number = models.CharField(max_length=64)
    client_name = models.CharField(max_length=255)
    sample_type = models.CharField(max_length=255)
    test_count = models.PositiveIntegerField(default=0)
    issued_at = models.DateTimeField()
    issued_by = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.verification_code} ({self.report_number})"
