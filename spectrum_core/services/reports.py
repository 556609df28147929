# spectrum_core/services/reports.py
from __future__ import annotations

import logging
import secrets
from typing import Optional

from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from spectrum_core import audit
from spectrum_core.models import Report, ReportVerification, Sample, TestResult
from spectrum_core.numbering import linked_number, next_number
from spectrum_core.workflows.executor import execute_transition

logger = logging.getLogger(__name__)

VERIFIABLE_STATES = (Report.Status.APPROVED, Report.Status.PUBLISHED)


def _lock(report: Report) -> Report:
    return Report.objects.select_related("sample").select_for_update().get(pk=report.pk)


def _log(report: Report, user, action: str, details: str) -> None:
    audit.record(
        laboratory=report.laboratory,
        user=user,
        module="process",
        action=action,
        details=details,
    )


def generate_verification_code() -> str:
    return secrets.token_urlsafe(12)


# ===============================================================
# Creation
# ===============================================================

def _report_number_for(sample: Sample) -> str:
    if sample.sequence_number:
        number = linked_number(sample.laboratory, "report", sample.sequence_number, "RPT")
        if not Report.objects.filter(report_number=number).exists():
            return number
    number, _ = next_number(sample.laboratory, "report", "RPT")
    return number


@transaction.atomic
def create_report(*, sample: Sample, user, title: str, summary: str = "") -> Report:
    if sample.is_deleted:
        raise ValidationError({"sample": "Sample is in trash."})

    number, _ = next_number(sample.laboratory, "report", "RPT")
    report = Report.objects.create(
        laboratory=sample.laboratory,
        report_number=number,
        sample=sample,
        title=title,
        summary=summary or "",
        status=Report.Status.DRAFT,
        created_by=user,
    )
    _log(report, user, "create", f"Created report {number}")
    return report


@transaction.atomic
def create_report_for_sample(sample: Sample, *, user=None) -> Report:
    """
    Draft COA created when a sample's last result is entered; its number
    reuses the sample's sequence where possible.
    """
    number = _report_number_for(sample)
    report = Report.objects.create(
        laboratory=sample.laboratory,
        report_number=number,
        sample=sample,
        title=f"Certificate of Quality - {sample.sample_type.name}",
        status=Report.Status.DRAFT,
        created_by=user,
    )
    _log(
        report,
        user,
        "create",
        f"Auto-created report {number} for completed sample {sample.sample_number}",
    )
    return report


# ===============================================================
# Workflow
# ===============================================================

@transaction.atomic
def submit_report(report: Report, *, user) -> Report:
    report = _lock(report)

    pending = report.sample.test_results.filter(status=TestResult.Status.PENDING).count()
    if pending:
        raise ValidationError(
            {"status": f"Cannot submit report: {pending} test result(s) are still pending."}
        )

    execute_transition(instance=report, kind="report", new_status=Report.Status.REVIEW, user=user)
    _log(report, user, "edit", f"Submitted report {report.report_number} for review")
    return report


@transaction.atomic
def authenticate_report(report: Report, *, user) -> Report:
    report = _lock(report)
    execute_transition(
        instance=report,
        kind="report",
        new_status=Report.Status.APPROVED,
        user=user,
        fields={"reviewed_by": user, "reviewed_at": timezone.now()},
    )
    _log(report, user, "edit", f"Approved report {report.report_number}")
    return report


@transaction.atomic
def request_revision(report: Report, *, user, reason: str) -> Report:
    """
    Send a report back (draft/review -> revision).

    Every result of the sample goes back to pending (values are kept for
    reference) and a completed sample returns to testing.
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError({"reason": "A reason is required to request a revision."})

    report = _lock(report)
    execute_transition(
        instance=report,
        kind="report",
        new_status=Report.Status.REVISION,
        user=user,
        comment=reason,
        fields={"revision_reason": reason},
    )

    sample = Sample.objects.select_for_update().get(pk=report.sample_id)
    reset = TestResult.objects.filter(sample=sample).update(
        status=TestResult.Status.PENDING,
        updated_at=timezone.now(),
    )
    if sample.status == Sample.Status.COMPLETED:
        execute_transition(
            instance=sample,
            kind="sample",
            new_status=Sample.Status.TESTING,
            user=user,
            comment=f"Report {report.report_number} sent for revision",
            system=True,
        )

    _log(
        report,
        user,
        "edit",
        f"Reverted report {report.report_number} for revision ({reset} result(s) reset): {reason}",
    )
    return report


@transaction.atomic
def publish_report(report: Report, *, user) -> Report:
    report = _lock(report)
    execute_transition(
        instance=report,
        kind="report",
        new_status=Report.Status.PUBLISHED,
        user=user,
        fields={"published_at": timezone.now()},
    )

    sample = Sample.objects.select_for_update().get(pk=report.sample_id)
    execute_transition(
        instance=sample,
        kind="sample",
        new_status=Sample.Status.REPORTED,
        user=user,
        comment=f"Report {report.report_number} published",
        system=True,
    )
    ensure_verification(report)

    _log(report, user, "edit", f"Published report {report.report_number}")
    return report


@transaction.atomic
def update_report(report: Report, *, user, **fields) -> Report:
    report = _lock(report)
    if report.status not in (Report.Status.DRAFT, Report.Status.REVISION):
        raise ValidationError(
            {"status": f"Report in '{report.status}' state cannot be edited."}
        )
    for name, value in fields.items():
        setattr(report, name, value)
    report.save(update_fields=list(fields) + ["updated_at"])
    _log(report, user, "edit", f"Updated report {report.report_number}")
    return report


@transaction.atomic
def delete_report(report: Report, *, user) -> None:
    report = _lock(report)
    if report.status != Report.Status.DRAFT:
        raise ValidationError({"status": "Can only delete reports with draft status"})

    number = report.report_number
    laboratory = report.laboratory
    report.delete()
    audit.record(
        laboratory=laboratory,
        user=user,
        module="process",
        action="delete",
        details=f"Deleted report {number}",
    )


# ===============================================================
# Verification
# ===============================================================

def _issuer_name(report: Report) -> str:
    person = report.reviewed_by or report.created_by
    if person is None:
        return ""
    return (person.get_full_name() or "").strip() or person.get_username()


def ensure_verification(report: Report) -> ReportVerification:
    """
    Latest verification record of an approved/published report, created on
    first use.
    """
    if report.status not in VERIFIABLE_STATES:
        raise ValidationError({"status": "Only approved or published reports can be verified."})

    existing = report.verifications.order_by("-created_at").first()
    if existing is not None:
        return existing

    sample = report.sample
    for _ in range(3):
        try:
            with transaction.atomic():
                return ReportVerification.objects.create(
                    laboratory=report.laboratory,
                    report=report,
                    verification_code=generate_verification_code(),
                    report_number=report.report_number,
                    sample_number=sample.sample_number,
                    client_name=sample.client.name,
                    sample_type=sample.sample_type.name,
                    test_count=sample.test_results.count(),
                    issued_at=report.reviewed_at or report.created_at,
                    issued_by=_issuer_name(report),
                )
        except IntegrityError:
            logger.warning("Verification code collision for report %s; retrying", report.pk)
    raise RuntimeError("Could not allocate a unique verification code")


def lookup_verification(code: str) -> dict:
    """
    Public lookup of a COA by its verification code.
    """
    verification: Optional[ReportVerification] = (
        ReportVerification.objects.select_related("report", "laboratory")
        .filter(verification_code=(code or "").strip())
        .first()
    )
    if verification is None or verification.report.status not in VERIFIABLE_STATES:
        raise NotFound("Invalid verification code")

    return {
        "valid": True,
        "verification_code": verification.verification_code,
        "report_number": verification.report_number,
        "report_status": verification.report.status,
        "sample_number": verification.sample_number,
        "client_name": verification.client_name,
        "sample_type": verification.sample_type,
        "test_count": verification.test_count,
        "issued_at": verification.issued_at,
        "issued_by": verification.issued_by,
        "laboratory": verification.laboratory.name,
    }
