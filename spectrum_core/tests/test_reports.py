# spectrum_core/tests/test_reports.py

import pytest
from rest_framework.exceptions import NotFound, ValidationError

from spectrum_core.models import Report, ReportVerification, Sample, TestResult
from spectrum_core.services import reports as reports_service


@pytest.fixture
def draft_report(completed_sample) -> Report:
    return completed_sample.reports.get()


@pytest.mark.django_db
def test_submit_blocked_while_results_pending(sample_factory, user_chemist):
    sample = sample_factory()
    report = reports_service.create_report(sample=sample, user=user_chemist, title="Interim COA")
    assert report.report_number.startswith("RPT-")

    with pytest.raises(ValidationError) as exc:
        reports_service.submit_report(report, user=user_chemist)
    assert "8 test result(s) are still pending" in str(exc.value.detail["status"])


@pytest.mark.django_db
def test_full_review_cycle(draft_report, user_chemist, user_manager):
    report = reports_service.submit_report(draft_report, user=user_chemist)
    assert report.status == Report.Status.REVIEW

    report = reports_service.authenticate_report(report, user=user_manager)
    report.refresh_from_db()
    assert report.status == Report.Status.APPROVED
    assert report.reviewed_by == user_manager
    assert report.reviewed_at is not None

    report = reports_service.publish_report(report, user=user_manager)
    report.refresh_from_db()
    assert report.status == Report.Status.PUBLISHED
    assert report.published_at is not None
    assert Sample.objects.get(pk=report.sample_id).status == Sample.Status.REPORTED

    verification = report.verifications.get()
    assert verification.report_number == report.report_number
    assert verification.test_count == 8
    assert verification.client_name == "Gulf Energy Trading"


@pytest.mark.django_db
def test_publish_requires_approval(draft_report, user_manager):
    with pytest.raises(ValidationError):
        reports_service.publish_report(draft_report, user=user_manager)


@pytest.mark.django_db
def test_revision_resets_results(draft_report, user_chemist, user_manager):
    reports_service.submit_report(draft_report, user=user_chemist)

    report = reports_service.request_revision(
        draft_report, user=user_manager, reason="Density out of calibration window"
    )
    report.refresh_from_db()
    assert report.status == Report.Status.REVISION
    assert report.revision_reason == "Density out of calibration window"

    sample = Sample.objects.get(pk=report.sample_id)
    assert sample.status == Sample.Status.TESTING
    results = sample.test_results.all()
    assert all(r.status == TestResult.Status.PENDING for r in results)
    # values are kept for reference
    assert results.exclude(result_value="").count() == 8


@pytest.mark.django_db
def test_revision_needs_reason(draft_report, user_manager):
    with pytest.raises(ValidationError) as exc:
        reports_service.request_revision(draft_report, user=user_manager, reason="   ")
    assert "reason" in exc.value.detail


@pytest.mark.django_db
def test_resubmit_after_revision(draft_report, user_chemist, user_manager):
    from spectrum_core.services.samples import enter_results

    reports_service.request_revision(draft_report, user=user_manager, reason="Recheck sulphur")
    sample = Sample.objects.get(pk=draft_report.sample_id)

    with pytest.raises(ValidationError):
        reports_service.submit_report(draft_report, user=user_chemist)

    outcome = enter_results(
        sample,
        user=user_chemist,
        results=[{"id": r.id, "result_value": r.result_value} for r in sample.test_results.all()],
    )
    assert outcome["completed"] is True
    # the existing report is reused
    assert outcome["report"] is None

    report = reports_service.submit_report(draft_report, user=user_chemist)
    assert report.status == Report.Status.REVIEW


@pytest.mark.django_db
def test_update_report_only_while_editable(draft_report, user_chemist):
    report = reports_service.update_report(draft_report, user=user_chemist, summary="All within limits")
    assert report.summary == "All within limits"

    reports_service.submit_report(report, user=user_chemist)
    with pytest.raises(ValidationError):
        reports_service.update_report(report, user=user_chemist, summary="Changed under review")


@pytest.mark.django_db
def test_delete_only_drafts(draft_report, user_chemist):
    reports_service.submit_report(draft_report, user=user_chemist)
    with pytest.raises(ValidationError) as exc:
        reports_service.delete_report(draft_report, user=user_chemist)
    assert "draft" in str(exc.value.detail["status"])


@pytest.mark.django_db
def test_delete_draft(sample_factory, user_chemist):
    sample = sample_factory()
    report = reports_service.create_report(sample=sample, user=user_chemist, title="Draft")
    reports_service.delete_report(report, user=user_chemist)
    assert not Report.objects.filter(pk=report.pk).exists()


@pytest.mark.django_db
def test_verification_lookup(draft_report, user_chemist, user_manager):
    reports_service.submit_report(draft_report, user=user_chemist)
    reports_service.authenticate_report(draft_report, user=user_manager)
    report = Report.objects.get(pk=draft_report.pk)

    verification = reports_service.ensure_verification(report)
    # created once, reused afterwards
    assert reports_service.ensure_verification(report).pk == verification.pk

    data = reports_service.lookup_verification(verification.verification_code)
    assert data["valid"] is True
    assert data["report_number"] == report.report_number
    assert data["sample_type"] == "Diesel"
    assert data["issued_by"] == "manager"

    with pytest.raises(NotFound):
        reports_service.lookup_verification("not-a-real-code")


@pytest.mark.django_db
def test_verification_requires_approved_report(draft_report):
    with pytest.raises(ValidationError):
        reports_service.ensure_verification(draft_report)
    assert not ReportVerification.objects.exists()
