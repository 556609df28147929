# spectrum_core/tests/test_samples.py

from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from spectrum_core.models import AuditLog, Customer, Report, Sample, TestResult
from spectrum_core.services import samples as samples_service


@pytest.mark.django_db
def test_register_copies_template_tests(sample_factory, diesel):
    sample = sample_factory()

    assert sample.status == Sample.Status.REGISTERED
    assert sample.sample_number.startswith("SPL-")
    assert sample.sequence_number == 1

    results = list(sample.test_results.order_by("id"))
    assert len(results) == len(diesel.default_tests) == 8
    assert all(r.status == TestResult.Status.PENDING for r in results)

    viscosity = results[0]
    assert viscosity.parameter == "Kinematic Viscosity @ 40°C"
    assert viscosity.test_method == "ASTM D445"
    assert (viscosity.spec_min, viscosity.spec_max) == ("2.0", "4.5")

    sulphur = results[2]
    assert (sulphur.spec_min, sulphur.spec_max) == ("", "500")


@pytest.mark.django_db
def test_register_selected_tests_and_booking(sample_factory):
    sample = sample_factory(selected_tests=[0, 3], status=Sample.Status.PENDING)

    assert sample.status == Sample.Status.PENDING
    assert list(sample.test_results.values_list("parameter", flat=True)) == [
        "Kinematic Viscosity @ 40°C",
        "Flash Point",
    ]


@pytest.mark.django_db
def test_register_rejects_inactive_customer(sample_factory, customer):
    Customer.objects.filter(pk=customer.pk).update(status=Customer.Status.INACTIVE)
    customer.refresh_from_db()

    with pytest.raises(ValidationError) as exc:
        sample_factory(client=customer)
    assert "inactive customer" in str(exc.value.detail["client"])


@pytest.mark.django_db
def test_register_rejects_foreign_sample_type(sample_factory, other_laboratory):
    foreign = other_laboratory.sample_types.get(name="Diesel")
    with pytest.raises(ValidationError):
        sample_factory(sample_type=foreign)


@pytest.mark.django_db
def test_due_dates_follow_tat(sample_factory, laboratory):
    diesel = laboratory.sample_types.get(name="Diesel")
    tests = list(diesel.default_tests)
    tests[0] = dict(tests[0], tat=3)
    diesel.default_tests = tests
    diesel.save()

    collected = timezone.now() - timedelta(days=1)
    sample = sample_factory(sample_type=diesel, collection_date=collected)
    first = sample.test_results.order_by("id").first()

    assert first.tat == 3
    assert first.due_date == collected + timedelta(days=3)
    assert sample.test_results.filter(due_date__isnull=True).count() == 7


@pytest.mark.django_db
def test_batch_registration_numbers_sub_samples(laboratory, customer, diesel, user_registration):
    registration = samples_service.register_batch(
        laboratory=laboratory,
        user=user_registration,
        client=customer,
        rows=[{"sample_type": diesel, "qty": 3, "sample_point": "Tank 4"}],
    )

    numbers = list(registration.samples.order_by("sub_sample_number").values_list("sample_number", flat=True))
    base = registration.registration_number
    assert base.startswith("REG-")
    assert numbers == [f"{base}-01", f"{base}-02", f"{base}-03"]
    assert TestResult.objects.filter(sample__registration=registration).count() == 24


@pytest.mark.django_db
def test_batch_registration_groups_by_type(laboratory, customer, diesel, crude, user_registration):
    registration = samples_service.register_batch(
        laboratory=laboratory,
        user=user_registration,
        client=customer,
        rows=[
            {"sample_type": crude, "qty": 2},
            {"sample_type": diesel, "qty": 1, "selected_tests": [1]},
        ],
    )

    base = registration.registration_number
    samples = {s.sample_number: s for s in registration.samples.all()}
    assert set(samples) == {f"{base}-A01", f"{base}-A02", f"{base}-B01"}
    assert samples[f"{base}-B01"].sample_group == "B"
    assert samples[f"{base}-B01"].test_results.count() == 1


@pytest.mark.django_db
def test_batch_requires_rows(laboratory, customer, user_registration):
    with pytest.raises(ValidationError):
        samples_service.register_batch(laboratory=laboratory, user=user_registration, client=customer, rows=[])


@pytest.mark.django_db
def test_update_registration_collection_details(laboratory, customer, diesel, user_registration, user_factory, other_laboratory):
    registration = samples_service.register_batch(
        laboratory=laboratory,
        user=user_registration,
        client=customer,
        rows=[{"sample_type": diesel}],
        sampling_method="UP",
    )

    updated = samples_service.update_registration(
        registration,
        user=user_registration,
        sheet_number="SH-118",
        collection_location="Jetty 2",
        sampling_method="",
    )
    assert updated.sheet_number == "SH-118"
    assert updated.collection_location == "Jetty 2"
    assert updated.sampling_method == "NP"
    assert AuditLog.objects.filter(details=f"Updated registration {registration.registration_number}").exists()

    with pytest.raises(ValidationError) as exc:
        samples_service.update_registration(registration, user=user_registration, client=customer)
    assert "client" in exc.value.detail

    outsider = user_factory(laboratory=other_laboratory, role="Chemist")
    with pytest.raises(ValidationError) as exc:
        samples_service.update_registration(registration, user=user_registration, collected_by=outsider)
    assert "collected_by" in exc.value.detail


@pytest.mark.django_db
def test_delete_registration_trashes_every_sample(laboratory, customer, diesel, crude, user_registration, user_admin):
    registration = samples_service.register_batch(
        laboratory=laboratory,
        user=user_registration,
        client=customer,
        rows=[{"sample_type": diesel, "qty": 2}, {"sample_type": crude}],
    )

    assert samples_service.delete_registration(registration, user=user_admin) == 3

    samples = list(registration.samples.all())
    assert len(samples) == 3
    assert all(s.deleted_at is not None and s.deleted_by == user_admin for s in samples)
    assert AuditLog.objects.filter(
        details=f"Deleted registration {registration.registration_number} (3 samples)"
    ).exists()


@pytest.mark.django_db
def test_delete_registration_is_all_or_nothing(laboratory, customer, diesel, user_registration, user_admin, user_chemist):
    registration = samples_service.register_batch(
        laboratory=laboratory,
        user=user_registration,
        client=customer,
        rows=[{"sample_type": diesel, "qty": 3}],
    )
    started = registration.samples.order_by("sub_sample_number").last()
    samples_service.assign_sample(started, user=user_admin, assignee=user_chemist)

    with pytest.raises(ValidationError) as exc:
        samples_service.delete_registration(registration, user=user_admin)
    assert started.sample_number in str(exc.value.detail["status"])

    assert registration.samples.filter(deleted_at__isnull=False).count() == 0


@pytest.mark.django_db
def test_update_sample_only_in_editable_states(sample_factory, user_registration, user_chemist):
    sample = sample_factory()
    updated = samples_service.update_sample(sample, user=user_registration, description="Retained", priority="urgent")
    assert updated.description == "Retained"
    assert updated.priority == "urgent"

    with pytest.raises(ValidationError):
        samples_service.update_sample(sample, user=user_registration, status="completed")

    samples_service.enter_results(
        sample,
        user=user_chemist,
        results=[{"id": sample.test_results.first().id, "result_value": "3.2"}],
    )
    with pytest.raises(ValidationError) as exc:
        samples_service.update_sample(sample, user=user_registration, description="Late change")
    assert "cannot be edited" in str(exc.value.detail["status"])


@pytest.mark.django_db
def test_assign_reassign_unassign(sample_factory, user_chemist, user_manager, user_factory, laboratory):
    other_chemist = user_factory(laboratory=laboratory, role="Chemist")
    sample = sample_factory()

    sample = samples_service.assign_sample(sample, user=user_manager, assignee=user_chemist)
    assert sample.status == Sample.Status.ASSIGNED
    assert sample.assigned_to == user_chemist

    sample = samples_service.assign_sample(sample, user=user_manager, assignee=other_chemist)
    assert sample.status == Sample.Status.ASSIGNED
    assert sample.assigned_to == other_chemist

    sample = samples_service.assign_sample(sample, user=user_manager, assignee=None)
    sample.refresh_from_db()
    assert sample.status == Sample.Status.REGISTERED
    assert sample.assigned_to is None


@pytest.mark.django_db
def test_unassign_requires_assigned(sample_factory, user_manager):
    sample = sample_factory()
    with pytest.raises(ValidationError):
        samples_service.assign_sample(sample, user=user_manager, assignee=None)


@pytest.mark.django_db
def test_assign_pending_sample(sample_factory, user_manager, user_chemist):
    sample = sample_factory(status=Sample.Status.PENDING)
    sample = samples_service.assign_sample(sample, user=user_manager, assignee=user_chemist)
    assert sample.status == Sample.Status.ASSIGNED


@pytest.mark.django_db
def test_trash_restore_purge(sample_factory, user_admin):
    sample = sample_factory()
    number = sample.sample_number

    trashed = samples_service.delete_sample(sample, user=user_admin)
    assert trashed.is_deleted
    assert trashed.deleted_by == user_admin

    restored = samples_service.restore_sample(trashed, user=user_admin)
    assert not restored.is_deleted

    with pytest.raises(ValidationError):
        samples_service.purge_sample(restored, user=user_admin)

    samples_service.delete_sample(restored, user=user_admin)
    samples_service.purge_sample(restored, user=user_admin)

    assert not Sample.objects.filter(pk=sample.pk).exists()
    assert not TestResult.objects.filter(sample_id=sample.pk).exists()
    assert AuditLog.objects.filter(details=f"Permanently deleted sample {number}").exists()


@pytest.mark.django_db
def test_delete_refused_once_work_started(sample_factory, user_admin, user_chemist):
    sample = sample_factory()
    samples_service.assign_sample(sample, user=user_admin, assignee=user_chemist)

    with pytest.raises(ValidationError) as exc:
        samples_service.delete_sample(sample, user=user_admin)
    assert "cannot be deleted" in str(exc.value.detail["status"])


@pytest.mark.django_db
def test_enter_partial_results_moves_to_testing(sample_factory, user_chemist):
    sample = sample_factory()
    first = sample.test_results.order_by("id").first()

    outcome = samples_service.enter_results(
        sample, user=user_chemist, results=[{"id": first.id, "result_value": "3.3"}]
    )

    assert outcome["pending"] == 7
    assert outcome["completed"] is False
    assert outcome["report"] is None

    sample.refresh_from_db()
    first.refresh_from_db()
    assert sample.status == Sample.Status.TESTING
    assert sample.assigned_to == user_chemist
    assert first.status == TestResult.Status.COMPLETED
    assert first.entered_by == user_chemist
    assert first.entered_at is not None


@pytest.mark.django_db
def test_last_result_completes_sample_and_drafts_report(completed_sample):
    assert completed_sample.status == Sample.Status.COMPLETED

    report = completed_sample.reports.get()
    assert report.status == Report.Status.DRAFT
    assert report.title == "Certificate of Quality - Diesel"
    # report number reuses the sample sequence
    assert report.report_number.endswith(f"-{completed_sample.sequence_number:03d}")
    assert report.report_number.startswith("RPT-")


@pytest.mark.django_db
def test_enter_results_rejects_unknown_ids(sample_factory, user_chemist):
    sample = sample_factory()
    other = sample_factory()
    foreign = other.test_results.first()

    with pytest.raises(ValidationError) as exc:
        samples_service.enter_results(
            sample, user=user_chemist, results=[{"id": foreign.id, "result_value": "1"}]
        )
    assert "Unknown test result" in str(exc.value.detail["results"])


@pytest.mark.django_db
def test_enter_results_refused_for_pending_sample(sample_factory, user_chemist):
    sample = sample_factory(status=Sample.Status.PENDING)
    with pytest.raises(ValidationError):
        samples_service.enter_results(
            sample,
            user=user_chemist,
            results=[{"id": sample.test_results.first().id, "result_value": "1"}],
        )


@pytest.mark.django_db
def test_add_tests_reopens_completed_sample(completed_sample, user_chemist):
    created = samples_service.add_tests(
        completed_sample,
        user=user_chemist,
        tests=[{"parameter": "Ash Content", "method": "ASTM D482", "unit": "% m/m", "specMax": "0.01", "tat": 2}],
    )

    assert len(created) == 1
    completed_sample.refresh_from_db()
    assert completed_sample.status == Sample.Status.TESTING

    added = completed_sample.test_results.get(parameter="Ash Content")
    assert added.status == TestResult.Status.PENDING
    assert added.spec_max == "0.01"
    assert added.due_date is not None


@pytest.mark.django_db
def test_delete_only_pending_test_results(completed_sample, sample_factory, user_chemist):
    done = completed_sample.test_results.first()
    with pytest.raises(ValidationError):
        samples_service.delete_test_result(done, user=user_chemist)

    fresh = sample_factory()
    pending = fresh.test_results.first()
    samples_service.delete_test_result(pending, user=user_chemist)
    assert fresh.test_results.count() == 7
