# spectrum_core/services/samples.py
"""
Sample lifecycle: registration, edits, assignment, trash and result entry.

Every status change goes through execute_transition(); the helpers here only
decide which transition a business operation implies.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Iterable, List, Optional, Sequence

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from spectrum_core import audit
from spectrum_core.models import Customer, Registration, Sample, SampleType, TestResult
from spectrum_core.numbering import next_number
from spectrum_core.workflows import SAMPLE_DELETABLE_STATES, SAMPLE_EDITABLE_STATES
from spectrum_core.workflows.executor import execute_transition

logger = logging.getLogger(__name__)

MAX_SUB_SAMPLES_PER_ROW = 99

EDITABLE_FIELDS = (
    "client",
    "sample_type",
    "description",
    "quantity",
    "sample_condition",
    "priority",
    "job_type",
    "reference",
    "notes",
    "collected_by",
    "collection_date",
    "collection_location",
    "sample_point",
)

REGISTRATION_EDITABLE_FIELDS = (
    "sampling_method",
    "sheet_number",
    "reference",
    "collection_location",
    "collected_by",
    "notes",
)


# ===============================================================
# Helpers
# ===============================================================

def _text(value) -> str:
    return "" if value is None else str(value)


def _ensure_active_customer(client: Customer) -> None:
    if client.status != Customer.Status.ACTIVE:
        raise ValidationError(
            {"client": f"Cannot register samples for inactive customer: {client.name}"}
        )


def _ensure_same_lab(laboratory, *objs) -> None:
    for obj in objs:
        if obj is not None and obj.laboratory_id != laboratory.pk:
            raise ValidationError(
                {"detail": f"{obj.__class__.__name__} does not belong to this laboratory."}
            )


def select_template_tests(sample_type: SampleType, selected: Optional[Sequence[int]] = None) -> List[dict]:
    tests = list(sample_type.default_tests or [])
    if selected is None:
        return tests
    wanted = {int(i) for i in selected}
    return [t for i, t in enumerate(tests) if i in wanted]


def build_test_results(sample: Sample, tests: Iterable[dict], start=None) -> List[TestResult]:
    """
    Unsaved pending TestResult rows for `sample`, one per test definition.
    due_date is start + tat days when a TAT is given.
    """
    start = start or sample.registered_at or sample.created_at or timezone.now()
    rows = []
    for t in tests:
        tat = t.get("tat") or None
        rows.append(
            TestResult(
                sample=sample,
                parameter=t["parameter"],
                test_method=_text(t.get("method") or t.get("testMethod") or t.get("test_method")),
                unit=_text(t.get("unit")),
                spec_min=_text(t.get("specMin", t.get("spec_min"))),
                spec_max=_text(t.get("specMax", t.get("spec_max"))),
                tat=int(tat) if tat else None,
                due_date=start + timedelta(days=int(tat)) if tat else None,
                status=TestResult.Status.PENDING,
            )
        )
    return rows


# ===============================================================
# Registration
# ===============================================================

@transaction.atomic
def register_sample(
    *,
    laboratory,
    user,
    client: Customer,
    sample_type: SampleType,
    selected_tests: Optional[Sequence[int]] = None,
    status: str = Sample.Status.REGISTERED,
    collection_date=None,
    **fields,
) -> Sample:
    """
    Create one sample with its pending TestResults from the type's template.

    status is "registered" (default) or "pending" for a sample booked ahead
    of collection.
    """
    _ensure_same_lab(laboratory, client, sample_type)
    _ensure_active_customer(client)

    if status not in (Sample.Status.REGISTERED, Sample.Status.PENDING):
        raise ValidationError({"status": "New samples start as 'registered' or 'pending'."})

    sample_number, sequence = next_number(laboratory, "sample", "SPL")
    recorded_at = collection_date or timezone.now()

    sample = Sample.objects.create(
        laboratory=laboratory,
        sample_number=sample_number,
        sequence_number=sequence,
        client=client,
        sample_type=sample_type,
        status=status,
        registered_by=user,
        registered_at=recorded_at,
        collection_date=recorded_at,
        **fields,
    )

    tests = select_template_tests(sample_type, selected_tests)
    TestResult.objects.bulk_create(build_test_results(sample, tests, start=recorded_at))

    audit.record(
        laboratory=laboratory,
        user=user,
        module="process",
        action="create",
        details=f"Registered sample {sample_number}",
    )
    logger.info("Registered sample %s with %d test(s)", sample_number, len(tests))
    return sample


@transaction.atomic
def register_batch(
    *,
    laboratory,
    user,
    client: Customer,
    rows: Sequence[dict],
    job_type: str = "testing",
    priority: str = Sample.Priority.NORMAL,
    reference: str = "",
    collection_date=None,
    collection_location: str = "",
    collected_by=None,
    sampling_method: str = "NP",
    sheet_number: str = "",
    notes: str = "",
    sample_condition: str = "",
) -> Registration:
    """
    One registration number, N sub-samples.

    Each row is {"sample_type", "qty", "bottle_qty", "sample_point",
    "description", "remarks", "selected_tests"}. Sub-samples are numbered
    REG-YYMMDD-NNN-01.. or, when several sample types are grouped,
    REG-YYMMDD-NNN-A01, -B01 .. per type in row order.
    """
    _ensure_same_lab(laboratory, client)
    _ensure_active_customer(client)
    if not rows:
        raise ValidationError({"rows": "At least one sample row is required."})

    registration_number, sequence = next_number(laboratory, "registration", "REG")
    recorded_at = collection_date or timezone.now()

    registration = Registration.objects.create(
        laboratory=laboratory,
        registration_number=registration_number,
        sequence_number=sequence,
        client=client,
        job_type=job_type,
        priority=priority,
        reference=reference,
        collection_date=recorded_at,
        collection_location=collection_location,
        collected_by=collected_by,
        registered_by=user,
        registered_at=recorded_at,
        sampling_method=sampling_method,
        sheet_number=sheet_number,
        notes=notes,
    )

    # Group letters: each distinct sample type (in row order) gets A, B, C...
    letters = {}
    for row in rows:
        st = row["sample_type"]
        _ensure_same_lab(laboratory, st)
        if st.pk not in letters:
            letters[st.pk] = chr(ord("A") + len(letters))
    grouped = len(letters) > 1
    group_counters = {letter: 1 for letter in letters.values()}

    sub_counter = 1
    results: List[TestResult] = []
    for row in rows:
        st = row["sample_type"]
        letter = letters[st.pk]
        tests = select_template_tests(st, row.get("selected_tests"))
        qty = max(1, min(MAX_SUB_SAMPLES_PER_ROW, int(row.get("qty") or 1)))

        for _ in range(qty):
            if grouped:
                suffix = f"{letter}{group_counters[letter]:02d}"
                group_counters[letter] += 1
            else:
                suffix = f"{sub_counter:02d}"

            sample = Sample.objects.create(
                laboratory=laboratory,
                registration=registration,
                sample_number=f"{registration_number}-{suffix}",
                sub_sample_number=sub_counter,
                sample_group=letter if grouped else "",
                client=client,
                sample_type=st,
                description=row.get("description") or "",
                quantity=row.get("bottle_qty") or "",
                sample_condition=sample_condition,
                priority=priority,
                job_type=job_type,
                reference=reference,
                status=Sample.Status.REGISTERED,
                registered_by=user,
                registered_at=recorded_at,
                collected_by=collected_by,
                collection_date=recorded_at,
                collection_location=collection_location,
                sample_point=row.get("sample_point") or "",
                notes=row.get("remarks") or "",
            )
            results.extend(build_test_results(sample, tests, start=recorded_at))
            sub_counter += 1

    TestResult.objects.bulk_create(results)

    audit.record(
        laboratory=laboratory,
        user=user,
        module="process",
        action="create",
        details=f"Registered {registration_number} with {sub_counter - 1} samples",
    )
    return registration


@transaction.atomic
def update_registration(registration: Registration, *, user, **changes) -> Registration:
    """
    Edit the collection details of a registration. Sub-samples keep their own
    copies of these fields.
    """
    registration = Registration.objects.select_for_update().get(pk=registration.pk)

    unknown = set(changes) - set(REGISTRATION_EDITABLE_FIELDS)
    if unknown:
        raise ValidationError({f: "This field cannot be edited." for f in sorted(unknown)})
    if "collected_by" in changes and changes["collected_by"] is not None:
        if not changes["collected_by"].lims_roles.filter(laboratory_id=registration.laboratory_id).exists():
            raise ValidationError({"collected_by": "User has no role in this laboratory."})
    if "sampling_method" in changes:
        changes["sampling_method"] = changes["sampling_method"] or "NP"

    for name, value in changes.items():
        setattr(registration, name, value)
    registration.save(update_fields=list(changes) + ["updated_at"])

    audit.record(
        laboratory=registration.laboratory,
        user=user,
        module="process",
        action="edit",
        details=f"Updated registration {registration.registration_number}",
    )
    return registration


@transaction.atomic
def delete_registration(registration: Registration, *, user) -> int:
    """
    Move every live sample of the registration to trash in one go.

    Refused as a whole when any sample has left the deletable states.
    Returns the number of samples trashed.
    """
    registration = Registration.objects.select_for_update().get(pk=registration.pk)
    samples = list(
        Sample.objects.select_for_update()
        .filter(registration=registration, deleted_at__isnull=True)
        .order_by("id")
    )

    blocked = [s for s in samples if s.status not in SAMPLE_DELETABLE_STATES]
    if blocked:
        listed = ", ".join(f"{s.sample_number} ({s.status})" for s in blocked)
        raise ValidationError(
            {"status": f"Registration {registration.registration_number} has samples that cannot be deleted: {listed}"}
        )

    now = timezone.now()
    Sample.objects.filter(pk__in=[s.pk for s in samples]).update(
        deleted_at=now, deleted_by=user, updated_at=now
    )

    audit.record(
        laboratory=registration.laboratory,
        user=user,
        module="process",
        action="delete",
        details=f"Deleted registration {registration.registration_number} ({len(samples)} samples)",
    )
    logger.info("Registration %s trashed with %s samples", registration.registration_number, len(samples))
    return len(samples)


# ===============================================================
# Edits / assignment
# ===============================================================

@transaction.atomic
def update_sample(sample: Sample, *, user, **changes) -> Sample:
    sample = Sample.objects.select_for_update().get(pk=sample.pk)

    if sample.is_deleted:
        raise ValidationError({"detail": "Sample is in trash."})
    if sample.status not in SAMPLE_EDITABLE_STATES:
        raise ValidationError(
            {"status": f"Sample in '{sample.status}' state cannot be edited."}
        )

    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError({f: "This field cannot be edited." for f in sorted(unknown)})

    if "client" in changes:
        _ensure_same_lab(sample.laboratory, changes["client"])
        _ensure_active_customer(changes["client"])
    if "sample_type" in changes:
        _ensure_same_lab(sample.laboratory, changes["sample_type"])

    for name, value in changes.items():
        setattr(sample, name, value)
    sample.save(update_fields=list(changes) + ["updated_at"])

    audit.record(
        laboratory=sample.laboratory,
        user=user,
        module="process",
        action="edit",
        details=f"Updated sample {sample.sample_number}",
    )
    return sample


@transaction.atomic
def assign_sample(sample: Sample, *, user, assignee=None) -> Sample:
    """
    Assign a chemist (pending/registered -> assigned), reassign, or unassign
    with assignee=None (assigned -> registered).
    """
    sample = Sample.objects.select_for_update().get(pk=sample.pk)
    if sample.is_deleted:
        raise ValidationError({"detail": "Sample is in trash."})

    if assignee is None:
        if sample.status != Sample.Status.ASSIGNED:
            raise ValidationError({"status": "Only assigned samples can be unassigned."})
        execute_transition(
            instance=sample,
            kind="sample",
            new_status=Sample.Status.REGISTERED,
            user=user,
            fields={"assigned_to": None},
        )
        details = f"Unassigned sample {sample.sample_number}"
    elif sample.status in (Sample.Status.PENDING, Sample.Status.REGISTERED):
        execute_transition(
            instance=sample,
            kind="sample",
            new_status=Sample.Status.ASSIGNED,
            user=user,
            fields={"assigned_to": assignee},
        )
        details = f"Assigned sample {sample.sample_number} to {assignee.get_username()}"
    elif sample.status in (Sample.Status.ASSIGNED, Sample.Status.TESTING):
        sample.assigned_to = assignee
        sample.save(update_fields=["assigned_to", "updated_at"])
        details = f"Reassigned sample {sample.sample_number} to {assignee.get_username()}"
    else:
        raise ValidationError(
            {"status": f"Sample in '{sample.status}' state cannot be assigned."}
        )

    audit.record(
        laboratory=sample.laboratory,
        user=user,
        module="process",
        action="edit",
        details=details,
    )
    return sample


# ===============================================================
# Trash
# ===============================================================

@transaction.atomic
def delete_sample(sample: Sample, *, user) -> Sample:
    sample = Sample.objects.select_for_update().get(pk=sample.pk)
    if sample.is_deleted:
        return sample
    if sample.status not in SAMPLE_DELETABLE_STATES:
        raise ValidationError(
            {"status": f"Sample in '{sample.status}' state cannot be deleted."}
        )

    sample.deleted_at = timezone.now()
    sample.deleted_by = user
    sample.save(update_fields=["deleted_at", "deleted_by", "updated_at"])

    audit.record(
        laboratory=sample.laboratory,
        user=user,
        module="process",
        action="delete",
        details=f"Moved sample {sample.sample_number} to trash",
    )
    return sample


@transaction.atomic
def restore_sample(sample: Sample, *, user) -> Sample:
    sample = Sample.objects.select_for_update().get(pk=sample.pk)
    if not sample.is_deleted:
        raise ValidationError({"detail": "Sample is not in trash."})

    sample.deleted_at = None
    sample.deleted_by = None
    sample.save(update_fields=["deleted_at", "deleted_by", "updated_at"])

    audit.record(
        laboratory=sample.laboratory,
        user=user,
        module="process",
        action="edit",
        details=f"Restored sample {sample.sample_number} from trash",
    )
    return sample


@transaction.atomic
def purge_sample(sample: Sample, *, user) -> None:
    sample = Sample.objects.select_for_update().get(pk=sample.pk)
    if not sample.is_deleted:
        raise ValidationError({"detail": "Only samples in trash can be permanently deleted."})

    laboratory = sample.laboratory
    number = sample.sample_number
    sample.delete()

    audit.record(
        laboratory=laboratory,
        user=user,
        module="process",
        action="delete",
        details=f"Permanently deleted sample {number}",
    )


# ===============================================================
# Test results
# ===============================================================

@transaction.atomic
def add_tests(sample: Sample, *, user, tests: Sequence[dict]) -> List[TestResult]:
    sample = Sample.objects.select_for_update().get(pk=sample.pk)
    if sample.status == Sample.Status.REPORTED:
        raise ValidationError({"status": "Reported samples cannot receive new tests."})
    if not tests:
        raise ValidationError({"tests": "At least one test is required."})

    created = TestResult.objects.bulk_create(build_test_results(sample, tests))

    # New pending work reopens a completed sample
    if sample.status == Sample.Status.COMPLETED:
        execute_transition(
            instance=sample,
            kind="sample",
            new_status=Sample.Status.TESTING,
            user=user,
            comment="Tests added",
            system=True,
        )

    audit.record(
        laboratory=sample.laboratory,
        user=user,
        module="process",
        action="edit",
        details=f"Added {len(created)} test parameter(s) to sample {sample.sample_number}",
    )
    return created


@transaction.atomic
def delete_test_result(result: TestResult, *, user) -> None:
    result = TestResult.objects.select_related("sample").select_for_update().get(pk=result.pk)
    if result.status != TestResult.Status.PENDING:
        raise ValidationError({"status": "Only pending test results can be deleted."})

    sample = result.sample
    parameter = result.parameter
    result.delete()

    audit.record(
        laboratory=sample.laboratory,
        user=user,
        module="process",
        action="delete",
        details=f"Deleted test {parameter} from sample {sample.sample_number}",
    )


@transaction.atomic
def enter_results(sample: Sample, *, user, results: Sequence[dict]) -> dict:
    """
    Save result values ({"id", "result_value"}) and advance the sample.

    - an unassigned sample is assigned to the chemist entering results
    - results still pending: registered/assigned -> testing
    - nothing pending: -> completed, and a draft report is created if the
      sample has none yet
    """
    from spectrum_core.services.reports import create_report_for_sample

    sample = Sample.objects.select_for_update().get(pk=sample.pk)

    if sample.is_deleted:
        raise ValidationError({"detail": "Sample is in trash."})
    if sample.status in (Sample.Status.PENDING, Sample.Status.REPORTED):
        raise ValidationError(
            {"status": f"Results cannot be entered for a sample in '{sample.status}' state."}
        )
    if not results:
        raise ValidationError({"results": "No results given."})

    ids = [int(r["id"]) for r in results]
    rows = {
        r.pk: r
        for r in TestResult.objects.select_for_update().filter(sample=sample, pk__in=ids)
    }
    missing = [i for i in ids if i not in rows]
    if missing:
        raise ValidationError({"results": f"Unknown test result(s) for this sample: {missing}"})

    now = timezone.now()
    for r in results:
        row = rows[int(r["id"])]
        row.result_value = _text(r.get("result_value"))
        row.status = TestResult.Status.COMPLETED
        row.entered_by = user
        row.entered_at = now
        row.updated_at = now
    TestResult.objects.bulk_update(
        rows.values(),
        ["result_value", "status", "entered_by", "entered_at", "updated_at"],
    )

    if sample.assigned_to_id is None:
        sample.assigned_to = user
        sample.save(update_fields=["assigned_to", "updated_at"])

    pending = sample.test_results.filter(status=TestResult.Status.PENDING).count()
    report = None

    if pending == 0:
        execute_transition(
            instance=sample,
            kind="sample",
            new_status=Sample.Status.COMPLETED,
            user=user,
            comment="All results entered",
            system=True,
        )
        if not sample.reports.exists():
            report = create_report_for_sample(sample, user=user)
    elif sample.status in (Sample.Status.REGISTERED, Sample.Status.ASSIGNED):
        execute_transition(
            instance=sample,
            kind="sample",
            new_status=Sample.Status.TESTING,
            user=user,
            comment="Result entry started",
            system=True,
        )

    audit.record(
        laboratory=sample.laboratory,
        user=user,
        module="process",
        action="edit",
        details=f"Updated {len(results)} test result(s) for sample {sample.sample_number}",
    )

    return {
        "sample": sample,
        "pending": pending,
        "completed": pending == 0,
        "report": report,
    }
