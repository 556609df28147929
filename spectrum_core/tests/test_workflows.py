# spectrum_core/tests/test_workflows.py

import pytest
from django.contrib.auth.models import AnonymousUser
from django.http import HttpResponse
from rest_framework.exceptions import ValidationError

from spectrum_core.middleware import CurrentUserMiddleware, bind_request_user
from spectrum_core.models import Quotation, Sample, WorkflowTransition
from spectrum_core.signals import get_current_user
from spectrum_core.services.accounts import create_quotation
from spectrum_core.workflows import (
    WORKFLOW_KINDS,
    allowed_next_states,
    is_terminal,
    validate_transition,
    workflow_definition,
)
from spectrum_core.workflows.executor import execute_transition
from spectrum_core.workflows.transition_service import transition_object


def test_all_kinds_have_definitions():
    assert WORKFLOW_KINDS == ("contract", "invoice", "quotation", "report", "sample")
    defs = workflow_definition()
    assert set(defs) == set(WORKFLOW_KINDS)
    assert defs["sample"]["system_only"] == ["completed", "reported", "testing"]


@pytest.mark.parametrize(
    "kind,current,target",
    [
        ("sample", "pending", "registered"),
        ("sample", "registered", "assigned"),
        ("sample", "completed", "reported"),
        ("report", "draft", "review"),
        ("report", "review", "revision"),
        ("report", "revision", "review"),
        ("report", "approved", "published"),
        ("quotation", "accepted", "converted"),
        ("contract", "active", "completed"),
        ("invoice", "sent", "consolidated"),
    ],
)
def test_valid_transitions(kind, current, target):
    validate_transition(kind, current, target)


@pytest.mark.parametrize(
    "kind,current,target,message",
    [
        ("sample", "pending", "reported", "Invalid sample transition"),
        ("report", "draft", "published", "Invalid report transition"),
        ("report", "published", "draft", "Invalid report transition"),
        ("invoice", "paid", "sent", "Invalid invoice transition"),
        ("sample", "pending", "shipped", "Unknown sample state"),
        ("widget", "a", "b", "Unknown workflow kind"),
    ],
)
def test_invalid_transitions(kind, current, target, message):
    with pytest.raises(ValueError) as exc:
        validate_transition(kind, current, target)
    assert message in str(exc.value)


def test_validate_transition_keyword_style():
    validate_transition(kind="QUOTATION", old="Draft", new="SENT")


def test_terminal_states():
    assert is_terminal("sample", "reported")
    assert is_terminal("invoice", "consolidated")
    assert is_terminal("quotation", "expired")
    assert not is_terminal("report", "approved")


def test_manual_next_states_hide_system_targets():
    assert allowed_next_states("sample", "registered") == ["assigned", "completed", "testing"]
    assert allowed_next_states("sample", "registered", include_system=False) == ["assigned"]
    assert allowed_next_states("invoice", "draft", include_system=False) == ["cancelled", "sent"]
    assert allowed_next_states("quotation", "accepted", include_system=False) == []


@pytest.mark.django_db
def test_transition_object_records_history(sample_factory, user_chemist):
    sample = sample_factory()

    result = transition_object(
        kind="sample",
        object_id=sample.pk,
        to_status="assigned",
        performed_by=user_chemist,
        fields={"assigned_to": user_chemist},
    )

    assert result["changed"] is True
    assert result["from_status"] == "registered"
    sample.refresh_from_db()
    assert sample.status == Sample.Status.ASSIGNED
    assert sample.assigned_to == user_chemist

    t = WorkflowTransition.objects.get(pk=result["transition_id"])
    assert (t.kind, t.from_status, t.to_status) == ("sample", "registered", "assigned")
    assert t.laboratory_id == sample.laboratory_id


@pytest.mark.django_db
def test_same_state_is_a_noop(sample_factory):
    sample = sample_factory()
    result = transition_object(kind="sample", object_id=sample.pk, to_status="registered")
    assert result["changed"] is False
    assert not WorkflowTransition.objects.filter(kind="sample", object_id=sample.pk).exists()


@pytest.mark.django_db
def test_executor_refuses_system_only_targets(sample_factory, user_chemist):
    sample = sample_factory()
    with pytest.raises(ValidationError) as exc:
        execute_transition(instance=sample, kind="sample", new_status="testing", user=user_chemist)
    assert "directly" in str(exc.value.detail["status"])

    execute_transition(instance=sample, kind="sample", new_status="testing", user=user_chemist, system=True)
    assert sample.status == "testing"


@pytest.mark.django_db
def test_executor_terminal_lock(laboratory, customer, user_accounts):
    quotation = create_quotation(
        laboratory=laboratory,
        user=user_accounts,
        client=customer,
        items=[{"description": "Diesel full analysis", "quantity": 1, "unit_price": "100.00"}],
    )
    Quotation.objects.filter(pk=quotation.pk).update(status=Quotation.Status.REJECTED)

    with pytest.raises(ValidationError) as exc:
        execute_transition(instance=quotation, kind="quotation", new_status="sent", user=user_accounts)
    assert "terminal" in str(exc.value.detail["status"])


@pytest.mark.django_db
def test_executor_reports_illegal_move(sample_factory, user_chemist):
    sample = sample_factory()
    with pytest.raises(ValidationError) as exc:
        execute_transition(instance=sample, kind="sample", new_status="pending", user=user_chemist)
    assert "Invalid sample transition" in str(exc.value.detail["status"])


@pytest.mark.django_db
def test_transition_writes_audit_entry(sample_factory, user_chemist, laboratory):
    from spectrum_core.models import AuditLog

    sample = sample_factory()
    execute_transition(
        instance=sample,
        kind="sample",
        new_status="assigned",
        user=user_chemist,
        fields={"assigned_to": user_chemist},
    )

    entry = AuditLog.objects.filter(laboratory=laboratory, action="transition").first()
    assert entry is not None
    assert entry.module == "process"
    assert entry.data["from"] == "registered"
    assert entry.data["to"] == "assigned"
    assert entry.user_name == "Amina Rahman"


@pytest.mark.django_db
def test_transition_email_notification(settings, sample_factory, user_chemist, mailoutbox):
    settings.WORKFLOW_EMAIL_NOTIFICATIONS = True
    settings.WORKFLOW_NOTIFY_EMAILS = ["qc@spectrum.example"]

    sample = sample_factory()
    execute_transition(
        instance=sample,
        kind="sample",
        new_status="assigned",
        user=user_chemist,
        fields={"assigned_to": user_chemist},
    )

    assert len(mailoutbox) == 1
    message = mailoutbox[0]
    assert message.to == ["qc@spectrum.example"]
    assert message.subject == f"[Spectrum LIMS] SAMPLE {sample.id} registered -> assigned"
    assert "By: Amina Rahman" in message.body


# ---------------------------------------------------------------
# Acting user binding
# ---------------------------------------------------------------

@pytest.mark.django_db
def test_middleware_binds_user_for_the_request_only(rf, user_chemist):
    seen = []

    def view(request):
        seen.append(get_current_user())
        return HttpResponse("ok")

    request = rf.get("/api/lims/samples/")
    request.user = user_chemist
    CurrentUserMiddleware(view)(request)

    assert seen == [user_chemist]
    assert get_current_user() is None


@pytest.mark.django_db
def test_middleware_clears_user_when_view_raises(rf, user_chemist):
    def view(request):
        raise RuntimeError("boom")

    request = rf.get("/api/lims/samples/")
    request.user = user_chemist
    with pytest.raises(RuntimeError):
        CurrentUserMiddleware(view)(request)

    assert get_current_user() is None


def test_anonymous_users_are_not_bound(rf):
    bind_request_user(AnonymousUser())
    assert get_current_user() is None
    bind_request_user(None)
    assert get_current_user() is None
