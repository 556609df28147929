# spectrum_core/tests/test_commands.py

from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from spectrum_core.models import FormatID, Laboratory, SampleType, UserRole
from spectrum_core.seed import DEFAULT_PREFIXES, SAMPLE_TYPE_TEMPLATES, seed_laboratory
from spectrum_core.tasks import expire_overdue_quotations, sync_all_zoho_customers


@pytest.mark.django_db
def test_seed_is_idempotent():
    lab = Laboratory.objects.create(code="SEED", name="Seed Lab")

    first = seed_laboratory(lab)
    assert first == {"format_ids": len(DEFAULT_PREFIXES), "sample_types": len(SAMPLE_TYPE_TEMPLATES)}

    FormatID.objects.filter(laboratory=lab, module="sample").update(prefix="SMP")
    second = seed_laboratory(lab)
    assert second == {"format_ids": 0, "sample_types": 0}
    assert FormatID.objects.get(laboratory=lab, module="sample").prefix == "SMP"


@pytest.mark.django_db
def test_seed_lab_command(user_factory):
    user_factory(laboratory=None, username="root-admin")
    out = StringIO()

    call_command("seed_lab", "spectrum", "--name", "Spectrum Labs", "--admin", "root-admin", stdout=out)

    lab = Laboratory.objects.get(code="SPECTRUM")
    assert lab.name == "Spectrum Labs"
    assert SampleType.objects.filter(laboratory=lab).count() == len(SAMPLE_TYPE_TEMPLATES)
    assert UserRole.objects.get(laboratory=lab, user__username="root-admin").role == UserRole.Role.ADMIN
    assert "Done" in out.getvalue()

    # rerun keeps the lab and adds nothing
    out = StringIO()
    call_command("seed_lab", "SPECTRUM", stdout=out)
    assert "Using laboratory" in out.getvalue()
    assert "sample types added: 0" in out.getvalue()


@pytest.mark.django_db
def test_seed_lab_unknown_admin():
    with pytest.raises(CommandError):
        call_command("seed_lab", "X1", "--admin", "ghost", stdout=StringIO())


@pytest.mark.django_db
def test_sync_command_skips_unconfigured_labs(laboratory):
    out = StringIO()
    call_command("sync_zoho_customers", stdout=out)
    assert "not configured, skipped" in out.getvalue()

    with pytest.raises(CommandError):
        call_command("sync_zoho_customers", "--lab", "NOPE", stdout=StringIO())


@pytest.mark.django_db
def test_periodic_tasks_run_inline(laboratory):
    assert expire_overdue_quotations() == 0
    assert sync_all_zoho_customers() == 0
