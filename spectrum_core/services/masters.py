# spectrum_core/services/masters.py
from __future__ import annotations

import re

from django.db import transaction
from rest_framework.exceptions import ValidationError

from spectrum_core import audit
from spectrum_core.models import Customer, SampleType


def customer_code_prefix(name: str) -> str:
    letters = re.sub(r"[^a-zA-Z]", "", name or "")
    return letters[:3].upper().ljust(3, "X")


def next_customer_code(laboratory, name: str) -> str:
    """
    SP-<first three letters of the name>-<nnn>, nnn counting the lab's customers.
    """
    prefix = customer_code_prefix(name)
    n = Customer.objects.filter(laboratory=laboratory).count() + 1
    code = f"SP-{prefix}-{n:03d}"
    while Customer.objects.filter(laboratory=laboratory, code=code).exists():
        n += 1
        code = f"SP-{prefix}-{n:03d}"
    return code


@transaction.atomic
def create_customer(*, laboratory, user=None, **data) -> Customer:
    data.pop("code", None)
    customer = Customer.objects.create(
        laboratory=laboratory,
        code=next_customer_code(laboratory, data.get("name", "")),
        **data,
    )
    audit.record(
        laboratory=laboratory,
        user=user,
        module="masters",
        action="create",
        details=f"Created customer: {customer.name} ({customer.code})",
    )
    return customer


@transaction.atomic
def delete_customer(customer: Customer, *, user=None) -> None:
    sample_count = customer.samples.count()
    if sample_count:
        raise ValidationError(
            {
                "detail": (
                    "Cannot delete customer. There are "
                    f"{sample_count} sample(s) associated with this customer."
                )
            }
        )
    laboratory = customer.laboratory
    label = f"{customer.name} ({customer.code})"
    customer.delete()
    audit.record(
        laboratory=laboratory,
        user=user,
        module="masters",
        action="delete",
        details=f"Deleted customer: {label}",
    )


def normalize_template(tests) -> list:
    """
    Clean a sample type's default test list: every entry needs a parameter;
    spec bounds are stored as text ("" when open-ended).
    """
    if tests in (None, ""):
        return []
    if not isinstance(tests, list):
        raise ValidationError({"default_tests": "Must be a list of test definitions."})

    cleaned = []
    for i, t in enumerate(tests):
        if not isinstance(t, dict) or not str(t.get("parameter") or "").strip():
            raise ValidationError({"default_tests": f"Entry {i} is missing a parameter."})
        tat = t.get("tat")
        cleaned.append(
            {
                "parameter": str(t["parameter"]).strip(),
                "method": str(t.get("method") or t.get("testMethod") or ""),
                "unit": str(t.get("unit") or ""),
                "specMin": "" if t.get("specMin") is None else str(t.get("specMin")),
                "specMax": "" if t.get("specMax") is None else str(t.get("specMax")),
                "tat": int(tat) if tat not in (None, "") else None,
            }
        )
    return cleaned


@transaction.atomic
def delete_sample_type(sample_type: SampleType, *, user=None) -> None:
    if sample_type.samples.exists():
        raise ValidationError(
            {"detail": "Cannot delete sample type. Samples of this type exist."}
        )
    laboratory = sample_type.laboratory
    name = sample_type.name
    sample_type.delete()
    audit.record(
        laboratory=laboratory,
        user=user,
        module="masters",
        action="delete",
        details=f"Deleted sample type: {name}",
    )
