# spectrum_core/services/accounts.py
"""
Quotations, contracts and invoices: totals, lifecycle and conversions.

Conversions lock their source rows and re-check state inside one transaction,
so a failed check leaves nothing half-applied.
"""
from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from spectrum_core import audit
from spectrum_core.models import (
    Contract,
    ContractItem,
    Invoice,
    InvoiceItem,
    Quotation,
    QuotationItem,
)
from spectrum_core.models.accounts import default_tax_rate
from spectrum_core.numbering import next_number
from spectrum_core.workflows.executor import execute_transition

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

ITEM_MODELS = {
    Quotation: (QuotationItem, "quotation"),
    Contract: (ContractItem, "contract"),
    Invoice: (InvoiceItem, "invoice"),
}

KINDS = {
    Quotation: "quotation",
    Contract: "contract",
    Invoice: "invoice",
}

NUMBERING = {
    "quotation": ("quotation", "QUO"),
    "contract": ("contract", "CON"),
    Invoice.InvoiceType.TAX: ("invoice", "INV"),
    Invoice.InvoiceType.PROFORMA: ("proforma", "PRO"),
}

# Proforma states that can no longer be converted or consolidated
CLOSED_PROFORMA_STATES = {
    Invoice.Status.CONVERTED,
    Invoice.Status.CONSOLIDATED,
    Invoice.Status.CANCELLED,
    Invoice.Status.PAID,
}


# ===============================================================
# Money
# ===============================================================

def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_totals(items: Iterable[dict], tax_rate) -> Tuple[Decimal, Decimal, Decimal]:
    """
    (subtotal, tax_amount, total) for items of {quantity, unit_price}.
    """
    rate = Decimal(str(tax_rate))
    subtotal = sum(
        (money(Decimal(str(i["quantity"])) * Decimal(str(i["unit_price"]))) for i in items),
        Decimal("0"),
    )
    subtotal = money(subtotal)
    tax_amount = money(subtotal * rate / Decimal("100"))
    return subtotal, tax_amount, money(subtotal + tax_amount)


def _clean_items(items: Optional[Sequence[dict]]) -> List[dict]:
    if not items:
        raise ValidationError({"items": "At least one line item is required."})
    cleaned = []
    for i, item in enumerate(items):
        description = str(item.get("description") or "").strip()
        if not description:
            raise ValidationError({"items": f"Item {i} needs a description."})
        quantity = Decimal(str(item.get("quantity", 1)))
        unit_price = Decimal(str(item.get("unit_price", 0)))
        if quantity <= 0 or unit_price < 0:
            raise ValidationError({"items": f"Item {i} has an invalid quantity or price."})
        cleaned.append(
            {
                "description": description,
                "quantity": quantity,
                "unit_price": money(unit_price),
                "sample": item.get("sample"),
            }
        )
    return cleaned


def _item_rows(doc, items: Sequence[dict]) -> list:
    item_model, fk = ITEM_MODELS[type(doc)]
    return [
        item_model(
            **{fk: doc},
            description=item["description"],
            quantity=item["quantity"],
            unit_price=item["unit_price"],
            total=money(Decimal(str(item["quantity"])) * Decimal(str(item["unit_price"]))),
            sample=item.get("sample"),
            position=pos,
        )
        for pos, item in enumerate(items)
    ]


def _copy_items(items) -> list:
    return [
        {
            "description": i.description,
            "quantity": i.quantity,
            "unit_price": i.unit_price,
            "sample": i.sample,
        }
        for i in items
    ]


def _log(doc, user, action: str, details: str) -> None:
    audit.record(
        laboratory=doc.laboratory,
        user=user,
        module="accounts",
        action=action,
        details=details,
    )


def _kind(doc) -> str:
    return KINDS[type(doc)]


# ===============================================================
# Create / edit
# ===============================================================

def _create(model, *, laboratory, user, client, items, tax_rate=None, number_key, **fields):
    if client.laboratory_id != laboratory.pk:
        raise ValidationError({"client": "Customer does not belong to this laboratory."})

    items = _clean_items(items)
    rate = Decimal(str(tax_rate)) if tax_rate is not None else default_tax_rate()
    if rate < 0 or rate > 100:
        raise ValidationError({"tax_rate": "Tax rate must be between 0 and 100."})
    subtotal, tax_amount, total = compute_totals(items, rate)

    module, prefix = NUMBERING[number_key]
    number, _ = next_number(laboratory, module, prefix)

    doc = model.objects.create(
        laboratory=laboratory,
        client=client,
        subtotal=subtotal,
        tax_rate=rate,
        tax_amount=tax_amount,
        total=total,
        created_by=user,
        **{model.NUMBER_FIELD: number},
        **fields,
    )
    item_model, _ = ITEM_MODELS[model]
    item_model.objects.bulk_create(_item_rows(doc, items))
    return doc


@transaction.atomic
def create_quotation(*, laboratory, user, client, items, tax_rate=None, notes="", valid_until=None) -> Quotation:
    doc = _create(
        Quotation,
        laboratory=laboratory,
        user=user,
        client=client,
        items=items,
        tax_rate=tax_rate,
        number_key="quotation",
        notes=notes or "",
        valid_until=valid_until,
    )
    _log(doc, user, "create", f"Created quotation {doc.quotation_number}")
    return doc


@transaction.atomic
def create_contract(
    *,
    laboratory,
    user,
    client,
    items,
    tax_rate=None,
    notes="",
    start_date=None,
    end_date=None,
    terms="",
) -> Contract:
    if start_date and end_date and end_date < start_date:
        raise ValidationError({"end_date": "End date cannot be before start date."})
    doc = _create(
        Contract,
        laboratory=laboratory,
        user=user,
        client=client,
        items=items,
        tax_rate=tax_rate,
        number_key="contract",
        notes=notes or "",
        start_date=start_date,
        end_date=end_date,
        terms=terms or "",
    )
    _log(doc, user, "create", f"Created contract {doc.contract_number}")
    return doc


@transaction.atomic
def create_invoice(
    *,
    laboratory,
    user,
    client,
    items,
    tax_rate=None,
    notes="",
    due_date=None,
    invoice_type=Invoice.InvoiceType.TAX,
) -> Invoice:
    if invoice_type not in Invoice.InvoiceType.values:
        raise ValidationError({"invoice_type": f"Unknown invoice type: {invoice_type}"})
    doc = _create(
        Invoice,
        laboratory=laboratory,
        user=user,
        client=client,
        items=items,
        tax_rate=tax_rate,
        number_key=invoice_type,
        notes=notes or "",
        due_date=due_date,
        invoice_type=invoice_type,
    )
    _log(doc, user, "create", f"Created {doc.get_invoice_type_display().lower()} {doc.invoice_number}")
    return doc


@transaction.atomic
def update_document(doc, *, user, items=None, tax_rate=None, **fields):
    """
    Edit a draft document. Replacing items (or the tax rate) recomputes totals.
    """
    doc = type(doc).objects.select_for_update().get(pk=doc.pk)
    if doc.status != "draft":
        raise ValidationError({"status": f"Only draft {_kind(doc)}s can be edited."})
    if getattr(doc, "deleted_at", None):
        raise ValidationError({"detail": "Document is in trash."})

    for name, value in fields.items():
        setattr(doc, name, value)

    if items is not None or tax_rate is not None:
        item_model, fk = ITEM_MODELS[type(doc)]
        if items is None:
            items = _copy_items(doc.items.all())
        items = _clean_items(items)
        if tax_rate is not None:
            doc.tax_rate = Decimal(str(tax_rate))
        doc.subtotal, doc.tax_amount, doc.total = compute_totals(items, doc.tax_rate)
        item_model.objects.filter(**{fk: doc}).delete()
        item_model.objects.bulk_create(_item_rows(doc, items))

    doc.save()
    _log(doc, user, "edit", f"Updated {_kind(doc)} {doc.number}")
    return doc


# ===============================================================
# Status / delete
# ===============================================================

@transaction.atomic
def update_status(doc, *, user, status: str):
    """
    User-driven status change. Conversion/consolidation targets are refused
    here; they belong to the dedicated operations below.
    """
    kind = _kind(doc)
    doc = type(doc).objects.select_for_update().get(pk=doc.pk)
    if getattr(doc, "deleted_at", None):
        raise ValidationError({"detail": "Document is in trash."})

    fields: Dict[str, object] = {}
    now = timezone.now()
    if kind == "invoice" and status == Invoice.Status.PAID:
        fields["paid_date"] = now
    if kind == "quotation" and status == Quotation.Status.ACCEPTED:
        fields["accepted_date"] = now

    execute_transition(instance=doc, kind=kind, new_status=status, user=user, fields=fields)
    _log(doc, user, "edit", f"Updated {kind} {doc.number} status to {doc.status}")
    return doc


@transaction.atomic
def delete_document(doc, *, user) -> None:
    """
    Only drafts can be deleted. Invoices go to trash; quotations and
    contracts are removed.
    """
    kind = _kind(doc)
    doc = type(doc).objects.select_for_update().get(pk=doc.pk)
    if doc.status != "draft":
        raise ValidationError({"status": f"Can only delete {kind}s with draft status"})

    number = doc.number
    if isinstance(doc, Invoice):
        if doc.deleted_at:
            return
        doc.deleted_at = timezone.now()
        doc.deleted_by = user
        doc.save(update_fields=["deleted_at", "deleted_by", "updated_at"])
        _log(doc, user, "delete", f"Moved invoice {number} to trash")
        return

    laboratory = doc.laboratory
    doc.delete()
    audit.record(
        laboratory=laboratory,
        user=user,
        module="accounts",
        action="delete",
        details=f"Deleted {kind} {number}",
    )


@transaction.atomic
def restore_invoice(invoice: Invoice, *, user) -> Invoice:
    invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
    if not invoice.deleted_at:
        raise ValidationError({"detail": "Invoice is not in trash."})
    invoice.deleted_at = None
    invoice.deleted_by = None
    invoice.save(update_fields=["deleted_at", "deleted_by", "updated_at"])
    _log(invoice, user, "edit", f"Restored invoice {invoice.invoice_number} from trash")
    return invoice


@transaction.atomic
def purge_invoice(invoice: Invoice, *, user) -> None:
    invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
    if not invoice.deleted_at:
        raise ValidationError({"detail": "Only invoices in trash can be permanently deleted."})
    laboratory = invoice.laboratory
    number = invoice.invoice_number
    invoice.delete()
    audit.record(
        laboratory=laboratory,
        user=user,
        module="accounts",
        action="delete",
        details=f"Permanently deleted invoice {number}",
    )


# ===============================================================
# Conversions
# ===============================================================

@transaction.atomic
def convert_quotation_to_contract(quotation: Quotation, *, user) -> Contract:
    quotation = Quotation.objects.select_for_update().get(pk=quotation.pk)
    if quotation.status != Quotation.Status.ACCEPTED:
        raise ValidationError({"status": "Can only convert accepted quotations to contracts"})

    number, _ = next_number(quotation.laboratory, *NUMBERING["contract"])
    contract = Contract.objects.create(
        laboratory=quotation.laboratory,
        client=quotation.client,
        quotation=quotation,
        contract_number=number,
        subtotal=quotation.subtotal,
        tax_rate=quotation.tax_rate,
        tax_amount=quotation.tax_amount,
        total=quotation.total,
        notes=quotation.notes,
        status=Contract.Status.DRAFT,
        created_by=user,
    )
    ContractItem.objects.bulk_create(
        [
            ContractItem(
                contract=contract,
                description=i.description,
                quantity=i.quantity,
                unit_price=i.unit_price,
                total=i.total,
                sample=i.sample,
                position=i.position,
            )
            for i in quotation.items.all()
        ]
    )

    execute_transition(
        instance=quotation,
        kind="quotation",
        new_status=Quotation.Status.CONVERTED,
        user=user,
        comment=f"Converted to contract {number}",
        system=True,
    )
    _log(
        contract,
        user,
        "create",
        f"Converted quotation {quotation.quotation_number} to contract {number}",
    )
    return contract


def _lock_proformas(invoices: Sequence[Invoice]) -> List[Invoice]:
    ids = [inv.pk for inv in invoices]
    if len(set(ids)) != len(ids):
        raise ValidationError({"invoices": "The same proforma was given more than once."})

    locked = {
        inv.pk: inv
        for inv in Invoice.objects.select_for_update().filter(pk__in=ids)
    }
    ordered = [locked[pk] for pk in ids if pk in locked]
    if len(ordered) != len(ids):
        raise ValidationError({"invoices": "One or more invoices were not found."})

    for inv in ordered:
        if inv.invoice_type != Invoice.InvoiceType.PROFORMA:
            raise ValidationError({"invoices": f"{inv.invoice_number} is not a proforma invoice."})
        if inv.deleted_at:
            raise ValidationError({"invoices": f"{inv.invoice_number} is in trash."})
        if inv.status in CLOSED_PROFORMA_STATES:
            raise ValidationError(
                {"invoices": f"{inv.invoice_number} is already {inv.status}."}
            )
    return ordered


@transaction.atomic
def convert_proforma(proforma: Invoice, *, user, due_date=None) -> Invoice:
    (source,) = _lock_proformas([proforma])

    number, _ = next_number(source.laboratory, *NUMBERING[Invoice.InvoiceType.TAX])
    invoice = Invoice.objects.create(
        laboratory=source.laboratory,
        client=source.client,
        invoice_number=number,
        invoice_type=Invoice.InvoiceType.TAX,
        subtotal=source.subtotal,
        tax_rate=source.tax_rate,
        tax_amount=source.tax_amount,
        total=source.total,
        notes=source.notes,
        due_date=due_date or source.due_date,
        created_by=user,
    )
    InvoiceItem.objects.bulk_create(
        [
            InvoiceItem(
                invoice=invoice,
                description=i.description,
                quantity=i.quantity,
                unit_price=i.unit_price,
                total=i.total,
                sample=i.sample,
                position=i.position,
            )
            for i in source.items.all()
        ]
    )

    execute_transition(
        instance=source,
        kind="invoice",
        new_status=Invoice.Status.CONVERTED,
        user=user,
        comment=f"Converted to tax invoice {number}",
        fields={"converted_to": invoice},
        system=True,
    )
    _log(invoice, user, "create", f"Converted proforma {source.invoice_number} to invoice {number}")
    return invoice


@transaction.atomic
def consolidate_proformas(proformas: Sequence[Invoice], *, user, due_date=None, notes: str = "") -> Invoice:
    """
    Merge N >= 2 proformas of one lab and client into a single tax invoice.

    Items are concatenated in the given order and the subtotal is recomputed
    from them. The tax amount is the sum of the sources' tax amounts so the
    new total equals the sum of the source totals to the cent.
    """
    if len(proformas) < 2:
        raise ValidationError({"invoices": "At least two proforma invoices are required."})

    sources = _lock_proformas(proformas)
    first = sources[0]
    if any(s.laboratory_id != first.laboratory_id for s in sources):
        raise ValidationError({"invoices": "Proformas belong to different laboratories."})
    if any(s.client_id != first.client_id for s in sources):
        raise ValidationError({"invoices": "Proformas must all be for the same client."})
    if any(s.tax_rate != first.tax_rate for s in sources):
        raise ValidationError({"invoices": "Proformas must all use the same tax rate."})

    items = []
    for s in sources:
        items.extend(_copy_items(s.items.all()))
    subtotal, _, _ = compute_totals(items, first.tax_rate)
    tax_amount = money(sum((s.tax_amount for s in sources), Decimal("0")))
    total = money(subtotal + tax_amount)

    number, _ = next_number(first.laboratory, *NUMBERING[Invoice.InvoiceType.TAX])
    source_numbers = ", ".join(s.invoice_number for s in sources)
    invoice = Invoice.objects.create(
        laboratory=first.laboratory,
        client=first.client,
        invoice_number=number,
        invoice_type=Invoice.InvoiceType.TAX,
        subtotal=subtotal,
        tax_rate=first.tax_rate,
        tax_amount=tax_amount,
        total=total,
        notes=notes or f"Consolidated from {source_numbers}",
        due_date=due_date,
        created_by=user,
    )
    InvoiceItem.objects.bulk_create(_item_rows(invoice, items))

    for s in sources:
        execute_transition(
            instance=s,
            kind="invoice",
            new_status=Invoice.Status.CONSOLIDATED,
            user=user,
            comment=f"Consolidated into {number}",
            fields={"converted_to": invoice},
            system=True,
        )

    _log(invoice, user, "create", f"Consolidated {source_numbers} into invoice {number}")
    logger.info("Consolidated %d proformas into %s", len(sources), number)
    return invoice


# ===============================================================
# Scheduled
# ===============================================================

def expire_overdue_quotations(today=None) -> int:
    """
    Mark sent quotations past their valid_until date as expired.
    Returns the number of quotations expired.
    """
    today = today or timezone.localdate()
    expired = 0
    overdue = Quotation.objects.filter(
        status=Quotation.Status.SENT,
        valid_until__lt=today,
    )

    for quotation in overdue:
        try:
            with transaction.atomic():
                result = execute_transition(
                    instance=quotation,
                    kind="quotation",
                    new_status=Quotation.Status.EXPIRED,
                    comment="Validity period ended",
                    system=True,
                )
        except ValidationError as exc:
            logger.warning("Could not expire quotation %s: %s", quotation.pk, exc.detail)
            continue
        if result["changed"]:
            expired += 1

    if expired:
        logger.info("Expired %d overdue quotation(s)", expired)
    return expired
