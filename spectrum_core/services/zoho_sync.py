# spectrum_core/services/zoho_sync.py
from __future__ import annotations

import logging
from typing import Optional

from django.db import transaction
from rest_framework.exceptions import ValidationError

from spectrum_core import audit
from spectrum_core.integrations.zoho import ZohoClient, ZohoError
from spectrum_core.models import ContactPerson, Customer, Invoice
from spectrum_core.services.masters import customer_code_prefix

logger = logging.getLogger(__name__)


def _result(success: bool, message: str, created: int = 0, updated: int = 0, total: int = 0) -> dict:
    return {
        "success": success,
        "created": created,
        "updated": updated,
        "total": total,
        "message": message,
    }


def format_address(addr: Optional[dict]) -> str:
    if not addr:
        return ""
    parts = [
        addr.get("attention"),
        addr.get("address"),
        addr.get("street2"),
        addr.get("city"),
        addr.get("state"),
        addr.get("zip"),
        addr.get("country"),
    ]
    return ", ".join(str(p) for p in parts if p)


def _person_name(person: dict) -> str:
    return " ".join(p for p in (person.get("first_name"), person.get("last_name")) if p)


def contact_fields(contact: dict) -> dict:
    """Customer fields carried over from one Zoho contact."""
    persons = contact.get("contact_persons") or []
    primary = persons[0] if persons else {}
    payment_term = contact.get("payment_terms_label") or contact.get("payment_terms") or ""
    return {
        "name": contact.get("contact_name") or "",
        "company": contact.get("company_name") or "",
        "email": primary.get("email") or "",
        "phone": primary.get("phone") or primary.get("mobile") or "",
        "address": format_address(contact.get("billing_address")),
        "contact_person": _person_name(primary),
        "trn": contact.get("tax_id") or contact.get("gst_no") or "",
        "payment_term": str(payment_term),
        "status": Customer.Status.INACTIVE if contact.get("status") == "inactive" else Customer.Status.ACTIVE,
    }


def sync_contact_persons(customer: Customer, zoho_persons) -> None:
    existing = {p.name.lower(): p for p in customer.contact_persons.all()}
    for zp in zoho_persons or []:
        name = _person_name(zp)
        if not name:
            continue
        values = {
            "email": zp.get("email") or "",
            "phone": zp.get("phone") or zp.get("mobile") or "",
            "designation": zp.get("designation") or "",
        }
        match = existing.get(name.lower())
        if match:
            for k, v in values.items():
                setattr(match, k, v)
            match.save(update_fields=list(values) + ["updated_at"])
        else:
            existing[name.lower()] = ContactPerson.objects.create(customer=customer, name=name, **values)


def check_connection(laboratory, *, transport=None) -> dict:
    if not laboratory.zoho_configured:
        return {"success": False, "message": "Zoho Books is not configured. Please enter all credentials."}
    try:
        with ZohoClient(laboratory, transport=transport) as client:
            orgs = client.organizations()
    except ZohoError as exc:
        logger.warning("Zoho connection test failed for lab %s: %s", laboratory.pk, exc)
        return {"success": False, "message": str(exc) or "Failed to connect to Zoho Books"}

    org = next((o for o in orgs if str(o.get("organization_id")) == laboratory.zoho_org_id), None)
    return {
        "success": True,
        "message": "Connected successfully",
        "org_name": (org or {}).get("name") or "Unknown Organization",
    }


def sync_customers(laboratory, *, user=None, transport=None) -> dict:
    """
    Pull Zoho customer contacts into the lab's customer master.

    Match order: Zoho contact id, then case-insensitive name or company.
    Never raises for Zoho failures; the result dict carries the message.
    """
    if not laboratory.zoho_configured:
        return _result(False, "Zoho Books is not configured.")

    try:
        with ZohoClient(laboratory, transport=transport) as client:
            contacts = client.fetch_all_contacts()
    except ZohoError as exc:
        logger.exception("Zoho sync failed for lab %s", laboratory.pk)
        return _result(False, str(exc) or "Sync failed")

    created = updated = 0
    with transaction.atomic():
        customers = list(Customer.objects.select_for_update().filter(laboratory=laboratory))
        by_zoho_id = {c.zoho_contact_id: c for c in customers if c.zoho_contact_id}
        by_name = {}
        for c in customers:
            by_name[c.name.lower()] = c
            if c.company:
                by_name[c.company.lower()] = c
        count = len(customers)

        for contact in contacts:
            zoho_id = str(contact.get("contact_id"))
            fields = contact_fields(contact)

            existing = by_zoho_id.get(zoho_id)
            if existing is None:
                existing = by_name.get(fields["name"].lower()) or (
                    by_name.get(fields["company"].lower()) if fields["company"] else None
                )

            if existing is not None:
                fields["name"] = fields["name"] or existing.name
                for k, v in fields.items():
                    setattr(existing, k, v)
                existing.zoho_contact_id = zoho_id
                existing.save()
                customer = existing
                updated += 1
            else:
                count += 1
                prefix = customer_code_prefix(fields["name"] or "XXX")
                code = f"SP-{prefix}-{count:03d}"
                while Customer.objects.filter(laboratory=laboratory, code=code).exists():
                    count += 1
                    code = f"SP-{prefix}-{count:03d}"
                customer = Customer.objects.create(
                    laboratory=laboratory,
                    code=code,
                    zoho_contact_id=zoho_id,
                    **fields,
                )
                created += 1

            by_zoho_id[zoho_id] = customer
            sync_contact_persons(customer, contact.get("contact_persons"))

        audit.record(
            laboratory=laboratory,
            user=user,
            module="masters",
            action="sync",
            details=(
                f"Zoho customer sync: {created} created, {updated} updated "
                f"out of {len(contacts)} contacts"
            ),
        )

    return _result(
        True,
        f"Sync complete: {created} created, {updated} updated",
        created=created,
        updated=updated,
        total=len(contacts),
    )


def invoice_payload(invoice: Invoice) -> dict:
    payload = {
        "customer_id": invoice.client.zoho_contact_id,
        "reference_number": invoice.invoice_number,
        "date": invoice.created_at.date().isoformat(),
        "notes": invoice.notes,
        "line_items": [
            {
                "name": item.description[:100],
                "description": item.description,
                "rate": str(item.unit_price),
                "quantity": str(item.quantity),
            }
            for item in invoice.items.all()
        ],
    }
    if invoice.due_date:
        payload["due_date"] = invoice.due_date.isoformat()
    return payload


@transaction.atomic
def push_invoice(invoice: Invoice, *, user=None, transport=None) -> Invoice:
    """
    Create a tax invoice in Zoho Books and store the returned id.
    The customer must already be linked to a Zoho contact.

    The invoice row stays locked from the already-pushed check until the id
    is written back, so a retried push waits and then fails the check.
    """
    invoice = Invoice.objects.select_for_update().select_related("client", "laboratory").get(pk=invoice.pk)
    if invoice.invoice_type != Invoice.InvoiceType.TAX:
        raise ValidationError({"invoice_type": "Only tax invoices can be pushed to Zoho Books."})
    if invoice.deleted_at:
        raise ValidationError({"detail": "Invoice is in trash."})
    if invoice.status in (Invoice.Status.DRAFT, Invoice.Status.CANCELLED):
        raise ValidationError({"status": f"A {invoice.status} invoice cannot be pushed to Zoho Books."})
    if invoice.zoho_invoice_id:
        raise ValidationError({"zoho_invoice_id": "Invoice was already pushed to Zoho Books."})
    if not invoice.client.zoho_contact_id:
        raise ValidationError({"client": "Customer is not linked to a Zoho Books contact."})

    with ZohoClient(invoice.laboratory, transport=transport) as client:
        created = client.create_invoice(invoice_payload(invoice))

    zoho_id = str(created.get("invoice_id") or "")
    if not zoho_id:
        raise ZohoError("Zoho Books did not return an invoice id")

    invoice.zoho_invoice_id = zoho_id
    invoice.save(update_fields=["zoho_invoice_id", "updated_at"])

    audit.record(
        laboratory=invoice.laboratory,
        user=user,
        module="accounts",
        action="sync",
        details=f"Pushed invoice {invoice.invoice_number} to Zoho Books ({zoho_id})",
    )
    return invoice
