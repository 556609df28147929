# spectrum_core/tasks.py
from __future__ import annotations

import logging

from celery import shared_task
from django.contrib.auth import get_user_model

from spectrum_core.integrations.zoho import ZohoError
from spectrum_core.models import Invoice, Laboratory
from spectrum_core.services import accounts as accounts_service
from spectrum_core.services import zoho_sync

logger = logging.getLogger(__name__)


def _user(user_id: int | None):
    if not user_id:
        return None
    User = get_user_model()
    return User.objects.filter(id=user_id).first()


@shared_task
def expire_overdue_quotations() -> int:
    return accounts_service.expire_overdue_quotations()


@shared_task
def sync_zoho_customers(laboratory_id: int, user_id: int | None = None) -> dict:
    lab = Laboratory.objects.get(pk=laboratory_id)
    result = zoho_sync.sync_customers(lab, user=_user(user_id))
    if not result["success"]:
        logger.warning("Zoho customer sync for %s failed: %s", lab.code, result["message"])
    return result


@shared_task
def sync_all_zoho_customers() -> int:
    """Nightly pull for every active lab with Zoho credentials."""
    synced = 0
    for lab in Laboratory.objects.filter(is_active=True):
        if not lab.zoho_configured:
            continue
        if zoho_sync.sync_customers(lab)["success"]:
            synced += 1
    return synced


@shared_task(autoretry_for=(ZohoError,), retry_backoff=True, max_retries=3)
def push_invoice_to_zoho(invoice_id: int, user_id: int | None = None) -> str:
    invoice = Invoice.objects.select_related("client", "laboratory").get(pk=invoice_id)
    return zoho_sync.push_invoice(invoice, user=_user(user_id)).zoho_invoice_id
