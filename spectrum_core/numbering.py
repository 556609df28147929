# spectrum_core/numbering.py
from __future__ import annotations

import logging
from typing import Optional, Tuple

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from spectrum_core.models import FormatID

logger = logging.getLogger(__name__)


DEFAULT_PREFIXES = {
    "sample": "SPL",
    "registration": "REG",
    "report": "RPT",
    "invoice": "INV",
    "proforma": "PRO",
    "quotation": "QUO",
    "contract": "CON",
}


def format_number(prefix: str, sequence: int, when=None) -> str:
    """
    PREFIX-YYMMDD-NNN. Sequences above 999 keep all their digits.
    """
    day = when or timezone.localdate()
    return f"{prefix}-{day:%y%m%d}-{int(sequence):03d}"


def _lock_counter(laboratory, module: str, prefix: Optional[str]) -> FormatID:
    fallback = prefix or DEFAULT_PREFIXES.get(module) or module[:3].upper()
    counter, created = FormatID.objects.get_or_create(
        laboratory=laboratory,
        module=module,
        defaults={"prefix": fallback, "last_number": 0},
    )
    if created:
        logger.info("Created %s counter for lab %s (prefix %s)", module, laboratory.pk, fallback)
    return FormatID.objects.select_for_update().get(pk=counter.pk)


def next_number(laboratory, module: str, prefix: Optional[str] = None, when=None) -> Tuple[str, int]:
    """
    Atomically take the next number for (laboratory, module).

    Returns (formatted, sequence). The stored prefix wins over `prefix`, which
    only seeds the counter row on first use.
    """
    module = (module or "").strip().lower()
    if not module:
        raise ValueError("module is required")

    with transaction.atomic():
        counter = _lock_counter(laboratory, module, prefix)
        FormatID.objects.filter(pk=counter.pk).update(last_number=F("last_number") + 1)
        counter.refresh_from_db(fields=["last_number", "prefix"])

    return format_number(counter.prefix, counter.last_number, when=when), counter.last_number


def linked_number(laboratory, module: str, sequence: int, prefix: Optional[str] = None, when=None) -> str:
    """
    Number a document with a sequence taken from another module
    (RPT-YYMMDD-<sample seq>).

    The module counter is raised to at least `sequence` so that numbers handed
    out later by next_number() cannot collide with it.
    """
    module = (module or "").strip().lower()

    with transaction.atomic():
        counter = _lock_counter(laboratory, module, prefix)
        if counter.last_number < sequence:
            FormatID.objects.filter(pk=counter.pk).update(last_number=sequence)

    return format_number(counter.prefix, sequence, when=when)


def peek_next(laboratory, module: str) -> str:
    """Preview of the next number; does not consume it."""
    module = (module or "").strip().lower()
    counter = FormatID.objects.filter(laboratory=laboratory, module=module).first()
    if counter is None:
        return format_number(DEFAULT_PREFIXES.get(module, module[:3].upper()), 1)
    return format_number(counter.prefix, counter.last_number + 1)
