# spectrum_core/models/accounts.py

from decimal import Decimal

from django.conf import settings
from django.db import models

from spectrum_core.workflows.guards import WorkflowWriteGuardMixin

from .core import TimeStampedModel


def default_tax_rate():
    return Decimal(str(getattr(settings, "DEFAULT_TAX_RATE", "5")))


# ============================================================
# Shared document / line item bases
# ============================================================
class AccountsDocument(WorkflowWriteGuardMixin, TimeStampedModel):
    """
    Common shape of quotations, contracts and invoices.

    subtotal / tax_amount / total are derived from the items and are
    recomputed by spectrum_core.services.accounts whenever items change.
    """

    WORKFLOW_FIELD = "status"
    NUMBER_FIELD = None

    laboratory = models.ForeignKey(
        "spectrum_core.Laboratory",
        on_delete=models.PROTECT,
        related_name="%(class)ss",
    )
    client = models.ForeignKey(
        "spectrum_core.Customer",
        on_delete=models.PROTECT,
        related_name="%(class)ss",
    )
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=default_tax_rate)
    # consolidated invoices store the sum of their sources' tax amounts, which can
    # differ from round(subtotal * tax_rate) by a cent per source
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    notes = models.TextField(blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at", "-id"]

    @property
    def number(self) -> str:
        return getattr(self, self.NUMBER_FIELD, "") if self.NUMBER_FIELD else ""

    def __str__(self):
        return self.number or f"{self.__class__.__name__} #{self.pk}"


class LineItem(models.Model):
    description = models.CharField(max_length=500)
    quantity = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("1"))
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    position = models.PositiveIntegerField(default=0)
    sample = models.ForeignKey(
        "spectrum_core.Sample",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        abstract = True
        ordering = ["position", "id"]

    def __str__(self):
        return self.description


# ============================================================
# Quotation
# ============================================================
class Quotation(AccountsDocument):
    NUMBER_FIELD = "quotation_number"

    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        SENT = "sent", "Sent"
        ACCEPTED = "accepted", "Accepted"
        REJECTED = "rejected", "Rejected"
        EXPIRED = "expired", "Expired"
        CONVERTED = "converted", "Converted"

    quotation_number = models.CharField(max_length=64, unique=True)
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.DRAFT,
        db_index=True,
    )
    valid_until = models.DateField(null=True, blank=True)
    accepted_date = models.DateTimeField(null=True, blank=True)

    class Meta(AccountsDocument.Meta):
        pass


class QuotationItem(LineItem):
    quotation = models.ForeignKey(
        Quotation,
        on_delete=models.CASCADE,
        related_name="items",
    )

    class Meta(LineItem.Meta):
        pass


# ============================================================
# Contract
# ============================================================
class Contract(AccountsDocument):
    NUMBER_FIELD = "contract_number"

    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        ACTIVE = "active", "Active"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    contract_number = models.CharField(max_length=64, unique=True)
    quotation = models.OneToOneField(
        Quotation,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="contract",
    )
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.DRAFT,
        db_index=True,
    )
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    terms = models.TextField(blank=True)

    class Meta(AccountsDocument.Meta):
        pass


class ContractItem(LineItem):
    contract = models.ForeignKey(
        Contract,
        on_delete=models.CASCADE,
        related_name="items",
    )

    class Meta(LineItem.Meta):
        pass


# ============================================================
# Invoice (tax or proforma)
# ============================================================
class Invoice(AccountsDocument):
    NUMBER_FIELD = "invoice_number"

    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        SENT = "sent", "Sent"
        PAID = "paid", "Paid"
        CANCELLED = "cancelled", "Cancelled"
        CONVERTED = "converted", "Converted"
        CONSOLIDATED = "consolidated", "Consolidated"

    class InvoiceType(models.TextChoices):
        TAX = "tax", "Tax Invoice"
        PROFORMA = "proforma", "Proforma Invoice"

    invoice_number = models.CharField(max_length=64, unique=True)
    invoice_type = models.CharField(
        max_length=16,
        choices=InvoiceType.choices,
        default=InvoiceType.TAX,
        db_index=True,
    )
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.DRAFT,
        db_index=True,
    )
    due_date = models.DateField(null=True, blank=True)
    paid_date = models.DateTimeField(null=True, blank=True)

    # Proforma -> tax invoice link (conversion or consolidation)
    converted_to = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="source_proformas",
    )

    zoho_invoice_id = models.CharField(max_length=64, blank=True, db_index=True)

    # Trash
    deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)
    deleted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta(AccountsDocument.Meta):
        pass

    @property
    def is_proforma(self) -> bool:
        return self.invoice_type == self.InvoiceType.PROFORMA


class InvoiceItem(LineItem):
    invoice = models.ForeignKey(
        Invoice,
        on_delete=models.CASCADE,
        related_name="items",
    )

    class Meta(LineItem.Meta):
        pass
