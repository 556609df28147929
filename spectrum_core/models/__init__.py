from .core import (
    TimeStampedModel,
    Laboratory,
    UserRole,
    FormatID,
    AuditLog,
    WorkflowTransition,
)
from .masters import Customer, ContactPerson, SampleType
from .process import Registration, Sample, TestResult, Report, ReportVerification
from .accounts import (
    Quotation,
    QuotationItem,
    Contract,
    ContractItem,
    Invoice,
    InvoiceItem,
)

__all__ = [
    "TimeStampedModel",
    "Laboratory",
    "UserRole",
    "FormatID",
    "AuditLog",
    "WorkflowTransition",
    "Customer",
    "ContactPerson",
    "SampleType",
    "Registration",
    "Sample",
    "TestResult",
    "Report",
    "ReportVerification",
    "Quotation",
    "QuotationItem",
    "Contract",
    "ContractItem",
    "Invoice",
    "InvoiceItem",
]
