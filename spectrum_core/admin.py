# spectrum_core/admin.py

from django.contrib import admin
from django.utils.html import format_html

from .models import (
    AuditLog,
    ContactPerson,
    Contract,
    ContractItem,
    Customer,
    FormatID,
    Invoice,
    InvoiceItem,
    Laboratory,
    Quotation,
    QuotationItem,
    Registration,
    Report,
    ReportVerification,
    Sample,
    SampleType,
    TestResult,
    UserRole,
    WorkflowTransition,
)


class ReadOnlyAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class ServiceManagedAdmin(admin.ModelAdmin):
    """
    Rows created by the services (numbered, lab-bound). Admin may correct
    descriptive fields only.
    """

    locked_fields = ("laboratory",)

    def has_add_permission(self, request):
        return False

    def get_readonly_fields(self, request, obj=None):
        return tuple(self.locked_fields) + tuple(super().get_readonly_fields(request, obj))


# =============================================================
# Workflow transitions (READ-ONLY AUDIT LOG)
# =============================================================

@admin.register(WorkflowTransition)
class WorkflowTransitionAdmin(ReadOnlyAdmin):
    list_display = (
        "kind",
        "object_id",
        "from_status",
        "to_status",
        "performed_by",
        "laboratory",
        "created_at",
    )
    list_filter = ("kind", "from_status", "to_status", "laboratory")
    search_fields = ("object_id", "performed_by__username")
    ordering = ("-created_at",)
    readonly_fields = [f.name for f in WorkflowTransition._meta.fields]


@admin.register(AuditLog)
class AuditLogAdmin(ReadOnlyAdmin):
    list_display = ("created_at", "laboratory", "user_name", "module", "action", "details")
    list_filter = ("module", "action", "laboratory")
    search_fields = ("details", "user_name")
    ordering = ("-created_at",)
    readonly_fields = [f.name for f in AuditLog._meta.fields]


# =============================================================
# Laboratory / roles / counters
# =============================================================

@admin.register(Laboratory)
class LaboratoryAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "is_active", "zoho_status")
    search_fields = ("code", "name")
    list_filter = ("is_active",)
    fieldsets = (
        ("Laboratory", {"fields": ("code", "name", "address", "phone", "email", "is_active")}),
        (
            "Zoho Books",
            {
                "classes": ("collapse",),
                "fields": (
                    "zoho_api_domain",
                    "zoho_org_id",
                    "zoho_client_id",
                    "zoho_client_secret",
                    "zoho_refresh_token",
                ),
            },
        ),
    )

    def zoho_status(self, obj):
        if obj.zoho_configured:
            return format_html('<span style="color:#2e7d32;font-weight:bold;">{}</span>', "CONFIGURED")
        return format_html('<span style="color:#9e9e9e;">{}</span>', "not configured")

    zoho_status.short_description = "Zoho"


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ("user", "laboratory", "role")
    list_filter = ("role", "laboratory")
    search_fields = ("user__username", "user__email")


@admin.register(FormatID)
class FormatIDAdmin(admin.ModelAdmin):
    list_display = ("laboratory", "module", "prefix", "last_number")
    list_filter = ("laboratory", "module")
    # last_number only grows through spectrum_core.numbering
    readonly_fields = ("last_number",)


# =============================================================
# Masters
# =============================================================

class ContactPersonInline(admin.TabularInline):
    model = ContactPerson
    extra = 0


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "company", "laboratory", "status", "zoho_contact_id")
    list_filter = ("status", "laboratory")
    search_fields = ("code", "name", "company", "email")
    readonly_fields = ("code", "zoho_contact_id", "created_at", "updated_at")
    inlines = [ContactPersonInline]


@admin.register(SampleType)
class SampleTypeAdmin(admin.ModelAdmin):
    list_display = ("name", "laboratory", "specification_standard", "test_count", "status")
    list_filter = ("status", "laboratory")
    search_fields = ("name",)

    def test_count(self, obj):
        return len(obj.default_tests or [])


# =============================================================
# Process (status is workflow-controlled: read-only here)
# =============================================================

class TestResultInline(admin.TabularInline):
    model = TestResult
    extra = 0
    fields = ("parameter", "test_method", "unit", "spec_min", "spec_max", "result_value", "status", "due_date")
    readonly_fields = ("status",)


@admin.register(Registration)
class RegistrationAdmin(ServiceManagedAdmin):
    list_display = ("registration_number", "client", "laboratory", "priority", "registered_at")
    list_filter = ("laboratory", "priority")
    search_fields = ("registration_number", "reference")
    readonly_fields = ("registration_number", "sequence_number")


@admin.register(Sample)
class SampleAdmin(ServiceManagedAdmin):
    list_display = ("sample_number", "client", "sample_type", "status", "priority", "assigned_to", "deleted_at")
    list_filter = ("status", "priority", "laboratory", "sample_type")
    search_fields = ("sample_number", "reference", "client__name")
    readonly_fields = ("sample_number", "sequence_number", "status", "deleted_at", "deleted_by")
    inlines = [TestResultInline]


@admin.register(Report)
class ReportAdmin(ServiceManagedAdmin):
    list_display = ("report_number", "sample", "status", "reviewed_by", "published_at")
    list_filter = ("status", "laboratory")
    search_fields = ("report_number", "sample__sample_number")
    readonly_fields = ("report_number", "status", "reviewed_by", "reviewed_at", "published_at")


@admin.register(ReportVerification)
class ReportVerificationAdmin(ReadOnlyAdmin):
    list_display = ("verification_code", "report_number", "sample_number", "client_name", "issued_at")
    search_fields = ("verification_code", "report_number", "sample_number")
    readonly_fields = [f.name for f in ReportVerification._meta.fields]


# =============================================================
# Accounts
# =============================================================

class QuotationItemInline(admin.TabularInline):
    model = QuotationItem
    extra = 0
    readonly_fields = ("total",)


class ContractItemInline(admin.TabularInline):
    model = ContractItem
    extra = 0
    readonly_fields = ("total",)


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0
    readonly_fields = ("total",)


ACCOUNTS_READONLY = ("status", "subtotal", "tax_amount", "total", "created_by")


@admin.register(Quotation)
class QuotationAdmin(ServiceManagedAdmin):
    list_display = ("quotation_number", "client", "status", "total", "valid_until")
    list_filter = ("status", "laboratory")
    search_fields = ("quotation_number", "client__name")
    readonly_fields = ("quotation_number",) + ACCOUNTS_READONLY
    inlines = [QuotationItemInline]


@admin.register(Contract)
class ContractAdmin(ServiceManagedAdmin):
    list_display = ("contract_number", "client", "status", "total", "start_date", "end_date")
    list_filter = ("status", "laboratory")
    search_fields = ("contract_number", "client__name")
    readonly_fields = ("contract_number", "quotation") + ACCOUNTS_READONLY
    inlines = [ContractItemInline]


@admin.register(Invoice)
class InvoiceAdmin(ServiceManagedAdmin):
    list_display = ("invoice_number", "invoice_type", "client", "status", "total", "due_date", "zoho_invoice_id")
    list_filter = ("invoice_type", "status", "laboratory")
    search_fields = ("invoice_number", "client__name", "zoho_invoice_id")
    readonly_fields = ("invoice_number", "converted_to", "deleted_at", "deleted_by") + ACCOUNTS_READONLY
    inlines = [InvoiceItemInline]
