from __future__ import annotations

from typing import Any, Dict, List

from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import (
    AuditLog,
    ContactPerson,
    Contract,
    Customer,
    Invoice,
    Laboratory,
    Quotation,
    Registration,
    Report,
    Sample,
    SampleType,
    TestResult,
    UserRole,
    WorkflowTransition,
)
from .services.masters import normalize_template
from .workflows import allowed_next_states

User = get_user_model()


# ===============================================================
# Helpers
# ===============================================================

class ImmutableFieldsMixin:
    """
    Blocks updates to selected fields if they appear in incoming validated data.
    """
    immutable_fields: tuple[str, ...] = ()

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        if self.instance is not None and self.immutable_fields:
            for field in self.immutable_fields:
                if field in attrs:
                    raise serializers.ValidationError(
                        {field: "This field is immutable."}
                    )
        return super().validate(attrs)


class LabScopedPrimaryKeyRelatedField(serializers.PrimaryKeyRelatedField):
    """
    PK field whose choices are limited to the laboratory in the serializer
    context. `lab_lookup` is the path from the related model to its lab.
    """

    def __init__(self, lab_lookup: str = "laboratory", **kwargs):
        self.lab_lookup = lab_lookup
        super().__init__(**kwargs)

    def get_queryset(self):
        qs = super().get_queryset()
        lab = self.context.get("laboratory")
        if lab is None:
            return qs.none()
        return qs.filter(**{self.lab_lookup: lab}).distinct()


def lab_user_field(**kwargs):
    return LabScopedPrimaryKeyRelatedField(
        queryset=User.objects.all(),
        lab_lookup="lims_roles__laboratory",
        **kwargs,
    )


class UserSlimSerializer(serializers.ModelSerializer):
    full_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ("id", "username", "email", "full_name")
        read_only_fields = fields

    def get_full_name(self, obj) -> str:
        return (obj.get_full_name() or "").strip() or obj.get_username()


# ===============================================================
# Laboratory / roles (admin)
# ===============================================================

class LaboratorySerializer(serializers.ModelSerializer):
    zoho_configured = serializers.BooleanField(read_only=True)

    class Meta:
        model = Laboratory
        fields = (
            "id",
            "code",
            "name",
            "address",
            "phone",
            "email",
            "is_active",
            "zoho_client_id",
            "zoho_client_secret",
            "zoho_refresh_token",
            "zoho_org_id",
            "zoho_api_domain",
            "zoho_configured",
            "created_at",
            "updated_at",
        )
        read_only_fields = ("id", "zoho_configured", "created_at", "updated_at")
        extra_kwargs = {
            "zoho_client_secret": {"write_only": True},
            "zoho_refresh_token": {"write_only": True},
        }


class UserRoleSerializer(serializers.ModelSerializer):
    laboratory = serializers.PrimaryKeyRelatedField(read_only=True)
    laboratory_code = serializers.CharField(source="laboratory.code", read_only=True)
    user_username = serializers.CharField(source="user.username", read_only=True)

    class Meta:
        model = UserRole
        fields = (
            "id",
            "user",
            "user_username",
            "laboratory",
            "laboratory_code",
            "role",
            "created_at",
            "updated_at",
        )
        read_only_fields = (
            "id",
            "laboratory",
            "laboratory_code",
            "user_username",
            "created_at",
            "updated_at",
        )


# ===============================================================
# Masters
# ===============================================================

class ContactPersonSerializer(ImmutableFieldsMixin, serializers.ModelSerializer):
    customer = LabScopedPrimaryKeyRelatedField(queryset=Customer.objects.all())

    immutable_fields = ("customer",)

    class Meta:
        model = ContactPerson
        fields = (
            "id",
            "customer",
            "name",
            "email",
            "phone",
            "designation",
            "created_at",
            "updated_at",
        )
        read_only_fields = ("id", "created_at", "updated_at")


class CustomerSerializer(serializers.ModelSerializer):
    laboratory = serializers.PrimaryKeyRelatedField(read_only=True)
    display_name = serializers.CharField(read_only=True)
    contact_persons = ContactPersonSerializer(many=True, read_only=True)

    class Meta:
        model = Customer
        fields = (
            "id",
            "laboratory",
            "code",
            "name",
            "company",
            "display_name",
            "email",
            "phone",
            "address",
            "contact_person",
            "trn",
            "payment_term",
            "status",
            "zoho_contact_id",
            "contact_persons",
            "created_at",
            "updated_at",
        )
        read_only_fields = (
            "id",
            "laboratory",
            "code",
            "display_name",
            "zoho_contact_id",
            "contact_persons",
            "created_at",
            "updated_at",
        )


class SampleTypeSerializer(serializers.ModelSerializer):
    laboratory = serializers.PrimaryKeyRelatedField(read_only=True)

    class Meta:
        model = SampleType
        fields = (
            "id",
            "laboratory",
            "name",
            "description",
            "specification_standard",
            "default_tests",
            "status",
            "created_at",
            "updated_at",
        )
        read_only_fields = ("id", "laboratory", "created_at", "updated_at")

    def validate_default_tests(self, value):
        try:
            return normalize_template(value)
        except serializers.ValidationError as exc:
            detail = exc.detail.get("default_tests") if isinstance(exc.detail, dict) else exc.detail
            raise serializers.ValidationError(detail)

    def validate_name(self, value):
        lab = self.context.get("laboratory")
        qs = SampleType.objects.filter(laboratory=lab, name__iexact=value.strip())
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if lab is not None and qs.exists():
            raise serializers.ValidationError("A sample type with this name already exists.")
        return value.strip()


# ===============================================================
# Samples / test results
# ===============================================================

class TestResultSerializer(serializers.ModelSerializer):
    entered_by = UserSlimSerializer(read_only=True)
    sample_number = serializers.CharField(source="sample.sample_number", read_only=True)

    # keeps pytest from collecting the serializer
    __test__ = False

    class Meta:
        model = TestResult
        fields = (
            "id",
            "sample",
            "sample_number",
            "parameter",
            "test_method",
            "unit",
            "spec_min",
            "spec_max",
            "tat",
            "due_date",
            "result_value",
            "status",
            "entered_by",
            "entered_at",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class TestDefinitionSerializer(serializers.Serializer):
    """One ad-hoc test added to a sample."""

    parameter = serializers.CharField(max_length=255)
    method = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    unit = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    specMin = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    specMax = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    tat = serializers.IntegerField(required=False, allow_null=True, min_value=0, default=None)

    __test__ = False


class AddTestsSerializer(serializers.Serializer):
    tests = TestDefinitionSerializer(many=True, allow_empty=False)


class ResultEntrySerializer(serializers.Serializer):
    id = serializers.IntegerField()
    result_value = serializers.CharField(max_length=255, allow_blank=True)


class EnterResultsSerializer(serializers.Serializer):
    results = ResultEntrySerializer(many=True, allow_empty=False)


class AssignSerializer(serializers.Serializer):
    assigned_to = lab_user_field(allow_null=True)


class SampleSerializer(serializers.ModelSerializer):
    laboratory = serializers.PrimaryKeyRelatedField(read_only=True)
    client = LabScopedPrimaryKeyRelatedField(queryset=Customer.objects.all())
    client_name = serializers.CharField(source="client.display_name", read_only=True)
    sample_type = LabScopedPrimaryKeyRelatedField(queryset=SampleType.objects.all())
    sample_type_name = serializers.CharField(source="sample_type.name", read_only=True)
    registration_number = serializers.CharField(
        source="registration.registration_number", read_only=True, default=None
    )
    assigned_to = UserSlimSerializer(read_only=True)
    registered_by = UserSlimSerializer(read_only=True)
    collected_by = lab_user_field(required=False, allow_null=True)
    test_results = TestResultSerializer(many=True, read_only=True)

    # Registration-only inputs
    selected_tests = serializers.ListField(
        child=serializers.IntegerField(min_value=0),
        required=False,
        write_only=True,
        help_text="Indexes into the sample type's default tests; omit for all.",
    )
    booked = serializers.BooleanField(
        required=False,
        default=False,
        write_only=True,
        help_text="Create the sample as 'pending' (booked ahead of collection).",
    )

    allowed_next_states = serializers.SerializerMethodField()

    class Meta:
        model = Sample
        fields = (
            "id",
            "laboratory",
            "registration",
            "registration_number",
            "sample_number",
            "sub_sample_number",
            "sample_group",
            "client",
            "client_name",
            "sample_type",
            "sample_type_name",
            "description",
            "quantity",
            "sample_condition",
            "priority",
            "job_type",
            "reference",
            "notes",
            "status",
            "allowed_next_states",
            "assigned_to",
            "collected_by",
            "registered_by",
            "registered_at",
            "collection_date",
            "collection_location",
            "sample_point",
            "deleted_at",
            "test_results",
            "selected_tests",
            "booked",
            "created_at",
            "updated_at",
        )
        read_only_fields = (
            "id",
            "laboratory",
            "registration",
            "registration_number",
            "sample_number",
            "sub_sample_number",
            "sample_group",
            "client_name",
            "sample_type_name",
            "status",
            "allowed_next_states",
            "assigned_to",
            "registered_by",
            "registered_at",
            "deleted_at",
            "test_results",
            "created_at",
            "updated_at",
        )

    def get_allowed_next_states(self, obj: Sample) -> List[str]:
        return allowed_next_states("sample", obj.status, include_system=False)


class BatchRowSerializer(serializers.Serializer):
    sample_type = LabScopedPrimaryKeyRelatedField(queryset=SampleType.objects.all())
    qty = serializers.IntegerField(min_value=1, max_value=99, default=1)
    bottle_qty = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    sample_point = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    description = serializers.CharField(required=False, allow_blank=True, default="")
    remarks = serializers.CharField(required=False, allow_blank=True, default="")
    selected_tests = serializers.ListField(
        child=serializers.IntegerField(min_value=0), required=False, allow_null=True, default=None
    )


class BatchRegistrationSerializer(serializers.Serializer):
    client = LabScopedPrimaryKeyRelatedField(queryset=Customer.objects.all())
    rows = BatchRowSerializer(many=True, allow_empty=False)
    job_type = serializers.CharField(max_length=32, default="testing")
    priority = serializers.ChoiceField(choices=Sample.Priority.choices, default=Sample.Priority.NORMAL)
    reference = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    collection_date = serializers.DateTimeField(required=False, allow_null=True, default=None)
    collection_location = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    collected_by = lab_user_field(required=False, allow_null=True, default=None)
    sampling_method = serializers.CharField(max_length=32, default="NP")
    sheet_number = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    sample_condition = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class RegistrationUpdateSerializer(serializers.Serializer):
    sampling_method = serializers.CharField(max_length=32, required=False, allow_blank=True)
    sheet_number = serializers.CharField(max_length=64, required=False, allow_blank=True)
    reference = serializers.CharField(max_length=255, required=False, allow_blank=True)
    collection_location = serializers.CharField(max_length=255, required=False, allow_blank=True)
    collected_by = lab_user_field(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class RegistrationSerializer(serializers.ModelSerializer):
    client_name = serializers.CharField(source="client.display_name", read_only=True)
    registered_by = UserSlimSerializer(read_only=True)
    samples = serializers.SlugRelatedField(many=True, read_only=True, slug_field="sample_number")

    class Meta:
        model = Registration
        fields = (
            "id",
            "registration_number",
            "client",
            "client_name",
            "job_type",
            "priority",
            "reference",
            "collection_date",
            "collection_location",
            "collected_by",
            "registered_by",
            "registered_at",
            "sampling_method",
            "sheet_number",
            "notes",
            "samples",
            "created_at",
        )
        read_only_fields = fields


# ===============================================================
# Reports
# ===============================================================

class ReportSerializer(ImmutableFieldsMixin, serializers.ModelSerializer):
    laboratory = serializers.PrimaryKeyRelatedField(read_only=True)
    sample = LabScopedPrimaryKeyRelatedField(queryset=Sample.objects.filter(deleted_at__isnull=True))
    sample_number = serializers.CharField(source="sample.sample_number", read_only=True)
    client_name = serializers.CharField(source="sample.client.display_name", read_only=True)
    created_by = UserSlimSerializer(read_only=True)
    reviewed_by = UserSlimSerializer(read_only=True)
    allowed_next_states = serializers.SerializerMethodField()

    immutable_fields = ("sample",)

    class Meta:
        model = Report
        fields = (
            "id",
            "laboratory",
            "report_number",
            "sample",
            "sample_number",
            "client_name",
            "report_type",
            "title",
            "summary",
            "revision_reason",
            "status",
            "allowed_next_states",
            "created_by",
            "reviewed_by",
            "reviewed_at",
            "published_at",
            "created_at",
            "updated_at",
        )
        read_only_fields = (
            "id",
            "laboratory",
            "report_number",
            "sample_number",
            "client_name",
            "report_type",
            "revision_reason",
            "status",
            "allowed_next_states",
            "created_by",
            "reviewed_by",
            "reviewed_at",
            "published_at",
            "created_at",
            "updated_at",
        )

    def get_allowed_next_states(self, obj: Report) -> List[str]:
        return allowed_next_states("report", obj.status)


class RevisionSerializer(serializers.Serializer):
    reason = serializers.CharField()


class VerificationSerializer(serializers.Serializer):
    valid = serializers.BooleanField()
    verification_code = serializers.CharField()
    report_number = serializers.CharField()
    report_status = serializers.CharField()
    sample_number = serializers.CharField()
    client_name = serializers.CharField()
    sample_type = serializers.CharField()
    test_count = serializers.IntegerField()
    issued_at = serializers.DateTimeField()
    issued_by = serializers.CharField()
    laboratory = serializers.CharField()


# ===============================================================
# Accounts
# ===============================================================

class LineItemSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)
    description = serializers.CharField(max_length=500)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    sample = LabScopedPrimaryKeyRelatedField(
        queryset=Sample.objects.all(), required=False, allow_null=True, default=None
    )


class AccountsDocumentSerializer(serializers.ModelSerializer):
    """
    Shared read shape and write validation for quotations, contracts and
    invoices. Money fields are computed server-side.
    """

    laboratory = serializers.PrimaryKeyRelatedField(read_only=True)
    client = LabScopedPrimaryKeyRelatedField(queryset=Customer.objects.all())
    client_name = serializers.CharField(source="client.display_name", read_only=True)
    items = LineItemSerializer(many=True)
    tax_rate = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False
    )
    created_by = UserSlimSerializer(read_only=True)
    allowed_next_states = serializers.SerializerMethodField()

    common_fields = (
        "id",
        "laboratory",
        "client",
        "client_name",
        "items",
        "subtotal",
        "tax_rate",
        "tax_amount",
        "total",
        "notes",
        "status",
        "allowed_next_states",
        "created_by",
        "created_at",
        "updated_at",
    )
    common_read_only = (
        "id",
        "laboratory",
        "client_name",
        "subtotal",
        "tax_amount",
        "total",
        "status",
        "allowed_next_states",
        "created_by",
        "created_at",
        "updated_at",
    )
    workflow_kind = ""

    def validate(self, attrs):
        if self.instance is not None and "client" in attrs and attrs["client"] != self.instance.client:
            raise serializers.ValidationError({"client": "This field is immutable."})
        return super().validate(attrs)

    def get_allowed_next_states(self, obj) -> List[str]:
        return allowed_next_states(self.workflow_kind, obj.status, include_system=False)


class QuotationSerializer(AccountsDocumentSerializer):
    workflow_kind = "quotation"

    class Meta:
        model = Quotation
        fields = AccountsDocumentSerializer.common_fields + (
            "quotation_number",
            "valid_until",
            "accepted_date",
        )
        read_only_fields = AccountsDocumentSerializer.common_read_only + (
            "quotation_number",
            "accepted_date",
        )


class ContractSerializer(AccountsDocumentSerializer):
    workflow_kind = "contract"
    quotation_number = serializers.CharField(
        source="quotation.quotation_number", read_only=True, default=None
    )

    class Meta:
        model = Contract
        fields = AccountsDocumentSerializer.common_fields + (
            "contract_number",
            "quotation",
            "quotation_number",
            "start_date",
            "end_date",
            "terms",
        )
        read_only_fields = AccountsDocumentSerializer.common_read_only + (
            "contract_number",
            "quotation",
            "quotation_number",
        )


class InvoiceSerializer(AccountsDocumentSerializer):
    workflow_kind = "invoice"
    converted_to_number = serializers.CharField(
        source="converted_to.invoice_number", read_only=True, default=None
    )

    class Meta:
        model = Invoice
        fields = AccountsDocumentSerializer.common_fields + (
            "invoice_number",
            "invoice_type",
            "due_date",
            "paid_date",
            "converted_to",
            "converted_to_number",
            "zoho_invoice_id",
            "deleted_at",
        )
        read_only_fields = AccountsDocumentSerializer.common_read_only + (
            "invoice_number",
            "paid_date",
            "converted_to",
            "converted_to_number",
            "zoho_invoice_id",
            "deleted_at",
        )

    def validate(self, attrs):
        if self.instance is not None and "invoice_type" in attrs and attrs["invoice_type"] != self.instance.invoice_type:
            raise serializers.ValidationError({"invoice_type": "This field is immutable."})
        return super().validate(attrs)


class StatusSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=16)


class ConvertProformaSerializer(serializers.Serializer):
    due_date = serializers.DateField(required=False, allow_null=True, default=None)


class ConsolidateSerializer(serializers.Serializer):
    invoices = LabScopedPrimaryKeyRelatedField(
        queryset=Invoice.objects.filter(deleted_at__isnull=True), many=True
    )
    due_date = serializers.DateField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


# ===============================================================
# Audit / workflow history (READ-ONLY)
# ===============================================================

class AuditLogSerializer(serializers.ModelSerializer):
    laboratory = serializers.PrimaryKeyRelatedField(read_only=True)
    laboratory_code = serializers.CharField(source="laboratory.code", read_only=True, default=None)

    class Meta:
        model = AuditLog
        fields = (
            "id",
            "laboratory",
            "laboratory_code",
            "user",
            "user_name",
            "module",
            "action",
            "details",
            "data",
            "created_at",
        )
        read_only_fields = fields


class WorkflowTransitionSerializer(serializers.ModelSerializer):
    performed_by = UserSlimSerializer(read_only=True)

    class Meta:
        model = WorkflowTransition
        fields = (
            "id",
            "kind",
            "object_id",
            "from_status",
            "to_status",
            "comment",
            "performed_by",
            "created_at",
        )
        read_only_fields = fields
