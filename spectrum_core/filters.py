# spectrum_core/filters.py
import django_filters as df
from django.db.models import Q
from django.utils import timezone

from .models import AuditLog, Customer, Invoice, Quotation, Report, Sample, TestResult


class CustomerFilter(df.FilterSet):
    search = df.CharFilter(method="filter_search")
    name = df.CharFilter(field_name="name", lookup_expr="icontains")

    class Meta:
        model = Customer
        fields = ["search", "name", "status"]

    def filter_search(self, queryset, name, value):
        return queryset.filter(
            Q(name__icontains=value) | Q(company__icontains=value) | Q(code__icontains=value)
        )


class SampleFilter(df.FilterSet):
    sample_number = df.CharFilter(field_name="sample_number", lookup_expr="icontains")
    client = df.NumberFilter(field_name="client_id")
    sample_type = df.NumberFilter(field_name="sample_type_id")
    assigned_to = df.NumberFilter(field_name="assigned_to_id")
    registration = df.NumberFilter(field_name="registration_id")
    registered_at = df.DateFromToRangeFilter()

    class Meta:
        model = Sample
        fields = [
            "sample_number",
            "client",
            "sample_type",
            "status",
            "priority",
            "assigned_to",
            "registration",
            "registered_at",
        ]


class TestResultFilter(df.FilterSet):
    sample = df.NumberFilter(field_name="sample_id")
    parameter = df.CharFilter(field_name="parameter", lookup_expr="icontains")
    overdue = df.BooleanFilter(method="filter_overdue")

    __test__ = False

    class Meta:
        model = TestResult
        fields = ["sample", "parameter", "status", "overdue"]

    def filter_overdue(self, queryset, name, value):
        overdue = Q(status=TestResult.Status.PENDING, due_date__lt=timezone.now())
        return queryset.filter(overdue) if value else queryset.exclude(overdue)


class ReportFilter(df.FilterSet):
    report_number = df.CharFilter(field_name="report_number", lookup_expr="icontains")
    sample = df.NumberFilter(field_name="sample_id")
    client = df.NumberFilter(field_name="sample__client_id")

    class Meta:
        model = Report
        fields = ["report_number", "sample", "client", "status"]


class QuotationFilter(df.FilterSet):
    client = df.NumberFilter(field_name="client_id")
    valid_until = df.DateFromToRangeFilter()

    class Meta:
        model = Quotation
        fields = ["client", "status", "valid_until"]


class InvoiceFilter(df.FilterSet):
    client = df.NumberFilter(field_name="client_id")
    invoice_number = df.CharFilter(field_name="invoice_number", lookup_expr="icontains")
    due_date = df.DateFromToRangeFilter()

    class Meta:
        model = Invoice
        fields = ["client", "invoice_number", "invoice_type", "status", "due_date"]


class AuditLogFilter(df.FilterSet):
    created_at = df.DateFromToRangeFilter()
    user = df.NumberFilter(field_name="user_id")

    class Meta:
        model = AuditLog
        fields = ["module", "action", "user", "created_at"]
