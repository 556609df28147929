# spectrum_core/views.py
from __future__ import annotations

import logging
from typing import Optional

from django.db.models import Count, QuerySet, Sum
from django.http import HttpResponse
from django.utils import timezone

from drf_spectacular.utils import extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .documents.accounts import pdf_filename, render_accounts_pdf
from .documents.coa import render_coa_pdf
from .documents.labels import render_sample_labels
from .filters import (
    AuditLogFilter,
    CustomerFilter,
    InvoiceFilter,
    QuotationFilter,
    ReportFilter,
    SampleFilter,
    TestResultFilter,
)
from .integrations.zoho import ZohoError
from .mixins import (
    AuditLogMixin,
    LabScopedQuerysetMixin,
    _deny_if_payload_has,
    _model_has_field,
)
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
from .permissions import (
    HasModulePermission,
    has_permission,
    require_permission,
    resolve_current_laboratory,
    user_permissions,
    user_role,
)
from .serializers import (
    AddTestsSerializer,
    AssignSerializer,
    AuditLogSerializer,
    BatchRegistrationSerializer,
    ConsolidateSerializer,
    ContactPersonSerializer,
    ContractSerializer,
    ConvertProformaSerializer,
    CustomerSerializer,
    EnterResultsSerializer,
    InvoiceSerializer,
    LaboratorySerializer,
    QuotationSerializer,
    RegistrationSerializer,
    RegistrationUpdateSerializer,
    ReportSerializer,
    RevisionSerializer,
    SampleSerializer,
    SampleTypeSerializer,
    StatusSerializer,
    TestResultSerializer,
    UserRoleSerializer,
    VerificationSerializer,
    WorkflowTransitionSerializer,
)
from .services import accounts as accounts_service
from .services import reports as reports_service
from .services import samples as samples_service
from .services.masters import create_customer, delete_customer, delete_sample_type
from .services.zoho_sync import check_connection, push_invoice, sync_customers

logger = logging.getLogger(__name__)

SERVER_CONTROLLED = "This field is server-controlled."


# ===============================================================
# Utilities
# ===============================================================
def _apply_default_ordering(qs: QuerySet) -> QuerySet:
    if qs.ordered:
        return qs
    if _model_has_field(qs.model, "created_at"):
        return qs.order_by("-created_at", "-id")
    return qs.order_by("-id")


def _history(kind: str, obj) -> list:
    rows = (
        WorkflowTransition.objects.filter(kind=kind, object_id=obj.pk)
        .select_related("performed_by")
        .order_by("created_at", "id")
    )
    return WorkflowTransitionSerializer(rows, many=True).data


def _pdf_response(pdf: bytes, filename: str) -> HttpResponse:
    response = HttpResponse(pdf, content_type="application/pdf")
    response["Content-Disposition"] = f'inline; filename="{filename}"'
    return response


class LabModelViewSet(LabScopedQuerysetMixin, AuditLogMixin, viewsets.ModelViewSet):
    """
    Lab-scoped CRUD guarded by the `permission_module` role matrix.
    """

    permission_classes = [IsAuthenticated, HasModulePermission]
    permission_module: Optional[str] = None
    permission_action: Optional[str] = None

    def get_queryset(self):
        return _apply_default_ordering(self.get_scoped_queryset(super().get_queryset()))


# ===============================================================
# System
# ===============================================================
class HealthCheckView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(tags=["System"])
    def get(self, request):
        lab = resolve_current_laboratory(request)
        payload = {"status": "ok", "service": "Spectrum-LIMS"}
        if lab:
            payload["laboratory"] = {
                "id": lab.id,
                "code": lab.code,
                "name": lab.name,
            }
        return Response(payload)


class WhoAmIView(APIView):
    """
    The authenticated user with their role and effective permissions per lab.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["System"])
    def get(self, request):
        user = request.user
        if user.is_superuser:
            labs = list(Laboratory.objects.filter(is_active=True).order_by("code"))
        else:
            labs = list(
                Laboratory.objects.filter(is_active=True, user_roles__user=user)
                .distinct()
                .order_by("code")
            )

        return Response(
            {
                "id": user.id,
                "username": user.get_username(),
                "is_superuser": bool(user.is_superuser),
                "laboratories": [
                    {
                        "id": lab.id,
                        "code": lab.code,
                        "name": lab.name,
                        "role": user_role(user, lab),
                        "permissions": sorted(user_permissions(user, lab)),
                    }
                    for lab in labs
                ],
            }
        )


class DashboardView(APIView):
    """
    Counters for the active laboratory's home screen. Accounts figures are
    only included for users who can view accounts.
    """

    permission_classes = [IsAuthenticated, HasModulePermission]
    permission_module = "dashboard"
    permission_action = "view"

    @extend_schema(tags=["Dashboard"])
    def get(self, request):
        lab = resolve_current_laboratory(request)
        now = timezone.now()

        samples = Sample.objects.filter(laboratory=lab, deleted_at__isnull=True)
        sample_counts = dict(
            samples.values_list("status").annotate(n=Count("id")).order_by()
        )
        report_counts = dict(
            Report.objects.filter(laboratory=lab)
            .values_list("status")
            .annotate(n=Count("id"))
            .order_by()
        )
        tests = TestResult.objects.filter(
            sample__laboratory=lab,
            sample__deleted_at__isnull=True,
            status=TestResult.Status.PENDING,
        )

        payload = {
            "laboratory": {"id": lab.id, "code": lab.code, "name": lab.name},
            "generated_at": now,
            "samples": {
                "total": sum(sample_counts.values()),
                "by_status": {s: sample_counts.get(s, 0) for s in Sample.Status.values},
                "registered_today": samples.filter(registered_at__date=timezone.localdate()).count(),
            },
            "tests": {
                "pending": tests.count(),
                "overdue": tests.filter(due_date__lt=now).count(),
            },
            "reports": {
                "by_status": {s: report_counts.get(s, 0) for s in Report.Status.values},
            },
        }

        if has_permission(request.user, lab, "accounts", "view"):
            invoices = Invoice.objects.filter(
                laboratory=lab,
                deleted_at__isnull=True,
                invoice_type=Invoice.InvoiceType.TAX,
            )
            payload["accounts"] = {
                "outstanding": invoices.filter(status=Invoice.Status.SENT).aggregate(v=Sum("total"))["v"] or 0,
                "paid": invoices.filter(status=Invoice.Status.PAID).aggregate(v=Sum("total"))["v"] or 0,
                "open_quotations": Quotation.objects.filter(
                    laboratory=lab, status__in=[Quotation.Status.DRAFT, Quotation.Status.SENT]
                ).count(),
            }

        return Response(payload)


# ===============================================================
# Admin: laboratories, roles, audit
# ===============================================================
@extend_schema(tags=["Admin"])
class LaboratoryViewSet(AuditLogMixin, viewsets.ModelViewSet):
    serializer_class = LaboratorySerializer
    permission_classes = [IsAuthenticated, HasModulePermission]
    permission_module = "admin"
    permission_action: Optional[str] = None

    SUPERUSER_ACTIONS = ("list", "retrieve", "create", "update", "partial_update", "destroy")

    def get_permissions(self):
        # superusers manage the lab list itself, no active lab involved
        user = getattr(self.request, "user", None)
        if user is not None and user.is_superuser and self.action in self.SUPERUSER_ACTIONS:
            return [IsAuthenticated()]
        return super().get_permissions()

    def _guess_lab(self, instance):
        # lab management rows are not owned by a lab
        return None

    def get_queryset(self):
        user = self.request.user
        qs = Laboratory.objects.all()
        if not user.is_superuser:
            qs = qs.filter(user_roles__user=user).distinct()
        return qs.order_by("code")

    def perform_create(self, serializer):
        if not self.request.user.is_superuser:
            raise PermissionDenied("Only superusers can create laboratories.")
        super().perform_create(serializer)

    def perform_update(self, serializer):
        require_permission(self.request.user, serializer.instance, "admin", "edit")
        super().perform_update(serializer)

    def perform_destroy(self, instance):
        if not self.request.user.is_superuser:
            raise PermissionDenied("Only superusers can delete laboratories.")
        super().perform_destroy(instance)

    @action(detail=True, methods=["post"], url_path="zoho-test", permission_action="edit")
    def zoho_test(self, request, pk=None):
        lab = self.get_object()
        require_permission(request.user, lab, "admin", "edit")
        result = check_connection(lab)
        return Response(result, status=status.HTTP_200_OK if result["success"] else status.HTTP_400_BAD_REQUEST)


@extend_schema(tags=["Admin"])
class UserRoleViewSet(LabModelViewSet):
    queryset = UserRole.objects.select_related("user", "laboratory").all()
    serializer_class = UserRoleSerializer
    permission_module = "admin"

    def perform_create(self, serializer):
        _deny_if_payload_has(self.request, ["laboratory"], SERVER_CONTROLLED)
        lab = self.get_laboratory()
        if UserRole.objects.filter(user=serializer.validated_data["user"], laboratory=lab).exists():
            raise ValidationError({"user": "User already has a role in this laboratory."})
        instance = serializer.save(laboratory=lab)
        self._audit("create", instance)

    def perform_update(self, serializer):
        _deny_if_payload_has(
            self.request, ["laboratory", "user"], "This field cannot be modified."
        )
        super().perform_update(serializer)


@extend_schema(tags=["Admin"])
class AuditLogViewSet(LabScopedQuerysetMixin, viewsets.ReadOnlyModelViewSet):
    queryset = AuditLog.objects.select_related("user", "laboratory").all()
    serializer_class = AuditLogSerializer
    filterset_class = AuditLogFilter
    permission_classes = [IsAuthenticated, HasModulePermission]
    permission_module = "admin"
    permission_action = "view"

    def get_queryset(self):
        return _apply_default_ordering(self.get_scoped_queryset(super().get_queryset()))


# ===============================================================
# Masters
# ===============================================================
@extend_schema(tags=["Masters"])
class CustomerViewSet(LabModelViewSet):
    queryset = Customer.objects.prefetch_related("contact_persons").all()
    serializer_class = CustomerSerializer
    filterset_class = CustomerFilter
    permission_module = "masters"

    def perform_create(self, serializer):
        _deny_if_payload_has(self.request, ["laboratory", "code"], SERVER_CONTROLLED)
        serializer.instance = create_customer(
            laboratory=self.get_laboratory(),
            user=self.request.user,
            **serializer.validated_data,
        )

    def perform_update(self, serializer):
        _deny_if_payload_has(self.request, ["laboratory", "code"], "This field cannot be modified.")
        super().perform_update(serializer)

    def perform_destroy(self, instance):
        delete_customer(instance, user=self.request.user)

    @action(detail=False, methods=["post"], url_path="sync-zoho", permission_action="edit")
    def sync_zoho(self, request):
        result = sync_customers(self.get_laboratory(), user=request.user)
        return Response(result, status=status.HTTP_200_OK if result["success"] else status.HTTP_400_BAD_REQUEST)


@extend_schema(tags=["Masters"])
class ContactPersonViewSet(LabModelViewSet):
    queryset = ContactPerson.objects.select_related("customer").all()
    serializer_class = ContactPersonSerializer
    permission_module = "masters"
    lab_field_name = "customer__laboratory"


@extend_schema(tags=["Masters"])
class SampleTypeViewSet(LabModelViewSet):
    queryset = SampleType.objects.all()
    serializer_class = SampleTypeSerializer
    permission_module = "masters"

    def perform_create(self, serializer):
        _deny_if_payload_has(self.request, ["laboratory"], SERVER_CONTROLLED)
        instance = serializer.save(laboratory=self.get_laboratory())
        self._audit("create", instance)

    def perform_update(self, serializer):
        _deny_if_payload_has(self.request, ["laboratory"], "This field cannot be modified.")
        super().perform_update(serializer)

    def perform_destroy(self, instance):
        delete_sample_type(instance, user=self.request.user)


# ===============================================================
# Process: samples, registrations, test results
# ===============================================================
@extend_schema(tags=["Samples"])
class SampleViewSet(LabModelViewSet):
    """
    Samples with their test results. Status moves only through the
    assign / results / report actions; deletes go to trash.
    """

    queryset = Sample.objects.select_related(
        "client", "sample_type", "registration", "assigned_to", "registered_by"
    ).prefetch_related("test_results")
    serializer_class = SampleSerializer
    filterset_class = SampleFilter
    permission_module = "process"
    audit_crud = False

    TRASH_ACTIONS = ("trash", "restore", "purge")

    def get_queryset(self):
        qs = super().get_queryset()
        if self.action in self.TRASH_ACTIONS:
            return qs.filter(deleted_at__isnull=False)
        return qs.filter(deleted_at__isnull=True)

    def perform_create(self, serializer):
        _deny_if_payload_has(
            self.request, ["laboratory", "sample_number", "status"], SERVER_CONTROLLED
        )
        data = dict(serializer.validated_data)
        selected = data.pop("selected_tests", None)
        booked = data.pop("booked", False)
        serializer.instance = samples_service.register_sample(
            laboratory=self.get_laboratory(),
            user=self.request.user,
            selected_tests=selected,
            status=Sample.Status.PENDING if booked else Sample.Status.REGISTERED,
            **data,
        )

    def perform_update(self, serializer):
        _deny_if_payload_has(
            self.request,
            ["laboratory", "sample_number", "status", "assigned_to"],
            "This field cannot be modified.",
        )
        data = dict(serializer.validated_data)
        data.pop("selected_tests", None)
        data.pop("booked", None)
        serializer.instance = samples_service.update_sample(
            serializer.instance, user=self.request.user, **data
        )

    def perform_destroy(self, instance):
        samples_service.delete_sample(instance, user=self.request.user)

    def _fresh(self, sample):
        return self.get_serializer(Sample.objects.get(pk=sample.pk)).data

    @action(detail=True, methods=["post"], permission_action="edit")
    def assign(self, request, pk=None):
        payload = AssignSerializer(data=request.data, context=self.get_serializer_context())
        payload.is_valid(raise_exception=True)
        sample = samples_service.assign_sample(
            self.get_object(),
            user=request.user,
            assignee=payload.validated_data["assigned_to"],
        )
        return Response(self._fresh(sample))

    @action(detail=True, methods=["post"], url_path="add-tests", permission_action="edit")
    def add_tests(self, request, pk=None):
        payload = AddTestsSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        created = samples_service.add_tests(
            self.get_object(),
            user=request.user,
            tests=payload.validated_data["tests"],
        )
        return Response(TestResultSerializer(created, many=True).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], permission_action="edit")
    def results(self, request, pk=None):
        payload = EnterResultsSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        outcome = samples_service.enter_results(
            self.get_object(),
            user=request.user,
            results=payload.validated_data["results"],
        )
        report = outcome["report"]
        return Response(
            {
                "sample": self._fresh(outcome["sample"]),
                "pending": outcome["pending"],
                "completed": outcome["completed"],
                "report": ReportSerializer(report, context=self.get_serializer_context()).data if report else None,
            }
        )

    @action(detail=True, methods=["get"], permission_action="view")
    def history(self, request, pk=None):
        return Response(_history("sample", self.get_object()))

    @extend_schema(responses={(200, "application/pdf"): bytes})
    @action(detail=True, methods=["get"], permission_action="view")
    def label(self, request, pk=None):
        sample = self.get_object()
        return _pdf_response(
            render_sample_labels([sample], sample.laboratory), f"label-{sample.sample_number}.pdf"
        )

    @extend_schema(responses={(200, "application/pdf"): bytes})
    @action(detail=False, methods=["get"], permission_action="view")
    def labels(self, request):
        """Label sheet for ?ids=1,2,3 (or ?registration=<id>)."""
        qs = self.get_queryset().select_related("collected_by")
        ids = [i for i in request.query_params.get("ids", "").split(",") if i.strip().isdigit()]
        registration = request.query_params.get("registration", "")
        if ids:
            qs = qs.filter(pk__in=ids)
        elif registration.isdigit():
            qs = qs.filter(registration_id=registration)
        else:
            raise ValidationError({"ids": "Provide ?ids=<id,id,..> or ?registration=<id>."})

        samples = list(qs.order_by("registration_id", "sub_sample_number", "id"))
        if not samples:
            raise ValidationError({"ids": "No matching samples."})
        return _pdf_response(render_sample_labels(samples, self.get_laboratory()), "labels.pdf")

    @action(detail=False, methods=["get"], permission_action="delete")
    def trash(self, request):
        page = self.paginate_queryset(self.filter_queryset(self.get_queryset()))
        data = self.get_serializer(page, many=True).data
        return self.get_paginated_response(data)

    @action(detail=True, methods=["post"], permission_action="delete")
    def restore(self, request, pk=None):
        sample = samples_service.restore_sample(self.get_object(), user=request.user)
        return Response(self._fresh(sample))

    @action(detail=True, methods=["delete"], permission_action="delete")
    def purge(self, request, pk=None):
        samples_service.purge_sample(self.get_object(), user=request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema(tags=["Samples"])
class RegistrationViewSet(
    LabScopedQuerysetMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Registration.objects.select_related("client", "registered_by").prefetch_related("samples")
    serializer_class = RegistrationSerializer
    permission_classes = [IsAuthenticated, HasModulePermission]
    permission_module = "process"
    permission_action: Optional[str] = None

    def get_queryset(self):
        return _apply_default_ordering(self.get_scoped_queryset(super().get_queryset()))

    @extend_schema(request=BatchRegistrationSerializer, responses=RegistrationSerializer)
    def create(self, request, *args, **kwargs):
        payload = BatchRegistrationSerializer(data=request.data, context=self.get_serializer_context())
        payload.is_valid(raise_exception=True)
        registration = samples_service.register_batch(
            laboratory=self.get_laboratory(),
            user=request.user,
            **payload.validated_data,
        )
        return Response(self.get_serializer(registration).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=RegistrationUpdateSerializer, responses=RegistrationSerializer)
    def update(self, request, *args, **kwargs):
        _deny_if_payload_has(
            request, ["laboratory", "registration_number", "client"], SERVER_CONTROLLED
        )
        registration = self.get_object()
        payload = RegistrationUpdateSerializer(
            data=request.data, partial=True, context=self.get_serializer_context()
        )
        payload.is_valid(raise_exception=True)
        registration = samples_service.update_registration(
            registration, user=request.user, **payload.validated_data
        )
        return Response(self.get_serializer(registration).data)

    @extend_schema(request=RegistrationUpdateSerializer, responses=RegistrationSerializer)
    def partial_update(self, request, *args, **kwargs):
        return self.update(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):
        samples_service.delete_registration(self.get_object(), user=request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema(tags=["Samples"])
class TestResultViewSet(
    LabScopedQuerysetMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    queryset = TestResult.objects.select_related("sample", "entered_by").filter(
        sample__deleted_at__isnull=True
    )
    serializer_class = TestResultSerializer
    filterset_class = TestResultFilter
    permission_classes = [IsAuthenticated, HasModulePermission]
    permission_module = "process"
    permission_action: Optional[str] = None
    lab_field_name = "sample__laboratory"

    __test__ = False

    def get_queryset(self):
        return self.get_scoped_queryset(super().get_queryset()).order_by("sample_id", "id")

    def perform_destroy(self, instance):
        samples_service.delete_test_result(instance, user=self.request.user)


# ===============================================================
# Reports (COA)
# ===============================================================
@extend_schema(tags=["Reports"])
class ReportViewSet(LabModelViewSet):
    queryset = Report.objects.select_related(
        "sample", "sample__client", "sample__sample_type", "created_by", "reviewed_by"
    )
    serializer_class = ReportSerializer
    filterset_class = ReportFilter
    permission_module = "process"
    audit_crud = False

    def perform_create(self, serializer):
        _deny_if_payload_has(
            self.request, ["laboratory", "report_number", "status"], SERVER_CONTROLLED
        )
        data = serializer.validated_data
        serializer.instance = reports_service.create_report(
            sample=data["sample"],
            user=self.request.user,
            title=data["title"],
            summary=data.get("summary", ""),
        )

    def perform_update(self, serializer):
        _deny_if_payload_has(
            self.request, ["laboratory", "report_number", "status"], "This field cannot be modified."
        )
        serializer.instance = reports_service.update_report(
            serializer.instance, user=self.request.user, **serializer.validated_data
        )

    def perform_destroy(self, instance):
        reports_service.delete_report(instance, user=self.request.user)

    def _respond(self, report):
        return Response(self.get_serializer(Report.objects.get(pk=report.pk)).data)

    @action(detail=True, methods=["post"], permission_action="edit")
    def submit(self, request, pk=None):
        return self._respond(reports_service.submit_report(self.get_object(), user=request.user))

    @action(detail=True, methods=["post"], permission_action="edit")
    def authenticate(self, request, pk=None):
        return self._respond(reports_service.authenticate_report(self.get_object(), user=request.user))

    @action(detail=True, methods=["post"], permission_action="edit")
    def revision(self, request, pk=None):
        payload = RevisionSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        report = reports_service.request_revision(
            self.get_object(), user=request.user, reason=payload.validated_data["reason"]
        )
        return self._respond(report)

    @action(detail=True, methods=["post"], permission_action="edit")
    def publish(self, request, pk=None):
        return self._respond(reports_service.publish_report(self.get_object(), user=request.user))

    @extend_schema(responses={(200, "application/pdf"): bytes})
    @action(detail=True, methods=["get"], permission_action="view")
    def coa(self, request, pk=None):
        report = self.get_object()
        return _pdf_response(render_coa_pdf(report), f"COA-{report.report_number}.pdf")

    @action(detail=True, methods=["get"], permission_action="view")
    def history(self, request, pk=None):
        return Response(_history("report", self.get_object()))


class VerifyReportView(APIView):
    """
    Public COA verification by code. No authentication.
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    @extend_schema(tags=["Reports"], responses=VerificationSerializer)
    def get(self, request, code: str):
        return Response(reports_service.lookup_verification(code))


# ===============================================================
# Accounts: quotations, contracts, invoices
# ===============================================================
class AccountsDocumentViewSet(LabModelViewSet):
    """
    Items and totals are written only through the accounts service so
    money fields always match the line items.
    """

    permission_module = "accounts"
    audit_crud = False
    workflow_kind = ""

    def create_document(self, **data):
        raise NotImplementedError

    def perform_create(self, serializer):
        _deny_if_payload_has(self.request, ["laboratory", "status"], SERVER_CONTROLLED)
        serializer.instance = self.create_document(
            laboratory=self.get_laboratory(),
            user=self.request.user,
            **serializer.validated_data,
        )

    def perform_update(self, serializer):
        _deny_if_payload_has(self.request, ["laboratory", "status"], "This field cannot be modified.")
        data = dict(serializer.validated_data)
        data.pop("client", None)
        data.pop("invoice_type", None)
        serializer.instance = accounts_service.update_document(
            serializer.instance,
            user=self.request.user,
            items=data.pop("items", None),
            tax_rate=data.pop("tax_rate", None),
            **data,
        )

    def perform_destroy(self, instance):
        accounts_service.delete_document(instance, user=self.request.user)

    def _respond(self, doc, serializer_class=None, status_code=status.HTTP_200_OK):
        serializer_class = serializer_class or self.get_serializer_class()
        fresh = type(doc).objects.get(pk=doc.pk)
        return Response(
            serializer_class(fresh, context=self.get_serializer_context()).data,
            status=status_code,
        )

    @action(detail=True, methods=["post"], url_path="status", permission_action="edit")
    def set_status(self, request, pk=None):
        payload = StatusSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        doc = accounts_service.update_status(
            self.get_object(), user=request.user, status=payload.validated_data["status"]
        )
        return self._respond(doc)

    @action(detail=True, methods=["get"], permission_action="view")
    def history(self, request, pk=None):
        return Response(_history(self.workflow_kind, self.get_object()))

    @extend_schema(responses={(200, "application/pdf"): bytes})
    @action(detail=True, methods=["get"], permission_action="view")
    def pdf(self, request, pk=None):
        doc = self.get_object()
        return _pdf_response(render_accounts_pdf(doc), pdf_filename(doc))


@extend_schema(tags=["Accounts"])
class QuotationViewSet(AccountsDocumentViewSet):
    queryset = Quotation.objects.select_related("client", "created_by").prefetch_related("items")
    serializer_class = QuotationSerializer
    filterset_class = QuotationFilter
    workflow_kind = "quotation"

    def create_document(self, **data):
        return accounts_service.create_quotation(**data)

    @action(detail=True, methods=["post"], permission_action="create")
    def convert(self, request, pk=None):
        contract = accounts_service.convert_quotation_to_contract(self.get_object(), user=request.user)
        return self._respond(contract, ContractSerializer, status.HTTP_201_CREATED)


@extend_schema(tags=["Accounts"])
class ContractViewSet(AccountsDocumentViewSet):
    queryset = Contract.objects.select_related("client", "quotation", "created_by").prefetch_related("items")
    serializer_class = ContractSerializer
    workflow_kind = "contract"

    def create_document(self, **data):
        return accounts_service.create_contract(**data)


@extend_schema(tags=["Accounts"])
class InvoiceViewSet(AccountsDocumentViewSet):
    queryset = Invoice.objects.select_related("client", "converted_to", "created_by").prefetch_related("items")
    serializer_class = InvoiceSerializer
    filterset_class = InvoiceFilter
    workflow_kind = "invoice"

    TRASH_ACTIONS = ("trash", "restore", "purge")

    def get_queryset(self):
        qs = super().get_queryset()
        if self.action in self.TRASH_ACTIONS:
            return qs.filter(deleted_at__isnull=False)
        return qs.filter(deleted_at__isnull=True)

    def create_document(self, **data):
        return accounts_service.create_invoice(**data)

    @action(detail=True, methods=["post"], permission_action="create")
    def convert(self, request, pk=None):
        payload = ConvertProformaSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        invoice = accounts_service.convert_proforma(
            self.get_object(), user=request.user, due_date=payload.validated_data["due_date"]
        )
        return self._respond(invoice, status_code=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"], permission_action="create")
    def consolidate(self, request):
        payload = ConsolidateSerializer(data=request.data, context=self.get_serializer_context())
        payload.is_valid(raise_exception=True)
        invoice = accounts_service.consolidate_proformas(
            payload.validated_data["invoices"],
            user=request.user,
            due_date=payload.validated_data["due_date"],
            notes=payload.validated_data["notes"],
        )
        return self._respond(invoice, status_code=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="push-zoho", permission_action="edit")
    def push_zoho(self, request, pk=None):
        try:
            invoice = push_invoice(self.get_object(), user=request.user)
        except ZohoError as exc:
            logger.warning("Zoho invoice push failed: %s", exc)
            return Response({"detail": str(exc)}, status=status.HTTP_502_BAD_GATEWAY)
        return self._respond(invoice)

    @action(detail=False, methods=["get"], permission_action="delete")
    def trash(self, request):
        page = self.paginate_queryset(self.filter_queryset(self.get_queryset()))
        data = self.get_serializer(page, many=True).data
        return self.get_paginated_response(data)

    @action(detail=True, methods=["post"], permission_action="delete")
    def restore(self, request, pk=None):
        return self._respond(accounts_service.restore_invoice(self.get_object(), user=request.user))

    @action(detail=True, methods=["delete"], permission_action="delete")
    def purge(self, request, pk=None):
        accounts_service.purge_invoice(self.get_object(), user=request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)
