# spectrum_core/urls.py

from django.urls import path, include
from rest_framework.routers import DefaultRouter

# -------------------------------------------------
# Core API ViewSets
# -------------------------------------------------
from .views import (
    AuditLogViewSet,
    ContactPersonViewSet,
    ContractViewSet,
    CustomerViewSet,
    DashboardView,
    HealthCheckView,
    InvoiceViewSet,
    LaboratoryViewSet,
    QuotationViewSet,
    RegistrationViewSet,
    ReportViewSet,
    SampleTypeViewSet,
    SampleViewSet,
    TestResultViewSet,
    UserRoleViewSet,
    VerifyReportView,
    WhoAmIView,
)

# -------------------------------------------------
# Workflow definitions (static metadata) + history
# -------------------------------------------------
from .views_workflows import (
    WorkflowDefinitionView,
    WorkflowNextStatesView,
    WorkflowTimelineView,
)


app_name = "spectrum_core"

# -------------------------------------------------
# Router (CRUD APIs)
# -------------------------------------------------
router = DefaultRouter()
router.register(r"laboratories", LaboratoryViewSet, basename="laboratory")
router.register(r"roles", UserRoleViewSet, basename="role")
router.register(r"audit-logs", AuditLogViewSet, basename="auditlog")
router.register(r"customers", CustomerViewSet, basename="customer")
router.register(r"contact-persons", ContactPersonViewSet, basename="contactperson")
router.register(r"sample-types", SampleTypeViewSet, basename="sampletype")
router.register(r"samples", SampleViewSet, basename="sample")
router.register(r"registrations", RegistrationViewSet, basename="registration")
router.register(r"test-results", TestResultViewSet, basename="testresult")
router.register(r"reports", ReportViewSet, basename="report")
router.register(r"quotations", QuotationViewSet, basename="quotation")
router.register(r"contracts", ContractViewSet, basename="contract")
router.register(r"invoices", InvoiceViewSet, basename="invoice")


urlpatterns = [
    # ============================================================
    # Core CRUD API
    # ============================================================
    path("", include(router.urls)),

    # ============================================================
    # System
    # ============================================================
    path("health/", HealthCheckView.as_view(), name="health_check"),
    path("whoami/", WhoAmIView.as_view(), name="whoami"),
    path("dashboard/", DashboardView.as_view(), name="dashboard"),

    # ============================================================
    # Public COA verification
    # ============================================================
    path("verify/<str:code>/", VerifyReportView.as_view(), name="verify-report"),

    # ============================================================
    # Workflows
    # ============================================================
    path("workflows/<str:kind>/", WorkflowDefinitionView.as_view(), name="workflow-definition"),
    path("workflows/<str:kind>/next/", WorkflowNextStatesView.as_view(), name="workflow-next-states"),
    path(
        "workflows/<str:kind>/<int:object_id>/timeline/",
        WorkflowTimelineView.as_view(),
        name="workflow-timeline",
    ),
]
