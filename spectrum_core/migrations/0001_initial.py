# spectrum_core/migrations/0001_initial.py

from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import spectrum_core.models.accounts


def _id():
    return models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")


def _timestamps():
    return [
        ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
    ]


def _user_fk(related_name):
    return models.ForeignKey(
        blank=True,
        null=True,
        on_delete=django.db.models.deletion.SET_NULL,
        related_name=related_name,
        to=settings.AUTH_USER_MODEL,
    )


def _money(default="0.00"):
    return models.DecimalField(decimal_places=2, default=Decimal(default), max_digits=12)


def _document_fields(plural):
    return [
        ("subtotal", _money()),
        (
            "tax_rate",
            models.DecimalField(
                decimal_places=2,
                default=spectrum_core.models.accounts.default_tax_rate,
                max_digits=5,
            ),
        ),
        ("tax_amount", _money()),
        ("total", _money()),
        ("notes", models.TextField(blank=True)),
        (
            "client",
            models.ForeignKey(
                on_delete=django.db.models.deletion.PROTECT,
                related_name=plural,
                to="spectrum_core.customer",
            ),
        ),
        ("created_by", _user_fk("+")),
        (
            "laboratory",
            models.ForeignKey(
                on_delete=django.db.models.deletion.PROTECT,
                related_name=plural,
                to="spectrum_core.laboratory",
            ),
        ),
    ]


def _line_item_fields():
    return [
        ("description", models.CharField(max_length=500)),
        ("quantity", _money("1")),
        ("unit_price", _money()),
        ("total", _money()),
        ("position", models.PositiveIntegerField(default=0)),
        (
            "sample",
            models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to="spectrum_core.sample",
            ),
        ),
    ]


DOCUMENT_OPTIONS = {"ordering": ["-created_at", "-id"], "abstract": False}
ITEM_OPTIONS = {"ordering": ["position", "id"], "abstract": False}


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        # ------------------------------------------------------------
        # Tenancy
        # ------------------------------------------------------------
        migrations.CreateModel(
            name="Laboratory",
            fields=[
                ("id", _id()),
                *_timestamps(),
                ("code", models.CharField(max_length=30, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("address", models.CharField(blank=True, max_length=500)),
                ("phone", models.CharField(blank=True, max_length=50)),
                ("email", models.EmailField(blank=True, max_length=254)),
                ("is_active", models.BooleanField(default=True)),
                ("zoho_client_id", models.CharField(blank=True, max_length=255)),
                ("zoho_client_secret", models.CharField(blank=True, max_length=255)),
                ("zoho_refresh_token", models.CharField(blank=True, max_length=500)),
                ("zoho_org_id", models.CharField(blank=True, max_length=64)),
                (
                    "zoho_api_domain",
                    models.CharField(blank=True, help_text="e.g. https://www.zohoapis.com", max_length=255),
                ),
            ],
            options={"verbose_name_plural": "laboratories", "ordering": ["code"]},
        ),
        migrations.CreateModel(
            name="UserRole",
            fields=[
                ("id", _id()),
                *_timestamps(),
                (
                    "role",
                    models.CharField(
                        choices=[
                            ("Admin", "Admin"),
                            ("Lab Manager", "Lab Manager"),
                            ("Accounts", "Accounts"),
                            ("Chemist", "Chemist"),
                            ("Registration", "Registration"),
                            ("Sampler", "Sampler"),
                        ],
                        max_length=50,
                    ),
                ),
                (
                    "laboratory",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="user_roles",
                        to="spectrum_core.laboratory",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="lims_roles",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"unique_together": {("user", "laboratory")}},
        ),
        migrations.CreateModel(
            name="FormatID",
            fields=[
                ("id", _id()),
                ("module", models.CharField(max_length=32)),
                ("prefix", models.CharField(max_length=16)),
                ("last_number", models.PositiveIntegerField(default=0)),
                (
                    "laboratory",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="format_ids",
                        to="spectrum_core.laboratory",
                    ),
                ),
            ],
            options={"verbose_name": "format ID"},
        ),
        migrations.AddConstraint(
            model_name="formatid",
            constraint=models.UniqueConstraint(fields=("laboratory", "module"), name="formatid_lab_module_unique"),
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", _id()),
                *_timestamps(),
                ("user_name", models.CharField(blank=True, max_length=255)),
                ("module", models.CharField(db_index=True, max_length=32)),
                ("action", models.CharField(db_index=True, max_length=32)),
                ("details", models.TextField(blank=True)),
                ("data", models.JSONField(blank=True, default=dict)),
                (
                    "laboratory",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="audit_logs",
                        to="spectrum_core.laboratory",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"ordering": ["-created_at", "-id"]},
        ),
        migrations.AddIndex(
            model_name="auditlog",
            index=models.Index(fields=["module", "action"], name="audit_module_action_idx"),
        ),
        migrations.CreateModel(
            name="WorkflowTransition",
            fields=[
                ("id", _id()),
                ("kind", models.CharField(max_length=32)),
                ("object_id", models.PositiveBigIntegerField()),
                ("from_status", models.CharField(max_length=32)),
                ("to_status", models.CharField(max_length=32)),
                ("comment", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "laboratory",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="workflow_transitions",
                        to="spectrum_core.laboratory",
                    ),
                ),
                ("performed_by", _user_fk("workflow_transitions")),
            ],
            options={"ordering": ["created_at", "id"]},
        ),
        migrations.AddIndex(
            model_name="workflowtransition",
            index=models.Index(fields=["kind", "object_id"], name="transition_kind_object_idx"),
        ),
        # ------------------------------------------------------------
        # Masters
        # ------------------------------------------------------------
        migrations.CreateModel(
            name="Customer",
            fields=[
                ("id", _id()),
                *_timestamps(),
                ("code", models.CharField(max_length=32)),
                ("name", models.CharField(max_length=255)),
                ("company", models.CharField(blank=True, max_length=255)),
                ("email", models.EmailField(blank=True, max_length=254)),
                ("phone", models.CharField(blank=True, max_length=50)),
                ("address", models.TextField(blank=True)),
                ("contact_person", models.CharField(blank=True, max_length=255)),
                ("trn", models.CharField(blank=True, max_length=64, verbose_name="tax registration number")),
                ("payment_term", models.CharField(blank=True, max_length=64)),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("inactive", "Inactive")],
                        default="active",
                        max_length=16,
                    ),
                ),
                ("zoho_contact_id", models.CharField(blank=True, db_index=True, max_length=64)),
                (
                    "laboratory",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="customers",
                        to="spectrum_core.laboratory",
                    ),
                ),
            ],
            options={"ordering": ["name"], "unique_together": {("laboratory", "code")}},
        ),
        migrations.CreateModel(
            name="ContactPerson",
            fields=[
                ("id", _id()),
                *_timestamps(),
                ("name", models.CharField(max_length=255)),
                ("email", models.EmailField(blank=True, max_length=254)),
                ("phone", models.CharField(blank=True, max_length=50)),
                ("designation", models.CharField(blank=True, max_length=255)),
                (
                    "customer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="contact_persons",
                        to="spectrum_core.customer",
                    ),
                ),
            ],
            options={"ordering": ["name"]},
        ),
        migrations.CreateModel(
            name="SampleType",
            fields=[
                ("id", _id()),
                *_timestamps(),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                ("specification_standard", models.CharField(blank=True, max_length=255)),
                ("default_tests", models.JSONField(blank=True, default=list)),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("inactive", "Inactive")],
                        default="active",
                        max_length=16,
                    ),
                ),
                (
                    "laboratory",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sample_types",
                        to="spectrum_core.laboratory",
                    ),
                ),
            ],
            options={"ordering": ["name"], "unique_together": {("laboratory", "name")}},
        ),
        # ------------------------------------------------------------
        # Process
        # ------------------------------------------------------------
        migrations.CreateModel(
            name="Registration",
            fields=[
                ("id", _id()),
                *_timestamps(),
                ("registration_number", models.CharField(max_length=64, unique=True)),
                ("sequence_number", models.PositiveIntegerField(blank=True, null=True)),
                ("job_type", models.CharField(default="testing", max_length=32)),
                ("priority", models.CharField(default="normal", max_length=16)),
                ("reference", models.CharField(blank=True, max_length=255)),
                ("collection_date", models.DateTimeField(blank=True, null=True)),
                ("collection_location", models.CharField(blank=True, max_length=255)),
                ("registered_at", models.DateTimeField(blank=True, null=True)),
                ("sampling_method", models.CharField(default="NP", max_length=32)),
                ("sheet_number", models.CharField(blank=True, max_length=64)),
                ("notes", models.TextField(blank=True)),
                (
                    "client",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="registrations",
                        to="spectrum_core.customer",
                    ),
                ),
                ("collected_by", _user_fk("+")),
                (
                    "laboratory",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="registrations",
                        to="spectrum_core.laboratory",
                    ),
                ),
                ("registered_by", _user_fk("+")),
            ],
            options={"ordering": ["-created_at", "-id"]},
        ),
        migrations.CreateModel(
            name="Sample",
            fields=[
                ("id", _id()),
                *_timestamps(),
                ("sample_number", models.CharField(max_length=64, unique=True)),
                ("sequence_number", models.PositiveIntegerField(blank=True, null=True)),
                ("sub_sample_number", models.PositiveIntegerField(blank=True, null=True)),
                ("sample_group", models.CharField(blank=True, max_length=2)),
                ("description", models.TextField(blank=True)),
                ("quantity", models.CharField(blank=True, max_length=64)),
                ("sample_condition", models.CharField(blank=True, max_length=255)),
                (
                    "priority",
                    models.CharField(
                        choices=[("normal", "Normal"), ("urgent", "Urgent"), ("rush", "Rush")],
                        default="normal",
                        max_length=16,
                    ),
                ),
                ("job_type", models.CharField(default="testing", max_length=32)),
                ("reference", models.CharField(blank=True, max_length=255)),
                ("notes", models.TextField(blank=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("registered", "Registered"),
                            ("assigned", "Assigned"),
                            ("testing", "Testing"),
                            ("completed", "Completed"),
                            ("reported", "Reported"),
                        ],
                        db_index=True,
                        default="registered",
                        max_length=16,
                    ),
                ),
                ("registered_at", models.DateTimeField(blank=True, null=True)),
                ("collection_date", models.DateTimeField(blank=True, null=True)),
                ("collection_location", models.CharField(blank=True, max_length=255)),
                ("sample_point", models.CharField(blank=True, max_length=255)),
                ("deleted_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("assigned_to", _user_fk("assigned_samples")),
                (
                    "client",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="samples",
                        to="spectrum_core.customer",
                    ),
                ),
                ("collected_by", _user_fk("collected_samples")),
                ("deleted_by", _user_fk("+")),
                (
                    "laboratory",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="samples",
                        to="spectrum_core.laboratory",
                    ),
                ),
                ("registered_by", _user_fk("registered_samples")),
                (
                    "registration",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="samples",
                        to="spectrum_core.registration",
                    ),
                ),
                (
                    "sample_type",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="samples",
                        to="spectrum_core.sampletype",
                    ),
                ),
            ],
            options={"ordering": ["-created_at", "-id"]},
        ),
        migrations.AddIndex(
            model_name="sample",
            index=models.Index(fields=["laboratory", "status"], name="sample_lab_status_idx"),
        ),
        migrations.CreateModel(
            name="TestResult",
            fields=[
                ("id", _id()),
                *_timestamps(),
                ("parameter", models.CharField(max_length=255)),
                ("test_method", models.CharField(blank=True, max_length=255)),
                ("unit", models.CharField(blank=True, max_length=64)),
                ("spec_min", models.CharField(blank=True, max_length=64)),
                ("spec_max", models.CharField(blank=True, max_length=64)),
                ("tat", models.PositiveIntegerField(blank=True, null=True, verbose_name="turnaround (days)")),
                ("due_date", models.DateTimeField(blank=True, null=True)),
                ("result_value", models.CharField(blank=True, max_length=255)),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("completed", "Completed")],
                        db_index=True,
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("entered_at", models.DateTimeField(blank=True, null=True)),
                ("entered_by", _user_fk("entered_results")),
                (
                    "sample",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="test_results",
                        to="spectrum_core.sample",
                    ),
                ),
            ],
            options={"ordering": ["id"]},
        ),
        migrations.CreateModel(
            name="Report",
            fields=[
                ("id", _id()),
                *_timestamps(),
                ("report_number", models.CharField(max_length=64, unique=True)),
                ("report_type", models.CharField(default="test_report", max_length=32)),
                ("title", models.CharField(max_length=255)),
                ("summary", models.TextField(blank=True)),
                ("revision_reason", models.TextField(blank=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("draft", "Draft"),
                            ("review", "Review"),
                            ("revision", "Revision Required"),
                            ("approved", "Approved"),
                            ("published", "Published"),
                        ],
                        db_index=True,
                        default="draft",
                        max_length=16,
                    ),
                ),
                ("reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("published_at", models.DateTimeField(blank=True, null=True)),
                ("created_by", _user_fk("created_reports")),
                (
                    "laboratory",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reports",
                        to="spectrum_core.laboratory",
                    ),
                ),
                ("reviewed_by", _user_fk("reviewed_reports")),
                (
                    "sample",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reports",
                        to="spectrum_core.sample",
                    ),
                ),
            ],
            options={"ordering": ["-created_at", "-id"]},
        ),
        migrations.CreateModel(
            name="ReportVerification",
            fields=[
                ("id", _id()),
                ("verification_code", models.CharField(max_length=32, unique=True)),
                ("report_number", models.CharField(max_length=64)),
                ("sample_number", models.CharField(max_length=64)),
                ("client_name", models.CharField(max_length=255)),
                ("sample_type", models.CharField(max_length=255)),
                ("test_count", models.PositiveIntegerField(default=0)),
                ("issued_at", models.DateTimeField()),
                ("issued_by", models.CharField(blank=True, max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "laboratory",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="report_verifications",
                        to="spectrum_core.laboratory",
                    ),
                ),
                (
                    "report",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="verifications",
                        to="spectrum_core.report",
                    ),
                ),
            ],
            options={"ordering": ["-created_at"]},
        ),
        # ------------------------------------------------------------
        # Accounts
        # ------------------------------------------------------------
        migrations.CreateModel(
            name="Quotation",
            fields=[
                ("id", _id()),
                *_timestamps(),
                *_document_fields("quotations"),
                ("quotation_number", models.CharField(max_length=64, unique=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("draft", "Draft"),
                            ("sent", "Sent"),
                            ("accepted", "Accepted"),
                            ("rejected", "Rejected"),
                            ("expired", "Expired"),
                            ("converted", "Converted"),
                        ],
                        db_index=True,
                        default="draft",
                        max_length=16,
                    ),
                ),
                ("valid_until", models.DateField(blank=True, null=True)),
                ("accepted_date", models.DateTimeField(blank=True, null=True)),
            ],
            options=dict(DOCUMENT_OPTIONS),
        ),
        migrations.CreateModel(
            name="QuotationItem",
            fields=[
                ("id", _id()),
                *_line_item_fields(),
                (
                    "quotation",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="spectrum_core.quotation",
                    ),
                ),
            ],
            options=dict(ITEM_OPTIONS),
        ),
        migrations.CreateModel(
            name="Contract",
            fields=[
                ("id", _id()),
                *_timestamps(),
                *_document_fields("contracts"),
                ("contract_number", models.CharField(max_length=64, unique=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("draft", "Draft"),
                            ("active", "Active"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="draft",
                        max_length=16,
                    ),
                ),
                ("start_date", models.DateField(blank=True, null=True)),
                ("end_date", models.DateField(blank=True, null=True)),
                ("terms", models.TextField(blank=True)),
                (
                    "quotation",
                    models.OneToOneField(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="contract",
                        to="spectrum_core.quotation",
                    ),
                ),
            ],
            options=dict(DOCUMENT_OPTIONS),
        ),
        migrations.CreateModel(
            name="ContractItem",
            fields=[
                ("id", _id()),
                *_line_item_fields(),
                (
                    "contract",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="spectrum_core.contract",
                    ),
                ),
            ],
            options=dict(ITEM_OPTIONS),
        ),
        migrations.CreateModel(
            name="Invoice",
            fields=[
                ("id", _id()),
                *_timestamps(),
                *_document_fields("invoices"),
                ("invoice_number", models.CharField(max_length=64, unique=True)),
                (
                    "invoice_type",
                    models.CharField(
                        choices=[("tax", "Tax Invoice"), ("proforma", "Proforma Invoice")],
                        db_index=True,
                        default="tax",
                        max_length=16,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("draft", "Draft"),
                            ("sent", "Sent"),
                            ("paid", "Paid"),
                            ("cancelled", "Cancelled"),
                            ("converted", "Converted"),
                            ("consolidated", "Consolidated"),
                        ],
                        db_index=True,
                        default="draft",
                        max_length=16,
                    ),
                ),
                ("due_date", models.DateField(blank=True, null=True)),
                ("paid_date", models.DateTimeField(blank=True, null=True)),
                ("zoho_invoice_id", models.CharField(blank=True, db_index=True, max_length=64)),
                ("deleted_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                (
                    "converted_to",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="source_proformas",
                        to="spectrum_core.invoice",
                    ),
                ),
                ("deleted_by", _user_fk("+")),
            ],
            options=dict(DOCUMENT_OPTIONS),
        ),
        migrations.CreateModel(
            name="InvoiceItem",
            fields=[
                ("id", _id()),
                *_line_item_fields(),
                (
                    "invoice",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="spectrum_core.invoice",
                    ),
                ),
            ],
            options=dict(ITEM_OPTIONS),
        ),
    ]
