# spectrum_core/tests/test_write_guardrails.py

from django.contrib.auth.models import User
from django.core.exceptions import PermissionDenied
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from spectrum_core.models import Invoice, Laboratory, Sample, SampleType, UserRole
from spectrum_core.seed import seed_laboratory
from spectrum_core.services.accounts import create_invoice
from spectrum_core.services.masters import create_customer
from spectrum_core.services.reports import create_report
from spectrum_core.services.samples import register_sample


class WriteGuardrailTests(TestCase):
    """
    Server-controlled fields cannot be mutated through the API (400), and
    workflow status cannot be changed by a plain save().
    """

    def setUp(self):
        self.lab1 = Laboratory.objects.create(code="LAB1", name="Lab One")
        self.lab2 = Laboratory.objects.create(code="LAB2", name="Lab Two")
        seed_laboratory(self.lab1)

        self.user = User.objects.create_user(username="labuser", password="pass")
        UserRole.objects.create(user=self.user, laboratory=self.lab1, role=UserRole.Role.LAB_MANAGER)

        self.accountant = User.objects.create_user(username="cashier", password="pass")
        UserRole.objects.create(user=self.accountant, laboratory=self.lab1, role=UserRole.Role.ACCOUNTS)

        self.client = APIClient()
        self.client.force_authenticate(user=self.user)
        self.client.credentials(HTTP_X_LABORATORY=str(self.lab1.id))

        self.customer = create_customer(laboratory=self.lab1, user=self.user, name="Harbour Fuels")
        self.sample = register_sample(
            laboratory=self.lab1,
            user=self.user,
            client=self.customer,
            sample_type=SampleType.objects.get(laboratory=self.lab1, name="Diesel"),
        )
        self.report = create_report(sample=self.sample, user=self.user, title="Certificate of Quality")

    # ---------------------------------------------------------
    # SAMPLE GUARDRAILS
    # ---------------------------------------------------------
    def test_sample_laboratory_cannot_be_changed(self):
        resp = self.client.patch(
            f"/api/lims/samples/{self.sample.id}/",
            {"laboratory": self.lab2.id},
            format="json",
        )
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("laboratory", resp.data)

    def test_sample_status_cannot_be_patched(self):
        resp = self.client.patch(
            f"/api/lims/samples/{self.sample.id}/",
            {"status": "completed"},
            format="json",
        )
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("status", resp.data)
        self.assertEqual(Sample.objects.get(pk=self.sample.pk).status, Sample.Status.REGISTERED)

    def test_sample_assignment_goes_through_assign_action(self):
        resp = self.client.patch(
            f"/api/lims/samples/{self.sample.id}/",
            {"assigned_to": self.user.id},
            format="json",
        )
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("assigned_to", resp.data)

    def test_direct_status_save_is_forbidden(self):
        sample = Sample.objects.get(pk=self.sample.pk)
        sample.status = Sample.Status.COMPLETED
        with self.assertRaises(PermissionDenied):
            sample.save()

        sample.save(_workflow_bypass=True)
        self.assertEqual(Sample.objects.get(pk=self.sample.pk).status, Sample.Status.COMPLETED)

    # ---------------------------------------------------------
    # MASTERS / REPORTS
    # ---------------------------------------------------------
    def test_customer_code_cannot_be_changed(self):
        resp = self.client.patch(
            f"/api/lims/customers/{self.customer.id}/",
            {"code": "SP-NEW-999"},
            format="json",
        )
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("code", resp.data)

    def test_report_number_cannot_be_changed(self):
        resp = self.client.patch(
            f"/api/lims/reports/{self.report.id}/",
            {"report_number": "RPT-FAKE"},
            format="json",
        )
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("report_number", resp.data)

    def test_report_status_save_is_forbidden(self):
        self.report.status = "published"
        with self.assertRaises(PermissionDenied):
            self.report.save()

    def test_numbers_and_laboratory_are_fixed(self):
        self.report.report_number = "RPT-0000-999"
        with self.assertRaises(PermissionDenied):
            self.report.save()

        sample = Sample.objects.get(pk=self.sample.pk)
        sample.laboratory = self.lab2
        with self.assertRaises(PermissionDenied):
            sample.save()

        # saves limited to other columns are not checked against guarded ones
        sample = Sample.objects.get(pk=self.sample.pk)
        sample.notes = "Retained 500 ml"
        sample.save(update_fields=["notes", "updated_at"])
        self.assertEqual(Sample.objects.get(pk=self.sample.pk).notes, "Retained 500 ml")

    # ---------------------------------------------------------
    # ACCOUNTS
    # ---------------------------------------------------------
    def test_invoice_status_cannot_be_patched(self):
        invoice = create_invoice(
            laboratory=self.lab1,
            user=self.accountant,
            client=self.customer,
            items=[{"description": "Diesel full specification", "quantity": 1, "unit_price": "300.00"}],
        )
        self.client.force_authenticate(user=self.accountant)

        resp = self.client.patch(
            f"/api/lims/invoices/{invoice.id}/",
            {"status": "paid"},
            format="json",
        )
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Invoice.objects.get(pk=invoice.pk).status, Invoice.Status.DRAFT)

    def test_manager_cannot_touch_invoices(self):
        resp = self.client.get("/api/lims/invoices/")
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)
