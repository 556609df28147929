# spectrum_core/tests/test_coa.py

import re

import pytest
from rest_framework.exceptions import ValidationError

from spectrum_core.documents import coa
from spectrum_core.documents.accounts import AccountsDocumentPDF, format_money, pdf_filename, render_accounts_pdf
from spectrum_core.documents.coa import evaluate_result, render_coa_pdf, verification_url
from spectrum_core.documents.labels import render_sample_labels
from spectrum_core.models import Invoice, Report
from spectrum_core.services import accounts as accounts_service
from spectrum_core.services import reports as reports_service
from spectrum_core.services import samples as samples_service

BASE = "/api/lims"


def _page_count(pdf: bytes) -> int:
    return len(re.findall(rb"/Type /Page[^s]", pdf))


@pytest.mark.parametrize(
    "value,spec_min,spec_max,expected",
    [
        ("3.1", "2.0", "4.5", "Pass"),
        ("1.9", "2.0", "4.5", "Fail"),
        ("4.6", "2.0", "4.5", "Fail"),
        ("420", "", "500", "Pass"),
        ("58", "55", "", "Pass"),
        ("Clear & bright", "", "", ""),
        ("12", "", "", ""),
        ("", "1", "2", ""),
        ("<0.1", "", "0.5", ""),
    ],
)
def test_evaluate_result(value, spec_min, spec_max, expected):
    assert evaluate_result(value, spec_min, spec_max) == expected


def test_verification_url_uses_public_base():
    assert verification_url("abc123") == "https://lims.example.test/verify/abc123"


@pytest.fixture
def approved_report(completed_sample, user_chemist, user_manager):
    report = completed_sample.reports.get()
    reports_service.submit_report(report, user=user_chemist)
    reports_service.authenticate_report(report, user=user_manager)
    return Report.objects.select_related("sample", "laboratory").get(pk=report.pk)


@pytest.mark.django_db
def test_coa_refused_for_draft(completed_sample):
    report = completed_sample.reports.get()
    with pytest.raises(ValidationError):
        render_coa_pdf(report)


@pytest.mark.django_db
def test_coa_pdf_for_approved_report(approved_report):
    pdf = render_coa_pdf(approved_report)

    assert pdf.startswith(b"%PDF")
    assert len(pdf) > 1000
    # rendering allocates the verification record
    assert approved_report.verifications.count() == 1

    render_coa_pdf(approved_report)
    assert approved_report.verifications.count() == 1


@pytest.mark.django_db
def test_coa_carries_verification_qr(approved_report, monkeypatch):
    drawn = []
    real_draw = coa.draw_qr

    def recording_draw(c, value, x, y, size):
        drawn.append(value)
        real_draw(c, value, x, y, size)

    monkeypatch.setattr(coa, "draw_qr", recording_draw)
    render_coa_pdf(approved_report)

    code = approved_report.verifications.get().verification_code
    assert drawn == [verification_url(code)]


# ---------------------------------------------------------------
# Accounts documents
# ---------------------------------------------------------------

@pytest.fixture
def accounts_docs(laboratory, customer, user_accounts):
    items = [
        {"description": "Diesel full specification (EN 590)", "quantity": "2", "unit_price": "450.00"},
        {"description": "Sulfur content ASTM D5453", "quantity": "1", "unit_price": "120.00"},
    ]
    common = {"laboratory": laboratory, "user": user_accounts, "client": customer, "items": items}
    return {
        "quotation": accounts_service.create_quotation(notes="Prices valid for Q3.", **common),
        "contract": accounts_service.create_contract(terms="Monthly sampling at Jetty 2.\nNet 30.", **common),
        "invoice": accounts_service.create_invoice(**common),
        "proforma": accounts_service.create_invoice(invoice_type=Invoice.InvoiceType.PROFORMA, **common),
    }


@pytest.mark.django_db
@pytest.mark.parametrize(
    "key,title",
    [
        ("quotation", "QUOTATION"),
        ("contract", "CONTRACT"),
        ("invoice", "TAX INVOICE"),
        ("proforma", "PROFORMA INVOICE"),
    ],
)
def test_accounts_document_pdf(accounts_docs, key, title):
    doc = accounts_docs[key]

    assert AccountsDocumentPDF(doc).title() == title
    assert pdf_filename(doc) == f"{doc.number}.pdf"

    pdf = render_accounts_pdf(doc)
    assert pdf.startswith(b"%PDF")
    assert _page_count(pdf) == 1


@pytest.mark.django_db
def test_long_invoice_continues_on_next_page(laboratory, customer, user_accounts):
    items = [
        {"description": f"Tank {n} density check", "quantity": "1", "unit_price": "35.00"}
        for n in range(1, 61)
    ]
    invoice = accounts_service.create_invoice(
        laboratory=laboratory, user=user_accounts, client=customer, items=items
    )
    assert _page_count(render_accounts_pdf(invoice)) >= 2


def test_format_money(settings):
    settings.CURRENCY = "AED"
    assert format_money("1071") == "AED 1,071.00"


@pytest.mark.django_db
def test_document_pdf_endpoint(lab_client, user_accounts, user_chemist, accounts_docs):
    quotation = accounts_docs["quotation"]
    resp = lab_client(user_accounts).get(f"{BASE}/quotations/{quotation.id}/pdf/")
    assert resp.status_code == 200
    assert resp["Content-Type"] == "application/pdf"
    assert quotation.quotation_number in resp["Content-Disposition"]
    assert resp.content.startswith(b"%PDF")

    invoice = accounts_docs["invoice"]
    assert lab_client(user_accounts).get(f"{BASE}/invoices/{invoice.id}/pdf/").status_code == 200
    assert lab_client(user_chemist).get(f"{BASE}/invoices/{invoice.id}/pdf/").status_code == 403


# ---------------------------------------------------------------
# Sample labels
# ---------------------------------------------------------------

@pytest.mark.django_db
def test_label_sheet_pages(laboratory, customer, diesel, user_registration):
    registration = samples_service.register_batch(
        laboratory=laboratory,
        user=user_registration,
        client=customer,
        rows=[{"sample_type": diesel, "qty": 20, "sample_point": "Tank 9"}],
    )
    samples = list(registration.samples.order_by("sub_sample_number"))

    # eighteen labels per sheet
    assert _page_count(render_sample_labels(samples[:18], laboratory)) == 1
    assert _page_count(render_sample_labels(samples, laboratory)) == 2


@pytest.mark.django_db
def test_label_endpoints(lab_client, user_registration, laboratory, customer, diesel):
    registration = samples_service.register_batch(
        laboratory=laboratory,
        user=user_registration,
        client=customer,
        rows=[{"sample_type": diesel, "qty": 3}],
    )
    sample = registration.samples.order_by("sub_sample_number").first()
    client = lab_client(user_registration)

    resp = client.get(f"{BASE}/samples/{sample.id}/label/")
    assert resp.status_code == 200
    assert resp["Content-Type"] == "application/pdf"

    resp = client.get(f"{BASE}/samples/labels/", {"registration": registration.id})
    assert resp.status_code == 200
    assert resp.content.startswith(b"%PDF")

    assert client.get(f"{BASE}/samples/labels/").status_code == 400
    assert client.get(f"{BASE}/samples/labels/", {"ids": "999999"}).status_code == 400
