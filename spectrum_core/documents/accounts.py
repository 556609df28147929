# spectrum_core/documents/accounts.py
"""
Quotation, contract and invoice PDFs.
"""
from __future__ import annotations

from decimal import Decimal

from django.conf import settings

from spectrum_core.models import Contract, Invoice, Quotation

from .base import CONTENT_W, MARGIN, NAVY, ROW_H, SLATE, W, PDFDocument

# #, description, qty, unit price, total
COLUMNS = [
    ("#", 24, "left"),
    ("Description", CONTENT_W - 264, "left"),
    ("Qty", 60, "right"),
    ("Unit Price", 90, "right"),
    ("Total", 90, "right"),
]

FOOTNOTES = {
    "quotation": (
        "This quotation is valid for the period specified above.",
        "Please contact us if you have any questions regarding this quotation.",
    ),
    "contract": (
        "This contract is binding upon acceptance and signature by both parties.",
    ),
    "invoice": (
        "Payment is due within 30 days of the invoice date unless otherwise stated.",
        "Please include the invoice number on your payment for reference.",
    ),
}


def format_money(value) -> str:
    currency = getattr(settings, "CURRENCY", "AED")
    return f"{currency} {Decimal(value or 0):,.2f}"


def _date(value) -> str:
    return value.strftime("%d %b %Y") if value else ""


def document_kind(doc) -> str:
    if isinstance(doc, Quotation):
        return "quotation"
    if isinstance(doc, Contract):
        return "contract"
    if isinstance(doc, Invoice):
        return "invoice"
    raise TypeError(f"No PDF layout for {doc.__class__.__name__}")


class AccountsDocumentPDF(PDFDocument):
    def __init__(self, doc):
        self.doc = doc
        self.kind = document_kind(doc)
        super().__init__(f"{self.title()} {doc.number}", author=doc.laboratory.name)

    def title(self) -> str:
        if self.kind == "invoice":
            return "PROFORMA INVOICE" if self.doc.is_proforma else "TAX INVOICE"
        return self.kind.upper()

    def meta_rows(self):
        doc = self.doc
        rows = [(f"{self.kind.capitalize()} No.", doc.number), ("Date", _date(doc.created_at))]
        if self.kind == "quotation" and doc.valid_until:
            rows.append(("Valid Until", _date(doc.valid_until)))
        if self.kind == "contract":
            if doc.start_date:
                rows.append(("Start", _date(doc.start_date)))
            if doc.end_date:
                rows.append(("End", _date(doc.end_date)))
        if self.kind == "invoice" and doc.due_date:
            rows.append(("Due Date", _date(doc.due_date)))
        rows.append(("Status", doc.get_status_display()))
        return rows

    # ─── SECTIONS ───

    def header(self):
        self.lab_header(self.doc.laboratory, self.title())

    def parties(self):
        client = self.doc.client
        top = self.y

        label = "Bill To" if self.kind == "invoice" else "Prepared For"
        self.text(MARGIN, self.y, label, font="Helvetica-Bold", size=8, color=SLATE)
        self.y -= 13
        self.text(MARGIN, self.y, client.display_name, font="Helvetica-Bold", size=10)
        self.y -= 12
        for line in (
            client.name if client.company else "",
            client.address,
            client.email,
            f"TRN: {client.trn}" if client.trn else "",
        ):
            if line:
                self.text(MARGIN, self.y, line, size=8)
                self.y -= 11
        left_bottom = self.y

        y = top
        for label, value in self.meta_rows():
            self.text_right(W - MARGIN - 110, y, label, font="Helvetica-Bold", size=8, color=SLATE)
            self.text_right(W - MARGIN, y, value, size=9)
            y -= 13

        self.y = min(left_bottom, y) - 14

    def table_header(self):
        self.shaded_row(self.y)
        x = MARGIN + 4
        for label, width, align in COLUMNS:
            if align == "right":
                self.text_right(x + width - 8, self.y, label, font="Helvetica-Bold", size=8)
            else:
                self.text(x, self.y, label, font="Helvetica-Bold", size=8)
            x += width
        self.y -= ROW_H

    def items(self):
        self.table_header()
        for index, item in enumerate(self.doc.items.all(), start=1):
            self.ensure_space(ROW_H, on_new_page=self.table_header)
            values = [
                str(index),
                item.description[:70],
                f"{item.quantity.normalize():f}",
                format_money(item.unit_price),
                format_money(item.total),
            ]
            x = MARGIN + 4
            for (label, width, align), value in zip(COLUMNS, values):
                if align == "right":
                    self.text_right(x + width - 8, self.y, value, size=8)
                else:
                    self.text(x, self.y, value, size=8)
                x += width
            self.y -= ROW_H
        self.rule(self.y + ROW_H - 6)
        self.y -= 8

    def summary(self):
        self.ensure_space(60)
        doc = self.doc
        rows = [
            ("Subtotal", format_money(doc.subtotal)),
            (f"Tax ({doc.tax_rate.normalize():f}%)", format_money(doc.tax_amount)),
        ]
        for label, value in rows:
            self.text_right(W - MARGIN - 110, self.y, label, size=9, color=SLATE)
            self.text_right(W - MARGIN, self.y, value, size=9)
            self.y -= 14
        self.text_right(W - MARGIN - 110, self.y, "Total", font="Helvetica-Bold", size=10)
        self.text_right(W - MARGIN, self.y, format_money(doc.total), font="Helvetica-Bold", size=10)
        self.y -= 24

    def notes(self):
        if self.kind == "contract" and self.doc.terms:
            self.ensure_space(30)
            self.text(MARGIN, self.y, "Terms & Conditions", font="Helvetica-Bold", size=9)
            self.y -= 13
            self.paragraph(self.doc.terms)
            self.y -= 6
        if self.doc.notes:
            self.ensure_space(30)
            self.text(MARGIN, self.y, "Notes", font="Helvetica-Bold", size=9)
            self.y -= 13
            self.paragraph(self.doc.notes)
            self.y -= 6

    def footer(self):
        lab = self.doc.laboratory
        lines = list(FOOTNOTES[self.kind])
        lines.append(" | ".join(p for p in (lab.name, f"Tel: {lab.phone}" if lab.phone else "", lab.email) if p))
        self.ensure_space(14 * len(lines))
        self.rule(self.y)
        self.y -= 12
        for line in lines:
            self.text(MARGIN, self.y, line, size=7, color=SLATE if line != lines[-1] else NAVY)
            self.y -= 10

    def render(self) -> bytes:
        self.header()
        self.parties()
        self.items()
        self.summary()
        self.notes()
        self.footer()
        return self.finish()


def render_accounts_pdf(doc) -> bytes:
    return AccountsDocumentPDF(doc).render()


def pdf_filename(doc) -> str:
    return f"{doc.number or document_kind(doc)}.pdf"
