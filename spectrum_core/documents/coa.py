# spectrum_core/documents/coa.py
"""
Certificate of Analysis PDF for approved / published reports.
"""
from __future__ import annotations

from typing import Optional

from rest_framework.exceptions import ValidationError

from spectrum_core.models import Report
from spectrum_core.services.reports import VERIFIABLE_STATES, ensure_verification

from .base import (
    CONTENT_W,
    GREEN,
    MARGIN,
    NAVY,
    ROSE,
    ROW_H,
    SLATE,
    W,
    PDFDocument,
    draw_qr,
    public_url,
)

QR_SIZE = 64

# parameter, method, unit, min, max, result, remark
COLUMNS = [
    ("Parameter", 150),
    ("Method", 75),
    ("Unit", 50),
    ("Min", 40),
    ("Max", 40),
    ("Result", 95),
    ("Remark", CONTENT_W - 450),
]


def _number(value) -> Optional[float]:
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


def evaluate_result(value, spec_min, spec_max) -> str:
    """
    "Pass" / "Fail" for numeric results with at least one numeric bound,
    "" when the comparison does not apply.
    """
    result = _number(value)
    lo, hi = _number(spec_min), _number(spec_max)
    if result is None or (lo is None and hi is None):
        return ""
    if lo is not None and result < lo:
        return "Fail"
    if hi is not None and result > hi:
        return "Fail"
    return "Pass"


def verification_url(code: str) -> str:
    return public_url(f"verify/{code}")


class COADocument(PDFDocument):
    def __init__(self, report: Report):
        super().__init__(f"{report.title} - {report.report_number}", author=report.laboratory.name)
        self.report = report
        self.sample = report.sample

    def header(self):
        self.lab_header(self.report.laboratory)
        self.text(MARGIN, self.y, self.report.title.upper(), font="Helvetica-Bold", size=12)
        self.y -= 20

    def details(self):
        s = self.sample
        rows = [
            ("Report No.", self.report.report_number, "Sample No.", s.sample_number),
            ("Client", s.client.display_name, "Sample Type", s.sample_type.name),
            (
                "Received",
                s.registered_at.strftime("%d %b %Y") if s.registered_at else "",
                "Sample Point",
                s.sample_point,
            ),
            ("Reference", s.reference, "Standard", s.sample_type.specification_standard),
        ]
        for left_label, left, right_label, right in rows:
            self.text(MARGIN, self.y, left_label, font="Helvetica-Bold", size=8, color=SLATE)
            self.text(MARGIN + 70, self.y, left)
            self.text(MARGIN + CONTENT_W / 2, self.y, right_label, font="Helvetica-Bold", size=8, color=SLATE)
            self.text(MARGIN + CONTENT_W / 2 + 70, self.y, right)
            self.y -= 14
        self.y -= 8

    def table_header(self):
        self.shaded_row(self.y)
        x = MARGIN + 4
        for label, width in COLUMNS:
            self.text(x, self.y, label, font="Helvetica-Bold", size=8)
            x += width
        self.y -= ROW_H

    def results(self):
        self.table_header()
        for r in self.sample.test_results.all():
            self.ensure_space(ROW_H, on_new_page=self.table_header)
            remark = evaluate_result(r.result_value, r.spec_min, r.spec_max)
            values = [
                r.parameter[:34],
                r.test_method,
                r.unit,
                r.spec_min or "-",
                r.spec_max or "-",
                r.result_value,
                remark,
            ]
            x = MARGIN + 4
            for (label, width), value in zip(COLUMNS, values):
                color = NAVY
                if label == "Remark":
                    color = GREEN if value == "Pass" else ROSE
                self.text(x, self.y, value, size=8, color=color)
                x += width
            self.y -= ROW_H
        self.rule(self.y + ROW_H - 6)
        self.y -= 10

    def footer(self, code: str):
        self.ensure_space(QR_SIZE + 30)
        self.text(
            MARGIN,
            self.y,
            "The above test results are only applicable to the sample(s) referred above.",
            size=7,
            color=SLATE,
        )
        self.y -= 16
        if self.report.summary:
            self.text(MARGIN, self.y, f"Remarks: {self.report.summary[:110]}", size=8)
            self.y -= 16

        top = self.y
        reviewer = self.report.reviewed_by
        if reviewer is not None:
            name = (reviewer.get_full_name() or "").strip() or reviewer.get_username()
            when = self.report.reviewed_at.strftime("%d %b %Y") if self.report.reviewed_at else ""
            self.text(MARGIN, self.y, f"Authenticated by {name} {when}".strip(), font="Helvetica-Bold", size=9)
            self.y -= 16

        url = verification_url(code)
        self.text(MARGIN, self.y, f"Verification code: {code}", size=8, color=SLATE)
        self.y -= 11
        self.text(MARGIN, self.y, f"Verify at {url}", size=8, color=SLATE)

        qr_x = W - MARGIN - QR_SIZE
        draw_qr(self.c, url, qr_x, top - QR_SIZE + 8, QR_SIZE)
        self.text(qr_x + 8, top - QR_SIZE - 2, "Scan to verify", size=7, color=SLATE)

    def render(self) -> bytes:
        code = ensure_verification(self.report).verification_code
        self.header()
        self.details()
        self.results()
        self.footer(code)
        return self.finish()


def render_coa_pdf(report: Report) -> bytes:
    if report.status not in VERIFIABLE_STATES:
        raise ValidationError({"status": "COA is only available for approved or published reports."})
    return COADocument(report).render()
