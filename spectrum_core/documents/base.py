# spectrum_core/documents/base.py
"""
Canvas helpers shared by the PDF documents (COA, accounts documents, labels).
"""
from __future__ import annotations

from io import BytesIO

from django.conf import settings
from reportlab.graphics import renderPDF
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

# ─── PALETTE ───
NAVY = HexColor("#1B2A4A")
SLATE = HexColor("#64748B")
SLATE_PALE = HexColor("#F1F5F9")
BORDER = HexColor("#D0D0D0")
GREEN = HexColor("#166534")
ROSE = HexColor("#BE185D")

W, H = A4
MARGIN = 45
CONTENT_W = W - 2 * MARGIN
ROW_H = 16


def public_url(path: str) -> str:
    base = getattr(settings, "PUBLIC_BASE_URL", "").rstrip("/")
    return f"{base}/{path.lstrip('/')}"


def draw_qr(c, value: str, x: float, y: float, size: float) -> None:
    """QR code for `value` with its lower-left corner at (x, y)."""
    widget = QrCodeWidget(value)
    x1, y1, x2, y2 = widget.getBounds()
    drawing = Drawing(size, size, transform=[size / (x2 - x1), 0, 0, size / (y2 - y1), 0, 0])
    drawing.add(widget)
    renderPDF.draw(drawing, c, x, y)


class PDFDocument:
    """
    One canvas on an in-memory buffer with a running y cursor.

    Subclasses draw their sections and call finish().
    """

    def __init__(self, title: str, author: str = ""):
        self.buffer = BytesIO()
        self.c = canvas.Canvas(self.buffer, pagesize=A4)
        self.c.setTitle(title)
        if author:
            self.c.setAuthor(author)
        self.c.setCreator("Spectrum LIMS")
        self.y = H - MARGIN

    # ─── DRAWING PRIMITIVES ───

    def text(self, x, y, value, font="Helvetica", size=9, color=NAVY):
        self.c.saveState()
        self.c.setFont(font, size)
        self.c.setFillColor(color)
        self.c.drawString(x, y, str(value if value is not None else ""))
        self.c.restoreState()

    def text_right(self, x, y, value, font="Helvetica", size=9, color=NAVY):
        self.c.saveState()
        self.c.setFont(font, size)
        self.c.setFillColor(color)
        self.c.drawRightString(x, y, str(value if value is not None else ""))
        self.c.restoreState()

    def rule(self, y, color=SLATE, width=0.5):
        self.c.saveState()
        self.c.setStrokeColor(color)
        self.c.setLineWidth(width)
        self.c.line(MARGIN, y, W - MARGIN, y)
        self.c.restoreState()

    def shaded_row(self, y, height=ROW_H):
        self.c.saveState()
        self.c.setFillColor(SLATE_PALE)
        self.c.rect(MARGIN, y - 4, CONTENT_W, height, fill=1, stroke=0)
        self.c.restoreState()

    def new_page(self):
        self.c.showPage()
        self.y = H - MARGIN

    def ensure_space(self, needed, on_new_page=None):
        if self.y - needed < MARGIN + 60:
            self.new_page()
            if on_new_page is not None:
                on_new_page()

    def paragraph(self, value: str, size=8, width_chars=110, color=NAVY):
        """Naive wrap on word boundaries; enough for notes and terms."""
        for raw in (value or "").splitlines() or [""]:
            line = ""
            for word in raw.split():
                if line and len(line) + len(word) + 1 > width_chars:
                    self.ensure_space(11)
                    self.text(MARGIN, self.y, line, size=size, color=color)
                    self.y -= 11
                    line = word
                else:
                    line = f"{line} {word}".strip()
            self.ensure_space(11)
            self.text(MARGIN, self.y, line, size=size, color=color)
            self.y -= 11

    # ─── SECTIONS ───

    def lab_header(self, laboratory, title: str = ""):
        self.text(MARGIN, self.y, laboratory.name, font="Helvetica-Bold", size=14)
        if title:
            self.text_right(W - MARGIN, self.y, title, font="Helvetica-Bold", size=14)
        self.y -= 14
        contact = "  |  ".join(p for p in (laboratory.address, laboratory.phone, laboratory.email) if p)
        if contact:
            self.text(MARGIN, self.y, contact, size=8, color=SLATE)
            self.y -= 10
        self.rule(self.y)
        self.y -= 22

    def finish(self) -> bytes:
        self.c.showPage()
        self.c.save()
        return self.buffer.getvalue()
