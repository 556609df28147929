# spectrum_core/documents/labels.py
"""
A4 sheets of sample labels, two across and nine down, each with a QR code
carrying the sample number.
"""
from __future__ import annotations

from typing import Sequence

from django.utils import timezone

from spectrum_core.models import Sample

from .base import BORDER, H, NAVY, SLATE, PDFDocument, draw_qr

LABELS_PER_ROW = 2
LABELS_PER_COL = 9
LABELS_PER_PAGE = LABELS_PER_ROW * LABELS_PER_COL

LABEL_W = 256
LABEL_H = 78
PAGE_X = 24
PAGE_Y = 30
GAP = 2
QR_SIZE = 56


class SampleLabelSheet(PDFDocument):
    def __init__(self, samples: Sequence[Sample], lab_name: str):
        super().__init__("Sample Labels", author=lab_name)
        self.samples = list(samples)
        self.lab_name = lab_name

    def label(self, sample: Sample, x: float, y: float):
        self.c.saveState()
        self.c.setStrokeColor(BORDER)
        self.c.setLineWidth(0.5)
        self.c.roundRect(x, y, LABEL_W, LABEL_H, 2, stroke=1, fill=0)
        self.c.restoreState()

        draw_qr(self.c, sample.sample_number, x + 4, y + (LABEL_H - QR_SIZE) / 2, QR_SIZE)

        tx = x + QR_SIZE + 12
        ty = y + LABEL_H - 14
        self.text(tx, ty, sample.sample_number, font="Helvetica-Bold", size=9)
        ty -= 10
        self.text(tx, ty, sample.client.display_name[:40], size=7, color=NAVY)
        ty -= 9
        self.text(tx, ty, sample.sample_type.name, size=6.5, color=SLATE)
        ty -= 8

        when = sample.collection_date or sample.registered_at or sample.created_at
        stamp = timezone.localtime(when).strftime("%d %b %Y %H:%M") if when else ""
        if sample.sample_point:
            stamp = f"{stamp} | {sample.sample_point}" if stamp else sample.sample_point
        self.text(tx, ty, stamp, size=6.5, color=SLATE)
        ty -= 8

        collector = sample.collected_by
        name = ((collector.get_full_name() or "").strip() or collector.get_username()) if collector else "Walk-in"
        self.text(tx, ty, name, size=6.5, color=SLATE)
        ty -= 8
        self.text(tx, ty, self.lab_name, size=5.5, color=SLATE)

    def render(self) -> bytes:
        for index, sample in enumerate(self.samples):
            slot = index % LABELS_PER_PAGE
            if index and slot == 0:
                self.new_page()
            row, col = divmod(slot, LABELS_PER_ROW)
            x = PAGE_X + col * (LABEL_W + GAP + 35)
            y = H - PAGE_Y - (row + 1) * LABEL_H - row * GAP
            self.label(sample, x, y)
        return self.finish()


def render_sample_labels(samples: Sequence[Sample], laboratory) -> bytes:
    return SampleLabelSheet(samples, laboratory.name).render()
