"""PDF project report.

Renders a finalized project into an A4 document with reportlab. Layout runs
top-down with a vertical cursor in millimetres; any block that would cross
the bottom margin starts a new page, and the cost table reprints its header
row after a break. Missing sections are skipped.

Images are passed in already downloaded (``images`` maps URL -> PIL image),
so rendering itself does no I/O.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from io import BytesIO

import structlog
from PIL import Image
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from app.models.contracts import Project

logger = structlog.get_logger()

BRAND = "YardSketch"
MARGIN = 20.0
FOOTER_HEIGHT = 20.0
IMAGE_W = 80.0
IMAGE_H = 60.0
IMAGE_GAP = 10.0
MAX_GENERATED_IMAGES = 2
TABLE_ROW_H = 6.0
TABLE_HEADER_H = 8.0

GREEN = (34 / 255, 197 / 255, 94 / 255)
DARK_GREEN = (22 / 255, 163 / 255, 74 / 255)
GRAY_50 = (249 / 255, 250 / 255, 251 / 255)
GRAY_500 = (107 / 255, 114 / 255, 128 / 255)
GRAY_700 = (55 / 255, 65 / 255, 81 / 255)
GRAY_900 = (17 / 255, 24 / 255, 39 / 255)

# (label, x offset from the left margin in mm)
TABLE_COLUMNS = (
    ("Category", 2.0),
    ("Item", 30.0),
    ("Quantity", 100.0),
    ("Unit Price", 140.0),
    ("Total", 165.0),
)


def _money(value: float) -> str:
    return f"${value:,.2f}"


def report_filename(name: str) -> str:
    return f"{re.sub(r'[^a-z0-9]', '_', name, flags=re.IGNORECASE).lower()}_report.pdf"


class ReportRenderer:
    """One-shot renderer; ``render()`` returns the PDF bytes.

    After rendering, ``page_count`` and ``table_header_pages`` describe the
    layout that was produced.
    """

    def __init__(
        self,
        project: Project,
        images: dict[str, Image.Image] | None = None,
        *,
        generated_at: datetime | None = None,
    ) -> None:
        self.project = project
        self.images = images or {}
        self.generated_at = generated_at or datetime.now(UTC)
        self.page_width, self.page_height = (d / mm for d in A4)
        self.content_width = self.page_width - 2 * MARGIN
        self.page_count = 0
        self.table_header_pages: list[int] = []
        self._buf = BytesIO()
        self._pdf = canvas.Canvas(self._buf, pagesize=A4)
        self._y = MARGIN

    # --- primitives (y grows downward from the top edge, in mm) ---

    def _text(
        self,
        text: str,
        x: float,
        y: float,
        *,
        size: float,
        bold: bool = False,
        color: tuple[float, float, float] = GRAY_900,
    ) -> None:
        self._pdf.setFont("Helvetica-Bold" if bold else "Helvetica", size)
        self._pdf.setFillColorRGB(*color)
        self._pdf.drawString(x * mm, (self.page_height - y) * mm, text)

    def _rect(
        self, x: float, y: float, w: float, h: float, color: tuple[float, float, float]
    ) -> None:
        self._pdf.setFillColorRGB(*color)
        self._pdf.rect(x * mm, (self.page_height - y - h) * mm, w * mm, h * mm, stroke=0, fill=1)

    def _image(self, image: Image.Image, x: float, y: float) -> None:
        self._pdf.drawImage(
            ImageReader(image.convert("RGB")),
            x * mm,
            (self.page_height - y - IMAGE_H) * mm,
            IMAGE_W * mm,
            IMAGE_H * mm,
            preserveAspectRatio=True,
            anchor="c",
        )

    @property
    def _bottom(self) -> float:
        return self.page_height - MARGIN - FOOTER_HEIGHT

    def _start_page(self) -> None:
        self.page_count += 1
        self._y = MARGIN

    def _finish_page(self) -> None:
        self._footer()
        self._pdf.showPage()

    def _ensure_space(self, height: float) -> bool:
        """Break the page if ``height`` doesn't fit. Returns True on a break."""
        if self._y + height <= self._bottom:
            return False
        self._finish_page()
        self._start_page()
        return True

    # --- sections ---

    def _header(self) -> None:
        self._rect(0, 0, self.page_width, 40, GREEN)
        self._rect(0, 0, self.page_width, 10, DARK_GREEN)
        self._text(BRAND, MARGIN, 25, size=24, bold=True, color=(1, 1, 1))
        self._text("Project Report", MARGIN, 35, size=16, bold=True, color=(1, 1, 1))
        self._y = 50

    def _title(self) -> None:
        p = self.project
        self._y += 5
        self._text(p.name, MARGIN, self._y, size=20, bold=True)
        self._y += 5
        self._pdf.setStrokeColorRGB(*GREEN)
        self._pdf.setLineWidth(0.5 * mm)
        line_y = (self.page_height - self._y) * mm
        self._pdf.line(MARGIN * mm, line_y, (MARGIN + 100) * mm, line_y)
        self._y += 10
        self._text(f"Created: {p.created_at:%B %d, %Y}", MARGIN, self._y, size=12, color=GRAY_500)
        self._y += 8
        self._text(f"Status: {p.status}", MARGIN, self._y, size=12, color=GRAY_500)
        self._y += 15

    def _specifications(self) -> None:
        p = self.project
        specs = [
            f"Climate Zone: {p.climate_zone}",
            f"Sun Exposure: {p.sun_exposure.replace('-', ' ')}",
            f"Square Footage: {p.square_footage:,} sq ft",
            f"Design Style: {p.design_style}",
        ]
        if p.budget:
            specs.append(f"Budget: {_money(p.budget)}")
        self._ensure_space(10 + 6 * len(specs))
        self._section_title("Project Specifications")
        for spec in specs:
            self._text(spec, MARGIN, self._y, size=10, color=GRAY_500)
            self._y += 6
        self._y += 10

    def _section_title(self, title: str) -> None:
        self._text(title, MARGIN, self._y, size=14, bold=True)
        self._y += 6

    def _original_image(self) -> None:
        url = self.project.original_image
        image = self.images.get(url) if url else None
        if image is None:
            return
        self._ensure_space(6 + IMAGE_H + 10)
        self._section_title("Original Property")
        self._image(image, MARGIN, self._y)
        self._y += IMAGE_H + 10

    def _generated_images(self) -> None:
        urls = (self.project.generated_images or [])[:MAX_GENERATED_IMAGES]
        images = [self.images[u] for u in urls if u in self.images]
        if not images:
            return
        self._ensure_space(6 + IMAGE_H + 10)
        self._section_title("Generated Designs")
        for i, image in enumerate(images):
            self._image(image, MARGIN + i * (IMAGE_W + IMAGE_GAP), self._y)
        self._y += IMAGE_H + 10

    def _design_thesis(self) -> None:
        thesis = self.project.design_thesis
        if not thesis:
            return
        line_h = 10 * 0.35 + 1.5
        self._ensure_space(6 + 3 * line_h)
        self._section_title("Design Thesis")
        for paragraph in thesis.splitlines():
            lines = simpleSplit(paragraph, "Helvetica", 10, self.content_width * mm) or [""]
            for line in lines:
                self._ensure_space(line_h)
                self._text(line, MARGIN, self._y, size=10, color=GRAY_700)
                self._y += line_h
        self._y += 10

    def _table_header(self) -> None:
        self.table_header_pages.append(self.page_count)
        self._rect(MARGIN, self._y - 5, self.content_width, TABLE_HEADER_H, GRAY_50)
        for label, offset in TABLE_COLUMNS:
            self._text(label, MARGIN + offset, self._y, size=9, color=GRAY_500)
        self._y += TABLE_HEADER_H

    def _materials(self) -> None:
        items = self.project.materials_list or []
        if not items:
            return
        self._ensure_space(6 + TABLE_HEADER_H + 3 * TABLE_ROW_H)
        self._section_title("Materials & Cost Breakdown")
        self._y += 4
        self._table_header()
        for item in items:
            if self._ensure_space(TABLE_ROW_H):
                self._y += 5
                self._table_header()
            cells = (
                item.category,
                item.name,
                item.quantity,
                _money(item.unit_price),
                _money(item.total_price),
            )
            for (_, offset), value in zip(TABLE_COLUMNS, cells, strict=True):
                self._text(value, MARGIN + offset, self._y, size=9)
            self._y += TABLE_ROW_H
        self._y += 5

        if self.project.total_cost is not None:
            self._ensure_space(15)
            self._text(
                f"Total Estimated Cost: {_money(self.project.total_cost)}",
                MARGIN,
                self._y,
                size=12,
                bold=True,
                color=GREEN,
            )
            self._y += 15

    def _footer(self) -> None:
        self._rect(0, self.page_height - FOOTER_HEIGHT, self.page_width, FOOTER_HEIGHT, GRAY_50)
        self._text(
            f"Generated on {self.generated_at:%B %d, %Y %H:%M} UTC by {BRAND}",
            MARGIN,
            self.page_height - 10,
            size=8,
            color=GRAY_500,
        )
        self._text(
            f"Page {self.page_count}",
            self.page_width - MARGIN - 15,
            self.page_height - 10,
            size=8,
            color=GRAY_500,
        )

    def render(self) -> bytes:
        self._pdf.setTitle(f"{self.project.name} - {BRAND} Project Report")
        self._start_page()
        self._header()
        self._title()
        self._specifications()
        self._original_image()
        self._generated_images()
        self._design_thesis()
        self._materials()
        self._finish_page()
        self._pdf.save()
        logger.info(
            "report_rendered",
            project_id=self.project.id,
            pages=self.page_count,
            materials=len(self.project.materials_list or []),
        )
        return self._buf.getvalue()


def render_report(
    project: Project,
    images: dict[str, Image.Image] | None = None,
    *,
    generated_at: datetime | None = None,
) -> bytes:
    return ReportRenderer(project, images, generated_at=generated_at).render()
