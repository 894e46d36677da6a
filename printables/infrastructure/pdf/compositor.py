# printables/infrastructure/pdf/compositor.py
"""
Draws school name, date, QR code and logo onto a printable template.

Each printable is built in three steps: a reportlab overlay is drawn at the
template's page size, the overlay is merged onto the template page with
pypdf, and the result is placed on a larger page to add the bleed margin.
All methods are synchronous and CPU-bound; callers run them on a worker
thread.
"""
import io
import logging
from typing import Iterable, Optional

import pypdf
from pypdf.generic import RectangleObject
from PIL import Image
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas as rl_canvas

from printables.config.layout import (
    ImagePlacement,
    QrPlacement,
    TemplateSpec,
    TemplateType,
    TextPlacement,
    bleed_points,
    format_german_date,
    get_date_placement,
    get_default_placement,
    get_logo_placement,
    get_qr_placement,
    get_template_spec,
    is_back_variant,
    requires_logo,
    supports_qr_code,
)
from printables.domain.models import QrBox, TextElement
from printables.infrastructure.pdf.fonts import text_width

LINE_HEIGHT_FACTOR = 1.2
MIN_FONT_SIZE = 6
QR_CAPTION_MIN_SIZE = 7
QR_CAPTION_MAX_SIZE = 12

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False


class PrintableCompositor:

    # --- Public entry points ---

    def compose_fixed(
        self,
        template_type: TemplateType,
        template_pdf: Optional[bytes],
        school_name: str,
        event_date: str,
        font_name: str,
        qr_png: Optional[bytes] = None,
        qr_caption: Optional[str] = None,
        logo_bytes: Optional[bytes] = None,
    ) -> bytes:
        """Render a printable from the static per-type placements."""
        spec = get_template_spec(template_type)
        page = self._load_base_page(spec, template_pdf)

        def draw(c: rl_canvas.Canvas) -> None:
            if not is_back_variant(spec.template_type):
                self._draw_fixed_text(c, school_name, get_default_placement(spec.template_type), font_name)
                date_placement = get_date_placement(spec.template_type)
                if date_placement is not None:
                    self._draw_fixed_text(c, format_german_date(event_date), date_placement, font_name)
            if qr_png and supports_qr_code(spec.template_type):
                self._draw_qr(c, qr_png, get_qr_placement(spec.template_type), qr_caption, font_name)
            self._draw_logo_if_required(c, spec.template_type, logo_bytes)

        self._overlay(page, draw)
        return self._finalize(page, spec)

    def compose_from_editor_state(
        self,
        template_type: TemplateType,
        template_pdf: Optional[bytes],
        text_elements: Iterable[TextElement],
        font_name: str,
        qr_position: Optional[QrBox] = None,
        qr_png: Optional[bytes] = None,
        qr_caption: Optional[str] = None,
        logo_bytes: Optional[bytes] = None,
    ) -> bytes:
        """Render a printable from operator-placed elements (PDF points)."""
        spec = get_template_spec(template_type)
        page = self._load_base_page(spec, template_pdf)
        elements = list(text_elements or [])

        def draw(c: rl_canvas.Canvas) -> None:
            if is_back_variant(spec.template_type):
                if elements:
                    logger.info(f"{spec.template_type.value}: ignoring {len(elements)} text element(s) on back side.")
            else:
                for element in elements:
                    self._draw_text_block(c, element, font_name)
            if qr_png and qr_position is not None and supports_qr_code(spec.template_type):
                self._draw_qr(c, qr_png, self._editor_qr_placement(qr_position), qr_caption, font_name)
            self._draw_logo_if_required(c, spec.template_type, logo_bytes)

        self._overlay(page, draw)
        return self._finalize(page, spec)

    def add_bleed(self, pdf_bytes: bytes, bleed_mm: float) -> bytes:
        reader = pypdf.PdfReader(io.BytesIO(pdf_bytes))
        page = self._apply_bleed(reader.pages[0], bleed_points(bleed_mm))
        return self._write(page)

    # --- Page handling ---

    def _load_base_page(self, spec: TemplateSpec, template_pdf: Optional[bytes]) -> pypdf.PageObject:
        if template_pdf is None:
            logger.info(f"{spec.template_type.value}: no template, using blank {spec.page_width}x{spec.page_height}pt page.")
            return pypdf.PdfWriter().add_blank_page(width=spec.page_width, height=spec.page_height)
        reader = pypdf.PdfReader(io.BytesIO(template_pdf))
        if len(reader.pages) == 0:
            raise ValueError("PDF has no pages")
        # Merges rewrite the content stream, so the page must belong to a writer
        return pypdf.PdfWriter().add_page(reader.pages[0])

    def _overlay(self, page: pypdf.PageObject, draw) -> None:
        box = page.mediabox
        width, height = float(box.width), float(box.height)
        buf = io.BytesIO()
        c = rl_canvas.Canvas(buf, pagesize=(width, height), invariant=1)
        draw(c)
        c.showPage()
        c.save()
        buf.seek(0)
        overlay = pypdf.PdfReader(buf).pages[0]
        page.merge_translated_page(overlay, float(box.left), float(box.bottom))

    def _apply_bleed(self, page: pypdf.PageObject, bleed: float) -> pypdf.PageObject:
        """Place the finished page on a canvas `bleed` points larger on every side.

        The content is translated by (bleed, bleed) and never rescaled. A
        zero bleed returns the page untouched.
        """
        if bleed <= 0:
            return page
        box = page.mediabox
        width, height = float(box.width), float(box.height)
        bled = pypdf.PdfWriter().add_blank_page(width=width + 2 * bleed, height=height + 2 * bleed)
        bled.merge_translated_page(page, bleed - float(box.left), bleed - float(box.bottom))
        bled.trimbox = RectangleObject([bleed, bleed, bleed + width, bleed + height])
        return bled

    def _finalize(self, page: pypdf.PageObject, spec: TemplateSpec) -> bytes:
        return self._write(self._apply_bleed(page, bleed_points(spec.bleed_mm)))

    def _write(self, page: pypdf.PageObject) -> bytes:
        writer = pypdf.PdfWriter()
        writer.add_page(page)
        buf = io.BytesIO()
        writer.write(buf)
        return buf.getvalue()

    # --- Drawing helpers ---

    def _draw_fixed_text(self, c: rl_canvas.Canvas, text: str, placement: TextPlacement, font_name: str) -> None:
        if not text or placement is None:
            return
        size = placement.font_size
        width = text_width(text, font_name, size)
        # Shrink to fit max_width
        if placement.max_width:
            while width > placement.max_width and size > MIN_FONT_SIZE:
                size -= 1
                width = text_width(text, font_name, size)

        x = placement.x
        if placement.align == "center":
            x -= width / 2
        elif placement.align == "right":
            x -= width

        c.setFillColorRGB(*placement.color)
        c.setFont(font_name, size)
        c.drawString(x, placement.y, text)

    def _draw_text_block(self, c: rl_canvas.Canvas, element: TextElement, font_name: str) -> None:
        """Center a multi-line block inside the element's box, each line centered on its own."""
        lines = [line.strip() for line in (element.text or "").split("\n")]
        lines = [line for line in lines if line]
        if not lines:
            return

        size = element.font_size
        line_height = size * LINE_HEIGHT_FACTOR
        total_height = len(lines) * line_height
        center_y = element.y + element.height / 2
        start_y = center_y + total_height / 2 - size

        c.setFillColorRGB(*element.color)
        c.setFont(font_name, size)
        for i, line in enumerate(lines):
            width = text_width(line, font_name, size)
            x = element.x + (element.width - width) / 2
            c.drawString(x, start_y - i * line_height, line)

    def _editor_qr_placement(self, box: QrBox) -> QrPlacement:
        caption_size = min(max(box.size / 10, QR_CAPTION_MIN_SIZE), QR_CAPTION_MAX_SIZE)
        caption = TextPlacement(
            x=box.x + box.size / 2,
            y=box.y - box.size / 10 - caption_size,
            font_size=caption_size,
        )
        return QrPlacement(x=box.x, y=box.y, size=box.size, caption=caption)

    def _draw_qr(self, c: rl_canvas.Canvas, qr_png: bytes, placement: QrPlacement, caption: Optional[str], font_name: str) -> None:
        c.drawImage(ImageReader(io.BytesIO(qr_png)), placement.x, placement.y, placement.size, placement.size)
        if caption and placement.caption is not None:
            self._draw_fixed_text(c, caption, placement.caption, font_name)

    def _draw_logo_if_required(self, c: rl_canvas.Canvas, template_type: TemplateType, logo_bytes: Optional[bytes]) -> None:
        if not requires_logo(template_type):
            return
        if not logo_bytes:
            logger.warning(f"No logo provided for {template_type.value}, generating without logo.")
            return
        self._draw_logo(c, logo_bytes, get_logo_placement(template_type))

    def _draw_logo(self, c: rl_canvas.Canvas, logo_bytes: bytes, placement: ImagePlacement) -> None:
        try:
            img = Image.open(io.BytesIO(logo_bytes))
            img.load()
        except (OSError, ValueError) as e:
            logger.warning(f"Could not decode logo ({type(e).__name__}: {e}), generating without logo.")
            return

        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA" if "A" in img.getbands() or "transparency" in img.info else "RGB")
        iw, ih = img.size
        if iw == 0 or ih == 0:
            return

        x, y, w, h = placement.x, placement.y, placement.width, placement.height
        if placement.fit == "stretch":
            dx, dy, dw, dh = x, y, w, h
        else:
            if placement.fit == "cover":
                scale = max(w / iw, h / ih)
            else:
                scale = min(w / iw, h / ih)
            dw, dh = iw * scale, ih * scale
            dx, dy = x + (w - dw) / 2, y + (h - dh) / 2

        c.saveState()
        if placement.fit == "cover":
            path = c.beginPath()
            path.rect(x, y, w, h)
            c.clipPath(path, stroke=0, fill=0)
        c.drawImage(ImageReader(img), dx, dy, dw, dh, mask="auto")
        c.restoreState()
