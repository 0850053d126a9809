"""PDF backend: draws field overlays with reportlab and merges them with pypdf."""

import io
import logging
from typing import Any

from pypdf import PdfReader, PdfWriter
from reportlab.lib.colors import Color as PdfColor
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from compositor.core.fonts import FontRegistry
from compositor.core.layout import Color, FieldDrawing, ImageOp, ShapeOp, TextOp, layout_page
from compositor.schemas.field import TemplateField

logger = logging.getLogger(__name__)


def _pdf_color(color: Color) -> PdfColor:
    r, g, b, a = color
    return PdfColor(r / 255, g / 255, b / 255, alpha=a / 255)


def _draw_field(
    c: canvas.Canvas,
    drawing: FieldDrawing,
    page_height: float,
    images: dict[str, ImageReader],
    fonts: FontRegistry,
) -> None:
    """Draw one field; layout y values are top-down, PDF y is bottom-up."""
    c.saveState()
    if drawing.rotation:
        cx, cy = drawing.center
        c.translate(cx, page_height - cy)
        c.rotate(-drawing.rotation)
        c.translate(-cx, -(page_height - cy))

    for op in drawing.ops:
        match op:
            case ShapeOp():
                path = c.beginPath()
                first, *rest = op.points
                path.moveTo(first[0], page_height - first[1])
                for px, py in rest:
                    path.lineTo(px, page_height - py)
                path.close()
                if op.fill:
                    c.setFillColor(_pdf_color(op.fill))
                if op.stroke:
                    c.setStrokeColor(_pdf_color(op.stroke))
                    c.setLineWidth(op.stroke_width)
                c.drawPath(path, fill=1 if op.fill else 0, stroke=1 if op.stroke else 0)
            case TextOp():
                c.setFillColor(_pdf_color(op.color))
                c.setFont(fonts.pdf_font_name(op.font), op.size)
                c.drawString(op.x, page_height - op.baseline, op.text)
            case ImageOp():
                image = images.get(op.field_id)
                if image is None or op.width <= 0 or op.height <= 0:
                    continue
                c.drawImage(
                    image,
                    op.x,
                    page_height - op.y - op.height,
                    width=op.width,
                    height=op.height,
                    mask="auto",
                )
    c.restoreState()


def _overlay(
    drawings: list[FieldDrawing],
    page_width: float,
    page_height: float,
    images: dict[str, ImageReader],
    fonts: FontRegistry,
) -> bytes:
    packet = io.BytesIO()
    c = canvas.Canvas(packet, pagesize=(page_width, page_height))
    for drawing in drawings:
        _draw_field(c, drawing, page_height, images, fonts)
    c.showPage()
    c.save()
    return packet.getvalue()


def compose_pdf(
    source: bytes,
    fields: list[TemplateField],
    values: dict[str, Any],
    images: dict[str, bytes],
    fonts: FontRegistry,
) -> bytes:
    """Stamp ``fields`` onto the pages of the source PDF.

    Each page is laid out against its own mediabox, so pages of different
    sizes are handled independently. Fields on a page past the end of the
    document are skipped.
    """
    reader = PdfReader(io.BytesIO(source))
    writer = PdfWriter()
    readers = {field_id: ImageReader(io.BytesIO(data)) for field_id, data in images.items()}
    page_count = len(reader.pages)

    skipped = [f.id for f in fields if f.page > page_count]
    if skipped:
        logger.debug(f"Skipping {len(skipped)} fields beyond page {page_count}")

    for index, page in enumerate(reader.pages, start=1):
        page_fields = [f for f in fields if f.page == index]
        if page_fields:
            box = page.mediabox
            page_width = float(box.width)
            page_height = float(box.height)
            drawings = layout_page(page_fields, values, page_width, page_height, fonts.pdf_measure)
            if drawings:
                overlay_page = PdfReader(
                    io.BytesIO(_overlay(drawings, page_width, page_height, readers, fonts))
                ).pages[0]
                left, bottom = float(box.left), float(box.bottom)
                if left or bottom:
                    overlay_page.add_transformation((1, 0, 0, 1, left, bottom))
                page.merge_page(overlay_page)
        writer.add_page(page)

    output = io.BytesIO()
    writer.write(output)
    return output.getvalue()
