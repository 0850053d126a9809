"""Raster backend: composites field drawings onto a source image with Pillow."""

import io
import logging
from typing import Any

from PIL import Image, ImageDraw

from compositor.core.fonts import FontRegistry
from compositor.core.layout import FieldDrawing, ImageOp, ShapeOp, TextOp, layout_page
from compositor.schemas.field import TemplateField

logger = logging.getLogger(__name__)


def _paint(layer: Image.Image, drawing: FieldDrawing, images: dict[str, Image.Image], fonts: FontRegistry) -> None:
    draw = ImageDraw.Draw(layer)
    for op in drawing.ops:
        match op:
            case ShapeOp():
                draw.polygon(
                    op.points,
                    fill=op.fill,
                    outline=op.stroke,
                    width=max(round(op.stroke_width), 1) if op.stroke else 0,
                )
            case TextOp():
                draw.text(
                    (op.x, op.baseline),
                    op.text,
                    font=fonts.pil_font(op.font, op.size),
                    fill=op.color,
                    anchor="ls",
                )
            case ImageOp():
                source = images.get(op.field_id)
                width, height = round(op.width), round(op.height)
                if source is None or width <= 0 or height <= 0:
                    continue
                fitted = source.convert("RGBA").resize((width, height), Image.Resampling.LANCZOS)
                layer.alpha_composite(fitted, (round(op.x), round(op.y)))


def compose_image(
    source: bytes,
    fields: list[TemplateField],
    values: dict[str, Any],
    images: dict[str, bytes],
    fonts: FontRegistry,
    quality: int = 95,
) -> bytes:
    """Draw ``fields`` over the source image and return a flattened JPEG.

    Every field is painted on its own transparent layer, rotated about the
    field center and then composited, so rotation never alters geometry.
    """
    with Image.open(io.BytesIO(source)) as img:
        canvas = img.convert("RGBA")

    width, height = canvas.size
    decoded = {field_id: Image.open(io.BytesIO(data)) for field_id, data in images.items()}

    # Image templates have a single page; fields placed elsewhere are ignored.
    page_fields = [f for f in fields if f.page == 1]
    drawings = layout_page(page_fields, values, width, height, fonts.raster_measure)

    for drawing in drawings:
        layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        _paint(layer, drawing, decoded, fonts)
        if drawing.rotation:
            # Pillow rotates counter-clockwise; stored rotation is clockwise.
            layer = layer.rotate(
                -drawing.rotation,
                resample=Image.Resampling.BICUBIC,
                center=drawing.center,
            )
        canvas.alpha_composite(layer)

    output = io.BytesIO()
    canvas.convert("RGB").save(output, format="JPEG", quality=quality)
    logger.debug(f"Composited {len(drawings)} fields onto {width}x{height} image")
    return output.getvalue()
