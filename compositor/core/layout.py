"""Field layout: turns a bound field into backend-neutral drawing operations.

Both the editor preview and the final renderers go through ``render_field``,
so anchor points, paddings and table geometry are computed in exactly one
place. Coordinates are canvas pixels with a top-left origin; backends flip
axes and apply the field rotation as the last step.

Image values are stretched to the padded field box without preserving aspect
ratio. Text is ellipsized only in preview mode; final output draws the full
string and lets it overflow.
"""

import json
import math
from dataclasses import dataclass, field as dataclass_field
from typing import Any, Callable

from PIL import ImageColor

from compositor.core.errors import TableDataError
from compositor.core.fonts import FontSpec
from compositor.core.geometry import PixelBounds, to_pixels
from compositor.schemas.field import (
    DateField,
    ImageField,
    TableColumn,
    TableField,
    TemplateField,
    TextField,
)

FIELD_PADDING = 8
CELL_PADDING = 4
TABLE_HEADER_HEIGHT = 30
PREVIEW_TABLE_ROWS = 3
ELLIPSIS = "…"

Color = tuple[int, int, int, int]
Measure = Callable[[str, FontSpec, float], float]


# ── Drawing operations ──


@dataclass(frozen=True)
class ShapeOp:
    points: list[tuple[float, float]]
    fill: Color | None = None
    stroke: Color | None = None
    stroke_width: float = 0


@dataclass(frozen=True)
class TextOp:
    text: str
    x: float
    baseline: float
    font: FontSpec
    size: float
    color: Color


@dataclass(frozen=True)
class ImageOp:
    field_id: str
    x: float
    y: float
    width: float
    height: float


DrawOp = ShapeOp | TextOp | ImageOp


@dataclass
class FieldDrawing:
    """Everything needed to paint one field."""

    field_id: str
    bounds: PixelBounds
    rotation: float = 0
    ops: list[DrawOp] = dataclass_field(default_factory=list)

    @property
    def center(self) -> tuple[float, float]:
        return self.bounds.center


@dataclass
class RenderContext:
    canvas_width: float
    canvas_height: float
    value: Any
    measure: Measure
    scale: float = 1.0
    preview: bool = False


# ── Helpers ──


def parse_color(value: str | None, default: Color | None = None) -> Color | None:
    """Parse a CSS-style color; unknown values (``transparent``) give ``default``."""
    if not value:
        return default
    try:
        return ImageColor.getcolor(value, "RGBA")
    except ValueError:
        return default


BLACK: Color = (0, 0, 0, 255)


def has_value(value: Any) -> bool:
    return not (value is None or value is False or value == "" or value == [] or value == {})


def normalized_column_widths(columns: list[TableColumn]) -> list[float]:
    """Column widths in percent, shrunk proportionally when they exceed 100."""
    widths = [max(float(c.width or 0), 0.0) for c in columns]
    total = sum(widths)
    factor = 100 / total if total > 100 else 1
    return [w * factor for w in widths]


def rounded_rect_points(
    x: float,
    y: float,
    width: float,
    height: float,
    radii: tuple[float, float, float, float] = (0, 0, 0, 0),
    segments: int = 6,
) -> list[tuple[float, float]]:
    """Polygon outline of a rectangle with per-corner radii (tl, tr, br, bl)."""
    limit = max(min(width, height) / 2, 0)
    tl, tr, br, bl = (min(max(r, 0), limit) for r in radii)

    if not any((tl, tr, br, bl)):
        return [(x, y), (x + width, y), (x + width, y + height), (x, y + height)]

    points: list[tuple[float, float]] = []

    def arc(cx: float, cy: float, r: float, start_deg: float) -> None:
        if r == 0:
            points.append((cx, cy))
            return
        for i in range(segments + 1):
            angle = math.radians(start_deg + 90 * i / segments)
            points.append((cx + r * math.cos(angle), cy + r * math.sin(angle)))

    # Clockwise in screen space (y down), starting at the top-left corner.
    arc(x + tl, y + tl, tl, 180)
    arc(x + width - tr, y + tr, tr, 270)
    arc(x + width - br, y + height - br, br, 0)
    arc(x + bl, y + height - bl, bl, 90)
    return points


def truncate_text(text: str, max_width: float, font: FontSpec, size: float, measure: Measure) -> str:
    """Shorten ``text`` with an ellipsis until it fits ``max_width``."""
    if max_width <= 0:
        return ""
    if measure(text, font, size) <= max_width:
        return text
    lo, hi = 0, len(text)
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if measure(text[:mid] + ELLIPSIS, font, size) <= max_width:
            lo = mid
        else:
            hi = mid - 1
    return text[:lo] + ELLIPSIS if lo else ""


def table_rows(value: Any) -> list[dict]:
    """Coerce a table value to a list of row mappings."""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise TableDataError(f"Table data is not valid JSON: {e.msg}") from e
    if not isinstance(value, list) or not all(isinstance(row, dict) for row in value):
        raise TableDataError("Table data must be a list of objects")
    return value


def _decoration(field: TemplateField, bounds: PixelBounds) -> ShapeOp | None:
    fill = parse_color(field.background_color)
    stroke = parse_color(field.border_color) if field.border_width else None
    if fill is None and stroke is None:
        return None
    return ShapeOp(
        points=rounded_rect_points(bounds.x, bounds.y, bounds.width, bounds.height, field.corner_radii()),
        fill=fill,
        stroke=stroke,
        stroke_width=field.border_width or 0,
    )


# ── Per-kind layout ──


def _layout_text(field: TextField | DateField, bounds: PixelBounds, ctx: RenderContext) -> list[DrawOp]:
    if has_value(ctx.value):
        text = str(ctx.value)
    elif field.type == "date":
        text = field.placeholder or "MM/DD/YYYY"
    else:
        text = field.placeholder or "Text field"

    font = FontSpec.from_style(field.font_family, field.font_weight)
    size = field.font_size * ctx.scale
    if ctx.preview:
        text = truncate_text(text, bounds.width - 2 * FIELD_PADDING, font, size, ctx.measure)

    text_width = ctx.measure(text, font, size)
    match field.text_align:
        case "left":
            text_x = bounds.x + FIELD_PADDING
        case "right":
            text_x = bounds.x + bounds.width - FIELD_PADDING - text_width
        case _:
            text_x = bounds.x + bounds.width / 2 - text_width / 2

    return [
        TextOp(
            text=text,
            x=text_x,
            baseline=bounds.y + FIELD_PADDING + size,
            font=font,
            size=size,
            color=parse_color(field.text_color, BLACK),
        )
    ]


def _layout_image(field: ImageField, bounds: PixelBounds, ctx: RenderContext) -> list[DrawOp]:
    return [
        ImageOp(
            field_id=field.id,
            x=bounds.x + FIELD_PADDING,
            y=bounds.y + FIELD_PADDING,
            width=max(bounds.width - 2 * FIELD_PADDING, 0),
            height=max(bounds.height - 2 * FIELD_PADDING, 0),
        )
    ]


def _layout_table(field: TableField, bounds: PixelBounds, ctx: RenderContext) -> list[DrawOp]:
    if has_value(ctx.value):
        rows = table_rows(ctx.value)
    elif ctx.preview:
        rows = [{c.key: c.key for c in field.columns}] * PREVIEW_TABLE_ROWS
    else:
        rows = []

    ops: list[DrawOp] = []
    table_x = bounds.x + FIELD_PADDING
    table_width = bounds.width - 2 * FIELD_PADDING
    top = bounds.y + FIELD_PADDING
    col_widths = [w / 100 * table_width for w in normalized_column_widths(field.columns)]
    family = field.table_font_family or field.font_family

    if field.show_table_header:
        header_font = FontSpec(family=family, bold=True)
        header_size = field.table_header_font_size * ctx.scale
        header_fill = parse_color(field.header_background_color)
        if header_fill is not None:
            ops.append(ShapeOp(
                points=rounded_rect_points(table_x, top, table_width, TABLE_HEADER_HEIGHT),
                fill=header_fill,
            ))
        header_color = parse_color(field.header_text_color, BLACK)
        cell_x = table_x
        for column, width in zip(field.columns, col_widths):
            text = column.header
            if ctx.preview:
                text = truncate_text(text, width - 2 * CELL_PADDING, header_font, header_size, ctx.measure)
            if text:
                ops.append(TextOp(
                    text=text,
                    x=cell_x + CELL_PADDING,
                    baseline=top + TABLE_HEADER_HEIGHT / 2 + header_size / 2,
                    font=header_font,
                    size=header_size,
                    color=header_color,
                ))
            cell_x += width
        top += TABLE_HEADER_HEIGHT

    body_font = FontSpec(family=family)
    body_size = field.table_body_font_size * ctx.scale
    body_color = parse_color(field.text_color, BLACK)
    stripe = parse_color(field.alternate_row_color)
    row_height = field.row_height or 24

    for index, row in enumerate(rows):
        if stripe is not None and index % 2 == 1:
            ops.append(ShapeOp(
                points=rounded_rect_points(table_x, top, table_width, row_height),
                fill=stripe,
            ))
        cell_x = table_x
        for column, width in zip(field.columns, col_widths):
            cell = row.get(column.key)
            if cell is None or cell == "":
                cell = row.get(column.header)
            text = "" if cell is None else str(cell)
            if text and ctx.preview:
                text = truncate_text(text, width - 2 * CELL_PADDING, body_font, body_size, ctx.measure)
            if text:
                ops.append(TextOp(
                    text=text,
                    x=cell_x + CELL_PADDING,
                    baseline=top + row_height / 2 + body_size / 2,
                    font=body_font,
                    size=body_size,
                    color=body_color,
                ))
            cell_x += width
        top += row_height

    return ops


def render_field(field: TemplateField, ctx: RenderContext) -> FieldDrawing | None:
    """Lay out one field under ``ctx``.

    Returns ``None`` when the field has no value to draw (outside preview).
    """
    if not ctx.preview and not has_value(ctx.value):
        return None

    bounds = to_pixels(field, ctx.canvas_width, ctx.canvas_height)
    ops: list[DrawOp] = []
    decoration = _decoration(field, bounds)
    if decoration is not None:
        ops.append(decoration)

    match field:
        case TextField() | DateField():
            ops.extend(_layout_text(field, bounds, ctx))
        case ImageField():
            ops.extend(_layout_image(field, bounds, ctx))
        case TableField():
            ops.extend(_layout_table(field, bounds, ctx))
        case _:
            raise TypeError(f"Unsupported field kind: {type(field).__name__}")

    return FieldDrawing(
        field_id=field.id,
        bounds=bounds,
        rotation=field.rotation % 360,
        ops=ops,
    )


def layout_page(
    fields: list[TemplateField],
    values: dict[str, Any],
    canvas_width: float,
    canvas_height: float,
    measure: Measure,
    scale: float = 1.0,
    preview: bool = False,
) -> list[FieldDrawing]:
    """Lay out ``fields`` (already filtered to one page) in z-order."""
    drawings = []
    for field in fields:
        drawing = render_field(
            field,
            RenderContext(
                canvas_width=canvas_width,
                canvas_height=canvas_height,
                value=values.get(field.id),
                measure=measure,
                scale=scale,
                preview=preview,
            ),
        )
        if drawing is not None:
            drawings.append(drawing)
    return drawings


def preview_layout(
    fields: list[TemplateField],
    values: dict[str, Any],
    measure: Measure,
    source_width: float,
    source_height: float,
    page: int = 1,
    canvas_width: float | None = None,
    canvas_height: float | None = None,
) -> tuple[float, list[FieldDrawing]]:
    """Editor preview of one page: every field, placeholders included.

    The canvas defaults to the source size. Font sizes follow the ratio of
    canvas width to source width so a scaled-down preview stays proportional.
    Returns ``(scale, drawings)``.
    """
    canvas_width = canvas_width or source_width
    canvas_height = canvas_height or source_height
    scale = canvas_width / source_width if source_width else 1.0
    page_fields = [f for f in fields if f.page == page]
    drawings = layout_page(
        page_fields,
        values,
        canvas_width,
        canvas_height,
        measure,
        scale=scale,
        preview=True,
    )
    return scale, drawings
