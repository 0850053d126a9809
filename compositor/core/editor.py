"""Editor arithmetic: gestures and field operations on a template.

Gestures snapshot the field's pixel bounds when they start and always apply
pointer deltas to that snapshot, converting back to the field's own unit on
every update. Repeated updates therefore never accumulate conversion error.
"""

import math
import uuid
from typing import Any

from compositor.core.geometry import PixelBounds, to_pixels, to_unit, with_pixel_bounds
from compositor.core.validation import label_warnings
from compositor.schemas.field import (
    FIELD_CLASSES,
    FieldType,
    TableColumn,
    TableField,
    TemplateField,
    Unit,
)

MIN_FIELD_SIZE = 20  # px
MIN_COLUMN_WIDTH = 5  # percent of field width
DUPLICATE_OFFSET = {Unit.PERCENT: 2, Unit.PX: 10}

GEOMETRY_KEYS = {"x", "y", "width", "height"}
RESIZE_DIRECTIONS = {"n", "s", "e", "w", "ne", "nw", "se", "sw"}


# ── Gestures ──


class DragGesture:
    """Moves a field, keeping it fully inside the canvas."""

    def __init__(self, field: TemplateField, canvas_width: float, canvas_height: float) -> None:
        self.field = field
        self.canvas_width = canvas_width
        self.canvas_height = canvas_height
        self.initial = to_pixels(field, canvas_width, canvas_height)

    def move(self, dx: float, dy: float) -> TemplateField:
        start = self.initial
        x = max(0, min(start.x + dx, self.canvas_width - start.width))
        y = max(0, min(start.y + dy, self.canvas_height - start.height))
        bounds = PixelBounds(x, y, start.width, start.height)
        return with_pixel_bounds(self.field, bounds, self.canvas_width, self.canvas_height)


class ResizeGesture:
    """Resizes a field from one of its eight handles."""

    def __init__(
        self,
        field: TemplateField,
        direction: str,
        canvas_width: float,
        canvas_height: float,
    ) -> None:
        if direction not in RESIZE_DIRECTIONS:
            raise ValueError(f"Unknown resize direction: {direction}")
        self.field = field
        self.direction = direction
        self.canvas_width = canvas_width
        self.canvas_height = canvas_height
        self.initial = to_pixels(field, canvas_width, canvas_height)

    def update(self, dx: float, dy: float) -> TemplateField:
        start = self.initial
        x, y, width, height = start.x, start.y, start.width, start.height

        if "w" in self.direction:
            x = max(0, min(start.x + dx, start.x + start.width - MIN_FIELD_SIZE))
            width = start.width - (x - start.x)
        elif "e" in self.direction:
            width = max(MIN_FIELD_SIZE, min(start.width + dx, self.canvas_width - start.x))

        if "n" in self.direction:
            y = max(0, min(start.y + dy, start.y + start.height - MIN_FIELD_SIZE))
            height = start.height - (y - start.y)
        elif "s" in self.direction:
            height = max(MIN_FIELD_SIZE, min(start.height + dy, self.canvas_height - start.y))

        bounds = PixelBounds(x, y, width, height)
        return with_pixel_bounds(self.field, bounds, self.canvas_width, self.canvas_height)


class RotateGesture:
    """Rotates a field about its center by following the pointer angle."""

    def __init__(
        self,
        field: TemplateField,
        center: tuple[float, float],
        start_point: tuple[float, float],
    ) -> None:
        self.field = field
        self.center = center
        self.initial_rotation = field.rotation or 0
        self.start_angle = self._angle(start_point)

    def _angle(self, point: tuple[float, float]) -> float:
        return math.atan2(point[1] - self.center[1], point[0] - self.center[0])

    def update(self, point: tuple[float, float]) -> TemplateField:
        delta = math.degrees(self._angle(point) - self.start_angle)
        rotation = round(self.initial_rotation + delta) % 360
        return self.field.model_copy(update={"rotation": rotation})


class ColumnResizeGesture:
    """Drags the border between column ``index`` and ``index + 1``.

    Width moves only between the two neighbours, so the table total is
    unchanged; both keep at least ``MIN_COLUMN_WIDTH``.
    """

    def __init__(self, field: TableField, index: int, field_pixel_width: float) -> None:
        if not 0 <= index < len(field.columns) - 1:
            raise ValueError(f"Column {index} has no right-hand neighbour")
        if field_pixel_width <= 0:
            raise ValueError("Field width must be positive")
        self.field = field
        self.index = index
        self.field_pixel_width = field_pixel_width
        self.initial_columns = [c.model_copy() for c in field.columns]

    def update(self, dx: float) -> TableField:
        left = self.initial_columns[self.index]
        right = self.initial_columns[self.index + 1]
        delta = dx / self.field_pixel_width * 100
        lowest = MIN_COLUMN_WIDTH - left.width
        highest = right.width - MIN_COLUMN_WIDTH
        # A pair narrower than two minimum columns cannot be redistributed.
        delta = 0 if lowest > highest else max(lowest, min(delta, highest))

        pair = left.width + right.width
        new_left = left.width + delta
        columns = list(self.initial_columns)
        columns[self.index] = left.model_copy(update={"width": new_left})
        columns[self.index + 1] = right.model_copy(update={"width": pair - new_left})
        return self.field.model_copy(update={"columns": columns})


# ── Field operations ──


def _new_id() -> str:
    return f"field_{uuid.uuid4().hex[:12]}"


def default_table_columns() -> list[TableColumn]:
    return [
        TableColumn(id=_new_id(), header="Description", key="description", width=50),
        TableColumn(id=_new_id(), header="Quantity", key="quantity", width=20),
        TableColumn(id=_new_id(), header="Amount", key="amount", width=30),
    ]


def new_field(
    field_type: FieldType,
    x: float = 10,
    y: float = 10,
    unit: Unit = Unit.PERCENT,
    page: int = 1,
) -> TemplateField:
    """A field of ``field_type`` with the editor's default geometry and style."""
    field_type = FieldType(field_type)
    data: dict[str, Any] = {
        "id": _new_id(),
        "x": x,
        "y": y,
        "width": 25,
        "height": 8,
        "unit": unit,
        "page": page,
        "label": f"{field_type.value.capitalize()} Field",
        "required": True,
        "background_color": "#ffffff",
        "border_color": "#d1d5db",
        "border_width": 1,
    }
    match field_type:
        case FieldType.TEXT | FieldType.DATE:
            data.update(font_size=12, font_family="Inter", font_weight="normal", text_color="#000000")
        case FieldType.TABLE:
            data.update(
                columns=default_table_columns(),
                show_table_header=True,
                table_header_font_size=12,
                table_body_font_size=12,
                font_family="Inter",
            )
    return FIELD_CLASSES[field_type](**data)


class FieldNotFoundError(KeyError):
    pass


class TemplateEditor:
    """In-memory field list with the editor's add/update/delete/duplicate rules."""

    def __init__(self, fields: list[TemplateField] | None = None) -> None:
        self.fields: list[TemplateField] = list(fields or [])

    def _index(self, field_id: str) -> int:
        for i, field in enumerate(self.fields):
            if field.id == field_id:
                return i
        raise FieldNotFoundError(field_id)

    def get(self, field_id: str) -> TemplateField:
        return self.fields[self._index(field_id)]

    def add_field(
        self,
        field_type: FieldType,
        x: float = 10,
        y: float = 10,
        unit: Unit = Unit.PERCENT,
        page: int = 1,
    ) -> TemplateField:
        field = new_field(field_type, x=x, y=y, unit=unit, page=page)
        self.fields.append(field)
        return field

    def update_field(
        self,
        field_id: str,
        changes: dict[str, Any],
        canvas_width: float | None = None,
        canvas_height: float | None = None,
    ) -> TemplateField:
        """Apply attribute changes; the result is re-validated.

        ``changes`` may use either attribute names or their camelCase aliases.
        A unit change without new geometry converts the current position and
        size to the new unit, which needs the canvas size.
        """
        index = self._index(field_id)
        current = self.fields[index]
        names = {info.alias or name: name for name, info in type(current).model_fields.items()}
        changes = {names.get(key, key): value for key, value in changes.items()}

        if "unit" in changes and not GEOMETRY_KEYS & changes.keys():
            try:
                target = Unit(changes["unit"])
            except ValueError:
                target = current.unit  # rejected by validation below
            if target != current.unit:
                if not canvas_width or not canvas_height:
                    raise ValueError("Canvas size is required to change a field's unit")
                current = to_unit(current, target, canvas_width, canvas_height)

        data = current.model_dump()
        data.update(changes)
        data["id"] = current.id
        data["type"] = current.type
        updated = type(current).model_validate(data)
        self.fields[index] = updated
        return updated

    def replace_field(self, field: TemplateField) -> None:
        self.fields[self._index(field.id)] = field

    def delete_field(self, field_id: str) -> None:
        del self.fields[self._index(field_id)]

    def duplicate_field(self, field_id: str) -> TemplateField:
        """Copy a field next to the original with a fresh id and "(Copy)" label."""
        source = self.get(field_id)
        offset = DUPLICATE_OFFSET[source.unit]
        copy = source.model_copy(
            update={
                "id": _new_id(),
                "label": f"{source.label} (Copy)",
                "x": source.x + offset,
                "y": source.y + offset,
            },
            deep=True,
        )
        self.fields.append(copy)
        return copy

    def warnings(self) -> list[str]:
        return label_warnings(self.fields)
