"""Tests for unit conversion and the editor's gesture arithmetic."""

import pytest

from compositor.core.editor import (
    ColumnResizeGesture,
    DragGesture,
    FieldNotFoundError,
    MIN_COLUMN_WIDTH,
    MIN_FIELD_SIZE,
    ResizeGesture,
    RotateGesture,
    TemplateEditor,
    new_field,
)
from compositor.core.geometry import PixelBounds, to_pixels, to_unit
from compositor.schemas.field import FieldType, TableColumn, Unit
from tests.factories import table_field, text_field


# ─── Unit conversion ──────────────────────────────────────────────────────────

class TestUnitConversion:
    def test_percent_to_pixels(self):
        field = text_field(x=10, y=20, width=50, height=5)
        bounds = to_pixels(field, 800, 600)
        assert bounds == PixelBounds(80, 120, 400, 30)

    def test_px_fields_ignore_canvas(self):
        field = text_field(x=5, y=6, width=70, height=30, unit=Unit.PX)
        assert to_pixels(field, 800, 600) == PixelBounds(5, 6, 70, 30)

    def test_round_trip_is_stable(self):
        field = text_field(x=12.5, y=33.3, width=20, height=7)
        px = to_unit(field, Unit.PX, 1000, 700)
        back = to_unit(px, Unit.PERCENT, 1000, 700)
        assert back.x == pytest.approx(field.x)
        assert back.y == pytest.approx(field.y)
        assert back.width == pytest.approx(field.width)
        assert back.height == pytest.approx(field.height)

    def test_conversion_does_not_mutate_input(self):
        field = text_field(x=10)
        to_unit(field, Unit.PX, 500, 500)
        assert field.x == 10
        assert field.unit == Unit.PERCENT

    def test_zero_canvas_rejected(self):
        with pytest.raises(ValueError):
            to_pixels(text_field(), 0, 100)

    def test_center(self):
        assert PixelBounds(10, 20, 100, 40).center == (60, 40)


# ─── Gestures ─────────────────────────────────────────────────────────────────

class TestDragGesture:
    def test_move_within_canvas(self):
        field = text_field(x=10, y=10, width=20, height=10)
        moved = DragGesture(field, 1000, 500).move(100, 50)
        assert moved.x == pytest.approx(20)
        assert moved.y == pytest.approx(20)
        assert moved.unit == Unit.PERCENT

    def test_clamped_to_canvas(self):
        field = text_field(x=10, y=10, width=20, height=10)
        gesture = DragGesture(field, 1000, 500)
        assert gesture.move(5000, 5000).x == pytest.approx(80)
        assert gesture.move(-5000, -5000).y == 0

    def test_deltas_apply_to_initial_snapshot(self):
        field = text_field(x=0, y=0, width=10, height=10, unit=Unit.PX)
        gesture = DragGesture(field, 200, 200)
        gesture.move(50, 50)
        assert gesture.move(10, 0).x == 10


class TestResizeGesture:
    def test_east_grows_width(self):
        field = text_field(x=100, y=100, width=100, height=50, unit=Unit.PX)
        resized = ResizeGesture(field, "e", 1000, 1000).update(40, 0)
        assert resized.width == 140
        assert resized.x == 100

    def test_east_clamped_to_canvas_edge(self):
        field = text_field(x=900, y=0, width=50, height=50, unit=Unit.PX)
        assert ResizeGesture(field, "e", 1000, 1000).update(500, 0).width == 100

    def test_west_moves_origin_and_keeps_minimum(self):
        field = text_field(x=100, y=100, width=100, height=50, unit=Unit.PX)
        resized = ResizeGesture(field, "w", 1000, 1000).update(500, 0)
        assert resized.width == MIN_FIELD_SIZE
        assert resized.x == 100 + 100 - MIN_FIELD_SIZE

    def test_north_clamped_at_zero(self):
        field = text_field(x=0, y=10, width=100, height=50, unit=Unit.PX)
        resized = ResizeGesture(field, "n", 1000, 1000).update(0, -100)
        assert resized.y == 0
        assert resized.height == 60

    def test_south_minimum(self):
        field = text_field(x=0, y=0, width=100, height=50, unit=Unit.PX)
        assert ResizeGesture(field, "s", 1000, 1000).update(0, -200).height == MIN_FIELD_SIZE

    def test_corner_handle(self):
        field = text_field(x=100, y=100, width=100, height=100, unit=Unit.PX)
        resized = ResizeGesture(field, "se", 1000, 1000).update(10, 20)
        assert (resized.width, resized.height) == (110, 120)

    def test_unknown_direction(self):
        with pytest.raises(ValueError):
            ResizeGesture(text_field(), "up", 100, 100)


class TestRotateGesture:
    def test_quarter_turn(self):
        field = text_field(rotation=0)
        rotated = RotateGesture(field, (0, 0), (10, 0)).update((0, 10))
        assert rotated.rotation == 90

    def test_wraps_into_range(self):
        field = text_field(rotation=350)
        rotated = RotateGesture(field, (0, 0), (10, 0)).update((0, 10))
        assert rotated.rotation == 80


class TestColumnResizeGesture:
    def test_moves_width_between_neighbours(self):
        field = table_field()
        resized = ColumnResizeGesture(field, 0, 500).update(50)
        widths = [c.width for c in resized.columns]
        assert widths[0] == pytest.approx(60)
        assert widths[1] == pytest.approx(10)
        assert sum(widths) == pytest.approx(100)

    def test_clamped_to_minimum(self):
        field = table_field()
        widths = [c.width for c in ColumnResizeGesture(field, 0, 500).update(10_000).columns]
        assert widths[1] == pytest.approx(MIN_COLUMN_WIDTH)
        assert widths[0] + widths[1] == pytest.approx(70)

        widths = [c.width for c in ColumnResizeGesture(field, 0, 500).update(-10_000).columns]
        assert widths[0] == pytest.approx(MIN_COLUMN_WIDTH)

    def test_last_column_has_no_neighbour(self):
        with pytest.raises(ValueError):
            ColumnResizeGesture(table_field(), 2, 500)

    def test_narrow_pair_left_unchanged(self):
        field = table_field(columns=[
            TableColumn(id="a", key="a", width=4),
            TableColumn(id="b", key="b", width=4),
        ])
        widths = [c.width for c in ColumnResizeGesture(field, 0, 100).update(3).columns]
        assert widths == [4, 4]


# ─── Editor field operations ──────────────────────────────────────────────────

class TestTemplateEditor:
    def test_new_field_defaults(self):
        field = new_field(FieldType.TEXT)
        assert (field.width, field.height) == (25, 8)
        assert field.label == "Text Field"
        assert field.required is True
        assert field.font_family == "Inter"
        assert field.border_color == "#d1d5db"

    def test_new_table_has_default_columns(self):
        field = new_field(FieldType.TABLE)
        assert [c.header for c in field.columns] == ["Description", "Quantity", "Amount"]
        assert [c.width for c in field.columns] == [50, 20, 30]

    def test_duplicate_offsets_and_relabels(self):
        editor = TemplateEditor([text_field(x=10, y=10)])
        copy = editor.duplicate_field("f1")
        assert copy.id != "f1"
        assert copy.label == "Name (Copy)"
        assert (copy.x, copy.y) == (12, 12)
        assert len(editor.fields) == 2

    def test_duplicate_px_offset(self):
        editor = TemplateEditor([text_field(x=100, y=100, unit=Unit.PX)])
        copy = editor.duplicate_field("f1")
        assert (copy.x, copy.y) == (110, 110)

    def test_update_accepts_aliases_and_keeps_identity(self):
        editor = TemplateEditor([text_field()])
        updated = editor.update_field("f1", {"fontSize": 20, "text_align": "left", "id": "other"})
        assert updated.font_size == 20
        assert updated.text_align == "left"
        assert updated.id == "f1"

    def test_unit_change_keeps_field_in_place(self):
        editor = TemplateEditor([text_field(x=50, y=50, width=25, height=12.5)])
        updated = editor.update_field("f1", {"unit": "px"}, 1000, 800)
        assert updated.unit == Unit.PX
        assert (updated.x, updated.y, updated.width, updated.height) == (500, 400, 250, 100)
        assert to_pixels(updated, 1000, 800) == PixelBounds(500, 400, 250, 100)

    def test_unit_change_with_geometry_uses_given_values(self):
        editor = TemplateEditor([text_field(x=50, y=50, width=25, height=10)])
        updated = editor.update_field("f1", {"unit": "px", "x": 5, "y": 6}, 1000, 800)
        assert (updated.x, updated.y) == (5, 6)

    def test_unit_change_needs_canvas(self):
        editor = TemplateEditor([text_field()])
        with pytest.raises(ValueError):
            editor.update_field("f1", {"unit": "px"})
        assert editor.fields[0].unit == Unit.PERCENT

    def test_delete_and_missing(self):
        editor = TemplateEditor([text_field()])
        editor.delete_field("f1")
        assert editor.fields == []
        with pytest.raises(FieldNotFoundError):
            editor.delete_field("f1")

    def test_duplicate_labels_are_only_warnings(self):
        editor = TemplateEditor([text_field("a", "Name"), text_field("b", " name ")])
        assert editor.warnings() == ['Label "Name" is used by more than one field']
