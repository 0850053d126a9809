"""Tests for backend-neutral field layout."""

import json

import pytest

from compositor.core.errors import TableDataError
from compositor.core.layout import (
    ELLIPSIS,
    FIELD_PADDING,
    ImageOp,
    RenderContext,
    ShapeOp,
    TABLE_HEADER_HEIGHT,
    TextOp,
    layout_page,
    normalized_column_widths,
    parse_color,
    preview_layout,
    render_field,
    rounded_rect_points,
    table_rows,
    truncate_text,
)
from compositor.schemas.field import TableColumn, Unit
from tests.factories import char_measure, image_field, table_field, text_field


def _ctx(value, preview=False, width=1000, height=1000):
    return RenderContext(
        canvas_width=width,
        canvas_height=height,
        value=value,
        measure=char_measure,
        preview=preview,
    )


def _texts(drawing):
    return [op for op in drawing.ops if isinstance(op, TextOp)]


# ─── Text ─────────────────────────────────────────────────────────────────────

class TestTextLayout:
    def test_alignment_anchors(self):
        # 100px wide box at x=100, "abcd" measures 4 * 12 / 2 = 24
        base = dict(x=100, y=50, width=100, height=40, unit=Unit.PX, font_size=12)
        left = _texts(render_field(text_field(text_align="left", **base), _ctx("abcd")))[0]
        center = _texts(render_field(text_field(text_align="center", **base), _ctx("abcd")))[0]
        right = _texts(render_field(text_field(text_align="right", **base), _ctx("abcd")))[0]
        assert left.x == 100 + FIELD_PADDING
        assert center.x == 100 + 50 - 12
        assert right.x == 200 - FIELD_PADDING - 24
        assert left.baseline == 50 + FIELD_PADDING + 12

    def test_empty_value_skipped_in_final_render(self):
        assert render_field(text_field(background_color="#ffffff"), _ctx("")) is None
        assert render_field(text_field(), _ctx(None)) is None

    def test_zero_is_rendered(self):
        drawing = render_field(text_field(), _ctx(0))
        assert _texts(drawing)[0].text == "0"

    def test_preview_uses_placeholder(self):
        drawing = render_field(text_field(placeholder="Your name"), _ctx(None, preview=True))
        assert _texts(drawing)[0].text == "Your name"

    def test_preview_truncates_final_does_not(self):
        field = text_field(x=0, y=0, width=56, height=30, unit=Unit.PX, font_size=10)
        long_text = "abcdefghijklmnop"
        final = _texts(render_field(field, _ctx(long_text)))[0]
        preview = _texts(render_field(field, _ctx(long_text, preview=True)))[0]
        assert final.text == long_text
        assert preview.text.endswith(ELLIPSIS)
        assert char_measure(preview.text, None, 10) <= 56 - 2 * FIELD_PADDING

    def test_text_color_parsed(self):
        drawing = render_field(text_field(text_color="#ff0000"), _ctx("x"))
        assert _texts(drawing)[0].color == (255, 0, 0, 255)

    def test_decoration_drawn_with_value(self):
        field = text_field(background_color="#ffffff", border_color="#000000", border_width=2)
        shape = render_field(field, _ctx("x")).ops[0]
        assert isinstance(shape, ShapeOp)
        assert shape.fill == (255, 255, 255, 255)
        assert shape.stroke_width == 2

    def test_rotation_carried(self):
        drawing = render_field(text_field(rotation=370), _ctx("x"))
        assert drawing.rotation == 10


# ─── Images ───────────────────────────────────────────────────────────────────

class TestImageLayout:
    def test_padded_box(self):
        field = image_field(x=10, y=20, width=100, height=50, unit=Unit.PX)
        op = render_field(field, _ctx("data:image/png;base64,AAAA")).ops[-1]
        assert isinstance(op, ImageOp)
        assert (op.x, op.y, op.width, op.height) == (18, 28, 84, 34)

    def test_tiny_box_never_negative(self):
        field = image_field(x=0, y=0, width=10, height=10, unit=Unit.PX)
        op = render_field(field, _ctx("x")).ops[-1]
        assert (op.width, op.height) == (0, 0)


# ─── Tables ───────────────────────────────────────────────────────────────────

class TestTableLayout:
    def test_column_widths_normalized_when_over_100(self):
        columns = [
            TableColumn(id="a", width=70),
            TableColumn(id="b", width=40),
            TableColumn(id="c", width=30),
        ]
        widths = normalized_column_widths(columns)
        assert sum(widths) == pytest.approx(100)
        assert widths[0] == pytest.approx(50)

    def test_column_widths_under_100_untouched(self):
        assert normalized_column_widths([TableColumn(id="a", width=30), TableColumn(id="b", width=20)]) == [30, 20]

    def test_rows_from_json_string(self):
        assert table_rows('[{"a": 1}]') == [{"a": 1}]

    @pytest.mark.parametrize("value", ["{bad json", '{"a": 1}', 42, ["x"]])
    def test_bad_table_data(self, value):
        with pytest.raises(TableDataError):
            table_rows(value)

    def test_header_and_body_positions(self):
        field = table_field(x=0, y=0, width=216, height=200, unit=Unit.PX, row_height=24)
        rows = [{"description": "Widget", "qty": 2, "amount": "10.00"}]
        texts = _texts(render_field(field, _ctx(json.dumps(rows))))

        headers = texts[:3]
        assert [t.text for t in headers] == ["Description", "Qty", "Amount"]
        assert headers[0].font.bold is True
        assert headers[0].baseline == FIELD_PADDING + TABLE_HEADER_HEIGHT / 2 + 12 / 2
        # table width is 216 - 16 = 200, so columns are 100/40/60 wide
        assert [t.x for t in headers] == [12, 112, 152]

        body = texts[3:]
        assert [t.text for t in body] == ["Widget", "2", "10.00"]
        row_top = FIELD_PADDING + TABLE_HEADER_HEIGHT
        assert body[0].baseline == row_top + 24 / 2 + 12 / 2

    def test_cell_falls_back_to_header_name(self):
        field = table_field(show_table_header=False)
        texts = _texts(render_field(field, _ctx([{"Description": "By header"}])))
        assert [t.text for t in texts] == ["By header"]

    def test_alternate_rows_striped(self):
        field = table_field(alternate_row_color="#eeeeee", header_background_color="transparent")
        drawing = render_field(field, _ctx([{"qty": 1}, {"qty": 2}, {"qty": 3}]))
        stripes = [op for op in drawing.ops if isinstance(op, ShapeOp) and op.fill == (238, 238, 238, 255)]
        assert len(stripes) == 1

    def test_preview_shows_mock_rows(self):
        drawing = render_field(table_field(), _ctx(None, preview=True))
        body = [t.text for t in _texts(drawing)[3:]]
        assert body[:3] == ["description", "qty", "amount"]


# ─── Helpers and page layout ──────────────────────────────────────────────────

class TestHelpers:
    def test_unknown_color_falls_back(self):
        assert parse_color("transparent") is None
        assert parse_color("nonsense", (1, 2, 3, 255)) == (1, 2, 3, 255)

    def test_square_corners_give_four_points(self):
        assert len(rounded_rect_points(0, 0, 10, 10)) == 4

    def test_rounded_corners_stay_inside_box(self):
        points = rounded_rect_points(0, 0, 100, 50, (10, 0, 30, 100))
        assert all(0 <= x <= 100 and 0 <= y <= 50 for x, y in points)

    def test_truncate_to_nothing(self):
        assert truncate_text("abc", 0, None, 10, char_measure) == ""

    def test_layout_keeps_z_order_and_skips_empty(self):
        fields = [text_field("a", "A"), text_field("b", "B"), text_field("c", "C")]
        drawings = layout_page(fields, {"a": "1", "c": "3"}, 500, 500, char_measure)
        assert [d.field_id for d in drawings] == ["a", "c"]

    def test_preview_layout_filters_page_and_scales(self):
        fields = [text_field("a", "A", page=1, font_size=20), text_field("b", "B", page=2)]
        scale, drawings = preview_layout(
            fields, {}, char_measure, source_width=1000, source_height=800, canvas_width=500, canvas_height=400
        )
        assert scale == 0.5
        assert [d.field_id for d in drawings] == ["a"]
        assert _texts(drawings[0])[0].size == 10
