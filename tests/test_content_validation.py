"""Tests for stored field content and template validation rules."""

import json

import pytest

from compositor.core.content import parse_fields, serialize_fields
from compositor.core.errors import DuplicateLabelsError, MissingRequiredFieldsError
from compositor.core.validation import (
    ensure_required_values,
    ensure_unique_labels,
    find_duplicate_labels,
    find_missing_required,
    map_values_to_field_ids,
    missing_required_headers,
)
from compositor.schemas.field import ImageField, TableField, TextField
from tests.factories import date_field, image_field, table_field, text_field


# ─── Stored content ───────────────────────────────────────────────────────────

class TestContent:
    def test_serialize_then_parse_preserves_fields(self):
        fields = [
            text_field(font_size=18, text_align="left", rotation=15),
            image_field(border_radius=4, border_radius_top_left=0),
            table_field(alternate_row_color="#eeeeee", show_table_header=False),
            date_field(page=2),
        ]
        assert parse_fields(serialize_fields(fields)) == fields

    def test_serialized_keys_are_camel_case(self):
        data = json.loads(serialize_fields([table_field()]))
        assert "showTableHeader" in data[0]
        assert "rowHeight" in data[0]
        assert "show_table_header" not in data[0]

    def test_parses_legacy_wrapper(self):
        content = json.dumps({"fields": [{"id": "a", "type": "text", "x": 1, "y": 2, "width": 3, "height": 4}]})
        fields = parse_fields(content)
        assert len(fields) == 1
        assert isinstance(fields[0], TextField)

    def test_dispatches_on_type(self):
        content = json.dumps([
            {"id": "a", "type": "image", "x": 0, "y": 0, "width": 10, "height": 10},
            {"id": "b", "type": "table", "x": 0, "y": 0, "width": 10, "height": 10, "columns": []},
        ])
        kinds = [type(f) for f in parse_fields(content)]
        assert kinds == [ImageField, TableField]

    def test_older_label_and_required_keys(self):
        geometry = {"x": 0, "y": 0, "width": 10, "height": 10}
        content = json.dumps([
            {"id": "a", "type": "text", **geometry, "properties": {"label": "Name", "required": True}},
            {"id": "b", "type": "date", **geometry, "name": "Due date"},
            {"id": "c", "type": "text", **geometry, "label": "Ref", "properties": {"label": "Old"}},
        ])

        fields = parse_fields(content)

        assert [f.label for f in fields] == ["Name", "Due date", "Ref"]
        assert [f.required for f in fields] == [True, False, False]
        with pytest.raises(MissingRequiredFieldsError):
            ensure_required_values(fields, {})

    @pytest.mark.parametrize("content", [None, "", "   ", "not json", "42", '{"other": []}', '[{"type": "video"}]'])
    def test_unreadable_content_is_empty(self, content):
        assert parse_fields(content) == []


# ─── Labels ───────────────────────────────────────────────────────────────────

class TestLabels:
    def test_duplicates_are_case_and_space_insensitive(self):
        fields = [text_field("a", "Invoice No"), text_field("b", " invoice no"), text_field("c", "Total")]
        assert find_duplicate_labels(fields) == ["Invoice No"]

    def test_blank_labels_are_not_duplicates(self):
        assert find_duplicate_labels([text_field("a", ""), text_field("b", "")]) == []

    def test_strict_check_raises_with_labels(self):
        with pytest.raises(DuplicateLabelsError) as exc:
            ensure_unique_labels([text_field("a", "Name"), text_field("b", "NAME")])
        assert exc.value.labels == ["Name"]
        assert "Duplicate field labels found: Name" in str(exc.value)

    def test_values_mapped_by_label(self):
        fields = [text_field("a", "Name"), text_field("b", "Email")]
        mapped = map_values_to_field_ids(fields, {"Name": "Ada", "Unknown": "x"})
        assert mapped == {"a": "Ada"}

    def test_id_key_wins_over_label(self):
        fields = [text_field("a", "Name")]
        assert map_values_to_field_ids(fields, {"Name": "label", "a": "id"}) == {"a": "id"}


# ─── Required fields ──────────────────────────────────────────────────────────

class TestRequired:
    def test_missing_values_listed_in_field_order(self):
        fields = [
            text_field("a", "Name", required=True),
            text_field("b", "Amount", required=True),
            text_field("c", "Notes", required=False),
        ]
        values = {"a": False, "b": ""}
        assert find_missing_required(fields, values) == ["Name", "Amount"]

    def test_zero_is_a_value(self):
        fields = [text_field("a", "Amount", required=True)]
        assert find_missing_required(fields, {"a": 0}) == []

    def test_gate_raises(self):
        fields = [text_field("a", "Name", required=True), text_field("b", "Amount", required=True)]
        with pytest.raises(MissingRequiredFieldsError) as exc:
            ensure_required_values(fields, {"a": "Ada"})
        assert exc.value.labels == ["Amount"]
        assert str(exc.value) == "Missing required fields: Amount"

    def test_headers_match_labels_exactly(self):
        fields = [text_field("a", "Name", required=True), text_field("b", "Amount", required=True)]
        assert missing_required_headers(fields, ["Name", "amount"]) == ["Amount"]
