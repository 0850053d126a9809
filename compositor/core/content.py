"""Serialization of template field lists to and from stored content."""

import json
import logging

from pydantic import TypeAdapter, ValidationError

from compositor.schemas.field import TemplateField

logger = logging.getLogger(__name__)

_fields_adapter = TypeAdapter(list[TemplateField])


def serialize_fields(fields: list[TemplateField]) -> str:
    """Serialize fields to the stored JSON array (camelCase keys)."""
    return _fields_adapter.dump_json(fields, by_alias=True, exclude_none=True).decode()


def dump_fields(fields: list[TemplateField]) -> list[dict]:
    """Fields as JSON-compatible dicts, in stored key format."""
    return _fields_adapter.dump_python(fields, mode="json", by_alias=True, exclude_none=True)


def validate_fields(data: object) -> list[TemplateField]:
    """Validate already-decoded field data; raises ``ValidationError``."""
    return _fields_adapter.validate_python(data)


def _lift_legacy_keys(raw: object) -> object:
    """Older content kept ``label``/``required`` under ``properties`` or used ``name``."""
    if not isinstance(raw, dict):
        return raw
    properties = raw.get("properties")
    properties = properties if isinstance(properties, dict) else {}
    item = dict(raw)
    if "label" not in item:
        label = properties.get("label", item.get("name"))
        if label is not None:
            item["label"] = label
    if "required" not in item and "required" in properties:
        item["required"] = properties["required"]
    return item


def parse_fields(content: str | None) -> list[TemplateField]:
    """Parse stored content into fields.

    Accepts a bare JSON array or the older ``{"fields": [...]}`` wrapper, and
    field dicts with the older label and required keys.
    Anything unreadable degrades to an empty list so templates saved under an
    earlier layout still open.
    """
    if not content or not content.strip():
        return []

    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        logger.warning("Template content is not valid JSON, treating as empty")
        return []

    if isinstance(data, dict):
        data = data.get("fields")
    if not isinstance(data, list):
        logger.warning("Template content has unexpected shape, treating as empty")
        return []

    try:
        return validate_fields([_lift_legacy_keys(item) for item in data])
    except ValidationError as e:
        logger.warning(f"Template content failed validation, treating as empty: {e.error_count()} errors")
        return []
