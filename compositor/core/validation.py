"""Template validation: label uniqueness, label mapping, required values.

Label checks come in two strengths. ``label_warnings`` is the advisory pass
used while a template is being edited and autosaved; ``ensure_unique_labels``
is the strict pass run when a template is published or fed row data.
"""

from typing import Any, Iterable

from compositor.core.errors import DuplicateLabelsError, MissingRequiredFieldsError
from compositor.schemas.field import TemplateField


def _label_key(label: str) -> str:
    return label.strip().lower()


def find_duplicate_labels(fields: Iterable[TemplateField]) -> list[str]:
    """Labels used by more than one field, in first-seen spelling and order."""
    seen: dict[str, str] = {}
    duplicates: dict[str, str] = {}
    for field in fields:
        key = _label_key(field.label)
        if not key:
            continue
        if key in seen:
            duplicates.setdefault(key, seen[key])
        else:
            seen[key] = field.label.strip()
    return list(duplicates.values())


def label_warnings(fields: Iterable[TemplateField]) -> list[str]:
    """Advisory messages for the editor; never blocks a save."""
    return [
        f'Label "{label}" is used by more than one field'
        for label in find_duplicate_labels(fields)
    ]


def ensure_unique_labels(fields: Iterable[TemplateField]) -> None:
    """Strict label check; raises ``DuplicateLabelsError``."""
    duplicates = find_duplicate_labels(fields)
    if duplicates:
        raise DuplicateLabelsError(duplicates)


def map_values_to_field_ids(
    fields: list[TemplateField],
    values: dict[str, Any],
) -> dict[str, Any]:
    """Re-key values supplied by field label onto field ids.

    A value keyed by id wins over one keyed by the same field's label. Keys
    that match neither are dropped.
    """
    mapped: dict[str, Any] = {}
    for field in fields:
        if field.id in values:
            mapped[field.id] = values[field.id]
        elif field.label and field.label in values:
            mapped[field.id] = values[field.label]
    return mapped


def is_missing(value: Any) -> bool:
    """A value counts as missing when absent, null, empty or ``False``."""
    return value is None or value == "" or value is False


def find_missing_required(
    fields: list[TemplateField],
    values: dict[str, Any],
) -> list[str]:
    """Labels of required fields without a usable value, in field order."""
    return [
        field.label or field.id
        for field in fields
        if field.required and is_missing(values.get(field.id))
    ]


def ensure_required_values(fields: list[TemplateField], values: dict[str, Any]) -> None:
    missing = find_missing_required(fields, values)
    if missing:
        raise MissingRequiredFieldsError(missing)


def missing_required_headers(fields: list[TemplateField], headers: Iterable[str]) -> list[str]:
    """Required field labels with no exactly matching column header."""
    header_set = set(headers)
    return [f.label for f in fields if f.required and f.label not in header_set]
