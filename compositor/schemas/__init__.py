"""Pydantic schemas for API request/response validation."""

from compositor.schemas.field import (
    DateField,
    FieldType,
    ImageField,
    TableColumn,
    TableField,
    TemplateField,
    TextField,
    Unit,
)

__all__ = [
    "DateField",
    "FieldType",
    "ImageField",
    "TableColumn",
    "TableField",
    "TemplateField",
    "TextField",
    "Unit",
]
