"""Template schemas: domain document, CRUD, editing and generation."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from compositor.core.content import parse_fields
from compositor.schemas.field import FieldType, TemplateField, Unit


class TemplateDocument(BaseModel):
    """A source artifact plus its ordered fields (list order is z-order)."""

    id: UUID
    entity_id: UUID
    name: str
    type: Literal["image", "pdf"] = "image"
    source_key: str | None = None
    source_width: float = 0
    source_height: float = 0
    page_count: int = 1
    fields: list[TemplateField] = Field(default_factory=list)
    is_draft: bool = True
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, template: Any) -> "TemplateDocument":
        return cls(
            id=template.id,
            entity_id=template.entity_id,
            name=template.name,
            type=template.type,
            source_key=template.source_key,
            source_width=template.source_width or 0,
            source_height=template.source_height or 0,
            page_count=template.page_count or 1,
            fields=parse_fields(template.content),
            is_draft=template.is_draft,
            updated_at=template.updated_at,
        )


# ── CRUD ──


class TemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: Literal["image", "pdf"] = "image"
    source_width: float = 0
    source_height: float = 0
    page_count: int = Field(default=1, ge=1)
    fields: list[TemplateField] = Field(default_factory=list)


class TemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)


class TemplateContentPatch(BaseModel):
    """Autosave payload: the full ordered field list."""

    fields: list[TemplateField]


class TemplateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    type: str
    source_url: str | None = None
    source_width: float
    source_height: float
    page_count: int
    fields: list[TemplateField]
    is_draft: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TemplateSaveResult(BaseModel):
    template: TemplateRead
    warnings: list[str] = Field(default_factory=list)


# ── Field editing ──


class FieldCreate(BaseModel):
    type: FieldType
    x: float = 10
    y: float = 10
    unit: Unit = Unit.PERCENT
    page: int = Field(default=1, ge=1)


# ── Preview / generation ──


class PreviewRequest(BaseModel):
    values: dict[str, Any] = Field(default_factory=dict)
    page: int = Field(default=1, ge=1)
    canvas_width: float | None = Field(default=None, gt=0)
    canvas_height: float | None = Field(default=None, gt=0)


class PreviewResponse(BaseModel):
    page: int
    canvas_width: float
    canvas_height: float
    scale: float
    drawings: list[dict[str, Any]]


class GenerateRequest(BaseModel):
    """Values keyed by field id or by field label."""

    values: dict[str, Any] = Field(default_factory=dict)


class GenerateResponse(BaseModel):
    document_id: UUID
    url: str
    content_type: str
    generated_at: datetime


class FieldUpdate(BaseModel):
    """Partial field attributes, by name or camelCase alias."""

    model_config = ConfigDict(extra="allow")

    def changes(self) -> dict[str, Any]:
        return dict(self.model_extra or {})
