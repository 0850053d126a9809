"""Template lifecycle: CRUD, source upload, autosave, field edits and publish."""

import dataclasses
import logging
import re
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from compositor.core.content import parse_fields, serialize_fields
from compositor.core.editor import TemplateEditor
from compositor.core.fonts import FontRegistry, font_registry
from compositor.core.ingest import sample_csv
from compositor.core.layout import preview_layout
from compositor.core.sources import inspect_source
from compositor.core.validation import ensure_unique_labels, label_warnings, map_values_to_field_ids
from compositor.models.invoice_template import InvoiceTemplate
from compositor.schemas.field import TemplateField
from compositor.schemas.template import (
    FieldCreate,
    PreviewResponse,
    TemplateCreate,
    TemplateDocument,
    TemplateRead,
    TemplateUpdate,
)
from compositor.services.documents import DocumentService, GenerationResult, document_service
from compositor.services.storage import StorageService, storage_service

logger = logging.getLogger(__name__)


def _safe_filename(filename: str | None, default: str) -> str:
    name = (filename or "").replace("\\", "/").rsplit("/", 1)[-1]
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
    return name or default


class TemplateService:
    """Service for template persistence and editing."""

    def __init__(
        self,
        storage: StorageService = storage_service,
        documents: DocumentService = document_service,
        fonts: FontRegistry = font_registry,
    ) -> None:
        self.storage = storage
        self.documents = documents
        self.fonts = fonts

    # ── CRUD ──

    async def list_templates(
        self, db: AsyncSession, entity_id: UUID, limit: int = 100, offset: int = 0
    ) -> list[InvoiceTemplate]:
        result = await db.execute(
            select(InvoiceTemplate)
            .where(InvoiceTemplate.entity_id == entity_id)
            .order_by(InvoiceTemplate.updated_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def get(self, db: AsyncSession, entity_id: UUID, template_id: UUID) -> InvoiceTemplate | None:
        result = await db.execute(
            select(InvoiceTemplate)
            .where(InvoiceTemplate.id == template_id)
            .where(InvoiceTemplate.entity_id == entity_id)
        )
        return result.scalar_one_or_none()

    async def create(self, db: AsyncSession, entity_id: UUID, data: TemplateCreate) -> tuple[InvoiceTemplate, list[str]]:
        """Create a draft template. Duplicate labels are only reported."""
        template = InvoiceTemplate(
            entity_id=entity_id,
            name=data.name,
            type=data.type,
            source_width=data.source_width,
            source_height=data.source_height,
            page_count=data.page_count,
            content=serialize_fields(data.fields),
            is_draft=True,
        )
        db.add(template)
        await db.commit()
        await db.refresh(template)
        return template, label_warnings(data.fields)

    async def create_from_upload(
        self,
        db: AsyncSession,
        entity_id: UUID,
        name: str,
        content: bytes,
        content_type: str | None = None,
        filename: str | None = None,
    ) -> InvoiceTemplate:
        """Create a draft template from an uploaded image or PDF.

        The file is inspected before anything is stored, so an unreadable
        upload raises ``SourceFileError`` and leaves no trace.
        """
        info = inspect_source(content, content_type, filename)
        template_id = uuid4()
        default_name = "source.pdf" if info.type == "pdf" else "source"
        key = self.storage.template_source_key(
            entity_id, template_id, _safe_filename(filename, default_name)
        )
        await self.storage.upload(content, key, info.content_type)

        template = InvoiceTemplate(
            id=template_id,
            entity_id=entity_id,
            name=name,
            type=info.type,
            source_key=key,
            source_width=info.width,
            source_height=info.height,
            page_count=info.page_count,
            content="[]",
            is_draft=True,
        )
        db.add(template)
        try:
            await db.commit()
        except Exception:
            await db.rollback()
            await self.storage.delete(key)
            raise
        await db.refresh(template)
        logger.info(
            f"Created {info.type} template {template_id} "
            f"({info.width}x{info.height}, {info.page_count} page(s))"
        )
        return template

    async def update(self, db: AsyncSession, template: InvoiceTemplate, data: TemplateUpdate) -> InvoiceTemplate:
        if data.name is not None:
            template.name = data.name
        await db.commit()
        await db.refresh(template)
        return template

    async def delete(self, db: AsyncSession, template: InvoiceTemplate) -> None:
        source_key = template.source_key
        await db.delete(template)
        await db.commit()
        if source_key:
            try:
                await self.storage.delete(source_key)
            except Exception:
                logger.warning(f"Could not delete template source {source_key}", exc_info=True)

    async def to_read(self, template: InvoiceTemplate) -> TemplateRead:
        source_url = None
        if template.source_key:
            source_url = await self.storage.get_url(template.source_key)
        return TemplateRead(
            id=template.id,
            name=template.name,
            type=template.type,
            source_url=source_url,
            source_width=template.source_width or 0,
            source_height=template.source_height or 0,
            page_count=template.page_count or 1,
            fields=parse_fields(template.content),
            is_draft=template.is_draft,
            created_at=template.created_at,
            updated_at=template.updated_at,
        )

    # ── Content ──

    async def save_content(
        self,
        db: AsyncSession,
        template: InvoiceTemplate,
        fields: list[TemplateField],
    ) -> list[str]:
        """Autosave the field list; returns advisory warnings, never rejects."""
        template.content = serialize_fields(fields)
        await db.commit()
        await db.refresh(template)
        return label_warnings(fields)

    async def publish(self, db: AsyncSession, template: InvoiceTemplate) -> InvoiceTemplate:
        """Mark the template ready for generation; duplicate labels are rejected."""
        ensure_unique_labels(parse_fields(template.content))
        template.is_draft = False
        template.published_at = datetime.now(timezone.utc)
        await db.commit()
        await db.refresh(template)
        return template

    # ── Field operations ──

    async def _edit(self, db: AsyncSession, template: InvoiceTemplate, operation) -> tuple[Any, list[str]]:
        editor = TemplateEditor(parse_fields(template.content))
        result = operation(editor)
        warnings = await self.save_content(db, template, editor.fields)
        return result, warnings

    async def add_field(self, db: AsyncSession, template: InvoiceTemplate, data: FieldCreate) -> tuple[TemplateField, list[str]]:
        return await self._edit(
            db,
            template,
            lambda editor: editor.add_field(data.type, x=data.x, y=data.y, unit=data.unit, page=data.page),
        )

    async def update_field(
        self,
        db: AsyncSession,
        template: InvoiceTemplate,
        field_id: str,
        changes: dict[str, Any],
    ) -> tuple[TemplateField, list[str]]:
        return await self._edit(
            db,
            template,
            lambda editor: editor.update_field(
                field_id, changes, template.source_width, template.source_height
            ),
        )

    async def delete_field(self, db: AsyncSession, template: InvoiceTemplate, field_id: str) -> list[str]:
        _, warnings = await self._edit(db, template, lambda editor: editor.delete_field(field_id))
        return warnings

    async def duplicate_field(self, db: AsyncSession, template: InvoiceTemplate, field_id: str) -> tuple[TemplateField, list[str]]:
        return await self._edit(db, template, lambda editor: editor.duplicate_field(field_id))

    # ── Preview / generation ──

    def preview(
        self,
        template: InvoiceTemplate,
        values: dict[str, Any],
        page: int = 1,
        canvas_width: float | None = None,
        canvas_height: float | None = None,
    ) -> PreviewResponse:
        """Layout instructions for the editor canvas (placeholders, truncation)."""
        doc = TemplateDocument.from_model(template)
        bound = map_values_to_field_ids(doc.fields, values)
        width = canvas_width or doc.source_width
        height = canvas_height or doc.source_height
        if width <= 0 or height <= 0:
            raise ValueError("Template has no source dimensions; pass canvas_width and canvas_height")

        scale, drawings = preview_layout(
            doc.fields,
            bound,
            self.fonts.raster_measure,
            source_width=doc.source_width or width,
            source_height=doc.source_height or height,
            page=page,
            canvas_width=width,
            canvas_height=height,
        )
        return PreviewResponse(
            page=page,
            canvas_width=width,
            canvas_height=height,
            scale=scale,
            drawings=[
                {**dataclasses.asdict(drawing), "center": drawing.center}
                for drawing in drawings
            ],
        )

    def sample_csv(self, template: InvoiceTemplate) -> str:
        return sample_csv(parse_fields(template.content))

    async def generate(
        self,
        db: AsyncSession,
        template: InvoiceTemplate,
        values: dict[str, Any],
    ) -> GenerationResult:
        return await self.documents.generate(db, TemplateDocument.from_model(template), values)


# Singleton instance
template_service = TemplateService()
