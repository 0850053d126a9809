"""Template endpoints: CRUD, source upload, editing, preview and generation."""

from uuid import UUID

from fastapi import APIRouter, File, Form, HTTPException, Response, UploadFile, status
from pydantic import ValidationError

from compositor.core.editor import FieldNotFoundError
from compositor.deps import DbSession, EntityId
from compositor.models.invoice_template import InvoiceTemplate
from compositor.schemas.field import TemplateField
from compositor.schemas.template import (
    FieldCreate,
    FieldUpdate,
    GenerateRequest,
    GenerateResponse,
    PreviewRequest,
    PreviewResponse,
    TemplateContentPatch,
    TemplateCreate,
    TemplateRead,
    TemplateSaveResult,
    TemplateUpdate,
)
from compositor.services.templates import template_service

router = APIRouter()

MAX_SOURCE_SIZE = 20 * 1024 * 1024  # 20 MB


async def _get_template(db: DbSession, entity_id: EntityId, template_id: UUID) -> InvoiceTemplate:
    template = await template_service.get(db, entity_id, template_id)
    if not template:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Template not found",
        )
    return template


def _field_not_found(field_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Field {field_id} not found",
    )


# ── CRUD ──


@router.get("", response_model=list[TemplateRead])
async def list_templates(
    entity_id: EntityId,
    db: DbSession,
    limit: int = 100,
    offset: int = 0,
) -> list[TemplateRead]:
    """List templates for the entity, most recently edited first."""
    templates = await template_service.list_templates(db, entity_id, limit=limit, offset=offset)
    return [await template_service.to_read(t) for t in templates]


@router.post("", response_model=TemplateSaveResult, status_code=status.HTTP_201_CREATED)
async def create_template(
    data: TemplateCreate,
    entity_id: EntityId,
    db: DbSession,
) -> TemplateSaveResult:
    template, warnings = await template_service.create(db, entity_id, data)
    return TemplateSaveResult(template=await template_service.to_read(template), warnings=warnings)


@router.post("/upload", response_model=TemplateRead, status_code=status.HTTP_201_CREATED)
async def upload_template(
    entity_id: EntityId,
    db: DbSession,
    file: UploadFile = File(...),
    name: str | None = Form(default=None),
) -> TemplateRead:
    """Create a template from an uploaded image or PDF."""
    content = await file.read()
    if len(content) > MAX_SOURCE_SIZE:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large. Max size: {MAX_SOURCE_SIZE // (1024 * 1024)}MB",
        )

    template = await template_service.create_from_upload(
        db,
        entity_id,
        name=name or file.filename or "Untitled template",
        content=content,
        content_type=file.content_type,
        filename=file.filename,
    )
    return await template_service.to_read(template)


@router.get("/{template_id}", response_model=TemplateRead)
async def get_template(
    template_id: UUID,
    entity_id: EntityId,
    db: DbSession,
) -> TemplateRead:
    template = await _get_template(db, entity_id, template_id)
    return await template_service.to_read(template)


@router.patch("/{template_id}", response_model=TemplateRead)
async def update_template(
    template_id: UUID,
    data: TemplateUpdate,
    entity_id: EntityId,
    db: DbSession,
) -> TemplateRead:
    template = await _get_template(db, entity_id, template_id)
    template = await template_service.update(db, template, data)
    return await template_service.to_read(template)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: UUID,
    entity_id: EntityId,
    db: DbSession,
) -> None:
    template = await _get_template(db, entity_id, template_id)
    await template_service.delete(db, template)


# ── Content ──


@router.patch("/{template_id}/content", response_model=TemplateSaveResult)
async def save_template_content(
    template_id: UUID,
    data: TemplateContentPatch,
    entity_id: EntityId,
    db: DbSession,
) -> TemplateSaveResult:
    """Autosave the field list. Duplicate labels come back as warnings."""
    template = await _get_template(db, entity_id, template_id)
    warnings = await template_service.save_content(db, template, data.fields)
    return TemplateSaveResult(template=await template_service.to_read(template), warnings=warnings)


@router.post("/{template_id}/publish", response_model=TemplateRead)
async def publish_template(
    template_id: UUID,
    entity_id: EntityId,
    db: DbSession,
) -> TemplateRead:
    """Publish the template. Duplicate labels are rejected with 422."""
    template = await _get_template(db, entity_id, template_id)
    template = await template_service.publish(db, template)
    return await template_service.to_read(template)


# ── Fields ──


@router.post("/{template_id}/fields", response_model=TemplateField, status_code=status.HTTP_201_CREATED)
async def add_field(
    template_id: UUID,
    data: FieldCreate,
    entity_id: EntityId,
    db: DbSession,
    response: Response,
):
    template = await _get_template(db, entity_id, template_id)
    field, warnings = await template_service.add_field(db, template, data)
    if warnings:
        response.headers["X-Template-Warnings"] = " | ".join(warnings)
    return field


@router.patch("/{template_id}/fields/{field_id}", response_model=TemplateField)
async def update_field(
    template_id: UUID,
    field_id: str,
    data: FieldUpdate,
    entity_id: EntityId,
    db: DbSession,
    response: Response,
):
    template = await _get_template(db, entity_id, template_id)
    try:
        field, warnings = await template_service.update_field(db, template, field_id, data.changes())
    except FieldNotFoundError:
        raise _field_not_found(field_id)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    if warnings:
        response.headers["X-Template-Warnings"] = " | ".join(warnings)
    return field


@router.delete("/{template_id}/fields/{field_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_field(
    template_id: UUID,
    field_id: str,
    entity_id: EntityId,
    db: DbSession,
) -> None:
    template = await _get_template(db, entity_id, template_id)
    try:
        await template_service.delete_field(db, template, field_id)
    except FieldNotFoundError:
        raise _field_not_found(field_id)


@router.post(
    "/{template_id}/fields/{field_id}/duplicate",
    response_model=TemplateField,
    status_code=status.HTTP_201_CREATED,
)
async def duplicate_field(
    template_id: UUID,
    field_id: str,
    entity_id: EntityId,
    db: DbSession,
    response: Response,
):
    template = await _get_template(db, entity_id, template_id)
    try:
        field, warnings = await template_service.duplicate_field(db, template, field_id)
    except FieldNotFoundError:
        raise _field_not_found(field_id)
    if warnings:
        response.headers["X-Template-Warnings"] = " | ".join(warnings)
    return field


# ── Preview / generation ──


@router.post("/{template_id}/preview", response_model=PreviewResponse)
async def preview_template(
    template_id: UUID,
    data: PreviewRequest,
    entity_id: EntityId,
    db: DbSession,
) -> PreviewResponse:
    """Layout instructions for one page of the editor canvas."""
    template = await _get_template(db, entity_id, template_id)
    try:
        return template_service.preview(
            template,
            data.values,
            page=data.page,
            canvas_width=data.canvas_width,
            canvas_height=data.canvas_height,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/{template_id}/sample-csv")
async def download_sample_csv(
    template_id: UUID,
    entity_id: EntityId,
    db: DbSession,
) -> Response:
    template = await _get_template(db, entity_id, template_id)
    return Response(
        content=template_service.sample_csv(template),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{template.name}-sample.csv"'},
    )


@router.post("/{template_id}/generate", response_model=GenerateResponse)
async def generate_document(
    template_id: UUID,
    data: GenerateRequest,
    entity_id: EntityId,
    db: DbSession,
) -> GenerateResponse:
    """Render one document. Missing required fields are rejected with 422."""
    template = await _get_template(db, entity_id, template_id)
    result = await template_service.generate(db, template, data.values)
    return GenerateResponse(
        document_id=result.document_id,
        url=result.url,
        content_type=result.content_type,
        generated_at=result.generated_at,
    )
