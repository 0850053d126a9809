"""Generated document endpoints."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import select

from compositor.deps import DbSession, EntityId
from compositor.models.generated_document import GeneratedDocument
from compositor.schemas.document import DocumentRead
from compositor.services.documents import document_service

router = APIRouter()


@router.get("", response_model=list[DocumentRead])
async def list_documents(
    entity_id: EntityId,
    db: DbSession,
    template_id: UUID | None = None,
    bulk_job_id: UUID | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[DocumentRead]:
    """List generated documents, optionally filtered by template or bulk job."""
    query = select(GeneratedDocument).where(GeneratedDocument.entity_id == entity_id)

    if template_id:
        query = query.where(GeneratedDocument.template_id == template_id)

    if bulk_job_id:
        query = query.where(GeneratedDocument.bulk_job_id == bulk_job_id)

    query = query.order_by(GeneratedDocument.created_at.desc()).limit(limit).offset(offset)

    result = await db.execute(query)
    return [DocumentRead.model_validate(d) for d in result.scalars().all()]


@router.get("/{document_id}", response_model=DocumentRead)
async def get_document(
    document_id: UUID,
    entity_id: EntityId,
    db: DbSession,
) -> DocumentRead:
    """Get a generated document with a fresh download URL."""
    result = await db.execute(
        select(GeneratedDocument)
        .where(GeneratedDocument.id == document_id)
        .where(GeneratedDocument.entity_id == entity_id)
    )
    document = result.scalar_one_or_none()

    if not document:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Document not found",
        )

    read = DocumentRead.model_validate(document)
    read.url = await document_service.get_url(document)
    return read
