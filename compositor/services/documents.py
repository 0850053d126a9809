"""Generated document persistence and job archives."""

import io
import logging
import mimetypes
import re
import zipfile
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from compositor.config import get_settings
from compositor.models.generated_document import GeneratedDocument
from compositor.schemas.template import TemplateDocument
from compositor.services.renderer import DocumentRenderer, RenderedArtifact, document_renderer
from compositor.services.storage import StorageService, storage_service

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationResult:
    document_id: UUID
    url: str
    content_type: str
    generated_at: datetime


@dataclass(frozen=True)
class JobArchive:
    key: str
    url: str
    document_count: int


def _slug(name: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9._-]+", "-", name).strip("-")
    return slug[:80] or "document"


class DocumentService:
    """Renders documents, stores them and bundles a job's output."""

    def __init__(
        self,
        renderer: DocumentRenderer = document_renderer,
        storage: StorageService = storage_service,
    ) -> None:
        self.renderer = renderer
        self.storage = storage

    async def generate(
        self,
        db: AsyncSession,
        template: TemplateDocument,
        values: dict[str, Any],
        bulk_job_id: UUID | None = None,
    ) -> GenerationResult:
        """Render ``template`` with ``values`` and persist the artifact."""
        artifact = await self.renderer.render(template, values)
        return await self.store(
            db,
            entity_id=template.entity_id,
            artifact=artifact,
            name=template.name,
            template_id=template.id,
            values=values,
            bulk_job_id=bulk_job_id,
        )

    async def store(
        self,
        db: AsyncSession,
        entity_id: UUID,
        artifact: RenderedArtifact,
        name: str,
        template_id: UUID | None = None,
        values: dict[str, Any] | None = None,
        bulk_job_id: UUID | None = None,
    ) -> GenerationResult:
        """Upload an artifact and record it; nothing is committed if the upload fails."""
        document_id = uuid4()
        filename = f"{_slug(name)}.{artifact.extension}"
        key = self.storage.document_key(entity_id, template_id, document_id, filename)

        try:
            upload = await self.storage.upload(artifact.content, key, artifact.content_type)
        except Exception:
            logger.exception(f"Upload of document {document_id} failed")
            raise

        document = GeneratedDocument(
            id=document_id,
            entity_id=entity_id,
            template_id=template_id,
            bulk_job_id=bulk_job_id,
            name=filename,
            content_type=artifact.content_type,
            storage_key=upload.path,
            file_size=upload.size,
            values=values or {},
        )
        db.add(document)
        await db.commit()

        return GenerationResult(
            document_id=document_id,
            url=upload.url,
            content_type=artifact.content_type,
            generated_at=datetime.now(timezone.utc),
        )

    async def get_url(self, document: GeneratedDocument, expires_in: int = 3600) -> str | None:
        if not document.storage_key:
            return None
        return await self.storage.get_url(document.storage_key, expires_in=expires_in)

    async def build_job_archive(
        self,
        db: AsyncSession,
        entity_id: UUID,
        job_id: UUID,
    ) -> JobArchive | None:
        """Zip every stored document of a bulk job and upload the archive.

        Returns ``None`` when the job produced no documents.
        """
        result = await db.execute(
            select(GeneratedDocument)
            .where(GeneratedDocument.bulk_job_id == job_id)
            .where(GeneratedDocument.storage_key.is_not(None))
            .order_by(GeneratedDocument.created_at)
        )
        documents = list(result.scalars().all())
        if not documents:
            return None

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for index, document in enumerate(documents, start=1):
                content = await self.storage.download(document.storage_key)
                extension = mimetypes.guess_extension(document.content_type) or ".bin"
                archive.writestr(f"document_{str(document.id)[:8]}_{index}{extension}", content)

        key = self.storage.job_archive_key(entity_id, job_id)
        await self.storage.upload(buffer.getvalue(), key, "application/zip")
        url = await self.storage.get_url(key, expires_in=settings.result_url_expires_in)
        logger.info(f"Archived {len(documents)} documents for bulk job {job_id}")
        return JobArchive(key=key, url=url, document_count=len(documents))


# Singleton instance
document_service = DocumentService()
