"""S3/MinIO storage service."""

import hashlib
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator
from uuid import UUID

import aioboto3
from botocore.config import Config

from compositor.config import get_settings

settings = get_settings()


@dataclass(frozen=True)
class UploadResult:
    url: str
    path: str
    size: int


class StorageService:
    """Service for file storage operations with S3/MinIO."""

    def __init__(self) -> None:
        self.session = aioboto3.Session()
        self.bucket = settings.s3_bucket
        self.config = Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
        )

    @asynccontextmanager
    async def _get_client(self) -> AsyncGenerator:
        """Get async S3 client."""
        async with self.session.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
            region_name=settings.s3_region,
            config=self.config,
        ) as client:
            yield client

    # ── Key layout (entity prefix for isolation) ──

    @staticmethod
    def template_source_key(entity_id: UUID, template_id: UUID, filename: str) -> str:
        return f"entities/{entity_id}/templates/{template_id}/source/{filename}"

    @staticmethod
    def document_key(entity_id: UUID, template_id: UUID | None, document_id: UUID, filename: str) -> str:
        scope = f"templates/{template_id}" if template_id else "standard"
        return f"entities/{entity_id}/{scope}/documents/{document_id}/{filename}"

    @staticmethod
    def job_archive_key(entity_id: UUID, job_id: UUID) -> str:
        return f"entities/{entity_id}/bulk/{job_id}/documents.zip"

    @staticmethod
    def compute_hash(content: bytes) -> str:
        """Compute SHA256 hash of content."""
        return hashlib.sha256(content).hexdigest()

    # ── Operations ──

    async def upload(
        self,
        content: bytes,
        path: str,
        content_type: str,
        is_public: bool = False,
    ) -> UploadResult:
        """Upload bytes under ``path`` and return where they can be read."""
        async with self._get_client() as client:
            await client.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=content,
                ContentType=content_type,
                Metadata={"content_hash": self.compute_hash(content)},
            )

        if is_public and settings.s3_public_base_url:
            url = f"{settings.s3_public_base_url.rstrip('/')}/{path}"
        else:
            url = await self.get_url(path)
        return UploadResult(url=url, path=path, size=len(content))

    async def download(self, path: str) -> bytes:
        """Download file from S3."""
        async with self._get_client() as client:
            response = await client.get_object(Bucket=self.bucket, Key=path)
            content = await response["Body"].read()
            return content

    async def delete(self, path: str) -> None:
        """Delete file from S3."""
        async with self._get_client() as client:
            await client.delete_object(Bucket=self.bucket, Key=path)

    async def get_url(self, path: str, expires_in: int = 3600) -> str:
        """Generate presigned URL for file download."""
        async with self._get_client() as client:
            url = await client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": path},
                ExpiresIn=expires_in,
            )
            return url


# Singleton instance
storage_service = StorageService()
