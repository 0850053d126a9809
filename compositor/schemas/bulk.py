"""Bulk generation schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from compositor.models.bulk_job import BulkJobStatus


class BulkJobCreate(BaseModel):
    """JSON submission; CSV uploads go through the multipart endpoint."""

    template_id: UUID | None = None
    standard: bool = False
    rows: list[dict[str, Any]] = Field(default_factory=list)
    notify_email: str | None = None


class BulkJobCreated(BaseModel):
    job_id: UUID
    status: BulkJobStatus
    total_rows: int
    total_batches: int
    message: str = "Bulk generation started"


class BulkJobStatusRead(BaseModel):
    """Polling contract for a bulk job."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: BulkJobStatus
    total_rows: int
    processed_rows: int
    success_count: int
    failure_count: int
    progress: int
    result_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
