"""Generated document schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class DocumentRead(BaseModel):
    """Schema for reading a generated document."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    template_id: UUID | None = None
    bulk_job_id: UUID | None = None
    name: str
    content_type: str
    file_size: int | None = None
    url: str | None = None
    created_at: datetime
