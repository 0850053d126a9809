"""Invoice template model: a source file plus its serialized fields."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from compositor.database import Base

if TYPE_CHECKING:
    from compositor.models.entity import Entity


class InvoiceTemplate(Base):
    __tablename__ = "invoice_templates"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    entity_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("entities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), default="image")  # image | pdf

    # Storage key of the source file, never the bytes
    source_key: Mapped[str | None] = mapped_column(String(1000))
    source_width: Mapped[float] = mapped_column(Float, default=0)
    source_height: Mapped[float] = mapped_column(Float, default=0)
    page_count: Mapped[int] = mapped_column(Integer, default=1)

    # JSON array of fields, camelCase keys
    content: Mapped[str] = mapped_column(Text, default="[]")
    is_draft: Mapped[bool] = mapped_column(Boolean, default=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationships
    entity: Mapped["Entity"] = relationship("Entity", back_populates="templates")
