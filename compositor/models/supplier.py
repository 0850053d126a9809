"""Supplier model."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from compositor.database import Base

if TYPE_CHECKING:
    from compositor.models.entity import Entity


class Supplier(Base):
    """Counterparty linked to generated invoices."""

    __tablename__ = "suppliers"
    __table_args__ = (
        UniqueConstraint("entity_id", "name_key", name="uq_suppliers_entity_name"),
    )

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
    name_key: Mapped[str] = mapped_column(String(255), nullable=False)  # lower(trim(name))
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    email_is_placeholder: Mapped[bool] = mapped_column(Boolean, default=False)

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
    entity: Mapped["Entity"] = relationship("Entity", back_populates="suppliers")
