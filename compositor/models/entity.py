"""Entity model."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import DateTime, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from compositor.database import Base

if TYPE_CHECKING:
    from compositor.models.invoice_template import InvoiceTemplate
    from compositor.models.supplier import Supplier


class Entity(Base):
    """Entity is the tenant that owns templates, suppliers and jobs."""

    __tablename__ = "entities"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    settings: Mapped[dict | None] = mapped_column(JSONB, default=dict)

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
    templates: Mapped[list["InvoiceTemplate"]] = relationship(
        "InvoiceTemplate",
        back_populates="entity",
        cascade="all, delete-orphan",
    )
    suppliers: Mapped[list["Supplier"]] = relationship(
        "Supplier",
        back_populates="entity",
        cascade="all, delete-orphan",
    )
