"""Supplier resolution for bulk-generated rows."""

import logging
import re
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from compositor.models.supplier import Supplier

logger = logging.getLogger(__name__)


def supplier_name_key(name: str) -> str:
    return name.strip().lower()


def placeholder_email(name: str) -> str:
    """Synthesized address for suppliers created without one."""
    local = re.sub(r"[^a-z0-9]+", ".", name.lower()).strip(".") or "supplier"
    return f"{local[:40]}.{uuid4().hex[:8]}@suppliers.invalid"


class SupplierService:
    """Case-insensitive get-or-create of suppliers within an entity."""

    async def find(self, db: AsyncSession, entity_id: UUID, name: str) -> Supplier | None:
        result = await db.execute(
            select(Supplier)
            .where(Supplier.entity_id == entity_id)
            .where(Supplier.name_key == supplier_name_key(name))
        )
        return result.scalar_one_or_none()

    async def resolve_or_create(
        self,
        db: AsyncSession,
        entity_id: UUID,
        name: str,
        email: str | None = None,
    ) -> Supplier:
        """Return the entity's supplier named ``name``, creating it if needed.

        Uses INSERT ... ON CONFLICT DO NOTHING so rows of the same batch that
        name a new supplier concurrently converge on one record.
        """
        name = name.strip()
        supplier = await self.find(db, entity_id, name)
        if supplier:
            return supplier

        stmt = (
            pg_insert(Supplier)
            .values(
                entity_id=entity_id,
                name=name,
                name_key=supplier_name_key(name),
                email=email or placeholder_email(name),
                email_is_placeholder=not email,
            )
            .on_conflict_do_nothing(constraint="uq_suppliers_entity_name")
            .returning(Supplier)
        )
        result = await db.execute(stmt)
        supplier = result.scalar_one_or_none()

        if not supplier:
            # Another transaction won the race
            supplier = await self.find(db, entity_id, name)
            if supplier is None:
                raise RuntimeError(f"Supplier {name!r} vanished after conflicting insert")
        else:
            logger.info(f"Created supplier {supplier.id} ({name}) for entity {entity_id}")

        await db.commit()
        return supplier


supplier_service = SupplierService()
