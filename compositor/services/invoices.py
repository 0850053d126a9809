"""Invoice records created for bulk-generated rows."""

import logging
import secrets
import string
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from compositor.core.ingest import AMOUNT_COLUMNS, DESCRIPTION_COLUMNS, first_present
from compositor.models.invoice import Invoice

logger = logging.getLogger(__name__)

_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


def generate_invoice_number() -> str:
    return "INV-" + "".join(secrets.choice(_NUMBER_ALPHABET) for _ in range(8))


def parse_amount(value: Any) -> float:
    """Parse an amount cell; anything unparseable is 0."""
    if value is None:
        return 0.0
    try:
        return float(str(value).replace(",", "").strip() or 0)
    except ValueError:
        return 0.0


def parse_date(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).strip())
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class InvoiceService:
    async def create_for_row(
        self,
        db: AsyncSession,
        entity_id: UUID,
        row: dict[str, Any],
        document_id: UUID,
        supplier_id: UUID | None = None,
    ) -> Invoice:
        """Create the invoice record that accompanies a generated row document."""
        description = first_present(row, DESCRIPTION_COLUMNS)
        invoice = Invoice(
            entity_id=entity_id,
            supplier_id=supplier_id,
            document_id=document_id,
            invoice_number=str(row.get("invoice_number") or generate_invoice_number()),
            amount=parse_amount(first_present(row, AMOUNT_COLUMNS)),
            description=str(description) if description is not None else None,
            issue_date=parse_date(row.get("issue_date")) or datetime.now(timezone.utc),
            due_date=parse_date(row.get("due_date")),
        )
        db.add(invoice)
        await db.commit()
        return invoice


invoice_service = InvoiceService()
