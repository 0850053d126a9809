"""FastAPI dependencies."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from compositor.database import get_db


async def get_entity_id(
    x_entity_id: Annotated[str | None, Header()] = None,
) -> UUID:
    """Extract entity ID from header."""
    if not x_entity_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Entity-ID header is required",
        )
    try:
        return UUID(x_entity_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid entity ID format",
        )


# Type aliases for dependency injection
EntityId = Annotated[UUID, Depends(get_entity_id)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
