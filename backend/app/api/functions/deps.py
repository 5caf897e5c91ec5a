from typing import Annotated
from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
from app.core import get_db
from app.core.errors import RelayError
from app.models import User
from app.api.v1.auth import get_current_user


async def get_relay_user(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    """``get_current_user`` with failures rendered in the relay error envelope."""
    try:
        return await get_current_user(request, db)
    except HTTPException as e:
        raise RelayError(str(e.detail), status_code=e.status_code) from e
