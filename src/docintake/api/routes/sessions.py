"""
Processing Session Routes
=========================
Start, poll, and cancel processing sessions.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...database import get_async_db
from ...services.session_manager import SessionManager
from ..dependencies import get_owner_id
from ..models import CreateSessionRequest, SessionResponse


router = APIRouter(prefix="/processing-sessions", tags=["Processing Sessions"])


@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start processing session",
)
async def create_session(
    request: CreateSessionRequest,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_async_db),
) -> SessionResponse:
    manager = SessionManager(db)
    processing_session = await manager.create(
        owner_id,
        request.document_ids,
        model_id=request.model_id,
        custom_instructions=request.custom_instructions,
        replace_active=request.replace_active,
    )
    await db.commit()
    return SessionResponse(session=processing_session.to_dict())


@router.get(
    "/active",
    response_model=SessionResponse,
    summary="Get active session",
)
async def get_active_session(
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_async_db),
) -> SessionResponse:
    """Poll-friendly progress read; ``session`` is null when nothing is running."""
    processing_session = await SessionManager(db).get_active(owner_id)
    return SessionResponse(session=processing_session.to_dict() if processing_session else None)


@router.post(
    "/{session_id}/cancel",
    summary="Cancel processing session",
)
async def cancel_session(
    session_id: UUID,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_async_db),
) -> dict[str, Any]:
    result = await SessionManager(db).cancel(session_id, owner_id=owner_id)
    await db.commit()
    return result.to_dict()
