"""
Document Routes
===============
Direct upload and single-document cancellation.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import AppConfig
from ...database import get_async_db
from ...exceptions import DocumentNotFoundError
from ...repositories.document_repository import DocumentRepository
from ...services.session_manager import SessionManager
from ...services.upload_service import UploadService
from ...storage.object_store import ObjectStore
from ..dependencies import get_app_config, get_object_store, get_owner_id
from ..models import CancelProcessingResponse


router = APIRouter(prefix="/documents", tags=["Documents"])


@router.post(
    "/upload",
    status_code=status.HTTP_201_CREATED,
    summary="Upload document",
)
async def upload_document(
    file: UploadFile = File(...),
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_async_db),
    object_store: ObjectStore = Depends(get_object_store),
    config: AppConfig = Depends(get_app_config),
) -> dict[str, Any]:
    """Upload a document; exact duplicates are recorded and flagged."""
    data = await file.read()
    service = UploadService(db, object_store, config.upload, config.detection)
    result = await service.upload(
        owner_id,
        file.filename or "upload",
        data,
        content_type=file.content_type,
    )
    return result.to_dict()


@router.post(
    "/{document_id}/cancel-processing",
    response_model=CancelProcessingResponse,
    summary="Cancel processing of one document",
)
async def cancel_document_processing(
    document_id: UUID,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_async_db),
) -> CancelProcessingResponse:
    manager = SessionManager(db)
    reverted = await manager.cancel_document_processing(owner_id, document_id)
    if reverted:
        await db.commit()
        return CancelProcessingResponse(success=True, message="Processing cancelled")

    document = await DocumentRepository(db).get_by_id(document_id, owner_id=owner_id)
    if not document:
        raise DocumentNotFoundError(f"Document not found: {document_id}")

    return CancelProcessingResponse(
        success=False,
        message=f"Document is {document.status.value}, not processing",
    )
