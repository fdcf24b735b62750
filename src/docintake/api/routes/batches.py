"""
Batch Routes
============
Runs extraction over a set of documents within the request.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import AppConfig
from ...database import get_async_db
from ...services.batch_runner import BatchRunner
from ...services.extraction import ExtractionService
from ...storage.object_store import ObjectStore
from ..dependencies import (
    get_app_config,
    get_extraction_service,
    get_object_store,
    get_owner_id,
)
from ..models import BatchRunRequest


router = APIRouter(prefix="/batches", tags=["Batches"])


@router.post("/run", summary="Run batch extraction")
async def run_batch(
    request: BatchRunRequest,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_async_db),
    object_store: ObjectStore = Depends(get_object_store),
    extraction: ExtractionService = Depends(get_extraction_service),
    config: AppConfig = Depends(get_app_config),
) -> dict[str, Any]:
    runner = BatchRunner(
        db,
        object_store,
        extraction,
        processing_config=config.processing,
        detection_config=config.detection,
    )
    result = await runner.run(owner_id, request.document_ids, session_id=request.session_id)
    return result.to_dict()
