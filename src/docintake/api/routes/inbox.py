"""
Inbox Routes
============
Inbound email webhook and the scheduled blob-scan trigger.
"""

from __future__ import annotations

import hmac
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import AppConfig
from ...connectors.blob_source import AzureBlobSource
from ...database import get_async_db
from ...services.blob_scan import BlobScanService
from ...services.inbox_service import InboxService
from ...storage.object_store import ObjectStore
from ..dependencies import get_app_config, get_blob_source, get_object_store, get_owner_id
from ..models import BlobScanRequest


router = APIRouter(tags=["Intake"])


@router.post("/inbox/webhook", summary="Inbound email webhook")
async def inbox_webhook(
    request: Request,
    x_webhook_secret: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_async_db),
    object_store: ObjectStore = Depends(get_object_store),
    config: AppConfig = Depends(get_app_config),
) -> dict[str, Any]:
    secret = config.inbox.webhook_secret
    if secret and not hmac.compare_digest(x_webhook_secret or "", secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    payload = await request.json()
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Expected a JSON object")

    result = await InboxService(db, object_store, config.inbox).handle(payload)
    return result.to_dict()


@router.post("/blob-scans", summary="Scan blob folders for new files")
async def run_blob_scan(
    request: BlobScanRequest,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_async_db),
    object_store: ObjectStore = Depends(get_object_store),
    source: AzureBlobSource = Depends(get_blob_source),
) -> dict[str, Any]:
    result = await BlobScanService(db, object_store, source).scan(owner_id, request.folders)
    return result.to_dict()
