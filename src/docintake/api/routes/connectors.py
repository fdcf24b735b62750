"""
Connector Routes
================
Connector account registration and sync triggers.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import AppConfig
from ...connectors.credentials import ConnectorCredentials, CredentialCipher
from ...database import get_async_db
from ...models.connector import ConnectorProvider
from ...services.sync_engine import SyncEngine
from ...storage.object_store import ObjectStore
from ..dependencies import (
    get_app_config,
    get_credential_cipher,
    get_object_store,
    get_owner_id,
)
from ..models import RegisterConnectorRequest, SyncRequest


router = APIRouter(prefix="/connectors", tags=["Connectors"])


@router.put(
    "/{provider}",
    status_code=status.HTTP_201_CREATED,
    summary="Register connector account",
)
async def register_connector(
    provider: ConnectorProvider,
    request: RegisterConnectorRequest,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_async_db),
    object_store: ObjectStore = Depends(get_object_store),
    cipher: CredentialCipher = Depends(get_credential_cipher),
    config: AppConfig = Depends(get_app_config),
) -> dict[str, Any]:
    engine = SyncEngine(db, object_store, cipher=cipher, config=config.connectors)
    account = await engine.register_account(
        owner_id,
        provider,
        ConnectorCredentials.model_validate(request.credentials),
        display_name=request.display_name,
        verify=request.verify,
    )
    return account.to_dict()


@router.post("/{provider}/sync", summary="Sync connector")
async def sync_connector(
    provider: ConnectorProvider,
    request: Optional[SyncRequest] = None,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_async_db),
    object_store: ObjectStore = Depends(get_object_store),
    cipher: CredentialCipher = Depends(get_credential_cipher),
    config: AppConfig = Depends(get_app_config),
) -> dict[str, Any]:
    credentials = (
        ConnectorCredentials.model_validate(request.credentials)
        if request and request.credentials else None
    )
    engine = SyncEngine(db, object_store, cipher=cipher, config=config.connectors)
    result = await engine.sync(owner_id, provider, credentials)
    return result.to_dict()
