"""
API Dependencies
================
FastAPI dependencies for caller identity, configuration, and the external
collaborators shared across requests.
"""

from __future__ import annotations

from fastapi import Header, HTTPException, Request, status

from ..config import AppConfig, get_config
from ..connectors.blob_source import AzureBlobSource
from ..connectors.credentials import CredentialCipher
from ..services.extraction import ExtractionService, HTTPExtractionService
from ..storage.object_store import ObjectStore, S3ObjectStore


async def get_owner_id(x_user_id: str = Header(default="")) -> str:
    """Caller identity, resolved upstream and forwarded in ``X-User-Id``."""
    owner_id = x_user_id.strip()
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return owner_id


def get_app_config(request: Request) -> AppConfig:
    return getattr(request.app.state, "config", None) or get_config()


def get_object_store(request: Request) -> ObjectStore:
    store = getattr(request.app.state, "object_store", None)
    if store is None:
        store = S3ObjectStore(get_app_config(request).object_store)
        request.app.state.object_store = store
    return store


def get_extraction_service(request: Request) -> ExtractionService:
    service = getattr(request.app.state, "extraction_service", None)
    if service is None:
        service = HTTPExtractionService(get_app_config(request).processing)
        request.app.state.extraction_service = service
    return service


def get_credential_cipher(request: Request) -> CredentialCipher:
    return CredentialCipher(get_app_config(request).connectors.credentials_key)


def get_blob_source(request: Request) -> AzureBlobSource:
    return AzureBlobSource(get_app_config(request).blob_scan)
