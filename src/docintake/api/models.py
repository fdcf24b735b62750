"""
API Models
==========
Request/response models for the intake API.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error body."""
    error: str
    message: str
    details: Optional[dict[str, Any]] = None
    request_id: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    version: str


class CreateSessionRequest(BaseModel):
    """Start a processing session over a fixed set of documents."""
    document_ids: list[UUID] = Field(..., min_length=1)
    model_id: Optional[str] = None
    custom_instructions: Optional[str] = None
    replace_active: bool = False


class SessionResponse(BaseModel):
    session: Optional[dict[str, Any]] = None


class BatchRunRequest(BaseModel):
    document_ids: list[UUID] = Field(..., min_length=1)
    session_id: Optional[UUID] = None


class RegisterConnectorRequest(BaseModel):
    credentials: dict[str, Any]
    display_name: Optional[str] = None
    verify: bool = True


class SyncRequest(BaseModel):
    """Optional explicit credentials overriding the stored ones."""
    credentials: Optional[dict[str, Any]] = None


class CancelProcessingResponse(BaseModel):
    success: bool
    message: str


class BlobScanRequest(BaseModel):
    folders: list[str] = Field(..., min_length=1)
