"""
Audit Trail
===========
Best-effort audit logging. Failures are logged and never interrupt the
operation that emitted the event.
"""

import logging
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..repositories.document_repository import DocumentRepository

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    """Audit event names."""
    DOCUMENT_UPLOADED = "document.uploaded"
    DOCUMENT_DUPLICATE_DETECTED = "document.duplicate_detected"
    DOCUMENT_PROCESSED = "document.processed"
    DOCUMENT_PROCESSING_FAILED = "document.processing_failed"
    DOCUMENT_PROCESSING_CANCELLED = "document.processing_cancelled"
    SESSION_CANCELLED = "session.cancelled"
    CONNECTOR_SYNCED = "connector.synced"


class AuditLogger:
    """Writes audit entries inside a savepoint so a failed write cannot poison the caller's transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.documents = DocumentRepository(session)

    async def log(
        self,
        owner_id: str,
        action: AuditAction,
        document_id: Optional[UUID] = None,
        description: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        try:
            async with self.session.begin_nested():
                await self.documents.log_action(
                    owner_id=owner_id,
                    action=action.value,
                    document_id=document_id,
                    description=description,
                    details=details,
                )
        except SQLAlchemyError as e:
            logger.warning(f"Failed to log audit event {action.value}: {e}")
