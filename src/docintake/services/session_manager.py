"""
Processing Session Manager
==========================
Lifecycle of a bounded batch of extraction work.

A session captures its document id set at creation. Cancelling a session
flips it to ``cancelled`` and reverts only the documents that are still
``processing``; resolved documents keep their outcome. Runners observe the
cancellation between documents through ``is_cancelled``.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import ActiveSessionExistsError, SessionNotFoundError
from ..models.processing_session import ProcessingSession, SessionStatus
from ..repositories.document_repository import DocumentRepository
from ..repositories.session_repository import ProcessingSessionRepository
from .audit import AuditAction, AuditLogger

logger = logging.getLogger(__name__)


@dataclass
class CancelResult:
    """Outcome of a cancel request."""
    success: bool
    status: SessionStatus
    message: str
    reverted_count: int = 0

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "status": self.status.value,
            "message": self.message,
            "reverted_count": self.reverted_count,
        }


def as_uuids(values: Iterable) -> list[UUID]:
    ids = []
    for value in values:
        ids.append(value if isinstance(value, UUID) else UUID(str(value)))
    return ids


class SessionManager:
    """
    Create, track, and cancel processing sessions.

    Args:
        session: Database session
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.sessions = ProcessingSessionRepository(session)
        self.documents = DocumentRepository(session)
        self.audit = AuditLogger(session)

    async def create(
        self,
        owner_id: str,
        document_ids: Iterable[UUID],
        model_id: Optional[str] = None,
        custom_instructions: Optional[str] = None,
        replace_active: bool = False,
    ) -> ProcessingSession:
        """
        Start a new active session.

        Raises:
            ActiveSessionExistsError: The owner already has an active session
                and ``replace_active`` is False
        """
        if replace_active:
            existing = await self.sessions.get_active(owner_id)
            if existing:
                logger.info(f"Replacing active session {existing.id} for {owner_id}")
                await self.cancel(existing.id, owner_id=owner_id)

        ids = [str(doc_id) for doc_id in document_ids]
        created = await self.sessions.create(
            owner_id=owner_id,
            document_ids=ids,
            model_id=model_id,
            custom_instructions=custom_instructions,
        )

        if created is None:
            existing = await self.sessions.get_active(owner_id)
            raise ActiveSessionExistsError(
                owner_id,
                str(existing.id) if existing else None,
            )

        return created

    async def get_active(self, owner_id: str) -> Optional[ProcessingSession]:
        return await self.sessions.get_active(owner_id)

    async def get(
        self,
        session_id: UUID,
        owner_id: Optional[str] = None,
    ) -> Optional[ProcessingSession]:
        return await self.sessions.get(session_id, owner_id=owner_id)

    async def update_progress(
        self,
        session_id: UUID,
        processed: int,
        failed: int,
    ) -> bool:
        """Report absolute progress. False means the session is no longer active."""
        updated = await self.sessions.update_progress(session_id, processed, failed)
        if not updated:
            logger.info(f"Progress for session {session_id} ignored, session not active")
        return updated

    async def complete(self, session_id: UUID) -> bool:
        """Mark an active session completed. No-op on a terminal session."""
        completed = await self.sessions.finish(session_id, SessionStatus.COMPLETED)
        if completed:
            logger.info(f"Completed processing session {session_id}")
        return completed

    async def cancel(
        self,
        session_id: UUID,
        owner_id: Optional[str] = None,
    ) -> CancelResult:
        """
        Cancel a session and release its stranded documents.

        Args:
            session_id: Session to cancel
            owner_id: When given, the session must belong to this owner

        Returns:
            CancelResult; ``success`` is False when the session was already terminal

        Raises:
            SessionNotFoundError: No such session for the owner
        """
        processing_session = await self.sessions.get(session_id, owner_id=owner_id)
        if not processing_session:
            raise SessionNotFoundError(f"Session not found: {session_id}")

        if processing_session.is_terminal:
            status = processing_session.status
            return CancelResult(
                success=False,
                status=status,
                message=f"Session is already {status.value}",
            )

        flipped = await self.sessions.finish(session_id, SessionStatus.CANCELLED)
        if not flipped:
            # Finished between the read and the update
            status = await self.sessions.get_status(session_id) or processing_session.status
            return CancelResult(
                success=False,
                status=status,
                message=f"Session is already {status.value}",
            )

        reverted = await self.documents.revert_processing(
            processing_session.owner_id,
            as_uuids(processing_session.document_ids or []),
        )

        await self.audit.log(
            owner_id=processing_session.owner_id,
            action=AuditAction.SESSION_CANCELLED,
            description=f"Processing session cancelled, {reverted} document(s) reverted",
            details={
                "session_id": str(session_id),
                "reverted_count": reverted,
                "processed_documents": processing_session.processed_documents,
                "total_documents": processing_session.total_documents,
            },
        )

        logger.info(f"Cancelled session {session_id}, reverted {reverted} documents")
        return CancelResult(
            success=True,
            status=SessionStatus.CANCELLED,
            message=f"Session cancelled, {reverted} document(s) reverted to uploaded",
            reverted_count=reverted,
        )

    async def is_cancelled(self, session_id: UUID) -> bool:
        status = await self.sessions.get_status(session_id)
        return status == SessionStatus.CANCELLED

    async def cancel_document_processing(
        self,
        owner_id: str,
        document_id: UUID,
    ) -> bool:
        """Revert a single processing document to uploaded."""
        reverted = await self.documents.revert_processing(owner_id, [document_id])
        if reverted:
            await self.audit.log(
                owner_id=owner_id,
                action=AuditAction.DOCUMENT_PROCESSING_CANCELLED,
                document_id=document_id,
                description="Processing cancelled, document reverted to uploaded",
            )
        return reverted > 0
