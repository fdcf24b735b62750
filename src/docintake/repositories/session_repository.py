"""
Processing Session Repository
=============================
Data access for processing sessions.
"""

import logging
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.processing_session import ProcessingSession, SessionStatus

logger = logging.getLogger(__name__)


class ProcessingSessionRepository:
    """Repository for processing session operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        owner_id: str,
        document_ids: list[str],
        model_id: Optional[str] = None,
        custom_instructions: Optional[str] = None,
    ) -> Optional[ProcessingSession]:
        """
        Create an active session inside a savepoint.

        Returns None when the owner already has an active session.
        """
        processing_session = ProcessingSession(
            owner_id=owner_id,
            status=SessionStatus.ACTIVE,
            document_ids=list(document_ids),
            total_documents=len(document_ids),
            processed_documents=0,
            failed_documents=0,
            model_id=model_id,
            custom_instructions=custom_instructions,
            started_at=datetime.utcnow(),
        )

        try:
            async with self.session.begin_nested():
                self.session.add(processing_session)
                await self.session.flush()
        except IntegrityError:
            logger.info(f"Active session already exists for {owner_id}")
            return None

        logger.info(f"Created processing session {processing_session.id} with {len(document_ids)} documents")
        return processing_session

    async def get(
        self,
        session_id: UUID,
        owner_id: Optional[str] = None,
    ) -> Optional[ProcessingSession]:
        """Get session by ID, optionally scoped to an owner."""
        query = select(ProcessingSession).where(ProcessingSession.id == session_id)
        if owner_id:
            query = query.where(ProcessingSession.owner_id == owner_id)

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_active(self, owner_id: str) -> Optional[ProcessingSession]:
        """Get the owner's most recently started active session."""
        query = (
            select(ProcessingSession)
            .where(
                and_(
                    ProcessingSession.owner_id == owner_id,
                    ProcessingSession.status == SessionStatus.ACTIVE,
                )
            )
            .order_by(ProcessingSession.started_at.desc())
            .limit(1)
        )

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_status(self, session_id: UUID) -> Optional[SessionStatus]:
        """Read only the status column."""
        query = select(ProcessingSession.status).where(ProcessingSession.id == session_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def finish(
        self,
        session_id: UUID,
        status: SessionStatus,
    ) -> bool:
        """
        Move an active session to a terminal status.

        The update only matches while the session is active, so a session
        that is already terminal reports False.
        """
        values: dict[str, Any] = {"status": status}
        if status == SessionStatus.COMPLETED:
            values["completed_at"] = datetime.utcnow()
        elif status == SessionStatus.CANCELLED:
            values["cancelled_at"] = datetime.utcnow()

        stmt = (
            update(ProcessingSession)
            .where(
                and_(
                    ProcessingSession.id == session_id,
                    ProcessingSession.status == SessionStatus.ACTIVE,
                )
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def update_progress(
        self,
        session_id: UUID,
        processed: int,
        failed: int,
    ) -> bool:
        """Set absolute progress counters on an active session."""
        stmt = (
            update(ProcessingSession)
            .where(
                and_(
                    ProcessingSession.id == session_id,
                    ProcessingSession.status == SessionStatus.ACTIVE,
                )
            )
            .values(processed_documents=processed, failed_documents=failed)
            .execution_options(synchronize_session=False)
        )

        result = await self.session.execute(stmt)
        return result.rowcount > 0
