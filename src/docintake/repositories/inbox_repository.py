"""
Inbox Repository
================
Data access for inbox settings and the inbound email log.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.inbox import EmailLog, EmailLogStatus, InboxSettings

logger = logging.getLogger(__name__)


class InboxRepository:
    """Repository for inbox operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_settings_by_code(self, inbox_code: str) -> Optional[InboxSettings]:
        """Look up the owner behind an inbox code."""
        query = select(InboxSettings).where(InboxSettings.inbox_code == inbox_code.lower())
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def create_log(
        self,
        owner_id: str,
        from_address: str,
        subject: str,
        attachments_count: int,
    ) -> EmailLog:
        """Record a received email."""
        status = EmailLogStatus.PROCESSING if attachments_count > 0 else EmailLogStatus.NO_ATTACHMENTS
        log = EmailLog(
            owner_id=owner_id,
            from_address=from_address,
            subject=subject,
            attachments_count=attachments_count,
            status=status.value,
        )

        self.session.add(log)
        await self.session.flush()
        return log

    async def finish_log(
        self,
        log_id: UUID,
        documents_created: int,
    ) -> bool:
        """Close an email log entry with its outcome."""
        status = EmailLogStatus.COMPLETED if documents_created > 0 else EmailLogStatus.FAILED
        stmt = (
            update(EmailLog)
            .where(EmailLog.id == log_id)
            .values(
                documents_created=documents_created,
                status=status.value,
                processed_at=datetime.utcnow(),
            )
        )

        result = await self.session.execute(stmt)
        return result.rowcount > 0
