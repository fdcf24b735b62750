"""
Connector Repository
====================
Data access for connector accounts, sync jobs, and sync items.
"""

import logging
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.connector import (
    ConnectorAccount,
    ConnectorProvider,
    ConnectorSyncItem,
    ConnectorSyncJob,
    SyncItemStatus,
    SyncJobStatus,
)

logger = logging.getLogger(__name__)


class ConnectorRepository:
    """Repository for connector accounts and their sync trail."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Account operations

    async def get_active_account(
        self,
        owner_id: str,
        provider: ConnectorProvider,
    ) -> Optional[ConnectorAccount]:
        """Get the owner's active account for a provider."""
        query = (
            select(ConnectorAccount)
            .where(
                and_(
                    ConnectorAccount.owner_id == owner_id,
                    ConnectorAccount.provider == provider,
                    ConnectorAccount.is_active == True,
                )
            )
            .order_by(ConnectorAccount.created_at.desc())
            .limit(1)
        )

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def upsert_account(
        self,
        owner_id: str,
        provider: ConnectorProvider,
        encrypted_credentials: str,
        display_name: Optional[str] = None,
    ) -> ConnectorAccount:
        """Replace the credentials of the active account, or create one."""
        account = await self.get_active_account(owner_id, provider)

        if account:
            account.encrypted_credentials = encrypted_credentials
            if display_name:
                account.display_name = display_name
            account.updated_at = datetime.utcnow()
        else:
            account = ConnectorAccount(
                owner_id=owner_id,
                provider=provider,
                encrypted_credentials=encrypted_credentials,
                display_name=display_name,
                is_active=True,
            )
            self.session.add(account)

        await self.session.flush()
        logger.info(f"Stored {provider.value} connector account {account.id} for {owner_id}")
        return account

    async def deactivate_account(self, account_id: UUID) -> bool:
        """Disable an account without deleting its history."""
        stmt = (
            update(ConnectorAccount)
            .where(ConnectorAccount.id == account_id)
            .values(is_active=False, updated_at=datetime.utcnow())
        )

        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def record_sync(self, account_id: UUID) -> bool:
        """Stamp the account's last-sync time."""
        stmt = (
            update(ConnectorAccount)
            .where(ConnectorAccount.id == account_id)
            .values(last_sync_at=datetime.utcnow())
        )

        result = await self.session.execute(stmt)
        return result.rowcount > 0

    # Job operations

    async def create_job(self, account: ConnectorAccount) -> ConnectorSyncJob:
        """Create a running sync job for an account."""
        job = ConnectorSyncJob(
            account_id=account.id,
            owner_id=account.owner_id,
            provider=account.provider,
            status=SyncJobStatus.RUNNING,
            started_at=datetime.utcnow(),
            stats={},
        )

        self.session.add(job)
        await self.session.flush()

        logger.info(f"Created sync job {job.id} for account {account.id}")
        return job

    async def finish_job(
        self,
        job_id: UUID,
        status: SyncJobStatus,
        stats: dict[str, int],
        error_message: Optional[str] = None,
    ) -> bool:
        """Finalize a job with its status and stats."""
        stmt = (
            update(ConnectorSyncJob)
            .where(ConnectorSyncJob.id == job_id)
            .values(
                status=status,
                stats=stats,
                error_message=error_message,
                finished_at=datetime.utcnow(),
            )
        )

        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def get_job(self, job_id: UUID) -> Optional[ConnectorSyncJob]:
        """Get job by ID."""
        query = select(ConnectorSyncJob).where(ConnectorSyncJob.id == job_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_jobs(
        self,
        account_id: UUID,
        limit: int = 20,
    ) -> list[ConnectorSyncJob]:
        """List an account's jobs, newest first."""
        query = (
            select(ConnectorSyncJob)
            .where(ConnectorSyncJob.account_id == account_id)
            .order_by(ConnectorSyncJob.started_at.desc())
            .limit(limit)
        )

        result = await self.session.execute(query)
        return list(result.scalars().all())

    # Item operations

    async def find_processed_item(
        self,
        account_id: UUID,
        source_item_id: str,
        content_hash: str,
    ) -> Optional[ConnectorSyncItem]:
        """Look up the dedup key among processed items."""
        query = (
            select(ConnectorSyncItem)
            .where(
                and_(
                    ConnectorSyncItem.account_id == account_id,
                    ConnectorSyncItem.source_item_id == source_item_id,
                    ConnectorSyncItem.content_hash == content_hash,
                    ConnectorSyncItem.status == SyncItemStatus.PROCESSED,
                )
            )
            .limit(1)
        )

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def add_item(
        self,
        job: ConnectorSyncJob,
        source_item_id: str,
        source_path: Optional[str],
        content_hash: Optional[str],
        status: SyncItemStatus,
        document_id: Optional[UUID] = None,
        error_message: Optional[str] = None,
    ) -> ConnectorSyncItem:
        """Record an item outcome."""
        item = ConnectorSyncItem(
            job_id=job.id,
            account_id=job.account_id,
            owner_id=job.owner_id,
            source_item_id=source_item_id,
            source_path=source_path,
            content_hash=content_hash,
            status=status,
            document_id=document_id,
            error_message=error_message,
        )

        self.session.add(item)
        await self.session.flush()
        return item

    async def claim_item(
        self,
        job: ConnectorSyncJob,
        source_item_id: str,
        source_path: Optional[str],
        content_hash: str,
    ) -> Optional[ConnectorSyncItem]:
        """
        Claim a dedup key by inserting a processed item inside a savepoint.

        Returns None when another run already holds the key.
        """
        item = ConnectorSyncItem(
            job_id=job.id,
            account_id=job.account_id,
            owner_id=job.owner_id,
            source_item_id=source_item_id,
            source_path=source_path,
            content_hash=content_hash,
            status=SyncItemStatus.PROCESSED,
        )

        try:
            async with self.session.begin_nested():
                self.session.add(item)
                await self.session.flush()
        except IntegrityError:
            logger.info(f"Dedup key for {source_item_id} already claimed")
            return None

        return item

    async def update_item(
        self,
        item_id: UUID,
        status: SyncItemStatus,
        document_id: Optional[UUID] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        """Update an item's outcome."""
        values: dict[str, Any] = {
            "status": status,
            "error_message": error_message,
        }
        if document_id:
            values["document_id"] = document_id

        stmt = (
            update(ConnectorSyncItem)
            .where(ConnectorSyncItem.id == item_id)
            .values(**values)
        )

        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def list_items(self, job_id: UUID) -> list[ConnectorSyncItem]:
        """List a job's items in insertion order."""
        query = (
            select(ConnectorSyncItem)
            .where(ConnectorSyncItem.job_id == job_id)
            .order_by(ConnectorSyncItem.created_at)
        )

        result = await self.session.execute(query)
        return list(result.scalars().all())
