"""
Connector Sync Engine
=====================
Pulls files from a remote file store into the document ledger exactly once
per content version.

The dedup key is (account, remote item id, fingerprint). A key is claimed
by inserting a ``processed`` sync item under a partial unique index, so a
concurrent run that loses the race records ``skipped`` instead of creating
a second document. Items that failed hold no claim and are retried by the
next run.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import ConnectorConfig
from ..connectors.credentials import ConnectorCredentials, CredentialCipher
from ..connectors.file_store import RemoteEntry, RemoteFileStore, create_file_store
from ..exceptions import ConfigurationError
from ..fingerprint import compute_fingerprint
from ..models.connector import (
    ConnectorAccount,
    ConnectorProvider,
    ConnectorSyncJob,
    SyncItemStatus,
    SyncJobStatus,
)
from ..models.document import DocumentStatus, IntakeSource
from ..repositories.connector_repository import ConnectorRepository
from ..repositories.document_repository import DocumentRepository
from ..storage.object_store import ObjectStore
from .audit import AuditAction, AuditLogger

logger = logging.getLogger(__name__)

FileStoreFactory = Callable[..., RemoteFileStore]


@dataclass
class SyncResult:
    """Counters for one sync run."""
    job_id: UUID
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    scanned: int = 0

    @property
    def status(self) -> SyncJobStatus:
        if self.failed > 0 and self.imported == 0:
            return SyncJobStatus.FAILED
        return SyncJobStatus.COMPLETED

    def stats(self) -> dict[str, int]:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "failed": self.failed,
            "scanned": self.scanned,
        }

    def to_dict(self) -> dict:
        return {"job_id": str(self.job_id), "status": self.status.value, **self.stats()}


def connector_storage_path(owner_id: str, provider: ConnectorProvider, filename: str) -> str:
    """Object key for a synced file: ``{owner}/connector-{provider}-{ms}-{uuid}.{ext}``."""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if not ext:
        ext = "bin"
    epoch_ms = int(time.time() * 1000)
    return f"{owner_id}/connector-{provider.value}-{epoch_ms}-{uuid.uuid4()}.{ext}"


class SyncEngine:
    """
    Idempotent connector sync.

    Args:
        session: Database session; the engine commits per item
        object_store: Destination for downloaded bytes
        cipher: Decrypts stored account credentials
        config: Connector endpoints and timeouts
        store_factory: Builds the remote file store for a provider
        http_client: Shared HTTP client handed to file stores
    """

    def __init__(
        self,
        session: AsyncSession,
        object_store: ObjectStore,
        cipher: Optional[CredentialCipher] = None,
        config: Optional[ConnectorConfig] = None,
        store_factory: FileStoreFactory = create_file_store,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.session = session
        self.object_store = object_store
        self.cipher = cipher
        self.config = config or ConnectorConfig()
        self.store_factory = store_factory
        self.http_client = http_client
        self.connectors = ConnectorRepository(session)
        self.documents = DocumentRepository(session)
        self.audit = AuditLogger(session)

    def _require_cipher(self) -> CredentialCipher:
        if self.cipher is None:
            self.cipher = CredentialCipher(self.config.credentials_key)
        return self.cipher

    async def register_account(
        self,
        owner_id: str,
        provider: ConnectorProvider,
        credentials: ConnectorCredentials,
        display_name: Optional[str] = None,
        verify: bool = True,
    ) -> ConnectorAccount:
        """
        Store encrypted credentials for a provider.

        With ``verify`` the credentials must exchange a token and list the
        root folder first.
        """
        if verify:
            store = self._build_store(provider, credentials)
            try:
                ok, message = await store.test_connection()
            finally:
                await store.close()
            if not ok:
                raise ConfigurationError(f"Connection test failed: {message}")

        encrypted = self._require_cipher().encrypt(credentials)
        account = await self.connectors.upsert_account(
            owner_id, provider, encrypted, display_name=display_name
        )
        await self.session.commit()
        return account

    def _build_store(
        self,
        provider: ConnectorProvider,
        credentials: ConnectorCredentials,
    ) -> RemoteFileStore:
        return self.store_factory(
            provider,
            credentials,
            config=self.config,
            http_client=self.http_client,
        )

    async def sync(
        self,
        owner_id: str,
        provider: ConnectorProvider,
        credentials: Optional[ConnectorCredentials] = None,
    ) -> SyncResult:
        """
        Run one sync of the owner's account for ``provider``.

        Args:
            owner_id: Tenant
            provider: Remote provider
            credentials: Explicit credentials; defaults to the account's stored ones

        Returns:
            SyncResult with job id and counters

        Raises:
            ConfigurationError: No active account, or credentials cannot be read
            ConnectorError: Token exchange or listing failed; the job is marked failed
        """
        account = await self.connectors.get_active_account(owner_id, provider)
        if not account:
            raise ConfigurationError(f"No active {provider.value} connector for {owner_id}")

        if credentials is None:
            credentials = self._require_cipher().decrypt(account.encrypted_credentials)

        job = await self.connectors.create_job(account)
        await self.session.commit()

        result = SyncResult(job_id=job.id)
        store = self._build_store(provider, credentials)

        logger.info(f"Starting {provider.value} sync job {job.id} for {owner_id}")

        try:
            await store.get_access_token()
            async for entry in store.walk():
                result.scanned += 1
                await self._sync_entry(owner_id, provider, job, store, entry, result)
                await self.session.commit()
        except Exception as e:
            logger.error(f"Sync job {job.id} failed: {e}")
            await self.session.rollback()
            await self.connectors.finish_job(
                job.id, SyncJobStatus.FAILED, result.stats(), error_message=str(e)
            )
            await self.session.commit()
            raise
        finally:
            await store.close()

        status = result.status
        await self.connectors.finish_job(job.id, status, result.stats())
        await self.connectors.record_sync(account.id)
        await self.audit.log(
            owner_id=owner_id,
            action=AuditAction.CONNECTOR_SYNCED,
            description=f"{provider.value} sync {status.value}",
            details=result.to_dict(),
        )
        await self.session.commit()

        logger.info(
            f"Sync job {job.id} {status.value}: imported={result.imported} "
            f"skipped={result.skipped} failed={result.failed}"
        )
        return result

    async def _sync_entry(
        self,
        owner_id: str,
        provider: ConnectorProvider,
        job: ConnectorSyncJob,
        store: RemoteFileStore,
        entry: RemoteEntry,
        result: SyncResult,
    ) -> None:
        claimed = None
        fingerprint = None

        try:
            remote = await store.download_content(entry)
            fingerprint = compute_fingerprint(remote.content)

            existing = await self.connectors.find_processed_item(
                job.account_id, entry.item_id, fingerprint
            )
            if existing:
                await self.connectors.add_item(
                    job, entry.item_id, entry.path, fingerprint,
                    SyncItemStatus.SKIPPED, document_id=existing.document_id,
                )
                result.skipped += 1
                return

            duplicate = await self.documents.find_by_content_hash(owner_id, fingerprint)
            if duplicate:
                await self.connectors.add_item(
                    job, entry.item_id, entry.path, fingerprint,
                    SyncItemStatus.SKIPPED, document_id=duplicate.id,
                )
                result.skipped += 1
                return

            claimed = await self.connectors.claim_item(job, entry.item_id, entry.path, fingerprint)
            if claimed is None:
                await self.connectors.add_item(
                    job, entry.item_id, entry.path, fingerprint, SyncItemStatus.SKIPPED,
                )
                result.skipped += 1
                return

            storage_path = connector_storage_path(owner_id, provider, entry.name)
            content_type = remote.content_type or entry.mime_type or "application/octet-stream"
            await self.object_store.upload(storage_path, remote.content, content_type)

            modified_at = remote.modified_at or entry.modified_at
            document = await self.documents.create_unique(
                owner_id=owner_id,
                filename=entry.name,
                storage_path=storage_path,
                mime_type=content_type,
                file_size=len(remote.content),
                content_hash=fingerprint,
                status=DocumentStatus.UPLOADED,
                source=IntakeSource.CONNECTOR_SYNC,
                source_path=entry.path,
                source_item_id=entry.item_id,
                source_modified_at=modified_at,
                extracted_data={
                    "source": IntakeSource.CONNECTOR_SYNC.value,
                    "connector": provider.value,
                    "source_item_id": entry.item_id,
                    "source_path": entry.path,
                    "source_modified_at": modified_at.isoformat() if modified_at else None,
                },
            )

            if document is None:
                # Another writer stored the same bytes after the check above.
                await self.object_store.delete(storage_path)
                duplicate = await self.documents.find_by_content_hash(owner_id, fingerprint)
                await self.connectors.update_item(
                    claimed.id,
                    SyncItemStatus.SKIPPED,
                    document_id=duplicate.id if duplicate else None,
                )
                result.skipped += 1
                return

            await self.connectors.update_item(claimed.id, SyncItemStatus.PROCESSED, document_id=document.id)
            result.imported += 1

        except Exception as e:
            logger.warning(f"Sync item {entry.path} failed: {e}")
            if claimed is not None:
                await self.connectors.update_item(
                    claimed.id, SyncItemStatus.FAILED, error_message=str(e)
                )
            else:
                await self.connectors.add_item(
                    job, entry.item_id, entry.path, fingerprint,
                    SyncItemStatus.FAILED, error_message=str(e),
                )
            result.failed += 1
