"""
Blob Auto-Fetch Scan
====================
Imports new files from configured Azure Blob folders. Meant to be
re-invoked by an external scheduler; each run only imports blobs whose
path and filename are not already in the ledger.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..connectors.blob_source import AzureBlobSource, BlobObject
from ..exceptions import IngestionError
from ..fingerprint import compute_fingerprint
from ..models.document import DocumentStatus, IntakeSource
from ..repositories.document_repository import DocumentRepository
from ..storage.object_store import ObjectStore, intake_storage_path
from .audit import AuditAction, AuditLogger

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    scanned: int = 0
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "imported": self.imported,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": list(self.errors),
        }


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class BlobScanService:
    """Scheduled blob-folder intake path."""

    def __init__(
        self,
        session: AsyncSession,
        object_store: ObjectStore,
        source: AzureBlobSource,
    ):
        self.session = session
        self.object_store = object_store
        self.source = source
        self.documents = DocumentRepository(session)
        self.audit = AuditLogger(session)

    def _is_supported(self, blob: BlobObject) -> bool:
        name = blob.filename.lower()
        return any(name.endswith(f".{ext}") for ext in self.source.config.allowed_extensions)

    async def scan(self, owner_id: str, folders: Iterable[str]) -> ScanResult:
        """
        Scan folders and import blobs not yet in the owner's ledger.

        Listing failures propagate; per-blob failures are counted and the
        scan continues.
        """
        result = ScanResult()
        known_paths, known_filenames = await self.documents.known_sources(owner_id)

        for folder in folders:
            prefix = folder.strip("/")
            blobs = await self.source.list_blobs(f"{prefix}/" if prefix else None)

            for blob in blobs:
                if not self._is_supported(blob):
                    continue
                result.scanned += 1

                if blob.key in known_paths or blob.filename in known_filenames:
                    result.skipped += 1
                    continue

                try:
                    imported = await self._import_blob(owner_id, folder, blob)
                except IngestionError as e:
                    logger.error(f"Blob import failed for {blob.key}: {e}")
                    result.failed += 1
                    result.errors.append(f"{blob.key}: {e}")
                    continue

                if imported:
                    result.imported += 1
                    known_paths.add(blob.key)
                    known_filenames.add(blob.filename)
                else:
                    result.skipped += 1

                await self.session.commit()

        logger.info(
            f"Blob scan for {owner_id}: imported={result.imported} "
            f"skipped={result.skipped} failed={result.failed}"
        )
        return result

    async def _import_blob(self, owner_id: str, folder: str, blob: BlobObject) -> bool:
        data = await self.source.download(blob.key)
        fingerprint = compute_fingerprint(data)

        if await self.documents.find_by_content_hash(owner_id, fingerprint):
            logger.info(f"Skipping {blob.key}, identical content already imported")
            return False

        content_type = blob.content_type or "application/pdf"
        storage_path = intake_storage_path(owner_id, blob.filename)
        await self.object_store.upload(storage_path, data, content_type)

        document = await self.documents.create_unique(
            owner_id,
            blob.filename,
            storage_path,
            mime_type=content_type,
            file_size=len(data),
            content_hash=fingerprint,
            status=DocumentStatus.UPLOADED,
            source=IntakeSource.BLOB_SCAN,
            source_path=blob.key,
            source_modified_at=_naive_utc(blob.last_modified),
            extracted_data={
                "source": IntakeSource.BLOB_SCAN.value,
                "original_blob_path": blob.key,
                "source_folder": folder,
                "auto_fetched_at": datetime.utcnow().isoformat(),
            },
        )
        if document is None:
            return False

        await self.audit.log(
            owner_id=owner_id,
            action=AuditAction.DOCUMENT_UPLOADED,
            document_id=document.id,
            description=f"Fetched {blob.key} from blob storage",
        )
        return True
