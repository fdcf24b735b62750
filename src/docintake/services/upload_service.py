"""
Direct Upload
=============
Validates an uploaded file, gates it through the duplicate detector, stores
the bytes, and records the document.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..config import DetectionConfig, UploadConfig
from ..exceptions import ValidationError
from ..fingerprint import compute_fingerprint
from ..models.document import Document, DocumentStatus, IntakeSource
from ..repositories.document_repository import DocumentRepository
from ..storage.object_store import ObjectStore, intake_storage_path
from .audit import AuditAction, AuditLogger
from .duplicate_detector import DuplicateDetector, DuplicateResult, MatchTier

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    document: Document
    duplicate: DuplicateResult

    def to_dict(self) -> dict:
        return {
            "document": self.document.to_dict(),
            "duplicate": self.duplicate.to_dict(),
        }


def file_extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


class UploadService:
    """Direct upload intake path."""

    def __init__(
        self,
        session: AsyncSession,
        object_store: ObjectStore,
        config: Optional[UploadConfig] = None,
        detection_config: Optional[DetectionConfig] = None,
    ):
        self.session = session
        self.object_store = object_store
        self.config = config or UploadConfig()
        self.documents = DocumentRepository(session)
        self.detector = DuplicateDetector(session, detection_config)
        self.audit = AuditLogger(session)

    def validate(self, filename: str, data: bytes) -> None:
        """Reject empty, oversized, or unsupported files."""
        if not data:
            raise ValidationError("File is empty")

        if len(data) > self.config.max_file_size:
            max_mb = self.config.max_file_size // (1024 * 1024)
            raise ValidationError(f"File too large. Maximum size is {max_mb}MB")

        extension = file_extension(filename)
        if extension not in self.config.allowed_extensions:
            allowed = ", ".join(self.config.allowed_extensions)
            raise ValidationError(f"Unsupported file type '{extension}'. Allowed: {allowed}")

    async def upload(
        self,
        owner_id: str,
        filename: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> UploadResult:
        """
        Ingest an uploaded file.

        Exact duplicates are still recorded, flagged with ``is_duplicate``
        and pointing at the original.

        Raises:
            ValidationError: File rejected
            StorageError: Bytes could not be stored
        """
        self.validate(filename, data)

        fingerprint = compute_fingerprint(data)
        duplicate = await self.detector.check(owner_id, fingerprint=fingerprint, filename=filename)

        storage_path = intake_storage_path(owner_id, filename)
        await self.object_store.upload(storage_path, data, content_type)

        fields = dict(
            mime_type=content_type,
            file_size=len(data),
            content_hash=fingerprint,
            status=DocumentStatus.UPLOADED,
            source=IntakeSource.UPLOAD,
            source_path=filename,
        )

        document = None
        if duplicate.tier != MatchTier.EXACT:
            document = await self.documents.create_unique(owner_id, filename, storage_path, **fields)
            if document is None:
                # Lost a race with a concurrent upload of the same bytes
                match = await self.documents.find_by_content_hash(owner_id, fingerprint)
                if match:
                    duplicate = DuplicateResult.matched(MatchTier.EXACT, match, "Identical file content")

        if document is None:
            document = await self.documents.create(
                owner_id,
                filename,
                storage_path,
                is_duplicate=True,
                duplicate_of_id=duplicate.matched_document_id,
                **fields,
            )

        await self.audit.log(
            owner_id=owner_id,
            action=AuditAction.DOCUMENT_UPLOADED,
            document_id=document.id,
            description=f"Uploaded {filename}",
            details={"file_size": len(data), "content_hash": fingerprint},
        )
        if document.is_duplicate:
            await self.audit.log(
                owner_id=owner_id,
                action=AuditAction.DOCUMENT_DUPLICATE_DETECTED,
                document_id=document.id,
                description=duplicate.reason,
                details=duplicate.to_dict(),
            )

        await self.session.commit()
        return UploadResult(document=document, duplicate=duplicate)
