"""
Email Inbox Intake
==================
Handles inbound-email webhook payloads: resolves the tenant from the inbox
code in the subject and turns supported attachments into documents.
"""

import base64
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..config import InboxConfig
from ..exceptions import IngestionError
from ..fingerprint import compute_fingerprint
from ..models.document import DocumentStatus, IntakeSource
from ..repositories.document_repository import DocumentRepository
from ..repositories.inbox_repository import InboxRepository
from ..storage.object_store import ObjectStore, intake_storage_path
from .audit import AuditAction, AuditLogger

logger = logging.getLogger(__name__)

SUPPORTED_CONTENT_TYPES = ("pdf", "spreadsheet", "csv")


@dataclass
class InboxResult:
    success: bool
    message: str
    documents_created: int = 0
    duplicates_skipped: int = 0
    email_log_id: Optional[UUID] = None
    document_ids: list[UUID] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "documents_created": self.documents_created,
            "duplicates_skipped": self.duplicates_skipped,
            "email_log_id": str(self.email_log_id) if self.email_log_id else None,
            "document_ids": [str(doc_id) for doc_id in self.document_ids],
        }


def _first(mapping: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = mapping.get(key)
        if value:
            return value
    return default


class InboxService:
    """Inbound email intake path."""

    def __init__(
        self,
        session: AsyncSession,
        object_store: ObjectStore,
        config: Optional[InboxConfig] = None,
    ):
        self.session = session
        self.object_store = object_store
        self.config = config or InboxConfig()
        self.inbox = InboxRepository(session)
        self.documents = DocumentRepository(session)
        self.audit = AuditLogger(session)
        self._code_pattern = re.compile(
            rf"{re.escape(self.config.code_prefix)}-([a-z0-9]{{8}})",
            re.IGNORECASE,
        )

    def find_inbox_code(self, subject: str) -> Optional[str]:
        match = self._code_pattern.search(subject or "")
        return match.group(1).lower() if match else None

    def is_supported(self, attachment: dict[str, Any]) -> bool:
        name = str(_first(attachment, "Name", "name", "filename", default="")).lower()
        content_type = str(_first(attachment, "ContentType", "contentType", "type", default="")).lower()

        if any(name.endswith(f".{ext}") for ext in self.config.allowed_extensions):
            return True
        return any(kind in content_type for kind in SUPPORTED_CONTENT_TYPES)

    async def handle(self, payload: dict[str, Any]) -> InboxResult:
        """
        Process one inbound email.

        Unknown inbox codes and emails without usable attachments are normal
        outcomes, reported with ``success=False`` and a message.
        """
        subject = _first(payload, "Subject", "subject", default="")
        from_address = _first(payload, "From", "from", default="")
        if not from_address and isinstance(payload.get("FromFull"), dict):
            from_address = payload["FromFull"].get("Email", "")

        code = self.find_inbox_code(subject)
        if not code:
            logger.info(f"No inbox code in subject from {from_address}")
            return InboxResult(success=False, message="No inbox code found")

        settings = await self.inbox.get_settings_by_code(code)
        if not settings or not settings.inbox_enabled:
            logger.info(f"Invalid or disabled inbox code: {code}")
            return InboxResult(success=False, message="Invalid inbox code")

        owner_id = settings.owner_id
        attachments = [
            attachment
            for attachment in _first(payload, "Attachments", "attachments", default=[])
            if isinstance(attachment, dict) and self.is_supported(attachment)
        ]

        email_log = await self.inbox.create_log(owner_id, from_address, subject, len(attachments))
        if not attachments:
            await self.session.commit()
            return InboxResult(
                success=False,
                message="No valid attachments",
                email_log_id=email_log.id,
            )

        result = InboxResult(success=True, message="", email_log_id=email_log.id)

        for attachment in attachments:
            filename = _first(
                attachment, "Name", "name", "filename",
                default=f"email-{int(time.time() * 1000)}.pdf",
            )
            try:
                data = base64.b64decode(_first(attachment, "Content", "content", default=""), validate=True)
                if not data:
                    logger.warning(f"Empty attachment {filename} from {from_address}")
                    continue

                fingerprint = compute_fingerprint(data)
                if await self.documents.find_by_content_hash(owner_id, fingerprint):
                    logger.info(f"Skipping duplicate attachment {filename} for {owner_id}")
                    result.duplicates_skipped += 1
                    continue

                content_type = _first(attachment, "ContentType", "contentType", "type", default="application/pdf")
                storage_path = intake_storage_path(owner_id, filename)
                await self.object_store.upload(storage_path, data, content_type)

                document = await self.documents.create_unique(
                    owner_id,
                    filename,
                    storage_path,
                    mime_type=content_type,
                    file_size=len(data),
                    content_hash=fingerprint,
                    status=DocumentStatus.UPLOADED,
                    source=IntakeSource.EMAIL,
                    source_path=from_address,
                    extracted_data={
                        "source": IntakeSource.EMAIL.value,
                        "from": from_address,
                        "subject": subject,
                    },
                )
                if document is None:
                    result.duplicates_skipped += 1
                    continue

                result.documents_created += 1
                result.document_ids.append(document.id)
                await self.audit.log(
                    owner_id=owner_id,
                    action=AuditAction.DOCUMENT_UPLOADED,
                    document_id=document.id,
                    description=f"Received {filename} by email",
                    details={"from": from_address, "subject": subject},
                )
            except (ValueError, IngestionError) as e:
                logger.error(f"Failed to ingest attachment {filename}: {e}")

        await self.inbox.finish_log(email_log.id, result.documents_created)
        await self.session.commit()

        result.message = f"{result.documents_created} document(s) created"
        logger.info(f"Processed email from {from_address}: {result.documents_created} docs created")
        return result
