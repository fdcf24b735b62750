"""
Batch Runner
============
Runs extraction over a set of documents one at a time, reporting progress
to the session manager and checking for cancellation between documents.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..config import DetectionConfig, ProcessingConfig
from ..exceptions import SessionNotFoundError, ValidationError
from ..models.document import Document, DocumentStatus
from ..repositories.document_repository import DocumentRepository
from ..storage.object_store import ObjectStore
from .audit import AuditAction, AuditLogger
from .duplicate_detector import DuplicateDetector, MatchTier
from .extraction import ExtractionService
from .session_manager import SessionManager, as_uuids

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag checked between documents."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def poll(self) -> bool:
        """Hook for subclasses that observe an external signal."""
        return False

    async def is_cancelled(self) -> bool:
        if self._cancelled:
            return True
        if await self.poll():
            self._cancelled = True
        return self._cancelled


class SessionCancellationToken(CancellationToken):
    """Token that also trips when the processing session is cancelled."""

    def __init__(self, manager: SessionManager, session_id: UUID):
        super().__init__()
        self.manager = manager
        self.session_id = session_id

    async def poll(self) -> bool:
        return await self.manager.is_cancelled(self.session_id)


@dataclass
class DocumentOutcome:
    document_id: UUID
    status: DocumentStatus
    quality_score: Optional[float] = None
    duplicate_of_id: Optional[UUID] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "document_id": str(self.document_id),
            "status": self.status.value,
            "quality_score": self.quality_score,
            "duplicate_of_id": str(self.duplicate_of_id) if self.duplicate_of_id else None,
            "error": self.error,
        }


@dataclass
class BatchRunResult:
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False
    reverted: int = 0
    outcomes: list[DocumentOutcome] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
            "reverted": self.reverted,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


class BatchRunner:
    """
    Sequential extraction runner.

    Each document is committed on its own so progress and partial results
    survive a runner that is terminated mid-batch.

    Args:
        session: Database session
        object_store: Where document bytes live
        extraction: External extraction service
        processing_config: Auto-approve threshold
        detection_config: Duplicate re-check tolerances
    """

    def __init__(
        self,
        session: AsyncSession,
        object_store: ObjectStore,
        extraction: ExtractionService,
        processing_config: Optional[ProcessingConfig] = None,
        detection_config: Optional[DetectionConfig] = None,
    ):
        self.session = session
        self.object_store = object_store
        self.extraction = extraction
        self.config = processing_config or ProcessingConfig()
        self.documents = DocumentRepository(session)
        self.detector = DuplicateDetector(session, detection_config)
        self.session_manager = SessionManager(session)
        self.audit = AuditLogger(session)

    async def run(
        self,
        owner_id: str,
        document_ids: Iterable[UUID],
        session_id: Optional[UUID] = None,
        token: Optional[CancellationToken] = None,
    ) -> BatchRunResult:
        """
        Process the owner's uploaded documents among ``document_ids``.

        Raises:
            SessionNotFoundError: ``session_id`` does not belong to the owner
            ValidationError: A document is outside the session, or none is in uploaded status
        """
        requested = list(dict.fromkeys(document_ids))
        if token is None:
            token = (
                SessionCancellationToken(self.session_manager, session_id)
                if session_id else CancellationToken()
            )

        tenant_config: dict[str, Any] = {}
        if session_id:
            processing_session = await self.session_manager.get(session_id, owner_id=owner_id)
            if not processing_session:
                raise SessionNotFoundError(f"Session not found: {session_id}")

            # A session's cancel can only revert its own documents.
            session_ids = as_uuids(processing_session.document_ids or [])
            if not requested:
                requested = session_ids
            members = set(session_ids)
            outside = [doc_id for doc_id in requested if doc_id not in members]
            if outside:
                raise ValidationError(
                    f"Documents not in session {session_id}: "
                    + ", ".join(str(doc_id) for doc_id in outside)
                )

            tenant_config = {
                "model_id": processing_session.model_id,
                "custom_instructions": processing_session.custom_instructions,
            }

        found = {doc.id: doc for doc in await self.documents.get_many(owner_id, requested)}
        queue = [
            found[doc_id] for doc_id in requested
            if doc_id in found and found[doc_id].status == DocumentStatus.UPLOADED
        ]
        if not queue:
            raise ValidationError("No documents in 'uploaded' status found")

        result = BatchRunResult(skipped=len(requested) - len(queue))
        await self.documents.mark_processing(owner_id, [doc.id for doc in queue])
        await self.session.commit()

        logger.info(f"Running batch of {len(queue)} documents for {owner_id}")

        for index, document in enumerate(queue):
            if await token.is_cancelled():
                remaining = [doc.id for doc in queue[index:]]
                result.reverted = await self.documents.revert_processing(owner_id, remaining)
                await self.session.commit()
                result.cancelled = True
                logger.info(
                    f"Batch cancelled after {result.processed} documents, "
                    f"reverted {result.reverted}"
                )
                break

            outcome = await self._process_document(owner_id, document, tenant_config)
            result.outcomes.append(outcome)
            result.processed += 1
            if outcome.status == DocumentStatus.ERROR:
                result.failed += 1
            await self.session.commit()

            if session_id:
                active = await self.session_manager.update_progress(
                    session_id, result.processed, result.failed
                )
                await self.session.commit()
                if not active:
                    token.cancel()

        if session_id and not result.cancelled:
            await self.session_manager.complete(session_id)
            await self.session.commit()

        return result

    async def _process_document(
        self,
        owner_id: str,
        document: Document,
        tenant_config: dict[str, Any],
    ) -> DocumentOutcome:
        try:
            data = await self.object_store.download(document.storage_path)
            extraction = await self.extraction.extract(data, document.filename, tenant_config)

            score = extraction.quality_score
            status = (
                DocumentStatus.APPROVED
                if score >= self.config.auto_approve_threshold
                else DocumentStatus.NEEDS_REVIEW
            )
            extracted_data = dict(document.extracted_data or {})
            extracted_data.update(extraction.fields)
            extracted_data["_validation"] = {
                "quality_score": score,
                "completeness": extraction.completeness,
                "confidence": extraction.confidence,
                "auto_approved": status == DocumentStatus.APPROVED,
            }

            await self.documents.update_status(document.id, status, extracted_data)
            await self.audit.log(
                owner_id=owner_id,
                action=AuditAction.DOCUMENT_PROCESSED,
                document_id=document.id,
                description=f"Processed with quality score {score}",
                details={"quality_score": score, "status": status.value},
            )

            outcome = DocumentOutcome(document.id, status, quality_score=score)
            if not document.is_duplicate:
                outcome.duplicate_of_id = await self._recheck_duplicate(
                    owner_id, document, extraction.fields
                )
            return outcome

        except Exception as e:
            logger.error(f"Processing failed for document {document.id}: {e}")
            await self.documents.update_status(
                document.id,
                DocumentStatus.ERROR,
                {
                    "_error": str(e),
                    "_errorTimestamp": datetime.utcnow().isoformat(),
                },
            )
            await self.audit.log(
                owner_id=owner_id,
                action=AuditAction.DOCUMENT_PROCESSING_FAILED,
                document_id=document.id,
                description=str(e),
            )
            return DocumentOutcome(document.id, DocumentStatus.ERROR, error=str(e))

    async def _recheck_duplicate(
        self,
        owner_id: str,
        document: Document,
        fields: dict[str, Any],
    ) -> Optional[UUID]:
        duplicate = await self.detector.check(
            owner_id,
            fingerprint=document.content_hash,
            key_fields=fields,
            exclude_document_id=document.id,
        )
        if not duplicate.is_duplicate:
            return None

        # Medium matches are recorded for review but leave the document unflagged.
        flagged = duplicate.tier in (MatchTier.EXACT, MatchTier.HIGH)
        if flagged:
            await self.documents.mark_duplicate(document.id, duplicate.matched_document_id)
        await self.audit.log(
            owner_id=owner_id,
            action=AuditAction.DOCUMENT_DUPLICATE_DETECTED,
            document_id=document.id,
            description=duplicate.reason,
            details={**duplicate.to_dict(), "flagged": flagged},
        )
        return duplicate.matched_document_id if flagged else None
