"""
Document Repository
===================
Repository pattern implementation for the document ledger.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.document import AuditLogEntry, Document, DocumentStatus

logger = logging.getLogger(__name__)


class DocumentRepository:
    """
    Repository for document ledger operations.

    Never commits; callers own the transaction boundary.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        owner_id: str,
        filename: str,
        storage_path: str,
        **kwargs,
    ) -> Document:
        """Create a new document record."""
        document = Document(
            owner_id=owner_id,
            filename=filename,
            storage_path=storage_path,
            **kwargs,
        )

        self.session.add(document)
        await self.session.flush()

        logger.info(f"Created document {document.id}: {filename}")
        return document

    async def create_unique(
        self,
        owner_id: str,
        filename: str,
        storage_path: str,
        **kwargs,
    ) -> Optional[Document]:
        """
        Create a document inside a savepoint.

        Returns None when the fingerprint uniqueness constraint rejects the
        row, leaving the outer transaction usable.
        """
        document = Document(
            owner_id=owner_id,
            filename=filename,
            storage_path=storage_path,
            **kwargs,
        )

        try:
            async with self.session.begin_nested():
                self.session.add(document)
                await self.session.flush()
        except IntegrityError:
            logger.info(f"Fingerprint already in ledger for {owner_id}: {filename}")
            return None

        logger.info(f"Created document {document.id}: {filename}")
        return document

    async def get_by_id(
        self,
        document_id: UUID,
        owner_id: Optional[str] = None,
    ) -> Optional[Document]:
        """Get document by ID, optionally scoped to an owner."""
        query = select(Document).where(Document.id == document_id)
        if owner_id:
            query = query.where(Document.owner_id == owner_id)

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_many(
        self,
        owner_id: str,
        document_ids: Iterable[UUID],
    ) -> list[Document]:
        """Get the owner's documents among the given ids."""
        ids = list(document_ids)
        if not ids:
            return []

        query = select(Document).where(
            and_(
                Document.owner_id == owner_id,
                Document.id.in_(ids),
            )
        )

        result = await self.session.execute(query)
        return list(result.scalars().all())

    # Duplicate lookups (non-archived only)

    async def find_by_content_hash(
        self,
        owner_id: str,
        content_hash: str,
        exclude_id: Optional[UUID] = None,
    ) -> Optional[Document]:
        """Get the newest non-archived document with this fingerprint."""
        query = select(Document).where(
            and_(
                Document.owner_id == owner_id,
                Document.content_hash == content_hash,
                Document.archived == False,
            )
        )
        if exclude_id:
            query = query.where(Document.id != exclude_id)

        query = query.order_by(Document.created_at.desc()).limit(1)

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_by_filename(
        self,
        owner_id: str,
        filename: str,
        exclude_id: Optional[UUID] = None,
    ) -> Optional[Document]:
        """Get the newest non-archived document with this filename."""
        query = select(Document).where(
            and_(
                Document.owner_id == owner_id,
                Document.filename == filename,
                Document.archived == False,
            )
        )
        if exclude_id:
            query = query.where(Document.id != exclude_id)

        query = query.order_by(Document.created_at.desc()).limit(1)

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def recent_documents(
        self,
        owner_id: str,
        limit: int,
        exclude_id: Optional[UUID] = None,
    ) -> list[Document]:
        """Get the owner's most recent non-archived documents."""
        query = select(Document).where(
            and_(
                Document.owner_id == owner_id,
                Document.archived == False,
            )
        )
        if exclude_id:
            query = query.where(Document.id != exclude_id)

        query = query.order_by(Document.created_at.desc()).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def known_sources(self, owner_id: str) -> tuple[set[str], set[str]]:
        """Get (source paths, filenames) already present for the owner."""
        query = select(Document.source_path, Document.filename).where(
            Document.owner_id == owner_id
        )

        result = await self.session.execute(query)
        paths: set[str] = set()
        filenames: set[str] = set()
        for source_path, filename in result.all():
            if source_path:
                paths.add(source_path)
            if filename:
                filenames.add(filename)
        return paths, filenames

    # Status transitions

    async def mark_processing(
        self,
        owner_id: str,
        document_ids: Iterable[UUID],
    ) -> int:
        """Move uploaded documents to processing. Returns rows changed."""
        ids = list(document_ids)
        if not ids:
            return 0

        stmt = (
            update(Document)
            .where(
                and_(
                    Document.owner_id == owner_id,
                    Document.id.in_(ids),
                    Document.status == DocumentStatus.UPLOADED,
                )
            )
            .values(status=DocumentStatus.PROCESSING, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )

        result = await self.session.execute(stmt)
        return result.rowcount

    async def revert_processing(
        self,
        owner_id: str,
        document_ids: Iterable[UUID],
    ) -> int:
        """
        Move documents still in processing back to uploaded.

        Documents already resolved (approved, needs_review, error, ...) are
        left untouched.
        """
        ids = list(document_ids)
        if not ids:
            return 0

        stmt = (
            update(Document)
            .where(
                and_(
                    Document.owner_id == owner_id,
                    Document.id.in_(ids),
                    Document.status == DocumentStatus.PROCESSING,
                )
            )
            .values(status=DocumentStatus.UPLOADED, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )

        result = await self.session.execute(stmt)
        return result.rowcount

    async def update_status(
        self,
        document_id: UUID,
        status: DocumentStatus,
        extracted_data: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Update document status and, when given, its payload."""
        values: dict[str, Any] = {
            "status": status,
            "updated_at": datetime.utcnow(),
        }
        if extracted_data is not None:
            values["extracted_data"] = extracted_data

        stmt = (
            update(Document)
            .where(Document.id == document_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def mark_duplicate(
        self,
        document_id: UUID,
        duplicate_of_id: UUID,
    ) -> bool:
        """Flag a document as a duplicate of another."""
        stmt = (
            update(Document)
            .where(Document.id == document_id)
            .values(
                is_duplicate=True,
                duplicate_of_id=duplicate_of_id,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        result = await self.session.execute(stmt)
        return result.rowcount > 0

    # Audit logging

    async def log_action(
        self,
        owner_id: str,
        action: str,
        document_id: Optional[UUID] = None,
        description: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> AuditLogEntry:
        """Record an audit event."""
        entry = AuditLogEntry(
            owner_id=owner_id,
            document_id=document_id,
            action=action,
            description=description,
            details=details or {},
        )

        self.session.add(entry)
        await self.session.flush()

        return entry

    async def get_audit_entries(
        self,
        owner_id: str,
        document_id: Optional[UUID] = None,
        action: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditLogEntry]:
        """Get audit entries with filtering."""
        query = select(AuditLogEntry).where(AuditLogEntry.owner_id == owner_id)

        if document_id:
            query = query.where(AuditLogEntry.document_id == document_id)
        if action:
            query = query.where(AuditLogEntry.action == action)

        query = query.order_by(AuditLogEntry.created_at.desc()).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())
