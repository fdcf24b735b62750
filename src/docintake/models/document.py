"""
Document Models
===============
SQLAlchemy models for the document ledger and its audit trail.
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def enum_values(enum_cls) -> list[str]:
    """Persist enum values (not member names) so partial indexes can match them."""
    return [member.value for member in enum_cls]


class DocumentStatus(str, Enum):
    """Document lifecycle status."""
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    NEEDS_REVIEW = "needs_review"
    APPROVED = "approved"
    ERROR = "error"
    EXPORTED = "exported"
    REJECTED = "rejected"


class IntakeSource(str, Enum):
    """Path through which a document entered the ledger."""
    UPLOAD = "upload"
    EMAIL = "email"
    BLOB_SCAN = "blob_scan"
    CONNECTOR_SYNC = "connector_sync"


class Document(Base):
    """
    Core document model.

    Bytes live in object storage; the row carries status, fingerprint,
    provenance, and the extracted-field payload. Archival is expressed only
    through the ``archived`` flag.
    """
    __tablename__ = "documents"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    owner_id = Column(String(100), nullable=False, index=True)

    # File information
    filename = Column(String(500), nullable=False)
    storage_path = Column(String(1000), nullable=False)
    mime_type = Column(String(100))
    file_size = Column(Integer, default=0)

    # Fingerprint, only set when bytes were hashed at intake
    content_hash = Column(String(64), index=True)

    # Lifecycle
    status = Column(
        SQLEnum(DocumentStatus, name="document_status", values_callable=enum_values),
        default=DocumentStatus.UPLOADED,
        nullable=False,
        index=True,
    )
    archived = Column(Boolean, default=False, nullable=False)

    # Provenance
    source = Column(SQLEnum(IntakeSource, name="intake_source", values_callable=enum_values))
    source_path = Column(String(1000))
    source_item_id = Column(String(500))
    source_modified_at = Column(DateTime)

    # Extraction payload
    extracted_data = Column(JSONB, default=dict)

    # Duplicate flagging; is_duplicate also lifts the fingerprint uniqueness rule
    is_duplicate = Column(Boolean, default=False, nullable=False)
    duplicate_of_id = Column(UUID(as_uuid=True), ForeignKey("documents.id", ondelete="SET NULL"))

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    audit_entries = relationship("AuditLogEntry", back_populates="document")

    __table_args__ = (
        Index(
            "uq_documents_owner_content_hash",
            "owner_id",
            "content_hash",
            unique=True,
            postgresql_where=text(
                "archived = false AND is_duplicate = false AND content_hash IS NOT NULL"
            ),
        ),
        Index("ix_documents_owner_created", "owner_id", "created_at"),
        Index("ix_documents_owner_status", "owner_id", "status"),
        Index("ix_documents_owner_filename", "owner_id", "filename"),
    )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": str(self.id),
            "owner_id": self.owner_id,
            "filename": self.filename,
            "status": self.status.value if self.status else None,
            "archived": self.archived,
            "content_hash": self.content_hash,
            "storage_path": self.storage_path,
            "source": self.source.value if self.source else None,
            "source_path": self.source_path,
            "is_duplicate": self.is_duplicate,
            "duplicate_of_id": str(self.duplicate_of_id) if self.duplicate_of_id else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class AuditLogEntry(Base):
    """
    Audit trail of intake and processing events.

    Rows are written best-effort and never block the flow that emits them.
    """
    __tablename__ = "audit_log"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    owner_id = Column(String(100), nullable=False, index=True)
    document_id = Column(UUID(as_uuid=True), ForeignKey("documents.id", ondelete="SET NULL"))

    action = Column(String(50), nullable=False)  # e.g. document.uploaded
    description = Column(Text)
    details = Column(JSONB, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    document = relationship("Document", back_populates="audit_entries")

    __table_args__ = (
        Index("ix_audit_owner_created", "owner_id", "created_at"),
        Index("ix_audit_action_created", "action", "created_at"),
    )
