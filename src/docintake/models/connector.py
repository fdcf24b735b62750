"""
Connector Models
================
Remote file-store accounts and the job/item trail of each sync run.
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
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from .document import Base, enum_values


class ConnectorProvider(str, Enum):
    """Supported remote file-store providers."""
    SHAREPOINT = "sharepoint"
    GOOGLE_DRIVE = "google_drive"


class SyncJobStatus(str, Enum):
    """Status of a sync run. Terminal once finished."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncItemStatus(str, Enum):
    """Outcome for one candidate file."""
    PROCESSED = "processed"
    SKIPPED = "skipped"
    FAILED = "failed"


class ConnectorAccount(Base):
    """
    Credentialed link to a remote file store.

    Credentials are stored as a Fernet token of a JSON object and only
    decrypted for the duration of a sync.
    """
    __tablename__ = "connector_accounts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    owner_id = Column(String(100), nullable=False, index=True)
    provider = Column(
        SQLEnum(ConnectorProvider, name="connector_provider", values_callable=enum_values),
        nullable=False,
    )
    display_name = Column(String(200))

    encrypted_credentials = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_sync_at = Column(DateTime)

    jobs = relationship("ConnectorSyncJob", back_populates="account")

    __table_args__ = (
        Index("ix_connector_accounts_owner_provider", "owner_id", "provider", "is_active"),
    )

    def to_dict(self) -> dict:
        """Convert to dictionary. Credentials are never included."""
        return {
            "id": str(self.id),
            "owner_id": self.owner_id,
            "provider": self.provider.value if self.provider else None,
            "display_name": self.display_name,
            "is_active": self.is_active,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
        }


class ConnectorSyncJob(Base):
    """One sync run against one connector account."""
    __tablename__ = "connector_sync_jobs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    account_id = Column(UUID(as_uuid=True), ForeignKey("connector_accounts.id", ondelete="CASCADE"), nullable=False)
    owner_id = Column(String(100), nullable=False, index=True)
    provider = Column(
        SQLEnum(ConnectorProvider, name="connector_provider", values_callable=enum_values),
        nullable=False,
    )

    status = Column(
        SQLEnum(SyncJobStatus, name="sync_job_status", values_callable=enum_values),
        default=SyncJobStatus.RUNNING,
        nullable=False,
        index=True,
    )
    stats = Column(JSONB, default=dict)  # scanned, imported, skipped, failed
    error_message = Column(Text)

    started_at = Column(DateTime, default=datetime.utcnow)
    finished_at = Column(DateTime)

    account = relationship("ConnectorAccount", back_populates="jobs")
    items = relationship("ConnectorSyncItem", back_populates="job", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_sync_jobs_account_started", "account_id", "started_at"),
    )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": str(self.id),
            "account_id": str(self.account_id),
            "provider": self.provider.value if self.provider else None,
            "status": self.status.value if self.status else None,
            "stats": self.stats or {},
            "error_message": self.error_message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class ConnectorSyncItem(Base):
    """
    One candidate file seen during a sync job.

    The dedup key (account, remote item id, fingerprint) is unique among
    processed items, so a given content version is ingested at most once.
    """
    __tablename__ = "connector_sync_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    job_id = Column(UUID(as_uuid=True), ForeignKey("connector_sync_jobs.id", ondelete="CASCADE"), nullable=False)
    account_id = Column(UUID(as_uuid=True), ForeignKey("connector_accounts.id", ondelete="CASCADE"), nullable=False)
    owner_id = Column(String(100), nullable=False)

    source_item_id = Column(String(500), nullable=False)
    source_path = Column(String(1000))
    content_hash = Column(String(64))

    document_id = Column(UUID(as_uuid=True), ForeignKey("documents.id", ondelete="SET NULL"))
    status = Column(
        SQLEnum(SyncItemStatus, name="sync_item_status", values_callable=enum_values),
        nullable=False,
    )
    error_message = Column(Text)

    created_at = Column(DateTime, default=datetime.utcnow)

    job = relationship("ConnectorSyncJob", back_populates="items")

    __table_args__ = (
        Index(
            "uq_sync_items_dedup_key",
            "account_id",
            "source_item_id",
            "content_hash",
            unique=True,
            postgresql_where=text("status = 'processed'"),
        ),
        Index("ix_sync_items_job_status", "job_id", "status"),
    )
