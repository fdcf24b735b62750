"""
Processing Session Models
=========================
A processing session is one operator-started batch of extractions.
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SQLEnum,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID

from .document import Base, enum_values


class SessionStatus(str, Enum):
    """Status of a processing session. Only ACTIVE is non-terminal."""
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProcessingSession(Base):
    """
    Processing session tracking.

    ``document_ids`` is captured at creation and never rewritten. At most one
    session per owner may be active at a time.
    """
    __tablename__ = "processing_sessions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    owner_id = Column(String(100), nullable=False, index=True)

    status = Column(
        SQLEnum(SessionStatus, name="session_status", values_callable=enum_values),
        default=SessionStatus.ACTIVE,
        nullable=False,
    )
    document_ids = Column(JSONB, nullable=False, default=list)

    # Progress
    total_documents = Column(Integer, default=0)
    processed_documents = Column(Integer, default=0)
    failed_documents = Column(Integer, default=0)

    # Extraction options
    model_id = Column(String(100))
    custom_instructions = Column(Text)

    started_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime)
    cancelled_at = Column(DateTime)

    __table_args__ = (
        Index(
            "uq_processing_sessions_one_active",
            "owner_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
        ),
        Index("ix_sessions_owner_started", "owner_id", "started_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status != SessionStatus.ACTIVE

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": str(self.id),
            "owner_id": self.owner_id,
            "status": self.status.value if self.status else None,
            "document_ids": list(self.document_ids or []),
            "progress": {
                "total": self.total_documents,
                "processed": self.processed_documents,
                "failed": self.failed_documents,
            },
            "model_id": self.model_id,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
        }
