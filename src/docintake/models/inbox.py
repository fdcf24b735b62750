"""
Inbox Models
============
Per-owner inbound email settings and the log of received emails.
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID

from .document import Base


class EmailLogStatus(str, Enum):
    """Processing status of one inbound email."""
    PROCESSING = "processing"
    NO_ATTACHMENTS = "no_attachments"
    COMPLETED = "completed"
    FAILED = "failed"


class InboxSettings(Base):
    """Maps an inbox code (carried in the email subject) to its owner."""
    __tablename__ = "inbox_settings"

    owner_id = Column(String(100), primary_key=True)
    inbox_code = Column(String(8), nullable=False, unique=True)
    inbox_enabled = Column(Boolean, default=False, nullable=False)
    inbox_auto_process = Column(Boolean, default=False, nullable=False)


class EmailLog(Base):
    """One inbound email delivered by the webhook."""
    __tablename__ = "email_log"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    owner_id = Column(String(100), nullable=False, index=True)
    from_address = Column(String(320))
    subject = Column(Text)
    attachments_count = Column(Integer, default=0)
    documents_created = Column(Integer, default=0)
    status = Column(String(20), default=EmailLogStatus.PROCESSING.value)

    created_at = Column(DateTime, default=datetime.utcnow)
    processed_at = Column(DateTime)
