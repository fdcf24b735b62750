"""
Intake Models Package
=====================
Database models for the document ledger, sessions, connectors, and inbox.
"""

from .document import (
    AuditLogEntry,
    Base,
    Document,
    DocumentStatus,
    IntakeSource,
)
from .processing_session import ProcessingSession, SessionStatus
from .connector import (
    ConnectorAccount,
    ConnectorProvider,
    ConnectorSyncItem,
    ConnectorSyncJob,
    SyncItemStatus,
    SyncJobStatus,
)
from .inbox import EmailLog, EmailLogStatus, InboxSettings

__all__ = [
    "AuditLogEntry",
    "Base",
    "Document",
    "DocumentStatus",
    "IntakeSource",
    "ProcessingSession",
    "SessionStatus",
    "ConnectorAccount",
    "ConnectorProvider",
    "ConnectorSyncItem",
    "ConnectorSyncJob",
    "SyncItemStatus",
    "SyncJobStatus",
    "EmailLog",
    "EmailLogStatus",
    "InboxSettings",
]
