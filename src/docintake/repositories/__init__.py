"""
Intake Repositories Package
===========================
Repository pattern implementations for data access.
"""

from .document_repository import DocumentRepository
from .session_repository import ProcessingSessionRepository
from .connector_repository import ConnectorRepository
from .inbox_repository import InboxRepository

__all__ = [
    "DocumentRepository",
    "ProcessingSessionRepository",
    "ConnectorRepository",
    "InboxRepository",
]
