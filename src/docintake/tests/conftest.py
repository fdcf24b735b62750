"""
Pytest Configuration and Fixtures
==================================
Shared fixtures for intake tests.
"""

from contextlib import ExitStack
from dataclasses import dataclass, field
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ..services import (
    audit,
    batch_runner,
    blob_scan,
    duplicate_detector,
    inbox_service,
    session_manager,
    sync_engine,
    upload_service,
)
from .fakes import (
    FakeConnectorRepository,
    FakeDocumentRepository,
    FakeInboxRepository,
    FakeSessionRepository,
    InMemoryObjectStore,
)

SERVICE_MODULES = (
    audit,
    batch_runner,
    blob_scan,
    duplicate_detector,
    inbox_service,
    session_manager,
    sync_engine,
    upload_service,
)

OWNER = "owner-001"


@dataclass
class Ledger:
    """Shared in-memory repositories patched into every service module."""
    documents: FakeDocumentRepository = field(default_factory=FakeDocumentRepository)
    sessions: FakeSessionRepository = field(default_factory=FakeSessionRepository)
    connectors: FakeConnectorRepository = field(default_factory=FakeConnectorRepository)
    inbox: FakeInboxRepository = field(default_factory=FakeInboxRepository)


@pytest.fixture
def mock_session():
    """Mock async database session; savepoints are plain async context managers."""
    session = AsyncMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.begin_nested = MagicMock()
    return session


@pytest.fixture
def ledger():
    """Route every repository used by the services to one in-memory ledger."""
    ledger = Ledger()
    replacements = {
        "DocumentRepository": ledger.documents,
        "ProcessingSessionRepository": ledger.sessions,
        "ConnectorRepository": ledger.connectors,
        "InboxRepository": ledger.inbox,
    }

    with ExitStack() as stack:
        for module in SERVICE_MODULES:
            for name, fake in replacements.items():
                if hasattr(module, name):
                    stack.enter_context(patch.object(module, name, return_value=fake))
        yield ledger


@pytest.fixture
def object_store():
    return InMemoryObjectStore()


@pytest.fixture
def sample_pdf_content():
    """Sample PDF file content."""
    return b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog /Pages 2 0 R >>\nendobj\n"


@pytest.fixture
def invoice_fields():
    """Extracted fields of an invoice-shaped document."""
    return {
        "invoiceNumber": {"value": "INV-2024-001"},
        "supplier": {"value": "Nordic Recycling AB"},
        "totalAmount": {"value": 1250.50},
        "date": {"value": "2024-03-01"},
    }
