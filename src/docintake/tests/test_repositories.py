"""
Tests for Repository Implementations
====================================
Tests for DocumentRepository, ProcessingSessionRepository, ConnectorRepository,
and InboxRepository. Uses mock database sessions for unit testing.
"""

from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from ..models.connector import ConnectorSyncItem, SyncItemStatus
from ..models.document import Document, DocumentStatus
from ..models.processing_session import ProcessingSession, SessionStatus
from ..repositories.connector_repository import ConnectorRepository
from ..repositories.document_repository import DocumentRepository
from ..repositories.inbox_repository import InboxRepository
from ..repositories.session_repository import ProcessingSessionRepository


def _integrity_error() -> IntegrityError:
    return IntegrityError("INSERT", {}, Exception("duplicate key value violates unique constraint"))


def _rowcount(count: int) -> MagicMock:
    result = MagicMock()
    result.rowcount = count
    return result


def _scalar(value) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


@pytest.fixture
def mock_job():
    job = MagicMock()
    job.id = uuid4()
    job.account_id = uuid4()
    job.owner_id = "owner-001"
    return job


# =============================================================================
# DocumentRepository Tests
# =============================================================================

class TestDocumentRepository:
    """Test suite for DocumentRepository."""

    @pytest.fixture
    def repo(self, mock_session):
        return DocumentRepository(mock_session)

    @pytest.mark.asyncio
    async def test_create(self, repo, mock_session):
        document = await repo.create("owner-001", "a.pdf", "owner-001/a.pdf", content_hash="abc")

        assert isinstance(document, Document)
        assert document.content_hash == "abc"
        mock_session.add.assert_called_once_with(document)
        mock_session.flush.assert_awaited_once()
        mock_session.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_create_unique_conflict_returns_none(self, repo, mock_session):
        mock_session.flush.side_effect = _integrity_error()

        document = await repo.create_unique("owner-001", "a.pdf", "owner-001/a.pdf", content_hash="abc")

        assert document is None
        mock_session.begin_nested.assert_called_once()

    @pytest.mark.asyncio
    async def test_create_unique_success(self, repo, mock_session):
        document = await repo.create_unique("owner-001", "a.pdf", "owner-001/a.pdf")

        assert document.filename == "a.pdf"

    @pytest.mark.asyncio
    async def test_get_by_id_not_found(self, repo, mock_session):
        mock_session.execute.return_value = _scalar(None)

        assert await repo.get_by_id(uuid4(), owner_id="owner-001") is None

    @pytest.mark.asyncio
    async def test_get_many_empty_ids_skips_query(self, repo, mock_session):
        assert await repo.get_many("owner-001", []) == []
        mock_session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_mark_processing_returns_rowcount(self, repo, mock_session):
        mock_session.execute.return_value = _rowcount(2)

        changed = await repo.mark_processing("owner-001", [uuid4(), uuid4(), uuid4()])

        assert changed == 2

    @pytest.mark.asyncio
    async def test_revert_processing_empty_ids(self, repo, mock_session):
        assert await repo.revert_processing("owner-001", []) == 0
        mock_session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_status_missing_row(self, repo, mock_session):
        mock_session.execute.return_value = _rowcount(0)

        assert await repo.update_status(uuid4(), DocumentStatus.APPROVED) is False

    @pytest.mark.asyncio
    async def test_known_sources(self, repo, mock_session):
        result = MagicMock()
        result.all.return_value = [("client-a/a.pdf", "a.pdf"), (None, "b.pdf")]
        mock_session.execute.return_value = result

        paths, filenames = await repo.known_sources("owner-001")

        assert paths == {"client-a/a.pdf"}
        assert filenames == {"a.pdf", "b.pdf"}

    @pytest.mark.asyncio
    async def test_log_action(self, repo, mock_session):
        entry = await repo.log_action("owner-001", "document.uploaded", description="Uploaded a.pdf")

        assert entry.action == "document.uploaded"
        assert entry.details == {}
        mock_session.flush.assert_awaited_once()


# =============================================================================
# ProcessingSessionRepository Tests
# =============================================================================

class TestProcessingSessionRepository:
    """Test suite for ProcessingSessionRepository."""

    @pytest.fixture
    def repo(self, mock_session):
        return ProcessingSessionRepository(mock_session)

    @pytest.mark.asyncio
    async def test_create(self, repo, mock_session):
        processing_session = await repo.create("owner-001", ["d1", "d2"], model_id="model-a")

        assert isinstance(processing_session, ProcessingSession)
        assert processing_session.status == SessionStatus.ACTIVE
        assert processing_session.total_documents == 2
        assert processing_session.processed_documents == 0

    @pytest.mark.asyncio
    async def test_create_second_active_returns_none(self, repo, mock_session):
        mock_session.flush.side_effect = _integrity_error()

        assert await repo.create("owner-001", ["d1"]) is None

    @pytest.mark.asyncio
    async def test_finish_terminal_session(self, repo, mock_session):
        mock_session.execute.return_value = _rowcount(0)

        assert await repo.finish(uuid4(), SessionStatus.CANCELLED) is False

    @pytest.mark.asyncio
    async def test_update_progress(self, repo, mock_session):
        mock_session.execute.return_value = _rowcount(1)

        assert await repo.update_progress(uuid4(), processed=3, failed=1) is True

    @pytest.mark.asyncio
    async def test_get_status(self, repo, mock_session):
        mock_session.execute.return_value = _scalar(SessionStatus.CANCELLED)

        assert await repo.get_status(uuid4()) == SessionStatus.CANCELLED


# =============================================================================
# ConnectorRepository Tests
# =============================================================================

class TestConnectorRepository:
    """Test suite for ConnectorRepository."""

    @pytest.fixture
    def repo(self, mock_session):
        return ConnectorRepository(mock_session)

    @pytest.mark.asyncio
    async def test_claim_item(self, repo, mock_session, mock_job):
        item = await repo.claim_item(mock_job, "item-1", "/a.pdf", "hash")

        assert isinstance(item, ConnectorSyncItem)
        assert item.status == SyncItemStatus.PROCESSED
        assert item.account_id == mock_job.account_id

    @pytest.mark.asyncio
    async def test_claim_held_key_returns_none(self, repo, mock_session, mock_job):
        mock_session.flush.side_effect = _integrity_error()

        assert await repo.claim_item(mock_job, "item-1", "/a.pdf", "hash") is None

    @pytest.mark.asyncio
    async def test_find_processed_item_not_found(self, repo, mock_session):
        mock_session.execute.return_value = _scalar(None)

        assert await repo.find_processed_item(uuid4(), "item-1", "hash") is None


# =============================================================================
# InboxRepository Tests
# =============================================================================

class TestInboxRepository:
    """Test suite for InboxRepository."""

    @pytest.mark.asyncio
    async def test_settings_lookup_lowercases_code(self, mock_session):
        mock_session.execute.return_value = _scalar(None)
        repo = InboxRepository(mock_session)

        await repo.get_settings_by_code("AB12CD34")

        stmt = mock_session.execute.call_args.args[0]
        assert stmt.compile().params["inbox_code_1"] == "ab12cd34"
