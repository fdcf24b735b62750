"""
Tests for Blob Auto-Fetch Scan
==============================
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from ..config import BlobScanConfig
from ..connectors.blob_source import BlobObject
from ..exceptions import StorageError
from ..fingerprint import compute_fingerprint
from ..models.document import IntakeSource
from ..services.blob_scan import BlobScanService, _naive_utc
from .conftest import OWNER


class FakeBlobSource:
    """Container listing held in memory."""

    def __init__(self, blobs: dict[str, bytes], broken: tuple[str, ...] = ()):
        self.config = BlobScanConfig(connection_string="UseDevelopmentStorage=true")
        self.blobs = blobs
        self.broken = broken
        self.modified = datetime(2024, 3, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    async def list_blobs(self, prefix=None):
        return [
            BlobObject(key=key, size=len(data), last_modified=self.modified)
            for key, data in self.blobs.items()
            if key.startswith(prefix or "")
        ]

    async def download(self, key):
        if key in self.broken:
            raise StorageError(f"Download of {key} failed")
        return self.blobs[key]


@pytest.fixture
def source():
    return FakeBlobSource({
        "client-a/march.pdf": b"march",
        "client-a/notes.txt": b"notes",
        "client-a/weights.xlsx": b"weights",
        "client-b/other.pdf": b"other",
    })


@pytest.fixture
def service(mock_session, ledger, object_store, source):
    return BlobScanService(mock_session, object_store, source)


class TestBlobScan:

    def test_naive_utc(self):
        aware = datetime(2024, 3, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        assert _naive_utc(aware) == datetime(2024, 3, 1, 12, 0)
        assert _naive_utc(None) is None

    @pytest.mark.asyncio
    async def test_imports_supported_files(self, service, ledger, object_store):
        result = await service.scan(OWNER, ["/client-a/"])

        assert result.scanned == 2
        assert result.imported == 2
        assert len(object_store.objects) == 2

        document = ledger.documents.documents[0]
        assert document.source == IntakeSource.BLOB_SCAN
        assert document.source_path == "client-a/march.pdf"
        assert document.source_modified_at == datetime(2024, 3, 1, 12, 0)
        assert document.extracted_data["source_folder"] == "/client-a/"

    @pytest.mark.asyncio
    async def test_rescan_skips_known(self, service):
        await service.scan(OWNER, ["client-a"])

        result = await service.scan(OWNER, ["client-a"])

        assert result.imported == 0
        assert result.skipped == 2

    @pytest.mark.asyncio
    async def test_known_content_under_new_name_skipped(self, service, ledger):
        ledger.documents.add(OWNER, "renamed.pdf", content_hash=compute_fingerprint(b"march"))

        result = await service.scan(OWNER, ["client-a"])

        assert result.imported == 1
        assert result.skipped == 1

    @pytest.mark.asyncio
    async def test_download_failure_counted(self, mock_session, ledger, object_store, source):
        source.broken = ("client-a/march.pdf",)
        service = BlobScanService(mock_session, object_store, source)

        result = await service.scan(OWNER, ["client-a"])

        assert result.failed == 1
        assert result.imported == 1
        assert result.errors[0].startswith("client-a/march.pdf")

    @pytest.mark.asyncio
    async def test_listing_failure_propagates(self, mock_session, ledger, object_store):
        source = MagicMock()
        source.list_blobs = AsyncMock(side_effect=StorageError("container missing"))
        service = BlobScanService(mock_session, object_store, source)

        with pytest.raises(StorageError):
            await service.scan(OWNER, ["client-a"])
