"""
Tests for Connector Sync Engine
===============================
"""

import pytest
from cryptography.fernet import Fernet

from ..connectors.credentials import ConnectorCredentials, CredentialCipher
from ..exceptions import ConfigurationError, RemoteListingError, TokenExchangeError
from ..models.connector import ConnectorProvider, SyncItemStatus, SyncJobStatus
from ..models.document import DocumentStatus, IntakeSource
from ..services.sync_engine import SyncEngine, SyncResult, connector_storage_path
from .conftest import OWNER
from .fakes import FakeFileStore

PROVIDER = ConnectorProvider.SHAREPOINT


@pytest.fixture
def remote_files():
    return {
        "/invoices/march.pdf": ("item-1", b"march invoice"),
        "/invoices/april.pdf": ("item-2", b"april invoice"),
        "/weighing/2024/slip.xlsx": ("item-3", b"weighing slip"),
    }


@pytest.fixture
def file_store(remote_files):
    return FakeFileStore(remote_files)


@pytest.fixture
def cipher():
    return CredentialCipher(Fernet.generate_key().decode())


@pytest.fixture
def account(ledger, cipher):
    encrypted = cipher.encrypt(ConnectorCredentials(access_token="stored-token"))
    return ledger.connectors.add_account(OWNER, PROVIDER, encrypted)


@pytest.fixture
def engine(mock_session, ledger, object_store, cipher, file_store, account):
    return SyncEngine(
        mock_session,
        object_store,
        cipher=cipher,
        store_factory=lambda provider, credentials, **kwargs: file_store,
    )


class TestSyncResult:

    def test_all_failed_is_failed(self):
        result = SyncResult(job_id=None, scanned=5, imported=0, failed=5)
        assert result.status == SyncJobStatus.FAILED

    def test_any_import_is_completed(self):
        result = SyncResult(job_id=None, scanned=5, imported=1, failed=4)
        assert result.status == SyncJobStatus.COMPLETED

    def test_nothing_new_is_completed(self):
        result = SyncResult(job_id=None, scanned=3, skipped=3)
        assert result.status == SyncJobStatus.COMPLETED


class TestStoragePath:

    def test_uses_last_extension(self):
        path = connector_storage_path(OWNER, PROVIDER, "report.final.PDF")
        assert path.startswith(f"{OWNER}/connector-sharepoint-")
        assert path.endswith(".pdf")

    def test_defaults_to_bin(self):
        assert connector_storage_path(OWNER, PROVIDER, "README").endswith(".bin")


class TestSync:

    @pytest.mark.asyncio
    async def test_first_sync_imports_every_file(self, engine, ledger, object_store, account):
        result = await engine.sync(OWNER, PROVIDER)

        assert (result.scanned, result.imported, result.skipped, result.failed) == (3, 3, 0, 0)
        job = await ledger.connectors.get_job(result.job_id)
        assert job.status == SyncJobStatus.COMPLETED
        assert job.stats == {"imported": 3, "skipped": 0, "failed": 0, "scanned": 3}
        assert job.finished_at is not None
        assert account.last_sync_at is not None
        assert len(object_store.objects) == 3
        assert "connector.synced" in ledger.documents.actions()

    @pytest.mark.asyncio
    async def test_documents_carry_provenance(self, engine, ledger):
        await engine.sync(OWNER, PROVIDER)

        document = next(doc for doc in ledger.documents.documents if doc.filename == "slip.xlsx")
        assert document.status == DocumentStatus.UPLOADED
        assert document.source == IntakeSource.CONNECTOR_SYNC
        assert document.source_item_id == "item-3"
        assert document.source_path == "/weighing/2024/slip.xlsx"
        assert document.extracted_data["connector"] == "sharepoint"
        assert document.extracted_data["source_modified_at"] == "2024-03-01T12:00:00"
        assert document.storage_path.endswith(".xlsx")

    @pytest.mark.asyncio
    async def test_resync_without_changes_skips_everything(self, engine, ledger):
        await engine.sync(OWNER, PROVIDER)

        second = await engine.sync(OWNER, PROVIDER)

        assert second.imported == 0
        assert second.skipped == 3
        items = ledger.connectors.items_for(second.job_id)
        assert {item.status for item in items} == {SyncItemStatus.SKIPPED}
        assert all(item.document_id is not None for item in items)
        assert len(ledger.documents.documents) == 3

    @pytest.mark.asyncio
    async def test_changed_bytes_under_same_id_reingested_once(self, engine, ledger, remote_files):
        await engine.sync(OWNER, PROVIDER)
        before = {doc.content_hash for doc in ledger.documents.documents}

        remote_files["/invoices/march.pdf"] = ("item-1", b"march invoice, corrected")
        second = await engine.sync(OWNER, PROVIDER)

        assert second.imported == 1
        assert second.skipped == 2
        new_docs = [doc for doc in ledger.documents.documents if doc.content_hash not in before]
        assert len(new_docs) == 1
        assert new_docs[0].source_item_id == "item-1"

    @pytest.mark.asyncio
    async def test_download_failure_is_isolated(self, engine, ledger, file_store):
        file_store.broken_downloads.add("/invoices/april.pdf")

        result = await engine.sync(OWNER, PROVIDER)

        assert (result.imported, result.failed) == (2, 1)
        failed = [i for i in ledger.connectors.items_for(result.job_id) if i.status == SyncItemStatus.FAILED]
        assert len(failed) == 1
        assert "404" in failed[0].error_message
        assert (await ledger.connectors.get_job(result.job_id)).status == SyncJobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_failed_item_after_claim_is_retried_next_run(self, engine, ledger, object_store, monkeypatch):
        original_upload = object_store.upload
        calls = {"n": 0}

        async def flaky_upload(path, data, content_type=None, overwrite=False):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("object store unavailable")
            await original_upload(path, data, content_type, overwrite)

        monkeypatch.setattr(object_store, "upload", flaky_upload)

        first = await engine.sync(OWNER, PROVIDER)
        second = await engine.sync(OWNER, PROVIDER)

        assert (first.imported, first.failed) == (2, 1)
        assert (second.imported, second.skipped) == (1, 2)
        assert len(ledger.documents.documents) == 3

    @pytest.mark.asyncio
    async def test_every_item_failing_marks_job_failed(self, engine, ledger, file_store, remote_files):
        file_store.broken_downloads.update(remote_files)

        result = await engine.sync(OWNER, PROVIDER)

        assert (result.scanned, result.imported, result.failed) == (3, 0, 3)
        assert (await ledger.connectors.get_job(result.job_id)).status == SyncJobStatus.FAILED

    @pytest.mark.asyncio
    async def test_bytes_already_uploaded_elsewhere_are_skipped(self, engine, ledger, remote_files):
        from ..fingerprint import compute_fingerprint

        existing = ledger.documents.add(OWNER, "manual.pdf", content_hash=compute_fingerprint(b"march invoice"))

        result = await engine.sync(OWNER, PROVIDER)

        assert (result.imported, result.skipped) == (2, 1)
        skipped = [i for i in ledger.connectors.items_for(result.job_id) if i.status == SyncItemStatus.SKIPPED]
        assert skipped[0].document_id == existing.id

    @pytest.mark.asyncio
    async def test_known_bytes_are_never_written_to_storage(self, engine, ledger, object_store):
        from ..fingerprint import compute_fingerprint

        ledger.documents.add(OWNER, "manual.pdf", content_hash=compute_fingerprint(b"march invoice"))

        for _ in range(3):
            result = await engine.sync(OWNER, PROVIDER)

        assert len(object_store.objects) == 2
        assert result.imported == 0
        assert result.skipped == 3
        assert len(ledger.documents.documents) == 3

    @pytest.mark.asyncio
    async def test_losing_the_document_race_removes_uploaded_bytes(self, engine, ledger, object_store, monkeypatch):
        from ..fingerprint import compute_fingerprint

        original_create = ledger.documents.create_unique
        march = compute_fingerprint(b"march invoice")

        async def racing_create(owner_id, filename, storage_path, **kwargs):
            if kwargs.get("content_hash") == march:
                ledger.documents.add(OWNER, "concurrent.pdf", content_hash=march)
            return await original_create(owner_id, filename, storage_path, **kwargs)

        monkeypatch.setattr(ledger.documents, "create_unique", racing_create)

        result = await engine.sync(OWNER, PROVIDER)

        assert (result.imported, result.skipped) == (2, 1)
        assert len(object_store.objects) == 2
        skipped = [i for i in ledger.connectors.items_for(result.job_id) if i.status == SyncItemStatus.SKIPPED]
        assert skipped[0].document_id == next(
            doc.id for doc in ledger.documents.documents if doc.filename == "concurrent.pdf"
        )

    @pytest.mark.asyncio
    async def test_token_failure_fails_job_before_any_item(self, mock_session, ledger, object_store, cipher, account, remote_files):
        store = FakeFileStore(remote_files, ConnectorCredentials(client_id="app", client_secret="s", tenant_id="t"))
        store.token_error = TokenExchangeError("Microsoft token request failed (401)")
        engine = SyncEngine(
            mock_session, object_store, cipher=cipher,
            store_factory=lambda provider, credentials, **kwargs: store,
        )

        with pytest.raises(TokenExchangeError):
            await engine.sync(OWNER, PROVIDER, ConnectorCredentials(client_id="app"))

        job = ledger.connectors.jobs[-1]
        assert job.status == SyncJobStatus.FAILED
        assert "401" in job.error_message
        assert ledger.connectors.items == []
        assert store.closed

    @pytest.mark.asyncio
    async def test_listing_failure_fails_job(self, engine, ledger, file_store):
        file_store.broken_folders.add("/weighing")

        with pytest.raises(RemoteListingError):
            await engine.sync(OWNER, PROVIDER)

        job = ledger.connectors.jobs[-1]
        assert job.status == SyncJobStatus.FAILED
        assert job.stats["imported"] == 2

    @pytest.mark.asyncio
    async def test_missing_account(self, engine):
        with pytest.raises(ConfigurationError):
            await engine.sync(OWNER, ConnectorProvider.GOOGLE_DRIVE)

    @pytest.mark.asyncio
    async def test_stored_credentials_are_decrypted(self, mock_session, ledger, object_store, cipher, account, file_store):
        seen = []

        def factory(provider, credentials, **kwargs):
            seen.append(credentials)
            return file_store

        engine = SyncEngine(mock_session, object_store, cipher=cipher, store_factory=factory)
        await engine.sync(OWNER, PROVIDER)

        assert seen[0].access_token == "stored-token"


class TestRegisterAccount:

    @pytest.mark.asyncio
    async def test_stores_encrypted_credentials(self, engine, ledger, cipher):
        credentials = ConnectorCredentials(refresh_token="r", client_id="c", client_secret="s")

        account = await engine.register_account(OWNER, ConnectorProvider.GOOGLE_DRIVE, credentials)

        assert "client_secret" not in account.encrypted_credentials
        assert cipher.decrypt(account.encrypted_credentials).refresh_token == "r"

    @pytest.mark.asyncio
    async def test_failed_connection_test_is_rejected(self, engine, file_store):
        file_store.broken_folders.add("/")

        with pytest.raises(ConfigurationError):
            await engine.register_account(OWNER, PROVIDER, ConnectorCredentials(access_token="x"))
