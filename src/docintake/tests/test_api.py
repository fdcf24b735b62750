"""
Tests for the Intake API
========================
Routes run against the in-memory ledger through dependency overrides.
"""

from unittest.mock import patch
from uuid import uuid4

import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

from ..api import create_app
from ..api.dependencies import (
    get_credential_cipher,
    get_extraction_service,
    get_object_store,
)
from ..api.routes import documents as documents_routes
from ..config import AppConfig, InboxConfig
from ..connectors.credentials import CredentialCipher
from ..database import get_async_db
from ..models.document import DocumentStatus
from .conftest import OWNER
from .fakes import StubExtractionService

HEADERS = {"X-User-Id": OWNER}


@pytest.fixture
def config():
    return AppConfig(inbox=InboxConfig(webhook_secret="hook-secret"))


@pytest.fixture
def client(config, mock_session, ledger, object_store):
    app = create_app(config)
    app.dependency_overrides[get_async_db] = lambda: mock_session
    app.dependency_overrides[get_object_store] = lambda: object_store
    app.dependency_overrides[get_extraction_service] = lambda: StubExtractionService()
    app.dependency_overrides[get_credential_cipher] = lambda: CredentialCipher(Fernet.generate_key().decode())

    with patch.object(documents_routes, "DocumentRepository", return_value=ledger.documents):
        yield TestClient(app)


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"


class TestSessions:

    def test_missing_identity(self, client):
        response = client.get("/processing-sessions/active")

        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    def test_create_and_poll(self, client, mock_session):
        response = client.post(
            "/processing-sessions",
            json={"document_ids": [str(uuid4()), str(uuid4())]},
            headers=HEADERS,
        )

        assert response.status_code == 201
        created = response.json()["session"]
        assert created["status"] == "active"
        assert created["progress"]["total"] == 2
        mock_session.commit.assert_awaited()

        active = client.get("/processing-sessions/active", headers=HEADERS).json()["session"]
        assert active["id"] == created["id"]

    def test_second_session_conflicts(self, client):
        first = client.post("/processing-sessions", json={"document_ids": [str(uuid4())]}, headers=HEADERS)

        response = client.post("/processing-sessions", json={"document_ids": [str(uuid4())]}, headers=HEADERS)

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "conflict"
        assert body["details"]["active_session_id"] == first.json()["session"]["id"]

    def test_no_active_session(self, client):
        response = client.get("/processing-sessions/active", headers=HEADERS)

        assert response.json() == {"session": None}

    def test_cancel_reverts_documents(self, client, ledger):
        document = ledger.documents.add(OWNER, "a.pdf", status=DocumentStatus.PROCESSING)
        created = client.post(
            "/processing-sessions",
            json={"document_ids": [str(document.id)]},
            headers=HEADERS,
        ).json()["session"]

        response = client.post(f"/processing-sessions/{created['id']}/cancel", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["reverted_count"] == 1
        assert document.status == DocumentStatus.UPLOADED

    def test_cancel_unknown_session(self, client):
        response = client.post(f"/processing-sessions/{uuid4()}/cancel", headers=HEADERS)

        assert response.status_code == 404

    def test_empty_document_list_rejected(self, client):
        response = client.post("/processing-sessions", json={"document_ids": []}, headers=HEADERS)

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"


class TestDocuments:

    def test_upload(self, client, object_store, sample_pdf_content):
        response = client.post(
            "/documents/upload",
            files={"file": ("invoice.pdf", sample_pdf_content, "application/pdf")},
            headers=HEADERS,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["duplicate"]["tier"] == "none"
        assert len(object_store.objects) == 1

    def test_upload_rejects_extension(self, client):
        response = client.post(
            "/documents/upload",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            headers=HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_cancel_processing_unknown_document(self, client):
        response = client.post(f"/documents/{uuid4()}/cancel-processing", headers=HEADERS)

        assert response.status_code == 404

    def test_cancel_processing_not_processing(self, client, ledger):
        document = ledger.documents.add(OWNER, "a.pdf", status=DocumentStatus.APPROVED)

        response = client.post(f"/documents/{document.id}/cancel-processing", headers=HEADERS)

        assert response.json() == {"success": False, "message": "Document is approved, not processing"}


class TestBatches:

    def test_run_batch(self, client, ledger, object_store):
        document = ledger.documents.add(OWNER, "a.pdf")
        object_store.objects[document.storage_path] = b"%PDF a"

        response = client.post("/batches/run", json={"document_ids": [str(document.id)]}, headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["processed"] == 1
        assert document.status == DocumentStatus.APPROVED

    def test_unknown_session(self, client, ledger):
        document = ledger.documents.add(OWNER, "a.pdf")

        response = client.post(
            "/batches/run",
            json={"document_ids": [str(document.id)], "session_id": str(uuid4())},
            headers=HEADERS,
        )

        assert response.status_code == 404

    def test_documents_outside_session_rejected(self, client, ledger, object_store):
        in_session = ledger.documents.add(OWNER, "a.pdf")
        other = ledger.documents.add(OWNER, "b.pdf")
        created = client.post(
            "/processing-sessions",
            json={"document_ids": [str(in_session.id)]},
            headers=HEADERS,
        ).json()["session"]

        response = client.post(
            "/batches/run",
            json={"document_ids": [str(other.id)], "session_id": created["id"]},
            headers=HEADERS,
        )

        assert response.status_code == 400
        assert str(other.id) in response.json()["message"]
        assert other.status == DocumentStatus.UPLOADED


class TestConnectorsAndInbox:

    def test_sync_without_account(self, client):
        response = client.post("/connectors/sharepoint/sync", headers=HEADERS)

        assert response.status_code == 400
        assert "No active sharepoint connector" in response.json()["message"]

    def test_unknown_provider(self, client):
        response = client.post("/connectors/dropbox/sync", headers=HEADERS)

        assert response.status_code == 422

    def test_webhook_rejects_bad_secret(self, client):
        response = client.post("/inbox/webhook", json={}, headers={"X-Webhook-Secret": "wrong"})

        assert response.status_code == 401

    def test_webhook_without_code(self, client):
        response = client.post(
            "/inbox/webhook",
            json={"Subject": "hello", "From": "a@b.example"},
            headers={"X-Webhook-Secret": "hook-secret"},
        )

        assert response.status_code == 200
        assert response.json()["message"] == "No inbox code found"
