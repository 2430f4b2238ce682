"""
Tests for the /gmail/sync routes.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from mailgraph.features.contact_scan.api.router import get_scan_service
from mailgraph.features.contact_scan.repository.contact_snapshot_repository import (
    ContactSnapshotRepository,
)
from mailgraph.features.contact_scan.repository.imap_settings_repository import (
    ImapSettingsRepository,
)
from mailgraph.features.contact_scan.repository.progress_repository import (
    ProgressStoreUnavailableError,
)
from mailgraph.features.contact_scan.scanners.errors import ScanInProgressError
from mailgraph.features.contact_scan.services.scan_service import ContactScanService
from mailgraph.main import app
from mailgraph.services.google_session_service import GoogleOAuthError


@pytest.fixture
def stub_service():
    service = MagicMock()
    service.start_scan = AsyncMock(
        return_value={"job_id": "imap_1767225600000_abc123xyz", "status": "pending"}
    )
    app.dependency_overrides[get_scan_service] = lambda: service
    yield service
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


def test_start_requires_refresh_token_cookie(client, stub_service):
    response = client.post("/gmail/sync/start", json={"method": "imap"})

    assert response.status_code == 401
    assert response.json()["detail"] == "not_authenticated"
    stub_service.start_scan.assert_not_called()


def test_start_returns_job_id(client, stub_service):
    client.cookies.set("gmail_refresh_token", "1//refresh")

    response = client.post("/gmail/sync/start", json={"method": "imap", "max_messages": 500})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["method"] == "imap"
    assert data["job_id"] == "imap_1767225600000_abc123xyz"
    assert data["status"] == "started"
    stub_service.start_scan.assert_awaited_once_with(
        "1//refresh", method="imap", max_messages=500, preset=None
    )


def test_start_defaults_to_api_method(client, stub_service):
    client.cookies.set("gmail_refresh_token", "1//refresh")

    response = client.post("/gmail/sync/start", json={})

    assert response.status_code == 200
    assert response.json()["method"] == "api"


def test_start_rejects_unknown_method(client, stub_service):
    client.cookies.set("gmail_refresh_token", "1//refresh")

    response = client.post("/gmail/sync/start", json={"method": "pop3"})

    assert response.status_code == 422


def test_start_maps_bad_preset_to_400(client, stub_service):
    stub_service.start_scan.side_effect = ValueError("Unknown preset 'turbo'")
    client.cookies.set("gmail_refresh_token", "1//refresh")

    response = client.post("/gmail/sync/start", json={"method": "api", "preset": "turbo"})

    assert response.status_code == 400
    assert "turbo" in response.json()["detail"]


def test_start_maps_expired_token_to_401(client, stub_service):
    stub_service.start_scan.side_effect = GoogleOAuthError("invalid_grant", error_code="invalid_grant")
    client.cookies.set("gmail_refresh_token", "1//revoked")

    response = client.post("/gmail/sync/start", json={"method": "api"})

    assert response.status_code == 401
    assert "reconnect" in response.json()["detail"]


def test_status_of_unknown_job_is_404(client, stub_service):
    stub_service.get_status.return_value = None

    response = client.get("/gmail/sync/status/missing")

    assert response.status_code == 404


def test_status_returns_progress(client, stub_service):
    stub_service.get_status.return_value = {
        "job_id": "imap_1",
        "status": "running",
        "processed_messages": 2000,
        "percent_complete": 20,
        "contacts_found": 140,
        "message": "Processed 2000 messages (20%) - Found 140 contacts",
        "time_elapsed": 12,
        "estimated_time_remaining": 48,
        "complete_message": None,
        "account_email": "owner@example.com",
    }

    response = client.get("/gmail/sync/status/imap_1")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "running"
    assert data["percent_complete"] == 20
    assert data["estimated_time_remaining"] == 48


def test_stop_running_job(client, stub_service):
    stub_service.stop_scan.return_value = {"job_id": "imap_1", "status": "cancelled"}

    response = client.post("/gmail/sync/stop/imap_1")

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert "saved" in response.json()["message"]


def test_stop_finished_job_leaves_status(client, stub_service):
    stub_service.stop_scan.return_value = {"job_id": "imap_1", "status": "completed"}

    response = client.post("/gmail/sync/stop/imap_1")

    assert response.json()["status"] == "completed"


def test_stop_unknown_job_is_404(client, stub_service):
    stub_service.stop_scan.return_value = None

    response = client.post("/gmail/sync/stop/missing")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_start_then_poll_end_to_end(
    session_provider, registry, progress_store, document_store, scripted_scanner, make_batches
):
    scanner = scripted_scanner(make_batches(4, 4))
    service = ContactScanService(
        session_provider=session_provider,
        registry=registry,
        progress_store=progress_store,
        snapshot_repository=ContactSnapshotRepository(store=document_store),
        imap_settings_repository=ImapSettingsRepository(store=document_store),
        scanner_factories={"imap": lambda: scanner, "api": lambda: scanner},
    )
    app.dependency_overrides[get_scan_service] = lambda: service

    try:
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            client.cookies.set("gmail_refresh_token", "1//refresh")
            started = await client.post("/gmail/sync/start", json={"method": "api"})
            job_id = started.json()["job_id"]

            await service.wait_for_all()
            status = await client.get(f"/gmail/sync/status/{job_id}")
    finally:
        app.dependency_overrides.clear()

    assert job_id.startswith("gmailapi_")
    data = status.json()
    assert data["status"] == "completed"
    assert data["processed_messages"] == 4
    assert data["total_contacts"] == 2
    assert data["complete_message"] == "Scan complete! All messages processed."


def test_progress_requires_refresh_token_cookie(client, stub_service):
    assert client.get("/gmail/sync/progress").status_code == 401
    assert client.delete("/gmail/sync/progress").status_code == 401


def test_get_progress_defaults_to_imap(client, stub_service):
    stub_service.get_progress = AsyncMock(
        return_value={
            "account_email": "owner@example.com",
            "method": "imap",
            "scanner_type": "imap",
            "has_progress": True,
            "last_message_scanned": 1001,
            "total_messages": 1000,
            "contacts_found": 12,
            "chunks_completed": 1,
            "is_complete": False,
            "message": "Scan paused after 1000 messages. The next scan resumes from here.",
        }
    )
    client.cookies.set("gmail_refresh_token", "1//refresh")

    response = client.get("/gmail/sync/progress")

    assert response.status_code == 200
    data = response.json()
    assert data["has_progress"] is True
    assert data["last_message_scanned"] == 1001
    assert data["total_messages"] == 1000
    stub_service.get_progress.assert_awaited_once_with("1//refresh", method="imap")


def test_get_progress_maps_expired_token_to_401(client, stub_service):
    stub_service.get_progress = AsyncMock(side_effect=GoogleOAuthError("invalid_grant"))
    client.cookies.set("gmail_refresh_token", "1//refresh")

    response = client.get("/gmail/sync/progress", params={"method": "api"})

    assert response.status_code == 401


def test_reset_progress(client, stub_service):
    stub_service.reset_progress = AsyncMock(
        return_value={
            "account_email": "owner@example.com",
            "method": "api",
            "scanner_type": "gmail-api",
            "reset": True,
            "message": "Scan progress reset. Next scan will start from beginning.",
        }
    )
    client.cookies.set("gmail_refresh_token", "1//refresh")

    response = client.delete("/gmail/sync/progress", params={"method": "api"})

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "method": "api",
        "reset": True,
        "message": "Scan progress reset. Next scan will start from beginning.",
    }
    stub_service.reset_progress.assert_awaited_once_with("1//refresh", method="api")


@pytest.mark.parametrize(
    "error, status_code",
    [
        (ScanInProgressError("A imap scan is running"), 409),
        (ProgressStoreUnavailableError("Scan progress store is unavailable"), 503),
    ],
)
def test_reset_progress_error_mapping(client, stub_service, error, status_code):
    stub_service.reset_progress = AsyncMock(side_effect=error)
    client.cookies.set("gmail_refresh_token", "1//refresh")

    response = client.delete("/gmail/sync/progress")

    assert response.status_code == status_code


def test_progress_rejects_unknown_method(client, stub_service):
    client.cookies.set("gmail_refresh_token", "1//refresh")

    assert client.get("/gmail/sync/progress", params={"method": "pop3"}).status_code == 422
