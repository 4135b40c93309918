"""Tests for the resumable upload API."""

import asyncio
import re
from datetime import datetime, timedelta, timezone

import pytest


@pytest.fixture
def image_settings(monkeypatch):
    """Restrict uploads to images of at most 10MB."""
    from nanostudio.core.config import settings

    monkeypatch.setattr(settings, "MAX_UPLOAD_MB", 10)
    monkeypatch.setattr(settings, "ALLOWED_UPLOAD_MIME_TYPES", "image/png,image/jpeg,image/webp")


def create_session(client, headers, **overrides):
    body = {"file_name": "photo.png", "content_type": "image/png", "metadata": {}, "max_file_size": 5_000_000}
    body.update(overrides)
    return client.post("/api/v1/uploads/resumable", json=body, headers=headers)


def test_full_upload_flow(client, auth_headers):
    """Create a session, PUT 5MB to the signed URL, then see it completed."""
    before = datetime.now(timezone.utc)
    response = create_session(client, auth_headers)

    assert response.status_code == 201
    session = response.json()
    assert re.fullmatch(r"uploads/\d{13}-photo\.png", session["upload_id"])
    expires_at = datetime.fromisoformat(session["expires_at"].replace("Z", "+00:00"))
    assert before + timedelta(minutes=59) < expires_at < before + timedelta(minutes=61)

    status = client.get("/api/v1/uploads/status", params={"upload_id": session["upload_id"]}, headers=auth_headers)
    assert status.json() == {"status": "in_progress"}

    put = client.put(session["upload_url"], content=b"x" * 5_000_000, headers={"Content-Type": "image/png"})
    assert put.status_code == 200

    status = client.get("/api/v1/uploads/status", params={"upload_id": session["upload_id"]}, headers=auth_headers)
    assert status.status_code == 200
    data = status.json()
    assert data["status"] == "completed"
    assert data["size"] == 5_000_000
    assert data["content_type"] == "image/png"
    assert data["locator"].endswith(session["upload_id"])


def test_session_records_requester(client, app, auth_headers):
    response = create_session(client, auth_headers, metadata={"album": "holiday"})

    session = app.state.coordinator.sessions.get(response.json()["upload_id"])
    assert session.metadata == {"album": "holiday", "userId": "user-42", "uploadedBy": "user-42"}
    assert session.max_file_size == 5_000_000


def test_default_max_file_size(client, app, auth_headers):
    response = create_session(client, auth_headers, max_file_size=None)

    session = app.state.coordinator.sessions.get(response.json()["upload_id"])
    assert session.max_file_size == 10 * 1024 * 1024


def test_create_requires_authentication(client):
    response = create_session(client, {})

    assert response.status_code == 401
    assert response.json()["detail"]["kind"] == "unauthenticated"


def test_status_requires_authentication(client):
    response = client.get("/api/v1/uploads/status", params={"upload_id": "uploads/1-photo.png"})

    assert response.status_code == 401


def test_disallowed_content_type(client, auth_headers, image_settings):
    response = create_session(client, auth_headers, file_name="notes.txt", content_type="text/plain")

    assert response.status_code == 400
    assert response.json()["detail"]["kind"] == "invalid_request"
    assert "content type" in response.json()["detail"]["message"].lower()


def test_oversized_declared_file(client, auth_headers, image_settings):
    response = create_session(client, auth_headers, max_file_size=11 * 1024 * 1024)

    assert response.status_code == 400
    assert "size" in response.json()["detail"]["message"].lower()


def test_empty_file_name(client, auth_headers):
    response = create_session(client, auth_headers, file_name="  ")

    assert response.status_code == 400


def test_signing_failure_is_upstream_error(client, app, auth_headers, monkeypatch):
    from nanostudio.core.exceptions import UpstreamStorageError

    async def broken_sign(key, content_type, expires_at):
        raise UpstreamStorageError("Failed to generate upload URL: permission denied")

    monkeypatch.setattr(app.state.blob_store, "generate_signed_upload_url", broken_sign)

    response = create_session(client, auth_headers)

    assert response.status_code == 502
    assert response.json()["detail"]["kind"] == "upstream_storage_error"
    assert len(app.state.coordinator.sessions) == 0


def test_put_with_tampered_signature(client, auth_headers):
    session = create_session(client, auth_headers).json()
    tampered = re.sub(r"signature=[0-9a-f]+", "signature=" + "0" * 64, session["upload_url"])

    response = client.put(tampered, content=b"data", headers={"Content-Type": "image/png"})

    assert response.status_code == 403


def test_put_with_wrong_content_type(client, auth_headers):
    session = create_session(client, auth_headers).json()

    response = client.put(session["upload_url"], content=b"data", headers={"Content-Type": "image/jpeg"})

    assert response.status_code == 403


def test_cancel_upload(client, auth_headers, local_store):
    session = create_session(client, auth_headers).json()
    client.put(session["upload_url"], content=b"data", headers={"Content-Type": "image/png"})

    response = client.delete("/api/v1/uploads", params={"upload_id": session["upload_id"]}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == {"success": True}

    assert asyncio.run(local_store.exists(session["upload_id"])) is False

    status = client.get("/api/v1/uploads/status", params={"upload_id": session["upload_id"]}, headers=auth_headers)
    assert status.status_code == 404


def test_cancel_before_upload_succeeds(client, auth_headers):
    session = create_session(client, auth_headers).json()

    response = client.delete("/api/v1/uploads", params={"upload_id": session["upload_id"]}, headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"success": True}


def test_cancel_unknown_upload_not_found(client, auth_headers):
    response = client.delete(
        "/api/v1/uploads", params={"upload_id": "uploads/1-never-created.png"}, headers=auth_headers
    )

    assert response.status_code == 404
    assert response.json()["detail"]["kind"] == "upload_not_found"


def test_other_user_cannot_cancel_or_inspect_upload(client, local_store):
    alice = {"X-User-Id": "alice"}
    mallory = {"X-User-Id": "mallory"}
    session = create_session(client, alice).json()
    client.put(session["upload_url"], content=b"data", headers={"Content-Type": "image/png"})
    params = {"upload_id": session["upload_id"]}

    assert client.delete("/api/v1/uploads", params=params, headers=mallory).status_code == 404
    assert client.get("/api/v1/uploads/status", params=params, headers=mallory).status_code == 404

    assert asyncio.run(local_store.exists(session["upload_id"])) is True
    status = client.get("/api/v1/uploads/status", params=params, headers=alice)
    assert status.json()["status"] == "completed"
