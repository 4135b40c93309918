"""Tests for the upload coordinator operations."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from nanostudio.core.config import Settings
from nanostudio.core.exceptions import (
    IncompleteUpload,
    InvalidUploadRequest,
    ResourceExhausted,
    Unauthenticated,
    UploadNotFound,
)
from nanostudio.uploads.coordinator import UploadCoordinator


@pytest.fixture
def test_settings():
    return Settings(MAX_UPLOAD_SESSIONS=2, MAX_CHUNK_UPLOADS=2, ALLOWED_UPLOAD_MIME_TYPES="image/png")


@pytest.fixture
def analyze():
    return AsyncMock(return_value="analysis")


@pytest.fixture
def coordinator(test_settings, blob_store, analyze, clock):
    return UploadCoordinator.from_settings(test_settings, blob_store, analyze=analyze, clock=clock)


@pytest.mark.asyncio
async def test_create_resumable_upload(coordinator, blob_store, clock):
    signed = await coordinator.create_resumable_upload(
        "user-42", "photo.png", "image/png", {"album": "holiday"}, 5_000_000
    )

    assert signed.upload_id.startswith("uploads/")
    assert signed.upload_id.endswith("-photo.png")
    assert signed.expires_at == clock() + timedelta(hours=1)

    session = coordinator.sessions.get(signed.upload_id)
    assert session.metadata["userId"] == "user-42"
    assert session.metadata["uploadedBy"] == "user-42"
    assert session.metadata["album"] == "holiday"
    assert session.expires_at == signed.expires_at


@pytest.mark.asyncio
async def test_caller_cannot_override_user_id(coordinator):
    signed = await coordinator.create_resumable_upload(
        "user-42", "photo.png", "image/png", {"userId": "someone-else"}, 1_000
    )

    assert coordinator.sessions.get(signed.upload_id).metadata["userId"] == "user-42"


@pytest.mark.asyncio
@pytest.mark.parametrize("user_id", [None, "", "   "])
async def test_operations_require_user(coordinator, user_id):
    with pytest.raises(Unauthenticated):
        await coordinator.create_resumable_upload(user_id, "photo.png", "image/png")
    with pytest.raises(Unauthenticated):
        await coordinator.get_upload_status(user_id, "uploads/1-photo.png")
    with pytest.raises(Unauthenticated):
        await coordinator.cancel_upload(user_id, "uploads/1-photo.png")
    with pytest.raises(Unauthenticated):
        await coordinator.upload_image_chunk(user_id, "img-1", 0, 1, "A")
    with pytest.raises(Unauthenticated):
        await coordinator.finalize_image_analysis(user_id, "img-1")


@pytest.mark.asyncio
async def test_content_type_allow_list(coordinator, blob_store):
    with pytest.raises(InvalidUploadRequest):
        await coordinator.create_resumable_upload("user-42", "clip.mp4", "video/mp4")

    assert blob_store.signed == []


@pytest.mark.asyncio
async def test_session_capacity(coordinator, blob_store):
    await coordinator.create_resumable_upload("user-42", "a.png", "image/png")
    await coordinator.create_resumable_upload("user-42", "b.png", "image/png")

    with pytest.raises(ResourceExhausted):
        await coordinator.create_resumable_upload("user-42", "c.png", "image/png")

    assert len(blob_store.signed) == 2


@pytest.mark.asyncio
async def test_status_follows_blob_store(coordinator, blob_store):
    signed = await coordinator.create_resumable_upload("user-42", "photo.png", "image/png")

    assert await coordinator.get_upload_status("user-42", signed.upload_id) == {"status": "in_progress"}

    blob_store.put(signed.upload_id, b"x" * 5_000_000, "image/png")
    status = await coordinator.get_upload_status("user-42", signed.upload_id)

    assert status["status"] == "completed"
    assert status["size"] == 5_000_000


@pytest.mark.asyncio
async def test_cancel_forgets_session(coordinator, blob_store):
    signed = await coordinator.create_resumable_upload("user-42", "photo.png", "image/png")
    blob_store.put(signed.upload_id, b"data", "image/png")

    assert await coordinator.cancel_upload("user-42", signed.upload_id) == {"success": True}
    assert coordinator.sessions.get(signed.upload_id) is None
    assert signed.upload_id not in blob_store.objects

    with pytest.raises(UploadNotFound):
        await coordinator.cancel_upload("user-42", signed.upload_id)


@pytest.mark.asyncio
async def test_chunk_flow(coordinator, analyze):
    first = await coordinator.upload_image_chunk("user-42", "img-1", 1, 2, "B")
    second = await coordinator.upload_image_chunk("user-42", "img-1", 0, 2, "A")

    assert first == {"success": True, "received_chunks": 1, "total_chunks": 2, "is_complete": False}
    assert second["is_complete"] is True

    result = await coordinator.finalize_image_analysis("user-42", "img-1")

    assert result == {"success": True, "analysis": "analysis"}
    analyze.assert_awaited_once_with("AB", None)

    with pytest.raises(UploadNotFound):
        await coordinator.finalize_image_analysis("user-42", "img-1")


@pytest.mark.asyncio
async def test_finalize_incomplete(coordinator, analyze):
    await coordinator.upload_image_chunk("user-42", "img-1", 0, 2, "A")

    with pytest.raises(IncompleteUpload):
        await coordinator.finalize_image_analysis("user-42", "img-1")

    analyze.assert_not_called()


@pytest.mark.asyncio
async def test_cancel_before_bytes_land(coordinator, blob_store):
    signed = await coordinator.create_resumable_upload("user-42", "photo.png", "image/png")

    assert await coordinator.cancel_upload("user-42", signed.upload_id) == {"success": True}
    assert coordinator.sessions.get(signed.upload_id) is None


@pytest.mark.asyncio
async def test_other_user_cannot_touch_upload(coordinator, blob_store):
    signed = await coordinator.create_resumable_upload("alice", "photo.png", "image/png")
    blob_store.put(signed.upload_id, b"data", "image/png")

    with pytest.raises(UploadNotFound):
        await coordinator.get_upload_status("mallory", signed.upload_id)
    with pytest.raises(UploadNotFound):
        await coordinator.cancel_upload("mallory", signed.upload_id)

    assert signed.upload_id in blob_store.objects
    assert coordinator.sessions.get(signed.upload_id) is not None
    assert (await coordinator.get_upload_status("alice", signed.upload_id))["status"] == "completed"


@pytest.mark.asyncio
async def test_unknown_and_expired_uploads_not_found(coordinator, blob_store, clock):
    blob_store.put("uploads/1-stray.png", b"data", "image/png")

    with pytest.raises(UploadNotFound):
        await coordinator.get_upload_status("user-42", "uploads/1-stray.png")
    with pytest.raises(UploadNotFound):
        await coordinator.cancel_upload("user-42", "uploads/1-stray.png")
    assert "uploads/1-stray.png" in blob_store.objects

    signed = await coordinator.create_resumable_upload("user-42", "photo.png", "image/png")
    clock.advance(minutes=61)

    with pytest.raises(UploadNotFound):
        await coordinator.get_upload_status("user-42", signed.upload_id)
