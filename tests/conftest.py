"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from nanostudio.core.exceptions import UpstreamStorageError
from nanostudio.storage.base import BlobMetadata, BlobStore


class FakeClock:
    """Controllable clock for expiry tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeBlobStore(BlobStore):
    """In-memory blob store standing in for GCS."""

    def __init__(self):
        self.objects: dict[str, tuple[bytes, str, datetime]] = {}
        self.signed: list[tuple[str, str, datetime]] = []
        self.fail_signing = False

    async def generate_signed_upload_url(self, key, content_type, expires_at):
        if self.fail_signing:
            raise UpstreamStorageError("Failed to generate upload URL: permission denied")
        self.signed.append((key, content_type, expires_at))
        return f"https://storage.test/bucket/{key}?X-Goog-Signature=abc"

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        self.objects[key] = (data, content_type, datetime.now(timezone.utc))

    async def exists(self, key):
        return key in self.objects

    async def get_metadata(self, key):
        data, content_type, created = self.objects[key]
        return BlobMetadata(size=len(data), content_type=content_type, time_created=created)

    async def delete(self, key):
        self.objects.pop(key, None)

    def locator(self, key):
        return f"gs://bucket/{key}"

    def get_backend_name(self):
        return "fake"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def local_store(tmp_path):
    """Local blob store whose signed URLs resolve against the test client host."""
    from nanostudio.storage.local import LocalBlobStore

    return LocalBlobStore(
        base_path=tmp_path / "uploads",
        public_base_url="http://testserver",
        signing_secret="test-secret",
    )


@pytest.fixture
def fake_analyze():
    """Stand-in for the vision model call."""
    return AsyncMock(return_value="A yellow banana on a wooden table.")


@pytest.fixture
def app(local_store, fake_analyze):
    from nanostudio.core.config import settings
    from nanostudio.main import create_app
    from nanostudio.uploads.coordinator import UploadCoordinator

    coordinator = UploadCoordinator.from_settings(settings, local_store, analyze=fake_analyze)
    return create_app(blob_store=local_store, coordinator=coordinator)


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"X-User-Id": "user-42"}
