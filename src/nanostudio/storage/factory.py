"""Storage backend selection."""

from nanostudio.core.config import settings
from nanostudio.storage.base import BlobStore


def get_blob_store() -> BlobStore:
    """Build the blob store configured by STORAGE_BACKEND.

    Raises:
        ValueError: If the backend name is unknown
    """
    backend = settings.STORAGE_BACKEND.lower()

    if backend == "gcs":
        from nanostudio.storage.gcs import GCSBlobStore

        return GCSBlobStore()

    if backend == "local":
        from nanostudio.storage.local import LocalBlobStore

        return LocalBlobStore()

    raise ValueError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND}")
