"""Abstract blob store interface."""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class BlobMetadata:
    """Metadata of a stored object."""

    size: int
    content_type: str
    time_created: datetime | None


class BlobStore(ABC):
    """Abstract base class for object storage backends.

    Keys are full object paths (``uploads/1700000000000-photo.png``). The
    store only hands out write capabilities; uploaded bytes never pass
    through the application.
    """

    @abstractmethod
    async def generate_signed_upload_url(self, key: str, content_type: str, expires_at: datetime) -> str:
        """Generate a write-capable URL for ``key``.

        Args:
            key: Object key the URL authorizes a PUT for
            content_type: Content-Type the client must send
            expires_at: Absolute expiry of the URL

        Returns:
            Signed URL

        Raises:
            UpstreamStorageError: If the backend cannot sign
        """
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Return whether an object exists at ``key``."""
        pass

    @abstractmethod
    async def get_metadata(self, key: str) -> BlobMetadata:
        """Return metadata for the object at ``key``."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete the object at ``key``. Missing objects are not an error."""
        pass

    @abstractmethod
    def locator(self, key: str) -> str:
        """Return a backend-specific URI for ``key``."""
        pass

    @abstractmethod
    def get_backend_name(self) -> str:
        """Return backend identifier."""
        pass

    @staticmethod
    def sanitize_filename(filename: str) -> str:
        """Remove path traversal and dangerous characters."""
        safe = filename.replace("../", "").replace("..\\", "")
        safe = safe.replace("/", "_").replace("\\", "_")
        safe = re.sub(r"[^a-zA-Z0-9._-]", "_", safe)
        return safe[:255]
