"""Local filesystem blob store for development.

Signed URLs point back at this service (``PUT /api/v1/local-blobs/{key}``)
and carry an HMAC signature over key, content type and expiry, mimicking the
capability semantics of GCS V4 signed URLs.
"""

import hashlib
import hmac
import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import quote, urlencode

from nanostudio.core.config import settings
from nanostudio.core.exceptions import InvalidUploadRequest, UploadNotFound
from nanostudio.storage.base import BlobMetadata, BlobStore

logger = logging.getLogger(__name__)

LOCAL_BLOB_ROUTE = "/api/v1/local-blobs"
_META_DIR = ".meta"


class LocalBlobStore(BlobStore):
    """Local filesystem storage backend."""

    def __init__(
        self,
        base_path: str | Path | None = None,
        public_base_url: str | None = None,
        signing_secret: str | None = None,
    ):
        self.base_path = Path(base_path or settings.LOCAL_STORAGE_PATH)
        self.public_base_url = (public_base_url or settings.PUBLIC_BASE_URL).rstrip("/")
        self._secret = (signing_secret or settings.LOCAL_SIGNING_SECRET).encode("utf-8")

    def _path(self, key: str) -> Path:
        """Resolve ``key`` under the storage root, refusing traversal."""
        root = self.base_path.resolve()
        target = (root / key).resolve()
        if target == root or root not in target.parents or _META_DIR in target.relative_to(root).parts:
            raise InvalidUploadRequest(f"Invalid object key: {key}")
        return target

    def _meta_path(self, key: str) -> Path:
        relative = self._path(key).relative_to(self.base_path.resolve())
        return self.base_path.resolve() / _META_DIR / f"{relative}.json"

    def _signature(self, key: str, content_type: str, expires: int) -> str:
        message = f"{key}\n{content_type}\n{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    async def generate_signed_upload_url(self, key: str, content_type: str, expires_at: datetime) -> str:
        self._path(key)
        expires = int(expires_at.timestamp())
        query = urlencode(
            {
                "expires": expires,
                "content_type": content_type,
                "signature": self._signature(key, content_type, expires),
            }
        )
        return f"{self.public_base_url}{LOCAL_BLOB_ROUTE}/{quote(key)}?{query}"

    def verify_upload(
        self,
        key: str,
        content_type: str,
        expires: int,
        signature: str,
        now: float | None = None,
    ) -> bool:
        """Check a signed URL's signature and expiry."""
        current = time.time() if now is None else now
        if expires < current:
            return False
        expected = self._signature(key, content_type, expires)
        return hmac.compare_digest(expected, signature)

    async def write(self, key: str, content_type: str, data: bytes) -> int:
        """Store an uploaded body; returns the number of bytes written."""
        target = self._path(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

        meta_path = self._meta_path(key)
        meta_path.parent.mkdir(parents=True, exist_ok=True)
        meta_path.write_text(
            json.dumps(
                {
                    "content_type": content_type,
                    "time_created": datetime.now(timezone.utc).isoformat(),
                }
            )
        )

        logger.info("Stored local blob", extra={"object_name": key, "size_bytes": len(data)})
        return len(data)

    async def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    async def get_metadata(self, key: str) -> BlobMetadata:
        target = self._path(key)
        if not target.is_file():
            raise UploadNotFound(key)

        content_type = ""
        time_created = datetime.fromtimestamp(target.stat().st_mtime, tz=timezone.utc)
        meta_path = self._meta_path(key)
        if meta_path.is_file():
            meta = json.loads(meta_path.read_text())
            content_type = meta.get("content_type", "")
            time_created = datetime.fromisoformat(meta["time_created"])

        return BlobMetadata(
            size=target.stat().st_size,
            content_type=content_type,
            time_created=time_created,
        )

    async def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
        self._meta_path(key).unlink(missing_ok=True)

    def locator(self, key: str) -> str:
        return str(self._path(key))

    def get_backend_name(self) -> str:
        return "local"
