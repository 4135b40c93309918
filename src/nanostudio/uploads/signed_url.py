"""Signed upload URL issuance."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from nanostudio.core.clock import Clock, utc_now
from nanostudio.storage.base import BlobStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignedUpload:
    """A write capability for one object key."""

    upload_url: str
    upload_id: str
    file_name: str
    expires_at: datetime


class SignedUrlIssuer:
    """Mints unique object keys and time-boxed write URLs for them.

    The key embeds a millisecond timestamp that never repeats within the
    process, so ``upload_id`` values are unique even for identical file
    names requested in the same millisecond.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        key_prefix: str = "uploads",
        expiration: timedelta = timedelta(hours=1),
        clock: Clock = utc_now,
    ):
        self.blob_store = blob_store
        self.key_prefix = key_prefix.strip("/")
        self.expiration = expiration
        self.clock = clock
        self._last_timestamp_ms = 0

    def _next_timestamp_ms(self, now: datetime) -> int:
        timestamp_ms = int(now.timestamp() * 1000)
        if timestamp_ms <= self._last_timestamp_ms:
            timestamp_ms = self._last_timestamp_ms + 1
        self._last_timestamp_ms = timestamp_ms
        return timestamp_ms

    def build_key(self, file_name: str, now: datetime) -> str:
        """Build the object key for ``file_name`` at ``now``."""
        safe_name = self.blob_store.sanitize_filename(file_name)
        return f"{self.key_prefix}/{self._next_timestamp_ms(now)}-{safe_name}"

    async def issue(
        self,
        file_name: str,
        content_type: str,
        metadata: dict[str, str] | None = None,
        max_file_size: int | None = None,
    ) -> SignedUpload:
        """Issue a signed PUT URL for a new object.

        Args:
            file_name: Original file name
            content_type: MIME type the client will send
            metadata: Caller metadata, logged only
            max_file_size: Declared size, advisory

        Returns:
            SignedUpload with URL, key and expiry

        Raises:
            UpstreamStorageError: If the blob store cannot sign. Not retried:
                a retry would mint a different key.
        """
        now = self.clock()
        key = self.build_key(file_name, now)
        expires_at = now + self.expiration

        upload_url = await self.blob_store.generate_signed_upload_url(key, content_type, expires_at)

        logger.info(
            "Signed upload URL issued",
            extra={
                "upload_id": key,
                "content_type": content_type,
                "max_file_size": max_file_size,
                "backend": self.blob_store.get_backend_name(),
                "requested_by": (metadata or {}).get("userId"),
            },
        )

        return SignedUpload(
            upload_url=upload_url,
            upload_id=key,
            file_name=key,
            expires_at=expires_at,
        )
