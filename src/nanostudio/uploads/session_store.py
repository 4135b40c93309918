"""Upload session tracking store."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from nanostudio.core.clock import Clock, utc_now
from nanostudio.core.exceptions import ResourceExhausted

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadSession:
    """Upload session metadata. Never mutated after creation."""

    upload_id: str
    file_name: str
    content_type: str
    max_file_size: int
    created_at: datetime
    expires_at: datetime
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def user_id(self) -> Optional[str]:
        return self.metadata.get("userId")


class UploadSessionStore:
    """Bounded in-memory store for upload sessions.

    Sessions expire with their signed URL; expired sessions are dropped
    lazily on read and swept before each insert.
    """

    def __init__(self, capacity: int = 10_000, clock: Clock = utc_now):
        self.capacity = capacity
        self.clock = clock
        self._sessions: Dict[str, UploadSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, upload_id: str) -> bool:
        return self.get(upload_id) is not None

    def ensure_capacity(self) -> None:
        """Make sure one more session fits.

        Raises:
            ResourceExhausted: If the store is full after sweeping
        """
        if len(self._sessions) < self.capacity:
            return

        self.sweep_expired()
        if len(self._sessions) >= self.capacity:
            logger.warning("Upload session store full", extra={"capacity": self.capacity})
            raise ResourceExhausted(
                f"Too many open upload sessions (limit {self.capacity}), try again later"
            )

    def create(self, session: UploadSession) -> None:
        """Store a new upload session.

        Raises:
            ResourceExhausted: If the store is full after sweeping
        """
        if session.upload_id not in self._sessions:
            self.ensure_capacity()

        self._sessions[session.upload_id] = session

    def get(self, upload_id: str) -> Optional[UploadSession]:
        """Retrieve a live session; expired ones are dropped."""
        session = self._sessions.get(upload_id)
        if session is None:
            return None
        if session.expires_at <= self.clock():
            del self._sessions[upload_id]
            return None
        return session

    def remove(self, upload_id: str) -> Optional[UploadSession]:
        """Forget a session, returning it if it was present."""
        return self._sessions.pop(upload_id, None)

    def sweep_expired(self) -> int:
        """Drop every expired session and return how many were removed."""
        now = self.clock()
        expired = [upload_id for upload_id, s in self._sessions.items() if s.expires_at <= now]
        for upload_id in expired:
            del self._sessions[upload_id]

        if expired:
            logger.debug("Expired upload sessions swept", extra={"count": len(expired)})
        return len(expired)
