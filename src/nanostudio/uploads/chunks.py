"""In-memory reassembly of chunked image payloads.

Clients that cannot talk to the blob store directly split a payload (a
base64 data URL) into fixed-size pieces and post them one by one. Each piece
lands in its slot; once every slot is filled the payload is rebuilt in index
order and handed to the analysis call.

Per upload id the lifecycle is::

    absent -> partial -> complete -> [finalize] -> absent

Any slot may be rewritten while partial or complete. Entries idle for longer
than the TTL are dropped, and the number of concurrent uploads is bounded.
"""

import asyncio
import logging
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from nanostudio.core.clock import Clock, utc_now
from nanostudio.core.exceptions import (
    IncompleteUpload,
    InvalidChunkIndex,
    ResourceExhausted,
    TotalChunksMismatch,
    UploadNotFound,
)

logger = logging.getLogger(__name__)

Analyze = Callable[[str, Any], Awaitable[str]]


@dataclass
class ChunkUpload:
    """Chunk slots and bookkeeping for one logical transfer."""

    upload_id: str
    total_chunks: int
    chunks: List[str]
    selection: Optional[Any]
    created_at: datetime
    updated_at: datetime

    @property
    def received_chunks(self) -> int:
        return sum(1 for chunk in self.chunks if chunk)

    @property
    def is_complete(self) -> bool:
        return self.received_chunks == self.total_chunks

    def payload(self) -> str:
        """Join the slots strictly in index order."""
        return "".join(self.chunks)


@dataclass(frozen=True)
class ChunkReceipt:
    """Progress reported back after each chunk."""

    received_chunks: int
    total_chunks: int
    is_complete: bool


class ChunkReassemblyBuffer:
    """Bounded, expiring store of partially received chunked uploads."""

    def __init__(
        self,
        capacity: int = 200,
        max_chunks_per_upload: int = 1_000,
        ttl: timedelta = timedelta(minutes=15),
        clock: Clock = utc_now,
    ):
        self.capacity = capacity
        self.max_chunks_per_upload = max_chunks_per_upload
        self.ttl = ttl
        self.clock = clock
        # Least recently touched first
        self._uploads: "OrderedDict[str, ChunkUpload]" = OrderedDict()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._finalizing: set[str] = set()

    def __len__(self) -> int:
        return len(self._uploads)

    def _is_expired(self, entry: ChunkUpload, now: datetime) -> bool:
        return entry.upload_id not in self._finalizing and entry.updated_at + self.ttl <= now

    def _get_live(self, upload_id: str) -> Optional[ChunkUpload]:
        entry = self._uploads.get(upload_id)
        if entry is not None and self._is_expired(entry, self.clock()):
            logger.info(
                "Chunked upload expired",
                extra={"upload_id": upload_id, "received_chunks": entry.received_chunks},
            )
            del self._uploads[upload_id]
            return None
        return entry

    def get(self, upload_id: str) -> Optional[ChunkUpload]:
        """Return the live entry for ``upload_id``, if any."""
        return self._get_live(upload_id)

    def discard(self, upload_id: str) -> bool:
        """Abandon an upload explicitly. Returns whether one was present."""
        return self._uploads.pop(upload_id, None) is not None

    def sweep_expired(self) -> int:
        """Drop idle entries past their TTL and return how many were removed."""
        now = self.clock()
        expired = [upload_id for upload_id, entry in self._uploads.items() if self._is_expired(entry, now)]
        for upload_id in expired:
            del self._uploads[upload_id]

        if expired:
            logger.info("Expired chunked uploads swept", extra={"count": len(expired)})
        return len(expired)

    def receive_chunk(
        self,
        upload_id: str,
        chunk_index: int,
        total_chunks: int,
        chunk_data: str,
        selection: Optional[Any] = None,
    ) -> ChunkReceipt:
        """Store one chunk, overwriting any earlier copy of the same index.

        Raises:
            InvalidChunkIndex: If the index or count is out of range
            TotalChunksMismatch: If ``total_chunks`` differs from the first chunk's
            ResourceExhausted: If the upload is too large or the buffer is full
        """
        if total_chunks < 1:
            raise InvalidChunkIndex(f"total_chunks must be at least 1, got {total_chunks}")
        if total_chunks > self.max_chunks_per_upload:
            raise ResourceExhausted(
                f"total_chunks {total_chunks} exceeds the limit of {self.max_chunks_per_upload}"
            )

        entry = self._get_live(upload_id)

        if entry is not None and entry.total_chunks != total_chunks:
            raise TotalChunksMismatch(
                f"Upload {upload_id} was declared with {entry.total_chunks} chunks, got {total_chunks}"
            )
        if not 0 <= chunk_index < total_chunks:
            raise InvalidChunkIndex(
                f"chunk_index {chunk_index} out of range for {total_chunks} chunks"
            )

        now = self.clock()
        if entry is None:
            if len(self._uploads) >= self.capacity:
                self.sweep_expired()
            if len(self._uploads) >= self.capacity:
                logger.warning(
                    "Chunk buffer full",
                    extra={"capacity": self.capacity, "upload_id": upload_id},
                )
                raise ResourceExhausted(
                    f"Too many chunked uploads in progress (limit {self.capacity}), try again later"
                )

            entry = ChunkUpload(
                upload_id=upload_id,
                total_chunks=total_chunks,
                chunks=[""] * total_chunks,
                selection=selection,
                created_at=now,
                updated_at=now,
            )
            self._uploads[upload_id] = entry
            logger.debug(
                "Chunked upload started",
                extra={"upload_id": upload_id, "total_chunks": total_chunks},
            )

        entry.chunks[chunk_index] = chunk_data
        entry.updated_at = now
        self._uploads.move_to_end(upload_id)

        return ChunkReceipt(
            received_chunks=entry.received_chunks,
            total_chunks=entry.total_chunks,
            is_complete=entry.is_complete,
        )

    @asynccontextmanager
    async def _exclusive(self, upload_id: str) -> AsyncIterator[None]:
        """Hold the per-id lock; the lock is forgotten once nobody uses it."""
        lock = self._locks.get(upload_id)
        if lock is None:
            lock = self._locks[upload_id] = asyncio.Lock()
        self._lock_users[upload_id] = self._lock_users.get(upload_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[upload_id] -= 1
            if self._lock_users[upload_id] == 0:
                del self._lock_users[upload_id]
                del self._locks[upload_id]

    async def finalize(self, upload_id: str, analyze: Analyze) -> str:
        """Rebuild the payload, run ``analyze`` on it and drop the entry.

        Concurrent calls for the same id run one at a time; the loser of a
        race sees ``UploadNotFound`` rather than a second analysis.

        Raises:
            UploadNotFound: If no live entry exists
            IncompleteUpload: If some slot is still empty; the entry is kept
            Exception: Whatever ``analyze`` raises; the entry is kept
        """
        async with self._exclusive(upload_id):
            entry = self._get_live(upload_id)
            if entry is None:
                raise UploadNotFound(upload_id)
            if not entry.is_complete:
                raise IncompleteUpload(upload_id, entry.received_chunks, entry.total_chunks)

            payload = entry.payload()
            self._finalizing.add(upload_id)
            try:
                result = await analyze(payload, entry.selection)
            finally:
                self._finalizing.discard(upload_id)

            self._uploads.pop(upload_id, None)
            logger.info(
                "Chunked upload finalized",
                extra={
                    "upload_id": upload_id,
                    "total_chunks": entry.total_chunks,
                    "payload_length": len(payload),
                },
            )
            return result
