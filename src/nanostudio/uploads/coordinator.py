"""Upload operations exposed to the API layer.

The coordinator owns every piece of upload state for the process. It is
built once in ``create_app`` and reached by handlers through
``request.app.state``.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from nanostudio.analysis.vision_client import VisionAnalyzer
from nanostudio.core.clock import Clock, utc_now
from nanostudio.core.config import Settings
from nanostudio.core.exceptions import InvalidUploadRequest, Unauthenticated, UploadNotFound
from nanostudio.storage.base import BlobStore
from nanostudio.uploads.chunks import Analyze, ChunkReassemblyBuffer
from nanostudio.uploads.session_store import UploadSession, UploadSessionStore
from nanostudio.uploads.signed_url import SignedUpload, SignedUrlIssuer
from nanostudio.uploads.status import UploadStatusProber

logger = logging.getLogger(__name__)


def _require_user(user_id: Optional[str]) -> str:
    if not user_id or not str(user_id).strip():
        raise Unauthenticated()
    return str(user_id).strip()


class UploadCoordinator:
    """Resumable uploads and chunked image analysis for one process."""

    def __init__(
        self,
        issuer: SignedUrlIssuer,
        sessions: UploadSessionStore,
        prober: UploadStatusProber,
        chunks: ChunkReassemblyBuffer,
        analyze: Analyze,
        settings: Settings,
        clock: Clock = utc_now,
    ):
        self.issuer = issuer
        self.sessions = sessions
        self.prober = prober
        self.chunks = chunks
        self.analyze = analyze
        self.settings = settings
        self.clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        blob_store: BlobStore,
        analyze: Optional[Analyze] = None,
        clock: Clock = utc_now,
    ) -> "UploadCoordinator":
        """Wire the stores and collaborators from configuration."""
        if analyze is None:
            analyze = VisionAnalyzer().analyze

        return cls(
            issuer=SignedUrlIssuer(
                blob_store,
                key_prefix=settings.UPLOAD_KEY_PREFIX,
                expiration=timedelta(minutes=settings.SIGNED_URL_EXPIRATION_MINUTES),
                clock=clock,
            ),
            sessions=UploadSessionStore(capacity=settings.MAX_UPLOAD_SESSIONS, clock=clock),
            prober=UploadStatusProber(blob_store),
            chunks=ChunkReassemblyBuffer(
                capacity=settings.MAX_CHUNK_UPLOADS,
                max_chunks_per_upload=settings.MAX_CHUNKS_PER_UPLOAD,
                ttl=timedelta(seconds=settings.CHUNK_UPLOAD_TTL_SECONDS),
                clock=clock,
            ),
            analyze=analyze,
            settings=settings,
            clock=clock,
        )

    def _owned_session(self, user_id: str, upload_id: str) -> UploadSession:
        """Return the live session for ``upload_id`` if ``user_id`` opened it.

        Unknown, expired and foreign uploads all read as not found.
        """
        if not upload_id or not upload_id.strip():
            raise InvalidUploadRequest("upload_id is required")

        session = self.sessions.get(upload_id)
        if session is None or session.user_id != user_id:
            if session is not None:
                logger.warning(
                    "Upload access denied to non-owner",
                    extra={"upload_id": upload_id, "user_id": user_id},
                )
            raise UploadNotFound(upload_id)
        return session

    def _validate_upload_request(self, file_name: str, content_type: str, max_file_size: int) -> None:
        if not file_name or not file_name.strip():
            raise InvalidUploadRequest("file_name is required")

        if not content_type or not content_type.strip():
            raise InvalidUploadRequest("content_type is required")

        allowed = self.settings.allowed_mime_types
        if allowed and content_type not in allowed:
            raise InvalidUploadRequest(f"Content type {content_type} not allowed")

        if max_file_size <= 0:
            raise InvalidUploadRequest("max_file_size must be positive")

        if max_file_size > self.settings.max_upload_bytes:
            raise InvalidUploadRequest(
                f"File size exceeds maximum allowed size of {self.settings.MAX_UPLOAD_MB}MB"
            )

    async def create_resumable_upload(
        self,
        user_id: Optional[str],
        file_name: str,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
        max_file_size: Optional[int] = None,
    ) -> SignedUpload:
        """Open an upload session and hand out a signed PUT URL.

        Raises:
            Unauthenticated: If no caller identity is supplied
            InvalidUploadRequest: If the request fails validation
            UpstreamStorageError: If the URL cannot be signed
            ResourceExhausted: If too many sessions are open
        """
        user_id = _require_user(user_id)
        if max_file_size is None:
            max_file_size = self.settings.default_max_file_size_bytes
        self._validate_upload_request(file_name, content_type, max_file_size)
        self.sessions.ensure_capacity()

        session_metadata = {
            **(metadata or {}),
            "userId": user_id,
            "uploadedBy": user_id,
        }

        signed = await self.issuer.issue(
            file_name=file_name,
            content_type=content_type,
            metadata=session_metadata,
            max_file_size=max_file_size,
        )

        self.sessions.create(
            UploadSession(
                upload_id=signed.upload_id,
                file_name=file_name,
                content_type=content_type,
                max_file_size=max_file_size,
                created_at=self.clock(),
                expires_at=signed.expires_at,
                metadata=session_metadata,
            )
        )

        logger.info(
            "Upload session created",
            extra={
                "upload_id": signed.upload_id,
                "user_id": user_id,
                "content_type": content_type,
                "max_file_size": max_file_size,
            },
        )
        return signed

    async def get_upload_status(self, user_id: Optional[str], upload_id: str) -> Dict[str, Any]:
        """Report whether the object for ``upload_id`` has landed.

        Raises:
            UploadNotFound: If the caller has no live session for ``upload_id``
        """
        user_id = _require_user(user_id)
        self._owned_session(user_id, upload_id)
        return await self.prober.check_status(upload_id)

    async def cancel_upload(self, user_id: Optional[str], upload_id: str) -> Dict[str, bool]:
        """Delete the uploaded object, if any, and forget the session.

        Raises:
            UploadNotFound: If the caller has no live session for ``upload_id``
        """
        user_id = _require_user(user_id)
        self._owned_session(user_id, upload_id)

        await self.prober.cancel(upload_id)
        self.sessions.remove(upload_id)
        return {"success": True}

    async def upload_image_chunk(
        self,
        user_id: Optional[str],
        upload_id: str,
        chunk_index: int,
        total_chunks: int,
        chunk_data: str,
        selection: Any = None,
    ) -> Dict[str, Any]:
        """Store one chunk of an inline image payload."""
        _require_user(user_id)
        if not upload_id or not upload_id.strip():
            raise InvalidUploadRequest("upload_id is required")

        receipt = self.chunks.receive_chunk(
            upload_id=upload_id,
            chunk_index=chunk_index,
            total_chunks=total_chunks,
            chunk_data=chunk_data,
            selection=selection,
        )

        logger.debug(
            "Image chunk received",
            extra={
                "upload_id": upload_id,
                "chunk_index": chunk_index,
                "received_chunks": receipt.received_chunks,
                "total_chunks": receipt.total_chunks,
            },
        )

        return {
            "success": True,
            "received_chunks": receipt.received_chunks,
            "total_chunks": receipt.total_chunks,
            "is_complete": receipt.is_complete,
        }

    async def finalize_image_analysis(self, user_id: Optional[str], upload_id: str) -> Dict[str, Any]:
        """Reassemble a chunked image and run the analysis on it.

        Raises:
            UploadNotFound: If the upload is unknown or already finalized
            IncompleteUpload: If chunks are missing
            UpstreamAnalysisError: If the analysis call fails
        """
        _require_user(user_id)
        if not upload_id or not upload_id.strip():
            raise InvalidUploadRequest("upload_id is required")

        analysis = await self.chunks.finalize(upload_id, self.analyze)
        return {"success": True, "analysis": analysis}
