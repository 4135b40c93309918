"""Client-side upload controller.

Drives one file through: request a session, PUT the whole body to the
signed URL, report completion or error. Pause only changes the reported
state; the in-flight PUT keeps running, and resume sends the whole file
again to the same signed URL.
"""

import logging
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Literal, Optional

import httpx

logger = logging.getLogger(__name__)

UploadStatus = Literal["idle", "uploading", "paused", "completed", "error"]

SESSION_ENDPOINT = "/api/v1/uploads/resumable"
STATUS_ENDPOINT = "/api/v1/uploads/status"
CHUNK_ENDPOINT = "/api/v1/image-analysis/chunks"
FINALIZE_ENDPOINT = "/api/v1/image-analysis/finalize"


@dataclass(frozen=True)
class UploadFile:
    """File handle to upload."""

    name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: str | Path, content_type: Optional[str] = None) -> "UploadFile":
        path = Path(path)
        if content_type is None:
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(name=path.name, content_type=content_type, data=path.read_bytes())


@dataclass
class UploadProgress:
    loaded: int = 0
    total: int = 0
    percentage: int = 0


@dataclass
class ClientUploadState:
    """Client mirror of an upload; the server holds the authoritative state."""

    status: UploadStatus = "idle"
    progress: UploadProgress = field(default_factory=UploadProgress)
    upload_id: Optional[str] = None
    resume_url: Optional[str] = None
    error: Optional[str] = None


class ResumableUploadController:
    """State machine for a single direct-to-storage upload.

    ``client`` must be configured with the API base URL. The signed URL is
    absolute, so the PUT goes straight to the blob store.
    """

    def __init__(self, client: httpx.AsyncClient, user_id: str):
        self.client = client
        self.user_id = user_id
        self.state = ClientUploadState()

    @property
    def _auth_headers(self) -> Dict[str, str]:
        return {"X-User-Id": self.user_id}

    async def upload_file(self, file: UploadFile, metadata: Optional[Dict[str, str]] = None) -> ClientUploadState:
        """Request a session and upload ``file`` to its signed URL.

        Failures never raise; they land in ``state.error``.
        """
        self.state.status = "uploading"
        self.state.error = None

        try:
            response = await self.client.post(
                SESSION_ENDPOINT,
                json={
                    "file_name": file.name,
                    "content_type": file.content_type,
                    "metadata": metadata,
                    "max_file_size": file.size,
                },
                headers=self._auth_headers,
            )
            response.raise_for_status()
            session = response.json()
            upload_id = session["upload_id"]
            upload_url = session["upload_url"]
        except httpx.HTTPStatusError as e:
            self._fail(f"Failed to start upload: {e.response.status_code} - {_error_message(e.response)}")
            return self.state
        except httpx.HTTPError as e:
            self._fail(f"Failed to start upload: {e}")
            return self.state
        except (ValueError, KeyError, TypeError) as e:
            self._fail(f"Failed to start upload: invalid session response ({e!r})")
            return self.state

        self.state.upload_id = upload_id
        self.state.resume_url = upload_url

        await self._put(file, upload_url)
        return self.state

    async def _put(self, file: UploadFile, signed_url: str) -> None:
        try:
            response = await self.client.put(
                signed_url,
                content=file.data,
                headers={"Content-Type": file.content_type},
            )
        except httpx.HTTPError as e:
            self._fail(f"Upload failed: {e}")
            return

        if not response.is_success:
            self._fail(f"Upload failed with status: {response.status_code} - {response.reason_phrase}")
            return

        # A pause does not stop the transfer, so a finished PUT completes the upload
        self.state.status = "completed"
        self.state.progress = UploadProgress(loaded=file.size, total=file.size, percentage=100)
        logger.info(
            "Upload completed",
            extra={"upload_id": self.state.upload_id, "size_bytes": file.size},
        )

    def _fail(self, message: str) -> None:
        logger.warning("Upload failed", extra={"upload_id": self.state.upload_id, "error": message})
        self.state.status = "error"
        self.state.error = message

    def pause_upload(self) -> ClientUploadState:
        """Mark the upload as paused. The transfer itself is not aborted."""
        if self.state.status == "uploading":
            self.state.status = "paused"
        return self.state

    async def resume_upload(self, file: UploadFile) -> ClientUploadState:
        """Upload ``file`` again to the stored signed URL, from the first byte."""
        if not self.state.resume_url:
            return self.state

        self.state.status = "uploading"
        self.state.error = None
        await self._put(file, self.state.resume_url)
        return self.state

    def reset_upload(self) -> ClientUploadState:
        """Forget everything. An open session is abandoned, not cancelled."""
        self.state = ClientUploadState()
        return self.state

    async def check_status(self) -> Dict[str, object]:
        """Ask the server whether the current upload has landed."""
        if not self.state.upload_id:
            raise ValueError("No upload in progress")

        response = await self.client.get(
            STATUS_ENDPOINT,
            params={"upload_id": self.state.upload_id},
            headers=self._auth_headers,
        )
        response.raise_for_status()
        return response.json()


class ChunkedImageAnalysisClient:
    """Sends an image payload in fixed-size chunks and requests its analysis."""

    def __init__(self, client: httpx.AsyncClient, user_id: str, chunk_size: int = 256 * 1024):
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        self.client = client
        self.user_id = user_id
        self.chunk_size = chunk_size

    def split(self, payload: str) -> list[str]:
        """Cut ``payload`` into chunk_size pieces; an empty payload is one empty piece."""
        return [payload[i:i + self.chunk_size] for i in range(0, len(payload), self.chunk_size)] or [""]

    async def analyze(
        self,
        upload_id: str,
        payload: str,
        selection: Optional[Dict[str, float]] = None,
    ) -> str:
        """Upload every chunk of ``payload`` and return the analysis text.

        Raises:
            httpx.HTTPStatusError: If the server rejects a chunk or the finalize
            RuntimeError: If the server does not report the upload complete
        """
        headers = {"X-User-Id": self.user_id}
        chunks = self.split(payload)
        result: Dict[str, object] = {}

        for index, chunk in enumerate(chunks):
            response = await self.client.post(
                CHUNK_ENDPOINT,
                json={
                    "upload_id": upload_id,
                    "chunk_index": index,
                    "total_chunks": len(chunks),
                    "chunk_data": chunk,
                    "selection": selection if index == 0 else None,
                },
                headers=headers,
            )
            response.raise_for_status()
            result = response.json()

        if not result.get("is_complete"):
            raise RuntimeError(
                f"Upload {upload_id} incomplete: {result.get('received_chunks')}/{len(chunks)} chunks"
            )

        response = await self.client.post(
            FINALIZE_ENDPOINT,
            json={"upload_id": upload_id},
            headers=headers,
        )
        response.raise_for_status()
        return response.json()["analysis"]


def _error_message(response: httpx.Response) -> str:
    try:
        detail = response.json().get("detail")
    except ValueError:
        return response.text
    if isinstance(detail, dict):
        return detail.get("message", str(detail))
    return str(detail)
