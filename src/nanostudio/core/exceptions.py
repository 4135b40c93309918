"""Error taxonomy for the upload coordinator.

Every error carries a machine-readable ``kind`` and the HTTP status the API
answers with, so callers can tell a missing upload apart from a transient
upstream failure without parsing messages.
"""


class UploadError(Exception):
    """Base exception for upload coordination failures."""

    kind = "upload_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict[str, str]:
        """Serialize the error for an HTTP response body."""
        return {"kind": self.kind, "message": self.message}


class Unauthenticated(UploadError):
    """Raised when an operation is called without a caller identity."""

    kind = "unauthenticated"
    status_code = 401

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class InvalidUploadRequest(UploadError):
    """Raised when request parameters fail validation."""

    kind = "invalid_request"
    status_code = 400


class UpstreamStorageError(UploadError):
    """Raised when the blob store fails to sign, probe, or delete."""

    kind = "upstream_storage_error"
    status_code = 502


class UploadNotFound(UploadError):
    """Raised when an upload id is unknown, already finalized, or expired."""

    kind = "upload_not_found"
    status_code = 404

    def __init__(self, upload_id: str):
        super().__init__(f"Upload not found: {upload_id}")
        self.upload_id = upload_id


class InvalidChunkIndex(UploadError):
    """Raised when a chunk index or count violates the chunk protocol."""

    kind = "invalid_chunk_index"
    status_code = 400


class TotalChunksMismatch(InvalidChunkIndex):
    """Raised when a chunk disagrees with the chunk count declared first."""

    kind = "total_chunks_mismatch"


class IncompleteUpload(UploadError):
    """Raised when finalize runs before every chunk has arrived."""

    kind = "incomplete_upload"
    status_code = 409

    def __init__(self, upload_id: str, received_chunks: int, total_chunks: int):
        super().__init__(
            f"Upload {upload_id} is incomplete: {received_chunks}/{total_chunks} chunks received"
        )
        self.upload_id = upload_id
        self.received_chunks = received_chunks
        self.total_chunks = total_chunks


class ResourceExhausted(UploadError):
    """Raised when a capacity bound on in-memory state is reached."""

    kind = "resource_exhausted"
    status_code = 429


class UpstreamAnalysisError(UploadError):
    """Raised when the vision model call fails or returns an unexpected shape."""

    kind = "upstream_analysis_error"
    status_code = 502
