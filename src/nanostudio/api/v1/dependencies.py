"""Shared FastAPI dependencies for the v1 API."""

from typing import Optional

from fastapi import Header, HTTPException, Request

from nanostudio.core.exceptions import UploadError
from nanostudio.storage.base import BlobStore
from nanostudio.uploads.coordinator import UploadCoordinator


def get_coordinator(request: Request) -> UploadCoordinator:
    """Return the coordinator built at application startup."""
    return request.app.state.coordinator


def get_blob_store(request: Request) -> BlobStore:
    """Return the blob store built at application startup."""
    return request.app.state.blob_store


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Caller identity, set by the authenticating proxy in front of the API.

    A missing header is passed through as ``None``; the coordinator rejects
    unauthenticated calls with a typed error.
    """
    return x_user_id


def to_http_exception(error: UploadError) -> HTTPException:
    """Translate a domain error into an HTTP error with a machine-readable kind."""
    return HTTPException(status_code=error.status_code, detail=error.to_detail())
