"""Upload API routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request

from nanostudio.api.v1.dependencies import (
    get_blob_store,
    get_coordinator,
    get_current_user_id,
    to_http_exception,
)
from nanostudio.core.exceptions import UploadError
from nanostudio.models.upload import (
    CancelUploadResponse,
    CreateResumableUploadRequest,
    SignedUploadResponse,
    UploadStatusResponse,
)
from nanostudio.storage.base import BlobStore
from nanostudio.storage.local import LocalBlobStore
from nanostudio.uploads.coordinator import UploadCoordinator

router = APIRouter(prefix="/api/v1", tags=["upload"])
logger = logging.getLogger(__name__)


@router.post("/uploads/resumable", response_model=SignedUploadResponse, status_code=201)
async def create_resumable_upload(
    request: CreateResumableUploadRequest = Body(...),
    user_id: Optional[str] = Depends(get_current_user_id),
    coordinator: UploadCoordinator = Depends(get_coordinator),
) -> SignedUploadResponse:
    """Create an upload session and return a signed URL for a direct PUT."""
    try:
        signed = await coordinator.create_resumable_upload(
            user_id=user_id,
            file_name=request.file_name,
            content_type=request.content_type,
            metadata=request.metadata,
            max_file_size=request.max_file_size,
        )
    except UploadError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Unexpected error during session creation: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    return SignedUploadResponse(
        upload_url=signed.upload_url,
        upload_id=signed.upload_id,
        file_name=signed.file_name,
        expires_at=signed.expires_at,
    )


@router.get("/uploads/status", response_model=UploadStatusResponse, response_model_exclude_none=True)
async def get_upload_status(
    upload_id: str = Query(...),
    user_id: Optional[str] = Depends(get_current_user_id),
    coordinator: UploadCoordinator = Depends(get_coordinator),
) -> UploadStatusResponse:
    """Report whether the object for an upload session exists yet."""
    try:
        status = await coordinator.get_upload_status(user_id, upload_id)
    except UploadError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Unexpected error during status check: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    return UploadStatusResponse(**status)


@router.delete("/uploads", response_model=CancelUploadResponse)
async def cancel_upload(
    upload_id: str = Query(...),
    user_id: Optional[str] = Depends(get_current_user_id),
    coordinator: UploadCoordinator = Depends(get_coordinator),
) -> CancelUploadResponse:
    """Cancel one of the caller's uploads; cancelling before any bytes landed succeeds."""
    try:
        result = await coordinator.cancel_upload(user_id, upload_id)
    except UploadError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Unexpected error during upload cancellation: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    return CancelUploadResponse(**result)


@router.put("/local-blobs/{key:path}")
async def put_local_blob(
    key: str,
    request: Request,
    expires: int = Query(...),
    content_type: str = Query(...),
    signature: str = Query(...),
    blob_store: BlobStore = Depends(get_blob_store),
) -> dict:
    """Receive a direct upload against a locally signed URL."""
    if not isinstance(blob_store, LocalBlobStore):
        raise HTTPException(status_code=404, detail="Not found")

    if not blob_store.verify_upload(key, content_type, expires, signature):
        raise HTTPException(status_code=403, detail="Invalid or expired signature")

    sent_type = request.headers.get("content-type", "").split(";")[0].strip()
    if sent_type != content_type:
        raise HTTPException(status_code=403, detail="Content-Type does not match signed URL")

    try:
        size = await blob_store.write(key, content_type, await request.body())
    except UploadError as e:
        raise to_http_exception(e)

    return {"upload_id": key, "size": size}
