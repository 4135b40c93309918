"""Chunked image analysis routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException

from nanostudio.api.v1.dependencies import get_coordinator, get_current_user_id, to_http_exception
from nanostudio.core.exceptions import UploadError
from nanostudio.models.upload import (
    FinalizeImageAnalysisRequest,
    FinalizeImageAnalysisResponse,
    ImageChunkRequest,
    ImageChunkResponse,
)
from nanostudio.uploads.coordinator import UploadCoordinator

router = APIRouter(prefix="/api/v1/image-analysis", tags=["image-analysis"])
logger = logging.getLogger(__name__)


@router.post("/chunks", response_model=ImageChunkResponse)
async def upload_image_chunk(
    request: ImageChunkRequest = Body(...),
    user_id: Optional[str] = Depends(get_current_user_id),
    coordinator: UploadCoordinator = Depends(get_coordinator),
) -> ImageChunkResponse:
    """Store one chunk of an image payload."""
    try:
        result = await coordinator.upload_image_chunk(
            user_id=user_id,
            upload_id=request.upload_id,
            chunk_index=request.chunk_index,
            total_chunks=request.total_chunks,
            chunk_data=request.chunk_data,
            selection=request.selection,
        )
    except UploadError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Unexpected error while storing chunk: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    return ImageChunkResponse(**result)


@router.post("/finalize", response_model=FinalizeImageAnalysisResponse)
async def finalize_image_analysis(
    request: FinalizeImageAnalysisRequest = Body(...),
    user_id: Optional[str] = Depends(get_current_user_id),
    coordinator: UploadCoordinator = Depends(get_coordinator),
) -> FinalizeImageAnalysisResponse:
    """Reassemble the chunks of an upload and analyze the image."""
    try:
        result = await coordinator.finalize_image_analysis(user_id, request.upload_id)
    except UploadError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Unexpected error during image analysis: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    return FinalizeImageAnalysisResponse(**result)
