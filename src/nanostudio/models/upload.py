"""Upload data models."""

from datetime import datetime
from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field


class Selection(BaseModel):
    """Region of interest inside an image, in pixels."""

    x: float
    y: float
    width: float
    height: float


class CreateResumableUploadRequest(BaseModel):
    """Request model for creating an upload session."""

    file_name: str
    content_type: str
    metadata: Optional[Dict[str, str]] = None
    max_file_size: Optional[int] = Field(None, description="Declared size in bytes, advisory")


class SignedUploadResponse(BaseModel):
    """Response model for upload session creation."""

    upload_url: str
    upload_id: str
    file_name: str
    expires_at: datetime


class UploadStatusResponse(BaseModel):
    """Response model for upload status checks."""

    status: Literal["completed", "in_progress"]
    size: Optional[int] = None
    content_type: Optional[str] = None
    created_at: Optional[datetime] = None
    locator: Optional[str] = None


class CancelUploadResponse(BaseModel):
    """Response model for upload cancellation."""

    success: bool


class ImageChunkRequest(BaseModel):
    """One piece of a chunked image analysis payload."""

    upload_id: str
    chunk_index: int
    total_chunks: int
    chunk_data: str
    selection: Optional[Selection] = None


class ImageChunkResponse(BaseModel):
    """Progress of a chunked upload after a chunk was stored."""

    success: bool
    received_chunks: int
    total_chunks: int
    is_complete: bool


class FinalizeImageAnalysisRequest(BaseModel):
    """Request model for finalizing a chunked upload."""

    upload_id: str


class FinalizeImageAnalysisResponse(BaseModel):
    """Analysis of the reassembled image."""

    success: bool
    analysis: str
