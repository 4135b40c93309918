"""Main application entrypoint for Nano Studio."""

from typing import Optional

from fastapi import FastAPI

from nanostudio.api.v1 import routes_health
from nanostudio.api.v1.routes_image_analysis import router as image_analysis_router
from nanostudio.api.v1.routes_upload import router as upload_router
from nanostudio.core.config import settings
from nanostudio.core.logging import setup_logging
from nanostudio.core.middleware import HTTPErrorLoggingMiddleware
from nanostudio.storage.base import BlobStore
from nanostudio.storage.factory import get_blob_store
from nanostudio.uploads.coordinator import UploadCoordinator


def create_app(
    blob_store: Optional[BlobStore] = None,
    coordinator: Optional[UploadCoordinator] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        blob_store: Storage backend (default: from STORAGE_BACKEND)
        coordinator: Upload coordinator (default: built from settings)

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    # Initialize logging first
    setup_logging()

    app = FastAPI(
        title=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
    )

    # Upload state lives for the lifetime of the process
    if blob_store is None:
        blob_store = get_blob_store()
    if coordinator is None:
        coordinator = UploadCoordinator.from_settings(settings, blob_store)
    app.state.blob_store = blob_store
    app.state.coordinator = coordinator

    app.add_middleware(HTTPErrorLoggingMiddleware)

    app.include_router(routes_health.router, tags=["health"])
    app.include_router(upload_router)
    app.include_router(image_analysis_router)

    return app


# Export app instance for ASGI servers
app = create_app()
