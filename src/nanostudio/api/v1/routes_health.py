"""Health check endpoint for Nano Studio."""

from fastapi import APIRouter, Request

from nanostudio.core.config import settings

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint.

    Returns service status, name, version and the active storage backend.
    No remote calls are made so the check stays fast during startup.
    """
    coordinator = request.app.state.coordinator
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "storage_backend": request.app.state.blob_store.get_backend_name(),
        "open_sessions": len(coordinator.sessions),
        "chunked_uploads": len(coordinator.chunks),
    }
