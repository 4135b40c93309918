"""Middleware for HTTP error logging."""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from nanostudio.core.logging import upload_id_context

logger = logging.getLogger(__name__)


class HTTPErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to ensure all HTTP errors are logged.

    - 4xx responses: logged at WARN level
    - 5xx responses: logged at ERROR level
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and log errors.

        Args:
            request: Incoming HTTP request
            call_next: Next middleware/handler in chain

        Returns:
            HTTP response
        """
        start_time = time.time()

        upload_id = request.query_params.get("upload_id")

        # Only JSON bodies are inspected; blob PUTs carry raw file bytes
        content_type = request.headers.get("content-type", "")
        if not upload_id and request.method in ["POST", "PUT", "PATCH"] and content_type.startswith(
            "application/json"
        ):
            try:
                body = await request.json()
                if isinstance(body, dict):
                    upload_id = body.get("upload_id")
            except ValueError:
                # Body is not valid JSON; the route will reject it
                pass

        token = upload_id_context.set(upload_id)
        try:
            response = await call_next(request)
        finally:
            upload_id_context.reset(token)

        duration_ms = (time.time() - start_time) * 1000

        if 400 <= response.status_code < 500:
            logger.warning(
                "Client error response",
                extra={
                    "http_status": response.status_code,
                    "method": request.method,
                    "path": request.url.path,
                    "upload_id": upload_id,
                    "duration_ms": duration_ms,
                },
            )
        elif response.status_code >= 500:
            logger.error(
                "Server error response",
                extra={
                    "http_status": response.status_code,
                    "method": request.method,
                    "path": request.url.path,
                    "upload_id": upload_id,
                    "duration_ms": duration_ms,
                },
            )

        return response
