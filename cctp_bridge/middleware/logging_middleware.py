"""
HTTP request logging middleware.

Logs every request with method, path, status code, and duration, and binds
a request id (plus the tracking id for per-transfer routes) for every log
line emitted while the request is handled.
"""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.stdlib.get_logger("http")

_RESERVED_SEGMENTS = {"initiate", "execute", "claim", "attestations", "active", "fee", "estimate", "events"}


def _tracking_id_from_path(path: str):
    parts = [p for p in path.split("/") if p]
    if len(parts) >= 2 and parts[0] == "bridge" and parts[1] not in _RESERVED_SEGMENTS:
        return parts[1]
    return None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log HTTP requests with timing and status info."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("x-request-id", str(uuid.uuid4())[:8])

        # Bind request context for all downstream logs
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        tracking_id = _tracking_id_from_path(request.url.path)
        if tracking_id:
            structlog.contextvars.bind_contextvars(tracking_id=tracking_id)

        start = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["x-request-id"] = request_id
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 1)

            log = logger.info if status_code < 400 else logger.warning
            if status_code >= 500:
                log = logger.error

            log(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=status_code,
                duration_ms=duration_ms,
                client=request.client.host if request.client else None,
            )
