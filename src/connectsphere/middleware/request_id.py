"""Request ID middleware — correlate every log line of one request.

Learn: The ID comes from an incoming X-Request-ID header (set by a proxy
or the frontend) or is generated. It's bound to structlog's contextvars,
so every logger.info(...) inside services, including the fan-out
warnings, carries request_id without being passed around. One
"http.request" line is logged per request with status and duration.
"""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id to the logging context and echo it back."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        started = time.perf_counter()
        response: Response = await call_next(request)
        logger.info(
            "http.request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        response.headers["X-Request-ID"] = request_id
        return response
