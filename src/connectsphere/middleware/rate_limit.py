"""Rate limiting middleware — fixed one-minute windows in Redis.

Learn: Each client IP gets a counter per minute, stored through the
ChannelStore so it carries the same key prefix as the cache
("connectsphere:rl:{ip}:{bucket}:{minute}"). Auth endpoints get a
stricter bucket to slow down credential stuffing.

Redis is optional: with no store on app.state, or when Redis errors,
requests pass through unlimited.
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = structlog.get_logger()

AUTH_PATHS = ("/api/v1/auth/login", "/api/v1/auth/register")
WINDOW_SECONDS = 60


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP request budget per minute."""

    def __init__(self, app, default_rpm: int = 120, auth_rpm: int = 10):
        super().__init__(app)
        self.default_rpm = default_rpm
        self.auth_rpm = auth_rpm

    async def dispatch(self, request: Request, call_next) -> Response:
        store = getattr(request.app.state, "channel_store", None)
        if store is None:
            return await call_next(request)

        is_auth = request.url.path.startswith(AUTH_PATHS)
        rpm = self.auth_rpm if is_auth else self.default_rpm
        bucket = "auth" if is_auth else "api"
        client_ip = request.client.host if request.client else "unknown"
        window = int(time.time() // WINDOW_SECONDS)

        try:
            count = await store.incr(
                f"rl:{client_ip}:{bucket}:{window}", ttl=WINDOW_SECONDS * 2
            )
        except Exception as e:
            logger.warning("rate_limit.store_unavailable", error=str(e))
            return await call_next(request)

        if count > rpm:
            logger.info("rate_limit.exceeded", client_ip=client_ip, bucket=bucket)
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={"Retry-After": str(WINDOW_SECONDS)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rpm)
        response.headers["X-RateLimit-Remaining"] = str(max(0, rpm - count))
        return response
