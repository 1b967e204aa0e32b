"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown of the long-lived components,
wired together explicitly instead of through module globals:

  ChannelStore ─┬─ BroadcastService (mirrors the bus onto local sockets)
                ├─ FanOut (cache + broadcast + publish for the services)
                ├─ PollCloseScheduler (auto-close timers + recovery sweep)
                └─ NotificationWorker (bus → per-user notifications)

They are parked on app.state; routes reach them through api/deps.py.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from connectsphere import __version__
from connectsphere.api import api_router
from connectsphere.config import settings
from connectsphere.errors import ConnectSphereError

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: FastAPI lifespan replaces on_event("startup") / on_event("shutdown").
    Anything before `yield` runs at startup, after `yield` runs at shutdown.
    Shutdown runs in reverse order of startup.
    """
    from connectsphere.db.engine import async_session_factory, engine
    from connectsphere.realtime.broadcast import BroadcastService
    from connectsphere.realtime.pubsub import ChannelStore
    from connectsphere.services.fanout import FanOut
    from connectsphere.services.notification_worker import NotificationWorker
    from connectsphere.services.poll_scheduler import PollCloseScheduler

    logger.info(
        "connectsphere.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    # Redis is optional — app works without cache and cross-process fan-out
    store = ChannelStore.from_url(settings.redis_url, prefix=settings.redis_prefix)
    try:
        await store.start()
        logger.info("connectsphere.redis_connected", url=settings.redis_url)
    except Exception as e:
        logger.warning("connectsphere.redis_unavailable", error=str(e))
        await store.client.aclose()
        store = None

    broadcast = BroadcastService(store)
    await broadcast.start()
    fanout = FanOut(store, broadcast)

    scheduler = PollCloseScheduler(
        async_session_factory,
        fanout,
        sweep_interval=settings.poll_sweep_interval,
        horizon=settings.poll_timer_horizon,
    )
    scheduler.start()

    worker = None
    if settings.notification_worker_enabled:
        worker = NotificationWorker(store, broadcast, async_session_factory)
        await worker.start()

    app.state.channel_store = store
    app.state.broadcast = broadcast
    app.state.fanout = fanout
    app.state.poll_scheduler = scheduler
    app.state.notification_worker = worker

    yield

    logger.info("connectsphere.shutdown")
    if worker is not None:
        await worker.stop()
    await scheduler.stop()
    await broadcast.stop()
    if store is not None:
        await store.close()
    await engine.dispose()


async def domain_error_handler(request: Request, exc: ConnectSphereError) -> JSONResponse:
    """Map a domain error to its status code with a {"detail": message} body."""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="ConnectSphere",
        description="Event planning backend — RSVPs, polls, chat and realtime notifications",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_exception_handler(ConnectSphereError, domain_error_handler)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    from connectsphere.middleware.rate_limit import RateLimitMiddleware
    from connectsphere.middleware.request_id import RequestIdMiddleware
    from connectsphere.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    from connectsphere.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: connectsphere.main:app)
app = create_app()
