"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and its
dependencies (database, Redis) are reachable. Redis being down is
"degraded", not fatal: the app keeps serving without realtime fan-out.
"""

from fastapi import APIRouter, Request
from sqlalchemy import text

from connectsphere import __version__
from connectsphere.db.engine import engine

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    store = getattr(request.app.state, "channel_store", None)
    if store is None:
        checks["redis"] = "disabled"
    else:
        try:
            await store.ping()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {e}"

    broadcast = getattr(request.app.state, "broadcast", None)
    if broadcast is not None:
        checks["connections"] = broadcast.connection_count

    # Redis is optional: "disabled" is healthy, an unreachable Redis is not.
    status = "healthy" if all(
        v in ("ok", "disabled")
        for k, v in checks.items()
        if k in ("server", "database", "redis")
    ) else "degraded"

    return {"status": status, **checks}
