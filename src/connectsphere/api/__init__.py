"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Auth is applied at the include_router level using FastAPI's
dependencies parameter. This protects all routes in each router
without modifying individual handlers. Health and auth routers are
open (no auth required).
"""

from fastapi import APIRouter, Depends

from connectsphere.api.auth import router as auth_router
from connectsphere.api.chat import router as chat_router
from connectsphere.api.events import router as events_router
from connectsphere.api.health import router as health_router
from connectsphere.api.participants import router as participants_router
from connectsphere.api.polls import router as polls_router
from connectsphere.api.rsvp import router as rsvp_router
from connectsphere.auth.dependencies import get_current_user

# All protected routers require authentication
_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api/v1")

# Open routes — no auth required
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])

# Protected routes — require a valid bearer token
api_router.include_router(events_router, tags=["events"], dependencies=_auth)
api_router.include_router(rsvp_router, tags=["rsvp"], dependencies=_auth)
api_router.include_router(chat_router, tags=["chat"], dependencies=_auth)
api_router.include_router(polls_router, tags=["polls"], dependencies=_auth)
api_router.include_router(participants_router, tags=["participants"], dependencies=_auth)
