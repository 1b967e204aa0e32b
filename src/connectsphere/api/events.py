"""Event API routes.

Learn: Routes translate HTTP to service calls and nothing more. Domain
errors (NotFoundError, ForbiddenError...) propagate to the exception
handler registered in main.py, which maps them to status codes.

Static paths (/events/dashboard, /events/mine) are declared before
/events/{event_id} so they aren't captured as ids.
"""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from connectsphere.api.deps import get_fanout
from connectsphere.auth.dependencies import CurrentIdentity, get_current_user
from connectsphere.db.engine import get_db
from connectsphere.schemas.event import (
    Dashboard,
    EventCreate,
    EventList,
    EventRead,
    EventUpdate,
    EventWithAttendees,
)
from connectsphere.services.event_service import EventService
from connectsphere.services.fanout import FanOut

router = APIRouter()


def _event_svc(
    db: AsyncSession = Depends(get_db),
    fanout: FanOut = Depends(get_fanout),
) -> EventService:
    return EventService(db, fanout)


@router.post("/events", response_model=EventRead, status_code=201)
async def create_event(
    body: EventCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: EventService = Depends(_event_svc),
):
    """Create an event owned by the caller."""
    return await svc.create_event(identity.user_id, body)


@router.get("/events", response_model=EventList)
async def list_events(
    creator_id: Optional[uuid.UUID] = Query(None),
    is_public: Optional[bool] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    svc: EventService = Depends(_event_svc),
):
    events, total = await svc.list_events(
        creator_id=creator_id,
        is_public=is_public,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return {"events": events, "total": total}


@router.get("/events/dashboard", response_model=Dashboard)
async def dashboard(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: EventService = Depends(_event_svc),
):
    """Created, participating and next-7-days events for the caller."""
    return await svc.dashboard(identity.user_id)


@router.get("/events/mine", response_model=list[EventRead])
async def my_events(
    upcoming: bool = Query(False),
    identity: CurrentIdentity = Depends(get_current_user),
    svc: EventService = Depends(_event_svc),
):
    return await svc.list_user_events(identity.user_id, upcoming=upcoming)


@router.get("/events/{event_id}", response_model=EventRead)
async def get_event(event_id: uuid.UUID, svc: EventService = Depends(_event_svc)):
    return await svc.get_event(event_id)


@router.get("/events/{event_id}/attendees", response_model=EventWithAttendees)
async def get_event_with_attendees(
    event_id: uuid.UUID, svc: EventService = Depends(_event_svc)
):
    return await svc.get_event_with_attendees(event_id)


@router.patch("/events/{event_id}", response_model=EventRead)
async def update_event(
    event_id: uuid.UUID,
    body: EventUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: EventService = Depends(_event_svc),
):
    """Owner-only partial update — only fields present in the body change."""
    return await svc.update_event(
        event_id, identity.user_id, body.model_dump(exclude_unset=True)
    )


@router.delete("/events/{event_id}")
async def delete_event(
    event_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: EventService = Depends(_event_svc),
):
    await svc.delete_event(event_id, identity.user_id)
    return {"deleted": True}
