"""RSVP API routes.

Learn: POST is an upsert. The body is dumped with exclude_unset=True so
that a field the client didn't send means "keep what's there".
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from connectsphere.api.deps import get_fanout
from connectsphere.auth.dependencies import CurrentIdentity, get_current_user
from connectsphere.db.engine import get_db
from connectsphere.schemas.rsvp import RsvpCount, RsvpRead, RsvpUpsert
from connectsphere.services.fanout import FanOut
from connectsphere.services.rsvp_service import RsvpService

router = APIRouter(prefix="/rsvp")


def _rsvp_svc(
    db: AsyncSession = Depends(get_db),
    fanout: FanOut = Depends(get_fanout),
) -> RsvpService:
    return RsvpService(db, fanout)


@router.post("/{event_id}", response_model=RsvpRead)
async def upsert_rsvp(
    event_id: uuid.UUID,
    body: RsvpUpsert,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: RsvpService = Depends(_rsvp_svc),
):
    """Create or update the caller's RSVP."""
    return await svc.upsert(identity.user_id, event_id, body.model_dump(exclude_unset=True))


@router.get("/{event_id}", response_model=list[RsvpRead])
async def list_rsvps(
    event_id: uuid.UUID,
    status: Optional[str] = Query(None, pattern=r"^(YES|MAYBE|NO)$"),
    svc: RsvpService = Depends(_rsvp_svc),
):
    return await svc.list_for_event(event_id, status=status)


@router.get("/{event_id}/me", response_model=RsvpRead)
async def my_rsvp(
    event_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: RsvpService = Depends(_rsvp_svc),
):
    return await svc.get(identity.user_id, event_id)


@router.get("/{event_id}/counts", response_model=list[RsvpCount])
async def rsvp_counts(event_id: uuid.UUID, svc: RsvpService = Depends(_rsvp_svc)):
    return await svc.counts(event_id)


@router.delete("/{event_id}")
async def remove_rsvp(
    event_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: RsvpService = Depends(_rsvp_svc),
):
    await svc.remove(identity.user_id, event_id)
    return {"deleted": True}
