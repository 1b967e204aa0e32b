"""Poll API routes.

Learn: The scheduler dependency may be None (e.g. a test app without the
lifespan); PollService then simply doesn't arm auto-close timers and the
recovery sweep picks the deadline up later.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from connectsphere.api.deps import get_fanout, get_scheduler
from connectsphere.auth.dependencies import CurrentIdentity, get_current_user
from connectsphere.db.engine import get_db
from connectsphere.schemas.poll import PollCreate, PollRead
from connectsphere.services.fanout import FanOut
from connectsphere.services.poll_scheduler import PollCloseScheduler
from connectsphere.services.poll_service import PollService, poll_view

router = APIRouter(prefix="/polls")


class VoteRequest(BaseModel):
    option_id: uuid.UUID


def _poll_svc(
    db: AsyncSession = Depends(get_db),
    fanout: FanOut = Depends(get_fanout),
    scheduler: Optional[PollCloseScheduler] = Depends(get_scheduler),
) -> PollService:
    return PollService(db, fanout, scheduler)


@router.post("/events/{event_id}", response_model=PollRead, status_code=201)
async def create_poll(
    event_id: uuid.UUID,
    body: PollCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: PollService = Depends(_poll_svc),
):
    poll = await svc.create_poll(
        event_id,
        identity.user_id,
        question=body.question,
        options=body.options,
        close_at=body.close_at,
    )
    return poll_view(poll)


@router.get("/events/{event_id}", response_model=list[PollRead])
async def list_polls(event_id: uuid.UUID, svc: PollService = Depends(_poll_svc)):
    return [poll_view(p) for p in await svc.list_polls(event_id)]


@router.get("/{poll_id}", response_model=PollRead)
async def get_poll(poll_id: uuid.UUID, svc: PollService = Depends(_poll_svc)):
    return poll_view(await svc.get_poll(poll_id))


@router.post("/{poll_id}/vote", response_model=PollRead)
async def vote(
    poll_id: uuid.UUID,
    body: VoteRequest,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: PollService = Depends(_poll_svc),
):
    """Cast (or move) the caller's single vote."""
    return poll_view(await svc.vote(poll_id, identity.user_id, body.option_id))


@router.post("/{poll_id}/close", response_model=PollRead)
async def close_poll(
    poll_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: PollService = Depends(_poll_svc),
):
    return poll_view(await svc.close_poll(poll_id, identity.user_id))


@router.delete("/{poll_id}")
async def delete_poll(
    poll_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: PollService = Depends(_poll_svc),
):
    await svc.delete_poll(poll_id, identity.user_id)
    return {"deleted": True}
