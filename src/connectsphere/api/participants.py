"""Participant API routes — list, kick, leave."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from connectsphere.api.deps import get_fanout
from connectsphere.auth.dependencies import CurrentIdentity, get_current_user
from connectsphere.db.engine import get_db
from connectsphere.schemas.rsvp import ParticipantRead
from connectsphere.services.fanout import FanOut
from connectsphere.services.participant_service import ParticipantService

router = APIRouter(prefix="/participants")


def _participant_svc(
    db: AsyncSession = Depends(get_db),
    fanout: FanOut = Depends(get_fanout),
) -> ParticipantService:
    return ParticipantService(db, fanout)


@router.get("/{event_id}", response_model=list[ParticipantRead])
async def list_participants(
    event_id: uuid.UUID, svc: ParticipantService = Depends(_participant_svc)
):
    return await svc.list_participants(event_id)


@router.delete("/{event_id}/kick/{user_id}")
async def kick_participant(
    event_id: uuid.UUID,
    user_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ParticipantService = Depends(_participant_svc),
):
    """Creator removes someone from the event."""
    await svc.kick(event_id, identity.user_id, user_id)
    return {"removed": True}


@router.delete("/{event_id}/leave")
async def leave_event(
    event_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ParticipantService = Depends(_participant_svc),
):
    await svc.leave(event_id, identity.user_id)
    return {"left": True}
