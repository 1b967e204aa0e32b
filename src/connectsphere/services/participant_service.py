"""Participant service — kick, leave and the participant list.

Learn: A participant is simply a user with an RSVP row, so removing one is
deleting that row. Both paths notify the counterpart directly:
- kick:  the kicked user gets kicked-from-event on their user room
- leave: the creator gets participant-left-event on theirs

The creator can't leave their own event (delete it instead) and can't
kick themselves.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from connectsphere.db.models import Rsvp, User
from connectsphere.errors import ForbiddenError, NotFoundError, ValidationError
from connectsphere.events.types import (
    SOCKET_KICKED_FROM_EVENT,
    SOCKET_PARTICIPANT_KICKED,
    SOCKET_PARTICIPANT_LEFT,
    SOCKET_PARTICIPANT_LEFT_EVENT,
)
from connectsphere.realtime.pubsub import attendees_key, participant_channel
from connectsphere.schemas.channel_event import ParticipantKicked, ParticipantLeft
from connectsphere.schemas.rsvp import ParticipantRead
from connectsphere.services.event_service import load_event
from connectsphere.services.fanout import FanOut

logger = structlog.get_logger()


class ParticipantService:
    """Business logic for managing who is in an event."""

    def __init__(self, db: AsyncSession, fanout: FanOut):
        self.db = db
        self.fanout = fanout

    async def list_participants(self, event_id: uuid.UUID) -> list[ParticipantRead]:
        """Attendees (YES) with plus-one info, in the order they joined."""
        await load_event(self.db, event_id)
        result = await self.db.execute(
            select(Rsvp, User.name)
            .join(User, User.id == Rsvp.user_id)
            .where(Rsvp.event_id == event_id, Rsvp.status == "YES")
            .order_by(Rsvp.created_at)
        )
        return [
            ParticipantRead(
                id=rsvp.user_id,
                name=name,
                has_plus_one=rsvp.has_plus_one,
                plus_one_name=rsvp.plus_one_name,
                joined_at=rsvp.created_at,
            )
            for rsvp, name in result.all()
        ]

    # ─── Kick ────────────────────────────────────────────

    async def kick(
        self, event_id: uuid.UUID, creator_id: uuid.UUID, target_user_id: uuid.UUID
    ) -> None:
        event = await load_event(self.db, event_id)
        if event.creator_id != creator_id:
            raise ForbiddenError("Only the event creator can remove participants")
        if target_user_id == creator_id:
            raise ValidationError("You cannot remove yourself from your own event")

        rsvp = await self._find(target_user_id, event_id)
        if rsvp is None:
            raise NotFoundError("User is not a participant of this event")

        user_name = await self._user_name(target_user_id)
        title = event.title
        await self.db.delete(rsvp)
        await self.db.commit()

        await self.fanout.invalidate(attendees_key(event_id))
        await self.fanout.emit_to_event(
            event_id,
            SOCKET_PARTICIPANT_KICKED,
            {"eventId": str(event_id), "userId": str(target_user_id), "userName": user_name},
        )
        await self.fanout.emit_to_user(
            target_user_id,
            SOCKET_KICKED_FROM_EVENT,
            {"eventId": str(event_id), "eventTitle": title},
        )
        await self.fanout.publish(
            participant_channel(event_id),
            ParticipantKicked(
                event_id=event_id,
                user_id=creator_id,
                kicked_user_id=target_user_id,
                user_name=user_name,
            ),
        )
        logger.info(
            "participant.kicked",
            event_id=str(event_id),
            kicked_user_id=str(target_user_id),
        )

    # ─── Leave ───────────────────────────────────────────

    async def leave(self, event_id: uuid.UUID, user_id: uuid.UUID) -> None:
        event = await load_event(self.db, event_id)
        if event.creator_id == user_id:
            raise ForbiddenError("The event creator cannot leave; delete the event instead")

        rsvp = await self._find(user_id, event_id)
        if rsvp is None:
            raise NotFoundError("You are not a participant of this event")

        user_name = await self._user_name(user_id)
        creator_id = event.creator_id
        await self.db.delete(rsvp)
        await self.db.commit()

        await self.fanout.invalidate(attendees_key(event_id))
        payload = {"eventId": str(event_id), "userId": str(user_id), "userName": user_name}
        await self.fanout.emit_to_event(event_id, SOCKET_PARTICIPANT_LEFT, payload)
        await self.fanout.emit_to_user(creator_id, SOCKET_PARTICIPANT_LEFT_EVENT, payload)
        await self.fanout.publish(
            participant_channel(event_id),
            ParticipantLeft(event_id=event_id, user_id=user_id, user_name=user_name),
        )
        logger.info("participant.left", event_id=str(event_id), user_id=str(user_id))

    # ─── Helpers ─────────────────────────────────────────

    async def _find(self, user_id: uuid.UUID, event_id: uuid.UUID) -> Optional[Rsvp]:
        result = await self.db.execute(
            select(Rsvp).where(Rsvp.user_id == user_id, Rsvp.event_id == event_id)
        )
        return result.scalars().first()

    async def _user_name(self, user_id: uuid.UUID) -> Optional[str]:
        result = await self.db.execute(select(User.name).where(User.id == user_id))
        return result.scalar_one_or_none()
