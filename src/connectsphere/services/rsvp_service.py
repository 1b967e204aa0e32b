"""RSVP service — upsert/remove responses and fan out the change.

Learn: One RSVP per (user, event), enforced by a unique constraint rather
than a lock. Two tabs submitting at once race to INSERT; the loser gets an
IntegrityError, rolls back and retries once as an UPDATE of the row the
winner created.

Merge rules for an existing row (the caller passes only the fields the
client actually sent):
- a sent value overwrites
- an omitted field keeps its value
- explicit null clears a nullable text field, but is "no change" for
  booleans and tag lists (those columns are never null)

After commit: drop the attendees cache, tell the event room, tell the
creator (unless they are the one responding), publish RSVP_UPDATED.
"""

import uuid
from typing import Any, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from connectsphere.db.models import RSVP_STATUSES, Rsvp, User
from connectsphere.errors import ConflictError, NotFoundError, ValidationError
from connectsphere.events.types import (
    SOCKET_EVENT_RSVP_REMOVED,
    SOCKET_EVENT_RSVP_UPDATED,
    SOCKET_RSVP_REMOVED,
    SOCKET_RSVP_UPDATED,
)
from connectsphere.realtime.pubsub import attendees_key, rsvp_channel
from connectsphere.schemas.channel_event import RsvpRemoved, RsvpUpdated
from connectsphere.schemas.rsvp import RsvpRead
from connectsphere.schemas.wire import camelize
from connectsphere.services.event_service import load_event
from connectsphere.services.fanout import FanOut

logger = structlog.get_logger()

TAG_FIELDS = (
    "dietary_patterns",
    "religious_dietary",
    "allergies",
    "lifestyle_choices",
    "intensity_prefs",
    "alcohol_prefs",
)
NULLABLE_TEXT_FIELDS = ("plus_one_name", "comment", "custom_dietary_notes")
NON_NULL_FIELDS = ("has_plus_one",) + TAG_FIELDS


def merge_rsvp(rsvp: Rsvp, fields: dict[str, Any]) -> None:
    """Apply explicitly supplied fields onto an RSVP row in place."""
    for name, value in fields.items():
        if name == "status":
            rsvp.status = value
        elif name in NON_NULL_FIELDS:
            if value is not None:
                setattr(rsvp, name, list(value) if name in TAG_FIELDS else value)
        elif name in NULLABLE_TEXT_FIELDS:
            setattr(rsvp, name, value)


class RsvpService:
    """Business logic for RSVPs."""

    def __init__(self, db: AsyncSession, fanout: FanOut):
        self.db = db
        self.fanout = fanout

    # ─── Upsert ──────────────────────────────────────────

    async def upsert(
        self, user_id: uuid.UUID, event_id: uuid.UUID, fields: dict[str, Any]
    ) -> Rsvp:
        """Create or merge-update the user's RSVP. `fields` must include status."""
        if fields.get("status") not in RSVP_STATUSES:
            raise ValidationError("status must be one of YES, MAYBE, NO")
        event = await load_event(self.db, event_id)
        creator_id = event.creator_id

        existing = await self._find(user_id, event_id)
        created = existing is None
        if created:
            rsvp = Rsvp(
                user_id=user_id,
                event_id=event_id,
                has_plus_one=False,
                **{name: [] for name in TAG_FIELDS},
            )
            merge_rsvp(rsvp, fields)
            self.db.add(rsvp)
            try:
                await self.db.commit()
            except IntegrityError:
                # A concurrent request inserted first: update its row instead.
                await self.db.rollback()
                logger.info("rsvp.insert_race", user_id=str(user_id), event_id=str(event_id))
                created = False
                existing = await self._find(user_id, event_id)
                if existing is None:
                    raise
                merge_rsvp(existing, fields)
                await self.db.commit()
                rsvp = existing
        else:
            merge_rsvp(existing, fields)
            await self.db.commit()
            rsvp = existing

        await self.db.refresh(rsvp)
        user_name = await self._user_name(user_id)

        await self.fanout.invalidate(attendees_key(event_id))
        snapshot = camelize(
            {
                **RsvpRead.model_validate(rsvp).model_dump(mode="json"),
                "user_name": user_name,
                "created": created,
            }
        )
        await self.fanout.emit_to_event(event_id, SOCKET_RSVP_UPDATED, snapshot)
        if creator_id != user_id:
            await self.fanout.emit_to_user(creator_id, SOCKET_EVENT_RSVP_UPDATED, snapshot)
        await self.fanout.publish(
            rsvp_channel(event_id),
            RsvpUpdated(
                event_id=event_id,
                user_id=user_id,
                user_name=user_name,
                status=rsvp.status,
                created=created,
            ),
        )

        logger.info(
            "rsvp.upserted",
            event_id=str(event_id),
            user_id=str(user_id),
            status=rsvp.status,
            created=created,
        )
        return rsvp

    # ─── Remove ──────────────────────────────────────────

    async def remove(self, user_id: uuid.UUID, event_id: uuid.UUID) -> None:
        """Delete the user's own RSVP. ConflictError when there is none."""
        event = await load_event(self.db, event_id)
        creator_id = event.creator_id
        rsvp = await self._find(user_id, event_id)
        if rsvp is None:
            raise ConflictError("You have not responded to this event")

        await self.db.delete(rsvp)
        await self.db.commit()
        user_name = await self._user_name(user_id)

        await self.fanout.invalidate(attendees_key(event_id))
        payload = {"eventId": str(event_id), "userId": str(user_id), "userName": user_name}
        await self.fanout.emit_to_event(event_id, SOCKET_RSVP_REMOVED, payload)
        if creator_id != user_id:
            await self.fanout.emit_to_user(creator_id, SOCKET_EVENT_RSVP_REMOVED, payload)
        await self.fanout.publish(
            rsvp_channel(event_id),
            RsvpRemoved(event_id=event_id, user_id=user_id, user_name=user_name),
        )
        logger.info("rsvp.removed", event_id=str(event_id), user_id=str(user_id))

    # ─── Read ────────────────────────────────────────────

    async def get(self, user_id: uuid.UUID, event_id: uuid.UUID) -> Rsvp:
        rsvp = await self._find(user_id, event_id)
        if rsvp is None:
            raise NotFoundError("RSVP not found")
        return rsvp

    async def list_for_event(
        self, event_id: uuid.UUID, status: Optional[str] = None
    ) -> list[Rsvp]:
        await load_event(self.db, event_id)
        query = select(Rsvp).where(Rsvp.event_id == event_id).order_by(Rsvp.created_at)
        if status:
            query = query.where(Rsvp.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def counts(self, event_id: uuid.UUID) -> list[dict[str, Any]]:
        """Per-status head counts, with plus-ones counted separately."""
        await load_event(self.db, event_id)
        result = await self.db.execute(
            select(Rsvp.status, Rsvp.has_plus_one, func.count())
            .where(Rsvp.event_id == event_id)
            .group_by(Rsvp.status, Rsvp.has_plus_one)
        )
        totals = {status: {"status": status, "count": 0, "plus_ones": 0} for status in RSVP_STATUSES}
        for status, has_plus_one, n in result.all():
            totals[status]["count"] += n
            if has_plus_one:
                totals[status]["plus_ones"] += n
        return list(totals.values())

    # ─── Helpers ─────────────────────────────────────────

    async def _find(self, user_id: uuid.UUID, event_id: uuid.UUID) -> Optional[Rsvp]:
        result = await self.db.execute(
            select(Rsvp).where(Rsvp.user_id == user_id, Rsvp.event_id == event_id)
        )
        return result.scalars().first()

    async def _user_name(self, user_id: uuid.UUID) -> Optional[str]:
        result = await self.db.execute(select(User.name).where(User.id == user_id))
        return result.scalar_one_or_none()
