"""Notification worker — turns channel events into per-user notifications.

Learn: Domain services only say what happened ("U RSVP'd YES to E"). This
worker decides who should hear about it, so the request path never pays
for audience queries. It runs as a long-lived consumer in every process:

  idle → subscribed (event:*:rsvp|chat|poll|participant)
       → message: validate → dispatch by type → resolve audience
       → emit `notification` to each user room → idle

Every running process receives every message, and BroadcastService only
reaches sockets held locally, so each user gets their notification from
whichever process holds their socket. The worker never writes to the
database, so duplicate delivery can't corrupt state.

Names and titles are re-read from the database (a fresh session per
message), never trusted from the payload. If the event is gone by the
time the message arrives, the message is dropped silently.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Union

import pydantic
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from connectsphere.db.models import Event, Rsvp, User
from connectsphere.events.types import (
    NEW_MESSAGE,
    NOTIFY_CHAT,
    NOTIFY_KICKED,
    NOTIFY_NEW_PARTICIPANT,
    NOTIFY_PARTICIPANT_LEFT,
    NOTIFY_POLL_CLOSED,
    NOTIFY_POLL_CREATED,
    NOTIFY_RSVP,
    PARTICIPANT_KICKED,
    PARTICIPANT_LEFT,
    POLL_CLOSED,
    POLL_CREATED,
    RSVP_UPDATED,
    SOCKET_NOTIFICATION,
)
from connectsphere.realtime.broadcast import BroadcastService
from connectsphere.realtime.pubsub import CATEGORIES, ChannelStore, category_pattern
from connectsphere.schemas.channel_event import (
    NewMessage,
    ParticipantKicked,
    ParticipantLeft,
    PollClosed,
    PollCreated,
    RsvpUpdated,
    parse_channel_event,
)

logger = structlog.get_logger()

RSVP_VERBS = {"YES": "is attending", "MAYBE": "might attend", "NO": "declined"}


@dataclass
class WorkerStats:
    handled: int = 0
    dropped: int = 0
    errors: int = 0


class NotificationWorker:
    """Channel consumer that fans notifications out to user rooms."""

    def __init__(
        self,
        store: Optional[ChannelStore],
        broadcast: BroadcastService,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.store = store
        self.broadcast = broadcast
        self.session_factory = session_factory
        self.stats = WorkerStats()
        self._handlers = {
            RSVP_UPDATED: self._on_rsvp_updated,
            NEW_MESSAGE: self._on_new_message,
            POLL_CREATED: self._on_poll_event,
            POLL_CLOSED: self._on_poll_event,
            PARTICIPANT_KICKED: self._on_participant_kicked,
            PARTICIPANT_LEFT: self._on_participant_left,
        }

    # ─── Lifecycle ───────────────────────────────────────

    async def start(self) -> None:
        if self.store is None:
            logger.info("notification_worker.disabled", reason="no channel store")
            return
        for category in CATEGORIES:
            await self.store.subscribe(category_pattern(category), self.handle)
        logger.info("notification_worker.started")

    async def stop(self) -> None:
        if self.store is None:
            return
        for category in CATEGORIES:
            await self.store.unsubscribe(category_pattern(category), self.handle)
        logger.info("notification_worker.stopped", **self.get_stats())

    def get_stats(self) -> dict:
        return {
            "handled": self.stats.handled,
            "dropped": self.stats.dropped,
            "errors": self.stats.errors,
        }

    # ─── Dispatch ────────────────────────────────────────

    async def handle(self, payload: Any) -> None:
        """Entry point for one bus message. Never raises."""
        try:
            event = parse_channel_event(payload)
        except pydantic.ValidationError as e:
            self.stats.dropped += 1
            logger.warning("notification_worker.invalid_payload", error=str(e))
            return

        handler = self._handlers.get(event.type)
        if handler is None:
            return  # votes, removals, deletions: nobody is notified

        try:
            async with self.session_factory() as db:
                delivered = await handler(db, event)
        except Exception:
            self.stats.errors += 1
            logger.exception(
                "notification_worker.handler_failed",
                type=event.type,
                event_id=str(event.event_id),
            )
            return

        if delivered:
            self.stats.handled += 1
        else:
            self.stats.dropped += 1

    async def send_notification(
        self,
        user_id: uuid.UUID,
        kind: str,
        message: str,
        event_id: uuid.UUID,
        poll_id: Optional[uuid.UUID] = None,
    ) -> None:
        """Push one `notification` frame to a user's room."""
        payload: dict[str, Any] = {
            "type": kind,
            "message": message,
            "eventId": str(event_id),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if poll_id is not None:
            payload["pollId"] = str(poll_id)
        await self.broadcast.emit_to_user(user_id, SOCKET_NOTIFICATION, payload)

    # ─── Handlers (return False when the message is dropped) ──

    async def _on_rsvp_updated(self, db: AsyncSession, event: RsvpUpdated) -> bool:
        row = await db.get(Event, event.event_id)
        if row is None:
            return False
        name = await _user_name(db, event.user_id) or event.user_name or "Someone"

        if event.user_id != row.creator_id:
            verb = RSVP_VERBS.get(event.status, "responded to")
            await self.send_notification(
                row.creator_id,
                NOTIFY_RSVP,
                f'{name} {verb} your event "{row.title}"',
                row.id,
            )

        if row.is_public and event.status == "YES" and event.created:
            attendees = await _rsvp_user_ids(db, row.id, status="YES")
            for user_id in attendees:
                if user_id in (event.user_id, row.creator_id):
                    continue
                await self.send_notification(
                    user_id,
                    NOTIFY_NEW_PARTICIPANT,
                    f'{name} is now attending "{row.title}"',
                    row.id,
                )
        return True

    async def _on_new_message(self, db: AsyncSession, event: NewMessage) -> bool:
        row = await db.get(Event, event.event_id)
        if row is None:
            return False
        sender = await _user_name(db, event.user_id)
        if sender is None:
            return False

        for user_id in await _rsvp_user_ids(db, row.id):
            if user_id == event.user_id:
                continue
            await self.send_notification(
                user_id, NOTIFY_CHAT, f'New message from {sender} in "{row.title}"', row.id
            )
        return True

    async def _on_poll_event(self, db: AsyncSession, event: Union[PollCreated, PollClosed]) -> bool:
        row = await db.get(Event, event.event_id)
        if row is None:
            return False

        if event.type == POLL_CREATED:
            kind, message = NOTIFY_POLL_CREATED, f'New poll in "{row.title}": {event.question}'
        else:
            kind, message = NOTIFY_POLL_CLOSED, f'Poll closed in "{row.title}": {event.question}'
        for user_id in await _rsvp_user_ids(db, row.id):
            await self.send_notification(user_id, kind, message, row.id, poll_id=event.poll_id)
        return True

    async def _on_participant_kicked(self, db: AsyncSession, event: ParticipantKicked) -> bool:
        row = await db.get(Event, event.event_id)
        if row is None:
            return False
        await self.send_notification(
            event.kicked_user_id,
            NOTIFY_KICKED,
            f'You have been removed from the event "{row.title}"',
            row.id,
        )
        return True

    async def _on_participant_left(self, db: AsyncSession, event: ParticipantLeft) -> bool:
        row = await db.get(Event, event.event_id)
        if row is None:
            return False
        name = await _user_name(db, event.user_id) or event.user_name or "Someone"
        await self.send_notification(
            row.creator_id,
            NOTIFY_PARTICIPANT_LEFT,
            f'{name} has left your event "{row.title}"',
            row.id,
        )
        return True


# ─── Audience queries ────────────────────────────────────


async def _user_name(db: AsyncSession, user_id: uuid.UUID) -> Optional[str]:
    result = await db.execute(select(User.name).where(User.id == user_id))
    return result.scalar_one_or_none()


async def _rsvp_user_ids(
    db: AsyncSession, event_id: uuid.UUID, status: Optional[str] = None
) -> list[uuid.UUID]:
    """Participants (any RSVP row), optionally narrowed to one status."""
    query = select(Rsvp.user_id).where(Rsvp.event_id == event_id)
    if status:
        query = query.where(Rsvp.status == status)
    result = await db.execute(query.order_by(Rsvp.created_at))
    return list(result.scalars().all())
