"""Event service — event CRUD plus the cached read views.

Learn: Two cache entries exist per event, both derived and expendable:
- event:{id}                 → EventRead snapshot (1 hour)
- event:{id}:with-attendees  → EventRead + YES list (10 minutes, because
                               every RSVP change invalidates it)

Reads go cache → database → cache. Writes commit first, then refresh or
drop the cache entries and broadcast, all through FanOut (best-effort).

apply_update() is the authorization-free write path. The poll service
uses it when a closed poll decides the event's time or place.
"""

import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from connectsphere.config import settings
from connectsphere.db.models import FOOD_OR_DRINK_TYPES, Event, Rsvp, User, utcnow
from connectsphere.errors import ForbiddenError, NotFoundError
from connectsphere.events.types import (
    SOCKET_EVENT_CREATED,
    SOCKET_EVENT_DELETED,
    SOCKET_EVENT_UPDATED,
)
from connectsphere.realtime.pubsub import attendees_key, event_details_channel, event_key
from connectsphere.schemas.channel_event import EventDeleted, EventUpdated
from connectsphere.schemas.event import (
    AttendeeRead,
    EventCreate,
    EventRead,
    EventWithAttendees,
)
from connectsphere.schemas.wire import camelize
from connectsphere.services.fanout import FanOut

logger = structlog.get_logger()

# Columns a caller may change. has_food_or_drinks is derived, never written.
UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "starts_at",
        "location_text",
        "latitude",
        "longitude",
        "is_public",
        "event_type",
    }
)
# Columns that can't be cleared: an explicit null means "no change".
REQUIRED_FIELDS = frozenset({"title", "starts_at", "location_text", "is_public", "event_type"})
DASHBOARD_WINDOW = timedelta(days=7)


def serialize_event(event: Event) -> dict[str, Any]:
    """JSON-ready EventRead dict — the cached and broadcast shape."""
    return EventRead.model_validate(event).model_dump(mode="json")


async def load_event(db: AsyncSession, event_id: uuid.UUID) -> Event:
    """Fetch an event or raise NotFoundError. Shared by every action service."""
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalars().first()
    if event is None:
        raise NotFoundError("Event not found")
    return event


class EventService:
    """Business logic for events and their cached views."""

    def __init__(self, db: AsyncSession, fanout: FanOut):
        self.db = db
        self.fanout = fanout

    # ─── Create ──────────────────────────────────────────

    async def create_event(self, creator_id: uuid.UUID, data: EventCreate) -> Event:
        event = Event(
            **data.model_dump(),
            creator_id=creator_id,
            has_food_or_drinks=data.event_type in FOOD_OR_DRINK_TYPES,
        )
        self.db.add(event)
        await self.db.commit()
        await self.db.refresh(event)

        snapshot = serialize_event(event)
        await self.fanout.cache_set(event_key(event.id), snapshot, settings.event_cache_ttl)
        await self.fanout.emit_to_user(creator_id, SOCKET_EVENT_CREATED, camelize(snapshot))

        logger.info("event.created", event_id=str(event.id), creator_id=str(creator_id))
        return event

    # ─── Read ────────────────────────────────────────────

    async def get_event(self, event_id: uuid.UUID) -> dict[str, Any]:
        """Cached event snapshot. Raises NotFoundError."""
        cached = await self.fanout.cache_get(event_key(event_id))
        if isinstance(cached, dict):
            return cached

        event = await load_event(self.db, event_id)
        snapshot = serialize_event(event)
        await self.fanout.cache_set(event_key(event_id), snapshot, settings.event_cache_ttl)
        return snapshot

    async def list_events(
        self,
        creator_id: Optional[uuid.UUID] = None,
        is_public: Optional[bool] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Event], int]:
        """List events with optional filters. Returns (page, total)."""
        query = select(Event)
        if creator_id:
            query = query.where(Event.creator_id == creator_id)
        if is_public is not None:
            query = query.where(Event.is_public == is_public)
        if date_from:
            query = query.where(Event.starts_at >= date_from)
        if date_to:
            query = query.where(Event.starts_at <= date_to)

        total = (
            await self.db.execute(select(func.count()).select_from(query.subquery()))
        ).scalar_one()
        result = await self.db.execute(
            query.order_by(Event.starts_at).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), total

    async def list_user_events(
        self, user_id: uuid.UUID, upcoming: bool = False
    ) -> list[Event]:
        """Events the user created or has any RSVP for."""
        rsvp_events = select(Rsvp.event_id).where(Rsvp.user_id == user_id)
        query = select(Event).where(
            or_(Event.creator_id == user_id, Event.id.in_(rsvp_events))
        )
        if upcoming:
            query = query.where(Event.starts_at >= utcnow())
        result = await self.db.execute(query.order_by(Event.starts_at))
        return list(result.scalars().all())

    async def dashboard(self, user_id: uuid.UUID) -> dict[str, list[Event]]:
        """Created events, events the user is going to, and the next 7 days."""
        created = await self.db.execute(
            select(Event)
            .where(Event.creator_id == user_id)
            .order_by(Event.starts_at)
        )
        participating = await self.db.execute(
            select(Event)
            .join(Rsvp, Rsvp.event_id == Event.id)
            .where(
                Rsvp.user_id == user_id,
                Rsvp.status.in_(("YES", "MAYBE")),
                Event.creator_id != user_id,
            )
            .order_by(Event.starts_at)
        )
        created_events = list(created.scalars().all())
        participating_events = list(participating.scalars().all())

        now = utcnow()
        window_end = now + DASHBOARD_WINDOW
        upcoming = await self.db.execute(
            select(Event)
            .where(
                Event.id.in_([e.id for e in created_events + participating_events]),
                Event.starts_at >= now,
                Event.starts_at <= window_end,
            )
            .order_by(Event.starts_at)
        )
        return {
            "created_events": created_events,
            "participating_events": participating_events,
            "upcoming_events": list(upcoming.scalars().all()),
        }

    async def get_event_with_attendees(self, event_id: uuid.UUID) -> dict[str, Any]:
        """Event snapshot plus its YES attendees, cached for 10 minutes."""
        cached = await self.fanout.cache_get(attendees_key(event_id))
        if isinstance(cached, dict):
            return cached

        event = await load_event(self.db, event_id)
        result = await self.db.execute(
            select(Rsvp, User.name)
            .join(User, User.id == Rsvp.user_id)
            .where(Rsvp.event_id == event_id, Rsvp.status == "YES")
            .order_by(Rsvp.created_at)
        )
        attendees = [
            AttendeeRead(
                id=rsvp.user_id,
                name=name,
                has_plus_one=rsvp.has_plus_one,
                plus_one_name=rsvp.plus_one_name,
            )
            for rsvp, name in result.all()
        ]
        view = EventWithAttendees(
            **EventRead.model_validate(event).model_dump(), attendees=attendees
        ).model_dump(mode="json")
        await self.fanout.cache_set(attendees_key(event_id), view, settings.attendees_cache_ttl)
        return view

    # ─── Update ──────────────────────────────────────────

    async def update_event(
        self, event_id: uuid.UUID, user_id: uuid.UUID, changes: dict[str, Any]
    ) -> Event:
        """Owner-only partial update."""
        event = await load_event(self.db, event_id)
        if event.creator_id != user_id:
            raise ForbiddenError("Only the event creator can update this event")
        return await self._apply(event, changes)

    async def apply_update(self, event_id: uuid.UUID, changes: dict[str, Any]) -> Event:
        """Apply changes without an authorization check (internal callers only)."""
        event = await load_event(self.db, event_id)
        return await self._apply(event, changes)

    async def _apply(self, event: Event, changes: dict[str, Any]) -> Event:
        changes = {
            field: value
            for field, value in changes.items()
            if field in UPDATABLE_FIELDS and not (value is None and field in REQUIRED_FIELDS)
        }
        for field, value in changes.items():
            setattr(event, field, value)
        if "event_type" in changes:
            event.has_food_or_drinks = event.event_type in FOOD_OR_DRINK_TYPES

        await self.db.commit()
        await self.db.refresh(event)

        snapshot = serialize_event(event)
        await self.fanout.cache_set(event_key(event.id), snapshot, settings.event_cache_ttl)
        await self.fanout.invalidate(attendees_key(event.id))
        payload = camelize(snapshot)
        await self.fanout.emit_to_event(event.id, SOCKET_EVENT_UPDATED, payload)
        await self.fanout.publish(
            event_details_channel(event.id), EventUpdated(event_id=event.id, data=payload)
        )

        logger.info(
            "event.updated",
            event_id=str(event.id),
            fields=sorted(changes),
        )
        return event

    # ─── Delete ──────────────────────────────────────────

    async def delete_event(self, event_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Owner-only delete. RSVPs, messages and polls go with it (FK cascade)."""
        event = await load_event(self.db, event_id)
        if event.creator_id != user_id:
            raise ForbiddenError("Only the event creator can delete this event")

        await self.db.delete(event)
        await self.db.commit()

        await self.fanout.invalidate(event_key(event_id), attendees_key(event_id))
        payload = {"id": str(event_id)}
        await self.fanout.emit_to_event(event_id, SOCKET_EVENT_DELETED, payload)
        await self.fanout.publish(
            event_details_channel(event_id), EventDeleted(event_id=event_id, data=payload)
        )

        logger.info("event.deleted", event_id=str(event_id), user_id=str(user_id))
