"""Realtime Broadcast Service — named groups of live WebSocket connections.

Learn: Clients join two kinds of groups:
- event:{event_id} — everyone looking at an event page
- user:{user_id}   — every tab the user has open

emit_to_event / emit_to_user push a frame {"event": kind, "data": payload}
to every connection currently in the group. Delivery is fire-and-forget:
a client that is offline (or joins a moment later) misses the frame and
re-syncs with a normal API read.

Cross-process delivery: a socket is held by exactly one process, but the
action that concerns it may run in another. start() subscribes to the
channel bus and replays selected events onto the event room. Events whose
`origin` is this instance were already broadcast directly by the domain
service, so they are skipped instead of delivered twice.
"""

import uuid
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import structlog
from fastapi.encoders import jsonable_encoder

from connectsphere.events.types import MIRRORED_TO_EVENT_ROOM
from connectsphere.realtime.pubsub import MIRRORED_CATEGORIES, ChannelStore, category_pattern

logger = structlog.get_logger()


class Connection(Protocol):
    """Anything that can receive a JSON frame (Starlette WebSocket, test double)."""

    async def send_json(self, data: Any) -> None: ...


def event_group(event_id: Any) -> str:
    return f"event:{event_id}"


def user_group(user_id: Any) -> str:
    return f"user:{user_id}"


@dataclass
class BroadcastStats:
    sent: int = 0
    failed: int = 0
    mirrored: int = 0
    skipped_own: int = 0


class BroadcastService:
    """Group membership + fan-out to live connections for one process."""

    def __init__(
        self,
        store: Optional[ChannelStore] = None,
        instance_id: Optional[str] = None,
    ):
        self.store = store
        self.instance_id = instance_id or uuid.uuid4().hex
        self.stats = BroadcastStats()
        self._groups: dict[str, set] = defaultdict(set)
        self._memberships: dict[Any, set[str]] = {}

    # ─── Membership ──────────────────────────────────────

    def connect(self, conn: Connection) -> None:
        self._memberships.setdefault(conn, set())

    def disconnect(self, conn: Connection) -> None:
        """Remove a connection from every group it joined."""
        for group in self._memberships.pop(conn, set()):
            members = self._groups.get(group)
            if members is not None:
                members.discard(conn)
                if not members:
                    del self._groups[group]

    def join(self, conn: Connection, group: str) -> None:
        self._memberships.setdefault(conn, set()).add(group)
        self._groups[group].add(conn)

    def leave(self, conn: Connection, group: str) -> None:
        self._memberships.get(conn, set()).discard(group)
        members = self._groups.get(group)
        if members is not None:
            members.discard(conn)
            if not members:
                del self._groups[group]

    def members(self, group: str) -> set:
        return set(self._groups.get(group, ()))

    @property
    def connection_count(self) -> int:
        return len(self._memberships)

    # ─── Emission ────────────────────────────────────────

    async def emit(self, group: str, kind: str, payload: Any) -> int:
        """Send a frame to every member of a group. Returns frames delivered.

        Learn: Never raises. A connection whose send fails is assumed dead
        and dropped from all groups; the client will reconnect and re-sync.
        """
        frame = {"event": kind, "data": jsonable_encoder(payload)}
        delivered = 0
        for conn in self.members(group):
            try:
                await conn.send_json(frame)
                delivered += 1
            except Exception as e:
                self.stats.failed += 1
                logger.warning(
                    "broadcast.send_failed", group=group, kind=kind, error=str(e)
                )
                self.disconnect(conn)
        self.stats.sent += delivered
        return delivered

    async def emit_to_event(self, event_id: Any, kind: str, payload: Any) -> int:
        return await self.emit(event_group(event_id), kind, payload)

    async def emit_to_user(self, user_id: Any, kind: str, payload: Any) -> int:
        return await self.emit(user_group(user_id), kind, payload)

    # ─── Channel mirroring ───────────────────────────────

    async def start(self) -> None:
        """Subscribe to every category channel and mirror onto event rooms."""
        if self.store is None:
            return
        for category in MIRRORED_CATEGORIES:
            await self.store.subscribe(category_pattern(category), self.mirror)
        logger.info("broadcast.mirroring_started", instance_id=self.instance_id)

    async def stop(self) -> None:
        if self.store is None:
            return
        for category in MIRRORED_CATEGORIES:
            await self.store.unsubscribe(category_pattern(category), self.mirror)

    async def mirror(self, payload: Any) -> None:
        """Replay a bus event onto its event room unless this process sent it."""
        if not isinstance(payload, dict):
            return
        if payload.get("origin") == self.instance_id:
            self.stats.skipped_own += 1
            return

        kind = MIRRORED_TO_EVENT_ROOM.get(payload.get("type"))
        event_id = payload.get("eventId")
        if kind is None or not event_id:
            return

        self.stats.mirrored += 1
        # Event detail changes carry the exact socket payload in `data`.
        await self.emit_to_event(event_id, kind, payload.get("data", payload))
