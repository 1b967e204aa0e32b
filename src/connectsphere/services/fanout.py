"""Fan-out — the best-effort half of every domain action.

Learn: Every action service follows the same template:
1. validate preconditions against the database
2. apply the mutation and commit (one transaction)
3. invalidate/refresh cached views        ┐
4. broadcast to the affected socket groups ├─ FanOut, after commit
5. publish a typed event on the channel bus ┘

Steps 3-5 are best-effort: a Redis hiccup or a dead socket must never fail
a request whose durable write already succeeded. Every method here logs
and swallows its own failures. Redis is optional (app works without
realtime features), so a FanOut without a store only broadcasts locally.
"""

from typing import Any, Optional

import structlog

from connectsphere.realtime.broadcast import BroadcastService
from connectsphere.realtime.pubsub import ChannelStore
from connectsphere.schemas.channel_event import ChannelEvent

logger = structlog.get_logger()


class FanOut:
    """Cache + broadcast + publish, wired once at startup."""

    def __init__(self, store: Optional[ChannelStore], broadcast: BroadcastService):
        self.store = store
        self.broadcast = broadcast

    # ─── Cache ───────────────────────────────────────────

    async def cache_get(self, key: str) -> Any:
        if self.store is None:
            return None
        try:
            return await self.store.get(key)
        except Exception as e:
            logger.warning("fanout.cache_read_failed", key=key, error=str(e))
            return None

    async def cache_set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if self.store is None:
            return
        try:
            await self.store.set(key, value, ttl)
        except Exception as e:
            logger.warning("fanout.cache_write_failed", key=key, error=str(e))

    async def invalidate(self, *keys: str) -> None:
        if self.store is None:
            return
        for key in keys:
            try:
                await self.store.delete(key)
            except Exception as e:
                logger.warning("fanout.cache_invalidate_failed", key=key, error=str(e))

    # ─── Realtime ────────────────────────────────────────

    async def emit_to_event(self, event_id: Any, kind: str, payload: Any) -> None:
        try:
            await self.broadcast.emit_to_event(event_id, kind, payload)
        except Exception as e:
            logger.warning("fanout.emit_failed", event_id=str(event_id), kind=kind, error=str(e))

    async def emit_to_user(self, user_id: Any, kind: str, payload: Any) -> None:
        try:
            await self.broadcast.emit_to_user(user_id, kind, payload)
        except Exception as e:
            logger.warning("fanout.emit_failed", user_id=str(user_id), kind=kind, error=str(e))

    # ─── Channel bus ─────────────────────────────────────

    async def publish(self, channel: str, event: ChannelEvent) -> None:
        """Stamp the event with this process's id and publish it."""
        if self.store is None:
            return
        event.origin = self.broadcast.instance_id
        try:
            await self.store.publish(channel, event.to_wire())
        except Exception as e:
            logger.warning(
                "fanout.publish_failed", channel=channel, type=event.type, error=str(e)
            )
