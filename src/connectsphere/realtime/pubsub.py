"""Cache/Channel Store — prefixed Redis cache plus pattern pub/sub.

Learn: Redis pub/sub is fire-and-forget. If no one is listening, the message
is lost. That's fine for realtime UI updates and notifications (the frontend
can always query the API to catch up). Durable state lives in the database;
everything here is expendable and must tolerate being empty.

Naming: every key and channel gets the configured prefix (connectsphere:)
so the store can share a Redis with other tenants.

Channels: event:{event_id}:{rsvp|chat|poll|participant|event}
Consumers subscribe by pattern (event:*:rsvp) through PSUBSCRIBE and an
explicit pattern → handlers registry, so one listener task serves every
consumer in the process.
"""

import asyncio
import json
import uuid
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as aioredis
import structlog

logger = structlog.get_logger()

Handler = Callable[[Any], Awaitable[None]]

# ─── Channel naming ──────────────────────────────────────

RSVP = "rsvp"
CHAT = "chat"
POLL = "poll"
PARTICIPANT = "participant"
CATEGORIES = (RSVP, CHAT, POLL, PARTICIPANT)
# Event detail changes: mirrored to sockets, never notified.
EVENT = "event"
MIRRORED_CATEGORIES = CATEGORIES + (EVENT,)


def event_channel(event_id: Any, category: str) -> str:
    return f"event:{event_id}:{category}"


def rsvp_channel(event_id: Any) -> str:
    return event_channel(event_id, RSVP)


def chat_channel(event_id: Any) -> str:
    return event_channel(event_id, CHAT)


def poll_channel(event_id: Any) -> str:
    return event_channel(event_id, POLL)


def participant_channel(event_id: Any) -> str:
    return event_channel(event_id, PARTICIPANT)


def event_details_channel(event_id: Any) -> str:
    return event_channel(event_id, EVENT)


def category_pattern(category: str) -> str:
    """Pattern matching one category across every event id."""
    return f"event:*:{category}"


# ─── Cache keys ──────────────────────────────────────────


def event_key(event_id: Any) -> str:
    return f"event:{event_id}"


def attendees_key(event_id: Any) -> str:
    return f"event:{event_id}:with-attendees"


# ─── Codec ───────────────────────────────────────────────


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def encode(value: Any) -> str:
    """Structured values become JSON; plain strings are stored as-is."""
    if isinstance(value, str):
        return value
    return json.dumps(value, default=_json_default)


def decode(raw: Any) -> Any:
    """Parse JSON, falling back to the raw value. Callers tolerate either."""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return raw


# ─── Store ───────────────────────────────────────────────


class ChannelStore:
    """Prefixed key-value cache with TTL plus pattern pub/sub.

    Learn: Constructed once at startup and passed to whatever needs it
    (services, broadcast service, worker) instead of living in a module
    global. Tests hand it a fakeredis client.
    """

    def __init__(self, client: aioredis.Redis, prefix: str = "connectsphere:"):
        self.client = client
        self.prefix = prefix
        self._pubsub: Optional[aioredis.client.PubSub] = None
        self._handlers: dict[str, list[Handler]] = {}
        self._listener: Optional[asyncio.Task] = None

    @classmethod
    def from_url(cls, url: str, prefix: str = "connectsphere:") -> "ChannelStore":
        client = aioredis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, prefix=prefix)

    def _key(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def _strip(self, name: str) -> str:
        return name[len(self.prefix):] if name.startswith(self.prefix) else name

    async def ping(self) -> bool:
        return await self.client.ping()

    # ─── Cache operations ────────────────────────────────

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if ttl:
            await self.client.set(self._key(key), encode(value), ex=ttl)
        else:
            await self.client.set(self._key(key), encode(value))

    async def get(self, key: str) -> Any:
        return decode(await self.client.get(self._key(key)))

    async def delete(self, key: str) -> None:
        await self.client.delete(self._key(key))

    async def exists(self, key: str) -> bool:
        return await self.client.exists(self._key(key)) == 1

    async def incr(self, key: str, ttl: Optional[int] = None) -> int:
        """Increment a counter; the TTL is set when the counter is created."""
        count = await self.client.incr(self._key(key))
        if count == 1 and ttl:
            await self.client.expire(self._key(key), ttl)
        return count

    async def list_push(self, key: str, value: Any) -> None:
        await self.client.rpush(self._key(key), encode(value))

    async def list_range(self, key: str, start: int, end: int) -> list[Any]:
        values = await self.client.lrange(self._key(key), start, end)
        return [decode(v) for v in values]

    # ─── Pub/Sub ─────────────────────────────────────────

    async def publish(self, channel: str, payload: Any) -> int:
        """Publish to a channel. Returns the number of receiving clients."""
        return await self.client.publish(self._key(channel), encode(payload))

    async def start(self) -> None:
        """Check the connection and open the pub/sub handle. Raises if Redis is down."""
        await self.client.ping()
        if self._pubsub is None:
            self._pubsub = self.client.pubsub()

    async def subscribe(self, pattern: str, handler: Handler) -> None:
        """Register a handler for every channel matching the pattern.

        Learn: The PSUBSCRIBE is awaited before the listener starts, so a
        message published after this returns will be delivered.
        """
        if self._pubsub is None:
            self._pubsub = self.client.pubsub()

        first = pattern not in self._handlers
        self._handlers.setdefault(pattern, []).append(handler)
        if first:
            await self._pubsub.psubscribe(self._key(pattern))

        if self._listener is None or self._listener.done():
            self._listener = asyncio.create_task(self._listen())

    async def unsubscribe(self, pattern: str, handler: Optional[Handler] = None) -> None:
        """Drop one handler (or all of them) for a pattern.

        The PUNSUBSCRIBE only goes out once no handler is left, so other
        consumers sharing the pattern keep receiving.
        """
        handlers = self._handlers.get(pattern)
        if handlers is None:
            return
        if handler is not None and handler in handlers:
            handlers.remove(handler)
        elif handler is None:
            handlers.clear()
        if not handlers:
            del self._handlers[pattern]
            if self._pubsub:
                await self._pubsub.punsubscribe(self._key(pattern))

    async def dispatch(self, pattern: str, raw: Any) -> None:
        """Deliver one raw message to every handler of a pattern."""
        payload = decode(raw)
        for handler in list(self._handlers.get(pattern, ())):
            try:
                await handler(payload)
            except Exception:
                logger.exception("pubsub.handler_failed", pattern=pattern)

    async def _listen(self) -> None:
        try:
            async for message in self._pubsub.listen():
                if message["type"] != "pmessage":
                    continue
                await self.dispatch(self._strip(message["pattern"]), message["data"])
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("pubsub.listener_crashed")

    async def close(self) -> None:
        """Stop the listener and release connections."""
        if self._listener:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._pubsub:
            await self._pubsub.aclose()
            self._pubsub = None
        self._handlers.clear()
        await self.client.aclose()
