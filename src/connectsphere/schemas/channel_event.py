"""Pydantic schemas for channel events — the payloads on the Redis bus.

Learn: Each event type has a fixed field set. Python attributes are
snake_case; the wire format is camelCase ({"type": "RSVP_UPDATED",
"eventId": ..., "userId": ..., "timestamp": ...}) via an alias generator.
`origin` carries the publishing process's instance id so the broadcast
service can skip events it already delivered directly.

Consumers parse with parse_channel_event(), which dispatches on `type`
(a discriminated union) and rejects anything malformed.
"""

import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _ChannelEventBase(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    event_id: uuid.UUID
    timestamp: datetime = Field(default_factory=_now)
    origin: Optional[str] = None

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready camelCase dict."""
        return self.model_dump(mode="json", by_alias=True)


class PollOptionSummary(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: uuid.UUID
    text: str
    votes: int = 0


# ─── RSVP ────────────────────────────────────────────────


class RsvpUpdated(_ChannelEventBase):
    type: Literal["RSVP_UPDATED"] = "RSVP_UPDATED"
    user_id: uuid.UUID
    user_name: Optional[str] = None
    status: str
    created: bool = False


class RsvpRemoved(_ChannelEventBase):
    type: Literal["RSVP_REMOVED"] = "RSVP_REMOVED"
    user_id: uuid.UUID
    user_name: Optional[str] = None


# ─── Chat ────────────────────────────────────────────────


class NewMessage(_ChannelEventBase):
    type: Literal["NEW_MESSAGE"] = "NEW_MESSAGE"
    id: uuid.UUID
    text: str
    user_id: uuid.UUID
    user_name: Optional[str] = None
    created_at: datetime


class MessageDeleted(_ChannelEventBase):
    type: Literal["MESSAGE_DELETED"] = "MESSAGE_DELETED"
    message_id: uuid.UUID
    deleted_by: uuid.UUID


# ─── Polls ───────────────────────────────────────────────


class PollCreated(_ChannelEventBase):
    type: Literal["POLL_CREATED"] = "POLL_CREATED"
    poll_id: uuid.UUID
    question: str
    options: list[PollOptionSummary] = Field(default_factory=list)


class PollVoted(_ChannelEventBase):
    type: Literal["POLL_VOTE"] = "POLL_VOTE"
    poll_id: uuid.UUID
    user_id: uuid.UUID
    user_name: Optional[str] = None
    option_id: uuid.UUID


class PollClosed(_ChannelEventBase):
    type: Literal["POLL_CLOSED"] = "POLL_CLOSED"
    poll_id: uuid.UUID
    question: str
    winning_option: Optional[PollOptionSummary] = None


class PollDeleted(_ChannelEventBase):
    type: Literal["POLL_DELETED"] = "POLL_DELETED"
    poll_id: uuid.UUID


# ─── Participants ────────────────────────────────────────


class ParticipantKicked(_ChannelEventBase):
    type: Literal["PARTICIPANT_KICKED"] = "PARTICIPANT_KICKED"
    user_id: uuid.UUID  # the creator who kicked
    kicked_user_id: uuid.UUID
    user_name: Optional[str] = None  # the kicked user's name


class ParticipantLeft(_ChannelEventBase):
    type: Literal["PARTICIPANT_LEFT"] = "PARTICIPANT_LEFT"
    user_id: uuid.UUID
    user_name: Optional[str] = None


# ─── Event details ───────────────────────────────────────


class EventUpdated(_ChannelEventBase):
    """`data` is the camelCase event snapshot, replayed to sockets as-is."""

    type: Literal["EVENT_UPDATED"] = "EVENT_UPDATED"
    data: dict[str, Any]


class EventDeleted(_ChannelEventBase):
    type: Literal["EVENT_DELETED"] = "EVENT_DELETED"
    data: dict[str, Any]


ChannelEvent = Annotated[
    Union[
        RsvpUpdated,
        RsvpRemoved,
        NewMessage,
        MessageDeleted,
        PollCreated,
        PollVoted,
        PollClosed,
        PollDeleted,
        ParticipantKicked,
        ParticipantLeft,
        EventUpdated,
        EventDeleted,
    ],
    Field(discriminator="type"),
]

_adapter: TypeAdapter[ChannelEvent] = TypeAdapter(ChannelEvent)


def parse_channel_event(payload: Any) -> ChannelEvent:
    """Validate a decoded bus payload. Raises pydantic.ValidationError."""
    return _adapter.validate_python(payload)
