"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Relationships, constraints, and indexes defined here.
Alembic migrations mirror these models.

Key concepts:
- UUID primary keys (generic Uuid type: native on PostgreSQL, CHAR elsewhere)
- Tag lists are ARRAY(Text) on PostgreSQL and JSON elsewhere
- Ownership cascades live in the database (ON DELETE CASCADE), so deleting
  an Event never has to load its RSVPs/messages/polls first
- Invariants that must hold under concurrency are unique constraints:
  one RSVP per (user, event), one vote per (user, poll)
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


TagList = JSON().with_variant(ARRAY(Text), "postgresql")

# Categories that imply food or drinks at the event.
FOOD_OR_DRINK_TYPES = frozenset({"meal", "potluck", "drinks"})
EVENT_TYPES = (
    "meal",
    "potluck",
    "drinks",
    "activity",
    "celebration",
    "professional",
    "other",
)
RSVP_STATUSES = ("YES", "MAYBE", "NO")


# ══════════════════════════════════════════════════════════════
# Users
# ══════════════════════════════════════════════════════════════


class User(Base):
    """A person who creates events, RSVPs, chats and votes."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )


# ══════════════════════════════════════════════════════════════
# Events + RSVPs
# ══════════════════════════════════════════════════════════════


class Event(Base):
    """A planned gathering.

    Learn: has_food_or_drinks is derived from event_type and recomputed by
    the service on every write that touches the category — never set it
    directly from request data.
    """

    __tablename__ = "events"
    __table_args__ = (
        Index("idx_events_creator", "creator_id"),
        Index("idx_events_starts_at", "datetime"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    starts_at: Mapped[datetime] = mapped_column(
        "datetime", DateTime(timezone=True), nullable=False
    )
    location_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    event_type: Mapped[str] = mapped_column(String(30), nullable=False, default="other")
    has_food_or_drinks: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    # Relationships — children are removed by the database cascade.
    creator: Mapped["User"] = relationship(lazy="selectin")
    rsvps: Mapped[list["Rsvp"]] = relationship(
        back_populates="event", cascade="all, delete-orphan", passive_deletes=True
    )
    messages: Mapped[list["Message"]] = relationship(
        back_populates="event", cascade="all, delete-orphan", passive_deletes=True
    )
    polls: Mapped[list["Poll"]] = relationship(
        back_populates="event", cascade="all, delete-orphan", passive_deletes=True
    )


class Rsvp(Base):
    """A user's response to an event. Any row makes the user a participant."""

    __tablename__ = "rsvps"
    __table_args__ = (
        UniqueConstraint("user_id", "event_id", name="uq_rsvps_user_event"),
        Index("idx_rsvps_event_status", "event_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(10), nullable=False)  # YES, MAYBE, NO
    has_plus_one: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    plus_one_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Dietary preferences — independent tag lists + free text
    dietary_patterns: Mapped[list[str]] = mapped_column(TagList, nullable=False, default=list)
    religious_dietary: Mapped[list[str]] = mapped_column(TagList, nullable=False, default=list)
    allergies: Mapped[list[str]] = mapped_column(TagList, nullable=False, default=list)
    lifestyle_choices: Mapped[list[str]] = mapped_column(TagList, nullable=False, default=list)
    intensity_prefs: Mapped[list[str]] = mapped_column(TagList, nullable=False, default=list)
    alcohol_prefs: Mapped[list[str]] = mapped_column(TagList, nullable=False, default=list)
    custom_dietary_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    user: Mapped["User"] = relationship(lazy="selectin")
    event: Mapped["Event"] = relationship(back_populates="rsvps")


# ══════════════════════════════════════════════════════════════
# Chat
# ══════════════════════════════════════════════════════════════


class Message(Base):
    """A chat message in an event's room."""

    __tablename__ = "messages"
    __table_args__ = (Index("idx_messages_event_created", "event_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    user: Mapped["User"] = relationship(lazy="selectin")
    event: Mapped["Event"] = relationship(back_populates="messages")


# ══════════════════════════════════════════════════════════════
# Polls
# ══════════════════════════════════════════════════════════════


class Poll(Base):
    """A question with ordered options.

    Learn: is_closed only ever goes false → true. close_at is persisted so
    the scheduler can recover pending auto-closes after a restart.
    """

    __tablename__ = "polls"
    __table_args__ = (Index("idx_polls_open_close_at", "is_closed", "close_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    created_by: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    question: Mapped[str] = mapped_column(Text, nullable=False)
    close_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    closed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    event: Mapped["Event"] = relationship(back_populates="polls")
    options: Mapped[list["PollOption"]] = relationship(
        back_populates="poll",
        order_by="PollOption.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )


class PollOption(Base):
    """One answer of a poll. position preserves creation order (tie-break)."""

    __tablename__ = "poll_options"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    poll_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("polls.id", ondelete="CASCADE"), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    poll: Mapped["Poll"] = relationship(back_populates="options")
    votes: Mapped[list["PollVote"]] = relationship(
        back_populates="option",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )


class PollVote(Base):
    """A user's vote. poll_id is denormalised so (poll_id, user_id) can be unique."""

    __tablename__ = "poll_votes"
    __table_args__ = (
        UniqueConstraint("poll_id", "user_id", name="uq_poll_votes_poll_user"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    poll_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("polls.id", ondelete="CASCADE"), nullable=False
    )
    option_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("poll_options.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    option: Mapped["PollOption"] = relationship(back_populates="votes")
    user: Mapped["User"] = relationship(lazy="selectin")
