"""Initial schema: users, events, RSVPs, chat and polls

Learn: Ownership cascades are declared on the foreign keys, so deleting an
event removes its RSVPs, messages and polls (and their options and votes)
in one statement. The two unique constraints are what keep RSVP upserts
and vote replacement correct under concurrent requests.

Revision ID: 3f1c2a9d7e40
Revises:
Create Date: 2026-10-19 10:12:04.118230
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d7e40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TagList = sa.JSON().with_variant(postgresql.ARRAY(sa.Text()), "postgresql")


def upgrade() -> None:
    # ─── Users ───────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ─── Events ──────────────────────────────────────────
    op.create_table(
        "events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("datetime", sa.DateTime(timezone=True), nullable=False),
        sa.Column("location_text", sa.Text(), nullable=False, server_default=""),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("event_type", sa.String(30), nullable=False, server_default="other"),
        sa.Column("has_food_or_drinks", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("creator_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_events_creator", "events", ["creator_id"])
    op.create_index("idx_events_starts_at", "events", ["datetime"])

    # ─── RSVPs ───────────────────────────────────────────
    op.create_table(
        "rsvps",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event_id", sa.Uuid(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("has_plus_one", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("plus_one_name", sa.String(100), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("dietary_patterns", TagList, nullable=False),
        sa.Column("religious_dietary", TagList, nullable=False),
        sa.Column("allergies", TagList, nullable=False),
        sa.Column("lifestyle_choices", TagList, nullable=False),
        sa.Column("intensity_prefs", TagList, nullable=False),
        sa.Column("alcohol_prefs", TagList, nullable=False),
        sa.Column("custom_dietary_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "event_id", name="uq_rsvps_user_event"),
    )
    op.create_index("idx_rsvps_event_status", "rsvps", ["event_id", "status"])

    # ─── Chat ────────────────────────────────────────────
    op.create_table(
        "messages",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event_id", sa.Uuid(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_messages_event_created", "messages", ["event_id", "created_at"])

    # ─── Polls ───────────────────────────────────────────
    op.create_table(
        "polls",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("event_id", sa.Uuid(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("close_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_polls_open_close_at", "polls", ["is_closed", "close_at"])

    op.create_table(
        "poll_options",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("poll_id", sa.Uuid(), sa.ForeignKey("polls.id", ondelete="CASCADE"), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "poll_votes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("poll_id", sa.Uuid(), sa.ForeignKey("polls.id", ondelete="CASCADE"), nullable=False),
        sa.Column("option_id", sa.Uuid(), sa.ForeignKey("poll_options.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("poll_id", "user_id", name="uq_poll_votes_poll_user"),
    )


def downgrade() -> None:
    op.drop_table("poll_votes")
    op.drop_table("poll_options")
    op.drop_index("idx_polls_open_close_at", table_name="polls")
    op.drop_table("polls")
    op.drop_index("idx_messages_event_created", table_name="messages")
    op.drop_table("messages")
    op.drop_index("idx_rsvps_event_status", table_name="rsvps")
    op.drop_table("rsvps")
    op.drop_index("idx_events_starts_at", table_name="events")
    op.drop_index("idx_events_creator", table_name="events")
    op.drop_table("events")
    op.drop_table("users")
