"""Poll service — create, vote, close, delete.

Learn: Three invariants carry the whole design:
1. One vote per (user, poll). A vote is a retraction + insert in one
   transaction, and the (poll_id, user_id) unique constraint catches the
   rare case of the same user voting from two places at once.
2. is_closed only goes false → true. The close is a conditional UPDATE
   (WHERE is_closed = false), so two concurrent closes can't both win;
   the loser gets ConflictError.
3. The winner is the option with the strictly highest vote count; on a
   tie the first option in creation order wins.

After a close, infer_event_update() may turn the winning answer into an
event change ("Where should we meet?" → location). That hook is
best-effort: its failures are logged, never surfaced.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from connectsphere.db.models import Poll, PollOption, PollVote, User, as_utc, utcnow
from connectsphere.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from connectsphere.events.types import (
    SOCKET_POLL_CLOSED,
    SOCKET_POLL_CREATED,
    SOCKET_POLL_DELETED,
    SOCKET_POLL_VOTE,
)
from connectsphere.realtime.pubsub import poll_channel
from connectsphere.schemas.channel_event import (
    PollClosed,
    PollCreated,
    PollDeleted,
    PollOptionSummary,
    PollVoted,
)
from connectsphere.schemas.poll import PollOptionRead, PollRead, VoteRead
from connectsphere.schemas.wire import camelize
from connectsphere.services.chat_service import is_participant
from connectsphere.services.event_service import EventService, load_event
from connectsphere.services.fanout import FanOut
from connectsphere.services.poll_inference import infer_event_update

if TYPE_CHECKING:
    from connectsphere.services.poll_scheduler import PollCloseScheduler

logger = structlog.get_logger()

MIN_OPTIONS = 2


# ═══════════════════════════════════════════════════════════
# Views
# ═══════════════════════════════════════════════════════════


def pick_winner(options: list[PollOption]) -> Optional[PollOption]:
    """Strict max by vote count; the earliest option keeps a tie."""
    best: Optional[PollOption] = None
    for option in options:
        if best is None or len(option.votes) > len(best.votes):
            best = option
    return best


def option_summary(option: PollOption) -> PollOptionSummary:
    return PollOptionSummary(id=option.id, text=option.text, votes=len(option.votes))


def poll_view(poll: Poll) -> PollRead:
    winner = pick_winner(poll.options) if poll.is_closed else None
    return PollRead(
        id=poll.id,
        event_id=poll.event_id,
        created_by=poll.created_by,
        question=poll.question,
        close_at=as_utc(poll.close_at),
        is_closed=poll.is_closed,
        closed_at=as_utc(poll.closed_at),
        created_at=poll.created_at,
        options=[
            PollOptionRead(
                id=option.id,
                text=option.text,
                position=option.position,
                vote_count=len(option.votes),
                votes=[
                    VoteRead(user_id=vote.user_id, user_name=vote.user.name if vote.user else None)
                    for vote in option.votes
                ],
            )
            for option in poll.options
        ],
        winning_option_id=winner.id if winner else None,
    )


# ═══════════════════════════════════════════════════════════
# Service
# ═══════════════════════════════════════════════════════════


class PollService:
    """Business logic for polls."""

    def __init__(
        self,
        db: AsyncSession,
        fanout: FanOut,
        scheduler: Optional["PollCloseScheduler"] = None,
    ):
        self.db = db
        self.fanout = fanout
        self.scheduler = scheduler

    # ─── Create ──────────────────────────────────────────

    async def create_poll(
        self,
        event_id: uuid.UUID,
        user_id: uuid.UUID,
        question: str,
        options: list[str],
        close_at: Optional[datetime] = None,
    ) -> Poll:
        """Creator-only. A future close_at arms the auto-close."""
        event = await load_event(self.db, event_id)
        if event.creator_id != user_id:
            raise ForbiddenError("Only the event creator can create polls")

        texts = [text.strip() for text in options if text and text.strip()]
        if len(texts) < MIN_OPTIONS:
            raise ValidationError("A poll needs at least two options")
        close_at = as_utc(close_at)
        if close_at is not None and close_at <= utcnow():
            raise ValidationError("close_at must be in the future")

        poll = Poll(
            event_id=event_id,
            created_by=user_id,
            question=question.strip(),
            close_at=close_at,
            options=[PollOption(text=text, position=i) for i, text in enumerate(texts)],
        )
        self.db.add(poll)
        await self.db.commit()
        poll = await self.get_poll(poll.id)

        await self.fanout.emit_to_event(event_id, SOCKET_POLL_CREATED, camelize(poll_view(poll)))
        await self.fanout.publish(
            poll_channel(event_id),
            PollCreated(
                event_id=event_id,
                poll_id=poll.id,
                question=poll.question,
                options=[option_summary(o) for o in poll.options],
            ),
        )
        if close_at is not None and self.scheduler is not None:
            self.scheduler.schedule(poll.id, close_at)

        logger.info("poll.created", poll_id=str(poll.id), event_id=str(event_id))
        return poll

    # ─── Read ────────────────────────────────────────────

    async def get_poll(self, poll_id: uuid.UUID) -> Poll:
        result = await self.db.execute(
            select(Poll)
            .where(Poll.id == poll_id)
            .execution_options(populate_existing=True)
        )
        poll = result.scalars().first()
        if poll is None:
            raise NotFoundError("Poll not found")
        return poll

    async def list_polls(self, event_id: uuid.UUID) -> list[Poll]:
        await load_event(self.db, event_id)
        result = await self.db.execute(
            select(Poll)
            .where(Poll.event_id == event_id)
            .order_by(Poll.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # ─── Vote ────────────────────────────────────────────

    async def vote(
        self, poll_id: uuid.UUID, user_id: uuid.UUID, option_id: uuid.UUID
    ) -> Poll:
        """Replace the user's vote in this poll with option_id."""
        poll = await self.get_poll(poll_id)
        if poll.is_closed:
            raise ConflictError("Poll is closed")
        if option_id not in {option.id for option in poll.options}:
            raise ValidationError("Option does not belong to this poll")
        event_id = poll.event_id
        event = await load_event(self.db, event_id)
        if not await is_participant(self.db, event, user_id):
            raise ForbiddenError("Only participants can vote")

        try:
            await self._replace_vote(poll_id, user_id, option_id)
        except IntegrityError:
            # Same user voting concurrently elsewhere: last writer wins.
            await self.db.rollback()
            await self._replace_vote(poll_id, user_id, option_id)

        poll = await self.get_poll(poll_id)
        user_name = (
            await self.db.execute(select(User.name).where(User.id == user_id))
        ).scalar_one_or_none()

        await self.fanout.emit_to_event(event_id, SOCKET_POLL_VOTE, camelize(poll_view(poll)))
        await self.fanout.publish(
            poll_channel(event_id),
            PollVoted(
                event_id=event_id,
                poll_id=poll_id,
                user_id=user_id,
                user_name=user_name,
                option_id=option_id,
            ),
        )
        logger.info("poll.voted", poll_id=str(poll_id), user_id=str(user_id))
        return poll

    async def _replace_vote(
        self, poll_id: uuid.UUID, user_id: uuid.UUID, option_id: uuid.UUID
    ) -> None:
        await self.db.execute(
            delete(PollVote).where(PollVote.poll_id == poll_id, PollVote.user_id == user_id)
        )
        self.db.add(PollVote(poll_id=poll_id, option_id=option_id, user_id=user_id))
        await self.db.commit()

    # ─── Close ───────────────────────────────────────────

    async def close_poll(self, poll_id: uuid.UUID, user_id: uuid.UUID) -> Poll:
        """Creator-only, exactly once. Then the post-close hook runs."""
        poll = await self.get_poll(poll_id)
        event_id = poll.event_id
        event = await load_event(self.db, event_id)
        if event.creator_id != user_id:
            raise ForbiddenError("Only the event creator can close polls")
        if poll.is_closed:
            raise ConflictError("Poll is already closed")

        result = await self.db.execute(
            update(Poll)
            .where(Poll.id == poll_id, Poll.is_closed.is_(False))
            .values(is_closed=True, closed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise ConflictError("Poll is already closed")
        await self.db.commit()

        if self.scheduler is not None:
            self.scheduler.cancel(poll_id)

        poll = await self.get_poll(poll_id)
        winner = pick_winner(poll.options)

        await self.fanout.emit_to_event(event_id, SOCKET_POLL_CLOSED, camelize(poll_view(poll)))
        await self.fanout.publish(
            poll_channel(event_id),
            PollClosed(
                event_id=event_id,
                poll_id=poll_id,
                question=poll.question,
                winning_option=option_summary(winner) if winner else None,
            ),
        )
        logger.info(
            "poll.closed",
            poll_id=str(poll_id),
            winning_option=str(winner.id) if winner else None,
        )

        if winner is not None:
            await self._apply_outcome(event_id, poll.question, winner.text)
        return poll

    async def _apply_outcome(self, event_id: uuid.UUID, question: str, answer: str) -> None:
        changes = infer_event_update(question, answer)
        if not changes:
            return
        try:
            await EventService(self.db, self.fanout).apply_update(event_id, changes)
        except Exception as e:
            await self.db.rollback()
            logger.warning(
                "poll.outcome_update_failed", event_id=str(event_id), error=str(e)
            )

    # ─── Delete ──────────────────────────────────────────

    async def delete_poll(self, poll_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Creator-only. Options and votes go with the poll."""
        poll = await self.get_poll(poll_id)
        event_id = poll.event_id
        event = await load_event(self.db, event_id)
        if event.creator_id != user_id:
            raise ForbiddenError("Only the event creator can delete polls")

        await self.db.delete(poll)
        await self.db.commit()
        if self.scheduler is not None:
            self.scheduler.cancel(poll_id)

        await self.fanout.emit_to_event(
            event_id, SOCKET_POLL_DELETED, {"pollId": str(poll_id), "eventId": str(event_id)}
        )
        await self.fanout.publish(
            poll_channel(event_id), PollDeleted(event_id=event_id, poll_id=poll_id)
        )
        logger.info("poll.deleted", poll_id=str(poll_id), user_id=str(user_id))
