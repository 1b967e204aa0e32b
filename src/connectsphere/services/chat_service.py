"""Chat service — event room messages.

Learn: Only people involved in the event may talk in its room: the creator
and anyone holding an RSVP row (any status). The same rule is reused by the
poll service for voting, so it lives here as is_participant().
"""

import uuid
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from connectsphere.db.models import Event, Message, Rsvp
from connectsphere.errors import ForbiddenError, NotFoundError
from connectsphere.events.types import SOCKET_MESSAGE_DELETED, SOCKET_NEW_MESSAGE
from connectsphere.realtime.pubsub import chat_channel
from connectsphere.schemas.channel_event import MessageDeleted, NewMessage
from connectsphere.schemas.chat import MessageRead
from connectsphere.schemas.wire import camelize
from connectsphere.services.event_service import load_event
from connectsphere.services.fanout import FanOut

logger = structlog.get_logger()

DEFAULT_PAGE = 50


def message_view(message: Message) -> MessageRead:
    return MessageRead(
        id=message.id,
        text=message.text,
        user_id=message.user_id,
        user_name=message.user.name if message.user else None,
        event_id=message.event_id,
        created_at=message.created_at,
    )


async def is_participant(db: AsyncSession, event: Event, user_id: uuid.UUID) -> bool:
    """Creator, or any RSVP row regardless of status."""
    if event.creator_id == user_id:
        return True
    result = await db.execute(
        select(Rsvp.id).where(Rsvp.event_id == event.id, Rsvp.user_id == user_id)
    )
    return result.first() is not None


class ChatService:
    """Business logic for event chat."""

    def __init__(self, db: AsyncSession, fanout: FanOut):
        self.db = db
        self.fanout = fanout

    async def send_message(
        self, event_id: uuid.UUID, user_id: uuid.UUID, text: str
    ) -> Message:
        event = await load_event(self.db, event_id)
        if not await is_participant(self.db, event, user_id):
            raise ForbiddenError("Only participants can chat in this event")

        message = Message(event_id=event_id, user_id=user_id, text=text)
        self.db.add(message)
        await self.db.commit()
        message = await self._get(message.id)

        view = message_view(message)
        await self.fanout.emit_to_event(event_id, SOCKET_NEW_MESSAGE, camelize(view))
        await self.fanout.publish(
            chat_channel(event_id),
            NewMessage(
                event_id=event_id,
                id=message.id,
                text=message.text,
                user_id=user_id,
                user_name=view.user_name,
                created_at=message.created_at,
            ),
        )
        logger.info("chat.message_sent", event_id=str(event_id), user_id=str(user_id))
        return message

    async def list_messages(
        self,
        event_id: uuid.UUID,
        limit: int = DEFAULT_PAGE,
        before: Optional[datetime] = None,
    ) -> list[Message]:
        """The newest `limit` messages (older than `before`), oldest first."""
        await load_event(self.db, event_id)
        query = select(Message).where(Message.event_id == event_id)
        if before:
            query = query.where(Message.created_at < before)
        result = await self.db.execute(
            query.order_by(Message.created_at.desc()).limit(limit)
        )
        return list(reversed(result.scalars().all()))

    async def delete_message(self, message_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Author or event creator only."""
        message = await self._get(message_id)
        event = await load_event(self.db, message.event_id)
        if user_id not in (message.user_id, event.creator_id):
            raise ForbiddenError("Only the author or the event creator can delete this message")

        event_id = message.event_id
        await self.db.delete(message)
        await self.db.commit()

        await self.fanout.emit_to_event(
            event_id,
            SOCKET_MESSAGE_DELETED,
            {"messageId": str(message_id), "eventId": str(event_id)},
        )
        await self.fanout.publish(
            chat_channel(event_id),
            MessageDeleted(event_id=event_id, message_id=message_id, deleted_by=user_id),
        )
        logger.info("chat.message_deleted", message_id=str(message_id), user_id=str(user_id))

    async def _get(self, message_id: uuid.UUID) -> Message:
        result = await self.db.execute(
            select(Message)
            .where(Message.id == message_id)
            .execution_options(populate_existing=True)
        )
        message = result.scalars().first()
        if message is None:
            raise NotFoundError("Message not found")
        return message
