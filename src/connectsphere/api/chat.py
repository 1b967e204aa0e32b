"""Chat API routes."""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from connectsphere.api.deps import get_fanout
from connectsphere.auth.dependencies import CurrentIdentity, get_current_user
from connectsphere.db.engine import get_db
from connectsphere.schemas.chat import MessageCreate, MessageRead
from connectsphere.services.chat_service import ChatService, message_view
from connectsphere.services.fanout import FanOut

router = APIRouter(prefix="/chat")


def _chat_svc(
    db: AsyncSession = Depends(get_db),
    fanout: FanOut = Depends(get_fanout),
) -> ChatService:
    return ChatService(db, fanout)


@router.post("/{event_id}", response_model=MessageRead, status_code=201)
async def send_message(
    event_id: uuid.UUID,
    body: MessageCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ChatService = Depends(_chat_svc),
):
    message = await svc.send_message(event_id, identity.user_id, body.text)
    return message_view(message)


@router.get("/{event_id}", response_model=list[MessageRead])
async def list_messages(
    event_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=200),
    before: Optional[datetime] = Query(None, description="Only messages older than this"),
    svc: ChatService = Depends(_chat_svc),
):
    """Newest page of messages, returned oldest first."""
    messages = await svc.list_messages(event_id, limit=limit, before=before)
    return [message_view(m) for m in messages]


@router.delete("/messages/{message_id}")
async def delete_message(
    message_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ChatService = Depends(_chat_svc),
):
    await svc.delete_message(message_id, identity.user_id)
    return {"deleted": True}
