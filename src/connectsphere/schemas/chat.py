"""Pydantic schemas for event chat."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class MessageCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=4000)


class MessageRead(BaseModel):
    id: uuid.UUID
    text: str
    user_id: uuid.UUID
    user_name: Optional[str] = None
    event_id: uuid.UUID
    created_at: datetime
