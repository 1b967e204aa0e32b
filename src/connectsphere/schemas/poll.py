"""Pydantic schemas for polls.

Learn: PollRead is built from the ORM Poll (options and their votes are
eager-loaded), so vote counts are always computed from rows, never stored.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class PollCreate(BaseModel):
    question: str = Field(..., min_length=1, max_length=500)
    options: list[str] = Field(..., min_length=2, max_length=20)
    close_at: Optional[datetime] = Field(
        None, description="Auto-close at this time (must be in the future)"
    )


class VoteRead(BaseModel):
    user_id: uuid.UUID
    user_name: Optional[str] = None


class PollOptionRead(BaseModel):
    id: uuid.UUID
    text: str
    position: int
    vote_count: int
    votes: list[VoteRead]


class PollRead(BaseModel):
    id: uuid.UUID
    event_id: uuid.UUID
    created_by: uuid.UUID
    question: str
    close_at: Optional[datetime]
    is_closed: bool
    closed_at: Optional[datetime]
    created_at: datetime
    options: list[PollOptionRead]
    winning_option_id: Optional[uuid.UUID] = None
