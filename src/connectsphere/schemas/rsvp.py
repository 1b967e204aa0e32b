"""Pydantic schemas for RSVPs and participants.

Learn: RsvpUpsert is the one place partial-update semantics matter. The
route passes body.model_dump(exclude_unset=True) to the service, so a
field the client did not send is "no change", never "clear".
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

STATUS_PATTERN = r"^(YES|MAYBE|NO)$"


class RsvpUpsert(BaseModel):
    status: str = Field(..., pattern=STATUS_PATTERN)
    has_plus_one: Optional[bool] = None
    plus_one_name: Optional[str] = Field(None, max_length=100)
    comment: Optional[str] = None
    dietary_patterns: Optional[list[str]] = None
    religious_dietary: Optional[list[str]] = None
    allergies: Optional[list[str]] = None
    lifestyle_choices: Optional[list[str]] = None
    intensity_prefs: Optional[list[str]] = None
    alcohol_prefs: Optional[list[str]] = None
    custom_dietary_notes: Optional[str] = None


class RsvpRead(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    event_id: uuid.UUID
    status: str
    has_plus_one: bool
    plus_one_name: Optional[str]
    comment: Optional[str]
    dietary_patterns: list[str]
    religious_dietary: list[str]
    allergies: list[str]
    lifestyle_choices: list[str]
    intensity_prefs: list[str]
    alcohol_prefs: list[str]
    custom_dietary_notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class RsvpCount(BaseModel):
    status: str
    count: int
    plus_ones: int


class ParticipantRead(BaseModel):
    id: uuid.UUID
    name: str
    has_plus_one: bool
    plus_one_name: Optional[str] = None
    joined_at: datetime
