"""Pydantic schemas for events.

Learn: Separate schemas for create/update/read keeps the API clean.
- EventCreate: what you POST to create an event
- EventUpdate: what you PATCH (all optional; only fields sent are applied)
- EventRead: what the API returns; also the shape cached in Redis
- EventWithAttendees: EventRead + the YES list (cached separately, shorter TTL)

has_food_or_drinks is read-only — it's derived from event_type.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

EVENT_TYPE_PATTERN = r"^(meal|potluck|drinks|activity|celebration|professional|other)$"


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    starts_at: datetime
    location_text: str = Field(default="", max_length=500)
    description: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    is_public: bool = False
    event_type: str = Field(default="other", pattern=EVENT_TYPE_PATTERN)


class EventUpdate(BaseModel):
    """Partial update — only fields present in the request body are applied."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    starts_at: Optional[datetime] = None
    location_text: Optional[str] = Field(None, max_length=500)
    description: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    is_public: Optional[bool] = None
    event_type: Optional[str] = Field(None, pattern=EVENT_TYPE_PATTERN)


class EventRead(BaseModel):
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    starts_at: datetime
    location_text: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_public: bool
    event_type: str
    has_food_or_drinks: bool
    creator_id: uuid.UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AttendeeRead(BaseModel):
    id: uuid.UUID
    name: str
    has_plus_one: bool
    plus_one_name: Optional[str] = None


class EventWithAttendees(EventRead):
    attendees: list[AttendeeRead] = Field(default_factory=list)


class EventList(BaseModel):
    events: list[EventRead]
    total: int


class Dashboard(BaseModel):
    created_events: list[EventRead]
    participating_events: list[EventRead]
    upcoming_events: list[EventRead]
