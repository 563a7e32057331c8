"""Tracker request/response schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CreateTrackerRequest(BaseModel):
    user_id: uuid.UUID
    repo_url: str = Field(min_length=1)
    tracked_events: list[str] = Field(min_length=1)


class TrackerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    repo_owner: str
    repo_name: str
    repo_full_name: str
    repo_url: str
    tracked_events: list[str]
    is_active: bool
    is_paused: bool
    error_count: int
    last_error: str | None
    last_checked_at: datetime
    tracked_since: datetime
    created_at: datetime


class TrackerStatusResponse(TrackerResponse):
    total_events: int


class EventLogItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    event_type: str
    event_data: dict[str, Any]
    event_signature: str
    detected_at: datetime
    notification_sent: bool
    notified_at: datetime | None
    created_at: datetime
