"""
Pydantic v2 domain models shared across Contest Tracker services.
These are the canonical wire/internal representations, not ORM models.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from shared.models.enums import ContestStatus, Platform


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ── Contest ─────────────────────────────────────────────────────────────
class Contest(DomainModel):
    """Unified contest record. ``id`` is None until the store has persisted it."""
    id: Optional[uuid.UUID] = None
    name: str = Field(min_length=1)
    platform: Platform
    duration: str = ""
    start_time: datetime
    end_time: datetime
    status: ContestStatus = ContestStatus.UPCOMING
    url: str = ""
    solution_url: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @model_validator(mode="after")
    def _end_after_start(self) -> "Contest":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class ContestView(DomainModel):
    """Contest as served to a viewer by the read API."""
    id: uuid.UUID
    name: str
    platform: Platform
    duration: str
    start_time: datetime = Field(serialization_alias="startTime")
    end_time: datetime = Field(serialization_alias="endTime")
    status: ContestStatus
    url: str
    solution_url: Optional[str] = Field(default=None, serialization_alias="solutionUrl")
    saved: bool = False
    display_start_time: str = Field(default="", serialization_alias="displayStartTime")


# ── Collaborator contracts ──────────────────────────────────────────────
class UserAccount(DomainModel):
    """The slice of a user record the calendar export needs."""
    id: uuid.UUID
    google_id: str
    display_name: str = ""
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None


class OAuthCredential(DomainModel):
    """A currently-valid Google access credential for one user."""
    access_token: str
    expires_at: datetime


class BookmarkUpdate(DomainModel):
    saved: bool


class CalendarEventRequest(DomainModel):
    contest_id: uuid.UUID = Field(alias="contestId")
