"""Pydantic schemas for the scheduling API."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .models import SessionStatus


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DefaultsRead(BaseModel):
    default_session_length_hours: int
    default_buffer_minutes: int


class DefaultsUpdate(BaseModel):
    default_session_length_hours: Optional[int] = None
    default_buffer_minutes: Optional[int] = None


class SessionCreate(BaseModel):
    """Booking request as typed into the studio's calendar.

    Formats are checked by the scheduling core so malformed input is reported
    with the same error shape as every other scheduling failure.
    """

    date: Optional[str] = Field(None, description="YYYY-MM-DD in the studio's timezone")
    start_time: Optional[str] = Field(None, description="HH:MM, 24-hour clock")
    end_time: Optional[str] = Field(None, description="HH:MM; derived from studio defaults when omitted")
    room_id: Optional[str] = None
    client_id: Optional[str] = None
    engineer_id: Optional[str] = None
    notes: Optional[str] = None


class SessionUpdate(BaseModel):
    """Partial update; fields left out keep their stored values."""

    start_at: Optional[str] = Field(None, description="ISO-8601 timestamp")
    end_at: Optional[str] = Field(None, description="ISO-8601 timestamp")
    room_id: Optional[str] = None
    client_id: Optional[str] = None
    engineer_id: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None


class StatusUpdate(BaseModel):
    status: str


class StatusRead(BaseModel):
    status: SessionStatus


class RoomRef(BaseModel):
    id: str
    name: str

    model_config = {"from_attributes": True}


class ClientRef(BaseModel):
    id: str
    name: str

    model_config = {"from_attributes": True}


class EngineerRef(BaseModel):
    id: str
    full_name: Optional[str] = None
    email: Optional[str] = None

    model_config = {"from_attributes": True}


class GearRef(BaseModel):
    id: str
    brand: Optional[str] = None
    model: Optional[str] = None
    category: Optional[str] = None
    quantity: int = 0

    model_config = {"from_attributes": True}


class GearAssignmentRead(BaseModel):
    id: str
    gear_id: str
    quantity: int = 1
    note: Optional[str] = None
    gear: Optional[GearRef] = None

    model_config = {"from_attributes": True}


class GearAssignmentCreate(BaseModel):
    gear_id: str
    note: Optional[str] = None


class GearWarning(BaseModel):
    gear_id: str
    requested: int
    available: int
    message: str

    model_config = {"from_attributes": True}


class SessionGearRead(BaseModel):
    gear: List[GearAssignmentRead]
    warnings: List[GearWarning] = Field(default_factory=list)


class SessionRead(BaseModel):
    id: str
    studio_id: str
    room_id: str
    client_id: str
    engineer_id: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: SessionStatus
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    room: Optional[RoomRef] = None
    client: Optional[ClientRef] = None
    engineer: Optional[EngineerRef] = None
    gear_items: List[GearAssignmentRead] = Field(default_factory=list, validation_alias="gear_assignments")

    model_config = {"from_attributes": True, "populate_by_name": True}

    @field_validator("start_time", "end_time", "created_at", "updated_at")
    @classmethod
    def _stored_as_utc(cls, value: datetime) -> datetime:
        return _utc(value)


class AvailabilityRead(BaseModel):
    available: bool
    room_conflict: Optional[dict] = None
    engineer_conflict: Optional[dict] = None


class BucketItem(BaseModel):
    session: SessionRead
    display_status: SessionStatus
    time_range: str

    model_config = {"from_attributes": True}


class DayGroup(BaseModel):
    date_key: str
    header: Optional[str] = None
    items: List[BucketItem]

    model_config = {"from_attributes": True}


class BucketRead(BaseModel):
    header: Optional[str] = None
    total: int
    groups: List[DayGroup]

    model_config = {"from_attributes": True}


class SessionBucketsRead(BaseModel):
    today: str
    timezone: Optional[str] = None
    active: BucketRead
    upcoming: BucketRead
    recently_finished: BucketRead

    model_config = {"from_attributes": True}

