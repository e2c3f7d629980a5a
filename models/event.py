from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional
from datetime import datetime, timezone
from enum import Enum


def to_naive_utc(value: datetime) -> datetime:
    """Convert to the naive-UTC form MongoDB stores and returns; naive values are taken as UTC"""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class ProviderType(str, Enum):
    GOOGLE = "google"
    OUTLOOK = "outlook"
    APPLE = "apple"
    CUSTOM = "custom"


class AttendeeStatus(str, Enum):
    ACCEPTED = "accepted"
    DECLINED = "declined"
    PENDING = "pending"


class Attendee(BaseModel):
    email: str
    status: AttendeeStatus = AttendeeStatus.PENDING
    is_organizer: bool = False

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()


class Event(BaseModel):
    id: str = Field(..., description="Local event ID")
    owner_user_id: str = Field(..., description="User who owns this event")
    account_id: str = Field(..., description="Account this event belongs to")
    external_event_id: Optional[str] = Field(None, description="Provider event ID, null for custom events")
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    location: Optional[str] = None
    attendees: List[Attendee] = []
    is_all_day: bool = False
    source_type: ProviderType
    is_newly_accepted: bool = False
    last_synced_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class NormalizedEvent(BaseModel):
    """Provider-agnostic shape of one fetched event, ready for reconciliation."""
    external_event_id: str
    title: str = "(No title)"
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    location: Optional[str] = None
    attendees: List[Attendee] = []
    is_all_day: bool = False
    # The account owner's own attendee status, if they are on the guest list
    owner_response: Optional[AttendeeStatus] = None
    # Provider reported the event as deleted (incremental feeds only)
    cancelled: bool = False

    def mutable_fields(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "location": self.location,
            "attendees": [attendee.model_dump(mode="json") for attendee in self.attendees],
            "is_all_day": self.is_all_day,
        }


class EventDetails(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    location: Optional[str] = None
    attendees: List[Attendee] = []
    is_all_day: bool = False

    @model_validator(mode='after')
    def validate_times(self):
        if to_naive_utc(self.end_time) < to_naive_utc(self.start_time):
            raise ValueError("end_time must not be before start_time")
        return self


class EventCreate(EventDetails):
    account_id: str


class AttendeeResponseUpdate(BaseModel):
    attendee_email: str
    status: AttendeeStatus

    @field_validator('attendee_email')
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()


class SyncReport(BaseModel):
    created: int = 0
    updated: int = 0
    deleted: int = 0
