"""Pydantic schemas for Events."""
from __future__ import annotations
from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, field_validator

from partito.models.event import (
    EventStatus, GuestListVisibility, LocationType, LocationVisibility, VirtualLinkVisibility,
)
from partito.services.timezones import ensure_utc


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; they are stored as UTC.
    return ensure_utc(value) if isinstance(value, datetime) else value


class CustomQuestion(BaseModel):
    id: str
    type: Literal["text", "select", "checkbox"]
    label: str
    required: bool = False
    options: Optional[list[str]] = None  # select only


class EventCreate(BaseModel):
    title: str
    description: Optional[str] = None
    cover_image: Optional[str] = None
    host_name: str
    host_email: Optional[str] = None
    # Naive values are wall-clock times in `timezone`.
    start_time: datetime
    end_time: Optional[datetime] = None
    timezone: Optional[str] = None
    location_type: LocationType = LocationType.in_person
    venue_name: Optional[str] = None
    address: Optional[str] = None
    location_visibility: LocationVisibility = LocationVisibility.full
    virtual_link: Optional[str] = None
    virtual_link_visibility: VirtualLinkVisibility = VirtualLinkVisibility.public
    allow_going: bool = True
    allow_maybe: bool = True
    allow_not_going: bool = True
    allow_plus_ones: bool = False
    max_plus_ones: int = 0
    capacity: Optional[int] = None
    enable_waitlist: bool = False
    guest_list_visibility: GuestListVisibility = GuestListVisibility.names
    collect_email: bool = False
    collect_dietary: bool = False
    custom_questions: list[CustomQuestion] = []
    password: Optional[str] = None
    password_hint: Optional[str] = None
    notify_on_rsvp: bool = True
    auto_delete_days: Optional[int] = None
    slug: Optional[str] = None


class EventPatch(BaseModel):
    """Partial update by the host; only fields that are sent are applied."""

    title: Optional[str] = None
    description: Optional[str] = None
    cover_image: Optional[str] = None
    host_name: Optional[str] = None
    host_email: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    timezone: Optional[str] = None
    location_type: Optional[LocationType] = None
    venue_name: Optional[str] = None
    address: Optional[str] = None
    location_visibility: Optional[LocationVisibility] = None
    virtual_link: Optional[str] = None
    virtual_link_visibility: Optional[VirtualLinkVisibility] = None
    allow_going: Optional[bool] = None
    allow_maybe: Optional[bool] = None
    allow_not_going: Optional[bool] = None
    allow_plus_ones: Optional[bool] = None
    max_plus_ones: Optional[int] = None
    capacity: Optional[int] = None
    enable_waitlist: Optional[bool] = None
    guest_list_visibility: Optional[GuestListVisibility] = None
    collect_email: Optional[bool] = None
    collect_dietary: Optional[bool] = None
    custom_questions: Optional[list[CustomQuestion]] = None
    password: Optional[str] = None  # "" clears the password
    password_hint: Optional[str] = None
    notify_on_rsvp: Optional[bool] = None
    auto_delete_days: Optional[int] = None
    slug: Optional[str] = None
    status: Optional[EventStatus] = None


class EventOut(BaseModel):
    """Full event as seen by the host (edit token included)."""

    id: str
    slug: str
    edit_token: str
    title: str
    description: Optional[str] = None
    cover_image: Optional[str] = None
    host_name: str
    host_email: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    timezone: str
    location_type: LocationType
    venue_name: Optional[str] = None
    address: Optional[str] = None
    location_visibility: LocationVisibility
    virtual_link: Optional[str] = None
    virtual_link_visibility: VirtualLinkVisibility
    allow_going: bool
    allow_maybe: bool
    allow_not_going: bool
    allow_plus_ones: bool
    max_plus_ones: int
    capacity: Optional[int] = None
    enable_waitlist: bool
    guest_list_visibility: GuestListVisibility
    collect_email: bool
    collect_dietary: bool
    custom_questions: list[CustomQuestion] = []
    has_password: bool
    password_hint: Optional[str] = None
    notify_on_rsvp: bool
    auto_delete_days: int
    status: EventStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("start_time", "end_time", "created_at", "updated_at")
    @classmethod
    def _utc(cls, value):
        return as_utc(value)


class PublicEventOut(BaseModel):
    """Event as seen by guests: no edit token, password, or host email."""

    id: str
    slug: str
    title: str
    description: Optional[str] = None
    cover_image: Optional[str] = None
    host_name: str
    start_time: datetime
    end_time: Optional[datetime] = None
    timezone: str
    location_type: LocationType
    venue_name: Optional[str] = None
    address: Optional[str] = None
    location_visibility: LocationVisibility
    virtual_link: Optional[str] = None
    virtual_link_visibility: VirtualLinkVisibility
    allow_going: bool
    allow_maybe: bool
    allow_not_going: bool
    allow_plus_ones: bool
    max_plus_ones: int
    capacity: Optional[int] = None
    enable_waitlist: bool
    guest_list_visibility: GuestListVisibility
    collect_email: bool
    collect_dietary: bool
    custom_questions: list[CustomQuestion] = []
    has_password: bool
    status: EventStatus
    attendee_count: int = 0
    remaining_capacity: Optional[int] = None
    is_at_capacity: bool = False

    @field_validator("start_time", "end_time")
    @classmethod
    def _utc(cls, value):
        return as_utc(value)


class PasswordInfo(BaseModel):
    has_password: bool
    hint: Optional[str] = None


class PasswordVerifyRequest(BaseModel):
    password: str


class PasswordVerifyResult(BaseModel):
    valid: bool


class SlugAvailability(BaseModel):
    slug: str
    available: bool


class CalendarLinks(BaseModel):
    google: str
    outlook: str
    apple: str
    ics: str


class EventUpdateCreate(BaseModel):
    subject: str
    body: str
    recipient_filter: Literal["all", "going", "maybe", "not_going", "waitlist"] = "all"


class EventUpdateOut(BaseModel):
    id: str
    event_id: str
    subject: str
    body: str
    recipient_filter: Optional[str] = None
    recipient_count: int
    sent_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("sent_at")
    @classmethod
    def _utc(cls, value):
        return as_utc(value)


class RecoverRequest(BaseModel):
    slug: str  # bare slug or a full event URL
    email: str


class ContactRequest(BaseModel):
    name: str
    email: str
    subject: Optional[str] = None
    message: str


class PurgeResult(BaseModel):
    deleted: int
