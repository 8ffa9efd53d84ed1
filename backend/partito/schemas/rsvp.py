"""Pydantic schemas for RSVPs."""
from __future__ import annotations
from datetime import datetime
from typing import Optional, Union
from pydantic import BaseModel, field_validator

from partito.models.rsvp import RsvpStatus
from partito.schemas.event import as_utc


class RsvpCreate(BaseModel):
    name: str
    email: Optional[str] = None
    status: RsvpStatus = RsvpStatus.going
    plus_ones: int = 0
    dietary_note: Optional[str] = None
    notifications_enabled: bool = True
    custom_answers: dict[str, Union[bool, str]] = {}


class RsvpSelfUpdate(BaseModel):
    """Guest edits their own RSVP; `fingerprint` proves ownership."""

    fingerprint: str
    status: Optional[RsvpStatus] = None
    email: Optional[str] = None
    plus_ones: Optional[int] = None
    dietary_note: Optional[str] = None
    notifications_enabled: Optional[bool] = None
    custom_answers: Optional[dict[str, Union[bool, str]]] = None


class RsvpStatusUpdate(BaseModel):
    status: RsvpStatus


class RsvpOut(BaseModel):
    """Full RSVP, returned to its author and to the host."""

    id: str
    event_id: str
    name: str
    email: Optional[str] = None
    status: RsvpStatus
    plus_ones: int
    dietary_note: Optional[str] = None
    notifications_enabled: bool
    waitlist_position: Optional[int] = None
    custom_answers: dict[str, Union[bool, str]] = {}
    fingerprint: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("created_at", "updated_at")
    @classmethod
    def _utc(cls, value):
        return as_utc(value)


class PublicRsvpOut(BaseModel):
    id: str
    name: str
    status: RsvpStatus
    plus_ones: int
    waitlist_position: Optional[int] = None
    dietary_note: Optional[str] = None

    model_config = {"from_attributes": True}


class GuestListOut(BaseModel):
    visibility: str
    going_count: int = 0
    maybe_count: int = 0
    not_going_count: int = 0
    waitlist_count: int = 0
    attendee_count: int = 0
    rsvps: list[PublicRsvpOut] = []


class RsvpCreateResult(BaseModel):
    rsvp: RsvpOut
    was_updated: bool
    was_waitlisted: bool
