"""Rsvp ORM model: one guest response to one event."""
import uuid
from datetime import datetime, timezone
import enum
from sqlalchemy import (
    Column, String, DateTime, Integer, Boolean, JSON, ForeignKey, UniqueConstraint, Enum as SAEnum,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from partito.database import Base


class RsvpStatus(str, enum.Enum):
    going = "going"
    maybe = "maybe"
    not_going = "not_going"
    waitlist = "waitlist"


class Rsvp(Base):
    __tablename__ = "rsvps"
    __table_args__ = (UniqueConstraint("event_id", "fingerprint", name="uq_rsvps_event_fingerprint"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True)
    status = Column(SAEnum(RsvpStatus), nullable=False, default=RsvpStatus.going)
    plus_ones = Column(Integer, nullable=False, default=0)
    dietary_note = Column(String(500), nullable=True)
    notifications_enabled = Column(Boolean, nullable=False, default=True)
    waitlist_position = Column(Integer, nullable=True)
    custom_answers = Column(JSON, nullable=False, default=dict)
    fingerprint = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    event = relationship("Event", back_populates="rsvps")
