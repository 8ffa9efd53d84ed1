"""Event ORM model."""
import uuid
import enum
from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, JSON, Enum as SAEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from partito.database import Base


class EventStatus(str, enum.Enum):
    active = "active"
    cancelled = "cancelled"


class LocationType(str, enum.Enum):
    in_person = "in_person"
    virtual = "virtual"
    tbd = "tbd"


class LocationVisibility(str, enum.Enum):
    full = "full"
    area = "area"
    hidden = "hidden"


class VirtualLinkVisibility(str, enum.Enum):
    public = "public"
    rsvp_only = "rsvp_only"


class GuestListVisibility(str, enum.Enum):
    full = "full"
    names = "names"
    count = "count"
    host_only = "host_only"


class Event(Base):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slug = Column(String(80), nullable=False, unique=True, index=True)
    edit_token = Column(String(64), nullable=False, unique=True, index=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    cover_image = Column(String(1000), nullable=True)
    host_name = Column(String(100), nullable=False)
    host_email = Column(String(255), nullable=True)

    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    timezone = Column(String(64), nullable=False, default="UTC")  # IANA tz

    location_type = Column(SAEnum(LocationType), nullable=False, default=LocationType.in_person)
    venue_name = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    location_visibility = Column(SAEnum(LocationVisibility), nullable=False, default=LocationVisibility.full)
    virtual_link = Column(String(1000), nullable=True)
    virtual_link_visibility = Column(
        SAEnum(VirtualLinkVisibility), nullable=False, default=VirtualLinkVisibility.public
    )

    allow_going = Column(Boolean, nullable=False, default=True)
    allow_maybe = Column(Boolean, nullable=False, default=True)
    allow_not_going = Column(Boolean, nullable=False, default=True)
    allow_plus_ones = Column(Boolean, nullable=False, default=False)
    max_plus_ones = Column(Integer, nullable=False, default=0)
    capacity = Column(Integer, nullable=True)
    enable_waitlist = Column(Boolean, nullable=False, default=False)

    guest_list_visibility = Column(SAEnum(GuestListVisibility), nullable=False, default=GuestListVisibility.names)
    collect_email = Column(Boolean, nullable=False, default=False)
    collect_dietary = Column(Boolean, nullable=False, default=False)
    custom_questions = Column(JSON, nullable=False, default=list)

    password_hash = Column(String(255), nullable=True)
    password_hint = Column(String(255), nullable=True)
    notify_on_rsvp = Column(Boolean, nullable=False, default=True)
    auto_delete_days = Column(Integer, nullable=False, default=30)

    status = Column(SAEnum(EventStatus), nullable=False, default=EventStatus.active)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    rsvps = relationship("Rsvp", back_populates="event", cascade="all, delete-orphan")
    updates = relationship("EventUpdate", back_populates="event", cascade="all, delete-orphan")

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)
