"""EventUpdate ORM model: messages a host has sent to their guests."""
import uuid
from sqlalchemy import Column, String, Text, DateTime, Integer, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from partito.database import Base


class EventUpdate(Base):
    __tablename__ = "event_updates"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    subject = Column(String(200), nullable=False)
    body = Column(Text, nullable=False)
    recipient_filter = Column(String(20), nullable=True)  # all, going, maybe, not_going, waitlist
    recipient_count = Column(Integer, nullable=False, default=0)
    sent_at = Column(DateTime(timezone=True), server_default=func.now())

    event = relationship("Event", back_populates="updates")
