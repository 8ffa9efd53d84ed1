"""RateLimit ORM model: one row per throttled action by a client IP."""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime
from partito.database import Base


class RateLimit(Base):
    __tablename__ = "rate_limits"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    ip_address = Column(String(64), nullable=False, index=True)
    action = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)
