from sqlalchemy import Column, DateTime, Index, Integer, String

from app.database import Base, utcnow


class ThrottleEvent(Base):
    """
    One counted event for lockout or rate limiting.

    Keys look like ``login:customer:alice`` or ``ip:auth:203.0.113.7``.
    """

    __tablename__ = "throttle_events"
    __table_args__ = (Index("ix_throttle_events_key_created_at", "key", "created_at"),)

    id = Column(Integer, primary_key=True)
    key = Column(String(200), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
