"""Login sessions: opaque cookie tokens mapped to hunters and organizers."""
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, and_
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from aurora_hunts.database import Base


class Session(Base):
    """One signed-in browser. Rows past expires_at are ignored, not deleted."""

    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token = Column(String(64), unique=True, index=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    user_agent = Column(String(512), nullable=True)
    ip_address = Column(String(45), nullable=True)

    user = relationship("User", back_populates="sessions")

    @classmethod
    def live(cls, token: str, now: datetime):
        """Filter clause for the unexpired session carrying token."""
        return and_(cls.token == token, cls.expires_at > now)
