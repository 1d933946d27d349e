from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Index,
    Float,
    Boolean,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from aurora_hunts.database import Base


class Hunt(Base):
    """An organized aurora-viewing event owned by its organizer."""

    __tablename__ = "hunts"

    id = Column(Integer, primary_key=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )  # Organizer
    name = Column(String(200), nullable=False)
    description = Column(Text)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    timezone = Column(String(50), nullable=False, default="UTC")  # IANA name
    location = Column(String(300))
    latitude = Column(Float)
    longitude = Column(Float)
    hide_location = Column(Boolean, nullable=False, default=False)
    is_public = Column(Boolean, nullable=False, default=True)
    hide_from_public = Column(
        Boolean, nullable=False, default=False
    )  # Unlisted; only valid for private hunts
    is_paid = Column(Boolean, nullable=False, default=False)
    price = Column(Float, nullable=True)
    cancellation_policy = Column(Text)
    capacity = Column(Integer, nullable=True)  # NULL = unlimited
    allow_waitlist = Column(Boolean, nullable=False, default=False)
    has_participants_in_transition = Column(
        Boolean, nullable=False, default=False
    )  # Any pending/waitlisted participants
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    organizer = relationship("User", back_populates="hunts")
    participants = relationship(
        "HuntParticipant",
        back_populates="hunt",
        cascade="all, delete-orphan",
        order_by="HuntParticipant.joined_at",
    )

    __table_args__ = (
        Index("idx_hunts_user_id", "user_id"),
        Index("idx_hunts_start_date", "start_date"),
    )

    @property
    def is_unlimited(self) -> bool:
        return self.capacity is None
