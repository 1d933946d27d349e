from enum import Enum as PyEnum

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from aurora_hunts.database import Base


class ParticipantStatus(str, PyEnum):
    """Participation lifecycle. CANCELLED is terminal."""

    PENDING = "pending"
    WAITLISTED = "waitlisted"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentStatus(str, PyEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"


# Statuses that still hold a request/slot on the hunt
ACTIVE_STATUSES = (
    ParticipantStatus.PENDING.value,
    ParticipantStatus.WAITLISTED.value,
    ParticipantStatus.CONFIRMED.value,
)
TRANSITION_STATUSES = (
    ParticipantStatus.PENDING.value,
    ParticipantStatus.WAITLISTED.value,
)


class HuntParticipant(Base):
    """One user's relationship to one hunt. Rows are cancelled, never deleted."""

    __tablename__ = "hunt_participants"

    id = Column(Integer, primary_key=True)
    hunt_id = Column(
        Integer, ForeignKey("hunts.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    # Stored as String(20); compare against ParticipantStatus values
    status = Column(String(20), nullable=False, default=ParticipantStatus.PENDING.value)
    payment_status = Column(String(20), nullable=True)  # Only for paid hunts
    payment_marked_at = Column(
        DateTime(timezone=True), nullable=True
    )  # Participant reported payment sent
    paid_at = Column(DateTime(timezone=True), nullable=True)
    waitlist_position = Column(Integer, nullable=True)  # 1-based, FIFO
    request_expires_at = Column(DateTime(timezone=True), nullable=True)
    rejection_count = Column(Integer, nullable=False, default=0)
    approved_at = Column(DateTime(timezone=True), nullable=True)  # Organizer accepted
    last_rejected_at = Column(DateTime(timezone=True), nullable=True)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    hunt = relationship("Hunt", back_populates="participants")
    user = relationship("User", back_populates="participations")

    __table_args__ = (
        UniqueConstraint("hunt_id", "user_id", name="uq_hunt_participant_hunt_user"),
        Index("idx_hunt_participants_status", "hunt_id", "status"),
        Index("idx_hunt_participants_expires_at", "request_expires_at"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_awaiting_payment(self) -> bool:
        return (
            self.status == ParticipantStatus.PENDING.value
            and self.payment_status == PaymentStatus.PENDING.value
        )
