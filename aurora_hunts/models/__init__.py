"""
Database models for Aurora Hunts.

Import all models here so Alembic can detect them for migrations.
"""

from aurora_hunts.database import Base
from aurora_hunts.models.user import User
from aurora_hunts.models.session import Session
from aurora_hunts.models.hunt import Hunt
from aurora_hunts.models.hunt_participant import (
    HuntParticipant,
    ParticipantStatus,
    PaymentStatus,
)

__all__ = [
    "Base",
    "User",
    "Session",
    "Hunt",
    "HuntParticipant",
    "ParticipantStatus",
    "PaymentStatus",
]
