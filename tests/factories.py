"""
Factory functions for creating test data.

These factories create model instances with sensible defaults.
Use db.flush() to get IDs without committing (for transaction rollback).
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
import secrets

import bcrypt
from sqlalchemy.orm import Session

from aurora_hunts.models import (
    Hunt,
    HuntParticipant,
    ParticipantStatus,
    Session as UserSession,
    User,
)


def utc(*args) -> datetime:
    """Shorthand for an aware UTC datetime."""
    return datetime(*args, tzinfo=timezone.utc)


# =============================================================================
# User Factory
# =============================================================================


def create_user(
    db: Session,
    email: Optional[str] = None,
    password: str = "testpassword123",
    is_admin: bool = False,
    **overrides,
) -> User:
    """
    Create a test user with hashed password.

    Args:
        db: Database session
        email: User email (auto-generated if not provided)
        password: Plain text password to hash
        is_admin: Whether user is an admin
        **overrides: Additional fields to override
    """
    if email is None:
        email = f"hunter_{secrets.token_hex(4)}@example.com"

    password_hash = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode(
        "utf-8"
    )

    defaults = {
        "email": email.lower(),
        "password_hash": password_hash,
        "is_admin": is_admin,
    }
    defaults.update(overrides)

    user = User(**defaults)
    db.add(user)
    db.flush()
    return user


# =============================================================================
# Session Factory
# =============================================================================


def create_session(db: Session, user: User, **overrides) -> UserSession:
    """Create a login session for user, valid for a week unless overridden."""
    defaults = {
        "user_id": user.id,
        "token": secrets.token_urlsafe(32),
        "expires_at": datetime.now(timezone.utc) + timedelta(days=7),
        "user_agent": "pytest-test-client",
        "ip_address": "127.0.0.1",
    }
    defaults.update(overrides)

    session = UserSession(**defaults)
    db.add(session)
    db.flush()
    return session


# =============================================================================
# Hunt Factory
# =============================================================================


def create_hunt(
    db: Session,
    organizer: User,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    with_organizer: bool = True,
    **overrides,
) -> Hunt:
    """
    Create a hunt a month from now, lasting four hours.

    The organizer is enrolled as a confirmed participant unless
    with_organizer is False, mirroring HuntService.create_hunt.
    """
    if start_date is None:
        start_date = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=30)
    if end_date is None:
        end_date = start_date + timedelta(hours=4)

    defaults = {
        "user_id": organizer.id,
        "name": f"Aurora hunt {secrets.token_hex(3)}",
        "start_date": start_date,
        "end_date": end_date,
        "timezone": "UTC",
        "hide_location": False,
        "is_public": True,
        "hide_from_public": False,
        "is_paid": False,
        "price": None,
        "capacity": None,
        "allow_waitlist": False,
        "has_participants_in_transition": False,
    }
    defaults.update(overrides)

    hunt = Hunt(**defaults)
    db.add(hunt)
    db.flush()

    if with_organizer:
        create_participant(
            db, hunt, organizer, status=ParticipantStatus.CONFIRMED.value,
            joined_at=start_date - timedelta(days=60),
        )
    return hunt


# =============================================================================
# Participant Factory
# =============================================================================


def create_participant(
    db: Session,
    hunt: Hunt,
    user: User,
    status: str = ParticipantStatus.CONFIRMED.value,
    **overrides,
) -> HuntParticipant:
    """Create a participant row directly, bypassing the join rules."""
    defaults = {
        "hunt_id": hunt.id,
        "user_id": user.id,
        "status": status,
        "rejection_count": 0,
        "joined_at": datetime.now(timezone.utc),
    }
    defaults.update(overrides)

    participant = HuntParticipant(**defaults)
    db.add(participant)
    db.flush()
    return participant
