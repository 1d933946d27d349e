"""
Participation state machine for hunts.

Pure decision functions: given a hunt's configuration, its current
occupancy and the participant's state, work out the resulting
(status, payment_status, request_expires_at) tuple. Persistence and
locking live in ParticipationService.

Allowed transitions:
    (new)      -> pending, waitlisted, confirmed
    pending    -> pending (paid approval), confirmed, cancelled
    waitlisted -> pending, confirmed, cancelled
    confirmed  -> cancelled
    cancelled  -> (none)
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from aurora_hunts.config import settings
from aurora_hunts.models.hunt import Hunt
from aurora_hunts.models.hunt_participant import (
    HuntParticipant,
    ParticipantStatus,
    PaymentStatus,
)
from aurora_hunts.services.errors import ParticipationError

WAITLIST_CLEANUP_BUFFER_SECONDS = 1  # Requests lapse 1s before the hunt starts
JOIN_CUTOFF_BEFORE_END_MINUTES = 1

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    ParticipantStatus.PENDING.value: {
        ParticipantStatus.PENDING.value,
        ParticipantStatus.CONFIRMED.value,
        ParticipantStatus.CANCELLED.value,
    },
    ParticipantStatus.WAITLISTED.value: {
        ParticipantStatus.PENDING.value,
        ParticipantStatus.CONFIRMED.value,
        ParticipantStatus.CANCELLED.value,
    },
    ParticipantStatus.CONFIRMED.value: {ParticipantStatus.CANCELLED.value},
    ParticipantStatus.CANCELLED.value: set(),
}


@dataclass(frozen=True)
class TransitionResult:
    """Target state for a participant row."""

    status: str
    payment_status: Optional[str] = None
    request_expires_at: Optional[datetime] = None
    waitlisted: bool = False


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def check_status_transition(current: str, target: str) -> Optional[str]:
    """
    Validate a status transition. Returns None if allowed, else a clear
    error message suitable for an HTTP 400.
    """
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if target not in allowed:
        allowed_str = ", ".join(sorted(allowed)) if allowed else "none"
        return (
            f"Transition from {current} to {target} is not allowed. "
            f"From {current} only allowed: {allowed_str}."
        )
    return None


def calculate_expiration_date(
    hunt_start: datetime,
    from_date: Optional[datetime] = None,
    hunt_end: Optional[datetime] = None,
) -> datetime:
    """
    Deadline for a pending request or payment.

    request_timeout_days from now, or 1 second before the hunt starts,
    whichever is sooner. Once the hunt is under way the start has passed,
    so the deadline is capped at hunt_end instead.
    """
    from_date = as_utc(from_date) or utcnow()
    timeout = from_date + timedelta(days=settings.request_timeout_days)
    before_start = as_utc(hunt_start) - timedelta(
        seconds=WAITLIST_CLEANUP_BUFFER_SECONDS
    )
    if before_start <= from_date and hunt_end is not None:
        return min(timeout, as_utc(hunt_end))
    return min(timeout, before_start)


def request_deadline(hunt: Hunt, now: Optional[datetime] = None) -> datetime:
    return calculate_expiration_date(hunt.start_date, now, hunt.end_date)


def check_join_timing(
    hunt_start: datetime, hunt_end: datetime, now: Optional[datetime] = None
) -> Optional[str]:
    """
    Joining is allowed before the hunt and while it runs, but not once it
    has ended or within the last minute. Returns an error message or None.
    """
    now = as_utc(now) or utcnow()
    hunt_end = as_utc(hunt_end)

    if now >= hunt_end:
        return "This hunt has already ended. You cannot join."

    cutoff = hunt_end - timedelta(minutes=JOIN_CUTOFF_BEFORE_END_MINUTES)
    if now > cutoff:
        return "Cannot join within 1 minute before hunt ends. Please try again later."

    return None


def has_free_slot(capacity: Optional[int], confirmed_count: int) -> bool:
    return capacity is None or confirmed_count < capacity


def available_slots(capacity: Optional[int], confirmed_count: int) -> Optional[int]:
    """Free slots, or None when the hunt is unlimited."""
    if capacity is None:
        return None
    return max(0, capacity - confirmed_count)


def is_blocked(participant: Optional[HuntParticipant]) -> bool:
    """True once the organizer has rejected this user too many times."""
    if participant is None:
        return False
    return (participant.rejection_count or 0) >= settings.max_rejection_count


def decide_join(
    hunt: Hunt,
    confirmed_count: int,
    now: Optional[datetime] = None,
    waitlist_length: int = 0,
) -> TransitionResult:
    """
    Resulting state for a fresh join attempt.

    Newcomers queue behind anyone already waitlisted, even when a slot
    looks free while the head of the queue is still paying or awaiting
    approval. Raises ParticipationError when the hunt is full and has no
    waitlist.
    """
    now = as_utc(now) or utcnow()
    payment_status = PaymentStatus.PENDING.value if hunt.is_paid else None

    full = not has_free_slot(hunt.capacity, confirmed_count)
    if full and not hunt.allow_waitlist:
        raise ParticipationError("Hunt is at full capacity", 400)
    if full or (hunt.allow_waitlist and waitlist_length > 0):
        return TransitionResult(
            status=ParticipantStatus.WAITLISTED.value,
            request_expires_at=request_deadline(hunt, now),
            waitlisted=True,
        )

    if hunt.is_public and not hunt.is_paid:
        return TransitionResult(status=ParticipantStatus.CONFIRMED.value)

    # Private (approval) and paid (payment) both wait as pending
    return TransitionResult(
        status=ParticipantStatus.PENDING.value,
        payment_status=payment_status,
        request_expires_at=request_deadline(hunt, now),
    )


def decide_approval(
    hunt: Hunt, participant: HuntParticipant, now: Optional[datetime] = None
) -> TransitionResult:
    """
    Organizer accepts a pending or waitlisted request.

    Free hunts confirm directly. Paid hunts move to pending payment and
    keep (or gain) a payment deadline.
    """
    if participant.status not in (
        ParticipantStatus.PENDING.value,
        ParticipantStatus.WAITLISTED.value,
    ):
        raise ParticipationError("Request is not pending or waitlisted", 400)

    if not hunt.is_paid:
        return TransitionResult(status=ParticipantStatus.CONFIRMED.value)

    now = as_utc(now) or utcnow()
    expires_at = as_utc(participant.request_expires_at)
    if participant.status == ParticipantStatus.WAITLISTED.value or expires_at is None:
        expires_at = request_deadline(hunt, now)

    return TransitionResult(
        status=ParticipantStatus.PENDING.value,
        payment_status=PaymentStatus.PENDING.value,
        request_expires_at=expires_at,
    )


def decide_promotion(
    hunt: Hunt, now: Optional[datetime] = None, auto: bool = False
) -> Optional[TransitionResult]:
    """
    State for the head of the waitlist when a slot opens.

    Public free hunts confirm; paid hunts move to pending payment; private
    free hunts move to pending approval. With auto=True (capacity increase)
    private hunts are skipped so the organizer accepts manually.
    """
    now = as_utc(now) or utcnow()

    if hunt.is_public and not hunt.is_paid:
        return TransitionResult(status=ParticipantStatus.CONFIRMED.value)

    if not hunt.is_public and auto:
        return None

    return TransitionResult(
        status=ParticipantStatus.PENDING.value,
        payment_status=PaymentStatus.PENDING.value if hunt.is_paid else None,
        request_expires_at=request_deadline(hunt, now),
    )
