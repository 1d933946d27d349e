"""
Hunt participation lifecycle.

Every state-changing operation locks the hunt row (SELECT ... FOR UPDATE)
before reading occupancy, so two users cannot both take the last slot.

These methods flush but never commit: the caller (router, worker or CLI)
owns the transaction and commits or rolls back.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aurora_hunts.models.hunt import Hunt
from aurora_hunts.models.hunt_participant import (
    HuntParticipant,
    ParticipantStatus,
    PaymentStatus,
    TRANSITION_STATUSES,
)
from aurora_hunts.services import hunt_rules
from aurora_hunts.services.errors import ParticipationError
from aurora_hunts.services.hunt_rules import TransitionResult, as_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ParticipationOutcome:
    """Result of a participant transition, with any side effects."""

    participant: HuntParticipant
    promoted: Optional[HuntParticipant] = None
    capacity_adjusted: bool = False
    new_capacity: Optional[int] = None
    is_blocked: bool = False


class ParticipationService:
    """Applies hunt_rules decisions to HuntParticipant rows."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Queries
    # =========================================================================

    def _lock_hunt(self, hunt_id: int) -> Hunt:
        hunt = (
            self.db.query(Hunt)
            .filter(Hunt.id == hunt_id)
            .with_for_update()
            .first()
        )
        if hunt is None:
            raise ParticipationError("Hunt not found", 404)
        return hunt

    def get_participant(self, hunt_id: int, user_id: int) -> Optional[HuntParticipant]:
        return (
            self.db.query(HuntParticipant)
            .filter(
                HuntParticipant.hunt_id == hunt_id,
                HuntParticipant.user_id == user_id,
            )
            .first()
        )

    def confirmed_count(self, hunt_id: int) -> int:
        self.db.flush()
        return (
            self.db.query(func.count(HuntParticipant.id))
            .filter(
                HuntParticipant.hunt_id == hunt_id,
                HuntParticipant.status == ParticipantStatus.CONFIRMED.value,
            )
            .scalar()
        )

    def waitlist(self, hunt_id: int) -> List[HuntParticipant]:
        """Waitlisted participants in FIFO order."""
        self.db.flush()
        return (
            self.db.query(HuntParticipant)
            .filter(
                HuntParticipant.hunt_id == hunt_id,
                HuntParticipant.status == ParticipantStatus.WAITLISTED.value,
            )
            .order_by(
                HuntParticipant.waitlist_position.asc(),
                HuntParticipant.joined_at.asc(),
                HuntParticipant.id.asc(),
            )
            .all()
        )

    def has_participants_in_transition(self, hunt_id: int) -> bool:
        self.db.flush()
        count = (
            self.db.query(func.count(HuntParticipant.id))
            .filter(
                HuntParticipant.hunt_id == hunt_id,
                HuntParticipant.status.in_(TRANSITION_STATUSES),
            )
            .scalar()
        )
        return count > 0

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _require_organizer(self, hunt: Hunt, actor_id: int, action: str) -> None:
        if hunt.user_id != actor_id:
            raise ParticipationError(f"Only the hunt organizer can {action}", 403)

    def _require_participant(self, hunt_id: int, user_id: int) -> HuntParticipant:
        participant = self.get_participant(hunt_id, user_id)
        if participant is None:
            raise ParticipationError("Participant not found", 404)
        return participant

    def _apply(
        self, participant: HuntParticipant, result: TransitionResult, position: Optional[int] = None
    ) -> None:
        error = hunt_rules.check_status_transition(participant.status, result.status)
        if error:
            raise ParticipationError(error, 400)
        participant.status = result.status
        participant.payment_status = result.payment_status
        participant.request_expires_at = result.request_expires_at
        participant.waitlist_position = position

    def _cancel(self, participant: HuntParticipant) -> None:
        error = hunt_rules.check_status_transition(
            participant.status, ParticipantStatus.CANCELLED.value
        )
        if error:
            raise ParticipationError(error, 400)
        participant.status = ParticipantStatus.CANCELLED.value
        participant.waitlist_position = None
        participant.request_expires_at = None

    def _renumber_waitlist(self, hunt_id: int) -> None:
        """Close gaps so positions stay 1..n in FIFO order."""
        for position, waiting in enumerate(self.waitlist(hunt_id), start=1):
            if waiting.waitlist_position != position:
                waiting.waitlist_position = position

    def _adjust_capacity_for_acceptance(self, hunt: Hunt) -> Optional[int]:
        """
        Organizer accepting past capacity raises capacity to fit the
        participant. Returns the new capacity when it changed.
        """
        if hunt.capacity is None:
            return None
        confirmed = self.confirmed_count(hunt.id)
        if confirmed < hunt.capacity:
            return None
        old_capacity = hunt.capacity
        hunt.capacity = confirmed + 1
        logger.info(
            "Hunt %s capacity raised from %s to %s to accept participant",
            hunt.id,
            old_capacity,
            hunt.capacity,
        )
        return hunt.capacity

    def refresh_transition_flag(self, hunt: Hunt) -> None:
        hunt.has_participants_in_transition = self.has_participants_in_transition(hunt.id)

    # =========================================================================
    # Participant actions
    # =========================================================================

    def join(
        self, hunt_id: int, user_id: int, now: Optional[datetime] = None
    ) -> ParticipationOutcome:
        """
        Join a hunt (or request to, for private and paid hunts).

        Raises ParticipationError when the hunt is over, the user is blocked
        or already active, or the hunt is full without a waitlist.
        """
        now = as_utc(now) or utcnow()
        hunt = self._lock_hunt(hunt_id)

        timing_error = hunt_rules.check_join_timing(hunt.start_date, hunt.end_date, now)
        if timing_error:
            raise ParticipationError(timing_error, 400)

        existing = self.get_participant(hunt_id, user_id)
        if hunt_rules.is_blocked(existing):
            raise ParticipationError(
                "You have been rejected from this hunt too many times and cannot join again.",
                403,
            )
        if existing is not None and existing.is_active:
            raise ParticipationError("Already joined this hunt", 409)

        queue_length = len(self.waitlist(hunt_id))
        result = hunt_rules.decide_join(
            hunt, self.confirmed_count(hunt_id), now, waitlist_length=queue_length
        )
        position = queue_length + 1 if result.waitlisted else None

        if existing is None:
            participant = HuntParticipant(
                hunt_id=hunt_id,
                user_id=user_id,
                status=result.status,
                payment_status=result.payment_status,
                request_expires_at=result.request_expires_at,
                waitlist_position=position,
                rejection_count=0,
                joined_at=now,
            )
            self.db.add(participant)
        else:
            # Rejoining reuses the cancelled row; queue priority restarts
            participant = existing
            participant.status = result.status
            participant.payment_status = result.payment_status
            participant.request_expires_at = result.request_expires_at
            participant.waitlist_position = position
            participant.payment_marked_at = None
            participant.paid_at = None
            participant.approved_at = None
            participant.joined_at = now

        try:
            self.db.flush()
        except IntegrityError:
            raise ParticipationError("Already joined this hunt", 409)

        self.refresh_transition_flag(hunt)
        logger.info(
            "User %s joined hunt %s as %s (waitlist position %s)",
            user_id,
            hunt_id,
            participant.status,
            position,
        )
        return ParticipationOutcome(participant=participant)

    def mark_paid(self, hunt_id: int, user_id: int, now: Optional[datetime] = None) -> HuntParticipant:
        """Participant reports their payment as sent; the organizer still confirms it."""
        now = as_utc(now) or utcnow()
        hunt = self._lock_hunt(hunt_id)
        if not hunt.is_paid:
            raise ParticipationError("This is not a paid hunt", 400)

        participant = self.get_participant(hunt_id, user_id)
        if participant is None or not participant.is_active:
            raise ParticipationError("You are not a participant of this hunt", 400)
        if not participant.is_awaiting_payment:
            raise ParticipationError("Your participation status does not allow this action", 400)
        if participant.payment_marked_at is not None:
            raise ParticipationError("Payment already marked", 400)

        participant.payment_marked_at = now
        self.db.flush()
        logger.info("User %s marked payment sent for hunt %s", user_id, hunt_id)
        return participant

    def leave(self, hunt_id: int, user_id: int) -> ParticipationOutcome:
        """
        Cancel the user's participation. A freed confirmed slot goes to the
        head of the waitlist.
        """
        hunt = self._lock_hunt(hunt_id)
        if hunt.user_id == user_id:
            raise ParticipationError("Cannot leave your own hunt.", 400)

        participant = self.get_participant(hunt_id, user_id)
        if participant is None or not participant.is_active:
            raise ParticipationError("You are not a participant of this hunt", 400)

        previous_status = participant.status
        self._cancel(participant)
        self.db.flush()

        if participant.paid_at is not None:
            logger.info(
                "Participant %s left hunt %s after paying; organizer handles any refund",
                participant.id,
                hunt_id,
            )

        promoted = None
        if previous_status == ParticipantStatus.CONFIRMED.value:
            promoted = self.promote_next(hunt)
        elif previous_status == ParticipantStatus.WAITLISTED.value:
            self._renumber_waitlist(hunt_id)

        self.refresh_transition_flag(hunt)
        logger.info("User %s left hunt %s (was %s)", user_id, hunt_id, previous_status)
        return ParticipationOutcome(participant=participant, promoted=promoted)

    # =========================================================================
    # Organizer actions
    # =========================================================================

    def approve(
        self, hunt_id: int, organizer_id: int, user_id: int, now: Optional[datetime] = None
    ) -> ParticipationOutcome:
        """
        Accept a pending or waitlisted request.

        Free hunts confirm immediately (raising capacity if the organizer
        accepts past it); paid hunts move on to pending payment.
        """
        now = as_utc(now) or utcnow()
        hunt = self._lock_hunt(hunt_id)
        self._require_organizer(hunt, organizer_id, "approve requests")
        participant = self._require_participant(hunt_id, user_id)
        if participant.is_awaiting_payment and participant.approved_at is not None:
            raise ParticipationError("Request already approved. Waiting for payment", 400)

        was_waitlisted = participant.status == ParticipantStatus.WAITLISTED.value
        result = hunt_rules.decide_approval(hunt, participant, now)

        new_capacity = None
        if result.status == ParticipantStatus.CONFIRMED.value:
            new_capacity = self._adjust_capacity_for_acceptance(hunt)

        self._apply(participant, result)
        participant.approved_at = now
        self.db.flush()

        if was_waitlisted:
            self._renumber_waitlist(hunt_id)
        self.refresh_transition_flag(hunt)

        logger.info(
            "Organizer %s approved user %s on hunt %s -> %s",
            organizer_id,
            user_id,
            hunt_id,
            participant.status,
        )
        return ParticipationOutcome(
            participant=participant,
            capacity_adjusted=new_capacity is not None,
            new_capacity=new_capacity,
        )

    def reject(
        self, hunt_id: int, organizer_id: int, user_id: int, now: Optional[datetime] = None
    ) -> ParticipationOutcome:
        """Reject a pending or waitlisted request and count it against the user."""
        now = as_utc(now) or utcnow()
        hunt = self._lock_hunt(hunt_id)
        self._require_organizer(hunt, organizer_id, "reject requests")
        participant = self._require_participant(hunt_id, user_id)

        if participant.status not in TRANSITION_STATUSES:
            raise ParticipationError("Request is not pending or waitlisted", 400)

        was_waitlisted = participant.status == ParticipantStatus.WAITLISTED.value
        self._cancel(participant)
        participant.rejection_count = (participant.rejection_count or 0) + 1
        participant.last_rejected_at = now
        self.db.flush()

        if was_waitlisted:
            self._renumber_waitlist(hunt_id)
        promoted = self.promote_next(hunt, now)
        self.refresh_transition_flag(hunt)

        is_blocked = hunt_rules.is_blocked(participant)
        logger.info(
            "Organizer %s rejected user %s on hunt %s (rejections=%s, blocked=%s)",
            organizer_id,
            user_id,
            hunt_id,
            participant.rejection_count,
            is_blocked,
        )
        return ParticipationOutcome(
            participant=participant, promoted=promoted, is_blocked=is_blocked
        )

    def confirm_payment(
        self, hunt_id: int, organizer_id: int, user_id: int, now: Optional[datetime] = None
    ) -> ParticipationOutcome:
        """Organizer confirms the payment arrived; the participant is confirmed."""
        now = as_utc(now) or utcnow()
        hunt = self._lock_hunt(hunt_id)
        self._require_organizer(hunt, organizer_id, "confirm payments")
        if not hunt.is_paid:
            raise ParticipationError("This is not a paid hunt", 400)

        participant = self._require_participant(hunt_id, user_id)
        if not participant.is_awaiting_payment:
            raise ParticipationError("Payment cannot be confirmed for this participant", 400)

        new_capacity = self._adjust_capacity_for_acceptance(hunt)
        self._apply(
            participant,
            TransitionResult(
                status=ParticipantStatus.CONFIRMED.value,
                payment_status=PaymentStatus.CONFIRMED.value,
            ),
        )
        participant.paid_at = now
        participant.approved_at = participant.approved_at or now
        self.db.flush()
        self.refresh_transition_flag(hunt)

        logger.info("Payment confirmed for user %s on hunt %s", user_id, hunt_id)
        return ParticipationOutcome(
            participant=participant,
            capacity_adjusted=new_capacity is not None,
            new_capacity=new_capacity,
        )

    def decline_payment(
        self, hunt_id: int, organizer_id: int, user_id: int
    ) -> ParticipationOutcome:
        """Organizer cancels a participant whose payment never arrived."""
        hunt = self._lock_hunt(hunt_id)
        self._require_organizer(hunt, organizer_id, "cancel payments")
        participant = self._require_participant(hunt_id, user_id)

        if not participant.is_awaiting_payment:
            raise ParticipationError("Can only cancel pending payments", 400)

        self._cancel(participant)
        self.db.flush()
        promoted = self.promote_next(hunt)
        self.refresh_transition_flag(hunt)

        logger.info("Organizer %s declined payment of user %s on hunt %s", organizer_id, user_id, hunt_id)
        return ParticipationOutcome(participant=participant, promoted=promoted)

    # =========================================================================
    # Waitlist promotion
    # =========================================================================

    def promote_next(self, hunt: Hunt, now: Optional[datetime] = None) -> Optional[HuntParticipant]:
        """
        Move the head of the waitlist into the approval/payment flow if the
        hunt has a free slot. Expects the hunt row to be locked already.
        """
        if not hunt_rules.has_free_slot(hunt.capacity, self.confirmed_count(hunt.id)):
            return None

        queue = self.waitlist(hunt.id)
        if not queue:
            return None

        result = hunt_rules.decide_promotion(hunt, now)
        head = queue[0]
        self._apply(head, result)
        self.db.flush()
        self._renumber_waitlist(hunt.id)

        logger.info(
            "Promoted user %s from waitlist of hunt %s -> %s",
            head.user_id,
            hunt.id,
            head.status,
        )
        return head

    def promote_for_capacity(self, hunt: Hunt, now: Optional[datetime] = None) -> int:
        """
        Fill newly opened slots from the waitlist, FIFO. Private hunts are
        left for the organizer to accept by hand. Returns the number promoted.
        """
        slots = hunt_rules.available_slots(hunt.capacity, self.confirmed_count(hunt.id))
        if slots == 0:
            return 0

        queue = self.waitlist(hunt.id)
        if slots is not None:
            queue = queue[:slots]

        promoted = 0
        for participant in queue:
            result = hunt_rules.decide_promotion(hunt, now, auto=True)
            if result is None:
                break
            self._apply(participant, result)
            promoted += 1

        if promoted:
            self.db.flush()
            self._renumber_waitlist(hunt.id)
            self.refresh_transition_flag(hunt)
            logger.info("Promoted %d waitlisted users on hunt %s after capacity change", promoted, hunt.id)
        return promoted

    # =========================================================================
    # Expiry sweep
    # =========================================================================

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """
        Cancel pending/waitlisted participants whose request_expires_at has
        passed. Freed pending slots are offered to the waitlist. Returns the
        number of participants cancelled.
        """
        now = as_utc(now) or utcnow()
        expired = (
            self.db.query(HuntParticipant)
            .filter(
                HuntParticipant.status.in_(TRANSITION_STATUSES),
                HuntParticipant.request_expires_at.isnot(None),
                HuntParticipant.request_expires_at <= now,
            )
            .order_by(HuntParticipant.hunt_id, HuntParticipant.id)
            .all()
        )

        cleaned = 0
        for participant in expired:
            hunt = self._lock_hunt(participant.hunt_id)
            # Row may have moved on while we waited for the lock
            self.db.refresh(participant)
            expires_at = as_utc(participant.request_expires_at)
            if (
                participant.status not in TRANSITION_STATUSES
                or expires_at is None
                or expires_at > now
            ):
                continue

            previous_status = participant.status
            self._cancel(participant)
            self.db.flush()
            cleaned += 1
            logger.info(
                "Expired %s participant %s on hunt %s",
                previous_status,
                participant.id,
                hunt.id,
            )

            if previous_status == ParticipantStatus.PENDING.value:
                self.promote_next(hunt, now)
            else:
                self._renumber_waitlist(hunt.id)
            self.refresh_transition_flag(hunt)

        return cleaned
