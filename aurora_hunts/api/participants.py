"""API endpoints for joining, leaving and managing hunt participants."""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from aurora_hunts.api.common import run_in_transaction
from aurora_hunts.api.hunts import ParticipantOut
from aurora_hunts.database import get_db
from aurora_hunts.models.hunt_participant import ParticipantStatus
from aurora_hunts.models.user import User
from aurora_hunts.services.auth.dependencies import get_current_user
from aurora_hunts.services.participation_service import (
    ParticipationOutcome,
    ParticipationService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/hunts", tags=["participants"])


class ParticipationResponse(BaseModel):
    success: bool = True
    message: str
    participant: ParticipantOut
    waitlist_position: Optional[int] = None
    expires_at: Optional[datetime] = None
    promoted_user_id: Optional[int] = None
    capacity_adjusted: bool = False
    new_capacity: Optional[int] = None
    is_blocked: bool = False


def _join_message(status: str, payment_status: Optional[str], position: Optional[int]) -> str:
    if status == ParticipantStatus.CONFIRMED.value:
        return "Successfully joined the hunt"
    if status == ParticipantStatus.WAITLISTED.value:
        return f"Hunt is full. You have been added to the waitlist at position {position}"
    if payment_status is not None:
        return "Join request submitted. Please complete payment to secure your spot"
    return "Join request submitted. Waiting for organizer approval"


def _respond(outcome: ParticipationOutcome, message: str) -> ParticipationResponse:
    participant = outcome.participant
    return ParticipationResponse(
        message=message,
        participant=ParticipantOut.model_validate(participant),
        waitlist_position=participant.waitlist_position,
        expires_at=participant.request_expires_at,
        promoted_user_id=outcome.promoted.user_id if outcome.promoted else None,
        capacity_adjusted=outcome.capacity_adjusted,
        new_capacity=outcome.new_capacity,
        is_blocked=outcome.is_blocked,
    )


# =============================================================================
# Participant actions
# =============================================================================

@router.post("/{hunt_id}/join", response_model=ParticipationResponse)
def join_hunt(
    hunt_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Join a hunt, request to join it, or take a place on its waitlist."""
    service = ParticipationService(db)
    outcome = run_in_transaction(db, "join hunt", lambda: service.join(hunt_id, user.id))
    participant = outcome.participant
    return _respond(
        outcome,
        _join_message(
            participant.status, participant.payment_status, participant.waitlist_position
        ),
    )


@router.delete("/{hunt_id}/leave", response_model=ParticipationResponse)
def leave_hunt(
    hunt_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = ParticipationService(db)
    outcome = run_in_transaction(db, "leave hunt", lambda: service.leave(hunt_id, user.id))
    return _respond(outcome, "Successfully left the hunt")


@router.post("/{hunt_id}/payment/mark-paid", response_model=ParticipationResponse)
def mark_paid(
    hunt_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Tell the organizer the payment has been sent."""
    service = ParticipationService(db)
    participant = run_in_transaction(
        db, "mark payment", lambda: service.mark_paid(hunt_id, user.id)
    )
    return _respond(
        ParticipationOutcome(participant=participant),
        "Payment marked as sent. The organizer will confirm it",
    )


# =============================================================================
# Organizer actions
# =============================================================================

@router.post("/{hunt_id}/requests/{user_id}", response_model=ParticipationResponse)
def approve_request(
    hunt_id: int,
    user_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Accept a pending or waitlisted request."""
    service = ParticipationService(db)
    outcome = run_in_transaction(
        db, "approve request", lambda: service.approve(hunt_id, user.id, user_id)
    )
    if outcome.participant.status == ParticipantStatus.CONFIRMED.value:
        message = "Request approved"
    else:
        message = "Request approved. Waiting for payment"
    if outcome.capacity_adjusted:
        message += f". Capacity increased to {outcome.new_capacity}"
    return _respond(outcome, message)


@router.delete("/{hunt_id}/requests/{user_id}", response_model=ParticipationResponse)
def reject_request(
    hunt_id: int,
    user_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = ParticipationService(db)
    outcome = run_in_transaction(
        db, "reject request", lambda: service.reject(hunt_id, user.id, user_id)
    )
    message = "Request rejected"
    if outcome.is_blocked:
        message += ". User is now blocked from joining this hunt"
    return _respond(outcome, message)


@router.post("/{hunt_id}/payments/{user_id}", response_model=ParticipationResponse)
def confirm_payment(
    hunt_id: int,
    user_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = ParticipationService(db)
    outcome = run_in_transaction(
        db, "confirm payment", lambda: service.confirm_payment(hunt_id, user.id, user_id)
    )
    message = "Payment confirmed"
    if outcome.capacity_adjusted:
        message += f". Capacity increased to {outcome.new_capacity}"
    return _respond(outcome, message)


@router.delete("/{hunt_id}/payments/{user_id}", response_model=ParticipationResponse)
def decline_payment(
    hunt_id: int,
    user_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Cancel a participant whose payment did not arrive."""
    service = ParticipationService(db)
    outcome = run_in_transaction(
        db, "cancel payment", lambda: service.decline_payment(hunt_id, user.id, user_id)
    )
    return _respond(outcome, "Payment cancelled")
