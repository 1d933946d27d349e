"""Business logic for creating, editing and listing hunts."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from aurora_hunts.models.hunt import Hunt
from aurora_hunts.models.hunt_participant import (
    ACTIVE_STATUSES,
    HuntParticipant,
    ParticipantStatus,
    PaymentStatus,
)
from aurora_hunts.services.errors import HuntError
from aurora_hunts.services.hunt_rules import as_utc, utcnow
from aurora_hunts.services.participation_service import ParticipationService

logger = logging.getLogger(__name__)

# Fields an organizer may change through update_settings
EDITABLE_FIELDS = {
    "name",
    "description",
    "start_date",
    "end_date",
    "timezone",
    "location",
    "latitude",
    "longitude",
    "hide_location",
    "is_public",
    "hide_from_public",
    "is_paid",
    "price",
    "cancellation_policy",
    "capacity",
    "allow_waitlist",
}


def validate_hunt_config(config: Dict[str, Any]) -> None:
    """
    Check a complete hunt configuration.

    Raises HuntError describing the first rule that is broken.
    """
    start_date = as_utc(config.get("start_date"))
    end_date = as_utc(config.get("end_date"))
    if start_date is None or end_date is None:
        raise HuntError("Start and end date are required")
    if end_date <= start_date:
        raise HuntError("End date must be after start date")

    if config.get("hide_from_public") and config.get("is_public"):
        raise HuntError("Hide from Public can only be enabled for private hunts")

    if config.get("is_paid"):
        price = config.get("price")
        if price is None or price <= 0:
            raise HuntError("Paid hunts require a price greater than zero")

    capacity = config.get("capacity")
    if capacity is not None and capacity < 1:
        raise HuntError("Capacity must be at least 1")

    if config.get("allow_waitlist") and capacity is None:
        raise HuntError("A waitlist requires a capacity limit")


class HuntService:
    """Service for hunt-level operations."""

    def __init__(self, db: Session):
        self.db = db
        self.participation = ParticipationService(db)

    def create_hunt(self, organizer_id: int, **fields) -> Hunt:
        """
        Create a hunt and enroll its organizer as the first confirmed
        participant (the organizer counts toward capacity).
        """
        config = {
            "timezone": "UTC",
            "hide_location": False,
            "is_public": True,
            "hide_from_public": False,
            "is_paid": False,
            "allow_waitlist": False,
        }
        config.update({k: v for k, v in fields.items() if k in EDITABLE_FIELDS})
        validate_hunt_config(config)
        if not config["is_paid"]:
            config["price"] = None

        hunt = Hunt(user_id=organizer_id, **config)
        self.db.add(hunt)
        self.db.flush()

        self.db.add(
            HuntParticipant(
                hunt_id=hunt.id,
                user_id=organizer_id,
                status=ParticipantStatus.CONFIRMED.value,
                joined_at=utcnow(),
            )
        )
        self.db.flush()

        logger.info("User %s created hunt %s (%s)", organizer_id, hunt.id, hunt.name)
        return hunt

    def get_hunt(self, hunt_id: int) -> Optional[Hunt]:
        return self.db.query(Hunt).filter(Hunt.id == hunt_id).first()

    def update_settings(
        self,
        hunt_id: int,
        actor_id: int,
        changes: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Tuple[Hunt, int]:
        """
        Apply an organizer's edits to a hunt.

        Returns (hunt, promoted_count); promoted_count is how many waitlisted
        users moved up because capacity grew.
        """
        now = as_utc(now) or utcnow()
        hunt = (
            self.db.query(Hunt).filter(Hunt.id == hunt_id).with_for_update().first()
        )
        if hunt is None:
            raise HuntError("Hunt not found", 404)
        if hunt.user_id != actor_id:
            raise HuntError("Only the creator can edit this hunt", 403)
        if as_utc(hunt.end_date) < now:
            raise HuntError("Cannot edit a hunt that has already ended")

        changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
        merged = {field: getattr(hunt, field) for field in EDITABLE_FIELDS}
        merged.update(changes)
        if not merged["is_paid"]:
            merged["price"] = None
        validate_hunt_config(merged)

        if merged["is_public"] != hunt.is_public:
            if self.participation.has_participants_in_transition(hunt.id):
                raise HuntError(
                    "Cannot change hunt visibility while users are in pending or "
                    "waitlisted states. All users must leave first."
                )

        if merged["is_paid"] != hunt.is_paid:
            if self._other_active_participants(hunt) > 0:
                if hunt.is_paid:
                    raise HuntError(
                        "Cannot change from paid to free while other participants are in this hunt."
                    )
                raise HuntError(
                    "Cannot change from free to paid while other participants are in this hunt."
                )

        confirmed = self.participation.confirmed_count(hunt.id)
        new_capacity = merged["capacity"]
        if new_capacity is not None and new_capacity < confirmed:
            raise HuntError(
                f"Cannot decrease capacity to {new_capacity} as there are already "
                f"{confirmed} confirmed participants (including owner)."
            )
        capacity_grew = hunt.capacity is not None and (
            new_capacity is None or new_capacity > hunt.capacity
        )

        for field, value in merged.items():
            setattr(hunt, field, value)
        self.db.flush()

        promoted = 0
        if capacity_grew:
            promoted = self.participation.promote_for_capacity(hunt, now)

        logger.info(
            "Hunt %s updated by %s (fields=%s, promoted=%d)",
            hunt.id,
            actor_id,
            sorted(changes),
            promoted,
        )
        return hunt, promoted

    def _other_active_participants(self, hunt: Hunt) -> int:
        self.db.flush()
        return (
            self.db.query(func.count(HuntParticipant.id))
            .filter(
                HuntParticipant.hunt_id == hunt.id,
                HuntParticipant.user_id != hunt.user_id,
                HuntParticipant.status.in_(ACTIVE_STATUSES),
            )
            .scalar()
        )

    def list_upcoming(
        self,
        viewer_id: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
        now: Optional[datetime] = None,
    ) -> List[Hunt]:
        """Hunts that have not ended, soonest first. Unlisted hunts only show to their organizer."""
        now = as_utc(now) or utcnow()
        visible = Hunt.hide_from_public.is_(False)
        if viewer_id is not None:
            visible = or_(visible, Hunt.user_id == viewer_id)
        return (
            self.db.query(Hunt)
            .filter(Hunt.end_date > now, visible)
            .order_by(Hunt.start_date.asc())
            .limit(limit)
            .offset(offset)
            .all()
        )

    def list_user_hunts(self, user_id: int) -> List[Hunt]:
        """Hunts the user organizes or holds an active participation in."""
        return (
            self.db.query(Hunt)
            .join(HuntParticipant, HuntParticipant.hunt_id == Hunt.id)
            .filter(
                HuntParticipant.user_id == user_id,
                HuntParticipant.status.in_(ACTIVE_STATUSES),
            )
            .order_by(Hunt.start_date.asc())
            .all()
        )

    def pending_payments(self, user_id: int) -> List[HuntParticipant]:
        """The user's participations still waiting on payment."""
        return (
            self.db.query(HuntParticipant)
            .filter(
                HuntParticipant.user_id == user_id,
                HuntParticipant.status == ParticipantStatus.PENDING.value,
                HuntParticipant.payment_status == PaymentStatus.PENDING.value,
            )
            .order_by(HuntParticipant.request_expires_at.asc())
            .all()
        )
