"""API endpoints for creating, editing and browsing hunts."""
import logging
from datetime import datetime, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.orm import Session

from aurora_hunts.api.common import run_in_transaction
from aurora_hunts.database import get_db
from aurora_hunts.models.hunt import Hunt
from aurora_hunts.models.hunt_participant import ParticipantStatus
from aurora_hunts.models.user import User
from aurora_hunts.services.auth.dependencies import get_current_user, get_optional_user
from aurora_hunts.services.hunt_service import HuntService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/hunts", tags=["hunts"])


# =============================================================================
# Request/Response Models
# =============================================================================

class HuntCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    timezone: str = "UTC"
    location: Optional[str] = Field(None, max_length=300)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    hide_location: bool = False
    is_public: bool = True
    hide_from_public: bool = False
    is_paid: bool = False
    price: Optional[float] = Field(None, ge=0)
    cancellation_policy: Optional[str] = None
    capacity: Optional[int] = Field(None, ge=1)
    allow_waitlist: bool = False


class HuntUpdate(BaseModel):
    """Partial update; only fields that are sent are changed."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    timezone: Optional[str] = None
    location: Optional[str] = Field(None, max_length=300)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    hide_location: Optional[bool] = None
    is_public: Optional[bool] = None
    hide_from_public: Optional[bool] = None
    is_paid: Optional[bool] = None
    price: Optional[float] = Field(None, ge=0)
    cancellation_policy: Optional[str] = None
    capacity: Optional[int] = Field(None, ge=1)  # null removes the limit
    allow_waitlist: Optional[bool] = None

    @field_validator(
        "name",
        "start_date",
        "end_date",
        "timezone",
        "hide_location",
        "is_public",
        "hide_from_public",
        "is_paid",
        "allow_waitlist",
    )
    @classmethod
    def reject_null(cls, value, info):
        # Omit a field to leave it unchanged; these columns cannot be cleared
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


class ParticipantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    hunt_id: int
    user_id: int
    status: str
    payment_status: Optional[str] = None
    payment_marked_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    waitlist_position: Optional[int] = None
    request_expires_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    rejection_count: int = 0
    last_rejected_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None


class HuntOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    name: str
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    timezone: str
    location: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    hide_location: bool
    is_public: bool
    hide_from_public: bool
    is_paid: bool
    price: Optional[float] = None
    cancellation_policy: Optional[str] = None
    capacity: Optional[int] = None
    allow_waitlist: bool
    has_participants_in_transition: bool


class HuntDetailOut(HuntOut):
    participants: List[ParticipantOut] = []
    confirmed_count: int = 0
    is_creator: bool = False
    is_user_participant: bool = False


class HuntUpdateOut(BaseModel):
    success: bool = True
    hunt: HuntOut
    promoted_count: int = 0
    message: str


# =============================================================================
# Helpers
# =============================================================================

def _to_utc(value: Optional[datetime], tz_name: str) -> Optional[datetime]:
    """Interpret naive datetimes in the hunt's IANA timezone and convert to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=ZoneInfo(tz_name))
    return value.astimezone(timezone.utc)


def _check_timezone(tz_name: str) -> None:
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise HTTPException(status_code=400, detail=f"Unknown timezone: {tz_name}")


def _public_participant(participant, viewer: Optional[User]) -> ParticipantOut:
    """Payment and rejection history is visible only to the organizer and the user themself."""
    out = ParticipantOut.model_validate(participant)
    if viewer is not None and participant.user_id == viewer.id:
        return out
    return out.model_copy(
        update={
            "payment_status": None,
            "payment_marked_at": None,
            "paid_at": None,
            "request_expires_at": None,
            "approved_at": None,
            "rejection_count": 0,
            "last_rejected_at": None,
        }
    )


def _hunt_detail(hunt: Hunt, viewer: Optional[User]) -> HuntDetailOut:
    confirmed = [
        p for p in hunt.participants if p.status == ParticipantStatus.CONFIRMED.value
    ]
    is_creator = viewer is not None and hunt.user_id == viewer.id
    is_participant = viewer is not None and any(p.user_id == viewer.id for p in confirmed)

    detail = HuntDetailOut.model_validate(hunt)
    if is_creator:
        detail.participants = [ParticipantOut.model_validate(p) for p in hunt.participants]
    else:
        detail.participants = [
            _public_participant(p, viewer) for p in hunt.participants if p.is_active
        ]
    detail.confirmed_count = len(confirmed)
    detail.is_creator = is_creator
    detail.is_user_participant = is_participant

    # Meeting point is only revealed to confirmed participants
    if hunt.hide_location and not (is_creator or is_participant):
        detail.location = None
        detail.latitude = None
        detail.longitude = None
    return detail


# =============================================================================
# Endpoints
# =============================================================================

@router.post("", response_model=HuntOut, status_code=201)
def create_hunt(
    body: HuntCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a hunt. The organizer is enrolled as its first confirmed participant."""
    _check_timezone(body.timezone)
    fields = body.model_dump()
    fields["start_date"] = _to_utc(body.start_date, body.timezone)
    fields["end_date"] = _to_utc(body.end_date, body.timezone)

    service = HuntService(db)
    hunt = run_in_transaction(
        db, "create hunt", lambda: service.create_hunt(user.id, **fields)
    )
    db.refresh(hunt)
    return hunt


@router.get("", response_model=List[HuntOut])
def list_hunts(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Upcoming and ongoing hunts, soonest first."""
    return HuntService(db).list_upcoming(
        viewer_id=user.id if user else None, limit=limit, offset=offset
    )


@router.get("/mine", response_model=List[HuntOut])
def my_hunts(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Hunts the current user organizes or takes part in."""
    return HuntService(db).list_user_hunts(user.id)


@router.get("/pending-payments", response_model=List[ParticipantOut])
def pending_payments(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return HuntService(db).pending_payments(user.id)


@router.get("/{hunt_id}", response_model=HuntDetailOut)
def get_hunt(
    hunt_id: int,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    hunt = HuntService(db).get_hunt(hunt_id)
    if hunt is None:
        raise HTTPException(status_code=404, detail="Hunt not found")
    return _hunt_detail(hunt, user)


@router.patch("/{hunt_id}", response_model=HuntUpdateOut)
def update_hunt(
    hunt_id: int,
    body: HuntUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Edit hunt settings. Raising capacity promotes waitlisted users on public hunts."""
    service = HuntService(db)
    existing = service.get_hunt(hunt_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Hunt not found")

    changes = body.model_dump(exclude_unset=True)
    tz_name = changes.get("timezone") or existing.timezone
    _check_timezone(tz_name)
    for field in ("start_date", "end_date"):
        if field in changes:
            changes[field] = _to_utc(changes[field], tz_name)

    hunt, promoted = run_in_transaction(
        db,
        "update hunt",
        lambda: service.update_settings(hunt_id, user.id, changes),
    )
    db.refresh(hunt)
    return HuntUpdateOut(
        hunt=HuntOut.model_validate(hunt),
        promoted_count=promoted,
        message="Hunt updated successfully",
    )
