"""Maintenance endpoints called by an external scheduler."""
import logging
import secrets
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from aurora_hunts.api.common import run_in_transaction
from aurora_hunts.config import settings
from aurora_hunts.database import get_db
from aurora_hunts.services.participation_service import ParticipationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


def require_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Only callers presenting `Bearer <CRON_SECRET>` may run maintenance jobs."""
    expected = settings.cron_secret
    if not expected or not authorization:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not secrets.compare_digest(authorization, f"Bearer {expected}"):
        logger.warning("Rejected maintenance call with invalid cron secret")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.api_route(
    "/cleanup-hunt-participants",
    methods=["GET", "POST"],
    dependencies=[Depends(require_cron_secret)],
)
def cleanup_hunt_participants(db: Session = Depends(get_db)):
    """
    Cancel expired pending and waitlisted participants.

    Schedule hourly; running it more often is harmless.
    """
    logger.info("Starting cleanup of expired hunt participants")
    service = ParticipationService(db)
    cleaned = run_in_transaction(db, "clean up participants", service.cleanup_expired)
    logger.info("Cleanup complete: %d expired participants cancelled", cleaned)
    return {
        "success": True,
        "cleaned": cleaned,
        "message": f"Cleaned up {cleaned} expired participants",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
