"""
Dramatiq worker that expires stale hunt participants.

Run with: dramatiq aurora_hunts.workers.cleanup_worker --queues maintenance
"""
import logging

import dramatiq

# Import broker setup (must be before actor definitions)
from aurora_hunts.workers import MAINTENANCE_QUEUE, redis_broker  # noqa: F401
from aurora_hunts.database import SessionLocal
from aurora_hunts.services.participation_service import ParticipationService

logger = logging.getLogger(__name__)


@dramatiq.actor(
    queue_name=MAINTENANCE_QUEUE, max_retries=3, min_backoff=5000, max_backoff=60000
)
def cleanup_expired_participants() -> int:
    """
    Cancel pending and waitlisted participants whose request window closed,
    promoting from the waitlist where a slot opened up.

    Returns the number of participants cancelled.
    """
    db = SessionLocal()
    try:
        cleaned = ParticipationService(db).cleanup_expired()
        db.commit()
        logger.info("Expired participant cleanup cancelled %d participants", cleaned)
        return cleaned
    except Exception:
        db.rollback()
        logger.exception("Expired participant cleanup failed")
        raise
    finally:
        db.close()
