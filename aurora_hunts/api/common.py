"""Shared helpers for routers that run state changes in one transaction."""
import logging
from typing import Callable, TypeVar

from fastapi import HTTPException
from sqlalchemy.orm import Session

from aurora_hunts.services.errors import HuntServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_in_transaction(db: Session, action: str, operation: Callable[[], T]) -> T:
    """
    Run a service operation and commit it. Domain errors roll back and
    become their HTTP status; anything else rolls back and becomes a 500.
    """
    try:
        result = operation()
        db.commit()
        return result
    except HuntServiceError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception:
        db.rollback()
        logger.exception("Failed to %s", action)
        raise HTTPException(status_code=500, detail=f"Failed to {action}")
