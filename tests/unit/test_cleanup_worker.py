"""
Unit tests for cleanup_worker - the Dramatiq actor that expires stale
participants. The actor is called directly, bypassing the broker.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.orm import Session

from aurora_hunts.models import HuntParticipant, ParticipantStatus
from aurora_hunts.workers.cleanup_worker import cleanup_expired_participants
from tests.factories import create_hunt, create_participant, create_user


class TestCleanupExpiredParticipants:
    """Tests for the cleanup_expired_participants actor."""

    def test_cancels_and_promotes(self, db: Session, organizer, test_user):
        now = datetime.now(timezone.utc)
        hunt = create_hunt(db, organizer, capacity=2, allow_waitlist=True)
        expired = create_participant(
            db,
            hunt,
            test_user,
            status=ParticipantStatus.PENDING.value,
            request_expires_at=now - timedelta(minutes=10),
        )
        waiting = create_participant(
            db,
            hunt,
            create_user(db),
            status=ParticipantStatus.WAITLISTED.value,
            waitlist_position=1,
            request_expires_at=now + timedelta(days=2),
        )
        expired_id, waiting_id = expired.id, waiting.id

        with patch("aurora_hunts.workers.cleanup_worker.SessionLocal", return_value=db):
            cleaned = cleanup_expired_participants()

        assert cleaned == 1
        rows = {
            p.id: p
            for p in db.query(HuntParticipant).filter(
                HuntParticipant.id.in_([expired_id, waiting_id])
            )
        }
        assert rows[expired_id].status == ParticipantStatus.CANCELLED.value
        assert rows[waiting_id].status == ParticipantStatus.CONFIRMED.value

    def test_commits_and_closes_session(self):
        mock_session = MagicMock()
        with patch(
            "aurora_hunts.workers.cleanup_worker.SessionLocal", return_value=mock_session
        ), patch("aurora_hunts.workers.cleanup_worker.ParticipationService") as mock_service:
            mock_service.return_value.cleanup_expired.return_value = 4

            assert cleanup_expired_participants() == 4

        mock_session.commit.assert_called_once()
        mock_session.rollback.assert_not_called()
        mock_session.close.assert_called_once()

    def test_failure_rolls_back_and_reraises(self):
        """Errors propagate so Dramatiq can retry the message."""
        mock_session = MagicMock()
        with patch(
            "aurora_hunts.workers.cleanup_worker.SessionLocal", return_value=mock_session
        ), patch("aurora_hunts.workers.cleanup_worker.ParticipationService") as mock_service:
            mock_service.return_value.cleanup_expired.side_effect = RuntimeError("lock timeout")

            with pytest.raises(RuntimeError):
                cleanup_expired_participants()

        mock_session.commit.assert_not_called()
        mock_session.rollback.assert_called_once()
        mock_session.close.assert_called_once()

    def test_actor_is_registered(self):
        assert cleanup_expired_participants.actor_name == "cleanup_expired_participants"
        assert cleanup_expired_participants.options["max_retries"] == 3

    def test_runs_on_maintenance_queue(self):
        assert cleanup_expired_participants.queue_name == "maintenance"
