"""
Integration tests for the hunts API: create, list, detail and edit.
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from aurora_hunts.models import ParticipantStatus, PaymentStatus
from tests.factories import create_hunt, create_participant, create_user


def hunt_payload(**overrides) -> dict:
    payload = {
        "name": "Senja aurora night",
        "start_date": "2030-01-15T20:00:00",
        "end_date": "2030-01-16T02:00:00",
        "timezone": "Europe/Oslo",
        "location": "Ersfjord beach",
        "latitude": 69.6,
        "longitude": 18.9,
    }
    payload.update(overrides)
    return payload


class TestCreateHunt:
    """Tests for POST /hunts."""

    def test_create_converts_local_time_to_utc(self, auth_client: TestClient):
        response = auth_client.post("/hunts", json=hunt_payload())

        assert response.status_code == 201
        data = response.json()
        assert data["start_date"].startswith("2030-01-15T19:00:00")
        assert data["end_date"].startswith("2030-01-16T01:00:00")
        assert data["is_public"] is True
        assert data["has_participants_in_transition"] is False

    def test_creator_is_confirmed_participant(self, auth_client: TestClient, test_user):
        hunt_id = auth_client.post("/hunts", json=hunt_payload()).json()["id"]

        detail = auth_client.get(f"/hunts/{hunt_id}").json()

        assert detail["is_creator"] is True
        assert detail["confirmed_count"] == 1
        assert detail["participants"][0]["status"] == "confirmed"

    def test_unknown_timezone(self, auth_client: TestClient):
        response = auth_client.post("/hunts", json=hunt_payload(timezone="Mars/Olympus"))
        assert response.status_code == 400

    def test_paid_without_price(self, auth_client: TestClient):
        response = auth_client.post("/hunts", json=hunt_payload(is_paid=True))

        assert response.status_code == 400
        assert "price greater than zero" in response.json()["detail"]

    def test_waitlist_without_capacity(self, auth_client: TestClient):
        response = auth_client.post("/hunts", json=hunt_payload(allow_waitlist=True))
        assert response.status_code == 400

    def test_requires_login(self, client: TestClient):
        assert client.post("/hunts", json=hunt_payload()).status_code == 401


class TestReadHunts:
    """Tests for GET /hunts and GET /hunts/{id}."""

    def test_list_hides_unlisted(self, client: TestClient, db: Session, organizer):
        listed = create_hunt(db, organizer)
        unlisted = create_hunt(db, organizer, is_public=False, hide_from_public=True)
        listed_id, unlisted_id = listed.id, unlisted.id
        db.commit()

        ids = {h["id"] for h in client.get("/hunts").json()}

        assert listed_id in ids
        assert unlisted_id not in ids

    def test_organizer_sees_own_unlisted(self, organizer_client: TestClient, db: Session, organizer):
        unlisted = create_hunt(db, organizer, is_public=False, hide_from_public=True)
        unlisted_id = unlisted.id
        db.commit()

        ids = {h["id"] for h in organizer_client.get("/hunts").json()}

        assert unlisted_id in ids

    def test_detail_not_found(self, client: TestClient):
        assert client.get("/hunts/987654").status_code == 404

    def test_hidden_location_masked_for_outsiders(
        self, client: TestClient, db: Session, organizer
    ):
        hunt = create_hunt(db, organizer, hide_location=True, location="Secret fjord")
        hunt_id = hunt.id
        db.commit()

        data = client.get(f"/hunts/{hunt_id}").json()

        assert data["location"] is None
        assert data["is_creator"] is False

    def test_hidden_location_shown_to_participants(
        self, auth_client: TestClient, db: Session, organizer, test_user
    ):
        hunt = create_hunt(db, organizer, hide_location=True, location="Secret fjord")
        create_participant(db, hunt, test_user)
        hunt_id = hunt.id
        db.commit()

        data = auth_client.get(f"/hunts/{hunt_id}").json()

        assert data["location"] == "Secret fjord"
        assert data["is_user_participant"] is True

    def test_outsiders_see_active_participants_only(
        self, client: TestClient, organizer_client: TestClient, db: Session, organizer
    ):
        hunt = create_hunt(db, organizer, is_paid=True, price=40.0)
        rejected = create_participant(
            db, hunt, create_user(db), status=ParticipantStatus.CANCELLED.value,
            rejection_count=2, last_rejected_at=datetime.now(timezone.utc),
        )
        paying = create_participant(
            db, hunt, create_user(db), status=ParticipantStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            payment_marked_at=datetime.now(timezone.utc),
            request_expires_at=datetime.now(timezone.utc) + timedelta(days=7),
        )
        hunt_id, rejected_id, paying_id = hunt.id, rejected.id, paying.id
        db.commit()

        public = {p["id"]: p for p in client.get(f"/hunts/{hunt_id}").json()["participants"]}
        assert rejected_id not in public
        assert public[paying_id]["payment_status"] is None
        assert public[paying_id]["payment_marked_at"] is None

        full = {p["id"]: p for p in organizer_client.get(f"/hunts/{hunt_id}").json()["participants"]}
        assert full[rejected_id]["rejection_count"] == 2
        assert full[paying_id]["payment_status"] == "pending"

    def test_mine_lists_active_participations(
        self, auth_client: TestClient, db: Session, organizer, test_user
    ):
        joined = create_hunt(db, organizer)
        other = create_hunt(db, organizer)
        create_participant(db, joined, test_user)
        joined_id, other_id = joined.id, other.id
        db.commit()

        ids = {h["id"] for h in auth_client.get("/hunts/mine").json()}

        assert joined_id in ids
        assert other_id not in ids

    def test_pending_payments(self, auth_client: TestClient, db: Session, organizer, test_user):
        hunt = create_hunt(db, organizer, is_paid=True, price=25.0)
        create_participant(
            db,
            hunt,
            test_user,
            status=ParticipantStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            request_expires_at=datetime.now(timezone.utc) + timedelta(days=7),
        )
        hunt_id = hunt.id
        db.commit()

        data = auth_client.get("/hunts/pending-payments").json()

        assert [p["hunt_id"] for p in data] == [hunt_id]


class TestUpdateHunt:
    """Tests for PATCH /hunts/{id}."""

    def test_organizer_can_edit(self, organizer_client: TestClient, db: Session, organizer):
        hunt = create_hunt(db, organizer)
        hunt_id = hunt.id
        db.commit()

        response = organizer_client.patch(f"/hunts/{hunt_id}", json={"name": "Moved north"})

        assert response.status_code == 200
        assert response.json()["hunt"]["name"] == "Moved north"

    def test_other_user_cannot_edit(self, auth_client: TestClient, db: Session, organizer):
        hunt = create_hunt(db, organizer)
        hunt_id = hunt.id
        db.commit()

        response = auth_client.patch(f"/hunts/{hunt_id}", json={"name": "Hijacked"})

        assert response.status_code == 403

    def test_capacity_increase_promotes(
        self, organizer_client: TestClient, db: Session, organizer, test_user
    ):
        hunt = create_hunt(db, organizer, capacity=2, allow_waitlist=True)
        create_participant(db, hunt, test_user)
        waiting = create_participant(
            db,
            hunt,
            create_user(db),
            status=ParticipantStatus.WAITLISTED.value,
            waitlist_position=1,
            request_expires_at=datetime.now(timezone.utc) + timedelta(days=7),
        )
        hunt_id, waiting_id = hunt.id, waiting.id
        db.commit()

        response = organizer_client.patch(f"/hunts/{hunt_id}", json={"capacity": 3})

        assert response.status_code == 200
        assert response.json()["promoted_count"] == 1
        detail = organizer_client.get(f"/hunts/{hunt_id}").json()
        promoted = next(p for p in detail["participants"] if p["id"] == waiting_id)
        assert promoted["status"] == "confirmed"

    @pytest.mark.parametrize(
        "field", ["name", "is_public", "hide_location", "timezone", "is_paid", "allow_waitlist"]
    )
    def test_null_for_required_field_rejected(
        self, organizer_client: TestClient, db: Session, organizer, field
    ):
        hunt = create_hunt(db, organizer)
        hunt_id, name = hunt.id, hunt.name
        db.commit()

        response = organizer_client.patch(f"/hunts/{hunt_id}", json={field: None})

        assert response.status_code == 422
        assert organizer_client.get(f"/hunts/{hunt_id}").json()["name"] == name

    def test_null_capacity_removes_limit(
        self, organizer_client: TestClient, db: Session, organizer
    ):
        hunt = create_hunt(db, organizer, capacity=5)
        hunt_id = hunt.id
        db.commit()

        response = organizer_client.patch(f"/hunts/{hunt_id}", json={"capacity": None})

        assert response.status_code == 200
        assert response.json()["hunt"]["capacity"] is None

    def test_capacity_below_confirmed(
        self, organizer_client: TestClient, db: Session, organizer, test_user
    ):
        hunt = create_hunt(db, organizer, capacity=4)
        create_participant(db, hunt, test_user)
        hunt_id = hunt.id
        db.commit()

        response = organizer_client.patch(f"/hunts/{hunt_id}", json={"capacity": 1})

        assert response.status_code == 400
        assert "Cannot decrease capacity" in response.json()["detail"]

    def test_visibility_locked_with_pending_requests(
        self, organizer_client: TestClient, db: Session, organizer, test_user
    ):
        hunt = create_hunt(db, organizer, is_public=False, has_participants_in_transition=True)
        create_participant(
            db,
            hunt,
            test_user,
            status=ParticipantStatus.PENDING.value,
            request_expires_at=datetime.now(timezone.utc) + timedelta(days=7),
        )
        hunt_id = hunt.id
        db.commit()

        response = organizer_client.patch(f"/hunts/{hunt_id}", json={"is_public": True})

        assert response.status_code == 400
