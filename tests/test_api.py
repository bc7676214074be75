"""
HTTP surface tests through FastAPI's TestClient with in-memory adapters.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from conftest import SLOT, build_world
from slotflow.main import app
from slotflow.wiring.dependencies import get_booking_flow_manager, get_placeholder_service, get_slot_listing_service

SLOT_START = datetime(2030, 1, 7, 15, tzinfo=timezone.utc)


@pytest.fixture
def api():
    world = build_world()
    app.dependency_overrides[get_booking_flow_manager] = lambda: world.manager
    app.dependency_overrides[get_slot_listing_service] = lambda: world.slots
    app.dependency_overrides[get_placeholder_service] = lambda: world.placeholders
    with TestClient(app) as client:
        yield client, world
    app.dependency_overrides.clear()


def start_payload(session_type_id: str = "individual") -> dict:
    return {"user_id": "42", "session_type_id": session_type_id, "appointment_datetime": SLOT}


def test_health(api):
    client, _ = api

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_slots_listing(api):
    client, world = api
    world.calendar.add_busy("personal", SLOT_START, SLOT_START + timedelta(hours=1))

    response = client.get(
        "/api/slots", params={"start_date": "2030-01-07", "end_date": "2030-01-07", "duration_minutes": 60}
    )

    assert response.status_code == 200
    slots = [datetime.fromisoformat(value.replace("Z", "+00:00")) for value in response.json()["slots"]]
    assert slots[0] == datetime(2030, 1, 7, 9, tzinfo=timezone.utc)
    assert SLOT_START not in slots


def test_slots_listing_survives_calendar_outage(api):
    client, world = api
    world.calendar.unavailable_calendars.add("sessions")

    response = client.get(
        "/api/slots", params={"start_date": "2030-01-07", "end_date": "2030-01-07", "duration_minutes": 60}
    )

    assert response.status_code == 200
    assert response.json()["slots"] == []


def test_slots_listing_rejects_reversed_range(api):
    client, _ = api

    response = client.get(
        "/api/slots", params={"start_date": "2030-01-08", "end_date": "2030-01-07", "duration_minutes": 60}
    )

    assert response.status_code == 422


def test_full_primary_booking_over_http(api):
    client, world = api

    started = client.post("/api/booking-flow/start-primary", json=start_payload())
    assert started.status_code == 200
    assert started.json()["next_step"]["type"] == "FINALIZE"

    token = started.json()["flow_token"]
    first = client.post("/api/booking-flow/finalize", json={"flow_token": token})
    second = client.post("/api/booking-flow/finalize", json={"flow_token": token})

    assert first.status_code == 200
    assert first.json()["success"] is True
    assert second.json() == first.json()
    assert world.store.session_writes == 1


def test_unknown_session_type_is_404(api):
    client, _ = api

    response = client.post("/api/booking-flow/start-primary", json=start_payload("retired"))

    assert response.status_code == 404
    assert response.json()["next_step"]["code"] == "session_type_not_found"


def test_taken_slot_is_409(api):
    client, world = api
    token = client.post("/api/booking-flow/start-primary", json=start_payload()).json()["flow_token"]
    world.calendar.add_busy("sessions", SLOT_START, SLOT_START + timedelta(hours=1))

    response = client.post("/api/booking-flow/finalize", json={"flow_token": token})

    assert response.status_code == 409
    assert response.json()["next_step"]["code"] == "slot_taken"


def test_calendar_outage_on_finalize_is_503(api):
    client, world = api
    token = client.post("/api/booking-flow/start-primary", json=start_payload()).json()["flow_token"]
    world.calendar.unavailable_calendars.add("sessions")

    response = client.post("/api/booking-flow/finalize", json={"flow_token": token})

    assert response.status_code == 503
    assert world.store.sessions == []


def test_invalid_token_is_400(api):
    client, _ = api

    response = client.post(
        "/api/booking-flow/continue", json={"flow_token": "bogus", "step_id": "finish_invites"}
    )

    assert response.status_code == 400


def test_waiver_validation_is_422(api):
    client, _ = api
    token = client.post(
        "/api/booking-flow/start-primary", json=start_payload("individual_waiver")
    ).json()["flow_token"]

    response = client.post(
        "/api/booking-flow/continue",
        json={"flow_token": token, "step_id": "waiver_submission", "data": {"firstName": "Dana"}},
    )

    assert response.status_code == 422


def test_invite_flow_over_http(api):
    client, world = api
    token = client.post("/api/booking-flow/start-primary", json=start_payload("group")).json()["flow_token"]
    invite_page = client.post(
        "/api/booking-flow/continue",
        json={
            "flow_token": token,
            "step_id": "waiver_submission",
            "data": {"firstName": "Dana", "lastName": "Reyes", "liabilityFormData": {"signed": True}},
        },
    ).json()["flow_token"]
    created = client.post("/api/booking-flow/continue", json={"flow_token": invite_page, "step_id": "create_invite"})
    invite_token = created.json()["details"]["invite_token"]

    opened = client.get(f"/api/booking-flow/start-invite/{invite_token}", params={"user_id": "friend-1"})
    missing = client.get("/api/booking-flow/start-invite/nope", params={"user_id": "friend-1"})

    assert opened.status_code == 200
    assert opened.json()["next_step"]["url"].startswith("/join-session.html?flowToken=")
    assert missing.status_code == 404


def test_placeholder_lifecycle(api):
    client, world = api

    created = client.post(
        "/api/placeholders", json={"user_id": "42", "session_type_id": "individual", "start": SLOT}
    )
    clash = client.post(
        "/api/placeholders", json={"user_id": "43", "session_type_id": "individual", "start": SLOT}
    )
    deleted = client.delete(f"/api/placeholders/{created.json()['placeholder_id']}")

    assert created.status_code == 201
    assert clash.status_code == 409
    assert deleted.status_code == 204
    assert world.calendar.events == []


def test_missing_rule_on_finalize_is_500(api):
    client, world = api
    token = client.post("/api/booking-flow/start-primary", json=start_payload()).json()["flow_token"]
    world.rules.rule = None

    response = client.post("/api/booking-flow/finalize", json={"flow_token": token})

    assert response.status_code == 500
    assert world.store.sessions == []
