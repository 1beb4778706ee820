"""
Rolloff API Tests

HTTP routes and the participant WebSocket, driven through TestClient.
"""
import time

import pytest
from fastapi.testclient import TestClient

from rolloff.config.settings import RolloffSettings
from rolloff.main import create_app
from rolloff.models import Encounter, Entrant, TieGroup
from rolloff.schemas.rolloff import RolloffEvent
from rolloff.services.rolloff_manager import RANK_EPSILON


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings():
    return RolloffSettings(
        auto_rolloff=False,
        rolloff_timeout=3,
        update_settle_delay=0,
        create_settle_delay=0,
        broadcast_timeout=0.5,
        announcement_timeout=0.5,
    )


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def manager(client):
    return client.app.state.manager


def park_tie(manager, owner_id=None):
    """Put a two-way tie on the pending list as if detection had run."""
    hero = Entrant(id="hero", name="Hero", rank=12, owner_id=owner_id)
    rival = Entrant(id="rival", name="Rival", rank=12)
    encounter = Encounter(id="enc-1", entrants=[hero, rival])
    manager.pending_ties["enc-1"] = (encounter, [TieGroup((hero, rival))])
    return encounter


def wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


# =============================================================================
# Test: HTTP Routes
# =============================================================================

def test_nothing_active(client):
    response = client.get("/rolloffs/active")

    assert response.status_code == 200
    assert response.json() == []


def test_pending_ties_are_listed(client, manager):
    park_tie(manager)

    response = client.get("/rolloffs/pending")

    assert response.status_code == 200
    body = response.json()
    assert body[0]["encounter_id"] == "enc-1"
    assert [e["id"] for e in body[0]["groups"][0]["entrants"]] == ["hero", "rival"]


def test_start_unknown_encounter(client):
    response = client.post("/rolloffs/missing/start")

    assert response.status_code == 404
    assert response.json()["success"] is False
    assert response.json()["error"] == "NotFoundError"


def test_start_pending_resolves_tie(client, manager):
    encounter = park_tie(manager)

    response = client.post("/rolloffs/enc-1/start")

    assert response.status_code == 202
    assert response.json() == {"encounter_id": "enc-1", "started": ["enc-1:12:hero,rival"]}
    assert wait_for(lambda: any(e.rank != 12 for e in encounter.entrants))
    assert sorted(e.rank for e in encounter.entrants) == [12, pytest.approx(12 + RANK_EPSILON)]
    assert client.get("/rolloffs/pending").json() == []


def test_second_start_is_rejected(client, manager):
    park_tie(manager)

    first = client.post("/rolloffs/enc-1/start")
    second = client.post("/rolloffs/enc-1/start")

    assert first.status_code == 202
    assert second.status_code == 404
    assert second.json()["error"] == "NotFoundError"


def test_reset_encounter(client, manager):
    park_tie(manager)
    manager.processed_encounters.add("enc-1")

    response = client.delete("/rolloffs/enc-1")

    assert response.status_code == 204
    assert "enc-1" not in manager.pending_ties
    assert "enc-1" not in manager.processed_encounters


# =============================================================================
# Test: WebSocket
# =============================================================================

def test_ping_pong(client):
    with client.websocket_connect("/rolloffs/ws/u1?name=Ann") as ws:
        ws.send_json({"type": "PING"})
        message = ws.receive_json()

        assert message["type"] == "PONG"
        assert client.app.state.connections.get("u1") is not None

    assert wait_for(lambda: client.app.state.connections.get("u1") is None)


def test_rejects_unknown_messages(client):
    with client.websocket_connect("/rolloffs/ws/u1?name=Ann") as ws:
        ws.send_json({"type": "HELLO"})
        assert ws.receive_json()["type"] == "ERROR"

        ws.send_text("not json")
        assert ws.receive_json()["message"] == "Invalid JSON"


def test_owner_draws_over_websocket(client, manager):
    """The owner is asked for a draw, answers it and sees the result."""
    encounter = park_tie(manager, owner_id="u1")

    with client.websocket_connect("/rolloffs/ws/u1?name=Ann") as ws:
        ws.send_json({"type": "PING"})
        assert ws.receive_json()["type"] == "PONG"

        assert client.post("/rolloffs/enc-1/start").status_code == 202

        requests = []
        while True:
            message = ws.receive_json()
            assert message["type"] == "QUERY"
            payload = {}
            if message["action"] == RolloffEvent.REQUEST_DRAW:
                requests.append(message["payload"])
                payload = {
                    "entrant_id": message["payload"]["entrant_id"],
                    "contest_id": message["payload"]["contest_id"],
                    "total": 20,
                }
            ws.send_json({"type": "RESPONSE", "request_id": message["request_id"], "payload": payload})
            if message["action"] == RolloffEvent.WINNER_ANNOUNCED:
                announced = message["payload"]
                break

    assert requests[0]["entrant_id"] == "hero"
    assert requests[0]["die_faces"] == 20
    assert [o["id"] for o in requests[0]["opponents"]] == ["rival"]
    assert announced["winner_id"] == "hero"
    assert encounter.entrants[0].rank == pytest.approx(12 + RANK_EPSILON)
