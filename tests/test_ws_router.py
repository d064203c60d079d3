import pytest
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketDisconnect

from geoquiz.api.v1.routers.ws_router import get_coordinator
from geoquiz.core.security import create_access_token
from geoquiz.main import app
from geoquiz.ws.match_coordinator import MatchCoordinator

from conftest import ALICE, BOB, FakeArchive, FakeStore, make_questions


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def client(store):
    coordinator = MatchCoordinator(
        store,
        lambda game_type, count: make_questions(1),
        FakeArchive(),
        question_duration=10,
        results_dwell=0.01,
    )
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    # one portal, so both sockets share the coordinator's event loop
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def url_for(user_id):
    return f"/ws?token={create_access_token(user_id)}"


def test_missing_token_closes_4001(client):
    with client.websocket_connect("/ws") as ws:
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_text()
    assert exc.value.code == 4001


def test_bad_token_closes_4002(client):
    with client.websocket_connect("/ws?token=not-a-jwt") as ws:
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_text()
    assert exc.value.code == 4002


def test_ping_pong(client):
    with client.websocket_connect(url_for(ALICE)) as ws:
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_bad_frames_get_error_messages(client):
    with client.websocket_connect(url_for(ALICE)) as ws:
        ws.send_text("{not json")
        assert ws.receive_json() == {"type": "error", "message": "Invalid message format"}
        ws.send_json({"type": "dance"})
        assert ws.receive_json() == {"type": "error", "message": "Unknown message type"}
        ws.send_json({"type": "join_match"})
        assert ws.receive_json() == {"type": "error", "message": "Invalid join_match message"}
        ws.send_json({"type": "ping"})
        assert ws.receive_json()["type"] == "pong"


def test_match_over_the_wire(client, store):
    with client.websocket_connect(url_for(ALICE)) as alice, client.websocket_connect(url_for(BOB)) as bob:
        alice.send_json({"type": "join_match", "matchId": 7})
        assert alice.receive_json()["type"] == "match_joined"
        assert alice.receive_json()["type"] == "waiting_for_opponent"

        bob.send_json({"type": "join_match", "matchId": 7})
        assert bob.receive_json()["type"] == "match_joined"
        start = bob.receive_json()
        assert start["type"] == "match_start"
        assert alice.receive_json()["type"] == "match_start"

        alice.send_json({"type": "submit_answer", "matchId": 7, "questionIndex": 0, "answer": "France", "timeMs": 1000})
        assert bob.receive_json() == {"type": "opponent_answered", "questionIndex": 0}
        bob.send_json({"type": "submit_answer", "matchId": 7, "questionIndex": 0, "answer": None, "timeMs": 10000})
        assert alice.receive_json() == {"type": "opponent_answered", "questionIndex": 0}

        results = alice.receive_json()
        assert results["type"] == "question_results"
        assert results["scores"] == {ALICE: 190, BOB: 0}

        end = alice.receive_json()
        assert end["type"] == "match_end"
        assert end["winnerId"] == ALICE

    assert store.events[0] == ("active", 7)
    assert store.events[1][0] == "completed"
