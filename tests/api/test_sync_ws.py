"""
Test suite for the WebSocket sync endpoint.

Runs the full application (lifespan, container, in-memory SQLite) with
TestClient and drives the sync channel of a freshly created session.

System role: Verification of real-time sync over WebSocket
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from chatsync.main import create_app
from tests.conftest import make_settings

HEADERS = {"X-User-Id": "u1"}


@pytest.fixture
def client():
    app = create_app(make_settings())
    with TestClient(app) as client:
        yield client


@pytest.fixture
def session_id(client) -> str:
    response = client.post("/api/v1/sessions", json={"title": "Biology"}, headers=HEADERS)
    assert response.status_code == 201
    return response.json()["id"]


def test_sync_sends_connected_then_snapshot(client, session_id):
    with client.websocket_connect(f"/ws/sessions/{session_id}/sync?user_id=u1") as ws:
        connected = ws.receive_json()
        snapshot = ws.receive_json()

    assert connected == {"event": "connected", "data": {"session_id": session_id}}
    assert snapshot == {"event": "snapshot", "data": {"messages": []}}


def test_sync_ping_and_bad_input(client, session_id):
    with client.websocket_connect(f"/ws/sessions/{session_id}/sync", headers=HEADERS) as ws:
        ws.receive_json()
        ws.receive_json()

        ws.send_json({"event": "ping"})
        pong = ws.receive_json()

        ws.send_text("not json")
        invalid_json = ws.receive_json()

        ws.send_json(["ping"])
        invalid_event = ws.receive_json()

        ws.send_json({"event": "dance"})
        unknown = ws.receive_json()

        ws.send_json({"event": "visibility", "data": {"ratio": 0.9}})
        malformed = ws.receive_json()

    assert pong == {"event": "pong"}
    assert invalid_json["data"]["code"] == "INVALID_JSON"
    assert invalid_event["data"]["code"] == "INVALID_EVENT"
    assert unknown["data"] == {"code": "UNKNOWN_EVENT", "message": "Unknown event type: dance"}
    assert malformed["data"]["code"] == "INVALID_EVENT"


def test_sync_foreign_session_is_rejected(client, session_id):
    with client.websocket_connect(f"/ws/sessions/{session_id}/sync?user_id=intruder") as ws:
        error = ws.receive_json()
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()

    assert error["event"] == "error"
    assert error["data"]["code"] == "SESSION_NOT_FOUND"
    assert exc_info.value.code == 1008


def test_sync_stop_without_running_turn_is_ignored(client, session_id):
    with client.websocket_connect(f"/ws/sessions/{session_id}/sync?user_id=u1") as ws:
        ws.receive_json()
        ws.receive_json()

        ws.send_json({"event": "stop"})
        ws.send_json({"event": "ping"})

        assert ws.receive_json() == {"event": "pong"}
