"""
Tests for the HTTP endpoints and end-to-end WebSocket behaviour.
"""
import json
import time
from typing import List
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from relay_gateway.adapters.base import PublishError
from relay_gateway.adapters.memory_adapter import MemoryAdapter
from relay_gateway.main import app


@pytest.fixture
def client():
    """Create a test client with lifespan (memory adapter)."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def gateway(client):
    return client.app.state.gateway


def barrier(ws) -> List[str]:
    """
    Wait until every frame sent so far on ``ws`` has been handled.

    Subscribes to a fresh topic, publishes to it and reads until the echo
    arrives. Returns the frames received before the echo.
    """
    topic = f"barrier/{uuid4().hex}"
    ws.send_text(json.dumps({"command": "subscribe", "channel": topic}))
    ws.send_text(json.dumps({"command": "publish", "channel": topic, "message": "sync"}))
    seen = []
    while True:
        text = ws.receive_text()
        if text.startswith("{") and json.loads(text).get("channel") == topic:
            return seen
        seen.append(text)


def receive_until(ws, predicate, limit: int = 50) -> str:
    for _ in range(limit):
        text = ws.receive_text()
        if predicate(text):
            return text
    raise AssertionError(f"No matching frame within {limit} frames")


def wait_until(condition, timeout: float = 5.0) -> None:
    """Poll gateway state from the test thread until ``condition()`` holds."""
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            raise AssertionError("Condition not met before timeout")
        time.sleep(0.01)


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["adapter"] == "MemoryAdapter"
        assert data["connected"] is True
        assert data["active_connections"] == 0
        assert data["rooms"] == 0

    def test_health_degraded(self, client, monkeypatch):
        monkeypatch.setattr(MemoryAdapter, "is_connected", property(lambda self: False))

        data = client.get("/health").json()

        assert data["status"] == "degraded"
        assert data["connected"] is False


class TestRootEndpoint:
    """Tests for root info endpoint."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert data["service"] == "relay-gateway"
        assert "version" in data


class TestPublishEndpoint:
    """Tests for POST /v1/publish."""

    def test_publish(self, client, gateway):
        response = client.post("/v1/publish", json={"channel": "room/1", "message": {"a": 1}})

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert gateway.adapter._retained["room/1"] == '{"a": 1}'

    def test_publish_without_retain(self, client, gateway):
        response = client.post("/v1/publish", json={"channel": "live", "message": "x", "retain": False})

        assert response.status_code == 200
        assert "live" not in gateway.adapter._retained

    def test_publish_missing_fields(self, client):
        response = client.post("/v1/publish", json={"message": "x"})
        assert response.status_code == 422

    def test_publish_broker_not_connected(self, client, monkeypatch):
        monkeypatch.setattr(MemoryAdapter, "is_connected", property(lambda self: False))

        response = client.post("/v1/publish", json={"channel": "t", "message": "x"})

        assert response.status_code == 503

    def test_publish_failure(self, client, gateway, monkeypatch):
        monkeypatch.setattr(gateway.adapter, "publish", AsyncMock(side_effect=PublishError("rejected")))

        response = client.post("/v1/publish", json={"channel": "t", "message": "x"})

        assert response.status_code == 502

    def test_publish_reaches_websocket_subscriber(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text(json.dumps({"command": "subscribe", "channel": "alerts"}))
            barrier(ws)

            client.post("/v1/publish", json={"channel": "alerts", "message": "fire", "retain": False})

            assert ws.receive_json() == {"channel": "alerts", "message": "fire"}


class TestAdminEndpoints:
    """Tests for admin endpoints."""

    def test_list_connections(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("NEWPEER|alice|ALL")
            ws.send_text(json.dumps({"command": "subscribe", "channel": "t"}))
            barrier(ws)

            data = client.get("/v1/admin/connections").json()

        assert data["count"] == 1
        connection = data["connections"][0]
        assert connection["connection_id"].startswith("conn-")
        assert connection["peer_id"] == "alice"
        assert connection["room_id"] == "default"
        assert "t" in connection["topics"]

    def test_list_rooms(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text(json.dumps({"type": "join_room", "roomId": "R"}))
            barrier(ws)

            data = client.get("/v1/admin/rooms").json()

        assert data["count"] == 1
        assert len(data["rooms"]["R"]) == 1

    def test_empty_listing(self, client):
        assert client.get("/v1/admin/connections").json() == {"count": 0, "connections": []}
        assert client.get("/v1/admin/rooms").json() == {"count": 0, "rooms": {}}


class TestWebSocketScenarios:
    """End-to-end behaviour over real WebSocket sessions."""

    def test_subscribe_and_receive(self, client):
        with client.websocket_connect("/ws") as a, client.websocket_connect("/ws") as b:
            a.send_text(json.dumps({"command": "subscribe", "channel": "room/1"}))
            barrier(a)

            b.send_text(json.dumps({"command": "publish", "channel": "room/1", "message": "hi"}))

            assert a.receive_json() == {"channel": "room/1", "message": "hi"}

    def test_newpeer_joins_default_room(self, client, gateway):
        with client.websocket_connect("/") as ws:
            ws.send_text("NEWPEER|peerX|ALL")
            assert barrier(ws) == []

            assert gateway.rooms.resolve("peerX").room_id == "default"

    def test_targeted_offer(self, client):
        with client.websocket_connect("/ws") as x, client.websocket_connect("/ws") as y:
            x.send_text(json.dumps({"type": "join_room", "roomId": "R", "peerId": "peerX"}))
            barrier(x)
            y.send_text(json.dumps({"type": "join_room", "roomId": "R", "peerId": "peerY"}))
            barrier(y)

            x.send_text("OFFER|peerX|peerY|sdp-data")

            assert receive_until(y, lambda t: not t.startswith("{")) == "OFFER|peerX|peerY|sdp-data"

    def test_disconnect_notifies_room(self, client, gateway):
        with client.websocket_connect("/ws") as w:
            with client.websocket_connect("/ws") as z:
                z.send_text(json.dumps({"type": "join_room", "roomId": "R", "peerId": "peerZ"}))
                z.send_text(json.dumps({"command": "subscribe", "channel": "presence/z"}))
                barrier(z)
                w.send_text(json.dumps({"type": "join_room", "roomId": "R"}))
                barrier(w)

            # Teardown notifies the room before releasing broker subscriptions
            wait_until(lambda: "presence/z" not in gateway.registry.broker_topics)
            left = json.loads(receive_until(w, lambda t: '"peer_left"' in t))

            assert left["peerId"] == "peerZ"
            assert left["roomId"] == "R"
            assert gateway.rooms.resolve("peerZ") is None

    def test_binary_frames_are_decoded(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_bytes(json.dumps({"command": "subscribe", "channel": "bin"}).encode("utf-8"))
            barrier(ws)
            ws.send_bytes(json.dumps({"command": "publish", "channel": "bin", "message": "ok"}).encode("utf-8"))

            assert ws.receive_json() == {"channel": "bin", "message": "ok"}

    def test_malformed_frame_keeps_connection_open(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("this is not a frame")
            ws.send_text('{"command": "nope"}')

            assert barrier(ws) == []

    def test_retained_value_for_late_subscriber(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text(json.dumps({"command": "publish", "channel": "config", "message": "v1"}))
            ws.send_text(json.dumps({"command": "subscribe", "channel": "config"}))

            assert ws.receive_json() == {"channel": "config", "message": "v1"}
