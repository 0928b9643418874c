"""
Tests for the HTTP endpoints and the presentation WebSocket bridge.
"""

import base64
import time

import pytest
from fastapi.testclient import TestClient

from omni_realtime.api import deps
from omni_realtime.api.websocket import parse_message
from omni_realtime.core.registry import session_registry
from omni_realtime.main import app
from omni_realtime.protocol.events import UserTranscriptEvent
from omni_realtime.protocol.messages import (
    ConnectMessage,
    ErrorCode,
    VideoFrameMessage,
)


def receive_state(ws, predicate, limit: int = 10) -> dict:
    """Read messages until a state matching ``predicate`` arrives."""
    for _ in range(limit):
        data = ws.receive_json()
        if data["type"] == "state" and predicate(data["state"]):
            return data["state"]
    raise AssertionError("Expected state never arrived")


@pytest.fixture
def transports(monkeypatch, fake_transport_cls, store):
    """Route WebSocket sessions to fake transports and a recording store."""
    created = []

    def create_transport(audio_source, on_audio=None):
        transport = fake_transport_cls(auto_connect=True)
        created.append(transport)
        return transport

    monkeypatch.setattr(deps, "create_transport", create_transport)
    monkeypatch.setattr(deps, "history_store", store)
    return created


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


class TestParseMessage:
    """Tests for client command parsing."""

    def test_known_type(self):
        assert isinstance(parse_message({"type": "connect"}), ConnectMessage)

    def test_video_frame_without_image(self):
        msg = parse_message({"type": "video_frame"})
        assert isinstance(msg, VideoFrameMessage)
        assert msg.image is None

    def test_unknown_type(self):
        assert parse_message({"type": "play_audio"}) is None
        assert parse_message({}) is None


class TestHttpEndpoints:
    """Tests for service info, health and metrics."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["websocket"] == "/ws/session"

    def test_liveness(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_readiness_after_startup(self, client):
        response = client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_status(self, client):
        data = client.get("/health/status").json()
        assert data["startup_complete"]
        assert data["sessions"]["active"] == 0

    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "omni_active_sessions" in response.text


class TestSessionWebSocket:
    """Tests for the /ws/session bridge."""

    def test_initial_state(self, client, transports):
        with client.websocket_connect("/ws/session") as ws:
            data = ws.receive_json()

        assert data["type"] == "state"
        assert data["state"]["connected"] is False
        assert data["state"]["history"] == []

    def test_recording_requires_connection(self, client, transports):
        with client.websocket_connect("/ws/session") as ws:
            ws.receive_json()
            ws.send_json({"type": "start_recording"})
            state = receive_state(ws, lambda s: s["show_error"])

        assert state["error_message"]
        assert state["recording"] is False

    def test_connect_and_record(self, client, transports):
        with client.websocket_connect("/ws/session") as ws:
            ws.receive_json()
            ws.send_json({"type": "connect"})
            receive_state(ws, lambda s: s["connected"])

            ws.send_json({"type": "start_recording"})
            receive_state(ws, lambda s: s["recording"])

        assert transports[0].commands[:2] == ["open", "begin_capture"]

    def test_invalid_json(self, client, transports):
        with client.websocket_connect("/ws/session") as ws:
            ws.receive_json()
            ws.send_text("{not json")
            data = ws.receive_json()

        assert data["type"] == "error"
        assert data["code"] == ErrorCode.INVALID_MESSAGE.value

    def test_unknown_message_type(self, client, transports):
        with client.websocket_connect("/ws/session") as ws:
            ws.receive_json()
            ws.send_json({"type": "play_audio"})
            data = ws.receive_json()

        assert data["type"] == "error"
        assert "play_audio" in data["message"]

    def test_invalid_video_frame(self, client, transports):
        with client.websocket_connect("/ws/session") as ws:
            ws.receive_json()
            ws.send_json({"type": "video_frame", "image": "***"})
            data = ws.receive_json()

        assert data["type"] == "error"
        assert data["code"] == ErrorCode.INVALID_MESSAGE.value

    def test_valid_video_frame_sends_nothing(self, client, transports):
        frame = base64.b64encode(b"jpeg").decode("ascii")
        with client.websocket_connect("/ws/session") as ws:
            ws.receive_json()
            ws.send_json({"type": "connect"})
            receive_state(ws, lambda s: s["connected"])
            ws.send_json({"type": "video_frame", "image": frame})
            ws.send_json({"type": "disconnect"})
            receive_state(ws, lambda s: not s["connected"])

        assert "send_image" not in transports[0].commands

    def test_conversation_saved_on_close(self, client, transports, store):
        with client.websocket_connect("/ws/session") as ws:
            ws.receive_json()
            ws.send_json({"type": "connect"})
            receive_state(ws, lambda s: s["connected"])

            # Emitted from the test thread, as a network callback would be
            transports[0].emit(UserTranscriptEvent(text="What is this?"))
            state = receive_state(ws, lambda s: s["history"])

        assert state["history"][0]["content"] == "What is this?"

        deadline = time.monotonic() + 2.0
        while not store.records and time.monotonic() < deadline:
            time.sleep(0.01)

        assert len(store.records) == 1
        assert store.records[0].messages[0].content == "What is this?"
        assert transports[0].commands[-1] == "close"

    def test_rejected_when_full(self, client, transports, monkeypatch):
        monkeypatch.setattr(session_registry, "max_sessions", 0)

        with client.websocket_connect("/ws/session") as ws:
            data = ws.receive_json()

        assert data["type"] == "error"
        assert data["code"] == ErrorCode.MAX_SESSIONS_REACHED.value
        assert transports[0].commands == []
