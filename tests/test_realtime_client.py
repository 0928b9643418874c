"""
Tests for the realtime WebSocket transport.

Command tests install a fake socket; reconnect tests run against a local
websockets server.
"""

import asyncio
import base64
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
import websockets
from websockets.asyncio.server import serve

from omni_realtime.core.coordinator import SessionCoordinator
from omni_realtime.protocol.events import (
    AudioDoneEvent,
    ConnectedEvent,
    ErrorEvent,
    FirstAudioSentEvent,
    SpeechStartedEvent,
    TranscriptDeltaEvent,
    TranscriptDoneEvent,
    UserTranscriptEvent,
)
from omni_realtime.transport.base import QueueAudioSource
from omni_realtime.transport.realtime_client import (
    ClientEventType,
    RealtimeTransport,
    to_transport_event,
)


def make_socket() -> MagicMock:
    ws = MagicMock()
    ws.send = AsyncMock()
    ws.close = AsyncMock()
    return ws


def sent_payloads(ws: MagicMock) -> list[dict]:
    return [json.loads(call.args[0]) for call in ws.send.await_args_list]


class TestServerEventMapping:
    """Tests for to_transport_event."""

    def test_session_created(self):
        assert isinstance(to_transport_event({"type": "session.created"}), ConnectedEvent)

    def test_speech_started(self):
        event = to_transport_event({"type": "input_audio_buffer.speech_started"})
        assert isinstance(event, SpeechStartedEvent)

    def test_transcript_delta(self):
        event = to_transport_event(
            {"type": "response.audio_transcript.delta", "delta": "Hel"}
        )
        assert isinstance(event, TranscriptDeltaEvent)
        assert event.delta == "Hel"

    def test_transcript_done_with_and_without_text(self):
        done = to_transport_event(
            {"type": "response.audio_transcript.done", "transcript": "Hello"}
        )
        bare = to_transport_event({"type": "response.audio_transcript.done"})

        assert isinstance(done, TranscriptDoneEvent)
        assert done.text == "Hello"
        assert bare.text is None

    def test_user_transcript(self):
        event = to_transport_event({
            "type": "conversation.item.input_audio_transcription.completed",
            "transcript": "What is this?",
        })
        assert isinstance(event, UserTranscriptEvent)
        assert event.text == "What is this?"

    def test_audio_done(self):
        assert isinstance(to_transport_event({"type": "response.audio.done"}), AudioDoneEvent)

    def test_error_object(self):
        event = to_transport_event({
            "type": "error",
            "error": {"code": "invalid_api_key", "message": "Invalid API key"},
        })
        assert isinstance(event, ErrorEvent)
        assert event.message == "Invalid API key"

    def test_error_without_details(self):
        event = to_transport_event({"type": "error"})
        assert event.message == "Unknown realtime error"

    def test_unconsumed_events_ignored(self):
        assert to_transport_event({"type": "session.updated"}) is None
        assert to_transport_event({"type": "response.created"}) is None


class TestRealtimeTransport:
    """Tests for RealtimeTransport commands and event forwarding."""

    @pytest.fixture
    def events(self):
        return []

    @pytest.fixture
    def audio(self):
        return []

    @pytest.fixture
    def client(self, events, audio):
        client = RealtimeTransport(
            QueueAudioSource(),
            url="ws://localhost:9/realtime",
            api_key="test-key",
            on_audio=audio.append,
        )
        client.bind(events.append)
        return client

    def test_server_message_forwarded(self, client, events):
        client._handle_server_message(
            json.dumps({"type": "response.audio_transcript.delta", "delta": "Hi"})
        )

        assert len(events) == 1
        assert events[0].delta == "Hi"

    def test_audio_delta_goes_to_playback(self, client, events, audio):
        pcm = b"\x01\x02\x03\x04"
        client._handle_server_message(json.dumps({
            "type": "response.audio.delta",
            "delta": base64.b64encode(pcm).decode("ascii"),
        }))

        assert audio == [pcm]
        assert events == []

    def test_non_json_message_ignored(self, client, events):
        client._handle_server_message("not json")
        assert events == []

    def test_send_image_without_connection_dropped(self, client):
        client.send_image(b"jpeg")
        assert not client._send_tasks

    @pytest.mark.asyncio
    async def test_send_image(self, client):
        ws = make_socket()
        client._ws = ws

        client.send_image(b"jpeg-bytes")
        await asyncio.sleep(0.01)

        payloads = sent_payloads(ws)
        assert len(payloads) == 1
        assert payloads[0]["type"] == ClientEventType.IMAGE_APPEND
        assert base64.b64decode(payloads[0]["image"]) == b"jpeg-bytes"
        assert payloads[0]["event_id"].startswith("event_")

    @pytest.mark.asyncio
    async def test_commit_then_response_create(self, client):
        ws = make_socket()
        client._ws = ws

        client.commit_pending_audio()
        await asyncio.sleep(0.01)

        types = [p["type"] for p in sent_payloads(ws)]
        assert types == [ClientEventType.AUDIO_COMMIT, ClientEventType.RESPONSE_CREATE]

    @pytest.mark.asyncio
    async def test_capture_reports_first_audio_once(self, client, events):
        ws = make_socket()
        client._ws = ws

        client.begin_capture()
        client.audio_source.push(b"\x00\x01")
        client.audio_source.push(b"\x02\x03")
        await asyncio.sleep(0.01)

        payloads = sent_payloads(ws)
        assert [p["type"] for p in payloads] == [ClientEventType.AUDIO_APPEND] * 2
        assert base64.b64decode(payloads[0]["audio"]) == b"\x00\x01"
        assert [type(e) for e in events] == [FirstAudioSentEvent]

        client.end_capture()
        assert not client.is_capturing

    @pytest.mark.asyncio
    async def test_close_stops_capture_and_socket(self, client):
        ws = make_socket()
        client._ws = ws
        client.begin_capture()

        client.close()
        await asyncio.sleep(0.01)

        assert not client.is_capturing
        ws.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_connection_reports_error(self, events):
        client = RealtimeTransport(
            QueueAudioSource(),
            url="ws://127.0.0.1:9/realtime",
            api_key="",
        )
        client.bind(events.append)

        client.open()
        await client._run_task

        assert len(events) == 1
        assert isinstance(events[0], ErrorEvent)
        assert not client.is_open


async def wait_until(predicate, timeout: float = 2.0) -> bool:
    """Poll ``predicate`` on the event loop until it holds or time runs out."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            return False
        await asyncio.sleep(0.01)
    return True


@pytest.fixture
async def realtime_server():
    """Local realtime endpoint that announces each session and drains input."""
    connections = []

    async def handler(ws):
        connections.append(ws)
        await ws.send(json.dumps({"type": "session.created"}))
        try:
            async for _ in ws:
                pass
        except websockets.ConnectionClosed:
            pass

    async with serve(handler, "127.0.0.1", 0) as server:
        port = next(iter(server.sockets)).getsockname()[1]
        yield f"ws://127.0.0.1:{port}/realtime", connections


class TestReconnect:
    """Close followed by open while the old connection is still shutting down."""

    def test_messages_dropped_after_close(self):
        events = []
        client = RealtimeTransport(QueueAudioSource(), url="ws://localhost:9", api_key="")
        client.bind(events.append)

        client.close()
        client._handle_server_message(json.dumps({"type": "session.created"}))

        assert events == []

    @pytest.mark.asyncio
    async def test_transport_reopens_in_same_tick(self, realtime_server):
        url, connections = realtime_server
        events = []
        client = RealtimeTransport(QueueAudioSource(), url=url, api_key="")
        client.bind(events.append)

        client.open()
        assert await wait_until(lambda: len(events) == 1)

        client.close()
        client.open()
        assert await wait_until(lambda: len(events) == 2)

        assert all(isinstance(e, ConnectedEvent) for e in events)
        assert len(connections) == 2

        client.close()
        await asyncio.wait([client._run_task])

    @pytest.mark.asyncio
    async def test_coordinator_reconnects_in_same_tick(self, realtime_server, store):
        url, connections = realtime_server
        transport = RealtimeTransport(QueueAudioSource(), url=url, api_key="")
        coordinator = SessionCoordinator(transport, store, image_enable_delay_ms=50)

        async with coordinator:
            coordinator.connect()
            assert await wait_until(lambda: coordinator.connected)

            coordinator.disconnect()
            coordinator.connect()
            assert coordinator.connecting

            assert await wait_until(lambda: coordinator.connected)
            assert not coordinator.connecting
            assert not coordinator.show_error
            assert len(connections) == 2

        await asyncio.wait([transport._run_task])
