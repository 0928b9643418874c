"""
WebSocket transport for the Qwen-Omni realtime API.

Handles:
- Connection and session configuration (session.update)
- Streaming microphone audio as input_audio_buffer.append
- Gated image frames as input_image_buffer.append
- Mapping server events into TransportEvent objects

Every command is fire-and-forget: it schedules the network work on the
event loop and returns immediately. Results come back through the bound
event sink.
"""

import asyncio
import base64
import json
import logging
from enum import Enum
from typing import Any, Callable, Coroutine
from uuid import uuid4

import websockets
from websockets.asyncio.client import ClientConnection

from ..config import settings
from ..protocol.events import (
    AudioDoneEvent,
    ConnectedEvent,
    ErrorEvent,
    FirstAudioSentEvent,
    SpeechStartedEvent,
    SpeechStoppedEvent,
    TranscriptDeltaEvent,
    TranscriptDoneEvent,
    TransportEvent,
    UserTranscriptEvent,
)
from ..protocol.messages import Frame
from .base import AudioSource, EventSink

logger = logging.getLogger(__name__)


class ServerEventType(str, Enum):
    """Server -> client event types of the realtime API."""

    SESSION_CREATED = "session.created"
    SESSION_UPDATED = "session.updated"
    SPEECH_STARTED = "input_audio_buffer.speech_started"
    SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
    USER_TRANSCRIPT = "conversation.item.input_audio_transcription.completed"
    TRANSCRIPT_DELTA = "response.audio_transcript.delta"
    TRANSCRIPT_DONE = "response.audio_transcript.done"
    AUDIO_DELTA = "response.audio.delta"
    AUDIO_DONE = "response.audio.done"
    ERROR = "error"


class ClientEventType(str, Enum):
    """Client -> server event types of the realtime API."""

    SESSION_UPDATE = "session.update"
    AUDIO_APPEND = "input_audio_buffer.append"
    AUDIO_COMMIT = "input_audio_buffer.commit"
    IMAGE_APPEND = "input_image_buffer.append"
    RESPONSE_CREATE = "response.create"


def to_transport_event(data: dict[str, Any]) -> TransportEvent | None:
    """
    Map a server event to a transport event.

    Returns:
        The matching event, or None for server events the coordinator
        does not consume
    """
    msg_type = data.get("type")

    if msg_type == ServerEventType.SESSION_CREATED:
        return ConnectedEvent()
    elif msg_type == ServerEventType.SPEECH_STARTED:
        return SpeechStartedEvent()
    elif msg_type == ServerEventType.SPEECH_STOPPED:
        return SpeechStoppedEvent()
    elif msg_type == ServerEventType.TRANSCRIPT_DELTA:
        return TranscriptDeltaEvent(delta=data.get("delta") or "")
    elif msg_type == ServerEventType.TRANSCRIPT_DONE:
        # The done event may come without the full transcript
        return TranscriptDoneEvent(text=data.get("transcript"))
    elif msg_type == ServerEventType.USER_TRANSCRIPT:
        return UserTranscriptEvent(text=data.get("transcript") or "")
    elif msg_type == ServerEventType.AUDIO_DONE:
        return AudioDoneEvent()
    elif msg_type == ServerEventType.ERROR:
        error = data.get("error")
        if isinstance(error, dict):
            message = error.get("message") or error.get("code")
        else:
            message = error
        return ErrorEvent(message=str(message or "Unknown realtime error"))

    return None


class RealtimeTransport:
    """
    Transport client over a single realtime WebSocket connection.

    Usage:
        source = QueueAudioSource()
        transport = RealtimeTransport(source)
        coordinator = SessionCoordinator(transport, store)
        coordinator.connect()
    """

    def __init__(
        self,
        audio_source: AudioSource,
        url: str | None = None,
        api_key: str | None = None,
        on_audio: Callable[[bytes], None] | None = None,
    ):
        """
        Initialize the transport.

        Args:
            audio_source: Producer of microphone audio chunks
            url: Realtime WebSocket URL (defaults to the configured endpoint)
            api_key: API key sent as bearer token
            on_audio: Receives decoded assistant audio for playback
        """
        self.url = url or settings.realtime_endpoint
        self.api_key = api_key if api_key is not None else settings.api_key
        self.audio_source = audio_source
        self.on_audio = on_audio

        self._sink: EventSink | None = None
        self._ws: ClientConnection | None = None
        self._run_task: asyncio.Task | None = None
        self._capture_task: asyncio.Task | None = None
        self._send_tasks: set[asyncio.Task] = set()
        self._capturing = False
        self._first_audio_sent = False
        self._closing = False

    def bind(self, sink: EventSink) -> None:
        """Register the receiver of transport events."""
        self._sink = sink

    @property
    def is_open(self) -> bool:
        """True while the WebSocket is connected."""
        return self._ws is not None

    @property
    def is_capturing(self) -> bool:
        """True while microphone audio is being streamed."""
        return self._capturing

    # =========================================================================
    # Commands
    # =========================================================================

    def open(self) -> None:
        """
        Open the connection in the background.

        If a previous connection is still shutting down, the new one starts
        once it has finished.
        """
        previous = self._run_task
        if previous is not None and not previous.done():
            if not self._closing:
                logger.debug("Connection already open or opening, ignoring open")
                return
        else:
            previous = None

        self._run_task = asyncio.get_running_loop().create_task(self._run(previous))

    def close(self) -> None:
        """Close the connection. Safe to call repeatedly."""
        self._closing = True
        self._stop_capture()

        run_task = self._run_task
        if run_task is not None and not run_task.done():
            # Leaving the connect context closes the socket
            run_task.cancel()
        elif self._ws is not None:
            self._spawn(self._ws.close())

    def begin_capture(self) -> None:
        """Start streaming audio from the audio source."""
        if self._capturing:
            return

        self._capturing = True
        self._capture_task = asyncio.get_running_loop().create_task(self._capture_loop())
        logger.info("Audio capture started")

    def end_capture(self) -> None:
        """Stop streaming audio. Safe when not capturing."""
        if self._capturing:
            logger.info("Audio capture stopped")
        self._stop_capture()

    def send_image(self, frame: Frame) -> None:
        """Append one image frame to the input buffer."""
        if self._ws is None:
            logger.warning("Not connected, dropping image frame")
            return

        payload = {
            "type": ClientEventType.IMAGE_APPEND.value,
            "image": base64.b64encode(frame).decode("ascii"),
        }
        self._spawn(self._send_json(payload))
        logger.debug(f"Image frame queued ({len(frame)} bytes)")

    def commit_pending_audio(self) -> None:
        """Commit buffered audio and request a response."""
        if self._ws is None:
            logger.warning("Not connected, cannot commit audio")
            return

        self._spawn(self._commit())

    # =========================================================================
    # Connection
    # =========================================================================

    async def _run(self, previous: asyncio.Task | None = None) -> None:
        """
        Connect, configure the session and pump server events.

        A server-side close or a failed connect is reported as a single
        ``error`` event. There is no separate disconnected event, so the
        coordinator stays connected until its owner calls ``disconnect()``.

        Args:
            previous: Connection task still shutting down; awaited first
        """
        if previous is not None:
            await asyncio.wait([previous])

        self._closing = False
        self._first_audio_sent = False

        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            async with websockets.connect(
                self.url,
                additional_headers=headers,
                open_timeout=settings.connect_timeout_seconds,
                max_size=None,
            ) as ws:
                self._ws = ws
                logger.info(f"Connected to {self.url}")
                await self._send_json(self._session_update())

                async for raw in ws:
                    if isinstance(raw, str):
                        self._handle_server_message(raw)

            if not self._closing:
                self._emit(ErrorEvent(message="Connection closed by server"))

        except websockets.ConnectionClosed as e:
            if not self._closing:
                self._emit(ErrorEvent(message=f"Connection lost: {e}"))
        except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as e:
            if not self._closing:
                logger.warning(f"Realtime connection failed: {e}")
                self._emit(ErrorEvent(message=f"Connection failed: {e}"))
        finally:
            self._ws = None
            self._stop_capture()
            logger.info("Realtime connection closed")

    def _session_update(self) -> dict[str, Any]:
        """Session configuration sent right after connecting."""
        return {
            "type": ClientEventType.SESSION_UPDATE.value,
            "session": {
                "modalities": ["text", "audio"],
                "voice": settings.voice,
                "instructions": settings.instructions,
                "input_audio_format": settings.input_audio_format,
                "output_audio_format": settings.output_audio_format,
                "input_audio_transcription": {
                    "model": settings.transcription_model,
                },
                "turn_detection": {
                    "type": "server_vad",
                    "threshold": settings.vad_threshold,
                    "silence_duration_ms": settings.silence_duration_ms,
                },
            },
        }

    def _handle_server_message(self, raw: str) -> None:
        """Decode one server message and forward it."""
        if self._closing:
            return

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring non-JSON server message: {raw[:80]}")
            return

        if data.get("type") == ServerEventType.AUDIO_DELTA:
            if self.on_audio is not None and data.get("delta"):
                self.on_audio(base64.b64decode(data["delta"]))
            return

        event = to_transport_event(data)
        if event is not None:
            self._emit(event)

    # =========================================================================
    # Audio capture
    # =========================================================================

    async def _capture_loop(self) -> None:
        """Forward audio chunks while capturing."""
        try:
            async for chunk in self.audio_source.stream():
                if not self._capturing:
                    break
                if self._ws is None:
                    continue

                sent = await self._send_json({
                    "type": ClientEventType.AUDIO_APPEND.value,
                    "audio": base64.b64encode(chunk).decode("ascii"),
                })

                if sent and not self._first_audio_sent:
                    self._first_audio_sent = True
                    logger.info("First audio chunk sent")
                    self._emit(FirstAudioSentEvent())

        except asyncio.CancelledError:
            pass
        except websockets.ConnectionClosed:
            logger.debug("Connection closed during audio capture")
        except Exception as e:
            logger.exception(f"Audio capture failed: {e}")
            self._emit(ErrorEvent(message=f"Audio capture failed: {e}"))

    def _stop_capture(self) -> None:
        self._capturing = False
        if self._capture_task is not None and not self._capture_task.done():
            self._capture_task.cancel()
        self._capture_task = None

    # =========================================================================
    # Sending
    # =========================================================================

    async def _send_json(self, payload: dict[str, Any]) -> bool:
        """
        Send one client event.

        Returns:
            True if the event was written to the socket
        """
        ws = self._ws
        if ws is None:
            return False

        payload.setdefault("event_id", f"event_{uuid4().hex[:16]}")
        await ws.send(json.dumps(payload))
        return True

    async def _commit(self) -> None:
        await self._send_json({"type": ClientEventType.AUDIO_COMMIT.value})
        await self._send_json({"type": ClientEventType.RESPONSE_CREATE.value})

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        """Run a send in the background, logging failures."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop, dropping outbound message")
            return

        task = loop.create_task(self._guarded(coro))
        self._send_tasks.add(task)
        task.add_done_callback(self._send_tasks.discard)

    async def _guarded(self, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            await coro
        except websockets.ConnectionClosed:
            logger.debug("Connection closed before message was sent")
        except Exception as e:
            logger.exception(f"Failed to send message: {e}")

    def _emit(self, event: TransportEvent) -> None:
        if self._sink is not None:
            self._sink(event)
