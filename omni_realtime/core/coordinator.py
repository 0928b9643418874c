"""
Session coordinator for a realtime multimodal conversation.

Implements:
- Connection lifecycle with history persistence on teardown
- Recording control
- Speech-triggered video frame gating
- Assistant/user transcript assembly
- Error surfacing to the presentation layer

All session state is mutated on the event loop that owns the coordinator.
Transport events from other threads are marshalled back through
``post_event``.
"""

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable

from ..config import settings
from ..observability.metrics import (
    record_conversation_duration,
    record_conversation_saved,
    record_error,
    record_frame_sent,
    record_message,
    record_transport_event,
)
from ..protocol.errors import (
    NotConnectedError,
    OmniError,
    PersistenceError,
    TransportError,
)
from ..protocol.events import (
    ErrorEvent,
    EventType,
    TranscriptDeltaEvent,
    TranscriptDoneEvent,
    TransportEvent,
    UserTranscriptEvent,
)
from ..protocol.messages import Message, SessionSnapshot
from ..storage.history import ConversationRecord, HistoryStore
from ..transport.base import TransportClient
from .frame_gate import FrameGate
from .state import Frame, Observer, Session, SessionState
from .transcript import append_delta, append_user_turn, finalize_assistant_turn

logger = logging.getLogger(__name__)


class SessionCoordinator:
    """
    Coordinates one realtime conversation between the transport, the
    history store and presentation observers.

    Use as an async context manager so the session is always torn down:

        async with SessionCoordinator(transport, store) as coordinator:
            coordinator.connect()
            ...
    """

    def __init__(
        self,
        transport: TransportClient,
        history_store: HistoryStore,
        model: str | None = None,
        language: str | None = None,
        image_enable_delay_ms: int | None = None,
        persist_timeout_seconds: float | None = None,
    ):
        """
        Initialize the coordinator and subscribe to transport events.

        Args:
            transport: Transport client owning the network connection
            history_store: Destination of the conversation at teardown
            model: Model identifier stored with the conversation
            language: Language tag stored with the conversation
            image_enable_delay_ms: Settling delay before frames may be sent
            persist_timeout_seconds: Bound on waiting for saves in ``aclose``
        """
        self.transport = transport
        self.history_store = history_store
        self.model = model or settings.model
        self.language = language or settings.language
        self.persist_timeout_seconds = (
            persist_timeout_seconds
            if persist_timeout_seconds is not None
            else settings.persist_timeout_seconds
        )

        self._state = SessionState()
        self._frame_gate = FrameGate(
            on_ready=self._on_image_sending_ready,
            delay_ms=(
                image_enable_delay_ms
                if image_enable_delay_ms is not None
                else settings.image_enable_delay_ms
            ),
        )

        self._loop: asyncio.AbstractEventLoop | None = None
        self._connecting = False
        self._connected_at: float | None = None
        self._pending_saves: set[asyncio.Task] = set()

        self._handlers: dict[EventType, Callable[[Any], None]] = {
            EventType.CONNECTED: self._on_connected,
            EventType.FIRST_AUDIO_SENT: self._on_first_audio_sent,
            EventType.SPEECH_STARTED: self._on_speech_started,
            EventType.SPEECH_STOPPED: self._on_speech_stopped,
            EventType.TRANSCRIPT_DELTA: self._on_transcript_delta,
            EventType.USER_TRANSCRIPT: self._on_user_transcript,
            EventType.TRANSCRIPT_DONE: self._on_transcript_done,
            EventType.AUDIO_DONE: self._on_audio_done,
            EventType.ERROR: self._on_error,
        }

        transport.bind(self.post_event)

    # =========================================================================
    # Scoped lifetime
    # =========================================================================

    async def __aenter__(self) -> "SessionCoordinator":
        self._loop = asyncio.get_running_loop()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Disconnect and wait (bounded) for the conversation to be saved."""
        self.disconnect()
        await self.wait_for_saves()

    async def wait_for_saves(self, timeout: float | None = None) -> None:
        """Wait for outstanding history saves, never longer than ``timeout``."""
        pending = set(self._pending_saves)
        if not pending:
            return

        timeout = timeout if timeout is not None else self.persist_timeout_seconds
        _, not_done = await asyncio.wait(pending, timeout=timeout)
        if not_done:
            logger.warning(
                f"{len(not_done)} conversation save(s) still running after {timeout:.1f}s"
            )

    # =========================================================================
    # Presentation surface
    # =========================================================================

    @property
    def _session(self) -> Session:
        return self._state.session

    @property
    def connected(self) -> bool:
        return self._session.connected

    @property
    def connecting(self) -> bool:
        """True between ``connect()`` and the connected (or error) event."""
        return self._connecting

    @property
    def recording(self) -> bool:
        return self._session.recording

    @property
    def speaking(self) -> bool:
        return self._session.speaking

    @property
    def current_transcript(self) -> str:
        """Assistant reply streamed so far."""
        return self._session.pending_assistant_text

    @property
    def history(self) -> tuple[Message, ...]:
        return tuple(self._session.history)

    @property
    def error_message(self) -> str | None:
        return self._session.last_error

    @property
    def show_error(self) -> bool:
        return self._session.show_error

    @property
    def image_sending_enabled(self) -> bool:
        return self._session.image_sending_enabled

    @property
    def last_video_frame(self) -> Frame | None:
        return self._session.last_video_frame

    @property
    def pending_saves(self) -> int:
        """Conversation saves scheduled but not finished."""
        return len(self._pending_saves)

    def snapshot(self) -> SessionSnapshot:
        """Immutable view of the presentation fields."""
        return self._state.snapshot()

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Call ``observer`` with a snapshot after every state change."""
        return self._state.subscribe(observer)

    # =========================================================================
    # Commands
    # =========================================================================

    def connect(self) -> None:
        """Ask the transport to open the connection. No-op if already open."""
        if self._session.connected or self._connecting:
            logger.debug("Already connected or connecting, ignoring connect")
            return

        self._bind_loop()
        self._connecting = True
        logger.info(f"Connecting to realtime model {self.model}")

        try:
            self.transport.open()
        except Exception as e:
            self._connecting = False
            logger.exception(f"Transport failed to open: {e}")
            self._show_error(TransportError(str(e)))
            self._state.notify()

    def disconnect(self) -> None:
        """
        Tear down the session.

        Saves the conversation (if any), stops recording, closes the
        transport and starts a fresh session. Never raises and never waits
        for the save to finish.
        """
        session = self._session
        self._frame_gate.reset()

        self._persist_history(session)

        if session.recording:
            self._run_teardown_step("stop recording", self.stop_recording)

        self._run_teardown_step("close transport", self.transport.close)

        if self._connected_at is not None:
            record_conversation_duration(time.monotonic() - self._connected_at)
            self._connected_at = None

        self._connecting = False
        session.connected = False
        session.image_sending_enabled = False
        self._state.reset()

        logger.info("Disconnected")
        self._state.notify()

    def start_recording(self) -> None:
        """Start microphone capture. Requires a connection."""
        if not self._session.connected:
            logger.warning("Cannot start recording: not connected")
            self._show_error(NotConnectedError())
            self._state.notify()
            return

        if self._session.recording:
            return

        logger.info("Recording started (voice-triggered mode)")
        self.transport.begin_capture()
        self._session.recording = True
        self._state.notify()

    def stop_recording(self) -> None:
        """Stop microphone capture. Safe when not recording."""
        logger.info("Recording stopped")
        self.transport.end_capture()
        self._session.recording = False
        self._state.notify()

    def update_video_frame(self, frame: Frame | None) -> None:
        """Replace the held camera frame."""
        self._session.last_video_frame = frame

    def commit_pending_audio(self) -> None:
        """Manually commit buffered audio instead of waiting for VAD."""
        if not self._session.connected:
            logger.warning("Cannot commit audio: not connected")
            self._show_error(NotConnectedError())
            self._state.notify()
            return

        self.transport.commit_pending_audio()

    def dismiss_error(self) -> None:
        """Hide the visible error."""
        self._session.show_error = False
        self._state.notify()

    # =========================================================================
    # Event dispatch
    # =========================================================================

    def post_event(self, event: TransportEvent) -> None:
        """
        Deliver a transport event from any thread.

        Runs the handler inline on the owning loop; from anywhere else the
        event is scheduled onto that loop.
        """
        loop = self._loop
        if loop is not None and not loop.is_closed() and not self._on_owner_loop():
            loop.call_soon_threadsafe(self.handle_event, event)
            return

        self.handle_event(event)

    def handle_event(self, event: TransportEvent) -> None:
        """Apply one transport event to the session and notify observers."""
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.warning(f"Unhandled transport event: {event.type}")
            return

        record_transport_event(EventType(event.type).value)
        handler(event)
        self._state.notify()

    def _on_connected(self, event: Any) -> None:
        if not self._connecting:
            # Late event from a connection already torn down
            logger.debug("Connected event without a pending connect, ignoring")
            return

        self._bind_loop()
        self._connecting = False
        self._session.connected = True
        self._connected_at = time.monotonic()
        logger.info("Realtime connection established")

    def _on_first_audio_sent(self, event: Any) -> None:
        if self._frame_gate.arm():
            logger.info(
                f"First audio sent, image sending enabled in {self._frame_gate.delay_ms}ms"
            )

    def _on_image_sending_ready(self) -> None:
        """Settling timer fired."""
        if not self._session.connected:
            logger.debug("Session torn down before image sending was enabled")
            return

        self._session.image_sending_enabled = True
        logger.info("Image sending enabled, waiting for user speech")

    def _on_speech_started(self, event: Any) -> None:
        self._session.speaking = True

        frame = self._frame_gate.select_frame(self._session)
        if frame is not None:
            logger.info("User speech detected, sending current video frame")
            self.transport.send_image(frame)
            record_frame_sent()

    def _on_speech_stopped(self, event: Any) -> None:
        self._session.speaking = False

    def _on_transcript_delta(self, event: TranscriptDeltaEvent) -> None:
        logger.debug(f"Assistant delta: {event.delta}")
        append_delta(self._session, event.delta)

    def _on_user_transcript(self, event: UserTranscriptEvent) -> None:
        message = append_user_turn(self._session, event.text)
        record_message(message.role.value)
        logger.info(f"User turn saved: '{message.content[:80]}'")

    def _on_transcript_done(self, event: TranscriptDoneEvent) -> None:
        message = finalize_assistant_turn(self._session, event.text)
        if message is None:
            return
        record_message(message.role.value)
        logger.info(f"Assistant turn saved: '{message.content[:80]}'")

    def _on_audio_done(self, event: Any) -> None:
        logger.debug("Assistant audio playback done")

    def _on_error(self, event: ErrorEvent) -> None:
        if self._connecting and not self._session.connected:
            self._connecting = False
        logger.warning(f"Transport error: {event.message}")
        self._show_error(TransportError(event.message))

    # =========================================================================
    # Helpers
    # =========================================================================

    def _show_error(self, error: OmniError) -> None:
        self._session.last_error = error.message
        self._session.show_error = True
        record_error(error.code.value)

    def _bind_loop(self) -> None:
        if self._loop is not None:
            return
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            pass

    def _on_owner_loop(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    @staticmethod
    def _run_teardown_step(name: str, step: Callable[[], None]) -> None:
        try:
            step()
        except Exception as e:
            logger.exception(f"Teardown step '{name}' failed: {e}")

    def _persist_history(self, session: Session) -> None:
        """Hand the conversation to the history store without waiting."""
        if not session.history:
            logger.info("No conversation content, skipping save")
            return

        record = ConversationRecord(
            messages=list(session.history),
            model_identifier=self.model,
            language_tag=self.language,
        )

        try:
            result = self.history_store.save(record)
        except Exception as e:
            self._log_save_failed(record, e)
            return

        if not inspect.isawaitable(result):
            self._log_saved(record)
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(result):
                result.close()
            self._log_save_failed(record, RuntimeError("no running event loop"))
            return

        task = loop.create_task(self._await_save(record, result))
        self._pending_saves.add(task)
        task.add_done_callback(self._pending_saves.discard)

    async def _await_save(self, record: ConversationRecord, result: Awaitable[None]) -> None:
        try:
            await result
        except Exception as e:
            self._log_save_failed(record, e)
        else:
            self._log_saved(record)

    @staticmethod
    def _log_saved(record: ConversationRecord) -> None:
        record_conversation_saved(success=True)
        logger.info(f"Conversation saved: {record.message_count} messages")

    @staticmethod
    def _log_save_failed(record: ConversationRecord, cause: Exception) -> None:
        error = PersistenceError(str(cause))
        record_conversation_saved(success=False)
        logger.error(f"{error.message} (record {record.id}, {record.message_count} messages)")
