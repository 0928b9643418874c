"""
Session state for a realtime conversation.

Implements:
- Session dataclass holding the live conversation state
- Single-writer container with subscribe/notify for observers
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

from ..protocol.messages import Frame, Message, SessionSnapshot

logger = logging.getLogger(__name__)
Observer = Callable[[SessionSnapshot], None]


@dataclass
class Session:
    """Live state of one realtime conversation from connect to disconnect."""

    connected: bool = False
    recording: bool = False
    speaking: bool = False
    image_sending_enabled: bool = False

    # Accumulator for the assistant reply being streamed
    pending_assistant_text: str = ""

    # Append-only, in conversation order
    history: list[Message] = field(default_factory=list)

    last_video_frame: Frame | None = None

    last_error: str | None = None
    show_error: bool = False


class SessionState:
    """
    Single-writer container for the current Session.

    Only the coordinator writes to the session; everyone else reads
    immutable snapshots, either on demand or through ``subscribe``.
    """

    def __init__(self) -> None:
        self._session = Session()
        self._observers: list[Observer] = []

    @property
    def session(self) -> Session:
        """The live session (writer access)."""
        return self._session

    def snapshot(self) -> SessionSnapshot:
        """Build an immutable view of the presentation fields."""
        s = self._session
        return SessionSnapshot(
            connected=s.connected,
            recording=s.recording,
            speaking=s.speaking,
            current_transcript=s.pending_assistant_text,
            history=tuple(s.history),
            error_message=s.last_error,
            show_error=s.show_error,
        )

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """
        Register an observer called with a snapshot after every change.

        Returns:
            Callable that removes the observer
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def notify(self) -> None:
        """Publish the current snapshot to every observer."""
        if not self._observers:
            return

        snapshot = self.snapshot()
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception as e:
                logger.exception(f"Session observer failed: {e}")

    def reset(self) -> Session:
        """
        Install a fresh Session and return the discarded one.

        The visible error is carried over so observers can still show it.
        """
        old = self._session
        self._session = Session(last_error=old.last_error, show_error=old.show_error)
        return old

    @property
    def observer_count(self) -> int:
        """Number of registered observers."""
        return len(self._observers)
