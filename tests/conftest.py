"""
Pytest fixtures for realtime session tests.
"""

import pytest

from omni_realtime.core.coordinator import SessionCoordinator
from omni_realtime.protocol.events import ConnectedEvent, TransportEvent
from omni_realtime.storage.history import ConversationRecord


class FakeTransport:
    """Transport that records commands and lets tests emit events."""

    def __init__(self, auto_connect: bool = False):
        self.auto_connect = auto_connect
        self.commands: list[str] = []
        self.images: list[bytes] = []
        self.sink = None

    def bind(self, sink) -> None:
        self.sink = sink

    def emit(self, event: TransportEvent) -> None:
        self.sink(event)

    def open(self) -> None:
        self.commands.append("open")
        if self.auto_connect:
            self.emit(ConnectedEvent())

    def close(self) -> None:
        self.commands.append("close")

    def begin_capture(self) -> None:
        self.commands.append("begin_capture")

    def end_capture(self) -> None:
        self.commands.append("end_capture")

    def send_image(self, frame: bytes) -> None:
        self.commands.append("send_image")
        self.images.append(frame)

    def commit_pending_audio(self) -> None:
        self.commands.append("commit_pending_audio")


class FakeHistoryStore:
    """Async history store that keeps records in a list."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.records: list[ConversationRecord] = []
        self.calls = 0

    async def save(self, record: ConversationRecord) -> None:
        self.calls += 1
        if self.fail:
            raise OSError("disk full")
        self.records.append(record)


@pytest.fixture
def transport():
    """Recording transport."""
    return FakeTransport()


@pytest.fixture
def store():
    """Recording history store."""
    return FakeHistoryStore()


@pytest.fixture
def failing_store():
    """History store whose saves always fail."""
    return FakeHistoryStore(fail=True)


@pytest.fixture
def fake_transport_cls():
    """The recording transport class, for tests that build their own."""
    return FakeTransport


@pytest.fixture
def coordinator(transport, store):
    """Coordinator with a short settling delay for timer tests."""
    return SessionCoordinator(
        transport,
        store,
        model="test-model",
        language="en-US",
        image_enable_delay_ms=50,  # Short for testing
        persist_timeout_seconds=1.0,
    )


@pytest.fixture
def connect(coordinator, transport):
    """Connect the coordinator and confirm the connection."""
    def _connect() -> None:
        coordinator.connect()
        transport.emit(ConnectedEvent())

    return _connect
