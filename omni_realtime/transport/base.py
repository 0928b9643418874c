"""
Contracts between the session coordinator and the transport.

The transport owns the network connection. Commands are fire-and-forget:
they return immediately and their effects come back as events through
the sink registered with ``bind``.
"""

import asyncio
from typing import AsyncIterator, Callable, Protocol

from ..protocol.events import TransportEvent
from ..protocol.messages import Frame

EventSink = Callable[[TransportEvent], None]


class TransportClient(Protocol):
    """Commands the coordinator issues to the realtime transport."""

    def bind(self, sink: EventSink) -> None:
        """Register the receiver of transport events."""
        ...

    def open(self) -> None:
        ...

    def close(self) -> None:
        ...

    def begin_capture(self) -> None:
        ...

    def end_capture(self) -> None:
        ...

    def send_image(self, frame: Frame) -> None:
        ...

    def commit_pending_audio(self) -> None:
        ...


class AudioSource(Protocol):
    """Producer of microphone audio chunks (PCM16 LE mono)."""

    def stream(self) -> AsyncIterator[bytes]:
        ...


class QueueAudioSource:
    """
    Audio source fed by ``push``.

    Chunks pushed while nobody is streaming are buffered up to
    ``max_chunks``; the oldest are dropped beyond that.
    """

    def __init__(self, max_chunks: int = 250):
        self.max_chunks = max_chunks
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._dropped = 0

    def push(self, chunk: bytes) -> None:
        """Add a chunk of microphone audio."""
        if self._queue.qsize() >= self.max_chunks:
            self._queue.get_nowait()
            self._dropped += 1
        self._queue.put_nowait(chunk)

    def end(self) -> None:
        """Signal the end of the audio stream."""
        self._queue.put_nowait(None)

    def clear(self) -> None:
        """Drop buffered chunks."""
        while not self._queue.empty():
            self._queue.get_nowait()

    async def stream(self) -> AsyncIterator[bytes]:
        """Yield chunks until ``end`` is called."""
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk

    @property
    def dropped_chunks(self) -> int:
        """Chunks discarded because the buffer was full."""
        return self._dropped
