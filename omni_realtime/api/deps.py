"""Shared collaborators for the API layer."""

from typing import Callable

from ..storage.history import InMemoryHistoryStore
from ..transport.base import AudioSource, TransportClient
from ..transport.realtime_client import RealtimeTransport

# Global instance
history_store = InMemoryHistoryStore()


def create_transport(
    audio_source: AudioSource,
    on_audio: Callable[[bytes], None] | None = None,
) -> TransportClient:
    """Build the transport used by a presentation session."""
    return RealtimeTransport(audio_source, on_audio=on_audio)
