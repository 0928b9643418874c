"""Transport module: client contract and the realtime WebSocket client."""

from .base import AudioSource, EventSink, QueueAudioSource, TransportClient
from .realtime_client import RealtimeTransport, to_transport_event

__all__ = [
    "AudioSource",
    "EventSink",
    "QueueAudioSource",
    "RealtimeTransport",
    "TransportClient",
    "to_transport_event",
]
