"""
Transport events consumed by the session coordinator.

Every event the transport client can report is one member of the
``TransportEvent`` tagged union, discriminated on ``type``.
"""

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter


class EventType(str, Enum):
    """Event types emitted by the transport client."""

    CONNECTED = "connected"
    FIRST_AUDIO_SENT = "first_audio_sent"
    SPEECH_STARTED = "speech_started"
    SPEECH_STOPPED = "speech_stopped"
    TRANSCRIPT_DELTA = "transcript_delta"
    USER_TRANSCRIPT = "user_transcript"
    TRANSCRIPT_DONE = "transcript_done"
    AUDIO_DONE = "audio_done"
    ERROR = "error"


class ConnectedEvent(BaseModel):
    """The realtime connection is open and the session is configured."""

    type: Literal[EventType.CONNECTED] = EventType.CONNECTED


class FirstAudioSentEvent(BaseModel):
    """The first outbound audio chunk of the connection was sent."""

    type: Literal[EventType.FIRST_AUDIO_SENT] = EventType.FIRST_AUDIO_SENT


class SpeechStartedEvent(BaseModel):
    """Server VAD detected the start of user speech."""

    type: Literal[EventType.SPEECH_STARTED] = EventType.SPEECH_STARTED


class SpeechStoppedEvent(BaseModel):
    """Server VAD detected the end of user speech."""

    type: Literal[EventType.SPEECH_STOPPED] = EventType.SPEECH_STOPPED


class TranscriptDeltaEvent(BaseModel):
    """Fragment of the streamed assistant reply."""

    type: Literal[EventType.TRANSCRIPT_DELTA] = EventType.TRANSCRIPT_DELTA
    delta: str = Field(..., description="Text fragment, in delivery order")


class UserTranscriptEvent(BaseModel):
    """Complete transcription of one user utterance."""

    type: Literal[EventType.USER_TRANSCRIPT] = EventType.USER_TRANSCRIPT
    text: str = Field(..., description="Recognized user speech")


class TranscriptDoneEvent(BaseModel):
    """End of the assistant reply transcript."""

    type: Literal[EventType.TRANSCRIPT_DONE] = EventType.TRANSCRIPT_DONE
    text: str | None = Field(
        default=None,
        description="Full reply text; may be missing or empty",
    )


class AudioDoneEvent(BaseModel):
    """Assistant audio for the current reply has finished."""

    type: Literal[EventType.AUDIO_DONE] = EventType.AUDIO_DONE


class ErrorEvent(BaseModel):
    """Transport or protocol failure."""

    type: Literal[EventType.ERROR] = EventType.ERROR
    message: str = Field(..., description="Error description")


TransportEvent = Annotated[
    ConnectedEvent
    | FirstAudioSentEvent
    | SpeechStartedEvent
    | SpeechStoppedEvent
    | TranscriptDeltaEvent
    | UserTranscriptEvent
    | TranscriptDoneEvent
    | AudioDoneEvent
    | ErrorEvent,
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[TransportEvent] = TypeAdapter(TransportEvent)


def parse_event(data: dict[str, Any]) -> TransportEvent:
    """
    Validate a plain dict into a typed transport event.

    Raises:
        pydantic.ValidationError: If the type is unknown or fields are invalid
    """
    return _event_adapter.validate_python(data)
