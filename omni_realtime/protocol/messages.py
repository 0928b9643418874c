"""Pydantic models for conversation data and the presentation WebSocket protocol."""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================


class MessageType(str, Enum):
    """Message types for the presentation WebSocket protocol."""

    # Client -> Server
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    START_RECORDING = "start_recording"
    STOP_RECORDING = "stop_recording"
    VIDEO_FRAME = "video_frame"
    COMMIT_AUDIO = "commit_audio"
    DISMISS_ERROR = "dismiss_error"

    # Server -> Client
    STATE = "state"
    ERROR = "error"


class ErrorCode(str, Enum):
    """Error codes for the error message."""

    INVALID_MESSAGE = "INVALID_MESSAGE"
    NOT_CONNECTED = "NOT_CONNECTED"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    MAX_SESSIONS_REACHED = "MAX_SESSIONS_REACHED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Opaque image snapshot from the camera (e.g. JPEG bytes)
Frame = bytes


class Role(str, Enum):
    """Speaker of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


# =============================================================================
# Conversation data
# =============================================================================


class Message(BaseModel):
    """One turn in the conversation. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    role: Role
    content: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SessionSnapshot(BaseModel):
    """Read-only view of the session published to observers."""

    model_config = ConfigDict(frozen=True)

    connected: bool = False
    recording: bool = False
    speaking: bool = False
    current_transcript: str = ""
    history: tuple[Message, ...] = ()
    error_message: str | None = None
    show_error: bool = False


# =============================================================================
# Client -> Server Messages
# =============================================================================


class ConnectMessage(BaseModel):
    """Open the realtime connection."""

    type: Literal[MessageType.CONNECT] = MessageType.CONNECT


class DisconnectMessage(BaseModel):
    """Tear down the realtime connection and save the conversation."""

    type: Literal[MessageType.DISCONNECT] = MessageType.DISCONNECT


class StartRecordingMessage(BaseModel):
    """Start streaming microphone audio."""

    type: Literal[MessageType.START_RECORDING] = MessageType.START_RECORDING


class StopRecordingMessage(BaseModel):
    """Stop streaming microphone audio."""

    type: Literal[MessageType.STOP_RECORDING] = MessageType.STOP_RECORDING


class VideoFrameMessage(BaseModel):
    """Latest camera frame, base64 encoded."""

    type: Literal[MessageType.VIDEO_FRAME] = MessageType.VIDEO_FRAME
    image: str | None = Field(
        default=None,
        description="Base64 image bytes; null clears the held frame",
    )


class CommitAudioMessage(BaseModel):
    """Manually commit buffered audio and request a reply."""

    type: Literal[MessageType.COMMIT_AUDIO] = MessageType.COMMIT_AUDIO


class DismissErrorMessage(BaseModel):
    """Hide the visible error."""

    type: Literal[MessageType.DISMISS_ERROR] = MessageType.DISMISS_ERROR


# =============================================================================
# Server -> Client Messages
# =============================================================================


class StateMessage(BaseModel):
    """Current session state, sent on every change."""

    type: Literal[MessageType.STATE] = MessageType.STATE
    state: SessionSnapshot


class ErrorMessage(BaseModel):
    """Error message."""

    type: Literal[MessageType.ERROR] = MessageType.ERROR
    code: ErrorCode = Field(..., description="Error code")
    message: str = Field(..., description="Human-readable error message")


# =============================================================================
# Union types for parsing
# =============================================================================

ClientMessage = (
    ConnectMessage
    | DisconnectMessage
    | StartRecordingMessage
    | StopRecordingMessage
    | VideoFrameMessage
    | CommitAudioMessage
    | DismissErrorMessage
)

ServerMessage = StateMessage | ErrorMessage
