"""Protocol module: transport events, conversation data and error types."""

from .errors import (
    MaxSessionsReachedError,
    NotConnectedError,
    OmniError,
    PersistenceError,
    TransportError,
)
from .events import EventType, TransportEvent, parse_event
from .messages import ErrorCode, Message, Role, SessionSnapshot

__all__ = [
    "ErrorCode",
    "EventType",
    "MaxSessionsReachedError",
    "Message",
    "NotConnectedError",
    "OmniError",
    "PersistenceError",
    "Role",
    "SessionSnapshot",
    "TransportError",
    "TransportEvent",
    "parse_event",
]
