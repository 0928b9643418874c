"""Error definitions for the realtime session service."""

from .messages import ErrorCode


class OmniError(Exception):
    """Base exception for realtime session errors."""

    def __init__(self, code: ErrorCode, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


class NotConnectedError(OmniError):
    """Raised when a command needs a live connection and there is none."""

    def __init__(self, message: str = "Not connected to the realtime service; connect first"):
        super().__init__(
            ErrorCode.NOT_CONNECTED,
            message,
        )


class TransportError(OmniError):
    """Error reported by the transport client. The message is opaque."""

    def __init__(self, message: str):
        super().__init__(
            ErrorCode.TRANSPORT_ERROR,
            message,
        )


class PersistenceError(OmniError):
    """Raised when a conversation record could not be saved."""

    def __init__(self, message: str):
        super().__init__(
            ErrorCode.PERSISTENCE_ERROR,
            f"Failed to save conversation: {message}",
        )


class MaxSessionsReachedError(OmniError):
    """Raised when maximum sessions limit is reached."""

    def __init__(self, max_sessions: int):
        super().__init__(
            ErrorCode.MAX_SESSIONS_REACHED,
            f"Maximum sessions reached: {max_sessions}",
        )
