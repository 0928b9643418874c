"""Core components for session coordination."""

from .coordinator import SessionCoordinator
from .frame_gate import FrameGate
from .registry import SessionRegistry, session_registry
from .state import Session, SessionState

__all__ = [
    "FrameGate",
    "Session",
    "SessionCoordinator",
    "SessionRegistry",
    "SessionState",
    "session_registry",
]
