"""Tracking of live session coordinators, one per presentation connection."""

import asyncio
import logging

from ..config import settings
from ..protocol.errors import MaxSessionsReachedError
from .coordinator import SessionCoordinator

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Manages active session coordinators.

    Session tracking with a max sessions limit; registration is serialized
    by an asyncio lock.
    """

    def __init__(self, max_sessions: int | None = None):
        """
        Initialize session registry.

        Args:
            max_sessions: Maximum concurrent sessions
        """
        self.max_sessions = max_sessions or settings.max_sessions
        self._sessions: dict[str, SessionCoordinator] = {}
        self._lock = asyncio.Lock()

    async def register(self, session_id: str, coordinator: SessionCoordinator) -> None:
        """
        Register a coordinator under a session ID.

        Raises:
            MaxSessionsReachedError: If max sessions limit reached
            ValueError: If the ID is already registered
        """
        async with self._lock:
            if session_id in self._sessions:
                raise ValueError(f"Session already registered: {session_id}")

            if len(self._sessions) >= self.max_sessions:
                raise MaxSessionsReachedError(self.max_sessions)

            self._sessions[session_id] = coordinator
            logger.info(f"Session {session_id} registered (total: {len(self._sessions)})")

    async def unregister(self, session_id: str) -> SessionCoordinator | None:
        """Remove and return a coordinator."""
        async with self._lock:
            coordinator = self._sessions.pop(session_id, None)
            if coordinator is not None:
                logger.info(f"Session {session_id} removed (total: {len(self._sessions)})")
            return coordinator

    def get(self, session_id: str) -> SessionCoordinator | None:
        """Get coordinator by session ID."""
        return self._sessions.get(session_id)

    @property
    def active_sessions(self) -> int:
        """Number of active sessions."""
        return len(self._sessions)

    @property
    def connected_sessions(self) -> int:
        """Sessions with a live realtime connection."""
        return sum(1 for c in self._sessions.values() if c.connected)


# Global instance
session_registry = SessionRegistry()
