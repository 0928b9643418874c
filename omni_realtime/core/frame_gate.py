"""
Video frame gating.

Camera frames are not streamed. One still frame is attached per user
utterance, and only once the outbound audio stream has settled:

1. First audio chunk confirmed sent -> start a one-shot settling timer
2. Timer expires while still connected -> image sending enabled
3. Each speech start -> the latest frame (if any) is sent once
"""

import asyncio
import logging
from typing import Callable

from .state import Frame, Session

logger = logging.getLogger(__name__)


class FrameGate:
    """
    One-shot settling timer plus the frame selection rule.

    The timer is started at most once per connection and is cancelled by
    ``reset`` (called on disconnect).
    """

    def __init__(
        self,
        on_ready: Callable[[], None],
        delay_ms: int = 1000,
    ):
        """
        Initialize the gate.

        Args:
            on_ready: Called on the event loop when the settling delay elapses
            delay_ms: Settling delay in milliseconds
        """
        self.on_ready = on_ready
        self.delay_ms = delay_ms

        self._timer_task: asyncio.Task | None = None
        self._armed = False

    @property
    def armed(self) -> bool:
        """True once the settling timer was started for this connection."""
        return self._armed

    @property
    def timer_pending(self) -> bool:
        """True while the settling timer has not fired yet."""
        return self._timer_task is not None and not self._timer_task.done()

    def arm(self) -> bool:
        """
        Start the settling timer unless it was already started.

        Returns:
            True if a timer was started by this call
        """
        if self._armed:
            logger.debug("Frame gate already armed, ignoring")
            return False

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, image sending stays disabled")
            return False

        self._armed = True
        self._timer_task = loop.create_task(self._timer_expired())
        return True

    async def _timer_expired(self) -> None:
        """Wait for the settling delay, then report readiness."""
        try:
            await asyncio.sleep(self.delay_ms / 1000)
        except asyncio.CancelledError:
            return

        self._timer_task = None
        self.on_ready()

    def reset(self) -> None:
        """Cancel a pending timer and allow arming again."""
        if self._timer_task and not self._timer_task.done():
            self._timer_task.cancel()
        self._timer_task = None
        self._armed = False

    @staticmethod
    def select_frame(session: Session) -> Frame | None:
        """
        Frame to attach to a new utterance, or None.

        The reference is taken once so a concurrent ``update_video_frame``
        cannot change what is sent.
        """
        frame = session.last_video_frame
        if session.image_sending_enabled and frame is not None:
            return frame
        return None
