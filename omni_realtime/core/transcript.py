"""
Transcript assembly for conversation turns.

Assistant replies arrive as a stream of deltas closed by a done event;
user speech arrives as one complete transcript per utterance.
"""

import logging

from ..protocol.messages import Message, Role
from .state import Session

logger = logging.getLogger(__name__)


def append_delta(session: Session, delta: str) -> None:
    """Append a reply fragment to the pending assistant text, in delivery order."""
    session.pending_assistant_text += delta


def finalize_assistant_turn(session: Session, full_text: str | None) -> Message | None:
    """
    Close the assistant turn and append it to history.

    The done event's full text wins when present; otherwise the accumulated
    deltas are used, since the done event may not carry the text.

    Args:
        session: Live session
        full_text: Text carried by the done event, possibly empty or None

    Returns:
        The appended message, or None when there was nothing to save
    """
    text_to_save = full_text or session.pending_assistant_text
    if not text_to_save:
        logger.debug("Assistant reply is empty, nothing to save")
        return None

    message = Message(role=Role.ASSISTANT, content=text_to_save)
    session.history.append(message)
    session.pending_assistant_text = ""
    return message


def append_user_turn(session: Session, text: str) -> Message:
    """Append a complete user transcript to history."""
    message = Message(role=Role.USER, content=text)
    session.history.append(message)
    return message
