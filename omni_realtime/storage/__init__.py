"""Storage module for completed conversations."""

from .history import ConversationRecord, HistoryStore, InMemoryHistoryStore

__all__ = [
    "ConversationRecord",
    "HistoryStore",
    "InMemoryHistoryStore",
]
