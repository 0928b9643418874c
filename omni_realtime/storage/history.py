"""
Conversation history persistence.

The coordinator hands one ConversationRecord to a HistoryStore when a
session is torn down. ``InMemoryHistoryStore`` keeps records for the
lifetime of the process.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Protocol
from uuid import uuid4

from pydantic import BaseModel, Field

from ..protocol.messages import Message

logger = logging.getLogger(__name__)


class ConversationRecord(BaseModel):
    """A completed conversation, ready to be stored."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    messages: list[Message] = Field(..., description="Turns in conversation order")
    model_identifier: str = Field(..., description="Realtime model used")
    language_tag: str = Field(..., description="Conversation language")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def message_count(self) -> int:
        """Number of turns in the record."""
        return len(self.messages)


class HistoryStore(Protocol):
    """Destination for completed conversations. May be sync or async."""

    def save(self, record: ConversationRecord) -> Awaitable[None] | None:
        ...


class InMemoryHistoryStore:
    """Process-local store of conversation records."""

    def __init__(self, max_records: int | None = None):
        """
        Initialize the store.

        Args:
            max_records: Oldest records are dropped beyond this many
        """
        self.max_records = max_records
        self._records: dict[str, ConversationRecord] = {}
        self._lock = asyncio.Lock()

    async def save(self, record: ConversationRecord) -> None:
        """Store a record."""
        async with self._lock:
            self._records[record.id] = record

            if self.max_records is not None:
                while len(self._records) > self.max_records:
                    oldest = next(iter(self._records))
                    del self._records[oldest]

        logger.info(
            f"Conversation {record.id} saved ({record.message_count} messages)"
        )

    def get(self, record_id: str) -> ConversationRecord | None:
        """Get record by ID."""
        return self._records.get(record_id)

    def list_records(self) -> list[ConversationRecord]:
        """All records, oldest first."""
        return list(self._records.values())

    @property
    def count(self) -> int:
        """Number of stored records."""
        return len(self._records)
