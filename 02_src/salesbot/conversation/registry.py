"""In-memory registry of conversation records."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from ..models import Conversation


class ConversationRegistry:
    """Maps conversation IDs to their current record.

    Nothing is persisted: after a restart records are rebuilt lazily by the
    order flow. Each conversation has its own lock so transitions for one
    conversation never interleave, while different conversations proceed
    concurrently.
    """

    def __init__(self):
        self._records: dict[str, Conversation] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_holders: dict[str, int] = {}

    def get(self, conversation_id: str) -> Conversation | None:
        return self._records.get(conversation_id)

    def set(self, record: Conversation) -> None:
        self._records[record.conversation_id] = record

    def delete(self, conversation_id: str) -> None:
        self._records.pop(conversation_id, None)

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._records

    @asynccontextmanager
    async def lock(self, conversation_id: str) -> AsyncIterator[None]:
        """Serialize work on one conversation."""
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        self._lock_holders[conversation_id] = self._lock_holders.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_holders[conversation_id] - 1
            if remaining:
                self._lock_holders[conversation_id] = remaining
            else:
                # Nobody holds or waits on it any more.
                del self._lock_holders[conversation_id]
                del self._locks[conversation_id]
