"""
Abstract Message Store — Interface for all storage backends.

Implementations:
  - SqlMessageStore      (PostgreSQL / SQLite via SQLAlchemy)
  - InMemoryMessageStore (dict-based, single-process, no persistence)

Reads raise StoreUnavailableError and writes raise PersistError when the
backend fails. Every returned Message is a fresh instance the caller owns.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from models.schemas import Message


class BaseMessageStore(ABC):
    """Interface that all message store backends must implement."""

    # ── Dispatcher side ───────────────────────────────────────

    @abstractmethod
    async def fetch_pending(self, limit: int) -> list[Message]:
        """Up to `limit` messages that have not been sent yet."""
        ...

    @abstractmethod
    async def fetch_sent(self) -> list[Message]:
        ...

    @abstractmethod
    async def save(self, message: Message) -> Message:
        ...

    # ── Producer side ─────────────────────────────────────────

    @abstractmethod
    async def create(self, to: str, content: str) -> Message:
        ...

    @abstractmethod
    async def get(self, message_pk: int) -> Optional[Message]:
        ...
