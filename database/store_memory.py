"""
InMemoryMessageStore — Dict-backed store for development and testing.

Features:
  - Zero dependencies (no database)
  - Same interface as SqlMessageStore
  - Hands out copies, so a dispatcher worker owns the instance it mutates
  - All data lost on process restart
"""
from __future__ import annotations

import itertools
import structlog
from datetime import datetime, timezone
from typing import Optional

from core.errors import PersistError
from database.store_base import BaseMessageStore
from models.schemas import Message

logger = structlog.get_logger()


class InMemoryMessageStore(BaseMessageStore):
    def __init__(self):
        self._messages: dict[int, Message] = {}     # id → message
        self._ids = itertools.count(1)
        logger.info("inmemory_store_initialized")

    async def fetch_pending(self, limit: int) -> list[Message]:
        pending = [m for m in self._messages.values() if not m.sent]
        return [m.model_copy(deep=True) for m in pending[:limit]]

    async def fetch_sent(self) -> list[Message]:
        return [m.model_copy(deep=True) for m in self._messages.values() if m.sent]

    async def save(self, message: Message) -> Message:
        if message.id is None:
            message.id = next(self._ids)
        elif message.id not in self._messages:
            raise PersistError(f"message {message.id} does not exist", message_pk=message.id)
        message.updated_at = datetime.now(timezone.utc)
        self._messages[message.id] = message.model_copy(deep=True)
        return message

    async def create(self, to: str, content: str) -> Message:
        return await self.save(Message(to=to, content=content))

    async def get(self, message_pk: int) -> Optional[Message]:
        message = self._messages.get(message_pk)
        return message.model_copy(deep=True) if message else None

    # ── Stats (for debugging) ─────────────────────────────

    def stats(self) -> dict[str, int]:
        sent = sum(1 for m in self._messages.values() if m.sent)
        return {"messages": len(self._messages), "sent": sent, "pending": len(self._messages) - sent}
