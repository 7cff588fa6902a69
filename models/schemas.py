"""
Core data models for the message dispatcher.
These are the universal types shared across all modules.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_message_id() -> str:
    """Generate a dispatch identifier for a successfully sent message."""
    return str(uuid.uuid4())


# ──────────────────────────────────────────────────────────────
#  Message — one outbound communication
# ──────────────────────────────────────────────────────────────

class Message(BaseModel):
    """
    A pending or sent outbound message.

    `sent`, `message_id` and `sent_at` change together, exactly once,
    when the dispatcher delivers the message.
    """
    id: Optional[int] = None                  # assigned by the store
    to: str                                   # recipient address
    content: str
    sent: bool = False
    sent_at: Optional[datetime] = None
    message_id: str = ""                      # dispatch identifier, cache key
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def mark_sent(self, message_id: str = "", sent_at: datetime = None) -> None:
        self.message_id = message_id or new_message_id()
        self.sent_at = sent_at or _utcnow()
        self.sent = True
        self.updated_at = self.sent_at

    @property
    def is_consistent(self) -> bool:
        """True when the sent flag agrees with the dispatch id and timestamp."""
        return self.sent == (bool(self.message_id) and self.sent_at is not None)


class StatusResponse(BaseModel):
    """Plain response body for the control API."""
    message: str
