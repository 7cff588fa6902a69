"""
SQLAlchemy ORM models — Cross-database compatible.

Supports: PostgreSQL, SQLite.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from models.schemas import Message


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all ORM models."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ──────────────────────────────────────────────────────────────
#  Messages
# ──────────────────────────────────────────────────────────────

class MessageRow(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    to: Mapped[str] = mapped_column(String(64), nullable=False)
    content: Mapped[str] = mapped_column(String(160), nullable=False)
    sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    message_id: Mapped[str] = mapped_column(String(64), default="")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_messages_sent", "sent"),
        Index("ix_messages_message_id", "message_id"),
    )

    def to_message(self) -> Message:
        return Message(
            id=self.id, to=self.to, content=self.content,
            sent=self.sent, sent_at=self.sent_at,
            message_id=self.message_id or "",
            created_at=self.created_at, updated_at=self.updated_at,
        )

    def apply(self, message: Message) -> None:
        """Copy the mutable fields of `message` onto this row."""
        self.to = message.to
        self.content = message.content
        self.sent = message.sent
        self.sent_at = message.sent_at
        self.message_id = message.message_id
