"""
SqlMessageStore — Portable SQL queries for PostgreSQL and SQLite.
"""
from __future__ import annotations

import structlog
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from core.errors import PersistError, StoreUnavailableError
from database.models import MessageRow
from database.session import get_session
from database.store_base import BaseMessageStore
from models.schemas import Message

logger = structlog.get_logger()


class SqlMessageStore(BaseMessageStore):
    """
    Persistent message store backed by any SQLAlchemy-supported database.
    Each call runs in its own session; there are no cross-message transactions.
    """

    async def fetch_pending(self, limit: int) -> list[Message]:
        try:
            async with get_session() as db:
                stmt = (
                    select(MessageRow)
                    .where(MessageRow.sent.is_(False))
                    .order_by(MessageRow.id)
                    .limit(limit)
                )
                result = await db.execute(stmt)
                return [row.to_message() for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"error fetching messages: {e}") from e

    async def fetch_sent(self) -> list[Message]:
        try:
            async with get_session() as db:
                stmt = select(MessageRow).where(MessageRow.sent.is_(True)).order_by(MessageRow.id)
                result = await db.execute(stmt)
                return [row.to_message() for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"error fetching sent messages: {e}") from e

    async def save(self, message: Message) -> Message:
        try:
            async with get_session() as db:
                row = await db.get(MessageRow, message.id) if message.id is not None else None
                if row is None:
                    if message.id is not None:
                        raise PersistError(
                            f"message {message.id} does not exist", message_pk=message.id,
                        )
                    row = MessageRow()
                    db.add(row)
                row.apply(message)
                await db.flush()
                await db.refresh(row)
                message.id = row.id
                message.created_at = row.created_at
                message.updated_at = row.updated_at
                return message
        except SQLAlchemyError as e:
            raise PersistError(f"error updating message status: {e}", message_pk=message.id) from e

    async def create(self, to: str, content: str) -> Message:
        return await self.save(Message(to=to, content=content))

    async def get(self, message_pk: int) -> Optional[Message]:
        try:
            async with get_session() as db:
                row = await db.get(MessageRow, message_pk)
                return row.to_message() if row else None
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"error fetching message {message_pk}: {e}") from e
