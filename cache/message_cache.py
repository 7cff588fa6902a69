"""
Send Cache — copies of sent messages keyed by dispatch identifier.

A read accelerator for the sent-messages listing, not a source of truth:
entries expire after the configured TTL and the dispatcher never lets a
cache failure block a send or a persist.
"""
from __future__ import annotations

import structlog
from typing import Optional

from pydantic import ValidationError

from cache.backend import KeyValueBackend
from core.errors import CacheReadError, CacheWriteError, InvalidKeyError
from models.schemas import Message
from utils.retry import with_retry

logger = structlog.get_logger()


class MessageCache:
    def __init__(
        self,
        backend: KeyValueBackend,
        ttl_s: float = 24 * 60 * 60,
        key_prefix: str = "message:",
        max_retries: int = 3,
        retry_backoff_s: float = 0.1,
    ):
        self.backend = backend
        self.ttl_s = ttl_s
        self.key_prefix = key_prefix
        self.max_retries = max_retries
        self.retry_backoff_s = retry_backoff_s

    def key_for(self, message_id: str) -> str:
        return self.key_prefix + message_id

    async def put(self, message: Optional[Message]) -> None:
        """Store a snapshot of a sent message under its dispatch identifier."""
        if message is None:
            raise CacheWriteError("message cannot be nil")
        if not message.message_id:
            raise CacheWriteError("message has no dispatch identifier")

        key = self.key_for(message.message_id)
        data = message.model_dump_json()
        try:
            await with_retry(
                lambda: self.backend.set(key, data, self.ttl_s),
                attempts=self.max_retries,
                backoff_s=self.retry_backoff_s,
            )
        except Exception as e:
            raise CacheWriteError(
                f"operation failed after {self.max_retries} retries: {e}", key=key,
            ) from e
        logger.debug("message_cached", key=key)

    async def get(self, message_id: str) -> Optional[Message]:
        """
        Return the cached snapshot, or None when there is no entry.

        Raises InvalidKeyError for an empty id and CacheReadError when the
        backend keeps failing or the stored payload does not parse.
        """
        if not message_id:
            raise InvalidKeyError("messageID cannot be empty")

        key = self.key_for(message_id)
        try:
            data = await with_retry(
                lambda: self.backend.get(key),
                attempts=self.max_retries,
                backoff_s=self.retry_backoff_s,
            )
        except Exception as e:
            raise CacheReadError(
                f"operation failed after {self.max_retries} retries: {e}", key=key,
            ) from e

        if not data:
            return None

        try:
            return Message.model_validate_json(data)
        except ValidationError as e:
            raise CacheReadError(f"failed to unmarshal message: {e}", key=key) from e
