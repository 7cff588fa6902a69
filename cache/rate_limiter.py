"""
Fixed-window rate limiter per recipient.

The first increment in a window sets the key's expiry; the counter resets
entirely once the key expires. Checks are advisory: the dispatcher sends
anyway when the backend cannot answer.
"""
from __future__ import annotations

import structlog

from cache.backend import KeyValueBackend
from core.errors import RateLimitError
from utils.retry import with_retry

logger = structlog.get_logger()


class FixedWindowRateLimiter:
    def __init__(
        self,
        backend: KeyValueBackend,
        max_per_window: int = 10,
        window_s: float = 60.0,
        key_prefix: str = "rate_limit:",
        max_retries: int = 3,
        retry_backoff_s: float = 0.1,
    ):
        self.backend = backend
        self.max_per_window = max_per_window
        self.window_s = window_s
        self.key_prefix = key_prefix
        self.max_retries = max_retries
        self.retry_backoff_s = retry_backoff_s

    def key_for(self, recipient: str) -> str:
        return self.key_prefix + recipient

    async def check(self, recipient: str) -> bool:
        """Count one send for `recipient`; True while within the window's limit."""
        if not recipient:
            raise RateLimitError("recipient cannot be empty")

        key = self.key_for(recipient)

        # INCR and EXPIRE retry separately: re-running INCR after a failed
        # EXPIRE would skip the window's expiry for good.
        try:
            count = await with_retry(
                lambda: self.backend.increment(key),
                attempts=self.max_retries,
                backoff_s=self.retry_backoff_s,
            )
            if count == 1:
                await with_retry(
                    lambda: self.backend.expire(key, self.window_s),
                    attempts=self.max_retries,
                    backoff_s=self.retry_backoff_s,
                )
        except Exception as e:
            raise RateLimitError(f"rate limit check failed: {e}", recipient=recipient) from e

        allowed = count <= self.max_per_window
        if not allowed:
            logger.info("rate_limit_exceeded", recipient=recipient, count=count)
        return allowed

    async def clear(self, recipient: str) -> None:
        """Reset the recipient's window."""
        if not recipient:
            raise RateLimitError("recipient cannot be empty")

        key = self.key_for(recipient)
        try:
            await with_retry(
                lambda: self.backend.delete(key),
                attempts=self.max_retries,
                backoff_s=self.retry_backoff_s,
            )
        except Exception as e:
            raise RateLimitError(f"rate limit clear failed: {e}", recipient=recipient) from e
