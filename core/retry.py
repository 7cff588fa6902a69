"""
Send retry policy — bounded attempts with linear backoff around one send.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, TypeVar

from core.errors import SendFailedError
from utils.retry import with_retry

T = TypeVar("T")


class RetryPolicy:
    """
    Deliberately simple: `max_attempts` tries, waiting attempt × backoff_s
    between them, no jitter and no circuit breaker. Every error is retried,
    including a rate-limit denial.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_s: float = 0.1,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.max_attempts = max_attempts
        self.backoff_s = backoff_s
        self._sleep = sleep

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await with_retry(
                operation,
                attempts=self.max_attempts,
                backoff_s=self.backoff_s,
                sleep=self._sleep,
            )
        except Exception as e:
            raise SendFailedError(self.max_attempts, e) from e
