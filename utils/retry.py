"""
Bounded retry with linear backoff, shared by the send policy and the
cache / rate-limit backend calls.

Attempt n that fails waits n × backoff_s before attempt n + 1
(100ms, 200ms, ... for the default unit). No jitter.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, stop_after_attempt, wait_incrementing

T = TypeVar("T")


def linear_retrying(
    attempts: int = 3,
    backoff_s: float = 0.1,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
) -> AsyncRetrying:
    kwargs: dict[str, Any] = {
        "stop": stop_after_attempt(max(attempts, 1)),
        "wait": wait_incrementing(start=backoff_s, increment=backoff_s),
        "reraise": True,
    }
    if sleep is not None:
        kwargs["sleep"] = sleep
    return AsyncRetrying(**kwargs)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    backoff_s: float = 0.1,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
) -> T:
    """
    Await `operation()` until it succeeds or `attempts` are used up.

    `operation` may be any callable returning an awaitable (a lambda
    around a coroutine call is fine). The last attempt's exception is
    re-raised unchanged; callers wrap it in their own error type.
    """
    async for attempt in linear_retrying(attempts, backoff_s, sleep):
        with attempt:
            return await operation()
