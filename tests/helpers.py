"""Test doubles shared across the test modules."""
import asyncio
import pytest
from typing import Callable

from cache.backend import InMemoryKeyValueBackend
from core.errors import DeliveryError


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport:
    """
    Records deliveries. `fail_times` makes the first N calls raise
    DeliveryError; `gate` (an asyncio.Event) holds every call until set;
    `delay` makes each call take that many seconds.
    """

    def __init__(self, fail_times: int = 0, gate: asyncio.Event = None, delay: float = 0.0):
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.fail_times = fail_times
        self.gate = gate
        self.in_flight = 0
        self.max_in_flight = 0

    async def deliver(self, recipient: str, content: str):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            self.calls.append((recipient, content))
            if len(self.calls) <= self.fail_times:
                raise DeliveryError("unexpected status code: 503", recipient=recipient, status_code=503)
            return {"status": 202}
        finally:
            self.in_flight -= 1


class FailingKeyValueBackend(InMemoryKeyValueBackend):
    """Every call raises, as a down Redis would."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    async def _fail(self, *args, **kwargs):
        self.calls += 1
        raise ConnectionError("redis unavailable")

    set = _fail
    get = _fail
    increment = _fail
    expire = _fail
    delete = _fail


class FlakyExpireBackend(InMemoryKeyValueBackend):
    """`expire` fails for its first `failures` calls; everything else works."""

    def __init__(self, clock: Callable[[], float], failures: int = 1):
        super().__init__(clock=clock)
        self.failures = failures
        self.expire_calls = 0

    async def expire(self, key: str, ttl_s: float) -> None:
        self.expire_calls += 1
        if self.expire_calls <= self.failures:
            raise ConnectionError("redis unavailable")
        await super().expire(key, ttl_s)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> None:
    """Poll `predicate` until it holds or fail the test after `timeout`."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() >= deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(interval)
