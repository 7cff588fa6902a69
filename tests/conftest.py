"""Shared test fixtures for the message dispatcher."""
import pytest
import pytest_asyncio

from cache.backend import InMemoryKeyValueBackend
from cache.message_cache import MessageCache
from cache.rate_limiter import FixedWindowRateLimiter
from core.engine import DispatchEngine
from core.retry import RetryPolicy
from database.store_memory import InMemoryMessageStore
from helpers import FakeClock, FakeTransport


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv_backend(clock) -> InMemoryKeyValueBackend:
    return InMemoryKeyValueBackend(clock=clock)


@pytest.fixture
def message_cache(kv_backend) -> MessageCache:
    return MessageCache(kv_backend, retry_backoff_s=0)


@pytest.fixture
def rate_limiter(kv_backend) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(kv_backend, retry_backoff_s=0)


@pytest.fixture
def store() -> InMemoryMessageStore:
    return InMemoryMessageStore()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest_asyncio.fixture
async def make_engine(store, message_cache, rate_limiter):
    """Build engines with fast ticks and no backoff; all are shut down after the test."""
    engines: list[DispatchEngine] = []

    def _make(transport, **kwargs) -> DispatchEngine:
        kwargs.setdefault("poll_interval_s", 0.05)
        kwargs.setdefault("retry_policy", RetryPolicy(max_attempts=3, backoff_s=0))
        engine = DispatchEngine(
            store=kwargs.pop("store", store),
            transport=transport,
            cache=kwargs.pop("cache", message_cache),
            rate_limiter=kwargs.pop("rate_limiter", rate_limiter),
            **kwargs,
        )
        engines.append(engine)
        return engine

    yield _make

    for engine in engines:
        await engine.shutdown(timeout_s=1.0)


@pytest.fixture
def engine(make_engine, transport) -> DispatchEngine:
    return make_engine(transport)
