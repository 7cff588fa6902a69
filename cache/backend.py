"""
Key-Value Backend — Abstract interface with Redis and in-memory implementations.

Used by the send cache (message snapshots with a TTL) and the rate limiter
(fixed-window counters). Both callers wrap every backend call in a bounded
retry, so implementations simply raise on failure.

Operations:
  set(key, value, ttl_s)   — write a string value, optionally expiring
  get(key)                 — string value or None when absent/expired
  increment(key)           — atomic +1, returns the new count
  expire(key, ttl_s)       — (re)set a key's time-to-live
  delete(key)              — remove a key; missing keys are not an error
"""
from __future__ import annotations

import time
import structlog
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

logger = structlog.get_logger()


# ──────────────────────────────────────────────────────────────
#  Abstract Interface
# ──────────────────────────────────────────────────────────────

class KeyValueBackend(ABC):
    """Abstract key-value backend."""

    @abstractmethod
    async def connect(self):
        """Establish connection to the backend."""
        ...

    @abstractmethod
    async def close(self):
        """Gracefully shut down."""
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_s: Optional[float] = None) -> None:
        ...

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def increment(self, key: str) -> int:
        ...

    @abstractmethod
    async def expire(self, key: str, ttl_s: float) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


# ──────────────────────────────────────────────────────────────
#  Redis Implementation
# ──────────────────────────────────────────────────────────────

class RedisKeyValueBackend(KeyValueBackend):
    """Production backend on a pooled redis.asyncio client."""

    def __init__(self, redis_url: str = "redis://localhost:6379/0", pool_size: int = 10):
        self._redis_url = redis_url
        self._pool_size = pool_size
        self._redis = None

    async def connect(self):
        import redis.asyncio as aioredis
        self._redis = aioredis.from_url(
            self._redis_url,
            decode_responses=True,
            max_connections=self._pool_size,
        )
        await self._redis.ping()
        logger.info("redis_backend_connected", url=self._redis_url)

    async def close(self):
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    def _client(self):
        if self._redis is None:
            raise ConnectionError("redis backend is not connected")
        return self._redis

    async def set(self, key: str, value: str, ttl_s: Optional[float] = None) -> None:
        px = int(ttl_s * 1000) if ttl_s else None
        await self._client().set(key, value, px=px)

    async def get(self, key: str) -> Optional[str]:
        return await self._client().get(key)

    async def increment(self, key: str) -> int:
        return int(await self._client().incr(key))

    async def expire(self, key: str, ttl_s: float) -> None:
        await self._client().pexpire(key, int(ttl_s * 1000))

    async def delete(self, key: str) -> None:
        await self._client().delete(key)


# ──────────────────────────────────────────────────────────────
#  In-Memory Implementation (Development)
# ──────────────────────────────────────────────────────────────

class InMemoryKeyValueBackend(KeyValueBackend):
    """
    Development/test backend on a dict with lazy expiry.
    Single-process only. `clock` is injectable so tests can move time.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: dict[str, tuple[str, Optional[float]]] = {}  # key → (value, expires_at)

    async def connect(self):
        logger.info("inmemory_backend_connected")

    async def close(self):
        pass

    def _live(self, key: str) -> Optional[tuple[str, Optional[float]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return entry

    async def set(self, key: str, value: str, ttl_s: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl_s if ttl_s else None
        self._data[key] = (value, expires_at)

    async def get(self, key: str) -> Optional[str]:
        entry = self._live(key)
        return entry[0] if entry else None

    async def increment(self, key: str) -> int:
        entry = self._live(key)
        if entry is None:
            count, expires_at = 1, None
        else:
            count, expires_at = int(entry[0]) + 1, entry[1]
        self._data[key] = (str(count), expires_at)
        return count

    async def expire(self, key: str, ttl_s: float) -> None:
        entry = self._live(key)
        if entry:
            self._data[key] = (entry[0], self._clock() + ttl_s)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def ttl(self, key: str) -> Optional[float]:
        """Seconds left before `key` expires (None when absent or persistent)."""
        entry = self._live(key)
        if not entry or entry[1] is None:
            return None
        return entry[1] - self._clock()


# ──────────────────────────────────────────────────────────────
#  Factory
# ──────────────────────────────────────────────────────────────

_instance: Optional[KeyValueBackend] = None


def create_kv_backend(config: dict[str, Any] = None) -> KeyValueBackend:
    """Factory: create the appropriate key-value backend."""
    global _instance
    if _instance:
        return _instance

    config = config or {}
    backend = config.get("backend", "memory")

    if backend == "redis":
        _instance = RedisKeyValueBackend(
            redis_url=config.get("redis_url", "redis://localhost:6379/0"),
            pool_size=config.get("pool_size", 10),
        )
    else:
        _instance = InMemoryKeyValueBackend()

    logger.info("kv_backend_created", backend=type(_instance).__name__)
    return _instance


def reset_kv_backend() -> None:
    """Reset the singleton (for testing)."""
    global _instance
    _instance = None
