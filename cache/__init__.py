"""
Cache layer — key-value backends, the send cache and the rate limiter.

Quick start:
  from cache import create_kv_backend, MessageCache, FixedWindowRateLimiter
  backend = create_kv_backend({"backend": "memory"})
  cache = MessageCache(backend)
  limiter = FixedWindowRateLimiter(backend)
"""
from cache.backend import (
    KeyValueBackend, RedisKeyValueBackend, InMemoryKeyValueBackend,
    create_kv_backend, reset_kv_backend,
)
from cache.message_cache import MessageCache
from cache.rate_limiter import FixedWindowRateLimiter

__all__ = [
    "KeyValueBackend", "RedisKeyValueBackend", "InMemoryKeyValueBackend",
    "create_kv_backend", "reset_kv_backend",
    "MessageCache", "FixedWindowRateLimiter",
]
