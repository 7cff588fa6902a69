"""
Dispatch errors — structured hierarchy shared by the engine and its collaborators.

Control:    AlreadyRunningError
Store:      StoreUnavailableError (reads), PersistError (writes)
Rate limit: RateLimitError (backend failure), RateLimitedError (denied)
Transport:  DeliveryError
Retry:      SendFailedError (wraps the last attempt's error)
Cache:      CacheWriteError, CacheReadError, InvalidKeyError
"""
from __future__ import annotations

from typing import Optional


class DispatchError(Exception):
    """Base exception for all dispatcher operations."""


# ══════════════════════════════════════════════════════════════
#  CONTROL
# ══════════════════════════════════════════════════════════════

class AlreadyRunningError(DispatchError):
    def __init__(self):
        super().__init__("message processing is already running")


# ══════════════════════════════════════════════════════════════
#  STORE
# ══════════════════════════════════════════════════════════════

class StoreError(DispatchError):
    pass


class StoreUnavailableError(StoreError):
    pass


class PersistError(StoreError):
    def __init__(self, message: str, message_pk: Optional[int] = None):
        self.message_pk = message_pk
        super().__init__(message)


# ══════════════════════════════════════════════════════════════
#  RATE LIMITING
# ══════════════════════════════════════════════════════════════

class RateLimitError(DispatchError):
    """The rate-limit backend could not answer."""

    def __init__(self, message: str, recipient: str = ""):
        self.recipient = recipient
        super().__init__(message)


class RateLimitedError(DispatchError):
    """The recipient is over its limit for the current window."""

    def __init__(self, recipient: str = ""):
        self.recipient = recipient
        super().__init__(f"rate limit exceeded for recipient {recipient}")


# ══════════════════════════════════════════════════════════════
#  DELIVERY
# ══════════════════════════════════════════════════════════════

class DeliveryError(DispatchError):
    def __init__(self, message: str, recipient: str = "", status_code: Optional[int] = None):
        self.recipient = recipient
        self.status_code = status_code
        super().__init__(message)


class SendFailedError(DispatchError):
    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"failed after {attempts} retries: {last_error}")


# ══════════════════════════════════════════════════════════════
#  CACHE
# ══════════════════════════════════════════════════════════════

class CacheError(DispatchError):
    def __init__(self, message: str, key: str = ""):
        self.key = key
        super().__init__(message)


class CacheWriteError(CacheError):
    pass


class CacheReadError(CacheError):
    pass


class InvalidKeyError(CacheError):
    pass
