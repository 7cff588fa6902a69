"""
Dispatch Engine — polls the store for unsent messages and delivers them.

Flow per tick:
    store.fetch_pending(batch_size)
    → for each message: take a worker slot (blocks when all are busy)
        → rate-limit check → webhook POST (with retry)
        → mark sent → cache snapshot → store.save
        → release slot
    → wait for the whole batch
    → wait for the next tick (or a stop signal)

A message that still fails after its retries stays unsent and is fetched
again on a later tick. Fetch failures are logged and never stop the loop.

Usage:
    engine = DispatchEngine(store, transport, cache, rate_limiter)
    await engine.start()        # AlreadyRunningError when already running
    await engine.stop()         # returns immediately; in-flight sends finish
    sent = await engine.list_sent()
"""
from __future__ import annotations

import asyncio
import threading
import structlog
from typing import Optional, Protocol

from cache.message_cache import MessageCache
from cache.rate_limiter import FixedWindowRateLimiter
from core.errors import (
    AlreadyRunningError, CacheError, RateLimitError, RateLimitedError, SendFailedError,
)
from core.retry import RetryPolicy
from database.store_base import BaseMessageStore
from models.schemas import Message

logger = structlog.get_logger()


class Transport(Protocol):
    async def deliver(self, recipient: str, content: str): ...


class EngineState:
    """
    The processing flag, guarded by a lock so it can be read and flipped from
    any thread. The engine's stop event is not covered: call
    `DispatchEngine.stop` on the event loop that started it.
    """

    def __init__(self):
        self._processing = False
        self._lock = threading.Lock()

    @property
    def processing(self) -> bool:
        with self._lock:
            return self._processing

    def try_start(self) -> bool:
        """Set the flag; False if it was already set."""
        with self._lock:
            if self._processing:
                return False
            self._processing = True
            return True

    def stop(self) -> None:
        with self._lock:
            self._processing = False


class DispatchEngine:
    def __init__(
        self,
        store: BaseMessageStore,
        transport: Transport,
        cache: MessageCache,
        rate_limiter: FixedWindowRateLimiter,
        batch_size: int = 2,
        poll_interval_s: float = 120.0,
        max_workers: int = 5,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.store = store
        self.transport = transport
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.batch_size = batch_size
        self.poll_interval_s = poll_interval_s
        self.max_workers = max_workers
        self.retry_policy = retry_policy or RetryPolicy()

        self._state = EngineState()
        self._slots = asyncio.Semaphore(max_workers)
        self._stop_event: Optional[asyncio.Event] = None
        self._loops: set[asyncio.Task] = set()

    # ── Lifecycle ─────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._state.processing

    async def start(self) -> None:
        """Launch the polling loop as a background task."""
        if not self._state.try_start():
            raise AlreadyRunningError()

        stop_event = asyncio.Event()
        self._stop_event = stop_event
        task = asyncio.create_task(self._process_loop(stop_event), name="dispatch_loop")
        self._loops.add(task)
        task.add_done_callback(self._loops.discard)
        logger.info("dispatch_engine_started",
                    interval_s=self.poll_interval_s,
                    batch_size=self.batch_size,
                    max_workers=self.max_workers)

    async def stop(self) -> None:
        """Clear the flag and wake the loop. Does not wait for in-flight sends."""
        self._state.stop()
        if self._stop_event is not None:
            self._stop_event.set()
        logger.info("dispatch_engine_stopped")

    async def shutdown(self, timeout_s: float = 30.0) -> None:
        """Stop, then wait for running loops to drain; cancel whatever is left."""
        await self.stop()
        pending = [t for t in self._loops if not t.done()]
        if not pending:
            return
        _, still_running = await asyncio.wait(pending, timeout=timeout_s)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning("dispatch_loop_cancelled", count=len(still_running))

    # ── Polling loop ──────────────────────────────────────────

    async def _process_loop(self, stop_event: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while self.is_running and not stop_event.is_set():
            try:
                messages = await self.store.fetch_pending(self.batch_size)
            except Exception as e:
                logger.error("pending_fetch_failed", error=str(e))
                messages = []

            if messages:
                await self.process_batch(messages)

            next_tick = self._next_tick(next_tick, loop.time())
            await self._wait_for_tick(stop_event, next_tick - loop.time())

    def _next_tick(self, last_tick: float, now: float) -> float:
        """
        Ticks stay on a fixed grid from the loop's start. A batch that overruns
        one or more ticks is followed at once by the next batch, and the grid
        resumes after it; missed ticks are not replayed.
        """
        interval = self.poll_interval_s
        if interval <= 0:
            return now
        next_tick = last_tick + interval
        if next_tick <= now:
            next_tick += ((now - next_tick) // interval) * interval
        return next_tick

    async def _wait_for_tick(self, stop_event: asyncio.Event, delay_s: float) -> None:
        if delay_s <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay_s)
        except asyncio.TimeoutError:
            pass

    async def process_batch(self, messages: list[Message]) -> list[bool]:
        """
        Send every message in the batch on the worker pool and wait for all
        of them. Returns one success flag per message, in batch order.
        """
        tasks = []
        for message in messages:
            await self._slots.acquire()
            tasks.append(asyncio.create_task(self._dispatch(message)))
        return list(await asyncio.gather(*tasks))

    async def _dispatch(self, message: Message) -> bool:
        try:
            await self.send_with_retry(message)
            return True
        except SendFailedError as e:
            logger.error("message_send_failed",
                         id=message.id,
                         to=message.to,
                         attempts=e.attempts,
                         error=str(e.last_error))
            return False
        finally:
            self._slots.release()

    # ── Sending ───────────────────────────────────────────────

    async def send_with_retry(self, message: Message) -> Message:
        return await self.retry_policy.run(lambda: self.send(message))

    async def send(self, message: Message) -> Message:
        """
        One delivery attempt.

        Raises RateLimitedError when the recipient is over its window,
        DeliveryError on transport failure and PersistError when the store
        rejects the update. Cache failures only log.
        """
        try:
            allowed = await self.rate_limiter.check(message.to)
        except RateLimitError as e:
            logger.warning("rate_limit_check_failed", to=message.to, error=str(e))
        else:
            if not allowed:
                raise RateLimitedError(message.to)

        await self.transport.deliver(message.to, message.content)

        message.mark_sent()

        try:
            await self.cache.put(message)
        except CacheError as e:
            logger.warning("message_cache_failed", message_id=message.message_id, error=str(e))

        await self.store.save(message)
        logger.info("message_sent", id=message.id, to=message.to, message_id=message.message_id)
        return message

    # ── Listing ───────────────────────────────────────────────

    async def list_sent(self) -> list[Message]:
        """
        Sent messages that still have a cache entry, as read from the cache.

        A sent message whose entry expired or was never written is left
        out. Raises StoreUnavailableError when the store read fails.
        """
        messages = await self.store.fetch_sent()
        candidates = [m for m in messages if m.sent and m.message_id]
        cached = await asyncio.gather(*(self._cached_copy(m) for m in candidates))
        return [m for m in cached if m is not None]

    async def _cached_copy(self, message: Message) -> Optional[Message]:
        try:
            return await self.cache.get(message.message_id)
        except CacheError as e:
            logger.warning("cached_message_lookup_failed",
                           message_id=message.message_id, error=str(e))
            return None
