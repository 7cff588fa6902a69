"""
FastAPI Application — control surface for the dispatch engine.

Provides:
- POST /api/v1/messages/start   start the polling loop
- POST /api/v1/messages/stop    stop it (in-flight sends still finish)
- GET  /api/v1/messages/sent    sent messages, served from the cache
- GET  /health                  liveness plus the processing flag

Run:
    uvicorn api.main:app --port 8080
"""
from __future__ import annotations

import structlog
from contextlib import asynccontextmanager

# Load .env before any config is read
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from cache.backend import create_kv_backend
from cache.message_cache import MessageCache
from cache.rate_limiter import FixedWindowRateLimiter
from channels.webhook import WebhookClient
from config.settings import get_settings
from core.engine import DispatchEngine
from core.errors import AlreadyRunningError, StoreUnavailableError
from core.retry import RetryPolicy
from database.session import close_db, init_db
from database.store_factory import create_store
from models.schemas import Message, StatusResponse

logger = structlog.get_logger()

# ──────────────────────────────────────────────────────────────
#  Bootstrap
# ──────────────────────────────────────────────────────────────

_settings_boot = get_settings()

message_store = create_store({"store_backend": _settings_boot.database.store_backend})
kv_backend = create_kv_backend({
    "backend": _settings_boot.cache.backend,
    "redis_url": _settings_boot.cache.redis_url,
    "pool_size": _settings_boot.cache.pool_size,
})
message_cache = MessageCache(
    kv_backend,
    ttl_s=_settings_boot.cache.message_ttl_s,
    key_prefix=_settings_boot.cache.message_key_prefix,
    max_retries=_settings_boot.cache.max_retries,
    retry_backoff_s=_settings_boot.cache.retry_backoff_s,
)
rate_limiter = FixedWindowRateLimiter(
    kv_backend,
    max_per_window=_settings_boot.cache.rate_limit_max,
    window_s=_settings_boot.cache.rate_limit_window_s,
    key_prefix=_settings_boot.cache.rate_limit_prefix,
    max_retries=_settings_boot.cache.max_retries,
    retry_backoff_s=_settings_boot.cache.retry_backoff_s,
)
webhook_client = WebhookClient(
    _settings_boot.dispatch.webhook_url,
    timeout_s=_settings_boot.dispatch.request_timeout_s,
)

engine = DispatchEngine(
    store=message_store,
    transport=webhook_client,
    cache=message_cache,
    rate_limiter=rate_limiter,
    batch_size=_settings_boot.dispatch.batch_size,
    poll_interval_s=_settings_boot.dispatch.poll_interval_s,
    max_workers=_settings_boot.dispatch.max_workers,
    retry_policy=RetryPolicy(
        max_attempts=_settings_boot.dispatch.max_retries,
        backoff_s=_settings_boot.dispatch.retry_backoff_s,
    ),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    if settings.database.store_backend == "sql":
        await init_db()

    # The cache is an accelerator: run without it rather than refuse to start
    try:
        await kv_backend.connect()
    except Exception as e:
        logger.warning("kv_backend_unavailable", backend=settings.cache.backend, error=str(e))

    logger.info("message_dispatcher_started",
                store_backend=settings.database.store_backend,
                cache_backend=type(kv_backend).__name__,
                webhook_url=settings.dispatch.webhook_url)
    yield

    await engine.shutdown(timeout_s=settings.dispatch.shutdown_timeout_s)
    await webhook_client.close()
    await kv_backend.close()
    if settings.database.store_backend == "sql":
        await close_db()
    logger.info("message_dispatcher_stopped")


# ──────────────────────────────────────────────────────────────
#  App
# ──────────────────────────────────────────────────────────────

app = FastAPI(
    title="Messaging System API",
    description="An automatic message sending system that processes pending messages every tick.",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health():
    return {"status": "ok", "processing": engine.is_running}


@app.post(
    "/api/v1/messages/start",
    response_model=StatusResponse,
    responses={400: {"model": StatusResponse}},
    tags=["Messages"],
)
async def start_processing():
    """Start the automatic message sending process."""
    try:
        await engine.start()
    except AlreadyRunningError as e:
        return JSONResponse(status_code=400, content={"message": str(e)})
    return StatusResponse(message="Message processing started")


@app.post("/api/v1/messages/stop", response_model=StatusResponse, tags=["Messages"])
async def stop_processing():
    """Stop the automatic message sending process."""
    await engine.stop()
    return StatusResponse(message="Message processing stopped")


@app.get(
    "/api/v1/messages/sent",
    response_model=list[Message],
    responses={500: {"model": StatusResponse}},
    tags=["Messages"],
)
async def get_sent_messages():
    """List messages that have been sent and are still cached."""
    try:
        return await engine.list_sent()
    except StoreUnavailableError as e:
        logger.error("sent_messages_fetch_failed", error=str(e))
        return JSONResponse(status_code=500, content={"message": str(e)})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8080)
