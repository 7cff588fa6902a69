"""
Tests for the HTTP control surface.

The app's module-level engine is swapped for one wired to in-memory
collaborators; the lifespan is not run.
"""
import httpx
import pytest
import pytest_asyncio

import api.main
from core.errors import StoreUnavailableError
from database.store_memory import InMemoryMessageStore
from helpers import wait_until


class DownStore(InMemoryMessageStore):
    async def fetch_sent(self):
        raise StoreUnavailableError("error fetching sent messages: database is down")


@pytest.fixture
def dispatch_engine(make_engine, transport, monkeypatch):
    engine = make_engine(transport)
    monkeypatch.setattr(api.main, "engine", engine)
    return engine


@pytest_asyncio.fixture
async def client(dispatch_engine):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=api.main.app), base_url="http://test",
    ) as c:
        yield c


@pytest.mark.asyncio
async def test_health(client, dispatch_engine):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "processing": False}


@pytest.mark.asyncio
async def test_start_then_start_again(client, dispatch_engine):
    resp = await client.post("/api/v1/messages/start")
    assert resp.status_code == 200
    assert resp.json() == {"message": "Message processing started"}
    assert dispatch_engine.is_running

    resp = await client.post("/api/v1/messages/start")
    assert resp.status_code == 400
    assert resp.json() == {"message": "message processing is already running"}

    health = await client.get("/health")
    assert health.json()["processing"] is True


@pytest.mark.asyncio
async def test_stop(client, dispatch_engine):
    await client.post("/api/v1/messages/start")
    resp = await client.post("/api/v1/messages/stop")
    assert resp.status_code == 200
    assert resp.json() == {"message": "Message processing stopped"}
    assert dispatch_engine.is_running is False


@pytest.mark.asyncio
async def test_stop_when_idle_is_ok(client):
    resp = await client.post("/api/v1/messages/stop")
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_started_engine_sends_pending(client, store, transport):
    await store.create("+905551111111", "Insider - Project")
    await store.create("+905552222222", "Insider - Project")

    await client.post("/api/v1/messages/start")
    await wait_until(lambda: store.stats()["sent"] == 2)
    await client.post("/api/v1/messages/stop")

    resp = await client.get("/api/v1/messages/sent")
    assert resp.status_code == 200
    body = resp.json()
    assert [m["to"] for m in body] == ["+905551111111", "+905552222222"]
    assert all(m["sent"] and m["message_id"] for m in body)


@pytest.mark.asyncio
async def test_sent_list_empty(client):
    resp = await client.get("/api/v1/messages/sent")
    assert resp.status_code == 200
    assert resp.json() == []


@pytest.mark.asyncio
async def test_sent_list_store_failure_is_500(make_engine, transport, monkeypatch):
    monkeypatch.setattr(api.main, "engine", make_engine(transport, store=DownStore()))
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=api.main.app), base_url="http://test",
    ) as c:
        resp = await c.get("/api/v1/messages/sent")

    assert resp.status_code == 500
    assert "database is down" in resp.json()["message"]
