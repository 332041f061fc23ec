# tests/conftest.py

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from tasklist.cache.layer import UserTaskCache
from tasklist.core.config import Settings
from tasklist.database import create_db_and_tables, create_engine, create_session_factory
from tasklist.main import create_app
from tasklist.services.audit import AuditSink
from tasklist.services.store import TaskStore
from tasklist.services.task_service import TaskService

from .fakes import FakeClock, RecordingAudit, SteppingUtcClock


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'tasks.sqlite'}",
        jwt_secret="test-secret-0123456789abcdef0123456789",
        cache_ttl_seconds=30,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
async def engine(settings: Settings):
    engine = create_engine(settings.database_url)
    await create_db_and_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture()
def store(session_factory) -> TaskStore:
    return TaskStore(session_factory, clock=SteppingUtcClock())


@pytest.fixture()
def cache(clock: FakeClock) -> UserTaskCache:
    return UserTaskCache(ttl_seconds=30, clock=clock)


@pytest.fixture()
def audit() -> RecordingAudit:
    return RecordingAudit()


@pytest.fixture()
def service(store: TaskStore, cache: UserTaskCache, audit: RecordingAudit) -> TaskService:
    """
    TaskService on a real SQLite store with a recording audit sink.

    The store clock steps one second per call, so list order is predictable.
    """
    return TaskService(store, cache, audit)


@pytest.fixture()
def sink(session_factory) -> AuditSink:
    return AuditSink(session_factory, timeout=2, recent_limit=50)


@pytest.fixture()
async def app(settings: Settings, clock: FakeClock):
    app = create_app(settings, cache_clock=clock)
    await create_db_and_tables(app.state.engine)
    yield app
    await app.state.engine.dispose()


@pytest.fixture()
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def signup(client: httpx.AsyncClient, email: str, password: str = "secret123") -> dict:
    resp = await client.post("/api/signup", json={"email": email, "password": password})
    assert resp.status_code == 201, resp.text
    body = resp.json()
    return {"id": body["user"]["id"], "headers": {"Authorization": f"Bearer {body['token']}"}}


@pytest.fixture()
async def alice(client) -> dict:
    return await signup(client, "alice@example.com")


@pytest.fixture()
async def bob(client) -> dict:
    return await signup(client, "bob@example.com")
