"""Root conftest — shared settings, in-memory database and gateway test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database with all tables created
    - db_manager singleton patched so get_db() and the manager share that database
    - The "reports" route group is replaced by an echo router that exposes what
      the pipeline handed to the handler (query, decoded body, client IP)

Design Decisions:
    - SQLite in-memory via aiosqlite: no MySQL needed for pipeline tests
    - make_client builds a fresh app per call so settings can vary per test
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("NODE_ENV", "test")

from contextlib import AsyncExitStack

import pytest
from fastapi import APIRouter, HTTPException, Request
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine,
)
from sqlalchemy.pool import StaticPool

import vecinity.infrastructure.database as db_module
from vecinity.api.dependencies import ContextDep
from vecinity.config import Settings
from vecinity.db.base import Base
from vecinity.infrastructure.database import DatabaseSessionManager
from vecinity.main import create_app


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        node_env="test",
        host="127.0.0.1",
        port=0,
        upload_dir=tmp_path / "uploads",
        log_format="text",
        rate_limit_max=1000,
        cors_origin="http://localhost:5173,https://viciniti.netlify.app",
    )


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def db_manager(test_engine, test_session_factory):
    """DatabaseSessionManager bound to the in-memory engine."""
    manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    manager.engine = test_engine
    manager._session_factory = test_session_factory
    return manager


@pytest.fixture
def echo_router():
    """Route group that records calls and echoes what the pipeline produced."""
    router = APIRouter()
    router.calls = []

    @router.get("/echo")
    async def echo_query(request: Request, context: ContextDep):
        router.calls.append(request.url.path)
        return {
            "query": dict(request.query_params),
            "query_items": request.query_params.multi_items(),
            "client_ip": context.client_ip,
            "polluted_query": context.polluted_query,
        }

    @router.post("/echo")
    async def echo_body(request: Request, context: ContextDep):
        router.calls.append(request.url.path)
        raw = await request.body()
        return {
            "body": context.body,
            "raw": raw.decode("utf-8"),
            "polluted_body": context.polluted_body,
        }

    @router.get("/boom")
    async def boom():
        raise RuntimeError("kaboom: internal detail")

    @router.get("/forbidden")
    async def forbidden():
        raise HTTPException(status_code=403, detail="Acceso denegado")

    @router.get("/items/{item_id}")
    async def get_item(item_id: int):
        return {"id": item_id}

    @router.get("/large")
    async def large():
        return {"items": [{"index": i, "text": "vecino " * 5} for i in range(200)]}

    return router


@pytest.fixture
async def make_client(settings, echo_router, db_manager):
    """Factory: make_client(client_ip=..., **settings_overrides) -> AsyncClient."""
    stack = AsyncExitStack()
    original_manager = db_module.db_manager
    db_module.db_manager = db_manager

    async def _make(client_ip: str = "127.0.0.1", **overrides) -> AsyncClient:
        app_settings = settings.model_copy(update=overrides) if overrides else settings
        app = create_app(app_settings, routers={"reports": echo_router})
        transport = ASGITransport(app=app, client=(client_ip, 123))
        return await stack.enter_async_context(
            AsyncClient(transport=transport, base_url="http://test"),
        )

    yield _make
    await stack.aclose()
    db_module.db_manager = original_manager


@pytest.fixture
async def client(make_client):
    return await make_client()


class StubDatabase:
    """In-memory DatabaseCollaborator recording the calls it receives."""

    def __init__(self):
        self.connection_ok = True
        self.sync_ok = True
        self.calls: list[str] = []
        self.seed_rows: list[str] = []

    async def test_connection(self) -> bool:
        self.calls.append("test_connection")
        return self.connection_ok

    async def sync_all_models(self, force: bool = False) -> bool:
        self.calls.append(f"sync_all_models(force={force})")
        return self.sync_ok

    async def create_initial_data(self) -> None:
        self.calls.append("create_initial_data")
        for name in ("Alumbrado público", "Basura"):
            if name not in self.seed_rows:
                self.seed_rows.append(name)


@pytest.fixture
def stub_database():
    return StubDatabase()
