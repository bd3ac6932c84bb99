"""Shared test fixtures."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from factories import TEST_JWT_SECRET, Clock, World, new_world
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel

from supportdesk.config.settings import get_settings


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch: pytest.MonkeyPatch):
    """Deterministic settings; the cached instance is rebuilt per test."""
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("USE_DATABASE", "false")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("CACHE_VERSIONED_KEYS", raising=False)
    monkeypatch.delenv("CACHE_TTL_SECONDS", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def world() -> World:
    return new_world()


@pytest.fixture()
def app(world: World):
    """Create a fresh app wired to the seeded in-memory world."""
    from supportdesk.web.app import create_app
    from supportdesk.web.dependencies import get_collaborators

    application = create_app()
    application.dependency_overrides[get_collaborators] = lambda: world.collaborators
    return application


@pytest.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture()
async def async_engine():
    """In-memory SQLite engine with all tables created."""
    import supportdesk.models.database  # noqa: F401

    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def clock():
    """Freeze cache expiry time; advance it explicitly."""
    c = Clock()
    with patch("supportdesk.cache.backends.time.time", c):
        yield c
