"""Shared test fixtures: testcontainers for PostgreSQL, settings isolation.

Integration tests use a real PostgreSQL container managed by
testcontainers-python.  The container is session-scoped (started once per
test run); each test gets a fresh engine and an emptied workspace table.

Requires Docker to be available.  Tests needing the container should be
marked with ``@pytest.mark.integration``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator

import pytest
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.pool import NullPool
from testcontainers.postgres import PostgresContainer

from preview_studio.orchestrator.db.engine import create_engine, create_tables
from preview_studio.orchestrator.db.tables import WorkspaceRow
from preview_studio.orchestrator.settings import get_settings


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Never let a developer's PREVIEW_* environment leak into tests."""
    monkeypatch.setenv("PREVIEW_DATABASE_URL", "")
    monkeypatch.setenv("PREVIEW_GITHUB_TOKEN", "test-token")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Session-scoped: container (started once, shared across all tests)
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def pg_container() -> Iterator[PostgresContainer]:
    """Start a PostgreSQL 17 container for the test session."""
    with PostgresContainer(
        image="postgres:17",
        username="test",
        password="test",
        dbname="preview_studio_test",
        driver="psycopg",
    ) as pg:
        yield pg


@pytest.fixture(scope="session")
def pg_url(pg_container: PostgresContainer) -> str:
    """PostgreSQL URL (psycopg3 dialect)."""
    return pg_container.get_connection_url()


# ---------------------------------------------------------------------------
# Function-scoped: engine with schema, table emptied after each test
# ---------------------------------------------------------------------------


@pytest.fixture
async def async_engine(pg_url: str) -> AsyncIterator[AsyncEngine]:
    """Async engine bound to the current test's event loop.

    ``NullPool`` so no connection outlives the loop that opened it.
    """
    engine = create_engine(pg_url, poolclass=NullPool)
    await create_tables(engine)
    yield engine
    async with engine.begin() as conn:
        await conn.execute(delete(WorkspaceRow))
    await engine.dispose()
