"""Root conftest: test infrastructure for all gitsync tests.

Provides:
- Safety guard: require GITSYNC_TESTS_ENABLED=1 for non-local DB tests
- Transaction-rollback db_session fixture (integration tests)
- In-memory budget store and fake GitHub fixtures (unit tests)
- Autouse guard against real GitHub API calls
"""

from __future__ import annotations

import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from gitsync.config.settings import settings

from tests.helpers.fakes import InMemorySyncDatabase
from tests.helpers.github import FakeGitHub

# ─────────────────────────────────────────────────────────────────────────────
# Safety Guard
# ─────────────────────────────────────────────────────────────────────────────


def pytest_configure(config: pytest.Config) -> None:
    """Safety check: require explicit opt-in for remote DB tests.

    Unit tests (fakes and mocks) run without this flag. Integration tests
    against a database that is not on localhost require GITSYNC_TESTS_ENABLED=1.
    """
    config.addinivalue_line("markers", "integration: PostgreSQL integration tests (transaction rollback)")

    if any("integration" in str(arg) for arg in config.invocation_params.args):
        db_url = settings.database_url_direct
        if "localhost" not in db_url and not os.getenv("GITSYNC_TESTS_ENABLED"):
            pytest.exit(
                "SAFETY: Set GITSYNC_TESTS_ENABLED=1 to confirm running tests "
                "against a non-local database.",
                returncode=1,
            )


# ─────────────────────────────────────────────────────────────────────────────
# Transaction-Rollback Engine (uses DIRECT connection, not pooler)
# ─────────────────────────────────────────────────────────────────────────────

# PgBouncer transaction pooling breaks SAVEPOINTs. Use the direct URL.
TEST_ENGINE = create_async_engine(
    settings.database_url_direct,
    echo=False,
    pool_pre_ping=True,
    pool_size=3,
    max_overflow=2,
    connect_args={
        "command_timeout": 30,
    },
)


@pytest.fixture
async def db_session():
    """Database session wrapped in a transaction that is ALWAYS rolled back.

    Uses SAVEPOINT so code under test can call commit() internally without
    actually committing; the outer transaction absorbs it.
    """
    async with TEST_ENGINE.connect() as conn:
        trans = await conn.begin()
        session = AsyncSession(bind=conn, expire_on_commit=False)
        await conn.begin_nested()

        @event.listens_for(session.sync_session, "after_transaction_end")
        def restart_savepoint(session_sync, transaction):
            """Restart the SAVEPOINT after each nested transaction ends."""
            if transaction.nested and not transaction._parent.nested:
                session_sync.begin_nested()

        try:
            yield session
        finally:
            await session.close()
            await trans.rollback()


# ─────────────────────────────────────────────────────────────────────────────
# Sync Fixtures (unit tests)
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def budget_store():
    """Fresh process-local rate budget store."""
    from gitsync.services.ratelimit.store import InMemoryBudgetStore

    return InMemoryBudgetStore()


@pytest.fixture
def github():
    """In-process GitHub serving the acme/widgets repository."""
    return FakeGitHub()


@pytest.fixture
def sync_db():
    """In-memory stand-in for the commit log, branch and project tables."""
    return InMemorySyncDatabase()


@pytest.fixture
def db():
    """Session mock for code paths that only commit or roll back."""
    return AsyncMock()


@pytest.fixture
def cron_secret():
    """Configure the internal API shared secret for the duration of a test."""
    with patch.object(settings, "cron_secret", "test-cron-secret"):
        yield "test-cron-secret"


# ─────────────────────────────────────────────────────────────────────────────
# External Service Guards (autouse)
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def block_github_network():
    """SAFETY: fail any GitHub request that does not go through a fake client."""
    guard = MagicMock()
    guard.get = AsyncMock(side_effect=AssertionError("Unexpected request to the real GitHub API"))

    with patch("gitsync.services.github.client.get_github_client", return_value=guard):
        yield guard


@pytest.fixture(autouse=True)
def reset_budget_store():
    """Drop the process-wide budget store between tests."""
    from gitsync.services.ratelimit import store as store_module

    yield
    store_module._store = None
