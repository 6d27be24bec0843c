"""Integration test conftest: DB rollback fixtures.

Inherits the root conftest.py fixtures (db_session, etc.) and adds
integration-specific markers and seed rows.

All tests in this directory use the transaction-rollback pattern:
real SQL executes, but nothing persists. They need a migrated PostgreSQL
database and only run with GITSYNC_INTEGRATION_TESTS=1.
"""

import os
import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from gitsync.models.project import Project
from gitsync.models.user import User


@pytest.fixture(autouse=True)
def _mark_integration(request):
    """Auto-mark all tests in this directory as integration."""
    request.node.add_marker(pytest.mark.integration)
    if not os.getenv("GITSYNC_INTEGRATION_TESTS"):
        pytest.skip("Set GITSYNC_INTEGRATION_TESTS=1 to run against PostgreSQL")


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    user = User(email=f"owner-{uuid.uuid4().hex[:8]}@example.com", github_username="owner")
    db_session.add(user)
    await db_session.flush()
    return user


@pytest.fixture
async def test_project(db_session: AsyncSession, test_user: User) -> Project:
    project = Project(
        name="widgets",
        repository_url="https://github.com/acme/widgets",
        user_id=test_user.id,
    )
    db_session.add(project)
    await db_session.flush()
    return project
