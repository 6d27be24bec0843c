"""DB integration tests for the polling cycle.

Runs poll_all on a real AsyncSession so a failing project's rollback
expires the rows loaded before it. GitHub sync itself is stubbed; the
project stamps and branch lookups are real SQL.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gitsync.core.result import Ok
from gitsync.models.project import Project
from gitsync.models.user import User
from gitsync.services.ratelimit.store import InMemoryBudgetStore
from gitsync.services.sync import polling
from gitsync.services.sync.enrichment import EnrichmentResult
from gitsync.services.sync.polling import GitHubPoller
from gitsync.services.sync.service import GitHubSyncService, ProjectSyncReport

NOW = datetime.now(UTC).replace(microsecond=0)


async def _seed_project(db: AsyncSession, owner: User, name: str, polled_at: datetime) -> uuid.UUID:
    project = Project(
        name=name,
        repository_url=f"https://github.com/acme/{name}",
        user_id=owner.id,
        github_last_polled_at=polled_at,
    )
    db.add(project)
    await db.flush()
    return project.id


async def _polled_at(db: AsyncSession, project_id: uuid.UUID) -> datetime | None:
    result = await db.execute(select(Project.github_last_polled_at).where(Project.id == project_id))
    return result.scalar_one()


class TestPollAllRollback:
    async def test_project_after_a_failure_is_polled(self, db_session: AsyncSession):
        owner = User(
            email=f"owner-{uuid.uuid4().hex[:8]}@example.com",
            github_username="owner",
            github_token="encrypted-token",
        )
        db_session.add(owner)
        await db_session.flush()
        failing_id = await _seed_project(db_session, owner, "failing", NOW - timedelta(hours=2))
        healthy_id = await _seed_project(db_session, owner, "healthy", NOW - timedelta(hours=1))
        await db_session.commit()

        service = GitHubSyncService(InMemoryBudgetStore())
        poller = GitHubPoller(service, clock=lambda: NOW)
        synced = []

        async def sync_project(db, project, *args, **kwargs):
            synced.append(project.id)
            if project.id == failing_id:
                raise RuntimeError("boom")
            return Ok(ProjectSyncReport(project.id))

        with (
            patch.object(polling, "resolve_project_token", AsyncMock(return_value="ghp_test")),
            patch.object(service, "sync_project", side_effect=sync_project),
            patch.object(service, "enrich_stats", AsyncMock(return_value=Ok(EnrichmentResult(0, 0, False)))),
        ):
            report = await poller.poll_all(db_session)

        assert synced.index(failing_id) < synced.index(healthy_id)
        assert report.projects_failed == 1
        assert await _polled_at(db_session, healthy_id) == NOW
        assert await _polled_at(db_session, failing_id) == NOW - timedelta(hours=2)
