"""API tests for the internal sync endpoints.

The app runs in-process over ASGITransport without its lifespan, so the
scheduler never starts. The database session is a mock and the sync
service runs against the GitHub fake and in-memory domain operations.
"""

from __future__ import annotations

import time
import uuid
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from gitsync.api.v1 import internal
from gitsync.config.settings import settings
from gitsync.core.database import get_db
from gitsync.core.result import Err, ErrorKind
from gitsync.main import app
from gitsync.services import scheduler as scheduler_module
from gitsync.services.ratelimit.store import InMemoryBudgetStore
from gitsync.services.sync.service import GitHubSyncService

from tests.helpers.fakes import InMemorySyncDatabase
from tests.helpers.github import FakeGitHub

BASE = "/api/v1/internal/github"
TOKEN = "ghp_test"


@pytest.fixture
def sync_env(cron_secret):
    github = FakeGitHub()
    data = InMemorySyncDatabase()
    owner = data.add_user(email="owner@example.com", github_token=TOKEN)
    project = data.add_project(owner)
    service = GitHubSyncService(
        InMemoryBudgetStore(),
        http_client=github.client(),
        commit_logs=data.commit_log_ops,
        branches=data.branch_ops,
        branch_commits=data.branch_commit_ops,
        projects=data.project_ops,
    )

    async def override_db():
        yield AsyncMock()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[internal.get_sync_service] = lambda: service

    with (
        patch.object(internal, "project_ops", data.project_ops),
        patch.object(internal, "resolve_project_token", AsyncMock(return_value=TOKEN)),
    ):
        yield {"github": github, "data": data, "project": project, "service": service}

    app.dependency_overrides.clear()


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth(cron_secret):
    return {"X-Cron-Secret": cron_secret}


# ═══════════════════════════════════════════════════════════════════════════
# Cron secret
# ═══════════════════════════════════════════════════════════════════════════


class TestCronSecret:
    @pytest.mark.asyncio
    async def test_missing_header(self, client, cron_secret):
        response = await client.post(f"{BASE}/poll")
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_wrong_secret(self, client, cron_secret):
        response = await client.post(f"{BASE}/poll", headers={"X-Cron-Secret": "nope"})
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_secret_not_configured(self, client):
        with patch.object(settings, "cron_secret", ""):
            response = await client.post(f"{BASE}/poll", headers={"X-Cron-Secret": "anything"})
        assert response.status_code == 503


# ═══════════════════════════════════════════════════════════════════════════
# Sync
# ═══════════════════════════════════════════════════════════════════════════


class TestSyncProject:
    @pytest.mark.asyncio
    async def test_syncs_all_branches(self, client, auth, sync_env):
        sync_env["github"].set_branch("main", ["c1", "c2"])
        project = sync_env["project"]

        response = await client.post(f"{BASE}/projects/{project.id}/sync", headers=auth)

        assert response.status_code == 200
        body = response.json()
        assert body["project_id"] == str(project.id)
        assert body["branches_discovered"] == 1
        assert body["new_commits"] == 2
        assert body["stopped_for_rate_limit"] is False
        assert len(sync_env["data"].commit_logs) == 2

    @pytest.mark.asyncio
    async def test_syncs_single_branch(self, client, auth, sync_env):
        project = sync_env["project"]
        sync_env["data"].add_branch(project, "main")
        sync_env["github"].set_branch("main", ["c1"])

        response = await client.post(
            f"{BASE}/projects/{project.id}/sync", params={"branch": "main"}, headers=auth
        )

        assert response.status_code == 200
        assert response.json()["branch"] == "main"
        assert response.json()["new_commits"] == 1

    @pytest.mark.asyncio
    async def test_unknown_project(self, client, auth, sync_env):
        response = await client.post(f"{BASE}/projects/{uuid.uuid4()}/sync", headers=auth)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_owner_without_token(self, client, auth, sync_env):
        project = sync_env["project"]

        with patch.object(internal, "resolve_project_token", AsyncMock(return_value=None)):
            response = await client.post(f"{BASE}/projects/{project.id}/sync", headers=auth)

        assert response.status_code == 422
        assert response.json()["detail"]["kind"] == "missing_config"

    @pytest.mark.asyncio
    async def test_rate_limited_sets_retry_after(self, client, auth, sync_env):
        project = sync_env["project"]
        error = Err(ErrorKind.RATE_LIMITED, "GitHub API rate limit exceeded", reset_at=int(time.time()) + 120)

        with patch.object(sync_env["service"], "sync_project", AsyncMock(return_value=error)):
            response = await client.post(f"{BASE}/projects/{project.id}/sync", headers=auth)

        assert response.status_code == 429
        assert 110 <= int(response.headers["Retry-After"]) <= 120

    @pytest.mark.asyncio
    async def test_bad_credential(self, client, auth, sync_env):
        project = sync_env["project"]
        error = Err(ErrorKind.UNAUTHORIZED, "Invalid or expired GitHub token")

        with patch.object(sync_env["service"], "sync_project", AsyncMock(return_value=error)):
            response = await client.post(f"{BASE}/projects/{project.id}/sync", headers=auth)

        assert response.status_code == 403
        assert response.json()["detail"]["kind"] == "unauthorized"


# ═══════════════════════════════════════════════════════════════════════════
# Enrich, quota and poll
# ═══════════════════════════════════════════════════════════════════════════


class TestEnrich:
    @pytest.mark.asyncio
    async def test_enriches_shallow_commits(self, client, auth, sync_env):
        project = sync_env["project"]
        sync_env["data"].add_branch(project, "main")
        sync_env["github"].set_branch("main", ["c1", "c2"])
        await sync_env["service"].sync_branch(AsyncMock(), project, TOKEN, "main", fetch_stats=False)

        response = await client.post(
            f"{BASE}/projects/{project.id}/enrich", params={"batch_size": 1}, headers=auth
        )

        assert response.status_code == 200
        assert response.json()["enriched_count"] == 1
        assert response.json()["remaining_count"] == 1

    @pytest.mark.asyncio
    async def test_batch_size_bounds(self, client, auth, sync_env):
        project = sync_env["project"]

        response = await client.post(
            f"{BASE}/projects/{project.id}/enrich", params={"batch_size": 0}, headers=auth
        )

        assert response.status_code == 422


class TestQuota:
    @pytest.mark.asyncio
    async def test_reports_allocation(self, client, auth, sync_env):
        project = sync_env["project"]

        response = await client.get(f"{BASE}/projects/{project.id}/quota", headers=auth)

        assert response.status_code == 200
        body = response.json()
        assert body["project_id"] == str(project.id)
        assert body["can_poll"] is True


class TestPoll:
    @pytest.mark.asyncio
    async def test_skipped_when_another_instance_polls(self, client, auth):
        with patch.object(scheduler_module.scheduler, "trigger_now", AsyncMock(return_value=None)):
            response = await client.post(f"{BASE}/poll", headers=auth)

        assert response.status_code == 200
        assert response.json() == {"skipped": True}

    @pytest.mark.asyncio
    async def test_returns_cycle_report(self, client, auth):
        report = {"projects_eligible": 1, "projects_polled": 1}

        with patch.object(scheduler_module.scheduler, "trigger_now", AsyncMock(return_value=report)):
            response = await client.post(f"{BASE}/poll", headers=auth)

        assert response.json() == report
