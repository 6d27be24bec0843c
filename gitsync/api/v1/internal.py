"""Internal API endpoints, protected by shared secret, not user auth.

These endpoints are called by cron jobs / external schedulers and by
operators, not by end users. They validate a shared secret via the
X-Cron-Secret header.
"""

import logging
import time
import uuid as uuid_pkg
from dataclasses import asdict
from typing import Any, NoReturn

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from gitsync.config.settings import settings
from gitsync.core.database import get_db
from gitsync.core.exceptions import NotFoundError, SyncFailedError
from gitsync.core.result import Err, ErrorKind
from gitsync.domain.project_operations import project_ops
from gitsync.models.project import Project
from gitsync.services.ratelimit.store import get_budget_store
from gitsync.services.sync.service import GitHubSyncService, resolve_project_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["internal"])


def _verify_cron_secret(x_cron_secret: str = Header(...)) -> None:
    """Validate the X-Cron-Secret header against the configured secret."""
    if not settings.cron_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Cron secret not configured",
        )
    if x_cron_secret != settings.cron_secret:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid cron secret",
        )


def get_sync_service() -> GitHubSyncService:
    return GitHubSyncService(get_budget_store())


def _raise_for(error: Err) -> NoReturn:
    retry_after = None
    if error.kind == ErrorKind.RATE_LIMITED and error.reset_at:
        retry_after = max(error.reset_at - int(time.time()), 1)
    logger.warning(f"[sync] Internal request failed: {error.kind.value}: {error.message}")
    raise SyncFailedError(error, retry_after=retry_after)


async def _load_project(db: AsyncSession, project_id: uuid_pkg.UUID) -> tuple[Project, str]:
    project = await project_ops.get(db, project_id)
    if project is None:
        raise NotFoundError("Project")

    token = await resolve_project_token(db, project)
    if not token:
        _raise_for(Err(ErrorKind.MISSING_CONFIG, "Project owner has no GitHub token"))
    return project, token


@router.post("/github/poll")
async def trigger_github_polling(
    x_cron_secret: str = Header(...),
) -> dict[str, Any]:
    """
    Run one GitHub polling cycle now.

    Returns {"skipped": true} when another instance holds the polling lock.
    """
    _verify_cron_secret(x_cron_secret)

    from gitsync.services.scheduler import GITHUB_POLLING_JOB_ID, scheduler

    report = await scheduler.trigger_now(GITHUB_POLLING_JOB_ID)
    return report if report is not None else {"skipped": True}


@router.post("/github/projects/{project_id}/sync")
async def sync_project(
    project_id: uuid_pkg.UUID,
    branch: str | None = Query(default=None, description="Sync only this branch"),
    fetch_stats: bool = Query(default=True, description="Fetch per-commit stats"),
    x_cron_secret: str = Header(...),
    db: AsyncSession = Depends(get_db),
    service: GitHubSyncService = Depends(get_sync_service),
) -> dict[str, Any]:
    """
    Sync a project's commits from GitHub.

    Without `branch`, runs branch discovery and then every known branch.
    With `branch`, syncs that branch only (it must already be discovered).
    """
    _verify_cron_secret(x_cron_secret)
    project, token = await _load_project(db, project_id)

    if branch:
        await service.allocator_for(token).register_project(project.id)
        branch_result = await service.sync_branch(db, project, token, branch, fetch_stats=fetch_stats)
        if isinstance(branch_result, Err):
            _raise_for(branch_result)
        return asdict(branch_result.value)

    project_result = await service.sync_project(db, project, token, fetch_stats=fetch_stats)
    if isinstance(project_result, Err):
        _raise_for(project_result)

    report = project_result.value
    return {
        **asdict(report),
        "new_commits": report.new_commits,
        "stopped_for_rate_limit": report.stopped_for_rate_limit,
    }


@router.post("/github/projects/{project_id}/enrich")
async def enrich_project_stats(
    project_id: uuid_pkg.UUID,
    batch_size: int | None = Query(default=None, ge=1, le=500),
    x_cron_secret: str = Header(...),
    db: AsyncSession = Depends(get_db),
    service: GitHubSyncService = Depends(get_sync_service),
) -> dict[str, Any]:
    """Backfill diff stats for commits stored without them."""
    _verify_cron_secret(x_cron_secret)
    project, token = await _load_project(db, project_id)

    result = await service.enrich_stats(db, project, token, batch_size=batch_size)
    if isinstance(result, Err):
        _raise_for(result)
    return asdict(result.value)


@router.get("/github/projects/{project_id}/quota")
async def get_project_quota(
    project_id: uuid_pkg.UUID,
    x_cron_secret: str = Header(...),
    db: AsyncSession = Depends(get_db),
    service: GitHubSyncService = Depends(get_sync_service),
) -> dict[str, Any]:
    """Rate budget and fair-share allocation for the project's credential."""
    _verify_cron_secret(x_cron_secret)
    project, token = await _load_project(db, project_id)
    return await service.quota_summary(project, token)
