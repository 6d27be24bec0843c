"""
Scheduled GitHub polling for every connected project.

One cycle walks the projects whose repository is configured and whose owner
has a GitHub token, oldest poll first. For each project it:

1. Registers the project with its credential's quota allocator and skips it
   when the fair share is too small or the backoff interval has not passed
2. Stamps github_last_polled_at so an overlapping cycle skips it
3. Re-discovers branches every github_branch_check_interval_seconds
4. Syncs up to github_max_branches_per_poll branches
5. Backfills stats for shallow commits if budget is left

Each project commits on its own. A failing project is logged and rolled
back; the projects after it are re-read by id and the cycle moves on.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from gitsync.config import settings
from gitsync.core.result import Err
from gitsync.domain.branch_operations import BranchOperations, branch_ops
from gitsync.domain.project_operations import ProjectOperations, project_ops
from gitsync.models.project import Project
from gitsync.services.sync.service import GitHubSyncService, resolve_project_token

logger = logging.getLogger(__name__)


@dataclass
class PollingReport:
    projects_eligible: int = 0
    projects_polled: int = 0
    projects_skipped: int = 0
    projects_failed: int = 0
    new_commits: int = 0
    enriched_commits: int = 0
    duration_seconds: float = 0.0


def _utcnow() -> datetime:
    return datetime.now(UTC)


def min_poll_gap(multiplier: float = 1.0) -> timedelta:
    """Minimum time between polls of one project: 50s for the default 60s interval."""
    return timedelta(seconds=settings.github_poll_interval_seconds * 50 / 60 * multiplier)


class GitHubPoller:
    """Runs one polling cycle over all eligible projects."""

    def __init__(
        self,
        service: GitHubSyncService,
        projects: ProjectOperations = project_ops,
        branches: BranchOperations = branch_ops,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.service = service
        self.projects = projects
        self.branches = branches
        self._clock = clock

    async def poll_all(self, db: AsyncSession) -> PollingReport:
        start = time.monotonic()
        now = self._clock()
        report = PollingReport()

        eligible = await self.projects.get_pollable(db, polled_before=now - min_poll_gap())
        report.projects_eligible = len(eligible)

        if not eligible:
            logger.info("[scheduler] GitHub polling: no eligible projects")
            return report

        logger.info(f"[scheduler] GitHub polling: {len(eligible)} eligible projects")

        loaded = {project.id: project for project in eligible}
        rolled_back = False

        for project_id in list(loaded):
            try:
                # A rollback expires every instance loaded before it: re-read by id
                project = await self.projects.get(db, project_id) if rolled_back else loaded[project_id]
                if project is None:
                    report.projects_skipped += 1
                    continue
                polled = await self.poll_project(db, project, now, report)
                await db.commit()
            except Exception as e:
                await db.rollback()
                rolled_back = True
                report.projects_failed += 1
                logger.exception(f"[scheduler] Error polling project {project_id}: {e}")
                continue

            if polled:
                report.projects_polled += 1
            else:
                report.projects_skipped += 1

        report.duration_seconds = round(time.monotonic() - start, 2)
        return report

    async def poll_project(
        self,
        db: AsyncSession,
        project: Project,
        now: datetime,
        report: PollingReport,
    ) -> bool:
        """Poll one project. Returns False when it was skipped."""
        token = await resolve_project_token(db, project, projects=self.projects)
        if not token:
            logger.warning(f"[scheduler] No GitHub token available for project {project.id}")
            return False

        allocator = self.service.allocator_for(token)
        await allocator.register_project(project.id)
        quota = await allocator.quota_for(project.id)

        if not quota.can_poll:
            logger.info(
                f"[scheduler] Skipping project {project.id}: fair share {quota.fair_share} "
                f"across {quota.project_count} projects is below the minimum"
            )
            return False

        backoff = min_poll_gap(quota.poll_multiplier)
        if project.github_last_polled_at is not None and now - project.github_last_polled_at < backoff:
            logger.debug(
                f"[scheduler] Skipping project {project.id}: backing off "
                f"(x{quota.poll_multiplier:.1f} at {quota.consumption_percent}% consumed)"
            )
            return False

        await self.projects.mark_polled(db, project, now)

        discover = await self.should_check_branches(db, project, now)
        synced = await self.service.sync_project(
            db,
            project,
            token,
            max_branches=settings.github_max_branches_per_poll,
            discover=discover,
        )
        if isinstance(synced, Err):
            logger.error(f"[scheduler] Sync failed for project {project.id}: {synced.message}")
            return True

        report.new_commits += synced.value.new_commits
        if synced.value.stopped_for_rate_limit:
            logger.info(f"[scheduler] Project {project.id} hit the rate budget, skipping enrichment")
            return True

        enriched = await self.service.enrich_stats(db, project, token)
        if isinstance(enriched, Err):
            logger.warning(f"[scheduler] Enrichment failed for project {project.id}: {enriched.message}")
        else:
            report.enriched_commits += enriched.value.enriched_count

        return True

    async def should_check_branches(self, db: AsyncSession, project: Project, now: datetime) -> bool:
        """Discover on first sync, then every github_branch_check_interval_seconds."""
        last_checked = await self.branches.last_checked_at(db, project.id)
        if last_checked is None:
            return True
        return now - last_checked >= timedelta(seconds=settings.github_branch_check_interval_seconds)
