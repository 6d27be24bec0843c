"""
GitHub sync orchestration.

Wires the rate budget, the GitHub client and the sync engines together for
one project and credential, and persists what the engines produce:

    discover_branches -> sync_branch (per branch) -> enrich_stats

All shared state goes through the injected RateBudgetStore, so the same
service can run from the scheduler and from the internal API at once.
"""

import logging
import uuid as uuid_pkg
from dataclasses import dataclass, field
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from gitsync.core.encryption import token_encryption
from gitsync.core.result import Err, Ok, Result
from gitsync.domain.branch_operations import (
    BranchCommitOperations,
    BranchOperations,
    branch_commit_ops,
    branch_ops,
)
from gitsync.domain.commit_log_operations import CommitLogOperations, commit_log_ops
from gitsync.domain.project_operations import ProjectOperations, project_ops
from gitsync.models.project import Project
from gitsync.services.github.client import GitHubSyncClient
from gitsync.services.ratelimit.quota import CallBudget, QuotaAllocator
from gitsync.services.ratelimit.store import RateBudgetStore
from gitsync.services.ratelimit.tracker import RateBudgetTracker
from gitsync.services.sync.branches import BranchDiscoveryEngine, BranchOwnership
from gitsync.services.sync.commits import CommitSyncEngine
from gitsync.services.sync.enrichment import EnrichmentResult, StatsEnrichmentEngine
from gitsync.services.sync.identity import IdentityResolver

logger = logging.getLogger(__name__)

# Expiry frees the lock of a sync run that crashed
SYNC_LOCK_TTL_SECONDS = 600


@dataclass
class BranchSyncReport:
    branch: str
    new_commits: int = 0
    deferred_commits: int = 0
    total_commits: int = 0
    linked: int = 0
    failed_count: int = 0
    stopped_for_rate_limit: bool = False
    skipped: bool = False  # Another run holds this branch's sync lock


@dataclass
class ProjectSyncReport:
    project_id: uuid_pkg.UUID
    branches_discovered: int = 0
    branches: list[BranchSyncReport] = field(default_factory=list)
    discovery_error: str | None = None

    @property
    def stopped_for_rate_limit(self) -> bool:
        return any(b.stopped_for_rate_limit for b in self.branches)

    @property
    def new_commits(self) -> int:
        return sum(b.new_commits for b in self.branches)


@dataclass
class _Context:
    tracker: RateBudgetTracker
    allocator: QuotaAllocator
    client: GitHubSyncClient


class GitHubSyncService:
    """Runs branch discovery, commit sync and stats enrichment for projects."""

    def __init__(
        self,
        store: RateBudgetStore,
        http_client: httpx.AsyncClient | None = None,
        commit_logs: CommitLogOperations = commit_log_ops,
        branches: BranchOperations = branch_ops,
        branch_commits: BranchCommitOperations = branch_commit_ops,
        projects: ProjectOperations = project_ops,
    ) -> None:
        self.store = store
        self.http_client = http_client
        self.commit_logs = commit_logs
        self.branches = branches
        self.branch_commits = branch_commits
        self.projects = projects

    def _context(self, token: str | None) -> _Context:
        tracker = RateBudgetTracker(token, self.store)
        return _Context(
            tracker=tracker,
            allocator=QuotaAllocator(tracker, self.store),
            client=GitHubSyncClient(token, tracker, http_client=self.http_client),
        )

    def allocator_for(self, token: str | None) -> QuotaAllocator:
        return self._context(token).allocator

    async def _resolver(self, db: AsyncSession, project: Project) -> IdentityResolver:
        return await IdentityResolver.for_project(db, project, projects=self.projects)

    async def discover_branches(
        self,
        db: AsyncSession,
        project: Project,
        token: str | None,
        resolver: IdentityResolver | None = None,
    ) -> Result[list[BranchOwnership]]:
        ctx = self._context(token)
        engine = BranchDiscoveryEngine(
            ctx.client,
            resolver or await self._resolver(db, project),
            branches=self.branches,
        )
        return await engine.discover(db, project)

    async def sync_branch(
        self,
        db: AsyncSession,
        project: Project,
        token: str | None,
        branch_name: str,
        fetch_stats: bool = True,
        budget: CallBudget | None = None,
        resolver: IdentityResolver | None = None,
    ) -> Result[BranchSyncReport]:
        """
        Sync one branch and persist the result.

        New commits are inserted (full rows, plus shallow rows for commits
        deferred by the budget), then every commit seen on the branch that
        exists in storage is linked to it. A run already holding this
        branch's lock makes this call a skipped no-op.
        """
        lock_key = f"github_commit_refresh_lock:{project.id}:{branch_name}"
        if not await self.store.set_if_absent(lock_key, 1, ttl=SYNC_LOCK_TTL_SECONDS):
            logger.info(f"[sync] Branch {branch_name} of project {project.id} is already syncing, skipping")
            return Ok(BranchSyncReport(branch=branch_name, skipped=True))

        try:
            ctx = self._context(token)
            if budget is None:
                budget = await ctx.allocator.budget_for(project.id)

            engine = CommitSyncEngine(
                ctx.client,
                resolver or await self._resolver(db, project),
                commit_logs=self.commit_logs,
                branches=self.branches,
            )
            synced = await engine.sync(db, project, branch_name, budget=budget, fetch_stats=fetch_stats)
            if isinstance(synced, Err):
                return synced

            outcome = synced.value
            rows = outcome.records + engine.shallow_records(project.id, outcome.deferred)
            inserted = await self.commit_logs.bulk_upsert(db, rows)

            linked = 0
            db_branch = await self.branches.get_by_name(db, project.id, branch_name)
            if db_branch is not None and outcome.all_shas:
                linked = await self.branch_commits.link_commits_to_branch(db, db_branch.id, outcome.all_shas)

            logger.info(
                f"[sync] Branch {branch_name}: {inserted} new commits stored "
                f"({len(outcome.deferred)} without stats), {linked} linked of "
                f"{len(outcome.all_shas)} seen"
            )
            return Ok(
                BranchSyncReport(
                    branch=branch_name,
                    new_commits=inserted,
                    deferred_commits=len(outcome.deferred),
                    total_commits=len(outcome.all_shas),
                    linked=linked,
                    failed_count=outcome.failed_count,
                    stopped_for_rate_limit=outcome.stopped_for_rate_limit,
                )
            )
        finally:
            await self.store.delete(lock_key)

    async def sync_project(
        self,
        db: AsyncSession,
        project: Project,
        token: str | None,
        max_branches: int | None = None,
        fetch_stats: bool = True,
        discover: bool = True,
    ) -> Result[ProjectSyncReport]:
        """
        Discover branches, then sync each one sequentially.

        One call budget covers the whole run. Branch failures are logged and
        the run moves on; authorization and configuration failures abort it.
        """
        ctx = self._context(token)
        await ctx.allocator.register_project(project.id)
        resolver = await self._resolver(db, project)
        report = ProjectSyncReport(project_id=project.id)

        if discover:
            discovered = await self.discover_branches(db, project, token, resolver=resolver)
            if isinstance(discovered, Err):
                if discovered.kind.is_fatal:
                    return discovered
                logger.warning(
                    f"[sync] Branch discovery failed for project {project.id}, "
                    f"syncing known branches: {discovered.message}"
                )
                report.discovery_error = discovered.message
            else:
                report.branches_discovered = len(discovered.value)

        branch_names = list(
            dict.fromkeys(b.branch_name for b in await self.branches.get_for_project(db, project.id))
        )
        if max_branches is not None:
            branch_names = branch_names[:max_branches]

        budget = await ctx.allocator.budget_for(project.id)
        for branch_name in branch_names:
            synced = await self.sync_branch(
                db,
                project,
                token,
                branch_name,
                fetch_stats=fetch_stats,
                budget=budget,
                resolver=resolver,
            )
            if isinstance(synced, Err):
                if synced.kind.is_fatal:
                    return synced
                logger.error(f"[sync] Branch {branch_name} of project {project.id} failed: {synced.message}")
                continue
            report.branches.append(synced.value)

        logger.info(
            f"[sync] Project {project.id}: {report.new_commits} new commits across "
            f"{len(report.branches)} branches"
        )
        return Ok(report)

    async def enrich_stats(
        self,
        db: AsyncSession,
        project: Project,
        token: str | None,
        batch_size: int | None = None,
    ) -> Result[EnrichmentResult]:
        ctx = self._context(token)
        await ctx.allocator.register_project(project.id)
        budget = await ctx.allocator.budget_for(project.id)
        engine = StatsEnrichmentEngine(ctx.client, commit_logs=self.commit_logs)
        return await engine.enrich(db, project, budget=budget, batch_size=batch_size)

    async def quota_summary(self, project: Project, token: str | None) -> dict[str, Any]:
        """Allocation for the project plus the credential's usage summary."""
        allocator = self.allocator_for(token)
        quota = await allocator.quota_for(project.id)
        summary = await allocator.usage_summary()
        summary.update(
            project_id=quota.project_id,
            fair_share=quota.fair_share,
            allowed_calls=quota.allowed_calls,
            can_poll=quota.can_poll,
            poll_multiplier=quota.poll_multiplier,
        )
        return summary


async def resolve_project_token(
    db: AsyncSession,
    project: Project,
    projects: ProjectOperations = project_ops,
) -> str | None:
    """Decrypted GitHub token of the project owner, None if not connected."""
    owner = await projects.get_owner(db, project)
    if owner is None or not owner.github_token:
        return None
    return token_encryption.decrypt(owner.github_token)
