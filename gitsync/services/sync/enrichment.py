"""
Diff stats backfill for shallow commit logs.

Runs after commit sync and picks up rows stored without stats (zero lines
added, zero removed, no changed files), newest commit first. Each detail
fetch is admitted through the call budget; when the budget runs out the
batch stops and reports how much is left for the next run. An unauthorized
or forbidden detail response aborts the batch with that error.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from gitsync.config import settings
from gitsync.core.result import Err, ErrorKind, Ok, Result
from gitsync.domain.commit_log_operations import CommitLogOperations, commit_log_ops
from gitsync.models.commit_log import CommitLog
from gitsync.models.project import Project
from gitsync.services.github.client import GitHubSyncClient
from gitsync.services.github.helpers import extract_repo_path
from gitsync.services.ratelimit.quota import CallBudget

logger = logging.getLogger(__name__)


@dataclass
class EnrichmentResult:
    enriched_count: int
    remaining_count: int
    stopped_for_rate_limit: bool
    failed_count: int = 0


class StatsEnrichmentEngine:
    """Backfills lines added/removed and changed files from commit details."""

    def __init__(
        self,
        client: GitHubSyncClient,
        commit_logs: CommitLogOperations = commit_log_ops,
    ) -> None:
        self.client = client
        self.commit_logs = commit_logs

    async def enrich(
        self,
        db: AsyncSession,
        project: Project,
        budget: CallBudget | None = None,
        batch_size: int | None = None,
    ) -> Result[EnrichmentResult]:
        repo = extract_repo_path(project.repository_url)
        if not repo:
            return Err(ErrorKind.MISSING_CONFIG, "Repository URL is blank")

        batch_size = batch_size or settings.enrichment_batch_size
        budget = budget or CallBudget(self.client.tracker)

        total = await self.commit_logs.count_needing_stats(db, project.id)
        if total == 0:
            logger.info(f"[enrichment] No commits need stats enrichment for project {project.id}")
            return Ok(EnrichmentResult(enriched_count=0, remaining_count=0, stopped_for_rate_limit=False))

        logger.info(f"[enrichment] Found {total} commits needing stats for project {project.id}")
        candidates = await self.commit_logs.find_needing_stats(db, project.id, limit=batch_size)

        enriched_count = 0
        failed_count = 0
        stopped_for_rate_limit = False

        for commit_log in candidates:
            if not await budget.admit():
                logger.warning("[enrichment] Rate limit threshold reached, stopping enrichment")
                stopped_for_rate_limit = True
                break

            outcome = await self._enrich_one(db, repo, commit_log)
            if outcome is None:
                enriched_count += 1
            elif outcome.kind == ErrorKind.RATE_LIMITED:
                stopped_for_rate_limit = True
                break
            elif outcome.kind.is_fatal:
                logger.error(f"[enrichment] Aborting enrichment for project {project.id}: {outcome.message}")
                return outcome
            else:
                failed_count += 1

        remaining_count = total - enriched_count
        logger.info(
            f"[enrichment] Enriched {enriched_count} commits, {remaining_count} remaining"
            + (f", {failed_count} failed" if failed_count else "")
        )

        return Ok(
            EnrichmentResult(
                enriched_count=enriched_count,
                remaining_count=remaining_count,
                stopped_for_rate_limit=stopped_for_rate_limit,
                failed_count=failed_count,
            )
        )

    async def _enrich_one(self, db: AsyncSession, repo: str, commit_log: CommitLog) -> Err | None:
        """Fetch and store one commit's stats; returns the error on failure."""
        detail = await self.client.get_commit(repo, commit_log.commit_sha)
        if isinstance(detail, Err):
            logger.warning(
                f"[enrichment] Failed to fetch stats for {commit_log.commit_sha}: {detail.message}"
            )
            return detail

        commit = detail.value
        await self.commit_logs.update_stats(
            db,
            commit_log,
            lines_added=commit.additions,
            lines_removed=commit.deletions,
            changed_files=[f.to_dict() for f in commit.changed_files],
        )
        logger.debug(
            f"[enrichment] Enriched commit {commit_log.commit_sha[:8]} with stats: "
            f"+{commit.additions}/-{commit.deletions}"
        )
        return None
