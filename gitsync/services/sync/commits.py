"""
Incremental commit sync for one branch.

The dedup set is every commit SHA already stored for the project, on any
branch. Pages of the branch's history (newest first) are walked to the end;
every SHA is collected for branch linking, and only SHAs missing from the
dedup set are processed. A commit shared with an already-synced branch
therefore costs no detail call.

The call budget is asked before every page and every detail fetch. When it
says no during paging, the walk stops and the SHAs seen so far are the
partial result. Full mode fetches each new commit's detail for diff stats;
when the budget says no there, the remaining commits come back as `deferred`
so the caller can store them shallow and let stats enrichment backfill them
later. Authorization failures abort the run.
"""

import logging
import uuid as uuid_pkg
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from gitsync.core.result import Err, ErrorKind, Ok, Result
from gitsync.domain.branch_operations import BranchOperations, branch_ops
from gitsync.domain.commit_log_operations import CommitLogOperations, commit_log_ops
from gitsync.models.project import Project
from gitsync.services.github.client import GitHubSyncClient
from gitsync.services.github.helpers import extract_repo_path
from gitsync.services.github.types import FullCommit, ShallowCommit
from gitsync.services.ratelimit.quota import CallBudget
from gitsync.services.sync.identity import IdentityResolver

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
UNKNOWN_AUTHOR = "unknown"


@dataclass
class CommitSyncResult:
    """Outcome of one branch sync; partial when a page or the budget ran out."""

    records: list[dict[str, Any]] = field(default_factory=list)
    all_shas: list[str] = field(default_factory=list)
    deferred: list[ShallowCommit] = field(default_factory=list)
    failed_count: int = 0
    stopped_for_rate_limit: bool = False

    @property
    def new_commit_count(self) -> int:
        return len(self.records) + len(self.deferred)


class CommitSyncEngine:
    """Fetches a branch's new commits and turns them into commit log rows."""

    def __init__(
        self,
        client: GitHubSyncClient,
        resolver: IdentityResolver,
        commit_logs: CommitLogOperations = commit_log_ops,
        branches: BranchOperations = branch_ops,
        per_page: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.client = client
        self.resolver = resolver
        self.commit_logs = commit_logs
        self.branches = branches
        self.per_page = per_page

    async def sync(
        self,
        db: AsyncSession,
        project: Project,
        branch_name: str,
        budget: CallBudget | None = None,
        fetch_stats: bool = True,
    ) -> Result[CommitSyncResult]:
        """
        Collect new commits on a branch.

        Args:
            db: Database session (read-only here; the caller persists)
            project: Project whose repository is synced
            branch_name: Branch to walk
            budget: Admission gate for page and detail fetches; tracker-only when None
            fetch_stats: Fetch each new commit's detail (full mode)
        """
        repo = extract_repo_path(project.repository_url)
        if not repo:
            return Err(ErrorKind.MISSING_CONFIG, "Repository URL is blank")
        if not branch_name or not branch_name.strip():
            return Err(ErrorKind.MISSING_CONFIG, "Branch is blank")

        db_branch = await self.branches.get_by_name(db, project.id, branch_name)
        if db_branch is None:
            logger.error(f"[sync] No database branch found for {branch_name}")
            return Err(ErrorKind.NOT_FOUND, f"No database branch found for {branch_name}")

        existing_shas = await self.commit_logs.get_shas_for_project(db, project.id)
        logger.info(f"[sync] Found {len(existing_shas)} existing commits in project {project.id}")

        budget = budget or CallBudget(self.client.tracker)
        fetched = await self._fetch_new_commits(repo, branch_name, existing_shas, budget)
        if isinstance(fetched, Err):
            return fetched
        all_shas, new_commits, paging_stopped = fetched.value

        result = CommitSyncResult(all_shas=all_shas, stopped_for_rate_limit=paging_stopped)
        if not new_commits:
            logger.info(f"[sync] No new commits to process for branch {branch_name}")
            return Ok(result)

        logger.info(f"[sync] Processing {len(new_commits)} new commits for branch {branch_name}")
        if fetch_stats:
            failed = await self._process_with_stats(repo, project.id, branch_name, new_commits, budget, result)
            if failed is not None:
                return failed
        else:
            result.records = [self.build_record(project.id, c) for c in new_commits]

        return Ok(result)

    async def _fetch_new_commits(
        self,
        repo: str,
        branch_name: str,
        existing_shas: set[str],
        budget: CallBudget,
    ) -> Result[tuple[list[str], list[ShallowCommit], bool]]:
        """Walk pages while admitted; return (all SHAs, commits missing from storage, stopped)."""
        seen: dict[str, None] = {}
        new_commits: list[ShallowCommit] = []
        page = 1
        stopped = False

        logger.info(f"[sync] Starting commit fetch for branch '{branch_name}' (page size: {self.per_page})")

        while True:
            if not await budget.admit():
                stopped = True
                logger.warning(
                    f"[sync] Rate limit threshold reached before page {page} of {branch_name}, "
                    f"keeping {len(seen)} commits seen so far"
                )
                break

            # No 'since' filter: relying on SHA dedup keeps older history reachable after partial runs
            listed = await self.client.list_commits(repo, branch_name, page=page, per_page=self.per_page)
            if isinstance(listed, Err):
                if page == 1 and listed.kind.is_fatal:
                    return listed
                logger.error(f"[sync] API error on page {page} of {branch_name}: {listed.message}")
                break

            commits = listed.value.commits
            if not commits:
                break

            page_new = 0
            for commit in commits:
                if commit.sha in seen:
                    continue
                seen[commit.sha] = None
                if commit.sha not in existing_shas:
                    new_commits.append(commit)
                    page_new += 1

            logger.debug(
                f"[sync] Page {page}/{listed.value.last_page}: {page_new} new commits "
                f"out of {len(commits)}"
            )

            if len(commits) < self.per_page:
                break
            page += 1

        logger.info(
            f"[sync] Fetch complete for {branch_name}: {len(seen)} total commits, "
            f"{len(new_commits)} new"
        )
        return Ok((list(seen), new_commits, stopped))

    async def _process_with_stats(
        self,
        repo: str,
        project_id: uuid_pkg.UUID,
        branch_name: str,
        new_commits: list[ShallowCommit],
        budget: CallBudget,
        result: CommitSyncResult,
    ) -> Err | None:
        """Fill `result` from detail fetches; returns the error that aborts the run, if any."""
        total = len(new_commits)

        for i, shallow in enumerate(new_commits):
            if not await budget.admit():
                result.deferred = new_commits[i:]
                result.stopped_for_rate_limit = True
                logger.warning(
                    f"[sync] Rate limit threshold reached at commit {i + 1}/{total} on "
                    f"{branch_name}, deferring {len(result.deferred)} commits"
                )
                return None

            detail = await self.client.get_commit(repo, shallow.sha)
            if isinstance(detail, Err):
                if detail.kind == ErrorKind.RATE_LIMITED:
                    result.deferred = new_commits[i:]
                    result.stopped_for_rate_limit = True
                    logger.warning(
                        f"[sync] Rate limited fetching {shallow.sha[:8]}, deferring "
                        f"{len(result.deferred)} commits"
                    )
                    return None
                if detail.kind.is_fatal:
                    logger.error(f"[sync] Aborting {branch_name}: {detail.message}")
                    return detail
                logger.warning(f"[sync] Failed to fetch commit {shallow.sha}: {detail.message}")
                result.failed_count += 1
                continue

            logger.debug(f"[sync] [{branch_name}] Commit details {i + 1}/{total}: {shallow.sha[:8]}")
            result.records.append(self.build_record(project_id, detail.value))

        return None

    def build_record(
        self,
        project_id: uuid_pkg.UUID,
        commit: ShallowCommit,
    ) -> dict[str, Any]:
        """Commit log row for a commit; stats are zero unless it is a FullCommit."""
        identifier = commit.author_identifier
        user_id = self.resolver.find_user_id(identifier, commit)
        agreement = self.resolver.agreement_for(user_id)

        record: dict[str, Any] = {
            "project_id": project_id,
            "user_id": user_id,
            "agreement_id": agreement.id if agreement else None,
            "commit_sha": commit.sha,
            "commit_url": commit.html_url,
            "commit_message": commit.message,
            "raw_author_identifier": identifier or UNKNOWN_AUTHOR,
            "commit_date": commit.committed_at,
            "lines_added": 0,
            "lines_removed": 0,
            "changed_files": [],
        }
        if isinstance(commit, FullCommit):
            record["lines_added"] = commit.additions
            record["lines_removed"] = commit.deletions
            record["changed_files"] = [f.to_dict() for f in commit.changed_files]
        return record

    def shallow_records(
        self,
        project_id: uuid_pkg.UUID,
        commits: list[ShallowCommit],
    ) -> list[dict[str, Any]]:
        """Rows for deferred commits, stored without stats for later enrichment."""
        return [self.build_record(project_id, c) for c in commits]
