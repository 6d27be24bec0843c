"""
Branch discovery.

Lists a repository's branches and attributes each one to the author of its
oldest commit. Finding the oldest commit costs at most two list calls per
branch: page 1 with a page size of 1 gives the page count through the Link
header, and the last page holds the oldest commit (lists are newest first).
"""

import logging
import uuid as uuid_pkg
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from gitsync.core.result import Err, ErrorKind, Ok, Result
from gitsync.domain.branch_operations import BranchOperations, branch_ops
from gitsync.models.project import Project
from gitsync.services.github.client import GitHubSyncClient
from gitsync.services.github.helpers import extract_repo_path
from gitsync.services.github.types import ShallowCommit
from gitsync.services.sync.identity import IdentityResolver

logger = logging.getLogger(__name__)


@dataclass
class BranchOwnership:
    """A discovered branch and the user it is attributed to."""

    branch_name: str
    user_id: uuid_pkg.UUID
    oldest_commit_sha: str
    resolved: bool  # False when the owner fell back to the project owner


class BranchDiscoveryEngine:
    """Discovers branches and upserts their ownership records."""

    def __init__(
        self,
        client: GitHubSyncClient,
        resolver: IdentityResolver,
        branches: BranchOperations = branch_ops,
    ) -> None:
        self.client = client
        self.resolver = resolver
        self.branches = branches

    async def discover(self, db: AsyncSession, project: Project) -> Result[list[BranchOwnership]]:
        repo = extract_repo_path(project.repository_url)
        if not repo:
            return Err(ErrorKind.MISSING_CONFIG, "Repository URL is blank")

        listed = await self.client.list_branches(repo)
        if isinstance(listed, Err):
            logger.error(f"[sync] Error fetching branches for {repo}: {listed.message}")
            return listed

        if not listed.value:
            logger.warning(f"[sync] No branches found for repository {repo}")
            return Ok([])

        logger.info(f"[sync] Processing {len(listed.value)} branches for {repo}")

        ownerships: list[BranchOwnership] = []
        for branch in listed.value:
            oldest = await self._oldest_commit(repo, branch.name)
            if isinstance(oldest, Err):
                logger.error(f"[sync] Error processing branch {branch.name}: {oldest.message}")
                continue
            if oldest.value is None:
                logger.warning(f"[sync] No commits found for branch {branch.name}")
                continue

            commit = oldest.value
            user_id = self.resolver.find_user_id(commit.author_identifier, commit)
            if user_id is None:
                logger.warning(
                    f"[sync] No user found for {commit.author_identifier} in branch "
                    f"{branch.name}, defaulting to project owner"
                )

            ownerships.append(
                BranchOwnership(
                    branch_name=branch.name,
                    user_id=user_id or project.user_id,
                    oldest_commit_sha=commit.sha,
                    resolved=user_id is not None,
                )
            )

        if ownerships:
            await self.branches.bulk_upsert(
                db,
                [
                    {
                        "project_id": project.id,
                        "user_id": ownership.user_id,
                        "branch_name": ownership.branch_name,
                    }
                    for ownership in ownerships
                ],
            )
            logger.info(f"[sync] Stored {len(ownerships)} branches for project {project.id}")
        else:
            logger.warning(f"[sync] No valid branches found for project {project.id}")

        return Ok(ownerships)

    async def _oldest_commit(self, repo: str, branch_name: str) -> Result[ShallowCommit | None]:
        first = await self.client.list_commits(repo, branch_name, page=1, per_page=1)
        if isinstance(first, Err):
            return first
        if not first.value.commits:
            return Ok(None)

        page = first.value
        if page.last_page > 1:
            last = await self.client.list_commits(repo, branch_name, page=page.last_page, per_page=1)
            if isinstance(last, Err):
                return last
            page = last.value

        return Ok(page.commits[0] if page.commits else None)
