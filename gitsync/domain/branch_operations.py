"""Domain operations for GitHub branches and branch-commit links."""

import uuid as uuid_pkg
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from gitsync.domain.commit_log_operations import UPSERT_BATCH_SIZE, commit_log_ops
from gitsync.models.git_branch import GitBranch, GitBranchCommit


class BranchOperations:
    """Operations for branch records (project-scoped)."""

    def __init__(self) -> None:
        self.model = GitBranch

    async def get_by_name(
        self,
        db: AsyncSession,
        project_id: uuid_pkg.UUID,
        branch_name: str,
    ) -> GitBranch | None:
        """First branch record for a name (one may exist per attributed owner)."""
        statement = (
            select(GitBranch)
            .where(
                GitBranch.project_id == project_id,
                GitBranch.branch_name == branch_name,
            )
            .order_by(GitBranch.created_at.asc())  # type: ignore[attr-defined]
            .limit(1)
        )
        result = await db.execute(statement)
        return result.scalars().first()

    async def get_for_project(
        self,
        db: AsyncSession,
        project_id: uuid_pkg.UUID,
        limit: int | None = None,
    ) -> list[GitBranch]:
        """Branches in discovery order (oldest record first)."""
        statement = (
            select(GitBranch)
            .where(GitBranch.project_id == project_id)
            .order_by(GitBranch.created_at.asc())  # type: ignore[attr-defined]
        )
        if limit is not None:
            statement = statement.limit(limit)
        result = await db.execute(statement)
        return list(result.scalars().all())

    async def last_checked_at(
        self,
        db: AsyncSession,
        project_id: uuid_pkg.UUID,
    ) -> datetime | None:
        """Last branch discovery for a project (newest updated_at), None if never discovered."""
        statement = select(func.max(GitBranch.updated_at)).where(GitBranch.project_id == project_id)
        result = await db.execute(statement)
        return result.scalar()

    async def bulk_upsert(
        self,
        db: AsyncSession,
        rows: list[dict[str, uuid_pkg.UUID | str]],
    ) -> int:
        """
        Upsert branches unique by (project_id, branch_name, user_id).

        A rediscovered branch keeps its id, owner and created_at, but its
        updated_at is set to the discovery time. last_checked_at() reads that
        column to decide when discovery is due again, so an existing row is
        always touched, never left as is.

        Args:
            rows: List of dicts with keys project_id, user_id, branch_name

        Returns:
            Count of rows written (inserted or touched).
        """
        if not rows:
            return 0

        now = datetime.now(UTC)
        stmt = insert(self.model).values(
            [
                {
                    "project_id": row["project_id"],
                    "user_id": row["user_id"],
                    "branch_name": row["branch_name"],
                    "created_at": now,
                    "updated_at": now,
                }
                for row in rows
            ]
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["project_id", "branch_name", "user_id"],
            set_={"updated_at": stmt.excluded.updated_at},
        )

        await db.execute(stmt)
        await db.flush()
        return len(rows)


class BranchCommitOperations:
    """Operations for the branch ↔ commit log join table."""

    def __init__(self) -> None:
        self.model = GitBranchCommit

    async def link_commits_to_branch(
        self,
        db: AsyncSession,
        branch_id: uuid_pkg.UUID,
        shas: list[str],
    ) -> int:
        """
        Link every stored commit among `shas` to a branch.

        SHAs without a commit log row are skipped. Existing links are left
        untouched. Links are inserted UPSERT_BATCH_SIZE at a time.

        Returns:
            Count of commit logs the branch is linked to after the call.
        """
        log_ids = await commit_log_ops.get_ids_by_shas(db, shas)
        if not log_ids:
            return 0

        for i in range(0, len(log_ids), UPSERT_BATCH_SIZE):
            batch = log_ids[i : i + UPSERT_BATCH_SIZE]
            stmt = (
                insert(self.model)
                .values([{"github_branch_id": branch_id, "github_log_id": log_id} for log_id in batch])
                .on_conflict_do_nothing(index_elements=["github_branch_id", "github_log_id"])
            )
            await db.execute(stmt)
        await db.flush()
        return len(log_ids)


branch_ops = BranchOperations()
branch_commit_ops = BranchCommitOperations()
