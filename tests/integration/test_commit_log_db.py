"""DB integration tests for commit log and branch link operations.

Tests real SQL against PostgreSQL via rollback fixture.
Covers: idempotent commit upsert (ON CONFLICT DO NOTHING), the project-wide
SHA set, shallow-row queries, stats update, and branch link idempotence.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gitsync.domain.branch_operations import branch_commit_ops, branch_ops
from gitsync.domain.commit_log_operations import commit_log_ops
from gitsync.models.commit_log import CommitLog
from gitsync.models.git_branch import GitBranch, GitBranchCommit


def _sha() -> str:
    return (uuid.uuid4().hex + uuid.uuid4().hex)[:40]


def _record(project, sha: str, **overrides) -> dict:
    return {
        "project_id": project.id,
        "commit_sha": sha,
        "commit_message": "Add widget",
        "raw_author_identifier": "dev@example.com",
        "commit_date": overrides.get("commit_date", datetime(2024, 1, 15, tzinfo=UTC)),
        "lines_added": overrides.get("lines_added", 0),
        "lines_removed": overrides.get("lines_removed", 0),
        "changed_files": overrides.get("changed_files", []),
    }


async def _count(db: AsyncSession, sha: str) -> int:
    result = await db.execute(select(func.count(CommitLog.id)).where(CommitLog.commit_sha == sha))
    return result.scalar_one()


# ─────────────────────────────────────────────────────────────────────────────
# Commit upsert
# ─────────────────────────────────────────────────────────────────────────────


class TestCommitUpsert:
    """Re-ingesting a commit never creates a second row or rewrites the first."""

    async def test_same_payload_twice_is_one_row(self, db_session: AsyncSession, test_project):
        sha = _sha()
        record = _record(test_project, sha, lines_added=4, lines_removed=2)

        first = await commit_log_ops.bulk_upsert(db_session, [record])
        second = await commit_log_ops.bulk_upsert(db_session, [record])

        assert first == 1
        assert second == 0
        assert await _count(db_session, sha) == 1

    async def test_existing_row_is_not_overwritten(self, db_session: AsyncSession, test_project):
        sha = _sha()
        await commit_log_ops.bulk_upsert(
            db_session, [_record(test_project, sha, lines_added=9, lines_removed=3)]
        )

        await commit_log_ops.bulk_upsert(db_session, [_record(test_project, sha)])

        result = await db_session.execute(select(CommitLog).where(CommitLog.commit_sha == sha))
        log = result.scalar_one()
        assert log.lines_added == 9
        assert log.lines_removed == 3

    async def test_duplicates_within_one_batch(self, db_session: AsyncSession, test_project):
        sha = _sha()

        inserted = await commit_log_ops.bulk_upsert(
            db_session, [_record(test_project, sha), _record(test_project, sha)]
        )

        assert inserted == 1

    async def test_project_sha_set(self, db_session: AsyncSession, test_project):
        shas = [_sha(), _sha()]
        await commit_log_ops.bulk_upsert(db_session, [_record(test_project, s) for s in shas])

        assert await commit_log_ops.get_shas_for_project(db_session, test_project.id) == set(shas)


# ─────────────────────────────────────────────────────────────────────────────
# Shallow rows and enrichment
# ─────────────────────────────────────────────────────────────────────────────


class TestNeedingStats:
    async def test_newest_shallow_first(self, db_session: AsyncSession, test_project):
        base = datetime(2024, 1, 1, tzinfo=UTC)
        old, new, full = _sha(), _sha(), _sha()
        await commit_log_ops.bulk_upsert(
            db_session,
            [
                _record(test_project, old, commit_date=base),
                _record(test_project, new, commit_date=base + timedelta(days=1)),
                _record(test_project, full, lines_added=1),
            ],
        )

        logs = await commit_log_ops.find_needing_stats(db_session, test_project.id, limit=10)

        assert [log.commit_sha for log in logs] == [new, old]
        assert await commit_log_ops.count_needing_stats(db_session, test_project.id) == 2

    async def test_update_stats_clears_shallow(self, db_session: AsyncSession, test_project):
        sha = _sha()
        await commit_log_ops.bulk_upsert(db_session, [_record(test_project, sha)])
        (log,) = await commit_log_ops.find_needing_stats(db_session, test_project.id, limit=1)

        await commit_log_ops.update_stats(
            db_session,
            log,
            lines_added=5,
            lines_removed=1,
            changed_files=[{"filename": "a.py", "additions": 5, "deletions": 1}],
        )

        assert await commit_log_ops.count_needing_stats(db_session, test_project.id) == 0


# ─────────────────────────────────────────────────────────────────────────────
# Branch links
# ─────────────────────────────────────────────────────────────────────────────


class TestBranchLinks:
    async def test_links_are_idempotent(self, db_session: AsyncSession, test_project, test_user):
        shas = [_sha(), _sha()]
        await commit_log_ops.bulk_upsert(db_session, [_record(test_project, s) for s in shas])
        await branch_ops.bulk_upsert(
            db_session,
            [{"project_id": test_project.id, "user_id": test_user.id, "branch_name": "main"}],
        )
        branch = await branch_ops.get_by_name(db_session, test_project.id, "main")

        await branch_commit_ops.link_commits_to_branch(db_session, branch.id, shas)
        linked = await branch_commit_ops.link_commits_to_branch(db_session, branch.id, shas + [_sha()])

        assert linked == 2
        result = await db_session.execute(
            select(func.count()).select_from(GitBranchCommit).where(
                GitBranchCommit.github_branch_id == branch.id
            )
        )
        assert result.scalar_one() == 2

    async def test_branch_upsert_is_idempotent(self, db_session: AsyncSession, test_project, test_user):
        row = {"project_id": test_project.id, "user_id": test_user.id, "branch_name": "dev"}

        await branch_ops.bulk_upsert(db_session, [row])
        await branch_ops.bulk_upsert(db_session, [row])

        branches = await branch_ops.get_for_project(db_session, test_project.id)
        assert [b.branch_name for b in branches] == ["dev"]

    async def test_rediscovered_branch_keeps_id_and_advances_check_time(
        self, db_session: AsyncSession, test_project, test_user
    ):
        row = {"project_id": test_project.id, "user_id": test_user.id, "branch_name": "main"}
        columns = select(GitBranch.id, GitBranch.created_at, GitBranch.updated_at).where(
            GitBranch.project_id == test_project.id
        )

        await branch_ops.bulk_upsert(db_session, [row])
        first = (await db_session.execute(columns)).one()
        await branch_ops.bulk_upsert(db_session, [row])
        second = (await db_session.execute(columns)).one()

        assert second.id == first.id
        assert second.created_at == first.created_at
        assert second.updated_at > first.updated_at
        assert await branch_ops.last_checked_at(db_session, test_project.id) == second.updated_at
