"""Domain operations for synchronized commit logs."""

import uuid as uuid_pkg
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import and_, func, or_, select, text, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from gitsync.models.commit_log import CommitLog

# Rows per INSERT: 14 bind parameters each stays well under the
# 32767-parameter ceiling of the PostgreSQL wire protocol
UPSERT_BATCH_SIZE = 1000

# SHAs per IN (...) lookup, one bind parameter each
LOOKUP_BATCH_SIZE = 5000

# Columns a caller may supply when inserting a commit log row
UPSERT_COLUMNS = (
    "project_id",
    "user_id",
    "agreement_id",
    "commit_sha",
    "commit_url",
    "commit_message",
    "raw_author_identifier",
    "commit_date",
    "lines_added",
    "lines_removed",
    "changed_files",
)


class CommitLogOperations:
    """
    Operations for commit logs.

    Note: This doesn't extend a generic CRUD base because rows are keyed by
    the globally unique commit SHA and are never user-scoped.
    """

    def __init__(self) -> None:
        self.model = CommitLog

    async def get_shas_for_project(
        self,
        db: AsyncSession,
        project_id: uuid_pkg.UUID,
    ) -> set[str]:
        """All stored SHAs for a project, across every branch (the dedup set)."""
        statement = select(CommitLog.commit_sha).where(CommitLog.project_id == project_id)
        result = await db.execute(statement)
        return set(result.scalars().all())

    async def get_ids_by_shas(
        self,
        db: AsyncSession,
        shas: list[str],
    ) -> list[uuid_pkg.UUID]:
        """Row IDs for the given SHAs; SHAs not in storage are ignored."""
        ids: list[uuid_pkg.UUID] = []
        for i in range(0, len(shas), LOOKUP_BATCH_SIZE):
            batch = shas[i : i + LOOKUP_BATCH_SIZE]
            statement = select(CommitLog.id).where(CommitLog.commit_sha.in_(batch))  # type: ignore[attr-defined]
            result = await db.execute(statement)
            ids.extend(result.scalars().all())
        return ids

    def build_upsert(self, records: list[dict[str, Any]]) -> Any:
        """Build the INSERT .. ON CONFLICT (commit_sha) DO NOTHING statement."""
        now = datetime.now(UTC)
        values = [
            {
                **{column: record.get(column) for column in UPSERT_COLUMNS},
                "lines_added": record.get("lines_added") or 0,
                "lines_removed": record.get("lines_removed") or 0,
                "changed_files": record.get("changed_files") or [],
                "created_at": now,
                "updated_at": now,
            }
            for record in records
        ]
        return (
            insert(self.model)
            .values(values)
            .on_conflict_do_nothing(index_elements=["commit_sha"])
            .returning(self.model.commit_sha)
        )

    async def bulk_upsert(
        self,
        db: AsyncSession,
        records: list[dict[str, Any]],
    ) -> int:
        """
        Bulk insert commit logs, ignoring SHAs that already exist.

        Existing rows are never modified, so re-ingesting the same payload is
        a no-op. Rows are written UPSERT_BATCH_SIZE at a time.

        Returns:
            Count of newly inserted rows.
        """
        if not records:
            return 0

        # Duplicates inside one statement would make ON CONFLICT fail
        unique = list({record["commit_sha"]: record for record in records}.values())

        inserted = 0
        for i in range(0, len(unique), UPSERT_BATCH_SIZE):
            result = await db.execute(self.build_upsert(unique[i : i + UPSERT_BATCH_SIZE]))
            inserted += len(result.scalars().all())
        await db.flush()
        return inserted

    def _needing_stats_clause(self, project_id: uuid_pkg.UUID) -> Any:
        return and_(
            CommitLog.project_id == project_id,
            CommitLog.lines_added == 0,
            CommitLog.lines_removed == 0,
            or_(
                CommitLog.changed_files.is_(None),  # type: ignore[union-attr]
                CommitLog.changed_files == text("'[]'::jsonb"),
            ),
        )

    async def find_needing_stats(
        self,
        db: AsyncSession,
        project_id: uuid_pkg.UUID,
        limit: int,
    ) -> list[CommitLog]:
        """Shallow commit logs for a project, newest commit first."""
        statement = (
            select(CommitLog)
            .where(self._needing_stats_clause(project_id))
            .order_by(CommitLog.commit_date.desc().nulls_last())  # type: ignore[union-attr]
            .limit(limit)
        )
        result = await db.execute(statement)
        return list(result.scalars().all())

    async def count_needing_stats(
        self,
        db: AsyncSession,
        project_id: uuid_pkg.UUID,
    ) -> int:
        statement = select(func.count(CommitLog.id)).where(self._needing_stats_clause(project_id))
        result = await db.execute(statement)
        return result.scalar() or 0

    async def update_stats(
        self,
        db: AsyncSession,
        commit_log: CommitLog,
        lines_added: int,
        lines_removed: int,
        changed_files: list[dict[str, Any]],
    ) -> None:
        """Fill in diff stats on a previously shallow commit log."""
        statement = (
            update(CommitLog)
            .where(CommitLog.id == commit_log.id)
            .values(
                lines_added=lines_added,
                lines_removed=lines_removed,
                changed_files=changed_files,
                updated_at=datetime.now(UTC),
            )
        )
        await db.execute(statement)
        await db.flush()


commit_log_ops = CommitLogOperations()
