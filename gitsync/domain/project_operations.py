"""Project and collaborator lookups used by the sync engines."""

import uuid as uuid_pkg
from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from gitsync.models.agreement import Agreement, AgreementStatus
from gitsync.models.project import Project
from gitsync.models.user import User


class ProjectOperations:
    """Read operations for projects and the users attached to them."""

    def __init__(self) -> None:
        self.model = Project

    async def get(self, db: AsyncSession, id: uuid_pkg.UUID) -> Project | None:
        statement = select(Project).where(Project.id == id)
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def get_owner(self, db: AsyncSession, project: Project) -> User | None:
        statement = select(User).where(User.id == project.user_id)
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def get_pollable(
        self,
        db: AsyncSession,
        polled_before: datetime,
    ) -> list[Project]:
        """
        Projects eligible for a scheduled poll.

        Eligible: repository configured, owner has a GitHub token, and not
        polled since `polled_before`. Never-polled projects come first.
        """
        statement = (
            select(Project)
            .join(User, Project.user_id == User.id)
            .where(
                Project.repository_url.is_not(None),  # type: ignore[union-attr]
                Project.repository_url != "",
                User.github_token.is_not(None),  # type: ignore[union-attr]
                User.github_token != "",
                or_(
                    Project.github_last_polled_at.is_(None),  # type: ignore[union-attr]
                    Project.github_last_polled_at < polled_before,  # type: ignore[operator]
                ),
            )
            .order_by(Project.github_last_polled_at.asc().nulls_first())  # type: ignore[union-attr]
        )
        result = await db.execute(statement)
        return list(result.scalars().all())

    async def mark_polled(self, db: AsyncSession, project: Project, polled_at: datetime) -> None:
        """Stamp the poll time before syncing so overlapping cycles skip this project."""
        await db.execute(
            update(Project).where(Project.id == project.id).values(github_last_polled_at=polled_at)
        )
        project.github_last_polled_at = polled_at
        await db.flush()

    async def get_active_agreements(
        self,
        db: AsyncSession,
        project_id: uuid_pkg.UUID,
    ) -> list[Agreement]:
        """Active agreements with participants eager-loaded, oldest first."""
        statement = (
            select(Agreement)
            .where(
                Agreement.project_id == project_id,
                Agreement.status == AgreementStatus.ACTIVE.value,
            )
            .options(selectinload(Agreement.participants))  # type: ignore[arg-type]
            .order_by(Agreement.created_at.asc())  # type: ignore[attr-defined]
        )
        result = await db.execute(statement)
        return list(result.scalars().all())

    async def get_users_by_ids(
        self,
        db: AsyncSession,
        user_ids: set[uuid_pkg.UUID],
    ) -> list[User]:
        if not user_ids:
            return []
        statement = select(User).where(User.id.in_(user_ids))  # type: ignore[attr-defined]
        result = await db.execute(statement)
        return list(result.scalars().all())


project_ops = ProjectOperations()
