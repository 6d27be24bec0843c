import uuid as uuid_pkg
from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from gitsync.models.base import TimestampMixin, UUIDMixin


class ProjectBase(SQLModel):
    """Base fields for Project."""

    name: str = Field(max_length=255)
    repository_url: str | None = Field(
        default=None,
        max_length=500,
        description="GitHub repository URL or owner/repo path",
    )


class Project(ProjectBase, UUIDMixin, TimestampMixin, table=True):
    """A project whose GitHub repository is synchronized into commit logs."""

    __tablename__ = "projects"

    user_id: uuid_pkg.UUID = Field(
        foreign_key="users.id",
        nullable=False,
        index=True,
        description="Project owner; default owner for unattributed branches",
    )
    github_last_polled_at: datetime | None = Field(  # type: ignore[call-overload]
        default=None,
        sa_type=DateTime(timezone=True),
        description="When the scheduler last started a sync for this project",
    )
