"""Branch records discovered from GitHub and their links to commit logs."""

import uuid as uuid_pkg

from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel

from gitsync.models.base import TimestampMixin, UUIDMixin


class GitBranch(UUIDMixin, TimestampMixin, table=True):
    """
    A repository branch, attributed to the author of its oldest commit.

    Unique per (project_id, branch_name, user_id): if discovery attributes the
    branch to a different owner later, a second row is written rather than
    the first being rewritten.
    """

    __tablename__ = "github_branches"
    __table_args__ = (
        Index(
            "ix_github_branches_project_branch_user",
            "project_id",
            "branch_name",
            "user_id",
            unique=True,
        ),
    )

    project_id: uuid_pkg.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    user_id: uuid_pkg.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    branch_name: str = Field(max_length=255, nullable=False)


class GitBranchCommit(SQLModel, table=True):
    """Join row: a commit log observed while syncing a branch."""

    __tablename__ = "github_branch_logs"
    __table_args__ = (
        Index(
            "ix_github_branch_logs_branch_log",
            "github_branch_id",
            "github_log_id",
            unique=True,
        ),
    )

    id: uuid_pkg.UUID = Field(
        default_factory=uuid_pkg.uuid4,
        primary_key=True,
        nullable=False,
        sa_column_kwargs={"server_default": text("gen_random_uuid()")},
    )
    github_branch_id: uuid_pkg.UUID = Field(
        foreign_key="github_branches.id",
        nullable=False,
        index=True,
    )
    github_log_id: uuid_pkg.UUID = Field(
        foreign_key="github_logs.id",
        nullable=False,
        index=True,
    )
