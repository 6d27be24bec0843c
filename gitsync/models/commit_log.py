"""Commit log model for synchronized GitHub commits."""

import uuid as uuid_pkg
from datetime import datetime
from typing import Any

from sqlalchemy import Column, DateTime, Index, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field

from gitsync.models.base import TimestampMixin, UUIDMixin


class CommitLog(UUIDMixin, TimestampMixin, table=True):
    """
    One GitHub commit, stored once per system.

    commit_sha is globally unique (not per branch or per project): a commit
    reachable from several branches has one row and several branch links.

    Rows written from the commit list endpoint are "shallow": lines_added,
    lines_removed are 0 and changed_files is empty. Stats enrichment later
    fills those three columns in place.
    """

    __tablename__ = "github_logs"
    __table_args__ = (
        Index("ix_github_logs_commit_sha", "commit_sha", unique=True),
        Index("ix_github_logs_project_commit_date", "project_id", "commit_date"),
    )

    project_id: uuid_pkg.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    user_id: uuid_pkg.UUID | None = Field(
        default=None,
        foreign_key="users.id",
        index=True,
        description="Resolved platform user, null when the author is unknown",
    )
    agreement_id: uuid_pkg.UUID | None = Field(
        default=None,
        foreign_key="agreements.id",
        index=True,
    )

    commit_sha: str = Field(
        max_length=40,
        nullable=False,
        description="Full 40-character git SHA",
    )
    commit_url: str | None = Field(default=None, max_length=500)
    commit_message: str | None = Field(default=None)
    raw_author_identifier: str | None = Field(
        default=None,
        max_length=255,
        description="Author email or GitHub login as reported by the API",
    )
    commit_date: datetime | None = Field(  # type: ignore[call-overload]
        default=None,
        sa_type=DateTime(timezone=True),
    )

    lines_added: int = Field(default=0, nullable=False)
    lines_removed: int = Field(default=0, nullable=False)
    changed_files: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(
            JSONB,
            nullable=True,
            server_default=text("'[]'::jsonb"),
            comment="Array of changed files: [{filename, status, additions, deletions, patch}]",
        ),
    )

    @property
    def is_shallow(self) -> bool:
        """True when the row has never been enriched with diff stats."""
        return self.lines_added == 0 and self.lines_removed == 0 and not self.changed_files
