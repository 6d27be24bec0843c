"""Data types for GitHub API responses."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


def _parse_timestamp(value: str | None) -> datetime | None:
    """Parse GitHub's ISO-8601 timestamps ("2024-01-15T10:30:00Z")."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class ChangedFile:
    """One file touched by a commit."""

    filename: str
    status: str  # "added", "modified", "removed", "renamed", ...
    additions: int = 0
    deletions: int = 0
    patch: str | None = None  # Omitted by GitHub for binary or very large diffs

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "ChangedFile":
        return cls(
            filename=data.get("filename", ""),
            status=data.get("status", "modified"),
            additions=int(data.get("additions") or 0),
            deletions=int(data.get("deletions") or 0),
            patch=data.get("patch"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ShallowCommit:
    """Commit summary as returned by the list endpoint (no diff stats)."""

    sha: str
    message: str
    html_url: str | None
    author_email: str | None
    author_name: str | None
    author_login: str | None  # GitHub account linked to the commit, if any
    committed_at: datetime | None

    @property
    def author_identifier(self) -> str | None:
        """Raw author identifier: lower-cased email, else the GitHub login."""
        if self.author_email:
            return self.author_email.lower()
        return self.author_login or None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "ShallowCommit":
        commit = data.get("commit") or {}
        git_author = commit.get("author") or {}
        account = data.get("author") or {}

        return cls(
            sha=data["sha"],
            message=commit.get("message", ""),
            html_url=data.get("html_url"),
            author_email=git_author.get("email") or None,
            author_name=git_author.get("name"),
            author_login=account.get("login"),
            committed_at=_parse_timestamp(git_author.get("date")),
        )


@dataclass
class FullCommit(ShallowCommit):
    """Commit detail with diff statistics and per-file changes."""

    additions: int = 0
    deletions: int = 0
    changed_files: list[ChangedFile] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "FullCommit":
        shallow = ShallowCommit.from_api(data)
        stats = data.get("stats") or {}

        return cls(
            **asdict(shallow),
            additions=int(stats.get("additions") or 0),
            deletions=int(stats.get("deletions") or 0),
            changed_files=[ChangedFile.from_api(f) for f in data.get("files") or []],
        )


@dataclass
class Branch:
    """Branch name and head commit."""

    name: str
    head_sha: str | None
    protected: bool = False

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Branch":
        return cls(
            name=data["name"],
            head_sha=(data.get("commit") or {}).get("sha"),
            protected=bool(data.get("protected", False)),
        )


@dataclass
class CommitPage:
    """One page of a branch's commit list, newest first."""

    commits: list[ShallowCommit]
    page: int
    last_page: int  # From the Link header rel="last"; equals page when absent
