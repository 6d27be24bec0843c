"""
GitHub API package.

Module structure:
- client.py: Rate-aware client for the commit and branch endpoints
- helpers.py: Rate limit headers, Link pagination, error classification
- http_client.py: Shared pooled httpx.AsyncClient
- types.py: Dataclasses for API responses
"""

from gitsync.services.github.client import GitHubSyncClient
from gitsync.services.github.helpers import RateLimitInfo, extract_repo_path
from gitsync.services.github.http_client import close_github_client, get_github_client
from gitsync.services.github.types import (
    Branch,
    ChangedFile,
    CommitPage,
    FullCommit,
    ShallowCommit,
)

__all__ = [
    "Branch",
    "ChangedFile",
    "CommitPage",
    "FullCommit",
    "GitHubSyncClient",
    "RateLimitInfo",
    "ShallowCommit",
    "close_github_client",
    "extract_repo_path",
    "get_github_client",
]
