"""
GitHub REST client for commit and branch sync.

Exactly three upstream operations: list a branch's commits, fetch one
commit with stats, and list a repository's branches. Every call returns an
Ok/Err result instead of raising, records the response's rate limit headers
with the credential's tracker, and counts the call.

A rate-limited response is retried once after waiting for the reset, as long
as the wait fits within settings.github_max_rate_limit_wait_seconds. A second
consecutive rate-limited response is returned to the caller.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from gitsync.config import settings
from gitsync.core.result import Err, ErrorKind, Ok, Result
from gitsync.services.github.helpers import (
    classify_error_response,
    last_page_from_link,
    parse_link_header,
)
from gitsync.services.github.http_client import get_github_client
from gitsync.services.github.types import Branch, CommitPage, FullCommit, ShallowCommit
from gitsync.services.ratelimit.tracker import RateBudgetTracker

logger = logging.getLogger(__name__)

# Safety stop for branch pagination (100 per page)
MAX_BRANCH_PAGES = 50


class GitHubSyncClient:
    """
    Rate-aware GitHub client for one credential.

    Uses the shared HTTP client singleton for connection pooling; auth
    headers are sent per request.
    """

    API_VERSION = "2022-11-28"

    def __init__(
        self,
        token: str | None,
        tracker: RateBudgetTracker,
        http_client: httpx.AsyncClient | None = None,
        max_rate_limit_wait_seconds: int | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.tracker = tracker
        self._http_client = http_client
        self.max_rate_limit_wait_seconds = (
            settings.github_max_rate_limit_wait_seconds
            if max_rate_limit_wait_seconds is None
            else max_rate_limit_wait_seconds
        )
        self._sleep = sleep
        self._clock = clock
        self._headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": self.API_VERSION,
        }
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    @property
    def http(self) -> httpx.AsyncClient:
        return self._http_client or get_github_client()

    def _rate_limit_wait(self, error: Err) -> int | None:
        """Seconds to wait before retrying, or None if the wait is too long."""
        if error.reset_at is None:
            wait = 1
        else:
            wait = max(error.reset_at - int(self._clock()) + 1, 1)
        if wait > self.max_rate_limit_wait_seconds:
            return None
        return wait

    async def _get(
        self,
        url: str,
        resource: str,
        params: dict[str, Any] | None = None,
    ) -> Result[httpx.Response]:
        """GET with tracking and at most one retry after a rate limit."""
        retried = False
        while True:
            try:
                response = await self.http.get(url, headers=self._headers, params=params)
            except httpx.HTTPError as e:
                logger.error(f"[github] Request failed for {resource}: {e}")
                await self.tracker.record_call()
                return Err(ErrorKind.API_ERROR, f"GitHub request failed: {e}")

            await self.tracker.record(response.headers)
            await self.tracker.record_call()

            error = classify_error_response(response, resource)
            if error is None:
                return Ok(response)

            if error.kind != ErrorKind.RATE_LIMITED or retried:
                if error.kind == ErrorKind.RATE_LIMITED:
                    logger.warning(f"[github] Still rate limited after retry: {resource}")
                return error

            wait = self._rate_limit_wait(error)
            if wait is None:
                logger.warning(
                    f"[github] Rate limited on {resource}; reset at {error.reset_at} is beyond "
                    f"the {self.max_rate_limit_wait_seconds}s wait limit"
                )
                return error

            logger.warning(f"[github] Rate limited on {resource}. Waiting {wait}s before retry...")
            await self._sleep(wait)
            retried = True

    @staticmethod
    def _json(response: httpx.Response, resource: str) -> Result[Any]:
        try:
            return Ok(response.json())
        except ValueError as e:
            return Err(ErrorKind.API_ERROR, f"Invalid JSON from GitHub for {resource}: {e}")

    async def list_commits(
        self,
        repo: str,
        ref: str,
        page: int = 1,
        per_page: int = 100,
    ) -> Result[CommitPage]:
        """
        Fetch one page of a branch's commits, newest first.

        Args:
            repo: Repository path ("owner/repo")
            ref: Branch name or sha to list from
            page: Page number (1-indexed)
            per_page: Items per page (max 100)
        """
        resource = f"{repo} commits on {ref}"
        result = await self._get(
            f"/repos/{repo}/commits",
            resource,
            params={"sha": ref, "page": page, "per_page": min(per_page, 100)},
        )
        if isinstance(result, Err):
            return result

        body = self._json(result.value, resource)
        if isinstance(body, Err):
            return body

        last_page = last_page_from_link(result.value.headers.get("Link"), page)
        if isinstance(last_page, Err):
            return last_page

        try:
            commits = [ShallowCommit.from_api(item) for item in body.value]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            return Err(ErrorKind.DECODE_ERROR, f"Unexpected commit list shape for {resource}: {e}")

        return Ok(CommitPage(commits=commits, page=page, last_page=last_page.value))

    async def get_commit(self, repo: str, sha: str) -> Result[FullCommit]:
        """Fetch one commit with stats and changed files."""
        resource = f"{repo}@{sha[:8]}"
        result = await self._get(f"/repos/{repo}/commits/{sha}", resource)
        if isinstance(result, Err):
            return result

        body = self._json(result.value, resource)
        if isinstance(body, Err):
            return body

        try:
            return Ok(FullCommit.from_api(body.value))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            return Err(ErrorKind.DECODE_ERROR, f"Unexpected commit shape for {resource}: {e}")

    async def list_branches(self, repo: str) -> Result[list[Branch]]:
        """Fetch all branches, following rel="next" pagination."""
        resource = f"{repo} branches"
        branches: list[Branch] = []
        url = f"/repos/{repo}/branches"
        params: dict[str, Any] | None = {"per_page": 100}

        for _ in range(MAX_BRANCH_PAGES):
            result = await self._get(url, resource, params=params)
            if isinstance(result, Err):
                return result

            body = self._json(result.value, resource)
            if isinstance(body, Err):
                return body

            try:
                branches.extend(Branch.from_api(item) for item in body.value)
            except (KeyError, TypeError, AttributeError) as e:
                return Err(ErrorKind.DECODE_ERROR, f"Unexpected branch list shape for {repo}: {e}")

            # The next link already carries the query string
            next_url = parse_link_header(result.value.headers.get("Link")).get("next")
            if next_url is None:
                break
            url, params = next_url, None
        else:
            logger.warning(f"[github] Stopped listing branches for {repo} after {MAX_BRANCH_PAGES} pages")

        return Ok(branches)
