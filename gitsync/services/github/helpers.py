"""
GitHub API helper utilities.

Provides rate limit parsing, Link header pagination and error response
classification for GitHub API calls.
"""

import logging
import re
import time

import httpx

from gitsync.core.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

_LINK_PART = re.compile(r'<([^>]*)>\s*;\s*rel="([^"]+)"')
_PAGE_PARAM = re.compile(r"[?&]page=(\d+)(?:&|$)")


class RateLimitInfo:
    """Rate limit information from GitHub API response."""

    def __init__(self, response: httpx.Response) -> None:
        self.remaining = response.headers.get("X-RateLimit-Remaining")
        self.reset = response.headers.get("X-RateLimit-Reset")
        self.retry_after = response.headers.get("Retry-After")

    @property
    def reset_timestamp(self) -> int | None:
        """Get reset timestamp as integer, or None if not available."""
        return int(self.reset) if self.reset and self.reset.isdigit() else None

    @property
    def retry_after_seconds(self) -> int | None:
        """Secondary rate limits send Retry-After instead of a reset time."""
        return int(self.retry_after) if self.retry_after and self.retry_after.isdigit() else None

    @property
    def is_exhausted(self) -> bool:
        """Check if rate limit is exhausted."""
        return self.remaining is not None and self.remaining.strip() == "0"


def extract_repo_path(url: str | None) -> str | None:
    """
    Normalize a repository reference to "owner/repo".

    Accepts:
        - Full URL: https://github.com/owner/repo
        - Full URL with .git: https://github.com/owner/repo.git
        - Short format: owner/repo
    """
    if not url or not url.strip():
        return None

    path = url.strip()
    if "github.com/" in path:
        path = path.split("github.com/")[-1]
    elif path.startswith("git@github.com:"):
        path = path.removeprefix("git@github.com:")

    path = path.strip("/").removesuffix(".git")
    return path or None


def parse_link_header(link_header: str | None) -> dict[str, str]:
    """Map rel names ("next", "last", ...) to URLs from a Link header."""
    if not link_header:
        return {}
    return {rel: url for url, rel in _LINK_PART.findall(link_header)}


def last_page_from_link(link_header: str | None, current_page: int) -> Result[int]:
    """
    Total page count from the rel="last" link.

    No rel="last" means the current page is the last one. A rel="last" link
    without a usable page number is a decode error.
    """
    links = parse_link_header(link_header)
    last_url = links.get("last")
    if last_url is None:
        return Ok(current_page)

    match = _PAGE_PARAM.search(last_url)
    if not match:
        return Err(ErrorKind.DECODE_ERROR, f"Unparseable rel=\"last\" link: {last_url!r}")
    return Ok(int(match.group(1)))


def classify_error_response(response: httpx.Response, resource: str) -> Err | None:
    """
    Map a non-success GitHub response to an error result.

    Args:
        response: The HTTP response from GitHub API
        resource: Description for error context (e.g. "owner/repo commits")

    Returns:
        Err for error statuses, None for 2xx responses
    """
    if response.is_success:
        return None

    rate_info = RateLimitInfo(response)
    status = response.status_code

    if status == 429 or (status == 403 and (rate_info.is_exhausted or rate_info.retry_after)):
        reset_at = rate_info.reset_timestamp
        if reset_at is None and rate_info.retry_after_seconds is not None:
            reset_at = int(time.time()) + rate_info.retry_after_seconds
        return Err(
            ErrorKind.RATE_LIMITED,
            "GitHub API rate limit exceeded",
            reset_at=reset_at,
        )
    if status == 401:
        return Err(ErrorKind.UNAUTHORIZED, "Invalid or expired GitHub token")
    if status == 403:
        return Err(ErrorKind.FORBIDDEN, f"GitHub API forbidden: {resource}")
    if status == 404:
        return Err(ErrorKind.NOT_FOUND, f"Repository or resource not found: {resource}")

    return Err(ErrorKind.API_ERROR, f"GitHub API error: {status} ({resource})")
