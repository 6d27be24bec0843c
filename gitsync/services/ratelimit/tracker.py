"""
Per-credential GitHub rate limit tracking.

Proactive admission control: every GitHub response updates a snapshot of
the credential's quota, and callers ask the tracker before spending more.
The tracker stops at 85% consumption by default, leaving a 15% margin for
clock skew and for other runs sharing the credential.

GitHub rate limits:
- OAuth / PAT / GitHub App installation: 5,000 requests/hour
- Unauthenticated: 60 requests/hour

Usage:
    tracker = RateBudgetTracker(token, store)

    if await tracker.admission_check():
        response = await client.get(...)
        await tracker.record(response.headers)
    else:
        wait = await tracker.wait_time()
"""

import logging
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass
from typing import Any

from gitsync.config import settings
from gitsync.services.ratelimit.store import RateBudgetStore, credential_hash

logger = logging.getLogger(__name__)

# Default hourly limits by credential class, used until the first response arrives
DEFAULT_AUTHENTICATED_LIMIT = 5000
DEFAULT_UNAUTHENTICATED_LIMIT = 60

# Consumption at which the tracker starts logging at info level
WARNING_PERCENT = 75


@dataclass
class RateBudgetSnapshot:
    """Last known quota for one credential."""

    credential_hash: str
    limit: int
    remaining: int | None  # None until the first response is recorded
    resets_at: int | None  # Unix timestamp
    recorded_at: float | None  # Unix timestamp

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RateBudgetSnapshot":
        return cls(
            credential_hash=data["credential_hash"],
            limit=int(data["limit"]),
            remaining=int(data["remaining"]) if data.get("remaining") is not None else None,
            resets_at=int(data["resets_at"]) if data.get("resets_at") is not None else None,
            recorded_at=float(data["recorded_at"]) if data.get("recorded_at") is not None else None,
        )

    @property
    def consumption_percent(self) -> float:
        """Percentage of the limit consumed (0-100); 0 when unknown."""
        if self.limit <= 0 or self.remaining is None:
            return 0.0
        return round((self.limit - self.remaining) / self.limit * 100, 2)


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class RateBudgetTracker:
    """Tracks GitHub rate limit state for one credential in a shared store."""

    def __init__(
        self,
        token: str | None,
        store: RateBudgetStore,
        threshold_percent: int | None = None,
        snapshot_ttl_seconds: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.credential_hash = credential_hash(token)
        self.authenticated = bool(token)
        self.store = store
        self.threshold_percent = (
            settings.rate_limit_threshold_percent if threshold_percent is None else threshold_percent
        )
        self.snapshot_ttl_seconds = (
            settings.rate_limit_snapshot_ttl_seconds
            if snapshot_ttl_seconds is None
            else snapshot_ttl_seconds
        )
        self._clock = clock

    @property
    def cache_key(self) -> str:
        return f"github_rate_limit:{self.credential_hash}"

    @property
    def default_limit(self) -> int:
        return DEFAULT_AUTHENTICATED_LIMIT if self.authenticated else DEFAULT_UNAUTHENTICATED_LIMIT

    def default_status(self) -> RateBudgetSnapshot:
        return RateBudgetSnapshot(
            credential_hash=self.credential_hash,
            limit=self.default_limit,
            remaining=None,
            resets_at=None,
            recorded_at=None,
        )

    def threshold_remaining(self, limit: int) -> int:
        """Remaining-request floor below which admission is refused."""
        if limit <= 0:
            return 0
        # Multiply first: 0.15 * 100 is 15.000000000000002 in floating point
        return math.ceil((100 - self.threshold_percent) * limit / 100)

    async def record(self, headers: Mapping[str, str]) -> RateBudgetSnapshot | None:
        """
        Record quota headers from a GitHub response.

        Accepts httpx.Headers or any mapping; header names are matched
        case-insensitively. Responses without X-RateLimit-Remaining are ignored.
        """
        lowered = {key.lower(): value for key, value in headers.items()}
        remaining = _parse_int(lowered.get("x-ratelimit-remaining"))
        if remaining is None:
            return None

        limit = _parse_int(lowered.get("x-ratelimit-limit")) or self.default_limit
        snapshot = RateBudgetSnapshot(
            credential_hash=self.credential_hash,
            limit=limit,
            remaining=min(max(remaining, 0), limit),
            resets_at=_parse_int(lowered.get("x-ratelimit-reset")),
            recorded_at=self._clock(),
        )

        await self.store.set(self.cache_key, snapshot.to_dict(), ttl=self.snapshot_ttl_seconds)
        self._log_status(snapshot)
        return snapshot

    async def current_status(self) -> RateBudgetSnapshot:
        """Freshest snapshot within its TTL, else the credential-class default."""
        cached = await self.store.get(self.cache_key)
        if cached is None:
            return self.default_status()

        snapshot = RateBudgetSnapshot.from_dict(cached)
        if (
            snapshot.recorded_at is None
            or self._clock() - snapshot.recorded_at >= self.snapshot_ttl_seconds
        ):
            return self.default_status()
        return snapshot

    async def admission_check(self, cost: int = 1) -> bool:
        """True if `cost` more requests keep the credential under the threshold.

        Fails open: with no snapshot yet, requests are allowed.
        """
        status = await self.current_status()
        if status.remaining is None:
            return True

        return (status.remaining - cost) >= self.threshold_remaining(status.limit)

    async def wait_time(self) -> int:
        """Seconds until the window resets, 0 if the budget is currently sufficient."""
        status = await self.current_status()
        if status.resets_at is None:
            return 0
        if await self.admission_check():
            return 0

        return max(status.resets_at - int(self._clock()), 0) + 1

    async def consumption_percent(self) -> float:
        return (await self.current_status()).consumption_percent

    async def approaching_threshold(self) -> bool:
        """Warning zone: 75% up to the threshold."""
        percent = await self.consumption_percent()
        return WARNING_PERCENT <= percent < self.threshold_percent

    async def threshold_exceeded(self) -> bool:
        return await self.consumption_percent() >= self.threshold_percent

    async def is_rate_limited(self) -> bool:
        status = await self.current_status()
        return status.remaining is not None and status.remaining <= 0

    def _calls_key(self) -> str:
        hour = int(self._clock() // 3600)
        return f"github_rate_limit_calls:{self.credential_hash}:{hour}"

    async def record_call(self, cost: int = 1) -> int:
        """Count requests made with this credential in the current clock hour."""
        return await self.store.increment(self._calls_key(), cost, ttl=3600)

    async def calls_this_hour(self) -> int:
        return int(await self.store.get(self._calls_key()) or 0)

    def _log_status(self, snapshot: RateBudgetSnapshot) -> None:
        percent = snapshot.consumption_percent
        if percent >= self.threshold_percent:
            level = logging.WARNING
        elif percent >= WARNING_PERCENT:
            level = logging.INFO
        else:
            level = logging.DEBUG

        logger.log(
            level,
            f"[rate-limit] {self.credential_hash}: {snapshot.remaining}/{snapshot.limit} "
            f"({percent}% consumed, resets at {snapshot.resets_at})",
        )
