"""
Fair distribution of one credential's GitHub quota across projects.

When several projects sync with the same token, each gets an equal share of
the remaining budget so a busy project cannot starve the others. As overall
consumption rises, the recommended polling interval stretches smoothly
instead of syncs failing outright.

Usage:
    allocator = QuotaAllocator(tracker, store)
    await allocator.register_project(project.id)

    quota = await allocator.quota_for(project.id)
    if quota.can_poll:
        budget = await allocator.budget_for(project.id)
        while await budget.admit():
            ...
"""

import logging
import math
import uuid as uuid_pkg
from dataclasses import dataclass
from typing import Any

from gitsync.config import settings
from gitsync.services.ratelimit.store import RateBudgetStore
from gitsync.services.ratelimit.tracker import RateBudgetTracker

logger = logging.getLogger(__name__)

BASE_POLL_MULTIPLIER = 1.0
MAX_POLL_MULTIPLIER = 10.0
DEFAULT_POLL_INTERVAL_SECONDS = 60


def poll_multiplier(consumption_percent: float) -> float:
    """
    Polling slowdown factor for a consumption percentage.

    <50%: 1.0 (no slowdown)
    50-70%: 1.0 -> 2.0 linear
    70-85%: 2.0 -> 5.0 linear
    85%+: 5.0 -> 10.0 linear, capped at 10.0
    """
    if consumption_percent < 50:
        return BASE_POLL_MULTIPLIER
    if consumption_percent < 70:
        return 1.0 + (consumption_percent - 50) / 20.0
    if consumption_percent < 85:
        return 2.0 + (consumption_percent - 70) / 15.0 * 3.0
    return min(5.0 + (consumption_percent - 85) / 15.0 * 5.0, MAX_POLL_MULTIPLIER)


@dataclass
class QuotaAllocation:
    """One project's share of a credential's remaining quota."""

    project_id: str
    credential_hash: str
    project_count: int
    fair_share: int
    allowed_calls: int
    can_poll: bool
    poll_multiplier: float
    remaining: int
    limit: int
    consumption_percent: float


class CallBudget:
    """
    Admission gate for a single sync or enrichment run.

    Every admit() re-reads the tracker's freshest snapshot and also caps the
    run at the project's fair share. A denial is a normal return value: the
    caller stops and reports partial progress.
    """

    def __init__(self, tracker: RateBudgetTracker, allowed_calls: int | None = None) -> None:
        self.tracker = tracker
        self.allowed_calls = allowed_calls
        self.calls_used = 0

    async def admit(self, cost: int = 1) -> bool:
        if self.allowed_calls is not None and self.calls_used + cost > self.allowed_calls:
            logger.info(
                f"[quota] {self.tracker.credential_hash}: fair share of "
                f"{self.allowed_calls} calls used up for this run"
            )
            return False

        if not await self.tracker.admission_check(cost):
            percent = await self.tracker.consumption_percent()
            logger.info(
                f"[quota] {self.tracker.credential_hash}: admission denied at {percent}% consumed"
            )
            return False

        self.calls_used += cost
        return True


class QuotaAllocator:
    """Divides a credential's remaining quota across the projects sharing it."""

    def __init__(
        self,
        tracker: RateBudgetTracker,
        store: RateBudgetStore,
        membership_ttl_seconds: int | None = None,
        min_calls_per_project: int | None = None,
    ) -> None:
        self.tracker = tracker
        self.store = store
        self.membership_ttl_seconds = (
            settings.project_membership_ttl_seconds
            if membership_ttl_seconds is None
            else membership_ttl_seconds
        )
        self.min_calls_per_project = (
            settings.min_calls_per_project if min_calls_per_project is None else min_calls_per_project
        )

    @property
    def projects_cache_key(self) -> str:
        return f"github_token_projects:{self.tracker.credential_hash}"

    async def projects_using_credential(self) -> list[str]:
        return list(await self.store.get(self.projects_cache_key) or [])

    async def register_project(self, project_id: uuid_pkg.UUID | str) -> None:
        """Record that a project syncs with this credential (idempotent)."""
        projects = await self.projects_using_credential()
        if str(project_id) not in projects:
            projects.append(str(project_id))
        # Always rewrite to refresh the membership TTL
        await self.store.set(self.projects_cache_key, projects, ttl=self.membership_ttl_seconds)

    async def unregister_project(self, project_id: uuid_pkg.UUID | str) -> None:
        projects = [p for p in await self.projects_using_credential() if p != str(project_id)]
        await self.store.set(self.projects_cache_key, projects, ttl=self.membership_ttl_seconds)

    async def quota_for(self, project_id: uuid_pkg.UUID | str) -> QuotaAllocation:
        """Fair share of the freshest known budget for one project."""
        status = await self.tracker.current_status()
        remaining = status.remaining if status.remaining is not None else status.limit

        project_count = max(len(await self.projects_using_credential()), 1)
        fair_share = math.floor(remaining / project_count)
        consumption = status.consumption_percent

        allocation = QuotaAllocation(
            project_id=str(project_id),
            credential_hash=self.tracker.credential_hash,
            project_count=project_count,
            fair_share=fair_share,
            allowed_calls=max(fair_share, self.min_calls_per_project),
            can_poll=fair_share >= self.min_calls_per_project,
            poll_multiplier=poll_multiplier(consumption),
            remaining=remaining,
            limit=status.limit,
            consumption_percent=consumption,
        )
        logger.debug(
            f"[quota] Project {allocation.project_id}: fair share {fair_share} of {remaining} "
            f"across {project_count} projects (x{allocation.poll_multiplier:.1f} polling)"
        )
        return allocation

    async def can_poll_project(self, project_id: uuid_pkg.UUID | str, cost: int = 1) -> bool:
        quota = await self.quota_for(project_id)
        return quota.can_poll and quota.allowed_calls >= cost

    async def budget_for(self, project_id: uuid_pkg.UUID | str) -> CallBudget:
        """Per-run admission gate capped at the project's allowed calls."""
        quota = await self.quota_for(project_id)
        return CallBudget(self.tracker, allowed_calls=quota.allowed_calls)

    async def recommended_poll_interval(
        self,
        base_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> int:
        multiplier = poll_multiplier(await self.tracker.consumption_percent())
        return math.ceil(base_seconds * multiplier)

    async def usage_summary(self) -> dict[str, Any]:
        """Snapshot of the credential's usage across all projects, for monitoring."""
        status = await self.tracker.current_status()
        projects = await self.projects_using_credential()

        return {
            "credential_hash": self.tracker.credential_hash,
            "remaining": status.remaining,
            "limit": status.limit,
            "resets_at": status.resets_at,
            "consumption_percent": status.consumption_percent,
            "calls_this_hour": await self.tracker.calls_this_hour(),
            "project_count": len(projects),
            "projects": projects,
            "recommended_interval": await self.recommended_poll_interval(),
            "approaching_threshold": await self.tracker.approaching_threshold(),
            "threshold_exceeded": await self.tracker.threshold_exceeded(),
            "wait_time_seconds": await self.tracker.wait_time(),
        }
