"""Internal task scheduler using APScheduler.

Runs the GitHub polling job within the FastAPI process.
Uses PostgreSQL advisory locks to prevent duplicate execution when
multiple instances are running.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import text

from gitsync.config import settings
from gitsync.core.database import direct_session_maker
from gitsync.services.ratelimit.store import get_budget_store
from gitsync.services.sync.polling import GitHubPoller
from gitsync.services.sync.service import GitHubSyncService

logger = logging.getLogger(__name__)

# Advisory lock IDs (arbitrary unique integers, one per job)
GITHUB_POLLING_LOCK_ID = 891250

GITHUB_POLLING_JOB_ID = "github_polling"


@asynccontextmanager
async def advisory_lock(lock_id: int) -> AsyncIterator[bool]:
    """
    Acquire a PostgreSQL advisory lock for the duration of the context.

    Advisory locks are session-level and automatically released when the
    session ends. pg_try_advisory_lock() returns immediately; if another
    process holds the lock, the caller skips.
    """
    async with direct_session_maker() as session:
        result = await session.execute(
            text("SELECT pg_try_advisory_lock(:lock_id)"),
            {"lock_id": lock_id},
        )
        acquired = result.scalar()

        if not acquired:
            yield False
            return

        try:
            yield True
        finally:
            await session.execute(
                text("SELECT pg_advisory_unlock(:lock_id)"),
                {"lock_id": lock_id},
            )
            await session.commit()


async def run_github_polling() -> dict[str, Any] | None:
    """
    Execute one GitHub polling cycle with advisory lock protection.

    Returns the report dict if executed, None if skipped (lock held by another instance).
    """
    async with advisory_lock(GITHUB_POLLING_LOCK_ID) as acquired:
        if not acquired:
            logger.info("[scheduler] GitHub polling: skipped (another instance is running)")
            return None

        logger.info("[scheduler] GitHub polling: starting")

        try:
            poller = GitHubPoller(GitHubSyncService(get_budget_store()))

            async with direct_session_maker() as db:
                report = await poller.poll_all(db)

            logger.info(
                f"[scheduler] GitHub polling: completed "
                f"({report.projects_polled} polled, "
                f"{report.projects_skipped} skipped, "
                f"{report.projects_failed} failed, "
                f"{report.new_commits} new commits, "
                f"{report.enriched_commits} enriched, "
                f"{report.duration_seconds}s)"
            )
            return asdict(report)

        except Exception as e:
            logger.exception(f"[scheduler] GitHub polling: failed with error: {e}")
            return None


class Scheduler:
    """Manages the APScheduler instance and job registration."""

    def __init__(self) -> None:
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Start the scheduler and register jobs."""
        if not settings.scheduler_enabled:
            logger.info("[scheduler] Disabled via SCHEDULER_ENABLED=false")
            return

        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            run_github_polling,
            trigger=IntervalTrigger(seconds=settings.github_poll_interval_seconds),
            id=GITHUB_POLLING_JOB_ID,
            name="GitHub Commit Polling",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self._scheduler.start()
        logger.info(
            f"[scheduler] Started with GitHub polling every "
            f"{settings.github_poll_interval_seconds}s"
        )

    def stop(self) -> None:
        """Gracefully shut down the scheduler."""
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("[scheduler] Stopped")

    async def trigger_now(self, job_id: str) -> dict[str, Any] | None:
        """
        Manually trigger a job immediately (for testing/debugging).

        Returns the job result or None if job not found.
        """
        if job_id == GITHUB_POLLING_JOB_ID:
            return await run_github_polling()
        return None


scheduler = Scheduler()
