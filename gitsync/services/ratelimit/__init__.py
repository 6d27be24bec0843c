"""
GitHub rate budget package.

Module structure:
- store.py: Shared TTL store (in-memory or Redis) keyed by credential hash
- tracker.py: Per-credential quota snapshots and admission control
- quota.py: Fair-share allocation across projects and per-run call budgets
"""

from gitsync.services.ratelimit.quota import (
    CallBudget,
    QuotaAllocation,
    QuotaAllocator,
    poll_multiplier,
)
from gitsync.services.ratelimit.store import (
    InMemoryBudgetStore,
    RateBudgetStore,
    RedisBudgetStore,
    close_budget_store,
    credential_hash,
    get_budget_store,
)
from gitsync.services.ratelimit.tracker import RateBudgetSnapshot, RateBudgetTracker

__all__ = [
    "CallBudget",
    "InMemoryBudgetStore",
    "QuotaAllocation",
    "QuotaAllocator",
    "RateBudgetSnapshot",
    "RateBudgetStore",
    "RateBudgetTracker",
    "RedisBudgetStore",
    "close_budget_store",
    "credential_hash",
    "get_budget_store",
    "poll_multiplier",
]
