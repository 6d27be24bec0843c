"""
Shared short-TTL store for rate-budget state.

Every piece of state that several sync runs share (rate limit snapshots,
the set of projects using a credential, hourly call counters, sync locks)
lives behind the RateBudgetStore protocol, keyed by a truncated hash of the
credential. Components receive a store explicitly; only composition roots
(scheduler, API) call get_budget_store().

Two backends:
- InMemoryBudgetStore: cachetools TLRUCache with per-entry expiry. Correct
  for a single process only.
- RedisBudgetStore: redis.asyncio, shared by every worker pointing at the
  same Redis.
"""

import hashlib
import json
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import redis.asyncio as aioredis
from cachetools import TLRUCache  # type: ignore[import-untyped]

from gitsync.config import settings

logger = logging.getLogger(__name__)

UNAUTHENTICATED = "unauthenticated"


def credential_hash(token: str | None) -> str:
    """Stable, non-reversible cache key fragment for a credential."""
    if not token:
        return UNAUTHENTICATED
    return hashlib.sha256(token.encode()).hexdigest()[:16]


class RateBudgetStore(Protocol):
    """Key/value store with per-key TTL. Values must be JSON-compatible."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl: float) -> None: ...

    async def increment(self, key: str, amount: int = 1, ttl: float = 3600) -> int: ...

    async def set_if_absent(self, key: str, value: Any, ttl: float) -> bool: ...

    async def delete(self, key: str) -> None: ...


@dataclass(frozen=True)
class _Entry:
    value: Any
    expires_at: float


def _entry_expiry(_key: str, entry: _Entry, _now: float) -> float:
    return entry.expires_at


class InMemoryBudgetStore:
    """Process-local store backed by a cachetools TLRU cache."""

    def __init__(self, maxsize: int = 10_000, timer: Callable[[], float] = time.monotonic) -> None:
        self._timer = timer
        self._cache: TLRUCache[str, _Entry] = TLRUCache(
            maxsize=maxsize,
            ttu=_entry_expiry,
            timer=timer,
        )

    async def get(self, key: str) -> Any | None:
        entry = self._cache.get(key)
        return entry.value if entry is not None else None

    async def set(self, key: str, value: Any, ttl: float) -> None:
        self._cache[key] = _Entry(value, self._timer() + ttl)

    async def increment(self, key: str, amount: int = 1, ttl: float = 3600) -> int:
        # Keeps the original expiry, like INCRBY on an existing Redis key
        entry = self._cache.get(key)
        if entry is None:
            entry = _Entry(0, self._timer() + ttl)
        updated = _Entry(int(entry.value) + amount, entry.expires_at)
        self._cache[key] = updated
        return int(updated.value)

    async def set_if_absent(self, key: str, value: Any, ttl: float) -> bool:
        if self._cache.get(key) is not None:
            return False
        await self.set(key, value, ttl)
        return True

    async def delete(self, key: str) -> None:
        self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()


class RedisBudgetStore:
    """Store shared across processes through Redis."""

    KEY_PREFIX = "gitsync:"

    def __init__(self, redis_url: str) -> None:
        self.redis = aioredis.from_url(redis_url, decode_responses=True)

    def _key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}{key}"

    @staticmethod
    def _seconds(ttl: float) -> int:
        return max(1, math.ceil(ttl))

    async def get(self, key: str) -> Any | None:
        raw = await self.redis.get(self._key(key))
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any, ttl: float) -> None:
        await self.redis.set(self._key(key), json.dumps(value), ex=self._seconds(ttl))

    async def increment(self, key: str, amount: int = 1, ttl: float = 3600) -> int:
        full_key = self._key(key)
        value = int(await self.redis.incrby(full_key, amount))
        if value == amount:
            # First increment created the key; start its expiry window
            await self.redis.expire(full_key, self._seconds(ttl))
        return value

    async def set_if_absent(self, key: str, value: Any, ttl: float) -> bool:
        acquired = await self.redis.set(
            self._key(key),
            json.dumps(value),
            nx=True,
            ex=self._seconds(ttl),
        )
        return bool(acquired)

    async def delete(self, key: str) -> None:
        await self.redis.delete(self._key(key))

    async def close(self) -> None:
        await self.redis.aclose()


# Module-level store shared by the scheduler and the internal API
_store: RateBudgetStore | None = None


def get_budget_store() -> RateBudgetStore:
    """Get or create the process-wide store selected by settings.redis_url."""
    global _store
    if _store is None:
        if settings.redis_enabled:
            _store = RedisBudgetStore(settings.redis_url)
            logger.debug("[rate-limit] Using Redis budget store")
        else:
            _store = InMemoryBudgetStore()
            logger.debug("[rate-limit] Using in-memory budget store")
    return _store


async def close_budget_store() -> None:
    """Release the store's connections on shutdown."""
    global _store
    if isinstance(_store, RedisBudgetStore):
        await _store.close()
    _store = None
