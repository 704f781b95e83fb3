"""
Process-local read cache for derived figures.

Two families of keys live here:

``investments:``
    Paged investment listings, keyed by status filter and page.
``performance:``
    Per-investment performance and portfolio analytics, keyed by the
    valuation date they were computed for.

Both are pure functions of the ledger, so ``ledger_mutation`` calls
``invalidate_ledger()`` after every commit.  The TTL is only a ceiling on
staleness for anything an invalidation misses.

The cache is touched from the event loop thread only; no locking.
"""

import logging
import time
from typing import Any, Dict, Optional

from returns_api.core.config import settings

logger = logging.getLogger(__name__)

INVESTMENTS_PREFIX = "investments:"
PERFORMANCE_PREFIX = "performance:"

_LEDGER_PREFIXES = (INVESTMENTS_PREFIX, PERFORMANCE_PREFIX)


def cache_key(prefix: str, *parts: Any) -> str:
    """``cache_key("performance:", inv_id, day)`` -> ``"performance:<inv_id>:<day>"``."""
    return prefix + ":".join(map(str, parts))


class CacheEntry:
    __slots__ = ("value", "created_at")

    def __init__(self, value: Any):
        self.value = value
        self.created_at = time.monotonic()

    def is_expired(self, ttl: float) -> bool:
        return time.monotonic() - self.created_at > ttl


class TTLCache:
    """
    Dict-backed cache.  Entries expire ``ttl`` seconds after being stored;
    when ``max_size`` is reached the entry stored first is dropped.  A
    disabled cache misses on every read and ignores writes.
    """

    def __init__(self, ttl: float = 30.0, max_size: int = 1000, enabled: bool = True):
        self._ttl = ttl
        self._max_size = max_size
        self._enabled = enabled
        self._store: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def _lookup(self, key: str) -> Optional[CacheEntry]:
        entry = self._store.get(key)
        if entry is not None and entry.is_expired(self._ttl):
            del self._store[key]
            logger.debug("cache expired %s", key)
            return None
        return entry

    def get(self, key: str) -> Optional[Any]:
        if not self._enabled:
            return None
        entry = self._lookup(key)
        if entry is None:
            self._misses += 1
            return None
        self._hits += 1
        return entry.value

    def set(self, key: str, value: Any) -> None:
        if not self._enabled:
            return
        if key not in self._store and len(self._store) >= self._max_size:
            evicted = next(iter(self._store))
            del self._store[evicted]
            logger.debug("cache full, dropped %s", evicted)
        self._store[key] = CacheEntry(value)

    def invalidate(self, *prefixes: str) -> int:
        """Drop every key starting with one of ``prefixes``; returns how many went."""
        if not self._enabled:
            return 0
        stale = [key for key in self._store if key.startswith(prefixes)]
        for key in stale:
            del self._store[key]
        if stale:
            logger.debug("cache dropped %d key(s) under %s", len(stale), ", ".join(prefixes))
        return len(stale)

    def invalidate_ledger(self) -> int:
        """Drop listings and performance figures after a balance or ledger change."""
        return self.invalidate(*_LEDGER_PREFIXES)

    def clear(self) -> None:
        self._store.clear()

    def get_stats(self) -> dict:
        lookups = self._hits + self._misses
        return {
            "enabled": self._enabled,
            "size": len(self._store),
            "max_size": self._max_size,
            "ttl_seconds": self._ttl,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": f"{self._hits / lookups:.1%}" if lookups else "N/A",
        }


cache = TTLCache(
    ttl=settings.CACHE_TTL,
    max_size=settings.CACHE_MAX_SIZE,
    enabled=settings.CACHE_ENABLED,
)
