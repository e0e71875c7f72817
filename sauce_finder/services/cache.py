"""In-process result cache for search matches.

  - TTL: 1h (settings.cache_ttl_seconds), checked lazily on read
  - Capacity: 100 entries (settings.cache_max_entries), oldest insertion evicted first
  - Empty result sets are never stored, so a "no match" is re-queried next time

Entries live in a cachetools.FIFOCache; re-inserting a key moves it to the
newest position. A periodic sweep (run_cache_maintenance) reclaims expired
entries even when nobody reads them.
"""

import asyncio
import logging
import time
from typing import Callable, Sequence

from cachetools import FIFOCache

from sauce_finder.config import settings
from sauce_finder.orchestrator.schemas import CacheEntry, RawMatch

logger = logging.getLogger(__name__)


class ResultCache:
    """Bounded key → CacheEntry store with lazy TTL expiry."""

    def __init__(
        self,
        ttl: float | None = None,
        max_entries: int | None = None,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl if ttl is not None else settings.cache_ttl_seconds
        self.max_entries = max_entries if max_entries is not None else settings.cache_max_entries
        self._timer = timer
        self._entries: FIFOCache = FIFOCache(maxsize=self.max_entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self._live(key) is not None

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.inserted_at >= self.ttl

    def _live(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None or self._is_expired(entry, self._timer()):
            return None
        return entry

    def get(self, key: str) -> CacheEntry | None:
        """Return the live entry for key, or None on miss/expiry."""
        entry = self._live(key)
        if entry is not None:
            logger.info("Cache HIT | key=%s | results=%d", key[:40], len(entry.results))
        return entry

    def put(self, key: str, results: Sequence[RawMatch], response_time_ms: float = 0.0) -> bool:
        """Store results under key. Returns False (and stores nothing) when empty."""
        if not results:
            logger.debug("Cache SKIP (empty results) | key=%s", key[:40])
            return False

        self._entries[key] = CacheEntry(
            key=key,
            results=tuple(results),
            inserted_at=self._timer(),
            response_time_ms=response_time_ms,
        )
        logger.info("Cache SET | key=%s | results=%d | size=%d", key[:40], len(results), len(self._entries))
        return True

    def evict_expired(self) -> int:
        """Remove every entry whose age has reached the TTL."""
        now = self._timer()
        expired = [k for k, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info("Cache evicted %d expired entries", len(expired))
        return len(expired)

    def enforce_capacity(self, max_entries: int | None = None) -> int:
        """Drop oldest-inserted entries until at most max_entries remain."""
        limit = self.max_entries if max_entries is None else max_entries
        removed = 0
        while len(self._entries) > limit:
            self._entries.popitem()
            removed += 1
        if removed:
            logger.info("Cache trimmed %d entries (limit=%d)", removed, limit)
        return removed

    def sweep(self) -> int:
        """Periodic maintenance: expiry first, then the size bound."""
        return self.evict_expired() + self.enforce_capacity()

    def clear(self):
        self._entries.clear()


async def run_cache_maintenance(cache: ResultCache, interval: float | None = None):
    """Sweep the cache forever on a fixed cadence. Cancel the task to stop it."""
    interval = interval if interval is not None else settings.cache_sweep_interval_seconds
    logger.info("Cache maintenance started | interval=%ss", interval)
    while True:
        await asyncio.sleep(interval)
        try:
            cache.sweep()
        except Exception as e:
            logger.error("Cache sweep failed: %s", str(e)[:200])
