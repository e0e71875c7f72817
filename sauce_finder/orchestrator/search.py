"""Search orchestrator — cache lookup, retry/backoff and write-back.

Flow per search:
  1. Fingerprint the source (hashing failure → search runs uncacheable)
  2. Cache lookup → hit returns immediately, no network call
  3. Up to N sequential attempts against the recognition service
  4. Exponential backoff with jitter between failed attempts
  5. Non-empty results are written back to the cache

Cancellation always wins: it is checked before each attempt, aborts the
in-flight request, interrupts the backoff wait and is never retried.
"""

import logging
import random
import time
from typing import Awaitable, Callable, Protocol

from sauce_finder.config import settings
from sauce_finder.errors import Cancelled, HashingUnavailable, SearchError
from sauce_finder.orchestrator.schemas import FileSource, RawMatch, UrlSource
from sauce_finder.services.cache import ResultCache
from sauce_finder.services.cancellation import CancelToken
from sauce_finder.services.fingerprint import compute_key
from sauce_finder.services.metrics import MetricsCollector

logger = logging.getLogger(__name__)


class SearchClient(Protocol):
    async def search(self, source: FileSource | UrlSource) -> list[RawMatch]: ...


def backoff_delay(
    attempt: int,
    base_ms: float = 1000,
    jitter_ms: float = 1000,
    rand: Callable[[], float] = random.random,
) -> float:
    """Delay in seconds after `attempt` failed attempts: 2^attempt * base + jitter."""
    return (2 ** attempt * base_ms + rand() * jitter_ms) / 1000


async def _cancellable_sleep(seconds: float, cancel: CancelToken):
    await cancel.sleep(seconds)


class SearchOrchestrator:
    """Runs one search at a time per call; holds no per-search state."""

    def __init__(
        self,
        client: SearchClient,
        cache: ResultCache,
        metrics: MetricsCollector,
        max_attempts: int | None = None,
        base_delay_ms: float | None = None,
        jitter_ms: float | None = None,
        sleep: Callable[[float, CancelToken], Awaitable[None]] = _cancellable_sleep,
    ):
        self.client = client
        self.cache = cache
        self.metrics = metrics
        self.max_attempts = max_attempts or settings.search_max_attempts
        self.base_delay_ms = base_delay_ms if base_delay_ms is not None else settings.retry_base_delay_ms
        self.jitter_ms = jitter_ms if jitter_ms is not None else settings.retry_jitter_ms
        self._sleep = sleep

    async def search(self, source: FileSource | UrlSource, cancel: CancelToken, session=None) -> list[RawMatch]:
        """Return raw matches for source, from cache or the network."""
        cancel.raise_if_cancelled()

        key: str | None
        try:
            key = compute_key(source)
        except HashingUnavailable:
            logger.warning("Fingerprint unavailable — searching without cache")
            key = None

        if key is not None:
            entry = self.cache.get(key)
            if entry is not None:
                self.metrics.record_cache_hit()
                if session is not None:
                    session.cache_hit = True
                return list(entry.results)
            self.metrics.record_cache_miss()

        last_error: SearchError | None = None

        for attempt in range(1, self.max_attempts + 1):
            if cancel.cancelled:
                raise Cancelled(f"Search {cancel.reason}", attempts=attempt - 1)
            if session is not None:
                session.attempts = attempt

            start = time.monotonic()
            try:
                matches = await cancel.run(self.client.search(source))

            except Cancelled as e:
                e.attempts = attempt
                logger.info("Search cancelled | attempt=%d/%d", attempt, self.max_attempts)
                raise

            except SearchError as e:
                elapsed_ms = int((time.monotonic() - start) * 1000)
                e.attempts = attempt
                if not e.retryable:
                    logger.error(
                        "Search failed (not retryable) | %s | attempt=%d/%d | %dms | %s",
                        type(e).__name__, attempt, self.max_attempts, elapsed_ms, str(e)[:200],
                    )
                    raise
                logger.warning(
                    "Search attempt failed | %s | status=%s | attempt=%d/%d | %dms",
                    type(e).__name__, e.status_code, attempt, self.max_attempts, elapsed_ms,
                )
                last_error = e
                if attempt < self.max_attempts:
                    delay = backoff_delay(attempt, self.base_delay_ms, self.jitter_ms)
                    logger.info("Retrying in %.2fs", delay)
                    try:
                        await self._sleep(delay, cancel)
                    except Cancelled as ce:
                        ce.attempts = attempt
                        raise
                continue

            elapsed_ms = (time.monotonic() - start) * 1000
            self.metrics.record_response_time(elapsed_ms)
            if key is not None:
                self.cache.put(key, matches, elapsed_ms)
            logger.info(
                "Search OK | matches=%d | attempt=%d/%d | %dms",
                len(matches), attempt, self.max_attempts, int(elapsed_ms),
            )
            return matches

        logger.error("Search failed after %d attempts | %s", self.max_attempts, str(last_error)[:200])
        raise last_error or SearchError("Search failed after all retries", attempts=self.max_attempts)
