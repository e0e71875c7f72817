"""Search metrics recorder.

Counts and timings only; nothing here influences control flow. The rolling
response time is the cheap (avg + t) / 2 approximation, not a true mean.
"""

import logging
from collections import deque

from sauce_finder.config import settings
from sauce_finder.orchestrator.schemas import MetricsSnapshot

logger = logging.getLogger(__name__)


class MetricsCollector:
    """In-memory counters for one process. Not thread-safe."""

    def __init__(self, sample_limit: int | None = None):
        limit = sample_limit if sample_limit is not None else settings.metrics_sample_limit
        self.success_count = 0
        self.error_count = 0
        self.cancelled_count = 0
        self.cache_hits = 0
        self.cache_misses = 0
        self.avg_response_time_ms = 0.0
        self._search_times: deque[float] = deque(maxlen=limit)

    def record_cache_hit(self):
        self.cache_hits += 1

    def record_cache_miss(self):
        self.cache_misses += 1

    def record_response_time(self, elapsed_ms: float):
        self.avg_response_time_ms = (self.avg_response_time_ms + elapsed_ms) / 2

    def record_success(self, search_time_ms: float):
        self.success_count += 1
        self._search_times.append(search_time_ms)

    def record_error(self, search_time_ms: float | None = None):
        self.error_count += 1
        if search_time_ms is not None:
            self._search_times.append(search_time_ms)

    def record_cancelled(self):
        self.cancelled_count += 1

    def snapshot(self) -> MetricsSnapshot:
        lookups = self.cache_hits + self.cache_misses
        finished = self.success_count + self.error_count
        samples = len(self._search_times)
        return MetricsSnapshot(
            success_count=self.success_count,
            error_count=self.error_count,
            cancelled_count=self.cancelled_count,
            cache_hits=self.cache_hits,
            cache_misses=self.cache_misses,
            cache_hit_rate=round(self.cache_hits / lookups * 100, 1) if lookups else 0.0,
            success_rate=round(self.success_count / finished * 100, 1) if finished else None,
            avg_response_time_ms=round(self.avg_response_time_ms, 1),
            avg_search_time_ms=round(sum(self._search_times) / samples, 1) if samples else None,
            search_samples=samples,
        )

    def log_summary(self):
        snap = self.snapshot()
        logger.info(
            "Metrics | ok=%d err=%d cancelled=%d | cache_hit_rate=%.1f%% | avg_response=%.0fms",
            snap.success_count, snap.error_count, snap.cancelled_count,
            snap.cache_hit_rate, snap.avg_response_time_ms,
        )
