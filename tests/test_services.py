"""Tests for image validation, metrics and search history."""

from unittest.mock import AsyncMock

import pytest

from conftest import make_png
from sauce_finder.orchestrator.schemas import FileSource, HistoryEntry
from sauce_finder.services.history import MemoryHistoryStore, SearchHistoryLog
from sauce_finder.services.image_validator import (
    DEFAULT_QUALITY,
    INTEGRITY_WARNING,
    LOW_QUALITY_WARNING,
    ImageValidator,
    assess_quality,
)
from sauce_finder.services.metrics import MetricsCollector
from sauce_finder.utils.formatting import rank_results


# ═══════════════ Image Validator ═══════════════


class TestImageValidator:
    @pytest.fixture
    def validator(self):
        return ImageValidator(max_file_size=25 * 1024 * 1024, quality_threshold=0.8)

    @pytest.mark.asyncio
    async def test_sharp_image_accepted_without_warnings(self, validator, file_source):
        outcome = await validator.validate(file_source)
        assert outcome.accepted is True
        assert outcome.warnings == []
        assert outcome.quality_score == 1.0

    @pytest.mark.asyncio
    async def test_unsupported_type_rejected(self, validator, png_bytes):
        source = FileSource(data=png_bytes, mime_type="text/plain", file_name="notes.txt")
        outcome = await validator.validate(source)
        assert outcome.accepted is False
        assert outcome.reason == "Unsupported file type: text/plain"

    @pytest.mark.asyncio
    async def test_missing_type_rejected(self, validator, png_bytes):
        outcome = await validator.validate(FileSource(data=png_bytes))
        assert outcome.accepted is False
        assert "unknown" in outcome.reason

    @pytest.mark.asyncio
    async def test_mime_type_case_insensitive(self, validator, png_bytes):
        outcome = await validator.validate(FileSource(data=png_bytes, mime_type="IMAGE/PNG"))
        assert outcome.accepted is True

    @pytest.mark.asyncio
    async def test_oversize_rejected(self, png_bytes):
        validator = ImageValidator(max_file_size=len(png_bytes) - 1)
        outcome = await validator.validate(FileSource(data=png_bytes, mime_type="image/png"))
        assert outcome.accepted is False
        assert outcome.reason.startswith("File too large")

    @pytest.mark.asyncio
    async def test_exact_limit_accepted(self, png_bytes):
        validator = ImageValidator(max_file_size=len(png_bytes))
        outcome = await validator.validate(FileSource(data=png_bytes, mime_type="image/png"))
        assert outcome.accepted is True

    @pytest.mark.asyncio
    async def test_flat_image_warns_low_quality(self, validator):
        source = FileSource(data=make_png(pattern="flat"), mime_type="image/png")
        outcome = await validator.validate(source)
        assert outcome.accepted is True
        assert outcome.warnings == [LOW_QUALITY_WARNING]
        assert outcome.quality_score == 0.0

    @pytest.mark.asyncio
    async def test_corrupt_bytes_still_accepted_with_warnings(self, validator):
        source = FileSource(data=b"\x89PNG not really", mime_type="image/png")
        outcome = await validator.validate(source)
        assert outcome.accepted is True
        assert INTEGRITY_WARNING in outcome.warnings
        assert LOW_QUALITY_WARNING in outcome.warnings
        assert outcome.quality_score == DEFAULT_QUALITY

    @pytest.mark.asyncio
    async def test_url_source_passes(self, validator, url_source):
        outcome = await validator.validate(url_source)
        assert outcome.accepted is True
        assert outcome.warnings == []

    def test_quality_score_clamped(self, png_bytes):
        assert assess_quality(png_bytes) == 1.0

    def test_quality_default_on_garbage(self):
        assert assess_quality(b"garbage") == DEFAULT_QUALITY


# ═══════════════ Metrics ═══════════════


class TestMetricsCollector:
    def test_empty_snapshot(self):
        snap = MetricsCollector().snapshot()
        assert snap.cache_hit_rate == 0.0
        assert snap.success_rate is None
        assert snap.avg_search_time_ms is None
        assert snap.search_samples == 0

    def test_rates(self):
        metrics = MetricsCollector()
        metrics.record_cache_hit()
        metrics.record_cache_miss()
        metrics.record_cache_miss()
        metrics.record_success(100)
        metrics.record_success(300)
        metrics.record_error(200)
        metrics.record_cancelled()

        snap = metrics.snapshot()
        assert snap.cache_hit_rate == 33.3
        assert snap.success_rate == 66.7
        assert snap.avg_search_time_ms == 200.0
        assert snap.cancelled_count == 1
        assert snap.search_samples == 3

    def test_rolling_response_time(self):
        metrics = MetricsCollector()
        metrics.record_response_time(100)
        assert metrics.avg_response_time_ms == 50.0
        metrics.record_response_time(150)
        assert metrics.avg_response_time_ms == 100.0

    def test_samples_bounded(self):
        metrics = MetricsCollector(sample_limit=3)
        for ms in (10, 20, 30, 40):
            metrics.record_success(ms)
        snap = metrics.snapshot()
        assert snap.search_samples == 3
        assert snap.avg_search_time_ms == 30.0
        assert snap.success_count == 4

    def test_error_without_timing(self):
        metrics = MetricsCollector()
        metrics.record_error()
        assert metrics.snapshot().search_samples == 0
        assert metrics.snapshot().error_count == 1


# ═══════════════ History ═══════════════


class TestSearchHistory:
    @pytest.mark.asyncio
    async def test_record_file_search(self, file_source, raw_matches):
        log = SearchHistoryLog(MemoryHistoryStore(max_entries=50), limit=50)
        entry = await log.record(file_source, rank_results(raw_matches))

        assert entry.input == "screenshot.png"
        assert entry.input_type == "file"
        assert entry.results_count == 2
        assert entry.top_result == "Is the Order a Rabbit?? Season 2"
        assert entry.similarity == pytest.approx(0.944, abs=1e-3)

    @pytest.mark.asyncio
    async def test_record_url_search_without_results(self, url_source):
        log = SearchHistoryLog(MemoryHistoryStore())
        entry = await log.record(url_source, [])

        assert entry.input == "https://example.com/frame.jpg"
        assert entry.input_type == "url"
        assert entry.top_result is None
        assert entry.similarity == 0.0

    @pytest.mark.asyncio
    async def test_recent_is_newest_first_and_bounded(self, url_source):
        log = SearchHistoryLog(MemoryHistoryStore(max_entries=50), limit=50)
        for _ in range(55):
            await log.record(url_source, [])
        last = await log.record(url_source, [])

        recent = await log.recent()
        assert len(recent) == 50
        assert recent[0].id == last.id

    @pytest.mark.asyncio
    async def test_save_failure_is_swallowed(self, url_source):
        store = AsyncMock()
        store.save.side_effect = RuntimeError("disk full")
        log = SearchHistoryLog(store)

        assert await log.record(url_source, []) is None

    @pytest.mark.asyncio
    async def test_load_failure_returns_empty(self):
        store = AsyncMock()
        store.load.side_effect = RuntimeError("connection refused")
        log = SearchHistoryLog(store)

        assert await log.recent() == []

    @pytest.mark.asyncio
    async def test_memory_store_load_limit(self):
        store = MemoryHistoryStore(max_entries=10)
        for i in range(5):
            await store.save(HistoryEntry(id=str(i), input="x", input_type="url"))
        loaded = await store.load(3)
        assert [e.id for e in loaded] == ["4", "3", "2"]

    @pytest.mark.asyncio
    async def test_clear_removes_all_entries(self, url_source):
        log = SearchHistoryLog(MemoryHistoryStore(max_entries=50))
        for _ in range(3):
            await log.record(url_source, [])

        assert await log.clear() is True
        assert await log.recent() == []

    @pytest.mark.asyncio
    async def test_memory_store_clear_count(self):
        store = MemoryHistoryStore(max_entries=10)
        await store.save(HistoryEntry(id="a", input="x", input_type="url"))
        await store.save(HistoryEntry(id="b", input="y", input_type="url"))
        assert await store.clear() == 2
        assert await store.load(10) == []

    @pytest.mark.asyncio
    async def test_clear_failure_reported(self):
        store = AsyncMock()
        store.clear.side_effect = RuntimeError("connection refused")
        log = SearchHistoryLog(store)

        assert await log.clear() is False
