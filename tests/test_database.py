"""Tests for the search history table and its row mapping."""

import uuid
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from sauce_finder import database
from sauce_finder.config import settings
from sauce_finder.models import Base, SearchHistory
from sauce_finder.orchestrator.schemas import HistoryEntry
from sauce_finder.services.history import _entry_to_row, _row_to_entry


class TestSearchHistoryModel:
    def test_create_instance(self):
        record = SearchHistory(
            input_label="screenshot.png",
            input_type="file",
            results_count=3,
            top_result="Example",
            similarity=0.95,
        )
        assert record.input_label == "screenshot.png"
        assert record.input_type == "file"
        assert record.results_count == 3
        assert record.top_result == "Example"

    def test_table_registered(self):
        table = Base.metadata.tables["search_history"]
        assert {"id", "input_label", "input_type", "results_count", "top_result",
                "similarity", "created_at"} <= set(table.columns.keys())

    def test_indexes(self):
        table = Base.metadata.tables["search_history"]
        assert table.c.input_type.index is True
        assert table.c.created_at.index is True
        assert table.c.top_result.nullable is True


class TestHistoryRowMapping:
    def test_entry_to_row(self):
        entry = HistoryEntry(
            id=uuid.uuid4().hex,
            input="https://example.com/frame.jpg",
            input_type="url",
            results_count=1,
            top_result="Example",
            similarity=0.95,
        )
        row = _entry_to_row(entry)
        assert isinstance(row, SearchHistory)
        assert row.id.hex == entry.id
        assert row.input_label == entry.input
        assert row.created_at == entry.created_at

    def test_row_to_entry(self):
        created = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        row = SearchHistory(
            id=uuid.UUID(int=7),
            input_label="clip.png",
            input_type="file",
            results_count=0,
            top_result=None,
            similarity=0.0,
            created_at=created,
        )
        entry = _row_to_entry(row)
        assert entry.id == uuid.UUID(int=7).hex
        assert entry.input == "clip.png"
        assert entry.top_result is None
        assert entry.created_at == created


class TestDatabaseSetup:
    def test_pool_sized_from_settings(self):
        assert database.engine.pool.size() == settings.database_pool_size
        assert database.engine.echo is settings.database_echo

    @pytest.mark.asyncio
    async def test_init_db_reports_unreachable(self, monkeypatch):
        engine = MagicMock()
        engine.begin.side_effect = OSError("connection refused")
        monkeypatch.setattr(database, "engine", engine)

        assert await database.init_db() is False
