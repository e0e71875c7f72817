"""Search history behind a storage port.

The search core never touches storage directly. The API layer hands a
finished search to SearchHistoryLog, which writes through whichever
HistoryStore it was built with:
  - MemoryHistoryStore: bounded deque, process lifetime only
  - DatabaseHistoryStore: PostgreSQL via SQLAlchemy (HISTORY_BACKEND=database)

History is best-effort: storage failures are logged, never raised to the
search caller.
"""

import logging
import uuid
from collections import deque
from typing import Protocol

from sauce_finder.config import settings
from sauce_finder.orchestrator.schemas import FileSource, HistoryEntry, RankedResult, UrlSource

logger = logging.getLogger(__name__)


class HistoryStore(Protocol):
    async def load(self, limit: int) -> list[HistoryEntry]: ...

    async def save(self, entry: HistoryEntry) -> None: ...

    async def clear(self) -> int: ...


class MemoryHistoryStore:
    """Newest-first history kept in process memory."""

    def __init__(self, max_entries: int | None = None):
        self._entries: deque[HistoryEntry] = deque(maxlen=max_entries or settings.history_limit)

    async def load(self, limit: int) -> list[HistoryEntry]:
        return list(self._entries)[:limit]

    async def save(self, entry: HistoryEntry) -> None:
        self._entries.appendleft(entry)

    async def clear(self) -> int:
        removed = len(self._entries)
        self._entries.clear()
        return removed


class DatabaseHistoryStore:
    """History rows in the search_history table."""

    async def load(self, limit: int) -> list[HistoryEntry]:
        from sqlalchemy import select

        from sauce_finder.database import async_session_factory
        from sauce_finder.models.search_history import SearchHistory

        async with async_session_factory() as session:
            rows = await session.scalars(
                select(SearchHistory).order_by(SearchHistory.created_at.desc()).limit(limit)
            )
            return [_row_to_entry(row) for row in rows]

    async def save(self, entry: HistoryEntry) -> None:
        from sauce_finder.database import async_session_factory

        async with async_session_factory() as session:
            session.add(_entry_to_row(entry))
            await session.commit()

    async def clear(self) -> int:
        from sqlalchemy import delete

        from sauce_finder.database import async_session_factory
        from sauce_finder.models.search_history import SearchHistory

        async with async_session_factory() as session:
            result = await session.execute(delete(SearchHistory))
            await session.commit()
            return result.rowcount or 0


class SearchHistoryLog:
    """Builds history entries from finished searches and persists them."""

    def __init__(self, store: HistoryStore, limit: int | None = None):
        self.store = store
        self.limit = limit or settings.history_limit

    async def record(self, source: FileSource | UrlSource, results: list[RankedResult]) -> HistoryEntry | None:
        top = results[0] if results else None
        entry = HistoryEntry(
            id=uuid.uuid4().hex,
            input=source.url if isinstance(source, UrlSource) else source.file_name,
            input_type=source.kind,
            results_count=len(results),
            top_result=top.title if top else None,
            similarity=top.similarity if top else 0.0,
        )
        try:
            await self.store.save(entry)
        except Exception as e:
            logger.warning("History save skipped: %s", str(e)[:100])
            return None
        return entry

    async def recent(self) -> list[HistoryEntry]:
        try:
            return await self.store.load(self.limit)
        except Exception as e:
            logger.warning("History load failed: %s", str(e)[:100])
            return []

    async def clear(self) -> bool:
        """Delete every entry. False when the store could not be cleared."""
        try:
            removed = await self.store.clear()
        except Exception as e:
            logger.warning("History clear failed: %s", str(e)[:100])
            return False
        logger.info("History cleared | removed=%d", removed)
        return True


def _entry_to_row(entry: HistoryEntry):
    from sauce_finder.models.search_history import SearchHistory

    return SearchHistory(
        id=uuid.UUID(entry.id),
        input_label=entry.input,
        input_type=entry.input_type,
        results_count=entry.results_count,
        top_result=entry.top_result,
        similarity=entry.similarity,
        created_at=entry.created_at,
    )


def _row_to_entry(row) -> HistoryEntry:
    return HistoryEntry(
        id=row.id.hex,
        created_at=row.created_at,
        input=row.input_label,
        input_type=row.input_type,
        results_count=row.results_count,
        top_result=row.top_result,
        similarity=row.similarity,
    )
