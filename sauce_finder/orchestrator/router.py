"""Search router — the entry point callers use for a search.

Responsibilities:
  - Validate input (hard format/size limits, soft quality warnings)
  - Run the search in the caller's slot (a new search supersedes the old one)
  - Record success / error / cancellation metrics
  - Rank raw matches for presentation
"""

import logging

from sauce_finder.errors import Cancelled, SearchError, ValidationRejected
from sauce_finder.integrations.trace_moe import TraceMoeClient
from sauce_finder.orchestrator.schemas import FileSource, SearchOutcome, UrlSource
from sauce_finder.orchestrator.search import SearchClient, SearchOrchestrator
from sauce_finder.orchestrator.session import SearchSession, SearchSlot
from sauce_finder.services.cache import ResultCache
from sauce_finder.services.image_validator import ImageValidator
from sauce_finder.services.metrics import MetricsCollector
from sauce_finder.utils.formatting import rank_results

logger = logging.getLogger(__name__)

DEFAULT_SLOT = "default"


class SearchRouter:
    """Wires validator, orchestrator, cache and metrics together."""

    def __init__(
        self,
        client: SearchClient | None = None,
        cache: ResultCache | None = None,
        metrics: MetricsCollector | None = None,
        validator: ImageValidator | None = None,
        orchestrator: SearchOrchestrator | None = None,
    ):
        self.cache = cache or ResultCache()
        self.metrics = metrics or MetricsCollector()
        self.validator = validator or ImageValidator()
        self.orchestrator = orchestrator or SearchOrchestrator(
            client=client or TraceMoeClient(),
            cache=self.cache,
            metrics=self.metrics,
        )
        self._slots: dict[str, SearchSlot] = {}

    async def route(self, source: FileSource | UrlSource, slot_id: str = DEFAULT_SLOT) -> SearchOutcome:
        """Validate, search and rank. Raises ValidationRejected or SearchError."""
        slot = self._slots.setdefault(slot_id, SearchSlot(self.orchestrator))
        session = SearchSession(source=source)
        # Claim before validating so a cancel or a newer search sees this one
        slot.claim(session)
        logger.info("Search routing | kind=%s | slot=%s", source.kind, slot_id[:16])

        try:
            validation = await session.cancel_token.run(self.validator.validate(source))
            if not validation.accepted:
                raise ValidationRejected(validation.reason or "Image rejected", validation.warnings)
            matches = await slot.run(session)
        except Cancelled:
            self.metrics.record_cancelled()
            logger.info("Search cancelled | slot=%s | %dms", slot_id[:16], session.elapsed_ms)
            raise
        except SearchError as e:
            self.metrics.record_error(session.elapsed_ms)
            logger.error(
                "Search failed | %s | attempts=%d | status=%s | %dms",
                type(e).__name__, e.attempts, e.status_code, session.elapsed_ms,
            )
            raise
        finally:
            slot.release(session)
            if slot.active is None and slot.settled and self._slots.get(slot_id) is slot:
                self._slots.pop(slot_id, None)

        elapsed_ms = session.elapsed_ms
        self.metrics.record_success(elapsed_ms)
        ranked = rank_results(matches)
        logger.info(
            "Search completed | raw=%d | ranked=%d | cache_hit=%s | %dms",
            len(matches), len(ranked), session.cache_hit, elapsed_ms,
        )
        return SearchOutcome(
            results=ranked,
            raw_count=len(matches),
            warnings=validation.warnings,
            cache_hit=session.cache_hit,
            attempts=session.attempts,
            search_time_ms=elapsed_ms,
        )

    def cancel(self, slot_id: str = DEFAULT_SLOT) -> bool:
        """Cancel the slot's running search. False when nothing is running."""
        slot = self._slots.get(slot_id)
        if slot is None:
            return False
        cancelled = slot.cancel()
        if cancelled:
            logger.info("Search cancel requested | slot=%s", slot_id[:16])
        return cancelled
