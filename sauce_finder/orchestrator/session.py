"""Search sessions and single-flight slots.

A slot is one client's visible search position. Claiming a slot cancels
whatever that slot was still running (supersession); the two searches are
never merged. The new search does not reach the network until every session
it superseded has fully finished, so a slot never has two requests in flight.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field

from sauce_finder.orchestrator.schemas import FileSource, RawMatch, UrlSource
from sauce_finder.orchestrator.search import SearchOrchestrator
from sauce_finder.services.cancellation import CancelToken

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class SearchSession:
    """One in-flight or completed search attempt."""
    source: FileSource | UrlSource
    cancel_token: CancelToken = field(default_factory=CancelToken)
    started_at: float = field(default_factory=time.monotonic)
    attempts: int = 0
    cache_hit: bool = False
    finished: bool = False
    claimed: bool = False
    predecessor: "SearchSession | None" = field(default=None, repr=False)
    _done: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)

    def cancel(self, reason: str = "cancelled") -> bool:
        """Cancel if still running. No-op on a finished session."""
        if self.finished:
            return False
        return self.cancel_token.cancel(reason)

    def finish(self):
        self.finished = True
        self._done.set()

    async def wait_settled(self):
        """Wait until this session and every session it superseded are finished."""
        await self._done.wait()
        if self.predecessor is not None:
            await self.predecessor.wait_settled()

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


class SearchSlot:
    """Holds at most one active SearchSession."""

    def __init__(self, orchestrator: SearchOrchestrator):
        self.orchestrator = orchestrator
        self._active: SearchSession | None = None
        self._latest: SearchSession | None = None

    @property
    def active(self) -> SearchSession | None:
        return self._active

    @property
    def settled(self) -> bool:
        """True when no session claimed on this slot is still running."""
        session = self._latest
        while session is not None:
            if not session.finished:
                return False
            session = session.predecessor
        return True

    def claim(self, session: SearchSession):
        """Make session the active one, superseding the current occupant."""
        previous = self._active
        if previous is not None and previous.cancel("superseded"):
            logger.info("Superseding active search | attempts=%d", previous.attempts)
        # Chain to the newest claimant, which may be cancelled but not yet finished
        session.predecessor = self._latest
        session.claimed = True
        self._active = self._latest = session

    def release(self, session: SearchSession):
        session.finish()
        if self._active is session:
            self._active = None

    async def run(self, session: SearchSession) -> list[RawMatch]:
        """Search for session.source once every superseded session has stopped."""
        if not session.claimed:
            self.claim(session)
        try:
            if session.predecessor is not None:
                await session.cancel_token.run(session.predecessor.wait_settled())
                session.predecessor = None
            return await self.orchestrator.search(session.source, session.cancel_token, session=session)
        finally:
            self.release(session)

    def cancel(self) -> bool:
        """Cancel the active session, if any."""
        if self._active is None:
            return False
        return self._active.cancel()
