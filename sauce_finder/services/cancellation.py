"""Cooperative cancellation token passed explicitly into each search.

One token per search session. The orchestrator checks it before every
attempt, races the in-flight request against it and waits on it during
backoff, so a cancel is observed at whichever suspension point is active.
"""

import asyncio
import logging
from typing import Any, Awaitable

from sauce_finder.errors import Cancelled

logger = logging.getLogger(__name__)


class CancelToken:
    """Single-use cancellation signal backed by an asyncio.Event."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> bool:
        """Signal cancellation. Returns False if already cancelled."""
        if self._event.is_set():
            return False
        self.reason = reason
        self._event.set()
        return True

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise Cancelled(f"Search {self.reason}")

    async def sleep(self, seconds: float):
        """Sleep for `seconds`, raising Cancelled as soon as the token fires."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise Cancelled(f"Search {self.reason} during backoff")

    async def run(self, awaitable: Awaitable[Any]) -> Any:
        """Await `awaitable`, aborting it if the token fires first."""
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise Cancelled(f"Search {self.reason}")

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        if task in done:
            waiter.cancel()
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("In-flight request aborted | reason=%s", self.reason)
        raise Cancelled(f"Search {self.reason}")
