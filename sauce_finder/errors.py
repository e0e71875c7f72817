"""Error taxonomy shared by the search core and the API layer.

ValidationRejected and HashingUnavailable are raised before any network
work happens. SearchError subclasses are the only failures the
orchestrator surfaces; they carry the attempt count and the last HTTP
status so the caller can build a message.
"""

from __future__ import annotations


class SauceFinderError(Exception):
    """Base class for all application errors."""


class ValidationRejected(SauceFinderError):
    """Input failed a hard format or size limit. Never retried."""

    def __init__(self, reason: str, warnings: list[str] | None = None):
        self.reason = reason
        self.warnings = list(warnings or [])
        super().__init__(reason)


class HashingUnavailable(SauceFinderError):
    """Content digest could not be computed; the search runs uncacheable."""


class SearchError(SauceFinderError):
    """A search attempt (or the whole search) failed."""

    retryable = False

    def __init__(self, message: str, *, status_code: int | None = None, attempts: int = 0):
        self.status_code = status_code
        self.attempts = attempts
        super().__init__(message)


class Cancelled(SearchError):
    """The search was cancelled by its caller or superseded by a newer one."""


class NetworkError(SearchError):
    """Transport-level failure (timeout, connection refused, ...)."""

    retryable = True


class ServiceError(SearchError):
    """Non-2xx status or an error reported in the response body."""

    retryable = True


class MalformedResponse(SearchError):
    """Response body does not match the expected JSON shape."""
