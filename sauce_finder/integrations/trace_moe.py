"""trace.moe scene search integration.

Docs: https://soruly.github.io/trace.moe-api/

One call = one protocol attempt. Retries, caching and cancellation belong to
the orchestrator; this client only maps transport and payload failures onto
the search error types.
"""

import logging
import time
from typing import Any

import httpx
from pydantic import ValidationError

from sauce_finder.config import settings
from sauce_finder.errors import MalformedResponse, NetworkError, ServiceError
from sauce_finder.orchestrator.schemas import FileSource, RawMatch, UrlSource

logger = logging.getLogger(__name__)

SEARCH_PATH = "/search"
ACCEPT_JSON = {"Accept": "application/json"}


class TraceMoeClient:
    """Async client for the trace.moe /search endpoint."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.trace_moe_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds

    @property
    def search_url(self) -> str:
        return f"{self.base_url}{SEARCH_PATH}"

    async def search(self, source: FileSource | UrlSource) -> list[RawMatch]:
        """Run one search request and return the raw matches."""
        start = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                if isinstance(source, UrlSource):
                    resp = await client.get(
                        self.search_url, params={"url": source.url}, headers=ACCEPT_JSON,
                    )
                else:
                    resp = await client.post(
                        self.search_url,
                        files={"image": (source.file_name, source.data, source.mime_type or None)},
                        headers=ACCEPT_JSON,
                    )
        except httpx.TimeoutException as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning("trace.moe timeout | %dms | %s", elapsed_ms, str(e)[:200])
            raise NetworkError(f"Request timed out: {e}") from e
        except httpx.TransportError as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning("trace.moe network error | %dms | %s", elapsed_ms, str(e)[:200])
            raise NetworkError(f"Network error: {e}") from e

        elapsed_ms = int((time.monotonic() - start) * 1000)

        if not resp.is_success:
            detail = _error_field(resp)
            logger.warning("trace.moe search | status=%d | %dms | %s", resp.status_code, elapsed_ms, detail[:200])
            message = f"API request failed: {resp.status_code} {resp.reason_phrase}"
            if detail:
                message = f"{message} ({detail})"
            raise ServiceError(message, status_code=resp.status_code)

        matches = self._parse(resp)
        logger.info("trace.moe search OK | matches=%d | %dms", len(matches), elapsed_ms)
        return matches

    def _parse(self, resp: httpx.Response) -> list[RawMatch]:
        """Validate the JSON envelope and each match."""
        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponse(f"Response is not JSON: {str(e)[:100]}", status_code=resp.status_code) from e

        if not isinstance(data, dict):
            raise MalformedResponse("Response is not a JSON object", status_code=resp.status_code)

        if data.get("error"):
            raise ServiceError(str(data["error"]), status_code=resp.status_code)

        results = data.get("result")
        if not isinstance(results, list):
            raise MalformedResponse("Response has no result list", status_code=resp.status_code)

        try:
            return [RawMatch.model_validate(item) for item in results]
        except ValidationError as e:
            raise MalformedResponse(f"Unexpected match shape: {str(e)[:200]}", status_code=resp.status_code) from e


def _error_field(resp: httpx.Response) -> str:
    try:
        data: Any = resp.json()
    except ValueError:
        return ""
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return ""
