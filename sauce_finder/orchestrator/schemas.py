"""Pydantic models shared by the search core and the API.

Split into: image sources, service matches, cache/validation/metrics records,
and the final API payloads.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ═══════════════ IMAGE SOURCES ═══════════════

class FileSource(BaseModel):
    """Uploaded image bytes plus the metadata the browser/client reported."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["file"] = "file"
    data: bytes = Field(repr=False)
    mime_type: str = ""
    size_bytes: int
    file_name: str = "image"

    @model_validator(mode="before")
    @classmethod
    def _default_size(cls, values: Any) -> Any:
        if isinstance(values, dict) and values.get("size_bytes") is None:
            data = values.get("data")
            if isinstance(data, (bytes, bytearray)):
                values = {**values, "size_bytes": len(data)}
        return values

    @model_validator(mode="after")
    def _check_size(self) -> FileSource:
        if self.size_bytes != len(self.data):
            raise ValueError(f"size_bytes={self.size_bytes} does not match data length {len(self.data)}")
        return self


class UrlSource(BaseModel):
    """Absolute http(s) URL of an image the service should fetch itself."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["url"] = "url"
    url: str

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        value = value.strip()
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("url must be an absolute http or https URL")
        return value


ImageSource = Annotated[Union[FileSource, UrlSource], Field(discriminator="kind")]


# ═══════════════ SERVICE MATCHES ═══════════════

class AnilistTitle(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    english: str | None = None
    romaji: str | None = None
    native: str | None = None


class AnilistInfo(BaseModel):
    """AniList metadata attached when the service is asked for anilistInfo."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: int | None = None
    id_mal: int | None = Field(default=None, alias="idMal")
    title: AnilistTitle | None = None
    synonyms: list[str] = Field(default_factory=list)
    is_adult: bool | None = Field(default=None, alias="isAdult")


class RawMatch(BaseModel):
    """One candidate scene exactly as the recognition service returned it."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    similarity: float
    episode: int | float | str | list[int | float | str] | None = None
    from_: float | None = Field(default=None, alias="from")
    to: float | None = None
    filename: str | None = None
    anime: str | None = None
    image: str | None = None
    video: str | None = None
    anilist: int | str | AnilistInfo | None = None


# ═══════════════ CACHE / VALIDATION / METRICS ═══════════════

class CacheEntry(BaseModel):
    """Cached result set. Replaced wholesale, never partially updated."""

    model_config = ConfigDict(frozen=True)

    key: str
    results: tuple[RawMatch, ...]
    inserted_at: float
    response_time_ms: float = 0.0


class ValidationOutcome(BaseModel):
    accepted: bool
    warnings: list[str] = Field(default_factory=list)
    reason: str | None = None
    quality_score: float | None = None


class MetricsSnapshot(BaseModel):
    success_count: int = 0
    error_count: int = 0
    cancelled_count: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    cache_hit_rate: float = 0.0
    success_rate: float | None = None
    avg_response_time_ms: float = 0.0
    avg_search_time_ms: float | None = None
    search_samples: int = 0


# ═══════════════ FINAL API RESPONSE ═══════════════

class Confidence(BaseModel):
    level: Literal["high", "medium", "low"] = "low"
    label: str = ""


class RankedResult(BaseModel):
    """A match filtered, ordered and formatted for presentation."""
    rank: int
    title: str
    similarity: float
    similarity_percent: float
    similarity_text: str
    confidence: Confidence
    episode_text: str
    timestamp_text: str | None = None
    image: str | None = None
    video: str | None = None
    anilist_id: int | str | None = None
    anilist_url: str | None = None
    is_top_match: bool = False


class SearchOutcome(BaseModel):
    """Router result returned to the API caller."""
    results: list[RankedResult] = Field(default_factory=list)
    raw_count: int = 0
    warnings: list[str] = Field(default_factory=list)
    cache_hit: bool = False
    attempts: int = 0
    search_time_ms: int = 0


class HistoryEntry(BaseModel):
    """One line of the user's search history."""
    id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    input: str
    input_type: Literal["file", "url"]
    results_count: int = 0
    top_result: str | None = None
    similarity: float = 0.0
