"""Ranking and presentation helpers for trace.moe matches."""

import re
from typing import Any, Iterable

from sauce_finder.errors import Cancelled, MalformedResponse, NetworkError, SearchError
from sauce_finder.orchestrator.schemas import AnilistInfo, Confidence, RankedResult, RawMatch

MIN_SIMILARITY = 0.1
MAX_RESULTS = 10
ANILIST_ANIME_URL = "https://anilist.co/anime/{id}"

_BRACKET_GROUPS = [r"\[.*?\]", r"\(.*?\)", r"\{.*?\}", r"【.*?】"]
_VIDEO_EXT = re.compile(r"\.(mp4|mkv|avi|mov|wmv|flv|webm)$", re.IGNORECASE)
_EPISODE_SUFFIX = re.compile(r"[-_\s]+(ep|episode|e)[\s\d]+.*$", re.IGNORECASE)
_NUMBER_SUFFIX = re.compile(r"[-_\s]+\d{2,3}.*$")
_QUALITY_TAGS = re.compile(r"(1080p|720p|480p|x264|x265|AAC|FLAC)", re.IGNORECASE)
_RELEASE_GROUP = re.compile(
    r"^(raws?|ohys|leopard|subsplease|horriblesubs|commie|gg|doki|underwater"
    r"|fff|utw|thora|reinforce|sosg|52wy)\s+",
    re.IGNORECASE,
)


# ═══════════════ RANKING ═══════════════

def rank_results(
    matches: Iterable[RawMatch],
    min_similarity: float = MIN_SIMILARITY,
    limit: int = MAX_RESULTS,
) -> list[RankedResult]:
    """Drop weak matches, order by similarity (desc) and keep the top `limit`."""
    kept = sorted(
        (m for m in matches if m.similarity > min_similarity),
        key=lambda m: m.similarity,
        reverse=True,
    )[:limit]
    return [to_ranked(match, index) for index, match in enumerate(kept)]


def to_ranked(match: RawMatch, index: int) -> RankedResult:
    percent = round(match.similarity * 100, 1)
    anilist = anilist_id(match.anilist)
    return RankedResult(
        rank=index + 1,
        title=extract_title(match),
        similarity=match.similarity,
        similarity_percent=percent,
        similarity_text=f"{percent:.1f}%",
        confidence=confidence_level(percent),
        episode_text=format_episode(match.episode),
        timestamp_text=format_timestamp(match.from_, match.to),
        image=match.image,
        video=match.video,
        anilist_id=anilist,
        anilist_url=ANILIST_ANIME_URL.format(id=anilist) if anilist is not None else None,
        is_top_match=index == 0,
    )


# ═══════════════ FIELD FORMATTERS ═══════════════

def format_episode(episode: Any) -> str:
    if episode is None:
        return "Episode Unknown"
    if isinstance(episode, str) and "|" in episode:
        ep, total = episode.split("|", 1)
        return f"Episode {ep} of {total}"
    if isinstance(episode, list):
        return "Episode " + ", ".join(_plain_number(e) for e in episode)
    return f"Episode {_plain_number(episode)}"


def format_timestamp(start: float | None, end: float | None) -> str | None:
    """'m:ss - m:ss', or 'At m:ss' when both ends coincide."""
    if start is None or end is None:
        return None
    if start == end:
        return f"At {_clock(start)}"
    return f"{_clock(start)} - {_clock(end)}"


def confidence_level(percent: float) -> Confidence:
    if percent >= 90:
        return Confidence(level="high", label="Excellent")
    if percent >= 75:
        return Confidence(level="high", label="High")
    if percent >= 60:
        return Confidence(level="medium", label="Medium")
    if percent >= 40:
        return Confidence(level="medium", label="Low")
    return Confidence(level="low", label="Very Low")


def extract_title(match: RawMatch) -> str:
    """AniList title (english → romaji → native), else cleaned file name."""
    if isinstance(match.anilist, AnilistInfo) and match.anilist.title is not None:
        title = match.anilist.title
        return title.english or title.romaji or title.native or "Unknown Title"
    if match.filename:
        return title_from_filename(match.filename)
    return match.anime or "Unknown Anime"


def title_from_filename(filename: str) -> str:
    """Best-effort series name from a release file name."""
    if not filename:
        return "Unknown Anime"

    title = filename
    for pattern in _BRACKET_GROUPS:
        title = re.sub(pattern, "", title)
    title = _VIDEO_EXT.sub("", title)
    title = _EPISODE_SUFFIX.sub("", title)
    title = _NUMBER_SUFFIX.sub("", title)
    title = _QUALITY_TAGS.sub("", title)
    title = re.sub(r"[-_]+", " ", title)
    title = re.sub(r"\s+", " ", title).strip()
    title = _RELEASE_GROUP.sub("", title)

    return title or "Unknown Anime"


def anilist_id(anilist: Any) -> int | str | None:
    if isinstance(anilist, AnilistInfo):
        return anilist.id
    return anilist


def format_file_size(num_bytes: int) -> str:
    if num_bytes <= 0:
        return "0 Bytes"
    sizes = ["Bytes", "KB", "MB", "GB"]
    value = float(num_bytes)
    i = 0
    while value >= 1024 and i < len(sizes) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {sizes[i]}"


def describe_error(error: Exception) -> str:
    """User-facing message for a failed search."""
    if isinstance(error, Cancelled):
        return "Search was cancelled"
    if isinstance(error, NetworkError):
        return "Network error. Please check your internet connection and try again."
    if isinstance(error, MalformedResponse):
        return "The search service returned an unexpected response. Please try again later."

    status = error.status_code if isinstance(error, SearchError) else None
    if status == 429:
        return "Too many requests. Please wait a moment and try again."
    if status in (500, 502, 503):
        return "Server error. The service might be temporarily unavailable."
    if status == 400:
        return "Invalid request. Please check your image and try again."
    if status == 413:
        return "Image too large. Please use a smaller image."
    return "Something went wrong. Please try again with a different image."


def _clock(seconds: float) -> str:
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}:{secs:02d}"


def _plain_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
