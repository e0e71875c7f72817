"""Shared test fixtures and configuration."""

import io
import os

import pytest
from PIL import Image

# Keep tests off any real database
os.environ.setdefault("HISTORY_BACKEND", "memory")

from sauce_finder.orchestrator.schemas import FileSource, RawMatch, UrlSource  # noqa: E402


def make_png(width: int = 8, height: int = 8, pattern: str = "checker") -> bytes:
    """Small in-memory PNG. 'checker' is sharp and mid-bright, 'flat' is neither."""
    img = Image.new("RGB", (width, height))
    for y in range(height):
        for x in range(width):
            if pattern == "checker":
                value = 255 if (x + y) % 2 else 0
            else:
                value = 128
            img.putpixel((x, y), (value, value, value))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def file_source(png_bytes):
    return FileSource(data=png_bytes, mime_type="image/png", file_name="screenshot.png")


@pytest.fixture
def url_source():
    return UrlSource(url="https://example.com/frame.jpg")


@pytest.fixture
def sample_trace_response():
    """Minimal trace.moe /search response: one strong match with AniList title."""
    return {
        "result": [
            {
                "similarity": 0.95,
                "episode": "3|12",
                "from": 10,
                "to": 13,
                "anilist": {"title": {"english": "Example"}},
            },
        ],
    }


@pytest.fixture
def sample_full_response():
    """Realistic trace.moe response with anilistInfo and several candidates."""
    return {
        "frameCount": 745506,
        "error": "",
        "result": [
            {
                "anilist": {
                    "id": 21034,
                    "idMal": 31043,
                    "title": {
                        "native": "ご注文はうさぎですか？？",
                        "romaji": "Gochuumon wa Usagi desu ka??",
                        "english": "Is the Order a Rabbit?? Season 2",
                    },
                    "synonyms": ["Gochiusa 2"],
                    "isAdult": False,
                },
                "filename": "[Ohys-Raws] Gochuumon wa Usagi Desu ka 2 - 01 (AT-X 1280x720 x264 AAC).mp4",
                "episode": 1,
                "from": 288.0833,
                "to": 292.0833,
                "similarity": 0.9440424588727485,
                "video": "https://media.trace.moe/video/21034/clip.mp4",
                "image": "https://media.trace.moe/image/21034/frame.jpg",
            },
            {
                "anilist": 21034,
                "filename": "Gochuumon wa Usagi Desu ka 2 - 02.mp4",
                "episode": 2,
                "from": 100.5,
                "to": 100.5,
                "similarity": 0.62,
            },
            {
                "anilist": 99999,
                "filename": "noise.mp4",
                "episode": None,
                "similarity": 0.05,
            },
        ],
    }


@pytest.fixture
def raw_matches(sample_full_response):
    return [RawMatch.model_validate(m) for m in sample_full_response["result"]]
