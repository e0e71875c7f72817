"""Image input validation.

Hard limits (reject): MIME type outside the supported set, size over 25 MB.
Soft checks (warn only): Pillow integrity check and a sharpness/exposure
quality score. Decoding runs in a worker thread so a large upload does not
stall the event loop.
"""

import asyncio
import io
import logging

import numpy as np
from PIL import Image

from sauce_finder.config import settings
from sauce_finder.orchestrator.schemas import FileSource, UrlSource, ValidationOutcome

logger = logging.getLogger(__name__)

SUPPORTED_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/bmp",
    "image/avif",
})

DEFAULT_QUALITY = 0.5
LOW_QUALITY_WARNING = "Low quality image detected. Results may be less accurate."
INTEGRITY_WARNING = "Image integrity check failed; searching anyway."


def check_integrity(data: bytes):
    """Raise if Pillow cannot identify and verify the image."""
    with Image.open(io.BytesIO(data)) as img:
        img.verify()


def assess_quality(data: bytes) -> float:
    """Score image clarity in [0, 1]; DEFAULT_QUALITY when it cannot be decoded.

    Brightness is (r + g + b) / 3 per pixel in row-major order. Sharpness is
    the mean absolute brightness step between consecutive pixels.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            pixels = np.asarray(img.convert("RGB"), dtype=np.float64)
    except Exception as e:
        logger.debug("Quality assessment decode failed: %s", str(e)[:100])
        return DEFAULT_QUALITY

    brightness = pixels.mean(axis=2).ravel()
    if brightness.size == 0:
        return DEFAULT_QUALITY

    avg_sharpness = float(np.abs(np.diff(brightness)).sum()) / brightness.size
    avg_brightness = float(brightness.mean())
    return min(1.0, (avg_sharpness / 50) * (avg_brightness / 128))


class ImageValidator:
    """Gate for image sources before they reach the search orchestrator."""

    def __init__(
        self,
        max_file_size: int | None = None,
        quality_threshold: float | None = None,
        supported_types: frozenset[str] = SUPPORTED_MIME_TYPES,
    ):
        self.max_file_size = max_file_size if max_file_size is not None else settings.max_file_size_bytes
        self.quality_threshold = (
            quality_threshold if quality_threshold is not None else settings.image_quality_threshold
        )
        self.supported_types = supported_types

    async def validate(self, source: FileSource | UrlSource) -> ValidationOutcome:
        if isinstance(source, UrlSource):
            return ValidationOutcome(accepted=True)

        mime = source.mime_type.lower()
        if mime not in self.supported_types:
            logger.info("Validation rejected | type=%s | file=%s", source.mime_type, source.file_name)
            return ValidationOutcome(
                accepted=False,
                reason=f"Unsupported file type: {source.mime_type or 'unknown'}",
            )

        if source.size_bytes > self.max_file_size:
            logger.info("Validation rejected | size=%d | file=%s", source.size_bytes, source.file_name)
            return ValidationOutcome(
                accepted=False,
                reason=f"File too large: {source.size_bytes} bytes (max {self.max_file_size})",
            )

        warnings: list[str] = []

        try:
            await asyncio.to_thread(check_integrity, source.data)
        except Exception as e:
            logger.warning("Integrity check failed, proceeding anyway | file=%s | %s",
                           source.file_name, str(e)[:100])
            warnings.append(INTEGRITY_WARNING)

        score = await asyncio.to_thread(assess_quality, source.data)
        if score < self.quality_threshold:
            logger.info("Low quality image | score=%.2f | file=%s", score, source.file_name)
            warnings.append(LOW_QUALITY_WARNING)

        return ValidationOutcome(accepted=True, warnings=warnings, quality_score=score)
