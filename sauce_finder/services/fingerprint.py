"""Cache key derivation for image sources.

File keys hash the raw bytes (SHA-256) and append the byte size, so the same
image uploaded under different names shares one cache entry. URL keys use
the trimmed URL verbatim; equivalent but differently written URLs get
different keys.
"""

import hashlib
import logging

from sauce_finder.errors import HashingUnavailable
from sauce_finder.orchestrator.schemas import FileSource, UrlSource

logger = logging.getLogger(__name__)


def compute_key(source: FileSource | UrlSource) -> str:
    """Return the cache key for a source. Raises HashingUnavailable."""
    if isinstance(source, UrlSource):
        return f"url:{source.url}"

    try:
        digest = hashlib.sha256(source.data).hexdigest()
    except (TypeError, ValueError) as e:
        logger.warning("Fingerprint failed | file=%s | %s", source.file_name, str(e)[:100])
        raise HashingUnavailable(str(e)) from e

    return f"file:{digest}:{source.size_bytes}"
