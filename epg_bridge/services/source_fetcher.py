"""
EPG Source Fetcher

Downloads the configured XMLTV sources. Each source is attempted exactly once
per refresh; a source that fails for any reason is logged and skipped so the
merge proceeds with whatever succeeded.
"""
import asyncio
import gzip
import logging
import zlib
from typing import Sequence

import httpx

from epg_bridge.config import EpgSource
from epg_bridge.services.fetch_types import FetchedDocument
from epg_bridge.utils.logging_helpers import log_source_processing, sanitize_url_for_logging


logger = logging.getLogger(__name__)


class SourceFetchError(RuntimeError):
    """Raised internally when a single source cannot be turned into text."""
    pass


def decode_document(content: bytes, compressed: bool) -> str:
    """
    Turn a downloaded body into text.

    Args:
        content: Raw response body
        compressed: Whether the source is gzip-compressed

    Returns:
        UTF-8 decoded document (undecodable bytes replaced)

    Raises:
        SourceFetchError: If gzip decompression fails
    """
    if compressed:
        try:
            content = gzip.decompress(content)
        except (OSError, EOFError, zlib.error) as exc:
            raise SourceFetchError(f"gzip decompression failed: {exc}") from exc
    return content.decode("utf-8", errors="replace")


class SourceFetcher:
    """Fetches EPG source documents through a shared HTTP client."""

    def __init__(self, client: httpx.AsyncClient, *, timeout: float | None = None):
        self._client = client
        self._timeout = timeout

    async def fetch_one(self, source: EpgSource) -> str:
        """
        Download and decode a single source.

        Raises:
            httpx.HTTPError: On transport errors, timeouts or non-2xx status
            httpx.InvalidURL: If the source URL cannot be parsed
            SourceFetchError: If decompression fails
        """
        kwargs = {"timeout": self._timeout} if self._timeout is not None else {}
        response = await self._client.get(source.url, follow_redirects=True, **kwargs)
        response.raise_for_status()
        logger.debug(
            "Downloaded %.2f MB from %s",
            len(response.content) / (1024 * 1024),
            sanitize_url_for_logging(source.url),
        )
        return decode_document(response.content, source.compressed)

    async def _fetch_or_skip(self, index: int, total: int, source: EpgSource) -> FetchedDocument | None:
        log_source_processing(logger, index, total, source.url)
        sanitized_url = sanitize_url_for_logging(source.url)
        try:
            text = await self.fetch_one(source)
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "[Source %s] Skipping %s: HTTP %s",
                index,
                sanitized_url,
                exc.response.status_code,
            )
            return None
        except (httpx.HTTPError, httpx.InvalidURL, SourceFetchError) as exc:
            logger.warning(
                "[Source %s] Skipping %s: %s: %s",
                index,
                sanitized_url,
                type(exc).__name__,
                exc,
            )
            return None

        logger.info("[Source %s] Fetched %s characters from %s", index, len(text), sanitized_url)
        return FetchedDocument(source=source, text=text)

    async def fetch_all(self, sources: Sequence[EpgSource]) -> list[FetchedDocument]:
        """
        Fetch every source concurrently, keeping configuration order.

        Returns:
            Documents of the sources that succeeded (possibly none)
        """
        if not sources:
            logger.warning("No EPG sources configured - nothing to fetch")
            return []

        total = len(sources)
        results = await asyncio.gather(*(
            self._fetch_or_skip(index, total, source)
            for index, source in enumerate(sources, start=1)
        ))
        documents = [document for document in results if document is not None]

        logger.info("Fetched %s of %s EPG source(s)", len(documents), total)
        return documents
