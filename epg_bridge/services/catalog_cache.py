"""
Upstream Catalog Cache

Per-provider TTL cache of the upstream live catalog (categories + streams),
with every stream enriched with an EPG channel id before it is stored.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

from epg_bridge.schemas import Category, Stream
from epg_bridge.services.channel_matcher import ChannelMatcher, StreamRecord
from epg_bridge.services.epg_cache import EpgCache
from epg_bridge.services.fetch_coordinator import FetchCoordinator
from epg_bridge.services.xtream_client import XtreamClient, XtreamCredentials


logger = logging.getLogger(__name__)

CATALOG_CACHE_TTL_SECONDS = 5 * 60


@dataclass(slots=True)
class CatalogEntry:
    categories: list[Category]
    streams: list[Stream]
    fetched_at: float


async def enrich_streams(
    streams: Iterable[StreamRecord],
    epg_cache: EpgCache,
    matcher: ChannelMatcher,
) -> int:
    """
    Fill missing EPG channel ids in place from the current EPG dataset.

    Streams that already carry an id keep it. The caller owns ``streams``.
    """
    dataset = await epg_cache.get()
    return matcher.enrich_streams(streams, dataset)


class UpstreamCatalogCache:
    """
    Mapping of provider id to its enriched catalog, each entry with its own TTL.

    A failed upstream fetch propagates to the caller and leaves no entry behind
    for that provider; nothing is retried until the next request.
    """

    def __init__(
        self,
        client: XtreamClient,
        epg_cache: EpgCache,
        matcher: ChannelMatcher,
        *,
        ttl_seconds: float = CATALOG_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client
        self._epg_cache = epg_cache
        self._matcher = matcher
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CatalogEntry] = {}
        self._coordinator = FetchCoordinator()

    @property
    def client(self) -> XtreamClient:
        return self._client

    def peek(self, provider_id: str) -> CatalogEntry | None:
        return self._entries.get(provider_id)

    def invalidate(self, provider_id: str) -> None:
        self._entries.pop(provider_id, None)

    def _is_fresh(self, entry: CatalogEntry) -> bool:
        return self._clock() - entry.fetched_at < self._ttl

    async def get(self, provider_id: str, credentials: XtreamCredentials) -> CatalogEntry:
        """
        Return the provider's catalog, fetching and enriching it when missing or stale.

        Raises:
            UpstreamCatalogError: If the provider catalog cannot be fetched
        """
        entry = self._entries.get(provider_id)
        if entry is not None and self._is_fresh(entry):
            return entry

        return await self._coordinator.execute(
            provider_id,
            lambda: self._fetch(provider_id, credentials),
        )

    async def _fetch(self, provider_id: str, credentials: XtreamCredentials) -> CatalogEntry:
        logger.info("Fetching upstream catalog for provider %s", provider_id)
        try:
            categories, streams = await asyncio.gather(
                self._client.get_live_categories(credentials),
                self._client.get_live_streams(credentials),
            )
        except Exception:
            self._entries.pop(provider_id, None)
            raise

        matched = await enrich_streams(streams, self._epg_cache, self._matcher)

        entry = CatalogEntry(
            categories=categories,
            streams=streams,
            fetched_at=self._clock(),
        )
        self._entries[provider_id] = entry
        logger.info(
            "Cached %s streams, %s categories for provider %s (%s newly EPG-matched)",
            len(streams),
            len(categories),
            provider_id,
            matched,
        )
        return entry
