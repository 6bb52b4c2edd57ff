"""
EPG Cache

Process-wide TTL cache of the merged EPG dataset. One slot, replaced
atomically on refresh; readers never see a partially built dataset.
"""
from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Sequence

from epg_bridge.config import EpgSource
from epg_bridge.services.fetch_coordinator import FetchCoordinator
from epg_bridge.services.fetch_types import EpgChannel, EpgDataset, EpgProgramme, FetchedDocument
from epg_bridge.services.xmltv_scanner import scan_xmltv
from epg_bridge.utils.data_merging import merge_channels, merge_programmes
from epg_bridge.utils.logging_helpers import (
    log_merge_summary,
    log_section_end,
    log_section_start,
    sanitize_url_for_logging,
)


logger = logging.getLogger(__name__)

EPG_CACHE_TTL_SECONDS = 6 * 60 * 60

FetchDocuments = Callable[[Sequence[EpgSource]], Awaitable[list[FetchedDocument]]]


def build_dataset(documents: Sequence[FetchedDocument], fetched_at: float) -> EpgDataset:
    """
    Scan and merge fetched documents into one dataset.

    Channels are deduplicated by normalized id across all documents (first
    seen wins); programmes are grouped by raw channel id. Raw element blocks
    are kept, channels before programmes, for the passthrough XMLTV output.
    """
    channels: dict[str, EpgChannel] = {}
    programmes: dict[str, list[EpgProgramme]] = {}
    channel_blocks: list[str] = []
    programme_blocks: list[str] = []
    total_dropped = 0
    total_programmes = 0

    for document in documents:
        result = scan_xmltv(document.text)
        _, dropped = merge_channels(channels, result.channels)
        _, added = merge_programmes(programmes, result.programmes)
        total_dropped += dropped
        total_programmes += added
        channel_blocks.extend(result.channel_blocks)
        programme_blocks.extend(result.programme_blocks)

        logger.info(
            "Scanned %s: %s channels, %s programmes, %s malformed element(s) skipped",
            sanitize_url_for_logging(document.source.url),
            len(result.channels),
            len(result.programmes),
            result.skipped_elements,
        )

    log_merge_summary(logger, len(channels), total_programmes, total_dropped)

    return EpgDataset.build(
        channels=list(channels.values()),
        programmes_by_channel=programmes,
        fetched_at=fetched_at,
        xmltv_blocks=channel_blocks + programme_blocks,
    )


class EpgCache:
    """
    Single-slot TTL cache of the merged EPG dataset.

    ``get()`` serves the current dataset while it is younger than the TTL and
    otherwise refreshes it. A refresh where every source failed still publishes
    an (empty) dataset, which is kept until the TTL elapses again so failing
    upstreams are not hammered. Concurrent refreshes share one fetch.
    """

    _REFRESH_KEY = "epg"

    def __init__(
        self,
        fetch_documents: FetchDocuments,
        sources: Sequence[EpgSource],
        *,
        ttl_seconds: float = EPG_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._fetch_documents = fetch_documents
        self._sources = list(sources)
        self._ttl = ttl_seconds
        self._clock = clock
        self._dataset: EpgDataset | None = None
        self._coordinator = FetchCoordinator()

    @property
    def sources(self) -> list[EpgSource]:
        return list(self._sources)

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def peek(self) -> EpgDataset | None:
        """Return the current dataset without triggering a fetch."""
        return self._dataset

    def is_fresh(self, dataset: EpgDataset | None = None) -> bool:
        dataset = dataset if dataset is not None else self._dataset
        if dataset is None:
            return False
        return self._clock() - dataset.fetched_at < self._ttl

    async def get(self) -> EpgDataset:
        """Return the cached dataset, refreshing it first when missing or stale."""
        dataset = self._dataset
        if dataset is not None and self.is_fresh(dataset):
            return dataset
        return await self._coordinator.execute(self._REFRESH_KEY, self._refresh)

    async def refresh(self) -> EpgDataset:
        """Force a refresh (joins one already in flight)."""
        return await self._coordinator.execute(self._REFRESH_KEY, self._refresh)

    def is_refreshing(self) -> bool:
        return self._coordinator.is_fetching(self._REFRESH_KEY)

    async def _refresh(self) -> EpgDataset:
        log_section_start(logger, "EPG refresh")
        started = self._clock()

        documents = await self._fetch_documents(self._sources)
        dataset = build_dataset(documents, fetched_at=self._clock())

        self._dataset = dataset
        logger.info(
            "EPG dataset published: %s channels, %s programmes from %s/%s source(s) in %.1fs",
            len(dataset.channels),
            dataset.programme_count,
            len(documents),
            len(self._sources),
            max(0.0, dataset.fetched_at - started),
        )
        log_section_end(logger, "EPG refresh")
        return dataset
