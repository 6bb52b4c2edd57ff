"""
Channel Matching

Resolves a provider stream name to an EPG channel id. Matching runs an
ordered pipeline of strategies on the normalized stream name; the first
strategy returning a channel wins.
"""
from __future__ import annotations

from typing import Iterable, Protocol, Sequence
import logging

from epg_bridge.services.fetch_types import EpgChannel, EpgDataset
from epg_bridge.services.normalizer import normalize_display_name


logger = logging.getLogger(__name__)

FUZZY_MIN_LENGTH = 4


class MatchStrategy(Protocol):
    name: str

    def match(self, normalized_name: str, dataset: EpgDataset) -> EpgChannel | None:
        ...


class StreamRecord(Protocol):
    name: str
    epg_channel_id: str


class ExactMatch:
    """Channel whose normalized id equals the normalized name (first seen wins)."""

    name = "exact"

    def match(self, normalized_name: str, dataset: EpgDataset) -> EpgChannel | None:
        return dataset.by_normalized_id.get(normalized_name)


class LongestSubstringMatch:
    """Channel whose normalized id contains, or is contained in, the name.

    The longest qualifying id wins; ties go to the earliest channel. Ids shorter
    than ``min_length`` never qualify so short generic tokens cannot match.
    """

    name = "longest-substring"

    def __init__(self, min_length: int = FUZZY_MIN_LENGTH):
        self.min_length = min_length

    def match(self, normalized_name: str, dataset: EpgDataset) -> EpgChannel | None:
        best: EpgChannel | None = None
        best_length = 0

        for channel in dataset.channels:
            candidate = channel.normalized_id
            length = len(candidate)
            if length < self.min_length or length <= best_length:
                continue
            if candidate in normalized_name or normalized_name in candidate:
                best = channel
                best_length = length

        return best


def default_strategies(min_length: int = FUZZY_MIN_LENGTH) -> list[MatchStrategy]:
    return [ExactMatch(), LongestSubstringMatch(min_length)]


class ChannelMatcher:
    """Stateless resolver from stream names to EPG channel ids."""

    def __init__(self, strategies: Sequence[MatchStrategy] | None = None):
        self.strategies: tuple[MatchStrategy, ...] = tuple(strategies or default_strategies())

    def match_normalized(self, normalized_name: str, dataset: EpgDataset) -> EpgChannel | None:
        """Run the strategy pipeline on an already normalized name."""
        if not normalized_name:
            return None
        for strategy in self.strategies:
            channel = strategy.match(normalized_name, dataset)
            if channel is not None:
                return channel
        return None

    def resolve(self, stream_name: str, existing_epg_id: str, dataset: EpgDataset) -> str:
        """
        Resolve the EPG channel id for a stream.

        A non-blank existing id is authoritative and returned unchanged, as is
        the existing id when nothing matches.
        """
        if existing_epg_id and existing_epg_id.strip():
            return existing_epg_id

        channel = self.match_normalized(normalize_display_name(stream_name), dataset)
        if channel is None:
            return existing_epg_id
        return channel.id

    def enrich_streams(self, streams: Iterable[StreamRecord], dataset: EpgDataset) -> int:
        """
        Fill ``epg_channel_id`` in place for every stream lacking one.

        Returns:
            Number of streams that received an id in this pass
        """
        matched = 0
        for stream in streams:
            current = stream.epg_channel_id or ""
            resolved = self.resolve(stream.name or "", current, dataset)
            if resolved != current:
                stream.epg_channel_id = resolved
                matched += 1
        logger.debug("Enrichment pass matched %s stream(s)", matched)
        return matched
