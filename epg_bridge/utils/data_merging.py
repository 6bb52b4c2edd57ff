"""
Data merging utilities

This module handles merging of channels and programmes from multiple sources.
"""
import logging
from collections.abc import MutableMapping, Sequence

from epg_bridge.services.fetch_types import EpgChannel, EpgProgramme, RawChannel
from epg_bridge.services.normalizer import normalize_channel_id

logger = logging.getLogger(__name__)


def merge_channels(
    existing_channels: MutableMapping[str, EpgChannel],
    new_channels: Sequence[RawChannel]
) -> tuple[MutableMapping[str, EpgChannel], int]:
    """
    Merge new channels into the channel dictionary keyed by normalized id.

    The first channel seen for a normalized id wins; later duplicates (from the
    same or a later source) are dropped. Channels without an id are skipped.
    Insertion order of the dictionary is the dataset order.

    Args:
        existing_channels: Dictionary of existing channels (normalized_id -> EpgChannel)
        new_channels: Raw channel records of one source, in document order

    Returns:
        Tuple of (updated_channels_dict, count_of_duplicates_dropped)
    """
    dropped = 0

    for channel in new_channels:
        if not channel.id:
            logger.debug("Skipping channel with missing id attribute")
            continue

        normalized = normalize_channel_id(channel.id)
        if normalized in existing_channels:
            logger.debug(
                "Dropping channel %s: normalized id %s already provided by %s",
                channel.id,
                normalized,
                existing_channels[normalized].id,
            )
            dropped += 1
            continue

        existing_channels[normalized] = EpgChannel(
            id=channel.id,
            display_name=channel.display_name,
            normalized_id=normalized,
        )

    return existing_channels, dropped


def merge_programmes(
    existing_programmes: MutableMapping[str, list[EpgProgramme]],
    new_programmes: Sequence[EpgProgramme]
) -> tuple[MutableMapping[str, list[EpgProgramme]], int]:
    """
    Group programmes by their raw channel id.

    Args:
        existing_programmes: Dictionary of grouped programmes (channel_id -> programmes)
        new_programmes: Programmes of one source

    Returns:
        Tuple of (updated_programmes_dict, count_of_programmes_added)
    """
    added = 0

    for programme in new_programmes:
        existing_programmes.setdefault(programme.channel_id, []).append(programme)
        added += 1

    return existing_programmes, added
