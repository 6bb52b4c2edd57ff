"""
Shared dataclasses used across the EPG fetching and matching pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from epg_bridge.config import EpgSource


@dataclass(frozen=True, slots=True)
class FetchedDocument:
    """Decoded text of one successfully fetched source."""
    source: EpgSource
    text: str


@dataclass(frozen=True, slots=True)
class RawChannel:
    """Channel declaration as found in a single XMLTV document."""
    id: str
    display_name: str


@dataclass(frozen=True, slots=True)
class EpgChannel:
    """Channel kept in the merged dataset (one per normalized id)."""
    id: str
    display_name: str
    normalized_id: str


@dataclass(frozen=True, slots=True)
class EpgProgramme:
    """Programme entry with raw XMLTV timestamps."""
    start: str
    stop: str
    channel_id: str
    title: str
    description: str


@dataclass(frozen=True, slots=True)
class EpgDataset:
    """One published generation of merged EPG data.

    Never mutated after construction; a refresh publishes a new instance.
    """
    channels: tuple[EpgChannel, ...] = ()
    programmes_by_channel: Mapping[str, tuple[EpgProgramme, ...]] = field(default_factory=dict)
    fetched_at: float = 0.0
    xmltv_blocks: tuple[str, ...] = ()
    by_normalized_id: Mapping[str, EpgChannel] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.channels and not self.by_normalized_id:
            index: dict[str, EpgChannel] = {}
            for channel in self.channels:
                index.setdefault(channel.normalized_id, channel)
            object.__setattr__(self, "by_normalized_id", index)

    @classmethod
    def build(
        cls,
        channels: list[EpgChannel],
        programmes_by_channel: dict[str, list[EpgProgramme]],
        fetched_at: float,
        xmltv_blocks: list[str] | None = None,
    ) -> EpgDataset:
        return cls(
            channels=tuple(channels),
            programmes_by_channel={
                channel_id: tuple(programmes)
                for channel_id, programmes in programmes_by_channel.items()
            },
            fetched_at=fetched_at,
            xmltv_blocks=tuple(xmltv_blocks or ()),
        )

    @property
    def programme_count(self) -> int:
        return sum(len(programmes) for programmes in self.programmes_by_channel.values())

    def programmes_for(self, channel_id: str) -> tuple[EpgProgramme, ...]:
        return self.programmes_by_channel.get(channel_id, ())


EMPTY_DATASET = EpgDataset()


__all__ = [
    "EMPTY_DATASET",
    "EpgChannel",
    "EpgDataset",
    "EpgProgramme",
    "FetchedDocument",
    "RawChannel",
]
