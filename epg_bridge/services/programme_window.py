"""
Short EPG window

Selects the programmes around "now" for a channel and renders them in the
Xtream Codes ``get_short_epg`` listing shape.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable
import base64

from epg_bridge.services.fetch_types import EpgProgramme
from epg_bridge.utils.timezone import timestamp_to_epoch_seconds


PAST_WINDOW_SECONDS = 2 * 60 * 60
FUTURE_WINDOW_SECONDS = 12 * 60 * 60


@dataclass(frozen=True, slots=True)
class WindowedProgramme:
    programme: EpgProgramme
    start: int
    stop: int
    now_playing: bool


def select_window(
    programmes: Iterable[EpgProgramme],
    now: int,
    *,
    past_seconds: int = PAST_WINDOW_SECONDS,
    future_seconds: int = FUTURE_WINDOW_SECONDS,
) -> list[WindowedProgramme]:
    """
    Keep programmes whose [start, stop) overlaps [now - past, now + future).

    Input order is preserved. Each kept programme is flagged as currently
    playing when start <= now < stop.
    """
    window_start = now - past_seconds
    window_end = now + future_seconds
    selected = []

    for programme in programmes:
        start = timestamp_to_epoch_seconds(programme.start)
        stop = timestamp_to_epoch_seconds(programme.stop)
        if stop > window_start and start < window_end:
            selected.append(WindowedProgramme(
                programme=programme,
                start=start,
                stop=stop,
                now_playing=start <= now < stop,
            ))

    return selected


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def build_short_epg(
    epg_channel_id: str,
    programmes: Iterable[EpgProgramme],
    now: int,
    *,
    lang: str = "es",
    limit: int | None = None,
    past_seconds: int = PAST_WINDOW_SECONDS,
    future_seconds: int = FUTURE_WINDOW_SECONDS,
) -> list[dict]:
    """Render windowed programmes as ``get_short_epg`` listings (epochs as strings)."""
    window = select_window(
        programmes,
        now,
        past_seconds=past_seconds,
        future_seconds=future_seconds,
    )
    if limit is not None and limit > 0:
        window = window[:limit]

    return [
        {
            "id": "",
            "epg_id": epg_channel_id,
            "title": _b64(item.programme.title),
            "lang": lang,
            "start": str(item.start),
            "end": str(item.stop),
            "description": _b64(item.programme.description),
            "channel_id": epg_channel_id,
            "start_timestamp": str(item.start),
            "stop_timestamp": str(item.stop),
            "now_playing": 1 if item.now_playing else 0,
            "has_archive": 0,
        }
        for item in window
    ]
