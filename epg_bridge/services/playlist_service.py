"""
M3U playlist rendering for selected, EPG-enriched streams.
"""
from typing import Iterable, Sequence

from epg_bridge.config import EpgSource
from epg_bridge.schemas import Category, Stream
from epg_bridge.services.xtream_client import XtreamCredentials


def _attr(value: str) -> str:
    """Keep attribute values from breaking the EXTINF line."""
    return value.replace('"', "'").replace("\n", " ").replace("\r", " ")


def build_m3u(
    credentials: XtreamCredentials,
    streams: Iterable[Stream],
    categories: Sequence[Category],
    sources: Sequence[EpgSource],
) -> str:
    """
    Render an extended M3U playlist.

    Each entry carries ``tvg-id`` (the EPG channel id, possibly empty) and
    points at the upstream provider's stream URL.
    """
    group_names = {category.category_id: category.category_name for category in categories}
    tvg_urls = ",".join(source.url for source in sources)
    lines = [f'#EXTM3U url-tvg="{tvg_urls}"']

    for stream in streams:
        group = group_names.get(stream.category_id or "") or "Uncategorized"
        lines.append(
            f'#EXTINF:-1 tvg-id="{_attr(stream.epg_channel_id)}" tvg-name="{_attr(stream.name)}" '
            f'tvg-logo="{_attr(stream.stream_icon)}" group-title="{_attr(group)}",{stream.name}'
        )
        lines.append(credentials.stream_url(stream.stream_id))

    return "\n".join(lines)
