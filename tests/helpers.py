from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

import httpx

from epg_bridge.config import EpgSource
from epg_bridge.services.fetch_types import EpgChannel, EpgDataset, EpgProgramme


SOURCE_A = EpgSource(url="https://epg-a.example/guide.xml.gz", compressed=True)
SOURCE_B = EpgSource(url="https://epg-b.example/guide.xml", compressed=False)


XMLTV_A = """<?xml version="1.0" encoding="UTF-8"?>
<tv generator-info-name="source-a">
  <channel id="Telefe.ar">
    <display-name lang="es">Telefe</display-name>
  </channel>
  <channel id="TN (Todo Noticias).ar">
    <display-name>TN</display-name>
  </channel>
  <channel id="ESPN.Premium.ar">
    <display-name>ESPN Premium</display-name>
  </channel>
  <programme start="20260214180000 +0000" stop="20260214190000 +0000" channel="Telefe.ar">
    <title lang="es">Noticiero</title>
    <desc lang="es">Las noticias del día</desc>
  </programme>
  <programme channel="TN (Todo Noticias).ar" stop="20260214200000 -0300" start="20260214190000 -0300">
    <title>TN Central</title>
  </programme>
</tv>
"""

XMLTV_B = """<?xml version="1.0" encoding="UTF-8"?>
<tv>
  <channel id="telefe.uy"><display-name>Telefe Uruguay</display-name></channel>
  <channel id="Canal.Rural.ar"><display-name>Canal Rural</display-name></channel>
  <programme start="20260214190000 +0000" stop="20260214200000 +0000" channel="Telefe.ar">
    <title>Telenovela</title>
    <desc>Capítulo 10</desc>
  </programme>
  <programme start="20260214190000 +0000" stop="20260214200000 +0000" channel="telefe.uy">
    <title>Uruguay Noticias</title>
  </programme>
</tv>
"""


class FakeClock:
    """Manually advanced time source for TTL tests."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def xmltv_time(epoch: int) -> str:
    return datetime.fromtimestamp(epoch, timezone.utc).strftime("%Y%m%d%H%M%S +0000")


def make_channel(normalized_id: str, channel_id: str | None = None) -> EpgChannel:
    return EpgChannel(
        id=channel_id or normalized_id.lower(),
        display_name=normalized_id.title(),
        normalized_id=normalized_id,
    )


def make_dataset(*channels: EpgChannel, programmes: list[EpgProgramme] | None = None) -> EpgDataset:
    grouped: dict[str, list[EpgProgramme]] = {}
    for programme in programmes or []:
        grouped.setdefault(programme.channel_id, []).append(programme)
    return EpgDataset.build(list(channels), grouped, fetched_at=0.0)


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


