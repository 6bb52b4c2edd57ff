import base64
import calendar

import pytest

from epg_bridge.services.fetch_types import EpgProgramme
from epg_bridge.services.programme_window import build_short_epg, select_window
from epg_bridge.utils.timezone import DateFormatError, parse_xmltv_time, timestamp_to_epoch_seconds
from tests.helpers import xmltv_time


NOW = 1_000_000


def programme(start: int, stop: int, title: str = "Show", description: str = "") -> EpgProgramme:
    return EpgProgramme(
        start=xmltv_time(start),
        stop=xmltv_time(stop),
        channel_id="Telefe.ar",
        title=title,
        description=description,
    )


def test_timestamp_round_trip_utc():
    expected = calendar.timegm((2026, 2, 14, 18, 0, 0))
    assert timestamp_to_epoch_seconds("20260214180000 +0000") == expected


def test_timestamp_applies_offset():
    # 18:00 at UTC-3 is 21:00 UTC
    expected = calendar.timegm((2026, 2, 14, 21, 0, 0))
    assert timestamp_to_epoch_seconds("20260214180000 -0300") == expected
    assert timestamp_to_epoch_seconds("20260214180000-0300") == expected


def test_timestamp_without_offset_is_utc():
    assert timestamp_to_epoch_seconds("20260214180000") == calendar.timegm((2026, 2, 14, 18, 0, 0))


@pytest.mark.parametrize(
    "raw",
    ["not-a-date", "", "2026021418", "20261314180000 +0000", "20260230120000 +0000", "20260214180000 +2500", "20260214180000 junk"],
)
def test_malformed_timestamp_is_zero(raw):
    assert timestamp_to_epoch_seconds(raw) == 0


def test_parse_xmltv_time_raises_on_garbage():
    with pytest.raises(DateFormatError):
        parse_xmltv_time("yesterday")


def test_window_excludes_programmes_ended_before_two_hour_floor():
    ended_at_floor = programme(NOW - 10_000, NOW - 7200)
    ended_just_after_floor = programme(NOW - 10_000, NOW - 7199)

    selected = select_window([ended_at_floor, ended_just_after_floor], NOW)

    assert [item.programme for item in selected] == [ended_just_after_floor]


def test_window_excludes_programmes_starting_after_twelve_hours():
    starts_at_ceiling = programme(NOW + 43200, NOW + 46800)
    starts_just_before = programme(NOW + 43199, NOW + 46800)

    selected = select_window([starts_at_ceiling, starts_just_before], NOW)

    assert [item.programme for item in selected] == [starts_just_before]


def test_window_flags_now_playing():
    current = programme(NOW, NOW + 1800)
    finished = programme(NOW - 1800, NOW)
    upcoming = programme(NOW + 1, NOW + 1800)

    flags = {item.programme: item.now_playing for item in select_window([current, finished, upcoming], NOW)}

    assert flags == {current: True, finished: False, upcoming: False}


def test_window_drops_programmes_with_unparseable_stop():
    broken = EpgProgramme(start=xmltv_time(NOW), stop="garbage", channel_id="x", title="", description="")
    assert select_window([broken], NOW) == []


def test_window_honours_custom_edges():
    item = programme(NOW - 4000, NOW - 3000)
    assert select_window([item], NOW, past_seconds=3600) == []
    assert len(select_window([item], NOW, past_seconds=7200)) == 1


def test_build_short_epg_listing_shape():
    listings = build_short_epg(
        "Telefe.ar",
        [programme(NOW - 600, NOW + 600, title="Noticiero", description="Las noticias del día")],
        NOW,
    )

    assert listings == [{
        "id": "",
        "epg_id": "Telefe.ar",
        "title": base64.b64encode("Noticiero".encode()).decode(),
        "lang": "es",
        "start": str(NOW - 600),
        "end": str(NOW + 600),
        "description": base64.b64encode("Las noticias del día".encode()).decode(),
        "channel_id": "Telefe.ar",
        "start_timestamp": str(NOW - 600),
        "stop_timestamp": str(NOW + 600),
        "now_playing": 1,
        "has_archive": 0,
    }]


def test_build_short_epg_limit_and_lang():
    programmes = [programme(NOW + offset, NOW + offset + 600) for offset in (0, 600, 1200)]

    listings = build_short_epg("x", programmes, NOW, lang="en", limit=2)

    assert len(listings) == 2
    assert {listing["lang"] for listing in listings} == {"en"}
    assert [listing["now_playing"] for listing in listings] == [1, 0]
