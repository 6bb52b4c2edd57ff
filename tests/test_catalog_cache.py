import asyncio

import httpx
import pytest

from epg_bridge.services.catalog_cache import UpstreamCatalogCache
from epg_bridge.services.channel_matcher import ChannelMatcher
from epg_bridge.services.epg_cache import EpgCache
from epg_bridge.services.fetch_types import FetchedDocument
from epg_bridge.services.xtream_client import (
    UpstreamAuthError,
    UpstreamCatalogError,
    XtreamClient,
    XtreamCredentials,
)
from tests.helpers import SOURCE_A, XMLTV_A, mock_client


CREDENTIALS = XtreamCredentials(url="provider.example:8080/", username="user", password="secret")

CATEGORIES = [
    {"category_id": 1, "category_name": "Argentina", "parent_id": 0},
    {"category_id": "2", "category_name": "Deportes", "parent_id": None},
]

STREAMS = [
    {"stream_id": 10, "name": "AR: Telefe HD", "epg_channel_id": None, "category_id": "1"},
    {"stream_id": 11, "name": "ESPN Premium FHD", "epg_channel_id": "", "category_id": "2"},
    {"stream_id": 12, "name": "TN", "epg_channel_id": "custom.tn", "category_id": "1"},
    {"stream_id": 13, "name": "Unknown", "category_id": "1", "stream_icon": "http://logo"},
]


class Upstream:
    """Fake Xtream provider that counts requests per action."""

    def __init__(self, streams=None, fail_with: int | None = None):
        self.streams = STREAMS if streams is None else streams
        self.fail_with = fail_with
        self.calls: dict[str, int] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        action = request.url.params.get("action", "")
        self.calls[action] = self.calls.get(action, 0) + 1
        if self.fail_with is not None:
            return httpx.Response(self.fail_with)
        if action == "get_live_categories":
            return httpx.Response(200, json=CATEGORIES)
        if action == "get_live_streams":
            return httpx.Response(200, json=self.streams)
        return httpx.Response(200, json={"user_info": {"auth": 1}})


async def _fetch_epg(sources):
    return [FetchedDocument(source=SOURCE_A, text=XMLTV_A)]


def make_cache(clock, client: httpx.AsyncClient) -> UpstreamCatalogCache:
    epg_cache = EpgCache(_fetch_epg, [SOURCE_A], clock=clock)
    return UpstreamCatalogCache(
        XtreamClient(client),
        epg_cache,
        ChannelMatcher(),
        ttl_seconds=300,
        clock=clock,
    )


async def test_catalog_is_fetched_and_enriched(clock):
    upstream = Upstream()
    async with mock_client(upstream) as client:
        entry = await make_cache(clock, client).get("p1", CREDENTIALS)

    assert [category.category_id for category in entry.categories] == ["1", "2"]
    assert [stream.epg_channel_id for stream in entry.streams] == [
        "Telefe.ar",
        "ESPN.Premium.ar",
        "custom.tn",
        "",
    ]
    assert entry.streams[3].stream_icon == "http://logo"
    assert entry.fetched_at == clock.now


async def test_requests_target_player_api_with_credentials(clock):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        return Upstream()(request)

    async with mock_client(handler) as client:
        await make_cache(clock, client).get("p1", CREDENTIALS)

    assert {url.host for url in seen} == {"provider.example"}
    assert {url.path for url in seen} == {"/player_api.php"}
    assert all(url.params["username"] == "user" for url in seen)
    assert all(url.params["password"] == "secret" for url in seen)


async def test_entries_expire_per_provider(clock):
    upstream = Upstream()
    async with mock_client(upstream) as client:
        cache = make_cache(clock, client)

        await cache.get("p1", CREDENTIALS)
        clock.advance(200)
        await cache.get("p2", CREDENTIALS)
        clock.advance(150)

        await cache.get("p1", CREDENTIALS)
        await cache.get("p2", CREDENTIALS)

    # p1 expired after 350s, p2 is only 150s old
    assert upstream.calls["get_live_streams"] == 3


async def test_fresh_entry_is_reused(clock):
    upstream = Upstream()
    async with mock_client(upstream) as client:
        cache = make_cache(clock, client)
        first = await cache.get("p1", CREDENTIALS)
        clock.advance(299)
        second = await cache.get("p1", CREDENTIALS)

    assert first is second
    assert upstream.calls["get_live_streams"] == 1


async def test_upstream_failure_raises_and_leaves_no_entry(clock):
    upstream = Upstream(fail_with=503)
    async with mock_client(upstream) as client:
        cache = make_cache(clock, client)
        with pytest.raises(UpstreamCatalogError):
            await cache.get("p1", CREDENTIALS)

    assert cache.peek("p1") is None


async def test_stale_entry_is_dropped_when_refetch_fails(clock):
    upstream = Upstream()
    async with mock_client(upstream) as client:
        cache = make_cache(clock, client)
        await cache.get("p1", CREDENTIALS)
        assert cache.peek("p1") is not None

        clock.advance(301)
        upstream.fail_with = 500
        with pytest.raises(UpstreamCatalogError):
            await cache.get("p1", CREDENTIALS)

    assert cache.peek("p1") is None


async def test_malformed_payload_is_an_upstream_error(clock):
    upstream = Upstream(streams=[{"name": "no id"}])
    async with mock_client(upstream) as client:
        cache = make_cache(clock, client)
        with pytest.raises(UpstreamCatalogError):
            await cache.get("p1", CREDENTIALS)


async def test_concurrent_requests_share_one_upstream_fetch(clock):
    upstream = Upstream()
    async with mock_client(upstream) as client:
        cache = make_cache(clock, client)
        entries = await asyncio.gather(*(cache.get("p1", CREDENTIALS) for _ in range(5)))

    assert all(entry is entries[0] for entry in entries)
    assert upstream.calls["get_live_streams"] == 1


async def test_invalidate_forces_refetch(clock):
    upstream = Upstream()
    async with mock_client(upstream) as client:
        cache = make_cache(clock, client)
        await cache.get("p1", CREDENTIALS)
        cache.invalidate("p1")
        await cache.get("p1", CREDENTIALS)

    assert upstream.calls["get_live_streams"] == 2


async def test_account_info_rejects_bad_credentials():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"user_info": {"auth": 0}})

    async with mock_client(handler) as client:
        with pytest.raises(UpstreamAuthError):
            await XtreamClient(client).get_account_info(CREDENTIALS)


def test_stream_url_uses_normalized_base():
    assert CREDENTIALS.base_url == "http://provider.example:8080"
    assert CREDENTIALS.stream_url(10) == "http://provider.example:8080/live/user/secret/10.ts"
