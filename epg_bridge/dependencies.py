"""
Dependency Injection Configuration

Builds the process-wide service objects (HTTP client, caches, matcher,
scheduler) once at startup and hands them to request handlers through
FastAPI dependencies. Nothing here is module-level mutable state: the
container lives on ``app.state`` so tests can build their own.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable

import httpx
from fastapi import Request

from epg_bridge.config import CustomSettings
from epg_bridge.services.catalog_cache import UpstreamCatalogCache
from epg_bridge.services.channel_matcher import ChannelMatcher, default_strategies
from epg_bridge.services.epg_cache import EpgCache
from epg_bridge.services.scheduler_service import EPGScheduler
from epg_bridge.services.source_fetcher import SourceFetcher
from epg_bridge.services.xtream_client import XtreamClient


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ServiceContainer:
    """Service instances shared by every request handler."""
    settings: CustomSettings
    http_client: httpx.AsyncClient
    matcher: ChannelMatcher
    epg_cache: EpgCache
    catalog_cache: UpstreamCatalogCache
    scheduler: EPGScheduler

    async def aclose(self) -> None:
        self.scheduler.shutdown()
        await self.http_client.aclose()


def build_services(
    settings: CustomSettings,
    *,
    http_client: httpx.AsyncClient | None = None,
    clock: Callable[[], float] = time.time,
) -> ServiceContainer:
    """
    Wire the service graph.

    Args:
        settings: Application settings
        http_client: Client to use for all outbound calls (created when omitted)
        clock: Time source for cache TTLs

    Returns:
        The populated container
    """
    if http_client is None:
        http_client = httpx.AsyncClient(
            timeout=settings.upstream_http_timeout_sec,
            headers={"User-Agent": "epg-bridge/0.1.0"},
        )

    matcher = ChannelMatcher(default_strategies(settings.fuzzy_min_length))
    fetcher = SourceFetcher(http_client, timeout=settings.epg_http_timeout_sec)
    epg_cache = EpgCache(
        fetcher.fetch_all,
        settings.epg_sources,
        ttl_seconds=settings.epg_cache_ttl_sec,
        clock=clock,
    )
    catalog_cache = UpstreamCatalogCache(
        XtreamClient(http_client, timeout=settings.upstream_http_timeout_sec),
        epg_cache,
        matcher,
        ttl_seconds=settings.catalog_cache_ttl_sec,
        clock=clock,
    )
    scheduler = EPGScheduler(
        epg_cache,
        settings.epg_refresh_cron,
        settings.epg_refresh_misfire_grace_sec,
    )
    logger.debug("Service container built (%s EPG sources)", len(settings.epg_sources))

    return ServiceContainer(
        settings=settings,
        http_client=http_client,
        matcher=matcher,
        epg_cache=epg_cache,
        catalog_cache=catalog_cache,
        scheduler=scheduler,
    )


def get_services(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the container attached at startup."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not initialized. Attach a ServiceContainer during startup.")
    return services
