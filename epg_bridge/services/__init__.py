"""
Services package for EPG Bridge

This package contains all business logic and service layer components.
"""
from epg_bridge.services.catalog_cache import UpstreamCatalogCache, enrich_streams
from epg_bridge.services.channel_matcher import ChannelMatcher
from epg_bridge.services.epg_cache import EpgCache
from epg_bridge.services.scheduler_service import EPGScheduler
from epg_bridge.services.source_fetcher import SourceFetcher
from epg_bridge.services.xtream_client import XtreamClient

__all__ = [
    'ChannelMatcher',
    'EPGScheduler',
    'EpgCache',
    'SourceFetcher',
    'UpstreamCatalogCache',
    'XtreamClient',
    'enrich_streams',
]
