from typing import Annotated
from datetime import datetime, timezone
from urllib.parse import quote
import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from epg_bridge.database import get_db, session_scope
from epg_bridge.dependencies import ServiceContainer, get_services
from epg_bridge.models import Provider
from epg_bridge.schemas import (
    CatalogResponse,
    ProviderCreate,
    ProviderResponse,
    RefreshResponse,
    SelectionRequest,
    SelectionResponse,
    ShortEpgResponse,
)
from epg_bridge.services import provider_service
from epg_bridge.services.catalog_cache import CatalogEntry
from epg_bridge.services.playlist_service import build_m3u
from epg_bridge.services.programme_window import build_short_epg
from epg_bridge.services.xmltv_writer import EMPTY_XMLTV, render_merged_xmltv
from epg_bridge.services.xtream_client import (
    UpstreamAuthError,
    UpstreamCatalogError,
    XtreamCredentials,
)


logger = logging.getLogger(__name__)

main_router = APIRouter()

Services = Annotated[ServiceContainer, Depends(get_services)]
Database = Annotated[AsyncSession, Depends(get_db)]

EMPTY_CATALOG_ACTIONS = {"get_vod_categories", "get_vod_streams", "get_series_categories", "get_series"}
SHORT_EPG_ACTIONS = {"get_short_epg", "get_simple_data_table"}


async def _load_catalog(
    services: ServiceContainer,
    provider_id: str,
    credentials: XtreamCredentials
) -> CatalogEntry:
    """Fetch the cached catalog, turning upstream failures into 502 responses"""
    try:
        return await services.catalog_cache.get(provider_id, credentials)
    except UpstreamCatalogError as exc:
        logger.error("Upstream catalog unavailable for provider %s: %s", provider_id, exc)
        raise HTTPException(status_code=502, detail=f"Upstream provider unavailable: {exc}")


async def _client_provider(db: AsyncSession, username: str | None, password: str | None) -> Provider | None:
    """Resolve the provider a player client logs in as (username is the short code)"""
    if not username or not password:
        return None
    return await provider_service.get_provider_by_short_code(db, username)


def _client_credentials(provider: Provider, password: str) -> XtreamCredentials:
    return XtreamCredentials(url=provider.url, username=provider.username, password=password)


@main_router.get("/")
async def root(services: Services) -> dict:
    """Root endpoint with service information"""
    next_run = services.scheduler.get_next_run_time()

    return {
        "service": "EPG Bridge",
        "version": "0.1.0",
        "next_scheduled_refresh": next_run.isoformat() if next_run else None,
        "endpoints": {
            "player_api": "/player_api.php - Provider-compatible JSON API",
            "playlist": "/get.php - M3U playlist of selected channels",
            "xmltv": "/xmltv.php - Merged XMLTV guide",
            "refresh": "/refresh - Force an EPG refresh (POST)",
            "providers": "/providers - Register upstream credentials (POST)",
            "health": "/health - Health check"
        }
    }


@main_router.get("/health")
async def health_check(services: Services) -> dict:
    """Health check endpoint"""
    next_run = services.scheduler.get_next_run_time()
    dataset = services.epg_cache.peek()
    return {
        "status": "ok",
        "scheduler_running": services.scheduler.running,
        "next_refresh": next_run.isoformat() if next_run else None,
        "epg_loaded": dataset is not None,
        "epg_fresh": services.epg_cache.is_fresh(),
        "epg_refreshing": services.epg_cache.is_refreshing(),
        "epg_channels": len(dataset.channels) if dataset else 0,
        "epg_programmes": dataset.programme_count if dataset else 0,
        "epg_fetched_at": (
            datetime.fromtimestamp(dataset.fetched_at, timezone.utc).isoformat() if dataset else None
        ),
    }


@main_router.post("/refresh", response_model=RefreshResponse)
async def trigger_refresh(services: Services) -> RefreshResponse:
    """
    Manually refresh the EPG dataset from all sources

    Sources that fail are skipped; the refresh itself always completes.
    """
    logger.info("Manual EPG refresh triggered via API")
    dataset = await services.epg_cache.refresh()
    return RefreshResponse(
        status="success",
        fetched_at=dataset.fetched_at,
        sources_configured=len(services.epg_cache.sources),
        channels=len(dataset.channels),
        programmes=dataset.programme_count,
    )


@main_router.get("/xmltv.php")
@main_router.get("/epg.xml")
async def merged_xmltv(services: Services) -> Response:
    """Merged XMLTV document of every source (always 200)"""
    headers = {"Content-Disposition": 'inline; filename="xmltv.xml"'}
    try:
        dataset = await services.epg_cache.get()
        content = render_merged_xmltv(dataset, services.settings.xmltv_generator_name)
    except Exception as exc:
        logger.error("Failed to build merged XMLTV: %s", exc, exc_info=True)
        content = EMPTY_XMLTV
    return Response(content=content, media_type="application/xml", headers=headers)


@main_router.get("/player_api.php")
async def player_api(
    request: Request,
    services: Services,
    db: Database,
    username: str | None = None,
    password: str | None = None,
    action: str | None = None,
    category_id: str | None = None,
    stream_id: str | None = None,
    limit: Annotated[int | None, Query(ge=0)] = None,
):
    """Provider-compatible JSON API for IPTV players"""
    provider = await _client_provider(db, username, password)
    if provider is None:
        return JSONResponse({"user_info": {"auth": 0}})

    credentials = _client_credentials(provider, password)

    if action is None:
        return _account_info(request, provider, password)

    if action in EMPTY_CATALOG_ACTIONS:
        return []

    selected_ids = set(await provider_service.get_selections(db, provider.id))

    if action == "get_live_categories":
        entry = await _load_catalog(services, provider.id, credentials)
        used_category_ids = {
            stream.category_id for stream in entry.streams if stream.stream_id in selected_ids
        }
        return [
            category.model_dump()
            for category in entry.categories
            if category.category_id in used_category_ids
        ]

    if action == "get_live_streams":
        entry = await _load_catalog(services, provider.id, credentials)
        streams = [stream for stream in entry.streams if stream.stream_id in selected_ids]
        if category_id:
            streams = [stream for stream in streams if stream.category_id == category_id]
        return [
            {**stream.model_dump(), "direct_source": credentials.stream_url(stream.stream_id)}
            for stream in streams
        ]

    if action in SHORT_EPG_ACTIONS:
        return await _short_epg(services, provider, credentials, stream_id, limit)

    logger.debug("Unsupported player_api action %s, answering with account info", action)
    return _account_info(request, provider, password)


async def _short_epg(
    services: ServiceContainer,
    provider: Provider,
    credentials: XtreamCredentials,
    stream_id: str | None,
    limit: int | None
) -> ShortEpgResponse:
    try:
        wanted_id = int(stream_id) if stream_id else None
    except ValueError:
        wanted_id = None
    if wanted_id is None:
        return ShortEpgResponse()

    entry = await _load_catalog(services, provider.id, credentials)
    stream = next((s for s in entry.streams if s.stream_id == wanted_id), None)
    if stream is None or not stream.epg_channel_id:
        return ShortEpgResponse()

    dataset = await services.epg_cache.get()
    settings = services.settings
    listings = build_short_epg(
        stream.epg_channel_id,
        dataset.programmes_for(stream.epg_channel_id),
        int(time.time()),
        lang=settings.short_epg_lang,
        limit=limit,
        past_seconds=settings.short_epg_past_window_sec,
        future_seconds=settings.short_epg_future_window_sec,
    )
    return ShortEpgResponse(epg_listings=listings)


def _account_info(request: Request, provider: Provider, password: str) -> dict:
    """Account/auth payload players request before anything else"""
    is_https = request.url.scheme == "https"
    now = datetime.now(timezone.utc)
    return {
        "user_info": {
            "auth": 1,
            "username": provider.short_code,
            "password": password,
            "status": "Active",
            "exp_date": "9999999999",
            "is_trial": "0",
            "active_cons": "0",
            "created_at": provider.created_at.isoformat() if provider.created_at else None,
            "max_connections": "1",
            "allowed_output_formats": ["m3u8", "ts", "rtmp"],
        },
        "server_info": {
            "url": request.url.hostname,
            "port": str(request.url.port or (443 if is_https else 80)),
            "https_port": "443",
            "server_protocol": "https" if is_https else "http",
            "rtmp_port": "0",
            "timezone": "UTC",
            "timestamp_now": int(now.timestamp()),
            "time_now": now.isoformat(),
        },
    }


@main_router.get("/get.php")
async def playlist(
    services: Services,
    db: Database,
    username: str | None = None,
    password: str | None = None,
) -> Response:
    """M3U playlist of the provider's selected, EPG-enriched streams"""
    headers = {"Content-Disposition": 'inline; filename="playlist.m3u"'}
    provider = await _client_provider(db, username, password)
    if provider is None:
        return Response("#EXTM3U\n# Provider not found", media_type="audio/mpegurl", headers=headers)

    credentials = _client_credentials(provider, password)
    selected_ids = set(await provider_service.get_selections(db, provider.id))
    if not selected_ids:
        return Response("#EXTM3U\n# No channels selected", media_type="audio/mpegurl", headers=headers)

    entry = await _load_catalog(services, provider.id, credentials)
    streams = [stream for stream in entry.streams if stream.stream_id in selected_ids]
    logger.info("Building M3U for provider %s with %s streams", provider.id, len(streams))
    content = build_m3u(credentials, streams, entry.categories, services.settings.epg_sources)
    return Response(content, media_type="audio/mpegurl", headers=headers)


@main_router.get("/live/{short_code}/{password}/{stream_path:path}")
async def live_redirect(
    short_code: str,
    password: str,
    stream_path: str,
    services: Services,
    db: Database,
):
    """Redirect a player to the upstream stream URL"""
    if password != services.settings.stream_proxy_password:
        raise HTTPException(status_code=401, detail="Unauthorized")

    provider = await provider_service.get_provider_by_short_code(db, short_code)
    if provider is None:
        raise HTTPException(status_code=404, detail="Not found")

    credentials = XtreamCredentials(provider.url, provider.username, provider.password)
    target = (
        f"{credentials.base_url}/live/{quote(provider.username, safe='')}/"
        f"{quote(provider.password, safe='')}/{stream_path}"
    )
    return RedirectResponse(target, status_code=302)


@main_router.post("/providers", response_model=ProviderResponse)
async def register_provider(request: ProviderCreate, services: Services) -> ProviderResponse:
    """
    Validate upstream credentials and register (or reuse) a provider

    Returns:
        Provider ID, client short code and catalog size
    """
    credentials = XtreamCredentials(request.url, request.username, request.password)
    client = services.catalog_cache.client
    try:
        await client.get_account_info(credentials)
    except UpstreamAuthError as exc:
        raise HTTPException(status_code=401, detail=str(exc))
    except UpstreamCatalogError as exc:
        raise HTTPException(status_code=502, detail=f"Upstream provider unavailable: {exc}")

    async with session_scope() as session:
        provider = await provider_service.upsert_provider(
            session, request.url, request.username, request.password
        )
        short_code = await provider_service.get_or_create_short_code(session, provider)
        provider_id = provider.id

    services.catalog_cache.invalidate(provider_id)
    entry = await _load_catalog(services, provider_id, credentials)
    return ProviderResponse(
        id=provider_id,
        short_code=short_code,
        channel_count=len(entry.streams),
        category_count=len(entry.categories),
    )


async def _require_provider(db: AsyncSession, provider_id: str) -> Provider:
    provider = await provider_service.get_provider(db, provider_id)
    if provider is None:
        raise HTTPException(status_code=404, detail="Provider not found")
    return provider


@main_router.get("/providers/{provider_id}/channels", response_model=CatalogResponse)
async def provider_channels(provider_id: str, services: Services, db: Database) -> CatalogResponse:
    """Enriched upstream catalog for channel selection"""
    provider = await _require_provider(db, provider_id)
    credentials = XtreamCredentials(provider.url, provider.username, provider.password)
    entry = await _load_catalog(services, provider.id, credentials)
    return CatalogResponse(
        provider_id=provider.id,
        categories=entry.categories,
        streams=entry.streams,
        fetched_at=entry.fetched_at,
    )


@main_router.put("/providers/{provider_id}/selections", response_model=SelectionResponse)
async def save_provider_selections(provider_id: str, request: SelectionRequest) -> SelectionResponse:
    """Replace the provider's selected streams"""
    async with session_scope() as session:
        provider = await _require_provider(session, provider_id)
        count = await provider_service.save_selections(session, provider.id, request.stream_ids)
        short_code = await provider_service.get_or_create_short_code(session, provider)
        stream_ids = await provider_service.get_selections(session, provider.id)

    return SelectionResponse(
        provider_id=provider_id,
        short_code=short_code,
        stream_ids=stream_ids,
        count=count,
    )


@main_router.get("/providers/{provider_id}/selections", response_model=SelectionResponse)
async def get_provider_selections(provider_id: str, db: Database) -> SelectionResponse:
    provider = await _require_provider(db, provider_id)
    stream_ids = await provider_service.get_selections(db, provider.id)
    return SelectionResponse(
        provider_id=provider.id,
        short_code=provider.short_code or "",
        stream_ids=stream_ids,
        count=len(stream_ids),
    )
