"""
Upstream Xtream Codes client

Thin async wrapper over a provider's ``player_api.php`` endpoints.
"""
from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote
import logging

import httpx
from pydantic import TypeAdapter, ValidationError

from epg_bridge.schemas import Category, Stream
from epg_bridge.utils.logging_helpers import sanitize_url_for_logging


logger = logging.getLogger(__name__)

_CATEGORIES_ADAPTER = TypeAdapter(list[Category])
_STREAMS_ADAPTER = TypeAdapter(list[Stream])


class UpstreamCatalogError(RuntimeError):
    """Raised when the upstream provider cannot deliver its catalog."""
    pass


class UpstreamAuthError(UpstreamCatalogError):
    """Raised when the upstream provider rejects the credentials."""
    pass


@dataclass(frozen=True, slots=True)
class XtreamCredentials:
    url: str
    username: str
    password: str

    @property
    def base_url(self) -> str:
        """Provider URL without trailing slashes, defaulting to http://."""
        url = self.url.strip().rstrip("/")
        if not url.startswith(("http://", "https://")):
            url = "http://" + url
        return url

    def stream_url(self, stream_id: int | str, extension: str = "ts") -> str:
        return (
            f"{self.base_url}/live/{quote(self.username, safe='')}/"
            f"{quote(self.password, safe='')}/{stream_id}.{extension}"
        )


class XtreamClient:
    """Calls the provider API through a shared HTTP client."""

    def __init__(self, client: httpx.AsyncClient, *, timeout: float | None = None):
        self._client = client
        self._timeout = timeout

    async def _call(self, credentials: XtreamCredentials, action: str | None = None):
        params = {"username": credentials.username, "password": credentials.password}
        if action:
            params["action"] = action
        url = f"{credentials.base_url}/player_api.php"
        kwargs = {"timeout": self._timeout} if self._timeout is not None else {}

        try:
            response = await self._client.get(url, params=params, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Upstream %s returned HTTP %s for %s",
                sanitize_url_for_logging(url),
                exc.response.status_code,
                action or "account info",
            )
            raise UpstreamCatalogError(
                f"Upstream returned HTTP {exc.response.status_code} for {action or 'account info'}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Upstream %s unreachable for %s: %s",
                sanitize_url_for_logging(url),
                action or "account info",
                exc,
            )
            raise UpstreamCatalogError(f"Upstream request failed: {type(exc).__name__}") from exc
        except ValueError as exc:
            raise UpstreamCatalogError(f"Upstream returned invalid JSON for {action or 'account info'}") from exc

    async def get_account_info(self, credentials: XtreamCredentials) -> dict:
        """Validate credentials and return the provider's ``user_info`` block."""
        data = await self._call(credentials)
        user_info = data.get("user_info") if isinstance(data, dict) else None
        if not isinstance(user_info, dict) or user_info.get("auth") in (0, "0"):
            raise UpstreamAuthError("Authentication failed")
        return user_info

    async def get_live_categories(self, credentials: XtreamCredentials) -> list[Category]:
        data = await self._call(credentials, "get_live_categories")
        try:
            return _CATEGORIES_ADAPTER.validate_python(data)
        except ValidationError as exc:
            raise UpstreamCatalogError("Upstream returned malformed live categories") from exc

    async def get_live_streams(self, credentials: XtreamCredentials) -> list[Stream]:
        data = await self._call(credentials, "get_live_streams")
        try:
            return _STREAMS_ADAPTER.validate_python(data)
        except ValidationError as exc:
            raise UpstreamCatalogError("Upstream returned malformed live streams") from exc
