"""Xtream Codes programme client.

All upstream programme lookups go through one shared httpx.AsyncClient. The
client is built once at startup and injected into every per-source
``XtreamClient``; the lifespan owns the client lifecycle.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import structlog
from pydantic import ValidationError

from guidecache.errors import ErrorCode, GuideCacheError
from guidecache.models.upstream import RawProgrammeEntry

if TYPE_CHECKING:
    from guidecache.config import UpstreamSettings
    from guidecache.models.catalog import UpstreamSource
    from guidecache.protocols import ProgrammeClientFactory

log = structlog.get_logger()


def build_http_client(settings: UpstreamSettings) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(settings.timeout_seconds),
        headers={"User-Agent": settings.user_agent},
        limits=httpx.Limits(
            max_connections=settings.max_connections,
            max_keepalive_connections=settings.max_keepalive_connections,
        ),
    )


def player_api_url(server_url: str) -> str:
    """Return the ``player_api.php`` endpoint for a configured server URL."""
    return f"{server_url.rstrip('/')}/player_api.php"


def parse_listings(payload: object, *, lookup_id: str = "") -> list[RawProgrammeEntry]:
    """Validate the ``epg_listings`` array of a ``get_short_epg`` response.

    Listings that fail validation (missing title, unparseable timestamps) are
    dropped individually rather than failing the whole channel.
    """
    if not isinstance(payload, dict):
        return []
    raw_listings = payload.get("epg_listings") or []
    if not isinstance(raw_listings, list):
        return []

    listings: list[RawProgrammeEntry] = []
    for raw in raw_listings:
        try:
            listings.append(RawProgrammeEntry.model_validate(raw))
        except ValidationError:
            log.debug("programme_listing_dropped", lookup_id=lookup_id, reason="invalid_listing")
    return listings


class XtreamClient:
    """Programme lookups against a single Xtream Codes server."""

    def __init__(self, client: httpx.AsyncClient, source: UpstreamSource) -> None:
        self._client = client
        self._source = source

    async def fetch_programme(self, lookup_id: str, limit: int) -> list[RawProgrammeEntry]:
        """Fetch up to ``limit`` upcoming listings for one channel.

        Raises GuideCacheError on network errors, non-2xx responses and
        non-JSON bodies.
        """
        params = {
            "username": self._source.username,
            "password": self._source.password,
            "action": "get_short_epg",
            "stream_id": lookup_id,
            "limit": str(limit),
        }
        try:
            response = await self._client.get(player_api_url(self._source.server_url), params=params)
        except httpx.HTTPError as exc:
            raise GuideCacheError(
                code=ErrorCode.UPSTREAM_FETCH_FAILED,
                message=f"Network error fetching programmes from {self._source.name}: {exc}",
                suggestion="The IPTV server may be temporarily unavailable.",
                recoverable=True,
            ) from exc

        if not response.is_success:
            raise GuideCacheError(
                code=ErrorCode.UPSTREAM_FETCH_FAILED,
                message=f"HTTP {response.status_code} fetching programmes from {self._source.name}",
                suggestion="Check the server URL and credentials for this source.",
                recoverable=response.status_code >= 500,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise GuideCacheError(
                code=ErrorCode.UPSTREAM_FETCH_FAILED,
                message=f"Invalid JSON in programme response from {self._source.name}",
                suggestion="The IPTV server returned an unexpected response.",
                recoverable=False,
            ) from exc

        return parse_listings(payload, lookup_id=lookup_id)


def xtream_client_factory(client: httpx.AsyncClient) -> ProgrammeClientFactory:
    """Bind the shared http client into a per-source client factory."""

    def factory(source: UpstreamSource) -> XtreamClient:
        return XtreamClient(client, source)

    return factory
