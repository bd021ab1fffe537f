"""HTTP entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState via the Starlette lifespan context manager
- Start and stop the background scheduler
- Expose the guide read path and refresh triggers as JSON routes
"""

from __future__ import annotations

import logging
import secrets
import sys
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiosqlite
import structlog
import uvicorn
from starlette.applications import Starlette
from starlette.datastructures import Headers
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from guidecache import __version__
from guidecache.cache import GuideCache
from guidecache.config import Settings
from guidecache.errors import ErrorCode, GuideCacheError
from guidecache.fallback import FallbackLoader
from guidecache.refresh import RefreshCoordinator
from guidecache.schedulers import Scheduler, SportsPoller
from guidecache.scoreboard import ScoreboardClient
from guidecache.service import GuideService
from guidecache.state import AppState
from guidecache.store import GuideStore
from guidecache.upstream import build_http_client, xtream_client_factory

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    import httpx
    from starlette.requests import Request
    from starlette.types import ASGIApp, Receive, Scope, Send

    from guidecache.models.guide import TenantCacheEntry
    from guidecache.protocols import GuideStoreProtocol

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_state(
    settings: Settings,
    store: GuideStoreProtocol,
    http_client: httpx.AsyncClient,
) -> AppState:
    """Wire every component around one store, one cache and one coordinator."""
    cache = GuideCache(ttl=timedelta(hours=settings.cache.ttl_hours))
    coordinator = RefreshCoordinator(
        store,
        cache,
        xtream_client_factory(http_client),
        settings.refresh,
    )
    loader = FallbackLoader(store, cache)
    service = GuideService(cache, loader, coordinator)

    poller: SportsPoller | None = None
    if settings.sports.enabled:
        poller = SportsPoller(
            store,
            ScoreboardClient(http_client, settings.sports.scoreboard_url),
            settings.sports,
        )

    return AppState(
        settings=settings,
        store=store,
        cache=cache,
        coordinator=coordinator,
        loader=loader,
        service=service,
        scheduler=Scheduler(coordinator, cache, settings.refresh, poller),
        poller=poller,
        http_client=http_client,
    )


@asynccontextmanager
async def _managed_state(settings: Settings) -> AsyncGenerator[AppState, None]:
    """Create and tear down all shared resources for the server's lifetime."""
    log.info("server_starting", version=__version__)

    db_path = Path(settings.database.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(str(db_path))
    store = GuideStore(db)
    await store.init_db()
    http_client = build_http_client(settings.upstream)

    state = build_state(settings, store, http_client)

    if state.scheduler is not None:
        state.scheduler.start()
    log.info("server_started", version=__version__, db_path=str(db_path))

    try:
        yield state
    finally:
        if state.scheduler is not None:
            await state.scheduler.stop()
        await state.coordinator.drain()
        await http_client.aclose()
        await db.close()
        log.info("server_stopping")


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _state(request: Request) -> AppState:
    return request.app.state.guide


def _error_response(error: GuideCacheError, *, route: str) -> JSONResponse:
    log.warning(
        "route_error",
        route=route,
        code=error.code,
        message=error.message,
        recoverable=error.recoverable,
    )
    status_code = 503 if error.recoverable else 500
    if error.code == ErrorCode.NOT_CACHED:
        status_code = 404
    return JSONResponse(error.to_dict(), status_code=status_code)


def _entry_counts(entry: TenantCacheEntry | None) -> dict[str, Any]:
    return {
        "channel_count": len(entry.channels) if entry else 0,
        "category_count": len(entry.categories) if entry else 0,
        "programme_channel_count": entry.programme_channel_count() if entry else 0,
        "last_updated": entry.last_updated.isoformat() if entry else None,
    }


async def health(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "version": __version__})


async def get_guide(request: Request) -> JSONResponse:
    """Cached guide for one tenant, optionally filtered by source and category.

    Never waits on upstream: a cold cache answers ``cached: false``.
    """
    state = _state(request)
    tenant_id = request.path_params["tenant_id"]
    source_id = request.query_params.get("source_id")
    category_id = request.query_params.get("category_id")

    entry = await state.service.get_or_load(tenant_id)
    if entry is None:
        return JSONResponse(
            {
                "success": True,
                "data": {
                    "channels": [],
                    "categories": [],
                    "programmes": {},
                    "cached": False,
                    "valid": False,
                    "last_updated": None,
                },
            }
        )

    channels = [
        channel
        for channel in entry.channels
        if (source_id is None or channel.source_id == source_id)
        and (category_id is None or channel.category_id == category_id)
    ]
    categories = [
        category
        for category in entry.categories
        if source_id is None or category.source_id == source_id
    ]
    programmes = {
        channel.id: [p.model_dump(mode="json") for p in entry.programme_index[channel.id]]
        for channel in channels
        if entry.programme_index.get(channel.id)
    }

    return JSONResponse(
        {
            "success": True,
            "data": {
                "channels": [c.model_dump(mode="json") for c in channels],
                "categories": [c.model_dump(mode="json") for c in categories],
                "programmes": programmes,
                "cached": True,
                "valid": state.service.is_valid(tenant_id),
                "last_updated": entry.last_updated.isoformat(),
            },
        }
    )


async def get_channel_programmes(request: Request) -> JSONResponse:
    state = _state(request)
    tenant_id = request.path_params["tenant_id"]
    channel_id = request.path_params["channel_id"]

    programmes = state.service.get_channel_programmes(tenant_id, channel_id)
    if programmes is None:
        return _error_response(
            GuideCacheError(
                code=ErrorCode.NOT_CACHED,
                message=f"No valid guide cached for tenant {tenant_id}.",
                suggestion="Trigger a cache refresh, then retry.",
                recoverable=True,
            ),
            route="channel_programmes",
        )
    return JSONResponse(
        {"success": True, "data": [p.model_dump(mode="json") for p in programmes]}
    )


async def refresh_cache(request: Request) -> JSONResponse:
    state = _state(request)
    tenant_id = request.path_params["tenant_id"]
    try:
        await state.service.refresh_one(tenant_id)
    except GuideCacheError as exc:
        return _error_response(exc, route="cache_refresh")
    except Exception:
        log.error("route_unexpected_error", route="cache_refresh", exc_info=True)
        raise

    return JSONResponse(
        {"success": True, "data": _entry_counts(state.service.get_cached_sync(tenant_id))}
    )


async def cache_status(request: Request) -> JSONResponse:
    state = _state(request)
    tenant_id = request.path_params["tenant_id"]
    entry = state.cache.get(tenant_id)
    return JSONResponse(
        {
            "success": True,
            "data": {
                "cached": entry is not None,
                "valid": state.service.is_valid(tenant_id),
                "refreshing": state.service.is_refreshing(tenant_id),
                **_entry_counts(entry),
            },
        }
    )


async def cache_stats(request: Request) -> JSONResponse:
    state = _state(request)
    return JSONResponse({"success": True, "data": state.service.stats().model_dump()})


async def sports_games(request: Request) -> JSONResponse:
    poller = _state(request).poller
    if poller is None:
        return JSONResponse(
            {"success": True, "data": {"enabled": False, "band": None, "games": []}}
        )
    return JSONResponse(
        {
            "success": True,
            "data": {
                "enabled": True,
                "band": poller.band,
                "last_polled_at": poller.last_polled_at.isoformat()
                if poller.last_polled_at
                else None,
                "games": [game.model_dump(mode="json") for game in poller.games],
            },
        }
    )


ROUTES = [
    Route("/health", health),
    Route("/tenants/{tenant_id}/guide", get_guide),
    Route("/tenants/{tenant_id}/channels/{channel_id}/programmes", get_channel_programmes),
    Route("/tenants/{tenant_id}/cache/refresh", refresh_cache, methods=["POST"]),
    Route("/tenants/{tenant_id}/cache/status", cache_status),
    Route("/cache/stats", cache_stats),
    Route("/sports/games", sports_games),
]


# ---------------------------------------------------------------------------
# Security
# ---------------------------------------------------------------------------


class BearerAuthMiddleware:
    """Pure ASGI middleware enforcing an optional bearer key on every HTTP request."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        auth_enabled: bool,
        auth_key: str | None = None,
    ) -> None:
        self.app = app
        self.auth_enabled = auth_enabled
        self.auth_key = auth_key

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and self.auth_enabled:
            headers = Headers(scope=scope)
            auth_header = headers.get("authorization", "")
            if not auth_header.startswith("Bearer ") or not secrets.compare_digest(
                auth_header[7:], self.auth_key or ""
            ):
                await Response("Unauthorized", status_code=401)(scope, receive, send)
                return

        await self.app(scope, receive, send)


# ---------------------------------------------------------------------------
# App factory and entrypoint
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None, *, state: AppState | None = None) -> Starlette:
    """Build the Starlette app.

    With ``state`` the app serves that pre-built state and owns no resources;
    otherwise the lifespan opens the database and http client and runs the
    scheduler.
    """

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncGenerator[None, None]:
        if state is not None:
            yield
            return
        async with _managed_state(settings or Settings()) as managed:
            app.state.guide = managed
            yield

    app = Starlette(routes=ROUTES, lifespan=lifespan)
    if state is not None:
        app.state.guide = state
    return app


def run_http_server(settings: Settings) -> None:
    """Start the guide cache server with its background scheduler."""
    _setup_logging(settings)
    http_log = structlog.get_logger().bind(transport="http")

    auth_key: str | None = settings.server.auth_key or None
    if settings.server.auth_enabled and not auth_key:
        auth_key = secrets.token_urlsafe(32)
        http_log.warning("http_auth_key_auto_generated", auth_key=auth_key)
    if not settings.server.auth_enabled:
        http_log.warning("http_auth_disabled")

    secured_app = BearerAuthMiddleware(
        create_app(settings),
        auth_enabled=settings.server.auth_enabled,
        auth_key=auth_key,
    )

    uvicorn.run(
        secured_app,
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,  # Disable uvicorn's default logging; structlog handles it
    )


def main() -> None:
    run_http_server(Settings())


if __name__ == "__main__":
    main()
