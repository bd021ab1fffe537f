"""Application state container.

AppState is created once at startup (inside the Starlette lifespan) and
handed to every request handler through ``app.state``. It owns the single
GuideCache and RefreshCoordinator of the process; nothing in the package
keeps them in module-level globals.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from guidecache.cache import GuideCache
    from guidecache.config import Settings
    from guidecache.fallback import FallbackLoader
    from guidecache.protocols import GuideStoreProtocol
    from guidecache.refresh import RefreshCoordinator
    from guidecache.schedulers import Scheduler, SportsPoller
    from guidecache.service import GuideService


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every request handler."""

    settings: Settings
    store: GuideStoreProtocol
    cache: GuideCache
    coordinator: RefreshCoordinator
    loader: FallbackLoader
    service: GuideService
    scheduler: Scheduler | None = None
    poller: SportsPoller | None = None
    http_client: httpx.AsyncClient | None = None
