"""Caller-facing guide API.

Read path: in-memory cache, then the durable fallback, then "not cached yet".
It never waits on an upstream source; freshness is the scheduler's job.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from guidecache.cache import GuideCache
    from guidecache.fallback import FallbackLoader
    from guidecache.models.guide import CacheStats, ProgrammeEntry, TenantCacheEntry
    from guidecache.refresh import RefreshCoordinator

log = structlog.get_logger()


class GuideService:
    def __init__(
        self,
        cache: GuideCache,
        loader: FallbackLoader,
        coordinator: RefreshCoordinator,
    ) -> None:
        self._cache = cache
        self._loader = loader
        self._coordinator = coordinator

    async def get_or_load(self, tenant_id: str) -> TenantCacheEntry | None:
        """Return the tenant's guide from memory, or recover it from the durable store.

        A freshly recovered entry is returned even when its data is already
        older than the TTL. Returns None when neither source has data.
        """
        if self._cache.is_valid(tenant_id):
            return self._cache.get(tenant_id)

        outcome = await self._loader.load(tenant_id)
        if outcome == "loaded":
            return self._cache.get(tenant_id)

        log.debug("guide_not_cached", tenant_id=tenant_id)
        return None

    def get_cached_sync(self, tenant_id: str) -> TenantCacheEntry | None:
        """In-memory only, no I/O. Returns the entry only while it is valid."""
        if not self._cache.is_valid(tenant_id):
            return None
        return self._cache.get(tenant_id)

    def get_channel_programmes(
        self, tenant_id: str, channel_id: str
    ) -> list[ProgrammeEntry] | None:
        return self._cache.get_channel_programmes(tenant_id, channel_id)

    def is_valid(self, tenant_id: str) -> bool:
        return self._cache.is_valid(tenant_id)

    def is_refreshing(self, tenant_id: str) -> bool:
        return self._coordinator.is_refreshing(tenant_id)

    def stats(self) -> CacheStats:
        return self._cache.stats()

    async def refresh_one(self, tenant_id: str) -> None:
        await self._coordinator.refresh(tenant_id)

    async def refresh_all(self) -> None:
        await self._coordinator.refresh_all()
