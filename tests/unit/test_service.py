"""Unit tests for guidecache.service."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import pytest
from fakes import T0, FakeClientFactory, FakeProgrammeClient, make_listing, seed_channel, seed_source

from guidecache.fallback import FallbackLoader
from guidecache.models.guide import ProgrammeEntry, TenantCacheEntry
from guidecache.refresh import RefreshCoordinator
from guidecache.service import GuideService

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    import aiosqlite
    from fakes import FakeClock

    from guidecache.cache import GuideCache
    from guidecache.config import RefreshSettings
    from guidecache.store import GuideStore


@pytest.fixture()
def client() -> FakeProgrammeClient:
    return FakeProgrammeClient({"100": [make_listing("live", T0)]})


@pytest.fixture()
async def service(
    store: GuideStore,
    cache: GuideCache,
    refresh_settings: RefreshSettings,
    clock: FakeClock,
    client: FakeProgrammeClient,
) -> AsyncGenerator[GuideService, None]:
    coordinator = RefreshCoordinator(
        store, cache, FakeClientFactory({"s1": client}), refresh_settings, clock=clock
    )
    yield GuideService(cache, FallbackLoader(store, cache), coordinator)
    await coordinator.drain()


async def _seed(db: aiosqlite.Connection) -> None:
    await seed_source(db, "s1", "t1")
    await seed_channel(db, "c1", "s1", external_id="100")


def _persisted(channel_id: str = "c1") -> ProgrammeEntry:
    return ProgrammeEntry(
        id="persisted",
        channel_id=channel_id,
        channel_external_id="100",
        title="From disk",
        start_time=T0,
        end_time=T0 + timedelta(hours=1),
    )


class TestGetOrLoad:
    async def test_valid_entry_served_from_memory(
        self, service: GuideService, cache: GuideCache, clock: FakeClock
    ) -> None:
        entry = TenantCacheEntry(last_updated=clock())
        cache.put("t1", entry)
        assert await service.get_or_load("t1") is entry

    async def test_cold_cache_falls_back_to_store(
        self, service: GuideService, store: GuideStore, db: aiosqlite.Connection
    ) -> None:
        await _seed(db)
        await store.replace_programmes(["c1"], [_persisted()], created_at=T0)

        entry = await service.get_or_load("t1")

        assert entry is not None
        assert entry.programme_index["c1"][0].title == "From disk"

    async def test_returns_stale_fallback_entry(
        self, service: GuideService, store: GuideStore, db: aiosqlite.Connection
    ) -> None:
        await _seed(db)
        await store.replace_programmes(
            ["c1"], [_persisted()], created_at=T0 - timedelta(hours=8)
        )

        entry = await service.get_or_load("t1")

        assert entry is not None
        assert service.is_valid("t1") is False

    async def test_nothing_anywhere_returns_none(
        self, service: GuideService, client: FakeProgrammeClient
    ) -> None:
        assert await service.get_or_load("t1") is None
        # The read path never goes upstream
        assert client.calls == []

    async def test_never_fetches_upstream(
        self, service: GuideService, db: aiosqlite.Connection, client: FakeProgrammeClient
    ) -> None:
        await _seed(db)
        assert await service.get_or_load("t1") is None
        assert client.calls == []


class TestSyncReads:
    async def test_get_cached_sync_requires_validity(
        self, service: GuideService, cache: GuideCache, clock: FakeClock
    ) -> None:
        cache.put("t1", TenantCacheEntry(last_updated=clock()))
        assert service.get_cached_sync("t1") is not None
        clock.advance(hours=5)
        assert service.get_cached_sync("t1") is None

    async def test_stats_and_channel_programmes(
        self, service: GuideService, db: aiosqlite.Connection
    ) -> None:
        await _seed(db)
        await service.refresh_one("t1")

        programmes = service.get_channel_programmes("t1", "c1")
        assert programmes is not None
        assert [p.id for p in programmes] == ["live"]
        assert service.stats().tenant_count == 1
        assert service.is_refreshing("t1") is False


class TestRefreshTriggers:
    async def test_refresh_all(
        self, service: GuideService, db: aiosqlite.Connection, cache: GuideCache
    ) -> None:
        await _seed(db)
        await service.refresh_all()
        assert cache.is_valid("t1")
