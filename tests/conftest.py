"""Shared test fixtures for the guidecache test suite."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import aiosqlite
import pytest
from fakes import FakeClock

from guidecache.cache import GuideCache
from guidecache.config import RefreshSettings
from guidecache.store import GuideStore

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@pytest.fixture()
async def db() -> AsyncGenerator[aiosqlite.Connection, None]:
    async with aiosqlite.connect(":memory:") as conn:
        yield conn


@pytest.fixture()
async def store(db: aiosqlite.Connection) -> GuideStore:
    guide_store = GuideStore(db)
    await guide_store.init_db()
    return guide_store


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cache(clock: FakeClock) -> GuideCache:
    return GuideCache(timedelta(hours=4), clock=clock)


@pytest.fixture()
def refresh_settings() -> RefreshSettings:
    return RefreshSettings(startup_delay_seconds=0, fetch_timeout_seconds=1)
