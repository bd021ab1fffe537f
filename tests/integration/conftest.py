"""Integration test fixtures.

Provides a fully wired AppState over an in-memory SQLite store and a real
httpx client (upstream servers are mocked with respx in each test), plus an
ASGI client for the Starlette app. The background scheduler is never started;
tests drive refreshes explicitly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest
from fakes import XTREAM_SERVER, seed_category, seed_channel, seed_source

from guidecache.config import Settings
from guidecache.server import build_state, create_app

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    import aiosqlite

    from guidecache.state import AppState
    from guidecache.store import GuideStore


@pytest.fixture()
async def seeded_db(db: aiosqlite.Connection, store: GuideStore) -> aiosqlite.Connection:
    """One tenant, one source, two categories, three channels."""
    await seed_source(db, "src-1", "tenant-1", name="Main panel", server_url=XTREAM_SERVER)
    await seed_category(db, "cat-news", "src-1", name="News")
    await seed_category(db, "cat-sport", "src-1", name="Sport")
    await seed_channel(db, "ch-1", "src-1", external_id="101", category_id="cat-news")
    await seed_channel(db, "ch-2", "src-1", external_id="102", category_id="cat-news")
    await seed_channel(
        db, "ch-3", "src-1", external_id="201", category_id="cat-sport", epg_channel_id="espn.us"
    )
    return db


@pytest.fixture()
async def app_state(store: GuideStore, seeded_db: aiosqlite.Connection) -> AsyncGenerator[AppState, None]:
    settings = Settings(sports={"enabled": False}, refresh={"fetch_timeout_seconds": 2})
    async with httpx.AsyncClient() as http_client:
        state = build_state(settings, store, http_client)
        yield state
        await state.coordinator.drain()


@pytest.fixture()
async def client(app_state: AppState) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=create_app(state=app_state))
    async with httpx.AsyncClient(transport=transport, base_url="http://guidecache.test") as ac:
        yield ac
