"""In-memory fakes, clocks and SQL seeding helpers shared by the test suite."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import aiosqlite

from guidecache.models.upstream import RawProgrammeEntry

if TYPE_CHECKING:
    from guidecache.models.catalog import UpstreamSource
    from guidecache.models.sports import Game


T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

XTREAM_SERVER = "http://panel.example.com:8080"
XTREAM_API = f"{XTREAM_SERVER}/player_api.php"


class FakeClock:
    """Mutable clock injected wherever code reads the current time."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def make_listing(
    listing_id: str,
    start: datetime,
    *,
    minutes: int = 30,
    title: str | None = None,
) -> RawProgrammeEntry:
    return RawProgrammeEntry(
        id=listing_id,
        title=title or f"Show {listing_id}",
        description="",
        start_timestamp=str(int(start.timestamp())),
        stop_timestamp=str(int((start + timedelta(minutes=minutes)).timestamp())),
    )


class FakeProgrammeClient:
    """In-memory programme client keyed by lookup id.

    A value that is an exception instance is raised instead of returned.
    Unknown lookup ids return an empty list.
    """

    def __init__(
        self,
        listings: dict[str, list[RawProgrammeEntry] | Exception] | None = None,
        *,
        delay: float = 0,
    ) -> None:
        self.listings = listings or {}
        self.delay = delay
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0

    async def fetch_programme(self, lookup_id: str, limit: int) -> list[RawProgrammeEntry]:
        self.calls.append(lookup_id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            result = self.listings.get(lookup_id, [])
            if isinstance(result, Exception):
                raise result
            return result[:limit]
        finally:
            self.active -= 1


class FakeClientFactory:
    """Hands out one FakeProgrammeClient per source id."""

    def __init__(self, clients: dict[str, FakeProgrammeClient] | None = None) -> None:
        self.clients = clients or {}
        self.sources: list[str] = []

    def __call__(self, source: UpstreamSource) -> FakeProgrammeClient:
        self.sources.append(source.id)
        client = self.clients.get(source.id)
        if client is None:
            raise RuntimeError(f"no client configured for source {source.id}")
        return client


class FakeScoreboard:
    def __init__(self, games: dict[tuple[str, str], list[Game] | Exception] | None = None) -> None:
        self.games = games or {}
        self.calls: list[tuple[str, str]] = []

    async def fetch_scoreboard(self, sport: str, league: str, day: object = None) -> list[Game]:
        self.calls.append((sport, league))
        result = self.games.get((sport, league), [])
        if isinstance(result, Exception):
            raise result
        return result


# ---------------------------------------------------------------------------
# Database seeding
# ---------------------------------------------------------------------------


async def seed_source(
    db: aiosqlite.Connection,
    source_id: str,
    tenant_id: str,
    *,
    name: str | None = None,
    server_url: str = "http://iptv.example.com:8080",
) -> None:
    await db.execute(
        "INSERT INTO upstream_sources (id, tenant_id, name, server_url, username, password) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (source_id, tenant_id, name or source_id, server_url, "user", "secret"),
    )
    await db.commit()


async def seed_category(
    db: aiosqlite.Connection, category_id: str, source_id: str, name: str = "News"
) -> None:
    await db.execute(
        "INSERT INTO channel_categories (id, source_id, external_id, name) VALUES (?, ?, ?, ?)",
        (category_id, source_id, f"ext-{category_id}", name),
    )
    await db.commit()


async def seed_channel(
    db: aiosqlite.Connection,
    channel_id: str,
    source_id: str,
    *,
    external_id: str | None = None,
    category_id: str | None = None,
    epg_channel_id: str | None = None,
) -> None:
    await db.execute(
        "INSERT INTO channels "
        "(id, source_id, category_id, external_id, name, stream_url, logo_url, epg_channel_id) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (
            channel_id,
            source_id,
            category_id,
            external_id or f"stream-{channel_id}",
            f"Channel {channel_id}",
            f"http://iptv.example.com/live/{channel_id}.ts",
            None,
            epg_channel_id,
        ),
    )
    await db.commit()


async def seed_watched_team(
    db: aiosqlite.Connection, tenant_id: str, sport: str, league: str, team_id: str
) -> None:
    await db.execute(
        "INSERT INTO watched_teams (tenant_id, sport, league, team_id) VALUES (?, ?, ?, ?)",
        (tenant_id, sport, league, team_id),
    )
    await db.commit()

