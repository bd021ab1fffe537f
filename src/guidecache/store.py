"""SQLite durable store: tenant catalog plus the programme recovery table.

The catalog tables (sources, categories, channels) are the source of truth for
what a tenant watches and are written by the dashboard, not by this package.
The ``programmes`` table is only a recovery copy of the last refresh, read by
the fallback loader after a restart.

Read failures are wrapped in ``GuideCacheError`` so callers can tell a broken
database from an empty catalog. Write failures propagate as ``aiosqlite.Error``;
the refresh coordinator runs writes as a best-effort background task and logs
them there.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING

import aiosqlite
import structlog

from guidecache.errors import ErrorCode, GuideCacheError
from guidecache.models.catalog import (
    Catalog,
    CategoryRow,
    ChannelRow,
    PersistedProgramme,
    UpstreamSource,
)
from guidecache.models.sports import WatchedTeam

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from guidecache.models.guide import ProgrammeEntry

log = structlog.get_logger()

_CREATE_SOURCE_TABLE = """
CREATE TABLE IF NOT EXISTS upstream_sources (
    id         TEXT PRIMARY KEY,
    tenant_id  TEXT NOT NULL,
    name       TEXT NOT NULL,
    server_url TEXT NOT NULL,
    username   TEXT NOT NULL,
    password   TEXT NOT NULL
)
"""

_CREATE_CATEGORY_TABLE = """
CREATE TABLE IF NOT EXISTS channel_categories (
    id          TEXT PRIMARY KEY,
    source_id   TEXT NOT NULL REFERENCES upstream_sources(id) ON DELETE CASCADE,
    external_id TEXT NOT NULL,
    name        TEXT NOT NULL
)
"""

_CREATE_CHANNEL_TABLE = """
CREATE TABLE IF NOT EXISTS channels (
    id             TEXT PRIMARY KEY,
    source_id      TEXT NOT NULL REFERENCES upstream_sources(id) ON DELETE CASCADE,
    category_id    TEXT REFERENCES channel_categories(id) ON DELETE SET NULL,
    external_id    TEXT NOT NULL,
    name           TEXT NOT NULL,
    stream_url     TEXT NOT NULL,
    logo_url       TEXT,
    epg_channel_id TEXT
)
"""

# `id` is the upstream programme id; channels sharing a guide lookup id share
# programme ids too, so rows are keyed by `row_id`.
_CREATE_PROGRAMME_TABLE = """
CREATE TABLE IF NOT EXISTS programmes (
    row_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    id          TEXT NOT NULL,
    channel_id  TEXT NOT NULL REFERENCES channels(id) ON DELETE CASCADE,
    title       TEXT NOT NULL,
    description TEXT,
    start_time  TEXT NOT NULL,
    end_time    TEXT NOT NULL,
    created_at  TEXT NOT NULL
)
"""

_CREATE_WATCHED_TEAM_TABLE = """
CREATE TABLE IF NOT EXISTS watched_teams (
    id        INTEGER PRIMARY KEY AUTOINCREMENT,
    tenant_id TEXT NOT NULL,
    sport     TEXT NOT NULL,
    league    TEXT NOT NULL,
    team_id   TEXT NOT NULL,
    team_name TEXT NOT NULL DEFAULT ''
)
"""

_CREATE_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_sources_tenant ON upstream_sources(tenant_id)",
    "CREATE INDEX IF NOT EXISTS idx_categories_source ON channel_categories(source_id)",
    "CREATE INDEX IF NOT EXISTS idx_channels_source ON channels(source_id)",
    "CREATE INDEX IF NOT EXISTS idx_programmes_channel ON programmes(channel_id)",
)

# SQLite caps bound parameters per statement; keep IN (...) lists well below it.
_MAX_IN_PARAMS = 500


def _chunks(items: Sequence, size: int) -> Iterator[Sequence]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _placeholders(count: int) -> str:
    return ", ".join("?" * count)


class GuideStore:
    """aiosqlite-backed durable store implementing GuideStoreProtocol."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db
        # Serialises write transactions on the shared connection
        self._write_lock = asyncio.Lock()

    async def init_db(self) -> None:
        """Create tables and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute("PRAGMA foreign_keys = ON")
        await self._db.execute(_CREATE_SOURCE_TABLE)
        await self._db.execute(_CREATE_CATEGORY_TABLE)
        await self._db.execute(_CREATE_CHANNEL_TABLE)
        await self._db.execute(_CREATE_PROGRAMME_TABLE)
        await self._db.execute(_CREATE_WATCHED_TEAM_TABLE)
        for statement in _CREATE_INDEXES:
            await self._db.execute(statement)
        await self._db.commit()

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def list_tenant_ids(self) -> list[str]:
        """Return every tenant with at least one upstream source."""
        try:
            cursor = await self._db.execute(
                "SELECT DISTINCT tenant_id FROM upstream_sources ORDER BY tenant_id"
            )
            return [row[0] for row in await cursor.fetchall()]
        except aiosqlite.Error as exc:
            raise GuideCacheError(
                code=ErrorCode.CATALOG_READ_FAILED,
                message=f"Failed to list tenants: {exc}",
                suggestion="Check that the guide database is reachable and not corrupted.",
                recoverable=True,
            ) from exc

    async def load_catalog(self, tenant_id: str) -> Catalog:
        """Read the tenant's sources, categories and channels in one consistent pass."""
        try:
            cursor = await self._db.execute(
                "SELECT id, tenant_id, name, server_url, username, password "
                "FROM upstream_sources WHERE tenant_id = ? ORDER BY rowid",
                (tenant_id,),
            )
            sources = [UpstreamSource(*row) for row in await cursor.fetchall()]
            if not sources:
                return Catalog(tenant_id=tenant_id)

            cursor = await self._db.execute(
                "SELECT cat.id, cat.source_id, cat.external_id, cat.name "
                "FROM channel_categories cat "
                "JOIN upstream_sources s ON s.id = cat.source_id "
                "WHERE s.tenant_id = ? ORDER BY cat.rowid",
                (tenant_id,),
            )
            categories = [CategoryRow(*row) for row in await cursor.fetchall()]

            cursor = await self._db.execute(
                "SELECT ch.id, ch.source_id, ch.category_id, ch.external_id, ch.name, "
                "ch.stream_url, ch.logo_url, ch.epg_channel_id, cat.name "
                "FROM channels ch "
                "JOIN upstream_sources s ON s.id = ch.source_id "
                "LEFT JOIN channel_categories cat ON cat.id = ch.category_id "
                "WHERE s.tenant_id = ? ORDER BY ch.rowid",
                (tenant_id,),
            )
            channels = [ChannelRow(*row) for row in await cursor.fetchall()]
        except aiosqlite.Error as exc:
            raise GuideCacheError(
                code=ErrorCode.CATALOG_READ_FAILED,
                message=f"Failed to read catalog for tenant {tenant_id}: {exc}",
                suggestion="Check that the guide database is reachable and not corrupted.",
                recoverable=True,
            ) from exc

        return Catalog(
            tenant_id=tenant_id,
            sources=sources,
            categories=categories,
            channels=channels,
        )

    # ------------------------------------------------------------------
    # Programme recovery copy
    # ------------------------------------------------------------------

    async def load_programmes(self, channel_ids: Sequence[str]) -> list[PersistedProgramme]:
        """Read persisted programmes for exactly ``channel_ids``, ordered by start time."""
        if not channel_ids:
            return []
        rows: list[PersistedProgramme] = []
        try:
            for chunk in _chunks(channel_ids, _MAX_IN_PARAMS):
                cursor = await self._db.execute(
                    "SELECT id, channel_id, title, description, start_time, end_time, created_at "
                    f"FROM programmes WHERE channel_id IN ({_placeholders(len(chunk))}) "
                    "ORDER BY start_time",
                    tuple(chunk),
                )
                for row in await cursor.fetchall():
                    rows.append(
                        PersistedProgramme(
                            id=row[0],
                            channel_id=row[1],
                            title=row[2],
                            description=row[3],
                            start_time=datetime.fromisoformat(row[4]),
                            end_time=datetime.fromisoformat(row[5]),
                            created_at=datetime.fromisoformat(row[6]),
                        )
                    )
        except (aiosqlite.Error, ValueError) as exc:
            raise GuideCacheError(
                code=ErrorCode.STORE_READ_FAILED,
                message=f"Failed to read persisted programmes: {exc}",
                suggestion="The guide will be rebuilt from upstream on the next refresh.",
                recoverable=True,
            ) from exc
        return rows

    async def replace_programmes(
        self,
        channel_ids: Sequence[str],
        programmes: Sequence[ProgrammeEntry],
        *,
        created_at: datetime,
        batch_size: int = 100,
    ) -> int:
        """Delete persisted programmes for ``channel_ids`` and insert ``programmes``.

        Runs as a single transaction; inserts are issued in batches of
        ``batch_size`` rows. Returns the number of rows inserted.
        """
        created = created_at.isoformat()
        async with self._write_lock:
            try:
                for chunk in _chunks(channel_ids, _MAX_IN_PARAMS):
                    await self._db.execute(
                        f"DELETE FROM programmes WHERE channel_id IN ({_placeholders(len(chunk))})",
                        tuple(chunk),
                    )
                for batch in _chunks(programmes, batch_size):
                    await self._db.executemany(
                        "INSERT INTO programmes "
                        "(id, channel_id, title, description, start_time, end_time, created_at) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?)",
                        [
                            (
                                entry.id,
                                entry.channel_id,
                                entry.title,
                                entry.description,
                                entry.start_time.isoformat(),
                                entry.end_time.isoformat(),
                                created,
                            )
                            for entry in batch
                        ],
                    )
                await self._db.commit()
            except BaseException:
                await self._db.rollback()
                raise
        return len(programmes)

    # ------------------------------------------------------------------
    # Sports
    # ------------------------------------------------------------------

    async def list_watched_teams(self) -> list[WatchedTeam]:
        """Return every tenant's watched teams."""
        try:
            cursor = await self._db.execute(
                "SELECT tenant_id, sport, league, team_id, team_name "
                "FROM watched_teams ORDER BY id"
            )
            return [WatchedTeam(*row) for row in await cursor.fetchall()]
        except aiosqlite.Error as exc:
            raise GuideCacheError(
                code=ErrorCode.STORE_READ_FAILED,
                message=f"Failed to read watched teams: {exc}",
                suggestion="Check that the guide database is reachable and not corrupted.",
                recoverable=True,
            ) from exc
