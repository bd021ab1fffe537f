from __future__ import annotations

from guidecache.models.catalog import (
    Catalog,
    CategoryRow,
    ChannelRow,
    PersistedProgramme,
    UpstreamSource,
)
from guidecache.models.guide import (
    CacheStats,
    CategorySummary,
    ChannelSummary,
    ProgrammeEntry,
    TenantCacheEntry,
)
from guidecache.models.sports import Game, GameStatus, PollBand, TeamScore, WatchedTeam
from guidecache.models.upstream import RawProgrammeEntry

__all__ = [
    # guide
    "ChannelSummary",
    "CategorySummary",
    "ProgrammeEntry",
    "TenantCacheEntry",
    "CacheStats",
    # catalog
    "Catalog",
    "CategoryRow",
    "ChannelRow",
    "PersistedProgramme",
    "UpstreamSource",
    # upstream
    "RawProgrammeEntry",
    # sports
    "Game",
    "GameStatus",
    "PollBand",
    "TeamScore",
    "WatchedTeam",
]
