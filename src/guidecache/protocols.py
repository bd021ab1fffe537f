"""Protocol interfaces for swappable components.

The refresh coordinator, fallback loader and schedulers reference these
protocols, not the concrete implementations. This allows:
- Tests to use lightweight in-memory fakes for upstream sources
- Other catalog backends to be swapped in without touching refresh logic
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import date, datetime

    from guidecache.models.catalog import Catalog, PersistedProgramme, UpstreamSource
    from guidecache.models.guide import ProgrammeEntry
    from guidecache.models.sports import Game, WatchedTeam
    from guidecache.models.upstream import RawProgrammeEntry


class GuideStoreProtocol(Protocol):
    """Narrow read/write contract on the durable store."""

    async def list_tenant_ids(self) -> list[str]: ...

    async def load_catalog(self, tenant_id: str) -> Catalog: ...

    async def load_programmes(self, channel_ids: Sequence[str]) -> list[PersistedProgramme]: ...

    async def replace_programmes(
        self,
        channel_ids: Sequence[str],
        programmes: Sequence[ProgrammeEntry],
        *,
        created_at: datetime,
        batch_size: int = 100,
    ) -> int: ...

    async def list_watched_teams(self) -> list[WatchedTeam]: ...


class ProgrammeClientProtocol(Protocol):
    """Programme lookups against one upstream source."""

    async def fetch_programme(self, lookup_id: str, limit: int) -> list[RawProgrammeEntry]: ...


class ProgrammeClientFactory(Protocol):
    """Builds the programme client for one configured upstream source."""

    def __call__(self, source: UpstreamSource) -> ProgrammeClientProtocol: ...


class ScoreboardClientProtocol(Protocol):
    """Interface for the live sports scoreboard."""

    async def fetch_scoreboard(
        self, sport: str, league: str, day: date | None = None
    ) -> list[Game]: ...
