from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel


class GameStatus(StrEnum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    HALFTIME = "halftime"
    FINAL = "final"
    POSTPONED = "postponed"
    CANCELLED = "cancelled"


LIVE_STATUSES: frozenset[GameStatus] = frozenset({GameStatus.IN_PROGRESS, GameStatus.HALFTIME})


class PollBand(StrEnum):
    """Cadence bands of the sports poll loop, most urgent first."""

    LIVE = "live"
    NEAR = "near"
    IDLE = "idle"


@dataclass(frozen=True)
class WatchedTeam:
    """A tenant's favourite team, read from the durable store."""

    tenant_id: str
    sport: str  # e.g. "football", "hockey"
    league: str  # e.g. "nfl", "nhl"
    team_id: str  # ESPN team id
    team_name: str = ""


class TeamScore(BaseModel):
    id: str
    name: str
    abbreviation: str
    logo: str | None = None
    color: str | None = None
    score: int | None = None


class Game(BaseModel):
    """Scoreboard state of one game."""

    external_id: str
    sport: str
    league: str
    home_team: TeamScore
    away_team: TeamScore
    start_time: datetime
    status: GameStatus
    status_detail: str | None = None
    period: int | None = None
    clock: str | None = None
    venue: str | None = None
    broadcast: str | None = None

    def involves(self, team_ids: set[str] | frozenset[str]) -> bool:
        return self.home_team.id in team_ids or self.away_team.id in team_ids
