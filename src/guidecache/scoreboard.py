"""ESPN scoreboard client.

Feeds the variable-cadence sports poll loop. Uses ESPN's public
``site.api.espn.com`` scoreboard endpoint; responses are parsed defensively
because the feed is unofficial and fields come and go.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from guidecache.cache import utc_now
from guidecache.errors import ErrorCode, GuideCacheError
from guidecache.models.sports import Game, GameStatus, TeamScore

if TYPE_CHECKING:
    from collections.abc import Callable

log = structlog.get_logger()

# ESPN occasionally leaves finished games in the "in" state for hours.
STALE_IN_PROGRESS_HOURS = 6


def map_status(
    status: dict[str, Any],
    start_time: datetime | None = None,
    now: datetime | None = None,
) -> GameStatus:
    """Translate an ESPN ``competition.status`` object into a GameStatus.

    An "in" game that started more than STALE_IN_PROGRESS_HOURS before ``now``
    counts as final.
    """
    status_type = status.get("type") or {}
    state = status_type.get("state")
    name = (status_type.get("name") or "").lower()
    completed = bool(status_type.get("completed"))
    detail = (status_type.get("detail") or "").lower()
    short_detail = (status_type.get("shortDetail") or "").lower()

    if state == "pre":
        return GameStatus.SCHEDULED

    if state == "post" or completed:
        if "postponed" in name:
            return GameStatus.POSTPONED
        if "cancel" in name:
            return GameStatus.CANCELLED
        return GameStatus.FINAL

    if state == "in":
        if "halftime" in name or "halftime" in detail:
            return GameStatus.HALFTIME
        if "final" in name or "final" in detail or "final" in short_detail:
            return GameStatus.FINAL
        if start_time is not None and (now or utc_now()) - start_time > timedelta(
            hours=STALE_IN_PROGRESS_HOURS
        ):
            return GameStatus.FINAL
        return GameStatus.IN_PROGRESS

    return GameStatus.SCHEDULED


def _parse_score(raw: object) -> int | None:
    try:
        return int(raw)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return None


def _team_score(competitor: dict[str, Any]) -> TeamScore:
    team = competitor.get("team") or {}
    logos = team.get("logos") or []
    logo = logos[0].get("href") if logos else team.get("logo")
    color = team.get("color")
    return TeamScore(
        id=str(team.get("id", "")),
        name=team.get("displayName", ""),
        abbreviation=team.get("abbreviation", ""),
        logo=logo or None,
        color=f"#{color}" if color else None,
        score=_parse_score(competitor.get("score")),
    )


def parse_game(
    event: dict[str, Any], sport: str, league: str, now: datetime | None = None
) -> Game | None:
    """Parse one scoreboard event. Returns None for events without two competitors."""
    competitions = event.get("competitions") or []
    if not competitions:
        return None
    competition = competitions[0]
    competitors = competition.get("competitors") or []
    home = next((c for c in competitors if c.get("homeAway") == "home"), None)
    away = next((c for c in competitors if c.get("homeAway") == "away"), None)
    if home is None or away is None:
        return None

    try:
        start_time = datetime.fromisoformat(event["date"].replace("Z", "+00:00"))
    except (KeyError, AttributeError, ValueError):
        return None
    if start_time.tzinfo is None:
        start_time = start_time.replace(tzinfo=UTC)

    status = competition.get("status") or {}
    status_type = status.get("type") or {}
    broadcasts = ", ".join(
        name for b in competition.get("broadcasts") or [] for name in b.get("names") or [] if name
    )

    return Game(
        external_id=str(event.get("id", "")),
        sport=sport,
        league=league,
        home_team=_team_score(home),
        away_team=_team_score(away),
        start_time=start_time,
        status=map_status(status, start_time, now),
        status_detail=status_type.get("shortDetail") or status_type.get("detail") or None,
        period=status.get("period") or None,
        clock=status.get("displayClock") or None,
        venue=(competition.get("venue") or {}).get("fullName") or None,
        broadcast=broadcasts or None,
    )


class ScoreboardClient:
    """Fetches league scoreboards from ESPN."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._clock = clock

    async def fetch_scoreboard(
        self, sport: str, league: str, day: date | None = None
    ) -> list[Game]:
        """Return the league's games for ``day`` (ESPN's default day when None), sorted by start."""
        url = f"{self._base_url}/{sport}/{league}/scoreboard"
        params = {"dates": day.strftime("%Y%m%d")} if day is not None else None
        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise GuideCacheError(
                code=ErrorCode.SCOREBOARD_FETCH_FAILED,
                message=f"Network error fetching {sport}/{league} scoreboard: {exc}",
                suggestion="The scoreboard service may be temporarily unavailable.",
                recoverable=True,
            ) from exc

        if not response.is_success:
            raise GuideCacheError(
                code=ErrorCode.SCOREBOARD_FETCH_FAILED,
                message=f"HTTP {response.status_code} fetching {sport}/{league} scoreboard",
                suggestion="Check that the league is supported by the scoreboard service.",
                recoverable=response.status_code >= 500,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise GuideCacheError(
                code=ErrorCode.SCOREBOARD_FETCH_FAILED,
                message=f"Invalid JSON in {sport}/{league} scoreboard",
                suggestion="The scoreboard service returned an unexpected response.",
                recoverable=True,
            ) from exc

        events = data.get("events") if isinstance(data, dict) else None
        now = self._clock()
        games = [
            game
            for event in events or []
            if (game := parse_game(event, sport, league, now)) is not None
        ]
        games.sort(key=lambda game: game.start_time)
        log.debug("scoreboard_fetched", sport=sport, league=league, games=len(games))
        return games
