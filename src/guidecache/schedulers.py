"""Background scheduler loops: fixed-cadence guide refresh and adaptive sports polling.

Both loops sleep on a stop event rather than a bare ``asyncio.sleep``, so a
stop request prevents any further tick but lets a tick already running finish.
A half-applied tenant refresh is never left behind by shutdown.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

import structlog

from guidecache.cache import utc_now
from guidecache.models.sports import LIVE_STATUSES, GameStatus, PollBand

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine, Sequence
    from datetime import datetime

    from guidecache.cache import GuideCache
    from guidecache.config import RefreshSettings, SportsSettings
    from guidecache.models.sports import Game
    from guidecache.protocols import GuideStoreProtocol, ScoreboardClientProtocol
    from guidecache.refresh import RefreshCoordinator

log = structlog.get_logger()


async def _wait_or_stop(stop: asyncio.Event, seconds: float) -> bool:
    """Sleep up to ``seconds``. Returns True if a stop was requested meanwhile."""
    if stop.is_set():
        return True
    try:
        await asyncio.wait_for(stop.wait(), timeout=max(seconds, 0))
    except TimeoutError:
        return False
    return True


# ---------------------------------------------------------------------------
# Fixed-cadence guide refresh
# ---------------------------------------------------------------------------


async def run_guide_refresh_scheduler(
    coordinator: RefreshCoordinator,
    cache: GuideCache,
    settings: RefreshSettings,
    stop: asyncio.Event,
) -> None:
    """Refresh every tenant after the startup delay, then once per interval.

    Tenants are refreshed one after another, never concurrently.
    """
    if await _wait_or_stop(stop, settings.startup_delay_seconds):
        return

    loop = asyncio.get_running_loop()
    interval_seconds = settings.interval_hours * 3600

    while True:
        started = loop.time()
        log.info("scheduled_refresh_started")
        try:
            await coordinator.refresh_all()
        except Exception:
            log.error("scheduled_refresh_error", exc_info=True)
        else:
            stats = cache.stats()
            log.info(
                "scheduled_refresh_complete",
                tenants=stats.tenant_count,
                channels=stats.total_channels,
                programme_entries=stats.total_programme_entries,
            )

        elapsed = loop.time() - started
        if await _wait_or_stop(stop, interval_seconds - elapsed):
            return


# ---------------------------------------------------------------------------
# Variable-cadence sports polling
# ---------------------------------------------------------------------------


def select_poll_band(games: Sequence[Game], now: datetime, settings: SportsSettings) -> PollBand:
    """Pick the most urgent band across all games.

    LIVE when any game is in progress; NEAR when a game starts within the
    upcoming horizon or finished (start + assumed duration) within the recent
    horizon; IDLE otherwise.
    """
    upcoming = timedelta(minutes=settings.upcoming_horizon_minutes)
    recent = timedelta(minutes=settings.recent_final_minutes)
    game_length = timedelta(hours=settings.assumed_game_hours)

    near = False
    for game in games:
        if game.status in LIVE_STATUSES:
            return PollBand.LIVE

        if game.status == GameStatus.SCHEDULED:
            until_start = game.start_time - now
            if timedelta(0) < until_start < upcoming:
                near = True
        elif game.status == GameStatus.FINAL:
            since_end = now - (game.start_time + game_length)
            if timedelta(0) <= since_end < recent:
                near = True

    return PollBand.NEAR if near else PollBand.IDLE


def band_delay(band: PollBand, settings: SportsSettings) -> float:
    if band is PollBand.LIVE:
        return settings.live_interval_seconds
    if band is PollBand.NEAR:
        return settings.near_interval_seconds
    return settings.idle_interval_seconds


class SportsPoller:
    """Self-rescheduling scoreboard poll whose delay follows live game state.

    ``band``, ``games`` and ``last_polled_at`` are written only by ``tick`` and
    are exposed for observability.
    """

    def __init__(
        self,
        store: GuideStoreProtocol,
        scoreboard: ScoreboardClientProtocol,
        settings: SportsSettings,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._scoreboard = scoreboard
        self._settings = settings
        self._clock = clock
        self.band = PollBand.IDLE
        self.games: list[Game] = []
        self.last_polled_at: datetime | None = None

    async def fetch_games(self) -> list[Game]:
        """Today's games involving any tenant's watched teams.

        One scoreboard call per league; a failing league is logged and skipped.
        """
        try:
            teams = await self._store.list_watched_teams()
        except Exception:
            log.error("sports_watched_teams_error", exc_info=True)
            return []

        if not teams:
            log.debug("sports_poll_skipped", reason="no_watched_teams")
            return []

        by_league: dict[tuple[str, str], set[str]] = defaultdict(set)
        for team in teams:
            by_league[(team.sport, team.league)].add(team.team_id)

        # Scoreboard days follow the host's local calendar
        today = self._clock().astimezone().date()
        games: list[Game] = []
        for (sport, league), team_ids in by_league.items():
            try:
                league_games = await self._scoreboard.fetch_scoreboard(sport, league, today)
            except Exception:
                log.error("sports_scoreboard_error", league=f"{sport}/{league}", exc_info=True)
                continue
            games.extend(game for game in league_games if game.involves(team_ids))
        return games

    async def tick(self) -> float:
        """Poll once, re-derive the band, and return the delay before the next tick."""
        games = await self.fetch_games()
        now = self._clock()
        self.games = games
        self.last_polled_at = now

        band = select_poll_band(games, now, self._settings)
        delay = band_delay(band, self._settings)
        if band != self.band:
            log.info("poll_band_changed", previous=self.band, band=band, delay_seconds=delay)
            self.band = band
        return delay

    async def run(self, stop: asyncio.Event) -> None:
        if await _wait_or_stop(stop, self._settings.startup_delay_seconds):
            return
        log.info("sports_poller_started", band=self.band)

        while True:
            try:
                delay = await self.tick()
            except Exception:
                log.error("sports_poll_error", exc_info=True)
                delay = self._settings.idle_interval_seconds
            if await _wait_or_stop(stop, delay):
                return


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@dataclass
class _Loop:
    stop: asyncio.Event
    task: asyncio.Task[None]


class Scheduler:
    """Owns the background loops. ``start`` once at startup, ``stop`` at shutdown."""

    GUIDE_REFRESH = "guide_refresh"
    SPORTS_POLL = "sports_poll"

    def __init__(
        self,
        coordinator: RefreshCoordinator,
        cache: GuideCache,
        refresh_settings: RefreshSettings,
        poller: SportsPoller | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._cache = cache
        self._refresh_settings = refresh_settings
        self._poller = poller
        self._loops: dict[str, _Loop] = {}

    @property
    def running(self) -> list[str]:
        return [name for name, loop in self._loops.items() if not loop.task.done()]

    def start(self) -> None:
        if self._loops:
            return
        self._launch(
            self.GUIDE_REFRESH,
            lambda stop: run_guide_refresh_scheduler(
                self._coordinator, self._cache, self._refresh_settings, stop
            ),
        )
        if self._poller is not None:
            self._launch(self.SPORTS_POLL, self._poller.run)

        log.info(
            "scheduler_started",
            refresh_interval_hours=self._refresh_settings.interval_hours,
            sports_polling=self._poller is not None,
        )

    def _launch(
        self, name: str, loop_fn: Callable[[asyncio.Event], Coroutine[object, object, None]]
    ) -> None:
        stop = asyncio.Event()
        task = asyncio.create_task(loop_fn(stop), name=name)
        self._loops[name] = _Loop(stop=stop, task=task)

    async def stop(self, name: str | None = None) -> None:
        """Stop one loop (or all): no further tick fires, a running tick completes."""
        names = [name] if name is not None else list(self._loops)
        loops = [self._loops.pop(n) for n in names if n in self._loops]
        for loop in loops:
            loop.stop.set()
        await asyncio.gather(*(loop.task for loop in loops), return_exceptions=True)
        if loops:
            log.info("scheduler_stopped", loops=names)
