"""Refresh coordinator: rebuilds one tenant's guide from catalog + upstream.

Error policy:
- Catalog read failures propagate out of ``refresh`` and leave the cache untouched.
- Per-channel upstream failures (including timeouts) are absorbed; the channel
  contributes an empty programme list and the refresh still succeeds.
- Durable write-back runs as a tracked background task after the in-memory
  ``put``; its failures are logged and never reach the ``refresh`` caller.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from guidecache.aggregate import build_entry
from guidecache.cache import utc_now
from guidecache.singleflight import SingleFlight

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import datetime

    from guidecache.cache import GuideCache
    from guidecache.config import RefreshSettings
    from guidecache.models.catalog import ChannelRow, UpstreamSource
    from guidecache.models.guide import ProgrammeEntry, TenantCacheEntry
    from guidecache.models.upstream import RawProgrammeEntry
    from guidecache.protocols import (
        GuideStoreProtocol,
        ProgrammeClientFactory,
        ProgrammeClientProtocol,
    )

log = structlog.get_logger()


@dataclass
class _SourceFetchStats:
    attempts: int = 0
    with_data: int = 0
    failures: int = 0


def _to_programmes(
    raw_entries: Sequence[RawProgrammeEntry], channel: ChannelRow
) -> list[ProgrammeEntry]:
    programmes: list[ProgrammeEntry] = []
    for raw in raw_entries:
        try:
            programmes.append(raw.to_programme(channel))
        except (OverflowError, OSError, ValueError):
            log.debug("programme_listing_dropped", channel_id=channel.id, reason="bad_timestamp")
    return programmes


class RefreshCoordinator:
    """Single-flight, batched refresh of tenant guide data."""

    def __init__(
        self,
        store: GuideStoreProtocol,
        cache: GuideCache,
        client_factory: ProgrammeClientFactory,
        settings: RefreshSettings,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._cache = cache
        self._client_factory = client_factory
        self._settings = settings
        self._clock = clock
        self._flights: SingleFlight[str, None] = SingleFlight()
        self._writebacks: set[asyncio.Task[None]] = set()

    def is_refreshing(self, tenant_id: str) -> bool:
        return self._flights.in_flight(tenant_id)

    async def refresh(self, tenant_id: str) -> None:
        """Refresh one tenant, joining an in-flight refresh if there is one."""
        await self._flights.do(tenant_id, lambda: self._do_refresh(tenant_id))

    async def refresh_all(self) -> None:
        """Refresh every known tenant, one at a time.

        Tenants still cached but no longer in the catalog are included so that
        their entries get evicted.
        """
        tenant_ids = sorted(set(await self._store.list_tenant_ids()) | set(self._cache.tenant_ids()))
        log.info("refresh_all_started", tenants=len(tenant_ids))

        failed = 0
        for tenant_id in tenant_ids:
            try:
                await self.refresh(tenant_id)
            except Exception:
                failed += 1
                log.error("refresh_failed", tenant_id=tenant_id, exc_info=True)

        log.info("refresh_all_complete", tenants=len(tenant_ids), failed=failed)

    async def drain(self) -> None:
        """Wait for outstanding write-backs. Called at shutdown."""
        if self._writebacks:
            await asyncio.gather(*list(self._writebacks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def _do_refresh(self, tenant_id: str) -> None:
        tenant_log = log.bind(tenant_id=tenant_id)
        tenant_log.info("refresh_started")
        started = time.monotonic()

        catalog = await self._store.load_catalog(tenant_id)
        if not catalog.channels:
            self._cache.evict(tenant_id)
            tenant_log.info("refresh_evicted", reason="empty_catalog")
            return

        programmes: dict[str, list[ProgrammeEntry]] = {}
        for source in catalog.sources:
            channels = catalog.channels_for_source(source.id)
            if channels:
                programmes.update(await self._fetch_source(source, channels, tenant_log))

        entry = build_entry(catalog, programmes, last_updated=self._clock())
        self._cache.put(tenant_id, entry)

        tenant_log.info(
            "refresh_complete",
            channels=len(entry.channels),
            categories=len(entry.categories),
            programme_channels=entry.programme_channel_count(),
            programme_entries=entry.programme_entry_count(),
            duration_ms=round((time.monotonic() - started) * 1000),
        )
        self._launch_writeback(tenant_id, catalog.channel_ids, entry)

    async def _fetch_source(
        self,
        source: UpstreamSource,
        channels: list[ChannelRow],
        tenant_log: structlog.typing.FilteringBoundLogger,
    ) -> dict[str, list[ProgrammeEntry]]:
        """Fetch programmes for one source's channels in sequential concurrent batches."""
        try:
            client = self._client_factory(source)
        except Exception:
            tenant_log.warning("programme_client_unavailable", source=source.name, exc_info=True)
            return {channel.id: [] for channel in channels}

        stats = _SourceFetchStats()
        results: dict[str, list[ProgrammeEntry]] = {}
        batch_size = self._settings.batch_size

        for start in range(0, len(channels), batch_size):
            batch = channels[start : start + batch_size]
            batch_results = await asyncio.gather(
                *(
                    self._fetch_channel(client, source, channel, stats, tenant_log)
                    for channel in batch
                )
            )
            for channel, entries in zip(batch, batch_results, strict=True):
                results[channel.id] = entries

        tenant_log.info(
            "source_fetch_complete",
            source=source.name,
            attempts=stats.attempts,
            with_data=stats.with_data,
            failures=stats.failures,
        )
        return results

    async def _fetch_channel(
        self,
        client: ProgrammeClientProtocol,
        source: UpstreamSource,
        channel: ChannelRow,
        stats: _SourceFetchStats,
        tenant_log: structlog.typing.FilteringBoundLogger,
    ) -> list[ProgrammeEntry]:
        stats.attempts += 1
        lookup_id = channel.lookup_id
        try:
            raw_entries = await asyncio.wait_for(
                client.fetch_programme(lookup_id, self._settings.programme_limit),
                timeout=self._settings.fetch_timeout_seconds,
            )
        except Exception:
            stats.failures += 1
            if stats.failures <= self._settings.max_logged_failures:
                tenant_log.warning(
                    "programme_fetch_failed",
                    source=source.name,
                    channel=channel.name,
                    lookup_id=lookup_id,
                    exc_info=True,
                )
            else:
                tenant_log.debug(
                    "programme_fetch_failed",
                    source=source.name,
                    channel=channel.name,
                    lookup_id=lookup_id,
                )
            return []

        if raw_entries:
            stats.with_data += 1
            if stats.with_data == 1:
                tenant_log.info(
                    "programme_data_found",
                    source=source.name,
                    channel=channel.name,
                    lookup_id=lookup_id,
                    entries=len(raw_entries),
                )
        return _to_programmes(raw_entries, channel)

    # ------------------------------------------------------------------
    # Write-back
    # ------------------------------------------------------------------

    def _launch_writeback(
        self, tenant_id: str, channel_ids: list[str], entry: TenantCacheEntry
    ) -> None:
        programmes = [p for entries in entry.programme_index.values() for p in entries]
        task = asyncio.create_task(
            self._write_back(tenant_id, channel_ids, programmes, entry.last_updated)
        )
        self._writebacks.add(task)
        task.add_done_callback(self._writebacks.discard)

    async def _write_back(
        self,
        tenant_id: str,
        channel_ids: list[str],
        programmes: list[ProgrammeEntry],
        created_at: datetime,
    ) -> None:
        try:
            inserted = await self._store.replace_programmes(
                channel_ids,
                programmes,
                created_at=created_at,
                batch_size=self._settings.writeback_batch_size,
            )
        except Exception:
            log.warning("writeback_failed", tenant_id=tenant_id, exc_info=True)
            return
        log.debug("writeback_complete", tenant_id=tenant_id, rows=inserted)
