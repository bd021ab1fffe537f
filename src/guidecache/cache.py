"""In-memory per-tenant guide cache.

Holds the latest TenantCacheEntry per tenant. Entries are only ever replaced
wholesale by ``put``; nothing mutates an entry in place, so readers never see
a half-built view and no lock is needed on a single event loop.

Staleness is evaluated lazily on read against ``last_updated``; there is no
expiry sweep.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from guidecache.models.guide import CacheStats

if TYPE_CHECKING:
    from collections.abc import Callable

    from guidecache.models.guide import ProgrammeEntry, TenantCacheEntry

DEFAULT_TTL = timedelta(hours=4)


def utc_now() -> datetime:
    return datetime.now(UTC)


class GuideCache:
    """Tenant id → latest guide view."""

    def __init__(
        self,
        ttl: timedelta = DEFAULT_TTL,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._entries: dict[str, TenantCacheEntry] = {}
        self._ttl = ttl
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def is_valid(self, tenant_id: str) -> bool:
        """True iff an entry exists and is younger than the TTL."""
        entry = self._entries.get(tenant_id)
        if entry is None:
            return False
        return self._clock() - entry.last_updated < self._ttl

    def get(self, tenant_id: str) -> TenantCacheEntry | None:
        """Return the entry regardless of validity. Check ``is_valid`` first if freshness matters."""
        return self._entries.get(tenant_id)

    def get_channel_programmes(
        self, tenant_id: str, channel_id: str
    ) -> list[ProgrammeEntry] | None:
        """Programmes of one channel from a valid entry.

        Returns None when the tenant has no valid entry, and an empty list for
        channels the entry does not know.
        """
        if not self.is_valid(tenant_id):
            return None
        return self._entries[tenant_id].programme_index.get(channel_id, [])

    def put(self, tenant_id: str, entry: TenantCacheEntry) -> None:
        self._entries[tenant_id] = entry

    def evict(self, tenant_id: str) -> None:
        self._entries.pop(tenant_id, None)

    def tenant_ids(self) -> list[str]:
        return list(self._entries)

    def stats(self) -> CacheStats:
        """Aggregate counts across all tenants. Full scan; for diagnostics only."""
        total_channels = 0
        total_programmes = 0
        for entry in self._entries.values():
            total_channels += len(entry.channels)
            total_programmes += entry.programme_entry_count()
        return CacheStats(
            tenant_count=len(self._entries),
            total_channels=total_channels,
            total_programme_entries=total_programmes,
        )
