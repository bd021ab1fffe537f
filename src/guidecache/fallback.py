"""Cold-start recovery of a tenant's guide from the durable store.

Rebuilds a TenantCacheEntry from the catalog and the programme rows persisted
by the last refresh, without contacting any upstream source.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, Literal

import structlog

from guidecache.aggregate import build_entry
from guidecache.errors import GuideCacheError
from guidecache.models.guide import ProgrammeEntry

if TYPE_CHECKING:
    from guidecache.cache import GuideCache
    from guidecache.protocols import GuideStoreProtocol

log = structlog.get_logger()

FallbackOutcome = Literal["loaded", "not_found"]


class FallbackLoader:
    def __init__(self, store: GuideStoreProtocol, cache: GuideCache) -> None:
        self._store = store
        self._cache = cache

    async def load(self, tenant_id: str) -> FallbackOutcome:
        """Populate the cache for ``tenant_id`` from persisted data.

        Returns "not_found" when the tenant has no catalog, when none of its
        channels have persisted programmes, or when the store cannot be read.
        Nothing is cached in those cases.

        ``last_updated`` of the loaded entry is the newest ``created_at`` among
        the persisted rows, so the TTL counts from when the data was fetched
        upstream rather than from when it was loaded.

        The loaded entry is discarded when the cache meanwhile holds a valid
        entry or one at least as new, so a refresh that finished during the
        store reads is never rolled back.
        """
        tenant_log = log.bind(tenant_id=tenant_id)
        try:
            catalog = await self._store.load_catalog(tenant_id)
            if not catalog.channels:
                tenant_log.debug("fallback_not_found", reason="empty_catalog")
                return "not_found"

            rows = await self._store.load_programmes(catalog.channel_ids)
        except GuideCacheError:
            tenant_log.warning("fallback_read_error", exc_info=True)
            return "not_found"

        if not rows:
            tenant_log.debug("fallback_not_found", reason="no_persisted_programmes")
            return "not_found"

        channels_by_id = {channel.id: channel for channel in catalog.channels}
        programmes: dict[str, list[ProgrammeEntry]] = defaultdict(list)
        for row in rows:
            channel = channels_by_id[row.channel_id]
            programmes[row.channel_id].append(
                ProgrammeEntry(
                    id=row.id,
                    channel_id=row.channel_id,
                    channel_external_id=channel.external_id,
                    title=row.title,
                    description=row.description,
                    start_time=row.start_time,
                    end_time=row.end_time,
                )
            )

        last_updated = max(row.created_at for row in rows)

        # A refresh may have completed while the store reads were suspended.
        current = self._cache.get(tenant_id)
        if current is not None and (
            self._cache.is_valid(tenant_id) or current.last_updated >= last_updated
        ):
            tenant_log.debug(
                "fallback_superseded",
                cached_last_updated=current.last_updated.isoformat(),
                loaded_last_updated=last_updated.isoformat(),
            )
            return "loaded"

        entry = build_entry(catalog, programmes, last_updated=last_updated)
        self._cache.put(tenant_id, entry)

        tenant_log.info(
            "fallback_loaded",
            channels=len(entry.channels),
            programme_entries=len(rows),
            last_updated=last_updated.isoformat(),
        )
        return "loaded"
