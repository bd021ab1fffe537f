from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class ChannelSummary(BaseModel):
    """One catalog channel as served to the dashboard."""

    id: str
    source_id: str  # Catalog id of the upstream source the channel belongs to
    category_id: str | None = None
    external_id: str  # Stream id on the upstream source
    name: str
    stream_url: str
    logo_url: str | None = None
    epg_channel_id: str | None = None  # Preferred programme lookup id, if the source has one
    category_name: str | None = None


class CategorySummary(BaseModel):
    id: str
    source_id: str
    external_id: str
    name: str
    channel_count: int = 0


class ProgrammeEntry(BaseModel):
    """A single scheduled programme on one channel."""

    id: str
    channel_id: str
    channel_external_id: str
    title: str
    description: str | None = None
    start_time: datetime
    end_time: datetime


class TenantCacheEntry(BaseModel):
    """Aggregated guide view for one tenant.

    Built in full by a refresh or a fallback load and swapped into the cache
    with a single ``put``. Never mutated after construction.
    """

    channels: list[ChannelSummary] = []
    categories: list[CategorySummary] = []
    # channel id → programmes in upstream order (chronological per channel)
    programme_index: dict[str, list[ProgrammeEntry]] = {}
    last_updated: datetime

    def programme_entry_count(self) -> int:
        return sum(len(entries) for entries in self.programme_index.values())

    def programme_channel_count(self) -> int:
        """Number of channels with at least one programme."""
        return sum(1 for entries in self.programme_index.values() if entries)


class CacheStats(BaseModel):
    tenant_count: int
    total_channels: int
    total_programme_entries: int
