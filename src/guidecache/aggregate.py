"""Pure assembly of a TenantCacheEntry from catalog rows and programme lists."""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING

from guidecache.models.guide import CategorySummary, ChannelSummary, TenantCacheEntry

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from datetime import datetime

    from guidecache.models.catalog import Catalog, ChannelRow
    from guidecache.models.guide import ProgrammeEntry


def count_channels_per_category(channels: Iterable[ChannelRow]) -> Counter[str]:
    return Counter(channel.category_id for channel in channels if channel.category_id)


def build_entry(
    catalog: Catalog,
    programmes: Mapping[str, list[ProgrammeEntry]],
    *,
    last_updated: datetime,
) -> TenantCacheEntry:
    """Build the full guide view for one tenant.

    Every catalog channel gets a key in ``programme_index``; channels missing
    from ``programmes`` map to an empty list.
    """
    counts = count_channels_per_category(catalog.channels)
    return TenantCacheEntry(
        channels=[
            ChannelSummary(
                id=channel.id,
                source_id=channel.source_id,
                category_id=channel.category_id,
                external_id=channel.external_id,
                name=channel.name,
                stream_url=channel.stream_url,
                logo_url=channel.logo_url,
                epg_channel_id=channel.epg_channel_id,
                category_name=channel.category_name,
            )
            for channel in catalog.channels
        ],
        categories=[
            CategorySummary(
                id=category.id,
                source_id=category.source_id,
                external_id=category.external_id,
                name=category.name,
                channel_count=counts.get(category.id, 0),
            )
            for category in catalog.categories
        ],
        programme_index={
            channel.id: list(programmes.get(channel.id, [])) for channel in catalog.channels
        },
        last_updated=last_updated,
    )
