"""Row types read from and written to the durable store."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True)
class UpstreamSource:
    """An Xtream Codes server configured by a tenant."""

    id: str
    tenant_id: str
    name: str
    server_url: str
    username: str
    password: str


@dataclass(frozen=True)
class CategoryRow:
    id: str
    source_id: str
    external_id: str
    name: str


@dataclass(frozen=True)
class ChannelRow:
    id: str
    source_id: str
    category_id: str | None
    external_id: str
    name: str
    stream_url: str
    logo_url: str | None = None
    epg_channel_id: str | None = None
    category_name: str | None = None  # Joined from the category row

    @property
    def lookup_id(self) -> str:
        """Id used for programme lookups: the EPG channel id when present, else the stream id."""
        return self.epg_channel_id or self.external_id


@dataclass(frozen=True)
class PersistedProgramme:
    """Recovery copy of a programme entry. Not a source of truth."""

    id: str
    channel_id: str
    title: str
    description: str | None
    start_time: datetime
    end_time: datetime
    created_at: datetime


@dataclass
class Catalog:
    """Everything the durable store knows about one tenant's channel line-up."""

    tenant_id: str
    sources: list[UpstreamSource] = field(default_factory=list)
    categories: list[CategoryRow] = field(default_factory=list)
    channels: list[ChannelRow] = field(default_factory=list)

    @property
    def channel_ids(self) -> list[str]:
        return [channel.id for channel in self.channels]

    def channels_for_source(self, source_id: str) -> list[ChannelRow]:
        return [channel for channel in self.channels if channel.source_id == source_id]
