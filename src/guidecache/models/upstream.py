from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, field_validator

from guidecache.models.guide import ProgrammeEntry

if TYPE_CHECKING:
    from guidecache.models.catalog import ChannelRow


class RawProgrammeEntry(BaseModel):
    """Single listing from an Xtream Codes ``get_short_epg`` response."""

    id: str
    epg_id: str = ""
    title: str
    description: str | None = None
    start_timestamp: str  # Unix seconds, sent as a string
    stop_timestamp: str

    @field_validator("id", "epg_id", "start_timestamp", "stop_timestamp", mode="before")
    @classmethod
    def coerce_to_str(cls, v: object) -> object:
        # Some panels send numbers where the reference API sends strings
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("start_timestamp", "stop_timestamp")
    @classmethod
    def validate_timestamp(cls, v: str) -> str:
        if not v.strip().isdigit():
            raise ValueError(f"Invalid unix timestamp: {v!r}")
        return v.strip()

    def to_programme(self, channel: ChannelRow) -> ProgrammeEntry:
        return ProgrammeEntry(
            id=self.id,
            channel_id=channel.id,
            channel_external_id=channel.external_id,
            title=self.title,
            description=self.description or None,
            start_time=datetime.fromtimestamp(int(self.start_timestamp), tz=UTC),
            end_time=datetime.fromtimestamp(int(self.stop_timestamp), tz=UTC),
        )
