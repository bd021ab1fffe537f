"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (GUIDECACHE__REFRESH__BATCH_SIZE=20)
  2. guidecache.yaml        (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional; every field has a default.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("guidecache")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "guide.db")


def _find_config_file() -> str | None:
    """Return the path of the first guidecache.yaml found, or None."""
    candidates = [
        Path("guidecache.yaml"),
        Path(platformdirs.user_config_dir("guidecache")) / "guidecache.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8080
    auth_enabled: bool = False
    auth_key: str = ""


class DatabaseSettings(BaseModel):
    db_path: str = _DEFAULT_DB_PATH


class CacheSettings(BaseModel):
    ttl_hours: float = Field(default=4, gt=0)


class RefreshSettings(BaseModel):
    interval_hours: float = Field(default=4, gt=0)
    startup_delay_seconds: float = Field(default=30, ge=0)
    batch_size: int = Field(default=10, ge=1)
    programme_limit: int = Field(default=50, ge=1)
    fetch_timeout_seconds: float = Field(default=15, gt=0)
    max_logged_failures: int = Field(default=3, ge=0)
    writeback_batch_size: int = Field(default=100, ge=1)


class UpstreamSettings(BaseModel):
    timeout_seconds: float = 30.0
    max_connections: int = 20
    max_keepalive_connections: int = 10
    user_agent: str = "guidecache/1.0"


class SportsSettings(BaseModel):
    enabled: bool = True
    scoreboard_url: str = "https://site.api.espn.com/apis/site/v2/sports"
    startup_delay_seconds: float = Field(default=35, ge=0)
    live_interval_seconds: float = Field(default=30, gt=0)
    near_interval_seconds: float = Field(default=5 * 60, gt=0)
    idle_interval_seconds: float = Field(default=30 * 60, gt=0)
    upcoming_horizon_minutes: float = Field(default=60, ge=0)
    recent_final_minutes: float = Field(default=30, ge=0)
    assumed_game_hours: float = Field(default=3, ge=0)


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: GUIDECACHE__SERVER__PORT=9090
        env_prefix="GUIDECACHE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    database: DatabaseSettings = DatabaseSettings()
    cache: CacheSettings = CacheSettings()
    refresh: RefreshSettings = RefreshSettings()
    upstream: UpstreamSettings = UpstreamSettings()
    sports: SportsSettings = SportsSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
