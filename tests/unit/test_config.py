"""Unit tests for configuration defaults and environment overrides."""

from __future__ import annotations

import platformdirs
import pytest
from pydantic import ValidationError

from guidecache.config import (
    _DEFAULT_DATA_DIR,
    _DEFAULT_DB_PATH,
    DatabaseSettings,
    RefreshSettings,
    Settings,
)


class TestPlatformDefaults:
    def test_default_data_dir_matches_platformdirs(self) -> None:
        assert platformdirs.user_data_dir("guidecache") == _DEFAULT_DATA_DIR

    def test_default_db_path_under_data_dir(self) -> None:
        assert _DEFAULT_DB_PATH.startswith(_DEFAULT_DATA_DIR)
        assert _DEFAULT_DB_PATH.endswith("guide.db")
        assert DatabaseSettings().db_path == _DEFAULT_DB_PATH


class TestDefaults:
    def test_refresh_defaults(self) -> None:
        settings = RefreshSettings()
        assert settings.interval_hours == 4
        assert settings.startup_delay_seconds == 30
        assert settings.batch_size == 10
        assert settings.programme_limit == 50

    def test_sports_defaults(self) -> None:
        sports = Settings().sports
        assert sports.startup_delay_seconds == 35
        assert sports.live_interval_seconds == 30
        assert sports.near_interval_seconds == 300
        assert sports.idle_interval_seconds == 1800

    def test_cache_ttl_default(self) -> None:
        assert Settings().cache.ttl_hours == 4

    def test_batch_size_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            RefreshSettings(batch_size=0)


class TestEnvironmentOverrides:
    def test_nested_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GUIDECACHE__REFRESH__BATCH_SIZE", "25")
        monkeypatch.setenv("GUIDECACHE__SPORTS__ENABLED", "false")
        settings = Settings()
        assert settings.refresh.batch_size == 25
        assert settings.sports.enabled is False

    def test_init_args_win_over_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GUIDECACHE__SERVER__PORT", "9090")
        settings = Settings(server={"port": 7000})
        assert settings.server.port == 7000
