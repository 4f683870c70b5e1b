"""
Tests for environment-driven settings.
"""

from pathlib import Path

import pytest

from config import Settings, load_settings, require_api_secret
from errors import FatalConfigurationError

ENV_VARS = (
    "ADB_PATH",
    "ADB_SERIAL",
    "ADB_TIMEOUT",
    "TELEMETRY_DB_PATH",
    "RESOLVE_BATCH_SIZE",
    "RESOLVE_PACING_MS",
    "HISTORY_LIMIT",
    "API_SECRET",
    "PORT",
    "SNAP_USER_COMMON",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings()

        assert settings.adb_path == "adb"
        assert settings.device_serial is None
        assert settings.batch_size == 3
        assert settings.pacing_delay == pytest.approx(0.1)
        assert settings.history_limit == 20
        assert settings.api_secret is None
        assert settings.port == 5000
        assert settings.db_path.name == "performance_metrics.db"

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ADB_PATH", "/opt/platform-tools/adb")
        monkeypatch.setenv("ADB_SERIAL", "R58M123")
        monkeypatch.setenv("ADB_TIMEOUT", "5")
        monkeypatch.setenv("TELEMETRY_DB_PATH", str(tmp_path / "t.db"))
        monkeypatch.setenv("RESOLVE_BATCH_SIZE", "8")
        monkeypatch.setenv("RESOLVE_PACING_MS", "0")
        monkeypatch.setenv("HISTORY_LIMIT", "100")
        monkeypatch.setenv("API_SECRET", "hunter2")
        monkeypatch.setenv("PORT", "8080")

        settings = load_settings()

        assert settings.adb_path == "/opt/platform-tools/adb"
        assert settings.device_serial == "R58M123"
        assert settings.command_timeout == 5
        assert settings.db_path == tmp_path / "t.db"
        assert settings.batch_size == 8
        assert settings.pacing_delay == 0
        assert settings.history_limit == 100
        assert settings.api_secret == "hunter2"
        assert settings.port == 8080

    def test_snap_cache_dir(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SNAP_USER_COMMON", str(tmp_path))
        assert load_settings().db_path == Path(tmp_path) / "cache" / "performance_metrics.db"

    @pytest.mark.parametrize("name,value", [
        ("RESOLVE_BATCH_SIZE", "three"),
        ("RESOLVE_BATCH_SIZE", "0"),
        ("ADB_TIMEOUT", "-1"),
        ("PORT", "http"),
    ])
    def test_bad_values_are_fatal(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(FatalConfigurationError, match=name):
            load_settings()


class TestApiSecret:
    def test_missing_secret_is_fatal(self):
        with pytest.raises(FatalConfigurationError, match="API_SECRET"):
            require_api_secret(Settings())

    def test_present_secret(self):
        assert require_api_secret(Settings(api_secret="abc")) == "abc"
