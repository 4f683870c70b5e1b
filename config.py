"""
Settings for adb-insight, read from the environment.

Environment variables
─────────────────────
ADB_PATH            adb executable (default: "adb" on $PATH)
ADB_SERIAL          target device serial, passed as `adb -s <serial>`
ADB_TIMEOUT         per-command timeout in seconds
TELEMETRY_DB_PATH   SQLite file for performance history
RESOLVE_BATCH_SIZE  how many package names are resolved concurrently
RESOLVE_PACING_MS   pause between resolution batches
HISTORY_LIMIT       points returned with each performance check
API_SECRET          shared secret for the HTTP server (required there)
PORT                HTTP port for `adb-insight serve`
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from errors import FatalConfigurationError

DEFAULT_BATCH_SIZE = 3
DEFAULT_PACING_MS = 100
DEFAULT_COMMAND_TIMEOUT = 20
DEFAULT_HISTORY_LIMIT = 20
DEFAULT_PORT = 5000


# ── Snap-aware paths ───────────────────────────────────────────────────────────

def _snap_cache_dir() -> Path:
    """Return snap-aware cache directory ($SNAP_USER_COMMON/cache or ~/.cache/adb-insight)."""
    snap_common = os.environ.get("SNAP_USER_COMMON")
    if snap_common:
        return Path(snap_common) / "cache"
    return Path.home() / ".cache" / "adb-insight"


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise FatalConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise FatalConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    adb_path: str = "adb"
    device_serial: Optional[str] = None
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    db_path: Optional[Path] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    pacing_delay: float = DEFAULT_PACING_MS / 1000
    history_limit: int = DEFAULT_HISTORY_LIMIT
    api_secret: Optional[str] = None
    port: int = DEFAULT_PORT


def load_settings() -> Settings:
    """Build Settings from the environment. Raises FatalConfigurationError on bad values."""
    db_path = os.environ.get("TELEMETRY_DB_PATH")
    return Settings(
        adb_path=os.environ.get("ADB_PATH") or "adb",
        device_serial=os.environ.get("ADB_SERIAL") or None,
        command_timeout=_env_int("ADB_TIMEOUT", DEFAULT_COMMAND_TIMEOUT, minimum=1),
        db_path=Path(db_path) if db_path else _snap_cache_dir() / "performance_metrics.db",
        batch_size=_env_int("RESOLVE_BATCH_SIZE", DEFAULT_BATCH_SIZE, minimum=1),
        pacing_delay=_env_int("RESOLVE_PACING_MS", DEFAULT_PACING_MS) / 1000,
        history_limit=_env_int("HISTORY_LIMIT", DEFAULT_HISTORY_LIMIT, minimum=1),
        api_secret=os.environ.get("API_SECRET") or None,
        port=_env_int("PORT", DEFAULT_PORT, minimum=1),
    )


def require_api_secret(settings: Settings) -> str:
    """The HTTP server refuses to start without a shared secret."""
    if not settings.api_secret:
        raise FatalConfigurationError("API_SECRET environment variable is not set.")
    return settings.api_secret
