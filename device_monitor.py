"""
Device Monitor - the operations offered to the CLI and the HTTP server

Framework-agnostic: no FastAPI, no Rich.  Composes the channel, name
resolution, telemetry parsing, the store and the session manager.
Blocking methods are meant to be called through asyncio.to_thread() from
async code; the package-resolution methods are coroutines themselves.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from batch_scheduler import DEFAULT_CONCURRENCY, DEFAULT_PACING_DELAY, BatchScheduler
from config import Settings
from device_channel import CommandResult, DeviceChannel
from errors import ChannelError, InvalidInputError
from name_resolver import NameResolver, ResolvedName
from session_manager import Session, SessionManager, SessionState
from snapshot_parser import parse_battery, parse_device_serial, parse_memory, parse_package_list
from telemetry_store import SqliteBackend, TelemetrySnapshot, TelemetryStore

logger = logging.getLogger(__name__)

BATTERY_COMMAND = ("shell", "dumpsys", "battery")
MEMORY_COMMAND = ("shell", "dumpsys", "meminfo")
SERIAL_COMMAND = ("shell", "getprop", "ro.serialno")


def _now_ms_precision() -> datetime:
    """Current UTC time at the millisecond precision the store keeps."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


class DeviceMonitor:
    def __init__(
        self,
        channel: DeviceChannel,
        store: TelemetryStore,
        sessions: SessionManager = None,
        history_limit: int = 20,
        batch_size: int = DEFAULT_CONCURRENCY,
        pacing_delay: float = DEFAULT_PACING_DELAY,
    ):
        self.channel = channel
        self.store = store
        self.sessions = sessions or SessionManager(SessionState())
        self.resolver = NameResolver(channel)
        self.scheduler = BatchScheduler(self.resolver, batch_size, pacing_delay)
        self.history_limit = history_limit

    @classmethod
    def from_settings(cls, settings: Settings) -> "DeviceMonitor":
        """Wire up a monitor for a real device from environment settings."""
        channel = DeviceChannel(
            adb_path=settings.adb_path,
            device_serial=settings.device_serial,
            timeout=settings.command_timeout,
        )
        db_path = settings.db_path
        store = TelemetryStore(lambda: SqliteBackend(db_path)) if db_path else TelemetryStore()
        return cls(
            channel,
            store,
            history_limit=settings.history_limit,
            batch_size=settings.batch_size,
            pacing_delay=settings.pacing_delay,
        )

    # ── Raw channel ───────────────────────────────────────────────────────────

    def run_command(self, args: Sequence[str]) -> CommandResult:
        if not args or not all(isinstance(a, str) for a in args):
            raise InvalidInputError("No command arguments provided.")
        return self.channel.execute(list(args))

    # ── Package identity ──────────────────────────────────────────────────────

    def resolve_package(self, package_id: str) -> ResolvedName:
        if not package_id or not package_id.strip():
            raise InvalidInputError("Package name is required")
        return self.resolver.resolve(package_id.strip())

    async def resolve_packages(self, package_ids: Sequence[str]) -> Dict[str, ResolvedName]:
        """Display names for every id. At least one id is required."""
        if not package_ids:
            raise InvalidInputError("At least one package name is required")
        for package_id in package_ids:
            if not isinstance(package_id, str) or not package_id.strip():
                raise InvalidInputError(f"Invalid package name: {package_id!r}")
        names = await self.scheduler.resolve_all([p.strip() for p in package_ids])
        # Keyed by the ids exactly as the caller passed them
        return {p: names[p.strip()] for p in package_ids}

    async def list_packages(self, include_system: bool = False) -> List[ResolvedName]:
        """
        Installed packages with display names, in `pm list packages` order.
        Third-party only unless include_system is set.
        """
        args = ["shell", "pm", "list", "packages"]
        if not include_system:
            args.append("-3")
        result = await asyncio.to_thread(self.channel.execute, args)
        if not result.succeeded:
            raise ChannelError(f"Failed to list packages: {result.stderr.strip()}")

        package_ids = parse_package_list(result.stdout)
        logger.info(f"Found {len(package_ids)} installed packages")
        if not package_ids:
            return []
        names = await self.scheduler.resolve_all(package_ids)
        return [names[pid] for pid in package_ids]

    # ── Telemetry ─────────────────────────────────────────────────────────────

    def _run_diagnostic(self, args: Sequence[str]) -> str:
        """stdout of one diagnostic command, or "" when it failed."""
        try:
            result = self.channel.execute(list(args))
        except ChannelError as e:
            logger.warning(f"Diagnostic command {' '.join(args)} failed: {e}")
            return ""
        if not result.succeeded:
            logger.warning(f"Diagnostic command {' '.join(args)} failed: {result.stderr.strip()}")
            return ""
        return result.stdout

    def capture_snapshot(self) -> TelemetrySnapshot:
        """One reading of battery and memory for the active session."""
        serial = parse_device_serial(self._run_diagnostic(SERIAL_COMMAND))
        battery = parse_battery(self._run_diagnostic(BATTERY_COMMAND))
        memory = parse_memory(self._run_diagnostic(MEMORY_COMMAND))
        snapshot = TelemetrySnapshot(
            captured_at=_now_ms_precision(),
            battery_level_percent=battery,
            memory_used_mb=memory,
            session_id=self.sessions.current(),
            device_serial=serial,
        )
        if snapshot.is_partial:
            logger.warning(f"Partial snapshot: battery={battery}, memory={memory}")
        else:
            logger.info(f"Parsed Metrics: Battery={battery}%, Memory={memory}MB")
        return snapshot

    def capture_performance_snapshot(self) -> dict:
        """
        Capture, store and return the current reading plus the session history.

        Returns:
            {
                "current": TelemetrySnapshot,
                "history": [TelemetrySnapshot, ...],   # oldest first
                "session_id": str,
                "snapshot_id": str,                    # "local-N" when unpersisted
            }
        """
        snapshot = self.capture_snapshot()
        snapshot_id = self.store.append(snapshot)
        history = self.store.history(snapshot.session_id, self.history_limit)
        if not history:
            history = [snapshot]
        return {
            "current": snapshot,
            "history": history,
            "session_id": snapshot.session_id,
            "snapshot_id": snapshot_id,
        }

    def start_fresh_session(self, clear: bool = False) -> dict:
        """New active session; old snapshots are only removed when clear=True."""
        cleared = self.store.clear() if clear else 0
        session_id = self.sessions.start_fresh()
        return {"session_id": session_id, "cleared_count": cleared}

    def get_history(self, limit: int = 50, session_id: Optional[str] = None) -> List[TelemetrySnapshot]:
        if limit < 1:
            raise InvalidInputError(f"limit must be a positive integer, got {limit}")
        logger.info(f"Fetching performance history (limit: {limit}, session: {session_id or 'all'})")
        return self.store.history(session_id, limit)

    def clear_all_telemetry(self) -> int:
        return self.store.clear()

    def session_info(self) -> Session:
        return self.sessions.info()
