"""
Telemetry Store - session-scoped performance history

Snapshots go to a durable backend (SQLite by default).  The store never lets
a persistence problem reach the caller:

• backend failed to open   → degraded mode for the life of the store
• a write fails            → the snapshot gets a local, unpersisted id
• a read fails             → history comes from the synthetic generator

Degraded history is demo filler only: a short trailing window ending at the
most recent real snapshot, with randomly jittered earlier points flagged
synthetic=True.  It has no statistical meaning and is not reproducible
unless a seeded random.Random is injected.
"""

import itertools
import logging
import random
import sqlite3
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple, Union

from errors import PersistenceError

logger = logging.getLogger(__name__)

SYNTHETIC_WINDOW = 5
SYNTHETIC_SPACING = timedelta(minutes=1)
BATTERY_JITTER = 10
MEMORY_JITTER_MB = 250


@dataclass(frozen=True)
class TelemetrySnapshot:
    captured_at: datetime
    battery_level_percent: Optional[int]
    memory_used_mb: Optional[int]
    session_id: str
    device_serial: Optional[str] = None
    synthetic: bool = False

    @property
    def is_partial(self) -> bool:
        return self.battery_level_percent is None or self.memory_used_mb is None

    def to_dict(self) -> dict:
        return {
            "captured_at": self.captured_at.isoformat(),
            "battery_level": self.battery_level_percent,
            "memory_used_mb": self.memory_used_mb,
            "session_id": self.session_id,
            "device_serial": self.device_serial,
            "synthetic": self.synthetic,
        }


def _to_ms(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return round(moment.timestamp() * 1000)


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _from_ms(value: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=value)


# Row layout returned by backends: (timestamp_ms, battery, memory_mb, session_id, device_serial)
Row = Tuple[int, Optional[int], Optional[int], str, Optional[str]]


class TelemetryBackend(Protocol):
    def insert_row(
        self,
        captured_at_ms: int,
        battery_level: Optional[int],
        memory_used_mb: Optional[int],
        session_id: str,
        device_serial: Optional[str],
    ) -> int: ...

    def select_rows(self, session_id: Optional[str], limit: int) -> List[Row]: ...

    def delete_all(self) -> int: ...


class SqliteBackend:
    """performance_metrics table in a local SQLite file."""

    _SCHEMA = """
        CREATE TABLE IF NOT EXISTS performance_metrics (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp INTEGER NOT NULL,
            battery_level INTEGER,
            memory_used_mb INTEGER,
            device_serial TEXT,
            session_id TEXT NOT NULL,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP
        );
        CREATE INDEX IF NOT EXISTS idx_metrics_session_time
            ON performance_metrics (session_id, timestamp);
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"cannot open telemetry database {self.db_path}: {e}")
        try:
            with self._conn:
                self._conn.executescript(self._SCHEMA)
        except sqlite3.Error as e:
            self._conn.close()
            raise PersistenceError(f"cannot create schema in {self.db_path}: {e}")
        logger.info(f"Connected to SQLite database at: {self.db_path}")

    def insert_row(self, captured_at_ms, battery_level, memory_used_mb, session_id, device_serial) -> int:
        try:
            with self._lock, self._conn:
                cur = self._conn.execute(
                    "INSERT INTO performance_metrics "
                    "(timestamp, battery_level, memory_used_mb, device_serial, session_id) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (captured_at_ms, battery_level, memory_used_mb, device_serial, session_id),
                )
                return cur.lastrowid
        except sqlite3.Error as e:
            raise PersistenceError(f"insert failed: {e}")

    def select_rows(self, session_id: Optional[str], limit: int) -> List[Row]:
        query = (
            "SELECT timestamp, battery_level, memory_used_mb, session_id, device_serial "
            "FROM performance_metrics"
        )
        params: list = []
        if session_id is not None:
            query += " WHERE session_id = ?"
            params.append(session_id)
        query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(limit)
        try:
            with self._lock:
                return [tuple(r) for r in self._conn.execute(query, params).fetchall()]
        except sqlite3.Error as e:
            raise PersistenceError(f"select failed: {e}")

    def delete_all(self) -> int:
        try:
            with self._lock, self._conn:
                return self._conn.execute("DELETE FROM performance_metrics").rowcount
        except sqlite3.Error as e:
            raise PersistenceError(f"delete failed: {e}")

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class TelemetryStore:
    """Append-only history of TelemetrySnapshots with graceful degradation."""

    def __init__(
        self,
        backend_factory: Optional[Callable[[], TelemetryBackend]] = None,
        rng: random.Random = None,
    ):
        self.backend: Optional[TelemetryBackend] = None
        if backend_factory is not None:
            try:
                self.backend = backend_factory()
            except Exception as e:
                logger.warning(f"Telemetry database unavailable, running degraded: {e}")
        else:
            logger.info("No telemetry database configured - history will be synthetic")

        self._rng = rng or random.Random()
        self._write_lock = threading.Lock()
        self._local_ids = itertools.count(1)
        self._latest: Dict[str, TelemetrySnapshot] = {}
        self._latest_overall: Optional[TelemetrySnapshot] = None

    @property
    def degraded(self) -> bool:
        return self.backend is None

    def append(self, snapshot: TelemetrySnapshot) -> str:
        """Persist one snapshot and return its id. Never raises for storage problems."""
        with self._write_lock:
            self._latest[snapshot.session_id] = snapshot
            self._latest_overall = snapshot
            if self.backend is not None:
                try:
                    row_id = self.backend.insert_row(
                        _to_ms(snapshot.captured_at),
                        snapshot.battery_level_percent,
                        snapshot.memory_used_mb,
                        snapshot.session_id,
                        snapshot.device_serial,
                    )
                    logger.info(f"Saved performance metric with ID: {row_id}")
                    return str(row_id)
                except PersistenceError as e:
                    logger.warning(f"Failed to save to database: {e}")
            local_id = f"local-{next(self._local_ids)}"
        logger.info(f"Snapshot kept in memory only as {local_id}")
        return local_id

    def history(self, session_id: Optional[str], limit: int = 50) -> List[TelemetrySnapshot]:
        """
        Up to `limit` most recent snapshots, oldest first.
        session_id=None spans every session.
        """
        if limit < 1:
            return []
        if self.backend is not None:
            try:
                rows = self.backend.select_rows(session_id, limit)
                return [self._from_row(r) for r in reversed(rows)]
            except PersistenceError as e:
                logger.warning(f"Failed to fetch history from database: {e}")
        return self._synthetic_history(session_id, limit)

    def clear(self) -> int:
        """Remove every snapshot in every session. Returns how many rows went."""
        with self._write_lock:
            self._latest.clear()
            self._latest_overall = None
            if self.backend is None:
                return 0
            try:
                count = self.backend.delete_all()
            except PersistenceError as e:
                logger.warning(f"Failed to clear performance data: {e}")
                return 0
        logger.info(f"Cleared {count} performance records")
        return count

    @staticmethod
    def _from_row(row: Sequence) -> TelemetrySnapshot:
        timestamp, battery, memory, session_id, serial = row
        return TelemetrySnapshot(
            captured_at=_from_ms(timestamp),
            battery_level_percent=battery,
            memory_used_mb=memory,
            session_id=session_id,
            device_serial=serial,
        )

    def _synthetic_history(self, session_id: Optional[str], limit: int) -> List[TelemetrySnapshot]:
        seed = self._latest_overall if session_id is None else self._latest.get(session_id)
        if seed is None:
            return []

        points = min(limit, SYNTHETIC_WINDOW)
        history: List[TelemetrySnapshot] = []
        for i in range(points - 1, 0, -1):
            battery = seed.battery_level_percent
            if battery is not None:
                battery = round(battery + self._rng.uniform(-BATTERY_JITTER, BATTERY_JITTER))
                battery = max(0, min(100, battery))
            memory = seed.memory_used_mb
            if memory is not None:
                memory = max(0, round(memory + self._rng.uniform(-MEMORY_JITTER_MB, MEMORY_JITTER_MB)))
            history.append(replace(
                seed,
                captured_at=seed.captured_at - i * SYNTHETIC_SPACING,
                battery_level_percent=battery,
                memory_used_mb=memory,
                synthetic=True,
            ))
        history.append(seed)
        return history
