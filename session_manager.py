"""
Session Manager - owns the id of the active monitoring session

Session ids are millisecond timestamps, forced to be strictly increasing so
two fresh sessions started in the same millisecond never collide.  The state
lives in an explicit SessionState cell that is handed to the manager, which
keeps tests (and multiple devices) isolated from each other.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    session_id: str
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "current_session_id": self.session_id,
            "session_started": self.created_at.isoformat(),
        }


class SessionState:
    """Mutable holder for the active Session. Replaced by single assignment."""

    def __init__(self, session: Optional[Session] = None):
        self.session = session


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class SessionManager:
    def __init__(self, state: SessionState = None, clock: Callable[[], int] = _now_ms):
        self.state = state if state is not None else SessionState()
        self._clock = clock
        self._id_lock = threading.Lock()
        self._init_lock = threading.Lock()
        self._last_issued = 0
        if self.state.session is not None:
            self._last_issued = int(self.state.session.session_id)

    def _new_session(self) -> Session:
        with self._id_lock:
            value = max(self._clock(), self._last_issued + 1)
            self._last_issued = value
        return Session(
            session_id=str(value),
            created_at=datetime.fromtimestamp(value / 1000, tz=timezone.utc),
        )

    def current(self) -> str:
        """Id of the active session, creating one on first use."""
        session = self.state.session
        if session is None:
            with self._init_lock:
                if self.state.session is None:
                    self.state.session = self._new_session()
            session = self.state.session
        return session.session_id

    def info(self) -> Session:
        self.current()
        return self.state.session

    def start_fresh(self) -> str:
        """Make a new session active. Stored snapshots are left alone."""
        session = self._new_session()
        self.state.session = session
        logger.info(f"Started new monitoring session: {session.session_id}")
        return session.session_id
