"""
Device Channel - runs adb commands against one device

Each call is one blocking round-trip through the adb client.  The channel is
a single serial link per device, so commands are serialised with a lock:
callers may model concurrency above it, but at most one command per channel
is in flight at any time.

Ordinary failures (non-zero exit, timeout) come back as a CommandResult with
succeeded=False.  Only a missing transport raises, so callers can fail fast.
"""

import logging
import subprocess
import threading
from dataclasses import dataclass
from typing import List, Optional, Sequence

from errors import ChannelUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    succeeded: bool
    stdout: str = ""
    stderr: str = ""

    def to_dict(self) -> dict:
        return {"ok": self.succeeded, "stdout": self.stdout, "stderr": self.stderr}


class DeviceChannel:
    """Executes adb commands, one at a time."""

    def __init__(
        self,
        adb_path: str = "adb",
        device_serial: Optional[str] = None,
        timeout: float = 20,
    ):
        self.adb_path = adb_path
        self.device_serial = device_serial
        self.timeout = timeout
        self._lock = threading.Lock()

    def _command_line(self, args: Sequence[str]) -> List[str]:
        cmd = [self.adb_path]
        if self.device_serial:
            cmd += ["-s", self.device_serial]
        return cmd + list(args)

    def execute(self, args: Sequence[str]) -> CommandResult:
        """Run `adb <args>` and return its output. Raises only when adb itself is missing."""
        cmd = self._command_line(args)
        logger.info(f"> Running command: {' '.join(cmd)}")
        with self._lock:
            try:
                proc = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    errors="replace",
                    timeout=self.timeout,
                )
            except FileNotFoundError:
                raise ChannelUnavailableError(f"adb executable not found: {self.adb_path}")
            except PermissionError as e:
                raise ChannelUnavailableError(f"adb executable not runnable: {e}")
            except subprocess.TimeoutExpired as e:
                logger.error(f"> Timed out after {self.timeout}s: {' '.join(cmd)}")
                partial = e.stdout or ""
                if isinstance(partial, bytes):
                    partial = partial.decode(errors="replace")
                return CommandResult(
                    succeeded=False,
                    stdout=partial,
                    stderr=f"Command timed out after {self.timeout}s",
                )

        if proc.returncode != 0:
            stderr = proc.stderr or f"adb exited with status {proc.returncode}"
            logger.error(f"> Error: {stderr.strip()}")
            return CommandResult(succeeded=False, stdout=proc.stdout or "", stderr=stderr)

        return CommandResult(succeeded=True, stdout=proc.stdout or "", stderr=proc.stderr or "")

    def shell(self, *args: str) -> CommandResult:
        """Shortcut for `adb shell <args>`."""
        return self.execute(["shell", *args])
