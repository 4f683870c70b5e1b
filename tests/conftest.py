"""
Shared fixtures: a scripted stand-in for the adb channel.
"""

from typing import Dict, List, Sequence, Tuple, Union

import pytest

from device_channel import CommandResult
from errors import ChannelError
from telemetry_store import SqliteBackend, TelemetryStore

Response = Union[CommandResult, Exception]

BATTERY_DUMP = """Current Battery Service state:
  AC powered: false
  USB powered: true
  status: 2
  health: 2
  present: true
  level: 87
  scale: 100
  voltage: 4231
"""

MEMINFO_DUMP = """Applications Memory Usage (in Kilobytes):
Uptime: 1234567 Realtime: 1234567

Total RAM: 4,096,000 kB (status normal)
 Free RAM: 1,024,000 kB (  512,000 cached pss +   400,000 cached kernel +   112,000 free)
 Used RAM: 2,900,000 kB (2,100,000 used pss +   800,000 kernel)
 Lost RAM:   172,000 kB
"""


class FakeChannel:
    """
    Answers commands from a table keyed by argument prefix.
    The longest matching prefix wins; unknown commands fail like adb would.
    """

    def __init__(self, responses: Dict[Tuple[str, ...], Response] = None, fail_all: bool = False):
        self.responses = dict(responses or {})
        self.fail_all = fail_all
        self.calls: List[List[str]] = []

    def execute(self, args: Sequence[str]) -> CommandResult:
        args = list(args)
        self.calls.append(args)
        if self.fail_all:
            raise ChannelError("device offline")
        for prefix in sorted(self.responses, key=len, reverse=True):
            if tuple(args[:len(prefix)]) == prefix:
                response = self.responses[prefix]
                if isinstance(response, Exception):
                    raise response
                return response
        return CommandResult(succeeded=False, stderr=f"unknown command: {' '.join(args)}")

    def shell(self, *args: str) -> CommandResult:
        return self.execute(["shell", *args])


def ok(stdout: str) -> CommandResult:
    return CommandResult(succeeded=True, stdout=stdout)


@pytest.fixture
def telemetry_channel():
    return FakeChannel({
        ("shell", "getprop", "ro.serialno"): ok("emulator-5554\n"),
        ("shell", "dumpsys", "battery"): ok(BATTERY_DUMP),
        ("shell", "dumpsys", "meminfo"): ok(MEMINFO_DUMP),
    })


@pytest.fixture
def failing_channel():
    return FakeChannel(fail_all=True)


@pytest.fixture
def sqlite_store():
    return TelemetryStore(lambda: SqliteBackend(":memory:"))
