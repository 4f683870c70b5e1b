"""
Tests for the command-line front end.
"""

import pytest

import main
from conftest import FakeChannel, ok
from device_monitor import DeviceMonitor
from telemetry_store import SqliteBackend, TelemetryStore


@pytest.fixture
def wired(monkeypatch, telemetry_channel):
    """Route DeviceMonitor.from_settings to an in-memory monitor on a fake device."""
    monitor = DeviceMonitor(telemetry_channel, TelemetryStore(lambda: SqliteBackend(":memory:")))
    monkeypatch.setattr(DeviceMonitor, "from_settings", classmethod(lambda cls, settings: monitor))
    monkeypatch.delenv("RESOLVE_BATCH_SIZE", raising=False)
    return monitor


class TestParser:
    def test_subcommands(self):
        parser = main.build_parser()
        args = parser.parse_args(["perf", "-n", "3", "-i", "0.5"])
        assert (args.command, args.count, args.interval) == ("perf", 3, 0.5)

        args = parser.parse_args(["packages", "--system"])
        assert args.system and args.ids == []

        args = parser.parse_args(["serve", "--port", "8000"])
        assert args.port == 8000

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            main.build_parser().parse_args([])


class TestMain:
    def test_perf(self, wired, capsys):
        assert main.main(["perf"]) == 0
        out = capsys.readouterr().out
        assert "87%" in out
        assert len(wired.get_history(10)) == 1

    def test_fresh_and_session(self, wired, capsys):
        before = wired.sessions.current()
        assert main.main(["fresh"]) == 0
        assert wired.sessions.current() != before
        assert main.main(["session"]) == 0
        assert wired.sessions.current() in capsys.readouterr().out

    def test_history_and_clear(self, wired):
        main.main(["perf"])
        assert main.main(["history", "--limit", "5"]) == 0
        assert main.main(["clear"]) == 0
        assert wired.get_history(10) == []

    def test_domain_error_exit_code(self, wired):
        assert main.main(["history", "--limit", "0"]) == 1

    def test_packages(self, monkeypatch, capsys):
        channel = FakeChannel({
            ("shell", "pm", "list", "packages", "-3"): ok("package:com.spotify.music\n"),
        })
        monitor = DeviceMonitor(channel, TelemetryStore(), pacing_delay=0)
        monkeypatch.setattr(DeviceMonitor, "from_settings", classmethod(lambda cls, settings: monitor))

        assert main.main(["packages"]) == 0
        assert "Spotify" in capsys.readouterr().out

    def test_bad_environment(self, monkeypatch):
        monkeypatch.setenv("RESOLVE_BATCH_SIZE", "lots")
        assert main.main(["session"]) == 1
