#!/usr/bin/env python3
"""
adb-insight - command-line front end

Inspect the packages installed on an Android device and record battery and
memory readings over time, straight from the terminal.
"""

import argparse
import asyncio
import logging
import sys
import time
from typing import List

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from config import load_settings
from device_monitor import DeviceMonitor
from errors import AdbInsightError, FatalConfigurationError
from name_resolver import ResolvedName
from telemetry_store import TelemetrySnapshot

ACCENT = "#3DDC84"  # Android green

console = Console()


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=debug, rich_tracebacks=True)],
    )


def _fmt(value, suffix: str = "") -> str:
    return "[dim]n/a[/]" if value is None else f"{value}{suffix}"


# ── Rendering ──────────────────────────────────────────────────────────────────

def _packages_table(packages: List[ResolvedName], debug: bool = False) -> Table:
    table = Table(title=f"{len(packages)} packages", header_style=f"bold {ACCENT}", expand=True)
    table.add_column("App", style="bold")
    table.add_column("Package", style="dim")
    table.add_column("Type", no_wrap=True)
    if debug:
        table.add_column("Via", style="dim", no_wrap=True)

    for pkg in packages:
        kind = "[#888888]System[/]" if pkg.is_system_component else f"[{ACCENT}]User[/]"
        row = [pkg.display_name, pkg.package_identifier, kind]
        if debug:
            row.append(pkg.strategy)
        table.add_row(*row)
    return table


def _history_table(history: List[TelemetrySnapshot], title: str) -> Table:
    table = Table(title=title, header_style=f"bold {ACCENT}")
    table.add_column("Captured (UTC)", no_wrap=True)
    table.add_column("Battery", justify="right")
    table.add_column("Memory used", justify="right")
    table.add_column("Session", style="dim")

    for snap in history:
        when = snap.captured_at.strftime("%Y-%m-%d %H:%M:%S")
        if snap.synthetic:
            when += " [dim](synthetic)[/]"
        table.add_row(
            when,
            _fmt(snap.battery_level_percent, "%"),
            _fmt(snap.memory_used_mb, " MB"),
            snap.session_id,
        )
    if not history:
        table.add_row("[dim]no data[/]", "", "", "")
    return table


# ── Sub-commands ───────────────────────────────────────────────────────────────

def cmd_packages(monitor: DeviceMonitor, args) -> None:
    with console.status(f"[{ACCENT}]Resolving app names…[/]", spinner="dots"):
        if args.ids:
            names = asyncio.run(monitor.resolve_packages(args.ids))
            packages = list(names.values())
        else:
            packages = asyncio.run(monitor.list_packages(include_system=args.system))
    console.print(_packages_table(packages, debug=args.debug))


def cmd_name(monitor: DeviceMonitor, args) -> None:
    resolved = monitor.resolve_package(args.id)
    console.print(f"[bold]{resolved.display_name}[/]  [dim]{resolved.package_identifier}[/]")


def cmd_perf(monitor: DeviceMonitor, args) -> None:
    result = None
    for i in range(args.count):
        if i:
            time.sleep(args.interval)
        with console.status(f"[{ACCENT}]Reading device telemetry…[/]", spinner="dots"):
            result = monitor.capture_performance_snapshot()
        current = result["current"]
        console.print(
            f"🔋 {_fmt(current.battery_level_percent, '%')}   "
            f"🧠 {_fmt(current.memory_used_mb, ' MB')}   "
            f"[dim]{current.device_serial or 'unknown device'}[/]"
        )
    if result is not None:
        console.print(_history_table(result["history"], f"Session {result['session_id']}"))
        if monitor.store.degraded:
            console.print("⚠️  No telemetry database - history is synthetic", style="yellow")


def cmd_history(monitor: DeviceMonitor, args) -> None:
    history = monitor.get_history(limit=args.limit, session_id=args.session)
    title = f"Session {args.session}" if args.session else "All sessions"
    console.print(_history_table(history, title))


def cmd_fresh(monitor: DeviceMonitor, args) -> None:
    result = monitor.start_fresh_session(clear=args.clear)
    console.print(
        f"✓ Started session [bold]{result['session_id']}[/]"
        f" (cleared {result['cleared_count']} records)",
        style=ACCENT,
    )


def cmd_clear(monitor: DeviceMonitor, args) -> None:
    count = monitor.clear_all_telemetry()
    console.print(f"✓ Cleared {count} performance records", style=ACCENT)


def cmd_session(monitor: DeviceMonitor, args) -> None:
    session = monitor.session_info()
    console.print(Panel(
        f"Session: [bold]{session.session_id}[/]\nStarted: {session.created_at.isoformat()}",
        border_style=ACCENT,
    ))


def cmd_serve(args) -> None:
    import server
    if not args.debug:
        logging.getLogger().setLevel(logging.INFO)
    server.serve(host=args.host, port=args.port)


def build_parser(default_port: int = 5000) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="adb-insight",
        description="Inspect installed apps and performance of an Android device over adb",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  adb-insight packages                   # third-party apps with display names
  adb-insight packages --system          # include system packages
  adb-insight perf --count 5 --interval 10
  adb-insight fresh --clear              # new session, drop old history
        """,
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("packages", help="List packages with display names")
    p.add_argument("ids", nargs="*", help="Resolve only these package ids")
    p.add_argument("--system", action="store_true", help="Include system packages")
    p.set_defaults(func=cmd_packages)

    p = sub.add_parser("name", help="Display name of one package")
    p.add_argument("id")
    p.set_defaults(func=cmd_name)

    p = sub.add_parser("perf", help="Capture battery and memory readings")
    p.add_argument("--count", "-n", type=int, default=1)
    p.add_argument("--interval", "-i", type=float, default=5.0, help="Seconds between readings")
    p.set_defaults(func=cmd_perf)

    p = sub.add_parser("history", help="Show stored readings")
    p.add_argument("--limit", type=int, default=50)
    p.add_argument("--session", default=None, help="Only this session id")
    p.set_defaults(func=cmd_history)

    p = sub.add_parser("fresh", help="Start a new monitoring session")
    p.add_argument("--clear", action="store_true", help="Also delete all stored readings")
    p.set_defaults(func=cmd_fresh)

    p = sub.add_parser("clear", help="Delete all stored readings")
    p.set_defaults(func=cmd_clear)

    p = sub.add_parser("session", help="Show the active session")
    p.set_defaults(func=cmd_session)

    p = sub.add_parser("serve", help="Run the HTTP backend")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=default_port)
    p.set_defaults(func=None)

    return parser


def main(argv: List[str] = None) -> int:
    """Entry point"""
    try:
        settings = load_settings()
    except FatalConfigurationError as e:
        console.print(f"❌ {e}", style="bold red")
        return 1

    args = build_parser(settings.port).parse_args(argv)
    _setup_logging(args.debug)

    if args.command == "serve":
        cmd_serve(args)
        return 0

    monitor = DeviceMonitor.from_settings(settings)
    try:
        args.func(monitor, args)
    except AdbInsightError as e:
        console.print(f"❌ {e}", style="bold red")
        return 1
    except KeyboardInterrupt:
        console.print("\n👋 Interrupted", style=ACCENT)
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
