"""
Snapshot Parser - pulls numbers out of adb diagnostic text

All functions are pure and never raise: unparseable input gives None (or an
empty list) and the caller decides what a partial snapshot means.
"""

import re
from typing import List, Optional

KB_PER_MB = 1000

_BATTERY_LEVEL_RE = re.compile(r"(?<![\w-])level:\s*(\d+)")
# dumpsys meminfo prints "Total RAM: 3,768,276K (status normal)" on current
# builds and "Total RAM: 3768276 kB" on older ones.
_TOTAL_RAM_RE = re.compile(r"Total RAM:\s*([\d,]+)\s*[kK]")
_FREE_RAM_RE = re.compile(r"Free RAM:\s*([\d,]+)\s*[kK]")
_AVAILABLE_RAM_RE = re.compile(r"Available RAM:\s*([\d,]+)\s*[kK]")


def _to_int(digits: str) -> Optional[int]:
    try:
        return int(digits.replace(",", ""))
    except (AttributeError, ValueError):
        return None


def parse_battery(text: str) -> Optional[int]:
    """
    Battery level from `dumpsys battery`, e.g. "  level: 87".
    Returns None when the field is absent or outside 0..100.
    """
    if not isinstance(text, str):
        return None
    match = _BATTERY_LEVEL_RE.search(text)
    if not match:
        return None
    level = int(match.group(1))
    return level if 0 <= level <= 100 else None


def parse_memory(text: str) -> Optional[int]:
    """
    Used memory in MB from `dumpsys meminfo`.

    Needs "Total RAM" plus "Free RAM" ("Available RAM" is accepted when Free
    is missing), both in kB.  used = total - free, rounded to whole MB.
    """
    if not isinstance(text, str):
        return None
    total_match = _TOTAL_RAM_RE.search(text)
    free_match = _FREE_RAM_RE.search(text) or _AVAILABLE_RAM_RE.search(text)
    if not total_match or not free_match:
        return None

    total_kb = _to_int(total_match.group(1))
    free_kb = _to_int(free_match.group(1))
    if total_kb is None or free_kb is None or free_kb > total_kb:
        return None
    return round((total_kb - free_kb) / KB_PER_MB)


def parse_device_serial(text: str) -> Optional[str]:
    """First non-empty line of `getprop ro.serialno`."""
    if not isinstance(text, str):
        return None
    for line in text.splitlines():
        line = line.strip()
        if line:
            return line
    return None


def parse_package_list(text: str) -> List[str]:
    """
    Package ids from `pm list packages` output, in listing order.

    Handles both "package:com.foo" and the `-f` form
    "package:/data/app/.../base.apk=com.foo".
    """
    if not isinstance(text, str):
        return []
    packages: List[str] = []
    seen = set()
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line.startswith("package:"):
            continue
        name = line[len("package:"):]
        if "=" in name:
            name = name.rsplit("=", 1)[1]
        name = name.strip()
        if name and name not in seen:
            seen.add(name)
            packages.append(name)
    return packages
