"""
Name Resolver - turns an Android package id into a display name

Resolution order
────────────────
1. dumpsys package <id>        label fields scraped from the package dump
2. pm list packages -f <id>    artifact path, then `strings` on the APK
3. Known-alias table           substring match against well-known products
4. Synthesised name            built from the id itself (always succeeds)

Each of the first two steps costs one or more adb round-trips, so the chain
stops at the first usable name.  A strategy that errors simply yields
nothing; resolve() itself never raises.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

from device_channel import DeviceChannel

logger = logging.getLogger(__name__)

# Label forms seen in `dumpsys package` output across Android releases
_LABEL_PATTERNS = (
    re.compile(r'label="([^"]+)"'),
    re.compile(r"application-label:\s*(.+)"),
    re.compile(r"nonLocalizedLabel=(.+?)(?=\s+\w+=|$)", re.MULTILINE),
    re.compile(r"labelRes=0x[0-9a-fA-F]+\s+\((.+)\)"),
)

_APK_PATH_RE = re.compile(r"package:(.+)=(.+)")

_NULL_MARKERS = {"", "null", "none", "(null)"}

# Checked in order; more specific substrings come before broader ones.
KNOWN_ALIASES: Tuple[Tuple[str, str], ...] = (
    ("com.whatsapp.w4b", "WhatsApp Business"),
    ("com.whatsapp", "WhatsApp"),
    ("com.facebook.orca", "Messenger"),
    ("com.facebook.katana", "Facebook"),
    ("com.facebook.lite", "Facebook Lite"),
    ("com.instagram.barcelona", "Threads"),
    ("com.instagram", "Instagram"),
    ("com.google.android.youtube.tv", "YouTube for Android TV"),
    ("com.google.android.apps.youtube.music", "YouTube Music"),
    ("com.google.android.youtube", "YouTube"),
    ("com.google.android.gm", "Gmail"),
    ("com.google.android.apps.maps", "Google Maps"),
    ("com.google.android.apps.photos", "Google Photos"),
    ("com.google.android.apps.docs", "Google Drive"),
    ("com.google.android.apps.messaging", "Messages"),
    ("com.google.android.calendar", "Google Calendar"),
    ("com.google.android.dialer", "Phone"),
    ("com.google.android.contacts", "Contacts"),
    ("com.google.android.googlequicksearchbox", "Google"),
    ("com.android.vending", "Google Play Store"),
    ("com.android.chrome", "Chrome"),
    ("com.android.settings", "Settings"),
    ("com.android.camera", "Camera"),
    ("com.twitter.android", "X"),
    ("com.zhiliaoapp.musically", "TikTok"),
    ("com.snapchat.android", "Snapchat"),
    ("org.telegram.messenger", "Telegram"),
    ("org.thoughtcrime.securesms", "Signal"),
    ("com.spotify.music", "Spotify"),
    ("com.netflix.mediaclient", "Netflix"),
    ("com.amazon.mShop.android.shopping", "Amazon Shopping"),
    ("com.linkedin.android", "LinkedIn"),
    ("com.microsoft.teams", "Microsoft Teams"),
    ("com.microsoft.office.outlook", "Outlook"),
    ("us.zoom.videomeetings", "Zoom"),
    ("com.ubercab", "Uber"),
    ("com.discord", "Discord"),
    ("com.reddit.frontpage", "Reddit"),
    ("com.pinterest", "Pinterest"),
    ("org.mozilla.firefox", "Firefox"),
)

# Trailing segments that say nothing about the product
GENERIC_SEGMENTS = {"app", "android", "mobile", "main", "client", "user"}

SYSTEM_PREFIXES = (
    "android.",
    "com.android.",
    "com.google.android.",
    "com.qualcomm.",
    "com.qti.",
    "com.samsung.android.",
    "com.sec.android.",
    "com.miui.",
    "com.huawei.",
)

FALLBACK_NAME = "Unknown Package"

# A strategy returns a usable name or None
Strategy = Callable[[str], Optional[str]]


@dataclass(frozen=True)
class ResolvedName:
    package_identifier: str
    display_name: str
    is_system_component: bool
    strategy: str = "synthesized"

    def to_dict(self) -> dict:
        return {
            "packageName": self.package_identifier,
            "appName": self.display_name,
            "isSystemApp": self.is_system_component,
        }


def is_system_component(package_id: str) -> bool:
    """System components are recognised by their id prefix alone."""
    return package_id == "android" or package_id.startswith(SYSTEM_PREFIXES)


def _humanize(token: str) -> str:
    """Split camel case and digit runs: MusicPlayer2go -> Music Player 2Go."""
    text = re.sub(r"[_\-]+", " ", token)
    text = re.sub(r"([a-z])([A-Z])", r"\1 \2", text)
    text = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1 \2", text)
    text = re.sub(r"(?<=[^\d\s])(\d+)", r" \1", text)
    words = [re.sub(r"[a-zA-Z]", lambda m: m.group().upper(), w, count=1) for w in text.split()]
    return " ".join(words)


def synthesize_name(package_id: str) -> str:
    """Readable name derived from the package id itself. Never fails."""
    parts = [p for p in (package_id or "").strip().split(".") if p]
    if not parts:
        return FALLBACK_NAME

    chosen = parts[-1]
    if len(parts) >= 3:
        last, second_last = parts[-1], parts[-2]
        if last.lower() not in GENERIC_SEGMENTS and len(last) > 2:
            chosen = last
        elif second_last.lower() not in GENERIC_SEGMENTS and len(second_last) > 2:
            chosen = second_last

    name = _humanize(chosen)
    return name or FALLBACK_NAME


def lookup_alias(package_id: str) -> Optional[str]:
    """First entry of KNOWN_ALIASES whose key is contained in the id."""
    for needle, display_name in KNOWN_ALIASES:
        if needle in package_id:
            return display_name
    return None


def _usable(candidate: Optional[str], package_id: str) -> bool:
    if candidate is None:
        return False
    candidate = candidate.strip()
    return candidate.lower() not in _NULL_MARKERS and candidate != package_id


class NameResolver:
    """Best-effort display names for package ids."""

    def __init__(self, channel: DeviceChannel):
        self.channel = channel
        self.strategies: Sequence[Tuple[str, Strategy]] = (
            ("dumpsys", self._from_dumpsys),
            ("apk-strings", self._from_apk_strings),
            ("alias", lookup_alias),
        )

    def _from_dumpsys(self, package_id: str) -> Optional[str]:
        result = self.channel.shell("dumpsys", "package", package_id)
        if not result.succeeded:
            return None
        for pattern in _LABEL_PATTERNS:
            match = pattern.search(result.stdout)
            if not match:
                continue
            candidate = match.group(1).strip().strip("'\"")
            if _usable(candidate, package_id):
                return candidate
        return None

    def _from_apk_strings(self, package_id: str) -> Optional[str]:
        listing = self.channel.shell("pm", "list", "packages", "-f", package_id)
        if not listing.succeeded or package_id not in listing.stdout:
            return None

        apk_path = None
        for line in listing.stdout.splitlines():
            match = _APK_PATH_RE.match(line.strip())
            if match and match.group(2).strip() == package_id:
                apk_path = match.group(1)
                break
        if not apk_path:
            return None

        # adb joins the arguments into one remote shell line, so the pipe runs on the device
        strings = self.channel.shell("strings", apk_path, "|", "grep", "-i", "app.*name\\|label")
        if not strings.succeeded:
            return None
        for line in strings.stdout.splitlines():
            candidate = line.strip()
            if not candidate:
                continue
            if not _usable(candidate, package_id):
                return None
            if "package:" in candidate or candidate.startswith("/") or ".apk" in candidate:
                return None
            return candidate
        return None

    def resolve(self, package_id: str) -> ResolvedName:
        """Run the strategy chain; the first usable name wins."""
        for strategy_name, strategy in self.strategies:
            try:
                name = strategy(package_id)
            except Exception as e:
                logger.debug(f"{strategy_name} lookup failed for {package_id}: {e}")
                continue
            if _usable(name, package_id):
                logger.info(f"Found app name for {package_id} via {strategy_name}: {name}")
                return ResolvedName(
                    package_identifier=package_id,
                    display_name=name.strip(),
                    is_system_component=is_system_component(package_id),
                    strategy=strategy_name,
                )
            logger.debug(f"{strategy_name} gave nothing for {package_id}")

        return fallback_name(package_id)


def fallback_name(package_id: str) -> ResolvedName:
    """The terminal step of the chain, also used when a whole resolution fails."""
    name = synthesize_name(package_id)
    logger.info(f"Generated readable name for {package_id}: {name}")
    return ResolvedName(
        package_identifier=package_id,
        display_name=name,
        is_system_component=is_system_component(package_id or ""),
        strategy="synthesized",
    )
