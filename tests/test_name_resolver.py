"""
Unit tests for NameResolver and its strategy chain.
"""

import pytest

from conftest import FakeChannel, ok
from device_channel import CommandResult
from errors import ChannelUnavailableError
from name_resolver import (
    FALLBACK_NAME,
    NameResolver,
    is_system_component,
    lookup_alias,
    synthesize_name,
)

PKG = "com.example.notes"
APK_LISTING = f"package:/data/app/~~x1==/{PKG}-y2==/base.apk={PKG}\n"


class TestSynthesizeName:
    def test_camel_case_last_segment(self):
        assert synthesize_name("com.example.foo.MusicPlayer") == "Music Player"

    def test_generic_last_segment_uses_previous(self):
        assert synthesize_name("com.example.weather.app") == "Weather"

    def test_short_last_segment_uses_previous(self):
        assert synthesize_name("com.gallery.hd") == "Gallery"

    def test_all_generic_falls_back_to_last(self):
        assert synthesize_name("com.app.android") == "Android"

    def test_digits_and_separators(self):
        assert synthesize_name("org.retro.snake_game2") == "Snake Game 2"

    def test_two_segment_id(self):
        assert synthesize_name("fdroid.calculator") == "Calculator"

    def test_never_empty(self):
        assert synthesize_name("") == FALLBACK_NAME
        assert synthesize_name("...") == FALLBACK_NAME

    def test_preserves_inner_capitals(self):
        assert synthesize_name("com.example.tube.YouTubeLite") == "You Tube Lite"

    def test_leading_digits_still_title_cased(self):
        assert synthesize_name("com.futuremark.3dmark") == "3Dmark"
        assert synthesize_name("com.example.tools.MusicPlayer2go") == "Music Player 2Go"


class TestAliasesAndSystemPrefix:
    def test_first_match_in_table_order(self):
        assert lookup_alias("com.whatsapp.w4b") == "WhatsApp Business"
        assert lookup_alias("com.whatsapp") == "WhatsApp"

    def test_unknown(self):
        assert lookup_alias("com.example.notes") is None

    @pytest.mark.parametrize("package_id, expected", [
        ("android", True),
        ("com.android.settings", True),
        ("com.google.android.gms", True),
        ("com.spotify.music", False),
        ("androidx.example", False),
    ])
    def test_is_system_component(self, package_id, expected):
        assert is_system_component(package_id) is expected


class TestNameResolver:
    def test_dumpsys_label(self):
        channel = FakeChannel({
            ("shell", "dumpsys", "package"): ok(f'Packages:\n  Package [{PKG}]\n    label="Quick Notes"\n'),
        })
        resolved = NameResolver(channel).resolve(PKG)
        assert resolved.display_name == "Quick Notes"
        assert resolved.strategy == "dumpsys"
        assert resolved.is_system_component is False
        # Later strategies are skipped once one succeeds
        assert len(channel.calls) == 1

    def test_dumpsys_null_marker_is_skipped(self):
        channel = FakeChannel({
            ("shell", "dumpsys", "package"): ok("    labelRes=0x0 nonLocalizedLabel=null icon=0x0\n"),
            ("shell", "pm", "list", "packages", "-f"): ok(APK_LISTING),
            ("shell", "strings"): ok("Quick Notes Pro\nother\n"),
        })
        resolved = NameResolver(channel).resolve(PKG)
        assert resolved.display_name == "Quick Notes Pro"
        assert resolved.strategy == "apk-strings"

    def test_dumpsys_non_localized_label(self):
        channel = FakeChannel({
            ("shell", "dumpsys", "package"): ok("    labelRes=0x0 nonLocalizedLabel=Notebook icon=0x7f0\n"),
        })
        assert NameResolver(channel).resolve(PKG).display_name == "Notebook"

    def test_label_equal_to_id_is_not_usable(self):
        channel = FakeChannel({
            ("shell", "dumpsys", "package"): ok(f'label="{PKG}"\n'),
        })
        resolved = NameResolver(channel).resolve(PKG)
        assert resolved.strategy == "synthesized"
        assert resolved.display_name == "Notes"

    def test_apk_strings_path_fragment_rejected(self):
        channel = FakeChannel({
            ("shell", "pm", "list", "packages", "-f"): ok(APK_LISTING),
            ("shell", "strings"): ok("/data/app/base.apk label\n"),
        })
        resolved = NameResolver(channel).resolve(PKG)
        assert resolved.strategy == "synthesized"

    def test_alias_when_channel_has_nothing(self):
        channel = FakeChannel({})
        resolved = NameResolver(channel).resolve("com.spotify.music")
        assert resolved.display_name == "Spotify"
        assert resolved.strategy == "alias"

    def test_channel_errors_fall_through(self, failing_channel):
        resolved = NameResolver(failing_channel).resolve("com.example.foo.MusicPlayer")
        assert resolved.display_name == "Music Player"
        assert resolved.strategy == "synthesized"

    def test_missing_transport_does_not_raise(self):
        channel = FakeChannel({
            ("shell",): ChannelUnavailableError("adb executable not found: adb"),
        })
        resolved = NameResolver(channel).resolve("com.whatsapp")
        assert resolved.display_name == "WhatsApp"

    def test_failed_command_result_falls_through(self):
        channel = FakeChannel({
            ("shell", "dumpsys", "package"): CommandResult(succeeded=False, stderr="error: closed"),
        })
        resolved = NameResolver(channel).resolve("com.android.settings")
        assert resolved.display_name == "Settings"
        assert resolved.is_system_component is True
