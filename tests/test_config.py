"""
Tests for converter settings.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from tonegraph.config import ConverterSettings, MidiSettings, deep_merge, load_settings
from tonegraph.modulation import ControllerMap


class TestDefaults:
    """Tests for default settings."""

    def test_defaults(self) -> None:
        settings = load_settings()
        assert settings.midi.ticks_per_beat == 480
        assert settings.midi.pitch_bend_range == 2.0
        assert not settings.midi.expand_loops
        assert settings.abc.source_tag == "Generated from jmon format"
        assert not settings.abc.include_lyrics
        assert settings.controller_map is None

    def test_default_controller_map(self) -> None:
        table = ConverterSettings().load_controller_map()
        assert isinstance(table, ControllerMap)
        assert 74 in table.cc

    @pytest.mark.parametrize("ticks", [0, 40000])
    def test_invalid_ticks(self, ticks: int) -> None:
        with pytest.raises(ValidationError):
            MidiSettings(ticks_per_beat=ticks)

    def test_invalid_bend_range(self) -> None:
        with pytest.raises(ValidationError):
            MidiSettings(pitch_bend_range=0)


class TestDeepMerge:
    """Tests for deep_merge."""

    def test_nested(self) -> None:
        base = {"midi": {"ticks_per_beat": 480, "expand_loops": False}, "abc": {"include_lyrics": False}}
        merged = deep_merge(base, {"midi": {"expand_loops": True}})
        assert merged == {"midi": {"ticks_per_beat": 480, "expand_loops": True}, "abc": {"include_lyrics": False}}
        assert base["midi"]["expand_loops"] is False

    def test_replace_scalar(self) -> None:
        assert deep_merge({"a": {"b": 1}}, {"a": 2}) == {"a": 2}


class TestLoadSettings:
    """Tests for reading settings files."""

    def test_partial_file(self, temp_dir: Path) -> None:
        path = temp_dir / "settings.yaml"
        path.write_text("midi:\n  ticks_per_beat: 960\nabc:\n  include_lyrics: true\n")
        settings = load_settings(path)
        assert settings.midi.ticks_per_beat == 960
        assert settings.midi.pitch_bend_range == 2.0
        assert settings.abc.include_lyrics
        assert settings.abc.source_tag == "Generated from jmon format"

    def test_empty_file(self, temp_dir: Path) -> None:
        path = temp_dir / "settings.yaml"
        path.write_text("")
        assert load_settings(path).midi.ticks_per_beat == 480

    def test_relative_controller_map(self, temp_dir: Path) -> None:
        (temp_dir / "controllers.yaml").write_text("cc:\n  5:\n    target: portamento\n")
        path = temp_dir / "settings.yaml"
        path.write_text("controller_map: controllers.yaml\n")
        settings = load_settings(path)
        assert settings.controller_map == temp_dir / "controllers.yaml"
        assert settings.load_controller_map().cc[5].target == "portamento"

    def test_not_a_mapping(self, temp_dir: Path) -> None:
        path = temp_dir / "settings.yaml"
        path.write_text("- one\n- two\n")
        with pytest.raises(ValueError, match="mapping"):
            load_settings(path)

    def test_invalid_value(self, temp_dir: Path) -> None:
        path = temp_dir / "settings.yaml"
        path.write_text("midi:\n  ticks_per_beat: 0\n")
        with pytest.raises(ValidationError):
            load_settings(path)

    def test_missing_file(self, temp_dir: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_settings(temp_dir / "missing.yaml")
