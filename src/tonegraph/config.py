"""
Converter settings - encoder options loaded from YAML.

A settings file only needs the keys it changes; everything else keeps the
defaults below:

    midi:
      ticks_per_beat: 960
      pitch_bend_range: 12
    abc:
      include_lyrics: true
    controller_map: ./controllers.yaml
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from tonegraph.constants import ABC_SOURCE_TAG, TICKS_PER_BEAT
from tonegraph.modulation import ControllerMap

logger = logging.getLogger(__name__)


class MidiSettings(BaseModel):
    """MIDI encoder options."""

    ticks_per_beat: int = Field(TICKS_PER_BEAT, description="Ticks per quarter note")
    pitch_bend_range: float = Field(2.0, description="Bend range in semitones")
    expand_loops: bool = Field(False, description="Write loop repetitions")

    @field_validator("ticks_per_beat")
    @classmethod
    def validate_ticks(cls, v: int) -> int:
        """Division must fit the 15-bit header field."""
        if not 1 <= v <= 0x7FFF:
            raise ValueError(f"ticks_per_beat must be 1-32767, got {v}")
        return v

    @field_validator("pitch_bend_range")
    @classmethod
    def validate_bend_range(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"pitch_bend_range must be positive, got {v}")
        return v


class AbcSettings(BaseModel):
    """ABC encoder options."""

    source_tag: str = Field(ABC_SOURCE_TAG, description="S: header field")
    include_lyrics: bool = Field(False, description="Write lyric annotations as a w: line")


class ConverterSettings(BaseModel):
    """All converter options."""

    midi: MidiSettings = Field(default_factory=MidiSettings)
    abc: AbcSettings = Field(default_factory=AbcSettings)
    controller_map: Path | None = Field(None, description="Controller map YAML (default: packaged)")

    def load_controller_map(self) -> ControllerMap:
        """The configured controller map, or the packaged default."""
        if self.controller_map is None:
            return ControllerMap.load_default()
        return ControllerMap.from_yaml(self.controller_map)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings(path: Path | None = None) -> ConverterSettings:
    """
    Load settings from a YAML file merged over the defaults.

    Args:
        path: Settings file (None for defaults)

    Returns:
        ConverterSettings

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If the file is not a YAML mapping
    """
    defaults = ConverterSettings().model_dump(mode="json")
    if path is None:
        return ConverterSettings.model_validate(defaults)

    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file must contain a mapping: {path}")

    settings = ConverterSettings.model_validate(deep_merge(defaults, data))
    if settings.controller_map is not None and not settings.controller_map.is_absolute():
        settings = settings.model_copy(
            update={"controller_map": Path(path).parent / settings.controller_map}
        )
    logger.debug("Loaded settings from %s", path)
    return settings
