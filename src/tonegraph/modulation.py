"""
Controller mapping - turns MIDI-style modulations into synthesis parameters.

Which parameter a controller drives, and over which range, is data rather
than code: the table lives in YAML (the packaged default is
library/controllers.yaml) and can be replaced or extended per project.

Lookup order for a cc modulation:
1. Synth-type override (synth_overrides[<type>][<controller>])
2. Global cc table
3. Fallback mapping (volume), with a logged warning
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from tonegraph.constants import ModulationType

logger = logging.getLogger(__name__)

DEFAULT_CONTROLLER_MAP_PATH = Path(__file__).parent / "library" / "controllers.yaml"


class Curve(str, Enum):
    """How a normalized controller value is spread over the output range."""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"
    SWITCH = "switch"


class ControllerMapping(BaseModel):
    """Mapping of one controller to one synthesis parameter."""

    target: str = Field(..., description="Parameter path (e.g. 'filter.frequency')")
    curve: Curve = Field(Curve.LINEAR, description="Value curve")
    range: tuple[float, float] = Field((0.0, 1.0), description="Output range")
    input_range: tuple[float, float] = Field((0.0, 127.0), description="Controller value range")
    threshold: float = Field(64.0, description="Switch threshold (switch curve only)")
    frequency: float | None = Field(None, description="LFO rate in Hz for periodic targets")
    description: str = Field("", description="Human-readable description")

    model_config = {"frozen": True}

    def apply(self, value: float) -> float:
        """Map a raw controller value onto the output range."""
        low, high = self.range
        if self.curve == Curve.SWITCH:
            return high if value >= self.threshold else low

        in_low, in_high = self.input_range
        span = in_high - in_low
        norm = (value - in_low) / span if span else 0.0
        norm = max(0.0, min(1.0, norm))

        if self.curve == Curve.EXPONENTIAL and low > 0 and high > 0:
            return low * (high / low) ** norm
        return low + norm * (high - low)


@dataclass(frozen=True)
class MappedParameter:
    """A modulation translated to a parameter change."""

    target: str
    value: float
    frequency: float | None = None


class ControllerMap(BaseModel):
    """The complete controller-to-parameter table."""

    cc: dict[int, ControllerMapping] = Field(default_factory=dict)
    pitch_bend: ControllerMapping | None = None
    aftertouch: ControllerMapping | None = None
    fallback: ControllerMapping = Field(
        default_factory=lambda: ControllerMapping(target="volume", range=(-20.0, 0.0))
    )
    synth_overrides: dict[str, dict[int, ControllerMapping]] = Field(default_factory=dict)

    def lookup(
        self,
        modulation_type: str,
        controller: int | None = None,
        synth_type: str | None = None,
    ) -> ControllerMapping | None:
        """
        Find the mapping for a modulation.

        Returns None for pitch bend / aftertouch when the table has no entry,
        and the fallback mapping for unmapped cc numbers.
        """
        if modulation_type == ModulationType.PITCH_BEND.value:
            return self.pitch_bend
        if modulation_type == ModulationType.AFTERTOUCH.value:
            return self.aftertouch
        if modulation_type != ModulationType.CC.value or controller is None:
            return None

        if synth_type and controller in self.synth_overrides.get(synth_type, {}):
            return self.synth_overrides[synth_type][controller]
        if controller in self.cc:
            return self.cc[controller]

        logger.warning("Unmapped CC%d, defaulting to %s", controller, self.fallback.target)
        return self.fallback

    def map(
        self,
        modulation_type: str,
        value: float,
        controller: int | None = None,
        synth_type: str | None = None,
    ) -> MappedParameter | None:
        """Translate a modulation value, None when nothing is mapped."""
        mapping = self.lookup(modulation_type, controller, synth_type)
        if mapping is None:
            return None
        return MappedParameter(
            target=mapping.target,
            value=mapping.apply(value),
            frequency=mapping.frequency,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ControllerMap:
        """Create from a YAML-style dictionary (keys may be snake or camel case)."""
        normalized = dict(data)
        if "pitchBend" in normalized:
            normalized["pitch_bend"] = normalized.pop("pitchBend")
        if "synthOverrides" in normalized:
            normalized["synth_overrides"] = normalized.pop("synthOverrides")
        return cls.model_validate(normalized)

    @classmethod
    def from_yaml(cls, path: Path) -> ControllerMap:
        """Load a controller map from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def load_default(cls) -> ControllerMap:
        """Load the packaged default table."""
        return cls.from_yaml(DEFAULT_CONTROLLER_MAP_PATH)
