"""
Resolved composition - the contract handed to encoders and live engines.

Every temporal field of the Composition is attached here as absolute
seconds. Values are frozen dataclasses: encoders read them, never write.

Pitches are left as written (note name or MIDI number); each encoder
resolves them itself so it can report fallbacks in its own warnings.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from tonegraph.models.composition import (
    AudioGraphNode,
    Composition,
    EffectSpec,
    Metadata,
    PitchValue,
    SynthSpec,
)

if TYPE_CHECKING:
    from tonegraph.timing.tempo import TempoMap


@dataclass(frozen=True)
class ResolvedModulation:
    """A modulation with its absolute time and mapped parameter."""

    type: str
    value: float
    offset: float  # Seconds from note start
    time: float  # Absolute seconds
    controller: int | None = None
    parameter: str | None = None
    parameter_value: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        d: dict[str, Any] = {
            "type": self.type,
            "value": self.value,
            "time": self.time,
        }
        if self.controller is not None:
            d["controller"] = self.controller
        if self.parameter is not None:
            d["parameter"] = self.parameter
            d["parameter_value"] = self.parameter_value
        return d


@dataclass(frozen=True)
class ResolvedNote:
    """
    A note or chord with absolute start and duration in seconds.

    index is the note's position in its sequence's notes array; loop
    repetitions keep the index of the note they repeat.
    """

    pitches: tuple[PitchValue, ...]
    start: float
    duration: float
    velocity: float
    index: int = 0
    is_chord: bool = False
    articulation: str | None = None
    microtuning: float | None = None
    channel: int | None = None
    modulations: tuple[ResolvedModulation, ...] = ()
    repeat: int = 0  # Loop iteration (0 = as written)

    def __post_init__(self) -> None:
        """Validate ranges."""
        if self.duration < 0:
            raise ValueError(f"Duration must be >= 0, got {self.duration}")

    @property
    def end(self) -> float:
        return self.start + self.duration

    def shifted(self, offset: float, repeat: int) -> ResolvedNote:
        """Copy of this note moved later by offset seconds."""
        return replace(
            self,
            start=self.start + offset,
            repeat=repeat,
            modulations=tuple(
                replace(mod, time=mod.time + offset) for mod in self.modulations
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        d: dict[str, Any] = {
            "pitches": list(self.pitches),
            "start": self.start,
            "duration": self.duration,
            "velocity": self.velocity,
        }
        if self.articulation:
            d["articulation"] = self.articulation
        if self.microtuning is not None:
            d["microtuning"] = self.microtuning
        if self.channel is not None:
            d["channel"] = self.channel
        if self.modulations:
            d["modulations"] = [mod.to_dict() for mod in self.modulations]
        if self.repeat:
            d["repeat"] = self.repeat
        return d


@dataclass(frozen=True)
class ResolvedSequence:
    """A sequence with resolved notes and loop boundaries."""

    label: str
    notes: tuple[ResolvedNote, ...]
    synth_ref: str | None = None
    synth: SynthSpec | None = None
    effects: tuple[EffectSpec, ...] = ()
    loop: bool = False
    loop_length: float | None = None  # Seconds, from the first iteration
    loop_end: float | None = None
    explicit_loop_length: bool = False  # Loop length given as a time-expression
    midi_channel: int | None = None
    group: str | None = None

    @property
    def end_time(self) -> float:
        """End of the last note (0.0 when empty)."""
        return max((note.end for note in self.notes), default=0.0)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        d: dict[str, Any] = {
            "label": self.label,
            "notes": [note.to_dict() for note in self.notes],
        }
        if self.synth_ref:
            d["synth_ref"] = self.synth_ref
        if self.synth is not None:
            d["synth"] = {"type": self.synth.type, "options": dict(self.synth.options)}
        if self.loop:
            d["loop"] = True
            d["loop_length"] = self.loop_length
            d["loop_end"] = self.loop_end
        if self.midi_channel is not None:
            d["midi_channel"] = self.midi_channel
        return d


@dataclass(frozen=True)
class ResolvedTempoChange:
    """A tempo change at an absolute time."""

    time: float
    bpm: float
    beat: float = 0.0  # Position on the beat grid


@dataclass(frozen=True)
class ResolvedTimeSignature:
    """A time signature change at an absolute time."""

    time: float
    numerator: int
    denominator: int

    @property
    def text(self) -> str:
        return f"{self.numerator}/{self.denominator}"


@dataclass(frozen=True)
class ResolvedKeySignature:
    """A key signature change at an absolute time."""

    time: float
    key: str


@dataclass(frozen=True)
class ResolvedAutomation:
    """An automation point at an absolute time."""

    target: str
    time: float
    value: float


@dataclass(frozen=True)
class ResolvedAnnotation:
    """An annotation at an absolute time."""

    text: str
    type: str
    time: float
    duration: float | None = None


@dataclass(frozen=True)
class ResolvedComposition:
    """
    A composition with all time-expressions resolved to seconds.

    source keeps the Composition it was resolved from.
    """

    source: Composition
    bpm: float
    time_signature: str
    beats_per_bar: int
    tempo_map: TempoMap
    key_signature: str | None = None
    metadata: Metadata = field(default_factory=Metadata)
    audio_graph: tuple[AudioGraphNode, ...] = ()
    connections: tuple[tuple[str, ...], ...] = ()
    sequences: tuple[ResolvedSequence, ...] = ()
    tempo_changes: tuple[ResolvedTempoChange, ...] = ()
    time_signatures: tuple[ResolvedTimeSignature, ...] = ()
    key_signatures: tuple[ResolvedKeySignature, ...] = ()
    automation: tuple[ResolvedAutomation, ...] = ()
    annotations: tuple[ResolvedAnnotation, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def title(self) -> str | None:
        return self.metadata.name

    @property
    def seconds_per_beat(self) -> float:
        return 60.0 / self.bpm

    @property
    def end_time(self) -> float:
        """End of the last note across all sequences."""
        return max((seq.end_time for seq in self.sequences), default=0.0)

    def seconds_to_beats(self, seconds: float) -> float:
        """Beat-grid position of an absolute time (tempo map aware)."""
        return self.tempo_map.seconds_to_beats(seconds)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        d: dict[str, Any] = {
            "bpm": self.bpm,
            "time_signature": self.time_signature,
            "sequences": [seq.to_dict() for seq in self.sequences],
        }
        if self.key_signature:
            d["key_signature"] = self.key_signature
        if self.tempo_changes:
            d["tempo_changes"] = [
                {"time": change.time, "bpm": change.bpm} for change in self.tempo_changes
            ]
        if self.automation:
            d["automation"] = [
                {"target": a.target, "time": a.time, "value": a.value} for a in self.automation
            ]
        if self.annotations:
            d["annotations"] = [
                {"text": a.text, "type": a.type, "time": a.time} for a in self.annotations
            ]
        return d
