"""
Composition model - the canonical representation of a musical work.

A Composition contains:
- Global context (bpm, key, time signature, tempo/key/meter maps)
- An audio graph (synthesizer, effect and sink nodes) and its connections
- Sequences of note events, each bound to a synth
- Automation and annotations

Every model is frozen: the Normalizer and builder construct them once,
everything downstream reads them.

Fields the Validator reports on (format, version, bpm, sequences, note
time/pitch/duration) are optional here so that an incomplete document can be
represented and rejected with a full error list instead of an exception.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from tonegraph.constants import (
    DEFAULT_TIME_SIGNATURE,
    MASTER_NODE_ID,
    NodeKind,
    NodeType,
    classify_node_type,
)

# A time-expression: seconds, "bar:beat[:tick]", "<n><unit>" or a numeric string
TimeExpression = int | float | str

# A single pitch: note name ("C4", "F#3") or MIDI number
PitchValue = int | str

# A note's pitch field: single pitch or chord
Pitch = PitchValue | list[PitchValue]

_MODEL_CONFIG: dict[str, Any] = {
    "alias_generator": to_camel,
    "populate_by_name": True,
    "frozen": True,
}


class Modulation(BaseModel):
    """
    A per-note modulation event.

    Time is relative to the note start. Values: cc and aftertouch 0-127,
    pitchBend -8192..8191.
    """

    type: str | None = Field(None, description="cc, pitchBend or aftertouch")
    controller: int | None = Field(None, description="Controller number for cc (0-127)")
    value: float | None = Field(None, description="Modulation value")
    time: TimeExpression | None = Field(None, description="Offset from note start")

    model_config = _MODEL_CONFIG


class NoteEvent(BaseModel):
    """A note or chord placed in time."""

    note: Pitch | None = Field(None, description="Note name, MIDI number, or list of them")
    time: TimeExpression | None = Field(None, description="Start time")
    duration: TimeExpression | None = Field(None, description="Duration")
    velocity: float | None = Field(None, description="Velocity 0.0-1.0 (default 0.8)")
    articulation: str | None = Field(None, description="Articulation tag")
    microtuning: float | None = Field(None, description="Detune in cents")
    channel: int | None = Field(None, description="MIDI channel override")
    modulations: list[Modulation] = Field(default_factory=list)

    model_config = _MODEL_CONFIG

    @property
    def pitches(self) -> list[PitchValue]:
        """The note's pitches as a list (one entry unless it is a chord)."""
        if self.note is None:
            return []
        if isinstance(self.note, list):
            return list(self.note)
        return [self.note]

    @property
    def is_chord(self) -> bool:
        """True if the note carries a list of pitches."""
        return isinstance(self.note, list)


class SynthSpec(BaseModel):
    """An inline synthesizer definition on a sequence."""

    type: str = Field(NodeType.SYNTH.value, description="Synth node type")
    options: dict[str, Any] = Field(default_factory=dict)
    preset_ref: str | None = None

    model_config = _MODEL_CONFIG


class EffectSpec(BaseModel):
    """An effect attached directly to a sequence."""

    type: str = Field(..., description="Effect node type")
    options: dict[str, Any] = Field(default_factory=dict)
    preset_ref: str | None = None

    model_config = _MODEL_CONFIG


class Sequence(BaseModel):
    """
    A track of notes bound to one synthesizer.

    Exactly one of synth_ref (an audio graph node id) or an inline synth
    is expected; the Validator reports sequences with neither.
    """

    label: str | None = Field(None, description="Track label")
    synth_ref: str | None = Field(None, description="Id of an audio graph synth node")
    synth: SynthSpec | None = Field(None, description="Inline synth definition")
    effects: list[EffectSpec] = Field(default_factory=list)
    notes: list[NoteEvent] | None = Field(None, description="Note events")
    loop: bool | int | float | str = Field(False, description="False, True or a loop length")
    loop_end: TimeExpression | None = Field(None, description="Loop end time")
    midi_channel: int | None = Field(None, description="MIDI channel (0-15)")
    group: str | None = Field(None, description="Grouping label")

    model_config = _MODEL_CONFIG

    @property
    def is_looping(self) -> bool:
        """True if loop is enabled in any form."""
        return self.loop is not False and self.loop not in (0, "")


class AudioGraphNode(BaseModel):
    """A synthesizer, effect or sink in the audio graph."""

    id: str | None = Field(None, description="Unique node id")
    type: str | None = Field(None, description="Node type (Synth, Reverb, Destination, ...)")
    options: dict[str, Any] = Field(default_factory=dict)
    target: str | None = Field(None, description="Parameter path for modulator nodes")
    preset_ref: str | None = None

    model_config = _MODEL_CONFIG

    @property
    def node_type(self) -> NodeType | None:
        """The known node type, or None when unrecognized."""
        return NodeType.parse(self.type) if self.type else None

    @property
    def kind(self) -> NodeKind:
        """Synth, effect, sink or unknown."""
        if self.id == MASTER_NODE_ID and not self.type:
            return NodeKind.SINK
        return classify_node_type(self.type)


class TempoChange(BaseModel):
    """A tempo map breakpoint."""

    time: TimeExpression | None = None
    bpm: float | None = None

    model_config = _MODEL_CONFIG


class TimeSignatureChange(BaseModel):
    """A time signature map entry."""

    time: TimeExpression | None = None
    time_signature: str = DEFAULT_TIME_SIGNATURE

    model_config = _MODEL_CONFIG


class KeySignatureChange(BaseModel):
    """A key signature map entry."""

    time: TimeExpression | None = None
    key_signature: str = "C"

    model_config = _MODEL_CONFIG


class Metadata(BaseModel):
    """Descriptive metadata."""

    name: str | None = None
    author: str | None = None
    description: str | None = None

    model_config = _MODEL_CONFIG


class AutomationEvent(BaseModel):
    """A parameter change at a point in time (target is a parameter path)."""

    target: str | None = None
    time: TimeExpression | None = None
    value: float | None = None

    model_config = _MODEL_CONFIG


class Annotation(BaseModel):
    """Text attached to a point in time (comment, lyric, marker, rehearsal)."""

    text: str = ""
    time: TimeExpression | None = None
    type: str = "comment"
    duration: TimeExpression | None = None

    model_config = _MODEL_CONFIG


class CustomPreset(BaseModel):
    """A reusable node configuration referenced by presetRef."""

    id: str
    type: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)

    model_config = _MODEL_CONFIG


class Composition(BaseModel):
    """
    The canonical composition document.

    Invariants (checked by the Validator, not enforced here):
    bpm > 0, node ids unique, every connection endpoint is an existing
    node id or the reserved sink id "master".
    """

    format_id: str | None = Field(
        None,
        validation_alias=AliasChoices("format", "formatId", "format_id"),
        serialization_alias="format",
        description="Format identifier",
    )
    version: str | None = Field(None, description="Format version")
    bpm: float | None = Field(None, description="Base tempo in BPM")
    key_signature: str | None = None
    time_signature: str | None = None

    tempo_map: list[TempoChange] = Field(default_factory=list)
    time_signature_map: list[TimeSignatureChange] = Field(default_factory=list)
    key_signature_map: list[KeySignatureChange] = Field(default_factory=list)

    metadata: Metadata | None = None

    audio_graph: list[AudioGraphNode] = Field(default_factory=list)
    connections: list[list[str]] = Field(default_factory=list)
    custom_presets: list[CustomPreset] = Field(default_factory=list)

    sequences: list[Sequence] | None = None
    automation: list[AutomationEvent] = Field(default_factory=list)
    annotations: list[Annotation] = Field(default_factory=list)

    model_config = _MODEL_CONFIG

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v: Any) -> Any:
        """Accept numeric versions such as 1.0."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("connections", mode="before")
    @classmethod
    def coerce_connections(cls, v: Any) -> Any:
        """
        Keep malformed connections representable.

        A non-list entry becomes a one-element list so the Validator can
        report it as malformed.
        """
        if not isinstance(v, list):
            return v
        result = []
        for entry in v:
            if isinstance(entry, (list, tuple)):
                result.append([str(endpoint) for endpoint in entry])
            else:
                result.append([str(entry)])
        return result

    @property
    def node_ids(self) -> set[str]:
        """Ids of all audio graph nodes."""
        return {node.id for node in self.audio_graph if node.id}

    def get_node(self, node_id: str) -> AudioGraphNode | None:
        """Find an audio graph node by id (first match)."""
        for node in self.audio_graph:
            if node.id == node_id:
                return node
        return None

    def get_preset(self, preset_id: str) -> CustomPreset | None:
        """Find a custom preset by id."""
        for preset in self.custom_presets:
            if preset.id == preset_id:
                return preset
        return None

    @property
    def beats_per_bar(self) -> int:
        """Numerator of the time signature (4 when absent or unparseable)."""
        return parse_beats_per_bar(self.time_signature)

    def to_document(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible document with camelCase keys."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


def parse_beats_per_bar(time_signature: str | None) -> int:
    """Beats per bar from a "3/4" style signature, 4 when unknown."""
    if not time_signature:
        return 4
    numerator, _, _ = time_signature.partition("/")
    try:
        beats = int(numerator.strip())
    except ValueError:
        return 4
    return beats if beats > 0 else 4


def parse_time_signature(time_signature: str | None) -> tuple[int, int]:
    """Split a "6/8" style signature into (numerator, denominator), (4, 4) when unknown."""
    if not time_signature:
        return (4, 4)
    numerator, _, denominator = time_signature.partition("/")
    try:
        num = int(numerator.strip())
        den = int(denominator.strip())
    except ValueError:
        return (4, 4)
    if num <= 0 or den <= 0:
        return (4, 4)
    return (num, den)
