"""
Constants and enums for the composition model.

No magic strings - use enums and Literal types for constrained values.
"""

from enum import Enum
from typing import Literal

# Canonical document identity
FORMAT_IDENTIFIER = "jmonTone"
FORMAT_VERSION = "1.0"

# Reserved sink id - always a valid connection target
MASTER_NODE_ID = "master"

DEFAULT_BPM = 120
DEFAULT_VELOCITY = 0.8
DEFAULT_DURATION = "4n"
DEFAULT_TIME_SIGNATURE = "4/4"
DEFAULT_KEY_SIGNATURE = "C"

# ABC S: field
ABC_SOURCE_TAG = "Generated from jmon format"

# Middle C - substituted for note names that cannot be resolved
DEFAULT_PITCH = 60

# Standard ticks per quarter note
TICKS_PER_BEAT = 480

# Upper bound on loop repetitions when expanding loops for export
MAX_LOOP_REPETITIONS = 10_000

# Recommended (not enforced) tempo range
MIN_RECOMMENDED_BPM = 20
MAX_RECOMMENDED_BPM = 400


class NodeKind(str, Enum):
    """Broad role of an audio graph node."""

    SYNTH = "synth"
    EFFECT = "effect"
    SINK = "sink"
    UNKNOWN = "unknown"


class NodeType(str, Enum):
    """
    Known audio graph node types.

    The value is the type string used in documents.
    """

    # Synthesizers
    SYNTH = "Synth"
    POLY_SYNTH = "PolySynth"
    MONO_SYNTH = "MonoSynth"
    AM_SYNTH = "AMSynth"
    FM_SYNTH = "FMSynth"
    DUO_SYNTH = "DuoSynth"
    PLUCK_SYNTH = "PluckSynth"
    NOISE_SYNTH = "NoiseSynth"
    SAMPLER = "Sampler"

    # Effects
    FILTER = "Filter"
    AUTO_FILTER = "AutoFilter"
    REVERB = "Reverb"
    FEEDBACK_DELAY = "FeedbackDelay"
    PING_PONG_DELAY = "PingPongDelay"
    DELAY = "Delay"
    CHORUS = "Chorus"
    PHASER = "Phaser"
    TREMOLO = "Tremolo"
    VIBRATO = "Vibrato"
    AUTO_WAH = "AutoWah"
    DISTORTION = "Distortion"
    CHEBYSHEV = "Chebyshev"
    BIT_CRUSHER = "BitCrusher"
    COMPRESSOR = "Compressor"
    LIMITER = "Limiter"
    GATE = "Gate"
    FREQUENCY_SHIFTER = "FrequencyShifter"
    PITCH_SHIFT = "PitchShift"
    JC_REVERB = "JCReverb"
    FREEVERB = "Freeverb"
    STEREO_WIDENER = "StereoWidener"
    MID_SIDE_COMPRESSOR = "MidSideCompressor"

    # Sink
    DESTINATION = "Destination"

    @property
    def kind(self) -> NodeKind:
        """Role of this node type in the graph."""
        if self in SYNTH_NODE_TYPES:
            return NodeKind.SYNTH
        if self is NodeType.DESTINATION:
            return NodeKind.SINK
        return NodeKind.EFFECT

    @classmethod
    def parse(cls, value: str) -> "NodeType | None":
        """Look up a node type by its document string, None if unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


SYNTH_NODE_TYPES: frozenset[NodeType] = frozenset(
    {
        NodeType.SYNTH,
        NodeType.POLY_SYNTH,
        NodeType.MONO_SYNTH,
        NodeType.AM_SYNTH,
        NodeType.FM_SYNTH,
        NodeType.DUO_SYNTH,
        NodeType.PLUCK_SYNTH,
        NodeType.NOISE_SYNTH,
        NodeType.SAMPLER,
    }
)


def classify_node_type(type_name: str | None) -> NodeKind:
    """Classify a node type string, falling back to UNKNOWN."""
    if not type_name:
        return NodeKind.UNKNOWN
    node_type = NodeType.parse(type_name)
    if node_type is None:
        return NodeKind.UNKNOWN
    return node_type.kind


class ModulationType(str, Enum):
    """Per-note modulation kinds."""

    CC = "cc"
    PITCH_BEND = "pitchBend"
    AFTERTOUCH = "aftertouch"


class AnnotationType(str, Enum):
    """Annotation kinds understood by the encoders."""

    COMMENT = "comment"
    LYRIC = "lyric"
    MARKER = "marker"
    REHEARSAL = "rehearsal"


class OutputFormat(str, Enum):
    """Target formats produced by the encoders."""

    MIDI = "midi"
    ABC = "abc"
    SUPERCOLLIDER = "supercollider"


# Time-expression units accepted in "<n><unit>" tokens
TimeUnit = Literal["n", "m", "h", "q", "w", "t", "s"]

# Numeric durations (in beats) with a named note value
NUMERIC_DURATION_TOKENS: dict[float, str] = {
    0.25: "16n",
    0.5: "8n",
    1: "4n",
    2: "2n",
    4: "1n",
}

# General MIDI programs for synth node types
SYNTH_PROGRAMS: dict[NodeType, int] = {
    NodeType.SYNTH: 80,  # Lead 1 (square)
    NodeType.POLY_SYNTH: 88,  # Pad 1 (new age)
    NodeType.MONO_SYNTH: 81,  # Lead 2 (sawtooth)
    NodeType.AM_SYNTH: 82,  # Lead 3 (calliope)
    NodeType.FM_SYNTH: 83,  # Lead 4 (chiff)
    NodeType.DUO_SYNTH: 84,  # Lead 5 (charang)
    NodeType.PLUCK_SYNTH: 24,  # Acoustic guitar (nylon)
    NodeType.NOISE_SYNTH: 120,  # Reverse cymbal
    NodeType.SAMPLER: 0,  # Acoustic grand piano
}


class ErrorMessages:
    """Standardized error messages."""

    MISSING_FIELD = "Missing required field: {field}"
    INVALID_FORMAT = "Invalid format: expected '{expected}', got '{actual}'"
    NON_POSITIVE_BPM = "bpm must be greater than 0, got {bpm}"
    MISSING_SEQUENCES = "Missing or invalid sequences array"
    MISSING_NOTES = "Missing or invalid notes array"
    MISSING_SYNTH = "Missing synth or synthRef definition"
    MALFORMED_CONNECTION = "Must be a list with exactly 2 elements [source, target]"
    INVALID_CHANNEL = "MIDI channel must be 0-15, got {channel}"
    INVALID_MODULATION = "Invalid modulation type: {type}"


class WarningMessages:
    """Standardized warning messages."""

    BPM_RANGE = "BPM should be between 20-400, got {bpm}"
    VELOCITY_RANGE = "Velocity should be between 0.0-1.0, got {velocity}"
    UNKNOWN_SOURCE = "Source '{node}' not found in audioGraph"
    UNKNOWN_TARGET = "Target '{node}' not found in audioGraph"
    UNKNOWN_NODE_TYPE = "Unknown node type '{type}'"
    DUPLICATE_NODE = "Duplicate node id '{node}'"
    CC_WITHOUT_CONTROLLER = "cc modulation has no controller number"
    UNKNOWN_SYNTH_REF = "synthRef '{ref}' not found in audioGraph"
    KEY_SIGNATURE_FORMAT = "Key signature '{key}' should look like 'C', 'F#', 'Bb' or 'Am'"
    TEMPO_MAP_TIME = "Tempo change has no time"
    TEMPO_MAP_BPM = "Tempo change bpm should be between 20-400, got {bpm}"
    LOOP_WITHOUT_END = "Loop enabled without loopEnd; loop length is derived from the notes"
