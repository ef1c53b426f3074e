"""
Composition builder - programmatic construction of a Composition.

The builder collects nodes, sequences and events, then build() produces the
frozen Composition. Defaults are applied here (and in the Normalizer) only.

Example:
    builder = CompositionBuilder(name="Sketch", bpm=96)
    builder.add_sequence(label="lead", notes=[{"note": "C4", "time": 0, "duration": "4n"}])
    composition = builder.build()
"""

from __future__ import annotations

import logging
from typing import Any

from tonegraph.constants import (
    DEFAULT_BPM,
    DEFAULT_KEY_SIGNATURE,
    DEFAULT_TIME_SIGNATURE,
    FORMAT_IDENTIFIER,
    FORMAT_VERSION,
    MASTER_NODE_ID,
    AnnotationType,
    NodeType,
)
from tonegraph.models.composition import (
    Annotation,
    AudioGraphNode,
    AutomationEvent,
    Composition,
    CustomPreset,
    EffectSpec,
    KeySignatureChange,
    Metadata,
    NoteEvent,
    Sequence,
    SynthSpec,
    TempoChange,
    TimeExpression,
    TimeSignatureChange,
)

logger = logging.getLogger(__name__)

DEFAULT_NAME = "Untitled Composition"
DEFAULT_AUTHOR = "Unknown"

# Inline synth given to sequences created without one
DEFAULT_SEQUENCE_SYNTH: dict[str, Any] = {
    "type": NodeType.SYNTH.value,
    "options": {
        "oscillator": {"type": "sine"},
        "envelope": {"attack": 0.01, "decay": 0.1, "sustain": 0.3, "release": 1},
    },
}


class CompositionBuilder:
    """
    Accumulates the parts of a composition.

    Starts with a single "master" Destination node, like a fresh document.
    """

    def __init__(
        self,
        name: str = DEFAULT_NAME,
        author: str = DEFAULT_AUTHOR,
        bpm: float = DEFAULT_BPM,
        key_signature: str = DEFAULT_KEY_SIGNATURE,
        time_signature: str = DEFAULT_TIME_SIGNATURE,
        description: str | None = None,
    ):
        if bpm <= 0:
            raise ValueError(f"bpm must be greater than 0, got {bpm}")
        self.metadata = Metadata(name=name, author=author, description=description)
        self.bpm = bpm
        self.key_signature = key_signature
        self.time_signature = time_signature

        self.audio_graph: list[AudioGraphNode] = [
            AudioGraphNode(id=MASTER_NODE_ID, type=NodeType.DESTINATION.value)
        ]
        self.connections: list[list[str]] = []
        self.sequences: list[Sequence] = []
        self.automation: list[AutomationEvent] = []
        self.annotations: list[Annotation] = []
        self.tempo_map: list[TempoChange] = []
        self.time_signature_map: list[TimeSignatureChange] = []
        self.key_signature_map: list[KeySignatureChange] = []
        self.custom_presets: list[CustomPreset] = []

    def add_node(
        self,
        type: str = NodeType.SYNTH.value,
        id: str | None = None,
        options: dict[str, Any] | None = None,
        target: str | None = None,
        preset_ref: str | None = None,
    ) -> AudioGraphNode:
        """
        Add an audio graph node.

        Args:
            type: Node type (Synth, Reverb, ...)
            id: Node id (default: node_<index>)
            options: Node parameters
            target: Parameter path for modulator nodes
            preset_ref: Custom preset id

        Returns:
            The created node
        """
        node = AudioGraphNode(
            id=id or f"node_{len(self.audio_graph)}",
            type=type,
            options=options or {},
            target=target,
            preset_ref=preset_ref,
        )
        if node.id in {n.id for n in self.audio_graph}:
            logger.warning("Duplicate node id %r added to audio graph", node.id)
        self.audio_graph.append(node)
        return node

    def add_connection(self, source: str, target: str = MASTER_NODE_ID) -> list[str]:
        """Route a node's output into another node (default: master)."""
        connection = [source, target]
        self.connections.append(connection)
        return connection

    def add_sequence(
        self,
        label: str | None = None,
        notes: list[NoteEvent | dict[str, Any]] | None = None,
        synth_ref: str | None = None,
        synth: SynthSpec | dict[str, Any] | None = None,
        effects: list[EffectSpec | dict[str, Any]] | None = None,
        midi_channel: int | None = None,
        loop: bool | int | float | str = False,
        loop_end: TimeExpression | None = None,
        group: str | None = None,
    ) -> Sequence:
        """
        Add a sequence of notes.

        A sequence without synth_ref or synth gets an inline sine Synth.

        Returns:
            The created sequence
        """
        if synth_ref is None and synth is None:
            synth = DEFAULT_SEQUENCE_SYNTH

        sequence = Sequence.model_validate(
            {
                "label": label or f"Sequence {len(self.sequences) + 1}",
                "notes": [_as_dict(note) for note in notes or []],
                "synth_ref": synth_ref,
                "synth": _as_dict(synth) if synth_ref is None else None,
                "effects": [_as_dict(effect) for effect in effects or []],
                "midi_channel": midi_channel,
                "loop": loop,
                "loop_end": loop_end,
                "group": group,
            }
        )
        self.sequences.append(sequence)
        return sequence

    def add_automation(self, target: str, time: TimeExpression, value: float) -> AutomationEvent:
        """Add a parameter automation point."""
        event = AutomationEvent(target=target, time=time, value=value)
        self.automation.append(event)
        return event

    def add_annotation(
        self,
        text: str,
        time: TimeExpression = 0,
        type: str = AnnotationType.COMMENT.value,
        duration: TimeExpression | None = None,
    ) -> Annotation:
        """Attach text (comment, lyric, marker, rehearsal) at a time."""
        annotation = Annotation(text=text, time=time, type=type, duration=duration)
        self.annotations.append(annotation)
        return annotation

    def add_tempo_change(self, time: TimeExpression, bpm: float) -> TempoChange:
        """Add a tempo map breakpoint."""
        if bpm <= 0:
            raise ValueError(f"bpm must be greater than 0, got {bpm}")
        change = TempoChange(time=time, bpm=bpm)
        self.tempo_map.append(change)
        return change

    def add_time_signature_change(self, time: TimeExpression, time_signature: str) -> TimeSignatureChange:
        change = TimeSignatureChange(time=time, time_signature=time_signature)
        self.time_signature_map.append(change)
        return change

    def add_key_signature_change(self, time: TimeExpression, key_signature: str) -> KeySignatureChange:
        change = KeySignatureChange(time=time, key_signature=key_signature)
        self.key_signature_map.append(change)
        return change

    def add_preset(self, id: str, type: str | None = None, options: dict[str, Any] | None = None) -> CustomPreset:
        preset = CustomPreset(id=id, type=type, options=options or {})
        self.custom_presets.append(preset)
        return preset

    def build(self) -> Composition:
        """Produce the frozen Composition."""
        return Composition(
            format_id=FORMAT_IDENTIFIER,
            version=FORMAT_VERSION,
            bpm=self.bpm,
            key_signature=self.key_signature,
            time_signature=self.time_signature,
            metadata=self.metadata,
            audio_graph=list(self.audio_graph),
            connections=[list(c) for c in self.connections],
            custom_presets=list(self.custom_presets),
            sequences=list(self.sequences),
            automation=list(self.automation),
            annotations=list(self.annotations),
            tempo_map=list(self.tempo_map),
            time_signature_map=list(self.time_signature_map),
            key_signature_map=list(self.key_signature_map),
        )


def _as_dict(value: Any) -> Any:
    """Model instances to plain dicts so they validate into the target model."""
    if hasattr(value, "model_dump"):
        return value.model_dump(exclude_none=True)
    return value


def create_basic_composition(
    name: str = DEFAULT_NAME,
    author: str = DEFAULT_AUTHOR,
    bpm: float = DEFAULT_BPM,
    key_signature: str = DEFAULT_KEY_SIGNATURE,
    time_signature: str = DEFAULT_TIME_SIGNATURE,
) -> Composition:
    """An empty composition with a master Destination node."""
    return CompositionBuilder(name, author, bpm, key_signature, time_signature).build()
