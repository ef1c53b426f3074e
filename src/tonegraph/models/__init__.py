"""
Pydantic models for compositions.

This module provides:
- Composition: The canonical document
- Sequence / NoteEvent / Modulation: Tracks and their events
- AudioGraphNode: Synth, effect and sink nodes
- Resolved*: The same data with every time resolved to seconds
"""

from tonegraph.models.composition import (
    Annotation,
    AudioGraphNode,
    AutomationEvent,
    Composition,
    CustomPreset,
    EffectSpec,
    KeySignatureChange,
    Metadata,
    Modulation,
    NoteEvent,
    Sequence,
    SynthSpec,
    TempoChange,
    TimeSignatureChange,
)
from tonegraph.models.resolved import (
    ResolvedAnnotation,
    ResolvedAutomation,
    ResolvedComposition,
    ResolvedModulation,
    ResolvedNote,
    ResolvedSequence,
)

__all__ = [
    # Document
    "Composition",
    "Metadata",
    "CustomPreset",
    # Graph
    "AudioGraphNode",
    "SynthSpec",
    "EffectSpec",
    # Events
    "Sequence",
    "NoteEvent",
    "Modulation",
    "AutomationEvent",
    "Annotation",
    # Maps
    "TempoChange",
    "TimeSignatureChange",
    "KeySignatureChange",
    # Resolved
    "ResolvedComposition",
    "ResolvedSequence",
    "ResolvedNote",
    "ResolvedModulation",
    "ResolvedAutomation",
    "ResolvedAnnotation",
]
