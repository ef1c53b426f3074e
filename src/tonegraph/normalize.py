"""
Normalizer - coerces loosely shaped input into a canonical Composition.

Shape detection is an ordered list of rules; the first whose predicate
matches transforms the input:

1. canonical      - a Composition, or a mapping tagged with the format id
2. track_mapping  - {"tracks": {"melody": [...], "bass": [...]}}
3. sequence_list  - {"sequences" | "parts" | "tracks": [...]}
4. note_list      - [{"pitch": 60, ...}, ...]
5. single_melody  - {"notes" | "melody": [...]}
6. bare_mapping   - any other mapping: an empty composition

Canonical input passes through without defaults; every other shape gets the
default audio graph (synth -> master), bpm 120 and per-note defaults.
"""

from __future__ import annotations

import copy
import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from tonegraph.constants import (
    DEFAULT_BPM,
    DEFAULT_DURATION,
    DEFAULT_VELOCITY,
    FORMAT_IDENTIFIER,
    FORMAT_VERSION,
    MASTER_NODE_ID,
    NUMERIC_DURATION_TOKENS,
    NodeKind,
    NodeType,
    classify_node_type,
)
from tonegraph.core.pitch import frequency_to_midi
from tonegraph.models.composition import Composition, parse_beats_per_bar

logger = logging.getLogger(__name__)

DEFAULT_SYNTH_ID = "synth"

# Composition-level keys copied verbatim when present
_PASS_THROUGH_KEYS = (
    "tempoMap",
    "timeSignatureMap",
    "keySignatureMap",
    "automation",
    "annotations",
    "customPresets",
)


class UnrecognizedInputError(ValueError):
    """Raised when the input is neither a mapping, a list nor a Composition."""


@dataclass(frozen=True)
class NormalizationRule:
    """A named input shape and how to turn it into a canonical document."""

    name: str
    matches: Callable[[Any], bool]
    transform: Callable[[Any], Composition]


# --- Value helpers ---


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _format_number(value: float) -> str:
    """1.0 -> '1', 1.5 -> '1.5'."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    """Value of the first key present with a non-None value."""
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


# --- Per-note reconciliation ---


def _convert_pitch(note: Mapping[str, Any]) -> Any:
    pitch = note.get("pitch")
    if pitch is None:
        pitch = note.get("note")
    if pitch is not None:
        if _is_number(pitch):
            return int(pitch)
        if isinstance(pitch, (str, list)):
            return pitch
        logger.warning("Ignoring pitch of unsupported type %r", pitch)
        return None

    frequency = note.get("frequency")
    if frequency is not None:
        try:
            return frequency_to_midi(float(frequency))
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid frequency %r", frequency)
    return None


def _convert_time(note: Mapping[str, Any], beats_per_bar: int) -> Any:
    time = note.get("time")
    if time is None:
        time = note.get("start")
        # start is a time-expression already (seconds or musical)
        if _is_number(time) or isinstance(time, str):
            return time
        return 0
    if _is_number(time):
        # Numeric time is in beats
        bars = math.floor(time / beats_per_bar)
        beats = time - bars * beats_per_bar
        return f"{bars}:{_format_number(beats)}:0"
    if isinstance(time, str):
        return time
    logger.warning("Ignoring time of unsupported type %r", time)
    return 0


def _convert_duration(note: Mapping[str, Any]) -> Any:
    duration = _first(note, "duration", "length")
    if duration is None:
        return DEFAULT_DURATION
    if _is_number(duration):
        token = NUMERIC_DURATION_TOKENS.get(duration)
        if token is not None:
            return token
        return f"{_format_number(duration)}n"
    if isinstance(duration, str):
        return duration
    logger.warning("Ignoring duration of unsupported type %r", duration)
    return DEFAULT_DURATION


def _convert_velocity(note: Mapping[str, Any]) -> float:
    velocity = _first(note, "velocity", "volume")
    if velocity is None:
        return DEFAULT_VELOCITY
    if not _is_number(velocity):
        logger.warning("Ignoring velocity of unsupported type %r", velocity)
        return DEFAULT_VELOCITY
    # MIDI-style 0-127 velocities
    return velocity / 127 if velocity > 1 else float(velocity)


def convert_note(note: Any, beats_per_bar: int = 4) -> dict[str, Any]:
    """
    Convert one note-like value to a canonical note document.

    Bare pitches (60, "C4", [60, 64]) are accepted as notes with defaults.
    """
    if not isinstance(note, Mapping):
        if _is_number(note) or isinstance(note, (str, list)):
            note = {"note": note}
        else:
            logger.warning("Ignoring note of unsupported type %r", note)
            note = {}

    converted: dict[str, Any] = {
        "time": _convert_time(note, beats_per_bar),
        "duration": _convert_duration(note),
        "velocity": _convert_velocity(note),
    }
    pitch = _convert_pitch(note)
    if pitch is not None:
        converted["note"] = pitch

    for key in ("channel", "articulation", "microtuning"):
        if note.get(key) is not None:
            converted[key] = note[key]
    modulations = note.get("modulations")
    if isinstance(modulations, list):
        converted["modulations"] = [m for m in modulations if isinstance(m, Mapping)]
    return converted


def convert_notes(notes: Any, beats_per_bar: int = 4) -> list[dict[str, Any]]:
    """Convert a list of note-like values; anything else yields no notes."""
    if not isinstance(notes, list):
        return []
    return [convert_note(note, beats_per_bar) for note in notes]


# --- Composition-level reconciliation ---


def _default_synth_id(audio_graph: list[Any]) -> str:
    for node in audio_graph:
        if isinstance(node, Mapping) and classify_node_type(node.get("type")) == NodeKind.SYNTH:
            return str(node.get("id") or DEFAULT_SYNTH_ID)
    return DEFAULT_SYNTH_ID


def _base_document(data: Mapping[str, Any]) -> dict[str, Any]:
    """Defaults plus every composition-level field present in the input."""
    document: dict[str, Any] = {
        "format": FORMAT_IDENTIFIER,
        "version": FORMAT_VERSION,
        "bpm": DEFAULT_BPM,
    }

    bpm = _first(data, "bpm", "tempo")
    if bpm is not None:
        if _is_number(bpm) and bpm > 0:
            document["bpm"] = bpm
        else:
            logger.warning("Ignoring invalid bpm %r, using %d", bpm, DEFAULT_BPM)

    key = _first(data, "key", "keySignature")
    if isinstance(key, str):
        document["keySignature"] = key
    if isinstance(data.get("timeSignature"), str):
        document["timeSignature"] = data["timeSignature"]

    metadata = dict(data["metadata"]) if isinstance(data.get("metadata"), Mapping) else {}
    if data.get("title") is not None:
        metadata["name"] = str(data["title"])
    author = _first(data, "author", "composer")
    if author is not None:
        metadata["author"] = str(author)
    if data.get("description") is not None:
        metadata["description"] = str(data["description"])
    if metadata:
        document["metadata"] = metadata

    if isinstance(data.get("audioGraph"), list):
        document["audioGraph"] = list(data["audioGraph"])
        document["connections"] = list(data.get("connections") or [])
    else:
        document["audioGraph"] = [
            {"id": DEFAULT_SYNTH_ID, "type": NodeType.SYNTH.value, "options": {}},
            {"id": MASTER_NODE_ID, "type": NodeType.DESTINATION.value, "options": {}},
        ]
        document["connections"] = list(data.get("connections") or [[DEFAULT_SYNTH_ID, MASTER_NODE_ID]])

    for key in _PASS_THROUGH_KEYS:
        if isinstance(data.get(key), list):
            document[key] = list(data[key])

    document["sequences"] = []
    return document


def _sequence_document(
    item: Any,
    index: int,
    synth_id: str,
    beats_per_bar: int,
) -> dict[str, Any]:
    """One sequence from a heterogeneous list item."""
    if not isinstance(item, Mapping):
        return {
            "label": f"sequence{index}",
            "synthRef": synth_id,
            "notes": convert_notes(item, beats_per_bar),
        }

    notes = item.get("notes")
    sequence: dict[str, Any] = {
        "label": str(_first(item, "label", "name") or f"sequence{index}"),
        "notes": convert_notes(notes if notes is not None else [], beats_per_bar),
    }
    if isinstance(item.get("synth"), Mapping):
        sequence["synth"] = dict(item["synth"])
    else:
        sequence["synthRef"] = str(item.get("synthRef") or synth_id)

    channel = _first(item, "midiChannel", "channel")
    if channel is not None:
        sequence["midiChannel"] = channel
    for key in ("loop", "loopEnd", "group"):
        if item.get(key) is not None:
            sequence[key] = item[key]
    if isinstance(item.get("effects"), list):
        sequence["effects"] = [e for e in item["effects"] if isinstance(e, Mapping)]
    return sequence


def _drop_at(document: dict[str, Any], loc: tuple[Any, ...]) -> bool:
    """
    Remove the deepest existing field or list item on an error location.

    Union members and missing required keys in the location stop the walk,
    so the value that holds them is removed instead. Returns False when the
    location does not reach into the document.
    """
    parent: Any = None
    key: Any = None
    container: Any = document
    for part in loc:
        if isinstance(container, dict) and part in container:
            parent, key, container = container, part, container[part]
        elif isinstance(container, list) and isinstance(part, int) and 0 <= part < len(container):
            parent, key, container = container, part, container[part]
        else:
            break
    if parent is None:
        return False
    del parent[key]
    return True


def _build(document: dict[str, Any]) -> Composition:
    """Validate a normalized document, dropping fields of the wrong type."""
    try:
        return Composition.model_validate(document)
    except ValidationError:
        # Pass-through entries still belong to the caller
        document = copy.deepcopy(document)

    while True:
        try:
            return Composition.model_validate(document)
        except ValidationError as exc:
            error = exc.errors()[0]
            loc = tuple(error["loc"])
            if not _drop_at(document, loc):
                raise
            logger.warning(
                "Dropping invalid value at %s: %s",
                ".".join(str(part) for part in loc),
                error["msg"],
            )


# --- Rules ---


def _is_canonical(raw: Any) -> bool:
    if isinstance(raw, Composition):
        return True
    return isinstance(raw, Mapping) and raw.get("format") == FORMAT_IDENTIFIER


def _from_canonical(raw: Any) -> Composition:
    if isinstance(raw, Composition):
        return raw
    return Composition.model_validate(raw)


def _has_track_mapping(raw: Any) -> bool:
    return isinstance(raw, Mapping) and isinstance(raw.get("tracks"), Mapping)


def _from_track_mapping(raw: Mapping[str, Any]) -> Composition:
    document = _base_document(raw)
    beats_per_bar = parse_beats_per_bar(document.get("timeSignature"))
    synth_id = _default_synth_id(document["audioGraph"])
    for name, track in raw["tracks"].items():
        notes = track.get("notes") if isinstance(track, Mapping) else track
        document["sequences"].append(
            {
                "label": str(name),
                "synthRef": synth_id,
                "notes": convert_notes(notes, beats_per_bar),
            }
        )
    return _build(document)


def _has_sequence_list(raw: Any) -> bool:
    if not isinstance(raw, Mapping):
        return False
    return any(isinstance(raw.get(key), list) for key in ("sequences", "parts", "tracks"))


def _from_sequence_list(raw: Mapping[str, Any]) -> Composition:
    document = _base_document(raw)
    beats_per_bar = parse_beats_per_bar(document.get("timeSignature"))
    synth_id = _default_synth_id(document["audioGraph"])
    items = next(raw[key] for key in ("sequences", "parts", "tracks") if isinstance(raw.get(key), list))
    document["sequences"] = [
        _sequence_document(item, index, synth_id, beats_per_bar) for index, item in enumerate(items)
    ]
    return _build(document)


def _is_note_list(raw: Any) -> bool:
    return isinstance(raw, list)


def _from_note_list(raw: list[Any]) -> Composition:
    document = _base_document({})
    document["sequences"] = [
        {"label": "sequence", "synthRef": DEFAULT_SYNTH_ID, "notes": convert_notes(raw)}
    ]
    return _build(document)


def _has_melody(raw: Any) -> bool:
    if not isinstance(raw, Mapping):
        return False
    return isinstance(raw.get("notes"), list) or isinstance(raw.get("melody"), list)


def _from_melody(raw: Mapping[str, Any]) -> Composition:
    document = _base_document(raw)
    beats_per_bar = parse_beats_per_bar(document.get("timeSignature"))
    notes = raw["notes"] if isinstance(raw.get("notes"), list) else raw["melody"]
    document["sequences"] = [
        {
            "label": str(_first(raw, "title", "name") or "sequence"),
            "synthRef": _default_synth_id(document["audioGraph"]),
            "notes": convert_notes(notes, beats_per_bar),
        }
    ]
    return _build(document)


def _is_mapping(raw: Any) -> bool:
    return isinstance(raw, Mapping)


def _from_bare_mapping(raw: Mapping[str, Any]) -> Composition:
    logger.info("No notes found in input, producing an empty composition")
    return _build(_base_document(raw))


NORMALIZATION_RULES: tuple[NormalizationRule, ...] = (
    NormalizationRule("canonical", _is_canonical, _from_canonical),
    NormalizationRule("track_mapping", _has_track_mapping, _from_track_mapping),
    NormalizationRule("sequence_list", _has_sequence_list, _from_sequence_list),
    NormalizationRule("note_list", _is_note_list, _from_note_list),
    NormalizationRule("single_melody", _has_melody, _from_melody),
    NormalizationRule("bare_mapping", _is_mapping, _from_bare_mapping),
)


def match_rule(raw: Any) -> NormalizationRule | None:
    """The first rule whose predicate matches, None if no rule does."""
    for rule in NORMALIZATION_RULES:
        if rule.matches(raw):
            return rule
    return None


def normalize(raw: Any) -> Composition:
    """
    Normalize arbitrary input into a canonical Composition.

    Args:
        raw: A Composition, a JSON-compatible mapping or a list of notes

    Returns:
        Composition (unchanged when the input is already canonical)

    Raises:
        UnrecognizedInputError: If the input is not a mapping or a list
        pydantic.ValidationError: If a canonical document has fields of the
            wrong type
    """
    rule = match_rule(raw)
    if rule is None:
        raise UnrecognizedInputError(
            f"Cannot normalize input of type {type(raw).__name__}: expected a mapping or a list"
        )
    logger.debug("Normalizing input with rule '%s'", rule.name)
    return rule.transform(raw)
