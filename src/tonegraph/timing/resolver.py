"""
Time resolution - time-expressions to absolute seconds.

A time-expression is one of:
- a number: seconds, taken literally
- "bar:beat[:tick]": bars use the time signature numerator, 480 ticks per beat
- "<n><unit>": a note value (n: 1/n note, m: measures, h: half notes,
  q: quarters, w: wholes, t: 1/n triplet, s: sixteenths)
- a numeric string: seconds

The first two musical forms depend on tempo. Inside a composition they are
measured on the beat grid at the base bpm and mapped through the tempo map,
so a tempo change stretches everything after it.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Mapping
from functools import lru_cache
from typing import Any, TypeVar

from tonegraph.constants import (
    DEFAULT_BPM,
    DEFAULT_DURATION,
    DEFAULT_TIME_SIGNATURE,
    DEFAULT_VELOCITY,
    MAX_LOOP_REPETITIONS,
    TICKS_PER_BEAT,
)
from tonegraph.models.composition import (
    AudioGraphNode,
    Composition,
    EffectSpec,
    Metadata,
    NoteEvent,
    Sequence,
    SynthSpec,
    TempoChange,
    TimeExpression,
    parse_time_signature,
)
from tonegraph.models.resolved import (
    ResolvedAnnotation,
    ResolvedAutomation,
    ResolvedComposition,
    ResolvedKeySignature,
    ResolvedModulation,
    ResolvedNote,
    ResolvedSequence,
    ResolvedTempoChange,
    ResolvedTimeSignature,
)
from tonegraph.modulation import ControllerMap
from tonegraph.timing.tempo import TempoBreakpoint, TempoMap

logger = logging.getLogger(__name__)

# Anything that can carry a presetRef
PresetTarget = TypeVar("PresetTarget", AudioGraphNode, SynthSpec, EffectSpec)

# "<n><unit>", n may be decimal ("1.5n")
_TOKEN_RE = re.compile(r"^(\d+(?:\.\d+)?|\.\d+)([nmhqwts])$")


def _token_seconds(value: float, unit: str, beat: float) -> float | None:
    if unit == "n":
        return beat * 4 / value if value else None
    if unit == "t":
        return beat * (4 / value) * (2 / 3) if value else None
    if unit in ("m", "w"):
        return beat * 4 * value
    if unit == "h":
        return beat * 2 * value
    if unit == "q":
        return beat * value
    # s: sixteenths
    return beat * value / 4


@lru_cache(maxsize=4096)
def _parse_time_string(text: str, bpm: float, beats_per_bar: int) -> float | None:
    beat = 60.0 / bpm
    text = text.strip()

    token = _TOKEN_RE.match(text)
    if token:
        return _token_seconds(float(token.group(1)), token.group(2), beat)

    if ":" in text:
        parts = text.split(":")
        if len(parts) > 3:
            return None
        try:
            values = [float(part) if part.strip() else 0.0 for part in parts]
        except ValueError:
            return None
        bars, beats, ticks = (values + [0.0, 0.0])[:3]
        return bars * beats_per_bar * beat + beats * beat + ticks * (beat / TICKS_PER_BEAT)

    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_time(
    expr: TimeExpression | None,
    bpm: float = DEFAULT_BPM,
    beats_per_bar: int = 4,
) -> float | None:
    """
    Resolve a time-expression to seconds, None when it cannot be parsed.

    String parsing is memoized per (expression, bpm, beats_per_bar).
    """
    if isinstance(expr, bool) or expr is None:
        return None
    if isinstance(expr, (int, float)):
        return float(expr)
    if not isinstance(expr, str):
        return None
    if bpm <= 0:
        bpm = DEFAULT_BPM
    return _parse_time_string(expr, float(bpm), beats_per_bar)


def resolve_time(
    expr: TimeExpression | None,
    bpm: float = DEFAULT_BPM,
    beats_per_bar: int = 4,
    log: logging.Logger | None = None,
) -> float:
    """
    Resolve a time-expression to seconds.

    Total: unparseable expressions resolve to 0.0 with a logged warning.

    Examples:
        resolve_time(5.0, 90)    -> 5.0
        resolve_time("4n", 120)  -> 0.5
        resolve_time("1:0", 120) -> 2.0
    """
    seconds = parse_time(expr, bpm, beats_per_bar)
    if seconds is None:
        (log or logger).warning("Could not parse time expression %r, using 0", expr)
        return 0.0
    return seconds


def is_musical_time(expr: TimeExpression | None) -> bool:
    """True for tempo-relative expressions ("<n><unit>" or "bar:beat[:tick]")."""
    if not isinstance(expr, str):
        return False
    text = expr.strip()
    return bool(_TOKEN_RE.match(text)) or ":" in text


def _entry_field(entry: TempoChange | Mapping[str, Any], name: str) -> Any:
    if isinstance(entry, Mapping):
        return entry.get(name)
    return getattr(entry, name, None)


def resolve_tempo_at(
    tempo_map: Iterable[TempoChange | Mapping[str, Any]],
    t: float,
    default_bpm: float = DEFAULT_BPM,
    beats_per_bar: int = 4,
    log: logging.Logger | None = None,
) -> float:
    """
    The tempo in effect at time t (seconds).

    Step function: the bpm of the last entry whose resolved time is <= t.
    Entries at equal times resolve to the last one in array order. Entry
    times are resolved at default_bpm; entries without a positive bpm are
    skipped.
    """
    log = log or logger
    entries: list[tuple[float, float]] = []
    for entry in tempo_map:
        bpm = _entry_field(entry, "bpm")
        if isinstance(bpm, bool) or not isinstance(bpm, (int, float)) or bpm <= 0:
            log.warning("Skipping tempo change with invalid bpm %r", bpm)
            continue
        time = resolve_time(_entry_field(entry, "time") or 0, default_bpm, beats_per_bar, log)
        entries.append((time, float(bpm)))

    current = float(default_bpm)
    for time, bpm in sorted(entries, key=lambda entry: entry[0]):
        if time <= t:
            current = bpm
        else:
            break
    return current


class TimeResolver:
    """
    Resolves every temporal field of one composition.

    Resolution fallbacks are logged and collected in `warnings`.
    """

    def __init__(
        self,
        composition: Composition,
        controller_map: ControllerMap | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.composition = composition
        self.controller_map = controller_map
        self.log = log or logger
        self.warnings: list[str] = []

        bpm = composition.bpm
        if bpm is None or bpm <= 0:
            self._warn("Invalid bpm %r, using %d", bpm, DEFAULT_BPM)
            bpm = DEFAULT_BPM
        self.bpm = float(bpm)
        self.beats_per_bar = composition.beats_per_bar

        self._breakpoints = self._tempo_breakpoints()
        self.tempo_map = TempoMap.from_changes(self.bpm, self._breakpoints)
        self.audio_graph = tuple(self.apply_preset(node) for node in composition.audio_graph)

    def _warn(self, message: str, *args: Any) -> None:
        text = message % args if args else message
        self.log.warning(text)
        self.warnings.append(text)

    # --- Expression helpers ---

    def seconds(self, expr: TimeExpression | None, bpm: float | None = None) -> float:
        """Plain resolution at a fixed bpm (the base bpm by default)."""
        value = parse_time(expr, bpm or self.bpm, self.beats_per_bar)
        if value is None:
            self._warn("Could not parse time expression %r, using 0", expr)
            return 0.0
        return value

    def beats(self, expr: TimeExpression | None) -> float:
        """Length of a musical expression in beats."""
        return self.seconds(expr) * self.bpm / 60.0

    def point(self, expr: TimeExpression | None) -> float:
        """Absolute seconds of a time point."""
        if self.tempo_map.is_constant or not is_musical_time(expr):
            return self.seconds(expr)
        return self.tempo_map.beats_to_seconds(self.beats(expr))

    def span(self, start: float, expr: TimeExpression | None) -> float:
        """Seconds covered by a duration that starts at `start` seconds."""
        if self.tempo_map.is_constant or not is_musical_time(expr):
            return self.seconds(expr)
        start_beat = self.tempo_map.seconds_to_beats(start)
        return self.tempo_map.duration_seconds(start_beat, self.beats(expr))

    # --- Global maps ---

    def _tempo_breakpoints(self) -> list[TempoBreakpoint]:
        breakpoints = []
        for change in self.composition.tempo_map:
            if change.bpm is None or change.bpm <= 0:
                self._warn("Skipping tempo change with invalid bpm %r", change.bpm)
                continue
            if change.time is None:
                self._warn("Tempo change without time, placing it at 0")
            if is_musical_time(change.time):
                # Musical times are measured on the beat grid at the base tempo
                breakpoints.append(TempoBreakpoint(self.beats(change.time), change.bpm))
            else:
                seconds = self.seconds(change.time or 0)
                breakpoints.append(TempoBreakpoint(seconds, change.bpm, in_seconds=True))
        return breakpoints

    def resolve_tempo_changes(self) -> tuple[ResolvedTempoChange, ...]:
        return tuple(
            ResolvedTempoChange(
                time=self.tempo_map.beats_to_seconds(segment.start_beat),
                bpm=segment.bpm,
                beat=segment.start_beat,
            )
            for segment in self.tempo_map.segments[1:]
        )

    def resolve_time_signatures(self) -> tuple[ResolvedTimeSignature, ...]:
        changes = []
        for entry in self.composition.time_signature_map:
            numerator, denominator = parse_time_signature(entry.time_signature)
            changes.append(ResolvedTimeSignature(self.point(entry.time or 0), numerator, denominator))
        return tuple(sorted(changes, key=lambda change: change.time))

    def resolve_key_signatures(self) -> tuple[ResolvedKeySignature, ...]:
        changes = [
            ResolvedKeySignature(self.point(entry.time or 0), entry.key_signature)
            for entry in self.composition.key_signature_map
        ]
        return tuple(sorted(changes, key=lambda change: change.time))

    # --- Presets ---

    def apply_preset(self, target: PresetTarget) -> PresetTarget:
        """
        Merge a node or inline synth with the custom preset it references.

        The preset supplies the type (unless the target sets one) and base
        options; the target's own options win.
        """
        if not target.preset_ref:
            return target
        preset = self.composition.get_preset(target.preset_ref)
        if preset is None:
            self._warn("Custom preset %r not found", target.preset_ref)
            return target
        node_type = target.type if "type" in target.model_fields_set and target.type else preset.type
        return target.model_copy(
            update={"type": node_type or target.type, "options": {**preset.options, **target.options}}
        )

    # --- Sequences ---

    def _synth_type(self, sequence: Sequence, synth: SynthSpec | None) -> str | None:
        if synth is not None:
            return synth.type
        if sequence.synth_ref:
            for node in self.audio_graph:
                if node.id == sequence.synth_ref:
                    return node.type
        return None

    def resolve_note(self, note: NoteEvent, index: int, synth_type: str | None = None) -> ResolvedNote:
        """Resolve one note; missing fields take the documented defaults."""
        start = self.point(note.time if note.time is not None else 0)
        duration_expr = note.duration if note.duration is not None else DEFAULT_DURATION
        duration = self.span(start, duration_expr)
        if duration < 0:
            self._warn("Negative duration %r on note %d, using 0", duration_expr, index)
            duration = 0.0

        local_bpm = self.tempo_map.bpm_at_seconds(start)
        modulations = []
        for mod in note.modulations:
            if not mod.type:
                self._warn("Skipping modulation without type on note %d", index)
                continue
            value = mod.value if mod.value is not None else 0.0
            offset = self.seconds(mod.time if mod.time is not None else 0, local_bpm)
            mapped = None
            if self.controller_map is not None:
                mapped = self.controller_map.map(mod.type, value, mod.controller, synth_type)
            modulations.append(
                ResolvedModulation(
                    type=mod.type,
                    value=value,
                    offset=offset,
                    time=start + offset,
                    controller=mod.controller,
                    parameter=mapped.target if mapped else None,
                    parameter_value=mapped.value if mapped else None,
                )
            )

        return ResolvedNote(
            pitches=tuple(note.pitches),
            start=start,
            duration=duration,
            velocity=note.velocity if note.velocity is not None else DEFAULT_VELOCITY,
            index=index,
            is_chord=note.is_chord,
            articulation=note.articulation,
            microtuning=note.microtuning,
            channel=note.channel,
            modulations=tuple(modulations),
        )

    def resolve_sequence(self, sequence: Sequence, index: int) -> ResolvedSequence:
        """Resolve notes and loop boundaries of one sequence."""
        synth = self.apply_preset(sequence.synth) if sequence.synth else None
        synth_type = self._synth_type(sequence, synth)
        notes = tuple(
            self.resolve_note(note, i, synth_type) for i, note in enumerate(sequence.notes or [])
        )
        notes_end = max((note.end for note in notes), default=0.0)

        loop_length: float | None = None
        loop_end: float | None = None
        explicit = False
        if sequence.is_looping:
            if sequence.loop is True:
                if sequence.loop_end is not None:
                    loop_length = self.point(sequence.loop_end)
                else:
                    loop_length = notes_end
            else:
                explicit = True
                loop_length = self.span(0.0, sequence.loop)
            loop_end = self.point(sequence.loop_end) if sequence.loop_end is not None else loop_length

        return ResolvedSequence(
            label=sequence.label or f"Sequence {index + 1}",
            notes=notes,
            synth_ref=sequence.synth_ref,
            synth=synth,
            effects=tuple(self.apply_preset(effect) for effect in sequence.effects),
            loop=sequence.is_looping,
            loop_length=loop_length,
            loop_end=loop_end,
            explicit_loop_length=explicit,
            midi_channel=sequence.midi_channel,
            group=sequence.group,
        )

    # --- Automation and annotations ---

    def resolve_automation(self) -> tuple[ResolvedAutomation, ...]:
        events = []
        for event in self.composition.automation:
            if not event.target:
                self._warn("Skipping automation event without target")
                continue
            events.append(
                ResolvedAutomation(
                    target=event.target,
                    time=self.point(event.time if event.time is not None else 0),
                    value=event.value if event.value is not None else 0.0,
                )
            )
        return tuple(events)

    def resolve_annotations(self) -> tuple[ResolvedAnnotation, ...]:
        annotations = []
        for annotation in self.composition.annotations:
            time = self.point(annotation.time if annotation.time is not None else 0)
            duration = None
            if annotation.duration is not None:
                duration = self.span(time, annotation.duration)
            annotations.append(ResolvedAnnotation(annotation.text, annotation.type, time, duration))
        return tuple(annotations)

    def resolve(self) -> ResolvedComposition:
        """Resolve the whole composition."""
        composition = self.composition
        sequences = tuple(
            self.resolve_sequence(sequence, i)
            for i, sequence in enumerate(composition.sequences or [])
        )
        tempo_changes = self.resolve_tempo_changes()
        time_signatures = self.resolve_time_signatures()
        key_signatures = self.resolve_key_signatures()
        automation = self.resolve_automation()
        annotations = self.resolve_annotations()

        return ResolvedComposition(
            source=composition,
            bpm=self.bpm,
            time_signature=composition.time_signature or DEFAULT_TIME_SIGNATURE,
            beats_per_bar=self.beats_per_bar,
            tempo_map=self.tempo_map,
            key_signature=composition.key_signature,
            metadata=composition.metadata or Metadata(),
            audio_graph=self.audio_graph,
            connections=tuple(tuple(connection) for connection in composition.connections),
            sequences=sequences,
            tempo_changes=tempo_changes,
            time_signatures=time_signatures,
            key_signatures=key_signatures,
            automation=automation,
            annotations=annotations,
            warnings=tuple(self.warnings),
        )


def resolve_composition(
    composition: Composition,
    controller_map: ControllerMap | None = None,
    log: logging.Logger | None = None,
) -> ResolvedComposition:
    """
    Resolve every time-expression in a composition to absolute seconds.

    Args:
        composition: A (validated) composition
        controller_map: Table used to attach synthesis parameters to
            modulations; None skips the mapping
        log: Logger for resolution fallbacks

    Returns:
        ResolvedComposition
    """
    return TimeResolver(composition, controller_map, log).resolve()


def calculate_duration(resolved: ResolvedComposition) -> float:
    """
    Total duration in seconds.

    The longest explicit loop length wins when there is one; otherwise the
    end of the last note.
    """
    longest_loop = max(
        (
            seq.loop_length or 0.0
            for seq in resolved.sequences
            if seq.loop and seq.explicit_loop_length
        ),
        default=0.0,
    )
    if longest_loop > 0:
        return longest_loop
    return resolved.end_time


def expand_loop_notes(
    sequence: ResolvedSequence,
    total_duration: float,
    log: logging.Logger | None = None,
) -> tuple[ResolvedNote, ...]:
    """
    The sequence's notes with loop repetitions up to total_duration.

    Repetitions are copies shifted by whole loop lengths; copies that would
    start at or after total_duration are dropped.
    """
    length = sequence.loop_length
    if not sequence.loop or not length or length <= 0:
        return sequence.notes

    expanded = list(sequence.notes)
    repetitions = math.ceil(total_duration / length)
    if repetitions > MAX_LOOP_REPETITIONS:
        (log or logger).warning(
            "Loop of %s repeats %d times, capping at %d",
            sequence.label,
            repetitions,
            MAX_LOOP_REPETITIONS,
        )
        repetitions = MAX_LOOP_REPETITIONS

    for repeat in range(1, repetitions):
        offset = repeat * length
        for note in sequence.notes:
            if note.start + offset < total_duration:
                expanded.append(note.shifted(offset, repeat))
    return tuple(expanded)
