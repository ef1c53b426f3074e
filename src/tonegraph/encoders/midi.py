"""
MIDI export - ResolvedComposition to a Standard MIDI File (format 1).

Layout:
- Track 0 (conductor): name, metadata text, time/key signatures, tempo
  changes and annotations
- Tracks 1..n: one per sequence, with name, program change, notes,
  modulations and microtuning bends

Bytes are produced with ByteWriter; mido is only used to read them back
(midi_file_from_bytes). Same input -> same bytes.
"""

from __future__ import annotations

import io
import logging
import math
import re
from dataclasses import dataclass

from mido import MidiFile

from tonegraph.constants import (
    DEFAULT_PITCH,
    SYNTH_PROGRAMS,
    TICKS_PER_BEAT,
    AnnotationType,
    ModulationType,
    NodeType,
)
from tonegraph.core.keys import KeySignature
from tonegraph.core.pitch import resolve_pitch
from tonegraph.encoders.base import EncodeResult, WarningCollector
from tonegraph.encoders.bytewriter import ByteWriter, encode_variable_length
from tonegraph.models.composition import parse_time_signature
from tonegraph.models.resolved import (
    ResolvedComposition,
    ResolvedModulation,
    ResolvedNote,
    ResolvedSequence,
)
from tonegraph.timing.resolver import calculate_duration, expand_loop_notes

logger = logging.getLogger(__name__)

# GM drum channel (0-indexed); skipped when assigning default channels
DRUM_CHANNEL = 9

# Channel voice status bytes (high nibble)
NOTE_OFF = 0x80
NOTE_ON = 0x90
CONTROL_CHANGE = 0xB0
PROGRAM_CHANGE = 0xC0
CHANNEL_PRESSURE = 0xD0
PITCH_BEND = 0xE0

# Meta event types
META_TEXT = 0x01
META_TRACK_NAME = 0x03
META_LYRIC = 0x05
META_MARKER = 0x06
META_END_OF_TRACK = 0x2F
META_TEMPO = 0x51
META_TIME_SIGNATURE = 0x58
META_KEY_SIGNATURE = 0x59

PITCH_BEND_CENTER = 8192

_ANNOTATION_META: dict[str, int] = {
    AnnotationType.COMMENT.value: META_TEXT,
    AnnotationType.LYRIC.value: META_LYRIC,
    AnnotationType.MARKER.value: META_MARKER,
    AnnotationType.REHEARSAL.value: META_MARKER,
}

_CC_TARGET_RE = re.compile(r"^midi\.cc(\d+)$")
_PITCH_BEND_TARGET = "midi.pitchBend"

_DEFAULT_CHANNELS = [channel for channel in range(16) if channel != DRUM_CHANNEL]


def velocity_to_midi(velocity: float) -> int:
    """Convert velocity from 0.0-1.0 range to 0-127."""
    return max(0, min(127, round(velocity * 127)))


def pitch_bend_bytes(value: float) -> tuple[int, int]:
    """LSB and MSB of a signed bend value (-8192..8191)."""
    raw = max(-PITCH_BEND_CENTER, min(PITCH_BEND_CENTER - 1, round(value))) + PITCH_BEND_CENTER
    return raw & 0x7F, (raw >> 7) & 0x7F


def tempo_to_microseconds(bpm: float) -> int:
    """Microseconds per quarter note."""
    return round(60_000_000 / bpm)


def synth_program(synth_type: str | None) -> int | None:
    """General MIDI program for a synth type, None when the type is unknown."""
    node_type = NodeType.parse(synth_type) if synth_type else None
    if node_type is None:
        return None
    return SYNTH_PROGRAMS.get(node_type)


def default_channel(index: int) -> int:
    """Channel for the index-th sequence when none is set (skips drums)."""
    return _DEFAULT_CHANNELS[index % len(_DEFAULT_CHANNELS)]


@dataclass(frozen=True)
class TrackEvent:
    """A raw event at an absolute tick; order breaks ties."""

    tick: int
    order: int
    data: bytes


class TrackBuilder:
    """Collects events for one MTrk chunk."""

    def __init__(self) -> None:
        self.events: list[TrackEvent] = []

    def add(self, tick: int, data: bytes) -> None:
        self.events.append(TrackEvent(max(0, tick), len(self.events), data))

    def meta(self, tick: int, meta_type: int, payload: bytes) -> None:
        self.add(tick, bytes([0xFF, meta_type]) + encode_variable_length(len(payload)) + payload)

    def text(self, tick: int, meta_type: int, text: str) -> None:
        self.meta(tick, meta_type, text.encode("utf-8"))

    def channel_message(self, tick: int, status: int, channel: int, *data: int) -> None:
        self.add(tick, bytes([status | channel, *data]))

    def to_bytes(self) -> bytes:
        """Delta-timed event stream ending with end-of-track."""
        writer = ByteWriter()
        previous = 0
        for event in sorted(self.events, key=lambda e: (e.tick, e.order)):
            writer.write_variable_length(event.tick - previous).write_bytes(event.data)
            previous = event.tick
        writer.write_variable_length(0).write_bytes(bytes([0xFF, META_END_OF_TRACK, 0x00]))
        return writer.to_bytes()


class MidiEncoder:
    """
    Encodes a ResolvedComposition as Standard MIDI File bytes.

    Example:
        result = MidiEncoder().encode(resolved)
        Path("song.mid").write_bytes(result.output)
    """

    def __init__(
        self,
        ticks_per_beat: int = TICKS_PER_BEAT,
        pitch_bend_range: float = 2.0,
        expand_loops: bool = False,
        log: logging.Logger | None = None,
    ):
        """
        Initialize the encoder.

        Args:
            ticks_per_beat: MIDI resolution
            pitch_bend_range: Bend range in semitones used for microtuning
            expand_loops: Write loop repetitions up to the composition length
            log: Logger for fallbacks
        """
        self.ticks_per_beat = ticks_per_beat
        self.pitch_bend_range = pitch_bend_range
        self.expand_loops = expand_loops
        self.log = log or logger

    def encode(self, resolved: ResolvedComposition) -> EncodeResult[bytes]:
        warnings = WarningCollector(self.log)

        tracks = [self._conductor_track(resolved, warnings)]
        total = calculate_duration(resolved)
        for index, sequence in enumerate(resolved.sequences):
            tracks.append(self._sequence_track(resolved, sequence, index, total, warnings))

        if resolved.automation:
            self._write_automation(resolved, tracks, warnings)

        writer = ByteWriter()
        header = ByteWriter().write_uint16(1).write_uint16(len(tracks)).write_uint16(self.ticks_per_beat)
        writer.write_chunk("MThd", header.to_bytes())
        for track in tracks:
            writer.write_chunk("MTrk", track.to_bytes())

        data = writer.to_bytes()
        self.log.debug("Encoded %d tracks, %d bytes", len(tracks), len(data))
        return EncodeResult(data, warnings.warnings)

    def _tick(self, resolved: ResolvedComposition, seconds: float) -> int:
        return max(0, round(resolved.seconds_to_beats(seconds) * self.ticks_per_beat))

    # --- Conductor track ---

    def _conductor_track(
        self, resolved: ResolvedComposition, warnings: WarningCollector
    ) -> TrackBuilder:
        track = TrackBuilder()
        metadata = resolved.metadata

        if metadata.name:
            track.text(0, META_TRACK_NAME, metadata.name)
            track.text(0, META_TEXT, f"Title: {metadata.name}")
        if metadata.author:
            track.text(0, META_TEXT, f"Composer: {metadata.author}")
        if metadata.description:
            track.text(0, META_TEXT, f"Description: {metadata.description}")

        self._write_time_signature(track, 0, resolved.time_signature, warnings)
        for change in resolved.time_signatures:
            self._write_time_signature(track, self._tick(resolved, change.time), change.text, warnings)

        if resolved.key_signature:
            self._write_key_signature(track, 0, resolved.key_signature, warnings)
        for key_change in resolved.key_signatures:
            self._write_key_signature(
                track, self._tick(resolved, key_change.time), key_change.key, warnings
            )

        track.meta(0, META_TEMPO, tempo_to_microseconds(resolved.tempo_map.initial_bpm).to_bytes(3, "big"))
        for tempo in resolved.tempo_changes:
            tick = round(tempo.beat * self.ticks_per_beat)
            track.meta(tick, META_TEMPO, tempo_to_microseconds(tempo.bpm).to_bytes(3, "big"))

        for annotation in resolved.annotations:
            meta_type = _ANNOTATION_META.get(annotation.type, META_TEXT)
            track.text(self._tick(resolved, annotation.time), meta_type, annotation.text)

        return track

    def _write_time_signature(
        self,
        track: TrackBuilder,
        tick: int,
        text: str,
        warnings: WarningCollector,
    ) -> None:
        numerator, denominator = parse_time_signature(text)
        power = math.log2(denominator)
        if not power.is_integer() or numerator > 255:
            warnings.warn("Time signature %s cannot be written to MIDI, skipping", text)
            return
        # 24 MIDI clocks per metronome click, 8 thirty-seconds per quarter
        track.meta(tick, META_TIME_SIGNATURE, bytes([numerator, int(power), 24, 8]))

    def _write_key_signature(
        self,
        track: TrackBuilder,
        tick: int,
        key: str,
        warnings: WarningCollector,
    ) -> None:
        signature = KeySignature.parse(key)
        if signature is None:
            warnings.warn("Unknown key signature %r, not written to MIDI", key)
            return
        payload = ByteWriter().write_int8(signature.accidentals).write_uint8(int(signature.minor))
        track.meta(tick, META_KEY_SIGNATURE, payload.to_bytes())

    # --- Sequence tracks ---

    def _synth_type(self, resolved: ResolvedComposition, sequence: ResolvedSequence) -> str | None:
        if sequence.synth is not None:
            return sequence.synth.type
        if sequence.synth_ref:
            for node in resolved.audio_graph:
                if node.id == sequence.synth_ref:
                    return node.type
        return None

    def _sequence_track(
        self,
        resolved: ResolvedComposition,
        sequence: ResolvedSequence,
        index: int,
        total: float,
        warnings: WarningCollector,
    ) -> TrackBuilder:
        track = TrackBuilder()
        channel = sequence.midi_channel if sequence.midi_channel is not None else default_channel(index)

        track.text(0, META_TRACK_NAME, sequence.label)

        synth_type = self._synth_type(resolved, sequence)
        program = synth_program(synth_type)
        if program is None:
            self.log.info("No General MIDI program for synth type %r, using 0", synth_type)
            program = 0
        track.channel_message(0, PROGRAM_CHANGE, channel, program)

        notes = sequence.notes
        if self.expand_loops:
            notes = expand_loop_notes(sequence, total, self.log)

        # Earlier notes first, so a note-off never lands after a later note-on at the same tick
        for note in sorted(notes, key=lambda n: n.start):
            self._write_note(resolved, track, note, channel, warnings)
        return track

    def _write_note(
        self,
        resolved: ResolvedComposition,
        track: TrackBuilder,
        note: ResolvedNote,
        default: int,
        warnings: WarningCollector,
    ) -> None:
        channel = note.channel if note.channel is not None else default
        start = self._tick(resolved, note.start)
        end = self._tick(resolved, note.end)
        velocity = velocity_to_midi(note.velocity)

        pitches = []
        for value in note.pitches:
            midi, ok = resolve_pitch(value, self.log)
            if not ok:
                warnings.warnings.append(f"Unresolvable pitch {value!r} replaced with {DEFAULT_PITCH}")
            pitches.append(midi)

        bend = None
        if note.microtuning:
            bend = round(note.microtuning / (self.pitch_bend_range * 100) * PITCH_BEND_CENTER)
            track.channel_message(start, PITCH_BEND, channel, *pitch_bend_bytes(bend))

        for pitch in pitches:
            track.channel_message(start, NOTE_ON, channel, pitch, velocity)

        for modulation in note.modulations:
            self._write_modulation(resolved, track, modulation, channel, warnings)

        for pitch in pitches:
            track.channel_message(end, NOTE_OFF, channel, pitch, 0)

        if bend is not None:
            track.channel_message(end, PITCH_BEND, channel, *pitch_bend_bytes(0))

    def _write_modulation(
        self,
        resolved: ResolvedComposition,
        track: TrackBuilder,
        modulation: ResolvedModulation,
        channel: int,
        warnings: WarningCollector,
    ) -> None:
        tick = self._tick(resolved, modulation.time)
        value = modulation.value
        if modulation.type == ModulationType.CC.value:
            if modulation.controller is None or not 0 <= modulation.controller <= 127:
                warnings.warn("Skipping cc modulation with controller %r", modulation.controller)
                return
            track.channel_message(
                tick, CONTROL_CHANGE, channel, modulation.controller, max(0, min(127, round(value)))
            )
        elif modulation.type == ModulationType.PITCH_BEND.value:
            track.channel_message(tick, PITCH_BEND, channel, *pitch_bend_bytes(value))
        elif modulation.type == ModulationType.AFTERTOUCH.value:
            track.channel_message(tick, CHANNEL_PRESSURE, channel, max(0, min(127, round(value))))
        else:
            warnings.warn("Unsupported modulation type %r, skipping", modulation.type)

    # --- Automation ---

    def _write_automation(
        self,
        resolved: ResolvedComposition,
        tracks: list[TrackBuilder],
        warnings: WarningCollector,
    ) -> None:
        """MIDI automation targets go to the first sequence track, channel 0."""
        midi_events = [
            event
            for event in resolved.automation
            if event.target == _PITCH_BEND_TARGET or _CC_TARGET_RE.match(event.target)
        ]
        if not midi_events:
            return
        if len(tracks) < 2:
            warnings.warn("No sequence track for %d MIDI automation events", len(midi_events))
            return

        track = tracks[1]
        for event in midi_events:
            tick = self._tick(resolved, event.time)
            if event.target == _PITCH_BEND_TARGET:
                track.channel_message(tick, PITCH_BEND, 0, *pitch_bend_bytes(event.value))
                continue
            match = _CC_TARGET_RE.match(event.target)
            controller = int(match.group(1)) if match else -1
            if not 0 <= controller <= 127:
                warnings.warn("Automation target %s is not a valid controller", event.target)
                continue
            track.channel_message(
                tick, CONTROL_CHANGE, 0, controller, max(0, min(127, round(event.value)))
            )


def encode_midi(
    resolved: ResolvedComposition,
    ticks_per_beat: int = TICKS_PER_BEAT,
    pitch_bend_range: float = 2.0,
    expand_loops: bool = False,
    log: logging.Logger | None = None,
) -> EncodeResult[bytes]:
    """
    Convenience function to encode a resolved composition as MIDI.

    Returns:
        EncodeResult with the file bytes and any fallback warnings
    """
    encoder = MidiEncoder(ticks_per_beat, pitch_bend_range, expand_loops, log)
    return encoder.encode(resolved)


def midi_file_from_bytes(data: bytes) -> MidiFile:
    """Parse encoded bytes with mido for inspection."""
    return MidiFile(file=io.BytesIO(data))
