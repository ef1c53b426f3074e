"""
Pitch primitives - note-name parsing, spelling and MIDI conversion.

Note names follow scientific pitch notation: C4 = MIDI 60.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass

from tonegraph.constants import DEFAULT_PITCH

logger = logging.getLogger(__name__)

# Sharp spelling per pitch class
_SHARP_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

_LETTER_SEMITONES: dict[str, int] = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}

# Letter, optional accidental, signed octave
_NOTE_NAME_RE = re.compile(r"^([A-G])(#|b)?(-?\d+)$")


@dataclass(frozen=True)
class SpelledPitch:
    """A note name broken into letter, accidental and octave."""

    letter: str  # A-G
    accidental: str  # "", "#" or "b"
    octave: int

    @property
    def semitone_offset(self) -> int:
        """Semitones above C in the same octave (Cb = -1, B# = 12)."""
        shift = {"#": 1, "b": -1}.get(self.accidental, 0)
        return _LETTER_SEMITONES[self.letter] + shift

    def to_midi(self) -> int:
        """MIDI number, clamped to 0-127."""
        return max(0, min(127, self.semitone_offset + (self.octave + 1) * 12))


def parse_note_name(name: str) -> SpelledPitch | None:
    """
    Parse a note name like 'C4', 'F#3' or 'Bb-1'.

    Returns None when the name does not match.
    """
    match = _NOTE_NAME_RE.match(name.strip())
    if not match:
        return None
    letter, accidental, octave = match.groups()
    return SpelledPitch(letter, accidental or "", int(octave))


def spell_midi(midi_note: int) -> SpelledPitch:
    """Sharp spelling of a MIDI number (61 -> C#4)."""
    if not 0 <= midi_note <= 127:
        raise ValueError(f"MIDI note must be 0-127, got {midi_note}")
    name = _SHARP_NAMES[midi_note % 12]
    return SpelledPitch(name[0], name[1:], midi_note // 12 - 1)


def note_name_to_midi(name: str) -> int | None:
    """Convert a note name to a MIDI number, None if the name is invalid."""
    spelled = parse_note_name(name)
    if spelled is None:
        return None
    return spelled.to_midi()


def frequency_to_midi(frequency: float) -> int:
    """Nearest MIDI note for a frequency in Hz (A4 = 440 Hz = 69)."""
    if frequency <= 0:
        raise ValueError(f"Frequency must be positive, got {frequency}")
    return max(0, min(127, round(12 * math.log2(frequency / 440) + 69)))


def resolve_pitch(
    value: int | str,
    log: logging.Logger | None = None,
) -> tuple[int, bool]:
    """
    Resolve a pitch value to a MIDI number.

    Returns (midi, ok). Unresolvable values fall back to DEFAULT_PITCH
    with ok=False and a logged warning.
    """
    log = log or logger
    if isinstance(value, bool):
        log.warning("Invalid pitch %r, using %d", value, DEFAULT_PITCH)
        return DEFAULT_PITCH, False
    if isinstance(value, int):
        if 0 <= value <= 127:
            return value, True
        log.warning("MIDI pitch %d out of range, using %d", value, DEFAULT_PITCH)
        return DEFAULT_PITCH, False
    if isinstance(value, str):
        midi = note_name_to_midi(value)
        if midi is not None:
            return midi, True
    log.warning("Could not resolve note name %r, using %d", value, DEFAULT_PITCH)
    return DEFAULT_PITCH, False
