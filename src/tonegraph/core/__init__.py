"""
Core music primitives.

- SpelledPitch: A parsed note name (letter, accidental, octave)
- KeySignature: Key names with their sharps/flats and mode
"""

from tonegraph.core.keys import KeySignature
from tonegraph.core.pitch import (
    SpelledPitch,
    frequency_to_midi,
    note_name_to_midi,
    parse_note_name,
    resolve_pitch,
    spell_midi,
)

__all__ = [
    # Pitch
    "SpelledPitch",
    "parse_note_name",
    "note_name_to_midi",
    "frequency_to_midi",
    "resolve_pitch",
    "spell_midi",
    # Keys
    "KeySignature",
]
