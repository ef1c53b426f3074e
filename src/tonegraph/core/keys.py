"""
Key signatures - names and their sharp/flat counts.

Keys are written as a tonic with optional accidental and an "m" suffix for
minor: "C", "F#", "Bb", "Am", "C#m", "Ebm".
"""

from __future__ import annotations

from dataclasses import dataclass

# Sharps (positive) or flats (negative) per major key
_MAJOR_KEYS: dict[str, int] = {
    "Cb": -7,
    "Gb": -6,
    "Db": -5,
    "Ab": -4,
    "Eb": -3,
    "Bb": -2,
    "F": -1,
    "C": 0,
    "G": 1,
    "D": 2,
    "A": 3,
    "E": 4,
    "B": 5,
    "F#": 6,
    "C#": 7,
}

# Sharps (positive) or flats (negative) per minor key
_MINOR_KEYS: dict[str, int] = {
    "Abm": -7,
    "Ebm": -6,
    "Bbm": -5,
    "Fm": -4,
    "Cm": -3,
    "Gm": -2,
    "Dm": -1,
    "Am": 0,
    "Em": 1,
    "Bm": 2,
    "F#m": 3,
    "C#m": 4,
    "G#m": 5,
    "D#m": 6,
    "A#m": 7,
}


@dataclass(frozen=True)
class KeySignature:
    """A key with its accidental count."""

    name: str
    accidentals: int  # > 0 sharps, < 0 flats
    minor: bool

    def __post_init__(self) -> None:
        """Validate accidental count."""
        if not -7 <= self.accidentals <= 7:
            raise ValueError(f"Accidentals must be -7..7, got {self.accidentals}")

    @classmethod
    def parse(cls, name: str) -> KeySignature | None:
        """Look up a key by name, None when it is not a standard key."""
        name = name.strip()
        if name in _MAJOR_KEYS:
            return cls(name, _MAJOR_KEYS[name], minor=False)
        if name in _MINOR_KEYS:
            return cls(name, _MINOR_KEYS[name], minor=True)
        return None
