"""
ABC export - ResolvedComposition to ABC notation text.

Header fields are written in a fixed order and the key (K:) always closes
the header. With several sequences each one becomes a voice: V: definitions
and a %%score directive go in the header, and every voice body is preceded
by its V: selector.

Durations are expressed relative to L:1/4, so a quarter note carries no
suffix. Gaps between notes become z rests.
"""

from __future__ import annotations

import logging

from tonegraph.constants import (
    ABC_SOURCE_TAG,
    DEFAULT_KEY_SIGNATURE,
    AnnotationType,
    ModulationType,
)
from tonegraph.core.keys import KeySignature
from tonegraph.core.pitch import SpelledPitch, parse_note_name, resolve_pitch, spell_midi
from tonegraph.encoders.base import EncodeResult, WarningCollector
from tonegraph.models.composition import PitchValue
from tonegraph.models.resolved import ResolvedComposition, ResolvedNote, ResolvedSequence

logger = logging.getLogger(__name__)

# Beat ratio -> duration suffix, checked in order
DURATION_SUFFIXES: list[tuple[float, str]] = [
    (4, "4"),
    (2, "2"),
    (1, ""),
    (0.5, "/2"),
    (0.25, "/4"),
    (0.125, "/8"),
    (1.5, "3/2"),
    (0.75, "3/4"),
    (3, "3"),
    (2 / 3, "2/3"),
    (1 / 3, "/3"),
]
DURATION_TOLERANCE = 0.1

# Accidental prefix per quarter-tone offset from the natural letter
_ACCIDENTALS: dict[int, str] = {
    -3: "_3/2",
    -2: "_",
    -1: "_/",
    0: "",
    1: "^/",
    2: "^",
    3: "^3/2",
}

_ARTICULATIONS: dict[str, str] = {
    "staccato": ".",
    "accent": "!accent!",
    "tenuto": "!tenuto!",
}

# Seconds below which a gap is not worth a rest
_GAP_EPSILON = 1e-6


def duration_suffix(ratio: float) -> str:
    """
    ABC length suffix for a duration in quarter notes.

    Examples:
        1.0 -> ""   (quarter)
        0.5 -> "/2" (eighth)
        1.5 -> "3/2"
        5.0 -> "40/8"

    Anything off the table is written in eighths, never shorter than "1/8".
    """
    for value, suffix in DURATION_SUFFIXES:
        if abs(ratio - value) < DURATION_TOLERANCE:
            return suffix
    return f"{max(1, round(ratio * 8))}/8"


def dynamic_marker(velocity: float) -> str:
    """ABC dynamic decoration for a 0.0-1.0 velocity."""
    if velocity < 0.4:
        return "!p!"
    if velocity < 0.7:
        return "!mp!"
    if velocity < 0.85:
        return "!mf!"
    return "!f!"


def quarter_tone_offset(cents: float | None) -> int:
    """+1 / -1 for a quarter-tone microtuning (25-75 cents), else 0."""
    if not cents:
        return 0
    if 25 <= abs(cents) < 75:
        return 1 if cents > 0 else -1
    return 0


def spelled_to_abc(spelled: SpelledPitch, quarter_tones: int = 0) -> str:
    """
    Write a spelled pitch as an ABC note.

    Octaves 3 and 4 are written uppercase, with one comma per octave below
    3. Octaves 5 and up are lowercase with one apostrophe per octave above 4
    (C2 = "C,", C3 = "C", C5 = "c'", C6 = "c''").
    """
    steps = {"#": 2, "b": -2}.get(spelled.accidental, 0) + quarter_tones
    accidental = _ACCIDENTALS.get(steps, "")

    octave = spelled.octave
    if octave <= 4:
        letter = spelled.letter.upper() + "," * max(0, 3 - octave)
    else:
        letter = spelled.letter.lower() + "'" * (octave - 4)
    return accidental + letter


class AbcEncoder:
    """
    Encodes a ResolvedComposition as ABC notation.

    Example:
        result = AbcEncoder(include_lyrics=True).encode(resolved)
        print(result.output)
    """

    def __init__(
        self,
        source_tag: str = ABC_SOURCE_TAG,
        include_lyrics: bool = False,
        log: logging.Logger | None = None,
    ):
        self.source_tag = source_tag
        self.include_lyrics = include_lyrics
        self.log = log or logger

    def encode(self, resolved: ResolvedComposition) -> EncodeResult[str]:
        warnings = WarningCollector(self.log)
        multi_voice = len(resolved.sequences) > 1

        lines = self._header(resolved, warnings, multi_voice)
        for index, sequence in enumerate(resolved.sequences):
            if multi_voice:
                lines.append(f"V:{index + 1}")
            lines.append(self._voice_body(resolved, sequence, warnings))

        if self.include_lyrics:
            lyrics = sorted(
                (a for a in resolved.annotations if a.type == AnnotationType.LYRIC.value),
                key=lambda a: a.time,
            )
            if lyrics:
                lines.append("w: " + " ".join(a.text for a in lyrics))

        return EncodeResult("\n".join(lines) + "\n", warnings.warnings)

    # --- Header ---

    def _key(self, resolved: ResolvedComposition, warnings: WarningCollector) -> str:
        key = resolved.key_signature or DEFAULT_KEY_SIGNATURE
        if KeySignature.parse(key) is None:
            warnings.warn("Unknown key signature %r, using C", key)
            return DEFAULT_KEY_SIGNATURE
        return key.strip()

    def _header(
        self,
        resolved: ResolvedComposition,
        warnings: WarningCollector,
        multi_voice: bool,
    ) -> list[str]:
        metadata = resolved.metadata
        lines = ["X:1", f"T:{metadata.name or 'Untitled'}"]
        if metadata.author:
            lines.append(f"C:{metadata.author}")
        if metadata.description:
            lines.append(f"N:{metadata.description}")
        lines.append(f"S:{self.source_tag}")
        lines.append(f"M:{resolved.time_signature}")
        lines.append("L:1/4")
        lines.append(f"Q:1/4={_format_bpm(resolved.bpm)}")

        if multi_voice:
            for index, sequence in enumerate(resolved.sequences):
                label = sequence.label.replace('"', "'")
                lines.append(f'V:{index + 1} name="{label}"')
            lines.append(
                "%%score " + " ".join(f"V:{i + 1}" for i in range(len(resolved.sequences)))
            )

        # Key closes the header
        lines.append(f"K:{self._key(resolved, warnings)}")
        return lines

    # --- Body ---

    def _beats(self, resolved: ResolvedComposition, start: float, end: float) -> float:
        return resolved.seconds_to_beats(end) - resolved.seconds_to_beats(start)

    def _voice_body(
        self,
        resolved: ResolvedComposition,
        sequence: ResolvedSequence,
        warnings: WarningCollector,
    ) -> str:
        tokens: list[str] = []
        cursor = 0.0
        dynamic: str | None = None

        for note in sorted(sequence.notes, key=lambda n: n.start):
            if note.start - cursor > _GAP_EPSILON:
                tokens.append("z" + duration_suffix(self._beats(resolved, cursor, note.start)))

            marker = dynamic_marker(note.velocity)
            decorations = "" if marker == dynamic else marker
            dynamic = marker

            tokens.append(decorations + self._note_token(resolved, note, warnings))
            cursor = max(cursor, note.end)

        if not tokens:
            return "|]"
        return " ".join(tokens) + " |]"

    def _spell(self, value: PitchValue, warnings: WarningCollector) -> SpelledPitch:
        if isinstance(value, str):
            spelled = parse_note_name(value)
            if spelled is not None:
                return spelled
        midi, ok = resolve_pitch(value, self.log)
        if not ok:
            warnings.warnings.append(f"Unresolvable pitch {value!r} written as C")
        return spell_midi(midi)

    def _note_token(
        self,
        resolved: ResolvedComposition,
        note: ResolvedNote,
        warnings: WarningCollector,
    ) -> str:
        decorations = ""
        if note.articulation:
            if note.articulation in _ARTICULATIONS:
                decorations += _ARTICULATIONS[note.articulation]
            else:
                self.log.debug("No ABC decoration for articulation %r", note.articulation)

        trill = any(
            m.type == ModulationType.CC.value and m.controller == 1 and m.value > 64
            for m in note.modulations
        )
        slide = any(
            m.type == ModulationType.PITCH_BEND.value and m.value > 0 for m in note.modulations
        )
        if trill:
            decorations += "!trill!"
        if slide:
            decorations += "!slide!"

        quarter = quarter_tone_offset(note.microtuning)
        if note.microtuning and not quarter:
            self.log.debug("Microtuning of %s cents has no ABC accidental", note.microtuning)

        pitches = "".join(spelled_to_abc(self._spell(p, warnings), quarter) for p in note.pitches)
        if note.is_chord:
            pitches = f"[{pitches}]"

        suffix = duration_suffix(self._beats(resolved, note.start, note.end))
        return decorations + pitches + suffix


def _format_bpm(bpm: float) -> str:
    return str(int(bpm)) if float(bpm).is_integer() else str(bpm)


def encode_abc(
    resolved: ResolvedComposition,
    source_tag: str = ABC_SOURCE_TAG,
    include_lyrics: bool = False,
    log: logging.Logger | None = None,
) -> EncodeResult[str]:
    """
    Convenience function to encode a resolved composition as ABC.

    Returns:
        EncodeResult with the ABC text and any fallback warnings
    """
    return AbcEncoder(source_tag, include_lyrics, log).encode(resolved)
