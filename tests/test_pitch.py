"""
Tests for pitch and key primitives.
"""

import logging

import pytest

from tonegraph.core import (
    KeySignature,
    frequency_to_midi,
    note_name_to_midi,
    parse_note_name,
    resolve_pitch,
    spell_midi,
)


class TestNoteNames:
    """Tests for note-name conversion."""

    @pytest.mark.parametrize(
        ("name", "midi"),
        [("C4", 60), ("A4", 69), ("C#4", 61), ("Db4", 61), ("C-1", 0), ("G9", 127), ("B3", 59)],
    )
    def test_note_name_to_midi(self, name: str, midi: int) -> None:
        assert note_name_to_midi(name) == midi

    def test_enharmonic_edge_spellings(self) -> None:
        """Cb and B# cross the octave boundary."""
        assert note_name_to_midi("Cb4") == 59
        assert note_name_to_midi("B#3") == 60
        assert parse_note_name("Cb4").semitone_offset == -1

    def test_parse_note_name(self) -> None:
        spelled = parse_note_name(" Bb-1 ")
        assert (spelled.letter, spelled.accidental, spelled.octave) == ("B", "b", -1)

    def test_invalid_names(self) -> None:
        assert note_name_to_midi("H4") is None
        assert note_name_to_midi("C") is None
        assert note_name_to_midi("c4") is None

    def test_spell_midi(self) -> None:
        spelled = spell_midi(70)
        assert (spelled.letter, spelled.accidental, spelled.octave) == ("A", "#", 4)
        assert spelled.to_midi() == 70
        with pytest.raises(ValueError):
            spell_midi(128)

    def test_frequency_to_midi(self) -> None:
        assert frequency_to_midi(440) == 69
        assert frequency_to_midi(261.63) == 60
        with pytest.raises(ValueError):
            frequency_to_midi(0)


class TestResolvePitch:
    """Tests for pitch resolution with fallback."""

    def test_valid_values(self) -> None:
        assert resolve_pitch(64) == (64, True)
        assert resolve_pitch("E4") == (64, True)

    def test_unresolvable_falls_back_to_middle_c(self, caplog) -> None:
        """Bad names resolve to 60 with a logged warning."""
        with caplog.at_level(logging.WARNING):
            assert resolve_pitch("not-a-note") == (60, False)
        assert "not-a-note" in caplog.text

    def test_out_of_range(self) -> None:
        assert resolve_pitch(200) == (60, False)


class TestKeySignature:
    """Tests for key signature lookup."""

    def test_major_and_minor(self) -> None:
        assert KeySignature.parse("D") == KeySignature("D", 2, minor=False)
        assert KeySignature.parse("Bb").accidentals == -2
        minor = KeySignature.parse("F#m")
        assert minor.minor
        assert minor.accidentals == 3

    def test_unknown(self) -> None:
        assert KeySignature.parse("H") is None
        assert KeySignature.parse("Xm") is None

    def test_accidental_range(self) -> None:
        with pytest.raises(ValueError):
            KeySignature("X", 8, minor=False)
