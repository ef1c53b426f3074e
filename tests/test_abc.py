"""
Tests for ABC notation export.
"""

import pytest

from tonegraph.core.pitch import parse_note_name, spell_midi
from tonegraph.encoders import AbcEncoder, encode_abc
from tonegraph.encoders.abc import duration_suffix, dynamic_marker, quarter_tone_offset, spelled_to_abc
from tonegraph.normalize import normalize
from tonegraph.timing import resolve_composition


def _resolve(document):
    return resolve_composition(normalize(document))


def _header(text: str) -> list[str]:
    lines = text.splitlines()
    end = next(i for i, line in enumerate(lines) if line.startswith("K:"))
    return lines[: end + 1]


class TestNotation:
    """Tests for pitch and duration spelling."""

    @pytest.mark.parametrize(
        ("ratio", "suffix"),
        [(4, "4"), (2, "2"), (1, ""), (0.5, "/2"), (0.25, "/4"), (1.5, "3/2"), (0.75, "3/4"), (3, "3")],
    )
    def test_duration_suffix(self, ratio: float, suffix: str) -> None:
        assert duration_suffix(ratio) == suffix

    def test_unlisted_duration_in_eighths(self) -> None:
        assert duration_suffix(5.0) == "40/8"

    def test_very_short_duration_is_one_eighth(self) -> None:
        assert duration_suffix(0.01) == "1/8"

    @pytest.mark.parametrize(
        ("name", "abc"),
        [
            ("C4", "C"),
            ("C3", "C"),
            ("C2", "C,"),
            ("C1", "C,,"),
            ("C5", "c'"),
            ("C6", "c''"),
            ("F#4", "^F"),
            ("Bb5", "_b'"),
        ],
    )
    def test_octaves_and_accidentals(self, name: str, abc: str) -> None:
        assert spelled_to_abc(parse_note_name(name)) == abc

    def test_quarter_tones(self) -> None:
        assert quarter_tone_offset(50) == 1
        assert quarter_tone_offset(-30) == -1
        assert quarter_tone_offset(10) == 0
        assert quarter_tone_offset(None) == 0
        assert spelled_to_abc(spell_midi(60), 1) == "^/C"
        assert spelled_to_abc(spell_midi(61), 1) == "^3/2C"

    def test_dynamics(self) -> None:
        assert dynamic_marker(0.2) == "!p!"
        assert dynamic_marker(0.5) == "!mp!"
        assert dynamic_marker(0.8) == "!mf!"
        assert dynamic_marker(1.0) == "!f!"


class TestHeader:
    """Tests for the ABC header."""

    def test_field_order(self, resolved_document) -> None:
        header = _header(encode_abc(resolved_document).output)
        assert header[:7] == [
            "X:1",
            "T:Test Piece",
            "C:Tester",
            "S:Generated from jmon format",
            "M:4/4",
            "L:1/4",
            "Q:1/4=120",
        ]
        assert header[-1] == "K:G"

    def test_voices_declared_before_key(self, resolved_document) -> None:
        header = _header(encode_abc(resolved_document).output)
        assert 'V:1 name="melody"' in header
        assert 'V:2 name="chords"' in header
        assert "%%score V:1 V:2" in header

    def test_single_voice_has_no_voice_lines(self, canonical_document) -> None:
        del canonical_document["sequences"][1]
        text = encode_abc(_resolve(canonical_document)).output
        assert "V:" not in text
        assert "%%score" not in text

    def test_untitled(self, canonical_document) -> None:
        del canonical_document["metadata"]
        text = encode_abc(_resolve(canonical_document)).output
        assert "T:Untitled" in text
        assert "C:" not in text

    def test_unknown_key_falls_back_to_c(self, canonical_document) -> None:
        canonical_document["keySignature"] = "H"
        result = encode_abc(_resolve(canonical_document))
        assert _header(result.output)[-1] == "K:C"
        assert any("H" in w for w in result.warnings)

    def test_custom_source_tag(self, resolved_document) -> None:
        text = AbcEncoder(source_tag="tonegraph").encode(resolved_document).output
        assert "S:tonegraph" in text


class TestBody:
    """Tests for voice bodies."""

    def test_melody_with_rest(self, resolved_document) -> None:
        lines = encode_abc(resolved_document).output.splitlines()
        melody = lines[lines.index("V:1") + 1]
        assert melody == "!mf!C E z G |]"

    def test_chord(self, resolved_document) -> None:
        lines = encode_abc(resolved_document).output.splitlines()
        chords = lines[lines.index("V:2") + 1]
        assert chords == "!mp![CEG]2 |]"

    def test_high_and_low_octaves(self, canonical_document) -> None:
        canonical_document["sequences"][1]["notes"][0]["note"] = ["C2", "C5", "E6"]
        lines = encode_abc(_resolve(canonical_document)).output.splitlines()
        assert lines[lines.index("V:2") + 1] == "!mp![C,c'e'']2 |]"

    def test_articulation_and_trill(self, canonical_document) -> None:
        note = canonical_document["sequences"][0]["notes"][0]
        note["articulation"] = "staccato"
        note["modulations"] = [{"type": "cc", "controller": 1, "value": 100}]
        text = encode_abc(_resolve(canonical_document)).output
        assert "!mf!.!trill!C" in text

    def test_empty_sequence(self, canonical_document) -> None:
        canonical_document["sequences"][1]["notes"] = []
        lines = encode_abc(_resolve(canonical_document)).output.splitlines()
        assert lines[lines.index("V:2") + 1] == "|]"

    def test_lyrics(self, canonical_document) -> None:
        canonical_document["annotations"] = [
            {"text": "two", "type": "lyric", "time": "0:1"},
            {"text": "one", "type": "lyric", "time": 0},
            {"text": "ignored", "type": "comment", "time": 0},
        ]
        resolved = _resolve(canonical_document)
        assert "w:" not in encode_abc(resolved).output
        assert encode_abc(resolved, include_lyrics=True).output.splitlines()[-1] == "w: one two"

    def test_ends_with_newline(self, resolved_document) -> None:
        assert encode_abc(resolved_document).output.endswith("|]\n")
