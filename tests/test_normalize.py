"""
Tests for the Normalizer.
"""

import pytest

from tonegraph.models import Composition
from tonegraph.normalize import (
    DEFAULT_SYNTH_ID,
    UnrecognizedInputError,
    convert_note,
    match_rule,
    normalize,
)


class TestShapeDetection:
    """Tests for rule selection."""

    @pytest.mark.parametrize(
        ("raw", "rule"),
        [
            ({"format": "jmonTone", "sequences": []}, "canonical"),
            ({"tracks": {"lead": []}}, "track_mapping"),
            ({"sequences": [{"notes": []}]}, "sequence_list"),
            ({"parts": []}, "sequence_list"),
            ([{"pitch": 60}], "note_list"),
            ({"notes": [60]}, "single_melody"),
            ({"melody": [60]}, "single_melody"),
            ({"title": "empty"}, "bare_mapping"),
        ],
    )
    def test_rule_order(self, raw, rule: str) -> None:
        assert match_rule(raw).name == rule

    @pytest.mark.parametrize("raw", [None, 42, "C4", 1.5])
    def test_unrecognized(self, raw) -> None:
        with pytest.raises(UnrecognizedInputError):
            normalize(raw)

    def test_unrecognized_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            normalize(None)


class TestIdempotence:
    """normalize(normalize(x)) == normalize(x)."""

    @pytest.mark.parametrize(
        "raw",
        [
            [{"pitch": 60, "time": 0, "duration": 1}, {"pitch": 64, "time": 1, "duration": 0.5}],
            {"tracks": {"lead": [{"note": "C4"}], "bass": {"notes": [{"note": "C2", "time": 4}]}}},
            {"title": "Tune", "bpm": 90, "melody": ["C4", "D4", "E4"]},
            {"sequences": [{"name": "a", "notes": [{"pitch": 60, "velocity": 100}]}], "tempo": 100},
        ],
    )
    def test_idempotent(self, raw) -> None:
        once = normalize(raw)
        assert normalize(once) == once
        assert normalize(once.to_document()) == once

    def test_canonical_passthrough(self, canonical_document) -> None:
        composition = normalize(canonical_document)
        assert composition.bpm == 120
        assert composition.sequences[0].notes[0].time == "0:0"
        assert normalize(composition) is composition


class TestNoteConversion:
    """Tests for per-note reconciliation."""

    def test_numeric_time_becomes_bar_beat(self) -> None:
        assert convert_note({"pitch": 60, "time": 5})["time"] == "1:1:0"
        assert convert_note({"pitch": 60, "time": 2.5})["time"] == "0:2.5:0"

    def test_numeric_time_uses_bar_length(self) -> None:
        assert convert_note({"pitch": 60, "time": 4}, beats_per_bar=3)["time"] == "1:1:0"

    def test_start_is_passed_through(self) -> None:
        assert convert_note({"pitch": 60, "start": 1.5})["time"] == 1.5

    def test_numeric_durations(self) -> None:
        assert convert_note({"duration": 1})["duration"] == "4n"
        assert convert_note({"duration": 0.5})["duration"] == "8n"
        assert convert_note({"duration": 4})["duration"] == "1n"
        assert convert_note({"length": 0.25})["duration"] == "16n"
        assert convert_note({"duration": 3})["duration"] == "3n"

    def test_defaults(self) -> None:
        note = convert_note({"pitch": 60})
        assert note == {"time": 0, "duration": "4n", "velocity": 0.8, "note": 60}

    def test_midi_velocity_scaled(self) -> None:
        assert convert_note({"velocity": 127})["velocity"] == 1.0
        assert convert_note({"volume": 0.5})["velocity"] == 0.5

    def test_pitch_sources(self) -> None:
        assert convert_note({"note": "E4"})["note"] == "E4"
        assert convert_note({"pitch": 64.0})["note"] == 64
        assert convert_note({"frequency": 440})["note"] == 69
        assert convert_note({"pitch": ["C4", "E4"]})["note"] == ["C4", "E4"]

    def test_bare_pitch(self) -> None:
        assert convert_note(62)["note"] == 62
        assert convert_note("G4")["note"] == "G4"

    def test_extra_fields_kept(self) -> None:
        note = convert_note(
            {
                "pitch": 60,
                "articulation": "staccato",
                "microtuning": 25,
                "channel": 2,
                "modulations": [{"type": "cc", "controller": 1, "value": 64}, "junk"],
            }
        )
        assert note["articulation"] == "staccato"
        assert note["microtuning"] == 25
        assert note["channel"] == 2
        assert note["modulations"] == [{"type": "cc", "controller": 1, "value": 64}]


class TestDocumentShapes:
    """Tests for composition-level reconciliation."""

    def test_note_list_gets_default_graph(self) -> None:
        composition = normalize([{"pitch": 60}])
        assert isinstance(composition, Composition)
        assert composition.format_id == "jmonTone"
        assert composition.bpm == 120
        assert [node.id for node in composition.audio_graph] == [DEFAULT_SYNTH_ID, "master"]
        assert composition.connections == [[DEFAULT_SYNTH_ID, "master"]]
        assert composition.sequences[0].label == "sequence"
        assert composition.sequences[0].synth_ref == DEFAULT_SYNTH_ID

    def test_track_mapping_labels(self) -> None:
        composition = normalize({"tracks": {"lead": [60], "bass": [36]}, "bpm": 100})
        assert [s.label for s in composition.sequences] == ["lead", "bass"]
        assert composition.bpm == 100

    def test_sequence_list(self) -> None:
        composition = normalize(
            {
                "tempo": 90,
                "key": "Am",
                "timeSignature": "3/4",
                "title": "Waltz",
                "composer": "Anon",
                "sequences": [
                    {"notes": [{"pitch": 60, "time": 3}], "channel": 3, "loop": True},
                    {"name": "second", "synth": {"type": "FMSynth"}, "notes": []},
                    [{"pitch": 67}],
                ],
            }
        )
        assert composition.bpm == 90
        assert composition.key_signature == "Am"
        assert composition.metadata.name == "Waltz"
        assert composition.metadata.author == "Anon"

        first, second, third = composition.sequences
        assert first.label == "sequence0"
        assert first.midi_channel == 3
        assert first.loop is True
        assert first.notes[0].time == "1:0:0"
        assert second.label == "second"
        assert second.synth.type == "FMSynth"
        assert second.synth_ref is None
        assert third.label == "sequence2"
        assert third.notes[0].note == 67

    def test_custom_audio_graph_kept(self) -> None:
        composition = normalize(
            {
                "audioGraph": [{"id": "pad", "type": "PolySynth"}, {"id": "master", "type": "Destination"}],
                "connections": [["pad", "master"]],
                "notes": [{"pitch": 60}],
            }
        )
        assert composition.sequences[0].synth_ref == "pad"

    def test_invalid_bpm_ignored(self) -> None:
        assert normalize({"bpm": -5, "notes": []}).bpm == 120

    def test_bare_mapping_is_empty_composition(self) -> None:
        composition = normalize({"title": "Nothing yet"})
        assert composition.sequences == []
        assert composition.metadata.name == "Nothing yet"


class TestInvalidFieldTypes:
    """Badly typed optional fields are dropped, never raised."""

    @pytest.mark.parametrize(
        ("raw", "dropped"),
        [
            (
                {"tracks": {"a": [{"pitch": 60, "channel": 3.5}]}},
                lambda c: c.sequences[0].notes[0].channel,
            ),
            (
                {"sequences": [{"channel": "one", "notes": [{"pitch": 60}]}]},
                lambda c: c.sequences[0].midi_channel,
            ),
            (
                {"notes": [{"pitch": 60, "modulations": [{"type": "cc", "controller": "mod", "value": 10}]}]},
                lambda c: c.sequences[0].notes[0].modulations[0].controller,
            ),
            (
                {"parts": [{"notes": [{"pitch": 60}], "loop": {"count": 2}}]},
                lambda c: c.sequences[0].loop or None,
            ),
            (
                [{"pitch": 60, "microtuning": "10c"}],
                lambda c: c.sequences[0].notes[0].microtuning,
            ),
        ],
    )
    def test_field_dropped(self, raw, dropped, caplog) -> None:
        composition = normalize(raw)
        assert dropped(composition) is None
        assert composition.sequences[0].notes[0].note == 60
        assert "Dropping invalid value" in caplog.text

    def test_invalid_effect_removed(self) -> None:
        composition = normalize(
            {"sequences": [{"notes": [{"pitch": 60}], "effects": [{"options": {}}, {"type": "Chorus"}]}]}
        )
        assert [effect.type for effect in composition.sequences[0].effects] == ["Chorus"]

    def test_pass_through_entries_not_mutated(self) -> None:
        tempo_map = [{"time": 0, "bpm": "fast"}, {"time": 4, "bpm": 90}]
        composition = normalize({"notes": [{"pitch": 60}], "tempoMap": tempo_map})
        assert [change.bpm for change in composition.tempo_map] == [None, 90]
        assert tempo_map[0] == {"time": 0, "bpm": "fast"}
