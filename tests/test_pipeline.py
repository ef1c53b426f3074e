"""
Tests for the end-to-end conversion pipeline.
"""

import json
from pathlib import Path

import pytest
import yaml

from tonegraph.config import ConverterSettings, MidiSettings
from tonegraph.constants import OutputFormat
from tonegraph.encoders import midi_file_from_bytes
from tonegraph.normalize import UnrecognizedInputError
from tonegraph.pipeline import (
    CompositionValidationError,
    convert,
    load_composition,
    prepare,
)


class TestPrepare:
    """Tests for normalize -> validate -> resolve."""

    def test_prepare(self, canonical_document) -> None:
        prepared = prepare(canonical_document)
        assert prepared.validation.success
        assert len(prepared.resolved.sequences) == 2
        assert prepared.warnings == []

    def test_loose_input(self) -> None:
        prepared = prepare([{"pitch": 60, "time": 0, "duration": 1}])
        assert prepared.composition.format_id == "jmonTone"
        assert prepared.resolved.sequences[0].notes[0].duration == 0.5

    def test_loose_input_with_bad_field_types(self) -> None:
        prepared = prepare({"tracks": {"lead": [{"pitch": 60, "channel": 3.5, "microtuning": "10c"}]}})
        assert prepared.validation.success
        note = prepared.resolved.sequences[0].notes[0]
        assert note.pitches == (60,)

    def test_warnings_collected(self, canonical_document) -> None:
        canonical_document["bpm"] = 500
        canonical_document["connections"].append(["ghost", "master"])
        prepared = prepare(canonical_document)
        assert any("500" in w for w in prepared.warnings)
        assert any("ghost" in w for w in prepared.warnings)

    def test_invalid_document(self, canonical_document) -> None:
        canonical_document["bpm"] = 0
        del canonical_document["sequences"][0]["notes"][0]["time"]
        with pytest.raises(CompositionValidationError) as excinfo:
            prepare(canonical_document)
        result = excinfo.value.result
        assert not result.success
        assert result.has_code("NON_POSITIVE_BPM")
        assert "Composition is invalid" in str(excinfo.value)
        assert isinstance(excinfo.value, ValueError)

    def test_wrong_field_types(self, canonical_document) -> None:
        canonical_document["sequences"][0]["notes"] = "C4 E4 G4"
        with pytest.raises(CompositionValidationError) as excinfo:
            prepare(canonical_document)
        assert excinfo.value.result.has_code("INVALID_FIELD")

    def test_unrecognized(self) -> None:
        with pytest.raises(UnrecognizedInputError):
            prepare("C4 E4 G4")

    def test_error_summary_truncated(self, canonical_document) -> None:
        canonical_document["connections"] = [["a"]] * 7
        with pytest.raises(CompositionValidationError, match=r"\(\+2 more\)"):
            prepare(canonical_document)


class TestConvert:
    """Tests for convert()."""

    def test_midi(self, canonical_document) -> None:
        result = convert(canonical_document, "midi")
        assert result.format == OutputFormat.MIDI
        assert result.is_binary
        assert len(midi_file_from_bytes(result.output).tracks) == 3

    def test_abc(self, canonical_document) -> None:
        result = convert(canonical_document, OutputFormat.ABC)
        assert not result.is_binary
        assert result.output.startswith("X:1\n")

    def test_supercollider(self, canonical_document) -> None:
        result = convert(canonical_document, "supercollider")
        assert "~patterns.melody = Pbind(" in result.output

    def test_unknown_format(self, canonical_document) -> None:
        with pytest.raises(ValueError):
            convert(canonical_document, "musicxml")

    def test_settings_applied(self, canonical_document) -> None:
        settings = ConverterSettings(midi=MidiSettings(ticks_per_beat=960))
        result = convert(canonical_document, "midi", settings)
        assert midi_file_from_bytes(result.output).ticks_per_beat == 960

    def test_encoder_warnings_included(self, canonical_document) -> None:
        canonical_document["audioGraph"][1]["type"] = "Phaser"
        result = convert(canonical_document, "supercollider")
        assert any("Phaser" in w for w in result.warnings)

    def test_modulations_mapped(self, canonical_document) -> None:
        canonical_document["sequences"][0]["notes"][0]["modulations"] = [
            {"type": "cc", "controller": 64, "value": 127}
        ]
        result = convert(canonical_document, "abc")
        modulation = result.prepared.resolved.sequences[0].notes[0].modulations[0]
        assert modulation.parameter == "sustain"
        assert modulation.parameter_value == 1.0


class TestLoadComposition:
    """Tests for reading compositions from disk."""

    def test_json(self, temp_dir: Path, canonical_document) -> None:
        path = temp_dir / "piece.json"
        path.write_text(json.dumps(canonical_document))
        assert load_composition(path) == canonical_document

    def test_yaml(self, temp_dir: Path, canonical_document) -> None:
        path = temp_dir / "piece.yaml"
        path.write_text(yaml.safe_dump(canonical_document))
        assert load_composition(str(path)) == canonical_document

    def test_missing(self, temp_dir: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_composition(temp_dir / "missing.json")
