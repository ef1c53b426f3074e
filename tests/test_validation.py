"""
Tests for the composition Validator.
"""

import copy

import pytest

from tonegraph.validation import (
    CompositionValidator,
    ValidationResult,
    ValidationSeverity,
    validate_composition,
)


@pytest.fixture
def document(canonical_document):
    """A mutable copy of the shared canonical document."""
    return copy.deepcopy(canonical_document)


class TestValidationResult:
    """Tests for ValidationResult."""

    def test_empty_result_is_valid(self) -> None:
        result = ValidationResult()
        assert result.success
        assert bool(result)
        assert "no issues" in str(result)

    def test_warnings_do_not_fail(self) -> None:
        result = ValidationResult()
        result.add_warning("BPM_RANGE", "slow", "bpm")
        assert result.success
        assert result.warnings == ["bpm: slow"]

    def test_errors_fail(self) -> None:
        result = ValidationResult()
        result.add_error("MISSING_FIELD", "Missing required field: bpm")
        assert not result.success
        assert result.errors == ["Missing required field: bpm"]
        assert result.has_code("MISSING_FIELD")
        assert result.to_dict()["issues"][0]["severity"] == ValidationSeverity.ERROR.value


class TestStructuralErrors:
    """Conditions that block conversion."""

    def test_valid_document(self, document) -> None:
        result = validate_composition(document)
        assert result.success, str(result)
        assert result.errors == []

    @pytest.mark.parametrize("field", ["format", "version", "bpm"])
    def test_missing_header_field(self, document, field: str) -> None:
        del document[field]
        result = validate_composition(document)
        assert not result.success
        assert f"Missing required field: {field}" in result.errors

    def test_wrong_format(self, document) -> None:
        document["format"] = "midi"
        result = validate_composition(document)
        assert result.has_code("INVALID_FORMAT")

    @pytest.mark.parametrize("bpm", [0, -120])
    def test_non_positive_bpm(self, document, bpm: int) -> None:
        document["bpm"] = bpm
        assert validate_composition(document).has_code("NON_POSITIVE_BPM")

    def test_missing_sequences(self, document) -> None:
        del document["sequences"]
        assert validate_composition(document).has_code("MISSING_SEQUENCES")

    def test_sequence_without_synth(self, document) -> None:
        del document["sequences"][0]["synthRef"]
        result = validate_composition(document)
        assert not result.success
        assert "Sequence 0: Missing synth or synthRef definition" in result.errors

    def test_sequence_without_notes(self, document) -> None:
        del document["sequences"][1]["notes"]
        assert validate_composition(document).has_code("MISSING_NOTES")

    @pytest.mark.parametrize("field", ["time", "note", "duration"])
    def test_note_missing_field(self, document, field: str) -> None:
        del document["sequences"][0]["notes"][1][field]
        result = validate_composition(document)
        assert f"Sequence 0, Note 1: Missing required field: {field}" in result.errors

    @pytest.mark.parametrize("connection", [["lead"], ["lead", "verb", "master"]])
    def test_malformed_connection(self, document, connection) -> None:
        document["connections"].append(connection)
        assert validate_composition(document).has_code("MALFORMED_CONNECTION")

    def test_invalid_channels(self, document) -> None:
        document["sequences"][0]["midiChannel"] = 16
        document["sequences"][1]["notes"][0]["channel"] = -1
        result = validate_composition(document)
        assert len([e for e in result.errors if "MIDI channel" in e]) == 2

    def test_invalid_modulation_type(self, document) -> None:
        document["sequences"][0]["notes"][0]["modulations"] = [{"type": "wobble", "value": 3}]
        assert validate_composition(document).has_code("INVALID_MODULATION")

    def test_wrong_field_types(self, document) -> None:
        document["bpm"] = "fast"
        result = validate_composition(document)
        assert not result.success
        assert result.has_code("INVALID_FIELD")

    def test_not_a_mapping(self) -> None:
        assert validate_composition([1, 2, 3]).has_code("INVALID_DOCUMENT")

    def test_all_errors_reported(self, document) -> None:
        del document["version"]
        document["bpm"] = 0
        document["connections"].append(["x"])
        result = CompositionValidator().validate(document)
        assert {i.code for i in result.issues} >= {"MISSING_FIELD", "NON_POSITIVE_BPM", "MALFORMED_CONNECTION"}


class TestWarnings:
    """Conditions that warn but never block."""

    def test_bpm_range(self, document) -> None:
        document["bpm"] = 500
        result = validate_composition(document)
        assert result.success
        assert result.has_code("BPM_RANGE")

    def test_velocity_range(self, document) -> None:
        document["sequences"][0]["notes"][0]["velocity"] = 1.5
        result = validate_composition(document)
        assert result.success
        assert result.has_code("VELOCITY_RANGE")

    def test_unknown_connection_endpoints(self, document) -> None:
        document["connections"].append(["ghost", "nowhere"])
        result = validate_composition(document)
        assert result.success
        assert result.has_code("UNKNOWN_SOURCE")
        assert result.has_code("UNKNOWN_TARGET")

    def test_master_always_valid_target(self, document) -> None:
        document["audioGraph"] = [n for n in document["audioGraph"] if n["id"] != "master"]
        result = validate_composition(document)
        assert not result.has_code("UNKNOWN_TARGET")

    def test_unknown_node_type_and_duplicates(self, document) -> None:
        document["audioGraph"].append({"id": "lead", "type": "Theremin"})
        result = validate_composition(document)
        assert result.success
        assert result.has_code("UNKNOWN_NODE_TYPE")
        assert result.has_code("DUPLICATE_NODE")

    def test_dangling_synth_ref(self, document) -> None:
        document["sequences"][0]["synthRef"] = "missing"
        result = validate_composition(document)
        assert result.success
        assert result.has_code("UNKNOWN_SYNTH_REF")

    def test_cc_without_controller(self, document) -> None:
        document["sequences"][0]["notes"][0]["modulations"] = [{"type": "cc", "value": 3}]
        result = validate_composition(document)
        assert result.success
        assert result.has_code("CC_WITHOUT_CONTROLLER")

    def test_key_signature_format(self, document) -> None:
        document["keySignature"] = "G major"
        result = validate_composition(document)
        assert result.success
        assert result.has_code("KEY_SIGNATURE_FORMAT")

    def test_loop_without_end(self, document) -> None:
        document["sequences"][0]["loop"] = True
        assert validate_composition(document).has_code("LOOP_WITHOUT_END")
