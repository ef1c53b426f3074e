"""
Composition Validator - checks structure and ranges before resolution.

Errors block conversion:
- Missing or wrong format identifier, missing version / bpm / sequences
- bpm <= 0
- Sequence without notes array, or without synth and synthRef
- Note without time, note or duration
- Connection that is not exactly [source, target]
- MIDI channel outside 0-15
- Unknown modulation type

Warnings never block:
- bpm outside 20-400, velocity outside 0-1
- Connection endpoints missing from the audio graph ("master" is always valid)
- Unknown node types, duplicate node ids, dangling synthRef
- cc modulation without controller, malformed key signature
- Tempo map entries without time or with an unusual bpm
- Looping sequence without loopEnd
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import ValidationError

from tonegraph.constants import (
    FORMAT_IDENTIFIER,
    MASTER_NODE_ID,
    MAX_RECOMMENDED_BPM,
    MIN_RECOMMENDED_BPM,
    ErrorMessages,
    ModulationType,
    NodeKind,
    WarningMessages,
)
from tonegraph.models.composition import Composition, NoteEvent, Sequence

_KEY_SIGNATURE_RE = re.compile(r"^[A-G](#|b)?m?$")

_MODULATION_TYPES = {member.value for member in ModulationType}


class ValidationSeverity(str, Enum):
    """Severity level for validation issues."""

    ERROR = "error"  # Prevents conversion
    WARNING = "warning"  # Conversion possible but may have issues


@dataclass
class ValidationIssue:
    """A single validation issue."""

    severity: ValidationSeverity
    code: str
    message: str
    location: str | None = None

    def __str__(self) -> str:
        location = f"{self.location}: " if self.location else ""
        return f"{location}{self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
            "location": self.location,
        }


class ValidationResult:
    """Result of validating a composition."""

    def __init__(self) -> None:
        self.issues: list[ValidationIssue] = []

    def add_error(self, code: str, message: str, location: str | None = None) -> None:
        """Add an error issue."""
        self.issues.append(ValidationIssue(ValidationSeverity.ERROR, code, message, location))

    def add_warning(self, code: str, message: str, location: str | None = None) -> None:
        """Add a warning issue."""
        self.issues.append(ValidationIssue(ValidationSeverity.WARNING, code, message, location))

    @property
    def success(self) -> bool:
        """Return True if no errors (warnings are OK)."""
        return not any(i.severity == ValidationSeverity.ERROR for i in self.issues)

    @property
    def errors(self) -> list[str]:
        """Error messages, prefixed with their location."""
        return [str(i) for i in self.issues if i.severity == ValidationSeverity.ERROR]

    @property
    def warnings(self) -> list[str]:
        """Warning messages, prefixed with their location."""
        return [str(i) for i in self.issues if i.severity == ValidationSeverity.WARNING]

    def has_code(self, code: str) -> bool:
        return any(i.code == code for i in self.issues)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "success": self.success,
            "errors": self.errors,
            "warnings": self.warnings,
            "issues": [i.to_dict() for i in self.issues],
        }

    def __bool__(self) -> bool:
        """Boolean conversion returns success."""
        return self.success

    def __str__(self) -> str:
        if not self.issues:
            return "Validation passed: no issues found"
        return "\n".join(f"[{i.severity.value.upper()}] {i}" for i in self.issues)


class CompositionValidator:
    """Validates composition structure and ranges."""

    def validate(self, composition: Composition | Mapping[str, Any]) -> ValidationResult:
        """
        Validate a composition.

        Args:
            composition: A Composition, or a raw canonical mapping. Raw
                mappings whose fields have the wrong types yield errors.

        Returns:
            ValidationResult with any issues found
        """
        result = ValidationResult()

        if not isinstance(composition, Composition):
            if not isinstance(composition, Mapping):
                result.add_error(
                    "INVALID_DOCUMENT",
                    f"Expected a mapping, got {type(composition).__name__}",
                )
                return result
            try:
                composition = Composition.model_validate(composition)
            except ValidationError as exc:
                for error in exc.errors():
                    location = "/".join(str(part) for part in error["loc"])
                    result.add_error("INVALID_FIELD", error["msg"], location or None)
                return result

        self._validate_header(composition, result)
        self._validate_audio_graph(composition, result)
        self._validate_connections(composition, result)
        self._validate_sequences(composition, result)
        self._validate_tempo_map(composition, result)

        return result

    def _validate_header(self, composition: Composition, result: ValidationResult) -> None:
        """Validate format, version, bpm and key."""
        if composition.format_id is None:
            result.add_error("MISSING_FIELD", ErrorMessages.MISSING_FIELD.format(field="format"))
        elif composition.format_id != FORMAT_IDENTIFIER:
            result.add_error(
                "INVALID_FORMAT",
                ErrorMessages.INVALID_FORMAT.format(
                    expected=FORMAT_IDENTIFIER, actual=composition.format_id
                ),
                "format",
            )

        if composition.version is None:
            result.add_error("MISSING_FIELD", ErrorMessages.MISSING_FIELD.format(field="version"))

        bpm = composition.bpm
        if bpm is None:
            result.add_error("MISSING_FIELD", ErrorMessages.MISSING_FIELD.format(field="bpm"))
        elif bpm <= 0:
            result.add_error("NON_POSITIVE_BPM", ErrorMessages.NON_POSITIVE_BPM.format(bpm=bpm), "bpm")
        elif not MIN_RECOMMENDED_BPM <= bpm <= MAX_RECOMMENDED_BPM:
            result.add_warning("BPM_RANGE", WarningMessages.BPM_RANGE.format(bpm=bpm), "bpm")

        key = composition.key_signature
        if key is not None and not _KEY_SIGNATURE_RE.match(key):
            result.add_warning(
                "KEY_SIGNATURE_FORMAT",
                WarningMessages.KEY_SIGNATURE_FORMAT.format(key=key),
                "keySignature",
            )

    def _validate_audio_graph(self, composition: Composition, result: ValidationResult) -> None:
        """Validate node ids and types."""
        seen: set[str] = set()
        for i, node in enumerate(composition.audio_graph):
            location = f"audioGraph[{i}]"
            if not node.id:
                result.add_error("MISSING_FIELD", ErrorMessages.MISSING_FIELD.format(field="id"), location)
            elif node.id in seen:
                result.add_warning(
                    "DUPLICATE_NODE", WarningMessages.DUPLICATE_NODE.format(node=node.id), location
                )
            else:
                seen.add(node.id)

            if not node.type:
                result.add_error(
                    "MISSING_FIELD", ErrorMessages.MISSING_FIELD.format(field="type"), location
                )
            elif node.kind == NodeKind.UNKNOWN:
                result.add_warning(
                    "UNKNOWN_NODE_TYPE",
                    WarningMessages.UNKNOWN_NODE_TYPE.format(type=node.type),
                    location,
                )

    def _validate_connections(self, composition: Composition, result: ValidationResult) -> None:
        """Validate connection shape and endpoints."""
        node_ids = composition.node_ids
        for i, connection in enumerate(composition.connections):
            location = f"connections[{i}]"
            if len(connection) != 2:
                result.add_error("MALFORMED_CONNECTION", ErrorMessages.MALFORMED_CONNECTION, location)
                continue

            source, target = connection
            if source not in node_ids:
                result.add_warning(
                    "UNKNOWN_SOURCE", WarningMessages.UNKNOWN_SOURCE.format(node=source), location
                )
            if target != MASTER_NODE_ID and target not in node_ids:
                result.add_warning(
                    "UNKNOWN_TARGET", WarningMessages.UNKNOWN_TARGET.format(node=target), location
                )

    def _validate_sequences(self, composition: Composition, result: ValidationResult) -> None:
        """Validate sequences and their notes."""
        if composition.sequences is None:
            result.add_error("MISSING_SEQUENCES", ErrorMessages.MISSING_SEQUENCES)
            return

        node_ids = composition.node_ids
        for i, sequence in enumerate(composition.sequences):
            self._validate_sequence(sequence, f"Sequence {i}", node_ids, result)

    def _validate_sequence(
        self,
        sequence: Sequence,
        location: str,
        node_ids: set[str],
        result: ValidationResult,
    ) -> None:
        if sequence.synth is None and not sequence.synth_ref:
            result.add_error("MISSING_SYNTH", ErrorMessages.MISSING_SYNTH, location)
        elif sequence.synth is None and sequence.synth_ref not in node_ids:
            result.add_warning(
                "UNKNOWN_SYNTH_REF",
                WarningMessages.UNKNOWN_SYNTH_REF.format(ref=sequence.synth_ref),
                location,
            )

        if sequence.midi_channel is not None and not 0 <= sequence.midi_channel <= 15:
            result.add_error(
                "INVALID_CHANNEL",
                ErrorMessages.INVALID_CHANNEL.format(channel=sequence.midi_channel),
                location,
            )

        if sequence.loop is True and sequence.loop_end is None:
            result.add_warning("LOOP_WITHOUT_END", WarningMessages.LOOP_WITHOUT_END, location)

        if sequence.notes is None:
            result.add_error("MISSING_NOTES", ErrorMessages.MISSING_NOTES, location)
            return

        for j, note in enumerate(sequence.notes):
            self._validate_note(note, f"{location}, Note {j}", result)

    def _validate_note(self, note: NoteEvent, location: str, result: ValidationResult) -> None:
        for field, value in (("time", note.time), ("note", note.note), ("duration", note.duration)):
            if value is None:
                result.add_error("MISSING_FIELD", ErrorMessages.MISSING_FIELD.format(field=field), location)

        if note.velocity is not None and not 0 <= note.velocity <= 1:
            result.add_warning(
                "VELOCITY_RANGE",
                WarningMessages.VELOCITY_RANGE.format(velocity=note.velocity),
                location,
            )

        if note.channel is not None and not 0 <= note.channel <= 15:
            result.add_error(
                "INVALID_CHANNEL", ErrorMessages.INVALID_CHANNEL.format(channel=note.channel), location
            )

        for k, modulation in enumerate(note.modulations):
            mod_location = f"{location}, Modulation {k}"
            if modulation.type not in _MODULATION_TYPES:
                result.add_error(
                    "INVALID_MODULATION",
                    ErrorMessages.INVALID_MODULATION.format(type=modulation.type),
                    mod_location,
                )
            elif modulation.type == ModulationType.CC.value and modulation.controller is None:
                result.add_warning(
                    "CC_WITHOUT_CONTROLLER", WarningMessages.CC_WITHOUT_CONTROLLER, mod_location
                )

    def _validate_tempo_map(self, composition: Composition, result: ValidationResult) -> None:
        for i, change in enumerate(composition.tempo_map):
            location = f"tempoMap[{i}]"
            if change.time is None:
                result.add_warning("TEMPO_MAP_TIME", WarningMessages.TEMPO_MAP_TIME, location)
            if change.bpm is None or not MIN_RECOMMENDED_BPM <= change.bpm <= MAX_RECOMMENDED_BPM:
                result.add_warning(
                    "TEMPO_MAP_BPM", WarningMessages.TEMPO_MAP_BPM.format(bpm=change.bpm), location
                )


def validate_composition(composition: Composition | Mapping[str, Any]) -> ValidationResult:
    """
    Convenience function to validate a composition.

    Args:
        composition: The composition (or raw canonical mapping) to validate

    Returns:
        ValidationResult with any issues found
    """
    validator = CompositionValidator()
    return validator.validate(composition)
