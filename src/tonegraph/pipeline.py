"""
Conversion pipeline - raw input to encoded output.

    raw -> normalize -> validate -> resolve -> encode

Validation errors stop the pipeline before any encoder runs; warnings from
every stage are carried through to the result.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from tonegraph.config import ConverterSettings
from tonegraph.constants import OutputFormat
from tonegraph.encoders import encode_abc, encode_midi, encode_supercollider
from tonegraph.models.composition import Composition
from tonegraph.models.resolved import ResolvedComposition
from tonegraph.modulation import ControllerMap
from tonegraph.normalize import normalize
from tonegraph.timing import resolve_composition
from tonegraph.validation import ValidationResult, validate_composition

logger = logging.getLogger(__name__)


class CompositionValidationError(ValueError):
    """Raised when a composition has structural errors."""

    def __init__(self, result: ValidationResult):
        self.result = result
        errors = result.errors
        summary = "; ".join(errors[:5])
        if len(errors) > 5:
            summary += f" (+{len(errors) - 5} more)"
        super().__init__(f"Composition is invalid: {summary}")


@dataclass
class PreparedComposition:
    """A normalized, validated and resolved composition."""

    composition: Composition
    validation: ValidationResult
    resolved: ResolvedComposition

    @property
    def warnings(self) -> list[str]:
        return self.validation.warnings + list(self.resolved.warnings)


@dataclass
class ConversionResult:
    """Encoded output of one conversion."""

    format: OutputFormat
    output: bytes | str
    prepared: PreparedComposition
    warnings: list[str] = field(default_factory=list)

    @property
    def is_binary(self) -> bool:
        return isinstance(self.output, bytes)


def load_composition(path: Path | str) -> Any:
    """
    Read a raw composition from a JSON or YAML file.

    Files ending in .yaml or .yml are parsed as YAML, everything else as JSON.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    path = Path(path)
    with open(path) as f:
        if path.suffix.lower() in (".yaml", ".yml"):
            return yaml.safe_load(f)
        return json.load(f)


def prepare(
    raw: Any,
    controller_map: ControllerMap | None = None,
    log: logging.Logger | None = None,
) -> PreparedComposition:
    """
    Normalize, validate and resolve raw input.

    Args:
        raw: Composition, mapping or note list
        controller_map: Modulation table (None skips parameter mapping)
        log: Logger for fallbacks

    Returns:
        PreparedComposition

    Raises:
        UnrecognizedInputError: If the input shape is not understood
        CompositionValidationError: If validation finds errors
    """
    log = log or logger
    try:
        composition = normalize(raw)
    except ValidationError:
        # Wrong field types in a canonical document: report them as issues
        result = validate_composition(raw)
        if not result.success:
            raise CompositionValidationError(result) from None
        raise

    validation = validate_composition(composition)
    if not validation.success:
        log.info("Composition failed validation with %d errors", len(validation.errors))
        raise CompositionValidationError(validation)

    resolved = resolve_composition(composition, controller_map, log)
    return PreparedComposition(composition, validation, resolved)


def convert(
    raw: Any,
    fmt: OutputFormat | str,
    settings: ConverterSettings | None = None,
    log: logging.Logger | None = None,
) -> ConversionResult:
    """
    Convert raw input to one output format.

    Args:
        raw: Composition, mapping or note list
        fmt: midi, abc or supercollider
        settings: Encoder settings (defaults when None)
        log: Logger for fallbacks

    Returns:
        ConversionResult with the output and every warning raised on the way

    Raises:
        ValueError: For an unknown format (and the errors of prepare())
    """
    fmt = OutputFormat(fmt)
    settings = settings or ConverterSettings()
    prepared = prepare(raw, settings.load_controller_map(), log)
    resolved = prepared.resolved

    if fmt == OutputFormat.MIDI:
        encoded = encode_midi(
            resolved,
            ticks_per_beat=settings.midi.ticks_per_beat,
            pitch_bend_range=settings.midi.pitch_bend_range,
            expand_loops=settings.midi.expand_loops,
            log=log,
        )
    elif fmt == OutputFormat.ABC:
        encoded = encode_abc(
            resolved,
            source_tag=settings.abc.source_tag,
            include_lyrics=settings.abc.include_lyrics,
            log=log,
        )
    else:
        encoded = encode_supercollider(resolved, log=log)

    return ConversionResult(
        format=fmt,
        output=encoded.output,
        prepared=prepared,
        warnings=prepared.warnings + encoded.warnings,
    )
