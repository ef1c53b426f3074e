"""
Conversion tools - MCP tools for normalizing, validating and exporting.

Every tool takes the composition as JSON text (any input shape the
Normalizer understands) and returns a JSON string with a status field.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from tonegraph.config import ConverterSettings
from tonegraph.constants import OutputFormat
from tonegraph.encoders import midi_file_from_bytes
from tonegraph.normalize import UnrecognizedInputError, normalize
from tonegraph.pipeline import CompositionValidationError, convert
from tonegraph.validation import validate_composition

if TYPE_CHECKING:
    from chuk_mcp_server import ChukMCPServer

logger = logging.getLogger(__name__)


def _error(message: str, **extra: Any) -> str:
    return json.dumps({"status": "error", "message": message, **extra})


def register_conversion_tools(
    mcp: ChukMCPServer,
    output_dir: Path,
    settings: ConverterSettings | None = None,
) -> dict[str, Any]:
    """
    Register conversion tools with the MCP server.

    Args:
        mcp: The MCP server instance
        output_dir: Directory for written files
        settings: Encoder settings (defaults when None)

    Returns:
        Dictionary of registered tool functions
    """
    tools: dict[str, Any] = {}
    settings = settings or ConverterSettings()

    @mcp.tool  # type: ignore[arg-type]
    async def music_normalize(composition_json: str) -> str:
        """
        Normalize a composition to the canonical document format.

        Accepts a canonical document, a {"tracks": {...}} mapping, a
        {"sequences": [...]} document, a bare list of notes or a single
        melody ({"notes": [...]}).

        Args:
            composition_json: Composition as JSON text

        Returns:
            JSON string with the canonical document

        Example:
            music_normalize(composition_json='[{"pitch": 60, "time": 0, "duration": 1}]')
        """
        try:
            composition = normalize(json.loads(composition_json))
            return json.dumps({"status": "success", "composition": composition.to_document()})
        except (json.JSONDecodeError, UnrecognizedInputError) as e:
            return _error(str(e))
        except Exception as e:
            logger.exception("Failed to normalize composition")
            return _error(str(e))

    tools["music_normalize"] = music_normalize

    @mcp.tool  # type: ignore[arg-type]
    async def music_validate(composition_json: str, normalize_first: bool = True) -> str:
        """
        Validate a composition's structure and ranges.

        Errors (missing fields, bad format, bpm <= 0, malformed connections,
        invalid channels) make a composition unconvertible; warnings do not.

        Args:
            composition_json: Composition as JSON text
            normalize_first: Normalize before validating (default True)

        Returns:
            JSON string with validation results

        Example:
            music_validate(composition_json=doc, normalize_first=False)
        """
        try:
            raw = json.loads(composition_json)
            target = normalize(raw) if normalize_first else raw
            result = validate_composition(target)
            return json.dumps(
                {
                    "status": "success",
                    "valid": result.success,
                    "errors": result.errors,
                    "warnings": result.warnings,
                }
            )
        except (json.JSONDecodeError, UnrecognizedInputError) as e:
            return _error(str(e))
        except Exception as e:
            logger.exception("Failed to validate composition")
            return _error(str(e))

    tools["music_validate"] = music_validate

    @mcp.tool  # type: ignore[arg-type]
    async def music_convert_midi(composition_json: str, output_name: str) -> str:
        """
        Convert a composition to a Standard MIDI File.

        Writes <output_name>.mid into the output directory.

        Args:
            composition_json: Composition as JSON text
            output_name: Output filename (without .mid extension)

        Returns:
            JSON string with the file path and track summary

        Example:
            music_convert_midi(composition_json=doc, output_name="demo")
        """
        try:
            result = convert(json.loads(composition_json), OutputFormat.MIDI, settings)
            output_path = output_dir / f"{output_name}.mid"
            output_dir.mkdir(parents=True, exist_ok=True)
            output_path.write_bytes(result.output)  # type: ignore[arg-type]

            midi = midi_file_from_bytes(result.output)  # type: ignore[arg-type]
            return json.dumps(
                {
                    "status": "success",
                    "path": str(output_path),
                    "tracks": [track.name for track in midi.tracks],
                    "ticks_per_beat": midi.ticks_per_beat,
                    "length_seconds": round(midi.length, 3),
                    "warnings": result.warnings,
                    "message": f"Wrote {len(midi.tracks)} tracks to {output_path.name}",
                }
            )
        except CompositionValidationError as e:
            return _error(str(e), errors=e.result.errors)
        except (json.JSONDecodeError, UnrecognizedInputError) as e:
            return _error(str(e))
        except Exception as e:
            logger.exception("Failed to convert to MIDI")
            return _error(str(e))

    tools["music_convert_midi"] = music_convert_midi

    @mcp.tool  # type: ignore[arg-type]
    async def music_convert_abc(composition_json: str) -> str:
        """
        Convert a composition to ABC notation.

        Args:
            composition_json: Composition as JSON text

        Returns:
            JSON string containing the ABC text

        Example:
            music_convert_abc(composition_json=doc)
        """
        try:
            result = convert(json.loads(composition_json), OutputFormat.ABC, settings)
            return json.dumps({"status": "success", "abc": result.output, "warnings": result.warnings})
        except CompositionValidationError as e:
            return _error(str(e), errors=e.result.errors)
        except (json.JSONDecodeError, UnrecognizedInputError) as e:
            return _error(str(e))
        except Exception as e:
            logger.exception("Failed to convert to ABC")
            return _error(str(e))

    tools["music_convert_abc"] = music_convert_abc

    @mcp.tool  # type: ignore[arg-type]
    async def music_convert_supercollider(
        composition_json: str,
        output_name: str | None = None,
    ) -> str:
        """
        Convert a composition to a SuperCollider script.

        Args:
            composition_json: Composition as JSON text
            output_name: Optional filename (without .scd) to also write the script

        Returns:
            JSON string containing the script (and path when written)

        Example:
            music_convert_supercollider(composition_json=doc, output_name="demo")
        """
        try:
            result = convert(json.loads(composition_json), OutputFormat.SUPERCOLLIDER, settings)
            response: dict[str, Any] = {
                "status": "success",
                "script": result.output,
                "warnings": result.warnings,
            }
            if output_name:
                output_path = output_dir / f"{output_name}.scd"
                output_dir.mkdir(parents=True, exist_ok=True)
                output_path.write_text(str(result.output))
                response["path"] = str(output_path)
            return json.dumps(response)
        except CompositionValidationError as e:
            return _error(str(e), errors=e.result.errors)
        except (json.JSONDecodeError, UnrecognizedInputError) as e:
            return _error(str(e))
        except Exception as e:
            logger.exception("Failed to convert to SuperCollider")
            return _error(str(e))

    tools["music_convert_supercollider"] = music_convert_supercollider

    return tools
