#!/usr/bin/env python3
"""
Example: Build a composition and export it to every format.

This demonstrates the full pipeline: builder -> validate -> resolve ->
MIDI, ABC and SuperCollider. Open the .mid in a DAW, paste the .abc into
any ABC viewer, or run the .scd in SuperCollider.

Usage:
    python examples/convert_composition.py
    # Creates: examples/output/two_voices.{mid,abc,scd}
"""

from pathlib import Path

from tonegraph.builder import CompositionBuilder
from tonegraph.constants import OutputFormat
from tonegraph.pipeline import convert

EXTENSIONS = {
    OutputFormat.MIDI: "mid",
    OutputFormat.ABC: "abc",
    OutputFormat.SUPERCOLLIDER: "scd",
}


def main() -> None:
    """Export the example composition."""
    output_dir = Path(__file__).parent / "output"
    output_dir.mkdir(exist_ok=True)

    composition = create_two_voices()
    document = composition.to_document()

    for fmt, extension in EXTENSIONS.items():
        result = convert(document, fmt)
        path = output_dir / f"two_voices.{extension}"
        if result.is_binary:
            path.write_bytes(result.output)
        else:
            path.write_text(result.output)
        print(f"  Created: {path}")
        for warning in result.warnings:
            print(f"    warning: {warning}")

    print("\nDone!")


def create_two_voices():
    """
    A short melody over a held chord in D minor.

    This demonstrates:
    - Graph nodes and connections (synth -> reverb -> master)
    - A sequence bound to a graph synth, and one with an inline synth
    - A tempo change and a marker annotation
    """
    builder = CompositionBuilder(name="Two Voices", author="tonegraph", bpm=96, key_signature="Dm")

    builder.add_node("Synth", id="lead", options={"oscillator": {"type": "triangle"}})
    builder.add_node("Reverb", id="hall", options={"wet": 0.4, "roomSize": 0.8})
    builder.add_connection("lead", "hall")
    builder.add_connection("hall")

    melody = ["D4", "F4", "A4", "G4", "F4", "E4", "D4"]
    builder.add_sequence(
        label="melody",
        synth_ref="lead",
        notes=[
            {"note": pitch, "time": f"{i // 4}:{i % 4}", "duration": "4n", "velocity": 0.8}
            for i, pitch in enumerate(melody)
        ],
    )
    builder.add_sequence(
        label="pad",
        notes=[{"note": ["D3", "F3", "A3"], "time": "0:0", "duration": "2m", "velocity": 0.5}],
    )

    builder.add_tempo_change("1:0", 84)
    builder.add_annotation("Slower", time="1:0", type="marker")
    return builder.build()


if __name__ == "__main__":
    main()
