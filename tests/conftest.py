"""
Pytest configuration and shared fixtures.
"""

import tempfile
from pathlib import Path
from typing import Any

import pytest

from tonegraph.normalize import normalize
from tonegraph.timing import resolve_composition


@pytest.fixture
def temp_dir() -> Path:
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def canonical_document() -> dict[str, Any]:
    """A small valid canonical document: one synth, one reverb, two sequences."""
    return {
        "format": "jmonTone",
        "version": "1.0",
        "bpm": 120,
        "keySignature": "G",
        "timeSignature": "4/4",
        "metadata": {"name": "Test Piece", "author": "Tester"},
        "audioGraph": [
            {"id": "lead", "type": "Synth", "options": {"oscillator": {"type": "sawtooth"}}},
            {"id": "verb", "type": "Reverb", "options": {"wet": 0.3}},
            {"id": "master", "type": "Destination"},
        ],
        "connections": [["lead", "verb"], ["verb", "master"]],
        "sequences": [
            {
                "label": "melody",
                "synthRef": "lead",
                "notes": [
                    {"note": "C4", "time": "0:0", "duration": "4n", "velocity": 0.8},
                    {"note": "E4", "time": "0:1", "duration": "4n", "velocity": 0.8},
                    {"note": "G4", "time": "0:3", "duration": "4n", "velocity": 0.8},
                ],
            },
            {
                "label": "chords",
                "synthRef": "lead",
                "notes": [
                    {"note": ["C3", "E3", "G3"], "time": 0, "duration": "2n", "velocity": 0.6},
                ],
            },
        ],
    }


@pytest.fixture
def resolved_document(canonical_document):
    """The canonical document, normalized and resolved."""
    return resolve_composition(normalize(canonical_document))
