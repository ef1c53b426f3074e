"""
Encoders - ResolvedComposition to MIDI bytes, ABC text and SuperCollider code.

Every encoder returns an EncodeResult carrying its output and the fallbacks
it took; none of them raise for unsupported content.
"""

from tonegraph.encoders.abc import AbcEncoder, encode_abc
from tonegraph.encoders.base import EncodeResult, WarningCollector
from tonegraph.encoders.bytewriter import ByteWriter, encode_variable_length
from tonegraph.encoders.midi import MidiEncoder, encode_midi, midi_file_from_bytes
from tonegraph.encoders.supercollider import (
    SuperColliderEncoder,
    encode_supercollider,
    sanitize_name,
)

__all__ = [
    # Results
    "EncodeResult",
    "WarningCollector",
    # Bytes
    "ByteWriter",
    "encode_variable_length",
    # MIDI
    "MidiEncoder",
    "encode_midi",
    "midi_file_from_bytes",
    # ABC
    "AbcEncoder",
    "encode_abc",
    # SuperCollider
    "SuperColliderEncoder",
    "encode_supercollider",
    "sanitize_name",
]
