"""
ByteWriter - a growable big-endian byte buffer for binary formats.

Used by the MIDI encoder for chunk headers, fixed-width integers and
variable-length quantities.
"""

from __future__ import annotations

# Largest value a 4-byte variable-length quantity can carry
MAX_VLQ = 0x0FFFFFFF


def encode_variable_length(value: int) -> bytes:
    """
    Encode a non-negative integer as a MIDI variable-length quantity.

    7 bits per byte, most significant group first, continuation bit set on
    every byte except the last.

    Examples:
        0      -> 00
        127    -> 7F
        128    -> 81 00
        0x3FFF -> FF 7F
    """
    if value < 0:
        raise ValueError(f"Variable-length quantity must be >= 0, got {value}")
    if value > MAX_VLQ:
        raise ValueError(f"Variable-length quantity must be <= {MAX_VLQ:#x}, got {value}")

    groups = [value & 0x7F]
    value >>= 7
    while value:
        groups.append((value & 0x7F) | 0x80)
        value >>= 7
    return bytes(reversed(groups))


class ByteWriter:
    """
    Append-only byte buffer.

    Example:
        writer = ByteWriter()
        writer.write_ascii("MThd").write_uint32(6).write_uint16(1)
        data = writer.to_bytes()
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    def _write_uint(self, value: int, size: int) -> ByteWriter:
        if not 0 <= value < 1 << (8 * size):
            raise ValueError(f"Value {value} does not fit in {size} byte(s)")
        self._buffer += value.to_bytes(size, "big")
        return self

    def write_uint8(self, value: int) -> ByteWriter:
        return self._write_uint(value, 1)

    def write_uint16(self, value: int) -> ByteWriter:
        return self._write_uint(value, 2)

    def write_uint24(self, value: int) -> ByteWriter:
        return self._write_uint(value, 3)

    def write_uint32(self, value: int) -> ByteWriter:
        return self._write_uint(value, 4)

    def write_int8(self, value: int) -> ByteWriter:
        """Two's complement signed byte (key signature sharps/flats)."""
        if not -128 <= value <= 127:
            raise ValueError(f"Value {value} does not fit in a signed byte")
        return self.write_uint8(value & 0xFF)

    def write_variable_length(self, value: int) -> ByteWriter:
        self._buffer += encode_variable_length(value)
        return self

    def write_bytes(self, data: bytes | bytearray) -> ByteWriter:
        self._buffer += data
        return self

    def write_ascii(self, text: str) -> ByteWriter:
        self._buffer += text.encode("ascii")
        return self

    def write_chunk(self, chunk_id: str, payload: bytes | bytearray) -> ByteWriter:
        """Write a 4-character chunk id, the payload length and the payload."""
        if len(chunk_id) != 4:
            raise ValueError(f"Chunk id must be 4 characters, got {chunk_id!r}")
        return self.write_ascii(chunk_id).write_uint32(len(payload)).write_bytes(payload)

    def to_bytes(self) -> bytes:
        return bytes(self._buffer)
