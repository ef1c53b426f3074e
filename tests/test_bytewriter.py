"""
Tests for the binary byte buffer.
"""

import pytest

from tonegraph.encoders import ByteWriter, encode_variable_length


class TestVariableLength:
    """Tests for MIDI variable-length quantities."""

    @pytest.mark.parametrize(
        ("value", "encoded"),
        [
            (0, b"\x00"),
            (0x40, b"\x40"),
            (0x7F, b"\x7f"),
            (0x80, b"\x81\x00"),
            (0x2000, b"\xc0\x00"),
            (0x3FFF, b"\xff\x7f"),
            (0x4000, b"\x81\x80\x00"),
            (0x0FFFFFFF, b"\xff\xff\xff\x7f"),
        ],
    )
    def test_encoding(self, value: int, encoded: bytes) -> None:
        assert encode_variable_length(value) == encoded

    @pytest.mark.parametrize("value", [-1, 0x10000000])
    def test_out_of_range(self, value: int) -> None:
        with pytest.raises(ValueError):
            encode_variable_length(value)


class TestByteWriter:
    """Tests for ByteWriter."""

    def test_big_endian_integers(self) -> None:
        writer = ByteWriter().write_uint8(1).write_uint16(0x0203).write_uint24(0x040506).write_uint32(7)
        assert writer.to_bytes() == b"\x01\x02\x03\x04\x05\x06\x00\x00\x00\x07"
        assert len(writer) == 10

    def test_signed_byte(self) -> None:
        assert ByteWriter().write_int8(-2).to_bytes() == b"\xfe"
        with pytest.raises(ValueError):
            ByteWriter().write_int8(200)

    def test_overflow(self) -> None:
        with pytest.raises(ValueError, match="does not fit"):
            ByteWriter().write_uint16(0x10000)

    def test_chunk(self) -> None:
        data = ByteWriter().write_chunk("MTrk", b"\x00\xff\x2f\x00").to_bytes()
        assert data == b"MTrk\x00\x00\x00\x04\x00\xff\x2f\x00"

    def test_chunk_id_length(self) -> None:
        with pytest.raises(ValueError):
            ByteWriter().write_chunk("MT", b"")
