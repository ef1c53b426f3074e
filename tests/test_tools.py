"""
Tests for MCP tools.

Tests the MCP tool implementations for normalization, validation and the
three export formats.
"""

import json
from pathlib import Path

import pytest

from tonegraph.config import AbcSettings, ConverterSettings
from tonegraph.tools import register_conversion_tools


# Mock MCP server for testing tools
class MockMCPServer:
    """Mock MCP server that just stores registered tools."""

    def __init__(self, name: str):
        self.name = name
        self.tools: dict = {}

    def tool(self, func):
        """Decorator to register a tool."""
        self.tools[func.__name__] = func
        return func


@pytest.fixture
def tools(temp_dir: Path) -> dict:
    """Conversion tools writing into a temporary directory."""
    return register_conversion_tools(MockMCPServer("test"), temp_dir / "output")


@pytest.fixture
def document_json(canonical_document) -> str:
    return json.dumps(canonical_document)


class TestRegistration:
    """Tests for tool registration."""

    def test_registered_names(self, temp_dir: Path) -> None:
        mcp = MockMCPServer("test")
        tools = register_conversion_tools(mcp, temp_dir)
        expected = {
            "music_normalize",
            "music_validate",
            "music_convert_midi",
            "music_convert_abc",
            "music_convert_supercollider",
        }
        assert set(tools) == expected
        assert set(mcp.tools) == expected


class TestNormalizeTool:
    """Tests for music_normalize."""

    @pytest.mark.asyncio
    async def test_note_list(self, tools: dict) -> None:
        result = await tools["music_normalize"](
            composition_json=json.dumps([{"pitch": 60, "time": 0, "duration": 1}])
        )
        data = json.loads(result)
        assert data["status"] == "success"
        composition = data["composition"]
        assert composition["format"] == "jmonTone"
        assert composition["sequences"][0]["notes"][0] == {
            "note": 60,
            "time": "0:0:0",
            "duration": "4n",
            "velocity": 0.8,
            "modulations": [],
        }

    @pytest.mark.asyncio
    async def test_bad_json(self, tools: dict) -> None:
        data = json.loads(await tools["music_normalize"](composition_json="{not json"))
        assert data["status"] == "error"

    @pytest.mark.asyncio
    async def test_unrecognized(self, tools: dict) -> None:
        data = json.loads(await tools["music_normalize"](composition_json="42"))
        assert data["status"] == "error"
        assert data["message"].startswith("Cannot normalize input of type int")


class TestValidateTool:
    """Tests for music_validate."""

    @pytest.mark.asyncio
    async def test_valid(self, tools: dict, document_json: str) -> None:
        data = json.loads(await tools["music_validate"](composition_json=document_json))
        assert data["status"] == "success"
        assert data["valid"] is True
        assert data["errors"] == []

    @pytest.mark.asyncio
    async def test_invalid(self, tools: dict, canonical_document) -> None:
        canonical_document["bpm"] = 0
        data = json.loads(await tools["music_validate"](composition_json=json.dumps(canonical_document)))
        assert data["status"] == "success"
        assert data["valid"] is False
        assert any(e.startswith("bpm: bpm must be greater than 0") for e in data["errors"])

    @pytest.mark.asyncio
    async def test_without_normalizing(self, tools: dict) -> None:
        data = json.loads(
            await tools["music_validate"](composition_json=json.dumps({"bpm": 120}), normalize_first=False)
        )
        assert data["valid"] is False
        assert "Missing required field: format" in data["errors"]


class TestConvertTools:
    """Tests for the export tools."""

    @pytest.mark.asyncio
    async def test_midi(self, tools: dict, temp_dir: Path, document_json: str) -> None:
        data = json.loads(await tools["music_convert_midi"](composition_json=document_json, output_name="piece"))
        assert data["status"] == "success"
        path = Path(data["path"])
        assert path == temp_dir / "output" / "piece.mid"
        assert path.read_bytes()[:4] == b"MThd"
        assert data["tracks"] == ["Test Piece", "melody", "chords"]
        assert data["ticks_per_beat"] == 480
        assert data["length_seconds"] == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_midi_invalid(self, tools: dict, temp_dir: Path, canonical_document) -> None:
        del canonical_document["sequences"][0]["synthRef"]
        data = json.loads(
            await tools["music_convert_midi"](composition_json=json.dumps(canonical_document), output_name="bad")
        )
        assert data["status"] == "error"
        assert "Sequence 0: Missing synth or synthRef definition" in data["errors"]
        assert not (temp_dir / "output" / "bad.mid").exists()

    @pytest.mark.asyncio
    async def test_abc(self, tools: dict, document_json: str) -> None:
        data = json.loads(await tools["music_convert_abc"](composition_json=document_json))
        assert data["status"] == "success"
        assert data["abc"].startswith("X:1\nT:Test Piece\n")
        assert data["warnings"] == []

    @pytest.mark.asyncio
    async def test_abc_uses_settings(self, temp_dir: Path, document_json: str) -> None:
        settings = ConverterSettings(abc=AbcSettings(source_tag="custom"))
        tools = register_conversion_tools(MockMCPServer("test"), temp_dir, settings)
        data = json.loads(await tools["music_convert_abc"](composition_json=document_json))
        assert "S:custom" in data["abc"]

    @pytest.mark.asyncio
    async def test_supercollider(self, tools: dict, document_json: str) -> None:
        data = json.loads(await tools["music_convert_supercollider"](composition_json=document_json))
        assert data["status"] == "success"
        assert "~patterns.melody = Pbind(" in data["script"]
        assert "path" not in data

    @pytest.mark.asyncio
    async def test_supercollider_written(self, tools: dict, temp_dir: Path, document_json: str) -> None:
        data = json.loads(
            await tools["music_convert_supercollider"](composition_json=document_json, output_name="piece")
        )
        path = temp_dir / "output" / "piece.scd"
        assert data["path"] == str(path)
        assert path.read_text() == data["script"]

    @pytest.mark.asyncio
    async def test_bad_json(self, tools: dict) -> None:
        data = json.loads(await tools["music_convert_abc"](composition_json="["))
        assert data["status"] == "error"
