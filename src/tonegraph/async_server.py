#!/usr/bin/env python3
"""
Async tonegraph MCP Server using chuk-mcp-server

This server exposes the composition converter as MCP tools. A composition
document (or a looser shape such as a note list) goes in; canonical JSON,
validation reports, MIDI files, ABC notation or SuperCollider scripts come
out.

The server provides tools for:
- Normalizing loose input to the canonical document format
- Validating structure and ranges
- Converting to MIDI (written to the output directory), ABC and SuperCollider
"""

import logging
import os
from pathlib import Path

from chuk_mcp_server import ChukMCPServer

from tonegraph.config import load_settings
from tonegraph.tools import register_conversion_tools

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Create the MCP server instance
mcp = ChukMCPServer("tonegraph")

# Paths - use standard project structure
BASE_PATH = Path.cwd()
OUTPUT_DIR = BASE_PATH / "output"
SETTINGS_PATH = os.environ.get("TONEGRAPH_SETTINGS")

settings = load_settings(Path(SETTINGS_PATH) if SETTINGS_PATH else None)

# Register all tools
conversion_tools = register_conversion_tools(mcp, OUTPUT_DIR, settings)

# Export tool functions for direct access
music_normalize = conversion_tools["music_normalize"]
music_validate = conversion_tools["music_validate"]
music_convert_midi = conversion_tools["music_convert_midi"]
music_convert_abc = conversion_tools["music_convert_abc"]
music_convert_supercollider = conversion_tools["music_convert_supercollider"]

logger.info("tonegraph MCP Server initialized")
logger.info(f"  Output dir: {OUTPUT_DIR}")
logger.info(f"  Settings: {SETTINGS_PATH or 'defaults'}")
