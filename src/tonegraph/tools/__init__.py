"""
MCP tool implementations.

- conversion - Normalize, validate and export (MIDI, ABC, SuperCollider)
"""

from tonegraph.tools.conversion import register_conversion_tools

__all__ = [
    "register_conversion_tools",
]
