"""
Timing - time-expression parsing, tempo maps and composition resolution.
"""

from tonegraph.timing.tempo import TempoBreakpoint, TempoMap, TempoSegment
from tonegraph.timing.resolver import (
    TimeResolver,
    calculate_duration,
    expand_loop_notes,
    is_musical_time,
    parse_time,
    resolve_composition,
    resolve_tempo_at,
    resolve_time,
)

__all__ = [
    "TempoBreakpoint",
    "TempoMap",
    "TempoSegment",
    "TimeResolver",
    "parse_time",
    "resolve_time",
    "resolve_tempo_at",
    "is_musical_time",
    "resolve_composition",
    "calculate_duration",
    "expand_loop_notes",
]
