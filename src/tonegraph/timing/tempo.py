"""
Tempo map - converts between the beat grid and absolute seconds.

Tempo is a step function over beats: each segment starts at a beat position
with a bpm that holds until the next segment. Seconds are obtained by
integrating that step function.

Without changes the map is the identity seconds = beats * 60 / bpm.
"""

from __future__ import annotations

import bisect
from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class TempoSegment:
    """A span of constant tempo."""

    start_beat: float
    start_seconds: float
    bpm: float

    def __post_init__(self) -> None:
        """Validate tempo."""
        if self.bpm <= 0:
            raise ValueError(f"BPM must be positive, got {self.bpm}")

    @property
    def seconds_per_beat(self) -> float:
        return 60.0 / self.bpm


@dataclass(frozen=True)
class TempoBreakpoint:
    """
    A tempo change, placed on the beat grid or at a literal second.

    Beat-grid positions move with earlier tempo changes; second positions
    stay where they are.
    """

    position: float
    bpm: float
    in_seconds: bool = False


@dataclass(frozen=True)
class TempoMap:
    """
    An ordered list of tempo segments, the first starting at beat 0.

    Build with TempoMap.constant() or TempoMap.from_changes().
    """

    segments: tuple[TempoSegment, ...]

    def __post_init__(self) -> None:
        """Validate segment layout."""
        if not self.segments:
            raise ValueError("Tempo map needs at least one segment")
        if self.segments[0].start_beat != 0:
            raise ValueError("First tempo segment must start at beat 0")

    @classmethod
    def constant(cls, bpm: float) -> TempoMap:
        """A map with a single tempo."""
        return cls(segments=(TempoSegment(0.0, 0.0, bpm),))

    @classmethod
    def from_changes(
        cls,
        base_bpm: float,
        changes: Iterable[TempoBreakpoint | tuple[float, float]],
    ) -> TempoMap:
        """
        Build from breakpoints; plain (beat, bpm) tuples sit on the beat grid.

        Breakpoints are placed earliest first. A breakpoint in seconds is
        converted to beats through the segments placed before it. Several
        at the same position collapse to the last one in input order, and a
        breakpoint at or before 0 replaces the base tempo.
        """
        pending = [
            change if isinstance(change, TempoBreakpoint) else TempoBreakpoint(*change)
            for change in changes
        ]
        segments = [TempoSegment(0.0, 0.0, base_bpm)]

        while pending:
            current = cls(segments=tuple(segments))
            positions = [
                max(0.0, current.seconds_to_beats(change.position) if change.in_seconds else change.position)
                for change in pending
            ]
            # Earliest position, ties resolved by input order
            index = min(range(len(pending)), key=lambda i: (positions[i], i))
            beat, bpm = positions[index], pending.pop(index).bpm

            last = segments[-1]
            if beat <= last.start_beat:
                # Same position as the last breakpoint: the later one wins
                segments[-1] = TempoSegment(last.start_beat, last.start_seconds, bpm)
            else:
                segments.append(TempoSegment(beat, current.beats_to_seconds(beat), bpm))

        merged = [segments[0]]
        for segment in segments[1:]:
            if segment.bpm != merged[-1].bpm:
                merged.append(segment)
        return cls(segments=tuple(merged))

    @property
    def is_constant(self) -> bool:
        return len(self.segments) == 1

    @property
    def initial_bpm(self) -> float:
        return self.segments[0].bpm

    def _segment_for_beat(self, beats: float) -> TempoSegment:
        starts = [segment.start_beat for segment in self.segments]
        index = max(0, bisect.bisect_right(starts, beats) - 1)
        return self.segments[index]

    def _segment_for_seconds(self, seconds: float) -> TempoSegment:
        starts = [segment.start_seconds for segment in self.segments]
        index = max(0, bisect.bisect_right(starts, seconds) - 1)
        return self.segments[index]

    def beats_to_seconds(self, beats: float) -> float:
        """Absolute seconds of a beat-grid position."""
        segment = self._segment_for_beat(beats)
        return segment.start_seconds + (beats - segment.start_beat) * segment.seconds_per_beat

    def seconds_to_beats(self, seconds: float) -> float:
        """Beat-grid position of an absolute time."""
        segment = self._segment_for_seconds(seconds)
        return segment.start_beat + (seconds - segment.start_seconds) / segment.seconds_per_beat

    def bpm_at_beat(self, beats: float) -> float:
        return self._segment_for_beat(beats).bpm

    def bpm_at_seconds(self, seconds: float) -> float:
        return self._segment_for_seconds(seconds).bpm

    def duration_seconds(self, start_beat: float, length_beats: float) -> float:
        """Seconds spanned by length_beats starting at start_beat."""
        return self.beats_to_seconds(start_beat + length_beats) - self.beats_to_seconds(start_beat)
