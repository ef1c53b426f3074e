"""
SuperCollider export - ResolvedComposition to an .scd script.

Script layout:
1. Header comments (title, composer, tempo, key, meter)
2. Server boot block with global dictionaries
3. One SynthDef per synth node (plus inline sequence synths and a
   defaultSynth when needed)
4. One bus + SynthDef per effect node
5. Routing: effect instances and the output bus of every synth
6. One Pbind per sequence, durations in beats
7. Tempo schedule, pattern start, and a separate stop block

Anything that cannot be expressed degrades to a comment and a warning;
generation always completes.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from tonegraph.constants import MASTER_NODE_ID, NodeKind, NodeType
from tonegraph.core.pitch import resolve_pitch
from tonegraph.encoders.base import EncodeResult, WarningCollector
from tonegraph.models.composition import AudioGraphNode
from tonegraph.models.resolved import ResolvedComposition, ResolvedNote, ResolvedSequence

logger = logging.getLogger(__name__)

DEFAULT_SYNTH_NAME = "defaultSynth"

# ADSR defaults for every SynthDef
DEFAULT_ENVELOPE: dict[str, float] = {
    "attack": 0.01,
    "decay": 0.1,
    "sustain": 0.8,
    "release": 0.3,
}

OSCILLATORS: dict[str, str] = {
    "sine": "SinOsc",
    "square": "Pulse",
    "pulse": "Pulse",
    "sawtooth": "Saw",
    "triangle": "LFTri",
}

NOISES: dict[str, str] = {
    "white": "WhiteNoise",
    "pink": "PinkNoise",
    "brown": "BrownNoise",
}

_FILTERS: dict[str, str] = {
    "lowpass": "RLPF",
    "highpass": "RHPF",
    "bandpass": "BPF",
}

_NAME_RE = re.compile(r"[^a-zA-Z0-9_]")

INDENT = "    "


def sanitize_name(name: str) -> str:
    """Make a string usable as a SuperCollider symbol or key."""
    cleaned = _NAME_RE.sub("_", name)
    if not cleaned or cleaned[0].isdigit():
        cleaned = "_" + cleaned
    return cleaned


def format_number(value: float) -> str:
    """Compact decimal: 2.0 -> '2', 0.333333333 -> '0.333333'."""
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def _option(options: Mapping[str, Any], path: str, default: float) -> float:
    """Numeric option by dotted path ('envelope.attack'), default when absent."""
    value: Any = options
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return default
        value = value[part]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)


def _text_option(options: Mapping[str, Any], path: str, default: str) -> str:
    value: Any = options
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return default
        value = value[part]
    return value if isinstance(value, str) else default


@dataclass
class _Script:
    """Indented line buffer."""

    lines: list[str] = field(default_factory=list)

    def add(self, line: str = "", level: int = 0) -> None:
        self.lines.append(INDENT * level + line if line else "")

    def extend(self, lines: list[str], level: int = 0) -> None:
        for line in lines:
            self.add(line, level)

    def render(self) -> str:
        return "\n".join(self.lines) + "\n"


class SuperColliderEncoder:
    """
    Encodes a ResolvedComposition as a SuperCollider script.

    Example:
        result = SuperColliderEncoder().encode(resolved)
        Path("song.scd").write_text(result.output)
    """

    def __init__(self, log: logging.Logger | None = None):
        self.log = log or logger

    def encode(self, resolved: ResolvedComposition) -> EncodeResult[str]:
        warnings = WarningCollector(self.log)
        script = _Script()

        # Unknown node types get a generic sine SynthDef
        synth_nodes = [
            n
            for n in resolved.audio_graph
            if n.id
            and (n.kind == NodeKind.SYNTH or (n.kind == NodeKind.UNKNOWN and n.id != MASTER_NODE_ID))
        ]
        effect_nodes = [n for n in resolved.audio_graph if n.id and n.kind == NodeKind.EFFECT]

        instruments = self._instruments(resolved, synth_nodes, warnings)

        self._header(script, resolved)
        self._server_setup(script)

        script.add("// SynthDef definitions", 1)
        for node in synth_nodes:
            self._synth_def(script, sanitize_name(node.id or ""), node.type, node.options, warnings)
        for sequence in resolved.sequences:
            if sequence.synth is not None:
                self._synth_def(
                    script,
                    self._inline_synth_name(sequence),
                    sequence.synth.type,
                    sequence.synth.options,
                    warnings,
                )
        if DEFAULT_SYNTH_NAME in instruments.values() or not synth_nodes:
            self._synth_def(script, DEFAULT_SYNTH_NAME, NodeType.SYNTH.value, {}, warnings)

        script.add("// Effect definitions", 1)
        for node in effect_nodes:
            self._effect_def(script, sanitize_name(node.id or ""), node.type or "", node.options, warnings)
        for sequence in resolved.sequences:
            for i, effect in enumerate(sequence.effects):
                self._effect_def(
                    script, self._inline_effect_name(sequence, i), effect.type, effect.options, warnings
                )

        script.add("s.sync;", 1)
        script.add()

        outputs = self._routing(script, resolved, synth_nodes, effect_nodes, warnings)
        pattern_names = self._patterns(script, resolved, instruments, outputs, warnings)
        self._main(script, resolved, pattern_names)

        return EncodeResult(script.render(), warnings.warnings)

    # --- Naming ---

    def _inline_synth_name(self, sequence: ResolvedSequence) -> str:
        return sanitize_name(f"{sequence.label}_synth")

    def _inline_effect_name(self, sequence: ResolvedSequence, index: int) -> str:
        return sanitize_name(f"{sequence.label}_fx{index}")

    def _instruments(
        self,
        resolved: ResolvedComposition,
        synth_nodes: list[AudioGraphNode],
        warnings: WarningCollector,
    ) -> dict[int, str]:
        """SynthDef name per sequence index."""
        synth_ids = {node.id for node in synth_nodes}
        instruments = {}
        for index, sequence in enumerate(resolved.sequences):
            if sequence.synth is not None:
                instruments[index] = self._inline_synth_name(sequence)
            elif sequence.synth_ref in synth_ids:
                instruments[index] = sanitize_name(sequence.synth_ref or "")
            else:
                if sequence.synth_ref:
                    warnings.warn(
                        "Sequence %s references %r which is not a synth node, using %s",
                        sequence.label,
                        sequence.synth_ref,
                        DEFAULT_SYNTH_NAME,
                    )
                instruments[index] = DEFAULT_SYNTH_NAME
        return instruments

    # --- Header and setup ---

    def _header(self, script: _Script, resolved: ResolvedComposition) -> None:
        script.add("// SuperCollider script generated from jmon format")
        metadata = resolved.metadata
        if metadata.name:
            script.add(f"// Title: {metadata.name}")
        if metadata.author:
            script.add(f"// Composer: {metadata.author}")
        if metadata.description:
            script.add(f"// Description: {metadata.description}")
        script.add(f"// Tempo: {format_number(resolved.bpm)} BPM")
        script.add(f"// Key: {resolved.key_signature or 'C'}")
        script.add(f"// Time Signature: {resolved.time_signature}")
        script.add()

    def _server_setup(self, script: _Script) -> None:
        script.add("// Server setup")
        script.add("(")
        script.add("s.waitForBoot({")
        script.add("// Clear any existing synths", 1)
        script.add("s.freeAll;", 1)
        script.add()
        script.add("// Global state", 1)
        script.extend(
            [
                "~tempo = TempoClock.default;",
                "~busses = ();",
                "~synths = ();",
                "~effects = ();",
                "~outs = ();",
                "~patterns = ();",
                "~players = ();",
            ],
            1,
        )
        script.add()

    # --- SynthDefs ---

    def _synth_def(
        self,
        script: _Script,
        name: str,
        synth_type: str | None,
        options: Mapping[str, Any],
        warnings: WarningCollector,
    ) -> None:
        envelope = {
            key: _option(options, f"envelope.{key}", default) for key, default in DEFAULT_ENVELOPE.items()
        }
        args = "freq=440, amp=0.5, gate=1, out=0, " + ", ".join(
            f"{key}={format_number(value)}" for key, value in envelope.items()
        )
        detune = _option(options, "detune", _option(options, "oscillator.detune", 0.0))
        if detune:
            args += f", detune={format_number(detune)}"

        script.add(f"SynthDef(\\{name}, {{ |{args}|", 1)
        body = ["var env, sig;"]
        if detune:
            body.append("freq = freq * (detune / 100).midiratio;")
        body.append("env = EnvGen.kr(Env.adsr(attack, decay, sustain, release), gate, doneAction: 2);")
        body.extend(self._synthesis(name, synth_type, options, warnings))
        body.extend(self._synth_filter(options))
        body.append("Out.ar(out, sig ! 2);")
        script.extend(body, 2)
        script.add("}).add;", 1)
        script.add()

    def _synthesis(
        self,
        name: str,
        synth_type: str | None,
        options: Mapping[str, Any],
        warnings: WarningCollector,
    ) -> list[str]:
        node_type = NodeType.parse(synth_type) if synth_type else None

        if node_type in (NodeType.SYNTH, NodeType.POLY_SYNTH, NodeType.MONO_SYNTH, NodeType.DUO_SYNTH):
            oscillator = _text_option(options, "oscillator.type", "sine")
            ugen = OSCILLATORS.get(oscillator)
            if ugen is None:
                warnings.warn("Unknown oscillator %r in %s, using SinOsc", oscillator, name)
                ugen = "SinOsc"
            return [f"sig = {ugen}.ar(freq) * amp * env;"]

        if node_type == NodeType.AM_SYNTH:
            harmonicity = _option(options, "harmonicity", 0.5)
            return [
                f"sig = SinOsc.ar(freq) * SinOsc.ar(freq * {format_number(harmonicity)}, 0, 0.5);",
                "sig = sig * amp * env;",
            ]

        if node_type == NodeType.FM_SYNTH:
            ratio = _option(options, "harmonicity", _option(options, "modulation.ratio", 2))
            index = _option(options, "modulationIndex", _option(options, "modulation.index", 10))
            return [
                f"sig = SinOsc.ar(freq * {format_number(ratio)}, 0, freq * {format_number(ratio * index)});",
                "sig = SinOsc.ar(freq + sig) * amp * env;",
            ]

        if node_type == NodeType.PLUCK_SYNTH:
            return [
                "sig = Pluck.ar(WhiteNoise.ar(0.1), Impulse.kr(0), 0.2, freq.reciprocal, 10, 0.5);",
                "sig = sig * amp * env;",
            ]

        if node_type == NodeType.NOISE_SYNTH:
            noise = _text_option(options, "noise.type", "white")
            return [f"sig = {NOISES.get(noise, 'WhiteNoise')}.ar(amp * env);"]

        if node_type == NodeType.SAMPLER:
            warnings.warn("Sampler %s has no sample playback in SuperCollider, using a sine", name)
            return [
                "// Placeholder for sampler playback",
                "sig = SinOsc.ar(freq) * amp * env;",
            ]

        warnings.warn("Unknown synth type %r for %s, using a sine", synth_type, name)
        return ["sig = SinOsc.ar(freq) * amp * env;"]

    def _synth_filter(self, options: Mapping[str, Any]) -> list[str]:
        if not isinstance(options.get("filter"), Mapping):
            return []
        return [self._filter_line(options["filter"])]

    def _filter_line(self, options: Mapping[str, Any]) -> str:
        ugen = _FILTERS.get(_text_option(options, "type", "lowpass"), "RLPF")
        frequency = _option(options, "frequency", 1000)
        q = _option(options, "Q", 1) or 1
        return f"sig = {ugen}.ar(sig, {format_number(frequency)}, {format_number(1 / q)});"

    # --- Effects ---

    def _effect_def(
        self,
        script: _Script,
        name: str,
        effect_type: str,
        options: Mapping[str, Any],
        warnings: WarningCollector,
    ) -> None:
        script.add(f"// Effect: {name}", 1)
        script.add(f"~busses.{name} = Bus.audio(s, 2);", 1)
        script.add(f"SynthDef(\\{name}, {{ |in, out=0|", 1)
        body = ["var sig, wet;", "sig = In.ar(in, 2);"]
        body.extend(self._effect_code(name, effect_type, options, warnings))
        body.append("Out.ar(out, sig);")
        script.extend(body, 2)
        script.add("}).add;", 1)
        script.add()

    def _effect_code(
        self,
        name: str,
        effect_type: str,
        options: Mapping[str, Any],
        warnings: WarningCollector,
    ) -> list[str]:
        node_type = NodeType.parse(effect_type)
        wet = format_number(_option(options, "wet", 0.5))

        if node_type in (NodeType.REVERB, NodeType.FREEVERB, NodeType.JC_REVERB):
            room = format_number(_option(options, "roomSize", 0.5))
            damp = format_number(_option(options, "dampening", 0.3))
            return [f"sig = FreeVerb.ar(sig, {wet}, {room}, {damp});"]

        if node_type in (NodeType.DELAY, NodeType.FEEDBACK_DELAY, NodeType.PING_PONG_DELAY):
            delay = _option(options, "delayTime", 0.25)
            feedback = _option(options, "feedback", 0.4)
            # Comb decay for the feedback amount (-60 dB)
            decay = delay * math.log(0.001) / math.log(feedback) if 0 < feedback < 1 else delay
            source = "sig.reverse" if node_type == NodeType.PING_PONG_DELAY else "sig"
            return [
                f"wet = CombL.ar({source}, {format_number(max(1.0, delay * 2))}, "
                f"{format_number(delay)}, {format_number(decay)});",
                f"sig = (sig * (1 - {wet})) + (wet * {wet});",
            ]

        if node_type == NodeType.FILTER:
            return [self._filter_line(options)]

        if node_type == NodeType.AUTO_FILTER:
            rate = format_number(_option(options, "frequency", 1))
            base = _option(options, "baseFrequency", 200)
            top = base * 2 ** _option(options, "octaves", 2.6)
            return [
                f"sig = RLPF.ar(sig, SinOsc.kr({rate}).range({format_number(base)}, {format_number(top)}), 0.5);"
            ]

        if node_type == NodeType.DISTORTION:
            drive = _option(options, "distortion", 0.4) * 10
            return [f"sig = (sig * {format_number(drive)}).tanh;"]

        if node_type == NodeType.CHEBYSHEV:
            order = format_number(_option(options, "order", 2))
            return [
                "// Chebyshev waveshaping approximated with softclip",
                f"sig = (sig * {order}).softclip;",
            ]

        if node_type == NodeType.CHORUS:
            rate = format_number(_option(options, "frequency", 1.5))
            depth = _option(options, "depth", 0.7)
            return [
                f"wet = DelayL.ar(sig, 0.05, SinOsc.kr({rate}, 0, {format_number(depth * 0.005)}, 0.01));",
                f"sig = (sig * (1 - {wet})) + (wet * {wet});",
            ]

        if node_type == NodeType.TREMOLO:
            rate = format_number(_option(options, "frequency", 10))
            depth = _option(options, "depth", 0.5)
            return [
                f"sig = sig * SinOsc.kr({rate}, 0, {format_number(depth / 2)}, {format_number(1 - depth / 2)});"
            ]

        if node_type == NodeType.BIT_CRUSHER:
            bits = _option(options, "bits", 4)
            return [f"sig = sig.round({format_number(2 ** (1 - bits))});"]

        if node_type == NodeType.COMPRESSOR:
            threshold = 10 ** (_option(options, "threshold", -24) / 20)
            ratio = _option(options, "ratio", 4) or 1
            attack = format_number(_option(options, "attack", 0.003))
            release = format_number(_option(options, "release", 0.25))
            return [
                f"sig = Compander.ar(sig, sig, {format_number(threshold)}, 1, "
                f"{format_number(1 / ratio)}, {attack}, {release});"
            ]

        if node_type == NodeType.LIMITER:
            threshold = 10 ** (_option(options, "threshold", -12) / 20)
            return [f"sig = Limiter.ar(sig, {format_number(threshold)}, 0.01);"]

        warnings.warn("%s effect not implemented in SuperCollider (%s), passing audio through", effect_type, name)
        return [f"// {effect_type} effect not implemented"]

    # --- Routing ---

    def _effect_order(
        self,
        effect_ids: list[str],
        edges: dict[str, str],
        warnings: WarningCollector,
    ) -> list[str]:
        """Effects upstream-first so each is added after the ones feeding it."""
        ordered: list[str] = []
        remaining = list(effect_ids)
        while remaining:
            ready = [
                node for node in remaining
                if not any(src in remaining and dst == node for src, dst in edges.items())
            ]
            if not ready:
                warnings.warn("Effect routing has a cycle between %s", ", ".join(remaining))
                ordered.extend(remaining)
                break
            ordered.extend(ready)
            remaining = [node for node in remaining if node not in ready]
        return ordered

    def _routing(
        self,
        script: _Script,
        resolved: ResolvedComposition,
        synth_nodes: list[AudioGraphNode],
        effect_nodes: list[AudioGraphNode],
        warnings: WarningCollector,
    ) -> dict[str, str]:
        """Write routing statements; returns the output bus expression per node id."""
        known = {node.id: node for node in resolved.audio_graph if node.id}
        effect_ids = [node.id for node in effect_nodes if node.id]
        def bus(node_id: str) -> str:
            if node_id in effect_ids:
                return f"~busses.{sanitize_name(node_id)}.index"
            return "0"

        edges: dict[str, str] = {}
        comments: list[str] = []
        for connection in resolved.connections:
            if len(connection) != 2:
                warnings.warn("Skipping malformed connection %s", list(connection))
                comments.append(f"// Skipped malformed connection {list(connection)}")
                continue
            source, target = connection
            target_node = known.get(target)
            target_is_sink = target == MASTER_NODE_ID or (
                target_node is not None and target_node.kind == NodeKind.SINK
            )
            if source not in known:
                warnings.warn("Connection source %r not found in audio graph", source)
                comments.append(f"// Skipped connection {source} -> {target}: unknown source")
                continue
            if not target_is_sink and target not in known:
                warnings.warn("Connection target %r not found in audio graph", target)
                comments.append(f"// Skipped connection {source} -> {target}: unknown target")
                continue
            if not target_is_sink and target not in effect_ids:
                warnings.warn("Cannot route %s into %s: only effects accept input", source, target)
                comments.append(f"// Skipped connection {source} -> {target}: target is not an effect")
                continue
            if source in edges:
                warnings.warn("%s already routed to %s, ignoring %s", source, edges[source], target)
                comments.append(f"// Skipped connection {source} -> {target}: output already routed")
                continue
            edges[source] = MASTER_NODE_ID if target_is_sink else target

        outputs = {node_id: bus(edges[node_id]) if node_id in edges else "0" for node_id in known}

        script.add("// Routing", 1)
        script.extend(comments, 1)
        for effect_id in self._effect_order(effect_ids, edges, warnings):
            name = sanitize_name(effect_id)
            script.add(
                f"~effects.{name} = Synth.tail(s, \\{name}, "
                f"[\\in, ~busses.{name}.index, \\out, {outputs[effect_id]}]);",
                1,
            )
        for node in synth_nodes:
            if node.id:
                script.add(f"~outs.{sanitize_name(node.id)} = {outputs[node.id]};", 1)

        # Inline sequence effects: pattern -> fx0 -> fx1 -> ... -> synth output
        for sequence in resolved.sequences:
            if not sequence.effects:
                continue
            final = outputs.get(sequence.synth_ref or "", "0")
            names = [self._inline_effect_name(sequence, i) for i in range(len(sequence.effects))]
            for i, name in enumerate(names):
                out = f"~busses.{names[i + 1]}.index" if i + 1 < len(names) else final
                script.add(
                    f"~effects.{name} = Synth.head(s, \\{name}, [\\in, ~busses.{name}.index, \\out, {out}]);",
                    1,
                )
        script.add()
        return outputs

    # --- Patterns ---

    def _pattern_events(
        self,
        resolved: ResolvedComposition,
        sequence: ResolvedSequence,
        warnings: WarningCollector,
    ) -> tuple[list[str], list[str], list[str]]:
        """Parallel freq / dur / amp lists with rests for gaps."""
        freqs: list[str] = []
        durs: list[str] = []
        amps: list[str] = []

        def beats(start: float, end: float) -> float:
            return resolved.seconds_to_beats(end) - resolved.seconds_to_beats(start)

        notes = sorted(sequence.notes, key=lambda n: n.start)
        cursor = 0.0
        for i, note in enumerate(notes):
            if note.start - cursor > 1e-6:
                freqs.append("\\rest")
                durs.append(format_number(beats(cursor, note.start)))
                amps.append("0")

            end = note.end
            if i + 1 < len(notes) and notes[i + 1].start < end:
                # Overlaps are shortened to the next onset
                end = notes[i + 1].start
            freqs.append(self._frequency(note, warnings))
            durs.append(format_number(beats(note.start, end)))
            amps.append(format_number(note.velocity))
            cursor = max(cursor, end)

        if sequence.loop and sequence.loop_length and sequence.loop_length - cursor > 1e-6:
            freqs.append("\\rest")
            durs.append(format_number(beats(cursor, sequence.loop_length)))
            amps.append("0")
        return freqs, durs, amps

    def _frequency(self, note: ResolvedNote, warnings: WarningCollector) -> str:
        values = []
        for pitch in note.pitches:
            midi, ok = resolve_pitch(pitch, self.log)
            if not ok:
                warnings.warnings.append(f"Unresolvable pitch {pitch!r} replaced with {midi}")
            offset = (note.microtuning or 0) / 100
            values.append(f"{format_number(midi + offset)}.midicps")
        if note.is_chord:
            return "[" + ", ".join(values) + "]"
        return values[0] if values else "\\rest"

    def _patterns(
        self,
        script: _Script,
        resolved: ResolvedComposition,
        instruments: dict[int, str],
        outputs: dict[str, str],
        warnings: WarningCollector,
    ) -> list[str]:
        script.add("// Pattern definitions", 1)
        names: list[str] = []
        for index, sequence in enumerate(resolved.sequences):
            name = sanitize_name(sequence.label)
            if name in names:
                name = f"{name}_{index}"
            names.append(name)

            if sequence.effects:
                out = f"~busses.{self._inline_effect_name(sequence, 0)}.index"
            else:
                out = outputs.get(sequence.synth_ref or "", "0")
            repeats = "inf" if sequence.loop else "1"
            freqs, durs, amps = self._pattern_events(resolved, sequence, warnings)

            script.add(f"// Pattern: {sequence.label}", 1)
            script.add(f"~patterns.{name} = Pbind(", 1)
            script.extend(
                [
                    f"\\instrument, \\{instruments[index]},",
                    f"\\out, {out},",
                    f"\\freq, Pseq([{', '.join(freqs)}], {repeats}),",
                    f"\\dur, Pseq([{', '.join(durs)}], {repeats}),",
                    f"\\amp, Pseq([{', '.join(amps)}], {repeats})",
                ],
                2,
            )
            if any(note.modulations for note in sequence.notes):
                script.add("// Modulations need separate parameter automation", 2)
            script.add(");", 1)
            script.add()
        return names

    # --- Main ---

    def _main(self, script: _Script, resolved: ResolvedComposition, pattern_names: list[str]) -> None:
        script.add("// Main execution", 1)
        script.add(f"~tempo.tempo = {format_number(resolved.tempo_map.initial_bpm / 60)};", 1)
        for change in resolved.tempo_changes:
            script.add(
                f"~tempo.sched({format_number(change.beat)}, "
                f"{{ ~tempo.tempo = {format_number(change.bpm / 60)}; nil }});",
                1,
            )
        script.add()
        script.add("// Start all patterns", 1)
        for name in pattern_names:
            script.add(f"~players.{name} = ~patterns.{name}.play(~tempo);", 1)
        script.add()
        script.add('"Composition started".postln;', 1)
        script.add("});")
        script.add(")")
        script.add()
        script.add("// Stop all patterns")
        script.add("(")
        script.add("~players.do(_.stop);")
        script.add("s.freeAll;")
        script.add('"Composition stopped".postln;')
        script.add(")")


def encode_supercollider(
    resolved: ResolvedComposition,
    log: logging.Logger | None = None,
) -> EncodeResult[str]:
    """
    Convenience function to encode a resolved composition as SuperCollider.

    Returns:
        EncodeResult with the script text and any fallback warnings
    """
    return SuperColliderEncoder(log).encode(resolved)
