# analyze.py
"""Human-readable summaries of a VHDL design unit."""
from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Union

from .ast_ir import BitType, EnumType, Type, VectorType
from .config import TranspileOptions
from .resolver import ResolvedIR, process_name
from .transpiler import parse_and_lower, read_source

ANALYSIS_TYPES = ("entities", "ports", "signals", "processes", "all")


def type_text(type_: Type) -> str:
    if isinstance(type_, BitType):
        return "bit"
    if isinstance(type_, EnumType):
        return f"{type_.name} ({len(type_.literals)} states, {type_.width} bits)"
    if isinstance(type_, VectorType):
        kind = "signed" if type_.signed else "unsigned"
        return f"{kind} [{type_.high}:{type_.low}]"
    return str(type_)


def _ports(ir: ResolvedIR, pad: str) -> List[str]:
    if not ir.entity.ports:
        return [f"{pad}No ports"]
    return [f"{pad}{p.name} : {p.direction.value} {type_text(p.type)}" for p in ir.entity.ports]


def _signals(ir: ResolvedIR, pad: str) -> List[str]:
    arch = ir.architecture
    if not arch.signals:
        return [f"{pad}No signals"]
    lines = []
    for sig in arch.signals:
        role = "register" if ir.needs_storage(sig.name) else ir.drivers.get(sig.name, "undriven")
        lines.append(f"{pad}{sig.name} : {type_text(sig.type)} ({role})")
    return lines


def _processes(ir: ResolvedIR, pad: str) -> List[str]:
    arch = ir.architecture
    if not arch.processes:
        return [f"{pad}No processes"]
    lines = []
    for proc in arch.processes:
        sensitivity = "all" if proc.all_sensitive else ", ".join(proc.sensitivity)
        lines.append(f"{pad}{process_name(proc)}: sensitivity ({sensitivity})")
        lines.append(f"{pad}  kind: {ir.process_kinds[proc].describe()}")
    return lines


def analyze_ir(ir: ResolvedIR, analysis_type: str = "all") -> str:
    if analysis_type not in ANALYSIS_TYPES:
        raise ValueError(f"unknown analysis type {analysis_type!r}, expected one of {', '.join(ANALYSIS_TYPES)}")
    entity, arch = ir.entity, ir.architecture
    lines = [f"Entity: {entity.name}"]

    if analysis_type == "entities":
        lines.append(f"  Ports: {len(entity.ports)}")
        lines.append(f"  Architecture: {arch.name}" if arch else "  No architecture found")
    elif analysis_type == "ports":
        lines += _ports(ir, "  ")
    elif analysis_type in ("signals", "processes"):
        if arch is None:
            lines.append("  No architecture found")
        else:
            lines.append(f"  Architecture: {arch.name}")
            lines += (_signals if analysis_type == "signals" else _processes)(ir, "    ")
    else:
        lines.append(f"  Ports: {len(entity.ports)}")
        lines += _ports(ir, "    ")
        if arch is None:
            lines.append("  No architecture found")
        else:
            lines.append(f"  Architecture: {arch.name}")
            lines.append(f"    Signals: {len(arch.signals)}")
            lines += _signals(ir, "      ")
            lines.append(f"    Processes: {len(arch.processes)}")
            lines += _processes(ir, "      ")
            lines.append(f"    Concurrent statements: {len(arch.statements) - len(arch.processes)}")
        if ir.diagnostics:
            lines.append("  Diagnostics:")
            lines += [f"    {d}" for d in ir.diagnostics]
    return "\n".join(lines) + "\n"


def analyze_text(text: str, analysis_type: str = "all") -> str:
    return analyze_ir(parse_and_lower(text), analysis_type)


def analyze_file(path: Union[str, Path], analysis_type: str = "all",
                 options: Optional[TranspileOptions] = None) -> str:
    text = read_source(path, options or TranspileOptions())
    return f"Analysis of {path}\n" + analyze_text(text, analysis_type)
