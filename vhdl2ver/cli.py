# cli.py
"""Command line entry point: vhdl2ver {transpile,batch,analyze}."""
from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from typing import Optional, Sequence

from . import __version__
from .analyze import ANALYSIS_TYPES, analyze_file
from .batch import transpile_folder
from .config import DEFAULT_MAX_WORKERS, TranspileOptions
from .errors import CoreError
from .transpiler import output_path_for, read_source, transpile_file, transpile_text

log = logging.getLogger("vhdl2ver")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="vhdl2ver", description="VHDL to Verilog-2001 / SystemVerilog transpiler.")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    ap.add_argument("--dialect", choices=("legacy", "strict"), default=None,
                    help="output dialect (default: $VHDL2VER_DIALECT or strict)")
    ap.add_argument("--strict-widths", action="store_true",
                    help="treat width and sensitivity warnings as errors")
    ap.add_argument("-v", "--verbose", action="count", default=0, help="-v for info, -vv for debug")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("transpile", help="transpile one file")
    p.add_argument("input")
    p.add_argument("-o", "--output", help="output file (default: input with .v/.sv suffix)")
    p.add_argument("--stdout", action="store_true", help="print the result instead of writing a file")

    p = sub.add_parser("batch", help="transpile every .vhd/.vhdl file in a folder")
    p.add_argument("folder")
    p.add_argument("-o", "--output-folder", help="output folder (default: next to the sources)")
    p.add_argument("-r", "--recursive", action="store_true")
    p.add_argument("-j", "--jobs", type=int, default=DEFAULT_MAX_WORKERS, help="parallel workers")

    p = sub.add_parser("analyze", help="summarise entity, ports, signals and processes")
    p.add_argument("input")
    p.add_argument("--type", dest="analysis_type", choices=ANALYSIS_TYPES, default="all")
    return ap


def _options(a: argparse.Namespace) -> TranspileOptions:
    options = TranspileOptions.from_env()
    if a.dialect:
        options = dataclasses.replace(options, dialect=a.dialect)
    if a.strict_widths:
        options = dataclasses.replace(options, strict=True)
    return options


def _transpile(a: argparse.Namespace, options: TranspileOptions) -> int:
    if a.stdout:
        result = transpile_text(read_source(a.input, options), options.dialect, options.strict, options.indent)
        sys.stdout.write(result.text)
    else:
        result = transpile_file(a.input, a.output, options.dialect, options)
        print(f"✓ {a.input} -> {a.output or output_path_for(a.input, options.dialect)}")
    for diag in result.diagnostics:
        print(f"warning: {diag}", file=sys.stderr)
    return 0


def _batch(a: argparse.Namespace, options: TranspileOptions) -> int:
    report = transpile_folder(a.folder, a.output_folder, a.recursive, options.dialect, a.jobs, options)
    sys.stdout.write(report.format())
    return 1 if report.failed else 0


def _analyze(a: argparse.Namespace, options: TranspileOptions) -> int:
    sys.stdout.write(analyze_file(a.input, a.analysis_type, options))
    return 0


COMMANDS = {"transpile": _transpile, "batch": _batch, "analyze": _analyze}


def main(argv: Optional[Sequence[str]] = None) -> int:
    a = build_parser().parse_args(argv)
    level = logging.WARNING if a.verbose == 0 else logging.INFO if a.verbose == 1 else logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    try:
        options = _options(a)
        return COMMANDS[a.command](a, options)
    except (CoreError, OSError, ValueError) as e:
        log.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
