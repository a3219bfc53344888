# transpiler.py
"""
vhdl2ver: VHDL -> structural tree -> IR -> Verilog-2001 / SystemVerilog.

    parse_and_lower(text)  ->  ResolvedIR  ->  generate(ir, dialect)  ->  text

The core never touches the file system; transpile_file() is the thin layer
that reads a source file, enforces the allowed folders and the size limit,
and writes the output next to it (or where asked).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from .config import MAX_FILE_SIZE_BYTES, OUTPUT_SUFFIXES, TranspileOptions
from .dialect import Dialect, profile_for
from .errors import SemanticError
from .renderer import get_renderer
from .resolver import ResolvedIR, resolve
from .visitor import build_ir
from .vhdl_parser import parse

log = logging.getLogger(__name__)


def parse_and_lower(source_text: str, strict: bool = False) -> ResolvedIR:
    """Parse, lower and resolve one design unit. Raises CoreError subclasses."""
    unit = parse(source_text)
    log.debug("parsed entity %s", unit.entity.name)
    design = build_ir(unit)
    return resolve(design, strict=strict)


def generate(ir: ResolvedIR, dialect: Union[Dialect, str] = Dialect.STRICT, indent: Optional[int] = None) -> str:
    """Render resolved IR in the given dialect. Same input, same bytes."""
    renderer = get_renderer() if indent is None else get_renderer(indentsize=indent)
    return renderer.render_module(ir, profile_for(dialect))


@dataclass(frozen=True)
class TranspileResult:
    text: str
    diagnostics: List[SemanticError] = field(default_factory=list)
    entity: str = ""


def transpile_text(text: str, dialect: Union[Dialect, str] = Dialect.STRICT, strict: bool = False,
                   indent: Optional[int] = None) -> TranspileResult:
    ir = parse_and_lower(text, strict=strict)
    output = generate(ir, dialect, indent)
    return TranspileResult(output, list(ir.diagnostics), ir.entity.name)


def output_path_for(path: Path, dialect: Union[Dialect, str]) -> Path:
    return Path(path).with_suffix(OUTPUT_SUFFIXES[str(Dialect(str(dialect)))])


def read_source(path: Union[str, Path], options: TranspileOptions) -> str:
    path = Path(path)
    if not options.is_allowed(path):
        raise PermissionError(f"{path} is outside the allowed folders")
    size = path.stat().st_size
    if size > MAX_FILE_SIZE_BYTES:
        raise OSError(f"{path} is {size} bytes, larger than the {MAX_FILE_SIZE_BYTES} byte limit")
    return path.read_text(encoding="utf-8")


def transpile_file(path: Union[str, Path], output_path: Union[str, Path, None] = None,
                   dialect: Union[Dialect, str, None] = None,
                   options: Optional[TranspileOptions] = None) -> TranspileResult:
    """
    Transpile one file and write the result. The output defaults to the
    source path with a .v (legacy) or .sv (strict) suffix.
    """
    options = options or TranspileOptions()
    dialect = dialect or options.dialect
    path = Path(path)
    log.info("transpiling %s (%s)", path, dialect)

    text = read_source(path, options)
    result = transpile_text(text, dialect, strict=options.strict, indent=options.indent)

    out = Path(output_path) if output_path is not None else output_path_for(path, dialect)
    if not options.is_allowed(out.parent):
        raise PermissionError(f"{out} is outside the allowed folders")
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(result.text, encoding="utf-8")
    log.info("wrote %s", out)
    return result
