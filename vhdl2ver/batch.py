# batch.py
"""
Folder-level transpilation.

Each file is an independent task on a bounded thread pool; tasks return an
immutable FileOutcome and the report is folded once all of them finished,
sorted by input path so that completion order never shows in the output.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .config import DEFAULT_MAX_WORKERS, SOURCE_SUFFIXES, TranspileOptions
from .dialect import Dialect
from .errors import CoreError
from .transpiler import output_path_for, transpile_file

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileOutcome:
    source: Path
    output: Optional[Path] = None
    error: Optional[str] = None
    warnings: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class BatchReport:
    input_folder: Path
    output_folder: Path
    recursive: bool
    dialect: str
    outcomes: Tuple[FileOutcome, ...]

    @property
    def succeeded(self) -> List[FileOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> List[FileOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def format(self) -> str:
        if not self.outcomes:
            return f"No VHDL files found in '{self.input_folder}'\n"
        lines = [
            f"=== Batch VHDL to {'SystemVerilog' if self.dialect == 'strict' else 'Verilog'} transpilation ===",
            "",
            f"Input folder:  {self.input_folder}",
            f"Output folder: {self.output_folder}",
            f"Recursive:     {self.recursive}",
            f"Dialect:       {self.dialect}",
            "",
            f"Total files found:       {len(self.outcomes)}",
            f"Successfully transpiled: {len(self.succeeded)}",
            f"Failed:                  {len(self.failed)}",
        ]
        if self.succeeded:
            lines += ["", "=== Successful transpilations ==="]
            for o in self.succeeded:
                lines.append(f"✓ {o.source} -> {o.output}")
                lines.extend(f"    warning: {w}" for w in o.warnings)
        if self.failed:
            lines += ["", "=== Errors ==="]
            lines.extend(f"✗ {o.source}: {o.error}" for o in self.failed)
        return "\n".join(lines) + "\n"


def find_sources(folder: Path, recursive: bool = False) -> List[Path]:
    pattern = "**/*" if recursive else "*"
    return sorted(p for p in folder.glob(pattern) if p.is_file() and p.suffix.lower() in SOURCE_SUFFIXES)


def _transpile_one(source: Path, out: Path, dialect: str, options: TranspileOptions) -> FileOutcome:
    try:
        result = transpile_file(source, out, dialect, options)
    except (CoreError, OSError) as e:
        log.error("%s: %s", source, e)
        return FileOutcome(source, error=str(e))
    return FileOutcome(source, out, warnings=tuple(str(d) for d in result.diagnostics))


def transpile_folder(folder: Union[str, Path], output_folder: Union[str, Path, None] = None,
                     recursive: bool = False, dialect: Union[Dialect, str, None] = None,
                     max_workers: int = DEFAULT_MAX_WORKERS,
                     options: Optional[TranspileOptions] = None) -> BatchReport:
    """
    Transpile every .vhd/.vhdl file in folder. A failing file is recorded in
    the report and never stops the others.
    """
    options = options or TranspileOptions()
    dialect = str(Dialect(str(dialect or options.dialect)))
    folder = Path(folder)
    output_folder = Path(output_folder) if output_folder is not None else folder
    if not folder.is_dir():
        raise NotADirectoryError(f"{folder} is not a directory")
    if not options.is_allowed(folder):
        raise PermissionError(f"{folder} is outside the allowed folders")

    sources = find_sources(folder, recursive)
    log.info("found %d VHDL files in %s", len(sources), folder)

    # m.vhd and m.vhdl map to the same output; the first in path order keeps it
    claimed: Dict[Path, Path] = {}
    outcomes: List[FileOutcome] = []
    jobs = []
    for source in sources:
        out = output_path_for(output_folder / source.relative_to(folder), dialect)
        if out in claimed:
            error = f"output {out} is already written by {claimed[out]}"
            log.error("%s: %s", source, error)
            outcomes.append(FileOutcome(source, error=error))
        else:
            claimed[out] = source
            jobs.append((source, out))

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        futures = [pool.submit(_transpile_one, s, out, dialect, options) for s, out in jobs]
        outcomes.extend(f.result() for f in futures)

    outcomes.sort(key=lambda o: str(o.source))
    report = BatchReport(folder, output_folder, recursive, dialect, tuple(outcomes))
    log.info("batch finished: %d ok, %d failed", len(report.succeeded), len(report.failed))
    return report
