# config.py
"""Defaults and per-run options, overridable from the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

# --------------------------------------------------------------------
# Constants
# --------------------------------------------------------------------
DEFAULT_DIALECT = "strict"
SOURCE_SUFFIXES = (".vhd", ".vhdl")
OUTPUT_SUFFIXES = {"legacy": ".v", "strict": ".sv"}
MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024
DEFAULT_INDENT = 2
DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
DEFAULT_MAX_WORKERS = min(8, os.cpu_count() or 1)

_TRUE = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class TranspileOptions:
    dialect: str = DEFAULT_DIALECT
    strict: bool = False
    indent: int = DEFAULT_INDENT
    # Empty means any folder is allowed.
    allowed_folders: Tuple[Path, ...] = field(default=())

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "TranspileOptions":
        env = os.environ if environ is None else environ
        folders = env.get("VHDL2VER_ALLOWED_FOLDERS", "")
        return cls(
            dialect=env.get("VHDL2VER_DIALECT", DEFAULT_DIALECT).strip().lower(),
            strict=env.get("VHDL2VER_STRICT", "").strip().lower() in _TRUE,
            indent=int(env.get("VHDL2VER_INDENT", DEFAULT_INDENT)),
            allowed_folders=tuple(Path(p).resolve() for p in folders.split(os.pathsep) if p),
        )

    def is_allowed(self, path: Path) -> bool:
        if not self.allowed_folders:
            return True
        resolved = Path(path).resolve()
        return any(resolved == folder or folder in resolved.parents for folder in self.allowed_folders)
