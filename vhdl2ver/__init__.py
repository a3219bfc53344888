# vhdl2ver: VHDL -> Verilog-2001 / SystemVerilog
__version__ = "0.1.0"

from .dialect import Dialect
from .errors import (
    AmbiguousResetShape, ConflictingDrivers, CoreError, MixedSensitivity, ParseError, SemanticError,
    Unsupported, UnsupportedConstruct, WidthMismatch,
)
from .resolver import ResolvedIR
from .transpiler import TranspileResult, generate, parse_and_lower, transpile_file, transpile_text

__all__ = [
    "AmbiguousResetShape", "ConflictingDrivers", "CoreError", "Dialect", "MixedSensitivity",
    "ParseError", "ResolvedIR", "SemanticError", "TranspileResult", "Unsupported",
    "UnsupportedConstruct", "WidthMismatch", "generate", "parse_and_lower", "transpile_file",
    "transpile_text", "__version__",
]
