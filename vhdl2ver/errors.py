# errors.py
"""
Error taxonomy of the translation core.

Fatal errors are raised. Non-fatal semantic diagnostics are instances of the
same classes with ``fatal = False``; the resolver collects them on the
resolved IR instead of raising (unless strict mode escalates them).
"""
from typing import Iterable, Optional


class CoreError(Exception):
    """Base class for everything the core reports about a source file."""

    fatal = True

    def __init__(self, message: str, line: Optional[int] = None):
        self.message = message
        self.line = line
        super().__init__(self._format())

    def _format(self) -> str:
        if self.line:
            return f"line {self.line}: {self.message}"
        return self.message


class ParseError(CoreError):
    """Malformed structure; aborts the file."""

    def __init__(self, line: Optional[int], message: str):
        super().__init__(message, line)


class UnsupportedConstruct(ParseError):
    """A construct outside the translatable subset (generics, packages, ...)."""

    def __init__(self, construct: str, line: Optional[int]):
        self.construct = construct
        super().__init__(line, f"unsupported construct: {construct}")


# Same failure seen from the semantic side of the pipeline.
Unsupported = UnsupportedConstruct


class SemanticError(CoreError):
    pass


class WidthMismatch(SemanticError):
    fatal = False

    def __init__(self, target: str, target_width: int, value_width: int, line: Optional[int] = None):
        self.target = target
        self.target_width = target_width
        self.value_width = value_width
        super().__init__(
            f"width mismatch assigning {value_width}-bit value to {target_width}-bit '{target}'",
            line,
        )


class MixedSensitivity(SemanticError):
    fatal = False

    def __init__(self, process: str, missing: Iterable[str], extra: Iterable[str], line: Optional[int] = None):
        self.process = process
        self.missing = tuple(missing)
        self.extra = tuple(extra)
        parts = []
        if self.missing:
            parts.append("missing " + ", ".join(self.missing))
        if self.extra:
            parts.append("unused " + ", ".join(self.extra))
        super().__init__(f"sensitivity list of {process}: " + "; ".join(parts), line)


class ConflictingDrivers(SemanticError):
    def __init__(self, signal: str, message: str, line: Optional[int] = None):
        self.signal = signal
        super().__init__(f"'{signal}' {message}", line)


class AmbiguousResetShape(SemanticError):
    def __init__(self, process: str, message: str, line: Optional[int] = None):
        self.process = process
        super().__init__(f"{process}: {message}", line)
