# ast_ir.py
"""
Dialect-neutral IR for one VHDL design unit.

Every node is a frozen dataclass that compares by identity, so that the
resolver can attach facts (widths, process kinds, storage) in side tables
keyed by the node itself instead of mutating the tree.
"""
from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

ir_node = dataclass(frozen=True, eq=False)


# ------------------------------------------------------------
# Types
# ------------------------------------------------------------
@ir_node
class BitType:
    """Single-bit logic value (std_logic, bit, boolean)."""

    @property
    def width(self) -> int:
        return 1

    @property
    def signed(self) -> bool:
        return False


@ir_node
class VectorType:
    high: int
    low: int
    signed: bool = False

    def __post_init__(self):
        if self.high < self.low:
            raise ValueError(f"vector range {self.high} downto {self.low} is empty")

    @property
    def width(self) -> int:
        return self.high - self.low + 1


@ir_node
class EnumType:
    name: str
    literals: Tuple[str, ...]

    @property
    def width(self) -> int:
        return max(1, math.ceil(math.log2(len(self.literals))))

    @property
    def signed(self) -> bool:
        return False

    def encoding(self, literal: str) -> int:
        return self.literals.index(literal)


Type = Union[BitType, VectorType, EnumType]

INTEGER = VectorType(31, 0, signed=True)
NATURAL = VectorType(31, 0, signed=False)


@ir_node
class TypeMark:
    """A type exactly as written in the source, before lowering."""
    name: str
    left: Optional["Expr"] = None
    right: Optional["Expr"] = None
    ascending: bool = False
    line: int = 0


class Direction(enum.Enum):
    IN = "in"
    OUT = "out"
    INOUT = "inout"
    BUFFER = "buffer"

    @classmethod
    def from_vhdl(cls, text: str) -> "Direction":
        return cls(text.lower())


# ------------------------------------------------------------
# Expressions
# ------------------------------------------------------------
class LiteralKind(enum.Enum):
    BIT = "bit"
    HEX = "hex"
    BINARY_VECTOR = "binary_vector"
    DECIMAL = "decimal"


@ir_node
class Ident:
    name: str
    line: int = 0


@ir_node
class Literal:
    """
    value holds the digits as written: '1' for a bit, 'F0' for x"F0",
    '0101' for "0101", '42' for a decimal.
    """
    kind: LiteralKind
    value: str
    width_hint: Optional[int] = None
    line: int = 0

    def int_value(self) -> int:
        if self.kind is LiteralKind.HEX:
            return int(self.value, 16)
        if self.kind is LiteralKind.DECIMAL:
            return int(self.value)
        return int(self.value.replace("x", "0").replace("z", "0"), 2)


@ir_node
class BinaryOp:
    op: str
    lhs: "Expr"
    rhs: "Expr"
    line: int = 0


@ir_node
class UnaryOp:
    op: str
    operand: "Expr"
    line: int = 0


@ir_node
class Call:
    """Builtin call: edge predicates, type conversions, shift functions."""
    name: str
    args: Tuple["Expr", ...]
    line: int = 0


@ir_node
class Aggregate:
    """(others => fill)"""
    fill: "Expr"
    line: int = 0


@ir_node
class Concat:
    parts: Tuple["Expr", ...]
    line: int = 0


@ir_node
class Index:
    base: "Expr"
    index: "Expr"
    line: int = 0


@ir_node
class Slice:
    base: "Expr"
    left: "Expr"
    right: "Expr"
    line: int = 0


@ir_node
class Attribute:
    prefix: "Expr"
    name: str
    line: int = 0


Expr = Union[Ident, Literal, BinaryOp, UnaryOp, Call, Aggregate, Concat, Index, Slice, Attribute]


def target_name(target: Expr) -> str:
    """Name of the signal an assignment target writes to."""
    while isinstance(target, (Index, Slice)):
        target = target.base
    if not isinstance(target, Ident):
        raise TypeError(f"not an assignment target: {target!r}")
    return target.name


# ------------------------------------------------------------
# Statements
# ------------------------------------------------------------
@ir_node
class Assign:
    target: Expr
    value: Expr
    blocking: bool = False
    line: int = 0


@ir_node
class IfBranch:
    condition: Expr
    body: Tuple["Statement", ...]


@ir_node
class If:
    branches: Tuple[IfBranch, ...]
    else_body: Tuple["Statement", ...] = ()
    line: int = 0


@ir_node
class CaseArm:
    choices: Tuple[Expr, ...]
    body: Tuple["Statement", ...]


@ir_node
class Case:
    selector: Expr
    arms: Tuple[CaseArm, ...]
    default_body: Optional[Tuple["Statement", ...]] = None
    line: int = 0


@ir_node
class UnsupportedStatement:
    """A recoverable construct kept verbatim for manual completion."""
    construct: str
    text: str
    line: int = 0


Statement = Union[Assign, If, Case, UnsupportedStatement]


# ------------------------------------------------------------
# Declarations and design units
# ------------------------------------------------------------
@ir_node
class Port:
    name: str
    direction: Direction
    type: Union[Type, TypeMark]
    line: int = 0


@ir_node
class Entity:
    name: str
    ports: Tuple[Port, ...]
    line: int = 0


@ir_node
class Signal:
    name: str
    type: Union[Type, TypeMark]
    init: Optional[Expr] = None
    line: int = 0


@ir_node
class Variable:
    name: str
    type: Union[Type, TypeMark]
    init: Optional[Expr] = None
    line: int = 0


@ir_node
class Constant:
    name: str
    type: Union[Type, TypeMark]
    value: Expr
    line: int = 0


@ir_node
class EnumDecl:
    type: EnumType
    line: int = 0


@ir_node
class Process:
    label: Optional[str]
    sensitivity: Tuple[str, ...]
    body: Tuple[Statement, ...]
    variables: Tuple[Variable, ...] = ()
    all_sensitive: bool = False
    line: int = 0


@ir_node
class ContinuousAssignment:
    target: Expr
    value: Expr
    line: int = 0


@ir_node
class ConditionalAssignment:
    """y <= a when c1 else b when c2 else d;"""
    target: Expr
    choices: Tuple[Tuple[Expr, Expr], ...]
    default: Expr
    line: int = 0


ConcurrentStatement = Union[Process, ContinuousAssignment, ConditionalAssignment, UnsupportedStatement]


@ir_node
class Architecture:
    name: str
    entity_name: str
    signals: Tuple[Signal, ...] = ()
    constants: Tuple[Constant, ...] = ()
    enums: Tuple[EnumDecl, ...] = ()
    statements: Tuple[ConcurrentStatement, ...] = ()
    line: int = 0

    @property
    def processes(self) -> Tuple[Process, ...]:
        return tuple(s for s in self.statements if isinstance(s, Process))


@ir_node
class ParsedUnit:
    """Structural tree straight out of the parser (type marks unresolved)."""
    entity: Entity
    architecture: Optional[Architecture]
    source: str = field(default="", repr=False)


@ir_node
class Design:
    """Lowered IR: types resolved, names canonical."""
    entity: Entity
    architecture: Optional[Architecture]


# ------------------------------------------------------------
# Builtin calls recognised without a declaration
# ------------------------------------------------------------
EDGE_PREDICATES = {"rising_edge": "posedge", "falling_edge": "negedge"}

# conversion -> signedness of the result (None keeps the argument's)
CONVERSIONS = {
    "std_logic_vector": False,
    "std_ulogic_vector": False,
    "unsigned": False,
    "signed": True,
    "to_integer": None,
    "conv_integer": None,
    "to_stdlogicvector": False,
}

# conversion(x, n): result is n bits wide
SIZED_CONVERSIONS = {
    "to_unsigned": False,
    "to_signed": True,
    "resize": None,
    "conv_std_logic_vector": False,
}

SHIFT_FUNCTIONS = {"shift_left": "<<", "shift_right": ">>"}

BUILTINS = frozenset(EDGE_PREDICATES) | frozenset(CONVERSIONS) | frozenset(SIZED_CONVERSIONS) \
    | frozenset(SHIFT_FUNCTIONS)
