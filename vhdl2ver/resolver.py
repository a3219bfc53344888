# resolver.py
"""
Semantic resolution of a lowered Design.

Nothing in the tree is mutated: widths, process kinds, storage and
exclusivity facts are recorded in side tables of ResolvedIR keyed by the
(identity-hashed) IR nodes, so one ResolvedIR can feed both generators.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from .ast_ir import (
    CONVERSIONS, EDGE_PREDICATES, SIZED_CONVERSIONS,
    Aggregate, Assign, Attribute, BinaryOp, Call, Case, Concat, ConditionalAssignment,
    ContinuousAssignment, Design, Direction, Ident, If, Index, Literal, LiteralKind,
    Process, Slice, Statement, Type, UnaryOp, target_name,
)
from .errors import (
    AmbiguousResetShape, ConflictingDrivers, MixedSensitivity, SemanticError, UnsupportedConstruct, WidthMismatch,
)
from .visitor import NodeVisitor, lookup_table

log = logging.getLogger(__name__)

RELATIONAL_OPS = frozenset(["=", "/=", "<", "<=", ">", ">="])
SHIFT_OPS = frozenset(["sll", "srl", "sla", "sra"])

# Driver categories
SEQUENTIAL = "sequential process"
COMBINATIONAL = "combinational process"
CONTINUOUS = "continuous assignment"


# ------------------------------------------------------------
# Process kinds
# ------------------------------------------------------------
class Kind(enum.Enum):
    COMBINATIONAL = "combinational"
    SEQUENTIAL = "sequential"


class ResetKind(enum.Enum):
    NONE = "none"
    SYNC = "sync"
    ASYNC = "async"


@dataclass(frozen=True)
class ProcessKind:
    kind: Kind
    reset_kind: ResetKind = ResetKind.NONE
    reset_signal: Optional[str] = None
    reset_active_level: Optional[str] = None    # '1' or '0'
    clock: Optional[str] = None
    clock_edge: Optional[str] = None            # 'posedge' or 'negedge'
    # Statement groups of the recognised shape, used by the generator.
    reset_body: Tuple[Statement, ...] = field(default=(), compare=False, repr=False)
    clocked_body: Tuple[Statement, ...] = field(default=(), compare=False, repr=False)

    @property
    def is_sequential(self) -> bool:
        return self.kind is Kind.SEQUENTIAL

    def describe(self) -> str:
        if not self.is_sequential:
            return "combinational"
        text = f"sequential ({self.clock_edge} {self.clock}"
        if self.reset_kind is not ResetKind.NONE:
            text += f", {self.reset_kind.value} reset {self.reset_signal}='{self.reset_active_level}'"
        return text + ")"


COMBINATIONAL_KIND = ProcessKind(Kind.COMBINATIONAL)


class _EdgeCounter(NodeVisitor):
    def __init__(self):
        self.count = 0

    def visit_Call(self, node: Call):
        if node.name in EDGE_PREDICATES:
            self.count += 1
        self.generic_visit(node)

    def visit_Attribute(self, node: Attribute):
        if node.name == "event":
            self.count += 1
        self.generic_visit(node)


def count_edges(nodes: Iterable) -> int:
    counter = _EdgeCounter()
    for node in nodes:
        counter.visit(node)
    return counter.count


def edge_of(cond) -> Optional[Tuple[str, str]]:
    """(clock, edge) when cond is an edge predicate, else None."""
    if isinstance(cond, Call) and cond.name in EDGE_PREDICATES and isinstance(cond.args[0], Ident):
        return cond.args[0].name, EDGE_PREDICATES[cond.name]
    if isinstance(cond, BinaryOp) and cond.op == "and":
        for event, level in ((cond.lhs, cond.rhs), (cond.rhs, cond.lhs)):
            if isinstance(event, Attribute) and event.name == "event" and isinstance(event.prefix, Ident):
                test = level_test(level)
                if test is not None and test[0] == event.prefix.name:
                    return test[0], "posedge" if test[1] == "1" else "negedge"
    return None


def level_test(cond) -> Optional[Tuple[str, str]]:
    """(signal, level) when cond is `signal = '0'|'1'`, else None."""
    if not isinstance(cond, BinaryOp) or cond.op != "=":
        return None
    for sig, lit in ((cond.lhs, cond.rhs), (cond.rhs, cond.lhs)):
        if isinstance(sig, Ident) and isinstance(lit, Literal) and lit.kind is LiteralKind.BIT \
                and lit.value in ("0", "1"):
            return sig.name, lit.value
    return None


def _is_constant(expr, constants: FrozenSet[str]) -> bool:
    if isinstance(expr, Literal):
        return True
    if isinstance(expr, Aggregate):
        return _is_constant(expr.fill, constants)
    if isinstance(expr, Ident):
        return expr.name in constants
    if isinstance(expr, Call) and (expr.name in CONVERSIONS or expr.name in SIZED_CONVERSIONS):
        return all(_is_constant(a, constants) for a in expr.args)
    return False


def _assigns_only_constants(body: Sequence[Statement], constants: FrozenSet[str]) -> bool:
    return bool(body) and all(
        isinstance(s, Assign) and _is_constant(s.value, constants) for s in body)


def _resets_every_register(reset_body: Sequence[Statement], clocked: Sequence[Statement]) -> bool:
    reset = {name for name, _ in written_names(reset_body)}
    return all(name in reset for name, _ in written_names(clocked, signals_only=True))


def classify_process(sensitivity: Sequence[str], body: Sequence[Statement],
                     all_sensitive: bool = False, name: str = "process", line: int = 0,
                     constants: FrozenSet[str] = frozenset()) -> ProcessKind:
    """
    Decide whether a process is combinational or clocked, and find its reset.

    Recognised clocked shapes (anything else with an edge test raises
    AmbiguousResetShape):

        process (clk)                  process (clk, rst)
        begin                          begin
          if rising_edge(clk) then       if rst = '1' then
            if rst = '1' then ...          ...
            else ... end if;             elsif rising_edge(clk) then
          end if;                          ...
        end process;                     end if;
                                       end process;

    ``constants`` names the identifiers (constants, enum literals) a
    synchronous reset branch may assign. That branch must also write every
    signal the clocked body writes, otherwise the inner if is ordinary logic.
    """
    edges = count_edges(body)
    if edges == 0:
        return COMBINATIONAL_KIND

    def ambiguous(message: str) -> AmbiguousResetShape:
        return AmbiguousResetShape(name, message, line)

    if edges > 1:
        raise ambiguous("more than one clock edge test")
    if all_sensitive:
        raise ambiguous("clocked process with 'all' sensitivity")
    if len(body) != 1 or not isinstance(body[0], If):
        raise ambiguous("statements outside the clocked if")

    top = body[0]
    clock_edge = edge_of(top.branches[0].condition)
    if clock_edge is not None:
        clock, edge = clock_edge
        if len(top.branches) != 1 or top.else_body:
            raise ambiguous("clocked if has an else branch")
        if clock not in sensitivity:
            raise ambiguous(f"edge on '{clock}' which is not in the sensitivity list")
        if len(sensitivity) != 1:
            extra = ", ".join(s for s in sensitivity if s != clock)
            raise ambiguous(f"sensitivity list has members besides the clock: {extra}")
        clocked = top.branches[0].body
        first = clocked[0] if clocked else None
        if isinstance(first, If):
            reset = level_test(first.branches[0].condition)
            has_alternative = len(first.branches) > 1 or bool(first.else_body)
            if reset is not None and has_alternative \
                    and _assigns_only_constants(first.branches[0].body, constants) \
                    and _resets_every_register(first.branches[0].body, clocked):
                return ProcessKind(Kind.SEQUENTIAL, ResetKind.SYNC, reset[0], reset[1], clock, edge,
                                   reset_body=first.branches[0].body, clocked_body=clocked)
        return ProcessKind(Kind.SEQUENTIAL, ResetKind.NONE, None, None, clock, edge,
                           clocked_body=clocked)

    if len(top.branches) != 2 or top.else_body:
        raise ambiguous("edge test is not the only alternative to a reset test")
    clock_edge = edge_of(top.branches[1].condition)
    if clock_edge is None:
        raise ambiguous("edge test is nested below the top-level if")
    reset = level_test(top.branches[0].condition)
    if reset is None:
        raise ambiguous("first branch does not test a reset level")
    clock, edge = clock_edge
    if tuple(sorted(sensitivity)) != tuple(sorted({clock, reset[0]})) or reset[0] == clock:
        raise ambiguous(f"sensitivity list must be exactly ({clock}, {reset[0]})")
    return ProcessKind(Kind.SEQUENTIAL, ResetKind.ASYNC, reset[0], reset[1], clock, edge,
                       reset_body=top.branches[0].body, clocked_body=top.branches[1].body)


# ------------------------------------------------------------
# Widths
# ------------------------------------------------------------
def _max_known(*widths: Optional[int]) -> Optional[int]:
    known = [w for w in widths if w is not None]
    return max(known) if known else None


def static_value(expr) -> Optional[int]:
    if isinstance(expr, Literal) and expr.kind is LiteralKind.DECIMAL:
        return int(expr.value)
    if isinstance(expr, UnaryOp) and expr.op == "-":
        inner = static_value(expr.operand)
        return None if inner is None else -inner
    return None


def infer_width(expr, types: Dict[str, Tuple[str, Optional[Type]]]) -> Optional[int]:
    """Width of an expression in bits, or None when it is unsized."""
    if isinstance(expr, Ident):
        entry = types.get(expr.name)
        return entry[1].width if entry and entry[1] is not None else None
    if isinstance(expr, Literal):
        if expr.kind is LiteralKind.DECIMAL:
            return None
        if expr.kind is LiteralKind.BIT:
            return 1
        return expr.width_hint if expr.width_hint is not None else len(expr.value)
    if isinstance(expr, BinaryOp):
        lhs = infer_width(expr.lhs, types)
        rhs = infer_width(expr.rhs, types)
        if expr.op in RELATIONAL_OPS:
            return 1
        if expr.op == "*":
            return lhs + rhs if lhs is not None and rhs is not None else None
        if expr.op == "/" or expr.op in SHIFT_OPS:
            return lhs
        if expr.op in ("mod", "rem"):
            return rhs
        return _max_known(lhs, rhs)
    if isinstance(expr, UnaryOp):
        return infer_width(expr.operand, types)
    if isinstance(expr, Call):
        if expr.name in EDGE_PREDICATES:
            return 1
        if expr.name in ("to_integer", "conv_integer"):
            return None
        if expr.name in SIZED_CONVERSIONS:
            return static_value(expr.args[1])
        return infer_width(expr.args[0], types)
    if isinstance(expr, Aggregate):
        return None
    if isinstance(expr, Concat):
        parts = [infer_width(p, types) for p in expr.parts]
        return None if None in parts else sum(parts)
    if isinstance(expr, Index):
        return 1
    if isinstance(expr, Slice):
        left, right = static_value(expr.left), static_value(expr.right)
        return abs(left - right) + 1 if left is not None and right is not None else None
    if isinstance(expr, Attribute):
        return 1
    raise TypeError(f"cannot infer width of {expr!r}")


def is_signed(expr, types: Dict[str, Tuple[str, Optional[Type]]]) -> bool:
    if isinstance(expr, Ident):
        entry = types.get(expr.name)
        return bool(entry and entry[1] is not None and entry[1].signed)
    if isinstance(expr, Call):
        flag = CONVERSIONS.get(expr.name, SIZED_CONVERSIONS.get(expr.name))
        if flag is not None:
            return flag
        return bool(expr.args) and is_signed(expr.args[0], types)
    if isinstance(expr, (BinaryOp,)):
        return is_signed(expr.lhs, types) or is_signed(expr.rhs, types)
    if isinstance(expr, UnaryOp):
        return is_signed(expr.operand, types)
    return False


# ------------------------------------------------------------
# Reads and writes
# ------------------------------------------------------------
class _ReadCollector(NodeVisitor):
    """Names read by a statement list, in order of first appearance."""

    def __init__(self):
        self.names: List[str] = []

    def visit_Ident(self, node: Ident):
        if node.name not in self.names:
            self.names.append(node.name)

    def visit_Assign(self, node: Assign):
        self._visit_target(node.target)
        self.visit(node.value)

    def _visit_target(self, target):
        if isinstance(target, Index):
            self._visit_target(target.base)
            self.visit(target.index)
        elif isinstance(target, Slice):
            self._visit_target(target.base)
            self.visit(target.left)
            self.visit(target.right)


class _WriteCollector(NodeVisitor):
    def __init__(self, signals_only: bool = False):
        self.signals_only = signals_only
        self.writes: List[Tuple[str, int]] = []

    def visit_Assign(self, node: Assign):
        if not (self.signals_only and node.blocking):
            self.writes.append((target_name(node.target), node.line))


def written_names(body: Sequence[Statement], signals_only: bool = False) -> List[Tuple[str, int]]:
    collector = _WriteCollector(signals_only)
    for stmt in body:
        collector.visit(stmt)
    return collector.writes


# ------------------------------------------------------------
# Resolved IR
# ------------------------------------------------------------
@dataclass
class ResolvedIR:
    design: Design
    types: Dict[str, Tuple[str, Optional[Type]]]
    process_kinds: Dict[Process, ProcessKind] = field(default_factory=dict)
    drivers: Dict[str, str] = field(default_factory=dict)
    storage: Set[str] = field(default_factory=set)
    exclusive_cases: Set[Case] = field(default_factory=set)
    width_mismatches: Dict[object, WidthMismatch] = field(default_factory=dict)
    aggregate_widths: Dict[Aggregate, Optional[int]] = field(default_factory=dict)
    diagnostics: List[SemanticError] = field(default_factory=list)

    @property
    def entity(self):
        return self.design.entity

    @property
    def architecture(self):
        return self.design.architecture

    def type_of(self, name: str) -> Optional[Type]:
        entry = self.types.get(name)
        return entry[1] if entry else None

    def kind_of(self, name: str) -> Optional[str]:
        entry = self.types.get(name)
        return entry[0] if entry else None

    def width_of(self, expr) -> Optional[int]:
        return infer_width(expr, self.types)

    def signed(self, expr) -> bool:
        return is_signed(expr, self.types)

    def needs_storage(self, name: str) -> bool:
        return name in self.storage


class Resolver:
    def __init__(self, design: Design):
        self.ir = ResolvedIR(design, lookup_table(design))
        self.constants = frozenset(
            name for name, (kind, _) in self.ir.types.items() if kind in ("constant", "enum_literal"))

    def resolve(self) -> ResolvedIR:
        arch = self.ir.architecture
        if arch is None:
            return self.ir

        for proc in arch.processes:
            self.ir.process_kinds[proc] = classify_process(
                proc.sensitivity, proc.body, proc.all_sensitive,
                name=process_name(proc), line=proc.line, constants=self.constants)

        self.classify_drivers(arch.statements)

        for sig in arch.signals:
            if sig.init is not None:
                self.check_width(sig, Ident(sig.name, line=sig.line), sig.init, sig.line)
        for const in arch.constants:
            self.check_width(const, Ident(const.name, line=const.line), const.value, const.line)

        for stmt in arch.statements:
            if isinstance(stmt, Process):
                for var in stmt.variables:
                    if var.init is not None:
                        self.check_width(var, Ident(var.name, line=var.line), var.init, var.line)
                self.walk(stmt.body)
                self.check_sensitivity(stmt)
            elif count_edges([stmt]):
                raise UnsupportedConstruct("edge test outside a clocked process", stmt.line)
            elif isinstance(stmt, ContinuousAssignment):
                self.check_width(stmt, stmt.target, stmt.value, stmt.line)
            elif isinstance(stmt, ConditionalAssignment):
                for value, condition in stmt.choices:
                    self.check_width(stmt, stmt.target, value, stmt.line)
                    self.note_aggregates(condition)
                self.check_width(stmt, stmt.target, stmt.default, stmt.line)
        return self.ir

    # ---------- drivers and storage ----------
    def classify_drivers(self, statements) -> None:
        first_line: Dict[str, int] = {}
        for stmt in statements:
            if isinstance(stmt, Process):
                kind = self.ir.process_kinds[stmt]
                category = SEQUENTIAL if kind.is_sequential else COMBINATIONAL
                writes = written_names(stmt.body)
            elif isinstance(stmt, (ContinuousAssignment, ConditionalAssignment)):
                category = CONTINUOUS
                writes = [(target_name(stmt.target), stmt.line)]
            else:
                continue
            for name, line in writes:
                port = next((p for p in self.ir.entity.ports if p.name == name), None)
                if port is not None and port.direction is Direction.IN:
                    raise ConflictingDrivers(name, "is an input port and cannot be driven", line)
                previous = self.ir.drivers.get(name)
                if previous is not None and previous != category:
                    raise ConflictingDrivers(
                        name, f"is driven by a {previous} (line {first_line[name]}) and a {category}", line)
                self.ir.drivers[name] = category
                first_line.setdefault(name, line)
                if category == SEQUENTIAL:
                    self.ir.storage.add(name)
        log.debug("storage: %s", ", ".join(sorted(self.ir.storage)) or "none")

    # ---------- widths ----------
    def walk(self, body: Sequence[Statement]) -> None:
        for stmt in body:
            if isinstance(stmt, Assign):
                self.check_width(stmt, stmt.target, stmt.value, stmt.line)
            elif isinstance(stmt, If):
                for branch in stmt.branches:
                    self.note_aggregates(branch.condition)
                    self.walk(branch.body)
                self.walk(stmt.else_body)
            elif isinstance(stmt, Case):
                self.check_case(stmt)
                for arm in stmt.arms:
                    self.walk(arm.body)
                if stmt.default_body is not None:
                    self.walk(stmt.default_body)

    def check_width(self, node, target, value, line: int) -> None:
        target_width = self.ir.width_of(target)
        if isinstance(value, Aggregate):
            self.ir.aggregate_widths[value] = target_width
            return
        self.note_aggregates(value)
        value_width = self.ir.width_of(value)
        if target_width is None or value_width is None or target_width == value_width:
            return
        diag = WidthMismatch(target_name(target), target_width, value_width, line)
        self.ir.width_mismatches[node] = diag
        self.report(diag)

    def note_aggregates(self, expr) -> None:
        """Give aggregates compared against a sized operand that operand's width."""
        if isinstance(expr, BinaryOp):
            if isinstance(expr.rhs, Aggregate):
                self.ir.aggregate_widths[expr.rhs] = self.ir.width_of(expr.lhs)
            if isinstance(expr.lhs, Aggregate):
                self.ir.aggregate_widths[expr.lhs] = self.ir.width_of(expr.rhs)
            self.note_aggregates(expr.lhs)
            self.note_aggregates(expr.rhs)
        elif isinstance(expr, UnaryOp):
            self.note_aggregates(expr.operand)

    # ---------- sensitivity ----------
    def check_sensitivity(self, proc: Process) -> None:
        if self.ir.process_kinds[proc].is_sequential or proc.all_sensitive:
            return
        collector = _ReadCollector()
        for stmt in proc.body:
            collector.visit(stmt)
        read = [n for n in collector.names if self.ir.kind_of(n) in ("port", "signal")]
        missing = [n for n in read if n not in proc.sensitivity]
        extra = [n for n in proc.sensitivity if n not in read]
        if missing or extra:
            self.report(MixedSensitivity(process_name(proc), missing, extra, proc.line))

    # ---------- case exclusivity ----------
    def check_case(self, case: Case) -> None:
        seen = set()
        for arm in case.arms:
            for choice in arm.choices:
                if isinstance(choice, Literal):
                    if choice.kind in (LiteralKind.BIT, LiteralKind.BINARY_VECTOR) \
                            and any(c not in "01" for c in choice.value):
                        return
                    key = choice.int_value()
                elif isinstance(choice, Ident) and self.ir.kind_of(choice.name) == "enum_literal":
                    key = choice.name
                else:
                    return
                if key in seen:
                    return
                seen.add(key)
        self.ir.exclusive_cases.add(case)

    def report(self, diag: SemanticError) -> None:
        log.warning("%s", diag)
        self.ir.diagnostics.append(diag)


def process_name(proc: Process) -> str:
    return proc.label or f"process at line {proc.line}"


def resolve(design: Design, strict: bool = False) -> ResolvedIR:
    """
    Annotate a Design. Fatal problems raise; WidthMismatch and
    MixedSensitivity are collected on ResolvedIR.diagnostics, or raised
    (first one) when strict is set.
    """
    ir = Resolver(design).resolve()
    if strict and ir.diagnostics:
        raise ir.diagnostics[0]
    return ir
