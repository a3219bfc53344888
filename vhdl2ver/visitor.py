# visitor.py
"""
Tree walkers over the IR and the lowering pass (ParsedUnit -> Design).
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .ast_ir import (
    BUILTINS, EDGE_PREDICATES, INTEGER, NATURAL, SIZED_CONVERSIONS, SHIFT_FUNCTIONS,
    Architecture, Assign, Attribute, BinaryOp, BitType, Call, Design, Entity, EnumType,
    Ident, Index, Literal, LiteralKind, ParsedUnit, Process, Type, TypeMark,
    UnaryOp, VectorType, target_name,
)
from .errors import ParseError, UnsupportedConstruct

log = logging.getLogger(__name__)


# ------------------------------------------------------------
# Generic walkers
# ------------------------------------------------------------
class NodeVisitor:
    """ast.NodeVisitor for IR dataclasses: dispatches on visit_<ClassName>."""

    def visit(self, node: Any) -> Any:
        method = getattr(self, "visit_" + type(node).__name__, self.generic_visit)
        return method(node)

    def generic_visit(self, node: Any) -> None:
        for value in _children(node):
            self._walk(value)

    def _walk(self, value: Any) -> None:
        if isinstance(value, tuple):
            for item in value:
                self._walk(item)
        elif dataclasses.is_dataclass(value):
            self.visit(value)


class NodeTransformer(NodeVisitor):
    """
    Rebuilds the tree bottom-up. A visit_ method returns the replacement node;
    unchanged subtrees are returned as the same object.
    """

    def generic_visit(self, node: Any) -> Any:
        changes = {}
        for f in dataclasses.fields(node):
            old = getattr(node, f.name)
            new = self._transform(old)
            if new is not old:
                changes[f.name] = new
        return dataclasses.replace(node, **changes) if changes else node

    def _transform(self, value: Any) -> Any:
        if isinstance(value, tuple):
            items = tuple(self._transform(v) for v in value)
            if all(a is b for a, b in zip(items, value)):
                return value
            return items
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return self.visit(value)
        return value


def _children(node: Any):
    for f in dataclasses.fields(node):
        yield getattr(node, f.name)


# ------------------------------------------------------------
# Type lowering
# ------------------------------------------------------------
BIT_TYPES = frozenset(["std_logic", "std_ulogic", "bit", "boolean"])
VECTOR_TYPES = {
    "std_logic_vector": False,
    "std_ulogic_vector": False,
    "bit_vector": False,
    "unsigned": False,
    "signed": True,
}


@dataclass
class Symbol:
    name: str               # declared spelling
    kind: str               # port, signal, variable, constant, enum_literal
    type: Optional[Type]
    direction: Any = None
    value: Any = None       # constants only


# ------------------------------------------------------------
# ParsedUnit -> Design
# ------------------------------------------------------------
class IRBuilder(NodeTransformer):
    """
    Resolves type marks, builds the scope, and rewrites every identifier to
    its declared spelling. Raises ParseError for duplicate and undeclared
    names.
    """

    def __init__(self):
        self.scope: Dict[str, Symbol] = {}
        self.enum_types: Dict[str, EnumType] = {}
        self.local: Dict[str, Symbol] = {}
        self.variable_owner: Dict[str, Optional[str]] = {}

    # ---------- scope ----------
    def declare(self, name: str, kind: str, type_: Optional[Type], line: int, **extra) -> Symbol:
        key = name.lower()
        existing = self.scope.get(key) or self.local.get(key)
        if existing is not None:
            raise ParseError(line, f"{kind} '{name}' collides with {existing.kind} '{existing.name}'")
        symbol = Symbol(name, kind, type_, **extra)
        self.scope[key] = symbol
        return symbol

    def lookup(self, name: str) -> Optional[Symbol]:
        key = name.lower()
        return self.local.get(key) or self.scope.get(key)

    # ---------- types ----------
    def static_int(self, expr, line: int) -> int:
        if isinstance(expr, Literal) and expr.kind is LiteralKind.DECIMAL:
            return int(expr.value)
        if isinstance(expr, UnaryOp) and expr.op == "-":
            return -self.static_int(expr.operand, line)
        if isinstance(expr, BinaryOp) and expr.op in ("+", "-", "*"):
            lhs = self.static_int(expr.lhs, line)
            rhs = self.static_int(expr.rhs, line)
            return {"+": lhs + rhs, "-": lhs - rhs, "*": lhs * rhs}[expr.op]
        if isinstance(expr, Ident):
            symbol = self.lookup(expr.name)
            if symbol is not None and symbol.kind == "constant":
                return self.static_int(symbol.value, line)
        raise ParseError(line, "range bound is not a static integer")

    def resolve_type(self, mark: Any) -> Type:
        if not isinstance(mark, TypeMark):
            return mark
        name = mark.name.lower()
        if name in BIT_TYPES:
            return BitType()
        if name == "integer":
            return INTEGER
        if name in ("natural", "positive"):
            return NATURAL
        if name in VECTOR_TYPES:
            if mark.left is None:
                raise UnsupportedConstruct(f"unconstrained {mark.name}", mark.line)
            left = self.static_int(mark.left, mark.line)
            right = self.static_int(mark.right, mark.line)
            high, low = max(left, right), min(left, right)
            if mark.ascending:
                log.debug("line %d: ascending range of %s normalised to %d downto %d",
                          mark.line, mark.name, high, low)
            return VectorType(high, low, VECTOR_TYPES[name])
        if name in self.enum_types:
            return self.enum_types[name]
        raise UnsupportedConstruct(f"type {mark.name}", mark.line)

    # ---------- entry point ----------
    def build(self, unit: ParsedUnit) -> Design:
        entity = unit.entity
        ports = []
        for port in entity.ports:
            type_ = self.resolve_type(port.type)
            self.declare(port.name, "port", type_, port.line, direction=port.direction)
            ports.append(dataclasses.replace(port, type=type_))
        entity = Entity(entity.name, tuple(ports), line=entity.line)

        arch = unit.architecture
        if arch is None:
            log.debug("entity %s has no architecture", entity.name)
            return Design(entity, None)
        return Design(entity, self.build_architecture(arch))

    def build_architecture(self, arch: Architecture) -> Architecture:
        for decl in arch.enums:
            key = decl.type.name.lower()
            if key in self.enum_types:
                raise ParseError(decl.line, f"type '{decl.type.name}' declared twice")
            self.enum_types[key] = decl.type
            for literal in decl.type.literals:
                self.declare(literal, "enum_literal", decl.type, decl.line)

        constants = []
        for const in arch.constants:
            type_ = self.resolve_type(const.type)
            value = self.visit(const.value)
            self.declare(const.name, "constant", type_, const.line, value=value)
            constants.append(dataclasses.replace(const, type=type_, value=value))

        signals = []
        for sig in arch.signals:
            type_ = self.resolve_type(sig.type)
            init = self.visit(sig.init) if sig.init is not None else None
            self.declare(sig.name, "signal", type_, sig.line)
            signals.append(dataclasses.replace(sig, type=type_, init=init))

        statements = tuple(self.visit(stmt) for stmt in arch.statements)
        return dataclasses.replace(
            arch,
            signals=tuple(signals),
            constants=tuple(constants),
            statements=statements,
        )

    # ---------- statements ----------
    def visit_Process(self, node: Process) -> Process:
        variables = []
        self.local = {}
        for var in node.variables:
            type_ = self.resolve_type(var.type)
            key = var.name.lower()
            if key in self.variable_owner:
                raise UnsupportedConstruct(f"variable '{var.name}' declared in more than one process", var.line)
            if key in self.scope or key in self.local:
                raise ParseError(var.line, f"variable '{var.name}' collides with an existing declaration")
            self.variable_owner[key] = node.label
            init = self.visit(var.init) if var.init is not None else None
            self.local[key] = Symbol(var.name, "variable", type_)
            variables.append(dataclasses.replace(var, type=type_, init=init))

        sensitivity = []
        for name in node.sensitivity:
            symbol = self.lookup(name)
            if symbol is None or symbol.kind not in ("port", "signal"):
                raise ParseError(node.line, f"sensitivity list names undeclared signal '{name}'")
            if symbol.name not in sensitivity:
                sensitivity.append(symbol.name)

        body = self._transform(node.body)
        self.local = {}
        return dataclasses.replace(
            node, sensitivity=tuple(sensitivity), body=body, variables=tuple(variables))

    def check_target(self, target, line: int) -> Symbol:
        symbol = self.lookup(target_name(target))
        if symbol.kind not in ("port", "signal", "variable"):
            raise ParseError(line, f"cannot assign to {symbol.kind} '{symbol.name}'")
        return symbol

    def visit_Assign(self, node: Assign) -> Assign:
        assign = self.generic_visit(node)
        symbol = self.check_target(assign.target, node.line)
        if node.blocking and symbol.kind != "variable":
            raise ParseError(node.line, f"':=' assignment to signal '{symbol.name}'")
        if not node.blocking and symbol.kind == "variable":
            raise ParseError(node.line, f"'<=' assignment to variable '{symbol.name}'")
        return assign

    def visit_ContinuousAssignment(self, node):
        node = self.generic_visit(node)
        self.check_target(node.target, node.line)
        return node

    visit_ConditionalAssignment = visit_ContinuousAssignment

    # ---------- expressions ----------
    def visit_Ident(self, node: Ident) -> Ident:
        symbol = self.lookup(node.name)
        if symbol is None:
            raise ParseError(node.line, f"'{node.name}' is not declared")
        if symbol.name != node.name:
            return Ident(symbol.name, line=node.line)
        return node

    def visit_Call(self, node: Call):
        symbol = self.lookup(node.name)
        if symbol is not None and symbol.kind in ("port", "signal", "variable", "constant"):
            if len(node.args) != 1:
                raise ParseError(node.line, f"'{symbol.name}' indexed with {len(node.args)} subscripts")
            return Index(Ident(symbol.name, line=node.line), self.visit(node.args[0]), line=node.line)

        name = node.name.lower()
        if name not in BUILTINS:
            raise ParseError(node.line, f"function '{node.name}' is not declared")
        arity = 2 if name in SIZED_CONVERSIONS or name in SHIFT_FUNCTIONS else 1
        if len(node.args) != arity:
            raise ParseError(node.line, f"{name} takes {arity} argument(s), got {len(node.args)}")
        if name in EDGE_PREDICATES and not isinstance(node.args[0], Ident):
            raise ParseError(node.line, f"{name} needs a signal name")
        return Call(name, tuple(self.visit(a) for a in node.args), line=node.line)

    def visit_Attribute(self, node: Attribute):
        prefix = self.visit(node.prefix)
        if not isinstance(prefix, Ident):
            raise UnsupportedConstruct(f"attribute '{node.name} on an expression", node.line)
        if node.name == "event":
            return dataclasses.replace(node, prefix=prefix)
        symbol = self.lookup(prefix.name)
        type_ = symbol.type
        if node.name in ("length", "high", "low", "left", "right") and isinstance(type_, VectorType):
            value = {
                "length": type_.width,
                "high": type_.high,
                "left": type_.high,
                "low": type_.low,
                "right": type_.low,
            }[node.name]
            return Literal(LiteralKind.DECIMAL, str(value), None, line=node.line)
        raise UnsupportedConstruct(f"attribute '{node.name}", node.line)


def build_ir(unit: ParsedUnit) -> Design:
    """Lower a parsed unit to the IR."""
    design = IRBuilder().build(unit)
    arch = design.architecture
    log.debug("built IR for %s: %d ports, %d statements", design.entity.name,
              len(design.entity.ports), len(arch.statements) if arch else 0)
    return design


def lookup_table(design: Design) -> Dict[str, Tuple[str, Optional[Type]]]:
    """name -> (kind, type) for every declaration in a lowered design."""
    table: Dict[str, Tuple[str, Optional[Type]]] = {}
    for port in design.entity.ports:
        table[port.name] = ("port", port.type)
    arch = design.architecture
    if arch is None:
        return table
    for decl in arch.enums:
        for literal in decl.type.literals:
            table[literal] = ("enum_literal", decl.type)
    for const in arch.constants:
        table[const.name] = ("constant", const.type)
    for sig in arch.signals:
        table[sig.name] = ("signal", sig.type)
    for proc in arch.processes:
        for var in proc.variables:
            table[var.name] = ("variable", var.type)
    return table
