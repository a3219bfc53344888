# renderer.py
from __future__ import annotations

import functools
import logging
import textwrap
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .ast_ir import (
    EDGE_PREDICATES, SHIFT_FUNCTIONS,
    Aggregate, Assign, Attribute, BinaryOp, Call, Case, Concat, ConditionalAssignment,
    ContinuousAssignment, Direction, EnumType, Ident, If, Index, Literal, LiteralKind, Port,
    Process, Slice, Statement, Type, UnaryOp, UnsupportedStatement, VectorType,
)
from .config import DEFAULT_INDENT, DEFAULT_TEMPLATE_DIR
from .dialect import DialectProfile
from .errors import UnsupportedConstruct
from .resolver import COMBINATIONAL, ResetKind, ResolvedIR, written_names

log = logging.getLogger(__name__)


# ------------------------------------------------------------
# Operator and direction tables
# ------------------------------------------------------------
BINOP_TOKENS = {
    "=": "==",
    "/=": "!=",
    "<": "<",
    "<=": "<=",
    ">": ">",
    ">=": ">=",
    "and": "&",
    "or": "|",
    "xor": "^",
    "+": "+",
    "-": "-",
    "*": "*",
    "/": "/",
    # VHDL mod and rem only differ on negative operands
    "mod": "%",
    "rem": "%",
    "sll": "<<",
    "srl": ">>",
    "sla": "<<<",
    "sra": ">>>",
}

# nand/nor/xnor have no infix form
NEGATED_OPS = {"nand": "&", "nor": "|", "xnor": "^"}

UNARY_TOKENS = {"not": "~", "-": "-", "+": ""}

PORT_DIRECTIONS = {
    Direction.IN: "input",
    Direction.OUT: "output",
    Direction.INOUT: "inout",
    Direction.BUFFER: "output",
}

UNSUPPORTED_MARKER = "VHDL2VER-UNSUPPORTED"
WIDTH_MARKER = "VHDL2VER-WIDTH"


def make_env(template_dir: Union[str, Path]) -> Environment:
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )


class Renderer:
    def __init__(self, template_dir: Union[str, Path] = DEFAULT_TEMPLATE_DIR, indentsize: int = DEFAULT_INDENT):
        self.env = make_env(template_dir)
        self.indentsize = indentsize
        self._cache: Dict[str, Any] = {}

    def _tpl(self, name: str):
        if name in self._cache:
            return self._cache[name]
        t = self.env.get_template(name)
        self._cache[name] = t
        return t

    def render(self, template: str, **context: Any) -> str:
        return self._tpl(template).render(context)

    def render_module(self, ir: ResolvedIR, profile: DialectProfile) -> str:
        """Whole module text for one resolved design, ending in exactly one newline."""
        return ModuleWriter(self, ir, profile).render()


@functools.lru_cache(maxsize=None)
def get_renderer(template_dir: str = str(DEFAULT_TEMPLATE_DIR), indentsize: int = DEFAULT_INDENT) -> Renderer:
    return Renderer(template_dir, indentsize)


# ------------------------------------------------------------
# One module
# ------------------------------------------------------------
class ModuleWriter:
    """Per-call rendering state: the resolved IR, the dialect and shadow names."""

    def __init__(self, renderer: Renderer, ir: ResolvedIR, profile: DialectProfile):
        self.renderer = renderer
        self.ir = ir
        self.profile = profile
        self.unit = " " * renderer.indentsize
        self.shadows = self._shadow_names()

    def _shadow_names(self) -> Dict[str, str]:
        """Legacy only: reg driven by the always block behind each combinational wire."""
        if not self.profile.comb_shadow:
            return {}
        taken = {name.lower() for name in self.ir.types}
        shadows: Dict[str, str] = {}
        for name, category in self.ir.drivers.items():
            if category != COMBINATIONAL or self.ir.kind_of(name) == "variable":
                continue
            candidate = f"{name}_comb"
            n = 1
            while candidate.lower() in taken:
                candidate = f"{name}_comb_{n}"
                n += 1
            taken.add(candidate.lower())
            shadows[name] = candidate
        return shadows

    # ---------- types ----------
    @staticmethod
    def dtype(type_: Type) -> str:
        if isinstance(type_, VectorType):
            signed = " signed" if type_.signed else ""
            return f"{signed} [{type_.high}:{type_.low}]"
        if isinstance(type_, EnumType) and type_.width > 1:
            return f" [{type_.width - 1}:0]"
        return ""

    def net_type(self, name: str) -> str:
        if self.profile.storage_type == self.profile.net_type:
            return self.profile.net_type
        if name in self.ir.storage or self.ir.kind_of(name) == "variable":
            return self.profile.storage_type
        return self.profile.net_type

    def typed(self, name: str, type_: Type):
        """(nettype, dtype) for a declaration of name."""
        if isinstance(type_, EnumType) and self.profile.typed_enums:
            return type_.name, ""
        return self.net_type(name), self.dtype(type_)

    # ---------- expressions ----------
    def expr(self, e, width: Optional[int] = None) -> str:
        if isinstance(e, Ident):
            return e.name
        if isinstance(e, Literal):
            return self.literal(e)
        if isinstance(e, BinaryOp):
            lhs, rhs = self.operand(e.lhs), self.operand(e.rhs)
            if e.op in NEGATED_OPS:
                return f"~({lhs} {NEGATED_OPS[e.op]} {rhs})"
            return f"{lhs} {BINOP_TOKENS[e.op]} {rhs}"
        if isinstance(e, UnaryOp):
            inner = self.operand(e.operand)
            if isinstance(e.operand, UnaryOp):
                inner = f"({inner})"
            return UNARY_TOKENS[e.op] + inner
        if isinstance(e, Call):
            if e.name in SHIFT_FUNCTIONS:
                op = SHIFT_FUNCTIONS[e.name]
                if op == ">>" and self.ir.signed(e.args[0]):
                    op = ">>>"
                return f"{self.operand(e.args[0])} {op} {self.operand(e.args[1])}"
            if e.name in EDGE_PREDICATES:
                raise UnsupportedConstruct(f"{e.name} outside a clocked if", e.line)
            # type conversions carry no bits of their own
            return self.expr(e.args[0], width)
        if isinstance(e, Aggregate):
            return self.aggregate(e, self.ir.aggregate_widths.get(e, width))
        if isinstance(e, Concat):
            return "{" + ", ".join(self.expr(p) for p in e.parts) + "}"
        if isinstance(e, Index):
            return f"{self.expr(e.base)}[{self.expr(e.index)}]"
        if isinstance(e, Slice):
            return f"{self.expr(e.base)}[{self.expr(e.left)}:{self.expr(e.right)}]"
        if isinstance(e, Attribute):
            raise UnsupportedConstruct(f"attribute '{e.name} in an expression", e.line)
        raise TypeError(f"cannot render {e!r}")

    def operand(self, e) -> str:
        text = self.expr(e)
        while isinstance(e, Call) and e.name not in SHIFT_FUNCTIONS:
            e = e.args[0]
        if isinstance(e, BinaryOp) or isinstance(e, Call):
            return f"({text})"
        return text

    @staticmethod
    def literal(lit: Literal) -> str:
        if lit.kind is LiteralKind.BIT:
            return "1'b" + (lit.value if lit.value in "01xz" else "x")
        if lit.kind is LiteralKind.HEX:
            return f"{lit.width_hint}'h{lit.value.upper()}"
        if lit.kind is LiteralKind.BINARY_VECTOR:
            return f"{len(lit.value)}'b{lit.value}"
        return lit.value

    def aggregate(self, agg: Aggregate, width: Optional[int]) -> str:
        fill = agg.fill
        if isinstance(fill, Literal) and fill.kind is LiteralKind.BIT:
            bit = fill.value if fill.value in "01xz" else "x"
            if self.profile.fill_aggregates:
                return f"'{bit}"
            if width is None:
                raise UnsupportedConstruct("(others => ...) without a known width", agg.line)
            return f"{width}'b{bit * width}"
        if width is None:
            raise UnsupportedConstruct("(others => ...) without a known width", agg.line)
        return f"{{{width}{{{self.expr(fill)}}}}}"

    def target(self, t) -> str:
        if isinstance(t, Ident):
            return self.shadows.get(t.name, t.name)
        if isinstance(t, Index):
            return f"{self.target(t.base)}[{self.expr(t.index)}]"
        return f"{self.target(t.base)}[{self.expr(t.left)}:{self.expr(t.right)}]"

    # ---------- statements ----------
    def statements(self, body: Sequence[Statement], depth: int) -> List[str]:
        lines: List[str] = []
        for stmt in body:
            try:
                lines.extend(self.statement(stmt, depth))
            except UnsupportedConstruct as e:
                placeholder = self.placeholder(e, stmt.line)
                lines.extend(self.unit * depth + line for line in placeholder.splitlines())
        return lines

    def statement(self, stmt: Statement, depth: int) -> List[str]:
        pad = self.unit * depth
        if isinstance(stmt, Assign):
            op = "=" if stmt.blocking else "<="
            value = self.expr(stmt.value, self.ir.width_of(stmt.target))
            return [f"{pad}{self.target(stmt.target)} {op} {value};{self.width_comment(stmt)}"]
        if isinstance(stmt, If):
            lines = []
            for i, branch in enumerate(stmt.branches):
                keyword = "if" if i == 0 else "end else if"
                lines.append(f"{pad}{keyword} ({self.expr(branch.condition)}) begin")
                lines.extend(self.statements(branch.body, depth + 1))
            if stmt.else_body:
                lines.append(f"{pad}end else begin")
                lines.extend(self.statements(stmt.else_body, depth + 1))
            lines.append(f"{pad}end")
            return lines
        if isinstance(stmt, Case):
            return self.case(stmt, depth)
        if isinstance(stmt, UnsupportedStatement):
            return [pad + line for line in self.unsupported(stmt).splitlines()]
        raise TypeError(f"cannot render statement {stmt!r}")

    def case(self, stmt: Case, depth: int) -> List[str]:
        pad = self.unit * depth
        arm_pad = pad + self.unit
        unique = self.profile.unique_case and stmt in self.ir.exclusive_cases
        width = self.ir.width_of(stmt.selector)
        lines = [f"{pad}{'unique case' if unique else 'case'} ({self.expr(stmt.selector)})"]
        for arm in stmt.arms:
            choices = ", ".join(self.expr(c, width) for c in arm.choices)
            lines.append(f"{arm_pad}{choices}: begin")
            lines.extend(self.statements(arm.body, depth + 2))
            lines.append(f"{arm_pad}end")
        if stmt.default_body is not None:
            lines.append(f"{arm_pad}default: begin")
            lines.extend(self.statements(stmt.default_body, depth + 2))
            lines.append(f"{arm_pad}end")
        lines.append(f"{pad}endcase")
        return lines

    def unsupported(self, stmt: UnsupportedStatement) -> str:
        lines = [line.strip() for line in stmt.text.splitlines() if line.strip()]
        text = self.renderer.render("unsupported.txt", marker=UNSUPPORTED_MARKER, construct=stmt.construct, line=stmt.line, lines=lines)
        return text.rstrip("\n")

    def placeholder(self, error: UnsupportedConstruct, line: int) -> str:
        """A statement this dialect cannot express, kept as a marked comment."""
        log.warning("%s: %s", self.ir.entity.name, error)
        return self.unsupported(UnsupportedStatement(error.construct, "", line=error.line or line))

    def width_comment(self, node) -> str:
        diag = self.ir.width_mismatches.get(node)
        return f"  // {WIDTH_MARKER}: {diag.message}" if diag else ""

    # ---------- module items ----------
    def process(self, proc: Process) -> str:
        kind = self.ir.process_kinds[proc]
        if not kind.is_sequential:
            header = self.profile.comb_header
            body = self.statements(proc.body, 1)
        else:
            events = [f"{kind.clock_edge} {kind.clock}"]
            if kind.reset_kind is ResetKind.ASYNC:
                reset_edge = "posedge" if kind.reset_active_level == "1" else "negedge"
                events.append(f"{reset_edge} {kind.reset_signal}")
                body = [f"{self.unit}if ({kind.reset_signal} == 1'b{kind.reset_active_level}) begin"]
                body += self.statements(kind.reset_body, 2)
                body.append(f"{self.unit}end else begin")
                body += self.statements(kind.clocked_body, 2)
                body.append(f"{self.unit}end")
            else:
                body = self.statements(kind.clocked_body, 1)
            header = f"{self.profile.seq_keyword} @({' or '.join(events)})"
        return self.renderer.render("always.txt", header=header, label=proc.label, body="\n".join(body))

    def port(self, port: Port) -> str:
        if port.direction is Direction.INOUT:
            nettype, dtype = "wire", self.dtype(port.type)
        else:
            nettype, dtype = self.typed(port.name, port.type)
        return self.renderer.render(
            "port.txt", direction=PORT_DIRECTIONS[port.direction], nettype=nettype, dtype=dtype, name=port.name)

    def declaration(self, node) -> str:
        name, type_, init = node.name, node.type, node.init
        comments = []
        value = None
        if init is not None:
            value = self.expr(init, type_.width)
            if name not in self.ir.storage and name in self.ir.drivers:
                comments.append(f"initial value {value} dropped, {name} is not a register")
                value = None
        if isinstance(type_, EnumType) and not self.profile.typed_enums:
            comments.append(type_.name)
        diag = self.ir.width_mismatches.get(node)
        if diag is not None:
            comments.append(f"{WIDTH_MARKER}: {diag.message}")
        nettype, dtype = self.typed(name, type_)
        return self.renderer.render(
            "decl.txt", nettype=nettype, dtype=dtype, name=name, init=value, comment="; ".join(comments))

    def shadow_declaration(self, name: str) -> str:
        return self.renderer.render(
            "decl.txt", nettype=self.profile.storage_type, dtype=self.dtype(self.ir.type_of(name)),
            name=self.shadows[name], init=None, comment="")

    def constant(self, const) -> str:
        type_ = const.type
        qualifier = " ".join(filter(None, [self.profile.param_type, self.dtype(type_).strip()]))
        diag = self.ir.width_mismatches.get(const)
        comment = f"{WIDTH_MARKER}: {diag.message}" if diag else ""
        return self.renderer.render(
            "localparam.txt", qualifier=qualifier, name=const.name, value=self.expr(const.value, type_.width), comment=comment)

    def enum(self, type_: EnumType) -> str:
        width = type_.width
        members = [f"{lit} = {width}'d{type_.encoding(lit)}" for lit in type_.literals]
        if self.profile.typed_enums:
            return self.renderer.render("enum.txt", dtype=self.dtype(type_), members=members, name=type_.name)
        return self.renderer.render("enumcomment.txt", name=type_.name, members=members)

    def assign(self, left: str, right: str, comment: str = "") -> str:
        return self.renderer.render("assign.txt", left=left, right=right, comment=comment)

    def continuous(self, stmt) -> str:
        width = self.ir.width_of(stmt.target)
        if isinstance(stmt, ContinuousAssignment):
            right = self.expr(stmt.value, width)
        else:
            parts = [f"({self.expr(cond)}) ? {self.expr(value, width)}" for value, cond in stmt.choices]
            right = " : ".join(parts + [self.expr(stmt.default, width)])
        diag = self.ir.width_mismatches.get(stmt)
        comment = f"{WIDTH_MARKER}: {diag.message}" if diag else ""
        return self.assign(self.target(stmt.target), right, comment)

    def items(self) -> List[str]:
        arch = self.ir.architecture
        if arch is None:
            return []
        blocks: List[str] = []
        if arch.enums:
            blocks.append("\n".join(self.enum(decl.type) for decl in arch.enums))
        if arch.constants:
            blocks.append("\n".join(self.constant(c) for c in arch.constants))

        decls = [self.declaration(sig) for sig in arch.signals]
        for proc in arch.processes:
            decls.extend(self.declaration(var) for var in proc.variables)
        decls.extend(self.shadow_declaration(name) for name in self.shadows)
        if decls:
            blocks.append("\n".join(decls))

        forwarded = set()
        for stmt in arch.statements:
            if isinstance(stmt, Process):
                block = self.process(stmt)
                forwards = []
                for name in self._written(stmt):
                    if name in self.shadows and name not in forwarded:
                        forwarded.add(name)
                        forwards.append(self.assign(name, self.shadows[name]))
                if forwards:
                    block += "\n" + "\n".join(forwards)
                blocks.append(block)
            elif isinstance(stmt, (ContinuousAssignment, ConditionalAssignment)):
                try:
                    blocks.append(self.continuous(stmt))
                except UnsupportedConstruct as e:
                    blocks.append(self.placeholder(e, stmt.line))
            elif isinstance(stmt, UnsupportedStatement):
                blocks.append(self.unsupported(stmt))
        return [textwrap.indent(block, self.unit) for block in blocks]

    @staticmethod
    def _written(proc: Process) -> List[str]:
        names: List[str] = []
        for name, _ in written_names(proc.body):
            if name not in names:
                names.append(name)
        return names

    def render(self) -> str:
        entity = self.ir.entity
        banner = f"{entity.name}: generated by vhdl2ver ({self.profile.dialect.value} dialect)"
        text = self.renderer.render(
            "moduledef.txt",
            banner=banner,
            modulename=entity.name,
            indent=self.unit,
            ports=[self.port(p) for p in entity.ports],
            items=self.items(),
        )
        log.debug("rendered %s in %s dialect", entity.name, self.profile.dialect.value)
        return text.rstrip("\n") + "\n"
