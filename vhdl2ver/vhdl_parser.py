# vhdl_parser.py
"""
Recursive-descent parser: VHDL source -> structural tree (ParsedUnit).

The tree keeps type marks and identifier spellings as written; lowering to
the IR proper (types, scopes, canonical names) happens in visitor.py.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from .ast_ir import (
    Aggregate, Architecture, Assign, Attribute, BinaryOp, Call, Case, CaseArm, Concat,
    ConditionalAssignment, Constant, ContinuousAssignment, Direction, Entity, EnumDecl,
    EnumType, Expr, Ident, If, IfBranch, Index, Literal, LiteralKind, ParsedUnit, Port,
    Process, Signal, Slice, Statement, TypeMark, UnaryOp, UnsupportedStatement, Variable,
)
from .errors import ParseError, UnsupportedConstruct
from .lexer import BITSTRING, CHAR, EOF, IDENT, KEYWORD, NUMBER, STRING, Token, tokenize

log = logging.getLogger(__name__)

LOGICAL_OPS = ("and", "or", "nand", "nor", "xor", "xnor")
RELATIONAL_OPS = ("=", "/=", "<", "<=", ">", ">=")
SHIFT_OPS = ("sll", "srl", "sla", "sra")
MULTIPLYING_KEYWORDS = ("mod", "rem")

# Sequential statements kept verbatim as placeholders.
CAPTURED_STATEMENTS = {
    "wait": "wait statement",
    "assert": "assertion",
    "report": "report statement",
    "exit": "exit statement",
    "next": "next statement",
    "return": "return statement",
}

# Architecture declarations outside the translatable subset.
UNSUPPORTED_DECLARATIONS = {
    "component": "component declaration",
    "function": "function",
    "procedure": "procedure",
    "impure": "function",
    "pure": "function",
    "subtype": "subtype declaration",
    "attribute": "attribute declaration",
    "shared": "shared variable",
    "alias": "alias declaration",
    "file": "file declaration",
}

_OCTAL_BITS = {str(d): format(d, "03b") for d in range(8)}


class Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens: List[Token] = tokenize(text)
        self.pos = 0

    # ---------- token helpers ----------
    @property
    def tok(self) -> Token:
        return self.tokens[self.pos]

    def peek(self, offset: int = 1) -> Token:
        return self.tokens[min(self.pos + offset, len(self.tokens) - 1)]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.kind != EOF:
            self.pos += 1
        return tok

    def error(self, message: str, tok: Optional[Token] = None) -> ParseError:
        return ParseError((tok or self.tok).line, message)

    def accept_op(self, op: str) -> bool:
        if self.tok.is_op(op):
            self.advance()
            return True
        return False

    def accept_keyword(self, *words: str) -> Optional[str]:
        if self.tok.is_keyword(*words):
            return self.advance().value
        return None

    def expect_op(self, op: str) -> Token:
        if not self.tok.is_op(op):
            if op == ")":
                raise self.error(f"unbalanced parentheses: expected ')' but found {self.tok}")
            raise self.error(f"expected '{op}' but found {self.tok}")
        return self.advance()

    def expect_keyword(self, word: str) -> Token:
        if not self.tok.is_keyword(word):
            raise self.error(f"expected '{word}' but found {self.tok}")
        return self.advance()

    def expect_ident(self) -> Token:
        if self.tok.kind != IDENT:
            raise self.error(f"expected identifier but found {self.tok}")
        return self.advance()

    def skip_statement(self) -> None:
        while not self.tok.is_op(";"):
            if self.tok.kind == EOF:
                raise self.error("expected ';' before end of file")
            self.advance()
        self.advance()

    def expect_end(self, kind: str, name: Optional[str], opened: Token) -> None:
        """end [kind] [name] ;"""
        if self.tok.kind == EOF:
            raise ParseError(opened.line, f"unterminated {kind} (begin without matching end)")
        self.expect_keyword("end")
        self.accept_keyword(kind)
        if self.tok.kind == IDENT:
            closing = self.advance()
            if name is not None and closing.value.lower() != name.lower():
                raise ParseError(closing.line, f"'end {closing.value}' does not close {kind} '{name}'")
        self.expect_op(";")

    def source_text(self, start: Token, end: Token) -> str:
        return self.text[start.start:end.end]

    # ---------- design file ----------
    def parse(self) -> ParsedUnit:
        entity: Optional[Entity] = None
        architecture: Optional[Architecture] = None

        while self.tok.kind != EOF:
            tok = self.tok
            if tok.is_keyword("library", "use"):
                self.skip_statement()
            elif tok.is_keyword("entity"):
                if entity is not None:
                    raise self.error("more than one entity in a single file")
                entity = self.parse_entity()
            elif tok.is_keyword("architecture"):
                if entity is None:
                    raise self.error("architecture appears before any entity")
                if architecture is not None:
                    raise self.error("more than one architecture in a single file")
                architecture = self.parse_architecture(entity)
            elif tok.is_keyword("package"):
                raise UnsupportedConstruct("package", tok.line)
            elif tok.is_keyword("configuration"):
                raise UnsupportedConstruct("configuration", tok.line)
            else:
                raise self.error(f"unexpected {tok} at design-unit level")

        if entity is None:
            raise ParseError(1, "no entity declaration found")
        log.debug("Parsed entity %s (%d ports, architecture=%s)",
                  entity.name, len(entity.ports), architecture.name if architecture else None)
        return ParsedUnit(entity=entity, architecture=architecture, source=self.text)

    def parse_entity(self) -> Entity:
        opened = self.expect_keyword("entity")
        name = self.expect_ident().value
        self.expect_keyword("is")
        if self.tok.is_keyword("generic"):
            raise UnsupportedConstruct("generic", self.tok.line)

        ports: List[Port] = []
        if self.accept_keyword("port"):
            self.expect_op("(")
            ports = self.parse_port_list()
            self.expect_op(")")
            self.expect_op(";")
        if self.tok.is_keyword("begin"):
            raise UnsupportedConstruct("entity statement part", self.tok.line)
        self.expect_end("entity", name, opened)
        return Entity(name=name, ports=tuple(ports), line=opened.line)

    def parse_port_list(self) -> List[Port]:
        ports: List[Port] = []
        while True:
            names = self.parse_name_list()
            self.expect_op(":")
            direction = Direction.IN
            mode = self.accept_keyword("in", "out", "inout", "buffer")
            if mode:
                direction = Direction.from_vhdl(mode)
            elif self.tok.is_keyword("linkage"):
                raise UnsupportedConstruct("linkage port", self.tok.line)
            type_mark = self.parse_type_mark()
            if self.accept_op(":="):
                self.parse_expression()
                log.debug("Ignoring default value of port(s) %s", ", ".join(t.value for t in names))
            ports.extend(Port(t.value, direction, type_mark, line=t.line) for t in names)
            if not self.accept_op(";"):
                return ports

    def parse_name_list(self) -> List[Token]:
        names = [self.expect_ident()]
        while self.accept_op(","):
            names.append(self.expect_ident())
        return names

    def parse_type_mark(self) -> TypeMark:
        tok = self.expect_ident()
        if self.accept_op("("):
            left = self.parse_expression()
            direction = self.accept_keyword("downto", "to")
            if direction is None:
                raise self.error(f"expected 'downto' or 'to' in range of {tok.value}")
            right = self.parse_expression()
            self.expect_op(")")
            return TypeMark(tok.value, left, right, direction == "to", line=tok.line)
        if self.accept_keyword("range"):
            left = self.parse_expression()
            direction = self.accept_keyword("downto", "to")
            if direction is None:
                raise self.error(f"expected 'downto' or 'to' in range of {tok.value}")
            right = self.parse_expression()
            return TypeMark(tok.value, left, right, direction == "to", line=tok.line)
        return TypeMark(tok.value, line=tok.line)

    # ---------- architecture ----------
    def parse_architecture(self, entity: Entity) -> Architecture:
        opened = self.expect_keyword("architecture")
        name = self.expect_ident().value
        self.expect_keyword("of")
        of = self.expect_ident()
        if of.value.lower() != entity.name.lower():
            raise ParseError(of.line, f"architecture {name} is for entity '{of.value}', expected '{entity.name}'")
        self.expect_keyword("is")

        signals: List[Signal] = []
        constants: List[Constant] = []
        enums: List[EnumDecl] = []
        while not self.tok.is_keyword("begin"):
            tok = self.tok
            if tok.kind == EOF:
                raise ParseError(opened.line, f"unterminated architecture {name} (missing 'begin')")
            if self.accept_keyword("signal"):
                names = self.parse_name_list()
                self.expect_op(":")
                type_mark = self.parse_type_mark()
                init = self.parse_expression() if self.accept_op(":=") else None
                self.expect_op(";")
                signals.extend(Signal(t.value, type_mark, init, line=t.line) for t in names)
            elif self.accept_keyword("constant"):
                names = self.parse_name_list()
                self.expect_op(":")
                type_mark = self.parse_type_mark()
                self.expect_op(":=")
                value = self.parse_expression()
                self.expect_op(";")
                constants.extend(Constant(t.value, type_mark, value, line=t.line) for t in names)
            elif self.accept_keyword("type"):
                enums.append(self.parse_enum_decl(tok))
            elif tok.kind == KEYWORD and tok.value in UNSUPPORTED_DECLARATIONS:
                raise UnsupportedConstruct(UNSUPPORTED_DECLARATIONS[tok.value], tok.line)
            else:
                raise self.error(f"unexpected {tok} in architecture declarations")
        self.expect_keyword("begin")

        statements = []
        while not self.tok.is_keyword("end"):
            if self.tok.kind == EOF:
                raise ParseError(opened.line, f"unterminated architecture {name} (begin without matching end)")
            statements.append(self.parse_concurrent())
        self.expect_end("architecture", name, opened)

        return Architecture(
            name=name,
            entity_name=entity.name,
            signals=tuple(signals),
            constants=tuple(constants),
            enums=tuple(enums),
            statements=tuple(statements),
            line=opened.line,
        )

    def parse_enum_decl(self, opened: Token) -> EnumDecl:
        name = self.expect_ident().value
        self.expect_keyword("is")
        if not self.tok.is_op("("):
            raise UnsupportedConstruct("non-enumerated type declaration", opened.line)
        self.advance()
        literals = [t.value for t in self.parse_name_list()]
        self.expect_op(")")
        self.expect_op(";")
        return EnumDecl(EnumType(name, tuple(literals)), line=opened.line)

    def parse_concurrent(self):
        first = self.tok
        label = None
        if first.kind == IDENT and self.peek().is_op(":"):
            label = self.advance().value
            self.advance()

        tok = self.tok
        if tok.is_keyword("process"):
            return self.parse_process(label, first)
        if tok.is_keyword("with"):
            return self.capture_statement("selected signal assignment", first)
        if tok.is_keyword("for", "if"):
            raise UnsupportedConstruct("generate", tok.line)
        if tok.is_keyword("block"):
            raise UnsupportedConstruct("block", tok.line)
        if tok.is_keyword("entity", "component", "configuration"):
            raise UnsupportedConstruct("component instantiation", tok.line)
        if tok.is_keyword("assert"):
            return self.capture_statement("assertion", first)
        if tok.kind != IDENT:
            raise self.error(f"unexpected {tok} in architecture body")

        target = self.parse_target()
        if self.tok.is_keyword("port", "generic"):
            raise UnsupportedConstruct("component instantiation", tok.line)
        self.expect_op("<=")
        value = self.parse_expression()
        if not self.tok.is_keyword("when"):
            self.skip_delay()
            self.expect_op(";")
            return ContinuousAssignment(target, value, line=tok.line)

        choices: List[Tuple[Expr, Expr]] = []
        while self.accept_keyword("when"):
            condition = self.parse_expression()
            if not self.accept_keyword("else"):
                raise self.error("conditional signal assignment needs a final 'else'")
            choices.append((value, condition))
            value = self.parse_expression()
        self.skip_delay()
        self.expect_op(";")
        return ConditionalAssignment(target, tuple(choices), value, line=tok.line)

    def parse_process(self, label: Optional[str], first: Token) -> Process:
        opened = self.expect_keyword("process")
        sensitivity: List[str] = []
        all_sensitive = False
        if self.accept_op("("):
            if self.accept_keyword("all"):
                all_sensitive = True
            else:
                sensitivity = [t.value for t in self.parse_name_list()]
            self.expect_op(")")
        else:
            raise UnsupportedConstruct("process without sensitivity list", opened.line)
        self.accept_keyword("is")

        variables: List[Variable] = []
        while not self.tok.is_keyword("begin"):
            tok = self.tok
            if tok.kind == EOF:
                raise ParseError(opened.line, "unterminated process (missing 'begin')")
            if not self.accept_keyword("variable"):
                raise UnsupportedConstruct(f"'{tok.value}' declaration in process", tok.line)
            names = self.parse_name_list()
            self.expect_op(":")
            type_mark = self.parse_type_mark()
            init = self.parse_expression() if self.accept_op(":=") else None
            self.expect_op(";")
            variables.extend(Variable(t.value, type_mark, init, line=t.line) for t in names)
        self.expect_keyword("begin")

        body = self.parse_sequence(("end",), "process", opened)
        self.expect_keyword("end")
        if not self.accept_keyword("process"):
            raise ParseError(opened.line, "unterminated process (begin without matching 'end process')")
        if self.tok.kind == IDENT:
            self.advance()
        self.expect_op(";")
        return Process(
            label=label,
            sensitivity=tuple(sensitivity),
            body=body,
            variables=tuple(variables),
            all_sensitive=all_sensitive,
            line=first.line,
        )

    def capture_statement(self, construct: str, first: Token) -> UnsupportedStatement:
        depth = 0
        while True:
            tok = self.advance()
            if tok.kind == EOF:
                raise ParseError(first.line, f"unterminated {construct} (missing ';')")
            if tok.is_op("("):
                depth += 1
            elif tok.is_op(")"):
                depth -= 1
            elif tok.is_op(";") and depth <= 0:
                break
        log.debug("Keeping %s at line %d as placeholder", construct, first.line)
        return UnsupportedStatement(construct, self.source_text(first, tok), line=first.line)

    def capture_loop(self, first: Token) -> UnsupportedStatement:
        depth = 0
        while True:
            tok = self.advance()
            if tok.kind == EOF:
                raise ParseError(first.line, "unterminated loop (missing 'end loop')")
            if tok.is_keyword("end") and self.tok.is_keyword("loop"):
                self.advance()
                depth -= 1
                if depth == 0:
                    if self.tok.kind == IDENT:
                        self.advance()
                    tok = self.expect_op(";")
                    break
            elif tok.is_keyword("loop"):
                depth += 1
        log.debug("Keeping loop at line %d as placeholder", first.line)
        return UnsupportedStatement("loop statement", self.source_text(first, tok), line=first.line)

    def skip_delay(self) -> None:
        if self.tok.is_keyword("after"):
            log.debug("Dropping delay clause at line %d", self.tok.line)
            while not self.tok.is_op(";") and self.tok.kind != EOF:
                self.advance()

    # ---------- sequential statements ----------
    def parse_sequence(self, terminators: Tuple[str, ...], what: str, opened: Token) -> Tuple[Statement, ...]:
        statements: List[Statement] = []
        while not self.tok.is_keyword(*terminators):
            if self.tok.kind == EOF:
                raise ParseError(opened.line, f"unterminated {what} (begin without matching end)")
            statement = self.parse_sequential()
            if statement is not None:
                statements.append(statement)
        return tuple(statements)

    def parse_sequential(self) -> Optional[Statement]:
        first = self.tok
        if first.kind == IDENT and self.peek().is_op(":"):
            self.advance()
            self.advance()
        tok = self.tok

        if tok.is_keyword("if"):
            return self.parse_if()
        if tok.is_keyword("case"):
            return self.parse_case()
        if tok.is_keyword("null"):
            self.advance()
            self.expect_op(";")
            return None
        if tok.is_keyword("for", "while", "loop"):
            return self.capture_loop(first)
        if tok.kind == KEYWORD and tok.value in CAPTURED_STATEMENTS:
            return self.capture_statement(CAPTURED_STATEMENTS[tok.value], first)
        if tok.kind != IDENT:
            raise self.error(f"unexpected {tok} in sequential statements")

        target = self.parse_target()
        if self.accept_op("<="):
            blocking = False
        elif self.accept_op(":="):
            blocking = True
        else:
            raise self.error(f"expected '<=' or ':=' after {tok.value} but found {self.tok}")
        value = self.parse_expression()
        self.skip_delay()
        self.expect_op(";")
        return Assign(target, value, blocking, line=tok.line)

    def parse_if(self) -> If:
        opened = self.expect_keyword("if")
        condition = self.parse_expression()
        self.expect_keyword("then")
        branches = [IfBranch(condition, self.parse_sequence(("elsif", "else", "end"), "if", opened))]
        while self.accept_keyword("elsif"):
            condition = self.parse_expression()
            self.expect_keyword("then")
            branches.append(IfBranch(condition, self.parse_sequence(("elsif", "else", "end"), "if", opened)))
        else_body: Tuple[Statement, ...] = ()
        if self.accept_keyword("else"):
            else_body = self.parse_sequence(("end",), "if", opened)
        self.expect_keyword("end")
        if not self.accept_keyword("if"):
            raise ParseError(opened.line, f"unterminated if (found 'end {self.tok.value}' instead of 'end if')")
        self.expect_op(";")
        return If(tuple(branches), else_body, line=opened.line)

    def parse_case(self) -> Case:
        opened = self.expect_keyword("case")
        selector = self.parse_expression()
        self.expect_keyword("is")
        arms: List[CaseArm] = []
        default_body = None
        while self.accept_keyword("when"):
            if self.accept_keyword("others"):
                self.expect_op("=>")
                default_body = self.parse_sequence(("when", "end"), "case", opened)
                continue
            choices = [self.parse_choice()]
            while self.accept_op("|"):
                choices.append(self.parse_choice())
            self.expect_op("=>")
            arms.append(CaseArm(tuple(choices), self.parse_sequence(("when", "end"), "case", opened)))
        if self.tok.kind == EOF:
            raise ParseError(opened.line, "unterminated case (begin without matching end)")
        self.expect_keyword("end")
        if not self.accept_keyword("case"):
            raise ParseError(opened.line, f"unterminated case (found 'end {self.tok.value}' instead of 'end case')")
        if self.tok.kind == IDENT:
            self.advance()
        self.expect_op(";")
        return Case(selector, tuple(arms), default_body, line=opened.line)

    def parse_choice(self) -> Expr:
        choice = self.parse_expression()
        if self.tok.is_keyword("to", "downto"):
            raise UnsupportedConstruct("range choice in case", self.tok.line)
        return choice

    def parse_target(self) -> Expr:
        tok = self.expect_ident()
        target: Expr = Ident(tok.value, line=tok.line)
        if self.accept_op("("):
            left = self.parse_expression()
            if self.accept_keyword("downto", "to"):
                right = self.parse_expression()
                target = Slice(target, left, right, line=tok.line)
            else:
                target = Index(target, left, line=tok.line)
            self.expect_op(")")
        return target

    # ---------- expressions ----------
    def parse_expression(self) -> Expr:
        """Concatenation binds loosest."""
        line = self.tok.line
        parts = [self.parse_logical()]
        while self.accept_op("&"):
            parts.append(self.parse_logical())
        if len(parts) == 1:
            return parts[0]
        return Concat(tuple(parts), line=line)

    def parse_logical(self) -> Expr:
        lhs = self.parse_relation()
        while self.tok.is_keyword(*LOGICAL_OPS):
            op = self.advance()
            lhs = BinaryOp(op.value, lhs, self.parse_relation(), line=op.line)
        return lhs

    def parse_relation(self) -> Expr:
        lhs = self.parse_shift()
        while self.tok.is_op(*RELATIONAL_OPS):
            op = self.advance()
            lhs = BinaryOp(op.value, lhs, self.parse_shift(), line=op.line)
        return lhs

    def parse_shift(self) -> Expr:
        lhs = self.parse_additive()
        while self.tok.is_keyword(*SHIFT_OPS):
            op = self.advance()
            lhs = BinaryOp(op.value, lhs, self.parse_additive(), line=op.line)
        return lhs

    def parse_additive(self) -> Expr:
        lhs = self.parse_multiplying()
        while self.tok.is_op("+", "-"):
            op = self.advance()
            lhs = BinaryOp(op.value, lhs, self.parse_multiplying(), line=op.line)
        return lhs

    def parse_multiplying(self) -> Expr:
        lhs = self.parse_unary()
        while self.tok.is_op("*", "/") or self.tok.is_keyword(*MULTIPLYING_KEYWORDS):
            op = self.advance()
            lhs = BinaryOp(op.value, lhs, self.parse_unary(), line=op.line)
        return lhs

    def parse_unary(self) -> Expr:
        tok = self.tok
        if tok.is_keyword("not") or tok.is_op("-", "+"):
            self.advance()
            return UnaryOp(tok.value, self.parse_unary(), line=tok.line)
        if tok.is_keyword("abs"):
            raise UnsupportedConstruct("abs operator", tok.line)
        if tok.is_op("**"):
            raise UnsupportedConstruct("exponentiation", tok.line)
        return self.parse_primary()

    def parse_primary(self) -> Expr:
        tok = self.tok
        if tok.kind == CHAR:
            self.advance()
            return Literal(LiteralKind.BIT, tok.value.lower(), 1, line=tok.line)
        if tok.kind == STRING:
            self.advance()
            bits = tok.value.lower()
            if not bits or any(c not in "01xz" for c in bits):
                raise ParseError(tok.line, f'string literal "{tok.value}" is not a bit vector')
            return Literal(LiteralKind.BINARY_VECTOR, bits, len(bits), line=tok.line)
        if tok.kind == BITSTRING:
            self.advance()
            return self.bitstring_literal(tok)
        if tok.kind == NUMBER:
            self.advance()
            return Literal(LiteralKind.DECIMAL, tok.value, None, line=tok.line)
        if tok.is_op("("):
            self.advance()
            if self.accept_keyword("others"):
                self.expect_op("=>")
                fill = self.parse_expression()
                self.expect_op(")")
                return Aggregate(fill, line=tok.line)
            inner = self.parse_expression()
            if self.tok.is_op(",") or self.tok.is_op("=>"):
                raise UnsupportedConstruct("aggregate", tok.line)
            self.expect_op(")")
            return inner
        if tok.kind == IDENT:
            return self.parse_name()
        raise self.error(f"unexpected {tok} in expression")

    def parse_name(self) -> Expr:
        tok = self.expect_ident()
        name = tok.value
        while self.accept_op("."):
            name = self.expect_ident().value
        if name.lower() in ("true", "false"):
            return Literal(LiteralKind.BIT, "1" if name.lower() == "true" else "0", 1, line=tok.line)

        expr: Expr = Ident(name, line=tok.line)
        if self.accept_op("("):
            first = self.parse_expression()
            if self.accept_keyword("downto", "to"):
                right = self.parse_expression()
                expr = Slice(expr, first, right, line=tok.line)
            else:
                args = [first]
                while self.accept_op(","):
                    args.append(self.parse_expression())
                expr = Call(name, tuple(args), line=tok.line)
            self.expect_op(")")

        while self.tok.is_op("'"):
            self.advance()
            if self.tok.is_op("("):
                raise UnsupportedConstruct("qualified expression", tok.line)
            attr = self.advance()
            if attr.kind not in (IDENT, KEYWORD):
                raise self.error(f"expected attribute name after tick, found {attr}", attr)
            expr = Attribute(expr, attr.value.lower(), line=tok.line)
        return expr

    @staticmethod
    def bitstring_literal(tok: Token) -> Literal:
        base, digits = tok.value[0], tok.value[2:-1]
        if not digits:
            raise ParseError(tok.line, f"empty bit-string literal {tok.value}")
        if base == "x":
            return Literal(LiteralKind.HEX, digits, 4 * len(digits), line=tok.line)
        if base == "o":
            if any(d not in _OCTAL_BITS for d in digits):
                raise ParseError(tok.line, f"invalid octal literal {tok.value}")
            bits = "".join(_OCTAL_BITS[d] for d in digits)
        else:
            bits = digits
            if any(c not in "01" for c in bits):
                raise ParseError(tok.line, f"invalid binary literal {tok.value}")
        return Literal(LiteralKind.BINARY_VECTOR, bits, len(bits), line=tok.line)


def parse(source_text: str) -> ParsedUnit:
    """Parse one entity and at most one matching architecture."""
    return Parser(source_text).parse()
