# lexer.py
"""Tokenizer for the synthesizable VHDL subset."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List

from .errors import ParseError

# Token kinds
IDENT = "ident"
KEYWORD = "keyword"
NUMBER = "number"
CHAR = "char"
STRING = "string"
BITSTRING = "bitstring"
OP = "op"
EOF = "eof"

KEYWORDS = frozenset("""
    abs access after alias all and architecture array assert attribute begin
    block body buffer bus case component configuration constant disconnect
    downto else elsif end entity exit file for function generate generic
    group guarded if impure in inertial inout is label library linkage literal
    loop map mod nand new next nor not null of on open or others out package
    port postponed procedure process pure range record register reject rem
    report return rol ror select severity shared signal sla sll sra srl
    subtype then to transport type unaffected units until use variable wait
    when while with xnor xor
""".split())

# Longest operators first.
OPERATORS = ("**", "=>", ":=", "/=", ">=", "<=", "<>",
             "(", ")", ",", ";", ":", "&", "+", "-", "*", "/", "=", "<", ">", "|", ".")

_TOKEN_RE = re.compile(r"""
    (?P<ws>[ \t\r\f\v]+)
  | (?P<newline>\n)
  | (?P<comment>--[^\n]*)
  | (?P<based>\d+\#[0-9A-Fa-f_]+\#)
  | (?P<bitstring>[xXbBoO]"[0-9A-Fa-f_]*")
  | (?P<number>\d[\d_]*)
  | (?P<ident>[A-Za-z][A-Za-z0-9_]*)
  | (?P<string>"[^"\n]*")
""", re.VERBOSE)


@dataclass(frozen=True)
class Token:
    kind: str
    value: str
    line: int
    start: int
    end: int

    def is_keyword(self, *words: str) -> bool:
        return self.kind == KEYWORD and self.value in words

    def is_op(self, *ops: str) -> bool:
        return self.kind == OP and self.value in ops

    def __str__(self) -> str:
        return "end of file" if self.kind == EOF else repr(self.value)


def tokenize(text: str) -> List[Token]:
    """
    Split VHDL source into tokens.

    Keywords are lower-cased; identifiers keep their spelling (VHDL is case
    insensitive, the IR builder canonicalizes them). A quote right after an
    identifier or a closing parenthesis is an attribute tick, otherwise it
    opens a character literal.
    """
    tokens: List[Token] = []
    pos = 0
    line = 1
    length = len(text)

    while pos < length:
        ch = text[pos]

        if ch == "'":
            prev = tokens[-1] if tokens else None
            tick = prev is not None and (prev.kind == IDENT or prev.is_op(")"))
            if not tick and pos + 2 < length and text[pos + 2] == "'":
                tokens.append(Token(CHAR, text[pos + 1], line, pos, pos + 3))
                pos += 3
                continue
            tokens.append(Token(OP, "'", line, pos, pos + 1))
            pos += 1
            continue

        m = _TOKEN_RE.match(text, pos)
        if m is None:
            op = next((o for o in OPERATORS if text.startswith(o, pos)), None)
            if op is None:
                raise ParseError(line, f"unexpected character {ch!r}")
            tokens.append(Token(OP, op, line, pos, pos + len(op)))
            pos += len(op)
            continue

        kind = m.lastgroup
        value = m.group()
        if kind == "newline":
            line += 1
        elif kind in ("ws", "comment"):
            pass
        elif kind == "ident":
            lowered = value.lower()
            if lowered in KEYWORDS:
                tokens.append(Token(KEYWORD, lowered, line, pos, m.end()))
            else:
                tokens.append(Token(IDENT, value, line, pos, m.end()))
        elif kind == "based":
            base, digits = value.rstrip("#").split("#")
            try:
                number = int(digits.replace("_", ""), int(base))
            except ValueError:
                raise ParseError(line, f"invalid based literal {value}") from None
            tokens.append(Token(NUMBER, str(number), line, pos, m.end()))
        elif kind == "number":
            tokens.append(Token(NUMBER, value.replace("_", ""), line, pos, m.end()))
        elif kind == "bitstring":
            tokens.append(Token(BITSTRING, value[0].lower() + value[1:].replace("_", ""), line, pos, m.end()))
        elif kind == "string":
            tokens.append(Token(STRING, value[1:-1], line, pos, m.end()))
        pos = m.end()

    tokens.append(Token(EOF, "", line, length, length))
    return tokens
