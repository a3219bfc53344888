import pytest

from vhdl2ver.errors import ParseError
from vhdl2ver.lexer import BITSTRING, CHAR, EOF, IDENT, KEYWORD, NUMBER, OP, tokenize


def kinds_values(text):
    return [(t.kind, t.value) for t in tokenize(text)]


def test_keywords_lowered_identifiers_kept():
    toks = kinds_values("ENTITY Counter IS")
    assert toks == [(KEYWORD, "entity"), (IDENT, "Counter"), (KEYWORD, "is"), (EOF, "")]


def test_tick_after_identifier_is_attribute():
    toks = kinds_values("clk'event and clk = '1'")
    assert toks[:3] == [(IDENT, "clk"), (OP, "'"), (IDENT, "event")]
    assert toks[-2] == (CHAR, "1")


def test_char_literal_after_operator():
    toks = kinds_values("y <= '0';")
    assert toks[2] == (CHAR, "0")


def test_bitstring_and_based_literals():
    toks = kinds_values('x"F_0" b"1010" 16#FF# 1_000')
    assert toks[:4] == [(BITSTRING, 'x"F0"'), (BITSTRING, 'b"1010"'), (NUMBER, "255"), (NUMBER, "1000")]


def test_comments_and_line_numbers():
    toks = tokenize("a -- comment with 'quotes'\n<= b;")
    assert [t.value for t in toks[:-1]] == ["a", "<=", "b", ";"]
    assert toks[1].line == 2


def test_longest_operator_wins():
    toks = kinds_values("a /= b => c := d")
    assert (OP, "/=") in toks and (OP, "=>") in toks and (OP, ":=") in toks


def test_unexpected_character():
    with pytest.raises(ParseError) as e:
        tokenize("a <= b $ c;")
    assert e.value.line == 1
    assert "unexpected character" in str(e.value)


@pytest.mark.parametrize("literal", ["2#102#", "8#9#", "40#1#"])
def test_invalid_based_literal(literal):
    with pytest.raises(ParseError, match="invalid based literal") as e:
        tokenize(f"a <=\n{literal};")
    assert e.value.line == 2
