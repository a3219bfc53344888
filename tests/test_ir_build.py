import pytest

from conftest import entity_with
from vhdl2ver.ast_ir import BitType, Call, Ident, Index, Literal, LiteralKind
from vhdl2ver.errors import ParseError, UnsupportedConstruct
from vhdl2ver.visitor import NodeVisitor, build_ir
from vhdl2ver.vhdl_parser import parse

PORTS = """
    clk : in  std_logic;
    a   : in  std_logic_vector(7 downto 0);
    s   : in  signed(3 downto 0);
    y   : out std_logic_vector(7 downto 0)
"""


def lower(decls="", body="y <= a;", ports=PORTS):
    return build_ir(parse(entity_with(ports, decls, body)))


def test_port_types_resolved():
    design = lower()
    types = {p.name: p.type for p in design.entity.ports}
    assert isinstance(types["clk"], BitType)
    assert (types["a"].high, types["a"].low, types["a"].signed) == (7, 0, False)
    assert types["s"].signed and types["s"].width == 4


def test_ascending_range_normalised():
    design = lower("signal v : std_logic_vector(0 to 7);", "y <= v;")
    v = design.architecture.signals[0].type
    assert (v.high, v.low) == (7, 0)


def test_constant_in_range_bound():
    design = lower("constant W : integer := 8;\nsignal v : unsigned(W - 1 downto 0);", "y <= std_logic_vector(v);")
    assert design.architecture.signals[0].type.width == 8


def test_integer_types():
    design = lower("signal i : integer;\nsignal n : natural range 0 to 15;", "y <= a;")
    i, n = (s.type for s in design.architecture.signals)
    assert (i.width, i.signed) == (32, True)
    assert (n.width, n.signed) == (32, False)


def test_identifiers_canonicalised():
    design = lower("signal Count_Int : unsigned(7 downto 0);", "y <= std_logic_vector(COUNT_INT);\nCount_int <= unsigned(A);")
    first, second = design.architecture.statements
    assert first.value.args[0].name == "Count_Int"
    assert second.target.name == "Count_Int"
    assert second.value.args[0].name == "a"


def test_call_on_signal_becomes_index():
    design = lower("signal b : std_logic;", "b <= a(3);")
    value = design.architecture.statements[0].value
    assert isinstance(value, Index)
    assert isinstance(value.base, Ident) and value.base.name == "a"


def test_builtin_calls_kept():
    design = lower(body="y <= std_logic_vector(to_unsigned(5, 8));")
    value = design.architecture.statements[0].value
    assert isinstance(value, Call) and value.name == "std_logic_vector"
    assert value.args[0].name == "to_unsigned"


def test_length_attribute_folds():
    design = lower("signal n : integer;", "n <= a'length;")
    value = design.architecture.statements[0].value
    assert isinstance(value, Literal)
    assert (value.kind, value.value) == (LiteralKind.DECIMAL, "8")


def test_high_and_low_attributes_fold():
    design = lower("signal b : std_logic;", "b <= a(a'high) xor a(a'low);")
    value = design.architecture.statements[0].value
    assert value.lhs.index.value == "7"
    assert value.rhs.index.value == "0"


def test_enum_declared():
    design = lower("type state_t is (IDLE, RUN);\nsignal st : state_t;", "y <= a;")
    assert design.architecture.signals[0].type.name == "state_t"
    assert design.architecture.signals[0].type.width == 1


@pytest.mark.parametrize("decls, body, message", [
    ("", "y <= b;", "'b' is not declared"),
    ("", "y <= frobnicate(a);", "function 'frobnicate' is not declared"),
    ("signal a : std_logic;", "y <= a;", "collides with port"),
    ("signal t : std_logic;\nsignal T : std_logic;", "y <= a;", "collides with signal"),
    ("constant K : std_logic := '1';", "K <= '0';\ny <= a;", "cannot assign to constant"),
])
def test_scope_errors(decls, body, message):
    with pytest.raises(ParseError, match=message):
        lower(decls, body)


def test_duplicate_port():
    ports = "a : in std_logic;\nA : out std_logic"
    with pytest.raises(ParseError, match="collides with port"):
        lower(body="A <= '1';", ports=ports)


def test_sensitivity_must_name_signals():
    body = """
    process (clk, nope)
    begin
        y <= a;
    end process;
    """
    with pytest.raises(ParseError, match="undeclared signal 'nope'"):
        lower(body=body)


def test_variable_scope_and_assignment_kinds():
    body = """
    p : process (a)
        variable tmp : std_logic_vector(7 downto 0);
    begin
        tmp := a;
        y <= tmp;
    end process;
    """
    proc = lower(body=body).architecture.statements[0]
    assert proc.variables[0].type.width == 8
    assert proc.body[0].blocking

    with pytest.raises(ParseError, match="':=' assignment to signal"):
        lower(body=body.replace("y <= tmp", "y := tmp"))


def test_unsupported_attribute():
    with pytest.raises(UnsupportedConstruct, match="attribute 'range"):
        lower("signal n : integer;", "n <= a'range;")


def test_unconstrained_vector():
    with pytest.raises(UnsupportedConstruct, match="unconstrained"):
        lower("signal v : std_logic_vector;", "y <= a;")


def test_node_visitor_walks_whole_tree(counter_src):
    class Names(NodeVisitor):
        def __init__(self):
            self.seen = set()

        def visit_Ident(self, node):
            self.seen.add(node.name)

    design = build_ir(parse(counter_src))
    names = Names()
    for stmt in design.architecture.statements:
        names.visit(stmt)
    assert names.seen == {"reset", "clk", "enable", "count_int", "count"}
