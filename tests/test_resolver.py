import pytest

from conftest import entity_with
from vhdl2ver import parse_and_lower
from vhdl2ver.ast_ir import (
    Aggregate, BinaryOp, Call, Concat, Ident, Index, Literal, LiteralKind, Slice, UnaryOp, VectorType,
)
from vhdl2ver.errors import AmbiguousResetShape, ConflictingDrivers, MixedSensitivity, WidthMismatch
from vhdl2ver.resolver import Kind, ProcessKind, ResetKind, classify_process, infer_width

TYPES = {
    "a": ("signal", VectorType(7, 0)),
    "b": ("signal", VectorType(3, 0)),
    "s": ("signal", VectorType(7, 0, signed=True)),
}

PORTS = """
    clk   : in  std_logic;
    rst   : in  std_logic;
    d     : in  std_logic_vector(7 downto 0);
    q     : out std_logic_vector(7 downto 0)
"""


def dec(n):
    return Literal(LiteralKind.DECIMAL, str(n))


def only_kind(src):
    ir = parse_and_lower(src)
    (kind,) = ir.process_kinds.values()
    return kind


def clocked(process):
    return entity_with(PORTS, "", process)


# ------------------------------------------------------------
# Width rules
# ------------------------------------------------------------
@pytest.mark.parametrize("expr, width", [
    (BinaryOp("+", Ident("a"), Ident("b")), 8),
    (BinaryOp("+", Ident("a"), dec(1)), 8),
    (BinaryOp("*", Ident("a"), Ident("b")), 12),
    (BinaryOp("/", Ident("b"), Ident("a")), 4),
    (BinaryOp("mod", Ident("a"), Ident("b")), 4),
    (BinaryOp("=", Ident("a"), Ident("b")), 1),
    (BinaryOp("and", Ident("a"), Ident("a")), 8),
    (UnaryOp("not", Ident("b")), 4),
    (Concat((Ident("a"), Ident("b"))), 12),
    (Call("unsigned", (Ident("s"),)), 8),
    (Call("to_unsigned", (Ident("s"), dec(16))), 16),
    (Call("to_integer", (Ident("a"),)), None),
    (Index(Ident("a"), dec(3)), 1),
    (Slice(Ident("a"), dec(5), dec(2)), 4),
    (Literal(LiteralKind.HEX, "F0", 8), 8),
    (Literal(LiteralKind.BINARY_VECTOR, "101", 3), 3),
    (dec(42), None),
    (Aggregate(Literal(LiteralKind.BIT, "0", 1)), None),
])
def test_infer_width(expr, width):
    assert infer_width(expr, TYPES) == width


def test_addition_is_not_widened():
    src = entity_with(PORTS, "signal r : unsigned(7 downto 0);", """
        r <= unsigned(d) + unsigned(d);
        q <= std_logic_vector(r);
    """)
    assert parse_and_lower(src).diagnostics == []


def test_width_mismatch_is_a_diagnostic():
    src = entity_with(PORTS, "signal n : std_logic_vector(3 downto 0);", "n <= d;\nq <= d;")
    ir = parse_and_lower(src)
    (diag,) = ir.diagnostics
    assert isinstance(diag, WidthMismatch)
    assert (diag.target, diag.target_width, diag.value_width) == ("n", 4, 8)
    assert diag.line == 17


def test_width_mismatch_strict_raises():
    src = entity_with(PORTS, "signal n : std_logic_vector(3 downto 0);", "n <= d;\nq <= d;")
    with pytest.raises(WidthMismatch):
        parse_and_lower(src, strict=True)


def test_aggregate_takes_context_width():
    src = entity_with(PORTS, "", "q <= (others => '0');")
    ir = parse_and_lower(src)
    (width,) = ir.aggregate_widths.values()
    assert width == 8


# ------------------------------------------------------------
# Process classification
# ------------------------------------------------------------
def test_async_reset(counter_src):
    kind = only_kind(counter_src)
    assert kind == ProcessKind(Kind.SEQUENTIAL, ResetKind.ASYNC, "reset", "1", "clk", "posedge")


def test_sync_reset(sync_counter_src):
    kind = only_kind(sync_counter_src)
    assert kind == ProcessKind(Kind.SEQUENTIAL, ResetKind.SYNC, "rst", "1", "clk", "posedge")
    assert len(kind.reset_body) == 1


def test_combinational(mux_src):
    assert only_kind(mux_src).kind is Kind.COMBINATIONAL


def test_active_low_async(alu_src):
    ir = parse_and_lower(alu_src)
    store = [k for p, k in ir.process_kinds.items() if p.label == "store"][0]
    assert (store.reset_kind, store.reset_signal, store.reset_active_level) == (ResetKind.ASYNC, "rst_n", "0")


@pytest.mark.parametrize("condition, edge", [
    ("rising_edge(clk)", "posedge"),
    ("falling_edge(clk)", "negedge"),
    ("clk'event and clk = '1'", "posedge"),
    ("clk'event and clk = '0'", "negedge"),
])
def test_edge_predicates(condition, edge):
    src = clocked(f"""
    process (clk)
    begin
        if {condition} then
            q <= d;
        end if;
    end process;
    """)
    kind = only_kind(src)
    assert (kind.kind, kind.reset_kind, kind.clock, kind.clock_edge) == (Kind.SEQUENTIAL, ResetKind.NONE, "clk", edge)


def test_if_without_alternative_is_not_a_reset():
    src = clocked("""
    process (clk)
    begin
        if rising_edge(clk) then
            if rst = '1' then
                q <= (others => '0');
            end if;
        end if;
    end process;
    """)
    assert only_kind(src).reset_kind is ResetKind.NONE


def test_reset_assigning_data_is_not_a_reset():
    src = clocked("""
    process (clk)
    begin
        if rising_edge(clk) then
            if rst = '1' then
                q <= d;
            else
                q <= (others => '0');
            end if;
        end if;
    end process;
    """)
    assert only_kind(src).reset_kind is ResetKind.NONE


def test_partial_clear_is_not_a_reset():
    src = entity_with(PORTS, "signal r : std_logic_vector(7 downto 0);", """
    process (clk)
    begin
        if rising_edge(clk) then
            if rst = '1' then
                q <= (others => '0');
            else
                q <= d;
                r <= d;
            end if;
        end if;
    end process;
    """)
    kind = only_kind(src)
    assert (kind.kind, kind.reset_kind) == (Kind.SEQUENTIAL, ResetKind.NONE)


@pytest.mark.parametrize("process, message", [
    ("""
    process (rst)
    begin
        if rising_edge(clk) then
            q <= d;
        end if;
    end process;
    """, "not in the sensitivity list"),
    ("""
    process (clk, rst, d)
    begin
        if rst = '1' then
            q <= (others => '0');
        elsif rising_edge(clk) then
            q <= d;
        end if;
    end process;
    """, "sensitivity list must be exactly"),
    ("""
    process (clk, d)
    begin
        if rising_edge(clk) then
            q <= d;
        end if;
    end process;
    """, "besides the clock"),
    ("""
    process (clk, rst)
    begin
        if rising_edge(clk) then
            q <= d;
        end if;
        if falling_edge(rst) then
            q <= d;
        end if;
    end process;
    """, "more than one clock edge"),
    ("""
    process (clk)
    begin
        q <= d;
        if rising_edge(clk) then
            q <= d;
        end if;
    end process;
    """, "statements outside"),
    ("""
    process (clk)
    begin
        if rising_edge(clk) then
            q <= d;
        else
            q <= (others => '0');
        end if;
    end process;
    """, "else branch"),
])
def test_ambiguous_reset_shapes(process, message):
    with pytest.raises(AmbiguousResetShape, match=message):
        parse_and_lower(clocked(process))


def test_classify_process_is_pure():
    assert classify_process(("a",), ()).kind is Kind.COMBINATIONAL


# ------------------------------------------------------------
# Sensitivity, drivers, storage, exclusivity
# ------------------------------------------------------------
def test_mixed_sensitivity():
    src = clocked("""
    p : process (clk)
    begin
        q <= d;
    end process;
    """)
    ir = parse_and_lower(src)
    (diag,) = ir.diagnostics
    assert isinstance(diag, MixedSensitivity)
    assert diag.missing == ("d",)
    assert diag.extra == ("clk",)
    with pytest.raises(MixedSensitivity):
        parse_and_lower(src, strict=True)


def test_process_all_is_exempt():
    src = clocked("""
    process (all)
    begin
        q <= d;
    end process;
    """)
    assert parse_and_lower(src).diagnostics == []


def test_conflicting_drivers():
    src = clocked("""
    process (clk)
    begin
        if rising_edge(clk) then
            q <= d;
        end if;
    end process;
    q <= d;
    """)
    with pytest.raises(ConflictingDrivers, match="sequential process"):
        parse_and_lower(src)


def test_driving_an_input_port():
    with pytest.raises(ConflictingDrivers, match="input port"):
        parse_and_lower(entity_with(PORTS, "", "d <= q;"))


def test_storage(counter_src, mux_src):
    counter = parse_and_lower(counter_src)
    assert counter.needs_storage("count_int")
    assert not counter.needs_storage("count")
    assert not parse_and_lower(mux_src).needs_storage("y")


def test_case_exclusivity(decoder_src):
    ir = parse_and_lower(decoder_src)
    assert len(ir.exclusive_cases) == 1


def test_case_with_signal_choice_not_exclusive():
    src = entity_with(PORTS, "", """
    process (d, rst)
    begin
        case rst is
            when '0' => q <= d;
            when '1' => q <= (others => '0');
        end case;
    end process;
    """)
    assert len(parse_and_lower(src).exclusive_cases) == 1

    src = entity_with(PORTS, "signal k : std_logic;", """
    process (d, rst, k)
    begin
        case rst is
            when k => q <= d;
            when others => q <= (others => '0');
        end case;
    end process;
    k <= '0';
    """)
    assert parse_and_lower(src).exclusive_cases == set()
