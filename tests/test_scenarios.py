"""End-to-end behaviour on small, complete designs in both dialects."""
import re

import pytest

from conftest import entity_with
from vhdl2ver import Dialect, generate, parse_and_lower, transpile_text
from vhdl2ver.resolver import Kind, ResetKind

BLOCK_WORDS = re.compile(r"\b(module|begin|case|endmodule|end|endcase)\b")
OPENERS = ("module", "begin", "case")

NESTED = entity_with("""
    clk : in  std_logic;
    rst : in  std_logic;
    en  : in  std_logic;
    sel : in  std_logic_vector(1 downto 0);
    d   : in  std_logic_vector(7 downto 0);
    q   : out std_logic_vector(7 downto 0)
""", "signal r : std_logic_vector(7 downto 0);", """
    step : process (clk)
    begin
        if rising_edge(clk) then
            if rst = '1' then
                r <= (others => '0');
            else
                case sel is
                    when "00" =>
                        if en = '1' then
                            if d(0) = '1' then
                                r <= d;
                            else
                                r <= not d;
                            end if;
                        end if;
                    when "01" => r <= d;
                    when others => null;
                end case;
            end if;
        end if;
    end process step;
    q <= r;
""")


def strip_comments(text):
    return "\n".join(line.split("//", 1)[0] for line in text.splitlines())


def test_mux_is_combinational(mux_src):
    ir = parse_and_lower(mux_src)
    (kind,) = ir.process_kinds.values()
    assert kind.kind is Kind.COMBINATIONAL
    assert ir.diagnostics == []

    legacy = generate(ir, Dialect.LEGACY)
    assert "output wire y" in legacy
    assert "assign y = y_comb;" in legacy
    assert "always_comb begin" in generate(ir, Dialect.STRICT)


def test_counter_has_async_reset_and_storage(counter_src):
    ir = parse_and_lower(counter_src)
    (kind,) = ir.process_kinds.values()
    assert (kind.kind, kind.reset_kind, kind.reset_signal, kind.reset_active_level) == \
        (Kind.SEQUENTIAL, ResetKind.ASYNC, "reset", "1")
    assert ir.needs_storage("count_int")


def test_decoder_case_arms(decoder_src):
    ir = parse_and_lower(decoder_src)
    strict = generate(ir, "strict")
    legacy = generate(ir, "legacy")

    for text in (strict, legacy):
        arms = re.findall(r"^\s*(2'b\d\d|default): begin$", text, re.M)
        assert arms == ["2'b00", "2'b01", "2'b10", "2'b11", "default"]
    assert "unique case (sel)" in strict
    assert "unique" not in legacy
    assert "y_comb <= 4'b0001;" in legacy


def test_hex_and_bit_literals():
    ports = "q : out std_logic_vector(3 downto 0);\nb : out std_logic"
    text = transpile_text(entity_with(ports, "", "q <= x\"0\";\nb <= '1';")).text
    assert "assign q = 4'h0;" in text
    assert "assign b = 1'b1;" in text


@pytest.mark.parametrize("fixture", ["mux_src", "counter_src", "decoder_src", "alu_src", "fsm_src"])
@pytest.mark.parametrize("dialect", ["legacy", "strict"])
def test_output_is_deterministic(request, fixture, dialect):
    src = request.getfixturevalue(fixture)
    first = transpile_text(src, dialect).text
    assert transpile_text(src, dialect).text == first
    assert first.endswith("endmodule\n") and not first.endswith("\n\n")


def block_depths(text):
    """Running nesting depth after each block keyword, in source order."""
    depth, depths = 0, []
    for word in BLOCK_WORDS.findall(strip_comments(text)):
        depth += 1 if word in OPENERS else -1
        depths.append(depth)
    return depths


@pytest.mark.parametrize("fixture", ["mux_src", "counter_src", "decoder_src", "alu_src", "fsm_src"])
@pytest.mark.parametrize("dialect", ["legacy", "strict"])
def test_blocks_are_balanced(request, fixture, dialect):
    depths = block_depths(transpile_text(request.getfixturevalue(fixture), dialect).text)
    # "end else begin" closes one block and opens another
    assert min(depths) >= 0
    assert depths[-1] == 0
    assert depths.count(0) == 1


@pytest.mark.parametrize("dialect", ["legacy", "strict"])
def test_deep_nesting_is_balanced(dialect):
    text = transpile_text(NESTED, dialect).text
    depths = block_depths(text)
    assert min(depths) >= 0 and depths[-1] == 0 and depths.count(0) == 1
    # module, always, if, case, arm, if, if
    assert max(depths) == 7
    assert "r <= ~d;" in text


def test_port_order_is_kept(alu_src):
    text = transpile_text(alu_src).text
    names = ["clk", "rst_n", "a", "b", "op", "result", "zero"]
    header = text.split(");", 1)[0]
    positions = [re.search(rf"\b{n}\b,?$", header, re.M).start() for n in names]
    assert positions == sorted(positions)


def test_vector_widths(alu_src):
    text = transpile_text(alu_src, "legacy").text
    assert "input wire [7:0] a," in text
    assert "input wire [2:0] op," in text
    assert "output wire [7:0] result," in text
    assert "reg [7:0] result_reg;" in text


def test_diagnostics_are_returned_not_raised():
    ports = "d : in std_logic_vector(7 downto 0);\nn : out std_logic_vector(3 downto 0)"
    result = transpile_text(entity_with(ports, "", "n <= d;"))
    assert [type(d).__name__ for d in result.diagnostics] == ["WidthMismatch"]
    assert result.entity == "dut"
