# tests/conftest.py
import pathlib, sys, textwrap, pytest

# Ensure project root on sys.path (so `vhdl2ver` imports without installing)
ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

FIXTURES = ROOT / "tests" / "fixtures"


def entity_with(ports: str, decls: str, body: str, name: str = "dut") -> str:
    """Wrap declarations and concurrent statements in a minimal design unit."""
    return "\n".join([
        "library ieee;",
        "use ieee.std_logic_1164.all;",
        "use ieee.numeric_std.all;",
        "",
        f"entity {name} is",
        "    port (",
        textwrap.dedent(ports).strip(),
        "    );",
        f"end entity {name};",
        "",
        f"architecture rtl of {name} is",
        textwrap.dedent(decls).strip(),
        "begin",
        textwrap.dedent(body).strip(),
        "end architecture rtl;",
        "",
    ])


@pytest.fixture
def fixtures_dir() -> pathlib.Path:
    return FIXTURES


@pytest.fixture
def mux_src() -> str:
    return (FIXTURES / "mux2to1.vhd").read_text()


@pytest.fixture
def counter_src() -> str:
    return (FIXTURES / "counter.vhd").read_text()


@pytest.fixture
def decoder_src() -> str:
    return (FIXTURES / "decoder_2to4.vhd").read_text()


@pytest.fixture
def alu_src() -> str:
    return (FIXTURES / "alu.vhd").read_text()


@pytest.fixture
def fsm_src() -> str:
    return (FIXTURES / "fsm.vhd").read_text()


@pytest.fixture
def sync_counter_src() -> str:
    return textwrap.dedent("""\
        library ieee;
        use ieee.std_logic_1164.all;
        use ieee.numeric_std.all;

        entity sync_counter is
            port (
                clk : in  std_logic;
                rst : in  std_logic;
                q   : out unsigned(3 downto 0)
            );
        end entity sync_counter;

        architecture rtl of sync_counter is
            signal cnt : unsigned(3 downto 0);
        begin
            tick : process (clk)
            begin
                if rising_edge(clk) then
                    if rst = '1' then
                        cnt <= (others => '0');
                    else
                        cnt <= cnt + 1;
                    end if;
                end if;
            end process tick;

            q <= cnt;
        end architecture rtl;
    """)
