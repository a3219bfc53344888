# dialect.py
"""The two output dialects and everything that differs between them."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Union


class Dialect(str, enum.Enum):
    LEGACY = "legacy"      # Verilog-2001
    STRICT = "strict"      # SystemVerilog

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class DialectProfile:
    dialect: Dialect
    net_type: str
    storage_type: str
    comb_header: str
    seq_keyword: str
    unique_case: bool
    fill_aggregates: bool      # (others => '0') as '0
    typed_enums: bool
    param_type: str
    comb_shadow: bool          # combinational outputs declared wire, driven through a reg
    suffix: str


LEGACY = DialectProfile(
    dialect=Dialect.LEGACY,
    net_type="wire",
    storage_type="reg",
    comb_header="always @(*)",
    seq_keyword="always",
    unique_case=False,
    fill_aggregates=False,
    typed_enums=False,
    param_type="",
    comb_shadow=True,
    suffix=".v",
)

STRICT = DialectProfile(
    dialect=Dialect.STRICT,
    net_type="logic",
    storage_type="logic",
    comb_header="always_comb",
    seq_keyword="always_ff",
    unique_case=True,
    fill_aggregates=True,
    typed_enums=True,
    param_type="logic",
    comb_shadow=False,
    suffix=".sv",
)

PROFILES = {Dialect.LEGACY: LEGACY, Dialect.STRICT: STRICT}


def profile_for(dialect: Union[Dialect, str]) -> DialectProfile:
    try:
        return PROFILES[Dialect(str(dialect).lower())]
    except ValueError:
        raise ValueError(f"unknown dialect {dialect!r} (expected 'legacy' or 'strict')") from None
