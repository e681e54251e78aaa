"""Tools module - Remittance file parsers."""

from __future__ import annotations

from hcbsrecon.tools.parser import (
    CompositeRemittanceParser,
    JSONRemittanceParser,
    RemittanceParseError,
    RemittanceParser,
    dump_remittance,
)


__all__ = [
    "CompositeRemittanceParser",
    "JSONRemittanceParser",
    "RemittanceParseError",
    "RemittanceParser",
    "dump_remittance",
]
