"""Shared formatting helpers for parsers: hex rendering, flag tables, field regions."""

from typing import Optional, Union

from .regions import Region, RegionKind


def fmt_hex(value: int, pad: int = 0) -> str:
    """0x-prefixed upper-case hex, zero-padded to `pad` digits."""
    return f"0x{value:0{pad}X}"


def name_or_hex(table: dict[int, str], code: int, pad: int = 0) -> str:
    """Symbolic name for `code`, or its raw hex if the table has none."""
    return table.get(code) or fmt_hex(code, pad)


def decode_flags(value: int, table: dict[int, str]) -> str:
    """
    Comma-joined names of every table bit set in `value`.

    Bits the table does not know are left out; 'None' if nothing matched.
    """
    names = [name for bit, name in table.items() if bit and (value & bit) == bit]
    return ", ".join(names) if names else "None"


def field_region(
    name: str,
    offset: int,
    size: int,
    palette: dict[str, str],
    value: Optional[Union[int, str]] = None,
    description: Optional[str] = None,
) -> Region:
    return Region(
        name=name,
        offset=offset,
        size=size,
        kind=RegionKind.FIELD,
        color=palette["FIELD"],
        value=value,
        description=description,
    )
