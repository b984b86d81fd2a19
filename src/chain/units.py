"""Exact conversions between raw on-chain integers and decimal amounts.

Raw token amounts are arbitrary-precision ints (up to 2**256 - 1). All
conversions run in a 200-digit decimal context so nothing is rounded.
"""

from __future__ import annotations

import re
from decimal import ROUND_DOWN, Context, Decimal, localcontext

from eth_utils import to_checksum_address

from src.errors import InvalidAddressError

MAX_UINT256 = 2**256 - 1

_WIDE = Context(prec=200)
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def format_units(raw: int, decimals: int) -> Decimal:
    """Raw integer amount -> exact Decimal (e.g. 1500000, 6 -> 1.5)."""
    if decimals < 0:
        raise ValueError(f"decimals must be >= 0, got {decimals}")
    with localcontext(_WIDE):
        return Decimal(int(raw)).scaleb(-decimals)


def parse_units(value: Decimal | str | int, decimals: int) -> int:
    """Decimal amount -> raw integer, truncating digits beyond ``decimals``."""
    if decimals < 0:
        raise ValueError(f"decimals must be >= 0, got {decimals}")
    with localcontext(_WIDE):
        scaled = Decimal(value).scaleb(decimals)
        return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def to_plain(value: Decimal | int | str) -> str:
    """Render without exponent notation, trailing zeros stripped."""
    with localcontext(_WIDE):
        d = Decimal(value)
        if d == 0:
            return "0"
        text = format(d, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def dec(value: str | None) -> Decimal:
    """Parse a stored decimal string; empty/None reads as zero."""
    if value is None or value == "":
        return Decimal(0)
    return Decimal(value)


def is_address(value: str | None) -> bool:
    return bool(value) and bool(_ADDRESS_RE.match(value))


def normalize_address(value: str | None) -> str:
    """Validate a 0x address and return its EIP-55 checksum form."""
    if not value or not _ADDRESS_RE.match(value.strip()):
        raise InvalidAddressError(f"Invalid address: {value!r}")
    return to_checksum_address(value.strip())
