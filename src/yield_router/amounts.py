"""Exact conversion between human-readable token amounts and raw on-chain units.

Amounts that end up in calldata or in the earnings ledger never pass through
binary floating point. Parsing works on the decimal string directly and the
result is a Python ``int``, so values of 10**27 and beyond keep every digit.
"""

from __future__ import annotations

import re
from decimal import Decimal

from .errors import AmountFormatError, NegativeAmountError

MAX_UINT256 = (1 << 256) - 1
WORD_BYTES = 32

_DIGITS = re.compile(r"^[0-9]*$")
WITHDRAW_ALL = frozenset({"all", "max"})


def to_raw_units(amount: str, decimals: int) -> int:
    """Convert ``amount`` (e.g. ``"1234.5"``) into integer base units.

    Precision beyond ``decimals`` is floored, never rounded. An empty string
    or one made of zeros yields ``0``.

    >>> to_raw_units("100", 6)
    100000000
    >>> to_raw_units("0.0000001", 6)
    0
    """

    if decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {decimals}")
    cleaned = amount.strip()
    if cleaned.startswith("-"):
        raise NegativeAmountError(f"Negative amounts not supported: {amount!r}")
    whole, dot, frac = cleaned.partition(".")
    if not _DIGITS.match(whole) or not _DIGITS.match(frac):
        raise AmountFormatError(f"Invalid amount format: {amount!r}")
    if dot and not whole and not frac:
        raise AmountFormatError(f"Invalid amount format: {amount!r}")
    padded = (frac + "0" * decimals)[:decimals]
    digits = (whole + padded).lstrip("0")
    return int(digits) if digits else 0


def from_raw_units(raw: int, decimals: int) -> str:
    """Render ``raw`` base units as a decimal string without trailing zeros."""

    if raw < 0:
        raise NegativeAmountError(f"Negative raw amount: {raw}")
    if decimals == 0:
        return str(raw)
    digits = str(raw).rjust(decimals + 1, "0")
    whole, frac = digits[:-decimals], digits[-decimals:].rstrip("0")
    return f"{whole}.{frac}" if frac else whole


def to_decimal(raw: int, decimals: int) -> Decimal:
    """Exact :class:`~decimal.Decimal` value of ``raw`` base units."""

    return Decimal(from_raw_units(raw, decimals))


def is_withdraw_all(amount: str) -> bool:
    return amount.strip().lower() in WITHDRAW_ALL


def to_calldata_word(value: int, width_bytes: int = WORD_BYTES) -> str:
    """Big-endian hex of ``value`` left-padded with zeros to ``width_bytes``."""

    if value < 0:
        raise ValueError(f"Cannot encode negative value {value}")
    if value.bit_length() > width_bytes * 8:
        raise ValueError(f"Value does not fit in {width_bytes} bytes")
    return format(value, "x").rjust(width_bytes * 2, "0")


def to_padded_address(address: str, width_bytes: int = WORD_BYTES) -> str:
    """Strip ``0x`` from ``address`` and right-align it inside a word."""

    body = address[2:] if address.lower().startswith("0x") else address
    if len(body) != 40 or not re.fullmatch(r"[0-9a-fA-F]{40}", body):
        raise ValueError(f"Invalid address: {address!r}")
    return body.lower().rjust(width_bytes * 2, "0")


__all__ = [
    "MAX_UINT256",
    "WITHDRAW_ALL",
    "WORD_BYTES",
    "from_raw_units",
    "is_withdraw_all",
    "to_calldata_word",
    "to_decimal",
    "to_padded_address",
    "to_raw_units",
]
