"""Minimal static ABI encoding for the contract calls the engine issues.

Only head-encoded types are needed: ``address``, ``uint256`` and ``bool`` (and
small unsigned integers, which share the ``uint256`` word layout). Selectors
are fixed constants so the engine never hashes anything itself.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal

from .amounts import WORD_BYTES, to_calldata_word, to_padded_address

AbiType = Literal["address", "uint256", "uint16", "bool"]

ERC20_SELECTORS = {
    "balanceOf": "0x70a08231",  # balanceOf(address)
    "transfer": "0xa9059cbb",  # transfer(address,uint256)
    "approve": "0x095ea7b3",  # approve(address,uint256)
    "allowance": "0xdd62ed3e",  # allowance(address,address)
    "decimals": "0x313ce567",  # decimals()
}

# Error(string)
REVERT_SELECTOR = "0x08c379a0"

_WORD_HEX = WORD_BYTES * 2


def encode_word(abi_type: AbiType, value: object) -> str:
    if abi_type == "address":
        return to_padded_address(str(value))
    if abi_type == "bool":
        return to_calldata_word(1 if value else 0)
    if abi_type == "uint16":
        number = int(value)  # type: ignore[call-overload]
        if number >= 1 << 16:
            raise ValueError(f"uint16 out of range: {number}")
        return to_calldata_word(number)
    return to_calldata_word(int(value))  # type: ignore[call-overload]


def encode_call(selector: str, *args: tuple[AbiType, object]) -> str:
    """Concatenate ``selector`` with one 32-byte word per ``(type, value)`` pair."""

    if len(selector) != 10 or not selector.startswith("0x"):
        raise ValueError(f"Selector must be 4 bytes of hex: {selector!r}")
    return selector.lower() + "".join(encode_word(t, v) for t, v in args)


def split_words(data: str) -> tuple[str, list[str]]:
    """Split calldata into its selector and 64-hex-char words."""

    body = data[2:] if data.startswith("0x") else data
    if len(body) < 8 or (len(body) - 8) % _WORD_HEX:
        raise ValueError("Calldata is not a selector followed by whole words")
    selector = "0x" + body[:8].lower()
    rest = body[8:]
    return selector, [rest[i : i + _WORD_HEX] for i in range(0, len(rest), _WORD_HEX)]


def decode_call(data: str, types: Sequence[AbiType]) -> tuple[str, list[object]]:
    """Inverse of :func:`encode_call` for head-only argument lists."""

    selector, words = split_words(data)
    if len(words) != len(types):
        raise ValueError(f"Expected {len(types)} words, found {len(words)}")
    values: list[object] = []
    for abi_type, word in zip(types, words):
        if abi_type == "address":
            values.append("0x" + word[-40:])
        elif abi_type == "bool":
            values.append(int(word, 16) != 0)
        else:
            values.append(int(word, 16))
    return selector, values


def decode_uint(result: str | None) -> int:
    """Decode an ``eth_call`` return value holding a single ``uint256``."""

    if not result or result == "0x":
        return 0
    return int(result, 16)


def decode_revert_reason(data: str | None) -> str | None:
    """Extract the message of a standard ``Error(string)`` revert payload."""

    if not data or not data.lower().startswith(REVERT_SELECTOR):
        return None
    body = data[10:]
    try:
        length = int(body[_WORD_HEX : 2 * _WORD_HEX], 16)
        raw = bytes.fromhex(body[2 * _WORD_HEX : 2 * _WORD_HEX + length * 2])
    except ValueError:
        return None
    return raw.decode("utf-8", errors="replace")


def encode_approve(spender: str, raw_amount: int) -> str:
    return encode_call(ERC20_SELECTORS["approve"], ("address", spender), ("uint256", raw_amount))


def encode_allowance(owner: str, spender: str) -> str:
    return encode_call(ERC20_SELECTORS["allowance"], ("address", owner), ("address", spender))


def encode_balance_of(owner: str) -> str:
    return encode_call(ERC20_SELECTORS["balanceOf"], ("address", owner))


__all__ = [
    "ERC20_SELECTORS",
    "REVERT_SELECTOR",
    "decode_call",
    "decode_revert_reason",
    "decode_uint",
    "encode_allowance",
    "encode_approve",
    "encode_balance_of",
    "encode_call",
    "encode_word",
    "split_words",
]
