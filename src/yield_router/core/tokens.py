"""Lookup helpers over the built-in token table."""

from __future__ import annotations

from .constants import TOKENS
from .models import TokenInfo


def resolve_token(symbol_or_address: str, chain: str) -> TokenInfo | None:
    """Resolve ``"USDC"``, ``"usdc"`` or a known address to :class:`TokenInfo`."""

    chain_key = chain.lower()
    needle = symbol_or_address.strip()
    if needle.lower().startswith("0x"):
        lowered = needle.lower()
        for symbol, chains in TOKENS.items():
            entry = chains.get(chain_key)
            if entry and entry[0] == lowered:
                return TokenInfo(symbol=symbol, address=entry[0], decimals=entry[1])
        return None
    symbol = needle.upper()
    entry = TOKENS.get(symbol, {}).get(chain_key)
    if entry is None:
        return None
    return TokenInfo(symbol=symbol, address=entry[0], decimals=entry[1])


def symbol_for_address(address: str, chain: str) -> str | None:
    token = resolve_token(address, chain)
    return token.symbol if token else None


__all__ = ["resolve_token", "symbol_for_address"]
