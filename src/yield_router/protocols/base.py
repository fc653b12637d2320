"""Common interface for lending-protocol transaction encoders."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Mapping

from ..calldata import encode_balance_of
from ..core.models import EncodedTransaction, SupplyParams, WithdrawParams
from ..errors import AdapterUnavailableError

# Curator/brand prefixes found in vault symbols such as "STEAKUSDC" or "GTUSDCP".
VAULT_SYMBOL_PREFIXES = ("SEAMLESS", "STEAK", "SPARK", "HYPER", "BBQ", "RE7", "GT")


def base_asset_symbol(symbol: str, known: Mapping[str, object]) -> str | None:
    """Recover the underlying asset symbol from a protocol-specific pool symbol."""

    upper = symbol.upper()
    if upper in known:
        return upper
    stripped = re.sub(rf"^({'|'.join(VAULT_SYMBOL_PREFIXES)})", "", upper)
    if stripped in known:
        return stripped
    # e.g. "USDCP" left over from "GTUSDCP"
    for candidate in sorted(known, key=len, reverse=True):
        if candidate in stripped:
            return candidate
    return None


class ProtocolAdapter(ABC):
    """Stateless encoder for one lending protocol."""

    protocol_id: str
    display_name: str
    supported_chains: tuple[str, ...]

    def supports(self, chain: str) -> bool:
        return chain.lower() in self.supported_chains

    def _require_chain(self, chain: str) -> str:
        key = chain.lower()
        if key not in self.supported_chains:
            raise AdapterUnavailableError(f"{self.display_name} not available on {chain}")
        return key

    @abstractmethod
    def resolve_pool_address(self, chain: str, symbol: str | None = None) -> str | None:
        """Contract that receives supply/withdraw calls for ``symbol`` on ``chain``."""

    @abstractmethod
    def receipt_token(self, symbol: str, chain: str) -> str | None:
        """Token whose ``balanceOf`` reports the deposited position."""

    def position_call(self, receipt_token: str, owner: str) -> tuple[str, str]:
        """(contract, calldata) whose ``uint256`` result is the position in asset units."""

        return receipt_token, encode_balance_of(owner)

    @abstractmethod
    def encode_supply(self, params: SupplyParams) -> EncodedTransaction: ...

    @abstractmethod
    def encode_withdraw(self, params: WithdrawParams) -> EncodedTransaction: ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(protocol_id={self.protocol_id!r})"


__all__ = ["ProtocolAdapter", "VAULT_SYMBOL_PREFIXES", "base_asset_symbol"]
