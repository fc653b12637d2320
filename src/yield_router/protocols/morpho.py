"""MetaMorpho (ERC-4626) vault-share adapter.

- ``deposit(uint256 assets, address receiver) returns (uint256 shares)``
- ``withdraw(uint256 assets, address receiver, address owner) returns (uint256 shares)``
- ``redeem(uint256 shares, address receiver, address owner) returns (uint256 assets)``

Full exits go through ``redeem`` with the maximum share count: share vaults
generally reject an asset-denominated ``withdraw`` of ``type(uint256).max``.
"""

from __future__ import annotations

from ..amounts import MAX_UINT256, is_withdraw_all, to_raw_units
from ..calldata import encode_call
from ..core.models import EncodedTransaction, SupplyParams, WithdrawParams
from ..errors import AdapterUnavailableError
from .base import ProtocolAdapter, base_asset_symbol

SELECTORS = {
    "deposit": "0x6e553f65",
    "withdraw": "0xb460af94",
    "redeem": "0xba087652",
    "maxWithdraw": "0xce96cb77",
}

# Curated vaults per chain; the bare asset symbol maps to the default vault.
VAULTS = {
    "base": {
        "STEAKUSDC": "0x6ABfd6139c7C3CC270ee2Ce132E309F59cAaF6a2",
        "GTUSDCP": "0x12AfDe9a6FEAfb0c1C06B7EC8D58c47542c9E656",
        "SPARKUSDC": "0x7BfA7C4f149E7415b73bdeDfe609237e29CBF34A",
        "SEAMLESSUSDC": "0x616a4E1db48e22028f6bbf20444Cd3b8e3273738",
        "USDC": "0x6ABfd6139c7C3CC270ee2Ce132E309F59cAaF6a2",
    },
    "arbitrum": {
        "BBQUSDC": "0x8F25d6AE3ACB22C40D4F76e36c0C2a7A2fB7c1F5",
        "USDC": "0x8F25d6AE3ACB22C40D4F76e36c0C2a7A2fB7c1F5",
    },
    "ethereum": {
        "STEAKUSDC": "0xBEEF01735c132Ada46AA9aA4c54623cAA92A64CB",
        "GTUSDCP": "0xdd0f28e19C1780eb6396170735D45153D261490d",
        "USDC": "0xBEEF01735c132Ada46AA9aA4c54623cAA92A64CB",
    },
}

UNDERLYING_ASSETS = {
    "base": {"USDC": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"},
    "arbitrum": {"USDC": "0xaf88d065e77c8cC2239327C5EDb3A432268e5831"},
    "ethereum": {"USDC": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"},
}


class MorphoAdapter(ProtocolAdapter):
    protocol_id = "morpho-v1"
    display_name = "Morpho"
    supported_chains = ("ethereum", "base", "arbitrum")

    def resolve_pool_address(self, chain: str, symbol: str | None = None) -> str | None:
        vaults = VAULTS.get(chain.lower())
        if not vaults:
            return None
        if symbol is None:
            return vaults.get("USDC")
        upper = symbol.upper()
        if upper in vaults:
            return vaults[upper]
        base = base_asset_symbol(upper, UNDERLYING_ASSETS.get(chain.lower(), {}))
        return vaults.get(base) if base else None

    def receipt_token(self, symbol: str, chain: str) -> str | None:
        # vault shares are the vault contract itself
        return self.resolve_pool_address(chain, symbol)

    def position_call(self, receipt_token: str, owner: str) -> tuple[str, str]:
        # shares are not 1:1 with assets
        return receipt_token, encode_call(SELECTORS["maxWithdraw"], ("address", owner))

    def underlying_asset(self, symbol: str, chain: str) -> str | None:
        assets = UNDERLYING_ASSETS.get(chain.lower(), {})
        base = base_asset_symbol(symbol, assets)
        return assets.get(base) if base else None

    def _symbol_for_asset(self, address: str, chain: str) -> str | None:
        lowered = address.lower()
        for symbol, addr in UNDERLYING_ASSETS.get(chain.lower(), {}).items():
            if addr.lower() == lowered:
                return symbol
        return None

    def _vault(self, chain: str, pool_symbol: str | None, asset_address: str) -> str:
        key = self._require_chain(chain)
        vault = None
        if pool_symbol:
            vault = self.resolve_pool_address(key, pool_symbol)
        if vault is None:
            symbol = self._symbol_for_asset(asset_address, key)
            vault = self.resolve_pool_address(key, symbol) if symbol else None
        if vault is None:
            raise AdapterUnavailableError(
                f"Morpho vault not available for {pool_symbol or asset_address} on {chain}"
            )
        return vault

    def encode_supply(self, params: SupplyParams) -> EncodedTransaction:
        vault = self._vault(params.chain, params.pool_symbol, params.asset_address)
        raw = to_raw_units(params.amount, params.decimals)
        data = encode_call(
            SELECTORS["deposit"],
            ("uint256", raw),
            ("address", params.on_behalf_of),
        )
        return EncodedTransaction(to=vault, data=data, raw_amount=raw)

    def encode_withdraw(self, params: WithdrawParams) -> EncodedTransaction:
        vault = self._vault(params.chain, params.pool_symbol, params.asset_address)
        if is_withdraw_all(params.amount):
            raw = MAX_UINT256
            selector = SELECTORS["redeem"]
        else:
            raw = to_raw_units(params.amount, params.decimals)
            selector = SELECTORS["withdraw"]
        data = encode_call(
            selector,
            ("uint256", raw),
            ("address", params.to),
            ("address", params.share_owner),
        )
        return EncodedTransaction(to=vault, data=data, raw_amount=raw)


__all__ = ["MorphoAdapter", "SELECTORS", "UNDERLYING_ASSETS", "VAULTS"]
