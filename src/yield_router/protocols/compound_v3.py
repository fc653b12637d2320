"""Compound v3 (Comet) isolated-market adapter.

Each Comet market has a single base asset and tracks balances internally, so
the market contract itself doubles as the receipt token.

- ``supply(address asset, uint256 amount)``
- ``withdraw(address asset, uint256 amount)``
"""

from __future__ import annotations

from ..amounts import MAX_UINT256, is_withdraw_all, to_raw_units
from ..calldata import encode_call
from ..core.models import EncodedTransaction, SupplyParams, WithdrawParams
from ..errors import AdapterUnavailableError
from .base import ProtocolAdapter, base_asset_symbol

SELECTORS = {
    "supply": "0xf2b9fdb8",
    "withdraw": "0xf3fef3a3",
}

COMET_MARKETS = {
    "ethereum": {
        "USDC": "0xc3d688B66703497DAA19211EEdff47f25384cdc3",
        "WETH": "0xA17581A9E3356d9A858b789D68B4d866e593aE94",
    },
    "base": {
        "USDC": "0xb125E6687d4313864e53df431d5425969c15Eb2F",
        "USDBC": "0x9c4ec768c28520B50860ea7a15bd7213a9fF58bf",
        "WETH": "0x46e6b214b524310239732D51387075E0e70970bf",
    },
    "arbitrum": {
        "USDC": "0x9c4ec768c28520B50860ea7a15bd7213a9fF58bf",
        "USDC.E": "0xA5EDBDD9646f8dFF606d7448e414884C7d905dCA",
        "WETH": "0x6f7D514bbD4aFf3BcD1140B7344b32f063dEe486",
    },
    "polygon": {
        "USDC": "0xF25212E676D1F7F89Cd72fFEe66158f541246445",
    },
    "optimism": {
        "USDC": "0x2e44e174f7D53F0212823acC11C01A11d58c5bCB",
        "WETH": "0xE36A30D249f7761327fd973001A32010b521b6Fd",
    },
}

# What each market accepts as its base asset.
BASE_ASSETS = {
    "ethereum": {
        "USDC": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
        "WETH": "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
    },
    "base": {
        "USDC": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        "USDBC": "0xd9aAEc86B65D86f6A7B5B1b0c42FFA531710b6CA",
        "WETH": "0x4200000000000000000000000000000000000006",
    },
    "arbitrum": {
        "USDC": "0xaf88d065e77c8cC2239327C5EDb3A432268e5831",
        "USDC.E": "0xFF970A61A04b1cA14834A43f5dE4533eBDDB5CC8",
        "WETH": "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1",
    },
    "polygon": {
        "USDC": "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174",
    },
    "optimism": {
        "USDC": "0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85",
        "WETH": "0x4200000000000000000000000000000000000006",
    },
}


class CompoundV3Adapter(ProtocolAdapter):
    protocol_id = "compound-v3"
    display_name = "Compound V3"
    supported_chains = ("ethereum", "base", "arbitrum", "polygon", "optimism")

    def resolve_pool_address(self, chain: str, symbol: str | None = None) -> str | None:
        markets = COMET_MARKETS.get(chain.lower())
        if not markets:
            return None
        if symbol is None:
            return markets.get("USDC") or next(iter(markets.values()))
        base = base_asset_symbol(symbol, markets)
        return markets.get(base) if base else None

    def receipt_token(self, symbol: str, chain: str) -> str | None:
        return self.resolve_pool_address(chain, symbol)

    def base_asset(self, symbol: str, chain: str) -> str | None:
        return BASE_ASSETS.get(chain.lower(), {}).get(symbol.upper())

    def symbol_for_asset(self, address: str, chain: str) -> str | None:
        lowered = address.lower()
        for symbol, addr in BASE_ASSETS.get(chain.lower(), {}).items():
            if addr.lower() == lowered:
                return symbol
        return None

    def _market(self, asset_address: str, chain: str) -> str:
        key = self._require_chain(chain)
        symbol = self.symbol_for_asset(asset_address, key)
        comet = self.resolve_pool_address(key, symbol) if symbol else None
        if comet is None:
            raise AdapterUnavailableError(
                f"Compound V3 market not available for {asset_address} on {chain}"
            )
        return comet

    def encode_supply(self, params: SupplyParams) -> EncodedTransaction:
        comet = self._market(params.asset_address, params.chain)
        raw = to_raw_units(params.amount, params.decimals)
        data = encode_call(
            SELECTORS["supply"],
            ("address", params.asset_address),
            ("uint256", raw),
        )
        return EncodedTransaction(to=comet, data=data, raw_amount=raw)

    def encode_withdraw(self, params: WithdrawParams) -> EncodedTransaction:
        comet = self._market(params.asset_address, params.chain)
        raw = MAX_UINT256 if is_withdraw_all(params.amount) else to_raw_units(
            params.amount, params.decimals
        )
        data = encode_call(
            SELECTORS["withdraw"],
            ("address", params.asset_address),
            ("uint256", raw),
        )
        return EncodedTransaction(to=comet, data=data, raw_amount=raw)


__all__ = ["BASE_ASSETS", "COMET_MARKETS", "CompoundV3Adapter", "SELECTORS"]
