"""Aave v3 pooled-lending adapter.

One ``Pool`` contract per chain serves every listed reserve; deposits mint
interest-bearing aTokens.

- ``supply(address asset, uint256 amount, address onBehalfOf, uint16 referralCode)``
- ``withdraw(address asset, uint256 amount, address to)``
"""

from __future__ import annotations

from ..amounts import MAX_UINT256, is_withdraw_all, to_raw_units
from ..calldata import encode_call
from ..core.models import EncodedTransaction, SupplyParams, WithdrawParams
from ..errors import AdapterUnavailableError
from .base import ProtocolAdapter

SELECTORS = {
    "supply": "0x617ba037",
    "withdraw": "0x69328dec",
}

POOL_ADDRESSES = {
    "ethereum": "0x87870Bca3F3fD6335C3F4ce8392D69350B4fA4E2",
    "base": "0xA238Dd80C259a72e81d7e4664a9801593F98d1c5",
    "arbitrum": "0x794a61358D6845594F94dc1DB02A252b5b4814aD",
    "optimism": "0x794a61358D6845594F94dc1DB02A252b5b4814aD",
    "polygon": "0x794a61358D6845594F94dc1DB02A252b5b4814aD",
}

ATOKENS = {
    "base": {
        "USDC": "0x4e65fE4DbA92790696d040ac24Aa414708F5c0AB",
        "USDBC": "0x0a1d576f3eFeF75b330424287a95A366e8281D54",
        "WETH": "0xD4a0e0b9149BCee3C920d2E00b5dE09138fd8bb7",
    },
    "arbitrum": {
        "USDC": "0x724dc807b04555b71ed48a6896b6F41593b8C637",
        "USDC.E": "0x625E7708f30cA75bfd92586e17077590C60eb4cD",
        "USDT": "0x6ab707Aca953eDAeFBc4fD23bA73294241490620",
        "DAI": "0x82E64f49Ed5EC1bC6e43DAD4FC8Af9bb3A2312EE",
        "WETH": "0xe50fA9b3c56FfB159cB0FCA61F5c9D750e8128c8",
    },
    "ethereum": {
        "USDC": "0x98C23E9d8f34FEFb1B7BD6a91B7FF122F4e16F5c",
        "USDT": "0x23878914EFE38d27C4D67Ab83ed1b93A74D4086a",
        "DAI": "0x018008bfb33d285247A21d44E50697654f754e63",
        "WETH": "0x4d5F47FA6A74757f35C14fD3a6Ef8E3C9BC514E8",
    },
    "optimism": {
        "USDC": "0x625E7708f30cA75bfd92586e17077590C60eb4cD",
        "USDT": "0x6ab707Aca953eDAeFBc4fD23bA73294241490620",
        "DAI": "0x82E64f49Ed5EC1bC6e43DAD4FC8Af9bb3A2312EE",
        "WETH": "0xe50fA9b3c56FfB159cB0FCA61F5c9D750e8128c8",
    },
    "polygon": {
        "USDC": "0x625E7708f30cA75bfd92586e17077590C60eb4cD",
        "USDT": "0x6ab707Aca953eDAeFBc4fD23bA73294241490620",
        "DAI": "0x82E64f49Ed5EC1bC6e43DAD4FC8Af9bb3A2312EE",
        "WETH": "0xe50fA9b3c56FfB159cB0FCA61F5c9D750e8128c8",
    },
}

REFERRAL_CODE = 0


class AaveV3Adapter(ProtocolAdapter):
    protocol_id = "aave-v3"
    display_name = "Aave V3"
    supported_chains = ("ethereum", "base", "arbitrum", "optimism", "polygon")

    def resolve_pool_address(self, chain: str, symbol: str | None = None) -> str | None:
        # a single Pool contract serves every reserve on the chain
        return POOL_ADDRESSES.get(chain.lower())

    def receipt_token(self, symbol: str, chain: str) -> str | None:
        return ATOKENS.get(chain.lower(), {}).get(symbol.upper())

    def _pool(self, chain: str) -> str:
        pool = self.resolve_pool_address(self._require_chain(chain))
        if pool is None:
            raise AdapterUnavailableError(f"Aave v3 not available on {chain}")
        return pool

    def encode_supply(self, params: SupplyParams) -> EncodedTransaction:
        pool = self._pool(params.chain)
        raw = to_raw_units(params.amount, params.decimals)
        data = encode_call(
            SELECTORS["supply"],
            ("address", params.asset_address),
            ("uint256", raw),
            ("address", params.on_behalf_of),
            ("uint16", REFERRAL_CODE),
        )
        return EncodedTransaction(to=pool, data=data, raw_amount=raw)

    def encode_withdraw(self, params: WithdrawParams) -> EncodedTransaction:
        pool = self._pool(params.chain)
        if is_withdraw_all(params.amount):
            raw = MAX_UINT256
        else:
            raw = to_raw_units(params.amount, params.decimals)
        data = encode_call(
            SELECTORS["withdraw"],
            ("address", params.asset_address),
            ("uint256", raw),
            ("address", params.to),
        )
        return EncodedTransaction(to=pool, data=data, raw_amount=raw)


__all__ = ["AaveV3Adapter", "ATOKENS", "POOL_ADDRESSES", "SELECTORS"]
