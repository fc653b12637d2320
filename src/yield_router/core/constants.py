"""Core constants shared across yield_router modules."""

from __future__ import annotations

# EVM chains the engine can plan on, keyed by lower-case name.
CHAIN_IDS = {
    "ethereum": 1,
    "optimism": 10,
    "polygon": 137,
    "base": 8453,
    "arbitrum": 42161,
}

NATIVE_SYMBOLS = {
    "ethereum": "ETH",
    "optimism": "ETH",
    "polygon": "MATIC",
    "base": "ETH",
    "arbitrum": "ETH",
}

NATIVE_DECIMALS = 18

# Placeholder used by swap/bridge aggregators for the chain's native asset.
NATIVE_TOKEN_ADDRESS = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Dollar-pegged tokens valued at 1 USD for gas-swap sizing.
STABLE_TOKENS = {
    "USDC",
    "USDT",
    "DAI",
    "USDBC",
    "USDC.E",
    "FRAX",
    "LUSD",
    "SUSD",
}

# Built-in token table: symbol -> chain -> (address, decimals).
TOKENS: dict[str, dict[str, tuple[str, int]]] = {
    "USDC": {
        "ethereum": ("0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48", 6),
        "base": ("0x833589fcd6edb6e08f4c7c32d4f71b54bda02913", 6),
        "arbitrum": ("0xaf88d065e77c8cc2239327c5edb3a432268e5831", 6),
        "optimism": ("0x0b2c639c533813f4aa9d7837caf62653d097ff85", 6),
        "polygon": ("0x3c499c542cef5e3811e1192ce70d8cc03d5c3359", 6),
    },
    "USDT": {
        "ethereum": ("0xdac17f958d2ee523a2206206994597c13d831ec7", 6),
        "arbitrum": ("0xfd086bc7cd5c481dcc9c85ebe478a1c0b69fcbb9", 6),
        "optimism": ("0x94b008aa00579c1307b0ef2c499ad98a8ce58e58", 6),
        "polygon": ("0xc2132d05d31c914a87c6611c10748aeb04b58e8f", 6),
    },
    "DAI": {
        "ethereum": ("0x6b175474e89094c44da98b954eedeac495271d0f", 18),
        "base": ("0x50c5725949a6f0c72e6c4a641f24049a917db0cb", 18),
        "arbitrum": ("0xda10009cbd5d07dd0cecc66161fc93d7c9000da1", 18),
        "optimism": ("0xda10009cbd5d07dd0cecc66161fc93d7c9000da1", 18),
        "polygon": ("0x8f3cf7ad23cd3cadbd9735aff958023239c6a063", 18),
    },
    "WETH": {
        "ethereum": ("0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2", 18),
        "base": ("0x4200000000000000000000000000000000000006", 18),
        "arbitrum": ("0x82af49447d8a07e3bd95bd0d56f35241523fbab1", 18),
        "optimism": ("0x4200000000000000000000000000000000000006", 18),
        "polygon": ("0x7ceb23fd6bc0add59e62ac25578270cff1b9f619", 18),
    },
    "USDBC": {
        "base": ("0xd9aaec86b65d86f6a7b5b1b0c42ffa531710b6ca", 6),
    },
    "USDC.E": {
        "arbitrum": ("0xff970a61a04b1ca14834a43f5de4533ebddb5cc8", 6),
    },
}

# Gas units budgeted per operation kind before the safety buffer.
GAS_ESTIMATES = {
    "approve": 65_000,
    "deposit": 200_000,
    "withdraw": 180_000,
    "bridge": 200_000,
    "swap": 200_000,
}

# Tokens scanned, in order, when native gas must be topped up by a swap.
GAS_SWAP_PRIORITY = ("USDC", "USDT", "DAI", "WETH")

DEFAULT_CHAINS = ("base", "arbitrum")
DEFAULT_PROTOCOLS = ("aave-v3", "compound-v3", "morpho-v1")
DEFAULT_MIN_LIQUIDITY_USD = 1_000_000.0

__all__ = [
    "CHAIN_IDS",
    "DEFAULT_CHAINS",
    "DEFAULT_MIN_LIQUIDITY_USD",
    "DEFAULT_PROTOCOLS",
    "GAS_ESTIMATES",
    "GAS_SWAP_PRIORITY",
    "NATIVE_DECIMALS",
    "NATIVE_SYMBOLS",
    "NATIVE_TOKEN_ADDRESS",
    "STABLE_TOKENS",
    "TOKENS",
    "ZERO_ADDRESS",
]
