"""HTTP clients for the chain, custody, aggregator and price services."""

from __future__ import annotations

from .aggregator import LiFiClient
from .custody import CustodyClient, TransactionSender
from .http import HttpClient
from .prices import CoinGeckoPriceFeed
from .rpc import JsonRpcClient

__all__ = [
    "CoinGeckoPriceFeed",
    "CustodyClient",
    "HttpClient",
    "JsonRpcClient",
    "LiFiClient",
    "TransactionSender",
]
