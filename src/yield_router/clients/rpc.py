"""Minimal JSON-RPC 2.0 client for EVM chains.

Reads here are authoritative: transport failures raise
:class:`~yield_router.errors.UpstreamError` and node-side errors raise
:class:`~yield_router.errors.RpcError` carrying the node's ``code`` and
``data`` (the revert payload for a failed ``eth_call``).
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Mapping
from typing import Any

from ..calldata import decode_uint, encode_allowance, encode_balance_of
from ..core.models import TransactionRequest, TxReceipt
from ..errors import RpcError, UpstreamError
from ..polling import poll_until
from .http import HttpClient

logger = logging.getLogger(__name__)

DEFAULT_RPC_URLS = {
    "ethereum": "https://eth.llamarpc.com",
    "base": "https://mainnet.base.org",
    "arbitrum": "https://arb1.arbitrum.io/rpc",
    "optimism": "https://mainnet.optimism.io",
    "polygon": "https://polygon-rpc.com",
}

RECEIPT_POLL_INTERVAL_S = 3.0
RECEIPT_TIMEOUT_S = 120.0


def _quantity(value: Any) -> int:
    if value is None:
        raise UpstreamError("RPC returned no result")
    return int(value, 16) if isinstance(value, str) else int(value)


def parse_receipt(raw: Mapping[str, Any] | None) -> TxReceipt | None:
    if not raw:
        return None
    status = "success" if raw.get("status") == "0x1" else "reverted"
    block = raw.get("blockNumber")
    gas_used = raw.get("gasUsed")
    return TxReceipt(
        status=status,
        block_number=int(block, 16) if block else None,
        gas_used=int(gas_used, 16) if gas_used else None,
    )


class JsonRpcClient(HttpClient):
    """Per-chain JSON-RPC endpoints behind one session."""

    def __init__(
        self,
        rpc_urls: Mapping[str, str] | None = None,
        timeout: float = 30.0,
        retries: int = 3,
    ) -> None:
        super().__init__(timeout=timeout, retries=retries)
        self.rpc_urls = dict(DEFAULT_RPC_URLS)
        for chain, url in (rpc_urls or {}).items():
            self.rpc_urls[chain.lower()] = url
        self._ids = itertools.count(1)

    def url_for(self, chain: str) -> str:
        try:
            return self.rpc_urls[chain.lower()]
        except KeyError:
            raise UpstreamError(f"No RPC endpoint configured for {chain}") from None

    async def call(self, chain: str, method: str, params: list[Any], *, retry: bool = True) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        body = await self.post_json(self.url_for(chain), payload, retry=retry)
        if not isinstance(body, dict):
            raise UpstreamError(f"{method} on {chain} returned a non-object response")
        error = body.get("error")
        if error:
            data = error.get("data")
            raise RpcError(
                str(error.get("message", "RPC error")),
                code=error.get("code"),
                data=data if isinstance(data, str) else None,
            )
        return body.get("result")

    async def eth_call(self, chain: str, to: str, data: str, from_address: str | None = None) -> str:
        call: dict[str, Any] = {"to": to, "data": data}
        if from_address:
            call["from"] = from_address
        result = await self.call(chain, "eth_call", [call, "latest"])
        return result or "0x"

    async def simulate(self, tx: TransactionRequest, from_address: str) -> str:
        call: dict[str, Any] = {"from": from_address, "to": tx.to, "data": tx.data}
        if tx.value:
            call["value"] = hex(tx.value)
        result = await self.call(tx.chain, "eth_call", [call, "latest"])
        return result or "0x"

    async def estimate_gas(self, tx: TransactionRequest, from_address: str) -> int:
        call: dict[str, Any] = {"from": from_address, "to": tx.to, "data": tx.data}
        if tx.value:
            call["value"] = hex(tx.value)
        return _quantity(await self.call(tx.chain, "eth_estimateGas", [call]))

    async def gas_price(self, chain: str) -> int:
        return _quantity(await self.call(chain, "eth_gasPrice", []))

    async def get_balance(self, chain: str, address: str) -> int:
        return _quantity(await self.call(chain, "eth_getBalance", [address, "latest"]))

    async def get_transaction_count(self, chain: str, address: str) -> int:
        return _quantity(await self.call(chain, "eth_getTransactionCount", [address, "pending"]))

    async def get_transaction_receipt(self, chain: str, tx_hash: str) -> TxReceipt | None:
        return parse_receipt(await self.call(chain, "eth_getTransactionReceipt", [tx_hash]))

    async def send_raw_transaction(self, chain: str, signed_tx: str) -> str:
        tx_hash = await self.call(chain, "eth_sendRawTransaction", [signed_tx], retry=False)
        if not tx_hash:
            raise UpstreamError(f"eth_sendRawTransaction on {chain} returned no hash")
        return str(tx_hash)

    async def erc20_balance(self, chain: str, token: str, owner: str) -> int:
        return decode_uint(await self.eth_call(chain, token, encode_balance_of(owner)))

    async def erc20_allowance(self, chain: str, token: str, owner: str, spender: str) -> int:
        return decode_uint(await self.eth_call(chain, token, encode_allowance(owner, spender)))

    async def wait_for_transaction(
        self,
        chain: str,
        tx_hash: str,
        *,
        interval: float = RECEIPT_POLL_INTERVAL_S,
        timeout: float = RECEIPT_TIMEOUT_S,
    ) -> TxReceipt:
        receipt, done = await poll_until(
            lambda: self.get_transaction_receipt(chain, tx_hash),
            lambda r: r is not None,
            interval=interval,
            timeout=timeout,
            retry_on=(UpstreamError,),
        )
        if not done or receipt is None:
            return TxReceipt(status="pending")
        return receipt


__all__ = [
    "DEFAULT_RPC_URLS",
    "JsonRpcClient",
    "RECEIPT_POLL_INTERVAL_S",
    "RECEIPT_TIMEOUT_S",
    "parse_receipt",
]
