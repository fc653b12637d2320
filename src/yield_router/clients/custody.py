"""Remote signing through the custodial wallet service, and broadcast over RPC."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

from web3 import Web3

from ..core.constants import CHAIN_IDS
from ..core.models import TransactionRequest, WalletContext, require_wallet
from ..errors import HttpStatusError, RpcError, UpstreamError
from .http import HttpClient
from .rpc import JsonRpcClient

logger = logging.getLogger(__name__)

# Headroom added on top of eth_estimateGas when the request carries no limit.
GAS_LIMIT_HEADROOM_PCT = 20
HEX_PAYLOAD = re.compile(r"0x(?:[0-9a-fA-F]{2})+")


def transaction_hash(signed_tx: str) -> str:
    """Keccak-256 of the raw signed payload, the hash nodes report for it."""
    return "0x" + bytes(Web3.keccak(hexstr=signed_tx)).hex()


class CustodyClient(HttpClient):
    """``POST {base_url}/wallets/{wallet_id}/sign-transaction``.

    The service receives the unsigned transaction fields and answers with
    ``{"signedTransaction": "0x..."}``; keys never leave it.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        retries: int = 3,
    ) -> None:
        headers = {"X-API-Key": api_key} if api_key else None
        super().__init__(timeout=timeout, retries=retries, headers=headers)
        self.base_url = base_url.rstrip("/")

    async def sign_transaction(self, wallet: WalletContext, unsigned: dict[str, Any]) -> str:
        wallet = require_wallet(wallet)
        url = f"{self.base_url}/wallets/{wallet.wallet_id}/sign-transaction"
        body = await self.post_json(url, {"transaction": unsigned}, retry=False)
        signed = body.get("signedTransaction") if isinstance(body, dict) else None
        if not signed:
            raise UpstreamError(f"Custody service returned no signed transaction for {wallet.address}")
        signed = str(signed)
        if not HEX_PAYLOAD.fullmatch(signed):
            raise UpstreamError(f"Custody service returned a malformed transaction for {wallet.address}")
        return signed


class TransactionSender:
    """Fill in nonce, gas price and limit, sign remotely, broadcast."""

    def __init__(self, rpc: JsonRpcClient, custody: CustodyClient) -> None:
        self.rpc = rpc
        self.custody = custody

    async def _gas_limit(self, tx: TransactionRequest, sender: str) -> int:
        if tx.gas_limit:
            return tx.gas_limit
        estimate = await self.rpc.estimate_gas(tx, sender)
        return estimate * (100 + GAS_LIMIT_HEADROOM_PCT) // 100

    async def send(self, wallet: WalletContext, tx: TransactionRequest) -> str:
        wallet = require_wallet(wallet)
        chain = tx.chain.lower()
        if chain not in CHAIN_IDS:
            raise ValueError(f"Unsupported chain {tx.chain!r}")
        nonce, gas_price, gas_limit = await asyncio.gather(
            self.rpc.get_transaction_count(chain, wallet.address),
            self.rpc.gas_price(chain),
            self._gas_limit(tx, wallet.address),
        )
        unsigned = {
            "chainId": CHAIN_IDS[chain],
            "from": wallet.address,
            "to": tx.to,
            "data": tx.data,
            "value": hex(tx.value),
            "nonce": hex(nonce),
            "gas": hex(gas_limit),
            "gasPrice": hex(gas_price),
        }
        signed = await self.custody.sign_transaction(wallet, unsigned)
        expected = transaction_hash(signed)
        try:
            tx_hash = await self.rpc.send_raw_transaction(chain, signed)
        except RpcError as exc:
            if "already known" not in str(exc).lower():
                raise
            logger.info("Node already knows transaction %s on %s", expected, chain)
            tx_hash = expected
        except HttpStatusError:
            raise
        except UpstreamError as exc:
            # outcome unknown; the node may have accepted it
            logger.warning(
                "Broadcast of %s on %s has no answer (%s); treating it as sent", expected, chain, exc
            )
            tx_hash = expected
        logger.info("Submitted transaction %s to %s on %s", tx_hash, tx.to, chain)
        return tx_hash


__all__ = ["CustodyClient", "GAS_LIMIT_HEADROOM_PCT", "TransactionSender", "transaction_hash"]
