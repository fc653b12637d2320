"""Li.Fi swap and bridge aggregator client.

Quotes carry a ready-to-sign ``transactionRequest`` plus the spender that must
be approved for ERC-20 inputs. Each quote is executed at most once.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..core.constants import CHAIN_IDS
from ..core.models import (
    BridgeQuote,
    BridgeStatus,
    BridgeStatusState,
    QuoteToken,
    SwapQuote,
    TransactionRequest,
)
from ..errors import HttpStatusError, UpstreamError
from .http import HttpClient

logger = logging.getLogger(__name__)

LIFI_API = "https://li.quest/v1"
DEFAULT_SLIPPAGE_PCT = 0.5


def chain_id(chain: str) -> int:
    try:
        return CHAIN_IDS[chain.lower()]
    except KeyError:
        raise ValueError(f"Unsupported chain {chain!r}") from None


def _int(value: Any, default: int = 0) -> int:
    if value in (None, ""):
        return default
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def parse_token(raw: Mapping[str, Any]) -> QuoteToken:
    return QuoteToken(
        address=str(raw.get("address", "")),
        symbol=str(raw.get("symbol", "")),
        decimals=int(raw.get("decimals", 18)),
        price_usd=float(raw.get("priceUSD") or 0.0),
    )


def parse_transaction_request(raw: Mapping[str, Any] | None, chain: str) -> TransactionRequest | None:
    if not raw or not raw.get("to"):
        return None
    gas_limit = raw.get("gasLimit")
    return TransactionRequest(
        chain=chain,
        to=str(raw["to"]),
        data=str(raw.get("data") or "0x"),
        value=_int(raw.get("value")),
        gas_limit=_int(gas_limit) if gas_limit else None,
    )


def _gas_usd(estimate: Mapping[str, Any]) -> float:
    return sum(float(g.get("amountUSD") or 0.0) for g in estimate.get("gasCosts") or [])


def parse_status(data: Mapping[str, Any]) -> BridgeStatus:
    raw_state = str(data.get("status", "PENDING")).upper()
    if raw_state == "INVALID":
        state = BridgeStatusState.FAILED
    else:
        try:
            state = BridgeStatusState(raw_state)
        except ValueError:
            state = BridgeStatusState.PENDING
    receiving = data.get("receiving") or {}
    return BridgeStatus(
        state=state,
        substatus=data.get("substatus"),
        receiving_tx_hash=receiving.get("txHash"),
        tool=data.get("tool"),
    )


class LiFiClient(HttpClient):
    """HTTP client for https://li.quest/v1 ``/quote`` and ``/status``."""

    def __init__(
        self,
        base_url: str = LIFI_API,
        slippage_pct: float = DEFAULT_SLIPPAGE_PCT,
        timeout: float = 30.0,
        retries: int = 3,
    ) -> None:
        super().__init__(timeout=timeout, retries=retries)
        self.base_url = base_url.rstrip("/")
        self.slippage_pct = slippage_pct

    async def _quote(
        self,
        from_chain: str,
        to_chain: str,
        from_token: str,
        to_token: str,
        from_amount_raw: int,
        from_address: str,
        to_address: str | None = None,
    ) -> dict[str, Any]:
        params = {
            "fromChain": str(chain_id(from_chain)),
            "toChain": str(chain_id(to_chain)),
            "fromToken": from_token,
            "toToken": to_token,
            "fromAmount": str(from_amount_raw),
            "fromAddress": from_address,
            "slippage": str(self.slippage_pct / 100),
        }
        if to_address:
            params["toAddress"] = to_address
        data = await self.get_json(f"{self.base_url}/quote", params=params)
        if not isinstance(data, dict) or "action" not in data or "estimate" not in data:
            raise UpstreamError("Li.Fi quote response is missing action/estimate")
        return data

    async def quote_swap(
        self,
        chain: str,
        from_token: str,
        to_token: str,
        from_amount_raw: int,
        from_address: str,
    ) -> SwapQuote:
        data = await self._quote(chain, chain, from_token, to_token, from_amount_raw, from_address)
        action, estimate = data["action"], data["estimate"]
        return SwapQuote(
            id=str(data.get("id", "")),
            chain=chain.lower(),
            from_token=parse_token(action.get("fromToken", {})),
            to_token=parse_token(action.get("toToken", {})),
            from_amount_raw=_int(action.get("fromAmount"), from_amount_raw),
            to_amount_raw=_int(estimate.get("toAmount")),
            transaction_request=parse_transaction_request(data.get("transactionRequest"), chain.lower()),
            approval_address=estimate.get("approvalAddress"),
            tool=str(data.get("tool", "")),
            estimated_gas_usd=_gas_usd(estimate),
        )

    async def quote_bridge(
        self,
        from_chain: str,
        to_chain: str,
        from_token: str,
        to_token: str,
        from_amount_raw: int,
        from_address: str,
        to_address: str | None = None,
    ) -> BridgeQuote:
        data = await self._quote(
            from_chain, to_chain, from_token, to_token, from_amount_raw, from_address, to_address
        )
        action, estimate = data["action"], data["estimate"]
        return BridgeQuote(
            id=str(data.get("id", "")),
            from_chain=from_chain.lower(),
            to_chain=to_chain.lower(),
            from_token=parse_token(action.get("fromToken", {})),
            to_token=parse_token(action.get("toToken", {})),
            from_amount_raw=_int(action.get("fromAmount"), from_amount_raw),
            to_amount_raw=_int(estimate.get("toAmount")),
            to_amount_min_raw=_int(estimate.get("toAmountMin")),
            transaction_request=parse_transaction_request(
                data.get("transactionRequest"), from_chain.lower()
            ),
            approval_address=estimate.get("approvalAddress"),
            tool=str(data.get("tool", "")),
            estimated_duration_s=int(estimate.get("executionDuration") or 0),
            estimated_gas_usd=_gas_usd(estimate),
        )

    async def bridge_status(self, tx_hash: str, from_chain: str, to_chain: str) -> BridgeStatus:
        params = {
            "txHash": tx_hash,
            "fromChain": str(chain_id(from_chain)),
            "toChain": str(chain_id(to_chain)),
        }
        try:
            data = await self.get_json(f"{self.base_url}/status", params=params)
        except HttpStatusError as exc:
            if exc.status == 404:
                return BridgeStatus(state=BridgeStatusState.NOT_FOUND)
            raise
        if not isinstance(data, dict):
            raise UpstreamError("Li.Fi status response is not an object")
        return parse_status(data)


__all__ = [
    "DEFAULT_SLIPPAGE_PCT",
    "LIFI_API",
    "LiFiClient",
    "chain_id",
    "parse_status",
    "parse_token",
    "parse_transaction_request",
]
