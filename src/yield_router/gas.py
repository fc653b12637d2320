"""Native-gas sufficiency checks with automatic swap-for-gas.

Before every on-chain submission the wallet's native balance is compared with
``units x gas price x (100 + buffer) / 100``. When it falls short, the first
token in :data:`~yield_router.core.constants.GAS_SWAP_PRIORITY` whose USD
value covers the shortfall plus slippage is swapped to the native asset.

The swap is submitted but not awaited: the outcome reports
``auto_swap_executed`` with ``ready=False``, and the next check for the same
wallet and chain looks up the swap's receipt instead of swapping again.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal

from .amounts import from_raw_units, to_decimal
from .calldata import encode_approve
from .core.constants import (
    GAS_ESTIMATES,
    GAS_SWAP_PRIORITY,
    NATIVE_DECIMALS,
    NATIVE_SYMBOLS,
    NATIVE_TOKEN_ADDRESS,
    STABLE_TOKENS,
)
from .core.models import TransactionRequest, WalletContext, require_wallet
from .core.tokens import resolve_token
from .errors import UpstreamError

logger = logging.getLogger(__name__)

GAS_BUFFER_PCT = 30
SLIPPAGE_BUFFER_PCT = 10


@dataclass(frozen=True)
class SwapCandidate:
    symbol: str
    address: str
    decimals: int
    balance_raw: int
    price_usd: float

    @property
    def balance_usd(self) -> float:
        return float(to_decimal(self.balance_raw, self.decimals)) * self.price_usd


@dataclass(frozen=True)
class GasCheckOutcome:
    ready: bool
    message: str
    auto_swap_executed: bool = False
    swap_tx_hash: str | None = None
    required_wei: int = 0
    balance_wei: int = 0
    candidates: tuple[str, ...] = ()

    @property
    def shortfall_wei(self) -> int:
        return max(self.required_wei - self.balance_wei, 0)


class GasSufficiencyEngine:
    def __init__(
        self,
        rpc,
        prices,
        aggregator,
        sender,
        *,
        buffer_pct: int = GAS_BUFFER_PCT,
        slippage_pct: int = SLIPPAGE_BUFFER_PCT,
        gas_estimates: dict[str, int] | None = None,
        fallback_cost_usd: float = 0.0,
    ) -> None:
        self.rpc = rpc
        self.prices = prices
        self.aggregator = aggregator
        self.sender = sender
        self.buffer_pct = buffer_pct
        self.slippage_pct = slippage_pct
        self.gas_estimates = dict(GAS_ESTIMATES)
        self.gas_estimates.update(gas_estimates or {})
        self.fallback_cost_usd = fallback_cost_usd
        # (wallet key, chain) -> hash of an auto-swap not yet seen mined
        self._pending_swaps: dict[tuple[str, str], str] = {}

    def gas_units(self, operation: str) -> int:
        try:
            return self.gas_estimates[operation]
        except KeyError:
            raise ValueError(f"Unknown operation kind {operation!r}") from None

    def required_wei(self, operation: str, gas_price_wei: int) -> int:
        return self.gas_units(operation) * gas_price_wei * (100 + self.buffer_pct) // 100

    def pending_swap(self, wallet: WalletContext, chain: str) -> str | None:
        return self._pending_swaps.get((wallet.key, chain.lower()))

    async def estimate_cost_usd(self, chain: str, operation: str) -> float:
        """Advisory USD cost of ``operation`` including the buffer."""

        try:
            gas_price = await self.rpc.gas_price(chain)
        except UpstreamError as exc:
            logger.warning("Gas price lookup on %s failed: %s", chain, exc)
            return self.fallback_cost_usd
        native_usd = await self.prices.native_price_usd(chain)
        required = self.required_wei(operation, gas_price)
        return float(to_decimal(required, NATIVE_DECIMALS)) * native_usd

    async def _check_pending(self, wallet: WalletContext, chain: str) -> GasCheckOutcome | None:
        key = (wallet.key, chain)
        tx_hash = self._pending_swaps.get(key)
        if tx_hash is None:
            return None
        receipt = await self.rpc.get_transaction_receipt(chain, tx_hash)
        if receipt is None:
            return GasCheckOutcome(
                ready=False,
                message=f"Gas swap {tx_hash} on {chain} is still pending. Retry once it confirms.",
                swap_tx_hash=tx_hash,
            )
        del self._pending_swaps[key]
        if receipt.status != "success":
            logger.warning("Gas swap %s on %s reverted", tx_hash, chain)
        return None

    async def _swap_candidates(
        self, wallet: WalletContext, chain: str, native_usd: float
    ) -> list[SwapCandidate]:
        tokens = [t for t in (resolve_token(s, chain) for s in GAS_SWAP_PRIORITY) if t]
        balances = await asyncio.gather(
            *(self.rpc.erc20_balance(chain, t.address, wallet.address) for t in tokens),
            return_exceptions=True,
        )
        eth_usd = native_usd
        if NATIVE_SYMBOLS.get(chain) != "ETH":
            eth_usd = await self.prices.native_price_usd("ethereum")
        candidates: list[SwapCandidate] = []
        for token, balance in zip(tokens, balances):
            if isinstance(balance, BaseException):
                logger.warning("Balance of %s on %s unavailable: %s", token.symbol, chain, balance)
                continue
            if balance <= 0:
                continue
            price = 1.0 if token.symbol in STABLE_TOKENS else eth_usd
            candidates.append(
                SwapCandidate(
                    symbol=token.symbol,
                    address=token.address,
                    decimals=token.decimals,
                    balance_raw=balance,
                    price_usd=price,
                )
            )
        return candidates

    async def _execute_swap(
        self, wallet: WalletContext, chain: str, candidate: SwapCandidate, from_amount_raw: int
    ) -> str:
        quote = await self.aggregator.quote_swap(
            chain, candidate.address, NATIVE_TOKEN_ADDRESS, from_amount_raw, wallet.address
        )
        if quote.transaction_request is None:
            raise UpstreamError(f"Swap quote for {candidate.symbol} has no transaction")
        if quote.approval_address:
            allowance = await self.rpc.erc20_allowance(
                chain, candidate.address, wallet.address, quote.approval_address
            )
            if allowance < from_amount_raw:
                await self.sender.send(
                    wallet,
                    TransactionRequest(
                        chain=chain,
                        to=candidate.address,
                        data=encode_approve(quote.approval_address, from_amount_raw),
                    ),
                )
        return await self.sender.send(wallet, quote.transaction_request)

    async def ensure_gas(self, wallet: WalletContext, chain: str, operation: str) -> GasCheckOutcome:
        wallet = require_wallet(wallet)
        chain = chain.lower()
        pending = await self._check_pending(wallet, chain)
        if pending is not None:
            return pending

        balance, gas_price = await asyncio.gather(
            self.rpc.get_balance(chain, wallet.address), self.rpc.gas_price(chain)
        )
        required = self.required_wei(operation, gas_price)
        symbol = NATIVE_SYMBOLS.get(chain, "ETH")
        if balance >= required:
            return GasCheckOutcome(
                ready=True, message="Gas available", required_wei=required, balance_wei=balance
            )

        shortfall = required - balance
        native_usd = await self.prices.native_price_usd(chain)
        shortfall_native = to_decimal(shortfall, NATIVE_DECIMALS)
        needed_usd = shortfall_native * Decimal(str(native_usd)) * (100 + self.slippage_pct) / 100
        logger.info(
            "Insufficient gas on %s: need %s %s, have %s",
            chain,
            from_raw_units(required, NATIVE_DECIMALS),
            symbol,
            from_raw_units(balance, NATIVE_DECIMALS),
        )

        candidates = await self._swap_candidates(wallet, chain, native_usd)
        names = tuple(c.symbol for c in candidates)
        for candidate in candidates:
            if Decimal(str(candidate.balance_usd)) < needed_usd:
                continue
            scaled = needed_usd / Decimal(str(candidate.price_usd)) * (Decimal(10) ** candidate.decimals)
            from_amount = min(int(scaled.to_integral_value(rounding=ROUND_CEILING)), candidate.balance_raw)
            try:
                tx_hash = await self._execute_swap(wallet, chain, candidate, from_amount)
            except UpstreamError as exc:
                logger.warning("Auto-swap of %s for gas on %s failed: %s", candidate.symbol, chain, exc)
                return GasCheckOutcome(
                    ready=False,
                    message=f"Auto-swap of {candidate.symbol} for gas failed: {exc}",
                    required_wei=required,
                    balance_wei=balance,
                    candidates=names,
                )
            self._pending_swaps[(wallet.key, chain)] = tx_hash
            amount = from_raw_units(from_amount, candidate.decimals)
            return GasCheckOutcome(
                ready=False,
                message=(
                    f"Swapped {amount} {candidate.symbol} for {symbol} gas (tx {tx_hash}). "
                    "Retry once it confirms."
                ),
                auto_swap_executed=True,
                swap_tx_hash=tx_hash,
                required_wei=required,
                balance_wei=balance,
                candidates=names,
            )

        available = ", ".join(names) or "none"
        return GasCheckOutcome(
            ready=False,
            message=(
                f"Insufficient {symbol} for gas on {chain}: short "
                f"{from_raw_units(shortfall, NATIVE_DECIMALS)} {symbol} "
                f"(~${float(needed_usd):.2f}). Tokens available to swap: {available}."
            ),
            required_wei=required,
            balance_wei=balance,
            candidates=names,
        )


__all__ = [
    "GAS_BUFFER_PCT",
    "GasCheckOutcome",
    "GasSufficiencyEngine",
    "SLIPPAGE_BUFFER_PCT",
    "SwapCandidate",
]
