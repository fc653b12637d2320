"""Build deposit and withdraw plans from ranked opportunities.

Allowance and position reads are authoritative and propagate their errors;
an opportunity the adapters or the token table cannot serve is skipped with a
log line, and "nothing to do" is reported as ``None``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from .amounts import from_raw_units, is_withdraw_all, to_decimal, to_raw_units
from .calldata import decode_uint
from .core.constants import DEFAULT_CHAINS, DEFAULT_PROTOCOLS, ZERO_ADDRESS
from .core.models import (
    SupplyParams,
    WalletContext,
    WithdrawParams,
    YieldOpportunity,
    YieldPlan,
    require_wallet,
)
from .core.tokens import resolve_token
from .errors import AdapterUnavailableError
from .protocols import get_protocol_adapter

logger = logging.getLogger(__name__)

# Receipt balances below this many asset units count as "no position".
DUST_THRESHOLD = Decimal("0.0001")

POSITION_ASSETS = ("USDC", "USDT", "DAI", "WETH")


@dataclass(frozen=True)
class Position:
    protocol_id: str
    chain: str
    asset_symbol: str
    receipt_token: str
    balance_raw: int
    decimals: int

    @property
    def balance(self) -> Decimal:
        return to_decimal(self.balance_raw, self.decimals)


class YieldPlanBuilder:
    def __init__(self, discovery, rpc, gas=None) -> None:
        self.discovery = discovery
        self.rpc = rpc
        self.gas = gas

    async def _estimate_gas_usd(self, chain: str, operation: str) -> float:
        if self.gas is None:
            return 0.0
        return await self.gas.estimate_cost_usd(chain, operation)

    async def plan_for_opportunity(
        self, wallet: WalletContext, opp: YieldOpportunity, asset: str, human_amount: str
    ) -> YieldPlan | None:
        adapter = get_protocol_adapter(opp.protocol_id)
        if adapter is None:
            logger.info("Skipping %s on %s: unsupported protocol", opp.protocol_id, opp.chain)
            return None
        if not adapter.supports(opp.chain):
            logger.info("Skipping %s: not available on %s", adapter.display_name, opp.chain)
            return None
        token = resolve_token(asset, opp.chain)
        if token is None:
            logger.info("Skipping %s on %s: token %s unknown", adapter.display_name, opp.chain, asset)
            return None
        try:
            encoded = adapter.encode_supply(
                SupplyParams(
                    asset_address=token.address,
                    amount=human_amount,
                    decimals=token.decimals,
                    on_behalf_of=wallet.address,
                    chain=opp.chain,
                    pool_symbol=opp.symbol,
                )
            )
        except AdapterUnavailableError as exc:
            logger.info("Skipping %s on %s: %s", adapter.display_name, opp.chain, exc)
            return None

        # approval is checked against the contract that will pull the tokens
        allowance = await self.rpc.erc20_allowance(
            opp.chain, token.address, wallet.address, encoded.to
        )
        needs_approval = allowance < encoded.raw_amount
        return YieldPlan(
            action="deposit",
            protocol_id=adapter.protocol_id,
            chain=opp.chain,
            asset_symbol=token.symbol,
            asset_address=token.address,
            decimals=token.decimals,
            human_amount=human_amount.strip(),
            raw_amount=encoded.raw_amount,
            apy=opp.total_apy,
            liquidity_usd=opp.liquidity_usd,
            target_contract=encoded.to,
            calldata=encoded.data,
            needs_approval=needs_approval,
            approval_spender=encoded.to if needs_approval else None,
            estimated_gas_usd=await self._estimate_gas_usd(opp.chain, "deposit"),
        )

    async def build_deposit_plan(
        self,
        wallet: WalletContext,
        asset: str,
        human_amount: str,
        candidate_chains: Iterable[str] | None = None,
    ) -> YieldPlan | None:
        """Plan a deposit into the best executable opportunity, or ``None``."""

        wallet = require_wallet(wallet)
        chains = list(candidate_chains) if candidate_chains is not None else list(DEFAULT_CHAINS)
        opportunities = await self.discovery.list_opportunities(asset, chains=chains)
        if not opportunities:
            logger.info("No %s opportunities on %s", asset, ", ".join(chains))
            return None
        for opp in opportunities:
            plan = await self.plan_for_opportunity(wallet, opp, asset, human_amount)
            if plan is not None:
                return plan
        return None

    async def read_position(
        self, wallet: WalletContext, asset: str, chain: str, protocol_id: str
    ) -> Position | None:
        """Current deposited balance, or ``None`` when the protocol cannot hold ``asset`` on ``chain``."""

        adapter = get_protocol_adapter(protocol_id)
        if adapter is None or not adapter.supports(chain):
            return None
        token = resolve_token(asset, chain)
        if token is None:
            return None
        receipt = adapter.receipt_token(token.symbol, chain)
        if not receipt or receipt.lower() == ZERO_ADDRESS:
            return None
        to, data = adapter.position_call(receipt, wallet.address)
        balance_raw = decode_uint(await self.rpc.eth_call(chain.lower(), to, data))
        return Position(
            protocol_id=adapter.protocol_id,
            chain=chain.lower(),
            asset_symbol=token.symbol,
            receipt_token=receipt,
            balance_raw=balance_raw,
            decimals=token.decimals,
        )

    async def _current_apy(self, asset: str, chain: str, protocol_id: str) -> tuple[float, float]:
        ranked = await self.discovery.list_opportunities(
            asset, chains=[chain], protocol_ids=[protocol_id], min_liquidity_usd=0.0
        )
        if not ranked:
            return 0.0, 0.0
        return ranked[0].total_apy, ranked[0].liquidity_usd

    async def build_withdraw_plan(
        self,
        wallet: WalletContext,
        asset: str,
        human_amount: str,
        chain: str,
        protocol_id: str = "aave-v3",
    ) -> YieldPlan | None:
        """Plan a withdrawal; ``"all"``/``"max"`` exits the whole position.

        Returns ``None`` when there is no position above dust or the request
        exceeds the deposited balance. Requests are never clamped.
        """

        wallet = require_wallet(wallet)
        adapter = get_protocol_adapter(protocol_id)
        if adapter is None:
            logger.info("Unsupported protocol %s", protocol_id)
            return None
        token = resolve_token(asset, chain)
        position = await self.read_position(wallet, asset, chain, protocol_id)
        if token is None or position is None:
            logger.info("No %s receipt token for %s on %s", adapter.display_name, asset, chain)
            return None
        if position.balance < DUST_THRESHOLD:
            logger.info("No %s deposited in %s on %s", asset, adapter.display_name, chain)
            return None

        withdraw_all = is_withdraw_all(human_amount)
        if withdraw_all:
            display_amount = from_raw_units(position.balance_raw, position.decimals)
        else:
            requested = to_raw_units(human_amount, position.decimals)
            if requested > position.balance_raw:
                logger.info(
                    "Cannot withdraw %s %s, only %s deposited",
                    human_amount.strip(),
                    asset,
                    from_raw_units(position.balance_raw, position.decimals),
                )
                return None
            display_amount = human_amount.strip()

        try:
            encoded = adapter.encode_withdraw(
                WithdrawParams(
                    asset_address=token.address,
                    amount="max" if withdraw_all else display_amount,
                    decimals=token.decimals,
                    to=wallet.address,
                    chain=chain,
                    owner=wallet.address,
                )
            )
        except AdapterUnavailableError as exc:
            logger.info("Cannot withdraw from %s on %s: %s", adapter.display_name, chain, exc)
            return None

        apy, liquidity = await self._current_apy(asset, chain, adapter.protocol_id)
        return YieldPlan(
            action="withdraw",
            protocol_id=adapter.protocol_id,
            chain=chain.lower(),
            asset_symbol=token.symbol,
            asset_address=token.address,
            decimals=token.decimals,
            human_amount=display_amount,
            raw_amount=encoded.raw_amount,
            apy=apy,
            liquidity_usd=liquidity,
            target_contract=encoded.to,
            calldata=encoded.data,
            needs_approval=False,
            estimated_gas_usd=await self._estimate_gas_usd(chain, "withdraw"),
        )

    async def list_positions(
        self,
        wallet: WalletContext,
        chains: Iterable[str] | None = None,
        protocol_ids: Iterable[str] | None = None,
        assets: Iterable[str] = POSITION_ASSETS,
    ) -> list[Position]:
        """Receipt balances above dust across chains, protocols and assets.

        Each lookup that fails is logged and treated as "no position".
        """

        wallet = require_wallet(wallet)
        chain_list = tuple(chains) if chains is not None else DEFAULT_CHAINS
        protocol_list = tuple(protocol_ids) if protocol_ids is not None else DEFAULT_PROTOCOLS
        asset_list = tuple(assets)
        combos = [
            (asset, chain, protocol)
            for protocol in protocol_list
            for chain in chain_list
            for asset in asset_list
        ]
        results = await asyncio.gather(
            *(self.read_position(wallet, a, c, p) for a, c, p in combos),
            return_exceptions=True,
        )
        positions: list[Position] = []
        for (asset, chain, protocol), result in zip(combos, results):
            if isinstance(result, BaseException):
                logger.warning("Position lookup %s/%s/%s failed: %s", protocol, chain, asset, result)
                continue
            if result is not None and result.balance >= DUST_THRESHOLD:
                positions.append(result)
        return positions


__all__ = ["DUST_THRESHOLD", "POSITION_ASSETS", "Position", "YieldPlanBuilder"]
