"""End-to-end earn flow: locate funds, bridge if needed, approve, deposit.

Each step re-reads chain state before acting, so a caller that stops midway
(approval not mined, bridge timed out) resumes by calling again with the same
arguments.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal

from .amounts import from_raw_units, to_decimal, to_raw_units
from .bridge import SUBMITTED_STATES, BridgeIntent, BridgeState
from .core.constants import DEFAULT_CHAINS
from .core.models import WalletContext, YieldPlan, require_wallet
from .core.tokens import resolve_token
from .execution import ExecutionResult, ExecutionStatus

logger = logging.getLogger(__name__)

MAX_TOKEN_DECIMALS = 18
LEFT_SOURCE = SUBMITTED_STATES | {BridgeState.ARRIVED}


@dataclass(frozen=True)
class DepositPreparation:
    plan: YieldPlan | None
    balances: dict[str, Decimal] = field(default_factory=dict)
    funded_chain: str | None = None
    bridge_intent: BridgeIntent | None = None
    message: str = ""

    @property
    def steps(self) -> list[str]:
        if self.plan is None or self.funded_chain is None:
            return []
        steps = ["bridge"] if self.bridge_intent is not None else []
        if self.plan.needs_approval:
            steps.append("approve")
        steps.append("deposit")
        return steps


@dataclass(frozen=True)
class WorkflowOutcome:
    steps_completed: tuple[str, ...]
    next_action: str | None
    plan: YieldPlan | None = None
    bridge_intent: BridgeIntent | None = None
    result: ExecutionResult | None = None

    @property
    def done(self) -> bool:
        return self.next_action is None


class EarnWorkflow:
    def __init__(self, planner, executor, bridge, rpc) -> None:
        self.planner = planner
        self.executor = executor
        self.bridge = bridge
        self.rpc = rpc

    async def _balance(self, wallet: WalletContext, asset: str, chain: str) -> Decimal:
        token = resolve_token(asset, chain)
        if token is None:
            return Decimal(0)
        raw = await self.rpc.erc20_balance(chain, token.address, wallet.address)
        return to_decimal(raw, token.decimals)

    async def balances(
        self, wallet: WalletContext, asset: str, chains: Iterable[str]
    ) -> dict[str, Decimal]:
        """Wallet balance of ``asset`` per chain; a failed lookup counts as zero."""

        chains = [c.lower() for c in chains]
        results = await asyncio.gather(
            *(self._balance(wallet, asset, chain) for chain in chains), return_exceptions=True
        )
        balances: dict[str, Decimal] = {}
        for chain, result in zip(chains, results):
            if isinstance(result, BaseException):
                logger.warning("Balance lookup for %s on %s failed: %s", asset, chain, result)
                balances[chain] = Decimal(0)
            else:
                balances[chain] = result
        return balances

    async def prepare_deposit(
        self,
        wallet: WalletContext,
        asset: str,
        human_amount: str,
        chains: Iterable[str] | None = None,
    ) -> DepositPreparation:
        wallet = require_wallet(wallet)
        chains = [c.lower() for c in (chains if chains is not None else DEFAULT_CHAINS)]
        balances, plan = await asyncio.gather(
            self.balances(wallet, asset, chains),
            self.planner.build_deposit_plan(wallet, asset, human_amount, chains),
        )
        if plan is None:
            return DepositPreparation(
                plan=None, balances=balances, message=f"No executable {asset} opportunity"
            )

        wanted = to_decimal(to_raw_units(human_amount, MAX_TOKEN_DECIMALS), MAX_TOKEN_DECIMALS)
        if balances.get(plan.chain, Decimal(0)) >= wanted:
            return DepositPreparation(plan=plan, balances=balances, funded_chain=plan.chain)

        active = self._inflight_intent(wallet, plan)
        if active is not None:
            return DepositPreparation(
                plan=plan,
                balances=balances,
                funded_chain=active.from_chain,
                bridge_intent=active,
                message=f"Resuming bridge {active.key} ({active.state.value})",
            )

        funded = [c for c in chains if c != plan.chain and balances.get(c, Decimal(0)) >= wanted]
        if not funded:
            return DepositPreparation(
                plan=plan,
                balances=balances,
                message=f"No chain holds {human_amount} {asset}",
            )
        source = max(funded, key=lambda c: balances[c])
        intent = self.bridge.open_intent(wallet, source, plan.chain, asset, human_amount)
        return DepositPreparation(
            plan=plan,
            balances=balances,
            funded_chain=source,
            bridge_intent=intent,
            message=f"Bridge {human_amount} {asset} from {source} to {plan.chain} first",
        )

    def _inflight_intent(self, wallet: WalletContext, plan: YieldPlan) -> BridgeIntent | None:
        """An unsettled transfer into the plan's chain whose funds already left the source."""

        for intent in reversed(self.bridge.store.list(wallet.key)):
            if (
                intent.state in LEFT_SOURCE
                and not intent.settled
                and intent.to_chain == plan.chain
                and intent.asset_symbol == plan.asset_symbol
            ):
                return intent
        return None

    async def _replan_for_arrival(
        self, wallet: WalletContext, plan: YieldPlan, intent: BridgeIntent
    ) -> YieldPlan | None:
        # bridge fees can leave less than was sent
        token = resolve_token(plan.asset_symbol, plan.chain)
        raw = await self.rpc.erc20_balance(plan.chain, plan.asset_address, wallet.address)
        amount = plan.human_amount
        if raw < plan.raw_amount:
            amount = from_raw_units(raw, token.decimals if token else plan.decimals)
            logger.info(
                "Bridge %s delivered %s %s; depositing that instead of %s",
                intent.key,
                amount,
                plan.asset_symbol,
                plan.human_amount,
            )
        return await self.planner.build_deposit_plan(wallet, plan.asset_symbol, amount, [plan.chain])

    async def run_deposit(
        self,
        wallet: WalletContext,
        asset: str,
        human_amount: str,
        chains: Iterable[str] | None = None,
        *,
        bridge_timeout: float | None = None,
    ) -> WorkflowOutcome:
        """Bridge, approve and deposit as far as the chain state allows."""

        wallet = require_wallet(wallet)
        prep = await self.prepare_deposit(wallet, asset, human_amount, chains)
        plan, intent = prep.plan, prep.bridge_intent
        if plan is None:
            return WorkflowOutcome((), next_action=prep.message)
        if prep.funded_chain is None:
            return WorkflowOutcome((), next_action=f"Fund the wallet: {prep.message}", plan=plan)

        steps: list[str] = []
        if intent is not None:
            intent = await self.bridge.run(wallet, intent, timeout=bridge_timeout)
            if intent.state != BridgeState.ARRIVED:
                if intent.state == BridgeState.TIMED_OUT:
                    action = "Bridge still in flight; run again with the same parameters to resume"
                else:
                    action = intent.message or f"Bridge is {intent.state.value}"
                return WorkflowOutcome((), next_action=action, plan=plan, bridge_intent=intent)
            steps.append("bridge")
            plan = await self._replan_for_arrival(wallet, plan, intent)
            if plan is None:
                return WorkflowOutcome(
                    tuple(steps),
                    next_action=f"No executable {asset} opportunity after bridging",
                    bridge_intent=intent,
                )

        if plan.needs_approval:
            approval = await self.executor.approve(wallet, plan)
            if approval.status != ExecutionStatus.CONFIRMED:
                if approval.ok:
                    steps.append("approve")
                    action = "Wait for the approval to confirm, then run again"
                else:
                    action = approval.next_action or approval.message
                return WorkflowOutcome(
                    tuple(steps), next_action=action, plan=plan, bridge_intent=intent, result=approval
                )
            steps.append("approve")

        result = await self.executor.execute_deposit(wallet, plan)
        if not result.ok:
            return WorkflowOutcome(
                tuple(steps),
                next_action=result.next_action or result.message,
                plan=plan,
                bridge_intent=intent,
                result=result,
            )
        steps.append("deposit")
        self.bridge.settle_arrived(wallet, plan.chain, plan.asset_symbol)
        next_action = None
        if result.status == ExecutionStatus.PENDING:
            next_action = result.next_action
        return WorkflowOutcome(
            tuple(steps), next_action=next_action, plan=plan, bridge_intent=intent, result=result
        )

    async def run_withdraw(
        self,
        wallet: WalletContext,
        asset: str,
        human_amount: str,
        chain: str,
        protocol_id: str = "aave-v3",
    ) -> WorkflowOutcome:
        wallet = require_wallet(wallet)
        plan = await self.planner.build_withdraw_plan(wallet, asset, human_amount, chain, protocol_id)
        if plan is None:
            return WorkflowOutcome(
                (), next_action=f"No {asset} position on {protocol_id}/{chain} covers {human_amount}"
            )
        result = await self.executor.execute_withdraw(wallet, plan)
        if not result.ok:
            return WorkflowOutcome((), next_action=result.next_action or result.message, plan=plan, result=result)
        next_action = result.next_action if result.status == ExecutionStatus.PENDING else None
        return WorkflowOutcome(("withdraw",), next_action=next_action, plan=plan, result=result)


__all__ = ["DepositPreparation", "EarnWorkflow", "WorkflowOutcome"]
