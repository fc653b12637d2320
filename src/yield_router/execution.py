"""Execute deposit, withdraw and approval plans.

Every step re-reads on-chain state before acting (allowance, gas) and
simulates the call with ``eth_call`` first; a revert blocks submission. Each
plan is submitted at most once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .amounts import MAX_UINT256, to_raw_units
from .calldata import decode_revert_reason, encode_approve
from .core.models import TransactionRequest, WalletContext, YieldPlan, require_wallet
from .errors import PlanConsumedError, RpcError, UpstreamError

logger = logging.getLogger(__name__)


class ExecutionStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    APPROVAL_REQUIRED = "APPROVAL_REQUIRED"
    INSUFFICIENT_GAS = "INSUFFICIENT_GAS"
    SIMULATION_FAILED = "SIMULATION_FAILED"
    FAILED = "FAILED"
    CONFIRMED = "CONFIRMED"
    PENDING = "PENDING"


@dataclass(frozen=True)
class ExecutionResult:
    status: ExecutionStatus
    message: str
    tx_hash: str | None = None
    next_action: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in (
            ExecutionStatus.SUBMITTED,
            ExecutionStatus.CONFIRMED,
            ExecutionStatus.PENDING,
        )


class YieldExecutor:
    def __init__(
        self,
        rpc,
        sender,
        gas,
        ledger=None,
        *,
        wait_for_receipt: bool = False,
        receipt_interval: float = 3.0,
        receipt_timeout: float = 120.0,
    ) -> None:
        self.rpc = rpc
        self.sender = sender
        self.gas = gas
        self.ledger = ledger
        self.wait_for_receipt = wait_for_receipt
        self.receipt_interval = receipt_interval
        self.receipt_timeout = receipt_timeout
        self._consumed: set[str] = set()

    def is_consumed(self, plan: YieldPlan) -> bool:
        return plan.plan_id in self._consumed

    async def _confirm(self, chain: str, tx_hash: str, label: str) -> ExecutionResult:
        if not self.wait_for_receipt:
            return ExecutionResult(
                ExecutionStatus.SUBMITTED, f"{label} submitted", tx_hash=tx_hash
            )
        receipt = await self.rpc.wait_for_transaction(
            chain, tx_hash, interval=self.receipt_interval, timeout=self.receipt_timeout
        )
        if receipt.status == "success":
            return ExecutionResult(ExecutionStatus.CONFIRMED, f"{label} confirmed", tx_hash=tx_hash)
        if receipt.status == "reverted":
            return ExecutionResult(
                ExecutionStatus.FAILED,
                f"{label} reverted on-chain",
                tx_hash=tx_hash,
                next_action="Inspect the transaction and rebuild the plan",
            )
        return ExecutionResult(
            ExecutionStatus.PENDING,
            f"{label} not mined yet",
            tx_hash=tx_hash,
            next_action="Check the transaction status later",
        )

    async def _simulate(self, wallet: WalletContext, tx: TransactionRequest) -> ExecutionResult | None:
        try:
            await self.rpc.simulate(tx, wallet.address)
        except RpcError as exc:
            reason = decode_revert_reason(exc.data) or str(exc)
            logger.warning("Simulation of call to %s on %s reverted: %s", tx.to, tx.chain, reason)
            return ExecutionResult(
                ExecutionStatus.SIMULATION_FAILED,
                f"Transaction would revert: {reason}",
                next_action="Review the amount and position, then rebuild the plan",
            )
        return None

    async def _gas_gate(self, wallet: WalletContext, chain: str, operation: str) -> ExecutionResult | None:
        outcome = await self.gas.ensure_gas(wallet, chain, operation)
        if outcome.ready:
            return None
        return ExecutionResult(
            ExecutionStatus.INSUFFICIENT_GAS,
            outcome.message,
            tx_hash=outcome.swap_tx_hash,
            next_action=(
                "Wait for the gas swap to confirm, then retry"
                if outcome.swap_tx_hash
                else "Fund the wallet with native gas, then retry"
            ),
        )

    def _record(self, wallet: WalletContext, plan: YieldPlan, tx_hash: str) -> None:
        if self.ledger is None:
            return
        raw_amount = plan.raw_amount
        try:
            if raw_amount == MAX_UINT256:
                # withdraw-all sentinel; record the balance it stood for
                raw_amount = to_raw_units(plan.human_amount, plan.decimals)
            self.ledger.record(
                wallet,
                plan.action,
                plan.protocol_id,
                plan.chain,
                plan.asset_symbol,
                plan.human_amount,
                raw_amount,
                tx_hash=tx_hash,
            )
        except (OSError, ValueError) as exc:
            logger.warning("Could not record %s %s in ledger: %s", plan.action, tx_hash, exc)

    async def approve(self, wallet: WalletContext, plan: YieldPlan) -> ExecutionResult:
        """Approve the plan's spender for exactly ``plan.raw_amount``."""

        wallet = require_wallet(wallet)
        spender = plan.approval_spender or plan.target_contract
        allowance = await self.rpc.erc20_allowance(
            plan.chain, plan.asset_address, wallet.address, spender
        )
        if allowance >= plan.raw_amount:
            return ExecutionResult(
                ExecutionStatus.CONFIRMED,
                f"{plan.asset_symbol} allowance for {spender} already sufficient",
                next_action=plan.action,
            )
        blocked = await self._gas_gate(wallet, plan.chain, "approve")
        if blocked:
            return blocked
        tx = TransactionRequest(
            chain=plan.chain,
            to=plan.asset_address,
            data=encode_approve(spender, plan.raw_amount),
        )
        try:
            tx_hash = await self.sender.send(wallet, tx)
        except UpstreamError as exc:
            logger.warning("Approval of %s on %s failed: %s", plan.asset_symbol, plan.chain, exc)
            return ExecutionResult(ExecutionStatus.FAILED, f"Approval failed: {exc}")
        result = await self._confirm(plan.chain, tx_hash, f"Approval of {plan.asset_symbol}")
        if result.status in (ExecutionStatus.SUBMITTED, ExecutionStatus.CONFIRMED):
            return ExecutionResult(result.status, result.message, result.tx_hash, next_action=plan.action)
        return result

    def _claim(self, plan: YieldPlan) -> None:
        if plan.plan_id in self._consumed:
            raise PlanConsumedError(f"Plan {plan.plan_id} was already submitted")
        self._consumed.add(plan.plan_id)

    async def _check_allowance(self, wallet: WalletContext, plan: YieldPlan) -> ExecutionResult | None:
        spender = plan.approval_spender or plan.target_contract
        allowance = await self.rpc.erc20_allowance(
            plan.chain, plan.asset_address, wallet.address, spender
        )
        if allowance < plan.raw_amount:
            return ExecutionResult(
                ExecutionStatus.APPROVAL_REQUIRED,
                f"Approve {plan.human_amount} {plan.asset_symbol} for {spender} first",
                next_action="approve",
            )
        return None

    async def _submit(
        self, wallet: WalletContext, plan: YieldPlan, operation: str
    ) -> ExecutionResult | str:
        if operation == "deposit":
            blocked = await self._check_allowance(wallet, plan)
            if blocked:
                return blocked
        blocked = await self._gas_gate(wallet, plan.chain, operation)
        if blocked:
            return blocked
        tx = TransactionRequest(chain=plan.chain, to=plan.target_contract, data=plan.calldata)
        blocked = await self._simulate(wallet, tx)
        if blocked:
            return blocked
        try:
            return await self.sender.send(wallet, tx)
        except UpstreamError as exc:
            logger.warning("%s on %s failed: %s", operation.capitalize(), plan.chain, exc)
            return ExecutionResult(ExecutionStatus.FAILED, f"{operation.capitalize()} failed: {exc}")

    async def _execute(self, wallet: WalletContext, plan: YieldPlan, operation: str) -> ExecutionResult:
        # claimed before the first await so concurrent callers cannot both send
        self._claim(plan)
        submitted = False
        try:
            outcome = await self._submit(wallet, plan, operation)
            submitted = isinstance(outcome, str)
        finally:
            if not submitted:
                self._consumed.discard(plan.plan_id)
        if isinstance(outcome, ExecutionResult):
            return outcome

        label = f"{operation.capitalize()} of {plan.human_amount} {plan.asset_symbol}"
        result = await self._confirm(plan.chain, outcome, label)
        if result.status in (ExecutionStatus.SUBMITTED, ExecutionStatus.CONFIRMED):
            self._record(wallet, plan, outcome)
        return result

    async def execute_deposit(self, wallet: WalletContext, plan: YieldPlan) -> ExecutionResult:
        wallet = require_wallet(wallet)
        if plan.action != "deposit":
            raise ValueError(f"Expected a deposit plan, got {plan.action!r}")
        return await self._execute(wallet, plan, "deposit")

    async def execute_withdraw(self, wallet: WalletContext, plan: YieldPlan) -> ExecutionResult:
        wallet = require_wallet(wallet)
        if plan.action != "withdraw":
            raise ValueError(f"Expected a withdraw plan, got {plan.action!r}")
        return await self._execute(wallet, plan, "withdraw")


__all__ = ["ExecutionResult", "ExecutionStatus", "YieldExecutor"]
