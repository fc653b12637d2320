from __future__ import annotations

import asyncio

import pytest

from fakes import (
    ETHER,
    GWEI,
    OTHER_WALLET,
    WALLET,
    FakeAggregator,
    FakePrices,
    FakeRpc,
    FakeSender,
)
from yield_router.calldata import ERC20_SELECTORS
from yield_router.core.constants import NATIVE_TOKEN_ADDRESS
from yield_router.core.models import TxReceipt
from yield_router.core.tokens import resolve_token
from yield_router.errors import UpstreamError
from yield_router.gas import GasSufficiencyEngine

USDC = resolve_token("USDC", "base")
DEPOSIT_BASE_COST = 200_000 * GWEI
DEPOSIT_REQUIRED = DEPOSIT_BASE_COST * 130 // 100


@pytest.fixture()
def rpc() -> FakeRpc:
    return FakeRpc()


@pytest.fixture()
def sender(rpc: FakeRpc) -> FakeSender:
    return FakeSender(rpc)


@pytest.fixture()
def aggregator() -> FakeAggregator:
    return FakeAggregator()


@pytest.fixture()
def engine(rpc: FakeRpc, sender: FakeSender, aggregator: FakeAggregator) -> GasSufficiencyEngine:
    return GasSufficiencyEngine(rpc, FakePrices(3000.0), aggregator, sender)


def test_required_wei_applies_buffer(engine: GasSufficiencyEngine) -> None:
    assert engine.required_wei("deposit", GWEI) == DEPOSIT_REQUIRED
    with pytest.raises(ValueError):
        engine.gas_units("teleport")


def test_ready_when_balance_covers_buffered_cost(engine: GasSufficiencyEngine, rpc: FakeRpc) -> None:
    rpc.set_native("base", WALLET.address, DEPOSIT_REQUIRED)
    outcome = asyncio.run(engine.ensure_gas(WALLET, "Base", "deposit"))
    assert outcome.ready
    assert outcome.shortfall_wei == 0


def test_balance_equal_to_base_cost_is_not_enough(
    engine: GasSufficiencyEngine, rpc: FakeRpc, sender: FakeSender
) -> None:
    rpc.set_native("base", WALLET.address, DEPOSIT_BASE_COST)
    outcome = asyncio.run(engine.ensure_gas(WALLET, "base", "deposit"))
    assert not outcome.ready
    assert not outcome.auto_swap_executed
    assert outcome.shortfall_wei == DEPOSIT_REQUIRED - DEPOSIT_BASE_COST
    assert "Insufficient ETH for gas on base" in outcome.message
    assert sender.sent == []


def test_auto_swaps_stablecoin_for_gas(
    engine: GasSufficiencyEngine, rpc: FakeRpc, sender: FakeSender, aggregator: FakeAggregator
) -> None:
    rpc.set_balance("base", USDC.address, WALLET.address, 100 * 10**6)
    outcome = asyncio.run(engine.ensure_gas(WALLET, "base", "deposit"))

    assert outcome.auto_swap_executed
    assert not outcome.ready
    assert outcome.swap_tx_hash is not None
    # 0.00026 ETH at $3000 plus 10% slippage
    assert aggregator.swap_quotes == [("base", USDC.address, NATIVE_TOKEN_ADDRESS, 858_000)]
    approval, swap = [tx for _, tx in sender.sent]
    assert approval.data.startswith(ERC20_SELECTORS["approve"])
    assert approval.to == USDC.address
    assert swap.data == "0xdeadbeef"
    assert engine.pending_swap(WALLET, "base") == outcome.swap_tx_hash


def test_existing_allowance_skips_swap_approval(
    engine: GasSufficiencyEngine, rpc: FakeRpc, sender: FakeSender, aggregator: FakeAggregator
) -> None:
    rpc.set_balance("base", USDC.address, WALLET.address, 100 * 10**6)
    rpc.set_allowance("base", USDC.address, WALLET.address, aggregator.approval_address, 10**12)
    asyncio.run(engine.ensure_gas(WALLET, "base", "deposit"))
    assert sender.approvals == []
    assert len(sender.sent) == 1


def test_pending_swap_blocks_second_swap(rpc: FakeRpc, aggregator: FakeAggregator) -> None:
    sender = FakeSender(rpc, mine=False)
    engine = GasSufficiencyEngine(rpc, FakePrices(), aggregator, sender)
    rpc.set_balance("base", USDC.address, WALLET.address, 100 * 10**6)

    first = asyncio.run(engine.ensure_gas(WALLET, "base", "deposit"))
    second = asyncio.run(engine.ensure_gas(WALLET, "base", "deposit"))

    assert first.auto_swap_executed
    assert not second.ready
    assert not second.auto_swap_executed
    assert "still pending" in second.message
    assert len(aggregator.swap_quotes) == 1


def test_mined_swap_clears_pending_and_rechecks(
    engine: GasSufficiencyEngine, rpc: FakeRpc, aggregator: FakeAggregator
) -> None:
    rpc.set_balance("base", USDC.address, WALLET.address, 100 * 10**6)
    first = asyncio.run(engine.ensure_gas(WALLET, "base", "deposit"))
    rpc.receipts[first.swap_tx_hash] = TxReceipt("success")
    rpc.set_native("base", WALLET.address, ETHER // 1000)

    second = asyncio.run(engine.ensure_gas(WALLET, "base", "deposit"))
    assert second.ready
    assert engine.pending_swap(WALLET, "base") is None


def test_pending_swaps_are_keyed_by_wallet(rpc: FakeRpc, aggregator: FakeAggregator) -> None:
    engine = GasSufficiencyEngine(rpc, FakePrices(), aggregator, FakeSender(rpc, mine=False))
    rpc.set_balance("base", USDC.address, WALLET.address, 100 * 10**6)
    rpc.set_native("base", OTHER_WALLET.address, ETHER)

    asyncio.run(engine.ensure_gas(WALLET, "base", "deposit"))
    other = asyncio.run(engine.ensure_gas(OTHER_WALLET, "base", "deposit"))
    assert other.ready
    assert engine.pending_swap(OTHER_WALLET, "base") is None


def test_small_balances_are_listed_not_swapped(
    engine: GasSufficiencyEngine, rpc: FakeRpc, sender: FakeSender
) -> None:
    rpc.set_balance("base", USDC.address, WALLET.address, 100_000)  # $0.10
    outcome = asyncio.run(engine.ensure_gas(WALLET, "base", "deposit"))
    assert not outcome.ready
    assert outcome.candidates == ("USDC",)
    assert "Tokens available to swap: USDC" in outcome.message
    assert sender.sent == []


def test_swap_failure_is_reported(
    engine: GasSufficiencyEngine, rpc: FakeRpc, sender: FakeSender
) -> None:
    rpc.set_balance("base", USDC.address, WALLET.address, 100 * 10**6)
    sender.error = UpstreamError("custody refused to sign")
    outcome = asyncio.run(engine.ensure_gas(WALLET, "base", "deposit"))
    assert not outcome.ready
    assert not outcome.auto_swap_executed
    assert "custody refused to sign" in outcome.message


def test_failed_balance_lookup_skips_candidate(
    engine: GasSufficiencyEngine, rpc: FakeRpc, monkeypatch: pytest.MonkeyPatch
) -> None:
    original = rpc.erc20_balance

    async def flaky(chain: str, token: str, owner: str) -> int:
        if token == USDC.address:
            raise UpstreamError("timeout")
        return await original(chain, token, owner)

    monkeypatch.setattr(rpc, "erc20_balance", flaky)
    outcome = asyncio.run(engine.ensure_gas(WALLET, "base", "deposit"))
    assert outcome.candidates == ()


def test_estimate_cost_usd(engine: GasSufficiencyEngine, rpc: FakeRpc) -> None:
    assert asyncio.run(engine.estimate_cost_usd("base", "deposit")) == pytest.approx(0.78)
    rpc.failing_chains.add("base")
    assert asyncio.run(engine.estimate_cost_usd("base", "deposit")) == 0.0
