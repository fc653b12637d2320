from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from fakes import WALLET, FakeGas, FakeRpc, FakeSource, opportunity
from yield_router.amounts import MAX_UINT256
from yield_router.calldata import decode_call
from yield_router.core.models import WalletContext
from yield_router.core.tokens import resolve_token
from yield_router.errors import NotAuthenticatedError
from yield_router.planner import YieldPlanBuilder
from yield_router.protocols import aave_v3, morpho
from yield_router.sources import YieldDiscovery

USDC_BASE = resolve_token("USDC", "base")
AAVE_BASE_POOL = aave_v3.POOL_ADDRESSES["base"]
AUSDC_BASE = aave_v3.ATOKENS["base"]["USDC"]


@pytest.fixture()
def rpc() -> FakeRpc:
    return FakeRpc()


@pytest.fixture()
def discovery() -> YieldDiscovery:
    source = FakeSource(
        [
            opportunity("arbitrum", 4.25),
            opportunity("base", 5.12),
            opportunity("arbitrum", 3.85, protocol_id="compound-v3"),
        ]
    )
    return YieldDiscovery(source)


@pytest.fixture()
def planner(discovery: YieldDiscovery, rpc: FakeRpc) -> YieldPlanBuilder:
    return YieldPlanBuilder(discovery, rpc, FakeGas())


def test_deposit_plan_targets_best_chain(planner: YieldPlanBuilder) -> None:
    plan = asyncio.run(planner.build_deposit_plan(WALLET, "usdc", "100"))
    assert plan is not None
    assert plan.action == "deposit"
    assert (plan.chain, plan.protocol_id, plan.apy) == ("base", "aave-v3", 5.12)
    assert plan.raw_amount == 100_000_000
    assert plan.asset_address == USDC_BASE.address
    assert plan.target_contract == AAVE_BASE_POOL
    assert plan.needs_approval
    assert plan.approval_spender == AAVE_BASE_POOL
    assert plan.estimated_gas_usd == 0.25
    _, (asset, amount, on_behalf, referral) = decode_call(
        plan.calldata, ["address", "uint256", "address", "uint16"]
    )
    assert (asset, amount, on_behalf, referral) == (USDC_BASE.address, 100_000_000, WALLET.address, 0)


def test_allowance_equal_to_amount_needs_no_approval(planner: YieldPlanBuilder, rpc: FakeRpc) -> None:
    rpc.set_allowance("base", USDC_BASE.address, WALLET.address, AAVE_BASE_POOL, 100_000_000)
    plan = asyncio.run(planner.build_deposit_plan(WALLET, "USDC", "100"))
    assert plan is not None
    assert not plan.needs_approval
    assert plan.approval_spender is None


def test_allowance_one_unit_short_needs_approval(planner: YieldPlanBuilder, rpc: FakeRpc) -> None:
    rpc.set_allowance("base", USDC_BASE.address, WALLET.address, AAVE_BASE_POOL, 99_999_999)
    plan = asyncio.run(planner.build_deposit_plan(WALLET, "USDC", "100"))
    assert plan is not None and plan.needs_approval


def test_candidate_chains_restrict_choice(planner: YieldPlanBuilder) -> None:
    plan = asyncio.run(planner.build_deposit_plan(WALLET, "USDC", "5", ["arbitrum"]))
    assert plan is not None
    assert (plan.chain, plan.apy) == ("arbitrum", 4.25)


def test_unserviceable_opportunities_are_skipped(rpc: FakeRpc) -> None:
    source = FakeSource(
        [
            opportunity("base", 9.0, protocol_id="spark"),
            opportunity("polygon", 8.0),
            opportunity("base", 5.12),
        ]
    )
    discovery = YieldDiscovery(
        source, default_chains=("base", "polygon"), default_protocols=("spark", "aave-v3")
    )
    planner = YieldPlanBuilder(discovery, rpc)
    plan = asyncio.run(planner.build_deposit_plan(WALLET, "USDC", "1", ["base"]))
    assert plan is not None
    assert plan.protocol_id == "aave-v3"
    assert plan.estimated_gas_usd == 0.0


def test_no_opportunity_or_unknown_token_yields_none(planner: YieldPlanBuilder) -> None:
    assert asyncio.run(planner.build_deposit_plan(WALLET, "USDC", "1", ["optimism"])) is None
    assert asyncio.run(planner.build_deposit_plan(WALLET, "FRAX", "1")) is None


def test_unauthenticated_wallet_is_rejected(planner: YieldPlanBuilder) -> None:
    locked = WalletContext(address=WALLET.address, wallet_id="w-1", authenticated=False)
    with pytest.raises(NotAuthenticatedError):
        asyncio.run(planner.build_deposit_plan(locked, "USDC", "1"))
    with pytest.raises(NotAuthenticatedError):
        asyncio.run(planner.build_deposit_plan(None, "USDC", "1"))  # type: ignore[arg-type]


def test_withdraw_plan_within_position(planner: YieldPlanBuilder, rpc: FakeRpc) -> None:
    rpc.set_call("base", AUSDC_BASE, 50_000_000)
    plan = asyncio.run(planner.build_withdraw_plan(WALLET, "USDC", "20", "base"))
    assert plan is not None
    assert plan.action == "withdraw"
    assert plan.raw_amount == 20_000_000
    assert not plan.needs_approval
    assert plan.apy == 5.12
    _, (asset, amount, to) = decode_call(plan.calldata, ["address", "uint256", "address"])
    assert (asset, amount, to) == (USDC_BASE.address, 20_000_000, WALLET.address)


def test_withdraw_all_uses_sentinel_and_reports_balance(planner: YieldPlanBuilder, rpc: FakeRpc) -> None:
    rpc.set_call("base", AUSDC_BASE, 50_250_000)
    plan = asyncio.run(planner.build_withdraw_plan(WALLET, "USDC", "all", "base"))
    assert plan is not None
    assert plan.raw_amount == MAX_UINT256
    assert plan.human_amount == "50.25"


def test_withdraw_more_than_deposited_is_refused(planner: YieldPlanBuilder, rpc: FakeRpc) -> None:
    rpc.set_call("base", AUSDC_BASE, 50_000_000)
    assert asyncio.run(planner.build_withdraw_plan(WALLET, "USDC", "50.000001", "base")) is None


def test_dust_position_counts_as_none(planner: YieldPlanBuilder, rpc: FakeRpc) -> None:
    rpc.set_call("base", AUSDC_BASE, 99)  # 0.000099 USDC
    assert asyncio.run(planner.build_withdraw_plan(WALLET, "USDC", "all", "base")) is None


def test_morpho_withdraw_reads_vault_position(planner: YieldPlanBuilder, rpc: FakeRpc) -> None:
    vault = morpho.VAULTS["base"]["USDC"]
    rpc.set_call("base", vault, 10_000_000)
    plan = asyncio.run(planner.build_withdraw_plan(WALLET, "USDC", "max", "base", "morpho-v1"))
    assert plan is not None
    assert plan.target_contract == vault
    selector, (shares, receiver, owner) = decode_call(plan.calldata, ["uint256", "address", "address"])
    assert selector == morpho.SELECTORS["redeem"]
    assert shares == MAX_UINT256
    assert receiver == owner == WALLET.address


def test_list_positions_tolerates_failing_chain(planner: YieldPlanBuilder, rpc: FakeRpc) -> None:
    rpc.set_call("base", AUSDC_BASE, 12_500_000)
    rpc.failing_chains.add("arbitrum")
    positions = asyncio.run(planner.list_positions(WALLET, ["base", "arbitrum"], ["aave-v3"]))
    assert len(positions) == 1
    pos = positions[0]
    assert (pos.protocol_id, pos.chain, pos.asset_symbol) == ("aave-v3", "base", "USDC")
    assert pos.balance == Decimal("12.5")
