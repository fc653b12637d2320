from __future__ import annotations

import asyncio
import itertools
from pathlib import Path

import pytest

from fakes import (
    BRIDGE_ROUTER,
    WALLET,
    FakeAggregator,
    FakeClock,
    FakeGas,
    FakeRpc,
    FakeSender,
    YieldingRpc,
)
from yield_router.bridge import BridgeOrchestrator, BridgeState, CursorStore
from yield_router.core.models import BridgeStatus, BridgeStatusState
from yield_router.core.tokens import resolve_token
from yield_router.errors import UpstreamError

USDC_ARB = resolve_token("USDC", "arbitrum")
PENDING = BridgeStatus(BridgeStatusState.PENDING, substatus="WAIT_DESTINATION_TRANSACTION")
NOT_FOUND = BridgeStatus(BridgeStatusState.NOT_FOUND)
DONE = BridgeStatus(BridgeStatusState.DONE, substatus="COMPLETED", receiving_tx_hash="0xfeed")


class Harness:
    def __init__(
        self,
        root: Path,
        *,
        gas: FakeGas | None = None,
        approval_address: str | None = BRIDGE_ROUTER,
        rpc: FakeRpc | None = None,
    ):
        self.rpc = rpc or FakeRpc()
        self.sender = FakeSender(self.rpc)
        self.aggregator = FakeAggregator(approval_address)
        self.clock = FakeClock()
        self.gas = gas or FakeGas()
        self.root = root
        ticks = itertools.count(1_700_000_000)
        self.orchestrator = BridgeOrchestrator(
            self.aggregator,
            self.rpc,
            self.sender,
            self.gas,
            CursorStore(root),
            poll_interval=15,
            timeout=600,
            sleep=self.clock.sleep,
            clock=self.clock,
            now=lambda: float(next(ticks)),
        )

    def open(self, amount: str = "100"):
        return self.orchestrator.open_intent(WALLET, "arbitrum", "base", "USDC", amount)


@pytest.fixture()
def harness(tmp_path: Path) -> Harness:
    return Harness(tmp_path / "cursors")


def test_full_run_approves_bridges_and_arrives(harness: Harness) -> None:
    harness.aggregator.statuses = [NOT_FOUND, PENDING, DONE]
    intent = harness.open()
    assert intent.state == BridgeState.NEEDS_APPROVAL
    assert intent.raw_amount == 100_000_000

    final = asyncio.run(harness.orchestrator.run(WALLET, intent))

    assert final.state == BridgeState.ARRIVED
    assert final.receiving_tx_hash == "0xfeed"
    assert final.tool == "across"
    approval, bridge = [tx for _, tx in harness.sender.sent]
    assert approval.to == USDC_ARB.address
    assert bridge.to == BRIDGE_ROUTER
    assert bridge.data == "0xa6010a66"
    assert harness.gas.checks == [("arbitrum", "approve"), ("arbitrum", "bridge")]
    assert harness.clock.sleeps == [15, 15]
    # one quote serves both the approval and the bridge transaction
    assert len(harness.aggregator.bridge_quotes) == 1


def test_sufficient_allowance_skips_approval(harness: Harness) -> None:
    harness.rpc.set_allowance("arbitrum", USDC_ARB.address, WALLET.address, BRIDGE_ROUTER, 10**12)
    harness.aggregator.statuses = [DONE]
    final = asyncio.run(harness.orchestrator.run(WALLET, harness.open()))
    assert final.state == BridgeState.ARRIVED
    assert harness.sender.approvals == []
    assert len(harness.sender.sent) == 1


def test_quote_without_approval_address_goes_straight_to_bridging(tmp_path: Path) -> None:
    harness = Harness(tmp_path, approval_address=None)
    harness.aggregator.statuses = [DONE]
    final = asyncio.run(harness.orchestrator.run(WALLET, harness.open()))
    assert final.state == BridgeState.ARRIVED
    assert harness.sender.approvals == []


def test_timeout_then_resume_never_resubmits(harness: Harness) -> None:
    harness.aggregator.statuses = [PENDING]
    intent = asyncio.run(harness.orchestrator.run(WALLET, harness.open(), timeout=40))
    assert intent.state == BridgeState.TIMED_OUT
    assert intent.bridge_tx_hash is not None
    assert "has not arrived yet" in intent.message
    sent_before = len(harness.sender.sent)

    harness.aggregator.statuses = [DONE]
    resumed = asyncio.run(harness.orchestrator.run(WALLET, intent))
    assert resumed.state == BridgeState.ARRIVED
    assert resumed.bridge_tx_hash == intent.bridge_tx_hash
    assert len(harness.sender.sent) == sent_before
    assert len(harness.aggregator.bridge_quotes) == 1


def test_status_errors_while_polling_are_retried(harness: Harness) -> None:
    harness.aggregator.statuses = [UpstreamError("aggregator 502"), DONE]
    final = asyncio.run(harness.orchestrator.run(WALLET, harness.open()))
    assert final.state == BridgeState.ARRIVED
    assert harness.aggregator.status_calls == 2


def test_failed_bridge_is_terminal(harness: Harness) -> None:
    harness.aggregator.statuses = [BridgeStatus(BridgeStatusState.FAILED, substatus="REFUNDED")]
    intent = harness.open()
    final = asyncio.run(harness.orchestrator.run(WALLET, intent))
    assert final.state == BridgeState.FAILED
    assert "REFUNDED" in final.message
    assert not final.is_active
    # a failed transfer is not reused
    assert harness.open().key != intent.key


def test_pending_approval_is_resumed_without_second_approval(tmp_path: Path) -> None:
    harness = Harness(tmp_path)
    harness.sender.mine = False
    intent = asyncio.run(harness.orchestrator.submit(WALLET, harness.open()))
    assert intent.state == BridgeState.APPROVING
    assert intent.message == "Approval still pending"
    assert intent.approval_tx_hash is not None

    # the allowance is now visible on-chain
    harness.sender.mine = True
    resumed = asyncio.run(harness.orchestrator.submit(WALLET, intent))
    assert resumed.state == BridgeState.AWAITING_ARRIVAL
    assert len(harness.sender.approvals) == 1


def test_insufficient_gas_keeps_cursor_in_place(tmp_path: Path) -> None:
    harness = Harness(tmp_path, gas=FakeGas(ready=False, message="Insufficient ETH for gas on arbitrum"))
    intent = asyncio.run(harness.orchestrator.submit(WALLET, harness.open()))
    assert intent.state == BridgeState.NEEDS_APPROVAL
    assert intent.message.startswith("Insufficient ETH")
    assert harness.sender.sent == []


def test_upstream_error_during_quote_is_reported(harness: Harness, monkeypatch: pytest.MonkeyPatch) -> None:
    async def broken(*args: object, **kwargs: object) -> None:
        raise UpstreamError("no route")

    monkeypatch.setattr(harness.aggregator, "quote_bridge", broken)
    intent = asyncio.run(harness.orchestrator.submit(WALLET, harness.open()))
    assert intent.state == BridgeState.NEEDS_APPROVAL
    assert "no route" in intent.message


def test_open_intent_reuses_unfinished_transfer(harness: Harness) -> None:
    first = harness.open("100")
    assert harness.open("100.0").key == first.key
    assert harness.open("50").key != first.key
    with pytest.raises(ValueError):
        harness.orchestrator.open_intent(WALLET, "arbitrum", "base", "USDT", "1")


def test_cursor_survives_restart(harness: Harness) -> None:
    harness.aggregator.statuses = [PENDING]
    intent = asyncio.run(harness.orchestrator.run(WALLET, harness.open(), timeout=15))

    reloaded = CursorStore(harness.root).get(WALLET.address, intent.key)
    assert reloaded == intent
    assert reloaded.state == BridgeState.TIMED_OUT
    assert harness.orchestrator.status(WALLET.address.upper().replace("0X", "0x"), intent.key) == intent


def test_settle_arrived_closes_only_matching_intents(harness: Harness) -> None:
    harness.aggregator.statuses = [DONE]
    arrived = asyncio.run(harness.orchestrator.run(WALLET, harness.open()))
    waiting = harness.orchestrator.open_intent(WALLET, "arbitrum", "base", "USDC", "7")

    settled = harness.orchestrator.settle_arrived(WALLET, "Base", "usdc")

    assert [i.key for i in settled] == [arrived.key]
    assert harness.orchestrator.status(WALLET, arrived.key).settled
    assert not harness.orchestrator.status(WALLET, waiting.key).settled
    # settled transfers no longer block a fresh one with the same parameters
    assert harness.open().key != arrived.key


def test_concurrent_runs_send_one_bridge(tmp_path: Path) -> None:
    harness = Harness(tmp_path, rpc=YieldingRpc())
    harness.aggregator.statuses = [DONE]
    intent = harness.open()

    async def both():
        return await asyncio.gather(
            harness.orchestrator.run(WALLET, intent), harness.orchestrator.run(WALLET, intent)
        )

    first, second = asyncio.run(both())

    assert first.state == BridgeState.ARRIVED
    assert "already submitting" in second.message
    assert len(harness.sender.approvals) == 1
    assert len(harness.sender.sent) == 2
    assert len(harness.aggregator.bridge_quotes) == 1


def test_stale_intent_object_does_not_resubmit(harness: Harness) -> None:
    harness.aggregator.statuses = [DONE]
    stale = harness.open()
    asyncio.run(harness.orchestrator.run(WALLET, stale))
    sent = len(harness.sender.sent)

    again = asyncio.run(harness.orchestrator.submit(WALLET, stale))

    assert again.state == BridgeState.ARRIVED
    assert len(harness.sender.sent) == sent


def test_unreadable_cursor_file_is_set_aside(harness: Harness) -> None:
    harness.root.mkdir(parents=True)
    (harness.root / f"{WALLET.key}.bridge.json").write_text('{"intents": {"k": {"state"')

    intent = harness.open()

    assert intent.state == BridgeState.NEEDS_APPROVAL
    assert list(harness.root.glob("*.corrupt-*"))
    assert CursorStore(harness.root).get(WALLET.key, intent.key) == intent
