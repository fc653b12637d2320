"""Cross-chain transfer state machine with a persisted step cursor.

``NEEDS_APPROVAL -> APPROVING -> BRIDGING -> AWAITING_ARRIVAL`` then one of
``ARRIVED``, ``FAILED`` or ``TIMED_OUT``. The cursor for each transfer is a
:class:`BridgeIntent` stored per wallet in a :class:`CursorStore`, so callers
can ask which step a transfer is on and resume it. Once a bridge transaction
hash is recorded it is never submitted again; resuming a ``TIMED_OUT`` intent
only polls for arrival.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, replace
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from .amounts import to_raw_units
from .calldata import encode_approve
from .core.models import (
    BridgeQuote,
    BridgeStatusState,
    TransactionRequest,
    WalletContext,
    require_wallet,
)
from .core.tokens import resolve_token
from .errors import UpstreamError
from .polling import poll_until

logger = logging.getLogger(__name__)

BRIDGE_POLL_INTERVAL_S = 15.0
BRIDGE_TIMEOUT_S = 600.0
APPROVAL_TIMEOUT_S = 120.0


class BridgeState(str, Enum):
    NEEDS_APPROVAL = "NEEDS_APPROVAL"
    APPROVING = "APPROVING"
    BRIDGING = "BRIDGING"
    AWAITING_ARRIVAL = "AWAITING_ARRIVAL"
    ARRIVED = "ARRIVED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"


SUBMITTED_STATES = {BridgeState.AWAITING_ARRIVAL, BridgeState.TIMED_OUT}
FINAL_STATES = {BridgeState.ARRIVED, BridgeState.FAILED}


def _now() -> float:
    return datetime.now(tz=UTC).timestamp()


@dataclass(frozen=True)
class BridgeIntent:
    """Cursor over one cross-chain transfer."""

    key: str
    wallet: str
    from_chain: str
    to_chain: str
    asset_symbol: str
    human_amount: str
    raw_amount: int
    state: BridgeState = BridgeState.NEEDS_APPROVAL
    approval_spender: str | None = None
    approval_tx_hash: str | None = None
    bridge_tx_hash: str | None = None
    receiving_tx_hash: str | None = None
    tool: str | None = None
    message: str = ""
    settled: bool = False
    created_at: float = 0.0
    updated_at: float = 0.0

    @property
    def is_active(self) -> bool:
        return not self.settled and self.state != BridgeState.FAILED

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        data["raw_amount"] = str(self.raw_amount)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BridgeIntent":
        values = dict(data)
        values["state"] = BridgeState(values["state"])
        values["raw_amount"] = int(values["raw_amount"])
        return cls(**values)


class CursorStore:
    """One JSON document of bridge intents per wallet."""

    def __init__(self, root_dir: str | Path) -> None:
        self.root_dir = Path(root_dir).expanduser()
        self._cache: dict[str, dict[str, BridgeIntent]] = {}

    def _path(self, wallet_key: str) -> Path:
        return self.root_dir / f"{wallet_key}.bridge.json"

    def _load(self, wallet_key: str) -> dict[str, BridgeIntent]:
        intents = self._cache.get(wallet_key)
        if intents is not None:
            return intents
        intents = {}
        path = self._path(wallet_key)
        if path.exists():
            try:
                with path.open() as f:
                    raw = json.load(f)
                intents = {k: BridgeIntent.from_dict(v) for k, v in raw.get("intents", {}).items()}
            except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
                backup = path.with_suffix(f".corrupt-{int(_now())}")
                logger.warning("Unreadable bridge cursor %s (%s); moved to %s", path, exc, backup)
                path.replace(backup)
                intents = {}
        self._cache[wallet_key] = intents
        return intents

    def get(self, wallet_key: str, key: str) -> BridgeIntent | None:
        return self._load(wallet_key.lower()).get(key)

    def list(self, wallet_key: str) -> list[BridgeIntent]:
        return sorted(self._load(wallet_key.lower()).values(), key=lambda i: i.created_at)

    def put(self, intent: BridgeIntent) -> None:
        wallet_key = intent.wallet.lower()
        intents = self._load(wallet_key)
        intents[intent.key] = intent
        self.root_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(wallet_key)
        tmp = path.with_suffix(".tmp")
        with tmp.open("w") as f:
            json.dump({"intents": {k: v.to_dict() for k, v in intents.items()}}, f, indent=2)
        os.replace(tmp, path)


class BridgeOrchestrator:
    def __init__(
        self,
        aggregator,
        rpc,
        sender,
        gas,
        store: CursorStore,
        *,
        poll_interval: float = BRIDGE_POLL_INTERVAL_S,
        timeout: float = BRIDGE_TIMEOUT_S,
        approval_timeout: float = APPROVAL_TIMEOUT_S,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], float] = _now,
    ) -> None:
        self.aggregator = aggregator
        self.rpc = rpc
        self.sender = sender
        self.gas = gas
        self.store = store
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.approval_timeout = approval_timeout
        self._sleep = sleep
        self._clock = clock
        self._now = now
        self._in_flight: set[str] = set()

    def _save(self, intent: BridgeIntent, **changes: Any) -> BridgeIntent:
        updated = replace(intent, updated_at=self._now(), **changes)
        if "state" in changes and changes["state"] != intent.state:
            logger.info("Bridge %s: %s -> %s", intent.key, intent.state.value, updated.state.value)
        self.store.put(updated)
        return updated

    def status(self, wallet: WalletContext | str, key: str) -> BridgeIntent | None:
        wallet_key = wallet.key if isinstance(wallet, WalletContext) else wallet.lower()
        return self.store.get(wallet_key, key)

    def find_active(
        self, wallet: WalletContext, from_chain: str, to_chain: str, asset: str, raw_amount: int
    ) -> BridgeIntent | None:
        for intent in reversed(self.store.list(wallet.key)):
            if (
                intent.is_active
                and intent.from_chain == from_chain.lower()
                and intent.to_chain == to_chain.lower()
                and intent.asset_symbol == asset.upper()
                and intent.raw_amount == raw_amount
            ):
                return intent
        return None

    def open_intent(
        self, wallet: WalletContext, from_chain: str, to_chain: str, asset: str, human_amount: str
    ) -> BridgeIntent:
        """Return the unfinished intent for these parameters, or start a new one."""

        wallet = require_wallet(wallet)
        token = resolve_token(asset, from_chain)
        if token is None or resolve_token(asset, to_chain) is None:
            raise ValueError(f"{asset} is not bridgeable from {from_chain} to {to_chain}")
        raw = to_raw_units(human_amount, token.decimals)
        existing = self.find_active(wallet, from_chain, to_chain, token.symbol, raw)
        if existing is not None:
            return existing
        stamp = self._now()
        intent = BridgeIntent(
            key=uuid.uuid4().hex,
            wallet=wallet.key,
            from_chain=from_chain.lower(),
            to_chain=to_chain.lower(),
            asset_symbol=token.symbol,
            human_amount=human_amount.strip(),
            raw_amount=raw,
            created_at=stamp,
            updated_at=stamp,
        )
        self.store.put(intent)
        return intent

    @staticmethod
    def _token_address(symbol: str, chain: str) -> str:
        token = resolve_token(symbol, chain)
        if token is None:
            raise ValueError(f"Unknown token {symbol} on {chain}")
        return token.address

    async def _quote(self, wallet: WalletContext, intent: BridgeIntent) -> BridgeQuote:
        return await self.aggregator.quote_bridge(
            intent.from_chain,
            intent.to_chain,
            self._token_address(intent.asset_symbol, intent.from_chain),
            self._token_address(intent.asset_symbol, intent.to_chain),
            intent.raw_amount,
            wallet.address,
        )

    async def _approve(
        self, wallet: WalletContext, intent: BridgeIntent
    ) -> tuple[BridgeIntent, BridgeQuote | None]:
        quote = None
        spender = intent.approval_spender
        if spender is None:
            quote = await self._quote(wallet, intent)
            spender = quote.approval_address
            intent = self._save(intent, approval_spender=spender, tool=quote.tool or None)
        if not spender:
            return self._save(intent, state=BridgeState.BRIDGING, message=""), quote

        asset = self._token_address(intent.asset_symbol, intent.from_chain)
        allowance = await self.rpc.erc20_allowance(intent.from_chain, asset, wallet.address, spender)
        if allowance >= intent.raw_amount:
            return self._save(intent, state=BridgeState.BRIDGING, message=""), quote

        if intent.state == BridgeState.APPROVING and intent.approval_tx_hash:
            receipt = await self.rpc.get_transaction_receipt(intent.from_chain, intent.approval_tx_hash)
            if receipt is None:
                return self._save(intent, message="Approval still pending"), None
            # mined but allowance still short: approve again
            logger.warning("Approval %s did not raise allowance", intent.approval_tx_hash)

        gas = await self.gas.ensure_gas(wallet, intent.from_chain, "approve")
        if not gas.ready:
            return self._save(intent, message=gas.message), None
        tx_hash = await self.sender.send(
            wallet,
            TransactionRequest(
                chain=intent.from_chain, to=asset, data=encode_approve(spender, intent.raw_amount)
            ),
        )
        intent = self._save(
            intent, state=BridgeState.APPROVING, approval_tx_hash=tx_hash, message="Approval submitted"
        )
        receipt = await self.rpc.wait_for_transaction(
            intent.from_chain, tx_hash, interval=3.0, timeout=self.approval_timeout
        )
        if receipt.status == "success":
            return self._save(intent, state=BridgeState.BRIDGING, message=""), None
        if receipt.status == "reverted":
            return self._save(intent, state=BridgeState.FAILED, message="Bridge approval reverted"), None
        return self._save(intent, message="Approval still pending"), None

    async def _submit_bridge(
        self, wallet: WalletContext, intent: BridgeIntent, quote: BridgeQuote | None
    ) -> BridgeIntent:
        if intent.bridge_tx_hash:
            return self._save(intent, state=BridgeState.AWAITING_ARRIVAL)
        gas = await self.gas.ensure_gas(wallet, intent.from_chain, "bridge")
        if not gas.ready:
            return self._save(intent, message=gas.message)
        if quote is None:
            quote = await self._quote(wallet, intent)
        if quote.transaction_request is None:
            return self._save(intent, state=BridgeState.FAILED, message="Bridge quote has no transaction")
        tx_hash = await self.sender.send(wallet, quote.transaction_request)
        return self._save(
            intent,
            state=BridgeState.AWAITING_ARRIVAL,
            bridge_tx_hash=tx_hash,
            tool=quote.tool or intent.tool,
            message=f"Bridge submitted via {quote.tool or 'aggregator'}",
        )

    async def submit(self, wallet: WalletContext, intent: BridgeIntent) -> BridgeIntent:
        """Drive the intent up to a submitted bridge transaction.

        Returns early, with ``message`` explaining why, when approval is still
        pending or gas is short. Upstream errors leave the cursor where it was.
        """

        wallet = require_wallet(wallet)
        intent = self.store.get(intent.wallet, intent.key) or intent
        if intent.state in SUBMITTED_STATES or intent.state in FINAL_STATES:
            return intent
        if intent.key in self._in_flight:
            return replace(intent, message="Another run is already submitting this bridge")
        # claimed before the first await so concurrent runs cannot both send
        self._in_flight.add(intent.key)
        try:
            return await self._advance(wallet, intent)
        finally:
            self._in_flight.discard(intent.key)

    async def _advance(self, wallet: WalletContext, intent: BridgeIntent) -> BridgeIntent:
        quote = None
        if intent.state in (BridgeState.NEEDS_APPROVAL, BridgeState.APPROVING):
            try:
                intent, quote = await self._approve(wallet, intent)
            except UpstreamError as exc:
                logger.warning("Bridge approval step for %s failed: %s", intent.key, exc)
                return self._save(intent, message=f"Approval step failed: {exc}")
        if intent.state != BridgeState.BRIDGING:
            return intent
        try:
            return await self._submit_bridge(wallet, intent, quote)
        except UpstreamError as exc:
            logger.warning("Bridge submission for %s failed: %s", intent.key, exc)
            return self._save(intent, message=f"Bridge submission failed: {exc}")

    async def wait_for_arrival(self, intent: BridgeIntent, timeout: float | None = None) -> BridgeIntent:
        if intent.state not in SUBMITTED_STATES or not intent.bridge_tx_hash:
            return intent
        tx_hash = intent.bridge_tx_hash
        status, done = await poll_until(
            lambda: self.aggregator.bridge_status(tx_hash, intent.from_chain, intent.to_chain),
            lambda s: s.state in (BridgeStatusState.DONE, BridgeStatusState.FAILED),
            interval=self.poll_interval,
            timeout=self.timeout if timeout is None else timeout,
            retry_on=(UpstreamError,),
            sleep=self._sleep,
            clock=self._clock,
        )
        if not done or status is None:
            return self._save(
                intent,
                state=BridgeState.TIMED_OUT,
                message=f"Bridge {tx_hash} has not arrived yet. Resume later to keep waiting.",
            )
        if status.state == BridgeStatusState.DONE:
            return self._save(
                intent,
                state=BridgeState.ARRIVED,
                receiving_tx_hash=status.receiving_tx_hash,
                message="Funds arrived",
            )
        return self._save(
            intent,
            state=BridgeState.FAILED,
            message=f"Bridge failed ({status.substatus or 'no detail'})",
        )

    async def run(
        self, wallet: WalletContext, intent: BridgeIntent, timeout: float | None = None
    ) -> BridgeIntent:
        intent = await self.submit(wallet, intent)
        return await self.wait_for_arrival(intent, timeout=timeout)

    def settle_arrived(self, wallet: WalletContext, to_chain: str, asset: str) -> list[BridgeIntent]:
        """Close arrived intents into ``to_chain`` once their funds are deposited."""

        settled = []
        for intent in self.store.list(wallet.key):
            if (
                intent.state == BridgeState.ARRIVED
                and not intent.settled
                and intent.to_chain == to_chain.lower()
                and intent.asset_symbol == asset.upper()
            ):
                settled.append(self._save(intent, settled=True))
        return settled


__all__ = [
    "BRIDGE_POLL_INTERVAL_S",
    "BRIDGE_TIMEOUT_S",
    "BridgeIntent",
    "BridgeOrchestrator",
    "BridgeState",
    "CursorStore",
]
