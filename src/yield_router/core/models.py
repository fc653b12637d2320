"""Immutable data models used throughout yield_router."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Literal

from ..errors import NotAuthenticatedError

Action = Literal["deposit", "withdraw"]
ReceiptStatus = Literal["success", "reverted", "pending"]


@dataclass(frozen=True)
class WalletContext:
    """Identity of the wallet an operation runs for.

    Passed explicitly to every call so several wallets can be served from one
    process without sharing caches.
    """

    address: str
    wallet_id: str
    authenticated: bool = True

    @property
    def key(self) -> str:
        return self.address.lower()


def require_wallet(wallet: WalletContext | None) -> WalletContext:
    if wallet is None or not wallet.address:
        raise NotAuthenticatedError("No wallet configured. Run wallet setup first.")
    if not wallet.authenticated:
        raise NotAuthenticatedError(f"Wallet {wallet.address} is not authenticated")
    return wallet


@dataclass(frozen=True)
class TokenInfo:
    symbol: str
    address: str
    decimals: int


@dataclass(frozen=True)
class YieldOpportunity:
    """One lending pool as published by the yield feed. APYs are percentages."""

    pool_id: str
    chain: str
    protocol_id: str
    symbol: str
    base_apy: float
    reward_apy: float
    total_apy: float
    liquidity_usd: float
    is_stable: bool = False
    underlying_tokens: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["underlying_tokens"] = list(self.underlying_tokens)
        return data


@dataclass(frozen=True)
class SupplyParams:
    asset_address: str
    amount: str  # human-readable
    decimals: int
    on_behalf_of: str
    chain: str
    pool_symbol: str | None = None  # feed symbol, e.g. "STEAKUSDC" for vaults


@dataclass(frozen=True)
class WithdrawParams:
    asset_address: str
    amount: str  # human-readable, or "all"/"max"
    decimals: int
    to: str
    chain: str
    owner: str | None = None  # defaults to ``to``
    pool_symbol: str | None = None

    @property
    def share_owner(self) -> str:
        return self.owner or self.to


@dataclass(frozen=True)
class EncodedTransaction:
    to: str
    data: str
    raw_amount: int


@dataclass(frozen=True)
class YieldPlan:
    """A concrete deposit or withdraw, ready for a single execution."""

    action: Action
    protocol_id: str
    chain: str
    asset_symbol: str
    asset_address: str
    decimals: int
    human_amount: str
    raw_amount: int
    apy: float
    liquidity_usd: float
    target_contract: str
    calldata: str
    needs_approval: bool
    approval_spender: str | None = None
    estimated_gas_usd: float = 0.0
    plan_id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class TransactionRequest:
    chain: str
    to: str
    data: str = "0x"
    value: int = 0
    gas_limit: int | None = None


@dataclass(frozen=True)
class TxReceipt:
    status: ReceiptStatus
    block_number: int | None = None
    gas_used: int | None = None


@dataclass(frozen=True)
class QuoteToken:
    address: str
    symbol: str
    decimals: int
    price_usd: float = 0.0


@dataclass(frozen=True)
class SwapQuote:
    """Single-chain aggregator route; executed at most once."""

    id: str
    chain: str
    from_token: QuoteToken
    to_token: QuoteToken
    from_amount_raw: int
    to_amount_raw: int
    transaction_request: TransactionRequest | None
    approval_address: str | None = None
    tool: str = ""
    estimated_gas_usd: float = 0.0


@dataclass(frozen=True)
class BridgeQuote:
    """Cross-chain aggregator route; executed at most once."""

    id: str
    from_chain: str
    to_chain: str
    from_token: QuoteToken
    to_token: QuoteToken
    from_amount_raw: int
    to_amount_raw: int
    to_amount_min_raw: int
    transaction_request: TransactionRequest | None
    approval_address: str | None = None
    tool: str = ""
    estimated_duration_s: int = 0
    estimated_gas_usd: float = 0.0


class BridgeStatusState(str, Enum):
    PENDING = "PENDING"
    DONE = "DONE"
    FAILED = "FAILED"
    NOT_FOUND = "NOT_FOUND"


@dataclass(frozen=True)
class BridgeStatus:
    state: BridgeStatusState
    substatus: str | None = None
    receiving_tx_hash: str | None = None
    tool: str | None = None


@dataclass(frozen=True)
class YieldTransaction:
    """Ledger entry for one deposit or withdrawal."""

    id: str
    timestamp: float  # unix epoch seconds
    action: Action
    protocol_id: str
    chain: str
    asset_symbol: str
    human_amount: str
    raw_amount: int
    tx_hash: str | None = None

    @property
    def amount(self) -> Decimal:
        return Decimal(self.human_amount)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        # raw amounts exceed JSON's safe integer range
        data["raw_amount"] = str(self.raw_amount)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "YieldTransaction":
        return cls(
            id=str(data["id"]),
            timestamp=float(data["timestamp"]),
            action=data["action"],
            protocol_id=str(data["protocol_id"]),
            chain=str(data["chain"]),
            asset_symbol=str(data["asset_symbol"]),
            human_amount=str(data["human_amount"]),
            raw_amount=int(data["raw_amount"]),
            tx_hash=data.get("tx_hash"),
        )


@dataclass(frozen=True)
class Earnings:
    """Realised performance of one position."""

    net_deposited: Decimal
    current_balance: Decimal
    earned_yield: Decimal
    earned_yield_percent: float
    period_days: float
    effective_apy: float | None  # percent; None when unknown


__all__ = [
    "Action",
    "BridgeQuote",
    "BridgeStatus",
    "BridgeStatusState",
    "Earnings",
    "EncodedTransaction",
    "QuoteToken",
    "ReceiptStatus",
    "SupplyParams",
    "SwapQuote",
    "TokenInfo",
    "TransactionRequest",
    "TxReceipt",
    "WalletContext",
    "WithdrawParams",
    "YieldOpportunity",
    "YieldPlan",
    "YieldTransaction",
    "require_wallet",
]
