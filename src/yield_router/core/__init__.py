"""Core data structures for :mod:`yield_router`.

This subpackage groups the models, constants and repositories shared by the
protocol adapters, discovery, planning and ledger layers so they can be
imported without pulling in the HTTP clients.
"""

from __future__ import annotations

from .constants import CHAIN_IDS, STABLE_TOKENS, TOKENS
from .models import (
    BridgeQuote,
    BridgeStatus,
    BridgeStatusState,
    Earnings,
    EncodedTransaction,
    QuoteToken,
    SupplyParams,
    SwapQuote,
    TokenInfo,
    TransactionRequest,
    TxReceipt,
    WalletContext,
    WithdrawParams,
    YieldOpportunity,
    YieldPlan,
    YieldTransaction,
    require_wallet,
)
from .repositories import OpportunityRepository
from .tokens import resolve_token

__all__ = [
    "BridgeQuote",
    "BridgeStatus",
    "BridgeStatusState",
    "CHAIN_IDS",
    "Earnings",
    "EncodedTransaction",
    "OpportunityRepository",
    "QuoteToken",
    "STABLE_TOKENS",
    "SupplyParams",
    "SwapQuote",
    "TOKENS",
    "TokenInfo",
    "TransactionRequest",
    "TxReceipt",
    "WalletContext",
    "WithdrawParams",
    "YieldOpportunity",
    "YieldPlan",
    "YieldTransaction",
    "require_wallet",
    "resolve_token",
]
