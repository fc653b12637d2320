"""Earnings ledger: persisted deposit/withdraw history and realised yield."""

from __future__ import annotations

from .earnings import APY_SANITY_CEILING, annualize, compute_earnings, net_principal
from .store import EarningsLedger, EarningsSummary, PositionEarnings

__all__ = [
    "APY_SANITY_CEILING",
    "EarningsLedger",
    "EarningsSummary",
    "PositionEarnings",
    "annualize",
    "compute_earnings",
    "net_principal",
]
