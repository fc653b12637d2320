"""Realised-yield arithmetic over ledger entries."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from decimal import Decimal

from ..core.models import Earnings, YieldTransaction

SECONDS_PER_DAY = 86_400
# Annualised figures above this (percent) come from windows too short to mean anything.
APY_SANITY_CEILING = 1000.0


def _as_decimal(value: Decimal | int | str | float) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def net_principal(transactions: Sequence[YieldTransaction]) -> Decimal:
    deposited = sum((tx.amount for tx in transactions if tx.action == "deposit"), Decimal(0))
    withdrawn = sum((tx.amount for tx in transactions if tx.action == "withdraw"), Decimal(0))
    return deposited - withdrawn


def annualize(ratio: float, days: float) -> float | None:
    """Compound ``ratio`` earned over ``days`` to a 365-day percentage."""

    try:
        apy = ((1.0 + ratio) ** (365.0 / days) - 1.0) * 100.0
    except (OverflowError, ZeroDivisionError):
        return None
    if isinstance(apy, complex) or apy > APY_SANITY_CEILING:
        return None
    return apy


def compute_earnings(
    transactions: Sequence[YieldTransaction],
    current_balance: Decimal | int | str | float,
    now: float | None = None,
) -> Earnings:
    """Earnings of one position given its ledger entries and live balance.

    Without history the whole balance is unattributed yield and the APY is
    unknown. ``earned_yield`` may be negative; it is never clamped.
    """

    balance = _as_decimal(current_balance)
    if not transactions:
        return Earnings(
            net_deposited=Decimal(0),
            current_balance=balance,
            earned_yield=balance,
            earned_yield_percent=0.0,
            period_days=0.0,
            effective_apy=None,
        )

    net = net_principal(transactions)
    earned = balance - net
    percent = float(earned / net * 100) if net > 0 else 0.0

    deposits = [tx.timestamp for tx in transactions if tx.action == "deposit"]
    if now is None:
        now = datetime.now(tz=UTC).timestamp()
    days = (now - min(deposits)) / SECONDS_PER_DAY if deposits else 0.0

    effective_apy = None
    if days >= 1 and net > 0 and balance > 0:
        effective_apy = annualize(float(earned / net), days)

    return Earnings(
        net_deposited=net,
        current_balance=balance,
        earned_yield=earned,
        earned_yield_percent=percent,
        period_days=days,
        effective_apy=effective_apy,
    )


__all__ = ["APY_SANITY_CEILING", "SECONDS_PER_DAY", "annualize", "compute_earnings", "net_principal"]
