"""Append-only per-wallet ledger of deposits and withdrawals.

Each wallet owns one JSON document ``<root_dir>/<address>.json``. Documents
are loaded on first access, cached by lower-cased address, and rewritten in
full on every append.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import pandas as pd

from ..core.constants import STABLE_TOKENS
from ..core.models import Earnings, WalletContext, YieldTransaction
from .earnings import compute_earnings

logger = logging.getLogger(__name__)

LEDGER_VERSION = 1
ACTIONS = ("deposit", "withdraw")


def _wallet_key(wallet: WalletContext | str) -> str:
    address = wallet.address if isinstance(wallet, WalletContext) else wallet
    return address.strip().lower()


@dataclass(frozen=True)
class PositionEarnings:
    asset_symbol: str
    chain: str
    protocol_id: str
    earnings: Earnings

    def to_dict(self) -> dict[str, Any]:
        e = self.earnings
        return {
            "asset_symbol": self.asset_symbol,
            "chain": self.chain,
            "protocol_id": self.protocol_id,
            "net_deposited": float(e.net_deposited),
            "current_balance": float(e.current_balance),
            "earned_yield": float(e.earned_yield),
            "earned_yield_percent": e.earned_yield_percent,
            "period_days": e.period_days,
            "effective_apy": e.effective_apy,
        }


@dataclass(frozen=True)
class EarningsSummary:
    positions: list[PositionEarnings] = field(default_factory=list)
    # stablecoin yield only, at 1 token = 1 USD
    total_earned_usd: Decimal = Decimal(0)

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([p.to_dict() for p in self.positions])


class EarningsLedger:
    def __init__(self, root_dir: str | Path, clock: Callable[[], float] | None = None) -> None:
        self.root_dir = Path(root_dir).expanduser()
        self._clock = clock or (lambda: datetime.now(tz=UTC).timestamp())
        self._documents: dict[str, dict[str, Any]] = {}

    def _path(self, key: str) -> Path:
        return self.root_dir / f"{key}.json"

    def _empty(self, key: str) -> dict[str, Any]:
        return {
            "version": LEDGER_VERSION,
            "wallet_address": key,
            "next_seq": 0,
            "transactions": [],
            "last_updated": self._clock(),
        }

    def _load(self, key: str) -> dict[str, Any]:
        doc = self._documents.get(key)
        if doc is not None:
            return doc
        path = self._path(key)
        doc = self._empty(key)
        if path.exists():
            try:
                with path.open() as f:
                    stored = json.load(f)
                if str(stored.get("wallet_address", "")).lower() != key:
                    raise ValueError(f"ledger belongs to {stored.get('wallet_address')!r}")
                stored["transactions"] = [
                    YieldTransaction.from_dict(item).to_dict() for item in stored["transactions"]
                ]
                stored.setdefault("next_seq", len(stored["transactions"]))
                doc = stored
            except (OSError, ValueError, KeyError, TypeError) as exc:
                backup = path.with_suffix(f".corrupt-{int(self._clock())}")
                logger.warning("Unreadable ledger %s (%s); moved to %s", path, exc, backup)
                path.replace(backup)
        self._documents[key] = doc
        return doc

    def _save(self, key: str, doc: dict[str, Any]) -> None:
        self.root_dir.mkdir(parents=True, exist_ok=True)
        doc["last_updated"] = self._clock()
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        with tmp.open("w") as f:
            json.dump(doc, f, indent=2)
        os.replace(tmp, path)

    def record(
        self,
        wallet: WalletContext | str,
        action: str,
        protocol_id: str,
        chain: str,
        asset_symbol: str,
        human_amount: str,
        raw_amount: int,
        tx_hash: str | None = None,
    ) -> YieldTransaction:
        """Append one entry and persist the wallet's document."""

        if action not in ACTIONS:
            raise ValueError(f"action must be one of {ACTIONS}, got {action!r}")
        try:
            Decimal(human_amount)
        except InvalidOperation:
            raise ValueError(f"Invalid amount {human_amount!r}") from None
        key = _wallet_key(wallet)
        doc = self._load(key)
        seq = int(doc["next_seq"])
        timestamp = self._clock()
        asset = asset_symbol.upper()
        chain_key = chain.lower()
        entry = YieldTransaction(
            id=f"{int(timestamp * 1000)}-{action}-{asset}-{chain_key}-{seq}",
            timestamp=timestamp,
            action=action,  # type: ignore[arg-type]
            protocol_id=protocol_id.lower(),
            chain=chain_key,
            asset_symbol=asset,
            human_amount=human_amount.strip(),
            raw_amount=int(raw_amount),
            tx_hash=tx_hash,
        )
        doc["transactions"].append(entry.to_dict())
        doc["next_seq"] = seq + 1
        self._save(key, doc)
        logger.info("Recorded %s of %s %s on %s", action, entry.human_amount, asset, chain_key)
        return entry

    def transactions(self, wallet: WalletContext | str) -> list[YieldTransaction]:
        doc = self._load(_wallet_key(wallet))
        return [YieldTransaction.from_dict(item) for item in doc["transactions"]]

    def transactions_for_position(
        self,
        wallet: WalletContext | str,
        asset_symbol: str,
        chain: str,
        protocol_id: str = "aave-v3",
    ) -> list[YieldTransaction]:
        asset, chain_key, protocol = asset_symbol.upper(), chain.lower(), protocol_id.lower()
        return [
            tx
            for tx in self.transactions(wallet)
            if tx.asset_symbol.upper() == asset
            and tx.chain.lower() == chain_key
            and tx.protocol_id.lower() == protocol
        ]

    def earnings(
        self,
        wallet: WalletContext | str,
        asset_symbol: str,
        chain: str,
        protocol_id: str,
        current_balance: Decimal | int | str | float,
    ) -> Earnings:
        txs = self.transactions_for_position(wallet, asset_symbol, chain, protocol_id)
        return compute_earnings(txs, current_balance, now=self._clock())

    def earnings_summary(self, wallet: WalletContext | str, positions: Iterable[Any]) -> EarningsSummary:
        """Earnings for each live position.

        ``positions`` items need ``asset_symbol``, ``chain``, ``protocol_id``
        and ``balance`` attributes, as on :class:`yield_router.planner.Position`.
        """

        rows: list[PositionEarnings] = []
        total = Decimal(0)
        for pos in positions:
            earned = self.earnings(wallet, pos.asset_symbol, pos.chain, pos.protocol_id, pos.balance)
            rows.append(
                PositionEarnings(
                    asset_symbol=pos.asset_symbol.upper(),
                    chain=pos.chain.lower(),
                    protocol_id=pos.protocol_id.lower(),
                    earnings=earned,
                )
            )
            if pos.asset_symbol.upper() in STABLE_TOKENS:
                total += earned.earned_yield
        return EarningsSummary(positions=rows, total_earned_usd=total)

    def clear(self, wallet: WalletContext | str) -> None:
        key = _wallet_key(wallet)
        self._documents.pop(key, None)
        self._path(key).unlink(missing_ok=True)


__all__ = ["ACTIONS", "EarningsLedger", "EarningsSummary", "LEDGER_VERSION", "PositionEarnings"]
