"""In-memory repositories for yield_router data models."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

import pandas as pd

from .models import YieldOpportunity


def rank_key(opp: YieldOpportunity) -> tuple[float, float, str]:
    # total APY desc, liquidity desc, chain asc
    return (-opp.total_apy, -opp.liquidity_usd, opp.chain)


class OpportunityRepository:
    """Lightweight collection of yield opportunities with pandas export."""

    def __init__(self, opportunities: Iterable[YieldOpportunity] | None = None) -> None:
        self._items: list[YieldOpportunity] = list(opportunities) if opportunities else []

    def add(self, opportunity: YieldOpportunity) -> None:
        self._items.append(opportunity)

    def extend(self, items: Iterable[YieldOpportunity]) -> None:
        self._items.extend(items)

    def filter(
        self,
        *,
        asset: str | None = None,
        chains: Iterable[str] | None = None,
        protocol_ids: Iterable[str] | None = None,
        min_liquidity_usd: float = 0.0,
    ) -> "OpportunityRepository":
        chain_set = {c.lower() for c in chains} if chains is not None else None
        protocol_set = set(protocol_ids) if protocol_ids is not None else None
        needle = asset.upper() if asset else None
        res: list[YieldOpportunity] = []
        for opp in self._items:
            if chain_set is not None and opp.chain.lower() not in chain_set:
                continue
            if protocol_set is not None and opp.protocol_id not in protocol_set:
                continue
            if needle and needle not in opp.symbol.upper():
                continue
            if opp.liquidity_usd < min_liquidity_usd:
                continue
            res.append(opp)
        return OpportunityRepository(res)

    def ranked(self) -> list[YieldOpportunity]:
        return sorted(self._items, key=rank_key)

    def best(self) -> YieldOpportunity | None:
        ranked = self.ranked()
        return ranked[0] if ranked else None

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([opp.to_dict() for opp in self._items])

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[YieldOpportunity]:
        return iter(self._items)


__all__ = ["OpportunityRepository", "rank_key"]
