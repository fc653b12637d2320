"""DefiLlama yields adapter returning :class:`~yield_router.core.YieldOpportunity` instances."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from ..clients.http import HttpClient
from ..core import OpportunityRepository, YieldOpportunity
from ..core.constants import DEFAULT_CHAINS, DEFAULT_MIN_LIQUIDITY_USD, DEFAULT_PROTOCOLS
from ..errors import UpstreamError

logger = logging.getLogger(__name__)


def _as_float(value: Any) -> float:
    if value is None:
        return 0.0
    return float(value)


def parse_pool(item: dict[str, Any]) -> YieldOpportunity:
    """Map one ``/pools`` entry onto :class:`YieldOpportunity`; null APYs become 0."""

    base_apy = _as_float(item.get("apyBase"))
    reward_apy = _as_float(item.get("apyReward"))
    total = item.get("apy")
    total_apy = _as_float(total) if total is not None else base_apy + reward_apy
    return YieldOpportunity(
        pool_id=str(item.get("pool", "")),
        chain=str(item.get("chain", "")).lower(),
        protocol_id=str(item.get("project", "")),
        symbol=str(item.get("symbol", "")),
        base_apy=base_apy,
        reward_apy=reward_apy,
        total_apy=total_apy,
        liquidity_usd=_as_float(item.get("tvlUsd")),
        is_stable=bool(item.get("stablecoin")),
        underlying_tokens=tuple(str(t) for t in item.get("underlyingTokens") or ()),
    )


class DefiLlamaYieldSource(HttpClient):
    """HTTP client for https://yields.llama.fi/pools.

    ``cache_path`` pins the raw feed to a JSON file (read if present, written
    after a network fetch). Parsed pools are additionally kept in memory for
    ``ttl_seconds``; the feed is the same for every wallet.
    """

    URL = "https://yields.llama.fi/pools"

    def __init__(
        self,
        cache_path: str | Path | None = None,
        ttl_seconds: float = 300.0,
        url: str | None = None,
        timeout: float = 30.0,
        retries: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(timeout=timeout, retries=retries)
        self.cache_path = Path(cache_path) if cache_path else None
        self.ttl_seconds = ttl_seconds
        self.url = url or self.URL
        self._clock = clock
        self._cached: tuple[float, list[YieldOpportunity]] | None = None

    async def _load(self) -> Any:
        if self.cache_path and self.cache_path.exists():
            with self.cache_path.open() as f:
                return json.load(f)
        data = await self.get_json(self.url)  # pragma: no cover - network path
        if self.cache_path:  # pragma: no cover - network path
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            with self.cache_path.open("w") as f:
                json.dump(data, f)
        return data  # pragma: no cover - network path

    def invalidate(self) -> None:
        self._cached = None

    async def fetch(self) -> list[YieldOpportunity]:
        if self._cached is not None:
            stamp, pools = self._cached
            if self._clock() - stamp < self.ttl_seconds:
                return list(pools)
        try:
            raw = await self._load()
        except (UpstreamError, OSError, ValueError) as exc:
            logger.warning("DefiLlama request failed: %s", exc)
            return []
        items = raw.get("data") if isinstance(raw, dict) else None
        if not isinstance(items, list):
            logger.warning("DefiLlama response has no 'data' list")
            return []
        pools: list[YieldOpportunity] = []
        for item in items:
            try:
                pools.append(parse_pool(item))
            except (AttributeError, TypeError, ValueError) as exc:
                logger.debug("Skipping malformed DefiLlama pool %r: %s", item, exc)
        self._cached = (self._clock(), pools)
        return list(pools)


class YieldDiscovery:
    """Filter and rank feed pools into deposit candidates.

    Ordering is total APY descending, then liquidity descending, then chain
    name ascending. A feed outage yields an empty list rather than an error.
    """

    def __init__(
        self,
        source,
        *,
        default_chains: Iterable[str] = DEFAULT_CHAINS,
        default_protocols: Iterable[str] = DEFAULT_PROTOCOLS,
        min_liquidity_usd: float = DEFAULT_MIN_LIQUIDITY_USD,
    ) -> None:
        self.source = source
        self.default_chains = tuple(default_chains)
        self.default_protocols = tuple(default_protocols)
        self.min_liquidity_usd = min_liquidity_usd

    async def repository(
        self,
        asset: str,
        *,
        chains: Iterable[str] | None = None,
        min_liquidity_usd: float | None = None,
        protocol_ids: Iterable[str] | None = None,
    ) -> OpportunityRepository:
        pools = await self.source.fetch()
        return OpportunityRepository(pools).filter(
            asset=asset,
            chains=self.default_chains if chains is None else chains,
            protocol_ids=self.default_protocols if protocol_ids is None else protocol_ids,
            min_liquidity_usd=(
                self.min_liquidity_usd if min_liquidity_usd is None else min_liquidity_usd
            ),
        )

    async def list_opportunities(
        self,
        asset: str,
        *,
        chains: Iterable[str] | None = None,
        min_liquidity_usd: float | None = None,
        protocol_ids: Iterable[str] | None = None,
    ) -> list[YieldOpportunity]:
        repo = await self.repository(
            asset, chains=chains, min_liquidity_usd=min_liquidity_usd, protocol_ids=protocol_ids
        )
        ranked = repo.ranked()
        logger.info("Found %d yield opportunities for %s", len(ranked), asset)
        return ranked

    async def best_opportunity(
        self, asset: str, chains: Iterable[str] | None = None
    ) -> YieldOpportunity | None:
        ranked = await self.list_opportunities(asset, chains=chains)
        return ranked[0] if ranked else None


__all__ = ["DefiLlamaYieldSource", "YieldDiscovery", "parse_pool"]
