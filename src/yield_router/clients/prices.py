"""CoinGecko native-asset prices.

Prices only feed advisory numbers (gas cost in USD, swap sizing), so every
failure degrades to a configured fallback with a logged warning.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..errors import UpstreamError
from .http import HttpClient

logger = logging.getLogger(__name__)

COINGECKO_API = "https://api.coingecko.com/api/v3"

COINGECKO_IDS = {
    "ethereum": "ethereum",
    "base": "ethereum",
    "arbitrum": "ethereum",
    "optimism": "ethereum",
    "polygon": "matic-network",
}

DEFAULT_NATIVE_PRICE_USD = 3000.0


class CoinGeckoPriceFeed(HttpClient):
    def __init__(
        self,
        base_url: str = COINGECKO_API,
        fallback_usd: float = DEFAULT_NATIVE_PRICE_USD,
        ttl_seconds: float = 60.0,
        timeout: float = 10.0,
        retries: int = 2,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(timeout=timeout, retries=retries)
        self.base_url = base_url.rstrip("/")
        self.fallback_usd = fallback_usd
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[float, float]] = {}

    async def native_price_usd(self, chain: str) -> float:
        gecko_id = COINGECKO_IDS.get(chain.lower())
        if gecko_id is None:
            logger.warning("No price id for %s; using fallback %.2f", chain, self.fallback_usd)
            return self.fallback_usd
        cached = self._cache.get(gecko_id)
        if cached and self._clock() - cached[0] < self.ttl_seconds:
            return cached[1]
        try:
            data = await self.get_json(
                f"{self.base_url}/simple/price", params={"ids": gecko_id, "vs_currencies": "usd"}
            )
            price = float(data[gecko_id]["usd"])
        except (UpstreamError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Price lookup for %s failed: %s", gecko_id, exc)
            return self.fallback_usd
        self._cache[gecko_id] = (self._clock(), price)
        return price


__all__ = ["COINGECKO_API", "COINGECKO_IDS", "CoinGeckoPriceFeed", "DEFAULT_NATIVE_PRICE_USD"]
