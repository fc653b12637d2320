"""Yield feed adapters used by :mod:`yield_router`."""

from __future__ import annotations

from typing import Protocol

from ..core import YieldOpportunity
from .defillama import DefiLlamaYieldSource, YieldDiscovery, parse_pool


class YieldSource(Protocol):
    """Adapter protocol returning opportunities for :class:`YieldDiscovery`."""

    async def fetch(self) -> list[YieldOpportunity]: ...


__all__ = [
    "DefiLlamaYieldSource",
    "YieldDiscovery",
    "YieldSource",
    "parse_pool",
]
