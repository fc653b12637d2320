"""Wire every component from a configuration mapping.

``YieldRouter`` owns the HTTP clients and opens their sessions on entry, so a
whole run lives inside a single ``async with``::

    async with YieldRouter.from_config(load_config()) as router:
        opportunities = await router.discovery.list_opportunities("USDC")
"""

from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import Any

from .bridge import BridgeOrchestrator, CursorStore
from .clients import CoinGeckoPriceFeed, CustodyClient, JsonRpcClient, LiFiClient, TransactionSender
from .config import DEFAULTS
from .execution import YieldExecutor
from .gas import GasSufficiencyEngine
from .ledger import EarningsLedger
from .planner import YieldPlanBuilder
from .sources import DefiLlamaYieldSource, YieldDiscovery
from .workflow import EarnWorkflow

logger = logging.getLogger(__name__)


class YieldRouter:
    def __init__(self, cfg: dict[str, Any]) -> None:
        self.cfg = cfg
        discovery_cfg = {**DEFAULTS["discovery"], **cfg.get("discovery", {})}
        gas_cfg = {**DEFAULTS["gas"], **cfg.get("gas", {})}
        bridge_cfg = {**DEFAULTS["bridge"], **cfg.get("bridge", {})}
        ledger_cfg = {**DEFAULTS["ledger"], **cfg.get("ledger", {})}
        endpoints = {**DEFAULTS["endpoints"], **cfg.get("endpoints", {})}
        timeout = float(endpoints["timeout_s"])
        retries = int(endpoints["retries"])

        self.source = DefiLlamaYieldSource(
            cache_path=discovery_cfg.get("cache_path"),
            ttl_seconds=float(discovery_cfg["cache_ttl_s"]),
            url=endpoints["yields_url"],
            timeout=timeout,
            retries=retries,
        )
        self.rpc = JsonRpcClient(cfg.get("rpc"), timeout=timeout, retries=retries)
        self.custody = CustodyClient(
            endpoints["custody_url"], api_key=endpoints.get("custody_api_key"), timeout=timeout, retries=retries
        )
        self.aggregator = LiFiClient(
            endpoints["aggregator_url"],
            slippage_pct=float(bridge_cfg["slippage_pct"]),
            timeout=timeout,
            retries=retries,
        )
        self.prices = CoinGeckoPriceFeed(
            endpoints["prices_url"], fallback_usd=float(endpoints["native_price_fallback_usd"])
        )

        self.discovery = YieldDiscovery(
            self.source,
            default_chains=discovery_cfg["chains"],
            default_protocols=discovery_cfg["protocols"],
            min_liquidity_usd=float(discovery_cfg["min_liquidity_usd"]),
        )
        self.sender = TransactionSender(self.rpc, self.custody)
        self.gas = GasSufficiencyEngine(
            self.rpc,
            self.prices,
            self.aggregator,
            self.sender,
            buffer_pct=int(gas_cfg["buffer_pct"]),
            slippage_pct=int(gas_cfg["slippage_pct"]),
            fallback_cost_usd=float(gas_cfg["fallback_cost_usd"]),
        )
        self.planner = YieldPlanBuilder(self.discovery, self.rpc, self.gas)
        self.ledger = EarningsLedger(Path(ledger_cfg["dir"]))
        self.executor = YieldExecutor(self.rpc, self.sender, self.gas, self.ledger, wait_for_receipt=True)
        self.bridge = BridgeOrchestrator(
            self.aggregator,
            self.rpc,
            self.sender,
            self.gas,
            CursorStore(Path(bridge_cfg["cursor_dir"])),
            poll_interval=float(bridge_cfg["poll_interval_s"]),
            timeout=float(bridge_cfg["timeout_s"]),
        )
        self.workflow = EarnWorkflow(self.planner, self.executor, self.bridge, self.rpc)
        self._stack: contextlib.AsyncExitStack | None = None

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> "YieldRouter":
        return cls(cfg)

    async def __aenter__(self) -> "YieldRouter":
        stack = contextlib.AsyncExitStack()
        for client in (self.source, self.rpc, self.custody, self.aggregator, self.prices):
            await stack.enter_async_context(client)
        self._stack = stack
        return self

    async def __aexit__(self, *exc: object) -> None:
        if self._stack is not None:
            await self._stack.aclose()
            self._stack = None


__all__ = ["YieldRouter"]
