"""
yield_router: discover, plan and execute stablecoin lending positions across EVM chains.

Design goals:
- Exact amount handling (decimal strings <-> integer raw units), never floats in calldata
- Closed set of protocol adapters (Aave v3, Compound v3, Morpho vaults) plus a plugin table
- Yield discovery over the DefiLlama pools feed with TTL caching
- Gas sufficiency checks with automatic swap into native gas
- Resumable bridge -> approve -> deposit flow with a persisted step cursor
- Per-wallet earnings ledger with realised APY
- No key material here; signing is delegated to a custody service.
"""

from __future__ import annotations

import logging

from .amounts import from_raw_units, to_raw_units
from .bridge import BridgeIntent, BridgeOrchestrator, BridgeState, CursorStore
from .config import load_config
from .core import OpportunityRepository, WalletContext, YieldOpportunity, YieldPlan, YieldTransaction
from .engine import YieldRouter
from .errors import (
    AdapterUnavailableError,
    AmountFormatError,
    NegativeAmountError,
    NotAuthenticatedError,
    PlanConsumedError,
    RpcError,
    UpstreamError,
    YieldRouterError,
)
from .execution import ExecutionResult, ExecutionStatus, YieldExecutor
from .gas import GasCheckOutcome, GasSufficiencyEngine
from .ledger import EarningsLedger, EarningsSummary, compute_earnings
from .planner import Position, YieldPlanBuilder
from .protocols import get_protocol_adapter, register_adapter, supported_protocols
from .sources import DefiLlamaYieldSource, YieldDiscovery
from .workflow import DepositPreparation, EarnWorkflow, WorkflowOutcome

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "AdapterUnavailableError",
    "AmountFormatError",
    "BridgeIntent",
    "BridgeOrchestrator",
    "BridgeState",
    "CursorStore",
    "DefiLlamaYieldSource",
    "DepositPreparation",
    "EarnWorkflow",
    "EarningsLedger",
    "EarningsSummary",
    "ExecutionResult",
    "ExecutionStatus",
    "GasCheckOutcome",
    "GasSufficiencyEngine",
    "NegativeAmountError",
    "NotAuthenticatedError",
    "OpportunityRepository",
    "PlanConsumedError",
    "Position",
    "RpcError",
    "UpstreamError",
    "WalletContext",
    "WorkflowOutcome",
    "YieldDiscovery",
    "YieldExecutor",
    "YieldOpportunity",
    "YieldPlan",
    "YieldPlanBuilder",
    "YieldRouter",
    "YieldRouterError",
    "YieldTransaction",
    "compute_earnings",
    "from_raw_units",
    "get_protocol_adapter",
    "load_config",
    "register_adapter",
    "supported_protocols",
    "to_raw_units",
]
