"""Exception hierarchy for :mod:`yield_router`.

Only genuinely exceptional situations raise. Expected outcomes such as "no
opportunity", "approval required" or "bridge still pending" are returned as
structured results by the planner, executor and orchestrator instead.
"""

from __future__ import annotations


class YieldRouterError(Exception):
    """Base class for all errors raised by the engine."""


class NotAuthenticatedError(YieldRouterError):
    """No wallet context is available or it has not completed authentication."""


class AmountFormatError(YieldRouterError, ValueError):
    """A human-readable amount contains characters other than digits and one dot."""


class NegativeAmountError(AmountFormatError):
    """A human-readable amount is negative."""


class AdapterUnavailableError(YieldRouterError):
    """A protocol adapter cannot serve the requested chain or asset."""


class UpstreamError(YieldRouterError):
    """An authoritative upstream (RPC, custody, aggregator) failed."""


class HttpStatusError(UpstreamError):
    """An HTTP upstream answered with a non-2xx status."""

    def __init__(self, message: str, *, status: int) -> None:
        super().__init__(message)
        self.status = status


class RpcError(UpstreamError):
    """A JSON-RPC node returned an error object."""

    def __init__(self, message: str, *, code: int | None = None, data: str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data


class PlanConsumedError(YieldRouterError):
    """A plan or quote was submitted a second time."""


__all__ = [
    "YieldRouterError",
    "NotAuthenticatedError",
    "AmountFormatError",
    "NegativeAmountError",
    "AdapterUnavailableError",
    "UpstreamError",
    "HttpStatusError",
    "RpcError",
    "PlanConsumedError",
]
