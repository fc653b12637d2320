"""Protocol adapters for lending deposits and withdrawals.

The built-in set is closed and keyed by :class:`ProtocolId`; identifiers match
the DefiLlama ``project`` names. Third-party adapters can be added at runtime
with :func:`register_adapter`.
"""

from __future__ import annotations

from enum import Enum

from .aave_v3 import AaveV3Adapter
from .base import ProtocolAdapter, base_asset_symbol
from .compound_v3 import CompoundV3Adapter
from .morpho import MorphoAdapter


class ProtocolId(str, Enum):
    AAVE_V3 = "aave-v3"
    COMPOUND_V3 = "compound-v3"
    MORPHO_V1 = "morpho-v1"


_BUILTIN: dict[ProtocolId, ProtocolAdapter] = {
    ProtocolId.AAVE_V3: AaveV3Adapter(),
    ProtocolId.COMPOUND_V3: CompoundV3Adapter(),
    ProtocolId.MORPHO_V1: MorphoAdapter(),
}

_PLUGINS: dict[str, ProtocolAdapter] = {}


def get_protocol_adapter(protocol_id: str) -> ProtocolAdapter | None:
    """Case-insensitive lookup; ``None`` for unknown identifiers."""

    key = protocol_id.strip().lower()
    try:
        return _BUILTIN[ProtocolId(key)]
    except ValueError:
        return _PLUGINS.get(key)


def register_adapter(adapter: ProtocolAdapter) -> None:
    key = adapter.protocol_id.lower()
    if key in {p.value for p in ProtocolId}:
        raise ValueError(f"Cannot replace built-in adapter {key!r}")
    _PLUGINS[key] = adapter


def unregister_adapter(protocol_id: str) -> None:
    _PLUGINS.pop(protocol_id.lower(), None)


def supported_protocols() -> list[str]:
    return [p.value for p in ProtocolId] + sorted(_PLUGINS)


def is_protocol_supported(protocol_id: str) -> bool:
    return get_protocol_adapter(protocol_id) is not None


__all__ = [
    "AaveV3Adapter",
    "CompoundV3Adapter",
    "MorphoAdapter",
    "ProtocolAdapter",
    "ProtocolId",
    "base_asset_symbol",
    "get_protocol_adapter",
    "is_protocol_supported",
    "register_adapter",
    "supported_protocols",
    "unregister_adapter",
]
