from __future__ import annotations

import copy
import logging
import os
import tomllib
from pathlib import Path
from typing import Any, cast

from .clients.aggregator import DEFAULT_SLIPPAGE_PCT, LIFI_API
from .clients.prices import COINGECKO_API, DEFAULT_NATIVE_PRICE_USD
from .clients.rpc import DEFAULT_RPC_URLS
from .core.constants import DEFAULT_CHAINS, DEFAULT_MIN_LIQUIDITY_USD, DEFAULT_PROTOCOLS
from .gas import GAS_BUFFER_PCT, SLIPPAGE_BUFFER_PCT
from .sources.defillama import DefiLlamaYieldSource

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = "~/.yield-router"

DEFAULTS: dict[str, Any] = {
    "discovery": {
        "chains": list(DEFAULT_CHAINS),
        "protocols": list(DEFAULT_PROTOCOLS),
        "min_liquidity_usd": DEFAULT_MIN_LIQUIDITY_USD,
        "cache_ttl_s": 300.0,
        "cache_path": None,
    },
    "gas": {
        "buffer_pct": GAS_BUFFER_PCT,
        "slippage_pct": SLIPPAGE_BUFFER_PCT,
        "fallback_cost_usd": 0.0,
    },
    "bridge": {
        "poll_interval_s": 15.0,
        "timeout_s": 600.0,
        "slippage_pct": DEFAULT_SLIPPAGE_PCT,
        "cursor_dir": f"{DEFAULT_STATE_DIR}/bridges",
    },
    "ledger": {"dir": f"{DEFAULT_STATE_DIR}/ledger"},
    "endpoints": {
        "custody_url": "http://localhost:8080",
        "custody_api_key": None,
        "yields_url": DefiLlamaYieldSource.URL,
        "aggregator_url": LIFI_API,
        "prices_url": COINGECKO_API,
        "native_price_fallback_usd": DEFAULT_NATIVE_PRICE_USD,
        "timeout_s": 30.0,
        "retries": 3,
    },
    "rpc": dict(DEFAULT_RPC_URLS),
}

ENV_CONFIG = "YIELD_ROUTER_CONFIG"


def load_config(path: str | Path | None = None) -> dict[str, Any]:
    """Load configuration from a TOML file and merge with defaults.

    Parameters
    ----------
    path:
        Optional path to a configuration file. When ``None`` the
        ``YIELD_ROUTER_CONFIG`` environment variable is consulted; when the
        file is missing the built-in defaults are used.

    Returns
    -------
    dict[str, Any]
        Configuration dictionary with file and environment overrides applied.
    """

    config = copy.deepcopy(DEFAULTS)
    path = path or os.getenv(ENV_CONFIG)
    cfg_path = Path(path) if path else None

    if cfg_path and cfg_path.is_file():
        with open(cfg_path, "rb") as f:
            file_cfg = tomllib.load(f)
        for k, v in file_cfg.items():
            if isinstance(v, dict) and k in config and isinstance(config[k], dict):
                cast(dict, config[k]).update(v)
            else:
                config[k] = v
    elif cfg_path:
        logger.warning("Config file not found at %s. Using defaults.", cfg_path)

    apply_env_overrides(config)
    return config


def apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    if ledger_dir := os.getenv("YIELD_ROUTER_LEDGER_DIR"):
        config.setdefault("ledger", {})["dir"] = ledger_dir
    if custody_url := os.getenv("YIELD_ROUTER_CUSTODY_URL"):
        config.setdefault("endpoints", {})["custody_url"] = custody_url
    if min_liq := os.getenv("YIELD_ROUTER_MIN_LIQUIDITY"):
        try:
            config.setdefault("discovery", {})["min_liquidity_usd"] = float(min_liq)
        except ValueError:
            logger.warning("Ignoring YIELD_ROUTER_MIN_LIQUIDITY=%r: not a number", min_liq)
    return config


__all__ = ["DEFAULTS", "ENV_CONFIG", "apply_env_overrides", "load_config"]
