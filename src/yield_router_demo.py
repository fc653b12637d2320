from __future__ import annotations

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any

import pandas as pd

from yield_router import WalletContext, YieldRouter, load_config

logger = logging.getLogger(__name__)


async def run(cfg: dict[str, Any], asset: str, outdir: Path | None = None) -> pd.DataFrame:
    """Print ranked opportunities and, with a wallet configured, its positions."""

    async with YieldRouter.from_config(cfg) as router:
        repo = await router.discovery.repository(asset)
        df = repo.to_dataframe()
        if not df.empty:
            df = df.sort_values(["total_apy", "liquidity_usd"], ascending=[False, False])
        print(f"{asset} opportunities: {len(df)}")
        if not df.empty:
            print(df[["chain", "protocol_id", "symbol", "total_apy", "liquidity_usd"]].to_string(index=False))

        address = os.getenv("YIELD_ROUTER_WALLET_ADDRESS")
        wallet_id = os.getenv("YIELD_ROUTER_WALLET_ID")
        summary = None
        if address and wallet_id:
            wallet = WalletContext(address=address, wallet_id=wallet_id)
            positions = await router.planner.list_positions(wallet, router.discovery.default_chains)
            summary = router.ledger.earnings_summary(wallet, positions)
            earnings = summary.to_dataframe()
            print(f"Open positions: {len(positions)}")
            if not earnings.empty:
                print(earnings.to_string(index=False))
            print(f"Total earned (stablecoins, USD): {summary.total_earned_usd:.2f}")
        else:
            logger.info("No wallet configured; skipping positions.")

    if outdir:
        outdir.mkdir(parents=True, exist_ok=True)
        df.to_csv(outdir / f"opportunities_{asset.lower()}.csv", index=False)
        if summary is not None:
            summary.to_dataframe().to_csv(outdir / "earnings.csv", index=False)
    return df


def main() -> None:
    """Run the demo using configuration from file or environment variables."""
    logging.basicConfig(
        level=os.getenv("YIELD_ROUTER_LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cfg_file = os.getenv("YIELD_ROUTER_CONFIG") or (sys.argv[1] if len(sys.argv) > 1 else None)
    cfg = load_config(cfg_file)
    asset = os.getenv("YIELD_ROUTER_ASSET", "USDC")
    outdir_env = os.getenv("YIELD_ROUTER_OUTDIR")
    asyncio.run(run(cfg, asset, Path(outdir_env) if outdir_env else None))


if __name__ == "__main__":
    main()
