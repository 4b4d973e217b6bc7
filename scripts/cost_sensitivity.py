#!/usr/bin/env python3
from __future__ import annotations
import argparse, sys
from pathlib import Path

from mv_backtest.data_io import load_returns
from mv_backtest.optimize import transaction_cost_sensitivity
from mv_backtest.risk import estimate_moments, window_slice
from mv_backtest.utils import load_config

def parse_floats(text: str) -> list[float]:
    return [float(x) for x in text.split(",") if x.strip()]

def main() -> int:
    ap = argparse.ArgumentParser(
        description="Distance of the cost-aware efficient portfolio from the minimum-variance portfolio "
                    "over a grid of risk aversion and transaction cost values."
    )
    ap.add_argument("--config", required=True, help="Run config (reads data.returns_path and backtest.window_length)")
    ap.add_argument("--gammas", default="2,4,8,20", help="Comma-separated risk aversion values")
    ap.add_argument("--betas-bps", default="0,5,10,20,50,100,200",
                    help="Comma-separated transaction costs in basis points")
    ap.add_argument("--outdir", default=None, help="Output directory (default: paths.output_dir)")
    args = ap.parse_args()

    cfg = load_config(args.config)
    panel = load_returns(cfg["data"]["returns_path"])
    W = int(cfg.get("backtest", {}).get("window_length", len(panel)))
    W = min(W, len(panel))

    # Most recent window only
    Sigma, mu = estimate_moments(window_slice(panel, len(panel) - W, W))

    gammas = parse_floats(args.gammas)
    betas = parse_floats(args.betas_bps)
    if not gammas or not betas:
        print("Need at least one gamma and one beta.", file=sys.stderr)
        return 1

    df = transaction_cost_sensitivity(Sigma, mu, gammas, betas)

    outdir = Path(args.outdir or cfg.get("paths", {}).get("output_dir", "data/outputs"))
    outdir.mkdir(parents=True, exist_ok=True)
    csv_path = outdir / "cost_sensitivity.csv"
    df.to_csv(csv_path, index=False)

    table = df.pivot(index="beta_bps", columns="gamma", values="distance")
    print("L1 distance from minimum-variance weights (rows: beta bps, cols: gamma)")
    print(table.round(4).to_string())
    print(f"Wrote {csv_path}")
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
