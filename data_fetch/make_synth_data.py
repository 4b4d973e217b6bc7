#!/usr/bin/env python3
"""
Deterministic synthetic return generator for backtest testing.

Generates monthly excess returns for a small set of industry-like assets from
a one-factor model and writes them in the long format the engine loads.
"""

import pandas as pd
import numpy as np
import argparse
from pathlib import Path
from typing import Any, Dict, List


# =============================================================================
# PARAMETERS (easy to tweak)
# =============================================================================

N_ASSETS = 10
N_PERIODS = 240  # months
START_DATE = "2000-01-01"
SEED = 7

# Factor model parameters (monthly)
MARKET_MEAN = 0.006
MARKET_STD = 0.045
BETA_RANGE = (0.7, 1.3)
ALPHA_STD = 0.002
EPSILON_SIG = 0.03  # idiosyncratic monthly std

ASSET_NAMES = [
    "NoDur", "Durbl", "Manuf", "Enrgy", "HiTec",
    "Telcm", "Shops", "Hlth", "Utils", "Other"
]


def generate_calendar(n_periods: int) -> pd.DatetimeIndex:
    """Month-end calendar."""
    return pd.date_range(START_DATE, periods=n_periods, freq="MS") + pd.offsets.MonthEnd(0)


def generate_universe(n_assets: int) -> List[str]:
    """Asset ids: industry names first, then A010, A011, ..."""
    names = ASSET_NAMES[:n_assets]
    names += [f"A{i:03d}" for i in range(len(names), n_assets)]
    return names


def generate_returns(calendar: pd.DatetimeIndex, assets: List[str], seed: int = SEED) -> pd.DataFrame:
    """
    One-factor excess returns: r_it = a_i + b_i * m_t + e_it.

    Returns:
        Long DataFrame with columns ["period", "asset", "ret"]
    """
    rng = np.random.default_rng(seed)
    n_periods, n_assets = len(calendar), len(assets)

    market = rng.normal(MARKET_MEAN, MARKET_STD, size=n_periods)
    betas = rng.uniform(BETA_RANGE[0], BETA_RANGE[1], size=n_assets)
    alphas = rng.normal(0.0, ALPHA_STD, size=n_assets)
    noise = rng.normal(0.0, EPSILON_SIG, size=(n_periods, n_assets))

    wide = alphas[None, :] + market[:, None] * betas[None, :] + noise
    # Excess returns cannot fall below -100%
    wide = np.clip(wide, -0.95, None)

    panel = pd.DataFrame(wide, index=calendar, columns=assets)
    long = panel.rename_axis("period").reset_index().melt(
        id_vars="period", var_name="asset", value_name="ret"
    )
    long["period"] = long["period"].dt.strftime("%Y-%m-%d")
    return long.sort_values(["period", "asset"]).reset_index(drop=True)


def generate(outdir: str = "data", n_assets: int = N_ASSETS, n_periods: int = N_PERIODS,
             seed: int = SEED) -> Dict[str, Any]:
    """
    Generate returns.csv in outdir.

    Returns:
        Summary dict with counts, date range and output path
    """
    out_path = Path(outdir)
    out_path.mkdir(parents=True, exist_ok=True)

    calendar = generate_calendar(n_periods)
    assets = generate_universe(n_assets)
    returns_df = generate_returns(calendar, assets, seed=seed)

    returns_path = out_path / "returns.csv"
    returns_df.to_csv(returns_path, index=False)

    summary = {
        'total_assets': len(assets),
        'total_periods': len(calendar),
        'period_range': (returns_df['period'].min(), returns_df['period'].max()),
        'mean_return': float(returns_df['ret'].mean()),
        'returns_path': str(returns_path),
    }

    print("=== SYNTHETIC DATA GENERATION SUMMARY ===")
    print(f"Assets: {summary['total_assets']}")
    print(f"Periods: {summary['total_periods']}")
    print(f"Period range: {summary['period_range'][0]} to {summary['period_range'][1]}")
    print(f"Output: {returns_path.absolute()}")

    return summary


def main():
    parser = argparse.ArgumentParser(description="Generate synthetic monthly returns for backtest testing")
    parser.add_argument("--outdir", default="data", help="Output directory (default: data)")
    parser.add_argument("--n-assets", type=int, default=N_ASSETS, help=f"Number of assets (default: {N_ASSETS})")
    parser.add_argument("--n-periods", type=int, default=N_PERIODS, help=f"Number of months (default: {N_PERIODS})")
    parser.add_argument("--seed", type=int, default=SEED, help=f"Random seed (default: {SEED})")
    args = parser.parse_args()

    generate(args.outdir, args.n_assets, args.n_periods, args.seed)


if __name__ == "__main__":
    main()
