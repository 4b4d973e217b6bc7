"""
Data I/O helpers for the backtest engine.

Provides small, reusable functions for loading the return panel and writing
backtest outputs as CSV, with minimal validation and type coercion.
"""

import pandas as pd
import numpy as np
from pathlib import Path
from typing import Union
import logging


def load_returns(path: Union[str, Path]) -> pd.DataFrame:
    """
    Load a long-format return file and pivot it into a panel.

    Args:
        path: Path to CSV file with columns ["period", "asset", "ret"]

    Returns:
        DataFrame with sorted periods as index and assets as columns

    Raises:
        ValueError: If required columns are missing

    Notes:
        - Periods where an asset has no return are left as NaN; the
          missingness pre-run check reports them and run_backtest rejects them
    """
    # Read CSV
    df = pd.read_csv(path)

    # Validate required columns
    required_cols = ["period", "asset", "ret"]
    missing_cols = set(required_cols) - set(df.columns)
    if missing_cols:
        raise ValueError(f"Missing required columns: {missing_cols}")

    # Coerce types
    df["period"] = pd.to_datetime(df["period"])
    df["asset"] = df["asset"].astype(str)
    df["ret"] = pd.to_numeric(df["ret"], errors="coerce")
    df.loc[~np.isfinite(df["ret"]), "ret"] = np.nan

    # Drop duplicates
    df = df.drop_duplicates(subset=["period", "asset"], keep="last")

    # Pivot and sort
    panel = df.pivot(index="period", columns="asset", values="ret").sort_index()
    panel = panel.reindex(sorted(panel.columns), axis=1)
    panel.columns.name = None

    if panel.isna().to_numpy().any():
        gaps = panel.isna().sum()
        gaps = gaps[gaps > 0]
        details = ", ".join(f"{asset}={int(n)}" for asset, n in gaps.items())
        logging.warning(f"load_returns: missing returns per asset: {details}")

    return panel


def write_performance(outdir: Union[str, Path], records: pd.DataFrame) -> Path:
    """
    Write per-period performance records to CSV.

    Args:
        outdir: Output directory
        records: BacktestResult.records

    Returns:
        Path to written file
    """
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    df = records.copy()
    if not df.empty:
        df["period"] = pd.to_datetime(df["period"]).dt.strftime("%Y-%m-%d")
    outpath = outdir / "performance.csv"
    df.to_csv(outpath, index=False)

    return outpath


def write_weights(outdir: Union[str, Path], weights: pd.DataFrame) -> Path:
    """
    Write chosen weights in long format (period, strategy, asset, weight).

    Args:
        outdir: Output directory
        weights: BacktestResult.weights

    Returns:
        Path to written file
    """
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    if weights.empty:
        df = pd.DataFrame(columns=["period", "strategy", "asset", "weight"])
    else:
        df = weights.reset_index().melt(
            id_vars=["period", "strategy"], var_name="asset", value_name="weight"
        )
        df["period"] = pd.to_datetime(df["period"]).dt.strftime("%Y-%m-%d")
        df = df.sort_values(["strategy", "period", "asset"])

    outpath = outdir / "weights.csv"
    df.to_csv(outpath, index=False)

    return outpath


def write_summary(outdir: Union[str, Path], summary: pd.DataFrame) -> Path:
    """Write the per-strategy summary table to CSV."""
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    outpath = outdir / "summary.csv"
    summary.to_csv(outpath, index=True)

    return outpath
