"""
Portfolio bookkeeping: turnover, net-of-cost performance and weight drift.
"""

import pandas as pd
import numpy as np
from typing import Dict, Iterable, Union

from .exceptions import DepletedPortfolioError, ShapeMismatchError
from .optimize import bps_to_fraction


VectorLike = Union[pd.Series, np.ndarray]


def equal_weights(assets: Iterable) -> pd.Series:
    """Naive 1/N portfolio over the given assets."""
    index = pd.Index(assets)
    if len(index) == 0:
        raise ShapeMismatchError("equal_weights: no assets")
    return pd.Series(1.0 / len(index), index=index)


def _aligned(a: VectorLike, b: VectorLike, name: str):
    """Return a and b as float arrays on a common order, or raise on mismatch."""
    if isinstance(a, pd.Series) and isinstance(b, pd.Series):
        if not a.index.sort_values().equals(b.index.sort_values()):
            raise ShapeMismatchError(f"{name}: asset sets differ")
        return a.index, a.to_numpy(dtype=float), b.reindex(a.index).to_numpy(dtype=float)
    a_np = np.asarray(a, dtype=float).reshape(-1)
    b_np = np.asarray(b, dtype=float).reshape(-1)
    if len(a_np) != len(b_np):
        raise ShapeMismatchError(f"{name}: lengths {len(a_np)} and {len(b_np)} differ")
    index = a.index if isinstance(a, pd.Series) else (b.index if isinstance(b, pd.Series) else None)
    return index, a_np, b_np


def turnover(w: VectorLike, w_prev: VectorLike) -> float:
    """
    Turnover = sum_i |w_i - w_prev_i|.

    Full L1 distance (no 1/2 factor); symmetric in its arguments.
    """
    _, a, b = _aligned(w, w_prev, "turnover")
    return float(np.sum(np.abs(a - b)))


def drift_weights(w: VectorLike, r: VectorLike) -> pd.Series:
    """
    Weights after one period of buy-and-hold: w * (1 + r) / sum(w * (1 + r)).

    Args:
        w: Weights chosen at the start of the period
        r: Realized returns over the period

    Returns:
        Pre-rebalance weights for the next period, indexed like w

    Raises:
        ShapeMismatchError: If w and r are not aligned
        DepletedPortfolioError: If the portfolio value after the period is zero or non-finite
    """
    index, w_np, r_np = _aligned(w, r, "drift_weights")
    grown = w_np * (1.0 + r_np)
    total = float(np.sum(grown))
    if not np.isfinite(total) or total == 0.0:
        raise DepletedPortfolioError(f"drift_weights: portfolio value after drift is {total}")
    drifted = grown / total
    if index is None:
        index = pd.RangeIndex(len(drifted))
    return pd.Series(drifted, index=index)


def evaluate_performance(
    w: VectorLike,
    w_prev: VectorLike,
    r: VectorLike,
    cost_bps: float
) -> Dict[str, float]:
    """
    Score one rebalance against the realized returns that follow it.

    Args:
        w: Newly chosen weights
        w_prev: Pre-rebalance weights in force just before the trade
        r: Realized returns for the upcoming period
        cost_bps: Proportional transaction cost in basis points

    Returns:
        Dict with raw_return (r'w), turnover (sum |w - w_prev|) and
        net_return (raw_return - cost * turnover)
    """
    if cost_bps < 0:
        raise ValueError(f"cost_bps must be non-negative, got {cost_bps}")
    _, w_np, r_np = _aligned(w, r, "evaluate_performance")
    raw_return = float(r_np @ w_np)
    trade = turnover(w, w_prev)
    net_return = raw_return - bps_to_fraction(cost_bps) * trade
    return {
        "raw_return": raw_return,
        "turnover": trade,
        "net_return": net_return,
    }
