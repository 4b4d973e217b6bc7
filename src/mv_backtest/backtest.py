"""
Rolling out-of-sample backtest of portfolio strategies.

At every step the driver estimates moments from a trailing window, lets each
strategy choose weights starting from its own drifted holdings, scores the
choice against the next period's realized returns, and drifts the weights
forward. Strategies never share holdings.
"""

import pandas as pd
import numpy as np
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
import logging

from .exceptions import (
    DepletedPortfolioError, ShapeMismatchError, SingularMatrixError, SolverNonConvergenceError
)
from .optimize import bps_to_fraction
from .portfolio import drift_weights, equal_weights, evaluate_performance
from .risk import estimate_moments, window_slice
from .strategies import StrategySpec, solve_strategy


FAILURE_POLICIES = ("skip", "halt")
EXPECTED_RETURNS = ("sample", "zero")
RECORD_COLUMNS = ["period", "strategy", "raw_return", "turnover", "net_return", "status", "error"]


@dataclass
class BacktestConfig:
    """Parameters of one rolling backtest."""

    window_length: int = 120
    risk_aversion: float = 4.0
    transaction_cost_bps: float = 50.0
    expected_returns: str = "sample"
    failure_policy: str = "skip"
    periods_per_year: int = 12

    def validate(self) -> None:
        """Raise ValueError on parameters the driver cannot use."""
        try:
            window_length = int(self.window_length)
            risk_aversion = float(self.risk_aversion)
            cost_bps = float(self.transaction_cost_bps)
            periods_per_year = int(self.periods_per_year)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Backtest parameters must be numeric: {e}") from e
        if window_length != self.window_length or window_length < 2:
            raise ValueError(f"window_length must be an integer >= 2, got {self.window_length}")
        if not risk_aversion > 0:
            raise ValueError(f"risk_aversion must be positive, got {self.risk_aversion}")
        if cost_bps < 0:
            raise ValueError(f"transaction_cost_bps must be non-negative, got {self.transaction_cost_bps}")
        if self.expected_returns not in EXPECTED_RETURNS:
            raise ValueError(f"expected_returns must be one of {EXPECTED_RETURNS}, got {self.expected_returns}")
        if self.failure_policy not in FAILURE_POLICIES:
            raise ValueError(f"failure_policy must be one of {FAILURE_POLICIES}, got {self.failure_policy}")
        if periods_per_year < 1:
            raise ValueError(f"periods_per_year must be positive, got {self.periods_per_year}")

    @classmethod
    def from_dict(cls, cfg: Dict) -> "BacktestConfig":
        """Build from the `backtest` block of a run configuration."""
        known = {f for f in cls.__dataclass_fields__}
        unknown = set(cfg) - known
        if unknown:
            raise ValueError(f"Unknown backtest config keys: {', '.join(sorted(unknown))}")
        return cls(**cfg)


@dataclass
class BacktestResult:
    """
    Output of run_backtest.

    records: one row per (period, strategy), columns RECORD_COLUMNS
    weights: chosen weights, MultiIndex (period, strategy) x assets; failed
        rebalances are absent here and flagged in records
    failures: the failed rows of records
    """

    records: pd.DataFrame
    weights: pd.DataFrame
    failures: pd.DataFrame = field(default_factory=lambda: pd.DataFrame(columns=RECORD_COLUMNS))

    @property
    def ok(self) -> bool:
        return self.failures.empty


def _validate_panel(panel: pd.DataFrame, window_length: int) -> None:
    """Boundary checks on the return panel before the loop starts."""
    if panel.empty or panel.shape[1] == 0:
        raise ShapeMismatchError("Return panel is empty")
    if panel.columns.has_duplicates:
        raise ShapeMismatchError("Return panel has duplicate assets")
    if not panel.index.is_monotonic_increasing:
        raise ShapeMismatchError("Return panel periods are not in chronological order")
    missing = panel.isna()
    if missing.to_numpy().any():
        n_missing = int(missing.to_numpy().sum())
        first_bad = panel.index[missing.any(axis=1)][0]
        raise ShapeMismatchError(
            f"Return panel has {n_missing} missing returns (first at period {first_bad})"
        )
    if len(panel) <= window_length:
        raise ShapeMismatchError(
            f"Need more than window_length={window_length} periods, panel has {len(panel)}"
        )


def initial_weights_from_config(value: Any, assets: Sequence) -> pd.Series:
    """
    Starting holdings from the `backtest.initial_weights` config entry.

    Args:
        value: None for 1/N, a mapping {asset: weight}, or a list of weights
            in the panel's asset order
        assets: Panel assets

    Returns:
        Weights Series indexed by asset. The sum is not checked here so the
        pre-run checks can report it.

    Raises:
        ShapeMismatchError: If the entry does not cover exactly the panel's assets
        ValueError: If the entry is neither a mapping nor a list
    """
    assets = pd.Index(assets)
    if value is None:
        return equal_weights(assets)
    if isinstance(value, dict):
        w0 = pd.Series({str(k): v for k, v in value.items()}, dtype=float)
        if set(w0.index) != set(assets):
            missing = sorted(set(assets) - set(w0.index))
            extra = sorted(set(w0.index) - set(assets))
            raise ShapeMismatchError(
                f"initial_weights assets differ from panel assets (missing: {missing}, extra: {extra})"
            )
        return w0.reindex(assets)
    if isinstance(value, (list, tuple)):
        if len(value) != len(assets):
            raise ShapeMismatchError(
                f"initial_weights has {len(value)} entries, panel has {len(assets)} assets"
            )
        return pd.Series([float(v) for v in value], index=assets)
    raise ValueError(f"initial_weights must be a mapping or a list, got {type(value).__name__}")


def _initial_weights(panel: pd.DataFrame, initial_weights: Optional[pd.Series]) -> pd.Series:
    if initial_weights is None:
        return equal_weights(panel.columns)
    w0 = pd.Series(initial_weights, dtype=float)
    if len(w0) != panel.shape[1]:
        raise ShapeMismatchError(
            f"initial_weights has {len(w0)} entries, panel has {panel.shape[1]} assets"
        )
    if not isinstance(initial_weights, pd.Series):
        w0.index = panel.columns
    elif not w0.index.sort_values().equals(panel.columns.sort_values()):
        raise ShapeMismatchError("initial_weights assets differ from panel assets")
    w0 = w0.reindex(panel.columns)
    if abs(w0.sum() - 1.0) > 1e-6:
        raise ValueError(f"initial_weights must sum to 1, got {w0.sum():.6f}")
    return w0


def _hold(w_prev: pd.Series, realized: pd.Series, start_w: pd.Series) -> pd.Series:
    """Drift untraded holdings; a wiped-out portfolio restarts from the starting weights."""
    try:
        return drift_weights(w_prev, realized)
    except DepletedPortfolioError as e:
        logging.warning(f"run_backtest: {e}; resetting to starting weights")
        return start_w.copy()


def run_backtest(
    panel: pd.DataFrame,
    strategies: Sequence[StrategySpec],
    config: BacktestConfig,
    initial_weights: Optional[pd.Series] = None,
) -> BacktestResult:
    """
    Rolling-window backtest over a periods x assets panel of returns.

    Args:
        panel: Excess returns, index = period (chronological), columns = assets
        strategies: Strategies to run side by side
        config: Backtest parameters
        initial_weights: Holdings every strategy starts from; defaults to 1/N

    Returns:
        BacktestResult with per-period records and chosen weights

    Raises:
        ShapeMismatchError: If the panel or initial weights are inconsistent
        SingularMatrixError, SolverNonConvergenceError, DepletedPortfolioError:
            Under failure_policy "halt"

    Notes:
        - Step i estimates on rows [i, i + W) and is scored on row i + W
        - Each strategy is scored with its own pre-rebalance weights, which
          are then drifted with the same weights and returns used for scoring
        - Under failure_policy "skip" a failed rebalance is recorded with
          status "failed"; the strategy keeps its holdings for that period
        - A period that leaves a portfolio worth nothing is a failed
          rebalance; the strategy restarts from the starting weights
    """
    config.validate()
    window_length = int(config.window_length)
    _validate_panel(panel, window_length)
    if not strategies:
        raise ValueError("No strategies to backtest")
    names = [s.name for s in strategies]
    if len(set(names)) != len(names):
        raise ValueError(f"Duplicate strategy names: {names}")

    start_w = _initial_weights(panel, initial_weights)
    cost_bps = float(config.transaction_cost_bps)
    beta = bps_to_fraction(cost_bps)
    gamma = float(config.risk_aversion)
    mu_override = "zero" if config.expected_returns == "zero" else None

    holdings: Dict[str, pd.Series] = {s.name: start_w.copy() for s in strategies}
    records: List[Dict] = []
    chosen: Dict[tuple, pd.Series] = {}

    n_steps = len(panel) - window_length
    logging.info(
        f"run_backtest: {n_steps} periods, {panel.shape[1]} assets, window={window_length}, "
        f"strategies={names}"
    )

    for i in range(n_steps):
        window = window_slice(panel, i, window_length)
        period = panel.index[i + window_length]
        realized = panel.iloc[i + window_length]

        Sigma, mu = estimate_moments(window, mu_override=mu_override)

        for spec in strategies:
            w_prev = holdings[spec.name]
            try:
                w = solve_strategy(spec, Sigma, mu, w_prev, gamma, beta)
                perf = evaluate_performance(w, w_prev, realized, cost_bps)
                w_next = drift_weights(w, realized)
            except (SingularMatrixError, SolverNonConvergenceError, DepletedPortfolioError) as e:
                logging.warning(f"run_backtest: {spec.name} failed at period {period}: {e}")
                if config.failure_policy == "halt":
                    raise
                records.append({
                    "period": period,
                    "strategy": spec.name,
                    "raw_return": np.nan,
                    "turnover": np.nan,
                    "net_return": np.nan,
                    "status": "failed",
                    "error": f"{type(e).__name__}: {e}",
                })
                holdings[spec.name] = _hold(w_prev, realized, start_w)
                continue

            records.append({
                "period": period,
                "strategy": spec.name,
                **perf,
                "status": "ok",
                "error": "",
            })
            chosen[(period, spec.name)] = w
            holdings[spec.name] = w_next

    records_df = pd.DataFrame(records, columns=RECORD_COLUMNS)
    if chosen:
        weights_df = pd.DataFrame(
            list(chosen.values()),
            index=pd.MultiIndex.from_tuples(list(chosen.keys()), names=["period", "strategy"]),
        )[list(panel.columns)]
    else:
        weights_df = pd.DataFrame(columns=list(panel.columns))
    failures = records_df[records_df["status"] == "failed"].reset_index(drop=True)

    if not failures.empty:
        logging.warning(f"run_backtest: {len(failures)} failed rebalances")
    logging.info("run_backtest: done")

    return BacktestResult(records=records_df, weights=weights_df, failures=failures)


def summarize_performance(records: pd.DataFrame, periods_per_year: int = 12) -> pd.DataFrame:
    """
    Annualized net-of-cost statistics per strategy.

    Args:
        records: BacktestResult.records
        periods_per_year: Number of periods per year (12 for monthly)

    Returns:
        DataFrame indexed by strategy with columns
        ["mean", "sd", "sharpe", "turnover", "n_periods", "n_failed"]

    Notes:
        - mean = periods_per_year * mean(net_return)
        - sd = sqrt(periods_per_year) * std(net_return)
        - sharpe = mean / sd when mean > 0, else NaN
        - Failed rows are excluded from the moments and counted in n_failed
    """
    columns = ["mean", "sd", "sharpe", "turnover", "n_periods", "n_failed"]
    rows = {}
    for strategy, group in records.groupby("strategy", sort=False):
        ok = group[group["status"] == "ok"]
        net = ok["net_return"].astype(float)
        mean = periods_per_year * net.mean() if len(net) > 0 else np.nan
        sd = np.sqrt(periods_per_year) * net.std() if len(net) > 1 else np.nan
        if np.isfinite(mean) and mean > 0 and np.isfinite(sd) and sd > 0:
            sharpe = mean / sd
        else:
            sharpe = np.nan
        rows[strategy] = {
            "mean": mean,
            "sd": sd,
            "sharpe": sharpe,
            "turnover": ok["turnover"].astype(float).mean() if len(ok) > 0 else np.nan,
            "n_periods": int(len(group)),
            "n_failed": int((group["status"] == "failed").sum()),
        }
    summary = pd.DataFrame.from_dict(rows, orient="index", columns=columns)
    summary.index.name = "strategy"
    return summary
