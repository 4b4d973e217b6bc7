"""
mv_backtest - Rolling mean-variance portfolio backtests under transaction costs.

This package estimates return moments over a trailing window, solves for
portfolio weights under several cost and constraint configurations, and
scores each strategy out of sample with weight drift between rebalances.
"""

__version__ = "0.1.0"

from .exceptions import (
    BacktestError, SingularMatrixError, ShapeMismatchError, SolverNonConvergenceError, DepletedPortfolioError
)
from .data_io import load_returns, write_performance, write_weights, write_summary
from .risk import window_slice, estimate_moments, check_invertible, validate_covariance_matrix
from .optimize import (
    bps_to_fraction, minimum_variance_weights, efficient_weights,
    constrained_weights, transaction_cost_sensitivity
)
from .portfolio import equal_weights, turnover, drift_weights, evaluate_performance
from .strategies import StrategyKind, StrategySpec, DEFAULT_STRATEGIES, solve_strategy, parse_strategies
from .backtest import (
    BacktestConfig, BacktestResult, initial_weights_from_config, run_backtest, summarize_performance
)
from .checks import check_schema, check_missingness, check_window, check_weights_sum, aggregate_checks
from .run_backtest import run, main

__all__ = [
    "BacktestError",
    "SingularMatrixError",
    "ShapeMismatchError",
    "SolverNonConvergenceError",
    "DepletedPortfolioError",
    "load_returns",
    "write_performance",
    "write_weights",
    "write_summary",
    "window_slice",
    "estimate_moments",
    "check_invertible",
    "validate_covariance_matrix",
    "bps_to_fraction",
    "minimum_variance_weights",
    "efficient_weights",
    "constrained_weights",
    "transaction_cost_sensitivity",
    "equal_weights",
    "turnover",
    "drift_weights",
    "evaluate_performance",
    "StrategyKind",
    "StrategySpec",
    "DEFAULT_STRATEGIES",
    "solve_strategy",
    "parse_strategies",
    "BacktestConfig",
    "BacktestResult",
    "initial_weights_from_config",
    "run_backtest",
    "summarize_performance",
    "check_schema",
    "check_missingness",
    "check_window",
    "check_weights_sum",
    "aggregate_checks",
    "run",
    "main",
]
