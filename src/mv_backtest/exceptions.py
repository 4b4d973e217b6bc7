"""
Error kinds raised by the backtest engine.

None of these are retried: the driver either records the failure for the
offending (period, strategy) pair or re-raises, depending on its policy.
"""

from typing import Any, Dict, Optional


class BacktestError(ValueError):
    """Base class for engine errors."""


class SingularMatrixError(BacktestError):
    """Covariance matrix (or its cost-adjusted version) is not invertible."""


class ShapeMismatchError(BacktestError):
    """Inputs disagree on the number of assets or periods."""


class SolverNonConvergenceError(BacktestError):
    """Numerical solver failed or returned weights violating constraints."""

    def __init__(self, message: str, diagnostics: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.diagnostics = diagnostics or {}


class DepletedPortfolioError(BacktestError):
    """Portfolio value after a period is zero or non-finite, so weights cannot be renormalized."""
