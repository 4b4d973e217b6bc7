"""
Risk model module for moment estimation over a trailing window.

Estimates the sample covariance matrix and sample mean of asset returns.
No shrinkage, smoothing or outlier handling is applied: a window that is
too short for the number of assets yields a singular covariance matrix,
which the solvers report instead of working around.
"""

import pandas as pd
import numpy as np
from typing import Dict, Optional, Tuple, Union
import logging

from .exceptions import ShapeMismatchError, SingularMatrixError


MuOverride = Union[None, str, pd.Series, np.ndarray]


def window_slice(
    panel: pd.DataFrame,
    start: int,
    window_length: int
) -> pd.DataFrame:
    """
    Return the rows [start, start + window_length) of a return panel.

    Args:
        panel: DataFrame with periods as index and assets as columns
        start: Position of the first period in the window
        window_length: Number of periods W in the window

    Returns:
        W x N DataFrame of returns

    Raises:
        ShapeMismatchError: If the window runs past either end of the panel
    """
    if window_length < 1:
        raise ShapeMismatchError(f"window_length must be positive, got {window_length}")
    end = start + window_length
    if start < 0 or end > len(panel):
        raise ShapeMismatchError(
            f"Window [{start}, {end}) outside panel with {len(panel)} periods"
        )
    return panel.iloc[start:end]


def estimate_moments(
    window: pd.DataFrame,
    mu_override: MuOverride = None
) -> Tuple[pd.DataFrame, pd.Series]:
    """
    Compute sample covariance and expected returns from a window of returns.

    Args:
        window: W x N DataFrame of returns (periods x assets)
        mu_override: None for the sample mean, "zero" for a zero vector
            (isolates variance minimization), or an explicit Series/array
            of length N

    Returns:
        Tuple of (Sigma DataFrame N x N, mu Series of length N), both indexed
        by asset in the column order of the window

    Notes:
        - Sigma uses the unbiased estimator (ddof=1)
        - With W <= N, Sigma is rank deficient; this is not corrected here
    """
    if window.empty:
        raise ShapeMismatchError("estimate_moments: empty window")

    assets = window.columns
    values = window.to_numpy(dtype=float)

    if values.shape[0] < 2:
        # Single observation: no dispersion
        sample_cov = np.zeros((len(assets), len(assets)))
    else:
        sample_cov = np.cov(values, rowvar=False, ddof=1)
        sample_cov = np.atleast_2d(sample_cov)

    Sigma = pd.DataFrame(sample_cov, index=assets, columns=assets)

    if mu_override is None:
        mu = pd.Series(values.mean(axis=0), index=assets)
    elif isinstance(mu_override, str):
        if mu_override != "zero":
            raise ValueError(f"Unknown expected-return override: {mu_override}")
        mu = pd.Series(0.0, index=assets)
    elif isinstance(mu_override, pd.Series):
        missing = assets.difference(mu_override.index)
        if len(missing) > 0:
            raise ShapeMismatchError(f"mu_override missing assets: {list(missing)}")
        mu = mu_override.reindex(assets).astype(float)
    else:
        mu_arr = np.asarray(mu_override, dtype=float).reshape(-1)
        if len(mu_arr) != len(assets):
            raise ShapeMismatchError(
                f"mu_override has length {len(mu_arr)}, expected {len(assets)}"
            )
        mu = pd.Series(mu_arr, index=assets)

    logging.debug(f"estimate_moments: window={window.shape}, override={mu_override is not None}")

    return Sigma, mu


def check_invertible(matrix: Union[pd.DataFrame, np.ndarray], name: str = "Sigma") -> None:
    """
    Raise SingularMatrixError unless the square matrix has full rank.

    The rank test uses numpy's SVD-based tolerance, so sample covariance
    matrices from W <= N periods are caught even when floating-point noise
    would let an explicit inversion go through.
    """
    m = np.asarray(matrix, dtype=float)
    if m.ndim != 2 or m.shape[0] != m.shape[1]:
        raise ShapeMismatchError(f"{name} must be square, got shape {m.shape}")
    if not np.all(np.isfinite(m)):
        raise SingularMatrixError(f"{name} contains non-finite entries")
    rank = np.linalg.matrix_rank(m)
    if rank < m.shape[0]:
        raise SingularMatrixError(f"{name} is singular: rank {rank} < {m.shape[0]}")


def validate_covariance_matrix(Sigma: pd.DataFrame) -> Dict[str, float]:
    """
    Compute conditioning diagnostics for a covariance matrix.

    Returns:
        Dict with "cond" (2-norm condition number), "min_eig" (smallest
        eigenvalue of the symmetrized matrix) and "max_asym" (largest
        absolute asymmetry)
    """
    m = np.asarray(Sigma, dtype=float)
    sym = (m + m.T) / 2
    eigvals = np.linalg.eigvalsh(sym)
    return {
        "cond": float(np.linalg.cond(m)),
        "min_eig": float(eigvals.min()),
        "max_asym": float(np.max(np.abs(m - m.T))),
    }
