"""
Portfolio optimization module for mean-variance weights under transaction costs.

Implements the closed-form efficient portfolio with a quadratic transaction
cost penalty and a numerical (SLSQP) solver for constrained problems such as
no short-selling, a gross leverage cap, or L1 transaction costs.
"""

import pandas as pd
import numpy as np
from typing import Dict, Iterable, Optional, Tuple, Union
from scipy import linalg
from scipy.optimize import minimize
import logging

from .exceptions import ShapeMismatchError, SingularMatrixError, SolverNonConvergenceError
from .risk import check_invertible


ArrayLike = Union[pd.Series, pd.DataFrame, np.ndarray]

BPS_PER_UNIT = 10_000.0


def bps_to_fraction(bps: float) -> float:
    """Convert a cost rate in basis points to a fraction of traded value."""
    return float(bps) / BPS_PER_UNIT


def _align_inputs(
    Sigma: ArrayLike,
    mu: Optional[ArrayLike],
    w_prev: Optional[ArrayLike]
) -> Tuple[pd.Index, np.ndarray, np.ndarray, np.ndarray]:
    """
    Align Sigma, mu and w_prev on a common asset order.

    Sigma's index defines the order when it is a DataFrame; plain arrays are
    taken positionally. Missing mu means zero; missing w_prev means 1/N.
    """
    if isinstance(Sigma, pd.DataFrame):
        assets = Sigma.index
        Sigma_np = Sigma.loc[assets, assets].to_numpy(dtype=float)
    else:
        Sigma_np = np.asarray(Sigma, dtype=float)
        if Sigma_np.ndim != 2 or Sigma_np.shape[0] != Sigma_np.shape[1]:
            raise ShapeMismatchError(f"Sigma must be square, got shape {Sigma_np.shape}")
        assets = pd.RangeIndex(Sigma_np.shape[0])

    n_assets = len(assets)

    def _vector(values, name, default):
        if values is None:
            return default
        if isinstance(values, pd.Series) and isinstance(Sigma, pd.DataFrame):
            missing = assets.difference(values.index)
            if len(missing) > 0:
                raise ShapeMismatchError(f"{name} missing assets: {list(missing)}")
            return values.reindex(assets).to_numpy(dtype=float)
        arr = np.asarray(values, dtype=float).reshape(-1)
        if len(arr) != n_assets:
            raise ShapeMismatchError(f"{name} has length {len(arr)}, expected {n_assets}")
        return arr

    mu_np = _vector(mu, "mu", np.zeros(n_assets))
    w_prev_np = _vector(w_prev, "w_prev", np.full(n_assets, 1.0 / n_assets))

    return assets, Sigma_np, mu_np, w_prev_np


def minimum_variance_weights(Sigma: ArrayLike) -> pd.Series:
    """
    Global minimum-variance portfolio: Sigma^-1 1 / (1' Sigma^-1 1).

    Raises:
        SingularMatrixError: If Sigma is not invertible
    """
    return efficient_weights(Sigma, None, gamma=1.0, beta=0.0)


def efficient_weights(
    Sigma: ArrayLike,
    mu: Optional[ArrayLike],
    gamma: float = 2.0,
    beta: float = 0.0,
    w_prev: Optional[ArrayLike] = None,
) -> pd.Series:
    """
    Closed-form mean-variance efficient weights with quadratic transaction costs.

        Sigma* = Sigma + (beta / gamma) * I
        mu*    = mu + beta * w_prev
        w      = w_mvp* + (1/gamma) * (Sigma*^-1 - Sigma*^-1 1 1' Sigma*^-1 / (1' Sigma*^-1 1)) mu*

    where w_mvp* is the minimum-variance portfolio of Sigma*.

    Args:
        Sigma: Covariance matrix (DataFrame indexed by asset, or N x N array)
        mu: Expected returns (None means zero, i.e. minimum variance)
        gamma: Risk aversion, > 0
        beta: Transaction cost as a fraction (not basis points), >= 0
        w_prev: Pre-rebalance weights; defaults to 1/N

    Returns:
        Weights Series indexed by asset, summing to one

    Raises:
        SingularMatrixError: If Sigma or Sigma* is not invertible
        ValueError: If gamma <= 0 or beta < 0
    """
    if not gamma > 0:
        raise ValueError(f"gamma must be positive, got {gamma}")
    if beta < 0:
        raise ValueError(f"beta must be non-negative, got {beta}")

    assets, Sigma_np, mu_np, w_prev_np = _align_inputs(Sigma, mu, w_prev)
    n_assets = len(assets)

    check_invertible(Sigma_np, "Sigma")

    Sigma_star = Sigma_np + (beta / gamma) * np.eye(n_assets)
    mu_star = mu_np + beta * w_prev_np
    check_invertible(Sigma_star, "Sigma*")

    try:
        Sigma_inv = linalg.inv(Sigma_star)
    except linalg.LinAlgError as e:
        raise SingularMatrixError(f"efficient_weights: inversion failed: {e}") from e

    ones = np.ones(n_assets)
    inv_ones = Sigma_inv @ ones
    denom = float(ones @ inv_ones)
    if not np.isfinite(denom) or abs(denom) < 1e-300:
        raise SingularMatrixError(f"efficient_weights: degenerate normalizer 1'Sigma*^-1 1 = {denom}")

    w_mvp = inv_ones / denom
    projector = Sigma_inv - np.outer(inv_ones, ones @ Sigma_inv) / denom
    w_opt = w_mvp + (1.0 / gamma) * projector @ mu_star

    if not np.all(np.isfinite(w_opt)):
        raise SingularMatrixError("efficient_weights: non-finite weights")

    logging.debug(f"efficient_weights: gamma={gamma}, beta={beta}, sum={w_opt.sum():.12f}")

    return pd.Series(w_opt, index=assets)


def constrained_weights(
    Sigma: ArrayLike,
    mu: Optional[ArrayLike],
    gamma: float = 2.0,
    beta: float = 0.0,
    w_prev: Optional[ArrayLike] = None,
    *,
    long_only: bool = False,
    leverage_cap: Optional[float] = None,
    l1_cost: bool = False,
    x0: Optional[ArrayLike] = None,
    eps_abs: float = 1e-8,
    max_iter: int = 500,
    tol: float = 1e-6,
) -> Tuple[pd.Series, Dict[str, object]]:
    """
    Constrained mean-variance optimization:
        minimize   -w^T mu + (gamma/2) * w^T Sigma w  [+ (beta/2) * sum_i |w_i - w_prev_i|]
        subject to sum(w) = 1, optionally w >= 0, optionally sum_i |w_i| <= leverage_cap

    Args:
        Sigma: Covariance matrix (DataFrame indexed by asset, or N x N array)
        mu: Expected returns (None means zero)
        gamma: Risk aversion
        beta: Transaction cost as a fraction; only used when l1_cost is True
        w_prev: Pre-rebalance weights; defaults to 1/N
        long_only: Enforce w_i >= 0
        leverage_cap: Maximum gross exposure sum(|w_i|)
        l1_cost: Add the L1 transaction cost term to the objective
        x0: Initial guess; defaults to 1/N
        eps_abs: Smoothing parameter for absolute values
        max_iter: Maximum iterations for the optimizer
        tol: Tolerance for post-solve constraint checks

    Returns:
        Tuple of (weights Series indexed by asset, diagnostics dict)

    Raises:
        SolverNonConvergenceError: If the optimizer fails or the solution
            violates a constraint beyond tol. The diagnostics are attached.

    Notes:
        - Uses smooth absolute value: abs(x) ~ sqrt(x^2 + eps_abs)
        - Only a local optimum from x0 is guaranteed for non-convex setups
    """
    if not gamma > 0:
        raise ValueError(f"gamma must be positive, got {gamma}")
    if beta < 0:
        raise ValueError(f"beta must be non-negative, got {beta}")
    if leverage_cap is not None and leverage_cap < 1.0:
        raise ValueError(f"leverage_cap must be at least 1, got {leverage_cap}")

    assets, Sigma_np, mu_np, w_prev_np = _align_inputs(Sigma, mu, w_prev)
    n_assets = len(assets)
    Sigma_np = (Sigma_np + Sigma_np.T) / 2
    cost = beta if l1_cost else 0.0

    def objective(w):
        value = -(w @ mu_np) + 0.5 * gamma * w @ Sigma_np @ w
        if cost > 0:
            value += 0.5 * cost * np.sum(np.sqrt((w - w_prev_np) ** 2 + eps_abs))
        return value

    def gradient(w):
        grad = -mu_np + gamma * Sigma_np @ w
        if cost > 0:
            diff = w - w_prev_np
            grad = grad + 0.5 * cost * diff / np.sqrt(diff ** 2 + eps_abs)
        return grad

    constraints = [{
        'type': 'eq',
        'fun': lambda w: np.sum(w) - 1.0,
        'jac': lambda w: np.ones(n_assets)
    }]

    if leverage_cap is not None:
        constraints.append({
            'type': 'ineq',
            'fun': lambda w: leverage_cap - np.sum(np.sqrt(w ** 2 + eps_abs)),
            'jac': lambda w: -w / np.sqrt(w ** 2 + eps_abs)
        })

    bounds = [(0.0, None)] * n_assets if long_only else None

    # Initial guess
    if x0 is not None:
        _, _, _, start = _align_inputs(Sigma, None, x0)
        start = start.copy()
        if long_only:
            start = np.clip(start, 0.0, None)
            start = start / np.sum(start) if np.sum(start) > 0 else np.full(n_assets, 1.0 / n_assets)
    else:
        start = np.ones(n_assets) / n_assets

    diagnostics = {
        "success": False,
        "message": "",
        "obj": float("nan"),
        "risk": float("nan"),
        "mu_dot": float("nan"),
        "turnover": float("nan"),
        "leverage": float("nan"),
        "n_iter": 0,
    }

    try:
        result = minimize(
            objective,
            start,
            method='SLSQP',
            jac=gradient,
            constraints=constraints,
            bounds=bounds,
            options={'maxiter': max_iter, 'ftol': 1e-9, 'disp': False}
        )
    except Exception as e:
        diagnostics["message"] = f"Optimization exception: {e}"
        logging.error(f"constrained_weights: exception: {e}")
        raise SolverNonConvergenceError(diagnostics["message"], diagnostics) from e

    success = bool(result.success)
    w_opt = result.x
    diagnostics["message"] = str(result.message)
    diagnostics["n_iter"] = int(getattr(result, "nit", 0))
    logging.debug(f"constrained_weights: optimizer success = {success}, message = {result.message}")

    # Check for NaNs
    if np.any(~np.isfinite(w_opt)):
        logging.warning("constrained_weights: non-finite weights")
        success = False
    else:
        # Check sum to one
        sum_violation = abs(np.sum(w_opt) - 1.0)
        if sum_violation > tol:
            logging.warning(f"constrained_weights: sum violation = {sum_violation}")
            success = False

        # Check bounds
        if long_only and np.any(w_opt < -tol):
            logging.warning(f"constrained_weights: short position {w_opt.min():.3e} under long-only")
            success = False

        # Check leverage
        gross = float(np.sum(np.abs(w_opt)))
        if leverage_cap is not None and gross > leverage_cap + tol:
            logging.warning(f"constrained_weights: leverage violation = {gross}")
            success = False

        diagnostics.update({
            "obj": float(result.fun),
            "risk": float(w_opt @ Sigma_np @ w_opt),
            "mu_dot": float(mu_np @ w_opt),
            "turnover": float(np.sum(np.abs(w_opt - w_prev_np))),
            "leverage": gross,
        })

    diagnostics["success"] = success

    if not success:
        raise SolverNonConvergenceError(
            f"Optimization failed or constraints violated: {result.message}", diagnostics
        )

    logging.debug(f"constrained_weights: risk={diagnostics['risk']:.6f}, mu_dot={diagnostics['mu_dot']:.6f}")

    return pd.Series(w_opt, index=assets), diagnostics


def transaction_cost_sensitivity(
    Sigma: ArrayLike,
    mu: Optional[ArrayLike],
    gammas: Iterable[float],
    betas_bps: Iterable[float],
    w_prev: Optional[ArrayLike] = None,
) -> pd.DataFrame:
    """
    Distance of the cost-aware efficient portfolio from the holdings it starts at.

    For every (gamma, beta) pair solve efficient_weights with w_prev as the
    current holdings and report sum(|w - w_prev|). Higher costs pull the
    efficient portfolio toward w_prev, so the distance shrinks as beta grows.

    Args:
        Sigma: Covariance matrix
        mu: Expected returns
        gammas: Risk aversion values
        betas_bps: Transaction costs in basis points
        w_prev: Current holdings; defaults to the minimum-variance portfolio

    Returns:
        DataFrame with columns ["gamma", "beta_bps", "distance"]
    """
    if w_prev is None:
        w_prev = minimum_variance_weights(Sigma)
    _, _, _, w_prev_np = _align_inputs(Sigma, None, w_prev)

    rows = []
    for gamma in gammas:
        for beta_bps in betas_bps:
            w = efficient_weights(Sigma, mu, gamma=gamma, beta=bps_to_fraction(beta_bps), w_prev=w_prev)
            rows.append({
                "gamma": float(gamma),
                "beta_bps": float(beta_bps),
                "distance": float(np.sum(np.abs(w.to_numpy() - w_prev_np))),
            })

    return pd.DataFrame(rows, columns=["gamma", "beta_bps", "distance"])
