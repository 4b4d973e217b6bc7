"""
Pre-run validation checks module.

Each check returns {name: {"status": "PASS"|"BLOCK", "details": "..."}} so the
results can be aggregated and written to the report.
"""

import pandas as pd
import numpy as np
from typing import Dict, List, Tuple, Union


def check_schema(
    df: pd.DataFrame,
    required_cols: List[str],
    name: str = "schema"
) -> Dict[str, Dict[str, str]]:
    """
    Verify required columns exist in df. BLOCK if any missing.

    Args:
        df: DataFrame to check
        required_cols: List of required column names
        name: Name for the check result

    Returns:
        Dict with check result: {name: {"status": "PASS"|"BLOCK", "details": "..."}}
    """
    missing_cols = [col for col in required_cols if col not in df.columns]

    if missing_cols:
        details = f"Missing columns: {', '.join(map(str, missing_cols))}"
        status = "BLOCK"
    else:
        details = f"All required columns present: {', '.join(map(str, required_cols))}"
        status = "PASS"

    return {name: {"status": status, "details": details}}


def check_missingness(
    df: pd.DataFrame,
    max_rate: float = 0.0,
    name: str = "missingness"
) -> Dict[str, Dict[str, str]]:
    """
    Compute NA share per column. BLOCK if any column's NA rate > max_rate.

    Args:
        df: DataFrame to check (for a panel, columns are assets)
        max_rate: Maximum allowed NA rate per column
        name: Name for the check result

    Returns:
        Dict with check result: {name: {"status": "PASS"|"BLOCK", "details": "..."}}
    """
    na_rates = df.isna().mean()
    violating_cols = na_rates[na_rates > max_rate]

    if len(violating_cols) > 0:
        worst_col = violating_cols.idxmax()
        worst_rate = violating_cols.max()
        details = f"Column '{worst_col}' has {worst_rate:.3f} NA rate (max: {max_rate:.3f})"
        status = "BLOCK"
    else:
        max_na_rate = na_rates.max() if len(na_rates) > 0 else 0.0
        details = f"Max NA rate: {max_na_rate:.3f} (threshold: {max_rate:.3f})"
        status = "PASS"

    return {name: {"status": status, "details": details}}


def check_window(
    n_periods: int,
    n_assets: int,
    window_length: int,
    name: str = "window"
) -> Dict[str, Dict[str, str]]:
    """
    BLOCK if the panel leaves no out-of-sample period after the first window.

    A window no longer than the number of assets still passes, with a warning
    in the details: the sample covariance is singular and closed-form
    strategies will fail every period.
    """
    if n_periods <= window_length:
        details = f"{n_periods} periods leave no out-of-sample period for window {window_length}"
        status = "BLOCK"
    else:
        details = f"{n_periods - window_length} out-of-sample periods, window {window_length}, {n_assets} assets"
        if window_length <= n_assets:
            details += "; WARN window <= assets, covariance will be singular"
        status = "PASS"

    return {name: {"status": status, "details": details}}


def check_weights_sum(
    weights: Union[pd.Series, np.ndarray],
    name: str = "weights_sum",
    tol: float = 1e-6
) -> Dict[str, Dict[str, str]]:
    """BLOCK unless the weights are finite and sum to one within tol."""
    w = np.asarray(weights, dtype=float)
    total = float(np.sum(w))

    if not np.all(np.isfinite(w)):
        details = "Non-finite weights"
        status = "BLOCK"
    elif abs(total - 1.0) > tol:
        details = f"Weights sum to {total:.6f}, expected 1"
        status = "BLOCK"
    else:
        details = f"Weights sum to {total:.6f}"
        status = "PASS"

    return {name: {"status": status, "details": details}}


def aggregate_checks(check_results: Dict[str, Dict[str, str]]) -> Tuple[bool, Dict[str, Dict[str, str]]]:
    """
    Aggregate all check results into a final ok_to_run boolean.

    Args:
        check_results: Dict of check results

    Returns:
        Tuple of (ok_to_run, check_results)
    """
    ok_to_run = all(result["status"] == "PASS" for result in check_results.values())
    return ok_to_run, check_results
