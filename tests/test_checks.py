"""
Tests for checks module.
"""

import pytest
import pandas as pd
import numpy as np
from mv_backtest.checks import (
    aggregate_checks, check_missingness, check_schema, check_weights_sum, check_window
)


def test_check_schema_pass_and_block():
    """Test schema check with passing and blocking cases."""
    df = pd.DataFrame({"period": ["2020-01-31"], "asset": ["A"], "ret": [0.01]})

    ok = check_schema(df, ["period", "asset", "ret"])
    assert ok["schema"]["status"] == "PASS"

    bad = check_schema(df.drop(columns="ret"), ["period", "asset", "ret"])
    assert bad["schema"]["status"] == "BLOCK"
    assert "ret" in bad["schema"]["details"]


def test_check_missingness_thresholds():
    """Test missingness check with different thresholds."""
    df = pd.DataFrame({"x": [0.01, 0.02, np.nan, 0.04], "y": [0.01, 0.02, 0.03, 0.04]})

    # Returns must be complete by default
    r0 = check_missingness(df)
    assert r0["missingness"]["status"] == "BLOCK"
    assert "x" in r0["missingness"]["details"]

    r1 = check_missingness(df, max_rate=0.30)
    assert r1["missingness"]["status"] == "PASS"

    r2 = check_missingness(df.dropna())
    assert r2["missingness"]["status"] == "PASS"


class TestCheckWindow:
    """Test window feasibility check."""

    def test_window_blocks_without_out_of_sample(self):
        result = check_window(n_periods=60, n_assets=5, window_length=60)
        assert result["window"]["status"] == "BLOCK"

    def test_window_pass(self):
        result = check_window(n_periods=240, n_assets=10, window_length=120)
        assert result["window"]["status"] == "PASS"
        assert "120 out-of-sample periods" in result["window"]["details"]
        assert "WARN" not in result["window"]["details"]

    def test_short_window_warns(self):
        """A window no longer than the asset count passes with a warning."""
        result = check_window(n_periods=60, n_assets=10, window_length=10)
        assert result["window"]["status"] == "PASS"
        assert "WARN" in result["window"]["details"]


def test_check_weights_sum():
    """Weights must be finite and fully invested."""
    assert check_weights_sum(pd.Series([0.5, 0.7, -0.2]))["weights_sum"]["status"] == "PASS"
    assert check_weights_sum(np.array([0.5, 0.4]))["weights_sum"]["status"] == "BLOCK"
    assert check_weights_sum(np.array([0.5, np.nan]))["weights_sum"]["status"] == "BLOCK"


def test_aggregate_checks():
    """ok_to_run is True only when every check passes."""
    checks = {}
    checks.update(check_window(100, 5, 24))
    checks.update(check_weights_sum([0.5, 0.5]))

    ok_to_run, results = aggregate_checks(checks)
    assert ok_to_run is True
    assert set(results) == {"window", "weights_sum"}

    checks.update(check_window(20, 5, 24, name="window_short"))
    ok_to_run, _ = aggregate_checks(checks)
    assert ok_to_run is False
