"""
Tests for portfolio bookkeeping: turnover, evaluation and drift.
"""

import pytest
import pandas as pd
import numpy as np
from mv_backtest.exceptions import DepletedPortfolioError, ShapeMismatchError
from mv_backtest.portfolio import drift_weights, equal_weights, evaluate_performance, turnover


def test_drift_three_assets():
    """Equal weights drift in proportion to gross returns."""
    w = pd.Series([1 / 3, 1 / 3, 1 / 3], index=["A", "B", "C"])
    r = pd.Series([0.01, 0.02, -0.01], index=["A", "B", "C"])

    drifted = drift_weights(w, r)

    expected = np.array([1.01, 1.02, 0.99]) / 3.02
    assert np.allclose(drifted.values, expected, atol=1e-12)
    assert np.allclose(drifted.values, [0.3344, 0.3377, 0.3278], atol=1e-4)
    assert abs(drifted.sum() - 1.0) < 1e-12


def test_drift_zero_returns_is_identity():
    """No returns, no drift."""
    w = pd.Series([0.5, 0.3, -0.1, 0.3], index=list("ABCD"))

    drifted = drift_weights(w, pd.Series(0.0, index=list("ABCD")))

    assert np.allclose(drifted.values, w.values, atol=1e-15)


def test_drift_aligns_by_asset():
    """Returns given in a different order are aligned on w's index."""
    w = pd.Series([0.6, 0.4], index=["A", "B"])
    r = pd.Series([0.10, 0.0], index=["B", "A"])

    drifted = drift_weights(w, r)

    assert drifted["A"] == pytest.approx(0.6 / (0.6 + 0.44))
    assert list(drifted.index) == ["A", "B"]


def test_drift_total_loss():
    """A portfolio worth nothing after the period cannot be renormalized."""
    with pytest.raises(DepletedPortfolioError):
        drift_weights(np.array([1.0, 0.0]), np.array([-1.0, 0.5]))


def test_drift_shape_mismatch():
    """Misaligned vectors are rejected."""
    with pytest.raises(ShapeMismatchError):
        drift_weights(np.array([0.5, 0.5]), np.array([0.1, 0.2, 0.3]))
    with pytest.raises(ShapeMismatchError):
        drift_weights(pd.Series([0.5, 0.5], index=["A", "B"]), pd.Series([0.1, 0.2], index=["A", "C"]))


def test_turnover_symmetric_and_non_negative():
    """turnover(w, w0) == turnover(w0, w) >= 0."""
    rng = np.random.default_rng(3)
    for _ in range(10):
        w = rng.normal(size=6)
        w0 = rng.normal(size=6)
        t1 = turnover(w, w0)
        t2 = turnover(w0, w)
        assert t1 == pytest.approx(t2)
        assert t1 >= 0

    assert turnover([0.5, 0.5], [0.5, 0.5]) == 0.0
    # Full L1 distance, no half factor
    assert turnover([1.0, 0.0], [0.0, 1.0]) == pytest.approx(2.0)


def test_evaluate_performance_values():
    """raw = r'w, turnover = L1 distance, net = raw - bps/1e4 * turnover."""
    w = np.array([0.5, 0.3, 0.2])
    w0 = np.array([0.4, 0.4, 0.2])
    r = np.array([0.02, -0.01, 0.03])

    perf = evaluate_performance(w, w0, r, cost_bps=50)

    assert perf["raw_return"] == pytest.approx(0.5 * 0.02 - 0.3 * 0.01 + 0.2 * 0.03)
    assert perf["turnover"] == pytest.approx(0.2)
    assert perf["net_return"] == pytest.approx(perf["raw_return"] - 0.005 * 0.2)


def test_net_never_exceeds_raw():
    """Costs only ever reduce returns; equality iff no trade or no cost."""
    rng = np.random.default_rng(11)
    for cost in [0.0, 1.0, 50.0, 200.0]:
        w = rng.dirichlet(np.ones(5))
        w0 = rng.dirichlet(np.ones(5))
        r = rng.normal(0.0, 0.05, size=5)

        perf = evaluate_performance(w, w0, r, cost_bps=cost)

        assert perf["net_return"] <= perf["raw_return"]
        if cost == 0.0:
            assert perf["net_return"] == perf["raw_return"]
        else:
            assert perf["net_return"] < perf["raw_return"]

    same = evaluate_performance(w0, w0, r, cost_bps=200.0)
    assert same["turnover"] == 0.0
    assert same["net_return"] == same["raw_return"]


def test_evaluate_negative_cost_rejected():
    """Negative costs are a configuration error."""
    with pytest.raises(ValueError):
        evaluate_performance([1.0], [1.0], [0.01], cost_bps=-1.0)


def test_equal_weights():
    """1/N over the given assets."""
    w = equal_weights(["A", "B", "C", "D"])

    assert np.allclose(w.values, 0.25)
    assert list(w.index) == ["A", "B", "C", "D"]

    with pytest.raises(ShapeMismatchError):
        equal_weights([])
