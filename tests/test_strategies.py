"""
Tests for strategy specs and their solver mapping.
"""

import pytest
import pandas as pd
import numpy as np
from mv_backtest.exceptions import SingularMatrixError
from mv_backtest.optimize import constrained_weights, efficient_weights
from mv_backtest.strategies import (
    DEFAULT_STRATEGIES, StrategyKind, StrategySpec, parse_strategies, solve_strategy
)


class TestSolveStrategy:
    """Each kind maps onto its solver with a fixed constraint set."""

    def setup_method(self):
        assets = ["A", "B", "C"]
        self.Sigma = pd.DataFrame(
            [[0.0025, 0.0005, 0.0002],
             [0.0005, 0.0036, 0.0004],
             [0.0002, 0.0004, 0.0049]],
            index=assets, columns=assets
        )
        self.mu = pd.Series([0.012, 0.004, -0.006], index=assets)
        self.w_prev = pd.Series([0.2, 0.5, 0.3], index=assets)

    def test_naive(self):
        w = solve_strategy(StrategySpec("n", StrategyKind.NAIVE), self.Sigma, self.mu, self.w_prev, 4.0, 0.005)
        assert np.allclose(w.values, 1 / 3)

    def test_analytic_ignores_costs(self):
        w = solve_strategy(StrategySpec("mv", StrategyKind.ANALYTIC), self.Sigma, self.mu, self.w_prev, 4.0, 0.005)
        expected = efficient_weights(self.Sigma, self.mu, gamma=4.0, beta=0.0)
        assert np.allclose(w.values, expected.values)

    def test_analytic_with_costs(self):
        w = solve_strategy(
            StrategySpec("mv_tc", StrategyKind.ANALYTIC_WITH_COSTS), self.Sigma, self.mu, self.w_prev, 4.0, 0.005
        )
        expected = efficient_weights(self.Sigma, self.mu, gamma=4.0, beta=0.005, w_prev=self.w_prev)
        assert np.allclose(w.values, expected.values)
        assert abs(w.sum() - 1.0) < 1e-9

    def test_no_short_sale(self):
        w = solve_strategy(
            StrategySpec("long", StrategyKind.NO_SHORT_SALE), self.Sigma, self.mu, self.w_prev, 4.0, 0.005
        )
        assert (w >= -1e-6).all()
        assert abs(w.sum() - 1.0) < 1e-6

    def test_leverage_capped(self):
        w = solve_strategy(
            StrategySpec("lev", StrategyKind.LEVERAGE_CAPPED, leverage=1.2),
            self.Sigma, self.mu, self.w_prev, 1.0, 0.005
        )
        assert np.abs(w).sum() <= 1.2 + 1e-6
        assert abs(w.sum() - 1.0) < 1e-6

    def test_l1_cost(self):
        """l1_cost solves the numerical problem with the cost term switched on."""
        spec = StrategySpec("l1", StrategyKind.L1_COST)

        w = solve_strategy(spec, self.Sigma, self.mu, self.w_prev, 4.0, 0.005)
        expected, _ = constrained_weights(
            self.Sigma, self.mu, gamma=4.0, beta=0.005, w_prev=self.w_prev, l1_cost=True
        )
        assert np.allclose(w.values, expected.values)
        assert abs(w.sum() - 1.0) < 1e-6

        # Prohibitive costs keep the current holdings
        held = solve_strategy(spec, self.Sigma, self.mu, self.w_prev, 4.0, 1.0)
        assert np.allclose(held.values, self.w_prev.values, atol=1e-3)

    def test_singular_propagates(self):
        Sigma = pd.DataFrame(np.ones((3, 3)), index=self.Sigma.index, columns=self.Sigma.columns)
        with pytest.raises(SingularMatrixError):
            solve_strategy(StrategySpec("mv", StrategyKind.ANALYTIC), Sigma, self.mu, self.w_prev, 4.0, 0.0)


class TestParseStrategies:
    """Config entries become StrategySpecs."""

    def test_defaults(self):
        specs = parse_strategies(None)
        assert specs == list(DEFAULT_STRATEGIES)
        assert [s.kind for s in specs] == [
            StrategyKind.ANALYTIC_WITH_COSTS, StrategyKind.NAIVE, StrategyKind.NO_SHORT_SALE
        ]

    def test_parse(self):
        specs = parse_strategies([
            {"name": "Lev", "kind": "leverage_capped", "leverage": 1.5},
            {"kind": "l1_cost"},
        ])
        assert specs[0] == StrategySpec("Lev", StrategyKind.LEVERAGE_CAPPED, 1.5)
        assert specs[1].name == "l1_cost"
        assert specs[1].kind is StrategyKind.L1_COST

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="Unknown strategy kind"):
            parse_strategies([{"name": "x", "kind": "risk_parity"}])

    def test_duplicate_names(self):
        with pytest.raises(ValueError, match="Duplicate"):
            parse_strategies([{"name": "x", "kind": "naive"}, {"name": "x", "kind": "analytic"}])

    def test_leverage_validation(self):
        with pytest.raises(ValueError):
            StrategySpec("lev", StrategyKind.LEVERAGE_CAPPED)
        with pytest.raises(ValueError):
            StrategySpec("lev", StrategyKind.LEVERAGE_CAPPED, leverage=0.8)
        with pytest.raises(ValueError):
            StrategySpec("naive", StrategyKind.NAIVE, leverage=1.5)

    def test_kind_from_string(self):
        spec = StrategySpec("mv", "analytic")
        assert spec.kind is StrategyKind.ANALYTIC
        assert spec.uses_inverse
        assert not StrategySpec("n", "naive").uses_inverse
