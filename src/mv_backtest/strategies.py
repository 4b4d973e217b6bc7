"""
Named portfolio strategies and their mapping onto the solvers.

Each strategy kind fixes its objective and constraint set; the backtest
driver only ever sees a StrategySpec and asks for that strategy's weights.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import pandas as pd

from .optimize import constrained_weights, efficient_weights
from .portfolio import equal_weights


class StrategyKind(str, Enum):
    NAIVE = "naive"
    ANALYTIC = "analytic"
    ANALYTIC_WITH_COSTS = "analytic_with_costs"
    NO_SHORT_SALE = "no_short_sale"
    LEVERAGE_CAPPED = "leverage_capped"
    L1_COST = "l1_cost"


@dataclass(frozen=True)
class StrategySpec:
    """A named strategy: one kind plus its kind-specific parameters."""

    name: str
    kind: StrategyKind
    leverage: Optional[float] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("Strategy name must be non-empty")
        if not isinstance(self.kind, StrategyKind):
            object.__setattr__(self, "kind", StrategyKind(self.kind))
        if self.kind is StrategyKind.LEVERAGE_CAPPED:
            if self.leverage is None or self.leverage < 1.0:
                raise ValueError(f"Strategy '{self.name}' needs leverage >= 1, got {self.leverage}")
        elif self.leverage is not None:
            raise ValueError(f"Strategy '{self.name}' of kind {self.kind.value} takes no leverage")

    @property
    def uses_inverse(self) -> bool:
        """True if the strategy inverts the covariance matrix."""
        return self.kind in (StrategyKind.ANALYTIC, StrategyKind.ANALYTIC_WITH_COSTS)


DEFAULT_STRATEGIES = (
    StrategySpec("MV (TC)", StrategyKind.ANALYTIC_WITH_COSTS),
    StrategySpec("Naive", StrategyKind.NAIVE),
    StrategySpec("MV (no short-selling)", StrategyKind.NO_SHORT_SALE),
)


def solve_strategy(
    spec: StrategySpec,
    Sigma: pd.DataFrame,
    mu: pd.Series,
    w_prev: pd.Series,
    gamma: float,
    beta: float,
) -> pd.Series:
    """
    Weights chosen by one strategy for one rebalance.

    Args:
        spec: Strategy to solve
        Sigma: Covariance estimate
        mu: Expected-return estimate
        w_prev: This strategy's pre-rebalance weights
        gamma: Risk aversion
        beta: Transaction cost as a fraction

    Raises:
        SingularMatrixError: From the closed-form solver
        SolverNonConvergenceError: From the numerical solver
    """
    kind = spec.kind
    if kind is StrategyKind.NAIVE:
        return equal_weights(Sigma.index)
    if kind is StrategyKind.ANALYTIC:
        return efficient_weights(Sigma, mu, gamma=gamma, beta=0.0, w_prev=w_prev)
    if kind is StrategyKind.ANALYTIC_WITH_COSTS:
        return efficient_weights(Sigma, mu, gamma=gamma, beta=beta, w_prev=w_prev)
    if kind is StrategyKind.NO_SHORT_SALE:
        weights, _ = constrained_weights(Sigma, mu, gamma=gamma, w_prev=w_prev, long_only=True)
        return weights
    if kind is StrategyKind.LEVERAGE_CAPPED:
        weights, _ = constrained_weights(Sigma, mu, gamma=gamma, w_prev=w_prev, leverage_cap=spec.leverage)
        return weights
    if kind is StrategyKind.L1_COST:
        weights, _ = constrained_weights(Sigma, mu, gamma=gamma, beta=beta, w_prev=w_prev, l1_cost=True)
        return weights
    raise ValueError(f"Unhandled strategy kind: {kind}")


def parse_strategies(cfg_list: Optional[List[Dict[str, Any]]]) -> List[StrategySpec]:
    """
    Build strategy specs from config entries like {"name": ..., "kind": ..., "leverage": ...}.

    An empty or missing list gives DEFAULT_STRATEGIES.
    """
    if not cfg_list:
        return list(DEFAULT_STRATEGIES)

    specs = []
    for entry in cfg_list:
        if "kind" not in entry:
            raise ValueError(f"Strategy entry missing 'kind': {entry}")
        try:
            kind = StrategyKind(entry["kind"])
        except ValueError:
            valid = ", ".join(k.value for k in StrategyKind)
            raise ValueError(f"Unknown strategy kind '{entry['kind']}' (valid: {valid})")
        name = entry.get("name", kind.value)
        leverage = entry.get("leverage")
        specs.append(StrategySpec(name, kind, float(leverage) if leverage is not None else None))

    names = [s.name for s in specs]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValueError(f"Duplicate strategy names: {', '.join(duplicates)}")

    return specs
