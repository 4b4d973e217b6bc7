"""
Utility functions for the backtest engine.

Common helpers for logging, configuration and determinism.
"""

import numpy as np
import logging
import yaml
import os
import random
from pathlib import Path
from typing import Any, Dict, Optional, Union


def setup_logging(level: str = "INFO", fmt: Optional[str] = None) -> None:
    """
    Configure root logger once. Safe to call multiple times.
    - level: "DEBUG"|"INFO"|"WARNING"|"ERROR"|"CRITICAL"
    - fmt default: "%(asctime)s %(levelname)s %(name)s - %(message)s"
    """
    # Map level string, default to INFO
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL
    }
    log_level = level_map.get(str(level).upper(), logging.INFO)

    # Remove existing handlers on root to avoid duplicate logs
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    if fmt is None:
        fmt = "%(asctime)s %(levelname)s %(name)s - %(message)s"

    logging.basicConfig(level=log_level, format=fmt)


def load_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load YAML configuration file."""
    with open(config_path, 'r') as f:
        cfg = yaml.safe_load(f)
    if cfg is None:
        return {}
    if not isinstance(cfg, dict):
        raise ValueError(f"Config {config_path} must be a mapping, got {type(cfg).__name__}")
    return cfg


def validate_config(cfg: Dict[str, Any]) -> None:
    """
    Fail fast if required keys are missing. Raise ValueError with a helpful message.
    Required:
      data.returns_path
      backtest.window_length, backtest.risk_aversion, backtest.transaction_cost_bps
    Optional (defaults apply): backtest.expected_returns, backtest.failure_policy,
      backtest.periods_per_year, backtest.initial_weights, strategies, paths.output_dir
    """
    missing_keys = []

    data_cfg = cfg.get("data") or {}
    if "returns_path" not in data_cfg:
        missing_keys.append("data.returns_path")

    bt_cfg = cfg.get("backtest") or {}
    for key in ["window_length", "risk_aversion", "transaction_cost_bps"]:
        if key not in bt_cfg:
            missing_keys.append(f"backtest.{key}")

    if missing_keys:
        raise ValueError(f"Missing required config keys: {', '.join(missing_keys)}")

    strategies = cfg.get("strategies")
    if strategies is not None and not isinstance(strategies, list):
        raise ValueError("strategies must be a list of {name, kind[, leverage]} entries")

    initial = bt_cfg.get("initial_weights")
    if initial is not None and not isinstance(initial, (dict, list)):
        raise ValueError("backtest.initial_weights must be a mapping {asset: weight} or a list of weights")

    if "missing_max" in (cfg.get("checks") or {}):
        raise ValueError("checks.missing_max is not supported: every asset needs a return in every period")


def set_random_seed(seed: int) -> None:
    """
    Set numpy and python's random seeds (and PYTHONHASHSEED env) for determinism.
    """
    np.random.seed(seed)
    random.seed(seed)
    os.environ["PYTHONHASHSEED"] = str(seed)
