"""
Main execution module for running a rolling backtest from a config file.

Orchestrates loading the return panel, pre-run checks, the backtest driver,
performance summaries and output files.
"""

import pandas as pd
import numpy as np
import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional
from datetime import datetime

from .backtest import (
    BacktestConfig, BacktestResult, initial_weights_from_config, run_backtest, summarize_performance
)
from .checks import check_missingness, check_schema, check_weights_sum, check_window, aggregate_checks
from .data_io import load_returns, write_performance, write_summary, write_weights
from .exceptions import SingularMatrixError
from .portfolio import equal_weights
from .risk import estimate_moments, validate_covariance_matrix, window_slice
from .strategies import StrategySpec, parse_strategies
from .utils import load_config, set_random_seed, setup_logging, validate_config


def run_pre_checks(path: str, panel: Optional[pd.DataFrame], bt_config: BacktestConfig,
                   initial_weights: Optional[pd.Series] = None) -> Dict[str, Dict[str, str]]:
    """Run all pre-run checks on the return file, the loaded panel and the starting holdings."""
    checks = {}

    header = pd.read_csv(path, nrows=0)
    checks.update(check_schema(header, ["period", "asset", "ret"], "returns_schema"))

    if panel is not None:
        checks.update(check_missingness(panel, max_rate=0.0, name="returns_missingness"))
        checks.update(check_window(len(panel), panel.shape[1], int(bt_config.window_length), "window"))
        if initial_weights is None:
            initial_weights = equal_weights(panel.columns)
        checks.update(check_weights_sum(initial_weights, "initial_weights"))

    return checks


def covariance_diagnostics(panel: pd.DataFrame, bt_config: BacktestConfig) -> str:
    """One-line conditioning diagnostics for the last estimation window."""
    W = int(bt_config.window_length)
    try:
        window = window_slice(panel, len(panel) - W - 1, W)
        Sigma, _ = estimate_moments(window)
        stats = validate_covariance_matrix(Sigma)
        return f"Cov cond={stats['cond']:.1f}, min_eig={stats['min_eig']:.3e}, asym={stats['max_asym']:.2e}"
    except (ValueError, np.linalg.LinAlgError) as e:
        logging.warning("Covariance diagnostics failed: %s", e)
        return "Cov diagnostics: N/A"


def write_report(output_dir: Path, config_path: str, bt_config: BacktestConfig,
                 strategies: List[StrategySpec], check_results: Dict[str, Dict[str, str]],
                 result: Optional[BacktestResult], summary: Optional[pd.DataFrame],
                 risk_diag_line: str) -> Path:
    """Write text report. With no result the report stops after the blocked checks."""
    (output_dir / 'reports').mkdir(parents=True, exist_ok=True)
    report_path = output_dir / 'reports' / 'backtest_report.txt'

    with open(report_path, 'w') as f:
        f.write("ROLLING PORTFOLIO BACKTEST REPORT\n")
        f.write(f"Config: {config_path}\n")
        f.write(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write(f"{'='*50}\n\n")

        f.write("CONFIGURATION\n")
        f.write(f"Window length: {bt_config.window_length}\n")
        f.write(f"Risk aversion: {bt_config.risk_aversion}\n")
        f.write(f"Transaction cost: {bt_config.transaction_cost_bps} bps\n")
        f.write(f"Expected returns: {bt_config.expected_returns}\n")
        f.write(f"Failure policy: {bt_config.failure_policy}\n")
        for spec in strategies:
            lev = f", leverage={spec.leverage}" if spec.leverage is not None else ""
            f.write(f"Strategy: {spec.name} [{spec.kind.value}{lev}]\n")
        f.write("\n")

        f.write("PRE-RUN CHECKS\n")
        for check_name, res in check_results.items():
            f.write(f"{check_name}: {res['status']} - {res['details']}\n")
        f.write(f"\nOK TO RUN: {result is not None}\n\n")

        if result is None:
            f.write("BACKTEST NOT RUN: pre-run checks blocked\n")
            return report_path

        f.write("RISK DIAGNOSTICS (last window)\n")
        f.write(f"{risk_diag_line}\n\n")

        f.write("PERFORMANCE (annualized, net of costs, %)\n")
        f.write(f"{'Strategy':<28}{'Mean':>10}{'SD':>10}{'Sharpe':>10}{'Turnover':>10}{'Failed':>8}\n")
        for strategy, row in summary.iterrows():
            sharpe = "N/A" if not np.isfinite(row['sharpe']) else f"{row['sharpe']:.2f}"
            f.write(
                f"{str(strategy):<28}{100 * row['mean']:>10.2f}{100 * row['sd']:>10.2f}"
                f"{sharpe:>10}{100 * row['turnover']:>10.2f}{int(row['n_failed']):>8}\n"
            )
        f.write("\n")

        f.write("FAILED REBALANCES\n")
        if result.failures.empty:
            f.write("None\n")
        else:
            for _, row in result.failures.iterrows():
                period = pd.Timestamp(row['period']).strftime('%Y-%m-%d')
                f.write(f"{period} {row['strategy']}: {row['error']}\n")

    return report_path


def run(config_path: str) -> Dict[str, Any]:
    """
    Run the complete backtest pipeline.

    Args:
        config_path: Path to YAML config file

    Returns:
        Summary dictionary with results
    """
    config = load_config(config_path)

    setup_logging(
        level=config.get("logging", {}).get("level", "INFO"),
        fmt=config.get("logging", {}).get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )

    try:
        validate_config(config)
    except ValueError as e:
        raise ValueError(f"Configuration validation failed: {e}")

    if config.get("performance", {}).get("random_seed") is not None:
        set_random_seed(config["performance"]["random_seed"])

    bt_section = dict(config["backtest"])
    initial_cfg = bt_section.pop("initial_weights", None)
    bt_config = BacktestConfig.from_dict(bt_section)
    bt_config.validate()
    strategies = parse_strategies(config.get("strategies"))
    logging.info(f"Loaded config from {config_path}")

    returns_path = config["data"]["returns_path"]
    schema_checks = run_pre_checks(returns_path, None, bt_config)
    ok, _ = aggregate_checks(schema_checks)
    if not ok:
        raise ValueError(f"Pre-run checks failed: {schema_checks}")

    panel = load_returns(returns_path)
    logging.info(f"Loaded return panel: {panel.shape[0]} periods x {panel.shape[1]} assets")
    initial_weights = initial_weights_from_config(initial_cfg, panel.columns)

    outdir = Path(config.get("paths", {}).get("output_dir", "data/outputs"))

    ok_to_run, check_results = aggregate_checks(
        run_pre_checks(returns_path, panel, bt_config, initial_weights)
    )
    logging.info(f"Pre-run checks: {'PASS' if ok_to_run else 'BLOCK'}")
    if not ok_to_run:
        blocked = [k for k, v in check_results.items() if v["status"] != "PASS"]
        logging.warning(f"Pre-run checks blocked: {', '.join(blocked)}")
        report_path = write_report(outdir, config_path, bt_config, strategies, check_results,
                                   None, None, "Cov diagnostics: N/A")
        return {
            'ok': False,
            'blocked': blocked,
            'n_periods': 0,
            'n_failed': 0,
            'paths': {'report': str(report_path)},
            'summary': {},
        }

    if int(bt_config.window_length) <= panel.shape[1] and any(s.uses_inverse for s in strategies):
        logging.warning(
            "Window length %s <= %s assets: closed-form strategies will raise %s",
            bt_config.window_length, panel.shape[1], SingularMatrixError.__name__
        )

    result = run_backtest(panel, strategies, bt_config, initial_weights=initial_weights)
    summary = summarize_performance(result.records, periods_per_year=int(bt_config.periods_per_year))
    logging.info("Completed backtest")

    risk_diag_line = covariance_diagnostics(panel, bt_config)

    path_perf = write_performance(outdir, result.records)
    path_w = write_weights(outdir, result.weights)
    path_sum = write_summary(outdir, summary)
    report_path = write_report(outdir, config_path, bt_config, strategies, check_results,
                               result, summary, risk_diag_line)
    logging.info("Wrote output files")

    return {
        'ok': result.ok,
        'blocked': [],
        'n_periods': int(len(panel) - int(bt_config.window_length)),
        'n_failed': int(len(result.failures)),
        'paths': {
            'performance': str(path_perf),
            'weights': str(path_w),
            'summary': str(path_sum),
            'report': str(report_path)
        },
        'summary': summary.to_dict(orient="index"),
    }


def main():
    """Main entry point with CLI argument parsing."""
    parser = argparse.ArgumentParser(description="Rolling mean-variance portfolio backtest")
    parser.add_argument("--config", required=True, help="Path to config file")

    args = parser.parse_args()

    try:
        summary = run(args.config)
        exit_code = 0 if summary['ok'] else 1

        print(f"Report written to: {summary['paths']['report']}")
        if summary.get('blocked'):
            print(f"Pre-run checks blocked: {', '.join(summary['blocked'])}")
        elif not summary['ok']:
            print(f"{summary['n_failed']} rebalances failed; see report")

        sys.exit(exit_code)
    except Exception as e:
        logging.error(f"Pipeline failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
