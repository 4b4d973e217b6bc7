"""
Tests for synthetic data generator.
"""

import pytest
import pandas as pd
import numpy as np
from data_fetch.make_synth_data import generate
from mv_backtest.data_io import load_returns


def test_returns_schema_and_calendar(tmp_path):
    """Test returns.csv schema and month-end calendar."""
    summary = generate(str(tmp_path), n_assets=6, n_periods=36)

    returns_df = pd.read_csv(tmp_path / 'returns.csv')

    expected_cols = ['period', 'asset', 'ret']
    assert list(returns_df.columns) == expected_cols, f"Expected columns {expected_cols}, got {list(returns_df.columns)}"
    assert len(returns_df) == 6 * 36

    periods = pd.to_datetime(returns_df['period'].unique())
    assert (periods == periods + pd.offsets.MonthEnd(0)).all(), "Periods are not month ends"

    assert summary['total_assets'] == 6
    assert summary['total_periods'] == 36
    assert summary['period_range'] == ('2000-01-31', '2002-12-31')


def test_loads_as_complete_panel(tmp_path):
    """Generated file loads into a complete panel."""
    generate(str(tmp_path), n_assets=12, n_periods=24)

    panel = load_returns(tmp_path / 'returns.csv')

    assert panel.shape == (24, 12)
    assert panel.notna().all().all()
    assert panel.index.is_monotonic_increasing
    # Industry names first, then generic ids
    assert "NoDur" in panel.columns
    assert "A011" in panel.columns


def test_deterministic_output(tmp_path):
    """Test that output is deterministic for a given seed."""
    generate(str(tmp_path / 'test1'), seed=11)
    generate(str(tmp_path / 'test2'), seed=11)
    generate(str(tmp_path / 'test3'), seed=12)

    df1 = pd.read_csv(tmp_path / 'test1' / 'returns.csv')
    df2 = pd.read_csv(tmp_path / 'test2' / 'returns.csv')
    df3 = pd.read_csv(tmp_path / 'test3' / 'returns.csv')

    pd.testing.assert_frame_equal(df1, df2)
    assert not np.allclose(df1['ret'].values, df3['ret'].values)


def test_return_statistics_realism(tmp_path):
    """Test that monthly return statistics are realistic."""
    generate(str(tmp_path))

    panel = load_returns(tmp_path / 'returns.csv')

    assert abs(panel.mean().mean()) < 0.02, f"Mean returns too large: {panel.mean().mean()}"
    assert 0.02 < panel.std().mean() < 0.10, f"Std outside reasonable range: {panel.std().mean()}"
    assert (panel > -1.0).all().all(), "Found returns below -100%"

    # Common factor: assets are positively correlated
    corr = panel.corr().values
    off_diag = corr[~np.eye(len(corr), dtype=bool)]
    assert off_diag.mean() > 0.3
