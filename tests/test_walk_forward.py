"""
Tests for WalkForwardValidator.

Uses 4h synthetic candles: a 6-month train slice holds 1080 bars and a
1-month test slice 180 bars, which is below the 200-bar warm-up, so test
back-tests report INSUFFICIENT_DATA.
"""

import pytest

from strategy_lab.backtest_engine import WalkForwardValidator, run_backtest, run_walk_forward
from strategy_lab.config import BacktestStatus, StrategyType
from strategy_lab.data_sources import SyntheticCandleSupplier
from strategy_lab.strategy_evaluator import StrategyProfile

DAY_MS = 24 * 60 * 60 * 1000
MONTH_MS = 30 * DAY_MS


def four_hour_candles(days, seed=17):
    return SyntheticCandleSupplier(seed=seed, volatility=0.01).get_candles("ETHUSDT", "4h", days * 6)


@pytest.fixture
def profile():
    return StrategyProfile(name="wf", strategy_type=StrategyType.RSI_EXTREMES)


# =============================================================================
# WINDOWING
# =============================================================================

class TestWindowing:

    @pytest.mark.parametrize("days,expected", [(420, 2), (630, 3)])
    def test_window_count(self, profile, days, expected):
        result = run_walk_forward(profile, four_hour_candles(days))
        assert result.n_windows == expected

    def test_windows_are_chronological(self, profile):
        result = run_walk_forward(profile, four_hour_candles(630))
        for w in result.windows:
            assert w.train_end - w.train_start == 6 * MONTH_MS
            assert w.test_start == w.train_end
            assert w.test_end - w.test_start == MONTH_MS
        for prev, curr in zip(result.windows, result.windows[1:]):
            assert curr.train_start == prev.train_start + 6 * MONTH_MS

    def test_first_window_starts_at_first_candle(self, profile):
        candles = four_hour_candles(420)
        result = run_walk_forward(profile, candles)
        assert result.windows[0].train_start == candles[0].timestamp

    def test_slices_are_backtested_independently(self, profile):
        result = run_walk_forward(profile, four_hour_candles(420))
        window = result.windows[0]
        assert window.train_result.total_bars == 180 * 6
        assert window.test_result.total_bars == 30 * 6
        assert window.test_result.status == BacktestStatus.INSUFFICIENT_DATA
        assert window.train_result.initial_capital == window.test_result.initial_capital == 10000.0

    def test_efficiency_with_idle_test_slices(self, profile):
        result = run_walk_forward(profile, four_hour_candles(420))
        assert all(w.efficiency == 0.0 for w in result.windows)
        assert result.avg_efficiency == 0.0
        assert result.is_robust is False

    def test_shorter_windows(self, profile):
        """Two-month train / 1.5-month test windows hold enough bars for both slices."""
        candles = four_hour_candles(300)
        result = run_walk_forward(profile, candles, train_months=2, test_months=1.5)
        assert result.n_windows > 0
        for w in result.windows:
            assert w.test_result.total_bars == 45 * 6
            assert w.test_result.status in (BacktestStatus.SUCCESS, BacktestStatus.NO_TRADES)


# =============================================================================
# DEGENERATE INPUTS
# =============================================================================

class TestDegenerateInputs:

    def test_history_shorter_than_one_window(self, profile):
        result = run_walk_forward(profile, four_hour_candles(150))
        assert result.windows == []
        assert result.avg_efficiency == 0.0
        assert result.is_robust is False

    def test_sparse_train_slice_stops_partitioning(self, profile):
        """Daily bars give a 180-bar train slice, below the 200-bar floor."""
        candles = SyntheticCandleSupplier(seed=3).get_candles("BTCUSDT", "1d", 800)
        result = run_walk_forward(profile, candles)
        assert result.windows == []

    def test_empty_series(self, profile):
        result = run_walk_forward(profile, [])
        assert result.windows == []
        assert result.overall_result.status == BacktestStatus.INSUFFICIENT_DATA

    def test_invalid_months(self):
        with pytest.raises(ValueError):
            WalkForwardValidator(train_months=0, test_months=1)
        with pytest.raises(ValueError):
            WalkForwardValidator(train_months=6, test_months=-1)


# =============================================================================
# OVERALL RESULT
# =============================================================================

class TestOverallResult:

    def test_overall_matches_full_backtest(self, profile):
        candles = four_hour_candles(420)
        result = run_walk_forward(profile, candles)
        full = run_backtest(profile, candles)
        assert result.overall_result.trades == full.trades
        assert result.overall_result.metrics == full.metrics
