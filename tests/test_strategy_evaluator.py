"""
Tests for StrategyEvaluator, profiles and the indicator bundle.

Rule tests drive the evaluator with hand-built bundles so each crossing is
exact; the no-lookahead test compares full-history and truncated bundles.
"""

import numpy as np
import pytest

from strategy_lab.config import StrategyType, TradeDirection
from strategy_lab.data_sources import Candle
from strategy_lab.strategy_evaluator import (
    NO_SIGNAL,
    AtrBreakoutParams,
    CustomParams,
    EmaCrossParams,
    FundingDivergenceParams,
    IndicatorBundle,
    RsiExtremesParams,
    Signal,
    StrategyEvaluator,
    StrategyParams,
    StrategyProfile,
    UnknownStrategyError,
    default_profile,
)


def bundle_with(params, n=3, **series):
    """Bundle with NaN everywhere except the supplied series."""
    empty = np.full(n, np.nan)
    return IndicatorBundle(
        candles=(),
        params=params,
        close=np.asarray(series.get('close', empty), dtype=float),
        ema_fast=np.asarray(series.get('ema_fast', empty), dtype=float),
        ema_slow=np.asarray(series.get('ema_slow', empty), dtype=float),
        rsi=np.asarray(series.get('rsi', empty), dtype=float),
        atr=np.asarray(series.get('atr', empty), dtype=float),
    )


# =============================================================================
# PROFILES & PARAMS
# =============================================================================

class TestStrategyProfile:

    @pytest.mark.parametrize("strategy_type,params_cls", [
        (StrategyType.EMA_CROSS, EmaCrossParams),
        (StrategyType.RSI_EXTREMES, RsiExtremesParams),
        (StrategyType.ATR_BREAKOUT, AtrBreakoutParams),
        (StrategyType.FUNDING_DIVERGENCE, FundingDivergenceParams),
        (StrategyType.CUSTOM, CustomParams),
    ])
    def test_default_params_variant(self, strategy_type, params_cls):
        profile = StrategyProfile(name="p", strategy_type=strategy_type)
        assert type(profile.params) is params_cls

    def test_defaults(self):
        params = RsiExtremesParams()
        assert (params.ema_fast, params.ema_slow, params.rsi_period, params.atr_period) == (50, 200, 14, 14)
        assert (params.rsi_oversold, params.rsi_overbought) == (30.0, 70.0)
        assert AtrBreakoutParams().atr_multiplier == 1.5

    def test_mismatched_params_rejected(self):
        with pytest.raises(ValueError, match="RsiExtremesParams"):
            StrategyProfile(name="p", strategy_type=StrategyType.EMA_CROSS, params=RsiExtremesParams())

    def test_type_given_as_string(self):
        profile = StrategyProfile(name="p", strategy_type="ATR_BREAKOUT")
        assert profile.strategy_type is StrategyType.ATR_BREAKOUT

    def test_non_positive_risk_rejected(self):
        with pytest.raises(ValueError):
            StrategyProfile(name="p", strategy_type=StrategyType.EMA_CROSS, risk_percent=0)

    def test_default_warmup_is_200(self):
        assert StrategyProfile(name="p", strategy_type=StrategyType.EMA_CROSS).warmup_bars == 200

    def test_warmup_follows_longest_lookback(self):
        params = EmaCrossParams(ema_fast=5, ema_slow=20, rsi_period=14, atr_period=14)
        assert params.warmup_bars == 34

    def test_profile_is_frozen(self):
        profile = default_profile(StrategyType.EMA_CROSS)
        with pytest.raises(AttributeError):
            profile.risk_percent = 5.0

    def test_default_profile_rules(self):
        profile = default_profile("RSI_EXTREMES")
        assert profile.name == "Rsi Extremes"
        assert profile.entry_rules
        assert profile.stop_loss_atr == 1.5


# =============================================================================
# SIGNALS
# =============================================================================

class TestSignal:

    def test_exit_without_side_closes_both(self):
        signal = Signal(exit=True)
        assert signal.exits(TradeDirection.LONG)
        assert signal.exits(TradeDirection.SHORT)

    def test_exit_with_side(self):
        signal = Signal(exit=True, exit_direction=TradeDirection.SHORT)
        assert signal.exits(TradeDirection.SHORT)
        assert not signal.exits(TradeDirection.LONG)

    def test_no_signal_exits_nothing(self):
        assert not NO_SIGNAL.exits(TradeDirection.LONG)


# =============================================================================
# RULES
# =============================================================================

class TestEmaCrossRule:

    @pytest.fixture
    def profile(self):
        return StrategyProfile(name="ema", strategy_type=StrategyType.EMA_CROSS)

    def test_golden_cross(self, profile):
        bundle = bundle_with(EmaCrossParams(), n=2, ema_fast=[100, 102], ema_slow=[100, 101])
        signal = StrategyEvaluator().evaluate(profile, 1, bundle)
        assert signal == Signal(entry=True, exit=True, direction=TradeDirection.LONG,
                                exit_direction=TradeDirection.SHORT)

    def test_death_cross(self, profile):
        bundle = bundle_with(EmaCrossParams(), n=2, ema_fast=[101, 99], ema_slow=[100, 100])
        signal = StrategyEvaluator().evaluate(profile, 1, bundle)
        assert signal == Signal(entry=True, exit=True, direction=TradeDirection.SHORT,
                                exit_direction=TradeDirection.LONG)

    def test_no_cross(self, profile):
        bundle = bundle_with(EmaCrossParams(), n=2, ema_fast=[102, 103], ema_slow=[100, 101])
        assert StrategyEvaluator().evaluate(profile, 1, bundle) == NO_SIGNAL

    def test_nan_gives_no_signal(self, profile):
        bundle = bundle_with(EmaCrossParams(), n=2, ema_fast=[100, 102], ema_slow=[np.nan, 101])
        assert StrategyEvaluator().evaluate(profile, 1, bundle) == NO_SIGNAL


class TestRsiExtremesRule:

    @pytest.fixture
    def profile(self):
        return StrategyProfile(name="rsi", strategy_type=StrategyType.RSI_EXTREMES)

    def evaluate(self, profile, prev, curr):
        bundle = bundle_with(RsiExtremesParams(), n=2, rsi=[prev, curr])
        return StrategyEvaluator().evaluate(profile, 1, bundle)

    def test_cross_below_oversold_enters_long(self, profile):
        signal = self.evaluate(profile, 35, 25)
        assert signal.entry and signal.direction is TradeDirection.LONG
        assert not signal.exit

    def test_cross_above_overbought_enters_short(self, profile):
        signal = self.evaluate(profile, 65, 75)
        assert signal.entry and signal.direction is TradeDirection.SHORT
        assert not signal.exit

    def test_staying_oversold_does_not_reenter(self, profile):
        assert not self.evaluate(profile, 25, 20).entry

    def test_cross_above_midline_exits_long(self, profile):
        signal = self.evaluate(profile, 45, 55)
        assert signal.exits(TradeDirection.LONG)
        assert not signal.exits(TradeDirection.SHORT)
        assert not signal.entry

    def test_cross_below_midline_exits_short(self, profile):
        signal = self.evaluate(profile, 55, 45)
        assert signal.exits(TradeDirection.SHORT)
        assert not signal.exits(TradeDirection.LONG)

    def test_gap_through_both_levels(self, profile):
        signal = self.evaluate(profile, 55, 25)
        assert signal.direction is TradeDirection.LONG
        assert signal.exit_direction is TradeDirection.SHORT

    def test_first_bar_has_no_signal(self, profile):
        bundle = bundle_with(RsiExtremesParams(), n=2, rsi=[25, 25])
        assert StrategyEvaluator().evaluate(profile, 0, bundle) == NO_SIGNAL


class TestAtrBreakoutRule:

    @pytest.fixture
    def candles(self):
        quiet = [Candle(i * 1000, 100.0, 100.5, 99.5, 100.0, 1.0) for i in range(60)]
        spike = [Candle(60 * 1000, 100.0, 115.0, 100.0, 110.0, 1.0)]
        calm = [Candle((61 + i) * 1000, 110.0, 110.05, 109.95, 110.0, 1.0) for i in range(60)]
        return quiet + spike + calm

    @pytest.fixture
    def profile(self):
        return StrategyProfile(name="atr", strategy_type=StrategyType.ATR_BREAKOUT)

    def test_expansion_enters_with_momentum(self, candles, profile):
        bundle = IndicatorBundle.from_candles(candles, profile.params)
        signal = StrategyEvaluator().evaluate(profile, 60, bundle)
        assert signal.entry
        assert signal.direction is TradeDirection.LONG

    def test_quiet_market_has_no_entry(self, candles, profile):
        bundle = IndicatorBundle.from_candles(candles, profile.params)
        assert not StrategyEvaluator().evaluate(profile, 50, bundle).entry

    def test_contraction_exits_either_side(self, candles, profile):
        bundle = IndicatorBundle.from_candles(candles, profile.params)
        evaluator = StrategyEvaluator()
        exits = [evaluator.evaluate(profile, i, bundle) for i in range(61, len(candles))]
        exit_signals = [s for s in exits if s.exit]
        assert exit_signals
        assert all(s.exit_direction is None for s in exit_signals)

    def test_downward_breakout_goes_short(self, profile):
        quiet = [Candle(i * 1000, 100.0, 100.5, 99.5, 100.0, 1.0) for i in range(60)]
        drop = [Candle(60 * 1000, 100.0, 100.0, 85.0, 90.0, 1.0)]
        bundle = IndicatorBundle.from_candles(quiet + drop, profile.params)
        signal = StrategyEvaluator().evaluate(profile, 60, bundle)
        assert signal.entry and signal.direction is TradeDirection.SHORT

    def test_insufficient_atr_history(self, candles, profile):
        bundle = IndicatorBundle.from_candles(candles, profile.params)
        assert StrategyEvaluator().evaluate(profile, 25, bundle) == NO_SIGNAL


# =============================================================================
# DISPATCH
# =============================================================================

class TestDispatch:

    def test_unregistered_extension_gives_no_signal(self, flat_series):
        profile = StrategyProfile(name="funding", strategy_type=StrategyType.FUNDING_DIVERGENCE)
        bundle = IndicatorBundle.from_candles(flat_series, profile.params)
        assert StrategyEvaluator().evaluate(profile, 250, bundle) == NO_SIGNAL

    def test_registered_custom_rule(self, flat_series):
        calls = []

        def rule(profile, i, bundle):
            calls.append(i)
            return Signal(entry=True, direction=TradeDirection.LONG)

        profile = StrategyProfile(name="custom", strategy_type=StrategyType.CUSTOM)
        evaluator = StrategyEvaluator({StrategyType.CUSTOM: rule})
        bundle = IndicatorBundle.from_candles(flat_series, profile.params)

        assert evaluator.evaluate(profile, 210, bundle).entry
        assert calls == [210]

    def test_unknown_type_raises(self, flat_series):
        profile = StrategyProfile(name="martingale", strategy_type="MARTINGALE")
        bundle = IndicatorBundle.from_candles(flat_series, StrategyParams())
        with pytest.raises(UnknownStrategyError, match="MARTINGALE"):
            StrategyEvaluator().evaluate(profile, 250, bundle)

    def test_unknown_strategy_error_is_value_error(self):
        assert issubclass(UnknownStrategyError, ValueError)


# =============================================================================
# INDICATOR BUNDLE & LOOKAHEAD
# =============================================================================

class TestIndicatorBundle:

    def test_series_are_bar_aligned(self, synthetic_candles):
        bundle = IndicatorBundle.from_candles(synthetic_candles, EmaCrossParams())
        n = len(synthetic_candles)
        for series in (bundle.close, bundle.ema_fast, bundle.ema_slow, bundle.rsi, bundle.atr):
            assert len(series) == n
        assert np.isnan(bundle.ema_slow[198]) and not np.isnan(bundle.ema_slow[199])
        assert np.isnan(bundle.rsi[14]) and not np.isnan(bundle.rsi[15])
        assert np.isnan(bundle.atr[13]) and not np.isnan(bundle.atr[14])

    def test_truncated_length(self, synthetic_candles):
        bundle = IndicatorBundle.from_candles(synthetic_candles, EmaCrossParams())
        assert len(bundle.truncated(300)) == 300

    @pytest.mark.parametrize("strategy_type", [
        StrategyType.EMA_CROSS,
        StrategyType.RSI_EXTREMES,
        StrategyType.ATR_BREAKOUT,
    ])
    def test_no_lookahead(self, synthetic_candles, strategy_type):
        """A bar's signal is identical whether or not later bars exist."""
        profile = StrategyProfile(name="p", strategy_type=strategy_type)
        full = IndicatorBundle.from_candles(synthetic_candles, profile.params)
        evaluator = StrategyEvaluator()

        for i in range(200, 700, 23):
            truncated = full.truncated(i + 1)
            assert evaluator.evaluate(profile, i, full) == evaluator.evaluate(profile, i, truncated)
