"""
Strategy Evaluator
==================

Turns a strategy profile plus precomputed indicator series into a per-bar
entry/exit decision.

PROFILES
--------
A ``StrategyProfile`` names one of the closed set of strategy families and
carries a params object of the matching variant. Every variant shares the
indicator periods the engine always computes (fast/slow EMA, RSI, ATR); each
adds only the knobs its family reads:

    EMA_CROSS            EmaCrossParams
    RSI_EXTREMES         RsiExtremesParams        (oversold / overbought)
    ATR_BREAKOUT         AtrBreakoutParams        (atr multiplier)
    FUNDING_DIVERGENCE   FundingDivergenceParams  (funding / volume knobs)
    CUSTOM               CustomParams

INDICATOR BUNDLE
----------------
Indicators are computed once per run and left-padded with NaN so index ``i``
of every series is bar ``i``. Rules read only bar ``i`` and earlier, and any
NaN they touch yields no signal; this makes the evaluator lookahead-free by
construction.

RULES
-----
    EMA_CROSS     golden cross -> long entry / short exit
                  death cross  -> short entry / long exit
    RSI_EXTREMES  RSI crosses below oversold   -> long entry
                  RSI crosses above overbought -> short entry
                  RSI crosses above 50 -> long exit, below 50 -> short exit
    ATR_BREAKOUT  ATR above multiplier x trailing 20-bar average -> entry in
                  the direction of the 10-bar close change; ATR below
                  0.8 x average -> exit either side

FUNDING_DIVERGENCE and CUSTOM are extension points served by a caller
supplied rule registry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, ClassVar, Dict, Mapping, Optional, Sequence, Set, Tuple

import numpy as np

from .config import Config, StrategyType, TradeDirection
from .data_sources import Candle, closes_of
from .technical_indicators import (
    calculate_atr,
    calculate_ema,
    calculate_rsi,
    pad_to_length,
)

logger = logging.getLogger(__name__)


class UnknownStrategyError(ValueError):
    """Raised when a profile names a strategy type the evaluator cannot run."""

    def __init__(self, strategy_type: object):
        super().__init__(f"Unknown strategy type: {strategy_type!r}")
        self.strategy_type = strategy_type


# =============================================================================
# SECTION 1: STRATEGY PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class StrategyParams:
    """Indicator periods shared by every strategy family."""
    ema_fast: int = 50
    ema_slow: int = 200
    rsi_period: int = 14
    atr_period: int = 14

    strategy_type: ClassVar[Optional[StrategyType]] = None

    @property
    def warmup_bars(self) -> int:
        """First bar index at which every rule has the history it reads."""
        return max(
            self.ema_slow,
            self.ema_fast,
            self.rsi_period + 2,
            self.atr_period + Config.ATR_AVERAGE_WINDOW,
            Config.MOMENTUM_LOOKBACK,
        )


@dataclass(frozen=True)
class EmaCrossParams(StrategyParams):
    strategy_type: ClassVar[Optional[StrategyType]] = StrategyType.EMA_CROSS


@dataclass(frozen=True)
class RsiExtremesParams(StrategyParams):
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0

    strategy_type: ClassVar[Optional[StrategyType]] = StrategyType.RSI_EXTREMES


@dataclass(frozen=True)
class AtrBreakoutParams(StrategyParams):
    atr_multiplier: float = 1.5

    strategy_type: ClassVar[Optional[StrategyType]] = StrategyType.ATR_BREAKOUT


@dataclass(frozen=True)
class FundingDivergenceParams(StrategyParams):
    funding_threshold: float = 0.01
    volume_multiplier: float = 1.5

    strategy_type: ClassVar[Optional[StrategyType]] = StrategyType.FUNDING_DIVERGENCE


@dataclass(frozen=True)
class CustomParams(StrategyParams):
    strategy_type: ClassVar[Optional[StrategyType]] = StrategyType.CUSTOM


PARAMS_BY_TYPE: Dict[StrategyType, type] = {
    StrategyType.EMA_CROSS: EmaCrossParams,
    StrategyType.RSI_EXTREMES: RsiExtremesParams,
    StrategyType.ATR_BREAKOUT: AtrBreakoutParams,
    StrategyType.FUNDING_DIVERGENCE: FundingDivergenceParams,
    StrategyType.CUSTOM: CustomParams,
}


# =============================================================================
# SECTION 2: STRATEGY PROFILE
# =============================================================================

@dataclass(frozen=True)
class StrategyProfile:
    """
    Immutable description of a strategy run.

    ``strategy_type`` may be given as a ``StrategyType`` or its string value.
    When ``params`` is omitted the default variant for the type is used.

    Raises:
        ValueError: if ``params`` is a variant for a different type, or the
            risk settings are not positive
    """
    name: str
    strategy_type: StrategyType
    params: Optional[StrategyParams] = None
    risk_percent: float = Config.DEFAULT_RISK_PERCENT
    stop_loss_atr: Optional[float] = None
    take_profit_atr: Optional[float] = None
    entry_rules: Tuple[str, ...] = ()
    exit_rules: Tuple[str, ...] = ()

    def __post_init__(self):
        strategy_type = self.strategy_type
        if isinstance(strategy_type, str) and strategy_type in StrategyType.__members__:
            strategy_type = StrategyType[strategy_type]
            object.__setattr__(self, 'strategy_type', strategy_type)

        if self.params is None:
            params_cls = PARAMS_BY_TYPE.get(strategy_type, StrategyParams)
            object.__setattr__(self, 'params', params_cls())
        elif isinstance(strategy_type, StrategyType):
            expected = PARAMS_BY_TYPE[strategy_type]
            if type(self.params) is not expected:
                raise ValueError(
                    f"{strategy_type.value} profile '{self.name}' needs "
                    f"{expected.__name__}, got {type(self.params).__name__}"
                )

        if self.risk_percent <= 0:
            raise ValueError(f"risk_percent must be positive, got {self.risk_percent}")
        if self.stop_loss_atr is not None and self.stop_loss_atr <= 0:
            raise ValueError(f"stop_loss_atr must be positive, got {self.stop_loss_atr}")

        object.__setattr__(self, 'entry_rules', tuple(self.entry_rules))
        object.__setattr__(self, 'exit_rules', tuple(self.exit_rules))

    @property
    def warmup_bars(self) -> int:
        return self.params.warmup_bars


def default_profile(strategy_type: StrategyType, name: Optional[str] = None) -> StrategyProfile:
    """Profile with default params and a 1.5 ATR stop for ``strategy_type``."""
    strategy_type = StrategyType(strategy_type)
    return StrategyProfile(
        name=name or strategy_type.value.replace('_', ' ').title(),
        strategy_type=strategy_type,
        stop_loss_atr=1.5,
        take_profit_atr=3.0,
        entry_rules=_DEFAULT_RULES[strategy_type][0],
        exit_rules=_DEFAULT_RULES[strategy_type][1],
    )


_DEFAULT_RULES: Dict[StrategyType, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    StrategyType.EMA_CROSS: (
        ("Fast EMA crosses above slow EMA (long)", "Fast EMA crosses below slow EMA (short)"),
        ("Opposite crossover",),
    ),
    StrategyType.RSI_EXTREMES: (
        ("RSI crosses below oversold (long)", "RSI crosses above overbought (short)"),
        ("RSI crosses back through 50",),
    ),
    StrategyType.ATR_BREAKOUT: (
        ("ATR expands above its 20-bar average times the multiplier",),
        ("ATR contracts below 0.8x its 20-bar average",),
    ),
    StrategyType.FUNDING_DIVERGENCE: (
        ("Funding rate beyond threshold with volume expansion",),
        ("Funding normalizes",),
    ),
    StrategyType.CUSTOM: ((), ()),
}


# =============================================================================
# SECTION 3: INDICATOR BUNDLE
# =============================================================================

@dataclass(frozen=True, eq=False)
class IndicatorBundle:
    """
    Bar-aligned indicator series for one candle series.

    Every array has one entry per candle; bars before an indicator's first
    value hold NaN.
    """
    candles: Tuple[Candle, ...]
    params: StrategyParams
    close: np.ndarray
    ema_fast: np.ndarray
    ema_slow: np.ndarray
    rsi: np.ndarray
    atr: np.ndarray

    @classmethod
    def from_candles(cls, candles: Sequence[Candle], params: StrategyParams) -> IndicatorBundle:
        candles = tuple(candles)
        n = len(candles)
        close = closes_of(candles)

        return cls(
            candles=candles,
            params=params,
            close=close,
            ema_fast=pad_to_length(calculate_ema(close, params.ema_fast), n),
            ema_slow=pad_to_length(calculate_ema(close, params.ema_slow), n),
            rsi=pad_to_length(calculate_rsi(close, params.rsi_period), n),
            atr=pad_to_length(calculate_atr(candles, params.atr_period), n),
        )

    def truncated(self, n: int) -> IndicatorBundle:
        """Bundle recomputed from scratch on the first ``n`` candles only."""
        return IndicatorBundle.from_candles(self.candles[:n], self.params)

    def __len__(self) -> int:
        return len(self.candles)


# =============================================================================
# SECTION 4: SIGNALS & RULES
# =============================================================================

@dataclass(frozen=True)
class Signal:
    """
    Per-bar decision.

    ``exit_direction`` is the side an exit closes; ``None`` closes either.
    """
    entry: bool = False
    exit: bool = False
    direction: Optional[TradeDirection] = None
    exit_direction: Optional[TradeDirection] = None

    def exits(self, side: TradeDirection) -> bool:
        """True when this signal closes a position held on ``side``."""
        return self.exit and (self.exit_direction is None or self.exit_direction is side)


NO_SIGNAL = Signal()

RuleFn = Callable[['StrategyProfile', int, IndicatorBundle], Signal]


def _has_nan(*values: float) -> bool:
    return bool(np.isnan(np.asarray(values, dtype=float)).any())


def ema_cross_rule(profile: StrategyProfile, i: int, bundle: IndicatorBundle) -> Signal:
    if i < 1:
        return NO_SIGNAL

    prev_fast, fast = bundle.ema_fast[i - 1], bundle.ema_fast[i]
    prev_slow, slow = bundle.ema_slow[i - 1], bundle.ema_slow[i]
    if _has_nan(prev_fast, fast, prev_slow, slow):
        return NO_SIGNAL

    if prev_fast <= prev_slow and fast > slow:
        return Signal(entry=True, exit=True,
                      direction=TradeDirection.LONG, exit_direction=TradeDirection.SHORT)
    if prev_fast >= prev_slow and fast < slow:
        return Signal(entry=True, exit=True,
                      direction=TradeDirection.SHORT, exit_direction=TradeDirection.LONG)
    return NO_SIGNAL


def rsi_extremes_rule(profile: StrategyProfile, i: int, bundle: IndicatorBundle) -> Signal:
    if i < 1:
        return NO_SIGNAL

    prev, curr = bundle.rsi[i - 1], bundle.rsi[i]
    if _has_nan(prev, curr):
        return NO_SIGNAL

    params = profile.params
    midline = Config.RSI_MIDLINE

    direction = None
    if prev >= params.rsi_oversold and curr < params.rsi_oversold:
        direction = TradeDirection.LONG
    elif prev <= params.rsi_overbought and curr > params.rsi_overbought:
        direction = TradeDirection.SHORT

    exit_direction = None
    if prev <= midline < curr:
        exit_direction = TradeDirection.LONG
    elif prev >= midline > curr:
        exit_direction = TradeDirection.SHORT

    return Signal(
        entry=direction is not None,
        exit=exit_direction is not None,
        direction=direction,
        exit_direction=exit_direction,
    )


def atr_breakout_rule(profile: StrategyProfile, i: int, bundle: IndicatorBundle) -> Signal:
    window = Config.ATR_AVERAGE_WINDOW
    lookback = Config.MOMENTUM_LOOKBACK
    if i < window or i < lookback:
        return NO_SIGNAL

    trailing = bundle.atr[i - window:i]
    curr = bundle.atr[i]
    if _has_nan(curr, *trailing) or _has_nan(bundle.close[i], bundle.close[i - lookback]):
        return NO_SIGNAL

    avg = float(trailing.sum()) / window

    if curr > profile.params.atr_multiplier * avg:
        if bundle.close[i] > bundle.close[i - lookback]:
            direction = TradeDirection.LONG
        else:
            direction = TradeDirection.SHORT
        return Signal(entry=True, direction=direction)

    if curr < Config.ATR_EXIT_RATIO * avg:
        return Signal(exit=True)

    return NO_SIGNAL


BUILTIN_RULES: Mapping[StrategyType, RuleFn] = {
    StrategyType.EMA_CROSS: ema_cross_rule,
    StrategyType.RSI_EXTREMES: rsi_extremes_rule,
    StrategyType.ATR_BREAKOUT: atr_breakout_rule,
}


# =============================================================================
# SECTION 5: EVALUATOR
# =============================================================================

class StrategyEvaluator:
    """
    Dispatches a profile to its rule for one bar.

    Example:
        >>> evaluator = StrategyEvaluator()
        >>> bundle = IndicatorBundle.from_candles(candles, profile.params)
        >>> signal = evaluator.evaluate(profile, 250, bundle)
    """

    def __init__(self, rules: Optional[Mapping[StrategyType, RuleFn]] = None):
        """
        Args:
            rules: Extra or overriding rules keyed by strategy type; this is
                how FUNDING_DIVERGENCE and CUSTOM profiles get behavior
        """
        self.rules: Dict[StrategyType, RuleFn] = dict(BUILTIN_RULES)
        if rules:
            self.rules.update(rules)
        self._unserved: Set[StrategyType] = set()

    def evaluate(self, profile: StrategyProfile, bar_index: int, bundle: IndicatorBundle) -> Signal:
        """
        Decide entry/exit at ``bar_index``.

        Raises:
            UnknownStrategyError: if the profile type is not a StrategyType
        """
        strategy_type = profile.strategy_type
        if not isinstance(strategy_type, StrategyType):
            raise UnknownStrategyError(strategy_type)

        rule = self.rules.get(strategy_type)
        if rule is None:
            if strategy_type not in self._unserved:
                self._unserved.add(strategy_type)
                logger.debug(f"No rule registered for {strategy_type.value}; emitting no signals")
            return NO_SIGNAL

        return rule(profile, bar_index, bundle)


__all__ = [
    'UnknownStrategyError',
    'StrategyParams',
    'EmaCrossParams',
    'RsiExtremesParams',
    'AtrBreakoutParams',
    'FundingDivergenceParams',
    'CustomParams',
    'PARAMS_BY_TYPE',
    'StrategyProfile',
    'default_profile',
    'IndicatorBundle',
    'Signal',
    'NO_SIGNAL',
    'RuleFn',
    'ema_cross_rule',
    'rsi_extremes_rule',
    'atr_breakout_rule',
    'BUILTIN_RULES',
    'StrategyEvaluator',
]
