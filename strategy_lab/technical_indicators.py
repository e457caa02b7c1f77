"""
Technical Indicator Library for the Strategy Lab Backtesting Engine

INDICATOR ARCHITECTURE
    Stateless numeric transforms grouped into indicator families. Every
    calculation takes a flat numeric sequence (or a candle sequence for
    range-dependent indicators) and returns a numpy array that is SHORTER
    than its input and aligned to the input's end:

        output[i]  corresponds to  input[i + offset]

    The offset of each indicator is listed below and in its docstring.
    ``pad_to_length`` restores bar alignment by left-padding with NaN, which
    is how the strategy evaluator consumes these series.

    Family 1 - MOVING AVERAGES
        - SMA: arithmetic mean of the trailing window       offset period-1
        - EMA: SMA-seeded exponential average               offset period-1

    Family 2 - MOMENTUM OSCILLATORS
        - RSI: Wilder's smoothed gain/loss ratio [0-100]     offset period+1

    Family 3 - TREND INDICATORS
        - ADX/DMI: directional movement system              DI offset period,
                                                            ADX offset 2*period-1
        - MACD: fast/slow EMA spread with signal line
        - Trend / crossover classification of fast vs slow EMA

    Family 4 - VOLATILITY SYSTEMS
        - ATR: EMA-smoothed true range                      offset period
        - Bollinger Bands: SMA +/- k population std         offset period-1
        - Historical volatility: annualized std of log returns, offset period

    Family 5 - PRICE STRUCTURE & VOLUME
        - Support/resistance clustering of recent highs and lows
        - Volume profile by close-price bin

INPUT POLICY
    All functions are deterministic and side-effect free. NaN inputs are not
    sanitized: callers must supply clean series.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .config import Config, CrossoverType, RSICondition, TrendDirection
from .data_sources import Candle

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

# RSI parameters
RSI_PERIOD: int = 14
RSI_OVERBOUGHT: float = 70.0
RSI_OVERSOLD: float = 30.0

# Volatility parameters
ATR_PERIOD: int = 14
BB_PERIOD: int = 20
BB_STD_DEV: float = 2.0
HV_PERIOD: int = 20
HV_ANNUALIZATION: int = 365   # Crypto trades every day

# Trend parameters
ADX_PERIOD: int = 14
EMA_FAST: int = 50
EMA_SLOW: int = 200

# MACD parameters
MACD_FAST: int = 12
MACD_SLOW: int = 26
MACD_SIGNAL: int = 9

# Support / resistance
SR_LOOKBACK: int = 50
SR_THRESHOLD: float = 0.02
SR_MIN_TOUCHES: int = 3
SR_MAX_LEVELS: int = 3

# Volume profile
VOLUME_PROFILE_BINS: int = 20

# Momentum score
MOMENTUM_PERIOD: int = 14
MOMENTUM_TREND_BONUS: float = 10.0


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass
class SupportResistance:
    """Nearest clustered price levels around the last close."""
    support: List[float] = field(default_factory=list)       # Below price, closest first
    resistance: List[float] = field(default_factory=list)    # Above price, closest first


@dataclass
class VolumeLevel:
    """Volume traded with closes inside one price bin."""
    price_level: float
    volume: float


@dataclass
class IndicatorSnapshot:
    """Latest RSI/ATR readings for a candle set (None when unavailable)."""
    rsi: Optional[float] = None
    atr: Optional[float] = None
    atr_percent: Optional[float] = None


def _as_array(data: Sequence[float]) -> np.ndarray:
    return np.asarray(data, dtype=float)


def _empty() -> np.ndarray:
    return np.array([], dtype=float)


# =============================================================================
# FAMILY 1: MOVING AVERAGES
# =============================================================================

class MovingAverages:
    """Simple and exponential moving averages."""

    @staticmethod
    def calculate_sma(data: Sequence[float], period: int) -> np.ndarray:
        """
        Calculate Simple Moving Average.

        Parameters
        ----------
        data : Sequence[float]
            Input values, oldest first
        period : int
            Window length

        Returns
        -------
        np.ndarray
            ``len(data) - period + 1`` values (offset ``period - 1``), empty
            when ``len(data) < period``
        """
        values = _as_array(data)
        if period <= 0 or len(values) < period:
            return _empty()
        rolling = pd.Series(values).rolling(window=period).mean()
        return rolling.to_numpy()[period - 1:]

    @staticmethod
    def calculate_ema(data: Sequence[float], period: int) -> np.ndarray:
        """
        Calculate Exponential Moving Average.

        The first value is the SMA of the first ``period`` inputs; every later
        value follows

            ema = (value - ema) * (2 / (period + 1)) + ema

        The smoothing constant is fixed at ``2 / (period + 1)``.

        Parameters
        ----------
        data : Sequence[float]
            Input values, oldest first
        period : int
            EMA span

        Returns
        -------
        np.ndarray
            ``len(data) - period + 1`` values (offset ``period - 1``), empty
            when ``len(data) < period``
        """
        values = _as_array(data)
        if period <= 0 or len(values) < period:
            return _empty()

        multiplier = 2.0 / (period + 1)
        result = np.empty(len(values) - period + 1, dtype=float)

        ema = float(values[:period].mean())
        result[0] = ema
        for i, value in enumerate(values[period:], start=1):
            ema = (value - ema) * multiplier + ema
            result[i] = ema

        return result


# =============================================================================
# FAMILY 2: MOMENTUM OSCILLATORS
# =============================================================================

class MomentumIndicators:
    """
    Momentum oscillator calculations.

    RSI (Relative Strength Index): Wilder, 1978
    """

    @staticmethod
    def calculate_rsi(data: Sequence[float], period: int = RSI_PERIOD) -> np.ndarray:
        """
        Calculate Relative Strength Index using Wilder's smoothing.

        RSI = 100 - (100 / (1 + RS))
        where RS = Average Gain / Average Loss

        The first ``period`` price changes seed the averages and are not
        emitted themselves; each later change updates them with

            avg = (avg * (period - 1) + change) / period

        When the average loss is exactly zero RSI is 100.

        Parameters
        ----------
        data : Sequence[float]
            Closing prices
        period : int
            Lookback period (default: 14)

        Returns
        -------
        np.ndarray
            RSI values in [0, 100] with offset ``period + 1``; empty when
            ``len(data) < period + 1``
        """
        values = _as_array(data)
        if period <= 0 or len(values) < period + 1:
            return _empty()

        delta = np.diff(values)
        gains = np.where(delta > 0, delta, 0.0)
        losses = np.where(delta < 0, -delta, 0.0)

        avg_gain = float(gains[:period].mean())
        avg_loss = float(losses[:period].mean())

        result = np.empty(max(len(delta) - period, 0), dtype=float)
        for j, i in enumerate(range(period, len(delta))):
            avg_gain = (avg_gain * (period - 1) + gains[i]) / period
            avg_loss = (avg_loss * (period - 1) + losses[i]) / period

            if avg_loss == 0:
                result[j] = 100.0
            else:
                rs = avg_gain / avg_loss
                result[j] = 100.0 - (100.0 / (1.0 + rs))

        return result

    @staticmethod
    def classify_rsi(rsi: float) -> RSICondition:
        """Coarse zone: OVERSOLD at or below 30, OVERBOUGHT at or above 70."""
        if rsi <= RSI_OVERSOLD:
            return RSICondition.OVERSOLD
        if rsi >= RSI_OVERBOUGHT:
            return RSICondition.OVERBOUGHT
        return RSICondition.NEUTRAL

    @staticmethod
    def calculate_momentum_score(
        candles: Sequence[Candle],
        period: int = MOMENTUM_PERIOD
    ) -> int:
        """
        Blend short RSI with the local trend into a 0-100 score.

        Uses RSI(period // 2) over the last ``period`` closes, shifted by
        +/-10 when the fast/slow EMA trend over the same window is up/down.
        Returns 50 when there is not enough data.
        """
        if len(candles) < period:
            return 50

        prices = [c.close for c in candles[-period:]]
        rsi = MomentumIndicators.calculate_rsi(prices, period // 2)
        if len(rsi) == 0:
            return 50

        score = float(rsi[-1])
        trend = TrendIndicators.detect_trend(prices, period // 3, period)

        if trend == TrendDirection.UPTREND:
            score = min(100.0, score + MOMENTUM_TREND_BONUS)
        elif trend == TrendDirection.DOWNTREND:
            score = max(0.0, score - MOMENTUM_TREND_BONUS)

        return int(round(score))


# =============================================================================
# FAMILY 3: TREND INDICATORS
# =============================================================================

class TrendIndicators:
    """
    Trend-following indicator calculations.

    Indicators implemented:
    - ADX/DMI: Wilder, 1978
    - MACD: Appel, 1979
    - Fast/slow EMA trend and crossover classification
    """

    @staticmethod
    def calculate_adx_dmi(
        candles: Sequence[Candle],
        period: int = ADX_PERIOD
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Calculate ADX and Directional Movement indicators.

        +DM = up move when it exceeds the down move and is positive, else 0
        -DM = down move when it exceeds the up move and is positive, else 0
        +DI = EMA(+DM) / EMA(TR) * 100
        -DI = EMA(-DM) / EMA(TR) * 100
        DX  = |+DI - -DI| / (+DI + -DI) * 100   (0 when the sum is 0)
        ADX = EMA(DX)

        Parameters
        ----------
        candles : Sequence[Candle]
            OHLC bars, oldest first
        period : int
            Smoothing period

        Returns
        -------
        Tuple[np.ndarray, np.ndarray, np.ndarray]
            (ADX, +DI, -DI). The DI series have offset ``period``; ADX has
            offset ``2 * period - 1``. All empty with fewer than
            ``period + 1`` candles.
        """
        if period <= 0 or len(candles) < period + 1:
            return _empty(), _empty(), _empty()

        high = np.array([c.high for c in candles], dtype=float)
        low = np.array([c.low for c in candles], dtype=float)
        close = np.array([c.close for c in candles], dtype=float)

        true_range = VolatilityIndicators.true_range(high, low, close)

        up_move = high[1:] - high[:-1]
        down_move = low[:-1] - low[1:]
        plus_dm = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)
        minus_dm = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)

        smooth_tr = MovingAverages.calculate_ema(true_range, period)
        smooth_plus = MovingAverages.calculate_ema(plus_dm, period)
        smooth_minus = MovingAverages.calculate_ema(minus_dm, period)

        with np.errstate(divide='ignore', invalid='ignore'):
            plus_di = np.where(smooth_tr > 0, smooth_plus / smooth_tr * 100.0, 0.0)
            minus_di = np.where(smooth_tr > 0, smooth_minus / smooth_tr * 100.0, 0.0)

            di_sum = plus_di + minus_di
            dx = np.where(di_sum == 0, 0.0, np.abs(plus_di - minus_di) / di_sum * 100.0)

        adx = MovingAverages.calculate_ema(dx, period)

        return adx, plus_di, minus_di

    @staticmethod
    def calculate_macd(
        data: Sequence[float],
        fast: int = MACD_FAST,
        slow: int = MACD_SLOW,
        signal: int = MACD_SIGNAL
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Calculate MACD, Signal line, and Histogram.

        MACD = EMA(fast) - EMA(slow)
        Signal = EMA(MACD, signal_period)
        Histogram = MACD - Signal

        Returns
        -------
        Tuple[np.ndarray, np.ndarray, np.ndarray]
            (MACD line, Signal line, Histogram). The MACD line is aligned to
            the slow EMA (offset ``slow - 1``); signal and histogram to the
            signal EMA (offset ``slow + signal - 2``).
        """
        fast_ema = MovingAverages.calculate_ema(data, fast)
        slow_ema = MovingAverages.calculate_ema(data, slow)
        if len(slow_ema) == 0 or len(fast_ema) == 0:
            return _empty(), _empty(), _empty()

        offset = len(fast_ema) - len(slow_ema)
        macd_line = fast_ema[offset:] - slow_ema

        signal_line = MovingAverages.calculate_ema(macd_line, signal)
        signal_offset = len(macd_line) - len(signal_line)
        histogram = macd_line[signal_offset:] - signal_line

        return macd_line, signal_line, histogram

    @staticmethod
    def detect_trend(
        data: Sequence[float],
        fast_period: int = EMA_FAST,
        slow_period: int = EMA_SLOW
    ) -> TrendDirection:
        """
        Classify the trend from the last fast and slow EMA values.

        UPTREND when fast > slow * 1.02, DOWNTREND when fast < slow * 0.98,
        otherwise NEUTRAL. The 2% band keeps the label from flapping while
        the averages sit near parity.
        """
        if len(data) < slow_period:
            return TrendDirection.NEUTRAL

        fast_ema = MovingAverages.calculate_ema(data, fast_period)
        slow_ema = MovingAverages.calculate_ema(data, slow_period)
        if len(fast_ema) == 0 or len(slow_ema) == 0:
            return TrendDirection.NEUTRAL

        last_fast = fast_ema[-1]
        last_slow = slow_ema[-1]

        if last_fast > last_slow * (1 + Config.TREND_BAND):
            return TrendDirection.UPTREND
        if last_fast < last_slow * (1 - Config.TREND_BAND):
            return TrendDirection.DOWNTREND
        return TrendDirection.NEUTRAL

    @staticmethod
    def detect_ema_crossover(
        data: Sequence[float],
        fast_period: int = EMA_FAST,
        slow_period: int = EMA_SLOW
    ) -> CrossoverType:
        """
        Detect a fast/slow EMA cross between the last two aligned points.

        GOLDEN_CROSS: fast goes from <= slow to > slow
        DEATH_CROSS:  fast goes from >= slow to < slow
        """
        if len(data) < slow_period + 1:
            return CrossoverType.NONE

        fast_ema = MovingAverages.calculate_ema(data, fast_period)
        slow_ema = MovingAverages.calculate_ema(data, slow_period)
        if len(fast_ema) < 2 or len(slow_ema) < 2:
            return CrossoverType.NONE

        prev_fast, curr_fast = fast_ema[-2], fast_ema[-1]
        prev_slow, curr_slow = slow_ema[-2], slow_ema[-1]

        if prev_fast <= prev_slow and curr_fast > curr_slow:
            return CrossoverType.GOLDEN_CROSS
        if prev_fast >= prev_slow and curr_fast < curr_slow:
            return CrossoverType.DEATH_CROSS
        return CrossoverType.NONE


# =============================================================================
# FAMILY 4: VOLATILITY SYSTEMS
# =============================================================================

class VolatilityIndicators:
    """
    Volatility calculations.

    Indicators implemented:
    - ATR: Wilder, 1978 (EMA-smoothed true range)
    - Bollinger Bands: Bollinger, 1983
    - Historical (close-to-close) volatility
    """

    @staticmethod
    def true_range(high: np.ndarray, low: np.ndarray, close: np.ndarray) -> np.ndarray:
        """True range from the second bar on: max(H-L, |H-prevC|, |L-prevC|)."""
        prev_close = close[:-1]
        tr1 = high[1:] - low[1:]
        tr2 = np.abs(high[1:] - prev_close)
        tr3 = np.abs(low[1:] - prev_close)
        return np.maximum(tr1, np.maximum(tr2, tr3))

    @staticmethod
    def calculate_atr(candles: Sequence[Candle], period: int = ATR_PERIOD) -> np.ndarray:
        """
        Calculate Average True Range.

        Parameters
        ----------
        candles : Sequence[Candle]
            OHLC bars, oldest first
        period : int
            EMA period applied to the true range

        Returns
        -------
        np.ndarray
            ATR values with offset ``period``; empty with fewer than
            ``period + 1`` candles
        """
        if period <= 0 or len(candles) < period + 1:
            return _empty()

        high = np.array([c.high for c in candles], dtype=float)
        low = np.array([c.low for c in candles], dtype=float)
        close = np.array([c.close for c in candles], dtype=float)

        return MovingAverages.calculate_ema(
            VolatilityIndicators.true_range(high, low, close), period
        )

    @staticmethod
    def calculate_bollinger_bands(
        data: Sequence[float],
        period: int = BB_PERIOD,
        std_dev: float = BB_STD_DEV
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Calculate Bollinger Bands.

        Middle = SMA(close, period)
        Upper = Middle + std_dev * StdDev(close, period)
        Lower = Middle - std_dev * StdDev(close, period)

        The standard deviation is the population one (divides by period).

        Returns
        -------
        Tuple[np.ndarray, np.ndarray, np.ndarray]
            (Upper, Middle, Lower), offset ``period - 1``
        """
        values = _as_array(data)
        if period <= 0 or len(values) < period:
            return _empty(), _empty(), _empty()

        series = pd.Series(values)
        middle = series.rolling(window=period).mean().to_numpy()[period - 1:]
        std = series.rolling(window=period).std(ddof=0).to_numpy()[period - 1:]

        return middle + std_dev * std, middle, middle - std_dev * std

    @staticmethod
    def calculate_historical_volatility(
        candles: Sequence[Candle],
        period: int = HV_PERIOD
    ) -> np.ndarray:
        """
        Rolling standard deviation of log returns, annualized with sqrt(365)
        and expressed in percent. Offset ``period``; empty with fewer than
        ``period + 1`` candles.
        """
        if period <= 0 or len(candles) < period + 1:
            return _empty()

        closes = np.array([c.close for c in candles], dtype=float)
        log_returns = pd.Series(np.log(closes[1:] / closes[:-1]))
        rolling_std = log_returns.rolling(window=period).std(ddof=0).to_numpy()[period - 1:]

        return rolling_std * np.sqrt(HV_ANNUALIZATION) * 100.0


# =============================================================================
# FAMILY 5: PRICE STRUCTURE & VOLUME
# =============================================================================

class PriceStructure:
    """Support/resistance detection from clustered highs and lows."""

    @staticmethod
    def find_support_resistance(
        candles: Sequence[Candle],
        lookback: int = SR_LOOKBACK,
        threshold: float = SR_THRESHOLD
    ) -> SupportResistance:
        """
        Cluster recent highs and lows into price levels.

        A pooled price becomes a level when at least three pooled prices lie
        within ``threshold`` relative distance of it and no level already
        found is that close. Levels are split around the last close.

        Parameters
        ----------
        candles : Sequence[Candle]
            OHLC bars, oldest first
        lookback : int
            Number of trailing bars to pool
        threshold : float
            Relative distance that counts as "the same level"

        Returns
        -------
        SupportResistance
            Up to three supports below price and three resistances above,
            each list ordered closest first
        """
        if len(candles) < lookback:
            return SupportResistance()

        recent = candles[-lookback:]
        current_price = candles[-1].close
        prices = sorted(p for c in recent for p in (c.high, c.low))

        levels: List[float] = []
        for price in prices:
            nearby = sum(1 for p in prices if abs(p - price) / price < threshold)
            if nearby < SR_MIN_TOUCHES:
                continue
            if any(abs(level - price) / price < threshold for level in levels):
                continue
            levels.append(price)

        support = sorted((l for l in levels if l < current_price), reverse=True)
        resistance = sorted(l for l in levels if l > current_price)

        return SupportResistance(
            support=support[:SR_MAX_LEVELS],
            resistance=resistance[:SR_MAX_LEVELS],
        )


class VolumeIndicators:
    """Volume distribution across price."""

    @staticmethod
    def calculate_volume_profile(
        candles: Sequence[Candle],
        bins: int = VOLUME_PROFILE_BINS
    ) -> List[VolumeLevel]:
        """
        Histogram of volume by close price.

        The close range is cut into ``bins`` equal bins (half-open, so the
        maximum close falls outside the last bin); levels are the bin
        midpoints, returned with the heaviest bin first.
        """
        if not candles or bins <= 0:
            return []

        closes = np.array([c.close for c in candles], dtype=float)
        volumes = np.array([c.volume for c in candles], dtype=float)
        min_price = float(closes.min())
        bin_size = (float(closes.max()) - min_price) / bins

        profile = []
        for i in range(bins):
            lower = min_price + bin_size * i
            upper = min_price + bin_size * (i + 1)
            in_bin = (closes >= lower) & (closes < upper)
            profile.append(VolumeLevel(
                price_level=min_price + bin_size * (i + 0.5),
                volume=float(volumes[in_bin].sum()),
            ))

        return sorted(profile, key=lambda level: level.volume, reverse=True)


# =============================================================================
# ALIGNMENT & SNAPSHOTS
# =============================================================================

def pad_to_length(values: Sequence[float], length: int) -> np.ndarray:
    """
    Left-pad an end-aligned indicator output with NaN.

    After padding, index ``i`` of the result corresponds to bar ``i`` of
    the series the indicator was computed on.
    """
    values = _as_array(values)
    if len(values) > length:
        raise ValueError(f"Cannot pad {len(values)} values into length {length}")
    padded = np.full(length, np.nan, dtype=float)
    if len(values):
        padded[length - len(values):] = values
    return padded


def calculate_indicator_snapshot(candles: Sequence[Candle]) -> IndicatorSnapshot:
    """Latest RSI(14) and ATR(14) plus ATR as a percentage of the last close."""
    if not candles:
        return IndicatorSnapshot()

    closes = [c.close for c in candles]
    rsi_series = MomentumIndicators.calculate_rsi(closes)
    atr_series = VolatilityIndicators.calculate_atr(candles)

    rsi = float(rsi_series[-1]) if len(rsi_series) else None
    atr = float(atr_series[-1]) if len(atr_series) else None
    last_close = closes[-1]

    return IndicatorSnapshot(
        rsi=rsi,
        atr=atr,
        atr_percent=atr / last_close * 100.0 if atr and last_close else None,
    )


# =============================================================================
# MODULE-LEVEL API
# =============================================================================

calculate_sma = MovingAverages.calculate_sma
calculate_ema = MovingAverages.calculate_ema
calculate_rsi = MomentumIndicators.calculate_rsi
classify_rsi = MomentumIndicators.classify_rsi
calculate_momentum_score = MomentumIndicators.calculate_momentum_score
calculate_adx_dmi = TrendIndicators.calculate_adx_dmi
calculate_macd = TrendIndicators.calculate_macd
detect_trend = TrendIndicators.detect_trend
detect_ema_crossover = TrendIndicators.detect_ema_crossover
calculate_atr = VolatilityIndicators.calculate_atr
calculate_bollinger_bands = VolatilityIndicators.calculate_bollinger_bands
calculate_historical_volatility = VolatilityIndicators.calculate_historical_volatility
find_support_resistance = PriceStructure.find_support_resistance
calculate_volume_profile = VolumeIndicators.calculate_volume_profile


__all__ = [
    # Data structures
    'SupportResistance',
    'VolumeLevel',
    'IndicatorSnapshot',

    # Families
    'MovingAverages',
    'MomentumIndicators',
    'TrendIndicators',
    'VolatilityIndicators',
    'PriceStructure',
    'VolumeIndicators',

    # Functions
    'calculate_sma',
    'calculate_ema',
    'calculate_rsi',
    'classify_rsi',
    'calculate_momentum_score',
    'calculate_adx_dmi',
    'calculate_macd',
    'detect_trend',
    'detect_ema_crossover',
    'calculate_atr',
    'calculate_bollinger_bands',
    'calculate_historical_volatility',
    'find_support_resistance',
    'calculate_volume_profile',
    'calculate_indicator_snapshot',
    'pad_to_length',
]
