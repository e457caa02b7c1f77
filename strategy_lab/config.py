"""
Configuration Module for the Strategy Lab Backtesting Engine

Constants, sentinels and enumerations shared by the indicator, simulation
and validation pipeline. Engine code reads thresholds from ``Config`` rather
than embedding literals, so every assumption is listed in one place.
"""

from enum import Enum
from typing import List


# =============================================================================
# ENUMERATIONS
# =============================================================================

class StrategyType(Enum):
    """Closed set of strategy families the evaluator understands."""
    EMA_CROSS = "EMA_CROSS"
    RSI_EXTREMES = "RSI_EXTREMES"
    ATR_BREAKOUT = "ATR_BREAKOUT"
    FUNDING_DIVERGENCE = "FUNDING_DIVERGENCE"
    CUSTOM = "CUSTOM"


class TradeDirection(Enum):
    """Trade direction."""
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def sign(self) -> int:
        """+1 for long exposure, -1 for short exposure."""
        return 1 if self is TradeDirection.LONG else -1

    @property
    def opposite(self) -> 'TradeDirection':
        return TradeDirection.SHORT if self is TradeDirection.LONG else TradeDirection.LONG


class BacktestStatus(Enum):
    """Backtest execution status."""
    SUCCESS = "SUCCESS"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
    NO_TRADES = "NO_TRADES"


class TrendDirection(Enum):
    """EMA-based trend classification."""
    UPTREND = "UPTREND"
    DOWNTREND = "DOWNTREND"
    NEUTRAL = "NEUTRAL"


class CrossoverType(Enum):
    """Fast/slow EMA crossover classification."""
    GOLDEN_CROSS = "GOLDEN_CROSS"   # Fast crosses above slow
    DEATH_CROSS = "DEATH_CROSS"     # Fast crosses below slow
    NONE = "NONE"


class RSICondition(Enum):
    """Coarse RSI zone."""
    OVERSOLD = "OVERSOLD"
    OVERBOUGHT = "OVERBOUGHT"
    NEUTRAL = "NEUTRAL"


# =============================================================================
# ENGINE CONFIGURATION
# =============================================================================

class Config:
    """
    Engine-wide constants.

    Values mirror the conventions of the dashboard the engine was built
    for: per-trade Sharpe annualized with 252, 30-day walk-forward months,
    and serializable sentinels instead of infinities.
    """

    # -------------------------------------------------------------------------
    # Time
    # -------------------------------------------------------------------------
    MS_PER_HOUR: int = 60 * 60 * 1000
    MS_PER_DAY: int = 24 * MS_PER_HOUR
    MS_PER_YEAR: int = 365 * MS_PER_DAY
    MS_PER_MONTH: int = 30 * MS_PER_DAY    # Walk-forward month
    ANNUALIZATION_FACTOR: int = 252        # Applied to per-trade returns

    # -------------------------------------------------------------------------
    # Capital & Risk
    # -------------------------------------------------------------------------
    DEFAULT_INITIAL_CAPITAL: float = 10000.0
    DEFAULT_RISK_PERCENT: float = 2.0
    FALLBACK_STOP_PERCENT: float = 0.02    # Stop distance when no ATR stop is set

    # -------------------------------------------------------------------------
    # Metric Sentinels
    # -------------------------------------------------------------------------
    PROFIT_FACTOR_SENTINEL: float = 999.0  # Wins with zero losses
    CAGR_TOTAL_LOSS: float = -100.0        # Final equity at or below zero

    # -------------------------------------------------------------------------
    # Strategy Rules
    # -------------------------------------------------------------------------
    TREND_BAND: float = 0.02               # +/-2% band around parity
    RSI_MIDLINE: float = 50.0
    ATR_AVERAGE_WINDOW: int = 20
    ATR_EXIT_RATIO: float = 0.8
    MOMENTUM_LOOKBACK: int = 10

    # -------------------------------------------------------------------------
    # Walk-Forward Analysis
    # -------------------------------------------------------------------------
    WF_TRAIN_MONTHS: float = 6
    WF_TEST_MONTHS: float = 1
    WF_MIN_TRAIN_BARS: int = 200
    WF_MIN_TEST_BARS: int = 50
    WF_ROBUST_EFFICIENCY: float = 0.7

    # -------------------------------------------------------------------------
    # Monte Carlo Simulation
    # -------------------------------------------------------------------------
    MC_N_SIMULATIONS: int = 1000
    MC_CONFIDENCE_LEVELS: List[float] = [0.05, 0.25, 0.50, 0.75, 0.95]
    MC_RUIN_RETURN: float = -50.0          # Total return (%) counted as ruin
