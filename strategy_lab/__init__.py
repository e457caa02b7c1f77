"""
Strategy Lab: deterministic backtesting and indicator engine for crypto strategies.

    >>> from strategy_lab import SyntheticCandleSupplier, default_profile, run_backtest
    >>> candles = SyntheticCandleSupplier(seed=7).get_candles("BTCUSDT", "1h", 2000)
    >>> result = run_backtest(default_profile("EMA_CROSS"), candles)
"""

from .backtest_engine import (
    VERSION,
    BacktestEngine,
    BacktestResult,
    MonteCarloResult,
    PerformanceMetrics,
    Trade,
    WalkForwardResult,
    run_backtest,
    run_monte_carlo,
    run_walk_forward,
)
from .config import BacktestStatus, Config, StrategyType, TradeDirection
from .data_sources import (
    Candle,
    CandleDataError,
    FileCandleSupplier,
    SyntheticCandleSupplier,
)
from .strategy_evaluator import (
    AtrBreakoutParams,
    CustomParams,
    EmaCrossParams,
    FundingDivergenceParams,
    RsiExtremesParams,
    Signal,
    StrategyEvaluator,
    StrategyProfile,
    UnknownStrategyError,
    default_profile,
)

__version__ = VERSION

__all__ = [
    '__version__',
    'VERSION',
    'BacktestEngine',
    'BacktestResult',
    'MonteCarloResult',
    'PerformanceMetrics',
    'Trade',
    'WalkForwardResult',
    'run_backtest',
    'run_monte_carlo',
    'run_walk_forward',
    'BacktestStatus',
    'Config',
    'StrategyType',
    'TradeDirection',
    'Candle',
    'CandleDataError',
    'FileCandleSupplier',
    'SyntheticCandleSupplier',
    'AtrBreakoutParams',
    'CustomParams',
    'EmaCrossParams',
    'FundingDivergenceParams',
    'RsiExtremesParams',
    'Signal',
    'StrategyEvaluator',
    'StrategyProfile',
    'UnknownStrategyError',
    'default_profile',
]
