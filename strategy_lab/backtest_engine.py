"""
Backtesting Engine for Single-Asset Crypto Strategies
=====================================================

Replays a strategy profile bar by bar over a closed-candle history and
reduces the resulting trades into performance statistics, then probes the
robustness of those statistics by resampling trades (Monte Carlo) and by
rolling out-of-sample partitioning (walk-forward).

EXECUTION MODEL
---------------
    - One position at a time, entered and exited at the bar close
    - Each closed trade moves capital by ``capital * risk% * trade return``
      (the fraction of capital put at risk, not a stop-sized position)
    - Exits are processed before entries on the same bar, so an opposite
      signal closes and reverses in one step
    - A position still open when the data ends is reported, not realized

METRICS
-------
Per-trade returns drive the risk-adjusted figures:

    Sharpe  = mean(r) / std(r) * sqrt(252)          (population std)
    Sortino = mean(r) / sqrt(sum(r^2 | r < 0) / n_neg) * sqrt(252)

Profit factor uses 999 instead of infinity when there are no losing trades,
so every reported number is finite and serializable.

ROBUSTNESS
----------
Monte Carlo:
    Efron, B. (1979). "Bootstrap Methods: Another Look at the Jackknife."
    Trades are drawn with replacement and compounded from the initial
    capital. This assumes trades are exchangeable; serial dependence between
    trades is not preserved.

Walk-Forward:
    Pardo, R. (2008). "The Evaluation and Optimization of Trading Strategies."
    Rolling (non-anchored) train/test windows; efficiency is the ratio of
    out-of-sample to in-sample Sharpe.

ARCHITECTURE
------------
    Layer 1: Data structures (Trade, Position, curves, results)
    Layer 2: MetricsCalculator - pure reduction over trades and equity
    Layer 3: SimulationLoop - bar walk producing trades and curves
    Layer 4: MonteCarloSimulator, WalkForwardValidator
    Layer 5: BacktestEngine facade and convenience functions
"""

from __future__ import annotations

import logging
import math
from bisect import bisect_left
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from .config import BacktestStatus, Config, StrategyType, TradeDirection
from .data_sources import Candle
from .strategy_evaluator import (
    IndicatorBundle,
    StrategyEvaluator,
    StrategyProfile,
    UnknownStrategyError,
)

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

# Standard deviations below this are treated as zero
_STD_EPSILON = 1e-12

# Cap on the annualized log growth used for CAGR over very short spans
_MAX_LOG_GROWTH = 700.0


# =============================================================================
# SECTION 1: DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class Trade:
    """A realized round trip. Times are epoch ms, holding period in hours."""
    entry_time: int
    exit_time: int
    entry_price: float
    exit_price: float
    direction: TradeDirection
    pnl: float                    # Currency
    pnl_percent: float            # Price move in the trade's favor, percent
    r_multiple: float
    holding_period: float
    max_drawdown: float = 0.0     # Worst adverse close while open, percent of entry


@dataclass(frozen=True)
class EquityPoint:
    time: int
    equity: float


@dataclass(frozen=True)
class DrawdownPoint:
    time: int
    drawdown_percent: float


@dataclass(frozen=True)
class Position:
    """The single open position owned by a simulation run."""
    direction: TradeDirection
    entry_price: float
    entry_time: int
    entry_index: int
    stop_distance: float


@dataclass
class PerformanceMetrics:
    """
    Summary statistics of a trade list.

    Percent-valued fields: win_rate, max_drawdown, max_drawdown_percent,
    total_return, cagr. Currency-valued: avg_win, avg_loss, largest_win,
    largest_loss, expectancy.
    """
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0

    profit_factor: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    expectancy: float = 0.0
    avg_r_multiple: float = 0.0

    max_drawdown: float = 0.0             # Max of the drawdown curve
    max_drawdown_percent: float = 0.0     # Running max tracked by the loop

    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    total_return: float = 0.0
    cagr: float = 0.0

    avg_holding_period: float = 0.0       # Hours
    return_skewness: float = 0.0
    return_kurtosis: float = 0.0          # Excess kurtosis


@dataclass
class BacktestResult:
    """
    Complete result of one simulation run.

    ``open_position`` is the position still held after the last bar, if
    any; it takes no part in the metrics or curves.
    """
    status: BacktestStatus
    strategy_name: str
    initial_capital: float
    final_capital: float
    metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[EquityPoint] = field(default_factory=list)
    drawdown_curve: List[DrawdownPoint] = field(default_factory=list)
    open_position: Optional[Position] = None
    total_bars: int = 0
    bars_evaluated: int = 0

    @property
    def is_success(self) -> bool:
        return self.status == BacktestStatus.SUCCESS

    def equity_series(self) -> pd.Series:
        """Equity curve as a Series indexed by UTC timestamps."""
        return pd.Series(
            [p.equity for p in self.equity_curve],
            index=pd.to_datetime([p.time for p in self.equity_curve], unit='ms', utc=True),
            name='equity',
            dtype=float,
        )

    def drawdown_series(self) -> pd.Series:
        """Drawdown curve (percent below peak) indexed by UTC timestamps."""
        return pd.Series(
            [p.drawdown_percent for p in self.drawdown_curve],
            index=pd.to_datetime([p.time for p in self.drawdown_curve], unit='ms', utc=True),
            name='drawdown_percent',
            dtype=float,
        )


@dataclass
class MonteCarloResult:
    """Bootstrap distribution of backtest metrics."""
    simulations: int
    returns: np.ndarray               # Total return (%) per simulation
    sharpe: np.ndarray
    max_drawdown: np.ndarray
    win_rate: np.ndarray

    return_percentiles: Dict[float, float] = field(default_factory=dict)
    risk_of_ruin: float = 0.0         # Percent of simulations below the ruin return

    return_mean: float = 0.0
    return_std: float = 0.0
    probability_of_profit: float = 0.0
    return_skewness: float = 0.0
    seed: Optional[int] = None

    @property
    def median_return(self) -> float:
        return self.return_percentiles.get(0.50, 0.0)


@dataclass
class WalkForwardWindow:
    """One train/test split. Bounds are epoch ms, end bounds exclusive."""
    train_start: int
    train_end: int
    test_start: int
    test_end: int
    train_result: BacktestResult
    test_result: BacktestResult
    efficiency: float


@dataclass
class WalkForwardResult:
    windows: List[WalkForwardWindow]
    avg_efficiency: float
    is_robust: bool
    overall_result: BacktestResult

    @property
    def n_windows(self) -> int:
        return len(self.windows)


def _empty_result(
    status: BacktestStatus,
    profile: StrategyProfile,
    initial_capital: float,
    total_bars: int = 0,
    bars_evaluated: int = 0,
    open_position: Optional[Position] = None
) -> BacktestResult:
    return BacktestResult(
        status=status,
        strategy_name=profile.name,
        initial_capital=initial_capital,
        final_capital=initial_capital,
        open_position=open_position,
        total_bars=total_bars,
        bars_evaluated=bars_evaluated,
    )


def _validate_capital(initial_capital: float) -> None:
    if not initial_capital > 0:
        raise ValueError(f"initial_capital must be positive, got {initial_capital}")


def _require_known_type(profile: StrategyProfile) -> None:
    if not isinstance(profile.strategy_type, StrategyType):
        raise UnknownStrategyError(profile.strategy_type)


# =============================================================================
# SECTION 2: METRICS CALCULATOR
# =============================================================================

class MetricsCalculator:
    """
    Pure reduction of trades and an equity curve into PerformanceMetrics.

    Conventions:
        - Losers include break-even trades (pnl <= 0)
        - Profit factor is 999 with wins and no losses, 0 with neither
        - Sharpe/Sortino annualize per-trade returns with sqrt(252)
        - The drawdown peak starts at the initial capital
    """

    @staticmethod
    def calculate_drawdown_curve(
        equity_curve: Sequence[EquityPoint],
        initial_capital: float
    ) -> List[DrawdownPoint]:
        peak = initial_capital
        curve = []
        for point in equity_curve:
            peak = max(peak, point.equity)
            curve.append(DrawdownPoint(point.time, (peak - point.equity) / peak * 100.0))
        return curve

    @staticmethod
    def calculate_cagr(
        equity_curve: Sequence[EquityPoint],
        initial_capital: float
    ) -> float:
        """Compound annual growth rate (%) between first and last equity point."""
        if not equity_curve:
            return 0.0

        final = equity_curve[-1].equity
        if final <= 0:
            return Config.CAGR_TOTAL_LOSS

        years = (equity_curve[-1].time - equity_curve[0].time) / Config.MS_PER_YEAR
        if years <= 0:
            return 0.0

        log_growth = min(math.log(final / initial_capital) / years, _MAX_LOG_GROWTH)
        return (math.exp(log_growth) - 1.0) * 100.0

    @staticmethod
    def distribution_moment(values: np.ndarray, fn) -> float:
        """``fn(values)`` (a scipy.stats moment), 0 for fewer than 3 values or zero spread."""
        if len(values) < 3 or np.std(values) <= _STD_EPSILON:
            return 0.0
        value = float(fn(values))
        return value if math.isfinite(value) else 0.0

    @staticmethod
    def calculate(
        trades: Sequence[Trade],
        equity_curve: Sequence[EquityPoint],
        initial_capital: float,
        max_drawdown_percent: float = 0.0
    ) -> Tuple[PerformanceMetrics, List[DrawdownPoint]]:
        """
        Calculate all performance metrics.

        Args:
            trades: Realized trades in close order
            equity_curve: Anchor point followed by one point per trade
            initial_capital: Starting capital
            max_drawdown_percent: Running max drawdown tracked by the caller

        Returns:
            (metrics, drawdown curve); all zeros and an empty curve when
            there are no trades
        """
        if not trades:
            return PerformanceMetrics(), []

        n = len(trades)
        pnls = np.array([t.pnl for t in trades], dtype=float)
        returns = np.array([t.pnl_percent for t in trades], dtype=float) / 100.0

        wins = pnls[pnls > 0]
        losses = pnls[pnls <= 0]
        total_wins = float(wins.sum())
        total_losses = abs(float(losses.sum()))

        avg_win = total_wins / len(wins) if len(wins) else 0.0
        avg_loss = total_losses / len(losses) if len(losses) else 0.0

        if total_losses > 0:
            profit_factor = total_wins / total_losses
        elif total_wins > 0:
            profit_factor = Config.PROFIT_FACTOR_SENTINEL
        else:
            profit_factor = 0.0

        # Risk-adjusted returns
        annualize = math.sqrt(Config.ANNUALIZATION_FACTOR)
        mean_return = float(returns.mean())
        std_return = float(returns.std())
        sharpe = mean_return / std_return * annualize if std_return > _STD_EPSILON else 0.0

        downside = returns[returns < 0]
        downside_dev = math.sqrt(float((downside ** 2).sum()) / len(downside)) if len(downside) else 0.0
        sortino = mean_return / downside_dev * annualize if downside_dev > _STD_EPSILON else 0.0

        expectancy = avg_win * (len(wins) / n) - avg_loss * (len(losses) / n)

        final_capital = equity_curve[-1].equity if equity_curve else initial_capital
        total_return = (final_capital - initial_capital) / initial_capital * 100.0

        drawdown_curve = MetricsCalculator.calculate_drawdown_curve(equity_curve, initial_capital)
        max_drawdown = max((d.drawdown_percent for d in drawdown_curve), default=0.0)

        metrics = PerformanceMetrics(
            total_trades=n,
            winning_trades=len(wins),
            losing_trades=len(losses),
            win_rate=len(wins) / n * 100.0,
            profit_factor=profit_factor,
            avg_win=avg_win,
            avg_loss=avg_loss,
            largest_win=float(pnls.max()),
            largest_loss=float(pnls.min()),
            expectancy=expectancy,
            avg_r_multiple=float(np.mean([t.r_multiple for t in trades])),
            max_drawdown=max_drawdown,
            max_drawdown_percent=max_drawdown_percent,
            sharpe_ratio=sharpe,
            sortino_ratio=sortino,
            total_return=total_return,
            cagr=MetricsCalculator.calculate_cagr(equity_curve, initial_capital),
            avg_holding_period=float(np.mean([t.holding_period for t in trades])),
            return_skewness=MetricsCalculator.distribution_moment(returns, stats.skew),
            return_kurtosis=MetricsCalculator.distribution_moment(returns, stats.kurtosis),
        )

        return metrics, drawdown_curve


# =============================================================================
# SECTION 3: SIMULATION LOOP
# =============================================================================

class SimulationLoop:
    """
    Bar-by-bar replay of a strategy profile.

    Every run owns its capital, position and curves; an instance can be
    reused and shared freely.
    """

    def __init__(self, evaluator: Optional[StrategyEvaluator] = None):
        self.evaluator = evaluator or StrategyEvaluator()

    @staticmethod
    def _stop_distance(profile: StrategyProfile, entry_price: float, atr: float) -> float:
        if profile.stop_loss_atr and math.isfinite(atr) and atr > 0:
            return atr * profile.stop_loss_atr
        return entry_price * Config.FALLBACK_STOP_PERCENT

    @staticmethod
    def _close_position(
        position: Position,
        candle: Candle,
        capital: float,
        risk_percent: float,
        worst_adverse: float = 0.0
    ) -> Trade:
        exit_price = candle.close
        entry_price = position.entry_price
        signed_return = position.direction.sign * (exit_price - entry_price) / entry_price

        pnl = capital * (risk_percent / 100.0) * signed_return

        if position.stop_distance > 0:
            r_multiple = abs(exit_price - entry_price) / position.stop_distance
            r_multiple *= 1.0 if pnl > 0 else -1.0
        else:
            r_multiple = 0.0

        return Trade(
            entry_time=position.entry_time,
            exit_time=candle.timestamp,
            entry_price=entry_price,
            exit_price=exit_price,
            direction=position.direction,
            pnl=pnl,
            pnl_percent=signed_return * 100.0,
            r_multiple=r_multiple,
            holding_period=(candle.timestamp - position.entry_time) / Config.MS_PER_HOUR,
            max_drawdown=worst_adverse,
        )

    def run(
        self,
        profile: StrategyProfile,
        candles: Sequence[Candle],
        initial_capital: float = Config.DEFAULT_INITIAL_CAPITAL
    ) -> BacktestResult:
        """
        Walk ``candles`` from the profile's warm-up bar to the end.

        Args:
            profile: Strategy to replay
            candles: Oldest-first closed bars
            initial_capital: Starting capital (must be positive)

        Returns:
            BacktestResult with status SUCCESS, NO_TRADES or INSUFFICIENT_DATA

        Raises:
            ValueError: on non-positive initial capital
            UnknownStrategyError: when the profile's type cannot be evaluated
        """
        _validate_capital(initial_capital)
        _require_known_type(profile)

        n = len(candles)
        warmup = profile.warmup_bars
        if n <= warmup:
            logger.warning(
                f"{profile.name}: {n} candles do not cover the {warmup}-bar warm-up"
            )
            return _empty_result(BacktestStatus.INSUFFICIENT_DATA, profile, initial_capital, total_bars=n)

        bundle = IndicatorBundle.from_candles(candles, profile.params)

        capital = initial_capital
        peak_capital = initial_capital
        max_drawdown_percent = 0.0
        trades: List[Trade] = []
        equity_curve = [EquityPoint(candles[0].timestamp, capital)]
        position: Optional[Position] = None
        worst_adverse = 0.0

        for i in range(warmup, n):
            candle = candles[i]
            signal = self.evaluator.evaluate(profile, i, bundle)

            if position is not None:
                adverse = -position.direction.sign * (candle.close - position.entry_price)
                worst_adverse = max(worst_adverse, adverse / position.entry_price * 100.0)

            # Exit first so an opposite signal can reverse on the same bar
            if position is not None and signal.exits(position.direction):
                trade = self._close_position(
                    position, candle, capital, profile.risk_percent, worst_adverse
                )
                capital += trade.pnl
                trades.append(trade)

                peak_capital = max(peak_capital, capital)
                max_drawdown_percent = max(
                    max_drawdown_percent, (peak_capital - capital) / peak_capital * 100.0
                )
                equity_curve.append(EquityPoint(candle.timestamp, capital))
                position = None

                logger.debug(
                    f"Closed {trade.direction.value} at bar {i}: "
                    f"{trade.pnl_percent:+.2f}% ({trade.r_multiple:+.2f}R)"
                )

            if position is None and signal.entry and signal.direction is not None:
                worst_adverse = 0.0
                position = Position(
                    direction=signal.direction,
                    entry_price=candle.close,
                    entry_time=candle.timestamp,
                    entry_index=i,
                    stop_distance=self._stop_distance(profile, candle.close, bundle.atr[i]),
                )

        bars_evaluated = n - warmup

        if not trades:
            logger.warning(f"{profile.name}: no trades closed over {bars_evaluated} bars")
            return _empty_result(
                BacktestStatus.NO_TRADES, profile, initial_capital,
                total_bars=n, bars_evaluated=bars_evaluated, open_position=position,
            )

        metrics, drawdown_curve = MetricsCalculator.calculate(
            trades, equity_curve, initial_capital, max_drawdown_percent
        )

        return BacktestResult(
            status=BacktestStatus.SUCCESS,
            strategy_name=profile.name,
            initial_capital=initial_capital,
            final_capital=capital,
            metrics=metrics,
            trades=trades,
            equity_curve=equity_curve,
            drawdown_curve=drawdown_curve,
            open_position=position,
            total_bars=n,
            bars_evaluated=bars_evaluated,
        )


# =============================================================================
# SECTION 4: MONTE CARLO SIMULATION
# =============================================================================

class MonteCarloSimulator:
    """
    Bootstrap resampling of realized trades.

    Each simulation draws ``len(trades)`` trades with replacement, compounds
    them from the initial capital at the profile's risk percent, and
    recomputes the full metric set.
    """

    def __init__(
        self,
        n_simulations: int = Config.MC_N_SIMULATIONS,
        seed: Optional[int] = None,
        confidence_levels: Optional[List[float]] = None
    ):
        if n_simulations <= 0:
            raise ValueError(f"n_simulations must be positive, got {n_simulations}")
        self.n_simulations = n_simulations
        self.seed = seed
        self.confidence_levels = confidence_levels or Config.MC_CONFIDENCE_LEVELS

    @staticmethod
    def _rebuild(
        trades: Sequence[Trade],
        timestamps: Sequence[int],
        initial_capital: float,
        risk_percent: float
    ) -> Tuple[List[Trade], List[EquityPoint]]:
        capital = initial_capital
        rebuilt = []
        equity = [EquityPoint(timestamps[0], capital)]

        for trade, ts in zip(trades, timestamps[1:]):
            pnl = capital * (risk_percent / 100.0) * (trade.pnl_percent / 100.0)
            capital += pnl
            rebuilt.append(replace(trade, pnl=pnl))
            equity.append(EquityPoint(ts, capital))

        return rebuilt, equity

    def _empty_result(self) -> MonteCarloResult:
        empty = np.array([], dtype=float)
        return MonteCarloResult(
            simulations=0,
            returns=empty,
            sharpe=empty.copy(),
            max_drawdown=empty.copy(),
            win_rate=empty.copy(),
            return_percentiles={level: 0.0 for level in self.confidence_levels},
            seed=self.seed,
        )

    def simulate(self, profile: StrategyProfile, base_result: BacktestResult) -> MonteCarloResult:
        _require_known_type(profile)
        trades = base_result.trades
        if not trades:
            logger.warning("Monte Carlo skipped: base result has no trades to resample")
            return self._empty_result()

        n_trades = len(trades)
        n_sims = self.n_simulations
        initial_capital = base_result.initial_capital

        timestamps = [p.time for p in base_result.equity_curve]
        if len(timestamps) != n_trades + 1:
            timestamps = [trades[0].entry_time] + [t.exit_time for t in trades]

        rng = np.random.default_rng(self.seed)
        draws = rng.integers(0, n_trades, size=(n_sims, n_trades))

        returns = np.empty(n_sims)
        sharpe = np.empty(n_sims)
        max_dd = np.empty(n_sims)
        win_rate = np.empty(n_sims)

        for sim in range(n_sims):
            sample = [trades[j] for j in draws[sim]]
            rebuilt, equity = self._rebuild(sample, timestamps, initial_capital, profile.risk_percent)
            metrics, _ = MetricsCalculator.calculate(rebuilt, equity, initial_capital)

            returns[sim] = metrics.total_return
            sharpe[sim] = metrics.sharpe_ratio
            max_dd[sim] = metrics.max_drawdown
            win_rate[sim] = metrics.win_rate

        sorted_returns = np.sort(returns)
        percentiles = {
            level: float(sorted_returns[min(int(math.floor(n_sims * level)), n_sims - 1)])
            for level in self.confidence_levels
        }

        return MonteCarloResult(
            simulations=n_sims,
            returns=returns,
            sharpe=sharpe,
            max_drawdown=max_dd,
            win_rate=win_rate,
            return_percentiles=percentiles,
            risk_of_ruin=float(np.mean(returns < Config.MC_RUIN_RETURN) * 100.0),
            return_mean=float(returns.mean()),
            return_std=float(returns.std()),
            probability_of_profit=float(np.mean(returns > 0)),
            return_skewness=MetricsCalculator.distribution_moment(returns, stats.skew),
            seed=self.seed,
        )


# =============================================================================
# SECTION 5: WALK-FORWARD ANALYSIS
# =============================================================================

class WalkForwardValidator:
    """
    Rolling train/test validation over calendar windows.

    Windows advance by the train length, so consecutive test periods are
    separated by the remainder of the next train period. Partitioning stops
    at the first window whose train slice has fewer than 200 bars or whose
    test slice has fewer than 50.
    """

    def __init__(
        self,
        train_months: float = Config.WF_TRAIN_MONTHS,
        test_months: float = Config.WF_TEST_MONTHS,
        loop: Optional[SimulationLoop] = None
    ):
        if train_months <= 0 or test_months <= 0:
            raise ValueError(
                f"train_months and test_months must be positive, got {train_months}/{test_months}"
            )
        self.train_months = train_months
        self.test_months = test_months
        self.loop = loop or SimulationLoop()

    def analyze(
        self,
        profile: StrategyProfile,
        candles: Sequence[Candle],
        initial_capital: float = Config.DEFAULT_INITIAL_CAPITAL
    ) -> WalkForwardResult:
        _validate_capital(initial_capital)

        overall = self.loop.run(profile, candles, initial_capital)
        if not candles:
            return WalkForwardResult(windows=[], avg_efficiency=0.0, is_robust=False, overall_result=overall)

        train_ms = int(self.train_months * Config.MS_PER_MONTH)
        test_ms = int(self.test_months * Config.MS_PER_MONTH)
        timestamps = [c.timestamp for c in candles]
        end_time = timestamps[-1]

        windows: List[WalkForwardWindow] = []
        start = timestamps[0]

        while start + train_ms + test_ms <= end_time:
            train_end = start + train_ms
            test_end = train_end + test_ms

            lo = bisect_left(timestamps, start)
            mid = bisect_left(timestamps, train_end)
            hi = bisect_left(timestamps, test_end)
            train_candles = candles[lo:mid]
            test_candles = candles[mid:hi]

            if len(train_candles) < Config.WF_MIN_TRAIN_BARS or len(test_candles) < Config.WF_MIN_TEST_BARS:
                logger.debug(
                    f"Walk-forward stopped: window {len(windows) + 1} has "
                    f"{len(train_candles)} train / {len(test_candles)} test bars"
                )
                break

            train_result = self.loop.run(profile, train_candles, initial_capital)
            test_result = self.loop.run(profile, test_candles, initial_capital)

            train_sharpe = train_result.metrics.sharpe_ratio or 1.0
            efficiency = test_result.metrics.sharpe_ratio / train_sharpe

            windows.append(WalkForwardWindow(
                train_start=start,
                train_end=train_end,
                test_start=train_end,
                test_end=test_end,
                train_result=train_result,
                test_result=test_result,
                efficiency=efficiency,
            ))

            logger.debug(
                f"Window {len(windows)}: train Sharpe {train_result.metrics.sharpe_ratio:.2f}, "
                f"test Sharpe {test_result.metrics.sharpe_ratio:.2f}, efficiency {efficiency:.2f}"
            )

            start += train_ms

        avg_efficiency = float(np.mean([w.efficiency for w in windows])) if windows else 0.0

        return WalkForwardResult(
            windows=windows,
            avg_efficiency=avg_efficiency,
            is_robust=avg_efficiency > Config.WF_ROBUST_EFFICIENCY,
            overall_result=overall,
        )


# =============================================================================
# SECTION 6: ENGINE FACADE
# =============================================================================

class BacktestEngine:
    """
    Entry point tying the simulation loop to the robustness analyses.

    Example:
        >>> engine = BacktestEngine()
        >>> result = engine.run(profile, candles)
        >>> mc = engine.run_monte_carlo(profile, result, simulations=500, seed=7)
        >>> wf = engine.run_walk_forward(profile, candles)
    """

    def __init__(
        self,
        evaluator: Optional[StrategyEvaluator] = None,
        initial_capital: float = Config.DEFAULT_INITIAL_CAPITAL
    ):
        _validate_capital(initial_capital)
        self.loop = SimulationLoop(evaluator)
        self.initial_capital = initial_capital

    def run(
        self,
        profile: StrategyProfile,
        candles: Sequence[Candle],
        initial_capital: Optional[float] = None
    ) -> BacktestResult:
        capital = self.initial_capital if initial_capital is None else initial_capital
        logger.info(f"Running backtest '{profile.name}' on {len(candles):,} candles...")

        result = self.loop.run(profile, candles, capital)

        if result.is_success:
            logger.info(
                f"Backtest complete: {result.metrics.total_trades} trades, "
                f"return {result.metrics.total_return:+.2f}%, Sharpe {result.metrics.sharpe_ratio:.2f}"
            )
        return result

    def run_monte_carlo(
        self,
        profile: StrategyProfile,
        base_result: BacktestResult,
        simulations: int = Config.MC_N_SIMULATIONS,
        seed: Optional[int] = None
    ) -> MonteCarloResult:
        logger.info(f"Running Monte Carlo simulation ({simulations} iterations)...")
        result = MonteCarloSimulator(simulations, seed).simulate(profile, base_result)

        if result.simulations:
            logger.info(
                f"Monte Carlo complete: median return {result.median_return:+.2f}%, "
                f"risk of ruin {result.risk_of_ruin:.1f}%"
            )
        return result

    def run_walk_forward(
        self,
        profile: StrategyProfile,
        candles: Sequence[Candle],
        train_months: float = Config.WF_TRAIN_MONTHS,
        test_months: float = Config.WF_TEST_MONTHS,
        initial_capital: Optional[float] = None
    ) -> WalkForwardResult:
        capital = self.initial_capital if initial_capital is None else initial_capital
        logger.info(
            f"Running walk-forward analysis ({train_months}m train / {test_months}m test)..."
        )

        validator = WalkForwardValidator(train_months, test_months, self.loop)
        result = validator.analyze(profile, candles, capital)

        logger.info(
            f"Walk-forward complete: {result.n_windows} windows, "
            f"avg efficiency {result.avg_efficiency:.2f} "
            f"({'robust' if result.is_robust else 'not robust'})"
        )
        return result


# =============================================================================
# SECTION 7: CONVENIENCE FUNCTIONS
# =============================================================================

def run_backtest(
    profile: StrategyProfile,
    candles: Sequence[Candle],
    initial_capital: float = Config.DEFAULT_INITIAL_CAPITAL
) -> BacktestResult:
    """
    Run a single backtest with the built-in strategy rules.

    Args:
        profile: Strategy profile
        candles: Oldest-first closed bars
        initial_capital: Starting capital

    Returns:
        BacktestResult
    """
    return BacktestEngine(initial_capital=initial_capital).run(profile, candles)


def run_monte_carlo(
    profile: StrategyProfile,
    base_result: BacktestResult,
    simulations: int = Config.MC_N_SIMULATIONS,
    seed: Optional[int] = None
) -> MonteCarloResult:
    """Bootstrap ``base_result``'s trades ``simulations`` times."""
    return BacktestEngine().run_monte_carlo(profile, base_result, simulations, seed)


def run_walk_forward(
    profile: StrategyProfile,
    candles: Sequence[Candle],
    train_months: float = Config.WF_TRAIN_MONTHS,
    test_months: float = Config.WF_TEST_MONTHS,
    initial_capital: float = Config.DEFAULT_INITIAL_CAPITAL
) -> WalkForwardResult:
    """Rolling walk-forward validation of ``profile`` over ``candles``."""
    return BacktestEngine(initial_capital=initial_capital).run_walk_forward(
        profile, candles, train_months, test_months
    )


__all__ = [
    'VERSION',
    'Trade',
    'EquityPoint',
    'DrawdownPoint',
    'Position',
    'PerformanceMetrics',
    'BacktestResult',
    'MonteCarloResult',
    'WalkForwardWindow',
    'WalkForwardResult',
    'MetricsCalculator',
    'SimulationLoop',
    'MonteCarloSimulator',
    'WalkForwardValidator',
    'BacktestEngine',
    'run_backtest',
    'run_monte_carlo',
    'run_walk_forward',
]
