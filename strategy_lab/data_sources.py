"""
Candle Data Sources

Defines the immutable OHLCV bar consumed by the engine and the contract a
candle supplier honors:

    get_candles(symbol, interval, count) -> List[Candle]

    - oldest first
    - at most ``count`` bars (fewer when history is short)
    - no duplicate timestamps, bar spacing is not validated by the engine

Two suppliers are provided for offline work: a file-backed supplier reading
CSV/Parquet exports, and a seeded synthetic random walk used by the demo
runner and the test-suite. Exchange-backed suppliers live outside this
package.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence, Union

import numpy as np
import pandas as pd

from .config import Config

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

INTERVAL_MS = {
    "1m": 60 * 1000,
    "5m": 5 * 60 * 1000,
    "15m": 15 * 60 * 1000,
    "30m": 30 * 60 * 1000,
    "1h": Config.MS_PER_HOUR,
    "2h": 2 * Config.MS_PER_HOUR,
    "4h": 4 * Config.MS_PER_HOUR,
    "6h": 6 * Config.MS_PER_HOUR,
    "12h": 12 * Config.MS_PER_HOUR,
    "1d": Config.MS_PER_DAY,
    "1w": 7 * Config.MS_PER_DAY,
}

OHLCV_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]


class CandleDataError(ValueError):
    """Raised when a candle series violates the supplier contract."""


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class Candle:
    """One closed OHLCV bar; ``timestamp`` is epoch milliseconds."""
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class CandleSupplier(Protocol):
    """Anything that can hand the engine a closed-bar history."""

    def get_candles(self, symbol: str, interval: str, count: int) -> List[Candle]:
        ...


# =============================================================================
# CONVERSION & VALIDATION
# =============================================================================

def interval_to_ms(interval: str) -> int:
    """Translate an exchange interval string (``1h``, ``4h``, ``1d``) to ms."""
    try:
        return INTERVAL_MS[interval]
    except KeyError:
        raise ValueError(
            f"Unsupported interval '{interval}' (expected one of {', '.join(INTERVAL_MS)})"
        ) from None


def candles_from_frame(df: pd.DataFrame) -> List[Candle]:
    """
    Build candles from an OHLCV DataFrame.

    The timestamp is taken from a ``timestamp`` column when present
    (epoch ms, or datetimes), otherwise from a DatetimeIndex.
    """
    frame = df.copy()
    frame.columns = [str(c).lower() for c in frame.columns]

    if "timestamp" not in frame.columns:
        if not isinstance(frame.index, pd.DatetimeIndex):
            raise CandleDataError("OHLCV frame needs a 'timestamp' column or a DatetimeIndex")
        frame["timestamp"] = frame.index

    if "volume" not in frame.columns:
        frame["volume"] = 0.0

    missing = [c for c in OHLCV_COLUMNS if c not in frame.columns]
    if missing:
        raise CandleDataError(f"OHLCV frame is missing columns: {missing}")

    ts = frame["timestamp"]
    if pd.api.types.is_datetime64_any_dtype(ts):
        stamps = pd.to_datetime(ts, utc=True)
        ts = (stamps - pd.Timestamp(0, tz="UTC")) // pd.Timedelta(milliseconds=1)

    return [
        Candle(int(t), float(o), float(h), float(l), float(c), float(v))
        for t, o, h, l, c, v in zip(
            ts, frame["open"], frame["high"], frame["low"], frame["close"], frame["volume"]
        )
    ]


def candles_to_frame(candles: Sequence[Candle]) -> pd.DataFrame:
    """OHLCV DataFrame indexed by UTC timestamps."""
    frame = pd.DataFrame(
        [(c.timestamp, c.open, c.high, c.low, c.close, c.volume) for c in candles],
        columns=OHLCV_COLUMNS,
    )
    frame.index = pd.to_datetime(frame["timestamp"], unit="ms", utc=True)
    frame.index.name = "time"
    return frame


def validate_candles(candles: Sequence[Candle]) -> None:
    """
    Check the supplier contract.

    Raises
    ------
    CandleDataError
        On non-increasing timestamps or bars whose high is below their low.
    """
    previous: Optional[int] = None
    for i, candle in enumerate(candles):
        if previous is not None and candle.timestamp <= previous:
            raise CandleDataError(
                f"Timestamps must be strictly increasing (bar {i}: {candle.timestamp} <= {previous})"
            )
        if candle.high < candle.low:
            raise CandleDataError(f"Bar {i} has high {candle.high} below low {candle.low}")
        previous = candle.timestamp


# =============================================================================
# SUPPLIERS
# =============================================================================

class FileCandleSupplier:
    """
    Reads ``<SYMBOL>_<interval>.parquet`` or ``.csv`` exports from a directory.

    Parquet is preferred when both exist.
    """

    def __init__(self, directory: Union[str, Path] = "data"):
        self.directory = Path(directory)

    def _path_for(self, symbol: str, interval: str) -> Path:
        stem = f"{symbol.upper()}_{interval}"
        for suffix in (".parquet", ".csv"):
            path = self.directory / f"{stem}{suffix}"
            if path.exists():
                return path
        raise FileNotFoundError(f"No candle file for {stem} in {self.directory}")

    def load(self, path: Union[str, Path]) -> List[Candle]:
        """Load, validate and return every candle in a single file."""
        path = Path(path)
        if path.suffix == ".parquet":
            df = pd.read_parquet(path)
        else:
            df = pd.read_csv(path)
        candles = candles_from_frame(df)
        validate_candles(candles)
        logger.info(f"Loaded {len(candles):,} candles from {path}")
        return candles

    def get_candles(self, symbol: str, interval: str, count: int) -> List[Candle]:
        candles = self.load(self._path_for(symbol, interval))
        return candles[-count:] if count > 0 else []


class SyntheticCandleSupplier:
    """
    Seeded geometric random walk producing plausible OHLCV bars.

    The same seed, symbol and interval always produce the same series, so
    demos and tests are reproducible.
    """

    def __init__(
        self,
        seed: Optional[int] = 42,
        start_price: float = 30000.0,
        drift: float = 0.0,
        volatility: float = 0.01,
        start_time: int = 1_600_000_000_000
    ):
        """
        Args:
            seed: RNG seed (None for a fresh random series)
            start_price: First open price
            drift: Mean log return per bar
            volatility: Standard deviation of log returns per bar
            start_time: Timestamp (ms) of the first bar
        """
        self.seed = seed
        self.start_price = start_price
        self.drift = drift
        self.volatility = volatility
        self.start_time = start_time

    def get_candles(self, symbol: str, interval: str, count: int) -> List[Candle]:
        if count <= 0:
            return []

        step = interval_to_ms(interval)
        rng = np.random.default_rng(self.seed)

        log_returns = rng.normal(self.drift, self.volatility, count)
        closes = self.start_price * np.exp(np.cumsum(log_returns))
        opens = np.concatenate(([self.start_price], closes[:-1]))

        # Wicks extend beyond the body by a fraction of the bar volatility
        wick_up = np.abs(rng.normal(0.0, self.volatility / 2, count))
        wick_down = np.abs(rng.normal(0.0, self.volatility / 2, count))
        highs = np.maximum(opens, closes) * (1 + wick_up)
        lows = np.minimum(opens, closes) * (1 - wick_down)
        volumes = rng.lognormal(mean=3.0, sigma=0.5, size=count)

        logger.debug(f"Generated {count} synthetic {interval} candles for {symbol}")

        return [
            Candle(
                timestamp=self.start_time + i * step,
                open=float(opens[i]),
                high=float(highs[i]),
                low=float(lows[i]),
                close=float(closes[i]),
                volume=float(volumes[i]),
            )
            for i in range(count)
        ]


def closes_of(candles: Iterable[Candle]) -> np.ndarray:
    """Close prices as a float array."""
    return np.array([c.close for c in candles], dtype=float)
