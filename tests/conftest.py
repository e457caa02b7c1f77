"""Shared candle builders for the test-suite."""

from typing import List, Sequence

import pytest

from strategy_lab.data_sources import Candle, SyntheticCandleSupplier

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS
START_MS = 1_600_000_000_000


def build_candles(
    closes: Sequence[float],
    interval_ms: int = HOUR_MS,
    start: int = START_MS,
    spread: float = 0.0,
) -> List[Candle]:
    """Candles whose open equals close; ``spread`` widens high/low symmetrically."""
    return [
        Candle(
            timestamp=start + i * interval_ms,
            open=float(c),
            high=float(c) * (1 + spread),
            low=float(c) * (1 - spread),
            close=float(c),
            volume=1000.0,
        )
        for i, c in enumerate(closes)
    ]


def flat_then_rising_closes() -> List[float]:
    """Flat at 100 for bars 0-249, then +1 per bar from 101 at bar 250 (300 bars)."""
    return [100.0] * 250 + [101.0 + k for k in range(50)]


def rise_then_fall_closes() -> List[float]:
    """Flat to bar 249, up to 130 at bar 279, down 2 per bar to 30, then flat (400 bars)."""
    closes = [100.0] * 250 + [101.0 + k for k in range(30)]
    price = closes[-1]
    while len(closes) < 400:
        price = max(30.0, price - 2.0)
        closes.append(price)
    return closes


def rsi_zigzag_closes(n: int = 500) -> List[float]:
    """20 bars down by 1 then 20 bars up by 1, starting at 100, repeated."""
    closes = []
    price = 100.0
    while len(closes) < n:
        for _ in range(20):
            price -= 1.0
            closes.append(price)
        for _ in range(20):
            price += 1.0
            closes.append(price)
    return closes[:n]


def rsi_drifting_zigzag_closes(n: int = 500) -> List[float]:
    """
    26 bars down by 1 then 20 bars up by 1, starting at 200, repeated.

    With unit moves RSI peaks near 80 and bottoms near 12. Longs enter 14
    bars into a down leg and exit 8 bars into the next up leg (a loss of 4);
    shorts enter 15 bars into an up leg and exit 7 bars into the next down
    leg (a gain of 2).
    """
    closes = []
    price = 200.0
    while len(closes) < n:
        for _ in range(26):
            price -= 1.0
            closes.append(price)
        for _ in range(20):
            price += 1.0
            closes.append(price)
    return closes[:n]


@pytest.fixture
def make_candles():
    return build_candles


@pytest.fixture
def flat_then_rising():
    return build_candles(flat_then_rising_closes())


@pytest.fixture
def rise_then_fall():
    return build_candles(rise_then_fall_closes())


@pytest.fixture
def rsi_zigzag():
    return build_candles(rsi_zigzag_closes())


@pytest.fixture
def rsi_drifting_zigzag():
    return build_candles(rsi_drifting_zigzag_closes())


@pytest.fixture
def flat_series():
    return build_candles([100.0] * 300)


@pytest.fixture
def synthetic_candles():
    return SyntheticCandleSupplier(seed=7, volatility=0.015).get_candles("BTCUSDT", "1h", 1500)
