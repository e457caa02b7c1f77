"""
Tests for candle suppliers and frame conversion.
"""

import pandas as pd
import pytest

from strategy_lab.data_sources import (
    Candle,
    CandleDataError,
    FileCandleSupplier,
    SyntheticCandleSupplier,
    candles_from_frame,
    candles_to_frame,
    closes_of,
    interval_to_ms,
    validate_candles,
)


# =============================================================================
# SYNTHETIC SUPPLIER
# =============================================================================

class TestSyntheticSupplier:

    def test_deterministic_for_seed(self):
        first = SyntheticCandleSupplier(seed=9).get_candles("BTCUSDT", "1h", 100)
        second = SyntheticCandleSupplier(seed=9).get_candles("BTCUSDT", "1h", 100)
        assert first == second

    def test_spacing_and_count(self):
        candles = SyntheticCandleSupplier(seed=1, start_time=0).get_candles("BTCUSDT", "4h", 50)
        assert len(candles) == 50
        assert candles[0].timestamp == 0
        assert all(b.timestamp - a.timestamp == 4 * 3600 * 1000 for a, b in zip(candles, candles[1:]))

    def test_bars_are_consistent(self):
        candles = SyntheticCandleSupplier(seed=2).get_candles("ETHUSDT", "1d", 300)
        for c in candles:
            assert c.high >= max(c.open, c.close)
            assert c.low <= min(c.open, c.close)
            assert c.volume > 0
        validate_candles(candles)

    def test_zero_count(self):
        assert SyntheticCandleSupplier().get_candles("BTCUSDT", "1h", 0) == []


# =============================================================================
# VALIDATION & CONVERSION
# =============================================================================

class TestValidation:

    def test_duplicate_timestamps_rejected(self):
        candles = [Candle(1000, 1, 2, 0.5, 1.5), Candle(1000, 1, 2, 0.5, 1.5)]
        with pytest.raises(CandleDataError):
            validate_candles(candles)

    def test_inverted_bar_rejected(self):
        with pytest.raises(CandleDataError):
            validate_candles([Candle(1000, 1.0, 0.5, 2.0, 1.0)])

    def test_candle_data_error_is_value_error(self):
        assert issubclass(CandleDataError, ValueError)

    def test_interval_lookup(self):
        assert interval_to_ms("1h") == 3_600_000
        assert interval_to_ms("1d") == 86_400_000
        with pytest.raises(ValueError):
            interval_to_ms("3h")


class TestFrameConversion:

    def test_round_trip_through_frame(self):
        candles = SyntheticCandleSupplier(seed=4).get_candles("BTCUSDT", "1h", 20)
        frame = candles_to_frame(candles)
        assert frame.index.name == "time"
        assert str(frame.index.tz) == "UTC"
        assert candles_from_frame(frame) == candles

    def test_datetime_index_without_timestamp_column(self):
        index = pd.to_datetime(["2024-01-01 00:00", "2024-01-01 01:00", "2024-01-01 02:00"], utc=True)
        frame = pd.DataFrame(
            {"Open": [1.0, 2.0, 3.0], "High": [2.0, 3.0, 4.0], "Low": [0.5, 1.5, 2.5],
             "Close": [1.5, 2.5, 3.5]},
            index=index,
        )
        candles = candles_from_frame(frame)
        assert candles[0].timestamp == int(pd.Timestamp("2024-01-01", tz="UTC").timestamp() * 1000)
        assert candles[1].timestamp - candles[0].timestamp == 3_600_000
        assert all(c.volume == 0.0 for c in candles)

    def test_missing_columns(self):
        frame = pd.DataFrame({"timestamp": [1, 2], "close": [1.0, 2.0]})
        with pytest.raises(CandleDataError):
            candles_from_frame(frame)

    def test_closes_of(self):
        candles = [Candle(i, 1.0, 2.0, 0.5, float(i)) for i in range(3)]
        assert list(closes_of(candles)) == [0.0, 1.0, 2.0]


# =============================================================================
# FILE SUPPLIER
# =============================================================================

class TestFileSupplier:

    @pytest.fixture
    def frame(self):
        candles = SyntheticCandleSupplier(seed=5).get_candles("BTCUSDT", "1h", 30)
        return candles_to_frame(candles).reset_index(drop=True)

    def test_reads_csv_and_trims_to_count(self, tmp_path, frame):
        frame.to_csv(tmp_path / "BTCUSDT_1h.csv", index=False)
        candles = FileCandleSupplier(tmp_path).get_candles("btcusdt", "1h", 10)
        assert len(candles) == 10
        assert candles[-1].timestamp == int(frame["timestamp"].iloc[-1])

    def test_prefers_parquet(self, tmp_path, frame):
        frame.to_parquet(tmp_path / "BTCUSDT_1h.parquet", index=False)
        frame.iloc[:5].to_csv(tmp_path / "BTCUSDT_1h.csv", index=False)
        candles = FileCandleSupplier(tmp_path).get_candles("BTCUSDT", "1h", 100)
        assert len(candles) == 30

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            FileCandleSupplier(tmp_path).get_candles("BTCUSDT", "1h", 10)

    def test_invalid_file_is_rejected(self, tmp_path, frame):
        frame.iloc[::-1].to_csv(tmp_path / "BTCUSDT_1h.csv", index=False)
        with pytest.raises(CandleDataError):
            FileCandleSupplier(tmp_path).get_candles("BTCUSDT", "1h", 10)
