#!/usr/bin/env python3
"""
Strategy Lab - Demo Runner

Runs the complete validation pipeline for one strategy profile:
    Stage 1: Candle acquisition (CSV/Parquet file or seeded synthetic walk)
    Stage 2: Backtest
    Stage 3: Monte Carlo resampling of the realized trades
    Stage 4: Walk-forward analysis
    Stage 5: JSON / Markdown reports

EXECUTION
    python run_demo.py
    python run_demo.py --strategy RSI_EXTREMES --bars 8000 --seed 11
    python run_demo.py --candles data/BTCUSDT_4h.parquet --strategy ATR_BREAKOUT

OUTPUT ARTIFACTS
    outputs/reports/
        {strategy}_backtest.json    Trades, curves, metrics, MC and WF results
        {strategy}_backtest.md      Summary tables
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from strategy_lab import (
    VERSION,
    BacktestEngine,
    BacktestResult,
    Candle,
    CandleDataError,
    FileCandleSupplier,
    StrategyType,
    SyntheticCandleSupplier,
    default_profile,
)
from strategy_lab.report_generator import (
    format_backtest_report,
    format_monte_carlo_report,
    format_walk_forward_report,
    generate_all_reports,
)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_SYMBOL: str = "BTCUSDT"
DEFAULT_INTERVAL: str = "4h"
DEFAULT_BARS: int = 6000
DEFAULT_SEED: int = 42

OUTPUT_DIR = Path("outputs")


# =============================================================================
# DISPLAY COMPONENTS
# =============================================================================

BANNER = f'''
╔═══════════════════════════════════════════════════════════════════════════════╗
║                                                                               ║
║              STRATEGY LAB                                                     ║
║              Backtest · Monte Carlo · Walk-Forward                            ║
║              v{VERSION:<64}║
║                                                                               ║
╚═══════════════════════════════════════════════════════════════════════════════╝
'''


def print_section_header(title: str, char: str = "═") -> None:
    """Print a formatted section header."""
    width = 79
    print()
    print(char * width)
    print(f"  {title}")
    print(char * width)
    print()


# =============================================================================
# STAGES
# =============================================================================

def load_candles(
    candles_path: Optional[Path],
    interval: str,
    bars: int,
    seed: int,
    logger: logging.Logger
) -> Optional[List[Candle]]:
    """Stage 1: read a candle file or generate a synthetic series."""
    print_section_header("STAGE 1: CANDLE DATA")

    try:
        if candles_path is not None:
            candles = FileCandleSupplier(candles_path.parent).load(candles_path)
            if bars > 0:
                candles = candles[-bars:]
        else:
            supplier = SyntheticCandleSupplier(seed=seed, drift=0.0002, volatility=0.012)
            candles = supplier.get_candles(DEFAULT_SYMBOL, interval, bars)
            logger.info(f"Generated {len(candles):,} synthetic {interval} candles (seed {seed})")
    except (OSError, CandleDataError, ValueError) as e:
        logger.error(f"Candle loading failed: {e}")
        return None

    if not candles:
        logger.error("No candles available")
        return None

    first = datetime.fromtimestamp(candles[0].timestamp / 1000, tz=timezone.utc)
    last = datetime.fromtimestamp(candles[-1].timestamp / 1000, tz=timezone.utc)
    logger.info(f"Period: {first:%Y-%m-%d} to {last:%Y-%m-%d}")
    return candles


def run_stages(args: argparse.Namespace, logger: logging.Logger) -> int:
    candles = load_candles(args.candles, args.interval, args.bars, args.seed, logger)
    if candles is None:
        return 1

    profile = default_profile(StrategyType(args.strategy))
    engine = BacktestEngine()

    print_section_header(f"STAGE 2: BACKTEST ({profile.name})")
    result: BacktestResult = engine.run(profile, candles)
    print(format_backtest_report(result))

    print_section_header("STAGE 3: MONTE CARLO")
    monte_carlo = engine.run_monte_carlo(profile, result, args.simulations, seed=args.seed)
    print(format_monte_carlo_report(monte_carlo))

    print_section_header("STAGE 4: WALK-FORWARD ANALYSIS")
    walk_forward = engine.run_walk_forward(
        profile, candles, train_months=args.train_months, test_months=args.test_months
    )
    print(format_walk_forward_report(walk_forward))

    print_section_header("STAGE 5: REPORTS")
    reports = generate_all_reports(result, args.output, monte_carlo, walk_forward)
    for fmt, path in reports.items():
        print(f"    {fmt.upper():<9} {path if path else 'Not generated'}")

    return 0


# =============================================================================
# MAIN
# =============================================================================

def main() -> int:
    """
    Main entry point for the demo runner.

    Returns
    -------
    int
        Exit code (0 for success, 1 for failure)
    """
    start_time = time.time()

    parser = argparse.ArgumentParser(
        description="Strategy Lab - Demo Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_demo.py                               # EMA cross on synthetic 4h data
  python run_demo.py --strategy RSI_EXTREMES       # RSI mean reversion
  python run_demo.py --candles data/BTCUSDT_4h.csv # Replay exported candles
        """
    )

    parser.add_argument(
        "--strategy", "-s",
        choices=[t.value for t in StrategyType],
        default=StrategyType.EMA_CROSS.value,
        help="Strategy family (default: EMA_CROSS)"
    )

    parser.add_argument(
        "--candles", "-c",
        type=Path,
        default=None,
        help="CSV or Parquet OHLCV file (default: synthetic data)"
    )

    parser.add_argument(
        "--bars", "-n",
        type=int,
        default=DEFAULT_BARS,
        help=f"Number of most recent bars to use (default: {DEFAULT_BARS})"
    )

    parser.add_argument(
        "--interval", "-i",
        type=str,
        default=DEFAULT_INTERVAL,
        help=f"Synthetic bar interval (default: {DEFAULT_INTERVAL})"
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=DEFAULT_SEED,
        help=f"Seed for synthetic data and Monte Carlo (default: {DEFAULT_SEED})"
    )

    parser.add_argument(
        "--simulations", "-m",
        type=int,
        default=1000,
        help="Monte Carlo simulations (default: 1000)"
    )

    parser.add_argument(
        "--train-months",
        type=float,
        default=6,
        help="Walk-forward train window in 30-day months (default: 6)"
    )

    parser.add_argument(
        "--test-months",
        type=float,
        default=1,
        help="Walk-forward test window in 30-day months (default: 1)"
    )

    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=OUTPUT_DIR,
        help=f"Report directory (default: {OUTPUT_DIR})"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {VERSION}"
    )

    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="  %(asctime)s │ %(levelname)s │ %(message)s",
        datefmt="%H:%M:%S"
    )
    logger = logging.getLogger(__name__)

    print(BANNER)
    print(f"  Execution Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"  Strategy:          {args.strategy}")
    print(f"  Data:              {args.candles or f'synthetic {args.interval} x {args.bars:,}'}")
    print()

    try:
        exit_code = run_stages(args, logger)
    except ValueError as e:
        logger.error(f"Pipeline failed: {e}")
        exit_code = 1

    print(f"\n  Completed in {time.time() - start_time:.1f}s")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
