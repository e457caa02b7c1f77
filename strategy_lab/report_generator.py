"""
Report Generator for Backtest, Monte Carlo and Walk-Forward Results

Renders engine results in three formats:
    - Text: fixed-width console reports
    - JSON: machine-readable structured data for presentation layers
    - Markdown: documentation-ready summary with tables

The engine never calls this module; callers hand it finished result objects.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .backtest_engine import (
    VERSION,
    BacktestResult,
    MonteCarloResult,
    Position,
    Trade,
    WalkForwardResult,
)

logger = logging.getLogger(__name__)


def _fmt_time(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime('%Y-%m-%d %H:%M')


def _round(value: float, digits: int = 6) -> float:
    return round(float(value), digits)


# =============================================================================
# TEXT REPORTS
# =============================================================================

def format_backtest_report(result: BacktestResult) -> str:
    """
    Format a backtest result as a human-readable text report.

    Args:
        result: BacktestResult from the engine

    Returns:
        Formatted string report
    """
    m = result.metrics
    lines = [
        "=" * 70,
        "BACKTEST PERFORMANCE REPORT",
        "=" * 70,
        f"Strategy: {result.strategy_name}",
        f"Status:   {result.status.value}",
        f"Bars:     {result.total_bars:,} ({result.bars_evaluated:,} evaluated)",
    ]

    if result.equity_curve:
        lines.append(
            f"Period:   {_fmt_time(result.equity_curve[0].time)} to "
            f"{_fmt_time(result.equity_curve[-1].time)} UTC"
        )

    lines.extend([
        "",
        "-" * 70,
        "CAPITAL",
        "-" * 70,
        f"Initial Capital: ${result.initial_capital:,.2f}",
        f"Final Capital:   ${result.final_capital:,.2f}",
        f"Total Return:    {m.total_return:+.2f}%",
        f"CAGR:            {m.cagr:+.2f}%",
        "",
        "-" * 70,
        "RISK",
        "-" * 70,
        f"Max Drawdown:        {m.max_drawdown:.2f}%",
        f"Sharpe Ratio:        {m.sharpe_ratio:.3f}",
        f"Sortino Ratio:       {m.sortino_ratio:.3f}",
        f"Return Skewness:     {m.return_skewness:+.3f}",
        f"Return Kurtosis:     {m.return_kurtosis:+.3f}",
        "",
        "-" * 70,
        "TRADE STATISTICS",
        "-" * 70,
        f"Total Trades:        {m.total_trades}",
        f"Winning Trades:      {m.winning_trades}",
        f"Losing Trades:       {m.losing_trades}",
        f"Win Rate:            {m.win_rate:.1f}%",
        f"Profit Factor:       {m.profit_factor:.2f}",
        f"Expectancy:          ${m.expectancy:,.2f}",
        f"Avg Win / Loss:      ${m.avg_win:,.2f} / ${m.avg_loss:,.2f}",
        f"Largest Win / Loss:  ${m.largest_win:,.2f} / ${m.largest_loss:,.2f}",
        f"Avg R-Multiple:      {m.avg_r_multiple:+.2f}R",
        f"Avg Holding Period:  {m.avg_holding_period:.1f}h",
    ])

    if result.open_position is not None:
        pos = result.open_position
        lines.extend([
            "",
            f"Open position: {pos.direction.value} @ {pos.entry_price:,.2f} "
            f"since {_fmt_time(pos.entry_time)} (not included above)",
        ])

    lines.append("=" * 70)
    return "\n".join(lines)


def format_monte_carlo_report(result: MonteCarloResult) -> str:
    """Text summary of a bootstrap run."""
    lines = [
        "=" * 70,
        "MONTE CARLO SIMULATION",
        "=" * 70,
    ]

    if result.simulations == 0:
        lines.extend(["No trades to resample.", "=" * 70])
        return "\n".join(lines)

    lines.extend([
        f"Simulations:          {result.simulations:,}",
        f"Seed:                 {result.seed if result.seed is not None else 'random'}",
        "",
        "-" * 70,
        "RETURN DISTRIBUTION",
        "-" * 70,
    ])
    for level, value in sorted(result.return_percentiles.items()):
        label = "Median" if level == 0.50 else f"P{level * 100:.0f}"
        lines.append(f"  {label:<8} {value:+10.2f}%")

    lines.extend([
        "",
        f"Mean Return:          {result.return_mean:+.2f}%",
        f"Return Std:           {result.return_std:.2f}%",
        f"Return Skewness:      {result.return_skewness:+.3f}",
        f"P(Return > 0):        {result.probability_of_profit:.1%}",
        f"Risk of Ruin (<-50%): {result.risk_of_ruin:.2f}%",
        "=" * 70,
    ])
    return "\n".join(lines)


def format_walk_forward_report(result: WalkForwardResult) -> str:
    """Text table of walk-forward windows."""
    lines = [
        "=" * 70,
        "WALK-FORWARD ANALYSIS",
        "=" * 70,
        f"{'#':>3}  {'Train':<17} {'Test':<17} {'IS Sharpe':>10} {'OOS Sharpe':>11} {'Eff':>7}",
        "-" * 70,
    ]

    for i, w in enumerate(result.windows, start=1):
        lines.append(
            f"{i:>3}  {_fmt_time(w.train_start)[:10]:<17} {_fmt_time(w.test_start)[:10]:<17} "
            f"{w.train_result.metrics.sharpe_ratio:>10.2f} "
            f"{w.test_result.metrics.sharpe_ratio:>11.2f} {w.efficiency:>7.2f}"
        )

    if not result.windows:
        lines.append("  Not enough history for a single train/test window.")

    lines.extend([
        "-" * 70,
        f"Windows:            {len(result.windows)}",
        f"Avg Efficiency:     {result.avg_efficiency:.3f}",
        f"Robust (> 0.7):     {'YES' if result.is_robust else 'NO'}",
        f"Full-Period Sharpe: {result.overall_result.metrics.sharpe_ratio:.3f}",
        "=" * 70,
    ])
    return "\n".join(lines)


# =============================================================================
# SERIALIZATION
# =============================================================================

def _trade_to_dict(trade: Trade) -> Dict[str, Any]:
    return {
        "entry_time": trade.entry_time,
        "exit_time": trade.exit_time,
        "entry_price": trade.entry_price,
        "exit_price": trade.exit_price,
        "direction": trade.direction.value,
        "pnl": _round(trade.pnl),
        "pnl_percent": _round(trade.pnl_percent),
        "r_multiple": _round(trade.r_multiple, 4),
        "holding_period": _round(trade.holding_period, 2),
        "max_drawdown": trade.max_drawdown,
    }


def _position_to_dict(position: Optional[Position]) -> Optional[Dict[str, Any]]:
    if position is None:
        return None
    return {
        "direction": position.direction.value,
        "entry_price": position.entry_price,
        "entry_time": position.entry_time,
        "entry_index": position.entry_index,
        "stop_distance": _round(position.stop_distance),
    }


def result_to_dict(result: BacktestResult) -> Dict[str, Any]:
    """JSON-ready view of a backtest result (enums as values, times in ms)."""
    return {
        "status": result.status.value,
        "strategy_name": result.strategy_name,
        "initial_capital": result.initial_capital,
        "final_capital": _round(result.final_capital),
        "total_bars": result.total_bars,
        "bars_evaluated": result.bars_evaluated,
        "metrics": {k: _round(v) if isinstance(v, float) else v
                    for k, v in vars(result.metrics).items()},
        "trades": [_trade_to_dict(t) for t in result.trades],
        "equity_curve": [{"time": p.time, "equity": _round(p.equity)} for p in result.equity_curve],
        "drawdown_curve": [
            {"time": p.time, "drawdown": _round(p.drawdown_percent)} for p in result.drawdown_curve
        ],
        "open_position": _position_to_dict(result.open_position),
    }


def monte_carlo_to_dict(result: MonteCarloResult) -> Dict[str, Any]:
    return {
        "simulations": result.simulations,
        "seed": result.seed,
        "distributions": {
            "returns": [_round(v) for v in result.returns],
            "sharpe": [_round(v) for v in result.sharpe],
            "max_drawdown": [_round(v) for v in result.max_drawdown],
            "win_rate": [_round(v) for v in result.win_rate],
        },
        "confidence": {f"p{level * 100:.0f}": _round(v)
                       for level, v in sorted(result.return_percentiles.items())},
        "risk_of_ruin": _round(result.risk_of_ruin),
        "return_mean": _round(result.return_mean),
        "return_std": _round(result.return_std),
        "probability_of_profit": _round(result.probability_of_profit),
        "return_skewness": _round(result.return_skewness),
    }


def walk_forward_to_dict(result: WalkForwardResult) -> Dict[str, Any]:
    return {
        "windows": [
            {
                "train_start": w.train_start,
                "train_end": w.train_end,
                "test_start": w.test_start,
                "test_end": w.test_end,
                "train_results": result_to_dict(w.train_result),
                "test_results": result_to_dict(w.test_result),
                "efficiency": _round(w.efficiency),
            }
            for w in result.windows
        ],
        "avg_efficiency": _round(result.avg_efficiency),
        "is_robust": result.is_robust,
        "overall_results": result_to_dict(result.overall_result),
    }


# =============================================================================
# FILE REPORTS
# =============================================================================

def generate_json_report(
    backtest: BacktestResult,
    output_path: Path,
    monte_carlo: Optional[MonteCarloResult] = None,
    walk_forward: Optional[WalkForwardResult] = None
) -> None:
    """Write all supplied results as a single JSON document."""
    report = {
        "metadata": {
            "strategy": backtest.strategy_name,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "engine_version": VERSION,
        },
        "backtest": result_to_dict(backtest),
        "monte_carlo": monte_carlo_to_dict(monte_carlo) if monte_carlo is not None else None,
        "walk_forward": walk_forward_to_dict(walk_forward) if walk_forward is not None else None,
    }

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(report, f, indent=2, default=str)
    logger.info(f"Generated JSON: {output_path}")


def generate_markdown_report(
    backtest: BacktestResult,
    output_path: Path,
    monte_carlo: Optional[MonteCarloResult] = None,
    walk_forward: Optional[WalkForwardResult] = None
) -> None:
    """Write a Markdown summary with metric, trade and window tables."""
    m = backtest.metrics

    md = f"# Backtest Report: {backtest.strategy_name}\n\n"
    md += f"*Generated {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M')} UTC, engine v{VERSION}*\n\n"
    md += f"**Status:** {backtest.status.value} | **Bars:** {backtest.total_bars:,}\n\n"

    md += "## Performance\n\n| Metric | Value |\n|--------|-------|\n"
    rows: List[tuple] = [
        ("Total Return", f"{m.total_return:+.2f}%"),
        ("CAGR", f"{m.cagr:+.2f}%"),
        ("Max Drawdown", f"{m.max_drawdown:.2f}%"),
        ("Sharpe Ratio", f"{m.sharpe_ratio:.3f}"),
        ("Sortino Ratio", f"{m.sortino_ratio:.3f}"),
        ("Win Rate", f"{m.win_rate:.1f}%"),
        ("Profit Factor", f"{m.profit_factor:.2f}"),
        ("Expectancy", f"${m.expectancy:,.2f}"),
        ("Avg R-Multiple", f"{m.avg_r_multiple:+.2f}R"),
        ("Trades", f"{m.total_trades}"),
    ]
    for name, value in rows:
        md += f"| {name} | {value} |\n"

    if backtest.trades:
        md += "\n## Trades\n\n| Entry | Exit | Side | Entry Px | Exit Px | Return | R |\n"
        md += "|-------|------|------|----------|---------|--------|---|\n"
        for t in backtest.trades:
            md += (
                f"| {_fmt_time(t.entry_time)} | {_fmt_time(t.exit_time)} | {t.direction.value} | "
                f"{t.entry_price:,.2f} | {t.exit_price:,.2f} | {t.pnl_percent:+.2f}% | {t.r_multiple:+.2f} |\n"
            )

    if monte_carlo is not None and monte_carlo.simulations:
        md += f"\n## Monte Carlo ({monte_carlo.simulations:,} simulations)\n\n"
        md += "| Percentile | Total Return |\n|------------|--------------|\n"
        for level, value in sorted(monte_carlo.return_percentiles.items()):
            md += f"| {level:.0%} | {value:+.2f}% |\n"
        md += f"\n**Risk of ruin:** {monte_carlo.risk_of_ruin:.2f}%\n"

    if walk_forward is not None:
        md += "\n## Walk-Forward Analysis\n\n"
        md += "| # | Test Start | IS Sharpe | OOS Sharpe | Efficiency |\n"
        md += "|---|------------|-----------|------------|------------|\n"
        for i, w in enumerate(walk_forward.windows, start=1):
            md += (
                f"| {i} | {_fmt_time(w.test_start)[:10]} | {w.train_result.metrics.sharpe_ratio:.2f} | "
                f"{w.test_result.metrics.sharpe_ratio:.2f} | {w.efficiency:.2f} |\n"
            )
        verdict = "robust" if walk_forward.is_robust else "not robust"
        md += f"\n**Average efficiency:** {walk_forward.avg_efficiency:.3f} ({verdict})\n"

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(md, encoding='utf-8')
    logger.info(f"Generated Markdown: {output_path}")


def generate_all_reports(
    backtest: BacktestResult,
    output_dir: Path,
    monte_carlo: Optional[MonteCarloResult] = None,
    walk_forward: Optional[WalkForwardResult] = None
) -> Dict[str, Optional[Path]]:
    """Generate every file format into ``output_dir/reports``."""
    reports_dir = Path(output_dir) / "reports"
    reports_dir.mkdir(parents=True, exist_ok=True)

    stem = backtest.strategy_name.lower().replace(' ', '_')
    outputs: Dict[str, Optional[Path]] = {}

    json_path = reports_dir / f"{stem}_backtest.json"
    try:
        generate_json_report(backtest, json_path, monte_carlo, walk_forward)
        outputs['json'] = json_path
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"JSON failed: {e}")
        outputs['json'] = None

    md_path = reports_dir / f"{stem}_backtest.md"
    try:
        generate_markdown_report(backtest, md_path, monte_carlo, walk_forward)
        outputs['md'] = md_path
    except (OSError, ValueError) as e:
        logger.error(f"Markdown failed: {e}")
        outputs['md'] = None

    return outputs


__all__ = [
    'format_backtest_report',
    'format_monte_carlo_report',
    'format_walk_forward_report',
    'result_to_dict',
    'monte_carlo_to_dict',
    'walk_forward_to_dict',
    'generate_json_report',
    'generate_markdown_report',
    'generate_all_reports',
]
