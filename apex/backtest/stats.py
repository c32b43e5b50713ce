"""Backtest statistics — pure functions for trade-series analysis."""

import math
from typing import Optional, Sequence

from apex.backtest.models import BacktestResults, TradeLogEntry
from apex.risk.drawdown import DrawdownTracker


def calculate_performance(
    trade_log: Sequence[TradeLogEntry],
    equity_curve: Sequence[float],
    initial_capital: float,
) -> BacktestResults:
    """Aggregate a finished simulation into ``BacktestResults``.

    A trade with zero profit counts as a loss.  Money figures and
    percentages are rounded to 2 decimals.

    Args:
        trade_log: Closed trades in order of exit.
        equity_curve: Equity after every simulated candle, starting with
            *initial_capital*.
        initial_capital: Starting equity.
    """
    trades = tuple(trade_log)
    total = len(trades)
    final_equity = equity_curve[-1] if equity_curve else initial_capital

    if total == 0:
        return BacktestResults(
            net_profit=0.0,
            net_profit_pct=0.0,
            profit_factor=None,
            win_rate=0.0,
            max_drawdown=0.0,
            max_drawdown_pct=0.0,
            total_trades=0,
            avg_win=None,
            avg_loss=None,
            trade_log=trades,
            final_equity=round(final_equity, 2),
        )

    profits = [t.profit for t in trades]
    winners = [p for p in profits if p > 0]
    losers = [p for p in profits if p <= 0]

    gross_profit = sum(winners)
    gross_loss = abs(sum(losers))
    profit_factor: Optional[float] = (
        round(gross_profit / gross_loss, 2) if gross_loss > 0 else math.inf
    )

    tracker = DrawdownTracker(initial_capital)
    for equity in equity_curve:
        tracker.update(equity)

    net_profit = final_equity - initial_capital

    return BacktestResults(
        net_profit=round(net_profit, 2),
        net_profit_pct=round(net_profit / initial_capital * 100, 2),
        profit_factor=profit_factor,
        win_rate=round(len(winners) / total * 100, 2),
        max_drawdown=round(tracker.max_drawdown, 2),
        max_drawdown_pct=round(tracker.max_drawdown_pct, 2),
        total_trades=total,
        avg_win=round(gross_profit / len(winners), 2) if winners else None,
        avg_loss=round(gross_loss / len(losers), 2) if losers else None,
        trade_log=trades,
        winning_trades=len(winners),
        losing_trades=len(losers),
        final_equity=round(final_equity, 2),
        sharpe_ratio=round(_sharpe(profits), 4),
    )


# ── Helpers ──────────────────────────────────────────────────────────────


def _sharpe(pnls: list[float]) -> float:
    """Annualised Sharpe ratio from a P&L series.

    Uses sample standard deviation (n − 1).  Returns 0.0 when the series
    has fewer than 2 observations or zero variance.
    """
    n = len(pnls)
    if n < 2:
        return 0.0
    mean = sum(pnls) / n
    variance = sum((p - mean) ** 2 for p in pnls) / (n - 1)
    std = math.sqrt(variance)
    if std == 0:
        return 0.0
    return (mean / std) * math.sqrt(252)
