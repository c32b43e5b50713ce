"""Backtest data models — open positions, closed trades and results."""

import math
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class OpenPosition:
    """The single position a simulation may hold."""

    id: str
    side: str  # "long" or "short"
    entry_price: float
    entry_timestamp: int
    size: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    entry_fee: float = 0.0


@dataclass(frozen=True)
class TradeLogEntry:
    """A closed trade."""

    id: str
    side: str
    entry_timestamp: int
    entry_price: float
    exit_timestamp: int
    exit_price: float
    profit: float
    profit_pct: float
    size: float
    stop_loss: Optional[float]
    take_profit: Optional[float]
    exit_reason: str  # "stop_loss", "take_profit" or "end_of_data"
    fees: float = 0.0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "side": self.side,
            "entryTimestamp": self.entry_timestamp,
            "entryPrice": self.entry_price,
            "exitTimestamp": self.exit_timestamp,
            "exitPrice": self.exit_price,
            "profit": self.profit,
            "profitPct": self.profit_pct,
            "size": self.size,
            "stopLoss": self.stop_loss,
            "takeProfit": self.take_profit,
            "exitReason": self.exit_reason,
            "fees": self.fees,
        }


@dataclass(frozen=True)
class BacktestResults:
    """Aggregate performance of one backtest run.

    ``profit_factor`` is ``None`` without trades and ``math.inf`` when no
    trade lost money.  ``win_rate`` and the ``*_pct`` fields are percents.
    """

    net_profit: float
    net_profit_pct: float
    profit_factor: Optional[float]
    win_rate: float
    max_drawdown: float
    max_drawdown_pct: float
    total_trades: int
    avg_win: Optional[float]
    avg_loss: Optional[float]
    trade_log: tuple[TradeLogEntry, ...] = field(default_factory=tuple)
    winning_trades: int = 0
    losing_trades: int = 0
    final_equity: float = 0.0
    sharpe_ratio: float = 0.0

    def to_dict(self) -> dict:
        pf = self.profit_factor
        return {
            "netProfit": self.net_profit,
            "netProfitPct": self.net_profit_pct,
            "profitFactor": "Infinity" if pf is not None and math.isinf(pf) else pf,
            "winRate": self.win_rate,
            "maxDrawdown": self.max_drawdown,
            "maxDrawdownPct": self.max_drawdown_pct,
            "totalTrades": self.total_trades,
            "avgWin": self.avg_win,
            "avgLoss": self.avg_loss,
            "winningTrades": self.winning_trades,
            "losingTrades": self.losing_trades,
            "finalEquity": self.final_equity,
            "sharpeRatio": self.sharpe_ratio,
            "tradeLog": [t.to_dict() for t in self.trade_log],
        }
