"""Backtest engine — replays historical candles through strategy and risk.

The pipeline is strictly sequential: enrich candles with prefix-local
indicators, replay the confluence zones each candle would have seen, walk
the candles through a flat / in-position state machine, then aggregate.
No real orders are placed.

Long runs report progress and yield the thread every ``yield_every``
candles, and check a cancellation flag at the same points.
"""

import asyncio
import dataclasses
import logging
import threading
import time
from typing import Any, Callable, Optional, Sequence

from apex.backtest.enricher import WARMUP, enrich_candles
from apex.backtest.models import BacktestResults, OpenPosition, TradeLogEntry
from apex.backtest.replay import HistoricalReplayer
from apex.backtest.stats import calculate_performance
from apex.models.strategy_config import BacktestSettings, StrategyConfig
from apex.risk.position_sizer import calculate_position_size
from apex.risk.sl_tp import calculate_risk_levels
from apex.strategy.confluence import find_level_confluence
from apex.strategy.models import Candle, ConfluenceZone, EnrichedCandle, TimeframeReport
from apex.strategy.signals import evaluate_entry

logger = logging.getLogger("apex")

ProgressCallback = Callable[[float], None]
LogSink = Callable[[str, Any], None]

ZONE_SAMPLE_SIZE = 5

# Progress bands per phase
_ENRICH_START = 10.0
_CONFLUENCE_START = 30.0
_SIMULATION_START = 60.0
_DONE = 100.0


class InsufficientDataError(ValueError):
    """Fewer primary candles than the indicator warm-up needs."""


class BacktestCancelled(Exception):
    """Raised at a checkpoint once the cancellation flag is set."""


class _Progress:
    """Monotonic progress reporting with cooperative yielding."""

    def __init__(
        self,
        on_progress: Optional[ProgressCallback],
        cancel_event: Optional[threading.Event],
        yield_every: int,
    ) -> None:
        self._on_progress = on_progress
        self._cancel_event = cancel_event
        self._yield_every = max(1, yield_every)
        self._last = 0.0

    def check_cancelled(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise BacktestCancelled()

    def report(self, pct: float) -> None:
        pct = min(_DONE, max(self._last, pct))
        self._last = pct
        if self._on_progress is not None:
            self._on_progress(pct)

    def phase(self, i: int, start: int, end: int, low: float, high: float) -> None:
        """Checkpoint inside a phase covering indices ``[start, end)``."""
        if (i - start) % self._yield_every != 0:
            return
        self.check_cancelled()
        span = end - start
        self.report(low + (high - low) * ((i - start) / span if span else 1.0))
        time.sleep(0)


class BacktestEngine:
    """Simulates a strategy on historical candle data.

    Args:
        settings: Capital, position sizing, fees and slippage.
        on_progress: Receives percent complete, never decreasing.
        on_log: Artifact sink ``(name, data)``; ``None`` disables it.
        cancel_event: Set it to abandon the run at the next checkpoint.
        yield_every: Candles between checkpoints.
    """

    def __init__(
        self,
        settings: BacktestSettings,
        on_progress: Optional[ProgressCallback] = None,
        on_log: Optional[LogSink] = None,
        cancel_event: Optional[threading.Event] = None,
        yield_every: int = 20,
    ) -> None:
        self._settings = settings
        self._on_log = on_log
        self._progress = _Progress(on_progress, cancel_event, yield_every)

    # ── Public API ───────────────────────────────────────────────────────

    def run(
        self,
        strategy: StrategyConfig,
        primary_report: TimeframeReport,
        reference_candles: Optional[Sequence[Candle]] = None,
        all_reports: Optional[Sequence[TimeframeReport]] = None,
    ) -> BacktestResults:
        """Execute a full backtest.

        Args:
            strategy: Two-sided strategy to simulate.
            primary_report: Report whose candles are traded.
            reference_candles: Reference asset (e.g. BTC) for the
                correlation indicators.
            all_reports: Reports feeding the confluence zones; defaults
                to the primary report alone.

        Raises:
            InsufficientDataError: Fewer than 200 primary candles.
            BacktestCancelled: The cancellation flag was set.
        """
        candles = list(primary_report.candles)
        if len(candles) < WARMUP:
            raise InsufficientDataError(
                f"Not enough candle data ({len(candles)} < {WARMUP}) to run a backtest"
            )
        reports = list(all_reports) if all_reports else [primary_report]

        progress = self._progress
        progress.check_cancelled()
        progress.report(5.0)
        self._log("backtest_settings", self._settings.to_dict())
        self._log("raw_kline_data", [dataclasses.asdict(c) for c in candles])

        logger.info(
            "Backtest '%s' on %s %s: %d candles, %d timeframe report(s)",
            strategy.name, strategy.symbol or primary_report.symbol,
            strategy.timeframe or primary_report.timeframe,
            len(candles), len(reports),
        )

        n = len(candles)
        progress.report(_ENRICH_START)
        self._log("backtest_phase", "Enriching candles with prefix-local indicators")
        enriched = enrich_candles(
            candles,
            reference_candles,
            checkpoint=lambda i: progress.phase(i, 0, n, _ENRICH_START, _CONFLUENCE_START),
        )
        self._log(
            "enriched_kline_data_with_indicators",
            [
                {**dataclasses.asdict(e.candle), "indicators": e.indicators.to_dict()}
                for e in enriched[WARMUP:]
            ],
        )

        progress.check_cancelled()
        progress.report(_CONFLUENCE_START)
        logger.info("Replaying confluence zones for %d candles", n - WARMUP)
        self._log("backtest_phase", "Calculating historical confluence zones for each candle")
        zone_map = self._replay_zones(candles, reports)

        progress.check_cancelled()
        progress.report(_SIMULATION_START)
        logger.info("Simulating trades")
        trade_log, equity_curve = self._simulate(strategy, enriched, zone_map)

        results = calculate_performance(
            trade_log, equity_curve, self._settings.initial_capital,
        )
        progress.report(_DONE)
        logger.info(
            "Backtest complete: %d trades, net profit %.2f (%.2f%%)",
            results.total_trades, results.net_profit, results.net_profit_pct,
        )
        return results

    # ── Phases ───────────────────────────────────────────────────────────

    def _replay_zones(
        self,
        candles: list[Candle],
        reports: list[TimeframeReport],
    ) -> dict[int, list[ConfluenceZone]]:
        """Zones for every simulated candle, keyed by candle index.

        Each candle's close is the stable close that decides zone type.
        """
        replayer = HistoricalReplayer(reports)
        n = len(candles)
        zone_map: dict[int, list[ConfluenceZone]] = {}
        for i in range(WARMUP, n):
            candle = candles[i]
            zone_map[i] = find_level_confluence(
                replayer.reports_at(candle.timestamp), candle.close,
            )
            self._progress.phase(i, WARMUP, n, _CONFLUENCE_START, _SIMULATION_START)

        if self._on_log is not None:
            sample = list(zone_map.items())[-ZONE_SAMPLE_SIZE:]
            self._log(
                "historical_confluence_zones_map_sample",
                {
                    str(candles[i].timestamp): [z.to_dict() for z in zones]
                    for i, zones in sample
                },
            )
        return zone_map

    def _simulate(
        self,
        strategy: StrategyConfig,
        enriched: list[EnrichedCandle],
        zone_map: dict[int, list[ConfluenceZone]],
    ) -> tuple[list[TradeLogEntry], list[float]]:
        """Walk the candles through the flat / in-position state machine.

        Zones are dropped from *zone_map* as each candle consumes them.
        """
        equity = self._settings.initial_capital
        equity_curve: list[float] = [equity]
        trade_log: list[TradeLogEntry] = []
        position: Optional[OpenPosition] = None
        n = len(enriched)
        last_index = n - 1

        for i in range(WARMUP, n):
            candle = enriched[i]
            zones = zone_map.pop(i, [])

            # 1 — Exit on SL / TP, or force-close on the last candle
            if position is not None:
                exit_ = self._check_exit(position, candle)
                if exit_ is None and i == last_index:
                    exit_ = (candle.close, "end_of_data")
                if exit_ is not None:
                    trade = self._close(position, candle, *exit_)
                    equity += trade.profit
                    trade_log.append(trade)
                    position = None

            # 2 — Entry; nothing opens on the last candle
            if position is None and i < last_index:
                side = evaluate_entry(strategy, candle, zones)
                if side is not None:
                    position = self._open(
                        strategy, side, candle, zones, equity,
                        trade_id=f"trade-{len(trade_log) + 1}",
                    )

            equity_curve.append(equity)
            self._progress.phase(i, WARMUP, n, _SIMULATION_START, _DONE)

        return trade_log, equity_curve

    # ── Trade handling ───────────────────────────────────────────────────

    def _open(
        self,
        strategy: StrategyConfig,
        side: str,
        candle: EnrichedCandle,
        zones: list[ConfluenceZone],
        equity: float,
        trade_id: str,
    ) -> Optional[OpenPosition]:
        """Open a position at the candle close, or ``None`` if it can't be sized."""
        if equity <= 0:
            logger.debug("%s: %s signal skipped, no equity left", trade_id, side)
            return None

        settings = self._settings
        entry_price = self._fill(candle.close, side, entering=True)
        atr = candle.indicators.atr20
        rules = strategy.side(side).risk_management
        levels = calculate_risk_levels(
            entry_price, side, rules.stop_loss, rules.take_profit, atr, zones,
        )
        sl_distance = abs(entry_price - levels.sl) if levels.sl is not None else None

        if settings.position_sizing.mode == "risk_percentage" and not sl_distance:
            logger.debug("%s: %s signal skipped, risk sizing needs a stop", trade_id, side)
            return None
        size = calculate_position_size(
            equity, settings.position_sizing, entry_price, sl_distance,
        )
        if size <= 0:
            logger.debug("%s: %s signal skipped, zero position size", trade_id, side)
            return None

        self._log(f"risk_setup_{trade_id}", {
            "entrySignal": side,
            "entryPrice": entry_price,
            "atrAtEntry": atr,
            "stopLoss": {
                "type": rules.stop_loss.type,
                "value": rules.stop_loss.value,
                "calculatedSlPrice": levels.sl,
            },
            "takeProfit": {
                "type": rules.take_profit.type,
                "value": rules.take_profit.value,
                "calculatedTpPrice": levels.tp,
                "source": levels.tp_source,
                "targetZone": levels.target_zone.to_dict() if levels.target_zone else None,
            },
            "size": size,
        })
        logger.debug(
            "%s: open %s @ %.8g size=%.8g sl=%s tp=%s",
            trade_id, side, entry_price, size, levels.sl, levels.tp,
        )
        return OpenPosition(
            id=trade_id,
            side=side,
            entry_price=entry_price,
            entry_timestamp=candle.timestamp,
            size=size,
            stop_loss=levels.sl,
            take_profit=levels.tp,
            entry_fee=entry_price * size * settings.taker_fee_pct / 100.0,
        )

    def _close(
        self,
        position: OpenPosition,
        candle: EnrichedCandle,
        price: float,
        reason: str,
    ) -> TradeLogEntry:
        exit_price = self._fill(price, position.side, entering=False)
        # Take-profit is a resting limit order; everything else fills at market
        fee_pct = (
            self._settings.maker_fee_pct if reason == "take_profit"
            else self._settings.taker_fee_pct
        )
        exit_fee = exit_price * position.size * fee_pct / 100.0
        fees = position.entry_fee + exit_fee
        profit = self._calc_pnl(position, exit_price) - fees
        entry_value = position.entry_price * position.size
        trade = TradeLogEntry(
            id=position.id,
            side=position.side,
            entry_timestamp=position.entry_timestamp,
            entry_price=position.entry_price,
            exit_timestamp=candle.timestamp,
            exit_price=exit_price,
            profit=profit,
            profit_pct=(profit / entry_value) * 100 if entry_value > 0 else 0.0,
            size=position.size,
            stop_loss=position.stop_loss,
            take_profit=position.take_profit,
            exit_reason=reason,
            fees=fees,
        )
        logger.debug(
            "%s: close %s @ %.8g (%s) profit=%.2f",
            trade.id, trade.side, exit_price, reason, profit,
        )
        return trade

    def _fill(self, price: float, side: str, entering: bool) -> float:
        """Apply adverse slippage: buys fill higher, sells lower."""
        slip = self._settings.slippage_pct / 100.0
        buying = (side == "long") == entering
        return price * (1 + slip) if buying else price * (1 - slip)

    def _log(self, name: str, data: Any) -> None:
        if self._on_log is not None:
            self._on_log(name, data)

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _check_exit(
        position: OpenPosition, candle,
    ) -> Optional[tuple[float, str]]:
        """Check if *candle* triggers an SL or TP exit.

        Returns ``(exit_price, reason)`` or ``None``.  When both levels
        fall inside the candle, SL is assumed first (conservative); the
        intrabar path is not modelled.
        """
        sl = position.stop_loss
        tp = position.take_profit

        if position.side == "long":
            sl_hit = sl is not None and candle.low <= sl
            tp_hit = tp is not None and candle.high >= tp
        else:
            sl_hit = sl is not None and candle.high >= sl
            tp_hit = tp is not None and candle.low <= tp

        if sl_hit:
            return sl, "stop_loss"
        if tp_hit:
            return tp, "take_profit"
        return None

    @staticmethod
    def _calc_pnl(position: OpenPosition, exit_price: float) -> float:
        """Gross P&L for *position* exiting at *exit_price*."""
        if position.side == "long":
            return (exit_price - position.entry_price) * position.size
        return (position.entry_price - exit_price) * position.size


# ── Entry points ─────────────────────────────────────────────────────────


def run_backtest(
    strategy: StrategyConfig,
    primary_report: TimeframeReport,
    settings: BacktestSettings,
    on_progress: Optional[ProgressCallback] = None,
    reference_candles: Optional[Sequence[Candle]] = None,
    logging_enabled: bool = False,
    on_log: Optional[LogSink] = None,
    all_reports: Optional[Sequence[TimeframeReport]] = None,
    cancel_event: Optional[threading.Event] = None,
    yield_every: int = 20,
) -> Optional[BacktestResults]:
    """Run a full backtest; ``None`` if it was cancelled.

    *on_log* only receives artifacts when *logging_enabled* is set.

    Raises:
        InsufficientDataError: Fewer than 200 primary candles.
    """
    engine = BacktestEngine(
        settings,
        on_progress=on_progress,
        on_log=on_log if logging_enabled else None,
        cancel_event=cancel_event,
        yield_every=yield_every,
    )
    try:
        return engine.run(strategy, primary_report, reference_candles, all_reports)
    except BacktestCancelled:
        logger.warning("Backtest '%s' cancelled", strategy.name)
        return None


async def run_backtest_async(
    strategy: StrategyConfig,
    primary_report: TimeframeReport,
    settings: BacktestSettings,
    **kwargs: Any,
) -> Optional[BacktestResults]:
    """:func:`run_backtest` on a worker thread, keeping the event loop free.

    Cancel by setting the ``cancel_event`` passed in *kwargs*.
    """
    return await asyncio.to_thread(
        run_backtest, strategy, primary_report, settings, **kwargs,
    )
