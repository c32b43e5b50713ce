"""Historical confluence replay.

Rebuilds each timeframe's key-level report as it stood at a past
timestamp, using only that timeframe's candles that had opened by then,
and derives the confluence zones from those reports.

Two inputs are not strictly point-in-time:

- A higher-timeframe candle is included as soon as it opens, so its
  final range and close (which may lie after the replay timestamp)
  feed the zones.  For a 4h candle seen from a 1h candle, up to three
  hours of later price action leak into its levels.
- Fibonacci pivots are carried from the full-range report, so every
  replayed day uses the same previous-day levels.
"""

import bisect
import logging
from typing import Sequence

from apex.strategy.confluence import find_level_confluence
from apex.strategy.key_levels import build_key_levels
from apex.strategy.models import ConfluenceZone, TimeframeReport

logger = logging.getLogger("apex")

MIN_REPLAY_CANDLES = 52  # Ichimoku senkou B


class HistoricalReplayer:
    """Reconstructs point-in-time reports from full-range reports.

    Reports are cached per timeframe by slice end, so a higher timeframe
    is rebuilt only when one of its candles becomes visible.  Pivots are
    carried from the full-range report unchanged.

    Args:
        reports: One full-range report per timeframe.
        min_candles: Minimum slice length for a timeframe to take part.
    """

    def __init__(
        self,
        reports: Sequence[TimeframeReport],
        min_candles: int = MIN_REPLAY_CANDLES,
    ) -> None:
        self._reports = list(reports)
        self._times = [[c.timestamp for c in r.candles] for r in self._reports]
        self._min_candles = min_candles
        self._cache: dict[tuple[str, int], TimeframeReport] = {}

    def reports_at(self, timestamp: int) -> list[TimeframeReport]:
        """Reports rebuilt from candles with ``timestamp <= timestamp``.

        Timeframes with fewer than ``min_candles`` such candles are left
        out.
        """
        out: list[TimeframeReport] = []
        for report, times in zip(self._reports, self._times):
            end = bisect.bisect_right(times, timestamp)
            if end < self._min_candles:
                continue
            key = (report.timeframe, end)
            cached = self._cache.get(key)
            if cached is None:
                # A new candle makes older slices of this timeframe stale
                self._cache = {
                    k: v for k, v in self._cache.items() if k[0] != report.timeframe
                }
                candles = report.candles[:end]
                cached = TimeframeReport(
                    timeframe=report.timeframe,
                    candles=candles,
                    key_levels=build_key_levels(candles, report.key_levels.pivots),
                    symbol=report.symbol,
                )
                self._cache[key] = cached
            out.append(cached)
        return out

    def zones_at(self, timestamp: int, last_stable_close: float) -> list[ConfluenceZone]:
        """Confluence zones known at *timestamp*."""
        return find_level_confluence(self.reports_at(timestamp), last_stable_close)


def historical_reports_at(
    reports: Sequence[TimeframeReport],
    timestamp: int,
    min_candles: int = MIN_REPLAY_CANDLES,
) -> list[TimeframeReport]:
    """One-shot form of :meth:`HistoricalReplayer.reports_at`."""
    return HistoricalReplayer(reports, min_candles).reports_at(timestamp)
