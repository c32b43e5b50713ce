"""Tests for historical confluence replay."""

import math

from apex.backtest.replay import MIN_REPLAY_CANDLES, HistoricalReplayer, historical_reports_at
from apex.strategy.key_levels import build_key_levels, build_report, calculate_fib_pivots
from apex.strategy.models import Candle


HOUR_MS = 3_600_000


def _series(n: int, step_ms: int) -> list[Candle]:
    candles = []
    for i in range(n):
        close = 100 + 5 * math.sin(i / 6) + 0.02 * i
        candles.append(Candle(
            timestamp=i * step_ms,
            open=close - 0.2,
            high=close + 1.0,
            low=close - 1.0,
            close=close,
            volume=500 + 50 * (i % 4),
        ))
    return candles


def _reports():
    pivots = calculate_fib_pivots(110, 90, 100)
    hourly = build_report("60", _series(300, HOUR_MS), pivots)
    four_hour = build_report("240", _series(75, 4 * HOUR_MS), pivots)
    return hourly, four_hour


class TestHistoricalReplayer:
    def test_slices_to_timestamp(self):
        hourly, four_hour = _reports()
        ts = hourly.candles[59].timestamp
        reports = HistoricalReplayer([hourly, four_hour]).reports_at(ts)
        # 240 has only 15 candles by then and is left out
        assert [r.timeframe for r in reports] == ["60"]
        assert len(reports[0].candles) == 60
        assert reports[0].candles[-1].timestamp == ts

    def test_levels_rebuilt_from_slice(self):
        hourly, _ = _reports()
        ts = hourly.candles[79].timestamp
        replayed = HistoricalReplayer([hourly]).reports_at(ts)[0]
        expected = build_key_levels(hourly.candles[:80], hourly.key_levels.pivots)
        assert replayed.key_levels == expected

    def test_pivots_carried_over(self):
        hourly, _ = _reports()
        replayed = HistoricalReplayer([hourly]).reports_at(hourly.candles[-1].timestamp)[0]
        assert replayed.key_levels.pivots == hourly.key_levels.pivots

    def test_higher_timeframe_joins_once_warm(self):
        hourly, four_hour = _reports()
        ts = four_hour.candles[MIN_REPLAY_CANDLES - 1].timestamp
        timeframes = [r.timeframe for r in HistoricalReplayer([hourly, four_hour]).reports_at(ts)]
        assert timeframes == ["60", "240"]

    def test_before_any_candle(self):
        hourly, four_hour = _reports()
        assert HistoricalReplayer([hourly, four_hour]).reports_at(-1) == []

    def test_cached_until_new_candle(self):
        hourly, four_hour = _reports()
        replayer = HistoricalReplayer([hourly, four_hour])
        ts = four_hour.candles[55].timestamp
        first = replayer.reports_at(ts)
        # Next hour: new 60 candle, same 240 slice
        second = replayer.reports_at(ts + HOUR_MS)
        assert second[1] is first[1]
        assert second[0] is not first[0]

    def test_zones_at(self):
        hourly, four_hour = _reports()
        ts = hourly.candles[-1].timestamp
        zones = HistoricalReplayer([hourly, four_hour]).zones_at(ts, hourly.candles[-1].close)
        assert all(len(z.reasons) >= 2 for z in zones)
        assert zones == sorted(zones, key=lambda z: z.score, reverse=True)

    def test_one_shot_helper(self):
        hourly, four_hour = _reports()
        ts = hourly.candles[70].timestamp
        assert historical_reports_at([hourly, four_hour], ts) == \
            HistoricalReplayer([hourly, four_hour]).reports_at(ts)

    def test_open_higher_timeframe_candle_is_visible(self):
        hourly, four_hour = _reports()
        # One hour into four-hour candle 60: it has opened but not closed
        ts = four_hour.candles[60].timestamp + HOUR_MS
        replayed = HistoricalReplayer([hourly, four_hour]).reports_at(ts)[1]
        assert replayed.candles[-1] == four_hour.candles[60]
