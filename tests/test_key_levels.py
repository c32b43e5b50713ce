"""Tests for key-level reports and Fibonacci pivots."""

import math

import pytest

from apex.strategy.key_levels import build_key_levels, build_report, calculate_fib_pivots
from apex.strategy.models import Candle


def _make_candle(ts: int, o: float, h: float, l: float, c: float, vol: float = 1000.0) -> Candle:
    return Candle(timestamp=ts, open=o, high=h, low=l, close=c, volume=vol)


def _wave(n: int) -> list[Candle]:
    candles = []
    for i in range(n):
        close = 100 + 8 * math.sin(i / 5) + 0.1 * i
        candles.append(_make_candle(i, close - 0.3, close + 1.2, close - 1.1, close, 1000 + 10 * (i % 7)))
    return candles


class TestFibPivots:
    def test_levels(self):
        p = calculate_fib_pivots(high=110, low=90, close=100)
        assert p.pp == 100
        assert p.r1 == pytest.approx(107.64)
        assert p.r2 == pytest.approx(112.36)
        assert p.r3 == pytest.approx(120.0)
        assert p.s1 == pytest.approx(92.36)
        assert p.s2 == pytest.approx(87.64)
        assert p.s3 == pytest.approx(80.0)


class TestBuildKeyLevels:
    def test_swing_levels_use_last_20(self):
        candles = _wave(60)
        kl = build_key_levels(candles)
        recent = candles[-20:]
        assert kl.price_action.support == min(c.low for c in recent)
        assert kl.price_action.resistance == max(c.high for c in recent)

    def test_short_series_leaves_slow_levels_empty(self):
        kl = build_key_levels(_wave(10))
        assert kl.trend_following.ema50 is None
        assert kl.ichimoku.senkou_b is None
        assert kl.volatility_projection.anchor_vwap is None
        assert kl.volatility_projection.r1 is None
        assert kl.volume_profile.poc is not None

    def test_projection_bands(self):
        kl = build_key_levels(_wave(60))
        vp = kl.volatility_projection
        assert vp.anchor_vwap is not None
        step = vp.r1 - vp.anchor_vwap
        assert step > 0
        assert vp.r2 == pytest.approx(vp.anchor_vwap + 2 * step)
        assert vp.s1 == pytest.approx(vp.anchor_vwap - step)

    def test_trend_levels(self):
        kl = build_key_levels(_wave(60))
        assert kl.trend_following.ema50 is not None
        assert kl.trend_following.ema200 is None
        assert kl.trend_following.bollinger_lower < kl.trend_following.bollinger_upper

    def test_pivots_carried_through(self):
        pivots = calculate_fib_pivots(110, 90, 100)
        assert build_key_levels(_wave(30), pivots).pivots is pivots
        assert build_key_levels(_wave(30)).pivots is None

    def test_build_report(self):
        candles = _wave(30)
        report = build_report("60", candles, symbol="ETHUSDT")
        assert report.timeframe == "60"
        assert report.symbol == "ETHUSDT"
        assert report.candles == tuple(candles)
