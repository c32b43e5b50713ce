"""Tests for the volume profile."""

import pytest

from apex.strategy.models import Candle
from apex.strategy.volume_profile import analyze_volume_profile


def _make_candle(ts: int, o: float, h: float, l: float, c: float, vol: float = 1000.0) -> Candle:
    return Candle(timestamp=ts, open=o, high=h, low=l, close=c, volume=vol)


class TestVolumeProfile:
    def test_empty(self):
        vp = analyze_volume_profile([])
        assert vp.error == "Empty data"
        assert vp.poc is None

    def test_no_price_range(self):
        vp = analyze_volume_profile([_make_candle(i, 10, 10, 10, 10) for i in range(5)])
        assert vp.error == "No price range"

    def test_poc_and_value_area(self):
        # Range 100..150 in 50 bins of width 1.0
        candles = [
            _make_candle(0, 100, 101, 100, 100.5, 10),
            _make_candle(1, 149, 150, 149, 149.5, 10),
            _make_candle(2, 120, 121, 120, 120.2, 1000),
        ]
        vp = analyze_volume_profile(candles)
        assert vp.error is None
        assert vp.poc == pytest.approx(120.0)
        # 1000 of 1020 already covers 70 %
        assert vp.vah == pytest.approx(120.0)
        assert vp.val == pytest.approx(120.0)
        assert vp.price_position == "Above Value Area (Bullish)"

    def test_value_area_grows_until_seventy_percent(self):
        candles = [
            _make_candle(0, 100, 101, 100, 100.5, 40),
            _make_candle(1, 149, 150, 149, 149.5, 35),
            _make_candle(2, 120, 121, 120, 120.2, 25),
        ]
        vp = analyze_volume_profile(candles)
        # 40 + 35 = 75 % of volume
        assert vp.poc == pytest.approx(100.0)
        assert vp.val == pytest.approx(100.0)
        assert vp.vah == pytest.approx(149.0)
        assert vp.price_position == "Inside Value Area (Neutral)"

    def test_close_at_range_high_lands_in_top_bucket(self):
        candles = [
            _make_candle(0, 100, 150, 100, 150, 5),
            _make_candle(1, 100, 101, 100, 100, 1),
        ]
        vp = analyze_volume_profile(candles)
        assert vp.poc == pytest.approx(149.0)
        assert vp.price_position == "Below Value Area (Bearish)"
