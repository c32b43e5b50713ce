"""Tests for multi-timeframe level confluence."""

import pytest

from apex.strategy.confluence import (
    LEVEL_TYPE_WEIGHTS,
    TIMEFRAME_WEIGHTS,
    cluster_levels,
    extract_levels,
    find_level_confluence,
)
from apex.strategy.key_levels import calculate_fib_pivots
from apex.strategy.models import (
    ExtractedLevel,
    IchimokuLevels,
    KeyLevels,
    PriceActionLevels,
    TimeframeReport,
    TrendFollowingLevels,
    VolatilityProjectionLevels,
    VolumeProfileLevels,
)


def _level(price: float, score: float = 0.5, description: str = "") -> ExtractedLevel:
    return ExtractedLevel(
        price=price,
        level_type="swing",
        timeframe="60",
        score=score,
        description=description or f"Level {price}",
    )


def _report(timeframe: str, with_pivots: bool = False) -> TimeframeReport:
    key_levels = KeyLevels(
        price_action=PriceActionLevels(support=95.0, resistance=105.0),
        volume_profile=VolumeProfileLevels(poc=100.0, vah=102.0, val=98.0),
        volatility_projection=VolatilityProjectionLevels(anchor_vwap=None),
        trend_following=TrendFollowingLevels(
            ema50=100.2, ema200=None, bollinger_upper=None, bollinger_lower=None,
        ),
        ichimoku=IchimokuLevels(tenkan=None, kijun=None, senkou_a=None, senkou_b=None),
        pivots=calculate_fib_pivots(110, 90, 100) if with_pivots else None,
    )
    return TimeframeReport(timeframe=timeframe, candles=(), key_levels=key_levels)


# ── Clustering ───────────────────────────────────────────────────────────


class TestClusterLevels:
    def test_singletons_are_dropped(self):
        zones = cluster_levels(
            [_level(100), _level(100.3), _level(105), _level(150)],
            last_stable_close=120,
        )
        assert len(zones) == 1
        assert zones[0].price_range == (100, 100.3)

    def test_single_linkage_chains(self):
        # Each step is 0.4 %, the whole chain spans 0.8 %
        zones = cluster_levels([_level(100), _level(100.4), _level(100.8)], 90)
        assert len(zones) == 1
        assert zones[0].price_range == (100, 100.8)

    def test_score_is_sum_rounded(self):
        zones = cluster_levels([_level(100, 0.333), _level(100.1, 0.333)], 90)
        assert zones[0].score == 0.67

    def test_sorted_by_score(self):
        zones = cluster_levels(
            [_level(100, 0.1), _level(100.1, 0.1), _level(200, 0.9), _level(200.1, 0.9)],
            150,
        )
        assert [z.score for z in zones] == [1.8, 0.2]

    def test_reasons_sorted(self):
        zones = cluster_levels(
            [_level(100, description="b"), _level(100.1, description="a")], 90,
        )
        assert zones[0].reasons == ("a", "b")

    def test_zone_type_from_stable_close(self):
        levels = [_level(100), _level(100.3)]
        assert cluster_levels(levels, 99)[0].zone_type == "resistance"
        assert cluster_levels(levels, 101)[0].zone_type == "support"

    def test_zone_type_stable_for_fixed_close(self):
        levels = [_level(100), _level(100.3)]
        first = cluster_levels(levels, 101)
        second = cluster_levels(list(reversed(levels)), 101)
        assert first == second

    def test_empty(self):
        assert cluster_levels([], 100) == []


# ── Extraction ───────────────────────────────────────────────────────────


class TestExtractLevels:
    def test_weights(self):
        levels = extract_levels(_report("240"))
        poc = next(lv for lv in levels if lv.level_type == "poc")
        assert poc.score == pytest.approx(TIMEFRAME_WEIGHTS["240"] * LEVEL_TYPE_WEIGHTS["poc"])
        assert poc.description == "POC (240)"

    def test_missing_levels_skipped(self):
        types = {lv.level_type for lv in extract_levels(_report("60"))}
        assert "ema200" not in types
        assert "tenkan" not in types

    def test_pivots_only_from_daily(self):
        assert not any(lv.level_type == "pp" for lv in extract_levels(_report("60", True)))
        daily = extract_levels(_report("D", True))
        assert any(lv.description == "Pivot Point (Daily)" for lv in daily)

    def test_unknown_timeframe_default_weight(self):
        levels = extract_levels(_report("3"))
        poc = next(lv for lv in levels if lv.level_type == "poc")
        assert poc.score == pytest.approx(0.1)


class TestFindLevelConfluence:
    def test_no_reports(self):
        assert find_level_confluence([], 100) == []

    def test_cross_timeframe_zone(self):
        zones = find_level_confluence([_report("60"), _report("240")], 101)
        top = zones[0]
        assert "POC (60)" in top.reasons
        assert "POC (240)" in top.reasons
        assert top.zone_type == "support"
