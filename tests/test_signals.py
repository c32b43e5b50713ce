"""Tests for entry signal evaluation."""

import pytest

from apex.models.strategy_config import (
    ContextualFilter,
    LocationalCondition,
    StrategyConfig,
)
from apex.strategy.models import Candle, ConfluenceZone, EnrichedCandle, IndicatorSnapshot
from apex.strategy.signals import (
    check_entry_conditions,
    check_locational_condition,
    compare,
    evaluate_entry,
    get_indicator_value,
)


# ── Fixtures ─────────────────────────────────────────────────────────────


def _enriched(low: float = 99.0, high: float = 101.0, **indicators) -> EnrichedCandle:
    candle = Candle(timestamp=0, open=100, high=high, low=low, close=100, volume=1000)
    return EnrichedCandle(candle, IndicatorSnapshot(**indicators))


def _filter(indicator, parameter, operator, value) -> ContextualFilter:
    return ContextualFilter(indicator=indicator, parameter=parameter, operator=operator, value=value)


def _side(enabled=True, filters=(), locational=None) -> dict:
    return {
        "enabled": enabled,
        "risk_management": {
            "stop_loss": {"type": "percentage", "value": 2},
            "take_profit": {"type": "risk_reward_ratio", "value": 2},
        },
        "locational_condition": locational or {"enabled": False},
        "contextual_filters": list(filters),
    }


def _strategy(long: dict, short: dict) -> StrategyConfig:
    return StrategyConfig.from_dict({
        "strategyName": "test",
        "asset": {"symbol": "ETHUSDT", "timeframe": "60"},
        "long_strategy": long,
        "short_strategy": short,
    })


_RSI_ABOVE_50 = {"indicator": "RSI", "parameter": "value", "operator": ">", "value": 50}
_RSI_BELOW_50 = {"indicator": "RSI", "parameter": "value", "operator": "<", "value": 50}


# ── Indicator lookup ─────────────────────────────────────────────────────


class TestGetIndicatorValue:
    def test_parameter_lookup(self):
        candle = _enriched(composite_score=0.4, fer=0.7)
        assert get_indicator_value(candle, "Quantitative Score", "composite_score") == 0.4
        assert get_indicator_value(candle, "Chimera", "fer") == 0.7

    def test_single_valued_ignores_parameter(self):
        candle = _enriched(crf_regime="Stable Range")
        assert get_indicator_value(candle, "CRF", "anything") == "Stable Range"

    def test_unknown_indicator(self):
        assert get_indicator_value(_enriched(), "MACD", "value") is None

    def test_unknown_parameter(self):
        assert get_indicator_value(_enriched(fer=0.7), "Chimera", "nope") is None

    def test_missing_value(self):
        assert get_indicator_value(_enriched(), "Volatility", "historical_volatility_rank") is None


# ── Operators ────────────────────────────────────────────────────────────


class TestCompare:
    def test_numeric(self):
        assert compare(60.0, ">", 50)
        assert not compare(40.0, ">", 50)
        assert compare(40.0, "<", "50")

    def test_ordering_on_strings_fails(self):
        assert not compare("Stable Range", ">", 1)

    def test_equality(self):
        assert compare(50.0, "=", 50)
        assert compare("Stable Range", "=", "Stable Range")
        assert compare("Stable Range", "!=", "Choppy Range")

    def test_contains(self):
        assert compare("Strong Bullish Trend", "contains", "Bullish")
        assert compare("Stable Range", "does not contain", "Trend")
        assert not compare("Stable Range", "contains", "Trend")


# ── Filters ──────────────────────────────────────────────────────────────


class TestCheckEntryConditions:
    def test_empty_never_fires(self):
        assert not check_entry_conditions([], _enriched(rsi14=60))

    def test_all_must_hold(self):
        candle = _enriched(rsi14=60, crf_regime="Strong Bullish Trend")
        filters = [
            _filter("RSI", "value", ">", 50),
            _filter("CRF", "regime", "contains", "Bullish"),
        ]
        assert check_entry_conditions(filters, candle)
        filters.append(_filter("RSI", "value", ">", 70))
        assert not check_entry_conditions(filters, candle)

    def test_missing_value_fails_closed(self):
        filters = [_filter("Chimera", "vdr", "<", 100)]
        assert not check_entry_conditions(filters, _enriched())


class TestCheckLocationalCondition:
    _support = ConfluenceZone(price_range=(98.5, 99.5), score=2.0, zone_type="support")
    _resistance = ConfluenceZone(price_range=(100.5, 101.5), score=2.0, zone_type="resistance")

    def test_disabled_passes(self):
        assert check_locational_condition("long", _enriched(), LocationalCondition(), [])

    def test_long_low_in_support(self):
        cond = LocationalCondition(enabled=True, min_score=1.5)
        assert check_locational_condition("long", _enriched(low=99), cond, [self._support])

    def test_long_needs_support_type(self):
        cond = LocationalCondition(enabled=True)
        assert not check_locational_condition("long", _enriched(low=101), cond, [self._resistance])

    def test_score_threshold(self):
        cond = LocationalCondition(enabled=True, min_score=2.5)
        assert not check_locational_condition("long", _enriched(low=99), cond, [self._support])

    def test_short_high_in_resistance(self):
        cond = LocationalCondition(enabled=True)
        assert check_locational_condition("short", _enriched(high=101), cond, [self._resistance])

    def test_invalid_side(self):
        with pytest.raises(ValueError, match="side"):
            check_locational_condition("up", _enriched(), LocationalCondition(enabled=True), [])


class TestEvaluateEntry:
    def test_long_has_priority(self):
        strategy = _strategy(_side(filters=[_RSI_ABOVE_50]), _side(filters=[_RSI_ABOVE_50]))
        assert evaluate_entry(strategy, _enriched(rsi14=60), []) == "long"

    def test_short_when_long_disabled(self):
        strategy = _strategy(_side(enabled=False, filters=[_RSI_ABOVE_50]), _side(filters=[_RSI_ABOVE_50]))
        assert evaluate_entry(strategy, _enriched(rsi14=60), []) == "short"

    def test_short_when_long_filters_fail(self):
        strategy = _strategy(_side(filters=[_RSI_ABOVE_50]), _side(filters=[_RSI_BELOW_50]))
        assert evaluate_entry(strategy, _enriched(rsi14=40), []) == "short"

    def test_locational_gate(self):
        long = _side(filters=[_RSI_ABOVE_50], locational={"enabled": True, "min_score": 1})
        strategy = _strategy(long, _side(enabled=False))
        assert evaluate_entry(strategy, _enriched(rsi14=60), []) is None

    def test_no_signal(self):
        strategy = _strategy(_side(filters=[_RSI_ABOVE_50]), _side(filters=[_RSI_BELOW_50]))
        assert evaluate_entry(strategy, _enriched(), []) is None
