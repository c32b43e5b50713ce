"""Entry signal evaluation — pure functions, no I/O.

Given an enriched candle and the confluence zones known at its close,
decides whether the long or short side of a strategy fires.  Any missing
indicator value fails the filter set: no data, no signal.
"""

from typing import Optional, Sequence, Union

from apex.models.strategy_config import (
    ContextualFilter,
    IndicatorName,
    LocationalCondition,
    Operator,
    StrategyConfig,
)
from apex.strategy.models import ConfluenceZone, EnrichedCandle, IndicatorValue


# indicator → parameter → IndicatorSnapshot field
_ACCESSORS: dict[IndicatorName, dict[str, str]] = {
    IndicatorName.QUANTITATIVE_SCORE: {
        "composite_score": "composite_score",
        "structural_score": "structural_score",
    },
    IndicatorName.CRF: {"regime": "crf_regime"},
    IndicatorName.VPE: {"potential": "vpe"},
    IndicatorName.VOLATILITY: {
        "bollinger_band_width_pct": "bbw_pct",
        "historical_volatility_rank": "hv_rank",
        "keltner_channels_squeeze": "squeeze_status",
    },
    IndicatorName.BTC_CORRELATION: {
        "relative_performance": "relative_perf",
        "correlation_coefficient": "reference_correlation",
    },
    IndicatorName.HVN_MIGRATION: {"status": "hvn_migration"},
    IndicatorName.CHIMERA: {"fer": "fer", "vdr": "vdr", "mfi_v": "mfi_v"},
    IndicatorName.RSI: {"value": "rsi14"},
    IndicatorName.ADX: {"adx": "adx14", "plus_di": "plus_di14", "minus_di": "minus_di14"},
    IndicatorName.TREND: {"ema50": "ema50", "ema200": "ema200", "atr20": "atr20"},
    IndicatorName.FLOW: {"obv": "obv", "cvd": "cvd", "vwap20": "vwap20"},
}

# Single-valued indicators answer regardless of the parameter name.
_DEFAULT_FIELD: dict[IndicatorName, str] = {
    IndicatorName.CRF: "crf_regime",
    IndicatorName.VPE: "vpe",
    IndicatorName.BTC_CORRELATION: "relative_perf",
}


def get_indicator_value(
    candle: EnrichedCandle,
    indicator: Union[IndicatorName, str],
    parameter: str,
) -> IndicatorValue:
    """Look up one indicator value on an enriched candle.

    Returns ``None`` for unknown indicator/parameter pairs and for values
    that were not computable at that candle.
    """
    try:
        kind = IndicatorName(indicator)
    except ValueError:
        return None
    field_name = _ACCESSORS[kind].get(parameter) or _DEFAULT_FIELD.get(kind)
    if field_name is None:
        return None
    return getattr(candle.indicators, field_name)


def _as_number(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def compare(actual: IndicatorValue, operator: Union[Operator, str], expected) -> bool:
    """Apply one filter operator.

    ``>`` and ``<`` are numeric only.  ``=`` and ``!=`` compare numerically
    when the actual value is a number, otherwise as strings.  ``contains``
    and ``does not contain`` are substring tests on the string forms.
    """
    op = Operator(operator)
    numeric_actual = None if isinstance(actual, str) else _as_number(actual)
    numeric_expected = _as_number(expected)

    if op in (Operator.GT, Operator.LT):
        if numeric_actual is None or numeric_expected is None:
            return False
        if op is Operator.GT:
            return numeric_actual > numeric_expected
        return numeric_actual < numeric_expected

    if op in (Operator.EQ, Operator.NE):
        if numeric_actual is not None and numeric_expected is not None:
            equal = numeric_actual == numeric_expected
        else:
            equal = str(actual) == str(expected)
        return equal if op is Operator.EQ else not equal

    contained = str(expected) in str(actual)
    return contained if op is Operator.CONTAINS else not contained


def check_entry_conditions(
    filters: Sequence[ContextualFilter],
    candle: EnrichedCandle,
) -> bool:
    """``True`` iff every filter holds (logical AND).

    An empty filter list never fires, and a filter whose indicator is
    missing at this candle fails the whole set.
    """
    if not filters:
        return False
    for f in filters:
        actual = get_indicator_value(candle, f.indicator, f.parameter)
        if actual is None:
            return False
        if not compare(actual, f.operator, f.value):
            return False
    return True


def check_locational_condition(
    side: str,
    candle: EnrichedCandle,
    condition: LocationalCondition,
    zones: Sequence[ConfluenceZone],
) -> bool:
    """Check that the candle's entry-side extreme trades inside a zone.

    Longs need the low inside a support zone, shorts the high inside a
    resistance zone, with zone score at least ``condition.min_score``.
    A disabled condition always passes.
    """
    if not condition.enabled:
        return True

    if side == "long":
        price = candle.low
        required_type = "support"
    elif side == "short":
        price = candle.high
        required_type = "resistance"
    else:
        raise ValueError(f"side must be 'long' or 'short', got '{side}'")

    return any(
        z.zone_type == required_type and z.contains(price) and z.score >= condition.min_score
        for z in zones
    )


def evaluate_entry(
    strategy: StrategyConfig,
    candle: EnrichedCandle,
    zones: Sequence[ConfluenceZone],
) -> Optional[str]:
    """Return ``"long"``, ``"short"`` or ``None``.  Long is checked first."""
    for side in ("long", "short"):
        config = strategy.side(side)
        if not config.enabled:
            continue
        if not check_locational_condition(side, candle, config.locational_condition, zones):
            continue
        if check_entry_conditions(config.contextual_filters, candle):
            return side
    return None
