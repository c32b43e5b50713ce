"""Market regime classification and the composite quantitative score."""

from dataclasses import dataclass
from typing import Optional, Sequence

from apex.strategy.indicators import safe_round


# ── Chimera Regime Filter ────────────────────────────────────────────────

CRF_LABELS = (
    "Volatility Squeeze",
    "Strong Bullish Trend",
    "Developing Bullish Trend",
    "Strong Bearish Trend",
    "Developing Bearish Trend",
    "Stable Range",
    "Choppy Range",
    "Indeterminate",
)


def calculate_crf(
    adx: Optional[float],
    bbw: Optional[float],
    fer: Optional[float],
    ema50: Optional[float],
    ema200: Optional[float],
    bbw_history: Sequence[Optional[float]],
) -> str:
    """Classify the market as trend, range, squeeze or chop.

    Scoring:
        - ADX > 25 → trend +2; ADX < 20 → range +2; otherwise chop +1.
        - Bandwidth at or below the lower quintile of the last 50
          bandwidths → squeeze +3, range +1 (needs > 10 samples).
        - FER > 0.6 → trend +2; FER < 0.4 → chop +2; otherwise
          range +1, chop +0.5.

    A squeeze score wins outright.  Otherwise the dominant bucket (> 1)
    names the regime; trend direction comes from EMA50 vs EMA200.
    """
    if adx is None or bbw is None or fer is None or ema50 is None or ema200 is None:
        return "Indeterminate"

    trend = 0.0
    rng = 0.0
    squeeze = 0.0
    chop = 0.0
    direction = "Bullish" if ema50 > ema200 else "Bearish"

    if adx > 25:
        trend += 2
    if adx < 20:
        rng += 2
    if 20 <= adx <= 25:
        chop += 1

    recent = [b for b in bbw_history if b is not None][-50:]
    if len(recent) > 10:
        ordered = sorted(recent)
        lower_quintile = ordered[int(len(ordered) * 0.2)]
        if bbw <= lower_quintile:
            squeeze += 3
            rng += 1

    if fer > 0.6:
        trend += 2
    elif fer < 0.4:
        chop += 2
    else:
        rng += 1
        chop += 0.5

    if squeeze >= 3:
        return "Volatility Squeeze"

    dominant = max(trend, rng, chop)
    if dominant == trend and dominant > 1:
        if adx > 35 and fer > 0.5:
            return f"Strong {direction} Trend"
        return f"Developing {direction} Trend"
    if dominant == rng and dominant > 1:
        return "Stable Range"
    if dominant == chop and dominant > 1:
        return "Choppy Range"
    return "Indeterminate"


# ── Quantitative score ───────────────────────────────────────────────────

ADAPTIVE_WEIGHTING_MATRIX: dict[str, dict[str, float]] = {
    "Trending": {
        "ema_trend": 0.25, "ichimoku_trend": 0.25, "volume_profile_pos": 0.20,
        "rsi": 0.15, "vdr": 0.10, "correlation_strength": 0.05,
    },
    "Ranging": {
        "ema_trend": 0.05, "ichimoku_trend": 0.05, "volume_profile_pos": 0.15,
        "rsi": 0.40, "vdr": 0.30, "correlation_strength": 0.05,
    },
    "Weak Trend / Chop": {
        "ema_trend": 0.15, "ichimoku_trend": 0.15, "volume_profile_pos": 0.20,
        "rsi": 0.25, "vdr": 0.20, "correlation_strength": 0.05,
    },
}

# Checked in order; the first key contained in the CRF label wins.
_CRF_TO_BASE_REGIME: tuple[tuple[str, str], ...] = (
    ("Squeeze", "Ranging"),
    ("Trend", "Trending"),
    ("Range", "Ranging"),
    ("Chop", "Weak Trend / Chop"),
)


@dataclass(frozen=True)
class QuantitativeScore:
    structural_score: float
    composite_score: float
    structural_interpretation: str
    interpretation: str
    base_regime: str


def base_regime_for(crf_regime: str) -> str:
    for key, regime in _CRF_TO_BASE_REGIME:
        if key in crf_regime:
            return regime
    return "Weak Trend / Chop"


def _label(score: float, strong: str, weak: str, neutral: str) -> str:
    if score > 0.5:
        return f"Strong Bullish{strong}"
    if score > 0.1:
        return f"Bullish{weak}"
    if score < -0.5:
        return f"Strong Bearish{strong}"
    if score < -0.1:
        return f"Bearish{weak}"
    return neutral


def calculate_quantitative_score(
    crf_regime: str,
    ema_trend: Optional[str] = None,
    ichimoku_signal: int = 0,
    vp_position: str = "Inside Value Area (Neutral)",
    rsi: Optional[float] = None,
    vdr: Optional[float] = None,
    relative_perf: Optional[str] = None,
) -> QuantitativeScore:
    """Blend structural signals into a bias score in [-1, 1].

    The weights come from ``ADAPTIVE_WEIGHTING_MATRIX`` for the base regime
    implied by the CRF label.  Backtests carry no order-flow modifier, so
    the composite score equals the structural score.
    """
    regime = base_regime_for(crf_regime)
    weights = ADAPTIVE_WEIGHTING_MATRIX[regime]

    if ema_trend == "Bullish":
        ema_value = 1.0
    elif ema_trend == "Bearish":
        ema_value = -1.0
    else:
        ema_value = 0.0

    if "Above" in vp_position:
        vp_value = 1.0
    elif "Below" in vp_position:
        vp_value = -1.0
    else:
        vp_value = 0.0

    perf = relative_perf or ""
    if "Outperforming" in perf:
        corr_value = 0.5
    elif "Underperforming" in perf:
        corr_value = -0.5
    else:
        corr_value = 0.0

    normalised = {
        "ema_trend": ema_value,
        "ichimoku_trend": float(ichimoku_signal),
        "volume_profile_pos": vp_value,
        "rsi": (rsi - 50) / 50 if rsi is not None else 0.0,
        "vdr": max(-1.0, min(1.0, vdr / 2.5)) if vdr else 0.0,  # capped at ±2.5 %
        "correlation_strength": corr_value,
    }

    structural = sum(normalised[key] * weight for key, weight in weights.items())
    structural = max(-1.0, min(1.0, structural))
    score = safe_round(structural, 3)

    structural_interpretation = _label(structural, " Structure", " Structure", "Neutral Structure")
    signal = _label(structural, "", "", "Neutral")
    return QuantitativeScore(
        structural_score=score,
        composite_score=score,
        structural_interpretation=structural_interpretation,
        interpretation=f"{signal} Signal. Bias: {structural_interpretation}.",
        base_regime=regime,
    )
