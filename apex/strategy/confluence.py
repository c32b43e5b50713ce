"""Multi-timeframe level confluence — pure functions.

Pulls every key level out of a set of timeframe reports, weights each one
by timeframe and level type, and chains nearby levels into scored
support/resistance zones.
"""

import math
from typing import Optional, Sequence

from apex.strategy.indicators import safe_round
from apex.strategy.models import ConfluenceZone, ExtractedLevel, TimeframeReport


CLUSTER_THRESHOLD_PCT = 0.005  # 0.5 % of the previous level's price

TIMEFRAME_WEIGHTS: dict[str, float] = {
    "W": 1.0,
    "D": 0.9,
    "240": 0.7,
    "60": 0.5,
    "30": 0.3,
    "15": 0.2,
    "5": 0.1,
}

LEVEL_TYPE_WEIGHTS: dict[str, float] = {
    # High significance
    "poc": 1.0,
    "pp": 0.9,
    "swing": 0.9,
    "ema200": 0.8,
    # Medium significance
    "vah": 0.7,
    "val": 0.7,
    "r3": 0.7,
    "s3": 0.7,
    "atr3": 0.7,
    "kijun": 0.6,
    "senkou_b": 0.6,
    # Lower significance
    "r2": 0.5,
    "s2": 0.5,
    "atr2": 0.5,
    "ema50": 0.5,
    "vwap": 0.5,
    "bb_upper": 0.4,
    "bb_lower": 0.4,
    "r1": 0.4,
    "s1": 0.4,
    "atr1": 0.4,
    "tenkan": 0.3,
    "senkou_a": 0.3,
}

DEFAULT_WEIGHT = 0.1


def extract_levels(report: TimeframeReport) -> list[ExtractedLevel]:
    """Flatten one timeframe report into weighted price levels.

    Pivots are only taken from the Daily report so that the same daily
    pivots are not counted once per timeframe.
    """
    tf = report.timeframe
    tf_weight = TIMEFRAME_WEIGHTS.get(tf, DEFAULT_WEIGHT)
    levels: list[ExtractedLevel] = []

    def add(price: Optional[float], level_type: str, description: str) -> None:
        if price is None or math.isnan(price):
            return
        levels.append(ExtractedLevel(
            price=price,
            level_type=level_type,
            timeframe=tf,
            score=tf_weight * LEVEL_TYPE_WEIGHTS.get(level_type, DEFAULT_WEIGHT),
            description=description,
        ))

    kl = report.key_levels

    add(kl.price_action.support, "swing", f"Swing Low ({tf})")
    add(kl.price_action.resistance, "swing", f"Swing High ({tf})")

    add(kl.volume_profile.poc, "poc", f"POC ({tf})")
    add(kl.volume_profile.vah, "vah", f"VAH ({tf})")
    add(kl.volume_profile.val, "val", f"VAL ({tf})")

    if tf == "D" and kl.pivots is not None:
        p = kl.pivots
        add(p.pp, "pp", "Pivot Point (Daily)")
        for key in ("r1", "r2", "r3", "s1", "s2", "s3"):
            add(getattr(p, key), key, f"Pivot {key.upper()} (Daily)")

    vp = kl.volatility_projection
    add(vp.anchor_vwap, "vwap", f"VWAP ({tf})")
    for n in (1, 2, 3):
        add(getattr(vp, f"r{n}"), f"atr{n}", f"VWAP+ATR R{n} ({tf})")
    for n in (1, 2, 3):
        add(getattr(vp, f"s{n}"), f"atr{n}", f"VWAP-ATR S{n} ({tf})")

    tfl = kl.trend_following
    add(tfl.ema50, "ema50", f"EMA 50 ({tf})")
    add(tfl.ema200, "ema200", f"EMA 200 ({tf})")
    add(tfl.bollinger_upper, "bb_upper", f"BB Upper ({tf})")
    add(tfl.bollinger_lower, "bb_lower", f"BB Lower ({tf})")

    ich = kl.ichimoku
    add(ich.tenkan, "tenkan", f"Tenkan Sen ({tf})")
    add(ich.kijun, "kijun", f"Kijun Sen ({tf})")
    add(ich.senkou_a, "senkou_a", f"Senkou A ({tf})")
    add(ich.senkou_b, "senkou_b", f"Senkou B ({tf})")

    return levels


def cluster_levels(
    levels: Sequence[ExtractedLevel],
    last_stable_close: float,
    threshold_pct: float = CLUSTER_THRESHOLD_PCT,
) -> list[ConfluenceZone]:
    """Chain price-sorted levels into confluence zones.

    A level joins the current cluster when it is within *threshold_pct* of
    the cluster's most recent level (single linkage, so a zone can span
    more than the threshold end to end).  Single-level clusters are
    dropped.  Zone type is decided against *last_stable_close*, never a
    live price, so it only changes when that close is recomputed.

    Returns zones sorted by score, highest first.
    """
    if not levels:
        return []

    ordered = sorted(levels, key=lambda lv: lv.price)
    clusters: list[list[ExtractedLevel]] = []
    current: list[ExtractedLevel] = [ordered[0]]

    for level in ordered[1:]:
        last = current[-1]
        if last.price > 0 and (level.price - last.price) <= last.price * threshold_pct:
            current.append(level)
        else:
            clusters.append(current)
            current = [level]
    clusters.append(current)

    zones: list[ConfluenceZone] = []
    for cluster in clusters:
        if len(cluster) < 2:
            continue
        low = cluster[0].price
        high = cluster[-1].price
        midpoint = low + (high - low) / 2
        zones.append(ConfluenceZone(
            price_range=(low, high),
            score=safe_round(sum(lv.score for lv in cluster), 2),
            reasons=tuple(sorted(lv.description for lv in cluster)),
            zone_type="resistance" if midpoint > last_stable_close else "support",
        ))

    zones.sort(key=lambda z: z.score, reverse=True)
    return zones


def find_level_confluence(
    reports: Sequence[TimeframeReport],
    last_stable_close: float,
) -> list[ConfluenceZone]:
    """Scored confluence zones across every report in *reports*."""
    if not reports:
        return []
    levels = [lv for report in reports for lv in extract_levels(report)]
    return cluster_levels(levels, last_stable_close)
