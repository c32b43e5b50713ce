"""Key-level reports — per-timeframe price levels from a candle series."""

from typing import Optional, Sequence

from apex.strategy.indicators import (
    calculate_atr,
    calculate_bollinger,
    calculate_ema,
    calculate_ichimoku,
    calculate_vwap,
    safe_round,
)
from apex.strategy.models import (
    Candle,
    IchimokuLevels,
    KeyLevels,
    PivotLevels,
    PriceActionLevels,
    TimeframeReport,
    TrendFollowingLevels,
    VolatilityProjectionLevels,
    VolumeProfileLevels,
)
from apex.strategy.volume_profile import analyze_volume_profile


PRICE_ACTION_WINDOW = 20


def calculate_fib_pivots(high: float, low: float, close: float) -> PivotLevels:
    """Fibonacci pivot points from one day's high, low and close.

    ``PP = (H + L + C) / 3``; resistances and supports sit at
    0.382, 0.618 and 1.0 × the day's range above and below PP.
    """
    rng = high - low
    pp = (high + low + close) / 3
    return PivotLevels(
        pp=safe_round(pp, 5),
        r1=safe_round(pp + rng * 0.382, 5),
        r2=safe_round(pp + rng * 0.618, 5),
        r3=safe_round(pp + rng * 1.0, 5),
        s1=safe_round(pp - rng * 0.382, 5),
        s2=safe_round(pp - rng * 0.618, 5),
        s3=safe_round(pp - rng * 1.0, 5),
    )


def _last(series: list) -> Optional[float]:
    return series[-1] if series else None


def build_key_levels(
    candles: Sequence[Candle],
    pivots: Optional[PivotLevels] = None,
) -> KeyLevels:
    """Derive every key level of one timeframe from *candles*.

    Only the candles passed in are used, so calling this on a prefix gives
    the levels exactly as they stood at the prefix's last candle.  Pivots
    are not derived from *candles*; they are carried through unchanged.
    """
    closes = [c.close for c in candles]

    recent = candles[-PRICE_ACTION_WINDOW:]
    price_action = PriceActionLevels(
        support=min(c.low for c in recent) if recent else None,
        resistance=max(c.high for c in recent) if recent else None,
    )

    vp = analyze_volume_profile(candles)
    volume_profile = VolumeProfileLevels(poc=vp.poc, vah=vp.vah, val=vp.val)

    vwap = _last(calculate_vwap(candles, 20))
    atr = _last(calculate_atr(candles, 20))
    if vwap and atr:
        projection = VolatilityProjectionLevels(
            anchor_vwap=vwap,
            r1=vwap + atr,
            r2=vwap + 2 * atr,
            r3=vwap + 3 * atr,
            s1=max(0.0, vwap - atr),
            s2=max(0.0, vwap - 2 * atr),
            s3=max(0.0, vwap - 3 * atr),
        )
    else:
        projection = VolatilityProjectionLevels(anchor_vwap=vwap)

    bands = calculate_bollinger(closes, 20, 2.0)
    trend = TrendFollowingLevels(
        ema50=_last(calculate_ema(closes, 50)),
        ema200=_last(calculate_ema(closes, 200)),
        bollinger_upper=_last(bands.upper),
        bollinger_lower=_last(bands.lower),
    )

    cloud = calculate_ichimoku(candles)
    ichimoku = IchimokuLevels(
        tenkan=_last(cloud.tenkan),
        kijun=_last(cloud.kijun),
        senkou_a=_last(cloud.senkou_a),
        senkou_b=_last(cloud.senkou_b),
    )

    return KeyLevels(
        price_action=price_action,
        volume_profile=volume_profile,
        volatility_projection=projection,
        trend_following=trend,
        ichimoku=ichimoku,
        pivots=pivots,
    )


def build_report(
    timeframe: str,
    candles: Sequence[Candle],
    pivots: Optional[PivotLevels] = None,
    symbol: str = "",
) -> TimeframeReport:
    """Build a full-range report for one timeframe."""
    return TimeframeReport(
        timeframe=timeframe,
        candles=tuple(candles),
        key_levels=build_key_levels(candles, pivots),
        symbol=symbol,
    )
