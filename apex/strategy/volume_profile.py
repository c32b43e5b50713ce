"""Volume profile — price/volume histogram, POC and value area."""

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from apex.strategy.indicators import safe_round
from apex.strategy.models import Candle


VALUE_AREA_SHARE = 0.70


@dataclass(frozen=True)
class VolumeProfile:
    """Result of :func:`analyze_volume_profile`.

    On failure only ``error`` is set.  Prices are bucket start prices.
    """

    poc: Optional[float] = None
    vah: Optional[float] = None
    val: Optional[float] = None
    price_position: str = "N/A"
    error: Optional[str] = None


def analyze_volume_profile(candles: Sequence[Candle], bins: int = 50) -> VolumeProfile:
    """Build a volume-at-price histogram from *candles*.

    The low/high range of the window is split into *bins* equal-width
    buckets and each candle's volume is added to the bucket holding its
    close.  The busiest bucket is the point of control; the value area is
    the smallest set of busiest buckets holding at least 70 % of volume.

    Returns a ``VolumeProfile`` with ``error`` set for empty input or a
    window with no price range.
    """
    if not candles:
        return VolumeProfile(error="Empty data")

    lows = np.fromiter((c.low for c in candles), dtype=float, count=len(candles))
    highs = np.fromiter((c.high for c in candles), dtype=float, count=len(candles))
    closes = np.fromiter((c.close for c in candles), dtype=float, count=len(candles))
    volumes = np.fromiter((c.volume for c in candles), dtype=float, count=len(candles))

    min_low = float(lows.min())
    max_high = float(highs.max())
    if max_high == min_low:
        return VolumeProfile(error="No price range")

    bin_size = (max_high - min_low) / bins
    # A close sitting exactly on the range high belongs to the top bucket
    bucket = np.clip(np.floor((closes - min_low) / bin_size).astype(int), 0, bins - 1)
    bucket_volume = np.bincount(bucket, weights=volumes, minlength=bins)
    bucket_start = min_low + np.arange(bins) * bin_size

    poc = float(bucket_start[int(np.argmax(bucket_volume))])

    target = float(bucket_volume.sum()) * VALUE_AREA_SHARE
    cumulative = 0.0
    value_area: list[int] = []
    for b in np.argsort(-bucket_volume, kind="stable"):
        value_area.append(int(b))
        cumulative += float(bucket_volume[b])
        if cumulative >= target:
            break

    vah = float(bucket_start[max(value_area)])
    val = float(bucket_start[min(value_area)])

    last_close = candles[-1].close
    if last_close > vah:
        position = "Above Value Area (Bullish)"
    elif last_close < val:
        position = "Below Value Area (Bearish)"
    else:
        position = "Inside Value Area (Neutral)"

    return VolumeProfile(
        poc=safe_round(poc, 5),
        vah=safe_round(vah, 5),
        val=safe_round(val, 5),
        price_position=position,
    )
