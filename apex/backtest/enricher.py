"""Chronological candle enrichment.

Every candle past the warm-up gets the indicator values a live system
would have seen at its close.  Each snapshot is computed from the prefix
``candles[0..i]`` alone: no indicator state is carried between candles,
so adding future candles can never change a past snapshot.
"""

import bisect
import logging
from typing import Callable, Optional, Sequence

from apex.strategy.indicators import (
    calculate_adx,
    calculate_atr,
    calculate_bollinger,
    calculate_cvd,
    calculate_ema,
    calculate_fractal_efficiency_ratio,
    calculate_hv_rank,
    calculate_hvn_migration,
    calculate_ichimoku,
    calculate_keltner,
    calculate_mfi_v,
    calculate_obv,
    calculate_relative_performance,
    calculate_return_correlation,
    calculate_rsi,
    calculate_vpe,
    calculate_vwap,
    calculate_vwap_deviation_ratio,
)
from apex.strategy.models import Candle, EMPTY_SNAPSHOT, EnrichedCandle, IndicatorSnapshot
from apex.strategy.regime import calculate_crf, calculate_quantitative_score
from apex.strategy.volume_profile import analyze_volume_profile

logger = logging.getLogger("apex")

WARMUP = 200
HVN_WINDOW = 200
# Candles behind the latest Ichimoku cloud: senkou B period plus the forward shift
ICHIMOKU_TAIL = 52 + 26
# Same depth as a live one-shot report (1000 klines)
VP_WINDOW = 1000

# Called with the index of each candle just enriched.
Checkpoint = Callable[[int], None]


def _last(series: list):
    return series[-1] if series else None


def _ichimoku_signal(prefix: Sequence[Candle]) -> int:
    """+1 above the cloud, -1 otherwise, 0 while any line is undefined."""
    cloud = calculate_ichimoku(prefix[-ICHIMOKU_TAIL:])
    lines = (
        _last(cloud.tenkan), _last(cloud.kijun),
        _last(cloud.senkou_a), _last(cloud.senkou_b),
    )
    if any(v is None for v in lines):
        return 0
    return 1 if prefix[-1].close > max(lines[2], lines[3]) else -1


def _squeeze_status(bb_upper, bb_lower, kc_upper, kc_lower) -> str:
    if (
        bb_upper and bb_lower and kc_upper and kc_lower
        and bb_lower > kc_lower and bb_upper < kc_upper
    ):
        return "SQUEEZE_DETECTED"
    return "No Squeeze"


def _reference_prefix(
    reference: Sequence[Candle],
    reference_times: Sequence[int],
    timestamp: int,
) -> Sequence[Candle]:
    """Reference candles with ``timestamp <= timestamp``."""
    return reference[: bisect.bisect_right(reference_times, timestamp)]


def snapshot_at(
    prefix: Sequence[Candle],
    reference_prefix: Optional[Sequence[Candle]] = None,
) -> IndicatorSnapshot:
    """Indicator snapshot for the last candle of *prefix*.

    Uses only the candles in *prefix* (and *reference_prefix* for the
    reference-asset comparisons).
    """
    if not prefix:
        return EMPTY_SNAPSHOT

    closes = [c.close for c in prefix]
    volumes = [c.volume for c in prefix]

    ema50 = _last(calculate_ema(closes, 50))
    ema200 = _last(calculate_ema(closes, 200))
    rsi_series = calculate_rsi(closes, 14)
    directional = calculate_adx(prefix, 14)
    atr_series = calculate_atr(prefix, 20)
    bands = calculate_bollinger(closes, 20, 2.0)
    keltner = calculate_keltner(prefix, 20, 2.0)

    rsi = _last(rsi_series)
    adx = _last(directional.adx)
    bbw = _last(bands.bandwidth)
    bb_upper = _last(bands.upper)
    bb_lower = _last(bands.lower)
    kc_upper = _last(keltner.upper)
    kc_lower = _last(keltner.lower)
    fer = _last(calculate_fractal_efficiency_ratio(prefix, 14))
    vdr = _last(calculate_vwap_deviation_ratio(prefix, 14))

    hvn_window = prefix[-HVN_WINDOW:]
    half = HVN_WINDOW // 2
    hvn_status = calculate_hvn_migration(
        analyze_volume_profile(hvn_window[:half]).poc,
        analyze_volume_profile(hvn_window[half:]).poc,
    )

    if reference_prefix:
        relative_perf = calculate_relative_performance(prefix, reference_prefix)
        correlation = calculate_return_correlation(prefix, reference_prefix)
    else:
        relative_perf = "N/A"
        correlation = None

    crf = calculate_crf(adx, bbw, fer, ema50, ema200, bands.bandwidth)

    if ema50 is not None and ema200 is not None:
        ema_trend = "Bullish" if ema50 > ema200 else "Bearish"
    else:
        ema_trend = None
    score = calculate_quantitative_score(
        crf,
        ema_trend=ema_trend,
        ichimoku_signal=_ichimoku_signal(prefix),
        vp_position=analyze_volume_profile(prefix[-VP_WINDOW:]).price_position,
        rsi=rsi,
        vdr=vdr,
        relative_perf=relative_perf,
    )

    return IndicatorSnapshot(
        ema50=ema50,
        ema200=ema200,
        rsi14=rsi,
        adx14=adx,
        plus_di14=_last(directional.plus_di),
        minus_di14=_last(directional.minus_di),
        atr20=_last(atr_series),
        bbw_pct=bbw,
        bb_upper=bb_upper,
        bb_lower=bb_lower,
        kc_upper=kc_upper,
        kc_lower=kc_lower,
        squeeze_status=_squeeze_status(bb_upper, bb_lower, kc_upper, kc_lower),
        hv_rank=calculate_hv_rank(atr_series),
        vpe=_last(calculate_vpe(bands.bandwidth, directional.adx)),
        obv=_last(calculate_obv(closes, volumes)),
        cvd=_last(calculate_cvd(prefix)),
        vwap20=_last(calculate_vwap(prefix, 20)),
        hvn_migration=hvn_status,
        fer=fer,
        vdr=vdr,
        mfi_v=_last(calculate_mfi_v(rsi_series, directional.adx)),
        crf_regime=crf,
        relative_perf=relative_perf,
        reference_correlation=correlation,
        structural_score=score.structural_score,
        composite_score=score.composite_score,
    )


def enrich_candles(
    candles: Sequence[Candle],
    reference: Optional[Sequence[Candle]] = None,
    checkpoint: Optional[Checkpoint] = None,
    warmup: int = WARMUP,
) -> list[EnrichedCandle]:
    """Attach a prefix-local indicator snapshot to every candle.

    Candles before *warmup* carry an empty snapshot.  The reference series
    is aligned by timestamp: candle *i* sees reference candles closed at
    or before its own timestamp.

    *checkpoint*, when given, is called with each index after it is
    enriched; it may raise to abort the run.
    """
    reference = list(reference or [])
    reference_times = [c.timestamp for c in reference]

    enriched: list[EnrichedCandle] = []
    for i, candle in enumerate(candles):
        if i < warmup:
            enriched.append(EnrichedCandle(candle))
        else:
            prefix = candles[: i + 1]
            ref_prefix = (
                _reference_prefix(reference, reference_times, candle.timestamp)
                if reference else None
            )
            enriched.append(EnrichedCandle(candle, snapshot_at(prefix, ref_prefix)))
        if checkpoint is not None:
            checkpoint(i)

    logger.debug(
        "Enriched %d candles (%d past warm-up)",
        len(enriched), max(0, len(enriched) - warmup),
    )
    return enriched
