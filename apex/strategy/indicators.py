"""Technical indicators — pure functions, no I/O.

Every series function returns a list aligned 1:1 with its input.  Indices
where the window is not yet full hold ``None``.  Degenerate inputs (zero
volume, zero range, too little data) never raise; they produce ``None`` or
a neutral value instead.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from apex.strategy.models import Candle


Series = list[Optional[float]]


def safe_round(value: Optional[float], decimals: int) -> Optional[float]:
    """Round *value*, mapping ``None``, NaN and infinities to ``None``."""
    if value is None or math.isnan(value) or math.isinf(value):
        return None
    return round(value, decimals)


# ── Moving averages ──────────────────────────────────────────────────────


def calculate_sma(values: Sequence[float], period: int) -> Series:
    """Simple moving average.

    ``SMA([10, 20, 30, 40, 50], 3) == [None, None, 20.0, 30.0, 40.0]``
    """
    n = len(values)
    if period <= 0 or n < period:
        return [None] * n

    sma: Series = [None] * (period - 1)
    window_sum = sum(values[:period])
    sma.append(window_sum / period)
    for i in range(period, n):
        window_sum += values[i] - values[i - period]
        sma.append(window_sum / period)
    return sma


def calculate_ema(values: Sequence[float], period: int) -> Series:
    """Exponential moving average.

    Seeded with the SMA of the first *period* values, then
    ``EMA_i = (x_i - EMA_{i-1}) × k + EMA_{i-1}`` with ``k = 2 / (period + 1)``.
    """
    n = len(values)
    if period <= 0 or n < period:
        return [None] * n

    k = 2.0 / (period + 1)
    ema: Series = [None] * (period - 1)
    prev = sum(values[:period]) / period
    ema.append(prev)
    for i in range(period, n):
        prev = (values[i] - prev) * k + prev
        ema.append(prev)
    return ema


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(values: Sequence[float], period: int = 14) -> Series:
    """Wilder's Relative Strength Index.

    Algorithm (Wilder-smoothed):
        1. delta = x[i] - x[i-1]
        2. Seed average gain/loss = mean of the first *period* deltas.
        3. Subsequent: avg = (prev_avg × (period-1) + current) / period
        4. RSI = 100 - 100 / (1 + avg_gain / avg_loss)

    The first value lands at index *period*.  A zero average loss yields 100.
    """
    n = len(values)
    if n <= period:
        return [None] * n

    def _rsi_from_avgs(ag: float, al: float) -> float:
        if al == 0:
            return 100.0
        return 100.0 - 100.0 / (1.0 + ag / al)

    rsi: Series = [None] * period
    gains = 0.0
    losses = 0.0
    for i in range(1, period + 1):
        change = values[i] - values[i - 1]
        if change > 0:
            gains += change
        else:
            losses -= change

    avg_gain = gains / period
    avg_loss = losses / period
    rsi.append(_rsi_from_avgs(avg_gain, avg_loss))

    for i in range(period + 1, n):
        change = values[i] - values[i - 1]
        avg_gain = (avg_gain * (period - 1) + max(change, 0.0)) / period
        avg_loss = (avg_loss * (period - 1) + max(-change, 0.0)) / period
        rsi.append(_rsi_from_avgs(avg_gain, avg_loss))

    return rsi


# ── Bollinger Bands ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class BollingerBands:
    upper: Series
    middle: Series
    lower: Series
    bandwidth: Series  # (upper - lower) / middle, in percent


def calculate_bollinger(
    values: Sequence[float],
    period: int = 20,
    std_dev: float = 2.0,
) -> BollingerBands:
    """Bollinger Bands with population standard deviation.

    Middle = SMA(*period*), Upper/Lower = middle ± *std_dev* × σ.
    Bandwidth is ``(upper - lower) / middle × 100`` (0 when middle ≤ 0).
    """
    n = len(values)
    middle = calculate_sma(values, period)
    upper: Series = [None] * n
    lower: Series = [None] * n
    bandwidth: Series = [None] * n

    for i in range(period - 1, n):
        mean = middle[i]
        if mean is None:
            continue
        window = values[i - period + 1 : i + 1]
        sigma = math.sqrt(sum((x - mean) ** 2 for x in window) / period)
        up = mean + std_dev * sigma
        low = mean - std_dev * sigma
        upper[i] = up
        lower[i] = low
        bandwidth[i] = ((up - low) / mean) * 100.0 if mean > 0 else 0.0

    return BollingerBands(upper=upper, middle=middle, lower=lower, bandwidth=bandwidth)


# ── True range / ATR ─────────────────────────────────────────────────────


def calculate_true_range(candles: Sequence[Candle]) -> list[float]:
    """True range per bar.  The first bar has no previous close: high - low."""
    if not candles:
        return []
    tr = [candles[0].high - candles[0].low]
    for i in range(1, len(candles)):
        prev_close = candles[i - 1].close
        tr.append(max(
            candles[i].high - candles[i].low,
            abs(candles[i].high - prev_close),
            abs(candles[i].low - prev_close),
        ))
    return tr


def calculate_atr(candles: Sequence[Candle], period: int = 20) -> Series:
    """Average True Range — EMA of the true range series."""
    return calculate_ema(calculate_true_range(candles), period)


# ── ADX ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DirectionalIndex:
    adx: Series
    plus_di: Series
    minus_di: Series


def calculate_adx(candles: Sequence[Candle], period: int = 14) -> DirectionalIndex:
    """Average Directional Index with +DI / -DI.

    Algorithm:
        1. +DM / -DM directional movement and true range per bar.
        2. Wilder-smooth +DM, -DM and TR, seeded with the sum of the
           first *period* bars.
        3. ±DI = 100 × smoothed ±DM / smoothed TR   (from index *period*)
        4. DX = 100 × |+DI − −DI| / (+DI + −DI)
        5. ADX = Wilder-smoothed DX, seeded with the mean of the first
           *period* DX values   (from index ``2 × period − 1``)

    Zero true range or zero DI sum yields 0 rather than raising.
    """
    n = len(candles)
    adx: Series = [None] * n
    plus_di: Series = [None] * n
    minus_di: Series = [None] * n
    if n < period + 1:
        return DirectionalIndex(adx=adx, plus_di=plus_di, minus_di=minus_di)

    plus_dm_raw = [0.0]
    minus_dm_raw = [0.0]
    tr_raw = [0.0]
    for i in range(1, n):
        high = candles[i].high
        low = candles[i].low
        prev_close = candles[i - 1].close

        up_move = high - candles[i - 1].high
        down_move = candles[i - 1].low - low

        plus_dm_raw.append(up_move if (up_move > down_move and up_move > 0) else 0.0)
        minus_dm_raw.append(down_move if (down_move > up_move and down_move > 0) else 0.0)
        tr_raw.append(max(high - low, abs(high - prev_close), abs(low - prev_close)))

    smoothed_plus_dm = sum(plus_dm_raw[1 : period + 1])
    smoothed_minus_dm = sum(minus_dm_raw[1 : period + 1])
    smoothed_tr = sum(tr_raw[1 : period + 1])

    dx_values: list[float] = []
    for i in range(period, n):
        if i > period:
            smoothed_plus_dm = smoothed_plus_dm - smoothed_plus_dm / period + plus_dm_raw[i]
            smoothed_minus_dm = smoothed_minus_dm - smoothed_minus_dm / period + minus_dm_raw[i]
            smoothed_tr = smoothed_tr - smoothed_tr / period + tr_raw[i]

        pdi = 100.0 * smoothed_plus_dm / smoothed_tr if smoothed_tr else 0.0
        mdi = 100.0 * smoothed_minus_dm / smoothed_tr if smoothed_tr else 0.0
        plus_di[i] = pdi
        minus_di[i] = mdi
        di_sum = pdi + mdi
        dx_values.append(100.0 * abs(pdi - mdi) / di_sum if di_sum else 0.0)

    # dx_values[j] belongs to candle index period + j
    if len(dx_values) < period:
        return DirectionalIndex(adx=adx, plus_di=plus_di, minus_di=minus_di)

    adx_prev = sum(dx_values[:period]) / period
    adx[2 * period - 1] = adx_prev
    for j in range(period, len(dx_values)):
        adx_prev = (adx_prev * (period - 1) + dx_values[j]) / period
        adx[period + j] = adx_prev

    return DirectionalIndex(adx=adx, plus_di=plus_di, minus_di=minus_di)


# ── Volume ───────────────────────────────────────────────────────────────


def calculate_obv(closes: Sequence[float], volumes: Sequence[float]) -> list[float]:
    """On-Balance Volume.  Flat closes leave OBV unchanged.

    closes ``[10, 12, 11, 11, 13]`` with volumes ``[100, 200, 150, 100, 250]``
    give ``[0, 200, 50, 50, 300]``.
    """
    if not closes:
        return []
    obv = [0.0]
    for i in range(1, len(closes)):
        if closes[i] > closes[i - 1]:
            obv.append(obv[-1] + volumes[i])
        elif closes[i] < closes[i - 1]:
            obv.append(obv[-1] - volumes[i])
        else:
            obv.append(obv[-1])
    return obv


def calculate_cvd(candles: Sequence[Candle]) -> list[float]:
    """Cumulative volume delta approximated from close-to-close direction."""
    return calculate_obv([c.close for c in candles], [c.volume for c in candles])


def calculate_vwap(candles: Sequence[Candle], period: int = 20) -> Series:
    """Rolling (not session-anchored) VWAP over *period* bars.

    Uses the typical price ``(high + low + close) / 3``.  A window with zero
    total volume yields ``None``.
    """
    n = len(candles)
    vwap: Series = [None] * n
    if period <= 0 or n < period:
        return vwap

    tp_vol = [((c.high + c.low + c.close) / 3.0) * c.volume for c in candles]
    vols = [c.volume for c in candles]
    sum_tp_vol = sum(tp_vol[:period])
    sum_vol = sum(vols[:period])
    for i in range(period - 1, n):
        if i >= period:
            sum_tp_vol += tp_vol[i] - tp_vol[i - period]
            sum_vol += vols[i] - vols[i - period]
        vwap[i] = sum_tp_vol / sum_vol if sum_vol > 0 else None
    return vwap


# ── Ichimoku ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class IchimokuSeries:
    tenkan: Series
    kijun: Series
    senkou_a: Series  # cloud currently displayed at each index
    senkou_b: Series


def _midpoint_series(candles: Sequence[Candle], period: int) -> Series:
    out: Series = [None] * len(candles)
    for i in range(period - 1, len(candles)):
        window = candles[i - period + 1 : i + 1]
        out[i] = (max(c.high for c in window) + min(c.low for c in window)) / 2.0
    return out


def calculate_ichimoku(
    candles: Sequence[Candle],
    tenkan_period: int = 9,
    kijun_period: int = 26,
    senkou_b_period: int = 52,
) -> IchimokuSeries:
    """Ichimoku Kinko Hyo lines.

    Senkou A/B are projected *kijun_period* bars forward.  The returned
    senkou series are lagged back by the same amount, so ``senkou_a[i]`` is
    the cloud edge plotted under bar *i* (computed at bar ``i - kijun_period``).
    """
    n = len(candles)
    tenkan = _midpoint_series(candles, tenkan_period)
    kijun = _midpoint_series(candles, kijun_period)
    raw_b = _midpoint_series(candles, senkou_b_period)
    raw_a: Series = [
        (t + k) / 2.0 if t is not None and k is not None else None
        for t, k in zip(tenkan, kijun)
    ]

    lag = kijun_period
    senkou_a: Series = [raw_a[i - lag] if i >= lag else None for i in range(n)]
    senkou_b: Series = [raw_b[i - lag] if i >= lag else None for i in range(n)]
    return IchimokuSeries(tenkan=tenkan, kijun=kijun, senkou_a=senkou_a, senkou_b=senkou_b)


# ── Keltner Channels ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class KeltnerChannels:
    upper: Series
    middle: Series
    lower: Series


def calculate_keltner(
    candles: Sequence[Candle],
    period: int = 20,
    multiplier: float = 2.0,
) -> KeltnerChannels:
    """Keltner Channels: EMA(close) ± *multiplier* × EMA(true range)."""
    middle = calculate_ema([c.close for c in candles], period)
    atr = calculate_ema(calculate_true_range(candles), period)
    upper: Series = []
    lower: Series = []
    for mid, rng in zip(middle, atr):
        if mid is None or rng is None:
            upper.append(None)
            lower.append(None)
        else:
            upper.append(mid + multiplier * rng)
            lower.append(mid - multiplier * rng)
    return KeltnerChannels(upper=upper, middle=middle, lower=lower)


# ── Correlation ──────────────────────────────────────────────────────────


def calculate_pearson_correlation(
    xs: Sequence[float], ys: Sequence[float],
) -> Optional[float]:
    """Pearson correlation coefficient.

    ``None`` for mismatched or empty inputs; 0.0 when either side has zero
    variance.
    """
    if len(xs) != len(ys) or len(xs) == 0:
        return None
    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    n = len(x)
    numerator = n * np.dot(x, y) - x.sum() * y.sum()
    denominator_sq = (n * np.dot(x, x) - x.sum() ** 2) * (n * np.dot(y, y) - y.sum() ** 2)
    if denominator_sq <= 0:
        return 0.0
    return float(numerator / math.sqrt(denominator_sq))


def calculate_return_correlation(
    candles: Sequence[Candle],
    reference: Sequence[Candle],
    window: int = 20,
) -> Optional[float]:
    """Correlation of close-to-close returns over the last *window* bars."""
    if len(candles) < window or len(reference) < window:
        return None
    closes = [c.close for c in candles[-window:]]
    ref_closes = [c.close for c in reference[-window:]]
    if any(c == 0 for c in closes[:-1]) or any(c == 0 for c in ref_closes[:-1]):
        return None
    returns = [(closes[i] - closes[i - 1]) / closes[i - 1] for i in range(1, window)]
    ref_returns = [
        (ref_closes[i] - ref_closes[i - 1]) / ref_closes[i - 1] for i in range(1, window)
    ]
    return calculate_pearson_correlation(returns, ref_returns)


def calculate_relative_performance(
    candles: Sequence[Candle],
    reference: Sequence[Candle],
    window: int = 20,
    threshold_pct: float = 1.0,
) -> str:
    """Compare the *window*-bar performance of an asset against a reference."""
    if len(candles) < window or len(reference) < window:
        return "N/A"
    first = candles[-window].close
    ref_first = reference[-window].close
    if first == 0 or ref_first == 0:
        return "N/A"
    perf_pct = (candles[-1].close / first - 1) * 100
    ref_perf_pct = (reference[-1].close / ref_first - 1) * 100
    diff = perf_pct - ref_perf_pct
    if diff > threshold_pct:
        return "Outperforming BTC"
    if diff < -threshold_pct:
        return "Underperforming BTC"
    return "Neutral"


# ── Chimera composites ───────────────────────────────────────────────────


def calculate_vwap_deviation_ratio(candles: Sequence[Candle], period: int = 14) -> Series:
    """VDR: percent deviation of the close from the rolling VWAP."""
    vdr: Series = []
    for candle, vwap in zip(candles, calculate_vwap(candles, period)):
        if vwap is None or vwap <= 0:
            vdr.append(None)
        else:
            vdr.append((candle.close / vwap - 1) * 100)
    return vdr


def calculate_fractal_efficiency_ratio(candles: Sequence[Candle], period: int = 14) -> Series:
    """FER: net displacement over path length across *period* bars.

    1.0 is a straight line; values near 0 mean the price went nowhere.
    A flat window (zero path) yields ``None``.
    """
    n = len(candles)
    fer: Series = [None] * n
    for i in range(period, n):
        change = abs(candles[i].close - candles[i - period].close)
        path = sum(
            abs(candles[j].close - candles[j - 1].close)
            for j in range(i - period + 1, i + 1)
        )
        fer[i] = change / path if path > 0 else None
    return fer


def calculate_mfi_v(rsi: Series, adx: Series) -> Series:
    """Momentum-flow index: ``(RSI - 50) × ADX / 50``."""
    return [
        (r - 50) * (a / 50) if r is not None and a is not None else None
        for r, a in zip(rsi, adx)
    ]


def calculate_vpe(bandwidth: Series, adx: Series) -> Series:
    """Volatility potential energy.

    Inverse-normalised bandwidth (against the series' own min/max) times
    inverse-normalised ADX (``(25 - ADX) / 25`` below 25, else 0), × 100.
    """
    valid = [b for b in bandwidth if b is not None]
    if not valid:
        return [None] * len(bandwidth)
    lo = min(valid)
    hi = max(valid)

    vpe: Series = []
    for b, a in zip(bandwidth, adx):
        if b is None or a is None:
            vpe.append(None)
            continue
        norm_bbw = 1 - (b - lo) / (hi - lo) if hi > lo else 0.0
        norm_adx = (25 - a) / 25 if a < 25 else 0.0
        vpe.append(norm_bbw * norm_adx * 100)
    return vpe


def calculate_hv_rank(atr_series: Series, lookback: int = 100) -> Optional[float]:
    """Percentile rank of the latest ATR within the trailing *lookback* ATRs."""
    history = [v for v in atr_series if v is not None and v > 0]
    if len(history) < lookback:
        return None
    recent = history[-lookback:]
    current = recent[-1]
    below = sum(1 for v in recent if v < current)
    return safe_round(below / len(recent) * 100, 0)


def calculate_hvn_migration(
    poc_first_half: Optional[float],
    poc_second_half: Optional[float],
) -> str:
    """Direction the high-volume node moved between two halves of a window."""
    if poc_first_half is None or poc_second_half is None or poc_first_half == 0:
        return "Indeterminate"
    diff = (poc_second_half - poc_first_half) / poc_first_half
    if diff > 0.002:
        return "Migrating Up (Bullish)"
    if diff < -0.002:
        return "Migrating Down (Bearish)"
    return "Stagnant (Neutral)"
