"""Strategy data models — typed representations for candles, levels and zones."""

from dataclasses import dataclass, field
from typing import Optional, Sequence, Union


IndicatorValue = Union[float, str, None]


@dataclass(frozen=True)
class Candle:
    """A single OHLCV bar.  ``timestamp`` is the bar open time in epoch ms."""

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @classmethod
    def from_row(cls, row: Sequence) -> "Candle":
        """Build a candle from ``[timestamp, open, high, low, close, volume]``."""
        if len(row) < 6:
            raise ValueError(f"Candle row needs 6 fields, got {len(row)}: {row!r}")
        return cls(
            timestamp=int(row[0]),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=float(row[5]),
        )


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator values for one candle, computed from candles ``[0..i]`` only.

    Every field is ``None`` while its window is not full.  Candles inside the
    enrichment warm-up carry an all-``None`` snapshot.
    """

    # Trend
    ema50: Optional[float] = None
    ema200: Optional[float] = None
    rsi14: Optional[float] = None
    adx14: Optional[float] = None
    plus_di14: Optional[float] = None
    minus_di14: Optional[float] = None

    # Volatility
    atr20: Optional[float] = None
    bbw_pct: Optional[float] = None
    bb_upper: Optional[float] = None
    bb_lower: Optional[float] = None
    kc_upper: Optional[float] = None
    kc_lower: Optional[float] = None
    squeeze_status: Optional[str] = None
    hv_rank: Optional[float] = None
    vpe: Optional[float] = None

    # Volume / flow
    obv: Optional[float] = None
    cvd: Optional[float] = None
    vwap20: Optional[float] = None
    hvn_migration: Optional[str] = None

    # Chimera
    fer: Optional[float] = None
    vdr: Optional[float] = None
    mfi_v: Optional[float] = None
    crf_regime: Optional[str] = None

    # Reference asset
    relative_perf: Optional[str] = None
    reference_correlation: Optional[float] = None

    # Composite
    structural_score: Optional[float] = None
    composite_score: Optional[float] = None

    def to_dict(self) -> dict:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


EMPTY_SNAPSHOT = IndicatorSnapshot()


@dataclass(frozen=True)
class EnrichedCandle:
    """A candle plus the indicator snapshot that was knowable at its close."""

    candle: Candle
    indicators: IndicatorSnapshot = EMPTY_SNAPSHOT

    @property
    def timestamp(self) -> int:
        return self.candle.timestamp

    @property
    def open(self) -> float:
        return self.candle.open

    @property
    def high(self) -> float:
        return self.candle.high

    @property
    def low(self) -> float:
        return self.candle.low

    @property
    def close(self) -> float:
        return self.candle.close

    @property
    def volume(self) -> float:
        return self.candle.volume


# ── Key levels ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PriceActionLevels:
    support: Optional[float]
    resistance: Optional[float]
    basis: str = "Highest high and lowest low over last 20 periods"


@dataclass(frozen=True)
class VolumeProfileLevels:
    poc: Optional[float]
    vah: Optional[float]
    val: Optional[float]
    basis: str = "Volume distribution"


@dataclass(frozen=True)
class PivotLevels:
    """Fibonacci pivots from the previous day's high, low and close."""

    pp: float
    r1: float
    r2: float
    r3: float
    s1: float
    s2: float
    s3: float
    basis: str = "Previous Day's H/L/C with Fibonacci multiples"


@dataclass(frozen=True)
class VolatilityProjectionLevels:
    anchor_vwap: Optional[float]
    r1: Optional[float] = None
    r2: Optional[float] = None
    r3: Optional[float] = None
    s1: Optional[float] = None
    s2: Optional[float] = None
    s3: Optional[float] = None
    basis: str = "VWAP +/- ATR"


@dataclass(frozen=True)
class TrendFollowingLevels:
    ema50: Optional[float]
    ema200: Optional[float]
    bollinger_upper: Optional[float]
    bollinger_lower: Optional[float]
    basis: str = "Moving averages and volatility bands"


@dataclass(frozen=True)
class IchimokuLevels:
    tenkan: Optional[float]
    kijun: Optional[float]
    senkou_a: Optional[float]
    senkou_b: Optional[float]


@dataclass(frozen=True)
class KeyLevels:
    """All key price levels of one timeframe."""

    price_action: PriceActionLevels
    volume_profile: VolumeProfileLevels
    volatility_projection: VolatilityProjectionLevels
    trend_following: TrendFollowingLevels
    ichimoku: IchimokuLevels
    pivots: Optional[PivotLevels] = None


@dataclass(frozen=True)
class TimeframeReport:
    """Candle series of one timeframe and the key levels derived from it."""

    timeframe: str
    candles: tuple[Candle, ...]
    key_levels: KeyLevels
    symbol: str = ""


# ── Confluence ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ExtractedLevel:
    """One weighted price level pulled out of a timeframe report."""

    price: float
    level_type: str  # e.g. "poc", "ema50"
    timeframe: str
    score: float
    description: str


@dataclass(frozen=True)
class ConfluenceZone:
    """A price band where two or more levels cluster."""

    price_range: tuple[float, float]
    score: float
    reasons: tuple[str, ...] = field(default_factory=tuple)
    zone_type: str = "support"  # "support" or "resistance"

    @property
    def low(self) -> float:
        return self.price_range[0]

    @property
    def high(self) -> float:
        return self.price_range[1]

    @property
    def midpoint(self) -> float:
        return self.low + (self.high - self.low) / 2

    def contains(self, price: float) -> bool:
        return self.low <= price <= self.high

    def to_dict(self) -> dict:
        return {
            "range": list(self.price_range),
            "score": self.score,
            "reasons": list(self.reasons),
            "type": self.zone_type,
        }
