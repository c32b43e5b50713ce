"""Market data loading — candle series and timeframe reports from JSON.

Market data files look like::

    {
      "symbol": "ETHUSDT",
      "primary": "60",
      "timeframes": {"60": [[ts, o, h, l, c, v], ...], "D": [...]},
      "previous_day": {"high": 1.0, "low": 0.9, "close": 0.95}
    }

Candles may also be objects with ``timestamp``/``open``/``high``/``low``/
``close``/``volume`` keys.  Every series must be strictly time-ascending.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from apex.strategy.key_levels import build_report, calculate_fib_pivots
from apex.strategy.models import Candle, PivotLevels, TimeframeReport

logger = logging.getLogger("apex")

_CANDLE_KEYS = ("timestamp", "open", "high", "low", "close", "volume")


@dataclass(frozen=True)
class MarketData:
    """Full-range reports for one symbol."""

    symbol: str
    primary: TimeframeReport
    reports: tuple[TimeframeReport, ...]


def _parse_candle(row: Any) -> Candle:
    if isinstance(row, dict):
        missing = [k for k in _CANDLE_KEYS if k not in row]
        if missing:
            raise ValueError(f"Candle is missing field(s) {', '.join(missing)}: {row!r}")
        return Candle.from_row([row[k] for k in _CANDLE_KEYS])
    if isinstance(row, (list, tuple)):
        return Candle.from_row(row)
    raise ValueError(f"Candle must be a list or an object, got {type(row).__name__}")


def parse_candles(rows: Sequence[Any], label: str = "candles") -> list[Candle]:
    """Parse raw rows into candles, oldest first.

    Raises:
        ValueError: For malformed rows or timestamps that are not strictly
            ascending.
    """
    candles = [_parse_candle(row) for row in rows]
    for prev, cur in zip(candles, candles[1:]):
        if cur.timestamp <= prev.timestamp:
            raise ValueError(
                f"{label}: timestamps must be strictly ascending "
                f"({cur.timestamp} follows {prev.timestamp})"
            )
    return candles


def _read_json(path: str) -> Any:
    with open(path, encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{path}: invalid JSON ({exc})") from exc


def _pivots(data: Optional[dict]) -> Optional[PivotLevels]:
    if not data:
        return None
    try:
        return calculate_fib_pivots(
            float(data["high"]), float(data["low"]), float(data["close"]),
        )
    except KeyError as exc:
        raise ValueError(f"previous_day is missing '{exc.args[0]}'") from None


def market_data_from_dict(data: dict) -> MarketData:
    """Build full-range reports from a parsed market data document."""
    timeframes = data.get("timeframes")
    if not isinstance(timeframes, dict) or not timeframes:
        raise ValueError("market data needs a non-empty 'timeframes' object")

    symbol = str(data.get("symbol", ""))
    primary_tf = str(data.get("primary", next(iter(timeframes))))
    if primary_tf not in timeframes:
        raise ValueError(f"primary timeframe '{primary_tf}' has no candles")

    pivots = _pivots(data.get("previous_day"))
    reports = tuple(
        build_report(str(tf), parse_candles(rows, f"timeframe {tf}"), pivots, symbol)
        for tf, rows in timeframes.items()
    )
    primary = next(r for r in reports if r.timeframe == primary_tf)
    logger.info(
        "Loaded %s: %s",
        symbol or "market data",
        ", ".join(f"{r.timeframe}={len(r.candles)}" for r in reports),
    )
    return MarketData(symbol=symbol, primary=primary, reports=reports)


def load_market_data(path: str) -> MarketData:
    """Load a market data file.

    Raises ``ValueError`` for malformed files.
    """
    data = _read_json(path)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: market data must be a JSON object")
    return market_data_from_dict(data)


def load_reference_candles(path: str) -> list[Candle]:
    """Load a reference-asset series: a row list or ``{"candles": [...]}``."""
    data = _read_json(path)
    if isinstance(data, dict):
        data = data.get("candles", [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: reference data must be a list of candles")
    return parse_candles(data, path)
