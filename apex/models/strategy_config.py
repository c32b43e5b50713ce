"""Strategy configuration and backtest settings dataclasses.

A strategy has a long side and a short side.  Each side can require price
to sit in a scored confluence zone, must pass every contextual filter, and
carries its own stop-loss / take-profit rules.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


SIDES = ("long", "short")


class IndicatorName(str, Enum):
    """Indicator families a contextual filter can read."""

    QUANTITATIVE_SCORE = "Quantitative Score"
    CRF = "CRF"
    VPE = "VPE"
    VOLATILITY = "Volatility"
    BTC_CORRELATION = "BTC Correlation"
    HVN_MIGRATION = "HVN Migration"
    CHIMERA = "Chimera"
    RSI = "RSI"
    ADX = "ADX"
    TREND = "Trend"
    FLOW = "Flow"


class Operator(str, Enum):
    GT = ">"
    LT = "<"
    EQ = "="
    NE = "!="
    CONTAINS = "contains"
    NOT_CONTAINS = "does not contain"

EXIT_TYPES = ("percentage", "atr_multiple", "risk_reward_ratio", "confluence_zone")
ZONE_TARGETS = ("nearest_edge", "middle_of_zone", "farthest_edge")
SIZING_MODES = ("percentage_of_equity", "fixed_amount", "risk_percentage")


def _require(data: dict, key: str, where: str) -> Any:
    if key not in data:
        raise ValueError(f"{where}: missing required field '{key}'")
    return data[key]


@dataclass(frozen=True)
class ContextualFilter:
    """One ``indicator.parameter <operator> value`` comparison."""

    indicator: str
    parameter: str
    operator: str
    value: Union[float, str]

    @classmethod
    def from_dict(cls, data: dict) -> "ContextualFilter":
        where = "contextual filter"
        indicator = _require(data, "indicator", where)
        operator = _require(data, "operator", where)
        try:
            IndicatorName(indicator)
        except ValueError:
            raise ValueError(f"{where}: unknown indicator '{indicator}'") from None
        try:
            Operator(operator)
        except ValueError:
            raise ValueError(f"{where}: unknown operator '{operator}'") from None
        return cls(
            indicator=indicator,
            parameter=str(data.get("parameter", "")),
            operator=operator,
            value=_require(data, "value", where),
        )


@dataclass(frozen=True)
class LocationalCondition:
    """Require the entry-side extreme to sit inside a qualifying zone."""

    enabled: bool = False
    min_score: float = 0.0

    @classmethod
    def from_dict(cls, data: dict) -> "LocationalCondition":
        return cls(
            enabled=bool(data.get("enabled", False)),
            min_score=float(data.get("min_score", 0.0)),
        )


@dataclass(frozen=True)
class ExitRule:
    """Stop-loss or take-profit rule.

    ``value`` is a number for percentage / ATR / R:R rules and one of
    ``ZONE_TARGETS`` for confluence-zone rules.
    """

    type: str
    value: Union[float, str]

    def __post_init__(self) -> None:
        if self.type not in EXIT_TYPES:
            raise ValueError(
                f"exit type must be one of {', '.join(EXIT_TYPES)}, got '{self.type}'"
            )
        if self.type == "confluence_zone":
            if self.value not in ZONE_TARGETS:
                raise ValueError(
                    f"confluence_zone target must be one of {', '.join(ZONE_TARGETS)}, "
                    f"got '{self.value}'"
                )
        elif isinstance(self.value, str) or float(self.value) <= 0:
            raise ValueError(f"{self.type} exit value must be a positive number, got {self.value!r}")

    @classmethod
    def from_dict(cls, data: dict) -> "ExitRule":
        value = _require(data, "value", "exit rule")
        exit_type = _require(data, "type", "exit rule")
        if exit_type != "confluence_zone" and not isinstance(value, str):
            value = float(value)
        return cls(type=exit_type, value=value)


@dataclass(frozen=True)
class RiskManagement:
    stop_loss: ExitRule
    take_profit: ExitRule

    def __post_init__(self) -> None:
        if self.stop_loss.type == "risk_reward_ratio":
            raise ValueError("stop_loss cannot be of type 'risk_reward_ratio'")

    @classmethod
    def from_dict(cls, data: dict) -> "RiskManagement":
        return cls(
            stop_loss=ExitRule.from_dict(_require(data, "stop_loss", "risk_management")),
            take_profit=ExitRule.from_dict(_require(data, "take_profit", "risk_management")),
        )


@dataclass(frozen=True)
class StrategySide:
    enabled: bool
    risk_management: RiskManagement
    locational_condition: LocationalCondition = field(default_factory=LocationalCondition)
    contextual_filters: tuple[ContextualFilter, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "StrategySide":
        return cls(
            enabled=bool(data.get("enabled", False)),
            risk_management=RiskManagement.from_dict(
                _require(data, "risk_management", "strategy side")
            ),
            locational_condition=LocationalCondition.from_dict(
                data.get("locational_condition", {})
            ),
            contextual_filters=tuple(
                ContextualFilter.from_dict(f) for f in data.get("contextual_filters", [])
            ),
        )


@dataclass(frozen=True)
class StrategyConfig:
    """A complete two-sided strategy."""

    name: str
    symbol: str
    timeframe: str
    long: StrategySide
    short: StrategySide

    def side(self, side: str) -> StrategySide:
        if side == "long":
            return self.long
        if side == "short":
            return self.short
        raise ValueError(f"side must be 'long' or 'short', got '{side}'")

    @classmethod
    def from_dict(cls, data: dict) -> "StrategyConfig":
        asset = data.get("asset", {})
        return cls(
            name=str(data.get("strategyName", data.get("name", "Unnamed Strategy"))),
            symbol=str(asset.get("symbol", data.get("symbol", ""))),
            timeframe=str(asset.get("timeframe", data.get("timeframe", ""))),
            long=StrategySide.from_dict(_require(data, "long_strategy", "strategy")),
            short=StrategySide.from_dict(_require(data, "short_strategy", "strategy")),
        )


# ── Backtest settings ────────────────────────────────────────────────────


@dataclass(frozen=True)
class PositionSizing:
    mode: str = "percentage_of_equity"
    value: float = 10.0

    def __post_init__(self) -> None:
        if self.mode not in SIZING_MODES:
            raise ValueError(
                f"position sizing mode must be one of {', '.join(SIZING_MODES)}, "
                f"got '{self.mode}'"
            )


@dataclass(frozen=True)
class BacktestSettings:
    """Account-level simulation settings.

    Fees and slippage are percentages.  Slippage moves every fill against
    the trade.  Market fills (entries, stop-loss and end-of-data exits)
    pay the taker fee; take-profit exits rest as limit orders and pay the
    maker fee.  Each fee is charged on that fill's notional.
    """

    initial_capital: float = 10_000.0
    position_sizing: PositionSizing = field(default_factory=PositionSizing)
    maker_fee_pct: float = 0.0
    taker_fee_pct: float = 0.0
    slippage_pct: float = 0.0

    def __post_init__(self) -> None:
        if self.initial_capital <= 0:
            raise ValueError(f"initial_capital must be positive, got {self.initial_capital}")

    def to_dict(self) -> dict:
        return {
            "initialCapital": self.initial_capital,
            "positionSizing": {
                "type": self.position_sizing.mode,
                "value": self.position_sizing.value,
            },
            "fees": {
                "makerPercent": self.maker_fee_pct,
                "takerPercent": self.taker_fee_pct,
            },
            "slippagePercent": self.slippage_pct,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BacktestSettings":
        sizing = data.get("positionSizing", {})
        fees = data.get("fees", {})
        return cls(
            initial_capital=float(data.get("initialCapital", 10_000.0)),
            position_sizing=PositionSizing(
                mode=sizing.get("type", "percentage_of_equity"),
                value=float(sizing.get("value", 10.0)),
            ),
            maker_fee_pct=float(fees.get("makerPercent", 0.0)),
            taker_fee_pct=float(fees.get("takerPercent", 0.0)),
            slippage_pct=float(data.get("slippagePercent", 0.0)),
        )
