"""Apex backtester — application configuration.

Loads .env variables into a typed config object and reads strategy
documents from JSON.  Invalid values are reported on startup.
"""

import json
import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from apex.models.strategy_config import (
    SIZING_MODES,
    BacktestSettings,
    PositionSizing,
    StrategyConfig,
)


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    initial_capital: float
    position_sizing: str  # one of SIZING_MODES
    position_size: float
    maker_fee_pct: float
    taker_fee_pct: float
    slippage_pct: float
    log_level: str
    log_artifacts: bool
    yield_every: int

    def to_settings(self) -> BacktestSettings:
        """Backtest settings for a simulation run."""
        return BacktestSettings(
            initial_capital=self.initial_capital,
            position_sizing=PositionSizing(self.position_sizing, self.position_size),
            maker_fee_pct=self.maker_fee_pct,
            taker_fee_pct=self.taker_fee_pct,
            slippage_pct=self.slippage_pct,
        )

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level)


def _float(name: str, default: str, minimum: float = 0.0, strict: bool = False) -> float:
    raw = os.environ.get(name, default)
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{raw}'") from None
    if value < minimum or (strict and value == minimum):
        bound = "greater than" if strict else "at least"
        raise ValueError(f"{name} must be {bound} {minimum:g}, got {value:g}")
    return value


def _bool(name: str, default: str) -> bool:
    raw = os.environ.get(name, default).strip().lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got '{raw}'")


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Every variable has a default.  Raises ``ValueError`` with a message
    naming the variable when a value cannot be used.
    """
    load_dotenv(dotenv_path=env_path)

    sizing = os.environ.get("APEX_POSITION_SIZING", "percentage_of_equity")
    if sizing not in SIZING_MODES:
        raise ValueError(
            f"APEX_POSITION_SIZING must be one of {', '.join(SIZING_MODES)}, got '{sizing}'"
        )

    log_level = os.environ.get("APEX_LOG_LEVEL", "INFO").upper()
    if log_level not in _LOG_LEVELS:
        raise ValueError(
            f"APEX_LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}, got '{log_level}'"
        )

    raw_yield = os.environ.get("APEX_YIELD_EVERY", "20")
    try:
        yield_every = int(raw_yield)
    except ValueError:
        raise ValueError(f"APEX_YIELD_EVERY must be an integer, got '{raw_yield}'") from None
    if yield_every < 1:
        raise ValueError(f"APEX_YIELD_EVERY must be at least 1, got {yield_every}")

    return Config(
        initial_capital=_float("APEX_INITIAL_CAPITAL", "10000", strict=True),
        position_sizing=sizing,
        position_size=_float("APEX_POSITION_SIZE", "10", strict=True),
        maker_fee_pct=_float("APEX_MAKER_FEE_PCT", "0"),
        taker_fee_pct=_float("APEX_TAKER_FEE_PCT", "0"),
        slippage_pct=_float("APEX_SLIPPAGE_PCT", "0"),
        log_level=log_level,
        log_artifacts=_bool("APEX_LOG_ARTIFACTS", "false"),
        yield_every=yield_every,
    )


def load_strategy(path: str) -> StrategyConfig:
    """Load a strategy document from a JSON file.

    Raises ``ValueError`` for malformed JSON or an invalid strategy.
    """
    with open(path, encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{path}: invalid JSON ({exc})") from exc
    if not isinstance(data, dict):
        raise ValueError(f"{path}: strategy must be a JSON object")
    return StrategyConfig.from_dict(data)
