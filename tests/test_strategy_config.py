"""Tests for strategy configuration parsing and backtest settings."""

import pytest

from apex.models.strategy_config import (
    BacktestSettings,
    ContextualFilter,
    ExitRule,
    PositionSizing,
    RiskManagement,
    StrategyConfig,
)


def _strategy_dict() -> dict:
    side = {
        "enabled": True,
        "risk_management": {
            "stop_loss": {"type": "atr_multiple", "value": 1.5},
            "take_profit": {"type": "confluence_zone", "value": "nearest_edge"},
        },
        "locational_condition": {"enabled": True, "min_score": 1.2},
        "contextual_filters": [
            {"indicator": "CRF", "parameter": "regime", "operator": "contains", "value": "Trend"},
        ],
    }
    return {
        "strategyName": "Trend pullback",
        "asset": {"symbol": "ETHUSDT", "timeframe": "60"},
        "long_strategy": side,
        "short_strategy": {**side, "enabled": False},
    }


class TestStrategyConfig:
    def test_from_dict(self):
        strategy = StrategyConfig.from_dict(_strategy_dict())
        assert strategy.name == "Trend pullback"
        assert strategy.symbol == "ETHUSDT"
        assert strategy.long.enabled and not strategy.short.enabled
        assert strategy.long.locational_condition.min_score == 1.2
        assert strategy.long.contextual_filters[0].value == "Trend"
        assert strategy.long.risk_management.stop_loss == ExitRule("atr_multiple", 1.5)

    def test_side_lookup(self):
        strategy = StrategyConfig.from_dict(_strategy_dict())
        assert strategy.side("short") is strategy.short
        with pytest.raises(ValueError):
            strategy.side("flat")

    def test_missing_side(self):
        data = _strategy_dict()
        del data["short_strategy"]
        with pytest.raises(ValueError, match="short_strategy"):
            StrategyConfig.from_dict(data)

    def test_unknown_indicator(self):
        with pytest.raises(ValueError, match="unknown indicator"):
            ContextualFilter.from_dict(
                {"indicator": "MACD", "parameter": "x", "operator": ">", "value": 1}
            )

    def test_unknown_operator(self):
        with pytest.raises(ValueError, match="unknown operator"):
            ContextualFilter.from_dict(
                {"indicator": "RSI", "parameter": "value", "operator": ">=", "value": 1}
            )


class TestExitRule:
    def test_unknown_type(self):
        with pytest.raises(ValueError, match="exit type"):
            ExitRule("trailing", 1.0)

    def test_zone_target_validated(self):
        with pytest.raises(ValueError, match="confluence_zone"):
            ExitRule("confluence_zone", "top")

    def test_numeric_value_must_be_positive(self):
        with pytest.raises(ValueError):
            ExitRule("percentage", 0)

    def test_stop_cannot_be_risk_reward(self):
        with pytest.raises(ValueError, match="risk_reward_ratio"):
            RiskManagement(
                stop_loss=ExitRule("risk_reward_ratio", 2),
                take_profit=ExitRule("percentage", 2),
            )


class TestBacktestSettings:
    def test_defaults(self):
        settings = BacktestSettings()
        assert settings.initial_capital == 10_000.0
        assert settings.position_sizing == PositionSizing("percentage_of_equity", 10.0)
        assert settings.taker_fee_pct == 0.0

    def test_dict_form(self):
        settings = BacktestSettings(
            initial_capital=5_000,
            position_sizing=PositionSizing("fixed_amount", 250),
            taker_fee_pct=0.1,
            slippage_pct=0.05,
        )
        data = settings.to_dict()
        assert data["positionSizing"] == {"type": "fixed_amount", "value": 250}
        assert BacktestSettings.from_dict(data) == settings

    def test_rejects_bad_capital(self):
        with pytest.raises(ValueError, match="initial_capital"):
            BacktestSettings(initial_capital=0)

    def test_rejects_bad_sizing_mode(self):
        with pytest.raises(ValueError, match="position sizing"):
            PositionSizing("kelly", 1)
