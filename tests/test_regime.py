"""Tests for the regime filter and quantitative score."""

import pytest

from apex.strategy.regime import (
    base_regime_for,
    calculate_crf,
    calculate_quantitative_score,
)


class TestCRF:
    def test_missing_input(self):
        assert calculate_crf(None, 5, 0.5, 100, 90, []) == "Indeterminate"

    def test_strong_bullish_trend(self):
        assert calculate_crf(40, 5, 0.7, 110, 100, []) == "Strong Bullish Trend"

    def test_developing_bearish_trend(self):
        assert calculate_crf(30, 5, 0.7, 90, 100, []) == "Developing Bearish Trend"

    def test_stable_range(self):
        assert calculate_crf(15, 5, 0.5, 100, 100, []) == "Stable Range"

    def test_choppy_range(self):
        assert calculate_crf(22, 5, 0.3, 100, 100, []) == "Choppy Range"

    def test_squeeze_wins(self):
        history = [10.0] * 20
        assert calculate_crf(40, 1.0, 0.7, 110, 100, history) == "Volatility Squeeze"

    def test_squeeze_needs_history(self):
        history = [10.0] * 10
        assert calculate_crf(40, 1.0, 0.7, 110, 100, history) == "Strong Bullish Trend"


class TestQuantitativeScore:
    @pytest.mark.parametrize("crf, expected", [
        ("Strong Bullish Trend", "Trending"),
        ("Developing Bearish Trend", "Trending"),
        ("Stable Range", "Ranging"),
        ("Volatility Squeeze", "Ranging"),
        ("Choppy Range", "Ranging"),
        ("Choppy", "Weak Trend / Chop"),
        ("Indeterminate", "Weak Trend / Chop"),
    ])
    def test_base_regime(self, crf, expected):
        assert base_regime_for(crf) == expected

    def test_all_bullish_trending(self):
        score = calculate_quantitative_score(
            "Strong Bullish Trend",
            ema_trend="Bullish",
            ichimoku_signal=1,
            vp_position="Above Value Area (Bullish)",
            rsi=100,
            vdr=5.0,
            relative_perf="Outperforming BTC",
        )
        # 0.25 + 0.25 + 0.20 + 0.15 + 0.10 + 0.5 × 0.05
        assert score.structural_score == pytest.approx(0.975)
        assert score.composite_score == score.structural_score
        assert score.interpretation == "Strong Bullish Signal. Bias: Strong Bullish Structure."

    def test_ranging_weights_rsi(self):
        score = calculate_quantitative_score("Stable Range", rsi=25)
        # (25 - 50) / 50 × 0.40
        assert score.structural_score == pytest.approx(-0.2)
        assert score.structural_interpretation == "Bearish Structure"

    def test_neutral(self):
        score = calculate_quantitative_score("Indeterminate")
        assert score.structural_score == 0.0
        assert score.interpretation == "Neutral Signal. Bias: Neutral Structure."

    def test_choppy_range_uses_ranging_weights(self):
        score = calculate_quantitative_score("Choppy Range", ema_trend="Bullish", rsi=80)
        # 0.05 × 1 + 0.40 × 0.6
        assert score.structural_score == pytest.approx(0.29)
        assert score.base_regime == "Ranging"
