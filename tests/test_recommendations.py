"""Tests for recommendation generation."""

import numpy as np
import pytest

from quantumtrade.config import RecommendationConfig
from quantumtrade.features.indicators import Pattern
from quantumtrade.ml import ScoringModel
from quantumtrade.signals import (
    Action,
    RecommendationGenerator,
    RiskLevel,
    risk_level,
    signal_strength,
    summarize,
)

from conftest import make_indicators


def bullish(**overrides):
    values = dict(rsi=25.0, macd_histogram=0.5, pattern=Pattern.BULL_FLAG)
    values.update(overrides)
    return make_indicators(**values)


def bearish(**overrides):
    values = dict(rsi=75.0, macd_histogram=-0.5, pattern=Pattern.BEAR_FLAG)
    values.update(overrides)
    return make_indicators(**values)


@pytest.fixture
def generator():
    return RecommendationGenerator()


def test_buy_levels(generator):
    rec = generator.evaluate(bullish(volatility=0.1))

    assert rec.action is Action.BUY
    assert rec.confidence == pytest.approx(90.0)
    assert rec.entry_price == 100.0
    assert rec.stop_loss == 98.0
    assert rec.take_profit == 105.0


def test_buy_levels_widen_with_volatility(generator):
    rec = generator.evaluate(bullish(volatility=0.5))
    assert rec.stop_loss == 95.0
    assert rec.take_profit == 108.0


def test_sell_levels(generator):
    rec = generator.evaluate(bearish(volatility=0.1))

    assert rec.action is Action.SELL
    assert rec.stop_loss == 102.0
    assert rec.take_profit == 95.0

    wide = generator.evaluate(bearish(volatility=0.5))
    assert wide.stop_loss == 105.0
    assert wide.take_profit == 92.0


def test_strong_buy_on_momentum_and_volume(generator):
    rec = generator.evaluate(bullish(price_change_pct=3.0, volume_ratio=2.0))
    assert rec.action is Action.STRONG_BUY


def test_strong_sell_on_momentum_and_volume(generator):
    rec = generator.evaluate(bearish(price_change_pct=-3.0, volume_ratio=2.0))
    assert rec.action is Action.STRONG_SELL


def test_overbought_rsi_blocks_buy(generator):
    # High confidence but RSI above 70
    ind = make_indicators(rsi=72.0, macd_histogram=0.5, pattern=Pattern.GOLDEN_CROSS,
                          volume_ratio=2.0, options_signal=1.0)
    assert generator.evaluate(ind).action is Action.HOLD


def test_neutral_is_hold_and_dropped(generator):
    assert generator.evaluate(make_indicators()).action is Action.HOLD
    assert generator.generate([make_indicators()]) == []


def test_generate_never_emits_hold(generator):
    rng = np.random.default_rng(11)
    patterns = list(Pattern)
    sets = [
        make_indicators(
            symbol=f"S{i}",
            rsi=float(rng.uniform(0, 100)),
            macd_histogram=float(rng.normal(0, 1)),
            bollinger_position=float(rng.uniform(-1, 1)),
            volume_ratio=float(rng.uniform(0, 3)),
            volatility=float(rng.uniform(0, 0.6)),
            options_signal=float(rng.uniform(-1, 1)),
            pattern=patterns[i % len(patterns)],
            price_change_pct=float(rng.normal(0, 3)),
        )
        for i in range(200)
    ]

    recs = generator.generate(sets)

    assert recs
    assert all(r.action is not Action.HOLD for r in recs)


def test_generate_sorted_and_deduplicated(generator):
    recs = generator.generate([
        bullish(symbol="AAA"),
        bearish(symbol="BBB"),
        bullish(symbol="CCC", options_signal=1.0, volume_ratio=2.0),
        bullish(symbol="AAA", rsi=50.0),
    ])

    assert [r.symbol for r in recs] == ["CCC", "AAA", "BBB"]
    confidences = [r.confidence for r in recs]
    assert confidences == sorted(confidences, reverse=True)


def test_higher_ranked_hold_suppresses_duplicate(generator):
    overbought = make_indicators(symbol="DUP", rsi=72.0, macd_histogram=0.5, pattern=Pattern.GOLDEN_CROSS,
                                 volume_ratio=2.0, options_signal=1.0)
    weaker_buy = bullish(symbol="DUP", rsi=50.0)
    assert generator.evaluate(overbought).confidence > generator.evaluate(weaker_buy).confidence
    assert generator.evaluate(weaker_buy).action is Action.BUY

    recs = generator.generate([weaker_buy, overbought, bearish(symbol="BBB")])

    assert [r.symbol for r in recs] == ["BBB"]


def test_generate_skips_invalid_prices(generator):
    recs = generator.generate([
        None,
        bullish(symbol="ZERO", price=0.0),
        bullish(symbol="NAN", price=float("nan")),
        bullish(symbol="OK"),
    ])
    assert [r.symbol for r in recs] == ["OK"]


def test_model_score_attached_for_display():
    model = ScoringModel()
    ind = bullish()
    rec = RecommendationGenerator(model=model).evaluate(ind)

    assert rec.model_score == pytest.approx(model.score(ind))
    assert RecommendationGenerator().evaluate(ind).model_score is None


def test_rationale(generator):
    reasons = generator.build_rationale(bullish(volume_ratio=2.0, options_signal=0.4))

    assert reasons == [
        "Pattern: bull flag",
        "RSI oversold (25)",
        "MACD momentum bullish",
        "Volume 2.0x average",
        "Options flow skewed bullish (+0.40)",
    ]
    assert generator.build_rationale(make_indicators(macd_histogram=0.0)) == ["Technical setup"]


def test_custom_thresholds():
    config = RecommendationConfig(buy_confidence=0.55)
    ind = make_indicators(macd_histogram=0.5)  # confidence 0.6
    assert RecommendationGenerator(config=config).evaluate(ind).action is Action.BUY
    assert RecommendationGenerator().evaluate(ind).action is Action.HOLD


@pytest.mark.parametrize("change,volume_ratio,expected", [
    (0.0, 1.0, 50.0),
    (2.0, 1.5, 70.0),
    (-20.0, 4.0, 100.0),
    (0.0, 0.0, 30.0),
])
def test_signal_strength(change, volume_ratio, expected):
    assert signal_strength(change, volume_ratio) == pytest.approx(expected)


def test_risk_level_thresholds():
    assert risk_level(90) is RiskLevel.LOW
    assert risk_level(80) is RiskLevel.MEDIUM
    assert risk_level(51) is RiskLevel.MEDIUM
    assert risk_level(50) is RiskLevel.HIGH


def test_to_dict_and_summary(generator):
    recs = generator.generate([bullish(symbol="AAA"), bearish(symbol="BBB")])
    data = recs[0].to_dict()

    assert data["action"] == "BUY"
    assert data["pattern"] == "bull_flag"
    assert data["risk_level"] in {"LOW", "MEDIUM", "HIGH"}
    assert summarize(recs) == {"BUY": 1, "SELL": 1}
