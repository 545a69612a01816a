"""Tests for technical indicators and pattern classification."""

import pytest

from quantumtrade.data.market_data import Quote
from quantumtrade.data.options_flow import ContractType, FlowSentiment, OptionsFlowEntry
from quantumtrade.features.indicators import (
    IndicatorCalculator,
    Pattern,
    TechnicalIndicators,
    classify_pattern,
    options_signal,
)

from conftest import make_quote


def _flow(symbol, sentiment, premium):
    return OptionsFlowEntry(
        symbol=symbol,
        contract_type=ContractType.CALL,
        strike=150.0,
        expiry="2025-08-29",
        premium=premium,
        volume=100,
        sentiment=sentiment,
    )


@pytest.mark.parametrize("n", [0, 1, 13, 14])
def test_rsi_neutral_with_short_history(n):
    assert TechnicalIndicators.rsi([100.0 + i for i in range(n)]) == 50.0


def test_rsi_bounded(random_walk):
    for end in range(15, len(random_walk), 7):
        rsi = TechnicalIndicators.rsi(random_walk[:end])
        assert 0 <= rsi <= 100


def test_rsi_all_gains_is_100():
    assert TechnicalIndicators.rsi([float(p) for p in range(100, 120)]) == 100.0


def test_rsi_all_losses_is_0():
    assert TechnicalIndicators.rsi([float(p) for p in range(120, 100, -1)]) == 0.0


def test_rsi_uses_first_period_deltas():
    # First 14 deltas are gains, later losses are outside the window
    prices = [float(p) for p in range(100, 115)] + [50.0, 40.0]
    assert TechnicalIndicators.rsi(prices) == 100.0


def test_macd_histogram_zero_with_short_history():
    assert TechnicalIndicators.macd_histogram([100.0] * 25) == 0.0


def test_macd_histogram_flat_series_is_zero():
    assert TechnicalIndicators.macd_histogram([100.0] * 40) == pytest.approx(0.0)


def test_macd_histogram_positive_on_uptrend(rising_prices):
    assert TechnicalIndicators.macd_histogram(rising_prices) > 0


def test_macd_histogram_negative_on_downtrend(rising_prices):
    assert TechnicalIndicators.macd_histogram(rising_prices[::-1]) < 0


def test_bollinger_position_bounded(random_walk):
    window = random_walk[:40]
    assert TechnicalIndicators.bollinger_position(window, 10_000.0) == 1.0
    assert TechnicalIndicators.bollinger_position(window, 0.01) == -1.0
    assert -1 <= TechnicalIndicators.bollinger_position(window) <= 1


def test_bollinger_position_neutral_cases():
    assert TechnicalIndicators.bollinger_position([100.0] * 10, 120.0) == 0.0
    assert TechnicalIndicators.bollinger_position([100.0] * 30, 120.0) == 0.0


def test_bollinger_position_at_mean_is_zero():
    prices = [99.0, 101.0] * 10
    assert TechnicalIndicators.bollinger_position(prices, 100.0) == pytest.approx(0.0)


def test_volatility_edge_cases():
    assert TechnicalIndicators.volatility([]) == 0.0
    assert TechnicalIndicators.volatility([100.0]) == 0.0
    assert TechnicalIndicators.volatility([100.0] * 20) == 0.0


def test_volatility_is_annualized():
    prices = [100.0, 101.0, 100.0, 101.0, 100.0]
    daily = TechnicalIndicators.volatility(prices, annualize=False)
    assert TechnicalIndicators.volatility(prices) == pytest.approx(daily * 252 ** 0.5)


def test_pattern_bias():
    assert Pattern.GOLDEN_CROSS.bias == 1
    assert Pattern.BULL_FLAG.bias == 1
    assert Pattern.ASCENDING_TRIANGLE.bias == 1
    assert Pattern.DEATH_CROSS.bias == -1
    assert Pattern.BEAR_FLAG.bias == -1
    assert Pattern.DESCENDING_TRIANGLE.bias == -1
    assert Pattern.CONSOLIDATION.bias == 0
    assert Pattern.UNKNOWN.bias == 0


def test_classify_pattern_short_history_is_unknown():
    assert classify_pattern([100.0] * 9) is Pattern.UNKNOWN


def test_classify_pattern_flat_is_consolidation():
    assert classify_pattern([100.0] * 30) is Pattern.CONSOLIDATION


def test_classify_pattern_smooth_rise_is_bull_flag():
    prices = [100.0 * 1.005 ** i for i in range(15)]
    assert classify_pattern(prices) is Pattern.BULL_FLAG


def test_classify_pattern_smooth_fall_is_bear_flag():
    prices = [100.0 * 0.995 ** i for i in range(15)]
    assert classify_pattern(prices) is Pattern.BEAR_FLAG


def test_classify_pattern_long_uptrend_is_golden_cross(rising_prices):
    assert classify_pattern(rising_prices) is Pattern.GOLDEN_CROSS


def test_classify_pattern_long_downtrend_is_death_cross(rising_prices):
    assert classify_pattern(rising_prices[::-1]) is Pattern.DEATH_CROSS


def test_classify_pattern_volatile_rise_is_ascending_triangle():
    prices = [100.0 * 1.005 ** i for i in range(15)]
    assert classify_pattern(prices, volatility=0.5) is Pattern.ASCENDING_TRIANGLE


def test_options_signal_premium_skew():
    entries = [
        _flow("AAPL", FlowSentiment.BULLISH, 300),
        _flow("AAPL", FlowSentiment.BEARISH, 100),
        _flow("AAPL", FlowSentiment.NEUTRAL, 100),
        _flow("TSLA", FlowSentiment.BEARISH, 10_000),
    ]
    assert options_signal(entries, "AAPL") == pytest.approx(0.4)
    assert options_signal(entries, "aapl") == pytest.approx(0.4)
    assert options_signal(entries, "TSLA") == pytest.approx(-1.0)


def test_options_signal_without_flow_is_zero():
    assert options_signal([], "AAPL") == 0.0
    assert options_signal([_flow("TSLA", FlowSentiment.BULLISH, 100)], "AAPL") == 0.0


def test_calculator_flat_history():
    calc = IndicatorCalculator()
    ind = calc.compute(make_quote(), [100.0] * 5, [])

    assert ind.symbol == "AAPL"
    assert ind.rsi == 50.0
    assert ind.macd_histogram == 0.0
    assert ind.bollinger_position == 0.0
    assert ind.volume_ratio == pytest.approx(2.0)
    assert ind.volatility == 0.0
    assert ind.pattern is Pattern.UNKNOWN
    assert ind.price_change_pct == pytest.approx(5 / 95 * 100)


def test_calculator_rejects_invalid_quote():
    bad = Quote(symbol="AAPL", price=0.0, open=0.0, high=0.0, low=0.0, volume=0.0)
    with pytest.raises(ValueError):
        IndicatorCalculator().compute(bad, [100.0] * 20)


def test_calculator_uses_symbol_flow():
    flow = [_flow("AAPL", FlowSentiment.BULLISH, 500), _flow("TSLA", FlowSentiment.BEARISH, 500)]
    ind = IndicatorCalculator().compute(make_quote(), [100.0] * 5, flow)
    assert ind.options_signal == pytest.approx(1.0)


def test_indicator_set_to_dict(random_walk):
    ind = IndicatorCalculator().compute(make_quote(price=random_walk[-1]), random_walk)
    data = ind.to_dict()
    assert data["symbol"] == "AAPL"
    assert data["pattern"] == ind.pattern.value
    assert 0 <= data["rsi"] <= 100
