"""
Heuristic Confidence
====================
Deterministic rule-based confidence, independent of the trainable model.
"""

from ..features.indicators import IndicatorSet


def confidence(indicators: IndicatorSet) -> float:
    """Additive rule score starting at 0.5, clamped to [0, 1]."""
    score = 0.5

    # RSI extremes
    if indicators.rsi < 30:
        score += 0.15
    elif indicators.rsi > 70:
        score -= 0.15

    # MACD direction
    if indicators.macd_histogram > 0:
        score += 0.10
    elif indicators.macd_histogram < 0:
        score -= 0.10

    if indicators.volume_ratio > 1.5:
        score += 0.10

    score += 0.15 * indicators.pattern.bias
    score += 0.10 * indicators.options_signal

    if abs(indicators.bollinger_position) > 0.8:
        score += 0.10

    return max(0.0, min(1.0, score))
