"""
Feature Engineering Module
==========================
"""
from .indicators import (
    IndicatorCalculator,
    IndicatorSet,
    Pattern,
    TechnicalIndicators,
    BULLISH_PATTERNS,
    BEARISH_PATTERNS,
    classify_pattern,
    options_signal
)

__all__ = [
    'IndicatorCalculator',
    'IndicatorSet',
    'Pattern',
    'TechnicalIndicators',
    'BULLISH_PATTERNS',
    'BEARISH_PATTERNS',
    'classify_pattern',
    'options_signal'
]
