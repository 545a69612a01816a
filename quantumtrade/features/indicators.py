"""
Indicator Module
================
Technical indicators and pattern classification for signal scoring.

Every function is pure: short inputs return a documented neutral value
instead of raising.
"""

import pandas as pd
import numpy as np
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional, Sequence
import logging

from ..data.market_data import Quote
from ..data.options_flow import OptionsFlowEntry, FlowSentiment

logger = logging.getLogger(__name__)

TRADING_DAYS = 252


class Pattern(Enum):
    """Chart pattern classification."""
    GOLDEN_CROSS = "golden_cross"
    DEATH_CROSS = "death_cross"
    BULL_FLAG = "bull_flag"
    BEAR_FLAG = "bear_flag"
    ASCENDING_TRIANGLE = "ascending_triangle"
    DESCENDING_TRIANGLE = "descending_triangle"
    CONSOLIDATION = "consolidation"
    UNKNOWN = "unknown"

    @property
    def bias(self) -> int:
        """+1 for bullish patterns, -1 for bearish, 0 otherwise."""
        if self in BULLISH_PATTERNS:
            return 1
        if self in BEARISH_PATTERNS:
            return -1
        return 0

    @property
    def label(self) -> str:
        return self.value.replace('_', ' ')


BULLISH_PATTERNS = frozenset({Pattern.GOLDEN_CROSS, Pattern.BULL_FLAG, Pattern.ASCENDING_TRIANGLE})
BEARISH_PATTERNS = frozenset({Pattern.DEATH_CROSS, Pattern.BEAR_FLAG, Pattern.DESCENDING_TRIANGLE})


@dataclass(frozen=True)
class IndicatorSet:
    """Per-symbol indicator snapshot for one scoring cycle."""
    symbol: str
    price: float
    rsi: float
    macd_histogram: float
    bollinger_position: float
    volume_ratio: float
    volatility: float
    options_signal: float
    pattern: Pattern
    price_change_pct: float = 0.0
    timestamp: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'price': self.price,
            'rsi': self.rsi,
            'macd_histogram': self.macd_histogram,
            'bollinger_position': self.bollinger_position,
            'volume_ratio': self.volume_ratio,
            'volatility': self.volatility,
            'options_signal': self.options_signal,
            'pattern': self.pattern.value,
            'price_change_pct': self.price_change_pct,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None
        }


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class TechnicalIndicators:
    """Technical analysis indicators over a close series."""

    @staticmethod
    def sma(prices: Sequence[float], period: int) -> float:
        """Simple moving average over the last `period` closes (or all available)."""
        if len(prices) == 0:
            return 0.0
        return float(np.mean(np.asarray(prices, dtype=float)[-period:]))

    @staticmethod
    def ema(prices: Sequence[float], period: int) -> pd.Series:
        """Exponential Moving Average."""
        return pd.Series(prices, dtype=float).ewm(span=period, adjust=False).mean()

    @staticmethod
    def rsi(prices: Sequence[float], period: int = 14) -> float:
        """
        Relative Strength Index from the first `period` deltas.

        Returns 50 when there are not enough samples and 100 when the
        window holds no losses.
        """
        closes = np.asarray(prices, dtype=float)
        if len(closes) <= period:
            return 50.0

        deltas = np.diff(closes[:period + 1])
        avg_gain = float(np.mean(np.where(deltas > 0, deltas, 0.0)))
        avg_loss = float(np.mean(np.where(deltas < 0, -deltas, 0.0)))

        if avg_loss == 0:
            return 100.0

        rs = avg_gain / avg_loss
        return 100 - (100 / (1 + rs))

    @staticmethod
    def macd_histogram(prices: Sequence[float], fast: int = 12, slow: int = 26,
                       signal: int = 9) -> float:
        """Latest MACD histogram: (EMA fast - EMA slow) minus its signal EMA."""
        if len(prices) < slow:
            return 0.0

        macd_line = TechnicalIndicators.ema(prices, fast) - TechnicalIndicators.ema(prices, slow)
        signal_line = macd_line.ewm(span=signal, adjust=False).mean()
        return float((macd_line - signal_line).iloc[-1])

    @staticmethod
    def bollinger_position(prices: Sequence[float], price: Optional[float] = None,
                           period: int = 20, std_dev: float = 2.0) -> float:
        """Position of price inside the Bollinger envelope, clamped to [-1, 1]."""
        if len(prices) < period:
            return 0.0

        window = np.asarray(prices, dtype=float)[-period:]
        mean = float(np.mean(window))
        std = float(np.std(window))  # population
        if std == 0:
            return 0.0

        if price is None:
            price = float(window[-1])

        upper = mean + std_dev * std
        return _clamp((price - mean) / (upper - mean), -1.0, 1.0)

    @staticmethod
    def volatility(prices: Sequence[float], annualize: bool = True) -> float:
        """Standard deviation of simple daily returns, annualized by sqrt(252)."""
        closes = np.asarray(prices, dtype=float)
        if len(closes) < 2:
            return 0.0

        returns = np.diff(closes) / closes[:-1]
        vol = float(np.std(returns))
        if annualize:
            vol *= np.sqrt(TRADING_DAYS)
        return vol

    @staticmethod
    def trend(prices: Sequence[float], lookback: int = 10) -> float:
        """Fractional change from first to last of the most recent closes."""
        window = list(prices)[-lookback:]
        if len(window) < 2 or window[0] == 0:
            return 0.0
        return (window[-1] - window[0]) / window[0]


def options_signal(entries: Iterable[OptionsFlowEntry], symbol: Optional[str] = None) -> float:
    """(bullish premium - bearish premium) / total premium, in [-1, 1]."""
    bullish = bearish = total = 0.0
    for entry in entries:
        if symbol and entry.symbol != symbol.upper():
            continue
        total += entry.premium
        if entry.sentiment is FlowSentiment.BULLISH:
            bullish += entry.premium
        elif entry.sentiment is FlowSentiment.BEARISH:
            bearish += entry.premium

    if total <= 0:
        return 0.0
    return _clamp((bullish - bearish) / total, -1.0, 1.0)


def classify_pattern(prices: Sequence[float], volatility: Optional[float] = None) -> Pattern:
    """Classify the recent price action into a Pattern."""
    if len(prices) < 10:
        return Pattern.UNKNOWN

    trend = TechnicalIndicators.trend(prices, 10)
    if volatility is None:
        volatility = TechnicalIndicators.volatility(prices)

    has_long_history = len(prices) >= 50
    sma_50 = TechnicalIndicators.sma(prices, 50)
    sma_200 = TechnicalIndicators.sma(prices, 200)

    if trend > 0.02:
        if has_long_history and sma_50 > sma_200:
            return Pattern.GOLDEN_CROSS
        if trend > 0.01 and volatility < 0.2:
            return Pattern.BULL_FLAG
        return Pattern.ASCENDING_TRIANGLE

    if trend < -0.02:
        if has_long_history and sma_50 < sma_200:
            return Pattern.DEATH_CROSS
        if trend < -0.01 and volatility < 0.2:
            return Pattern.BEAR_FLAG
        return Pattern.DESCENDING_TRIANGLE

    return Pattern.CONSOLIDATION


class IndicatorCalculator:
    """Builds an IndicatorSet from a quote, its close history and options flow."""

    def __init__(self, rsi_period: int = 14):
        self.rsi_period = rsi_period
        self.technical = TechnicalIndicators()

    def compute(self, quote: Quote, history: Sequence[float],
                flow: Optional[Iterable[OptionsFlowEntry]] = None) -> IndicatorSet:
        """
        Compute all indicators for one symbol.

        Args:
            quote: Current quote snapshot (must carry a positive price)
            history: Closes, oldest first
            flow: Options flow entries (other symbols are ignored)

        Returns:
            IndicatorSet
        """
        if not quote.is_valid:
            raise ValueError(f"Quote for {quote.symbol} has no valid price")

        prices = [float(p) for p in history]
        volatility = self.technical.volatility(prices)

        indicators = IndicatorSet(
            symbol=quote.symbol,
            price=quote.price,
            rsi=self.technical.rsi(prices, self.rsi_period),
            macd_histogram=self.technical.macd_histogram(prices),
            bollinger_position=self.technical.bollinger_position(prices, quote.price),
            volume_ratio=max(quote.volume_ratio, 0.0),
            volatility=volatility,
            options_signal=options_signal(flow or [], quote.symbol),
            pattern=classify_pattern(prices, volatility),
            price_change_pct=quote.change_pct,
            timestamp=quote.timestamp
        )

        logger.debug(f"Computed indicators for {quote.symbol}: "
                     f"rsi={indicators.rsi:.1f} macd={indicators.macd_histogram:.4f} "
                     f"pattern={indicators.pattern.value}")
        return indicators
