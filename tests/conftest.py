"""Shared test fixtures."""

from typing import Any, Dict, List, Optional

import numpy as np
import pytest

from quantumtrade.data.market_data import Quote, QuoteProvider, ProviderError
from quantumtrade.data.options_flow import OptionsFlowProvider
from quantumtrade.features.indicators import IndicatorSet, Pattern


class FakeQuoteProvider(QuoteProvider):
    """Provider returning a canned quote or raising, counting calls."""

    def __init__(self, name: str, quote: Optional[Quote] = None,
                 error: Optional[Exception] = None, configured: bool = True):
        self.name = name
        self.quote = quote
        self.error = error
        self.configured = configured
        self.calls = 0

    def is_configured(self) -> bool:
        return self.configured

    def fetch(self, symbol: str) -> Any:
        self.calls += 1
        if self.error is not None:
            raise self.error
        if self.quote is None:
            raise ProviderError(f"{self.name} has nothing for {symbol}")
        return self.quote

    def normalize(self, symbol: str, payload: Any) -> Quote:
        return payload


class FakeFlowProvider(OptionsFlowProvider):
    name = "fake_flow"

    def __init__(self, records: Optional[List[Dict[str, Any]]] = None,
                 error: Optional[Exception] = None):
        self.records = records or []
        self.error = error
        self.calls = 0

    def fetch(self, symbol: Optional[str] = None) -> List[Dict[str, Any]]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.records)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_quote(symbol: str = "AAPL", price: float = 100.0, open: float = 95.0,
               volume: float = 2_000_000, average_volume: Optional[float] = 1_000_000,
               source: str = "fake") -> Quote:
    return Quote(
        symbol=symbol,
        price=price,
        open=open,
        high=max(price, open) * 1.01,
        low=min(price, open) * 0.99,
        volume=volume,
        average_volume=average_volume,
        source=source
    )


def make_indicators(**overrides) -> IndicatorSet:
    """Neutral indicator snapshot with selected fields overridden."""
    values = dict(
        symbol="AAPL",
        price=100.0,
        rsi=50.0,
        macd_histogram=0.0,
        bollinger_position=0.0,
        volume_ratio=1.0,
        volatility=0.1,
        options_signal=0.0,
        pattern=Pattern.CONSOLIDATION,
        price_change_pct=0.0
    )
    values.update(overrides)
    return IndicatorSet(**values)


@pytest.fixture
def quote():
    return make_quote()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def random_walk() -> List[float]:
    """120 closes of a positive random walk."""
    rng = np.random.default_rng(42)
    closes = 100 + np.cumsum(rng.normal(0, 1.5, 120))
    return [float(c) for c in np.maximum(closes, 10)]


@pytest.fixture
def rising_prices() -> List[float]:
    return [100.0 + i for i in range(60)]
