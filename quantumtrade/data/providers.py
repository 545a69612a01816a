"""
Quote Providers
===============
Adapters normalizing each upstream API into the common Quote shape.

Every HTTP provider can be reached directly or through the local proxy
(GET <proxy_url>/api/<route>/<symbol>), which returns the raw provider
JSON or an {"error": message} body.
"""

import pandas as pd
import requests
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
import logging
from abc import abstractmethod

from .market_data import Quote, QuoteProvider, ProviderError, to_float

logger = logging.getLogger(__name__)


class HttpQuoteProvider(QuoteProvider):
    """Base class for REST providers reached with requests."""

    url: str = ""
    proxy_route: str = ""

    def __init__(self, api_key: Optional[str] = None, proxy_url: Optional[str] = None,
                 timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.proxy_url = proxy_url.rstrip('/') if proxy_url else None
        self.timeout = timeout
        self.session = session or requests.Session()

    def is_configured(self) -> bool:
        # The proxy holds its own credentials
        return bool(self.api_key or self.proxy_url)

    @abstractmethod
    def build_request(self, symbol: str) -> tuple:
        """Return (url, params) for a direct provider call."""
        pass

    def fetch(self, symbol: str) -> Any:
        if self.proxy_url:
            url, params = f"{self.proxy_url}/api/{self.proxy_route}/{symbol}", None
        else:
            url, params = self.build_request(symbol)

        resp = self.session.get(url, params=params, timeout=self.timeout)
        resp.raise_for_status()
        payload = resp.json()

        if isinstance(payload, dict) and payload.get('error'):
            raise ProviderError(f"{self.name} error: {payload['error']}")
        return payload


class PolygonProvider(HttpQuoteProvider):
    """Polygon previous-day aggregates."""

    name = "polygon"
    proxy_route = "polygon"
    url = "https://api.polygon.io/v2/aggs/ticker/{symbol}/prev"

    def build_request(self, symbol: str) -> tuple:
        return self.url.format(symbol=symbol), {'adjusted': 'true', 'apiKey': self.api_key}

    def normalize(self, symbol: str, payload: Any) -> Quote:
        results = payload.get('results') if isinstance(payload, dict) else None
        if not results:
            raise ProviderError(f"polygon payload has no results for {symbol}")

        bar = results[0]
        price = to_float(bar.get('c'))
        timestamp = datetime.now()
        if bar.get('t'):
            timestamp = datetime.fromtimestamp(to_float(bar['t']) / 1000)

        return Quote(
            symbol=symbol,
            price=price,
            open=to_float(bar.get('o'), price),
            high=to_float(bar.get('h'), price),
            low=to_float(bar.get('l'), price),
            volume=to_float(bar.get('v')),
            timestamp=timestamp,
            source=self.name
        )


class TwelveDataProvider(HttpQuoteProvider):
    """Twelve Data real-time quote endpoint."""

    name = "twelve"
    proxy_route = "twelve"
    url = "https://api.twelvedata.com/quote"

    def build_request(self, symbol: str) -> tuple:
        return self.url, {'symbol': symbol, 'apikey': self.api_key}

    def normalize(self, symbol: str, payload: Any) -> Quote:
        if not isinstance(payload, dict) or payload.get('status') == 'error':
            message = payload.get('message') if isinstance(payload, dict) else payload
            raise ProviderError(f"twelve data error for {symbol}: {message}")

        price = to_float(payload.get('close'))
        return Quote(
            symbol=symbol,
            price=price,
            open=to_float(payload.get('open'), price),
            high=to_float(payload.get('high'), price),
            low=to_float(payload.get('low'), price),
            volume=to_float(payload.get('volume')),
            average_volume=to_float(payload.get('average_volume')) or None,
            source=self.name
        )


class AlphaVantageProvider(HttpQuoteProvider):
    """Alpha Vantage GLOBAL_QUOTE."""

    name = "alpha"
    proxy_route = "alpha"
    url = "https://www.alphavantage.co/query"

    def build_request(self, symbol: str) -> tuple:
        return self.url, {'function': 'GLOBAL_QUOTE', 'symbol': symbol, 'apikey': self.api_key}

    def normalize(self, symbol: str, payload: Any) -> Quote:
        quote = payload.get('Global Quote') if isinstance(payload, dict) else None
        if not quote:
            raise ProviderError(f"alpha vantage payload has no Global Quote for {symbol}")

        price = to_float(quote.get('05. price'))
        return Quote(
            symbol=symbol,
            price=price,
            open=to_float(quote.get('02. open'), price),
            high=to_float(quote.get('03. high'), price),
            low=to_float(quote.get('04. low'), price),
            volume=to_float(quote.get('06. volume')),
            source=self.name
        )


class YFinanceProvider(QuoteProvider):
    """Yahoo Finance data source (no credential required)."""

    name = "yahoo"

    def __init__(self, timeout: float = 5.0, period: str = "1mo"):
        self.timeout = timeout
        self.period = period

    def fetch(self, symbol: str) -> pd.DataFrame:
        import yfinance as yf
        ticker = yf.Ticker(symbol)
        return ticker.history(period=self.period, interval="1d", timeout=self.timeout)

    def normalize(self, symbol: str, payload: Any) -> Quote:
        if payload is None or len(payload) == 0 or 'Close' not in payload:
            raise ProviderError(f"yahoo returned no bars for {symbol}")

        last = payload.iloc[-1]
        price = to_float(last.get('Close'))
        volumes = payload['Volume'] if 'Volume' in payload else pd.Series(dtype=float)

        return Quote(
            symbol=symbol,
            price=price,
            open=to_float(last.get('Open'), price),
            high=to_float(last.get('High'), price),
            low=to_float(last.get('Low'), price),
            volume=to_float(last.get('Volume')),
            average_volume=to_float(volumes.mean()) or None,
            source=self.name
        )

    def fetch_history(self, symbol: str, days: int = 365) -> List[float]:
        """Fetch daily closes, oldest first, for backfilling price history."""
        import yfinance as yf
        end = datetime.now()
        start = end - timedelta(days=days)

        df = yf.Ticker(symbol).history(start=start, end=end, timeout=self.timeout)
        if df is None or df.empty:
            return []

        closes = df['Close'].dropna()
        closes = closes[~closes.index.duplicated(keep='last')].sort_index()
        return [float(c) for c in closes if c > 0]


PROVIDER_CLASSES = {
    'polygon': PolygonProvider,
    'twelve': TwelveDataProvider,
    'alpha': AlphaVantageProvider,
}


def build_providers(config) -> List[QuoteProvider]:
    """Instantiate providers in the configured priority order."""
    api_keys: Dict[str, Optional[str]] = {
        'polygon': config.polygon_api_key,
        'twelve': config.twelve_data_api_key,
        'alpha': config.alpha_vantage_api_key,
    }
    session = requests.Session()

    providers: List[QuoteProvider] = []
    for name in config.provider_order:
        if name == 'yahoo':
            providers.append(YFinanceProvider(timeout=config.request_timeout_seconds))
        elif name in PROVIDER_CLASSES:
            providers.append(PROVIDER_CLASSES[name](
                api_key=api_keys[name],
                proxy_url=config.proxy_url,
                timeout=config.request_timeout_seconds,
                session=session
            ))
        else:
            logger.warning(f"Unknown provider '{name}' in provider_order, ignoring")

    return providers
